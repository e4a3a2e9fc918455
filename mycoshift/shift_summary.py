"""
Species-level range-edge shift summaries and quadrant classification.

For each fungus, the per-band edge shifts (future − current) are averaged
over bands where both scenarios have present cells:

    southern_delta = mean(future 2.5th pct − current 2.5th pct)
    northern_delta = mean(future 97.5th pct − current 97.5th pct)

The (southern, northern) sign pair places the species in one of four
quadrants (see mycoshift.formulas.classification). Species with no usable
band are excluded from classification and reported separately.

The quadrant counts are then compared with a uniform 25%-per-quadrant null
using a chi-square goodness-of-fit test.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy import stats as scipy_stats

from mycoshift import config
from mycoshift.errors import AggregationUndefinedError
from mycoshift.formulas.classification import QUADRANT_ORDER, ShiftQuadrant, classify_deltas
from mycoshift.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)

SUMMARY_COLUMNS = [
    "fungus_id", "southern_delta", "northern_delta",
    "n_bands_used", "n_bands_total", "quadrant",
]


@dataclass(frozen=True)
class SpeciesShiftSummary:
    fungus_id: str
    southern_delta: float
    northern_delta: float
    n_bands_used: int
    n_bands_total: int


def summarize(records):
    """Mean edge shifts of one species over its complete bands.

    Parameters
    ----------
    records : sequence of BandShiftRecord
        All bands of a single fungus.

    Returns
    -------
    SpeciesShiftSummary

    Raises
    ------
    AggregationUndefinedError
        If no band has present cells under both scenarios.
    """
    records = list(records)
    if not records:
        raise AggregationUndefinedError("No band records to summarize")

    fungus_ids = {r.fungus_id for r in records}
    if len(fungus_ids) != 1:
        raise ValueError(f"Records from more than one species: {sorted(fungus_ids)}")
    fungus_id = fungus_ids.pop()

    usable = [r for r in records if r.complete]
    if not usable:
        raise AggregationUndefinedError(
            f"{fungus_id}: no band has present cells under both scenarios "
            f"({len(records)} bands)"
        )

    return SpeciesShiftSummary(
        fungus_id=fungus_id,
        southern_delta=float(np.mean([r.shift_lower for r in usable])),
        northern_delta=float(np.mean([r.shift_upper for r in usable])),
        n_bands_used=len(usable),
        n_bands_total=len(records),
    )


def classify(summary):
    """Quadrant of a SpeciesShiftSummary."""
    return classify_deltas(summary.southern_delta, summary.northern_delta)


def summarize_catalog(records_by_fungus):
    """Summarize and classify every species.

    Parameters
    ----------
    records_by_fungus : dict
        Maps fungus (SpeciesId or name) → sequence of BandShiftRecord.

    Returns
    -------
    tuple[pd.DataFrame, list[str]]
        Summary table with SUMMARY_COLUMNS sorted by fungus_id, and the ids
        excluded because their summary is undefined.
    """
    rows = []
    excluded = []
    for fungus, records in records_by_fungus.items():
        try:
            summary = summarize(records)
        except AggregationUndefinedError as exc:
            log.warning("Excluded from classification: %s", exc,
                        extra={"species_id": str(fungus)})
            excluded.append(str(fungus))
            continue
        rows.append({
            "fungus_id": summary.fungus_id,
            "southern_delta": summary.southern_delta,
            "northern_delta": summary.northern_delta,
            "n_bands_used": summary.n_bands_used,
            "n_bands_total": summary.n_bands_total,
            "quadrant": classify(summary).value,
        })

    df = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    if not df.empty:
        df = df.sort_values("fungus_id").reset_index(drop=True)

    log.info("Classified %d species, %d excluded as undefined",
             len(df), len(excluded))
    return df, sorted(excluded)


def quadrant_counts(summary_df):
    """Number of species per quadrant, all four quadrants always present.

    Returns
    -------
    pd.Series
        Indexed by quadrant label in QUADRANT_ORDER, dtype int.
    """
    labels = [q.value for q in QUADRANT_ORDER]
    if summary_df.empty:
        return pd.Series(0, index=labels, name="n_species", dtype="int64")
    counts = summary_df["quadrant"].value_counts()
    unknown = set(counts.index) - set(labels)
    if unknown:
        raise ValueError(f"Unknown quadrant labels: {sorted(unknown)}")
    return counts.reindex(labels, fill_value=0).astype("int64").rename("n_species")


def quadrant_goodness_of_fit(counts, null_proportion=None):
    """Chi-square test of quadrant counts against a uniform null.

    Parameters
    ----------
    counts : pd.Series or sequence of int
        Four quadrant counts (order does not matter under a uniform null).
    null_proportion : float, optional
        Expected share per quadrant. Default: config.QUADRANT_NULL_PROPORTION.

    Returns
    -------
    dict
        Keys: statistic, p_value, dof, n_species, expected_per_quadrant,
        observed. statistic and p_value are NaN when no species were
        classified.
    """
    if null_proportion is None:
        null_proportion = config.QUADRANT_NULL_PROPORTION

    observed = np.asarray(counts, dtype="float64")
    if observed.shape != (len(ShiftQuadrant),):
        raise ValueError(f"Expected {len(ShiftQuadrant)} quadrant counts, got {observed.shape}")

    n = int(observed.sum())
    expected = np.full(observed.shape, n * null_proportion)
    result = {
        "statistic": np.nan,
        "p_value": np.nan,
        "dof": len(observed) - 1,
        "n_species": n,
        "expected_per_quadrant": float(n * null_proportion),
        "observed": [int(c) for c in observed],
    }
    if n == 0:
        log.warning("Quadrant test undefined: no classified species")
        return result

    test = scipy_stats.chisquare(observed, f_exp=expected)
    result["statistic"] = float(test.statistic)
    result["p_value"] = float(test.pvalue)
    log.info("Quadrant chi-square: X2=%.3f, df=%d, p=%.4g, n=%d",
             result["statistic"], result["dof"], result["p_value"], n)
    return result

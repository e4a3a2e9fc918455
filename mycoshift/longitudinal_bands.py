"""
Longitudinal banding of fungal ranges.

The study extent is cut into fixed-width longitude bands. Within each band
the 2.5th and 97.5th percentile latitudes of present cells are taken as the
southern and northern range edges, separately for each scenario, so that
edge shifts are compared like-for-like along the same meridians.

Band membership is half-open ``(lower, upper]``: a cell centre exactly on a
boundary belongs to the band whose upper bound equals its longitude. The
same rule is applied to both scenarios.

This analysis does not involve any tree; it reads only fungal grids.
"""

import warnings
from dataclasses import asdict, dataclass

import numpy as np
import pandas as pd

from mycoshift import config
from mycoshift.errors import EmptyInputWarning
from mycoshift.formulas.quantiles import edge_quantiles
from mycoshift.formulas.spatial import to_lonlat
from mycoshift.grid import Scenario, Taxon
from mycoshift.logging_config import get_pipeline_logger
from mycoshift.parallel_processing import WorkerPool

log = get_pipeline_logger(__name__)

BAND_COLUMNS = [
    "fungus_id", "band_lower", "band_upper", "band_mid",
    "n_current", "n_future",
    "current_lower", "current_upper", "future_lower", "future_upper",
    "shift_lower", "shift_upper",
]


@dataclass(frozen=True, order=True)
class LongitudeBand:
    """Half-open longitude interval ``(lower, upper]`` in degrees."""

    lower: float
    upper: float

    def __post_init__(self):
        if not self.upper > self.lower:
            raise ValueError(f"Band upper bound must exceed lower: ({self.lower}, {self.upper}]")

    @property
    def midpoint(self):
        return (self.lower + self.upper) / 2

    @property
    def width(self):
        return self.upper - self.lower

    def contains(self, lon):
        """Boolean mask of longitudes inside this band."""
        lon = np.asarray(lon)
        return (lon > self.lower) & (lon <= self.upper)


def make_bands(west=None, east=None, width=None):
    """Contiguous bands of equal *width* from *west* covering up to *east*.

    The last band's upper bound is the first edge at or beyond *east*.

    Parameters
    ----------
    west, east : float, optional
        Default: config.STUDY_EXTENT.
    width : float, optional
        Default: config.BAND_WIDTH_DEG (3°).

    Returns
    -------
    tuple[LongitudeBand, ...]
    """
    if west is None:
        west = config.STUDY_EXTENT["west"]
    if east is None:
        east = config.STUDY_EXTENT["east"]
    if width is None:
        width = config.BAND_WIDTH_DEG
    if width <= 0:
        raise ValueError(f"Band width must be positive, got {width}")
    if east <= west:
        raise ValueError(f"East bound {east} must exceed west bound {west}")

    n_bands = int(np.ceil(round((east - west) / width, 9)))
    edges = west + width * np.arange(n_bands + 1)
    return tuple(
        LongitudeBand(float(lo), float(hi)) for lo, hi in zip(edges[:-1], edges[1:])
    )


def _check_bands(bands):
    bands = tuple(bands)
    if not bands:
        raise ValueError("At least one longitude band is required")
    for prev, nxt in zip(bands[:-1], bands[1:]):
        if nxt.lower < prev.upper:
            raise ValueError(
                f"Bands must be ordered and non-overlapping: "
                f"({prev.lower}, {prev.upper}] then ({nxt.lower}, {nxt.upper}]"
            )
    return bands


def assign_bands(lons, bands):
    """Index of the band containing each longitude, or -1 if outside all.

    Parameters
    ----------
    lons : array-like
    bands : sequence of LongitudeBand
        Ordered and non-overlapping.

    Returns
    -------
    np.ndarray
        int64 array, same length as *lons*.
    """
    bands = _check_bands(bands)
    lons = np.asarray(lons, dtype="float64")
    idx = np.full(lons.shape, -1, dtype="int64")
    for i, band in enumerate(bands):
        idx[band.contains(lons)] = i
    return idx


@dataclass(frozen=True)
class BandShiftRecord:
    """Edge latitudes of one fungus in one band under both scenarios.

    Quantiles are NaN when the band has no present cells under that scenario
    (``n_current``/``n_future`` is then 0).
    """

    fungus_id: str
    band: LongitudeBand
    n_current: int
    n_future: int
    current_lower: float
    current_upper: float
    future_lower: float
    future_upper: float

    @property
    def complete(self):
        """True when both scenarios have defined quantiles."""
        return self.n_current > 0 and self.n_future > 0

    @property
    def shift_lower(self):
        return self.future_lower - self.current_lower

    @property
    def shift_upper(self):
        return self.future_upper - self.current_upper

    def to_row(self):
        row = asdict(self)
        band = row.pop("band")
        row["band_lower"] = band["lower"]
        row["band_upper"] = band["upper"]
        row["band_mid"] = self.band.midpoint
        row["shift_lower"] = self.shift_lower
        row["shift_upper"] = self.shift_upper
        return row


def present_coordinates(grid):
    """(lon, lat) of cell centres where *grid* is present.

    Centres of a projected grid are reprojected to WGS84 degrees before
    they are compared with the longitude bands.
    """
    xs, ys = grid.geometry.centres()
    mask = grid.present
    return to_lonlat(xs[mask], ys[mask], grid.geometry.crs)


def analyze_species(store, fungus, bands):
    """Per-band edge latitudes for one fungus under both scenarios.

    Parameters
    ----------
    store : RasterStore
    fungus : str or SpeciesId
    bands : sequence of LongitudeBand
        Ordered, non-overlapping bands; output preserves this order.

    Returns
    -------
    tuple[BandShiftRecord, ...]
        One record per band.

    Warns
    -----
    EmptyInputWarning
        If the fungus has no present cells inside the bands under a scenario.
    """
    fungus = store.resolve(fungus, Taxon.FUNGUS)
    bands = _check_bands(bands)

    per_scenario = {}
    for scenario in Scenario:
        lons, lats = present_coordinates(store.get_presence(fungus, scenario))
        idx = assign_bands(lons, bands)
        if not (idx >= 0).any():
            warnings.warn(
                f"{fungus.name} has no present cells within the banded extent "
                f"under the {scenario.value} scenario",
                EmptyInputWarning,
                stacklevel=2,
            )
        per_scenario[scenario] = [lats[idx == i] for i in range(len(bands))]

    records = []
    for i, band in enumerate(bands):
        cur = per_scenario[Scenario.CURRENT][i]
        fut = per_scenario[Scenario.FUTURE][i]
        cur_lo, cur_hi = edge_quantiles(cur)
        fut_lo, fut_hi = edge_quantiles(fut)
        records.append(BandShiftRecord(
            fungus_id=fungus.name,
            band=band,
            n_current=int(cur.size),
            n_future=int(fut.size),
            current_lower=cur_lo,
            current_upper=cur_hi,
            future_lower=fut_lo,
            future_upper=fut_hi,
        ))
    return tuple(records)


def _analyze_species_task(fungus, store, bands):
    """Worker: analyze_species with the pool's (key, *args) calling order."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", EmptyInputWarning)
        return analyze_species(store, fungus, bands)


def analyze_catalog(store, bands, fungi=None, pool=None):
    """Run analyze_species over the fungal catalog.

    Parameters
    ----------
    store : RasterStore
    bands : sequence of LongitudeBand
    fungi : iterable, optional
        Default: every fungus in the store.
    pool : WorkerPool, optional
        Parallel pool, ideally bound to *store* (``WorkerPool(store=store)``).
        Runs sequentially in-process when omitted.

    Returns
    -------
    BatchResult
        ``results`` maps SpeciesId → tuple of BandShiftRecord; species that
        raise are listed in ``failures`` and the rest still complete.
    """
    bands = _check_bands(bands)
    if fungi is None:
        fungi = store.fungi
    fungi = [store.resolve(f, Taxon.FUNGUS) for f in fungi]

    if pool is not None:
        return pool.map_store_items(_analyze_species_task, fungi, store, bands,
                                     step_name="band_analysis")
    with WorkerPool(max_workers=1) as seq:
        return seq.map_store_items(_analyze_species_task, fungi, store, bands,
                                    step_name="band_analysis")


def band_records_frame(records):
    """Flatten BandShiftRecords into a tidy DataFrame (band order kept)."""
    rows = [r.to_row() for r in records]
    return pd.DataFrame(rows, columns=BAND_COLUMNS)

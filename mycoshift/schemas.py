"""
Pandera DataFrame schemas for the tables the pipeline emits.

Missing values are allowed only where "no data" is a legitimate outcome
(empty bands, empty current ranges); areas and counts are never null.

Usage:
    from mycoshift.schemas import OverlapAreaSchema
    OverlapAreaSchema.validate(df)  # raises pa.errors.SchemaError on failure
"""

import pandera as pa
from pandera import Check, Column, DataFrameSchema

from mycoshift import config
from mycoshift.formulas.classification import ShiftQuadrant

_LATITUDE = Check.in_range(-90.0, 90.0)
_LONGITUDE = Check.in_range(-180.0, 180.0)


# ── Overlap areas ───────────────────────────────────────────────────────

OverlapAreaSchema = DataFrameSchema(
    columns={
        "tree_id": Column(str, nullable=False),
        "fungus_id": Column(str, nullable=False),
        "scenario": Column(str, Check.isin(list(config.SCENARIOS)), nullable=False),
        "overlap_cells": Column(int, Check.greater_than_or_equal_to(0), nullable=False),
        "overlap_area_km2": Column(float, Check.greater_than_or_equal_to(0.0), nullable=False),
    },
    unique=["tree_id", "fungus_id", "scenario"],
    strict=False,
    coerce=False,
    name="OverlapAreaSchema",
)


# ── Range sizes ─────────────────────────────────────────────────────────

RangeSizeSchema = DataFrameSchema(
    columns={
        "species_id": Column(str, nullable=False),
        "taxon": Column(str, Check.isin(list(config.TAXON_DIRS)), nullable=False),
        "current_km2": Column(float, Check.greater_than_or_equal_to(0.0), nullable=True),
        "future_km2": Column(float, Check.greater_than_or_equal_to(0.0), nullable=True),
        "pct_change": Column(float, Check.greater_than_or_equal_to(-100.0), nullable=True),
    },
    strict=False,
    coerce=False,
    name="RangeSizeSchema",
)


# ── Band shifts ─────────────────────────────────────────────────────────

BandShiftSchema = DataFrameSchema(
    columns={
        "fungus_id": Column(str, nullable=False),
        "band_lower": Column(float, _LONGITUDE, nullable=False),
        "band_upper": Column(float, _LONGITUDE, nullable=False),
        "n_current": Column(int, Check.greater_than_or_equal_to(0), nullable=False),
        "n_future": Column(int, Check.greater_than_or_equal_to(0), nullable=False),
        "current_lower": Column(float, _LATITUDE, nullable=True),
        "current_upper": Column(float, _LATITUDE, nullable=True),
        "future_lower": Column(float, _LATITUDE, nullable=True),
        "future_upper": Column(float, _LATITUDE, nullable=True),
    },
    checks=[
        Check(lambda df: df["band_upper"] > df["band_lower"],
              name="band_upper_exceeds_lower"),
        # Quantiles are missing exactly when the band is empty.
        Check(lambda df: df["current_lower"].isna() == (df["n_current"] == 0),
              name="current_missing_iff_empty"),
        Check(lambda df: df["future_lower"].isna() == (df["n_future"] == 0),
              name="future_missing_iff_empty"),
    ],
    strict=False,
    coerce=False,
    name="BandShiftSchema",
)


# ── Shift summaries ─────────────────────────────────────────────────────

ShiftSummarySchema = DataFrameSchema(
    columns={
        "fungus_id": Column(str, nullable=False, unique=True),
        "southern_delta": Column(float, nullable=False),
        "northern_delta": Column(float, nullable=False),
        "n_bands_used": Column(int, Check.greater_than(0), nullable=False),
        "quadrant": Column(str, Check.isin([q.value for q in ShiftQuadrant]), nullable=False),
    },
    strict=False,
    coerce=False,
    name="ShiftSummarySchema",
)


# ── Convenience validation function ─────────────────────────────────────

def validate_schema(df, schema, step_name, strict=False, allow_empty=False):
    """Validate a DataFrame against a Pandera schema.

    Parameters
    ----------
    df : pd.DataFrame
    schema : pa.DataFrameSchema
    step_name : str
        Pipeline step name for messages.
    strict : bool
        If True, raise on failure. If False, return warnings.
    allow_empty : bool
        Treat a 0-row table as valid (e.g. no co-occurring pairs).

    Returns
    -------
    list[str]
        Validation warnings (empty if all pass).

    Raises
    ------
    ValueError
        Only if strict=True and validation fails.
    """
    warnings_list = []

    if df is None:
        msg = f"[{step_name}] DataFrame is None"
        if strict:
            raise ValueError(msg)
        return [msg]

    if len(df) == 0:
        if allow_empty:
            return []
        msg = f"[{step_name}] DataFrame is empty (0 rows)"
        if strict:
            raise ValueError(msg)
        return [msg]

    try:
        schema.validate(df, lazy=True)
    except pa.errors.SchemaErrors as exc:
        for failure in exc.failure_cases.itertuples():
            warnings_list.append(
                f"[{step_name}] Schema violation: "
                f"column='{failure.column}' check='{failure.check}' "
                f"failure_case={failure.failure_case}"
            )
        if strict:
            raise ValueError(
                f"[{step_name}] Schema validation failed with "
                f"{len(warnings_list)} errors"
            ) from exc

    return warnings_list

"""
Tests for mycoshift.schemas.

Tables produced by the pipeline must pass their schemas, and corrupted
copies must be flagged.
"""

import numpy as np
import pandas as pd
import pytest

from mycoshift.longitudinal_bands import analyze_catalog, band_records_frame, make_bands
from mycoshift.overlap import overlap_area_table
from mycoshift.raster_store import range_size_table
from mycoshift.schemas import (
    BandShiftSchema,
    OverlapAreaSchema,
    RangeSizeSchema,
    ShiftSummarySchema,
    validate_schema,
)
from mycoshift.shift_summary import summarize_catalog

from conftest import EAST, WEST

BANDS = make_bands(WEST, EAST, 2.0)


@pytest.fixture
def overlap_df(unit_area_store):
    df, _ = overlap_area_table(unit_area_store)
    return df


@pytest.fixture
def band_df(unit_area_store):
    batch = analyze_catalog(unit_area_store, BANDS)
    return band_records_frame([r for recs in batch.results.values() for r in recs])


class TestPipelineTablesPass:

    def test_overlap_areas(self, overlap_df):
        assert validate_schema(overlap_df, OverlapAreaSchema, "overlap_areas") == []

    def test_range_sizes(self, unit_area_store):
        df = range_size_table(unit_area_store)
        assert validate_schema(df, RangeSizeSchema, "range_sizes") == []

    def test_band_shifts(self, band_df):
        assert validate_schema(band_df, BandShiftSchema, "band_analysis") == []

    def test_shift_summary(self, unit_area_store):
        df, _ = summarize_catalog(analyze_catalog(unit_area_store, BANDS).results)
        assert validate_schema(df, ShiftSummarySchema, "shift_summary") == []


class TestViolationsFlagged:

    def test_negative_area(self, overlap_df):
        bad = overlap_df.copy()
        bad.loc[0, "overlap_area_km2"] = -1.0
        problems = validate_schema(bad, OverlapAreaSchema, "overlap_areas")
        assert problems
        assert any("overlap_area_km2" in p for p in problems)

    def test_duplicate_pair_scenario(self, overlap_df):
        bad = pd.concat([overlap_df, overlap_df.iloc[[0]]], ignore_index=True)
        assert validate_schema(bad, OverlapAreaSchema, "overlap_areas")

    def test_unknown_scenario(self, overlap_df):
        bad = overlap_df.copy()
        bad.loc[0, "scenario"] = "ssp585"
        assert validate_schema(bad, OverlapAreaSchema, "overlap_areas")

    def test_quantile_reported_for_empty_band(self, band_df):
        bad = band_df.copy()
        empty = bad.index[bad["n_current"] == 0][0]
        bad.loc[empty, "current_lower"] = 41.0
        problems = validate_schema(bad, BandShiftSchema, "band_analysis")
        assert any("current_missing_iff_empty" in p for p in problems)

    def test_zero_used_for_missing_quantile(self, band_df):
        bad = band_df.copy()
        bad = bad.fillna(0.0)
        assert validate_schema(bad, BandShiftSchema, "band_analysis")

    def test_unknown_quadrant(self):
        df = pd.DataFrame({
            "fungus_id": ["F1"],
            "southern_delta": [1.0],
            "northern_delta": [1.0],
            "n_bands_used": [1],
            "quadrant": ["eastward shift"],
        })
        assert validate_schema(df, ShiftSummarySchema, "shift_summary")

    def test_missing_column(self, overlap_df):
        bad = overlap_df.drop(columns=["overlap_cells"])
        assert validate_schema(bad, OverlapAreaSchema, "overlap_areas")


class TestValidateSchemaModes:

    def test_strict_raises(self, overlap_df):
        bad = overlap_df.copy()
        bad.loc[0, "overlap_area_km2"] = -1.0
        with pytest.raises(ValueError, match="Schema validation failed"):
            validate_schema(bad, OverlapAreaSchema, "overlap_areas", strict=True)

    def test_none_frame(self):
        problems = validate_schema(None, OverlapAreaSchema, "overlap_areas")
        assert problems == ["[overlap_areas] DataFrame is None"]
        with pytest.raises(ValueError):
            validate_schema(None, OverlapAreaSchema, "overlap_areas", strict=True)

    def test_empty_frame(self, overlap_df):
        empty = overlap_df.iloc[0:0]
        assert validate_schema(empty, OverlapAreaSchema, "overlap_areas")
        assert validate_schema(empty, OverlapAreaSchema, "overlap_areas",
                               allow_empty=True) == []

    def test_nan_area_rejected(self, overlap_df):
        bad = overlap_df.copy()
        bad["overlap_area_km2"] = bad["overlap_area_km2"].astype(float)
        bad.loc[0, "overlap_area_km2"] = np.nan
        assert validate_schema(bad, OverlapAreaSchema, "overlap_areas")

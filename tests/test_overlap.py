"""
Tests for mycoshift.overlap.

Areas in unit_area_store equal cell counts, so every expected value below
can be read off the patterns in conftest.py.
"""

import numpy as np
import pandas as pd
import pytest

from mycoshift.errors import NotFoundError
from mycoshift.grid import Scenario
from mycoshift.overlap import compute_overlap, overlap_area_table, overlap_change_table
from mycoshift.raster_store import RasterStore

from conftest import COOCCURRENCE, GEOMETRY, HEIGHT, WIDTH, make_grids


class TestComputeOverlap:

    def test_known_overlap(self, unit_area_store):
        result = compute_overlap(unit_area_store, "T1", "F1", "current")
        expected = np.zeros((4, 4), dtype=bool)
        expected[0:2, 0:2] = True
        np.testing.assert_array_equal(result.grid, expected)
        assert result.area_km2 == 4.0
        assert result.n_cells == 4

    def test_scenarios_use_their_own_grids(self, unit_area_store):
        current = compute_overlap(unit_area_store, "T1", "F1", Scenario.CURRENT)
        future = compute_overlap(unit_area_store, "T1", "F1", Scenario.FUTURE)
        assert current.area_km2 == 4.0
        assert future.area_km2 == 2.0
        assert future.grid[0, 1] and future.grid[0, 2]

    @pytest.mark.parametrize("scenario", ["current", "future"])
    @pytest.mark.parametrize("pair", [("T1", "F1"), ("T1", "F2"), ("T2", "F1"), ("T2", "F3")])
    def test_commutative(self, geographic_store, pair, scenario):
        a, b = pair
        ab = compute_overlap(geographic_store, a, b, scenario)
        ba = compute_overlap(geographic_store, b, a, scenario)
        assert ab.area_km2 == ba.area_km2
        np.testing.assert_array_equal(ab.grid, ba.grid)

    def test_empty_range_gives_zero_not_error(self, unit_area_store):
        result = compute_overlap(unit_area_store, "T2", "F3", "future")
        assert result.area_km2 == 0.0
        assert not result.grid.any()

    def test_nodata_treated_as_absent(self):
        grids = make_grids()
        values = grids[("F1", "fungus", "current")].copy()
        values[0, 0] = np.nan
        grids[("F1", "fungus", "current")] = values
        store = RasterStore(grids, GEOMETRY, COOCCURRENCE, cell_area=np.ones((HEIGHT, WIDTH)))
        assert compute_overlap(store, "T1", "F1", "current").area_km2 == 3.0

    def test_geographic_area_is_latitude_weighted(self, geographic_store):
        """Same cell count further north covers less ground."""
        north = compute_overlap(geographic_store, "T1", "F1", "future")  # row 0
        area = geographic_store.cell_area
        assert north.area_km2 == pytest.approx(area[0, 1] + area[0, 2])
        assert area[0, 0] < area[3, 0]

    def test_missing_grid_raises(self):
        grids = make_grids()
        del grids[("F1", "fungus", "future")]
        store = RasterStore(grids, GEOMETRY, COOCCURRENCE)
        with pytest.raises(NotFoundError):
            compute_overlap(store, "T1", "F1", "future")


class TestOverlapAreaTable:

    def test_matches_enumerated_fixture(self, unit_area_store, expected_overlap_table):
        df, batch = overlap_area_table(unit_area_store)
        assert batch.ok
        pd.testing.assert_frame_equal(
            df.reset_index(drop=True),
            expected_overlap_table,
            check_dtype=False,
        )

    def test_only_cooccurring_pairs(self, unit_area_store):
        df, _ = overlap_area_table(unit_area_store)
        pairs = set(zip(df["tree_id"], df["fungus_id"]))
        assert ("T1", "F3") not in pairs

    def test_zero_overlap_reported_as_zero(self, unit_area_store):
        df, _ = overlap_area_table(unit_area_store)
        row = df[(df["tree_id"] == "T2") & (df["fungus_id"] == "F2")]
        assert (row["overlap_area_km2"] == 0.0).all()
        assert row["overlap_area_km2"].notna().all()

    def test_tree_subset(self, unit_area_store):
        df, _ = overlap_area_table(unit_area_store, trees=["T1"], scenarios=["current"])
        assert set(df["tree_id"]) == {"T1"}
        assert set(df["scenario"]) == {"current"}
        assert len(df) == 2

    def test_pair_failure_isolated(self):
        grids = make_grids()
        del grids[("F2", "fungus", "future")]
        store = RasterStore(grids, GEOMETRY, COOCCURRENCE)
        df, batch = overlap_area_table(store)
        failed = {f.item for f in batch.failures}
        assert failed == {"T1 x F2", "T2 x F2"}
        assert "F2" not in set(df["fungus_id"])
        assert len(df) == 6


class TestOverlapChangeTable:

    def test_change_columns(self, unit_area_store):
        df, _ = overlap_area_table(unit_area_store)
        change = overlap_change_table(df).set_index(["tree_id", "fungus_id"])
        assert change.loc[("T1", "F1"), "delta_km2"] == -2.0
        assert change.loc[("T1", "F1"), "pct_change"] == pytest.approx(-50.0)
        assert change.loc[("T1", "F2"), "pct_change"] == pytest.approx(-100 / 3)

    def test_no_current_overlap_is_missing_pct(self, unit_area_store):
        df, _ = overlap_area_table(unit_area_store)
        change = overlap_change_table(df).set_index(["tree_id", "fungus_id"])
        assert change.loc[("T2", "F3"), "delta_km2"] == 0.0
        assert np.isnan(change.loc[("T2", "F3"), "pct_change"])

    def test_empty_input(self):
        empty = pd.DataFrame(columns=["tree_id", "fungus_id", "scenario", "overlap_area_km2"])
        assert overlap_change_table(empty).empty

"""
Pairwise tree/fungus range overlap.

Overlap is the set of cells where both presence grids are 1 (NoData counts
as absent), and its area is the sum of the per-cell ground areas of those
cells. Each scenario is computed from its own pair of grids.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from mycoshift.grid import Scenario, SpeciesId
from mycoshift.logging_config import get_pipeline_logger
from mycoshift.parallel_processing import WorkerPool

log = get_pipeline_logger(__name__)

OVERLAP_COLUMNS = ["tree_id", "fungus_id", "scenario", "overlap_cells", "overlap_area_km2"]


@dataclass(frozen=True, eq=False)
class OverlapResult:
    """Overlap grid and area for one (tree, fungus, scenario)."""

    tree: SpeciesId
    fungus: SpeciesId
    scenario: Scenario
    grid: np.ndarray
    area_km2: float

    @property
    def n_cells(self):
        return int(self.grid.sum())

    def to_row(self):
        return {
            "tree_id": self.tree.name,
            "fungus_id": self.fungus.name,
            "scenario": self.scenario.value,
            "overlap_cells": self.n_cells,
            "overlap_area_km2": self.area_km2,
        }


def overlap_mask(present_a, present_b):
    """Cells present in both boolean masks, as a new read-only array."""
    out = np.logical_and(present_a, present_b)
    out.setflags(write=False)
    return out


def weighted_area(mask, cell_area):
    """Sum of *cell_area* over true cells of *mask* (0.0 for an empty mask)."""
    if not mask.any():
        return 0.0
    return float(cell_area[mask].sum())


def compute_overlap(store, tree, fungus, scenario):
    """Overlap of one tree and one fungus under one scenario.

    Arguments are not order-sensitive in area: passing the fungus as *tree*
    and the tree as *fungus* gives the same area, although the result
    record keeps the arguments in the roles given.

    Parameters
    ----------
    store : RasterStore
    tree, fungus : str or SpeciesId
    scenario : str or Scenario

    Returns
    -------
    OverlapResult
        All-false grid and area 0.0 when either range is empty.

    Raises
    ------
    NotFoundError
        If either grid is absent from the store.
    """
    scenario = Scenario(scenario)
    grid_a = store.get_presence(tree, scenario)
    grid_b = store.get_presence(fungus, scenario)

    mask = overlap_mask(grid_a.present, grid_b.present)
    area = weighted_area(mask, store.cell_area)

    if area == 0.0:
        log.debug("No %s overlap: %s x %s", scenario.value,
                  grid_a.species, grid_b.species)

    return OverlapResult(grid_a.species, grid_b.species, scenario, mask, area)


def _overlap_rows_task(pair, store, scenarios):
    """Worker: overlap table rows for one (tree, fungus) pair."""
    tree, fungus = pair
    return [compute_overlap(store, tree, fungus, s).to_row() for s in scenarios]


def overlap_area_table(store, trees=None, scenarios=None, pool=None):
    """Overlap area for every co-occurring (tree, fungus) pair.

    Pairs outside the co-occurrence filter are never evaluated and never
    appear in the table.

    Parameters
    ----------
    store : RasterStore
    trees : iterable, optional
        Subset of trees. Default: all trees in the store.
    scenarios : iterable, optional
        Default: both scenarios.
    pool : WorkerPool, optional
        Runs pairs in parallel when given, ideally bound to *store*;
        sequential otherwise.

    Returns
    -------
    tuple[pd.DataFrame, BatchResult]
        Tidy table with OVERLAP_COLUMNS (sorted by tree, fungus, scenario),
        and the batch with any per-pair failures.
    """
    scenarios = [Scenario(s) for s in (scenarios or Scenario)]
    pairs = store.cooccurring_pairs(trees)

    if pool is not None:
        batch = pool.map_store_items(_overlap_rows_task, pairs, store, scenarios,
                                     step_name="overlap_areas")
    else:
        with WorkerPool(max_workers=1) as seq:
            batch = seq.map_store_items(_overlap_rows_task, pairs, store, scenarios,
                                        step_name="overlap_areas")

    rows = [row for pair_rows in batch.results.values() for row in pair_rows]
    df = pd.DataFrame(rows, columns=OVERLAP_COLUMNS)
    if not df.empty:
        df = df.sort_values(["tree_id", "fungus_id", "scenario"]).reset_index(drop=True)
    return df, batch


def overlap_change_table(overlap_df):
    """Current vs future overlap per pair.

    Returns
    -------
    pd.DataFrame
        Columns: tree_id, fungus_id, current_km2, future_km2, delta_km2,
        pct_change. ``pct_change`` is NaN when there is no current overlap;
        a missing scenario leaves its area NaN rather than 0.
    """
    cols = ["tree_id", "fungus_id", "current_km2", "future_km2", "delta_km2", "pct_change"]
    if overlap_df.empty:
        return pd.DataFrame(columns=cols)

    wide = overlap_df.pivot_table(
        index=["tree_id", "fungus_id"],
        columns="scenario",
        values="overlap_area_km2",
        aggfunc="first",
    )
    wide = wide.reindex(columns=[s.value for s in Scenario])
    wide.columns = ["current_km2", "future_km2"]
    wide = wide.reset_index()

    wide["delta_km2"] = wide["future_km2"] - wide["current_km2"]
    current = wide["current_km2"].where(wide["current_km2"] > 0)
    wide["pct_change"] = wide["delta_km2"] / current * 100
    return wide[cols]


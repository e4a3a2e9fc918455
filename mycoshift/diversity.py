"""
Fungal richness over a tree's range.

Two aggregations per tree:

- overlap diversity: for one scenario, the number of co-occurring fungi
  whose range overlaps the tree's range at each cell;
- left-behind diversity: the number of co-occurring fungi still present
  under the future climate in cells the tree is predicted to vacate
  (present now, absent in future).

Cells with a count of 0 stay 0 in the grid. Only cells where the tree's
own layer is NoData are treated as having no data.
"""

from dataclasses import dataclass

import numpy as np

from mycoshift.grid import GridGeometry, Scenario, SpeciesId, Taxon
from mycoshift.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)

KIND_OVERLAP = "overlap"
KIND_LEFT_BEHIND = "left_behind"


@dataclass(frozen=True, eq=False)
class DiversityGrid:
    """Per-cell count of fungi for one tree."""

    tree: SpeciesId
    kind: str  # KIND_OVERLAP or KIND_LEFT_BEHIND
    scenario: Scenario  # scenario of the fungal layers counted
    counts: np.ndarray  # int32, 0 where no fungus overlaps
    nodata: np.ndarray  # bool, True where the tree layer has no data
    fungi: tuple
    geometry: GridGeometry

    @property
    def label(self):
        if self.kind == KIND_LEFT_BEHIND:
            return f"{self.tree.name}__{KIND_LEFT_BEHIND}"
        return f"{self.tree.name}__{self.kind}_{self.scenario.value}"

    def to_array(self):
        """float32 counts with NaN only where there is no data."""
        out = self.counts.astype("float32")
        out[self.nodata] = np.nan
        return out

    def to_display(self):
        """Like to_array() but zero-count cells also NaN (outside the map)."""
        out = self.to_array()
        out[self.counts == 0] = np.nan
        return out


def _restrict_to_cooccurring(store, tree, fungal_ids):
    """Resolve *fungal_ids* and drop any outside the tree's co-occurrence set."""
    allowed = store.get_cooccurring_fungi(tree)
    if fungal_ids is None:
        return tuple(sorted(allowed))

    requested = {store.resolve(f, Taxon.FUNGUS) for f in fungal_ids}
    excluded = requested - allowed
    if excluded:
        log.warning(
            "%s: ignoring %d fungi not recorded as co-occurring: %s",
            tree.name, len(excluded), ", ".join(sorted(f.name for f in excluded)),
            extra={"species_id": tree.name},
        )
    return tuple(sorted(requested & allowed))


def _sum_masks(base_mask, store, fungi, scenario):
    counts = np.zeros(store.geometry.shape, dtype="int32")
    for fungus in fungi:
        counts += np.logical_and(
            base_mask, store.get_presence(fungus, scenario).present
        )
    counts.setflags(write=False)
    return counts


def aggregate_diversity(store, tree, scenario, fungal_ids=None):
    """Number of co-occurring fungi overlapping *tree* at each cell.

    Parameters
    ----------
    store : RasterStore
    tree : str or SpeciesId
    scenario : str or Scenario
        Scenario applied to both the tree and the fungal layers.
    fungal_ids : iterable, optional
        Fungi to count. Default: every fungus co-occurring with *tree*.
        Fungi outside the co-occurrence set are dropped.

    Returns
    -------
    DiversityGrid
    """
    tree = store.resolve(tree, Taxon.TREE)
    scenario = Scenario(scenario)
    fungi = _restrict_to_cooccurring(store, tree, fungal_ids)

    tree_grid = store.get_presence(tree, scenario)
    counts = _sum_masks(tree_grid.present, store, fungi, scenario)

    return DiversityGrid(
        tree=tree,
        kind=KIND_OVERLAP,
        scenario=scenario,
        counts=counts,
        nodata=tree_grid.nodata,
        fungi=fungi,
        geometry=store.geometry,
    )


def range_shift_mask(store, tree):
    """Cells where *tree* is present now and absent in future (habitat lost)."""
    current = store.get_presence(tree, Scenario.CURRENT).present
    future = store.get_presence(tree, Scenario.FUTURE).present
    mask = np.logical_and(current, ~future)
    mask.setflags(write=False)
    return mask


def compute_left_behind(store, tree, fungal_ids=None):
    """Future fungal richness in habitat the tree is predicted to vacate.

    All-zero wherever the tree's future range covers its current range.

    Parameters
    ----------
    store : RasterStore
    tree : str or SpeciesId
    fungal_ids : iterable, optional
        Default: every fungus co-occurring with *tree*.

    Returns
    -------
    DiversityGrid
        ``scenario`` is FUTURE (the fungal layers counted).
    """
    tree = store.resolve(tree, Taxon.TREE)
    fungi = _restrict_to_cooccurring(store, tree, fungal_ids)

    lost = range_shift_mask(store, tree)
    counts = _sum_masks(lost, store, fungi, Scenario.FUTURE)

    nodata = np.logical_or(
        store.get_presence(tree, Scenario.CURRENT).nodata,
        store.get_presence(tree, Scenario.FUTURE).nodata,
    )
    nodata.setflags(write=False)

    log.debug("%s: %d cells vacated, max left-behind richness %d",
              tree.name, int(lost.sum()), int(counts.max()) if counts.size else 0,
              extra={"species_id": tree.name})

    return DiversityGrid(
        tree=tree,
        kind=KIND_LEFT_BEHIND,
        scenario=Scenario.FUTURE,
        counts=counts,
        nodata=nodata,
        fungi=fungi,
        geometry=store.geometry,
    )


def diversity_summary(grid, cell_area):
    """Scalar summary of a DiversityGrid for reporting tables."""
    nonzero = grid.counts > 0
    return {
        "tree_id": grid.tree.name,
        "kind": grid.kind,
        "scenario": grid.scenario.value,
        "n_fungi": len(grid.fungi),
        "max_richness": int(grid.counts.max()) if grid.counts.size else 0,
        "mean_richness_nonzero": (
            float(grid.counts[nonzero].mean()) if nonzero.any() else np.nan
        ),
        "cells_nonzero": int(nonzero.sum()),
        "area_nonzero_km2": float(cell_area[nonzero].sum()),
    }

"""
Core grid and identity types.

PresenceGrid values are stored as read-only float32 arrays in {0, 1, NaN},
NaN marking NoData. NoData is treated as absent whenever grids are combined.
"""

from dataclasses import dataclass
from enum import Enum
from functools import cached_property

import numpy as np
from affine import Affine
from rasterio.crs import CRS

from mycoshift import config
from mycoshift.errors import InconsistentGridError
from mycoshift.formulas.spatial import cell_area_km2, cell_centres


class Taxon(str, Enum):
    """Which side of the host/symbiont pair a species is on."""
    TREE = "tree"
    FUNGUS = "fungus"


class Scenario(str, Enum):
    """Climate scenario of a presence layer."""
    CURRENT = config.SCENARIO_CURRENT
    FUTURE = config.SCENARIO_FUTURE


@dataclass(frozen=True, order=True)
class SpeciesId:
    """Catalog-validated species identity.

    Obtain instances from ``RasterStore.resolve()`` rather than constructing
    them directly, so unknown names fail loudly.
    """

    name: str
    taxon: Taxon

    def __str__(self):
        return self.name


def _readonly(array, dtype):
    out = np.array(array, dtype=dtype, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class GridGeometry:
    """Extent, resolution and CRS shared by every grid in a store."""

    transform: Affine
    width: int
    height: int
    crs: str = "EPSG:4326"

    @property
    def shape(self):
        return (self.height, self.width)

    @property
    def bounds(self):
        """(west, south, east, north)."""
        west, north = self.transform @ (0, 0)
        east, south = self.transform @ (self.width, self.height)
        return (
            min(west, east), min(south, north),
            max(west, east), max(south, north),
        )

    def matches(self, other):
        if self.shape != other.shape:
            return False
        if CRS.from_user_input(self.crs) != CRS.from_user_input(other.crs):
            return False
        return self.transform.almost_equals(other.transform)

    def require_match(self, other, context=""):
        """Raise InconsistentGridError unless *other* matches this geometry."""
        if not self.matches(other):
            raise InconsistentGridError(
                f"Grid geometry mismatch{(' for ' + context) if context else ''}: "
                f"{self.shape} {self.crs} {tuple(self.transform)[:6]} vs "
                f"{other.shape} {other.crs} {tuple(other.transform)[:6]}"
            )

    def centres(self):
        """(x, y) arrays of cell centres in the grid CRS."""
        return cell_centres(self.transform, self.width, self.height)

    def cell_area(self):
        """Per-cell ground area in km²."""
        return cell_area_km2(self.transform, self.width, self.height, self.crs)


@dataclass(frozen=True, eq=False)
class PresenceGrid:
    """Binary SDM output for one species under one scenario."""

    species: SpeciesId
    scenario: Scenario
    values: np.ndarray
    geometry: GridGeometry

    def __post_init__(self):
        values = _readonly(self.values, "float32")
        if values.shape != self.geometry.shape:
            raise InconsistentGridError(
                f"{self.species} ({self.scenario.value}): array shape "
                f"{values.shape} does not match grid {self.geometry.shape}"
            )
        finite = values[np.isfinite(values)]
        bad = ~np.isin(finite, (0.0, config.PRESENCE_VALUE))
        if bad.any():
            raise ValueError(
                f"{self.species} ({self.scenario.value}): presence values must "
                f"be 0, 1 or NoData; found {np.unique(finite[bad])[:5]}"
            )
        object.__setattr__(self, "values", values)

    @cached_property
    def present(self):
        """Boolean mask of present cells; NoData counts as absent."""
        return _readonly(self.values == config.PRESENCE_VALUE, bool)

    @cached_property
    def nodata(self):
        return _readonly(np.isnan(self.values), bool)

    @property
    def n_present(self):
        return int(self.present.sum())

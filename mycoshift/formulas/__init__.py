"""
Centralized formulas and constants for the range-shift analysis.

config.py holds run parameters and paths; this package holds the pure
geometry, quantile and classification functions.
"""

from mycoshift.formulas.spatial import (
    EARTH_RADIUS_KM,
    cell_area_km2,
    cell_centres,
    is_geographic,
    to_lonlat,
)
from mycoshift.formulas.quantiles import edge_quantiles
from mycoshift.formulas.classification import (
    QUADRANT_ORDER,
    ShiftQuadrant,
    classify_deltas,
)

__all__ = [
    # spatial
    "EARTH_RADIUS_KM",
    "cell_area_km2",
    "cell_centres",
    "is_geographic",
    "to_lonlat",
    # quantiles
    "edge_quantiles",
    # classification
    "QUADRANT_ORDER",
    "ShiftQuadrant",
    "classify_deltas",
]

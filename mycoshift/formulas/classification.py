"""
Range-shift quadrant classification.

All functions are pure (no I/O, no side effects).

Sign convention:
    southern_delta > 0  → southern edge moved north (contracted)
    northern_delta > 0  → northern edge moved north (expanded)

Quadrants:
    southern > 0,  northern > 0   → northward shift
    southern <= 0, northern > 0   → latitudinal expansion
    southern > 0,  northern <= 0  → southward shift
    southern <= 0, northern <= 0  → latitudinal contraction

A delta of exactly 0 falls on the ``<=`` side of its comparison.
"""

from enum import Enum

import pandas as pd


class ShiftQuadrant(str, Enum):
    """Qualitative range-boundary shift regime."""
    LATITUDINAL_EXPANSION = "latitudinal expansion"
    NORTHWARD_SHIFT = "northward shift"
    LATITUDINAL_CONTRACTION = "latitudinal contraction"
    SOUTHWARD_SHIFT = "southward shift"


# Reporting order for count tables.
QUADRANT_ORDER = [
    ShiftQuadrant.LATITUDINAL_EXPANSION,
    ShiftQuadrant.NORTHWARD_SHIFT,
    ShiftQuadrant.LATITUDINAL_CONTRACTION,
    ShiftQuadrant.SOUTHWARD_SHIFT,
]


def classify_deltas(southern_delta, northern_delta):
    """Classify a (southern, northern) edge-delta pair into a quadrant.

    Parameters
    ----------
    southern_delta : float
        Mean future − current 2.5th percentile latitude.
    northern_delta : float
        Mean future − current 97.5th percentile latitude.

    Returns
    -------
    ShiftQuadrant

    Raises
    ------
    ValueError
        If either delta is NaN. Undefined summaries are excluded upstream.
    """
    if pd.isna(southern_delta) or pd.isna(northern_delta):
        raise ValueError(
            f"Cannot classify undefined deltas "
            f"(southern={southern_delta}, northern={northern_delta})"
        )

    if northern_delta > 0:
        if southern_delta > 0:
            return ShiftQuadrant.NORTHWARD_SHIFT
        return ShiftQuadrant.LATITUDINAL_EXPANSION
    if southern_delta > 0:
        return ShiftQuadrant.SOUTHWARD_SHIFT
    return ShiftQuadrant.LATITUDINAL_CONTRACTION

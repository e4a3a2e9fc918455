"""
Shared fixtures for range-shift pipeline tests.

Provides a small synthetic catalog (2 trees, 3 fungi on a 4×4 one-degree
grid) with hand-enumerated presence patterns, plus helpers to write the same
grids as GeoTIFFs, so each test module can check results against values
worked out by hand.

Grid layout: rows run north → south, columns west → east.
    lon centres: -119.5, -118.5, -117.5, -116.5
    lat centres:   43.5,   42.5,   41.5,   40.5
"""

import os
import tempfile

import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_bounds

from mycoshift.grid import GridGeometry
from mycoshift.logging_config import reset_logging
from mycoshift.raster_store import RasterStore


# ---------------------------------------------------------------------------
# Constants for synthetic test geometry
# ---------------------------------------------------------------------------
WEST, SOUTH, EAST, NORTH = -120.0, 40.0, -116.0, 44.0
WIDTH = HEIGHT = 4
TRANSFORM = from_bounds(WEST, SOUTH, EAST, NORTH, WIDTH, HEIGHT)
GEOMETRY = GridGeometry(TRANSFORM, WIDTH, HEIGHT, "EPSG:4326")

_ = 0
PATTERNS = {
    ("T1", "tree", "current"): [[1, 1, _, _],
                                [1, 1, _, _],
                                [1, 1, _, _],
                                [_, _, _, _]],
    ("T1", "tree", "future"): [[_, 1, 1, _],
                               [_, 1, 1, _],
                               [_, _, _, _],
                               [_, _, _, _]],
    ("T2", "tree", "current"): [[_, _, 1, 1],
                                [_, _, 1, 1],
                                [_, _, _, _],
                                [_, _, _, _]],
    ("T2", "tree", "future"): [[_, _, 1, 1],
                               [_, _, 1, 1],
                               [_, _, _, _],
                               [_, _, _, _]],
    ("F1", "fungus", "current"): [[1, 1, 1, 1],
                                  [1, 1, 1, 1],
                                  [_, _, _, _],
                                  [_, _, _, _]],
    ("F1", "fungus", "future"): [[1, 1, 1, 1],
                                 [_, _, _, _],
                                 [_, _, _, _],
                                 [_, _, _, _]],
    ("F2", "fungus", "current"): [[1, _, _, _],
                                  [1, _, _, _],
                                  [1, _, _, _],
                                  [1, _, _, _]],
    ("F2", "fungus", "future"): [[1, 1, _, _],
                                 [1, 1, _, _],
                                 [1, 1, _, _],
                                 [1, 1, _, _]],
    ("F3", "fungus", "current"): [[_] * 4] * 4,
    ("F3", "fungus", "future"): [[_] * 4] * 4,
}

# F3 is never recorded with T1, so the T1/F3 pair is never evaluated.
COOCCURRENCE = {
    "T1": {"F1", "F2"},
    "T2": {"F1", "F2", "F3"},
}


def make_grids(patterns=None):
    patterns = PATTERNS if patterns is None else patterns
    return {k: np.array(v, dtype="float32") for k, v in patterns.items()}


@pytest.fixture(autouse=True)
def _isolate_logging():
    yield
    reset_logging()


@pytest.fixture
def tmp_dir():
    """Temporary directory removed after the test."""
    with tempfile.TemporaryDirectory(prefix="mycoshift_test_") as d:
        yield d


@pytest.fixture
def unit_area_store():
    """Synthetic store with every cell weighing 1 km² (area == cell count)."""
    return RasterStore(
        make_grids(), GEOMETRY, COOCCURRENCE,
        cell_area=np.ones((HEIGHT, WIDTH)),
    )


@pytest.fixture
def geographic_store():
    """Same grids with true spherical cell areas."""
    return RasterStore(make_grids(), GEOMETRY, COOCCURRENCE)


@pytest.fixture
def expected_overlap_table():
    """Hand-enumerated overlap (cells == km² in unit_area_store)."""
    rows = [
        ("T1", "F1", "current", 4), ("T1", "F1", "future", 2),
        ("T1", "F2", "current", 3), ("T1", "F2", "future", 2),
        ("T2", "F1", "current", 4), ("T2", "F1", "future", 2),
        ("T2", "F2", "current", 0), ("T2", "F2", "future", 0),
        ("T2", "F3", "current", 0), ("T2", "F3", "future", 0),
    ]
    df = pd.DataFrame(rows, columns=["tree_id", "fungus_id", "scenario", "overlap_cells"])
    df["overlap_area_km2"] = df["overlap_cells"].astype(float)
    return df


@pytest.fixture
def expected_diversity():
    """Hand-enumerated DiversityGrid counts keyed by (tree, label)."""
    return {
        ("T1", "overlap_current"): [[2, 1, 0, 0],
                                    [2, 1, 0, 0],
                                    [1, 0, 0, 0],
                                    [0, 0, 0, 0]],
        ("T1", "overlap_future"): [[0, 2, 1, 0],
                                   [0, 1, 0, 0],
                                   [0, 0, 0, 0],
                                   [0, 0, 0, 0]],
        ("T1", "left_behind"): [[2, 0, 0, 0],
                                [1, 0, 0, 0],
                                [1, 1, 0, 0],
                                [0, 0, 0, 0]],
        ("T2", "overlap_current"): [[0, 0, 1, 1],
                                    [0, 0, 1, 1],
                                    [0, 0, 0, 0],
                                    [0, 0, 0, 0]],
        ("T2", "overlap_future"): [[0, 0, 1, 1],
                                   [0, 0, 0, 0],
                                   [0, 0, 0, 0],
                                   [0, 0, 0, 0]],
        ("T2", "left_behind"): [[0] * 4] * 4,
    }


def write_raster(path, data, transform=TRANSFORM, crs="EPSG:4326", dtype="float32"):
    """Write a 2-D array as a single-band float GeoTIFF (NaN nodata)."""
    meta = {
        "driver": "GTiff",
        "height": data.shape[0],
        "width": data.shape[1],
        "count": 1,
        "dtype": dtype,
        "crs": crs,
        "transform": transform,
        "nodata": np.nan,
    }
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with rasterio.open(path, "w", **meta) as dst:
        dst.write(np.asarray(data, dtype=dtype), 1)
    return path


@pytest.fixture
def data_dir(tmp_dir):
    """PATTERNS written as <tmp>/sdm/{trees,fungi}/<name>__<scenario>.tif
    plus <tmp>/cooccurrence.csv."""
    sdm_dir = os.path.join(tmp_dir, "sdm")
    subdirs = {"tree": "trees", "fungus": "fungi"}
    for (name, taxon, scenario), values in make_grids().items():
        write_raster(
            os.path.join(sdm_dir, subdirs[taxon], f"{name}__{scenario}.tif"),
            values,
        )

    pairs = [(t, f) for t, fungi in COOCCURRENCE.items() for f in sorted(fungi)]
    cooc_path = os.path.join(tmp_dir, "cooccurrence.csv")
    pd.DataFrame(pairs, columns=["tree", "fungus"]).to_csv(cooc_path, index=False)

    return {"sdm_dir": sdm_dir, "cooccurrence": cooc_path, "base_dir": tmp_dir}

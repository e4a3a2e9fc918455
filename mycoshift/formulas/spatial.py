"""
Grid geometry formulas: cell centres and per-cell ground area.

All functions are pure (no I/O, no side effects) and take grid geometry
explicitly, so they can be tested without any raster file.
"""

import numpy as np
from rasterio import warp
from rasterio.crs import CRS

# Mean Earth radius (IUGG). Authalic radius differs by < 0.01%.
EARTH_RADIUS_KM = 6371.0


def cell_centres(transform, width, height):
    """Return (lon, lat) arrays of shape (height, width) for cell centres.

    Parameters
    ----------
    transform : affine.Affine
        North-up grid transform.
    width, height : int
        Grid dimensions in cells.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        x (longitude) and y (latitude) of every cell centre.
    """
    cols, rows = np.meshgrid(np.arange(width) + 0.5, np.arange(height) + 0.5)
    xs, ys = transform @ (cols, rows)
    return np.asarray(xs, dtype="float64"), np.asarray(ys, dtype="float64")


def is_geographic(crs):
    """True if *crs* is a lon/lat CRS (cells not equal-area)."""
    if crs is None:
        return True
    return CRS.from_user_input(crs).is_geographic


def to_lonlat(xs, ys, crs):
    """Express grid coordinates as WGS84 longitude/latitude.

    Coordinates of a geographic CRS are returned unchanged; projected
    coordinates are reprojected with ``rasterio.warp.transform``.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        float64 arrays with the shape of *xs*.
    """
    xs = np.asarray(xs, dtype="float64")
    ys = np.asarray(ys, dtype="float64")
    if is_geographic(crs) or xs.size == 0:
        return xs, ys
    lons, lats = warp.transform(crs, "EPSG:4326", xs.ravel().tolist(), ys.ravel().tolist())
    return (
        np.asarray(lons, dtype="float64").reshape(xs.shape),
        np.asarray(lats, dtype="float64").reshape(ys.shape),
    )


def cell_area_km2(transform, width, height, crs="EPSG:4326"):
    """Ground area of every cell in km².

    For a geographic grid the area of a cell bounded by longitudes λ1, λ2 and
    latitudes φs, φn on a sphere of radius R is::

        A = R² · |λ2 − λ1| · |sin φn − sin φs|

    so area shrinks toward the poles and must be computed per row. For a
    projected CRS the transform units are taken as metres and every cell has
    the same area.

    Parameters
    ----------
    transform : affine.Affine
        North-up grid transform (no rotation terms).
    width, height : int
        Grid dimensions in cells.
    crs : str or rasterio.crs.CRS, optional
        Grid CRS. Default: EPSG:4326.

    Returns
    -------
    np.ndarray
        float64 array of shape (height, width).
    """
    if transform.b != 0 or transform.d != 0:
        raise ValueError("Rotated grid transforms are not supported")

    if not is_geographic(crs):
        area = abs(transform.a * transform.e) / 1e6
        return np.full((height, width), area, dtype="float64")

    # Row edge latitudes, top to bottom.
    lat_edges = transform.f + transform.e * np.arange(height + 1)
    lat_edges = np.clip(lat_edges, -90.0, 90.0)
    sin_edges = np.sin(np.deg2rad(lat_edges))
    row_band = np.abs(np.diff(sin_edges))

    dlon = np.deg2rad(abs(transform.a))
    row_area = EARTH_RADIUS_KM ** 2 * dlon * row_band
    return np.repeat(row_area[:, None], width, axis=1)

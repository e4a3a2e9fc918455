"""
Latitude quantiles for range-edge estimation.

All functions are pure (no I/O, no side effects).

METHODOLOGY:
Range edges are the 2.5th and 97.5th percentile latitudes of present cells
within a longitude band. Quantiles use numpy's ``method="linear"``
(Hyndman & Fan 1996, type 7): for n sorted values x(1..n) and probability p,
h = (n − 1)·p and Q(p) = x(⌊h⌋) + (h − ⌊h⌋)·(x(⌊h⌋+1) − x(⌊h⌋)), using
zero-based order statistics. For latitudes 30, 31, ..., 39 this gives
Q(0.025) = 30.225 and Q(0.975) = 38.775. A single value is its own quantile.
"""

import numpy as np

from mycoshift import config


def edge_quantiles(latitudes, probs=None, method=None):
    """Lower and upper edge quantiles of a set of latitudes.

    Parameters
    ----------
    latitudes : array-like
        Latitudes of present cells. NaN entries are ignored.
    probs : tuple of float, optional
        (lower, upper) probabilities. Default: config.EDGE_QUANTILES.
    method : str, optional
        numpy.quantile method. Default: config.QUANTILE_METHOD ("linear").

    Returns
    -------
    tuple[float, float]
        (lower, upper). Both NaN when no values are given; an empty band is
        missing, never 0.
    """
    if probs is None:
        probs = config.EDGE_QUANTILES
    if method is None:
        method = config.QUANTILE_METHOD

    values = np.asarray(latitudes, dtype="float64")
    values = values[np.isfinite(values)]
    if values.size == 0:
        return np.nan, np.nan

    lower, upper = np.quantile(values, probs, method=method)
    return float(lower), float(upper)

"""
Centralized configuration for the mycorrhizal range-shift analysis.

Study extent, banding, quantile and classification parameters, and output
names are defined here with short notes on where each choice comes from.
Formula constants and pure functions live in ``mycoshift.formulas``.
"""

import os

# ─── SCENARIOS ───────────────────────────────────────────────────────────
# Presence/absence layers are produced for a baseline climate and one
# projected climate. Names match the raster file suffixes.
SCENARIO_CURRENT = "current"
SCENARIO_FUTURE = "future"
SCENARIOS = (SCENARIO_CURRENT, SCENARIO_FUTURE)

# ─── STUDY EXTENT (degrees, WGS84) ───────────────────────────────────────
# North American extent of the SDM projections (Alaska to Newfoundland).
STUDY_EXTENT = {
    "west": -170.0,
    "east": -55.0,
}

# ─── LONGITUDINAL BANDING ────────────────────────────────────────────────
# Following Chen et al. (2011) and VanDerWal et al. (2013): range edges are
# estimated within narrow longitude bands so that east-west range geometry
# does not masquerade as latitudinal shift.
# Citation: VanDerWal, J. et al. (2013). Focus on poleward shifts in species'
#           distribution underestimates the fingerprint of climate change.
#           Nature Climate Change, 3, 239-243.
BAND_WIDTH_DEG = 3.0

# Range edges are the 2.5th/97.5th percentile latitudes rather than min/max,
# which are dominated by single outlying cells.
EDGE_QUANTILES = (0.025, 0.975)

# numpy.quantile method. "linear" is Hyndman & Fan (1996) type 7, the
# default of numpy and R: h = (n - 1) * p, interpolated between the order
# statistics floor(h) and floor(h) + 1.
QUANTILE_METHOD = "linear"

# ─── SHIFT CLASSIFICATION ────────────────────────────────────────────────
# Quadrant rules live in mycoshift.formulas.classification; a delta of
# exactly zero falls on the <= side of both comparisons.

# Uniform null for the quadrant goodness-of-fit test.
QUADRANT_NULL_PROPORTION = 0.25

# ─── PRESENCE ENCODING ───────────────────────────────────────────────────
# Thresholded SDM layers are written as 0/1 floats with NoData as NaN.
PRESENCE_VALUE = 1.0

# ─── PARALLELISM ─────────────────────────────────────────────────────────
# Leave one core for the parent process.
DEFAULT_MAX_WORKERS = max(1, (os.cpu_count() or 2) - 1)
DEFAULT_POOL_KIND = "process"

# ─── INPUT LAYOUT ────────────────────────────────────────────────────────
TAXON_DIRS = {
    "tree": "trees",
    "fungus": "fungi",
}
RASTER_NAME_SEPARATOR = "__"
RASTER_SUFFIX = ".tif"
COOCCURRENCE_COLUMNS = ("tree", "fungus")

# ─── OUTPUT NAMES ────────────────────────────────────────────────────────
OUTPUT_FILES = {
    "overlap_areas": "overlap_areas.csv",
    "overlap_change": "overlap_change.csv",
    "range_sizes": "range_sizes.csv",
    "diversity_summary": "diversity_summary.csv",
    "band_shifts": "band_shifts.csv",
    "shift_summary": "shift_summary.csv",
    "quadrant_counts": "quadrant_counts.csv",
    "quadrant_test": "quadrant_test.json",
    "failed_items": "failed_items.csv",
    "run_result": "run_result.json",
}
DIVERSITY_DIR = "diversity"

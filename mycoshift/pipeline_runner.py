#!/usr/bin/env python3
"""
Pipeline runner for the tree/fungus range-shift analysis.

Runs, in order:
  1. load_store         presence rasters + co-occurrence filter (fatal on error)
  2. range_sizes        per-species range area under each scenario
  3. overlap_areas      co-occurring tree/fungus overlap areas + change table
  4. diversity          per-tree fungal richness rasters (overlap, left-behind)
  5. band_analysis      per-fungus longitudinal-band edge latitudes
  6. shift_summary      per-fungus mean edge shifts + quadrants
  7. quadrant_test      chi-square of quadrant counts vs uniform null

Every emitted table is validated with a Pandera schema. Per-species
failures are collected into failed_items.csv and the run continues.

Usage:
    python3 -m mycoshift.pipeline_runner \\
        --data-dir data/sdm --cooccurrence data/cooccurrence.csv \\
        --output-dir outputs --workers 8

    # Narrower bands, abort on schema violations
    python3 -m mycoshift.pipeline_runner --data-dir data/sdm \\
        --cooccurrence data/cooccurrence.csv --band-width 2 --strict-validation
"""

import argparse
import json
import os
import sys
import time

import numpy as np
import pandas as pd
import rasterio

from mycoshift import config
from mycoshift.diversity import aggregate_diversity, compute_left_behind, diversity_summary
from mycoshift.grid import Scenario
from mycoshift.logging_config import get_pipeline_logger, set_run_id, setup_logging
from mycoshift.longitudinal_bands import analyze_catalog, band_records_frame, make_bands
from mycoshift.overlap import overlap_area_table, overlap_change_table
from mycoshift.parallel_processing import WorkerPool
from mycoshift.pipeline_types import PipelineRunResult
from mycoshift.raster_store import RasterStore, range_size_table
from mycoshift.schemas import (
    BandShiftSchema,
    OverlapAreaSchema,
    RangeSizeSchema,
    ShiftSummarySchema,
    validate_schema,
)
from mycoshift.shift_summary import quadrant_counts, quadrant_goodness_of_fit, summarize_catalog
from mycoshift.step_runner import run_step

log = get_pipeline_logger(__name__)


# ── Output helpers ───────────────────────────────────────────────────────


def write_csv(df, output_dir, key, output_files):
    path = os.path.join(output_dir, config.OUTPUT_FILES[key])
    df.to_csv(path, index=False)
    output_files.append(path)
    log.info("Saved %s (%d rows)", path, len(df))
    return path


def write_diversity_raster(grid, out_dir):
    """Write a DiversityGrid as float32 GeoTIFF (NaN = no data)."""
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, f"{grid.label}.tif")
    geometry = grid.geometry
    meta = {
        "driver": "GTiff",
        "height": geometry.height,
        "width": geometry.width,
        "count": 1,
        "dtype": "float32",
        "crs": geometry.crs,
        "transform": geometry.transform,
        "nodata": np.nan,
    }
    with rasterio.open(path, "w", **meta) as dst:
        dst.write(grid.to_array(), 1)
    return path


def _check_table(df, schema, step_name, strict, warnings_sink):
    problems = validate_schema(df, schema, step_name, strict=strict, allow_empty=True)
    for msg in problems:
        log.warning(msg)
    warnings_sink.extend(problems)


# ── Step bodies ──────────────────────────────────────────────────────────


def _tree_diversity_task(tree, store):
    """Worker: the three diversity grids of one tree."""
    return (
        aggregate_diversity(store, tree, Scenario.CURRENT),
        aggregate_diversity(store, tree, Scenario.FUTURE),
        compute_left_behind(store, tree),
    )


def diversity_step(store, pool, output_dir):
    """Compute and write diversity rasters; return (summary df, batch)."""
    batch = pool.map_store_items(_tree_diversity_task, store.trees, store,
                                 step_name="diversity")
    out_dir = os.path.join(output_dir, config.DIVERSITY_DIR)
    rows = []
    for grids in batch.results.values():
        for grid in grids:
            write_diversity_raster(grid, out_dir)
            rows.append(diversity_summary(grid, store.cell_area))
    return pd.DataFrame(rows), batch


def shift_step(records_by_fungus):
    summary_df, excluded = summarize_catalog(records_by_fungus)
    counts = quadrant_counts(summary_df)
    return summary_df, excluded, counts


# ── Pipeline ─────────────────────────────────────────────────────────────


def run_pipeline(store, output_dir, bands=None, max_workers=None,
                 pool_kind=None, strict_validation=False):
    """Run every analysis step on a loaded store.

    Parameters
    ----------
    store : RasterStore
    output_dir : str
    bands : sequence of LongitudeBand, optional
        Default: make_bands() over config.STUDY_EXTENT.
    max_workers : int, optional
    pool_kind : str, optional
        "process" or "thread".
    strict_validation : bool
        Raise on schema violations instead of recording warnings.

    Returns
    -------
    PipelineRunResult
    """
    os.makedirs(output_dir, exist_ok=True)
    bands = tuple(bands) if bands is not None else make_bands()
    start_time = time.time()

    result = PipelineRunResult(
        output_dir=output_dir,
        n_trees=len(store.trees),
        n_fungi=len(store.fungi),
        band_width_deg=float(bands[0].width),
    )
    outputs = result.output_files

    with WorkerPool(max_workers=max_workers, kind=pool_kind, store=store) as pool:
        # Range sizes
        step, sizes = run_step("range_sizes", range_size_table, store,
                               output_summary_fn=lambda df: {"rows": len(df)})
        if sizes is not None:
            _check_table(sizes, RangeSizeSchema, "range_sizes",
                         strict_validation, step.warnings)
            write_csv(sizes, output_dir, "range_sizes", outputs)
        result.step_results.append(step)

        # Overlap areas
        step, overlap = run_step(
            "overlap_areas", overlap_area_table, store, pool=pool,
            input_summary={"pairs": len(store.cooccurring_pairs())},
            output_summary_fn=lambda r: {"rows": len(r[0])},
            failures_fn=lambda r: r[1].failures,
        )
        if overlap is not None:
            overlap_df = overlap[0]
            _check_table(overlap_df, OverlapAreaSchema, "overlap_areas",
                         strict_validation, step.warnings)
            write_csv(overlap_df, output_dir, "overlap_areas", outputs)
            write_csv(overlap_change_table(overlap_df), output_dir,
                      "overlap_change", outputs)
        result.step_results.append(step)

        # Diversity rasters
        step, diversity = run_step(
            "diversity", diversity_step, store, pool, output_dir,
            input_summary={"trees": len(store.trees)},
            output_summary_fn=lambda r: {"grids": len(r[0])},
            failures_fn=lambda r: r[1].failures,
        )
        if diversity is not None:
            write_csv(diversity[0], output_dir, "diversity_summary", outputs)
        result.step_results.append(step)

        # Longitudinal bands
        step, band_batch = run_step(
            "band_analysis", analyze_catalog, store, bands, pool=pool,
            input_summary={"fungi": len(store.fungi), "bands": len(bands)},
            output_summary_fn=lambda b: {"species": len(b.results)},
            failures_fn=lambda b: b.failures,
        )
        result.step_results.append(step)

    if band_batch is not None:
        band_df = band_records_frame(
            [r for records in band_batch.results.values() for r in records]
        )
        _check_table(band_df, BandShiftSchema, "band_analysis",
                     strict_validation, step.warnings)
        write_csv(band_df, output_dir, "band_shifts", outputs)

        # Shift summary
        step, shifted = run_step(
            "shift_summary", shift_step, band_batch.results,
            output_summary_fn=lambda r: {"classified": len(r[0]), "excluded": len(r[1])},
        )
        result.step_results.append(step)

        if shifted is not None:
            summary_df, excluded, counts = shifted
            _check_table(summary_df, ShiftSummarySchema, "shift_summary",
                         strict_validation, step.warnings)
            write_csv(summary_df, output_dir, "shift_summary", outputs)
            counts_df = counts.rename_axis("quadrant").reset_index()
            write_csv(counts_df, output_dir, "quadrant_counts", outputs)

            step, test = run_step("quadrant_test", quadrant_goodness_of_fit, counts)
            result.step_results.append(step)
            if test is not None:
                test["excluded_species"] = excluded
                path = os.path.join(output_dir, config.OUTPUT_FILES["quadrant_test"])
                with open(path, "w") as f:
                    json.dump(test, f, indent=2, default=str)
                outputs.append(path)

    failed = pd.DataFrame(
        [f.to_dict() for f in result.failed_items],
        columns=["step_name", "item", "error_type", "message"],
    )
    write_csv(failed, output_dir, "failed_items", outputs)

    result.total_time_seconds = time.time() - start_time
    return result


def save_pipeline_result(pipeline_result, output_dir):
    """Save PipelineRunResult as JSON for provenance."""
    path = os.path.join(output_dir, config.OUTPUT_FILES["run_result"])
    with open(path, "w") as f:
        json.dump(pipeline_result.to_dict(), f, indent=2, default=str)
    log.info("Pipeline result saved: %s", path)
    return path


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Tree/fungus range overlap and latitudinal shift analysis"
    )
    parser.add_argument(
        "--data-dir",
        required=True,
        help="Directory with trees/ and fungi/ presence GeoTIFFs "
             "named <species>__<scenario>.tif",
    )
    parser.add_argument(
        "--cooccurrence",
        required=True,
        help="CSV with 'tree' and 'fungus' columns listing observed pairs",
    )
    parser.add_argument(
        "--cell-area",
        default=None,
        dest="cell_area",
        help="Optional per-cell area raster (km²); computed from the grid if omitted",
    )
    parser.add_argument(
        "--output-dir",
        default="outputs",
        help="Output directory",
    )
    parser.add_argument(
        "--band-width",
        type=float,
        default=config.BAND_WIDTH_DEG,
        dest="band_width",
        help="Longitude band width in degrees",
    )
    parser.add_argument(
        "--west",
        type=float,
        default=config.STUDY_EXTENT["west"],
        help="Western edge of the banded extent",
    )
    parser.add_argument(
        "--east",
        type=float,
        default=config.STUDY_EXTENT["east"],
        help="Eastern edge of the banded extent",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=config.DEFAULT_MAX_WORKERS,
        help="Worker pool size (1 = sequential)",
    )
    parser.add_argument(
        "--pool-kind",
        choices=["process", "thread"],
        default=config.DEFAULT_POOL_KIND,
        dest="pool_kind",
        help="Executor type for the worker pool",
    )
    parser.add_argument(
        "--strict-validation",
        action="store_true",
        default=False,
        dest="strict_validation",
        help="Abort on schema validation failures (default: warn only)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    run_id = set_run_id()
    setup_logging(run_dir=args.output_dir)
    log.info("Range-shift pipeline (run_id=%s)", run_id)

    step, store = run_step(
        "load_store", RasterStore.from_directory,
        args.data_dir, args.cooccurrence, args.cell_area,
    )
    if store is None:
        log.error("Could not load raster store; aborting run")
        return 1

    bands = make_bands(args.west, args.east, args.band_width)
    result = run_pipeline(
        store,
        args.output_dir,
        bands=bands,
        max_workers=args.workers,
        pool_kind=args.pool_kind,
        strict_validation=args.strict_validation,
    )
    result.step_results.insert(0, step)
    save_pipeline_result(result, args.output_dir)

    log.info("Pipeline complete in %.1fs", result.total_time_seconds)
    if result.failed_steps:
        log.warning("Failed steps: %s", [s.step_name for s in result.failed_steps])
    if result.failed_items:
        log.warning("%d species/pairs failed; see %s",
                    len(result.failed_items), config.OUTPUT_FILES["failed_items"])
    return 0 if result.all_ok else 1


if __name__ == "__main__":
    sys.exit(main())

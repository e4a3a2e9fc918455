"""
Logging for the range-shift pipeline.

Everything logs under the ``mycoshift`` package logger. The console gets
one human-readable line per record; when a run directory is given, the same
records are also written to ``{run_dir}/pipeline.jsonl`` with the run id and
any species/step context passed through ``extra=``.

Usage:
    from mycoshift.logging_config import get_pipeline_logger
    log = get_pipeline_logger(__name__)
    log.info("Excluded %s", name, extra={"species_id": name})
"""

import json
import logging
import os
import time
import uuid

PACKAGE_LOGGER = "mycoshift"
JSONL_NAME = "pipeline.jsonl"

# Context keys copied from ``extra=`` into JSON entries.
CONTEXT_FIELDS = (
    "step_name", "species_id", "scenario", "n_failed",
    "input_summary", "output_summary", "timing_seconds",
)

_run_id = None
_configured = False
_jsonl_handler = None


def get_run_id():
    global _run_id
    if _run_id is None:
        _run_id = uuid.uuid4().hex[:8]
    return _run_id


def set_run_id(run_id=None):
    """Start a new run (or adopt the parent's id inside a worker process)."""
    global _run_id
    _run_id = run_id or uuid.uuid4().hex[:8]
    return _run_id


class RunIdFilter(logging.Filter):
    def filter(self, record):
        record.run_id = get_run_id()
        return True


class JsonLinesFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, run id, message,
    then whichever CONTEXT_FIELDS the call supplied."""

    def format(self, record):
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "run_id": getattr(record, "run_id", None),
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key)) for key in CONTEXT_FIELDS if hasattr(record, key)
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _console_level():
    name = os.environ.get("MYCOSHIFT_LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(run_dir=None, console_level=None):
    """Attach console (once) and JSON Lines (once per process) handlers.

    Parameters
    ----------
    run_dir : str, optional
        Output directory of the run; ``pipeline.jsonl`` is written there.
    console_level : int, optional
        Default: MYCOSHIFT_LOG_LEVEL env var, else INFO.
    """
    global _configured, _jsonl_handler

    pkg_logger = logging.getLogger(PACKAGE_LOGGER)

    if not _configured:
        pkg_logger.setLevel(logging.DEBUG)
        console = logging.StreamHandler()
        console.setLevel(console_level if console_level is not None else _console_level())
        console.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        pkg_logger.addHandler(console)
        _configured = True

    if run_dir and _jsonl_handler is None:
        os.makedirs(run_dir, exist_ok=True)
        handler = logging.FileHandler(os.path.join(run_dir, JSONL_NAME))
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(JsonLinesFormatter())
        # Handler-level filter: records from child loggers skip parent filters.
        handler.addFilter(RunIdFilter())
        pkg_logger.addHandler(handler)
        _jsonl_handler = handler


def reset_logging():
    """Drop all package handlers and the run id (test isolation)."""
    global _configured, _jsonl_handler, _run_id

    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in pkg_logger.handlers[:]:
        handler.close()
        pkg_logger.removeHandler(handler)

    _configured = False
    _jsonl_handler = None
    _run_id = None


def get_pipeline_logger(name):
    """Module logger; sets up console logging on first use."""
    if not _configured:
        setup_logging()
    return logging.getLogger(name)


def log_step_summary(logger, step_name, status="success", input_summary=None,
                     output_summary=None, timing_seconds=None, n_failed=None):
    """One INFO line per pipeline step, e.g.
    ``[band_analysis] success (2.3s) output={'species': 310} failed_items=2``."""
    parts = [f"[{step_name}] {status}"]
    extra = {"step_name": step_name}
    if timing_seconds is not None:
        parts.append(f"({timing_seconds:.1f}s)")
        extra["timing_seconds"] = timing_seconds
    if input_summary:
        extra["input_summary"] = input_summary
    if output_summary:
        parts.append(f"output={output_summary}")
        extra["output_summary"] = output_summary
    if n_failed:
        parts.append(f"failed_items={n_failed}")
    if n_failed is not None:
        extra["n_failed"] = n_failed
    logger.info(" ".join(parts), extra=extra)


class StepTimer:
    """Wall-clock timer: ``with StepTimer() as t: ...; t.elapsed``."""

    def __enter__(self):
        self.start = time.perf_counter()
        self.elapsed = 0.0
        return self

    def __exit__(self, *exc):
        self.elapsed = time.perf_counter() - self.start

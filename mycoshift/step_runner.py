"""
Generic executor for pipeline steps.

Wraps timing, error capture, structured logging and StepResult construction
so each step in the runner only supplies its work function. Per-item
failures reported through ``failures_fn`` are copied into the StepResult
without failing the step.
"""

import traceback
from typing import Callable, TypeVar

import pandas as pd

from mycoshift.errors import AggregationUndefinedError, NotFoundError
from mycoshift.logging_config import StepTimer, get_pipeline_logger, log_step_summary
from mycoshift.pipeline_types import StepResult, StepStatus

T = TypeVar("T")

log = get_pipeline_logger(__name__)

_DEFAULT_EXPECTED = (
    FileNotFoundError,
    NotFoundError,
    AggregationUndefinedError,
    ValueError,
    KeyError,
    pd.errors.EmptyDataError,
)


def run_step(
    step_name: str,
    fn: Callable[..., T],
    *args,
    input_summary: dict | None = None,
    output_summary_fn: Callable[[T], dict] | None = None,
    failures_fn: Callable[[T], list] | None = None,
    expected_exceptions: tuple[type[Exception], ...] = _DEFAULT_EXPECTED,
    **kwargs,
) -> tuple[StepResult, T | None]:
    """Execute a pipeline step with standard error handling and timing.

    Parameters
    ----------
    step_name : str
        Name stored in the StepResult.
    fn : Callable
        The work function, called as ``fn(*args, **kwargs)``.
    input_summary : dict, optional
        Metadata about inputs.
    output_summary_fn : callable, optional
        Builds an output-summary dict from *fn*'s return value. Skipped when
        *fn* raises or returns None.
    failures_fn : callable, optional
        Extracts a list of FailedItem from *fn*'s return value.
    expected_exceptions : tuple
        Exception types logged as known errors (without "unexpectedly").

    Returns
    -------
    tuple[StepResult, T | None]
    """
    result_data = None
    error_tb = None

    with StepTimer() as timer:
        try:
            result_data = fn(*args, **kwargs)
        except expected_exceptions as exc:
            error_tb = traceback.format_exc()
            log.error("%s failed: %s", step_name, exc, exc_info=True)
        except Exception:
            error_tb = traceback.format_exc()
            log.error("%s failed unexpectedly", step_name, exc_info=True)

    if error_tb:
        log_step_summary(log, step_name, StepStatus.ERROR.value,
                         timing_seconds=timer.elapsed)
        return StepResult(
            step_name=step_name,
            status=StepStatus.ERROR.value,
            error=error_tb,
            timing_seconds=timer.elapsed,
        ), None

    out_summary = {}
    failed = []
    if result_data is not None:
        if output_summary_fn is not None:
            out_summary = output_summary_fn(result_data)
        if failures_fn is not None:
            failed = list(failures_fn(result_data))

    log_step_summary(
        log, step_name, StepStatus.SUCCESS.value,
        input_summary=input_summary or {},
        output_summary=out_summary,
        timing_seconds=timer.elapsed,
        n_failed=len(failed),
    )
    return StepResult(
        step_name=step_name,
        status=StepStatus.SUCCESS.value,
        input_summary=input_summary or {},
        output_summary=out_summary,
        timing_seconds=timer.elapsed,
        failed_items=failed,
    ), result_data

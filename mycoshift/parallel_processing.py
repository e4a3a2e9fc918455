"""
Worker pool for per-species batch work.

Each unit of work reads from the shared (read-only) raster store and returns
its own result, so no locking is needed. A failure in one unit is captured
as a FailedItem and the rest of the batch keeps running.

A process pool bound to a store ships it to each worker once, when the
worker starts; per-item tasks then carry only the item key and small
arguments. Threads and the sequential path share the caller's store.

Usage:
    with WorkerPool(max_workers=4, store=store) as pool:
        batch = pool.map_store_items(_analyze_species_task, store.fungi, store, bands)
"""

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from mycoshift import config
from mycoshift.logging_config import get_pipeline_logger, get_run_id, set_run_id
from mycoshift.pipeline_types import FailedItem

log = get_pipeline_logger(__name__)

_EXECUTORS = {
    "process": ProcessPoolExecutor,
    "thread": ThreadPoolExecutor,
}


# Store installed in a process worker by _install_worker_store.
_worker_store = None


def _install_worker_store(store, run_id):
    """Process-pool initializer: runs once per worker."""
    global _worker_store
    _worker_store = store
    set_run_id(run_id)


def _call_with_worker_store(key, fn, *args):
    return fn(key, _worker_store, *args)


def item_label(key):
    """Readable label for a species id or a tuple of ids."""
    if isinstance(key, tuple):
        return " x ".join(str(k) for k in key)
    return str(key)


@dataclass
class BatchResult:
    """Results keyed by work item, plus the items that failed."""

    results: dict = field(default_factory=dict)
    failures: list = field(default_factory=list)

    @property
    def ok(self):
        return not self.failures

    def merge(self, other):
        """Return a new BatchResult holding both sets of results/failures."""
        results = dict(self.results)
        results.update(other.results)
        return BatchResult(results, self.failures + other.failures)


class WorkerPool:
    """Fixed-size pool scoped to one batch of runs.

    Parameters
    ----------
    max_workers : int, optional
        Default: config.DEFAULT_MAX_WORKERS (CPU count − 1). ``1`` runs every
        item in the calling process without an executor.
    kind : str
        "process" (default) or "thread".
    store : RasterStore, optional
        Store handed to each process worker once at start-up. Required for
        map_store_items() to avoid copying the store with every item.
    """

    def __init__(self, max_workers=None, kind=None, store=None):
        if max_workers is None:
            max_workers = config.DEFAULT_MAX_WORKERS
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        kind = kind or config.DEFAULT_POOL_KIND
        if kind not in _EXECUTORS:
            raise ValueError(f"Unknown pool kind '{kind}'; expected one of {sorted(_EXECUTORS)}")

        self.max_workers = max_workers
        self.kind = kind
        self.store = store
        self._executor = None

    @property
    def sequential(self):
        return self.max_workers == 1

    def __enter__(self):
        if not self.sequential:
            kwargs = {"max_workers": self.max_workers}
            if self.kind == "process" and self.store is not None:
                kwargs["initializer"] = _install_worker_store
                kwargs["initargs"] = (self.store, get_run_id())
            self._executor = _EXECUTORS[self.kind](**kwargs)
            log.debug("Started %s pool with %d workers", self.kind, self.max_workers)
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            log.debug("Shut down %s pool", self.kind)

    def map_items(self, fn, keys, *args, step_name=None):
        """Apply ``fn(key, *args)`` to every key.

        Parameters
        ----------
        fn : callable
            Must be a module-level function when kind="process".
        keys : iterable
            Work items (species ids or tuples of ids).
        *args
            Extra positional arguments shared by every call. With a process
            pool they are pickled once per item, so keep them small.
        step_name : str, optional
            Label used in FailedItem records. Default: ``fn.__name__``.

        Returns
        -------
        BatchResult
        """
        return self._run(fn, keys, args, step_name or fn.__name__)

    def map_store_items(self, fn, keys, store, *args, step_name=None):
        """Apply ``fn(key, store, *args)`` to every key.

        In a process pool bound to *store*, workers use their own copy
        received at start-up and the store is not sent with each item.
        """
        step_name = step_name or fn.__name__
        if self._executor is not None and self.kind == "process":
            if store is self.store:
                return self._run(_call_with_worker_store, keys, (fn,) + args, step_name)
            log.warning("%s: store is not bound to the process pool; "
                        "it will be copied with every item", step_name)
        return self._run(fn, keys, (store,) + args, step_name)

    def _run(self, fn, keys, args, step_name):
        keys = list(keys)
        batch = BatchResult()

        if not keys:
            return batch

        if self.sequential or self._executor is None:
            if not self.sequential:
                log.warning("WorkerPool used outside 'with'; running sequentially")
            for key in keys:
                try:
                    batch.results[key] = fn(key, *args)
                except Exception as exc:
                    batch.failures.append(_record_failure(step_name, key, exc))
        else:
            futures = {self._executor.submit(fn, key, *args): key for key in keys}
            for future in as_completed(futures):
                key = futures[future]
                try:
                    batch.results[key] = future.result()
                except Exception as exc:
                    batch.failures.append(_record_failure(step_name, key, exc))

        # Completion order is arbitrary; present results in key order.
        batch.results = {k: batch.results[k] for k in keys if k in batch.results}
        batch.failures.sort(key=lambda f: f.item)

        log.info("%s: %d/%d items succeeded", step_name, len(batch.results), len(keys),
                 extra={"step_name": step_name, "n_failed": len(batch.failures)})
        return batch


def _record_failure(step_name, key, exc):
    label = item_label(key)
    log.error("%s failed for %s: %s", step_name, label, exc,
              extra={"step_name": step_name, "species_id": label})
    return FailedItem(
        step_name=step_name,
        item=label,
        error_type=type(exc).__name__,
        message=str(exc),
    )

"""
Exception and warning types for the range-shift pipeline.

Only store-construction failures abort a run. Everything raised while
processing a single species or species pair is caught at the worker-pool
boundary and reported as a failed item.
"""


class MycoshiftError(Exception):
    """Base class for pipeline errors."""


class NotFoundError(MycoshiftError, KeyError):
    """A species, or a species/scenario combination, is not in the store."""

    def __str__(self):
        # KeyError repr-quotes its message; keep it readable in logs.
        return str(self.args[0]) if self.args else ""


class InconsistentGridError(MycoshiftError, ValueError):
    """Two grids being combined do not share extent, resolution, or CRS."""


class AggregationUndefinedError(MycoshiftError, ValueError):
    """A species has no band with defined quantiles under both scenarios."""


class EmptyInputWarning(UserWarning):
    """A species or band has zero present cells; results are missing, not 0."""

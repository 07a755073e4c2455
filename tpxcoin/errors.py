"""Exceptions raised by the coincidence analysis.

Every error is fatal for the call that raises it; the computation is
deterministic, so callers should change binning or input filters rather
than retry.
"""

__all__ = [
    "CoincidenceError",
    "PreconditionError",
    "BinningError",
    "DivisionError",
    "EstimationError",
]


class CoincidenceError(Exception):
    """Base class for all tpxcoin errors."""


class PreconditionError(CoincidenceError, ValueError):
    """Input tables or bin edges violate a required invariant (e.g. unsorted shots)."""


class BinningError(CoincidenceError, ValueError):
    """A coordinate falls outside every configured bin."""


class DivisionError(CoincidenceError, ZeroDivisionError):
    """A shot-count ratio or normalization has a zero denominator."""


class EstimationError(CoincidenceError, ArithmeticError):
    """The signal estimator is undefined for the given background model."""

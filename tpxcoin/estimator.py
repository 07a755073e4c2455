r"""Expected true signal given a background distribution and a measured count.

For ``M`` measured counts and background distribution ``B``

.. math::

    \sum_{b=0}^{M} (M - b) \frac{pmf(B, b)}{cdf(B, M)}
    = M - \sum_{b=0}^{M} b \frac{pmf(B, b)}{cdf(B, M)}

i.e. the mean signal ``M - b`` over all background counts compatible with
the observation.
"""
from __future__ import annotations

import logging
from numbers import Integral
from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import stats

from .errors import EstimationError, PreconditionError

log = logging.getLogger(__name__)

__all__ = ["estimate_signal", "estimate_signal_array"]

# cap on cells x (M + 1) evaluated per scipy call
_CHUNK_ELEMENTS = 1 << 22


def _as_count(value: Any) -> int:
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (Integral, np.integer)):
        raise PreconditionError(f"Measured count must be an integer, got {value!r}")
    if value < 0:
        raise PreconditionError(f"Measured count must be non-negative, got {value}")
    return int(value)


def estimate_signal(bg_dist: Any, meas_counts: int) -> float:
    """Return the expected true signal for ``meas_counts`` observed counts.

    Parameters
    ----------
    bg_dist : frozen scipy discrete distribution
        Background distribution over non-negative integers, e.g.
        ``scipy.stats.poisson(mu)``.  Anything exposing ``pmf`` and ``cdf``
        works.
    meas_counts : int
        Observed counts, ``>= 0``.

    Returns
    -------
    float
        Estimated signal, between 0 and ``meas_counts``.

    Raises
    ------
    EstimationError
        If ``cdf(bg_dist, meas_counts)`` is zero (or not a number).
    """
    meas = _as_count(meas_counts)
    if meas == 0:
        return 0.0
    norm = float(bg_dist.cdf(meas))
    if not norm > 0:
        raise EstimationError(
            f"Background cdf at {meas} counts is {norm}; signal estimate undefined"
        )
    b = np.arange(meas + 1)
    return float(meas - np.sum(b * bg_dist.pmf(b)) / norm)


def estimate_signal_array(
    measured: ArrayLike,
    dist_family: Any = stats.poisson,
    *shape_args: ArrayLike,
) -> NDArray[np.float64]:
    """Apply :func:`estimate_signal` to every cell of a count histogram.

    Parameters
    ----------
    measured : array_like of int
        Measured counts per bin.
    dist_family : scipy discrete distribution
        Unfrozen family, ``scipy.stats.poisson`` or ``scipy.stats.binom``.
    *shape_args : array_like
        Distribution parameters broadcastable to ``measured`` (the Poisson
        mean per bin, or binomial trials and success probability).

    Returns
    -------
    ndarray
        Float array of the same shape as ``measured``.

    Notes
    -----
    Bins are grouped by measured count so that each group needs one
    vectorized ``pmf``/``cdf`` evaluation.
    """
    meas = np.asarray(measured)
    if meas.size and not np.issubdtype(meas.dtype, np.integer):
        raise PreconditionError(f"Measured counts must be integers, got dtype {meas.dtype}")
    if meas.size and meas.min() < 0:
        raise PreconditionError("Measured counts must be non-negative")
    params = [np.broadcast_to(np.asarray(p, dtype=np.float64), meas.shape).ravel() for p in shape_args]
    flat = meas.ravel().astype(np.int64)
    out = np.zeros(flat.shape, dtype=np.float64)

    for m in np.unique(flat):
        if m == 0:
            continue
        cells = np.flatnonzero(flat == m)
        b = np.arange(m + 1)
        chunk = max(1, _CHUNK_ELEMENTS // (m + 1))
        for start in range(0, cells.size, chunk):
            sel = cells[start:start + chunk]
            args = [p[sel] for p in params]
            norm = dist_family.cdf(m, *args)
            bad = ~(norm > 0)
            if bad.any():
                cell = np.unravel_index(sel[np.flatnonzero(bad)[0]], meas.shape)
                raise EstimationError(
                    f"Background cdf at {m} counts is zero in bin {tuple(int(i) for i in cell)}; "
                    "signal estimate undefined"
                )
            pmf = dist_family.pmf(b[None, :], *[a[:, None] for a in args])
            out[sel] = m - (pmf @ b) / norm
    log.debug(f"estimated signal in {np.count_nonzero(flat)} non-empty bins")
    return out.reshape(meas.shape)

"""Shot lookups on sorted shot columns.

Every helper here relies on ``shots`` being sorted ascending (repeated
values allowed).  :class:`tpxcoin.events.EventTable` checks this once when
a table is built, so the lookups themselves never re-validate.
"""
from __future__ import annotations

from typing import Tuple, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray

__all__ = [
    "is_shot_present",
    "matching_range",
    "matching_ranges",
    "count_distinct_sorted",
    "first_of_each_shot",
]


def is_shot_present(shots: ArrayLike, shot: Union[int, ArrayLike]) -> Union[bool, NDArray[np.bool_]]:
    """Binary-search membership test of ``shot`` in the sorted ``shots``.

    Parameters
    ----------
    shots : array_like
        Sorted shot column to search.
    shot : int or array_like
        Shot index, or an array of shot indices.

    Returns
    -------
    bool or ndarray of bool
        ``True`` where the shot occurs in ``shots``.  Absence is a normal
        outcome and never raises.
    """
    shots = np.asarray(shots)
    query = np.asarray(shot)
    if shots.size == 0:
        found = np.zeros(query.shape, dtype=bool)
    else:
        idx = np.searchsorted(shots, query, side="left")
        found = (idx < shots.size) & (shots[np.minimum(idx, shots.size - 1)] == query)
    if query.ndim == 0:
        return bool(found)
    return found


def matching_range(shots: ArrayLike, shot: int) -> Tuple[int, int]:
    """Return the half-open row range ``[lo, hi)`` of ``shots`` equal to ``shot``.

    ``lo == hi`` when the shot is absent.
    """
    shots = np.asarray(shots)
    lo = int(np.searchsorted(shots, shot, side="left"))
    hi = int(np.searchsorted(shots, shot, side="right"))
    return lo, hi


def matching_ranges(shots: ArrayLike, query: ArrayLike) -> Tuple[NDArray[np.intp], NDArray[np.intp]]:
    """Vectorized :func:`matching_range` for an array of query shots."""
    shots = np.asarray(shots)
    query = np.asarray(query)
    lo = np.searchsorted(shots, query, side="left")
    hi = np.searchsorted(shots, query, side="right")
    return lo, hi


def first_of_each_shot(shots: ArrayLike) -> NDArray[np.bool_]:
    """Mask selecting rows whose shot is greater than the last shot seen.

    On a sorted column this keeps exactly one row per distinct shot.
    """
    shots = np.asarray(shots)
    mask = np.ones(shots.shape, dtype=bool)
    if shots.size > 1:
        mask[1:] = shots[1:] > shots[:-1]
    return mask


def count_distinct_sorted(shots: ArrayLike) -> int:
    """Count distinct shots in a sorted column without building a set."""
    shots = np.asarray(shots)
    if shots.size == 0:
        return 0
    return int(np.count_nonzero(first_of_each_shot(shots)))

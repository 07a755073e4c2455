"""Coincidence-gated electron histograms.

Two passes split the electron hits by whether their shot also registered
an ion:

* **background** -- electrons from shots *without* an ion hit,
* **measurement** -- electrons from shots *with* at least one ion hit.

Both return ``(n_shots, counts)`` where ``counts`` has one cell per bin
edge (right-open cells, the last one a step wide) and ``n_shots`` is the
number of distinct shots that contributed.  Coordinates outside the bins
are rejected with :class:`~tpxcoin.errors.BinningError` or clamped into
the outermost cells, depending on the ``boundary`` policy.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from .common.constants import (
    BOUNDARY_POLICIES,
    CARTESIAN,
    GEOMETRY_COLUMNS,
    N_PIXELS,
    N_RADIAL,
    RADIAL,
    REJECT,
)
from .errors import BinningError, PreconditionError
from .events import EventTable, as_event_table
from .matching import count_distinct_sorted, first_of_each_shot, is_shot_present, matching_ranges

log = logging.getLogger(__name__)

__all__ = [
    "BinRange",
    "default_bin_range",
    "resolve_bin_ranges",
    "fill_histogram",
    "accumulate_background",
    "accumulate_measurement",
    "coin_background",
    "coin_measurement",
    "car_coin_background",
    "car_coin_measurement",
    "r_coin_background",
    "r_coin_measurement",
]

Events = Union[EventTable, pd.DataFrame]


class BinRange:
    """Strictly ascending bin edges, one right-open cell per edge.

    Cell ``i`` covers ``[edges[i], edges[i + 1])``; the last cell covers
    ``[edges[-1], edges[-1] + step)`` where ``step`` is the final edge
    spacing (1 for a single edge).  Edges are stored read-only.
    """

    def __init__(self, edges: ArrayLike):
        arr = np.array(edges, dtype=np.float64)
        if arr.ndim != 1 or arr.size == 0:
            raise PreconditionError(f"Bin edges must be a non-empty 1-D sequence, got shape {arr.shape}")
        if not np.all(np.isfinite(arr)):
            raise PreconditionError("Bin edges must be finite")
        if arr.size > 1 and np.any(np.diff(arr) <= 0):
            raise PreconditionError("Bin edges must be strictly ascending")
        arr.flags.writeable = False
        self._edges = arr

    @classmethod
    def from_range(cls, start: float, stop: float, step: float = 1) -> "BinRange":
        """Edges ``start, start + step, ...`` up to and including ``stop``."""
        if step <= 0:
            raise PreconditionError(f"Bin step must be positive, got {step}")
        if stop < start:
            raise PreconditionError(f"Bin range stop {stop} is below start {start}")
        n = int(np.floor((stop - start) / step + 1e-9)) + 1
        return cls(start + step * np.arange(n))

    @property
    def edges(self) -> NDArray[np.float64]:
        return self._edges

    @property
    def step(self) -> float:
        if self._edges.size == 1:
            return 1.0
        return float(self._edges[-1] - self._edges[-2])

    @property
    def lower(self) -> float:
        return float(self._edges[0])

    @property
    def upper(self) -> float:
        """Exclusive upper limit of the last cell."""
        return float(self._edges[-1]) + self.step

    def extended_edges(self) -> NDArray[np.float64]:
        """Edges with the upper limit appended (``n + 1`` values for ``n`` cells)."""
        return np.append(self._edges, self.upper)

    def __len__(self) -> int:
        return int(self._edges.size)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BinRange):
            return NotImplemented
        return np.array_equal(self._edges, other._edges)

    def __repr__(self) -> str:
        return f"BinRange(n={len(self)}, lower={self.lower:g}, upper={self.upper:g})"

    def digitize(self, values: ArrayLike, boundary: str = REJECT, axis: str = "value") -> NDArray[np.intp]:
        """Return the cell index of each value (last edge <= value).

        Parameters
        ----------
        values : array_like
            Coordinates to bucket.
        boundary : {"reject", "clamp"}
            ``"reject"`` raises :class:`BinningError` for values below the
            first edge or at/above :attr:`upper`; ``"clamp"`` assigns them to
            the first/last cell.
        axis : str
            Axis name used in error messages.
        """
        if boundary not in BOUNDARY_POLICIES:
            raise ValueError(f"Unknown boundary policy '{boundary}'")
        vals = np.asarray(values)
        if vals.dtype.kind == "f" and np.isnan(vals).any():
            raise BinningError(f"{axis}: NaN coordinate cannot be binned")
        idx = np.searchsorted(self._edges, vals, side="right") - 1
        outside = (idx < 0) | (vals >= self.upper)
        if outside.any():
            if boundary == REJECT:
                bad = vals[outside]
                raise BinningError(
                    f"{axis}={bad[0]} outside bins [{self.lower:g}, {self.upper:g}) "
                    f"({bad.size} out-of-range value(s))"
                )
            idx = np.clip(idx, 0, len(self) - 1)
        return idx


def default_bin_range(geometry: str) -> Tuple[BinRange, ...]:
    """Integer pixel edges: 0..255 per axis (cartesian) or 0..127 (radial)."""
    if geometry == CARTESIAN:
        return (BinRange(np.arange(N_PIXELS)), BinRange(np.arange(N_PIXELS)))
    if geometry == RADIAL:
        return (BinRange(np.arange(N_RADIAL)),)
    raise PreconditionError(f"Unknown geometry '{geometry}'")


def _as_bin_range(spec: Any) -> BinRange:
    if isinstance(spec, BinRange):
        return spec
    if isinstance(spec, range):
        return BinRange(np.asarray(spec))
    return BinRange(spec)


def _is_scalar_sequence(spec: Any) -> bool:
    if isinstance(spec, (BinRange, range)):
        return False
    try:
        arr = np.asarray(spec)
    except ValueError:
        return False
    return arr.ndim == 1 and arr.dtype != object


def resolve_bin_ranges(bin_range: Any, geometry: str) -> Tuple[BinRange, ...]:
    """Normalize a user bin specification to one :class:`BinRange` per axis.

    ``None`` gives the geometry default.  Radial accepts a single edge
    sequence (or a 1-tuple holding one); cartesian needs a pair.
    """
    if bin_range is None:
        return default_bin_range(geometry)
    n_axes = len(GEOMETRY_COLUMNS[geometry])
    if isinstance(bin_range, (BinRange, range)) or _is_scalar_sequence(bin_range):
        if n_axes != 1:
            raise PreconditionError(
                f"{geometry} geometry needs {n_axes} bin ranges, got a single edge sequence"
            )
        return (_as_bin_range(bin_range),)
    specs = list(bin_range)
    if len(specs) != n_axes:
        raise PreconditionError(
            f"{geometry} geometry needs {n_axes} bin range(s), got {len(specs)}"
        )
    return tuple(_as_bin_range(s) for s in specs)


def fill_histogram(
    bins: Sequence[BinRange],
    coords: Sequence[ArrayLike],
    boundary: str = REJECT,
    axes: Optional[Sequence[str]] = None,
) -> NDArray[np.uint64]:
    """Count coordinates into a 1-D or 2-D histogram with one cell per edge."""
    if len(bins) != len(coords):
        raise PreconditionError(f"Got {len(coords)} coordinate arrays for {len(bins)} bin ranges")
    axes = axes or [f"axis{i}" for i in range(len(bins))]
    shape = tuple(len(b) for b in bins)
    idx = [b.digitize(c, boundary, axis=a) for b, c, a in zip(bins, coords, axes)]
    flat = np.ravel_multi_index(idx, shape) if idx[0].size else np.zeros(0, dtype=np.intp)
    counts = np.bincount(flat, minlength=int(np.prod(shape)))
    return counts.astype(np.uint64).reshape(shape)


def _axes(table: EventTable) -> Tuple[str, ...]:
    return GEOMETRY_COLUMNS[table.geometry]


def accumulate_background(
    electrons: EventTable,
    ions: EventTable,
    bins: Sequence[BinRange],
    boundary: str = REJECT,
) -> Tuple[int, NDArray[np.uint64]]:
    """Histogram electrons from shots with no ion hit (validated tables)."""
    without_ion = ~is_shot_present(ions.shot, electrons.shot)
    coords = [c[without_ion] for c in electrons.coords]
    counts = fill_histogram(bins, coords, boundary, _axes(electrons))
    n_shots = count_distinct_sorted(electrons.shot[without_ion])
    log.debug(f"background pass: {int(without_ion.sum())} hits from {n_shots} shots without ion")
    return n_shots, counts


def accumulate_measurement(
    electrons: EventTable,
    ions: EventTable,
    bins: Sequence[BinRange],
    boundary: str = REJECT,
    ion_multiplicity: bool = False,
) -> Tuple[int, NDArray[np.uint64]]:
    """Histogram electrons from shots with an ion hit (validated tables).

    With ``ion_multiplicity`` the electrons of a shot are counted once per
    ion hit on that shot, otherwise once per shot.
    """
    query = ions.shot if ion_multiplicity else ions.shot[first_of_each_shot(ions.shot)]
    lo, hi = matching_ranges(electrons.shot, query)
    lengths = hi - lo
    matched = lengths > 0
    starts, lengths = lo[matched], lengths[matched]
    # row indices of every matched electron, one contiguous run per query shot
    rows = np.repeat(starts - np.cumsum(lengths) + lengths, lengths) + np.arange(lengths.sum())
    coords = [c[rows] for c in electrons.coords]
    counts = fill_histogram(bins, coords, boundary, _axes(electrons))
    n_shots = count_distinct_sorted(query[matched])
    log.debug(f"measurement pass: {rows.size} hits from {n_shots} shots with ion")
    return n_shots, counts


def _prepare(electrons: Events, ions: Events, bin_range: Any, geometry: Optional[str]):
    ele = as_event_table(electrons, geometry, name="electrons")
    ion = as_event_table(ions, name="ions", with_coords=False)
    return ele, ion, resolve_bin_ranges(bin_range, ele.geometry)


def coin_background(
    electrons: Events,
    ions: Events,
    bin_range: Any = None,
    *,
    geometry: Optional[str] = None,
    boundary: str = REJECT,
) -> Tuple[int, NDArray[np.uint64]]:
    """Count shots without an ion hit and histogram their electrons.

    Parameters
    ----------
    electrons, ions : DataFrame or EventTable
        Hit tables sorted ascending by ``shot``.  Only the ion shot column
        is used.
    bin_range : optional
        Bin edges (see :func:`resolve_bin_ranges`).
    geometry : {"cartesian", "radial"}, optional
        Inferred from the electron columns when omitted.
    boundary : {"reject", "clamp"}
        Out-of-range coordinate policy.

    Returns
    -------
    (int, ndarray)
        Number of background shots and the ``uint64`` histogram.
    """
    ele, ion, bins = _prepare(electrons, ions, bin_range, geometry)
    return accumulate_background(ele, ion, bins, boundary)


def coin_measurement(
    electrons: Events,
    ions: Events,
    bin_range: Any = None,
    *,
    geometry: Optional[str] = None,
    boundary: str = REJECT,
    ion_multiplicity: bool = False,
) -> Tuple[int, NDArray[np.uint64]]:
    """Count shots with an ion hit and histogram their electrons.

    Same arguments as :func:`coin_background`, plus ``ion_multiplicity``
    (see :func:`accumulate_measurement`).
    """
    ele, ion, bins = _prepare(electrons, ions, bin_range, geometry)
    return accumulate_measurement(ele, ion, bins, boundary, ion_multiplicity)


def car_coin_background(electrons: Events, ions: Events, bin_range: Any = None, **kwargs):
    return coin_background(electrons, ions, bin_range, geometry=CARTESIAN, **kwargs)


def car_coin_measurement(electrons: Events, ions: Events, bin_range: Any = None, **kwargs):
    return coin_measurement(electrons, ions, bin_range, geometry=CARTESIAN, **kwargs)


def r_coin_background(electrons: Events, ions: Events, bin_range: Any = None, **kwargs):
    return coin_background(electrons, ions, bin_range, geometry=RADIAL, **kwargs)


def r_coin_measurement(electrons: Events, ions: Events, bin_range: Any = None, **kwargs):
    return coin_measurement(electrons, ions, bin_range, geometry=RADIAL, **kwargs)

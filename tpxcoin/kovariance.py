"""Kovariance-style background subtraction.

Unlike :mod:`tpxcoin.coincidence`, the background here is the raw
histogram of *all* electron hits, normalized per electron shot, and the
coincident histogram is normalized per ion shot::

    corrected = measurement / n_ion_shots - raw / n_electron_shots

``n_ion_shots`` is the number of distinct shots with at least one ion hit,
i.e. the occupied cells of :func:`ion_shot_histogram` over the full
inclusive shot range.  Both terms are then a mean per shot: the
coincident histogram is filled once per ion shot (or once per ion hit
with ``ion_multiplicity``, in which case the numerator over-weights
multi-ion shots and the result is no longer a per-shot mean).  Counting
ion hits instead, or dropping the last shot from the range, would bias
the coincident term whenever shots carry several ions.
``n_electron_shots`` is the number of distinct shots with an electron hit.

The cartesian variant clamps the result at zero while the radial one
keeps negative values.  That asymmetry comes from the analyses this
estimator is used in and is kept as-is (see ``clamp``).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from .common.constants import CARTESIAN, GEOMETRY_COLUMNS, RADIAL, REJECT
from .errors import DivisionError
from .events import EventTable, as_event_table
from .histogram import BinRange, accumulate_measurement, fill_histogram, resolve_bin_ranges

log = logging.getLogger(__name__)

__all__ = [
    "KovarianceResult",
    "ion_shot_histogram",
    "kovariance_result",
    "kovariance",
    "car_kovariance",
    "r_kovariance",
]

Events = Union[EventTable, pd.DataFrame]

# default clamping per geometry
_CLAMP_DEFAULT = {CARTESIAN: True, RADIAL: False}


@dataclass
class KovarianceResult:
    """Inputs and output of one kovariance estimate."""

    geometry: str
    ion_shots: int
    electron_shots: int
    meas_shots: int
    raw: NDArray[np.uint64]
    measurement: NDArray[np.uint64]
    spectrum: NDArray[np.float64]
    clamped: bool
    bins: Tuple[BinRange, ...] = field(default=(), repr=False)


def ion_shot_histogram(ion_shots: ArrayLike) -> Tuple[NDArray[np.int64], NDArray[np.int64]]:
    """Histogram ion hits per shot over the full shot range.

    Returns
    -------
    (shots, counts)
        ``shots`` runs from the first to the last ion shot inclusive and
        ``counts[i]`` is the number of ion hits on ``shots[i]``.  Both are
        empty for an empty table.
    """
    shots = np.asarray(ion_shots, dtype=np.int64)
    if shots.size == 0:
        return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)
    first, last = int(shots.min()), int(shots.max())
    counts = np.bincount(shots - first, minlength=last - first + 1)
    return np.arange(first, last + 1), counts.astype(np.int64)


def kovariance_result(
    electrons: Events,
    ions: Events,
    bin_range: Any = None,
    *,
    geometry: Optional[str] = None,
    boundary: str = REJECT,
    clamp: Optional[bool] = None,
    ion_multiplicity: bool = False,
) -> KovarianceResult:
    """Compute the kovariance spectrum and keep its intermediate histograms.

    Parameters
    ----------
    electrons, ions : DataFrame or EventTable
        Hit tables sorted ascending by ``shot``.
    bin_range : optional
        Bin edges, as for :func:`tpxcoin.histogram.coin_background`.  The raw
        histogram spans the same cells, i.e. up to the last edge plus one step.
    geometry : {"cartesian", "radial"}, optional
        Inferred from the electron columns when omitted.
    boundary : {"reject", "clamp"}
        Out-of-range coordinate policy.
    clamp : bool, optional
        Clamp the result to ``[0, inf)``.  Defaults to ``True`` for cartesian
        and ``False`` for radial geometry.
    ion_multiplicity : bool
        Passed to the measurement pass.

    Raises
    ------
    DivisionError
        If there are no ion shots or no electron shots.
    """
    ele = as_event_table(electrons, geometry, name="electrons")
    ion = as_event_table(ions, name="ions", with_coords=False)
    bins = resolve_bin_ranges(bin_range, ele.geometry)

    raw = fill_histogram(bins, ele.coords, boundary, GEOMETRY_COLUMNS[ele.geometry])
    _, per_shot = ion_shot_histogram(ion.shot)
    ion_shots = int(np.count_nonzero(per_shot))
    meas_shots, meas = accumulate_measurement(ele, ion, bins, boundary, ion_multiplicity)
    electron_shots = ele.n_shots

    if ion_shots == 0:
        raise DivisionError("No ion shots; cannot normalize the coincident histogram")
    if electron_shots == 0:
        raise DivisionError("No electron shots; cannot normalize the raw histogram")

    spectrum = meas / ion_shots - raw / electron_shots
    if clamp is None:
        clamp = _CLAMP_DEFAULT[ele.geometry]
    if clamp:
        spectrum = np.clip(spectrum, 0, np.inf)
    log.info(
        f"{ele.geometry} kovariance: {ion_shots} ion shots, {electron_shots} electron shots, "
        f"{meas_shots} coincident"
    )
    return KovarianceResult(
        geometry=ele.geometry,
        ion_shots=ion_shots,
        electron_shots=electron_shots,
        meas_shots=meas_shots,
        raw=raw,
        measurement=meas,
        spectrum=spectrum,
        clamped=bool(clamp),
        bins=bins,
    )


def kovariance(electrons: Events, ions: Events, bin_range: Any = None, **kwargs) -> NDArray[np.float64]:
    """Kovariance spectrum only; see :func:`kovariance_result`."""
    return kovariance_result(electrons, ions, bin_range, **kwargs).spectrum


def car_kovariance(electrons: Events, ions: Events, bin_range: Any = None, **kwargs) -> NDArray[np.float64]:
    """Cartesian kovariance, clamped to non-negative values."""
    kwargs.setdefault("clamp", True)
    return kovariance(electrons, ions, bin_range, geometry=CARTESIAN, **kwargs)


def r_kovariance(electrons: Events, ions: Events, bin_range: Any = None, **kwargs) -> NDArray[np.float64]:
    """Radial kovariance, left unclamped."""
    kwargs.setdefault("clamp", False)
    return kovariance(electrons, ions, bin_range, geometry=RADIAL, **kwargs)

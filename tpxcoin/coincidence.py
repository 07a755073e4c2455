"""Background-corrected electron-ion coincidences."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats

from .common.constants import BINOMIAL, CARTESIAN, POISSON, RADIAL
from .errors import DivisionError, EstimationError, PreconditionError
from .estimator import estimate_signal_array
from .events import EventTable, as_event_table
from .histogram import (
    BinRange,
    accumulate_background,
    accumulate_measurement,
    resolve_bin_ranges,
)
from .kovariance import KovarianceResult, kovariance_result
from .params import CoincidenceParams

log = logging.getLogger(__name__)

__all__ = [
    "CoincidenceResult",
    "CoincidenceAnalysis",
    "run_passes",
    "subtract_background",
    "corr_coin",
    "compute_corrected_coincidence",
    "car_corr_coin",
    "r_corr_coin",
]

Events = Union[EventTable, pd.DataFrame]

SIMPLE = "simple"


@dataclass
class CoincidenceResult:
    """Histograms, shot counts and corrected spectrum of one analysis."""

    geometry: str
    estimator: str  # "simple", "poisson" or "binomial"
    bg_shots: int
    meas_shots: int
    shot_span: int
    background: NDArray[np.uint64]
    measurement: NDArray[np.uint64]
    spectrum: NDArray[np.float64]
    bins: Tuple[BinRange, ...] = field(default=(), repr=False)

    @property
    def shot_ratio(self) -> float:
        return self.meas_shots / self.bg_shots


def run_passes(
    electrons: EventTable,
    ions: EventTable,
    bins: Sequence[BinRange],
    *,
    boundary: str,
    ion_multiplicity: bool = False,
    parallel: bool = True,
) -> Tuple[int, NDArray[np.uint64], int, NDArray[np.uint64]]:
    """Run the background and measurement passes and join them.

    The passes only read the (immutable) tables and each allocates its own
    histogram, so they run side by side without locking.

    Returns
    -------
    (bg_shots, background, meas_shots, measurement)
    """
    if parallel:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="tpxcoin") as executor:
            bg_task = executor.submit(accumulate_background, electrons, ions, bins, boundary)
            meas_task = executor.submit(
                accumulate_measurement, electrons, ions, bins, boundary, ion_multiplicity
            )
            bg_shots, bg = bg_task.result()
            meas_shots, meas = meas_task.result()
    else:
        bg_shots, bg = accumulate_background(electrons, ions, bins, boundary)
        meas_shots, meas = accumulate_measurement(electrons, ions, bins, boundary, ion_multiplicity)
    return bg_shots, bg, meas_shots, meas


def subtract_background(
    background: NDArray,
    measurement: NDArray,
    bg_shots: int,
    meas_shots: int,
    shot_span: int,
    *,
    simple_bg: bool = False,
    background_model: str = POISSON,
) -> NDArray[np.float64]:
    """Remove the scaled background from the measurement, per shot.

    Parameters
    ----------
    background, measurement : ndarray
        Electron histograms from shots without / with an ion hit.
    bg_shots, meas_shots : int
        Number of shots behind each histogram.
    shot_span : int
        Normalization, ``last_shot - first_shot + 1`` of the electron table.
    simple_bg : bool
        ``(meas - bg * r) / span`` with ``r = meas_shots / bg_shots``.
        Otherwise the statistical estimator is used.
    background_model : {"poisson", "binomial"}
        Background distribution for the statistical estimator: Poisson with
        mean ``bg * r``, or binomial with ``meas_shots`` trials and success
        probability ``bg / bg_shots``.

    Raises
    ------
    DivisionError
        If ``bg_shots`` or ``shot_span`` is zero.
    EstimationError
        If the estimator is undefined for some bin.
    """
    if bg_shots == 0:
        raise DivisionError("No electron shots without an ion hit; cannot scale the background")
    if shot_span <= 0:
        raise DivisionError(f"Shot span must be positive, got {shot_span}")
    if np.shape(background) != np.shape(measurement):
        raise PreconditionError(
            f"Background shape {np.shape(background)} does not match measurement {np.shape(measurement)}"
        )
    bg = np.asarray(background, dtype=np.float64)
    meas = np.asarray(measurement)
    ratio = meas_shots / bg_shots

    if simple_bg:
        return (meas.astype(np.float64) - bg * ratio) / shot_span

    # poisson and binomial agree closely; poisson allows several hits per shot
    if background_model == POISSON:
        signal = estimate_signal_array(meas.astype(np.int64), stats.poisson, bg * ratio)
    elif background_model == BINOMIAL:
        prob = bg / bg_shots
        if np.any(prob > 1):
            raise EstimationError(
                "Binomial background needs at most one background hit per shot and bin; "
                "use the poisson model"
            )
        signal = estimate_signal_array(meas.astype(np.int64), stats.binom, meas_shots, prob)
    else:
        raise ValueError(f"Unknown background model '{background_model}'")
    return signal / shot_span


class CoincidenceAnalysis:
    """Corrected coincidence and kovariance spectra for one set of options.

    Parameters
    ----------
    params : CoincidenceParams, optional
        Analysis options; defaults to the statistical Poisson estimator on
        the default bins.
    """

    def __init__(self, params: Optional[CoincidenceParams] = None):
        self.params = params or CoincidenceParams()

    def _tables(self, electrons: Events, ions: Events) -> Tuple[EventTable, EventTable, Tuple[BinRange, ...]]:
        ele = as_event_table(electrons, self.params.geometry, name="electrons")
        ion = as_event_table(ions, name="ions", with_coords=False)
        if not len(ele):
            raise PreconditionError("electrons: table is empty; shot span undefined")
        return ele, ion, resolve_bin_ranges(self.params.bin_range, ele.geometry)

    def run(self, electrons: Events, ions: Events) -> CoincidenceResult:
        """Histogram both shot populations and subtract the background."""
        p = self.params
        ele, ion, bins = self._tables(electrons, ions)
        bg_shots, bg, meas_shots, meas = run_passes(
            ele, ion, bins,
            boundary=p.boundary,
            ion_multiplicity=p.ion_multiplicity,
            parallel=p.parallel,
        )
        span = ele.shot_span
        spectrum = subtract_background(
            bg, meas, bg_shots, meas_shots, span,
            simple_bg=p.simple_bg,
            background_model=p.background_model,
        )
        estimator = SIMPLE if p.simple_bg else p.background_model
        log.info(
            f"{ele.geometry} coincidences ({estimator}): {meas_shots} shots with ion, "
            f"{bg_shots} without, span {span}"
        )
        return CoincidenceResult(
            geometry=ele.geometry,
            estimator=estimator,
            bg_shots=bg_shots,
            meas_shots=meas_shots,
            shot_span=span,
            background=bg,
            measurement=meas,
            spectrum=spectrum,
            bins=bins,
        )

    def kovariance(self, electrons: Events, ions: Events) -> KovarianceResult:
        """Kovariance-style spectrum with these options (see :mod:`tpxcoin.kovariance`)."""
        p = self.params
        return kovariance_result(
            electrons, ions, p.bin_range,
            geometry=p.geometry,
            boundary=p.boundary,
            clamp=p.kovariance_clamp,
            ion_multiplicity=p.ion_multiplicity,
        )


def corr_coin(
    electrons: Events,
    ions: Events,
    bin_range: Any = None,
    *,
    geometry: Optional[str] = None,
    simple_bg: bool = False,
    **options: Any,
) -> NDArray[np.float64]:
    """Background-corrected electron counts per shot in coincidence with an ion.

    ``options`` are further :class:`CoincidenceParams` fields
    (``boundary``, ``background_model``, ``ion_multiplicity``, ``parallel``).
    """
    params = CoincidenceParams(geometry=geometry, bin_range=bin_range, simple_bg=simple_bg, **options)
    return CoincidenceAnalysis(params).run(electrons, ions).spectrum


def compute_corrected_coincidence(
    electrons: Events,
    ions: Events,
    bin_ranges: Any = None,
    mode: str = "statistical",
    **options: Any,
) -> NDArray[np.float64]:
    """:func:`corr_coin` selecting the estimator by name ("simple" or "statistical")."""
    if mode not in (SIMPLE, "statistical"):
        raise ValueError(f"Unknown mode '{mode}'; expected 'simple' or 'statistical'")
    return corr_coin(electrons, ions, bin_ranges, simple_bg=(mode == SIMPLE), **options)


def car_corr_coin(electrons: Events, ions: Events, bin_range: Any = None, **kwargs) -> NDArray[np.float64]:
    """Corrected coincidences on the (x, y) pixel grid."""
    return corr_coin(electrons, ions, bin_range, geometry=CARTESIAN, **kwargs)


def r_corr_coin(electrons: Events, ions: Events, bin_range: Any = None, **kwargs) -> NDArray[np.float64]:
    """Corrected coincidences as a function of radius."""
    return corr_coin(electrons, ions, bin_range, geometry=RADIAL, **kwargs)

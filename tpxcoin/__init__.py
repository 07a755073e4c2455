from .errors import (
    BinningError,
    CoincidenceError,
    DivisionError,
    EstimationError,
    PreconditionError,
)
from .params import CoincidenceParams
from .events import EventTable
from .matching import is_shot_present, matching_range
from .histogram import (
    BinRange,
    coin_background,
    coin_measurement,
    car_coin_background,
    car_coin_measurement,
    r_coin_background,
    r_coin_measurement,
)
from .estimator import estimate_signal, estimate_signal_array
from .coincidence import (
    CoincidenceAnalysis,
    CoincidenceResult,
    compute_corrected_coincidence,
    corr_coin,
    car_corr_coin,
    r_corr_coin,
)
from .kovariance import KovarianceResult, kovariance, car_kovariance, r_kovariance

__version__ = "0.1.0"

__all__ = [
    "CoincidenceError",
    "PreconditionError",
    "BinningError",
    "DivisionError",
    "EstimationError",
    "CoincidenceParams",
    "EventTable",
    "BinRange",
    "is_shot_present",
    "matching_range",
    "coin_background",
    "coin_measurement",
    "car_coin_background",
    "car_coin_measurement",
    "r_coin_background",
    "r_coin_measurement",
    "estimate_signal",
    "estimate_signal_array",
    "CoincidenceAnalysis",
    "CoincidenceResult",
    "compute_corrected_coincidence",
    "corr_coin",
    "car_corr_coin",
    "r_corr_coin",
    "KovarianceResult",
    "kovariance",
    "car_kovariance",
    "r_kovariance",
]

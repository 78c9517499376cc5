"""robust_estimation.core.solver

Consensus engine, Levenberg-Marquardt solver and the estimation problems
built on them. No estimator state lives here.
"""

from .consensus import (
    ConsensusProblem,
    ConsensusResult,
    ConsensusSettings,
    compute_max_iterations,
    create_strategy,
)
from .levenberg_marquardt import levenberg_marquardt, covariance_from_fit
from .path_loss import RadioSourceUnknowns, predict_rssi
from .radio_source import RssiRadioSourceProblem
from .accelerometer import AccelerometerUnknowns, GravityNormCalibrationProblem

__all__ = [
    "ConsensusProblem",
    "ConsensusResult",
    "ConsensusSettings",
    "compute_max_iterations",
    "create_strategy",
    "levenberg_marquardt",
    "covariance_from_fit",
    "RadioSourceUnknowns",
    "predict_rssi",
    "RssiRadioSourceProblem",
    "AccelerometerUnknowns",
    "GravityNormCalibrationProblem",
]

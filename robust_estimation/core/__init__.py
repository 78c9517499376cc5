"""
Core module for robust estimation.

Pure Python (numpy) implementations of the consensus engine, the
minimal-subset solvers and the estimator facades built on them.
"""

from .errors import (
    EstimationError,
    LockedError,
    NotReadyError,
    SingularSystemError,
    RobustEstimatorError,
)

from .models import (
    Point,
    RadioSource,
    RadioSourceType,
    WifiAccessPoint,
    Beacon,
    RssiReading,
    AccelerometerReading,
    RobustEstimatorMethod,
    RobustEstimatorOptions,
    dbm_to_watt,
    watt_to_dbm,
)

from .results import (
    InlierData,
    EstimationResult,
    RadioSourceModel,
    AccelerometerCalibrationModel,
    ErrorEllipse,
    EstimatedRadioSource,
)

from .estimators import (
    RobustEstimatorListener,
    EstimatorState,
    RobustEstimator,
    RobustRssiRadioSourceEstimator,
    RobustRssiRadioSourceEstimator2D,
    RobustRssiRadioSourceEstimator3D,
    create_radio_source_estimator,
    RobustKnownGravityNormAccelerometerCalibrator,
)

__all__ = [
    # Errors
    "EstimationError",
    "LockedError",
    "NotReadyError",
    "SingularSystemError",
    "RobustEstimatorError",

    # Models
    "Point",
    "RadioSource",
    "RadioSourceType",
    "WifiAccessPoint",
    "Beacon",
    "RssiReading",
    "AccelerometerReading",
    "RobustEstimatorMethod",
    "RobustEstimatorOptions",
    "dbm_to_watt",
    "watt_to_dbm",

    # Results
    "InlierData",
    "EstimationResult",
    "RadioSourceModel",
    "AccelerometerCalibrationModel",
    "ErrorEllipse",
    "EstimatedRadioSource",

    # Estimators
    "RobustEstimatorListener",
    "EstimatorState",
    "RobustEstimator",
    "RobustRssiRadioSourceEstimator",
    "RobustRssiRadioSourceEstimator2D",
    "RobustRssiRadioSourceEstimator3D",
    "create_radio_source_estimator",
    "RobustKnownGravityNormAccelerometerCalibrator",
]

"""Stateful robust estimator facades."""

from .listener import RobustEstimatorListener
from .base import EstimatorState, RobustEstimator
from .radio_source import (
    RobustRssiRadioSourceEstimator,
    RobustRssiRadioSourceEstimator2D,
    RobustRssiRadioSourceEstimator3D,
    create_radio_source_estimator,
)
from .accelerometer import RobustKnownGravityNormAccelerometerCalibrator

__all__ = [
    "RobustEstimatorListener",
    "EstimatorState",
    "RobustEstimator",
    "RobustRssiRadioSourceEstimator",
    "RobustRssiRadioSourceEstimator2D",
    "RobustRssiRadioSourceEstimator3D",
    "create_radio_source_estimator",
    "RobustKnownGravityNormAccelerometerCalibrator",
]

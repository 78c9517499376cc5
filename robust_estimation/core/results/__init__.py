"""Result data structures returned by the robust estimators."""

from .estimation_result import (
    InlierData,
    EstimationResult,
    RadioSourceModel,
    AccelerometerCalibrationModel,
    ErrorEllipse,
    EstimatedRadioSource,
)

__all__ = [
    "InlierData",
    "EstimationResult",
    "RadioSourceModel",
    "AccelerometerCalibrationModel",
    "ErrorEllipse",
    "EstimatedRadioSource",
]

"""
Estimation result classes.

This module defines the output data structures of robust estimation:
inlier data, the estimated models for each estimator family, their
covariance, and the estimated radio source handed to downstream consumers.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..models.point import Point
from ..models.radio_source import RadioSource
from ..models.reading import dbm_to_watt


def _json_safe_value(value: Any) -> Any:
    """Convert non-JSON-safe floats (nan/inf) to None."""
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
    return value


def _matrix_to_list(matrix: Optional[np.ndarray]) -> Optional[list]:
    if matrix is None:
        return None
    return [[_json_safe_value(float(v)) for v in row] for row in np.atleast_2d(matrix)]


@dataclass(frozen=True)
class InlierData:
    """
    Inlier classification of the readings for the best consensus model.

    Attributes:
        num_inliers: Number of readings classified as inliers
        inliers: Boolean mask over readings, None unless kept
        residuals: Absolute residual of every reading, None unless kept
    """

    num_inliers: int
    inliers: Optional[np.ndarray] = None
    residuals: Optional[np.ndarray] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "num_inliers": self.num_inliers,
            "inliers": None if self.inliers is None else [bool(v) for v in self.inliers],
            "residuals": None if self.residuals is None else [
                _json_safe_value(float(v)) for v in self.residuals
            ],
        }


@dataclass(frozen=True)
class RadioSourceModel:
    """
    Parameters of a radio source.

    Attributes:
        position: Emitter position
        transmitted_power_dbm: Transmitted power in dBm
        path_loss_exponent: Path-loss exponent (2.0 in free space)
    """

    position: Point
    transmitted_power_dbm: float
    path_loss_exponent: float

    @property
    def transmitted_power(self) -> float:
        """Transmitted power in Watts."""
        return dbm_to_watt(self.transmitted_power_dbm)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position.to_dict(),
            "transmitted_power_dbm": self.transmitted_power_dbm,
            "path_loss_exponent": self.path_loss_exponent,
        }


@dataclass(frozen=True)
class AccelerometerCalibrationModel:
    """
    Accelerometer calibration parameters.

    Measured specific force is modeled as ``f_meas = bias + (I + ma) f_true``.

    Attributes:
        bias: Bias vector (bx, by, bz) in m/s^2
        ma: 3x3 matrix of scale factors (diagonal) and cross couplings
    """

    bias: np.ndarray
    ma: np.ndarray

    @property
    def sx(self) -> float:
        return float(self.ma[0, 0])

    @property
    def sy(self) -> float:
        return float(self.ma[1, 1])

    @property
    def sz(self) -> float:
        return float(self.ma[2, 2])

    @property
    def mxy(self) -> float:
        return float(self.ma[0, 1])

    @property
    def mxz(self) -> float:
        return float(self.ma[0, 2])

    @property
    def myz(self) -> float:
        return float(self.ma[1, 2])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bias": [float(b) for b in self.bias],
            "ma": _matrix_to_list(self.ma),
        }


@dataclass(frozen=True)
class EstimationResult:
    """
    Result of a successful robust estimation.

    Attributes:
        model: Estimated model (RadioSourceModel or AccelerometerCalibrationModel)
        parameter_names: Names of the estimated parameters, in covariance order
        covariance: Covariance of the estimated parameters, None if unavailable
        iterations: Number of consensus iterations run
        refined: True if the model was refined over its inliers
    """

    model: Any
    parameter_names: Tuple[str, ...]
    covariance: Optional[np.ndarray] = None
    iterations: int = 0
    refined: bool = False

    @property
    def parameter_variances(self) -> Optional[np.ndarray]:
        """Diagonal of the covariance matrix, None if unavailable."""
        if self.covariance is None:
            return None
        return np.diag(self.covariance).copy()

    def variance_of(self, name: str) -> Optional[float]:
        """Variance of a single named parameter, None if unavailable."""
        if self.covariance is None or name not in self.parameter_names:
            return None
        i = self.parameter_names.index(name)
        return float(self.covariance[i, i])

    def to_dict(self) -> Dict[str, Any]:
        variances = self.parameter_variances
        return {
            "model": self.model.to_dict(),
            "parameter_names": list(self.parameter_names),
            "covariance": _matrix_to_list(self.covariance),
            "parameter_variances": None if variances is None else [
                _json_safe_value(float(v)) for v in variances
            ],
            "iterations": self.iterations,
            "refined": self.refined,
        }


@dataclass
class ErrorEllipse:
    """
    Error ellipse of a 2D position estimate.

    Attributes:
        semi_major: Semi-major axis length in meters
        semi_minor: Semi-minor axis length in meters
        orientation: Orientation of semi-major axis in radians (from x axis, counter-clockwise)
        confidence_level: Confidence level (e.g., 0.95 for 95%)
    """

    semi_major: float
    semi_minor: float
    orientation: float
    confidence_level: float

    @property
    def orientation_degrees(self) -> float:
        """Return orientation in degrees."""
        return math.degrees(self.orientation)

    @property
    def area(self) -> float:
        """Calculate area of the ellipse in square meters."""
        return math.pi * self.semi_major * self.semi_minor

    @classmethod
    def from_covariance(cls, cov2: np.ndarray, confidence: float) -> 'ErrorEllipse':
        """Compute error ellipse parameters from a 2x2 covariance matrix."""
        if not 0 < confidence < 1:
            raise ValueError("confidence must be between 0 and 1")

        # Eigen-decomposition
        vals, vecs = np.linalg.eigh(np.asarray(cov2, dtype=float))
        order = np.argsort(vals)[::-1]
        vals = vals[order]
        vecs = vecs[:, order]

        # Chi-square quantile with 2 degrees of freedom has a closed form
        scale = math.sqrt(-2.0 * math.log(1.0 - confidence))

        return cls(
            semi_major=math.sqrt(max(vals[0], 0.0)) * scale,
            semi_minor=math.sqrt(max(vals[1], 0.0)) * scale,
            orientation=math.atan2(float(vecs[1, 0]), float(vecs[0, 0])),
            confidence_level=float(confidence),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "semi_major_m": self.semi_major,
            "semi_minor_m": self.semi_minor,
            "orientation_rad": self.orientation,
            "orientation_deg": self.orientation_degrees,
            "confidence_level": self.confidence_level,
        }


@dataclass(frozen=True)
class EstimatedRadioSource:
    """
    Radio source identity combined with its estimated location and power.

    Attributes:
        source: Original radio source (identifier and frequency)
        position: Estimated position
        transmitted_power_dbm: Estimated (or fixed) transmitted power in dBm
        path_loss_exponent: Estimated (or fixed) path-loss exponent
        position_covariance: Covariance of the position, None if not estimated/available
        transmitted_power_variance: Variance of the power, None if not estimated/available
        path_loss_exponent_variance: Variance of the exponent, None if not estimated/available
    """

    source: RadioSource
    position: Point
    transmitted_power_dbm: float
    path_loss_exponent: float
    position_covariance: Optional[np.ndarray] = None
    transmitted_power_variance: Optional[float] = None
    path_loss_exponent_variance: Optional[float] = None

    @property
    def identifier(self) -> str:
        return self.source.identifier

    @property
    def frequency(self) -> float:
        return self.source.frequency

    @property
    def transmitted_power(self) -> float:
        """Transmitted power in Watts."""
        return dbm_to_watt(self.transmitted_power_dbm)

    @property
    def transmitted_power_standard_deviation(self) -> Optional[float]:
        """Standard deviation of the transmitted power in dB."""
        if self.transmitted_power_variance is None:
            return None
        return math.sqrt(max(self.transmitted_power_variance, 0.0))

    def position_error_ellipse(self, confidence: float = 0.95) -> Optional[ErrorEllipse]:
        """Error ellipse of a 2D position estimate, None for 3D or without covariance."""
        if self.position_covariance is None or self.position.dimensions != 2:
            return None
        return ErrorEllipse.from_covariance(self.position_covariance, confidence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.to_dict(),
            "position": self.position.to_dict(),
            "transmitted_power_dbm": self.transmitted_power_dbm,
            "path_loss_exponent": self.path_loss_exponent,
            "position_covariance": _matrix_to_list(self.position_covariance),
            "transmitted_power_variance": _json_safe_value(self.transmitted_power_variance),
            "path_loss_exponent_variance": _json_safe_value(self.path_loss_exponent_variance),
        }

"""robust_estimation.core.estimators.accelerometer

Robust accelerometer calibration from static readings and a known gravity norm.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from ..models.options import RobustEstimatorOptions
from ..models.reading import AccelerometerReading
from ..results.estimation_result import AccelerometerCalibrationModel
from ..solver.accelerometer import AccelerometerUnknowns, GravityNormCalibrationProblem
from .base import RobustEstimator
from .listener import RobustEstimatorListener


# Inlier threshold in m/s^2 for RANSAC/MSAC/PROSAC
DEFAULT_THRESHOLD = 1e-2
# Median of squared residuals ((m/s^2)^2) at which LMedS/PROMedS stop
DEFAULT_STOP_THRESHOLD = 1e-4


class RobustKnownGravityNormAccelerometerCalibrator(RobustEstimator):
    """
    Robust accelerometer calibrator using the norm of gravity as reference.

    Readings are specific forces measured while the device is static in
    different orientations. Bias, scale factors and cross couplings are
    estimated so that every corrected reading has the known gravity norm.

    Args:
        readings: Static accelerometer readings
        quality_scores: Per-reading quality, higher is better (PROSAC/PROMedS)
        ground_truth_gravity_norm: Gravity norm at the calibration site (m/s^2)
        initial_bias: Start (or fixed) bias, zeros by default
        initial_ma: Start (or fixed) scale/cross-coupling matrix, zeros by default
        bias_estimation_enabled: Estimate the bias
        cross_coupling_estimation_enabled: Estimate scale factors and cross couplings
        options: Shared robust estimation options
        listener: Receiver of estimation events
    """

    DEFAULT_THRESHOLD = DEFAULT_THRESHOLD
    DEFAULT_STOP_THRESHOLD = DEFAULT_STOP_THRESHOLD

    def __init__(
        self,
        readings: Optional[Sequence[AccelerometerReading]] = None,
        quality_scores: Optional[Sequence[float]] = None,
        ground_truth_gravity_norm: Optional[float] = None,
        initial_bias: Optional[Sequence[float]] = None,
        initial_ma: Optional[np.ndarray] = None,
        bias_estimation_enabled: bool = True,
        cross_coupling_estimation_enabled: bool = True,
        options: Optional[RobustEstimatorOptions] = None,
        listener: Optional[RobustEstimatorListener] = None,
    ):
        super().__init__(options=options, listener=listener)
        self._unknowns = AccelerometerUnknowns(
            bias=bias_estimation_enabled,
            cross_coupling=cross_coupling_estimation_enabled,
        )
        self._gravity_norm = _check_gravity_norm(ground_truth_gravity_norm)
        self._initial_bias = _check_bias(initial_bias)
        self._initial_ma = _check_ma(initial_ma)
        self._init_inputs(readings, quality_scores)

    @property
    def unknowns(self) -> AccelerometerUnknowns:
        return self._unknowns

    @property
    def bias_estimation_enabled(self) -> bool:
        return self._unknowns.bias

    @bias_estimation_enabled.setter
    def bias_estimation_enabled(self, enabled: bool) -> None:
        self._check_locked()
        self._unknowns = AccelerometerUnknowns(bias=enabled, cross_coupling=self._unknowns.cross_coupling)

    @property
    def cross_coupling_estimation_enabled(self) -> bool:
        return self._unknowns.cross_coupling

    @cross_coupling_estimation_enabled.setter
    def cross_coupling_estimation_enabled(self, enabled: bool) -> None:
        self._check_locked()
        self._unknowns = AccelerometerUnknowns(bias=self._unknowns.bias, cross_coupling=enabled)

    @property
    def ground_truth_gravity_norm(self) -> Optional[float]:
        return self._gravity_norm

    @ground_truth_gravity_norm.setter
    def ground_truth_gravity_norm(self, norm: Optional[float]) -> None:
        self._check_locked()
        self._gravity_norm = _check_gravity_norm(norm)

    @property
    def initial_bias(self) -> np.ndarray:
        return self._initial_bias.copy()

    @initial_bias.setter
    def initial_bias(self, bias: Optional[Sequence[float]]) -> None:
        self._check_locked()
        self._initial_bias = _check_bias(bias)

    @property
    def initial_ma(self) -> np.ndarray:
        return self._initial_ma.copy()

    @initial_ma.setter
    def initial_ma(self, ma: Optional[np.ndarray]) -> None:
        self._check_locked()
        self._initial_ma = _check_ma(ma)

    @property
    def min_readings(self) -> int:
        return self._unknowns.min_readings

    def _validate_readings(self, readings: Sequence[AccelerometerReading]) -> None:
        for reading in readings:
            if not isinstance(reading, AccelerometerReading):
                raise ValueError(f"Expected AccelerometerReading, got {type(reading).__name__}")

    def _readiness_errors(self):
        if self._gravity_norm is None:
            return ["ground truth gravity norm is not set"]
        return []

    def _build_problem(self) -> GravityNormCalibrationProblem:
        return GravityNormCalibrationProblem(
            self._readings,
            self._unknowns,
            gravity_norm=self._gravity_norm,
            initial_bias=self._initial_bias,
            initial_ma=self._initial_ma,
        )

    def _parameter_names(self) -> Tuple[str, ...]:
        return self._unknowns.parameter_names

    # -- estimated values -------------------------------------------------

    @property
    def estimated_calibration(self) -> Optional[AccelerometerCalibrationModel]:
        return None if self._result is None else self._result.model

    @property
    def estimated_bias(self) -> Optional[np.ndarray]:
        model = self.estimated_calibration
        return None if model is None else model.bias.copy()

    @property
    def estimated_ma(self) -> Optional[np.ndarray]:
        model = self.estimated_calibration
        return None if model is None else model.ma.copy()

    @property
    def estimated_sx(self) -> Optional[float]:
        model = self.estimated_calibration
        return None if model is None else model.sx

    @property
    def estimated_sy(self) -> Optional[float]:
        model = self.estimated_calibration
        return None if model is None else model.sy

    @property
    def estimated_sz(self) -> Optional[float]:
        model = self.estimated_calibration
        return None if model is None else model.sz

    @property
    def estimated_mxy(self) -> Optional[float]:
        model = self.estimated_calibration
        return None if model is None else model.mxy

    @property
    def estimated_mxz(self) -> Optional[float]:
        model = self.estimated_calibration
        return None if model is None else model.mxz

    @property
    def estimated_myz(self) -> Optional[float]:
        model = self.estimated_calibration
        return None if model is None else model.myz

    @property
    def estimated_covariance(self) -> Optional[np.ndarray]:
        return self.covariance


def _check_gravity_norm(norm: Optional[float]) -> Optional[float]:
    if norm is None:
        return None
    norm = float(norm)
    if not (math.isfinite(norm) and norm > 0):
        raise ValueError(f"Gravity norm must be positive, got {norm}")
    return norm


def _check_bias(bias: Optional[Sequence[float]]) -> np.ndarray:
    if bias is None:
        return np.zeros(3)
    bias = np.asarray(bias, dtype=float)
    if bias.shape != (3,):
        raise ValueError(f"Bias must have 3 components, got shape {bias.shape}")
    return bias.copy()


def _check_ma(ma: Optional[np.ndarray]) -> np.ndarray:
    """Accept a 3x3 upper-triangular matrix (lower entries are not observable)."""
    if ma is None:
        return np.zeros((3, 3))
    ma = np.asarray(ma, dtype=float)
    if ma.shape != (3, 3):
        raise ValueError(f"Ma must be 3x3, got shape {ma.shape}")
    if np.any(np.tril(ma, -1) != 0.0):
        raise ValueError("Ma must be upper triangular")
    return ma.copy()

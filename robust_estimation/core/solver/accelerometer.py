"""robust_estimation.core.solver.accelerometer

Consensus problem for calibrating an accelerometer against a known gravity norm.

Measurements taken at rest in different orientations satisfy

    f_meas = b + (I + Ma) f_true,    ||f_true|| = g

so the predicted value of every reading is ||(I + Ma)^-1 (f_meas - b)|| and
the observed value is g. Ma is upper triangular (common z-axis assumption):

    Ma = [[sx, mxy, mxz],
          [0,  sy,  myz],
          [0,  0,   sz ]]

A general Ma is not observable from a norm-only reference, since any
rotation of f_true leaves its norm unchanged.

Unknown vector layout (enabled groups only, in this order):
  1) bias (bx, by, bz)
  2) sx, sy, sz, mxy, mxz, myz

The Jacobian is computed by central finite differences.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from ..errors import SingularSystemError
from ..models.reading import AccelerometerReading
from ..results.estimation_result import AccelerometerCalibrationModel
from .consensus import ConsensusProblem
from .levenberg_marquardt import (
    LevenbergMarquardtResult,
    covariance_from_fit,
    levenberg_marquardt,
    numerical_jacobian,
)


# Used when a reading carries no standard deviation (m/s^2)
DEFAULT_SPECIFIC_FORCE_STANDARD_DEVIATION = 1.0

# Plausibility bounds for a calibration candidate. Singular values of I + Ma
# outside this range, or a bias larger than the gravity norm, describe a
# degenerate fit where every corrected reading collapses onto the sphere.
MIN_SCALE_SINGULAR_VALUE = 0.5
MAX_SCALE_SINGULAR_VALUE = 1.5
MAX_BIAS_TO_GRAVITY_RATIO = 1.0

_BIAS_NAMES = ("bx", "by", "bz")
_MA_NAMES = ("sx", "sy", "sz", "mxy", "mxz", "myz")


@dataclass(frozen=True)
class AccelerometerUnknowns:
    """Which calibration parameters are estimated."""

    bias: bool = True
    cross_coupling: bool = True

    def __post_init__(self):
        if not (self.bias or self.cross_coupling):
            raise ValueError("At least one unknown must be enabled for calibration")

    @property
    def num_params(self) -> int:
        return (3 if self.bias else 0) + (6 if self.cross_coupling else 0)

    @property
    def min_readings(self) -> int:
        """One reading more than unknowns, to disambiguate the norm equations."""
        return self.num_params + 1

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return (_BIAS_NAMES if self.bias else ()) + (_MA_NAMES if self.cross_coupling else ())


def ma_from_params(params: np.ndarray) -> np.ndarray:
    """Build the upper-triangular Ma from (sx, sy, sz, mxy, mxz, myz)."""
    sx, sy, sz, mxy, mxz, myz = (float(v) for v in params)
    return np.array([
        [sx, mxy, mxz],
        [0.0, sy, myz],
        [0.0, 0.0, sz],
    ])


def params_from_ma(ma: np.ndarray) -> np.ndarray:
    return np.array([ma[0, 0], ma[1, 1], ma[2, 2], ma[0, 1], ma[0, 2], ma[1, 2]], dtype=float)


def true_specific_force_norms(forces: np.ndarray, bias: np.ndarray, ma: np.ndarray) -> np.ndarray:
    """||(I + Ma)^-1 (f - b)|| for each row of ``forces``; NaN if I + Ma is singular."""
    t = np.eye(3) + ma
    try:
        corrected = np.linalg.solve(t, (forces - bias[None, :]).T)
    except np.linalg.LinAlgError:
        return np.full(len(forces), np.nan)
    return np.sqrt((corrected * corrected).sum(axis=0))


class GravityNormCalibrationProblem(ConsensusProblem):
    """Accelerometer bias / scale / cross-coupling estimation from a known gravity norm."""

    def __init__(
        self,
        readings: Sequence[AccelerometerReading],
        unknowns: AccelerometerUnknowns,
        gravity_norm: float,
        initial_bias: Optional[np.ndarray] = None,
        initial_ma: Optional[np.ndarray] = None,
    ):
        if gravity_norm <= 0:
            raise ValueError("gravity_norm must be positive")
        self._unknowns = unknowns
        self._gravity_norm = float(gravity_norm)
        self._forces = np.array([r.specific_force for r in readings], dtype=float)
        sigmas = np.array([
            r.specific_force_standard_deviation
            if r.specific_force_standard_deviation is not None
            else DEFAULT_SPECIFIC_FORCE_STANDARD_DEVIATION
            for r in readings
        ], dtype=float)
        self._weights = 1.0 / (sigmas ** 2)
        self._initial_bias = np.zeros(3) if initial_bias is None else np.asarray(initial_bias, dtype=float)
        self._initial_ma = np.zeros((3, 3)) if initial_ma is None else np.asarray(initial_ma, dtype=float)

    @property
    def num_samples(self) -> int:
        return len(self._forces)

    @property
    def subset_size(self) -> int:
        return self._unknowns.min_readings

    def solve_subset(self, indices: np.ndarray) -> AccelerometerCalibrationModel:
        fit = self._fit(indices, self._initial_bias, self._initial_ma, weights=None)
        return self._to_model(fit.x, self._initial_bias, self._initial_ma)

    def residuals(self, candidate: AccelerometerCalibrationModel) -> np.ndarray:
        norms = true_specific_force_norms(self._forces, candidate.bias, candidate.ma)
        return np.abs(self._gravity_norm - norms)

    def is_valid_candidate(self, candidate: AccelerometerCalibrationModel) -> bool:
        if not (np.all(np.isfinite(candidate.bias)) and np.all(np.isfinite(candidate.ma))):
            return False
        if np.linalg.norm(candidate.bias) > MAX_BIAS_TO_GRAVITY_RATIO * self._gravity_norm:
            return False
        singular_values = np.linalg.svd(np.eye(3) + candidate.ma, compute_uv=False)
        return bool(
            singular_values.min() >= MIN_SCALE_SINGULAR_VALUE
            and singular_values.max() <= MAX_SCALE_SINGULAR_VALUE
        )

    def refine(
        self,
        candidate: AccelerometerCalibrationModel,
        inliers: np.ndarray,
        keep_covariance: bool = True,
    ) -> Tuple[AccelerometerCalibrationModel, Optional[np.ndarray]]:
        """Weighted least squares over the inliers seeded with ``candidate``."""
        indices = np.flatnonzero(inliers)
        fit = self._fit(indices, candidate.bias, candidate.ma, weights=self._weights[indices])
        refined = self._to_model(fit.x, candidate.bias, candidate.ma)
        covariance = covariance_from_fit(fit) if keep_covariance else None
        return refined, covariance

    def _unpack(self, x: np.ndarray, bias: np.ndarray, ma: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        offset = 0
        if self._unknowns.bias:
            bias = np.asarray(x[0:3], dtype=float)
            offset = 3
        if self._unknowns.cross_coupling:
            ma = ma_from_params(x[offset:offset + 6])
        return bias, ma

    def _pack(self, bias: np.ndarray, ma: np.ndarray) -> np.ndarray:
        parts = []
        if self._unknowns.bias:
            parts.append(np.asarray(bias, dtype=float))
        if self._unknowns.cross_coupling:
            parts.append(params_from_ma(ma))
        return np.concatenate(parts)

    def _fit(
        self,
        indices: np.ndarray,
        bias: np.ndarray,
        ma: np.ndarray,
        weights: Optional[np.ndarray],
    ) -> LevenbergMarquardtResult:
        forces = self._forces[indices]
        if len(indices) < self._unknowns.num_params:
            raise SingularSystemError(
                f"{len(indices)} readings cannot determine {self._unknowns.num_params} unknowns"
            )

        def predict(x: np.ndarray) -> np.ndarray:
            b, m = self._unpack(x, bias, ma)
            return true_specific_force_norms(forces, b, m)

        def residual_func(x: np.ndarray) -> np.ndarray:
            return self._gravity_norm - predict(x)

        def jacobian_func(x: np.ndarray) -> np.ndarray:
            return numerical_jacobian(predict, x)

        return levenberg_marquardt(residual_func, jacobian_func, self._pack(bias, ma), weights=weights)

    def _to_model(self, x: np.ndarray, bias: np.ndarray, ma: np.ndarray) -> AccelerometerCalibrationModel:
        b, m = self._unpack(x, bias, ma)
        return AccelerometerCalibrationModel(bias=np.array(b, dtype=float), ma=np.array(m, dtype=float))

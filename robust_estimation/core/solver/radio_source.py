"""robust_estimation.core.solver.radio_source

Consensus problem for locating a radio source from RSSI readings.

Each minimal subset is solved with Levenberg-Marquardt on the log-distance
path-loss model (see ``path_loss``). The winning model is refined over its
inliers with weights 1/sigma^2 taken from the reading standard deviations.

This module contains no estimator state; the facade in
``robust_estimation.core.estimators`` owns configuration and locking.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from ..errors import SingularSystemError
from ..models.point import Point
from ..models.reading import RssiReading
from ..results.estimation_result import RadioSourceModel
from .consensus import ConsensusProblem
from .levenberg_marquardt import (
    LevenbergMarquardtResult,
    covariance_from_fit,
    levenberg_marquardt,
)
from .path_loss import (
    DEFAULT_PATH_LOSS_EXPONENT,
    ParameterLayout,
    RadioSourceUnknowns,
    path_loss_jacobian,
    predict_rssi,
    receiver_distances,
    wavelength_constant,
)


# Used when a reading carries no standard deviation (dB)
DEFAULT_RSSI_STANDARD_DEVIATION = 1.0

_AXIS_NAMES = ("x", "y", "z")


def parameter_names(unknowns: RadioSourceUnknowns, dimensions: int) -> Tuple[str, ...]:
    """Names of the enabled unknowns in solver-vector order."""
    names = []
    if unknowns.position:
        names.extend(_AXIS_NAMES[:dimensions])
    if unknowns.transmitted_power:
        names.append("transmitted_power_dbm")
    if unknowns.path_loss_exponent:
        names.append("path_loss_exponent")
    return tuple(names)


class RssiRadioSourceProblem(ConsensusProblem):
    """Radio-source position/power/path-loss estimation from RSSI readings."""

    def __init__(
        self,
        readings: Sequence[RssiReading],
        unknowns: RadioSourceUnknowns,
        frequency: float,
        initial_position: Optional[Point] = None,
        initial_transmitted_power_dbm: Optional[float] = None,
        initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
    ):
        if not readings:
            raise ValueError("At least one reading is required")
        self._dims = readings[0].position.dimensions
        self._layout = ParameterLayout(unknowns, self._dims)
        self._frequency = float(frequency)
        self._k = wavelength_constant(self._frequency)

        self._positions = np.array([r.position.coordinates for r in readings], dtype=float)
        self._rssi = np.array([r.rssi for r in readings], dtype=float)
        sigmas = np.array([
            r.rssi_standard_deviation if r.rssi_standard_deviation is not None
            else DEFAULT_RSSI_STANDARD_DEVIATION
            for r in readings
        ], dtype=float)
        self._weights = 1.0 / (sigmas ** 2)

        self._initial_position = None if initial_position is None else initial_position.as_array()
        self._initial_power = initial_transmitted_power_dbm
        self._initial_exponent = float(initial_path_loss_exponent)

        if not unknowns.position and self._initial_position is None:
            raise ValueError("initial_position is required when position is not estimated")
        if not unknowns.transmitted_power and self._initial_power is None:
            raise ValueError(
                "initial_transmitted_power_dbm is required when transmitted power is not estimated"
            )

    # -- ConsensusProblem -----------------------------------------------------

    @property
    def num_samples(self) -> int:
        return len(self._rssi)

    @property
    def subset_size(self) -> int:
        return self._layout.unknowns.min_readings(self._dims)

    @property
    def layout(self) -> ParameterLayout:
        return self._layout

    def is_valid_subset(self, indices: np.ndarray) -> bool:
        """Receiver positions must be pairwise distinct when position is estimated."""
        if not self._layout.unknowns.position:
            return True
        unique = np.unique(self._positions[indices], axis=0)
        return len(unique) == len(indices)

    def solve_subset(self, indices: np.ndarray) -> RadioSourceModel:
        position, power, exponent = self._start(indices)
        fit = self._fit(indices, position, power, exponent, weights=None)
        return self._to_model(fit.x, position, power, exponent)

    def residuals(self, candidate: RadioSourceModel) -> np.ndarray:
        predicted = predict_rssi(
            candidate.position.as_array(),
            self._positions,
            candidate.transmitted_power_dbm,
            candidate.path_loss_exponent,
            self._frequency,
        )
        return np.abs(self._rssi - predicted)

    def is_valid_candidate(self, candidate: RadioSourceModel) -> bool:
        return (
            math.isfinite(candidate.transmitted_power_dbm)
            and math.isfinite(candidate.path_loss_exponent)
            and candidate.path_loss_exponent > 0.0
        )

    # -- refinement ------------------------------------------------------------

    def refine(
        self,
        candidate: RadioSourceModel,
        inliers: np.ndarray,
        keep_covariance: bool = True,
    ) -> Tuple[RadioSourceModel, Optional[np.ndarray]]:
        """Weighted least squares over the inliers seeded with ``candidate``.

        Returns:
            (refined model, covariance or None)

        Raises:
            SingularSystemError: if the inliers do not determine the unknowns
        """
        indices = np.flatnonzero(inliers)
        position = candidate.position.as_array()
        power = candidate.transmitted_power_dbm
        exponent = candidate.path_loss_exponent

        fit = self._fit(indices, position, power, exponent, weights=self._weights[indices])
        refined = self._to_model(fit.x, position, power, exponent)
        covariance = covariance_from_fit(fit) if keep_covariance else None
        return refined, covariance

    # -- helpers ---------------------------------------------------------------

    def _start(self, indices: np.ndarray) -> Tuple[np.ndarray, float, float]:
        """Initial values: caller-supplied where given, else derived from the subset."""
        if self._initial_position is not None:
            position = self._initial_position.copy()
        else:
            position = self._positions[indices].mean(axis=0)

        exponent = self._initial_exponent

        if self._initial_power is not None:
            power = float(self._initial_power)
        else:
            # Mean power offset at the start position (closed form for fixed position/exponent)
            d = receiver_distances(position, self._positions[indices])
            power = float(np.mean(self._rssi[indices] - 10.0 * exponent * np.log10(self._k / d)))

        return position, power, exponent

    def _fit(
        self,
        indices: np.ndarray,
        position: np.ndarray,
        power: float,
        exponent: float,
        weights: Optional[np.ndarray],
    ) -> LevenbergMarquardtResult:
        layout = self._layout
        receivers = self._positions[indices]
        observed = self._rssi[indices]

        if len(indices) < layout.num_params:
            raise SingularSystemError(
                f"{len(indices)} readings cannot determine {layout.num_params} unknowns"
            )

        def residual_func(x: np.ndarray) -> np.ndarray:
            p, pw, n = layout.unpack(x, position, power, exponent)
            return observed - predict_rssi(p, receivers, pw, n, self._frequency)

        def jacobian_func(x: np.ndarray) -> np.ndarray:
            p, _, n = layout.unpack(x, position, power, exponent)
            return path_loss_jacobian(layout, p, receivers, n, self._frequency)

        x0 = layout.pack(position, power, exponent)
        return levenberg_marquardt(residual_func, jacobian_func, x0, weights=weights)

    def _to_model(
        self,
        x: np.ndarray,
        position: np.ndarray,
        power: float,
        exponent: float,
    ) -> RadioSourceModel:
        p, pw, n = self._layout.unpack(x, position, power, exponent)
        if not np.all(np.isfinite(p)):
            raise SingularSystemError("Estimated position is not finite")
        return RadioSourceModel(
            position=Point.from_array(p),
            transmitted_power_dbm=float(pw),
            path_loss_exponent=float(n),
        )

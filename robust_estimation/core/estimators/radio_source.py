"""robust_estimation.core.estimators.radio_source

Robust estimation of a radio source (position, transmitted power and
path-loss exponent) from RSSI readings taken at known positions.

Example:
    >>> ap = WifiAccessPoint.create("00:11:22:33:44:55", 2.4e9)
    >>> estimator = RobustRssiRadioSourceEstimator2D(readings=readings)
    >>> estimator.method = RobustEstimatorMethod.RANSAC
    >>> estimator.estimate()
    >>> estimator.estimated_position
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from ..models.options import RobustEstimatorOptions
from ..models.point import SUPPORTED_DIMENSIONS, Point
from ..models.reading import RssiReading
from ..results.estimation_result import EstimatedRadioSource, RadioSourceModel
from ..solver.path_loss import DEFAULT_PATH_LOSS_EXPONENT, RadioSourceUnknowns
from ..solver.radio_source import RssiRadioSourceProblem, parameter_names
from .base import RobustEstimator
from .listener import RobustEstimatorListener


# Inlier threshold in dB for RANSAC/MSAC/PROSAC
DEFAULT_THRESHOLD = 0.1
# Median of squared residuals (dB^2) at which LMedS/PROMedS stop
DEFAULT_STOP_THRESHOLD = 1e-5


class RobustRssiRadioSourceEstimator(RobustEstimator):
    """
    Robust radio source estimator for 2D or 3D readings.

    The dimension is taken from the readings (or the initial position) unless
    a subclass pins it through ``DIMENSIONS``.

    Args:
        readings: RSSI readings of a single radio source
        quality_scores: Per-reading quality, higher is better (PROSAC/PROMedS)
        initial_position: Start position, required when position is not estimated
        initial_transmitted_power_dbm: Start power, required when power is not estimated
        initial_path_loss_exponent: Start (or fixed) path-loss exponent
        position_estimation_enabled: Estimate the source position
        transmitted_power_estimation_enabled: Estimate the transmitted power
        path_loss_estimation_enabled: Estimate the path-loss exponent
        options: Shared robust estimation options
        listener: Receiver of estimation events
    """

    DEFAULT_THRESHOLD = DEFAULT_THRESHOLD
    DEFAULT_STOP_THRESHOLD = DEFAULT_STOP_THRESHOLD
    DIMENSIONS: Optional[int] = None

    def __init__(
        self,
        readings: Optional[Sequence[RssiReading]] = None,
        quality_scores: Optional[Sequence[float]] = None,
        initial_position: Optional[Point] = None,
        initial_transmitted_power_dbm: Optional[float] = None,
        initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
        position_estimation_enabled: bool = True,
        transmitted_power_estimation_enabled: bool = True,
        path_loss_estimation_enabled: bool = False,
        options: Optional[RobustEstimatorOptions] = None,
        listener: Optional[RobustEstimatorListener] = None,
    ):
        super().__init__(options=options, listener=listener)
        self._unknowns = RadioSourceUnknowns(
            position=position_estimation_enabled,
            transmitted_power=transmitted_power_estimation_enabled,
            path_loss_exponent=path_loss_estimation_enabled,
        )
        self._check_position_dimensions(initial_position)
        self._initial_position = initial_position
        self._initial_transmitted_power_dbm = _check_power(initial_transmitted_power_dbm)
        self._initial_path_loss_exponent = _check_path_loss_exponent(initial_path_loss_exponent)
        self._init_inputs(readings, quality_scores)

    # ------------------------------------------------------------------
    # Unknowns
    # ------------------------------------------------------------------

    @property
    def unknowns(self) -> RadioSourceUnknowns:
        return self._unknowns

    def _set_unknowns(self, **changes) -> None:
        self._check_locked()
        current = {
            "position": self._unknowns.position,
            "transmitted_power": self._unknowns.transmitted_power,
            "path_loss_exponent": self._unknowns.path_loss_exponent,
        }
        current.update(changes)
        self._unknowns = RadioSourceUnknowns(**current)

    @property
    def position_estimation_enabled(self) -> bool:
        return self._unknowns.position

    @position_estimation_enabled.setter
    def position_estimation_enabled(self, enabled: bool) -> None:
        self._set_unknowns(position=enabled)

    @property
    def transmitted_power_estimation_enabled(self) -> bool:
        return self._unknowns.transmitted_power

    @transmitted_power_estimation_enabled.setter
    def transmitted_power_estimation_enabled(self, enabled: bool) -> None:
        self._set_unknowns(transmitted_power=enabled)

    @property
    def path_loss_estimation_enabled(self) -> bool:
        return self._unknowns.path_loss_exponent

    @path_loss_estimation_enabled.setter
    def path_loss_estimation_enabled(self, enabled: bool) -> None:
        self._set_unknowns(path_loss_exponent=enabled)

    # ------------------------------------------------------------------
    # Initial values
    # ------------------------------------------------------------------

    @property
    def initial_position(self) -> Optional[Point]:
        return self._initial_position

    @initial_position.setter
    def initial_position(self, position: Optional[Point]) -> None:
        self._check_locked()
        self._check_position_dimensions(position)
        self._initial_position = position

    @property
    def initial_transmitted_power_dbm(self) -> Optional[float]:
        return self._initial_transmitted_power_dbm

    @initial_transmitted_power_dbm.setter
    def initial_transmitted_power_dbm(self, power: Optional[float]) -> None:
        self._check_locked()
        self._initial_transmitted_power_dbm = _check_power(power)

    @property
    def initial_path_loss_exponent(self) -> float:
        return self._initial_path_loss_exponent

    @initial_path_loss_exponent.setter
    def initial_path_loss_exponent(self, exponent: float) -> None:
        self._check_locked()
        self._initial_path_loss_exponent = _check_path_loss_exponent(exponent)

    def _check_position_dimensions(self, position: Optional[Point]) -> None:
        if position is None:
            return
        expected = self.DIMENSIONS
        if expected is None and self._readings is not None:
            expected = self._readings[0].dimensions
        if expected is not None and position.dimensions != expected:
            raise ValueError(
                f"Initial position has {position.dimensions} dimensions, expected {expected}"
            )

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    @property
    def dimensions(self) -> Optional[int]:
        """Dimension of the problem, None until it can be determined."""
        if self.DIMENSIONS is not None:
            return self.DIMENSIONS
        if self._readings is not None:
            return self._readings[0].dimensions
        if self._initial_position is not None:
            return self._initial_position.dimensions
        return None

    @property
    def min_readings(self) -> int:
        return self._unknowns.min_readings(self.dimensions or SUPPORTED_DIMENSIONS[0])

    def _min_readings_for(self, readings: Tuple[RssiReading, ...]) -> int:
        return self._unknowns.min_readings(readings[0].dimensions)

    def _validate_readings(self, readings: Sequence[RssiReading]) -> None:
        if not readings:
            raise ValueError("Readings cannot be empty")
        for reading in readings:
            if not isinstance(reading, RssiReading):
                raise ValueError(f"Expected RssiReading, got {type(reading).__name__}")

        dims = readings[0].dimensions
        if self.DIMENSIONS is not None and dims != self.DIMENSIONS:
            raise ValueError(f"Readings must be {self.DIMENSIONS}D, got {dims}D")
        if any(r.dimensions != dims for r in readings):
            raise ValueError("All readings must have the same number of dimensions")
        if self._initial_position is not None and self._initial_position.dimensions != dims:
            raise ValueError(
                f"Readings are {dims}D but the initial position is "
                f"{self._initial_position.dimensions}D"
            )

        identifier = readings[0].source.identifier
        if any(r.source.identifier != identifier for r in readings):
            raise ValueError("All readings must belong to the same radio source")

    def _readiness_errors(self):
        errors = []
        if not self._unknowns.position and self._initial_position is None:
            errors.append("initial position is required when position is not estimated")
        if not self._unknowns.transmitted_power and self._initial_transmitted_power_dbm is None:
            errors.append(
                "initial transmitted power is required when transmitted power is not estimated"
            )
        return errors

    # ------------------------------------------------------------------
    # Estimation hooks
    # ------------------------------------------------------------------

    def _build_problem(self) -> RssiRadioSourceProblem:
        return RssiRadioSourceProblem(
            self._readings,
            self._unknowns,
            frequency=self._readings[0].source.frequency,
            initial_position=self._initial_position,
            initial_transmitted_power_dbm=self._initial_transmitted_power_dbm,
            initial_path_loss_exponent=self._initial_path_loss_exponent,
        )

    def _parameter_names(self) -> Tuple[str, ...]:
        return parameter_names(self._unknowns, self.dimensions)

    # ------------------------------------------------------------------
    # Estimated values
    # ------------------------------------------------------------------

    @property
    def _model(self) -> Optional[RadioSourceModel]:
        return None if self._result is None else self._result.model

    @property
    def estimated_position(self) -> Optional[Point]:
        model = self._model
        return None if model is None else model.position

    @property
    def estimated_transmitted_power_dbm(self) -> Optional[float]:
        model = self._model
        return None if model is None else model.transmitted_power_dbm

    @property
    def estimated_transmitted_power(self) -> Optional[float]:
        """Estimated transmitted power in Watts."""
        model = self._model
        return None if model is None else model.transmitted_power

    @property
    def estimated_path_loss_exponent(self) -> Optional[float]:
        model = self._model
        return None if model is None else model.path_loss_exponent

    @property
    def estimated_covariance(self) -> Optional[np.ndarray]:
        return self.covariance

    @property
    def estimated_position_covariance(self) -> Optional[np.ndarray]:
        """Position block of the covariance, None if position was not estimated."""
        result = self._result
        if result is None or result.covariance is None:
            return None
        idx = [i for i, name in enumerate(result.parameter_names) if name in ("x", "y", "z")]
        if not idx:
            return None
        return result.covariance[np.ix_(idx, idx)].copy()

    @property
    def estimated_transmitted_power_variance(self) -> Optional[float]:
        return None if self._result is None else self._result.variance_of("transmitted_power_dbm")

    @property
    def estimated_path_loss_exponent_variance(self) -> Optional[float]:
        return None if self._result is None else self._result.variance_of("path_loss_exponent")

    @property
    def estimated_radio_source(self) -> Optional[EstimatedRadioSource]:
        """Estimated source combined with the identity of the measured source."""
        model = self._model
        if model is None:
            return None
        return EstimatedRadioSource(
            source=self._readings[0].source,
            position=model.position,
            transmitted_power_dbm=model.transmitted_power_dbm,
            path_loss_exponent=model.path_loss_exponent,
            position_covariance=self.estimated_position_covariance,
            transmitted_power_variance=self.estimated_transmitted_power_variance,
            path_loss_exponent_variance=self.estimated_path_loss_exponent_variance,
        )


class RobustRssiRadioSourceEstimator2D(RobustRssiRadioSourceEstimator):
    """Robust radio source estimator for 2D readings."""

    DIMENSIONS = 2


class RobustRssiRadioSourceEstimator3D(RobustRssiRadioSourceEstimator):
    """Robust radio source estimator for 3D readings."""

    DIMENSIONS = 3


def create_radio_source_estimator(dimensions: int, **kwargs) -> RobustRssiRadioSourceEstimator:
    """Create the estimator for 2D or 3D readings.

    Keyword arguments are passed to the estimator constructor.
    """
    if dimensions == 2:
        return RobustRssiRadioSourceEstimator2D(**kwargs)
    if dimensions == 3:
        return RobustRssiRadioSourceEstimator3D(**kwargs)
    raise ValueError(f"Unsupported number of dimensions: {dimensions}")


def _check_power(power: Optional[float]) -> Optional[float]:
    if power is None:
        return None
    power = float(power)
    if not math.isfinite(power):
        raise ValueError("Transmitted power must be finite")
    return power


def _check_path_loss_exponent(exponent: float) -> float:
    exponent = float(exponent)
    if not (math.isfinite(exponent) and exponent > 0):
        raise ValueError(f"Path-loss exponent must be positive, got {exponent}")
    return exponent

"""robust_estimation.core.estimators.base

Stateful facade shared by all robust estimators.

The facade owns the configuration, the readings and quality scores, the
listener, and the result of the last successful estimation. It runs a small
state machine:

    IDLE --estimate()--> RUNNING --(success | failure)--> IDLE

While RUNNING the estimator is locked: every mutating call raises
``LockedError``, including calls made from listener callbacks.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from enum import Enum
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import (
    LockedError,
    NotReadyError,
    RobustEstimatorError,
    SingularSystemError,
)
from ..models.options import RobustEstimatorMethod, RobustEstimatorOptions
from ..results.estimation_result import EstimationResult, InlierData
from ..solver.consensus import ConsensusResult, ConsensusSettings, create_strategy
from .listener import RobustEstimatorListener

logger = logging.getLogger(__name__)


class EstimatorState(Enum):
    """Lifecycle state of an estimator."""
    IDLE = "idle"
    RUNNING = "running"


class RobustEstimator(ABC):
    """
    Base class for robust estimators.

    Subclasses provide the consensus problem for their domain, the minimum
    number of readings and reading validation. Everything else (options,
    locking, listener notification, inlier bookkeeping and refinement) is
    handled here.

    Class attributes:
        DEFAULT_THRESHOLD: Inlier threshold used when options.threshold is None
        DEFAULT_STOP_THRESHOLD: Median stop threshold used when options.threshold is None
    """

    DEFAULT_THRESHOLD: float = 1.0
    DEFAULT_STOP_THRESHOLD: float = 1e-3

    def __init__(
        self,
        options: Optional[RobustEstimatorOptions] = None,
        listener: Optional[RobustEstimatorListener] = None,
    ):
        self._state = EstimatorState.IDLE
        self._options = options or RobustEstimatorOptions.default()
        self._listener = listener
        self._readings: Optional[Tuple[Any, ...]] = None
        self._quality_scores: Optional[Tuple[float, ...]] = None
        self._inliers_data: Optional[InlierData] = None
        self._result: Optional[EstimationResult] = None

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def min_readings(self) -> int:
        """Minimum number of readings for the enabled unknowns."""

    @abstractmethod
    def _validate_readings(self, readings: Sequence[Any]) -> None:
        """Raise ValueError for readings of the wrong type or shape."""

    @abstractmethod
    def _build_problem(self):
        """Create the consensus problem for the current configuration."""

    @abstractmethod
    def _parameter_names(self) -> Tuple[str, ...]:
        """Names of the estimated parameters, in covariance order."""

    def _readiness_errors(self) -> List[str]:
        """Domain specific reasons why estimation cannot start."""
        return []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> EstimatorState:
        return self._state

    @property
    def is_locked(self) -> bool:
        """True while ``estimate()`` is running."""
        return self._state is EstimatorState.RUNNING

    def _check_locked(self) -> None:
        if self.is_locked:
            raise LockedError()

    @contextmanager
    def _running(self) -> Iterator[None]:
        """Hold the RUNNING state; IDLE is restored on every exit path."""
        self._state = EstimatorState.RUNNING
        try:
            yield
        finally:
            self._state = EstimatorState.IDLE

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def options(self) -> RobustEstimatorOptions:
        return self._options

    @options.setter
    def options(self, options: RobustEstimatorOptions) -> None:
        self._check_locked()
        self._options = options

    def _update_options(self, **changes) -> None:
        self._check_locked()
        # replace() re-runs option validation
        self._options = replace(self._options, **changes)

    @property
    def method(self) -> RobustEstimatorMethod:
        return self._options.method

    @method.setter
    def method(self, method: RobustEstimatorMethod) -> None:
        self._update_options(method=method)

    @property
    def threshold(self) -> float:
        """Effective threshold (inlier threshold or median stop threshold)."""
        if self._options.threshold is not None:
            return self._options.threshold
        if self.method.uses_inlier_threshold:
            return self.DEFAULT_THRESHOLD
        return self.DEFAULT_STOP_THRESHOLD

    @threshold.setter
    def threshold(self, threshold: float) -> None:
        self._check_locked()
        if threshold is None or not threshold > 0:
            raise ValueError(f"threshold must be positive, got {threshold}")
        self._update_options(threshold=threshold)

    @property
    def confidence(self) -> float:
        return self._options.confidence

    @confidence.setter
    def confidence(self, confidence: float) -> None:
        self._update_options(confidence=confidence)

    @property
    def max_iterations(self) -> int:
        return self._options.max_iterations

    @max_iterations.setter
    def max_iterations(self, max_iterations: int) -> None:
        self._update_options(max_iterations=max_iterations)

    @property
    def progress_delta(self) -> float:
        return self._options.progress_delta

    @progress_delta.setter
    def progress_delta(self, progress_delta: float) -> None:
        self._update_options(progress_delta=progress_delta)

    @property
    def refine_result(self) -> bool:
        return self._options.refine_result

    @refine_result.setter
    def refine_result(self, refine_result: bool) -> None:
        self._update_options(refine_result=refine_result)

    @property
    def keep_inliers(self) -> bool:
        return self._options.keep_inliers

    @keep_inliers.setter
    def keep_inliers(self, keep_inliers: bool) -> None:
        self._update_options(keep_inliers=keep_inliers)

    @property
    def keep_residuals(self) -> bool:
        return self._options.keep_residuals

    @keep_residuals.setter
    def keep_residuals(self, keep_residuals: bool) -> None:
        self._update_options(keep_residuals=keep_residuals)

    @property
    def keep_covariance(self) -> bool:
        return self._options.keep_covariance

    @keep_covariance.setter
    def keep_covariance(self, keep_covariance: bool) -> None:
        self._update_options(keep_covariance=keep_covariance)

    @property
    def seed(self) -> Optional[int]:
        return self._options.seed

    @seed.setter
    def seed(self, seed: Optional[int]) -> None:
        self._update_options(seed=seed)

    @property
    def listener(self) -> Optional[RobustEstimatorListener]:
        return self._listener

    @listener.setter
    def listener(self, listener: Optional[RobustEstimatorListener]) -> None:
        self._check_locked()
        self._listener = listener

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    @property
    def readings(self) -> Optional[Tuple[Any, ...]]:
        return self._readings

    @readings.setter
    def readings(self, readings: Optional[Sequence[Any]]) -> None:
        self._check_locked()
        self._set_readings(readings)

    @property
    def quality_scores(self) -> Optional[Tuple[float, ...]]:
        return self._quality_scores

    @quality_scores.setter
    def quality_scores(self, quality_scores: Optional[Sequence[float]]) -> None:
        self._check_locked()
        self._set_quality_scores(quality_scores)

    def set_readings_and_quality_scores(
        self,
        readings: Sequence[Any],
        quality_scores: Optional[Sequence[float]],
    ) -> None:
        """Set both inputs at once, checking that their lengths match."""
        self._check_locked()
        self._init_inputs(readings, quality_scores)

    def _init_inputs(
        self,
        readings: Optional[Sequence[Any]],
        quality_scores: Optional[Sequence[float]],
    ) -> None:
        self._set_readings(readings)
        self._set_quality_scores(quality_scores)

    def _min_readings_for(self, readings: Tuple[Any, ...]) -> int:
        """Minimum number of readings required for ``readings`` to be accepted."""
        return self.min_readings

    def _set_readings(self, readings: Optional[Sequence[Any]]) -> None:
        if readings is None:
            self._readings = None
            return
        readings = tuple(readings)
        self._validate_readings(readings)
        required = self._min_readings_for(readings)
        if len(readings) < required:
            raise ValueError(
                f"At least {required} readings are required, got {len(readings)}"
            )
        self._readings = readings

    def _set_quality_scores(self, quality_scores: Optional[Sequence[float]]) -> None:
        if quality_scores is None:
            self._quality_scores = None
            return
        scores = tuple(float(q) for q in quality_scores)
        if self.method.requires_quality_scores:
            if len(scores) < self.min_readings:
                raise ValueError(
                    f"At least {self.min_readings} quality scores are required, got {len(scores)}"
                )
            if not all(math.isfinite(q) for q in scores):
                raise ValueError("Quality scores must be finite")
            if self._readings is not None and len(scores) != len(self._readings):
                raise ValueError(
                    f"Quality scores length {len(scores)} does not match "
                    f"{len(self._readings)} readings"
                )
        self._quality_scores = scores

    @property
    def is_ready(self) -> bool:
        """True if ``estimate()`` can run with the current inputs."""
        return not self._not_ready_reasons()

    def _not_ready_reasons(self) -> List[str]:
        errors: List[str] = []
        if self._readings is None:
            errors.append("readings are not set")
        elif len(self._readings) < self.min_readings:
            errors.append(
                f"at least {self.min_readings} readings are required, got {len(self._readings)}"
            )
        if self.method.requires_quality_scores:
            if self._quality_scores is None:
                errors.append(f"{self.method.value} requires quality scores")
            elif self._readings is not None and len(self._quality_scores) != len(self._readings):
                errors.append("quality scores length does not match readings")
        errors.extend(self._readiness_errors())
        return errors

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @property
    def result(self) -> Optional[EstimationResult]:
        """Result of the last successful estimation, None before the first."""
        return self._result

    @property
    def inliers_data(self) -> Optional[InlierData]:
        return self._inliers_data

    @property
    def covariance(self) -> Optional[np.ndarray]:
        return None if self._result is None else self._result.covariance

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    def estimate(self) -> EstimationResult:
        """Run robust estimation followed by optional refinement.

        Returns:
            EstimationResult, also available as ``self.result``

        Raises:
            LockedError: if an estimation is already running
            NotReadyError: if required inputs are missing
            RobustEstimatorError: if no model could be estimated
        """
        self._check_locked()
        reasons = self._not_ready_reasons()
        if reasons:
            raise NotReadyError("Estimator is not ready: " + "; ".join(reasons))

        with self._running():
            self._notify_start()
            self._inliers_data = None

            problem = self._build_problem()
            settings = ConsensusSettings(
                threshold=self.threshold,
                confidence=self.confidence,
                max_iterations=self.max_iterations,
                progress_delta=self.progress_delta,
                seed=self.seed,
            )
            strategy = create_strategy(self.method, settings)
            scores = self._quality_scores if self.method.requires_quality_scores else None

            logger.info(
                "%s estimation started: %d readings, subset size %d",
                self.method.value, problem.num_samples, problem.subset_size,
            )
            try:
                consensus = strategy.run(
                    problem,
                    quality_scores=scores,
                    on_next_iteration=self._notify_next_iteration,
                    on_progress_change=self._notify_progress_change,
                )
            except (SingularSystemError, np.linalg.LinAlgError) as e:
                raise RobustEstimatorError(f"{self.method.value} estimation failed: {e}") from e

            model, covariance, refined = self._attempt_refine(problem, consensus)

            self._inliers_data = InlierData(
                num_inliers=consensus.num_inliers,
                inliers=consensus.inliers.copy() if self.keep_inliers else None,
                residuals=consensus.residuals.copy() if self.keep_residuals else None,
            )
            self._result = EstimationResult(
                model=model,
                parameter_names=self._parameter_names(),
                covariance=covariance,
                iterations=consensus.iterations,
                refined=refined,
            )
            logger.info(
                "%s estimation finished after %d iterations: %d/%d inliers",
                self.method.value, consensus.iterations, consensus.num_inliers, problem.num_samples,
            )
            self._notify_end()

        return self._result

    def _attempt_refine(self, problem, consensus: ConsensusResult):
        """Refine the consensus model over its inliers if enabled.

        A refinement that cannot be solved keeps the consensus model.
        """
        if not self.refine_result:
            return consensus.candidate, None, False

        try:
            model, covariance = problem.refine(
                consensus.candidate, consensus.inliers, keep_covariance=self.keep_covariance
            )
        except SingularSystemError as e:
            logger.warning("Refinement failed, keeping consensus model: %s", e)
            return consensus.candidate, None, False

        if not problem.is_valid_candidate(model):
            logger.warning("Refined model is not valid, keeping consensus model")
            return consensus.candidate, None, False

        if self.keep_covariance and covariance is None:
            logger.warning("Covariance is not available: normal matrix is singular")
        return model, covariance, True

    # ------------------------------------------------------------------
    # Listener notification
    # ------------------------------------------------------------------

    def _notify_start(self) -> None:
        if self._listener is not None:
            self._listener.on_estimate_start(self)

    def _notify_end(self) -> None:
        if self._listener is not None:
            self._listener.on_estimate_end(self)

    def _notify_next_iteration(self, iteration: int) -> None:
        if self._listener is not None:
            self._listener.on_estimate_next_iteration(self, iteration)

    def _notify_progress_change(self, progress: float) -> None:
        if self._listener is not None:
            self._listener.on_estimate_progress_change(self, progress)

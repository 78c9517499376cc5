"""Sample-consensus module for robust estimation.

Implements the shared hypothesize-and-verify loop and five interchangeable
strategies to discard outliers before a final least-squares refinement.

Supported methods:
- RANSAC: uniform sampling, maximizes the number of inliers
- MSAC: uniform sampling, minimizes sum(min(r^2, t^2))
- LMedS: uniform sampling, minimizes the median of squared residuals
- PROSAC: quality-ordered progressive sampling, RANSAC scoring
- PROMedS: quality-ordered progressive sampling, LMedS scoring

References:
- Fischler & Bolles, "Random Sample Consensus", 1981
- Torr & Zisserman, "MLESAC", 2000 (MSAC cost)
- Rousseeuw, "Least Median of Squares Regression", 1984
- Chum & Matas, "Matching with PROSAC", 2005
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Type

import numpy as np

from ..errors import RobustEstimatorError, SingularSystemError
from ..models.options import (
    RobustEstimatorMethod,
    DEFAULT_CONFIDENCE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PROGRESS_DELTA,
)

logger = logging.getLogger(__name__)


# Consistency constant of the median absolute deviation for Gaussian noise
MAD_CONSISTENCY = 1.4826
DEFAULT_INLIER_FACTOR = 1.5


# ---------------------------------------------------------------------------
# Problem Interface
# ---------------------------------------------------------------------------

class ConsensusProblem(ABC):
    """A model that can be fitted to minimal subsets and scored on all samples.

    Implementations wrap a physical model (its residual and Jacobian) so the
    consensus loop stays independent of the domain.
    """

    @property
    @abstractmethod
    def num_samples(self) -> int:
        """Total number of samples (readings)."""

    @property
    @abstractmethod
    def subset_size(self) -> int:
        """Number of samples in a minimal subset."""

    @abstractmethod
    def solve_subset(self, indices: np.ndarray) -> Any:
        """Fit a candidate model to the samples at ``indices``.

        Raises:
            SingularSystemError: if the subset cannot be solved
        """

    @abstractmethod
    def residuals(self, candidate: Any) -> np.ndarray:
        """Absolute residuals of every sample against ``candidate``."""

    def is_valid_subset(self, indices: np.ndarray) -> bool:
        """Reject degenerate subsets before solving them."""
        return True

    def is_valid_candidate(self, candidate: Any) -> bool:
        """Reject physically meaningless candidate models."""
        return True


# ---------------------------------------------------------------------------
# Settings / Result
# ---------------------------------------------------------------------------

@dataclass
class ConsensusSettings:
    """Settings of a consensus run.

    ``threshold`` is the inlier threshold for RANSAC/MSAC/PROSAC and the stop
    threshold on the median of squared residuals for LMedS/PROMedS.
    """
    threshold: float
    confidence: float = DEFAULT_CONFIDENCE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    progress_delta: float = DEFAULT_PROGRESS_DELTA
    seed: Optional[int] = None
    inlier_factor: float = DEFAULT_INLIER_FACTOR


@dataclass
class ConsensusResult:
    """Best model found by a consensus run."""
    candidate: Any
    inliers: np.ndarray         # boolean mask over samples
    residuals: np.ndarray
    score: float
    iterations: int

    @property
    def num_inliers(self) -> int:
        return int(np.count_nonzero(self.inliers))


# ---------------------------------------------------------------------------
# Adaptive Iteration Bound
# ---------------------------------------------------------------------------

def compute_max_iterations(
    inlier_ratio: float,
    confidence: float,
    subset_size: int,
    configured_max: int,
    previous: int,
) -> int:
    """Number of iterations needed to draw one outlier-free subset.

    Formula:
        N = ceil(log(1 - c) / log(1 - w^k))

    clamped to [1, configured_max]. With ``w = 0`` nothing is known about the
    inlier ratio and the previous bound is kept.
    """
    if inlier_ratio <= 0.0:
        return previous

    p_good = inlier_ratio ** subset_size
    if p_good >= 1.0:
        return 1

    denom = math.log1p(-p_good)
    if denom >= 0.0:
        # w^k underflows: no information gained
        return previous

    needed = math.ceil(math.log(1.0 - confidence) / denom)
    return max(1, min(configured_max, needed))


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class ConsensusStrategy(ABC):
    """Shared hypothesize-and-verify loop.

    Subclasses decide how subsets are drawn, how a candidate is scored and
    how inliers are classified. On equal scores the earlier candidate is kept.
    """

    method: RobustEstimatorMethod

    def __init__(self, settings: ConsensusSettings):
        self.settings = settings

    # -- policy hooks -------------------------------------------------------

    def prepare(self, num_samples: int, subset_size: int, quality_scores: Optional[np.ndarray]) -> None:
        """Reset per-run sampling state."""
        self._num_samples = num_samples
        self._subset_size = subset_size

    def next_subset(self, rng: np.random.Generator, iteration: int) -> np.ndarray:
        """Uniformly random subset of distinct sample indices."""
        return np.sort(rng.choice(self._num_samples, size=self._subset_size, replace=False))

    @abstractmethod
    def score(self, residuals: np.ndarray) -> float:
        """Score of a candidate given its residuals."""

    @abstractmethod
    def is_better(self, score: float, best_score: float) -> bool:
        """True if ``score`` strictly improves on ``best_score``."""

    @abstractmethod
    def inliers(self, residuals: np.ndarray, score: float) -> np.ndarray:
        """Boolean inlier mask for a candidate."""

    def is_acceptable(self, score: float) -> bool:
        """True if a candidate with ``score`` may become the best model."""
        return True

    def should_stop(self, score: float) -> bool:
        """Early stop independent of the adaptive bound."""
        return False

    # -- loop ---------------------------------------------------------------

    def run(
        self,
        problem: ConsensusProblem,
        quality_scores: Optional[Sequence[float]] = None,
        on_next_iteration: Optional[Callable[[int], None]] = None,
        on_progress_change: Optional[Callable[[float], None]] = None,
    ) -> ConsensusResult:
        """Search for the best model.

        Args:
            problem: Problem providing minimal solver and residuals
            quality_scores: Per-sample quality scores (PROSAC/PROMedS only)
            on_next_iteration: Called with the 1-based iteration number
            on_progress_change: Called with progress in [0, 1]

        Returns:
            ConsensusResult of the best candidate

        Raises:
            RobustEstimatorError: if no candidate could be computed
        """
        n = problem.num_samples
        k = problem.subset_size
        if n < k:
            raise RobustEstimatorError(f"Not enough samples: {n} < subset size {k}")

        scores = None if quality_scores is None else np.asarray(quality_scores, dtype=float)
        self.prepare(n, k, scores)

        rng = np.random.default_rng(self.settings.seed)
        configured_max = self.settings.max_iterations
        max_iterations = configured_max
        best: Optional[ConsensusResult] = None
        last_error: Optional[Exception] = None
        last_progress = 0.0
        iteration = 0

        while iteration < max_iterations:
            iteration += 1
            if on_next_iteration is not None:
                on_next_iteration(iteration)

            indices = self.next_subset(rng, iteration)
            candidate = None
            if problem.is_valid_subset(indices):
                try:
                    candidate = problem.solve_subset(indices)
                except SingularSystemError as e:
                    last_error = e

            if candidate is not None and problem.is_valid_candidate(candidate):
                residuals = np.asarray(problem.residuals(candidate), dtype=float)
                if np.all(np.isfinite(residuals)):
                    score = self.score(residuals)
                    improves = best is None or self.is_better(score, best.score)
                    if improves and self.is_acceptable(score):
                        best = ConsensusResult(
                            candidate=candidate,
                            inliers=self.inliers(residuals, score),
                            residuals=residuals,
                            score=score,
                            iterations=iteration,
                        )
                        max_iterations = compute_max_iterations(
                            best.num_inliers / n,
                            self.settings.confidence,
                            k,
                            configured_max,
                            max_iterations,
                        )
                        logger.debug(
                            "%s iteration %d: score=%.6g inliers=%d/%d bound=%d",
                            self.method.value, iteration, score, best.num_inliers, n, max_iterations,
                        )
                        if self.should_stop(score):
                            logger.debug("%s stop threshold reached at iteration %d", self.method.value, iteration)
                            break

            progress = min(1.0, iteration / max_iterations)
            if on_progress_change is not None and progress - last_progress >= self.settings.progress_delta:
                on_progress_change(progress)
                last_progress = progress

        if best is None:
            raise RobustEstimatorError(
                f"No acceptable model was found after {iteration} iterations"
            ) from last_error

        if on_progress_change is not None and last_progress < 1.0:
            on_progress_change(1.0)

        best.iterations = iteration
        return best


class _InlierCountMixin:
    """Inlier counting shared by RANSAC and PROSAC."""

    settings: ConsensusSettings

    def score(self, residuals: np.ndarray) -> float:
        return float(np.count_nonzero(residuals < self.settings.threshold))

    def is_acceptable(self, score: float) -> bool:
        return score > 0

    def is_better(self, score: float, best_score: float) -> bool:
        return score > best_score

    def inliers(self, residuals: np.ndarray, score: float) -> np.ndarray:
        return residuals < self.settings.threshold


class _MedianMixin:
    """Least-median-of-squares scoring shared by LMedS and PROMedS."""

    settings: ConsensusSettings
    _num_samples: int
    _subset_size: int

    def score(self, residuals: np.ndarray) -> float:
        return float(np.median(residuals * residuals))

    def is_better(self, score: float, best_score: float) -> bool:
        return score < best_score

    def inliers(self, residuals: np.ndarray, score: float) -> np.ndarray:
        """Inliers within a robust standard deviation estimated from the median.

        sigma = 1.4826 * (1 + 5 / (N - k)) * sqrt(median)

        The bound never drops below sqrt(stop threshold) so that noise-free
        samples are not rejected for round-off residuals.
        """
        redundancy = self._num_samples - self._subset_size
        correction = 1.0 + 5.0 / redundancy if redundancy > 0 else 1.0
        sigma = MAD_CONSISTENCY * correction * math.sqrt(max(score, 0.0))
        bound = max(self.settings.inlier_factor * sigma, math.sqrt(self.settings.threshold))
        return residuals <= bound

    def should_stop(self, score: float) -> bool:
        return score <= self.settings.threshold


class _ProgressiveSamplingMixin:
    """PROSAC progressive sampling (Chum & Matas, 2005).

    Samples are ordered by descending quality. The pool of the ``n`` best
    samples grows following the growth function T_n, and each draw contains
    the n-th sample plus k-1 samples from the n-1 best, until the schedule
    is exhausted and draws become uniform over the pool.
    """

    settings: ConsensusSettings
    _num_samples: int
    _subset_size: int

    def prepare(self, num_samples: int, subset_size: int, quality_scores: Optional[np.ndarray]) -> None:
        if quality_scores is None:
            raise ValueError("Quality scores are required for progressive sampling")
        if len(quality_scores) != num_samples:
            raise ValueError(
                f"Quality scores length {len(quality_scores)} does not match {num_samples} samples"
            )
        self._num_samples = num_samples
        self._subset_size = subset_size
        # Stable sort keeps the input order among equal scores
        self._order = np.argsort(-quality_scores, kind="stable")
        self._pool = subset_size
        t_n = float(self.settings.max_iterations)
        for i in range(subset_size):
            t_n *= (subset_size - i) / (num_samples - i)
        self._t_n = t_n
        self._t_n_prime = 1.0

    def next_subset(self, rng: np.random.Generator, iteration: int) -> np.ndarray:
        n_total = self._num_samples
        k = self._subset_size

        if iteration > self._t_n_prime and self._pool < n_total:
            t_next = self._t_n * (self._pool + 1) / (self._pool + 1 - k)
            self._t_n_prime += math.ceil(t_next - self._t_n)
            self._t_n = t_next
            self._pool += 1

        if self._t_n_prime < iteration:
            positions = rng.choice(self._pool, size=k, replace=False)
        else:
            positions = np.append(
                rng.choice(self._pool - 1, size=k - 1, replace=False),
                self._pool - 1,
            )
        return np.sort(self._order[positions])


class RANSACStrategy(_InlierCountMixin, ConsensusStrategy):
    method = RobustEstimatorMethod.RANSAC


class MSACStrategy(ConsensusStrategy):
    method = RobustEstimatorMethod.MSAC

    def score(self, residuals: np.ndarray) -> float:
        t2 = self.settings.threshold ** 2
        return float(np.minimum(residuals * residuals, t2).sum())

    def is_better(self, score: float, best_score: float) -> bool:
        return score < best_score

    def inliers(self, residuals: np.ndarray, score: float) -> np.ndarray:
        return residuals < self.settings.threshold


class LMedSStrategy(_MedianMixin, ConsensusStrategy):
    method = RobustEstimatorMethod.LMEDS


class PROSACStrategy(_ProgressiveSamplingMixin, _InlierCountMixin, ConsensusStrategy):
    method = RobustEstimatorMethod.PROSAC


class PROMedSStrategy(_ProgressiveSamplingMixin, _MedianMixin, ConsensusStrategy):
    method = RobustEstimatorMethod.PROMEDS


_STRATEGIES: Dict[RobustEstimatorMethod, Type[ConsensusStrategy]] = {
    RobustEstimatorMethod.RANSAC: RANSACStrategy,
    RobustEstimatorMethod.MSAC: MSACStrategy,
    RobustEstimatorMethod.LMEDS: LMedSStrategy,
    RobustEstimatorMethod.PROSAC: PROSACStrategy,
    RobustEstimatorMethod.PROMEDS: PROMedSStrategy,
}


def create_strategy(method: RobustEstimatorMethod, settings: ConsensusSettings) -> ConsensusStrategy:
    """Instantiate the consensus strategy for ``method``."""
    return _STRATEGIES[method](settings)

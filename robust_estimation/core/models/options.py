"""
Options for robust estimation.

This module defines configuration options shared by every robust estimator,
including the consensus method, iteration control, confidence, and which
optional outputs (inliers, residuals, covariance) are kept.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any


DEFAULT_CONFIDENCE = 0.99
DEFAULT_MAX_ITERATIONS = 5000
DEFAULT_PROGRESS_DELTA = 0.05


class RobustEstimatorMethod(Enum):
    """
    Sample-consensus methods for outlier rejection.

    Supported methods:
    - RANSAC: uniform sampling, maximizes inlier count
    - LMEDS: uniform sampling, minimizes the median of squared residuals
    - MSAC: uniform sampling, minimizes truncated squared residuals
    - PROSAC: quality-ordered progressive sampling, maximizes inlier count
    - PROMEDS: quality-ordered progressive sampling, minimizes the median
    """
    RANSAC = "ransac"
    LMEDS = "lmeds"
    MSAC = "msac"
    PROSAC = "prosac"
    PROMEDS = "promeds"

    @classmethod
    def from_string(cls, s: str) -> "RobustEstimatorMethod":
        """Create RobustEstimatorMethod from string (case-insensitive)."""
        s_lower = s.lower().strip()
        for method in cls:
            if method.value == s_lower:
                return method
        raise ValueError(f"Unknown robust estimator method: {s}")

    @property
    def requires_quality_scores(self) -> bool:
        """True for methods whose sampling order is driven by quality scores."""
        return self in (RobustEstimatorMethod.PROSAC, RobustEstimatorMethod.PROMEDS)

    @property
    def uses_inlier_threshold(self) -> bool:
        """
        True when the threshold classifies inliers directly.

        Median based methods (LMedS, PROMedS) derive inliers from the median
        residual and use the threshold as a stop criterion instead.
        """
        return self in (
            RobustEstimatorMethod.RANSAC,
            RobustEstimatorMethod.MSAC,
            RobustEstimatorMethod.PROSAC,
        )


DEFAULT_METHOD = RobustEstimatorMethod.PROMEDS


def validate_threshold(threshold: Optional[float]) -> None:
    if threshold is not None and not threshold > 0:
        raise ValueError(f"threshold must be positive, got {threshold}")


def validate_confidence(confidence: float) -> None:
    if not 0 < confidence < 1:
        raise ValueError(f"confidence must be between 0 and 1, got {confidence}")


def validate_max_iterations(max_iterations: int) -> None:
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")


def validate_progress_delta(progress_delta: float) -> None:
    if not 0 <= progress_delta <= 1:
        raise ValueError(f"progress_delta must be between 0 and 1, got {progress_delta}")


@dataclass(frozen=True)
class RobustEstimatorOptions:
    """
    Configuration options for robust estimation.

    Attributes:
        method: Consensus method (default: PROMEDS)
        threshold: Inlier threshold for RANSAC/MSAC/PROSAC, stop threshold for
            LMedS/PROMedS. None selects the estimator specific default.
        confidence: Probability of having sampled an outlier-free subset (default: 0.99)
        max_iterations: Upper bound for consensus iterations (default: 5000)
        progress_delta: Minimum progress change between notifications (default: 0.05)
        refine_result: Refine the consensus model over its inliers (default: True)
        keep_inliers: Keep the inlier mask after estimation (default: False)
        keep_residuals: Keep the residuals after estimation (default: False)
        keep_covariance: Compute and keep the covariance of the refined model (default: True)
        seed: Seed for the sampling random generator, None for a random seed
    """

    method: RobustEstimatorMethod = DEFAULT_METHOD
    threshold: Optional[float] = None
    confidence: float = DEFAULT_CONFIDENCE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    progress_delta: float = DEFAULT_PROGRESS_DELTA
    refine_result: bool = True
    keep_inliers: bool = False
    keep_residuals: bool = False
    keep_covariance: bool = True
    seed: Optional[int] = None

    def __post_init__(self):
        """Validate options after initialization."""
        # Convert string to enum if needed
        if isinstance(self.method, str):
            object.__setattr__(self, 'method', RobustEstimatorMethod.from_string(self.method))

        validate_threshold(self.threshold)
        validate_confidence(self.confidence)
        validate_max_iterations(self.max_iterations)
        validate_progress_delta(self.progress_delta)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize options to dictionary.

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        return {
            "method": self.method.value,
            "threshold": self.threshold,
            "confidence": self.confidence,
            "max_iterations": self.max_iterations,
            "progress_delta": self.progress_delta,
            "refine_result": self.refine_result,
            "keep_inliers": self.keep_inliers,
            "keep_residuals": self.keep_residuals,
            "keep_covariance": self.keep_covariance,
            "seed": self.seed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RobustEstimatorOptions':
        """
        Create RobustEstimatorOptions from a dictionary.

        Args:
            data: Dictionary with option values

        Returns:
            New RobustEstimatorOptions instance
        """
        return cls(
            method=data.get("method", DEFAULT_METHOD.value),
            threshold=data.get("threshold"),
            confidence=data.get("confidence", DEFAULT_CONFIDENCE),
            max_iterations=data.get("max_iterations", DEFAULT_MAX_ITERATIONS),
            progress_delta=data.get("progress_delta", DEFAULT_PROGRESS_DELTA),
            refine_result=data.get("refine_result", True),
            keep_inliers=data.get("keep_inliers", False),
            keep_residuals=data.get("keep_residuals", False),
            keep_covariance=data.get("keep_covariance", True),
            seed=data.get("seed"),
        )

    @classmethod
    def default(cls) -> 'RobustEstimatorOptions':
        """
        Create options with default values.

        Returns:
            RobustEstimatorOptions with default settings
        """
        return cls()

    def __repr__(self) -> str:
        return (
            f"RobustEstimatorOptions("
            f"method={self.method.value}, "
            f"threshold={self.threshold}, "
            f"conf={self.confidence}, "
            f"max_iter={self.max_iterations})"
        )

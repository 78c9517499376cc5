"""
Exception types raised by the robust estimators.

Invalid configuration values raise plain ``ValueError`` at the mutating call.
The classes below cover the remaining failure modes:

- LockedError: configuration was mutated while ``estimate()`` was running
- NotReadyError: ``estimate()`` was called without the required inputs
- SingularSystemError: a (sub)system could not be solved numerically
- RobustEstimatorError: the consensus search produced no usable model
"""


class EstimationError(Exception):
    """Base class for all estimation errors."""


class LockedError(EstimationError):
    """Raised when an estimator is mutated while an estimation is in progress."""

    def __init__(self, message: str = "Estimator is locked while estimating"):
        super().__init__(message)


class NotReadyError(EstimationError):
    """Raised when ``estimate()`` is called before all required inputs are set."""

    def __init__(self, message: str = "Estimator is not ready"):
        super().__init__(message)


class SingularSystemError(EstimationError):
    """Raised when a least-squares system is rank deficient or diverges."""


class RobustEstimatorError(EstimationError):
    """Raised when robust estimation fails.

    The originating exception, if any, is chained as ``__cause__``.
    """

"""Listener interface for robust estimator events."""


class RobustEstimatorListener:
    """
    Receives events from a robust estimator.

    All callbacks run synchronously on the thread calling ``estimate()``. The
    estimator is locked while they run: any configuration change attempted
    from a callback raises ``LockedError``.

    Override only the callbacks you need; the defaults do nothing.
    """

    def on_estimate_start(self, estimator) -> None:
        """Called when estimation starts."""

    def on_estimate_end(self, estimator) -> None:
        """Called when estimation finishes successfully."""

    def on_estimate_next_iteration(self, estimator, iteration: int) -> None:
        """Called at the start of every consensus iteration (1-based)."""

    def on_estimate_progress_change(self, estimator, progress: float) -> None:
        """Called when progress in [0, 1] advances by at least the progress delta."""

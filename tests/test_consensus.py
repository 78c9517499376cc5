"""Tests for the sample-consensus engine on a simple line model."""

import math

import numpy as np
import pytest

from robust_estimation.core.errors import RobustEstimatorError, SingularSystemError
from robust_estimation.core.models.options import RobustEstimatorMethod
from robust_estimation.core.solver.consensus import (
    ConsensusProblem,
    ConsensusSettings,
    LMedSStrategy,
    MSACStrategy,
    PROMedSStrategy,
    PROSACStrategy,
    RANSACStrategy,
    compute_max_iterations,
    create_strategy,
)


class LineProblem(ConsensusProblem):
    """y = a * x + b fitted exactly through two samples."""

    def __init__(self, xs, ys):
        self.xs = np.asarray(xs, dtype=float)
        self.ys = np.asarray(ys, dtype=float)

    @property
    def num_samples(self):
        return len(self.xs)

    @property
    def subset_size(self):
        return 2

    def is_valid_subset(self, indices):
        x0, x1 = self.xs[indices]
        return x0 != x1

    def solve_subset(self, indices):
        x0, x1 = self.xs[indices]
        y0, y1 = self.ys[indices]
        a = (y1 - y0) / (x1 - x0)
        return (a, y0 - a * x0)

    def residuals(self, candidate):
        a, b = candidate
        return np.abs(self.ys - (a * self.xs + b))


class RecordingProblem(ConsensusProblem):
    """Every candidate has the same score: half the samples fit."""

    def __init__(self, n=10):
        self.n = n
        self.candidates = []

    @property
    def num_samples(self):
        return self.n

    @property
    def subset_size(self):
        return 2

    def solve_subset(self, indices):
        candidate = tuple(int(i) for i in indices)
        self.candidates.append(candidate)
        return candidate

    def residuals(self, candidate):
        half = self.n // 2
        return np.array([0.0] * half + [10.0] * (self.n - half))


class NoFitProblem(RecordingProblem):
    """Every candidate leaves all samples far from the model."""

    def residuals(self, candidate):
        return np.full(self.n, 10.0)


class FailingProblem(LineProblem):
    def solve_subset(self, indices):
        raise SingularSystemError("degenerate subset")


def _noisy_line(seed=5, n=40, outlier_fraction=0.25):
    """Line y = 2x - 1 with small noise and gross outliers."""
    rng = np.random.default_rng(seed)
    xs = np.linspace(-10.0, 10.0, n)
    ys = 2.0 * xs - 1.0 + rng.normal(0.0, 0.01, size=n)
    outliers = rng.choice(n, size=int(outlier_fraction * n), replace=False)
    ys[outliers] += rng.uniform(5.0, 20.0, size=outliers.size)
    mask = np.ones(n, dtype=bool)
    mask[outliers] = False
    return xs, ys, mask


class TestComputeMaxIterations:
    """Tests for the adaptive iteration bound."""

    def test_formula(self):
        expected = math.ceil(math.log(0.01) / math.log(1.0 - 0.5 ** 2))
        assert compute_max_iterations(0.5, 0.99, 2, 1000, 1000) == expected == 17

    def test_clamped_to_configured_max(self):
        assert compute_max_iterations(0.1, 0.99, 4, 50, 50) == 50

    def test_all_inliers_needs_one_iteration(self):
        assert compute_max_iterations(1.0, 0.99, 4, 1000, 1000) == 1

    def test_zero_inlier_ratio_keeps_previous(self):
        assert compute_max_iterations(0.0, 0.99, 4, 1000, 123) == 123

    def test_never_below_one(self):
        assert compute_max_iterations(0.999999, 0.5, 1, 1000, 1000) >= 1

    def test_higher_confidence_needs_more_iterations(self):
        low = compute_max_iterations(0.6, 0.9, 3, 10000, 10000)
        high = compute_max_iterations(0.6, 0.999, 3, 10000, 10000)
        assert high > low


class TestStrategies:
    """Each strategy recovers the line despite outliers."""

    @pytest.mark.parametrize(
        "method",
        [
            RobustEstimatorMethod.RANSAC,
            RobustEstimatorMethod.MSAC,
            RobustEstimatorMethod.LMEDS,
            RobustEstimatorMethod.PROSAC,
            RobustEstimatorMethod.PROMEDS,
        ],
    )
    def test_recovers_line(self, method):
        xs, ys, mask = _noisy_line()
        threshold = 0.1 if method.uses_inlier_threshold else 1e-4
        settings = ConsensusSettings(threshold=threshold, seed=42)
        strategy = create_strategy(method, settings)
        scores = np.where(mask, 1.0, 0.5) if method.requires_quality_scores else None

        result = strategy.run(LineProblem(xs, ys), quality_scores=scores)

        a, b = result.candidate
        assert a == pytest.approx(2.0, abs=0.05)
        assert b == pytest.approx(-1.0, abs=0.3)
        # No gross outlier is classified as inlier
        assert not np.any(result.inliers & ~mask)
        assert result.num_inliers >= 0.5 * mask.sum()
        assert result.residuals.shape == (len(xs),)

    def test_create_strategy_types(self):
        settings = ConsensusSettings(threshold=1.0)
        assert isinstance(create_strategy(RobustEstimatorMethod.RANSAC, settings), RANSACStrategy)
        assert isinstance(create_strategy(RobustEstimatorMethod.MSAC, settings), MSACStrategy)
        assert isinstance(create_strategy(RobustEstimatorMethod.LMEDS, settings), LMedSStrategy)
        assert isinstance(create_strategy(RobustEstimatorMethod.PROSAC, settings), PROSACStrategy)
        assert isinstance(create_strategy(RobustEstimatorMethod.PROMEDS, settings), PROMedSStrategy)

    def test_median_strategy_stops_at_threshold(self):
        """An exact line reaches the stop threshold on the first good subset."""
        xs = np.arange(10.0)
        ys = 3.0 * xs + 2.0
        result = LMedSStrategy(ConsensusSettings(threshold=1e-6, seed=1)).run(LineProblem(xs, ys))

        assert result.iterations == 1
        assert result.score == pytest.approx(0.0, abs=1e-20)
        assert result.inliers.all()

    def test_same_seed_is_deterministic(self):
        xs, ys, _ = _noisy_line(seed=9)
        settings = ConsensusSettings(threshold=0.1, seed=123)
        first = RANSACStrategy(settings).run(LineProblem(xs, ys))
        second = RANSACStrategy(settings).run(LineProblem(xs, ys))

        assert first.candidate == second.candidate
        assert first.iterations == second.iterations

    def test_first_found_wins_ties(self):
        """Equal scores never replace the best candidate."""
        problem = RecordingProblem()
        result = RANSACStrategy(ConsensusSettings(threshold=1.0, seed=0)).run(problem)

        assert result.candidate == problem.candidates[0]
        # w = 0.5, k = 2, c = 0.99 -> 17 iterations
        assert result.iterations == 17
        assert len(problem.candidates) == 17

    def test_failure_without_candidate(self):
        xs = np.arange(6.0)
        strategy = RANSACStrategy(ConsensusSettings(threshold=1.0, max_iterations=5, seed=0))

        with pytest.raises(RobustEstimatorError) as exc_info:
            strategy.run(FailingProblem(xs, xs))

        assert isinstance(exc_info.value.__cause__, SingularSystemError)

    @pytest.mark.parametrize("method", [RobustEstimatorMethod.RANSAC, RobustEstimatorMethod.PROSAC])
    def test_zero_inlier_candidates_never_kept(self, method):
        settings = ConsensusSettings(threshold=1.0, max_iterations=20, seed=0)
        strategy = create_strategy(method, settings)
        problem = NoFitProblem()

        with pytest.raises(RobustEstimatorError, match="No acceptable model"):
            strategy.run(problem, quality_scores=np.ones(problem.n))

        assert len(problem.candidates) == 20

    def test_median_strategy_keeps_candidate_without_inlier_threshold(self):
        result = LMedSStrategy(ConsensusSettings(threshold=1e-6, max_iterations=5, seed=0)).run(NoFitProblem())
        assert result.score == pytest.approx(100.0)

    def test_too_few_samples(self):
        with pytest.raises(RobustEstimatorError, match="Not enough samples"):
            RANSACStrategy(ConsensusSettings(threshold=1.0)).run(LineProblem([1.0], [1.0]))


class TestProgressiveSampling:
    """Tests for PROSAC/PROMedS sampling."""

    def test_first_subset_is_best_quality(self):
        strategy = PROSACStrategy(ConsensusSettings(threshold=1.0))
        scores = np.array([0.1, 0.9, 0.3, 0.8, 0.2, 0.7])
        strategy.prepare(6, 3, scores)

        subset = strategy.next_subset(np.random.default_rng(0), 1)

        assert sorted(subset.tolist()) == [1, 3, 5]

    def test_pool_grows_to_all_samples(self):
        strategy = PROMedSStrategy(ConsensusSettings(threshold=1.0, max_iterations=200))
        scores = np.linspace(1.0, 0.0, 8)
        strategy.prepare(8, 2, scores)
        rng = np.random.default_rng(4)

        seen = set()
        for iteration in range(1, 201):
            seen.update(strategy.next_subset(rng, iteration).tolist())

        assert seen == set(range(8))

    def test_subsets_have_distinct_indices(self):
        strategy = PROSACStrategy(ConsensusSettings(threshold=1.0, max_iterations=100))
        strategy.prepare(10, 4, np.arange(10.0))
        rng = np.random.default_rng(2)

        for iteration in range(1, 101):
            subset = strategy.next_subset(rng, iteration)
            assert len(set(subset.tolist())) == 4

    def test_requires_quality_scores(self):
        xs, ys, _ = _noisy_line()
        with pytest.raises(ValueError, match="Quality scores are required"):
            PROSACStrategy(ConsensusSettings(threshold=0.1)).run(LineProblem(xs, ys))

    def test_quality_scores_length_mismatch(self):
        xs, ys, _ = _noisy_line()
        with pytest.raises(ValueError, match="does not match"):
            PROMedSStrategy(ConsensusSettings(threshold=0.1)).run(
                LineProblem(xs, ys), quality_scores=np.ones(len(xs) - 1)
            )


class TestNotifications:
    """Tests for iteration and progress callbacks."""

    def test_iteration_and_progress_callbacks(self):
        xs, ys, _ = _noisy_line(seed=3)
        iterations = []
        progress = []
        settings = ConsensusSettings(threshold=0.1, seed=8, progress_delta=0.1)

        result = RANSACStrategy(settings).run(
            LineProblem(xs, ys),
            on_next_iteration=iterations.append,
            on_progress_change=progress.append,
        )

        assert iterations == list(range(1, result.iterations + 1))
        assert progress[-1] == 1.0
        assert all(0.0 < p <= 1.0 for p in progress)
        assert progress == sorted(progress)

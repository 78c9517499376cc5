"""Tests for robust accelerometer calibration with a known gravity norm."""

import numpy as np
import pytest

from robust_estimation.core.errors import LockedError, NotReadyError
from robust_estimation.core.estimators import (
    RobustEstimatorListener,
    RobustKnownGravityNormAccelerometerCalibrator,
)
from robust_estimation.core.models.options import (
    RobustEstimatorMethod,
    RobustEstimatorOptions,
)
from robust_estimation.core.models.reading import AccelerometerReading
from robust_estimation.core.results.estimation_result import AccelerometerCalibrationModel
from robust_estimation.core.solver.accelerometer import (
    AccelerometerUnknowns,
    GravityNormCalibrationProblem,
    ma_from_params,
    params_from_ma,
    true_specific_force_norms,
)


GRAVITY = 9.81
TRUE_BIAS = np.array([0.05, -0.03, 0.02])
TRUE_MA_PARAMS = np.array([0.01, -0.02, 0.015, 0.003, -0.002, 0.001])  # sx, sy, sz, mxy, mxz, myz


def _make_readings(n=30, bias=TRUE_BIAS, ma_params=TRUE_MA_PARAMS, outliers=(), seed=0):
    """Static readings in random orientations; outliers are scaled by 1.1."""
    rng = np.random.default_rng(seed)
    directions = rng.normal(size=(n, 3))
    directions /= np.linalg.norm(directions, axis=1)[:, None]
    f_true = GRAVITY * directions
    f_meas = bias[None, :] + f_true @ (np.eye(3) + ma_from_params(ma_params)).T
    for i in outliers:
        f_meas[i] *= 1.1
    return [AccelerometerReading(tuple(f)) for f in f_meas]


class TestCalibrationModel:
    """Tests for the gravity-norm measurement model."""

    def test_ma_params_roundtrip(self):
        ma = ma_from_params(TRUE_MA_PARAMS)

        assert ma[1, 0] == ma[2, 0] == ma[2, 1] == 0.0
        assert ma[0, 1] == pytest.approx(0.003)
        np.testing.assert_allclose(params_from_ma(ma), TRUE_MA_PARAMS)

    def test_true_norms_equal_gravity(self):
        readings = _make_readings(n=5)
        forces = np.array([r.specific_force for r in readings])

        norms = true_specific_force_norms(forces, TRUE_BIAS, ma_from_params(TRUE_MA_PARAMS))

        np.testing.assert_allclose(norms, GRAVITY, rtol=1e-12)

    def test_singular_ma_gives_nan(self):
        forces = np.array([[0.0, 0.0, GRAVITY]])
        norms = true_specific_force_norms(forces, np.zeros(3), -np.eye(3))
        assert np.isnan(norms[0])

    @pytest.mark.parametrize(
        "bias, cross_coupling, params, readings",
        [(True, False, 3, 4), (False, True, 6, 7), (True, True, 9, 10)],
    )
    def test_unknowns(self, bias, cross_coupling, params, readings):
        unknowns = AccelerometerUnknowns(bias, cross_coupling)
        assert unknowns.num_params == params
        assert unknowns.min_readings == readings
        assert len(unknowns.parameter_names) == params

    def test_no_unknowns_rejected(self):
        with pytest.raises(ValueError, match="At least one unknown"):
            AccelerometerUnknowns(False, False)

    def test_plausible_candidate_accepted(self):
        problem = GravityNormCalibrationProblem(_make_readings(), AccelerometerUnknowns(), GRAVITY)
        candidate = AccelerometerCalibrationModel(bias=TRUE_BIAS, ma=ma_from_params(TRUE_MA_PARAMS))
        assert problem.is_valid_candidate(candidate) is True

    @pytest.mark.parametrize(
        "bias, ma",
        [
            # Huge bias and scale: every corrected reading lands near norm g
            ([-5819.7, -26366.2, 4679.0], np.diag([2800.0, 2800.0, 2800.0])),
            ([0.0, 0.0, 12.0], np.zeros((3, 3))),
            ([0.0, 0.0, 0.0], np.diag([0.9, 0.0, 0.0])),
            ([0.0, 0.0, 0.0], np.diag([-0.6, 0.0, 0.0])),
        ],
    )
    def test_implausible_candidate_rejected(self, bias, ma):
        problem = GravityNormCalibrationProblem(_make_readings(), AccelerometerUnknowns(), GRAVITY)
        candidate = AccelerometerCalibrationModel(bias=np.array(bias), ma=np.asarray(ma, dtype=float))
        assert problem.is_valid_candidate(candidate) is False


class TestCalibratorConfiguration:
    """Tests for calibrator configuration and readiness."""

    def test_defaults(self):
        calibrator = RobustKnownGravityNormAccelerometerCalibrator()

        assert calibrator.bias_estimation_enabled is True
        assert calibrator.cross_coupling_estimation_enabled is True
        assert calibrator.min_readings == 10
        assert calibrator.ground_truth_gravity_norm is None
        assert calibrator.initial_bias.tolist() == [0.0, 0.0, 0.0]
        assert calibrator.initial_ma.tolist() == np.zeros((3, 3)).tolist()
        assert calibrator.threshold == pytest.approx(1e-4)
        calibrator.method = RobustEstimatorMethod.MSAC
        assert calibrator.threshold == pytest.approx(1e-2)

    def test_min_readings_follow_flags(self):
        calibrator = RobustKnownGravityNormAccelerometerCalibrator()
        calibrator.cross_coupling_estimation_enabled = False
        assert calibrator.min_readings == 4

        calibrator.cross_coupling_estimation_enabled = True
        calibrator.bias_estimation_enabled = False
        assert calibrator.min_readings == 7

        with pytest.raises(ValueError, match="At least one unknown"):
            calibrator.cross_coupling_estimation_enabled = False

    def test_missing_gravity_norm_not_ready(self):
        calibrator = RobustKnownGravityNormAccelerometerCalibrator(
            readings=_make_readings(),
            options=RobustEstimatorOptions(method=RobustEstimatorMethod.RANSAC),
        )
        assert calibrator.is_ready is False
        with pytest.raises(NotReadyError, match="gravity norm"):
            calibrator.estimate()

        calibrator.ground_truth_gravity_norm = GRAVITY
        assert calibrator.is_ready is True

    @pytest.mark.parametrize("norm", [0.0, -9.81, float("nan")])
    def test_invalid_gravity_norm(self, norm):
        with pytest.raises(ValueError, match="Gravity norm"):
            RobustKnownGravityNormAccelerometerCalibrator(ground_truth_gravity_norm=norm)

    def test_invalid_initial_values(self):
        calibrator = RobustKnownGravityNormAccelerometerCalibrator()
        with pytest.raises(ValueError, match="3 components"):
            calibrator.initial_bias = [0.0, 0.0]
        with pytest.raises(ValueError, match="3x3"):
            calibrator.initial_ma = np.zeros((2, 2))
        with pytest.raises(ValueError, match="upper triangular"):
            calibrator.initial_ma = np.ones((3, 3))

    def test_too_few_readings(self):
        with pytest.raises(ValueError, match="At least 10 readings"):
            RobustKnownGravityNormAccelerometerCalibrator(readings=_make_readings(n=9))

    def test_wrong_reading_type(self):
        with pytest.raises(ValueError, match="AccelerometerReading"):
            RobustKnownGravityNormAccelerometerCalibrator(readings=[object()] * 10)


class TestCalibration:
    """Calibration recovers bias, scale factors and cross couplings."""

    def test_full_calibration_ransac(self):
        calibrator = RobustKnownGravityNormAccelerometerCalibrator(
            readings=_make_readings(),
            ground_truth_gravity_norm=GRAVITY,
            options=RobustEstimatorOptions(method=RobustEstimatorMethod.RANSAC, seed=1),
        )

        result = calibrator.estimate()

        np.testing.assert_allclose(calibrator.estimated_bias, TRUE_BIAS, atol=1e-5)
        np.testing.assert_allclose(calibrator.estimated_ma, ma_from_params(TRUE_MA_PARAMS), atol=1e-5)
        assert calibrator.estimated_sx == pytest.approx(0.01, abs=1e-5)
        assert calibrator.estimated_sy == pytest.approx(-0.02, abs=1e-5)
        assert calibrator.estimated_sz == pytest.approx(0.015, abs=1e-5)
        assert calibrator.estimated_mxy == pytest.approx(0.003, abs=1e-5)
        assert calibrator.estimated_mxz == pytest.approx(-0.002, abs=1e-5)
        assert calibrator.estimated_myz == pytest.approx(0.001, abs=1e-5)
        assert calibrator.estimated_covariance.shape == (9, 9)
        assert result.parameter_names == ("bx", "by", "bz", "sx", "sy", "sz", "mxy", "mxz", "myz")
        assert calibrator.inliers_data.num_inliers == 30

    def test_bias_only(self):
        calibrator = RobustKnownGravityNormAccelerometerCalibrator(
            readings=_make_readings(n=15, ma_params=np.zeros(6)),
            ground_truth_gravity_norm=GRAVITY,
            cross_coupling_estimation_enabled=False,
            options=RobustEstimatorOptions(method=RobustEstimatorMethod.MSAC, seed=2),
        )
        calibrator.estimate()

        np.testing.assert_allclose(calibrator.estimated_bias, TRUE_BIAS, atol=1e-6)
        assert calibrator.estimated_ma.tolist() == np.zeros((3, 3)).tolist()
        assert calibrator.estimated_covariance.shape == (3, 3)

    def test_cross_coupling_only(self):
        calibrator = RobustKnownGravityNormAccelerometerCalibrator(
            readings=_make_readings(n=20, bias=np.zeros(3)),
            ground_truth_gravity_norm=GRAVITY,
            bias_estimation_enabled=False,
            options=RobustEstimatorOptions(method=RobustEstimatorMethod.RANSAC, seed=3),
        )
        calibrator.estimate()

        np.testing.assert_allclose(calibrator.estimated_ma, ma_from_params(TRUE_MA_PARAMS), atol=1e-5)
        assert calibrator.estimated_bias.tolist() == [0.0, 0.0, 0.0]

    @pytest.mark.parametrize(
        "method",
        [RobustEstimatorMethod.RANSAC, RobustEstimatorMethod.LMEDS, RobustEstimatorMethod.PROMEDS],
    )
    def test_outliers_rejected(self, method):
        outliers = (2, 11, 25)
        readings = _make_readings(outliers=outliers, seed=4)
        scores = np.ones(len(readings))
        scores[list(outliers)] = 0.2
        calibrator = RobustKnownGravityNormAccelerometerCalibrator(
            readings=readings,
            quality_scores=scores,
            ground_truth_gravity_norm=GRAVITY,
            options=RobustEstimatorOptions(method=method, keep_inliers=True, seed=5),
        )
        calibrator.estimate()

        np.testing.assert_allclose(calibrator.estimated_bias, TRUE_BIAS, atol=1e-4)
        inliers = calibrator.inliers_data.inliers
        assert not any(inliers[i] for i in outliers)
        assert calibrator.inliers_data.num_inliers == len(readings) - len(outliers)

    def test_outliers_rejected_without_refinement(self):
        outliers = (2, 11, 25)
        calibrator = RobustKnownGravityNormAccelerometerCalibrator(
            readings=_make_readings(outliers=outliers, seed=4),
            ground_truth_gravity_norm=GRAVITY,
            options=RobustEstimatorOptions(
                method=RobustEstimatorMethod.RANSAC, refine_result=False, keep_inliers=True, seed=5
            ),
        )
        calibrator.estimate()

        np.testing.assert_allclose(calibrator.estimated_bias, TRUE_BIAS, atol=1e-4)
        assert np.linalg.norm(calibrator.estimated_bias) < GRAVITY
        inliers = calibrator.inliers_data.inliers
        assert not any(inliers[i] for i in outliers)

    def test_locked_from_listener(self):
        class Listener(RobustEstimatorListener):
            errors = 0

            def on_estimate_start(self, estimator):
                try:
                    estimator.ground_truth_gravity_norm = 1.0
                except LockedError:
                    Listener.errors += 1

        calibrator = RobustKnownGravityNormAccelerometerCalibrator(
            readings=_make_readings(),
            ground_truth_gravity_norm=GRAVITY,
            listener=Listener(),
            options=RobustEstimatorOptions(method=RobustEstimatorMethod.RANSAC, seed=6),
        )
        calibrator.estimate()

        assert Listener.errors == 1
        assert calibrator.ground_truth_gravity_norm == GRAVITY

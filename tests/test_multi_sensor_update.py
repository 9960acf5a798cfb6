import pytest
import numpy as np
import sys
import os

# Add the src directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from sigma_fusion.fusion import (
    DimensionMismatch,
    GaussianBelief,
    InvalidSensorCount,
    MultiSensorSigmaPointUpdate,
    SigmaPointUpdate,
    SingularCovariance,
    UnscentedQuadrature,
    update,
)
from sigma_fusion.models import (
    BearingSensor,
    FactorizedObservationModel,
    IdentitySensor,
    LinearObservationModel,
    LocalObservationModel,
    RangeSensor,
)


RANGE_SENSOR_POSITIONS = np.array([[50.0, 0.0], [0.0, 50.0], [-50.0, 0.0], [0.0, -50.0]])
BEARING_SENSOR_POSITIONS = np.array([[-50.0, 0.0], [0.0, -50.0], [0.0, 50.0], [-40.0, -30.0]])


class NoiselessDoubling(LocalObservationModel):
    """Observation 2x that ignores its noise argument."""

    def observation(self, state, noise, sensor_id):
        return 2.0 * state

    def state_dimension(self):
        return 1

    def noise_dimension(self):
        return 1

    def observation_dimension(self):
        return 1


def kalman_posterior(prior_mean, prior_cov, H, R, measurements):
    """Closed-form posterior for N linear sensors y_i = H x + v_i."""
    R_inv = np.linalg.inv(R)
    information = np.linalg.inv(prior_cov) + len(measurements) * H.T @ R_inv @ H
    covariance = np.linalg.inv(information)
    correction = sum(H.T @ R_inv @ (y - H @ prior_mean) for y in measurements)
    return prior_mean + covariance @ correction, covariance


@pytest.fixture
def range_prior():
    return GaussianBelief(np.array([3.0, -2.0, 1.0, 0.5]), np.diag([4.0, 4.0, 1.0, 1.0]))


@pytest.fixture
def range_model():
    return FactorizedObservationModel(RangeSensor(RANGE_SENSOR_POSITIONS, noise_std=0.5), 4)


@pytest.fixture
def range_measurement():
    target = np.array([4.0, -1.0])
    ranges = np.linalg.norm(target - RANGE_SENSOR_POSITIONS, axis=1)
    return ranges + np.array([0.3, -0.2, 0.1, -0.4])


class TestScalarScenario:
    """Three identical unit-variance sensors observing a scalar state"""

    def test_additive_scalar_posterior(self):
        """Test x0=0, P0=1, R=1, N=3, y=1 gives P=0.25 and x=0.75"""
        model = FactorizedObservationModel(LinearObservationModel([[1.0]], [[1.0]]), 3)
        prior = GaussianBelief([0.0], [[1.0]])

        posterior = update(model, UnscentedQuadrature(), prior, np.ones(3))

        np.testing.assert_allclose(posterior.covariance, [[0.25]], atol=1e-12)
        np.testing.assert_allclose(posterior.mean, [0.75], atol=1e-12)

    def test_non_additive_scalar_posterior(self):
        """Test the non-additive path reproduces the same posterior"""
        model = FactorizedObservationModel(IdentitySensor([[1.0]]), 3)
        prior = GaussianBelief([0.0], [[1.0]])

        posterior = update(model, UnscentedQuadrature(), prior, np.ones(3))

        np.testing.assert_allclose(posterior.covariance, [[0.25]], atol=1e-12)
        np.testing.assert_allclose(posterior.mean, [0.75], atol=1e-12)

    def test_prior_is_not_modified(self):
        """Test the update returns a new belief and leaves the prior alone"""
        model = FactorizedObservationModel(LinearObservationModel([[1.0]], [[1.0]]), 3)
        prior = GaussianBelief([0.0], [[1.0]])

        update(model, UnscentedQuadrature(), prior, np.ones(3))

        np.testing.assert_array_equal(prior.mean, [0.0])
        np.testing.assert_array_equal(prior.covariance, [[1.0]])


class TestLinearGaussianExactness:
    """Test agreement with the closed-form Kalman filter for linear sensors"""

    H = np.array([[1.0, 0.0, 0.5], [0.0, 1.0, -1.0]])
    R = np.array([[0.5, 0.1], [0.1, 0.8]])

    @pytest.mark.parametrize("alpha,beta,kappa", [
        (1.0, 2.0, 0.0),
        (0.5, 2.0, 1.0),
        (1.0, 0.0, 3.0),
    ])
    def test_matches_closed_form(self, alpha, beta, kappa):
        """Test the posterior is exact for any valid unscented scaling"""
        prior_mean = np.array([1.0, -1.0, 0.5])
        prior_cov = np.array([[2.0, 0.3, 0.0], [0.3, 1.5, 0.2], [0.0, 0.2, 1.0]])
        measurements = [np.array([1.2, -1.8]), np.array([0.9, -1.2]), np.array([1.5, -1.5])]

        model = FactorizedObservationModel(LinearObservationModel(self.H, self.R), 3)
        posterior = update(model, UnscentedQuadrature(alpha, beta, kappa),
                           GaussianBelief(prior_mean, prior_cov), np.concatenate(measurements))

        expected_mean, expected_cov = kalman_posterior(prior_mean, prior_cov, self.H, self.R, measurements)
        np.testing.assert_allclose(posterior.mean, expected_mean, atol=1e-9)
        np.testing.assert_allclose(posterior.covariance, expected_cov, atol=1e-9)

    def test_matches_joint_update(self):
        """Test the information form equals one stacked Kalman update"""
        prior = GaussianBelief([0.5, 0.0, -0.5], np.diag([1.0, 2.0, 3.0]))
        model = FactorizedObservationModel(LinearObservationModel(self.H, self.R), 4)
        measurement = np.array([0.4, 0.1, 0.7, -0.2, 0.3, 0.5, 0.6, -0.1])
        quadrature = UnscentedQuadrature()

        fused = MultiSensorSigmaPointUpdate(quadrature)(model, prior, measurement)
        joint = SigmaPointUpdate(quadrature)(model, prior, measurement)

        np.testing.assert_allclose(fused.mean, joint.mean, atol=1e-9)
        np.testing.assert_allclose(fused.covariance, joint.covariance, atol=1e-9)

    def test_additive_and_non_additive_agree(self):
        """Test LinearObservationModel(I, R) and IdentitySensor(R) give the same posterior"""
        R = np.array([[0.4, 0.1], [0.1, 0.3]])
        prior = GaussianBelief([1.0, 2.0], [[1.0, 0.2], [0.2, 2.0]])
        measurement = np.array([1.1, 1.9, 0.8, 2.3])
        quadrature = UnscentedQuadrature()

        additive = update(FactorizedObservationModel(LinearObservationModel(np.eye(2), R), 2),
                          quadrature, prior, measurement)
        non_additive = update(FactorizedObservationModel(IdentitySensor(R), 2),
                              quadrature, prior, measurement)

        np.testing.assert_allclose(additive.mean, non_additive.mean, atol=1e-9)
        np.testing.assert_allclose(additive.covariance, non_additive.covariance, atol=1e-9)

    def test_stacked_state(self):
        """Test a stacked prior where each sensor observes its own component"""
        model = FactorizedObservationModel(IdentitySensor([[1.0]]), 3)
        prior = GaussianBelief(np.zeros(3), np.diag([1.0, 2.0, 4.0]))

        posterior = update(model, UnscentedQuadrature(), prior, np.ones(3))

        np.testing.assert_allclose(posterior.covariance, np.diag([0.5, 2.0 / 3.0, 0.8]), atol=1e-9)
        np.testing.assert_allclose(posterior.mean, [0.5, 2.0 / 3.0, 0.8], atol=1e-9)


class TestSingleSensorEquivalence:
    """Test N=1 reduces to the standard sigma-point update"""

    def test_range_sensor(self, range_prior, range_measurement):
        """Test the additive path for one range sensor"""
        local = RangeSensor(RANGE_SENSOR_POSITIONS[:1], noise_std=0.5)
        quadrature = UnscentedQuadrature()

        fused = MultiSensorSigmaPointUpdate(quadrature)(
            FactorizedObservationModel(local, 1), range_prior, range_measurement[:1])
        single = SigmaPointUpdate(quadrature)(local, range_prior, range_measurement[:1], sensor_id=0)

        np.testing.assert_allclose(fused.mean, single.mean, rtol=1e-8, atol=1e-9)
        np.testing.assert_allclose(fused.covariance, single.covariance, rtol=1e-8, atol=1e-9)

    def test_bearing_sensor(self, range_prior):
        """Test the non-additive path for one bearing sensor"""
        local = BearingSensor(BEARING_SENSOR_POSITIONS[:1], noise_std=0.02)
        measurement = np.array([0.05])
        quadrature = UnscentedQuadrature(alpha=0.8, beta=2.0, kappa=0.0)

        fused = MultiSensorSigmaPointUpdate(quadrature)(
            FactorizedObservationModel(local, 1), range_prior, measurement)
        single = SigmaPointUpdate(quadrature)(local, range_prior, measurement, sensor_id=0)

        np.testing.assert_allclose(fused.mean, single.mean, rtol=1e-8, atol=1e-9)
        np.testing.assert_allclose(fused.covariance, single.covariance, rtol=1e-8, atol=1e-9)


class TestFusionProperties:
    """Test structural properties of the information-form fusion"""

    def test_sensor_order_does_not_matter(self, range_model, range_prior, range_measurement):
        """Test accumulating sensors in a different order gives the same posterior"""
        policy = MultiSensorSigmaPointUpdate(UnscentedQuadrature())

        forward = policy(range_model, range_prior, range_measurement)
        shuffled = policy(range_model, range_prior, range_measurement, sensor_order=[3, 1, 0, 2])

        np.testing.assert_allclose(forward.mean, shuffled.mean, rtol=1e-10, atol=1e-12)
        np.testing.assert_allclose(forward.covariance, shuffled.covariance, rtol=1e-10, atol=1e-12)

    def test_information_gain_is_monotone(self, range_prior, range_measurement):
        """Test each additional sensor shrinks the covariance in the PSD order"""
        local = RangeSensor(RANGE_SENSOR_POSITIONS, noise_std=0.5)
        policy = MultiSensorSigmaPointUpdate(UnscentedQuadrature())

        previous = range_prior.covariance
        for k in range(1, 5):
            posterior = policy(FactorizedObservationModel(local, k), range_prior, range_measurement[:k])
            assert np.min(np.linalg.eigvalsh(previous - posterior.covariance)) > -1e-9
            assert np.trace(posterior.covariance) < np.trace(previous)
            previous = posterior.covariance

    def test_posterior_is_symmetric_positive_definite(self, range_model, range_prior, range_measurement):
        """Test the posterior covariance is symmetric with positive eigenvalues"""
        posterior = MultiSensorSigmaPointUpdate(UnscentedQuadrature())(
            range_model, range_prior, range_measurement)

        P = posterior.covariance
        np.testing.assert_array_equal(P, P.T)
        assert np.all(np.linalg.eigvalsh(P) > 0)
        assert posterior.is_positive_definite()

    def test_range_measurements_improve_position(self, range_model, range_prior, range_measurement):
        """Test fusing four ranges moves the estimate toward the target"""
        target = np.array([4.0, -1.0])
        posterior = MultiSensorSigmaPointUpdate(UnscentedQuadrature())(
            range_model, range_prior, range_measurement)

        prior_error = np.linalg.norm(range_prior.mean[:2] - target)
        posterior_error = np.linalg.norm(posterior.mean[:2] - target)
        assert posterior_error < prior_error
        # Velocity is unobserved and uncorrelated with position in the prior
        np.testing.assert_allclose(posterior.mean[2:], range_prior.mean[2:], atol=1e-9)

    def test_bearing_fusion(self, range_prior):
        """Test the non-additive multi-sensor path produces a valid posterior"""
        target = np.array([3.5, -1.5])
        offsets = target - BEARING_SENSOR_POSITIONS
        measurement = np.arctan2(offsets[:, 1], offsets[:, 0])
        model = FactorizedObservationModel(BearingSensor(BEARING_SENSOR_POSITIONS, noise_std=0.01), 4)

        posterior = MultiSensorSigmaPointUpdate(UnscentedQuadrature())(model, range_prior, measurement)

        assert posterior.is_positive_definite()
        assert np.trace(posterior.covariance[:2, :2]) < np.trace(range_prior.covariance[:2, :2])
        assert np.linalg.norm(posterior.mean[:2] - target) < np.linalg.norm(range_prior.mean[:2] - target)

    def test_threaded_matches_sequential(self, range_model, range_prior, range_measurement):
        """Test per-sensor contributions on a thread pool give identical results"""
        quadrature = UnscentedQuadrature()

        sequential = MultiSensorSigmaPointUpdate(quadrature, max_workers=1)(
            range_model, range_prior, range_measurement)
        threaded = MultiSensorSigmaPointUpdate(quadrature, max_workers=3)(
            range_model, range_prior, range_measurement)

        np.testing.assert_allclose(threaded.mean, sequential.mean)
        np.testing.assert_allclose(threaded.covariance, sequential.covariance)

    def test_noise_override(self):
        """Test an explicit local noise distribution replaces the model's"""
        model = FactorizedObservationModel(LinearObservationModel([[1.0]], [[1.0]]), 3)
        prior = GaussianBelief([0.0], [[1.0]])
        policy = MultiSensorSigmaPointUpdate(UnscentedQuadrature(), noise=GaussianBelief([0.0], [[3.0]]))

        posterior = policy(model, prior, np.ones(3))

        # Information 1 + 3 * (1/3) = 2
        np.testing.assert_allclose(posterior.covariance, [[0.5]], atol=1e-12)
        np.testing.assert_allclose(posterior.mean, [0.5], atol=1e-12)


class TestUpdateErrors:
    """Test error reporting of the multi-sensor update"""

    def test_invalid_sensor_count(self):
        """Test non-positive or non-integer sensor counts are rejected"""
        local = LinearObservationModel([[1.0]], [[1.0]])
        for count in (0, -2, 2.5, True):
            with pytest.raises(InvalidSensorCount):
                FactorizedObservationModel(local, count)

    def test_measurement_dimension_mismatch(self, range_model, range_prior):
        """Test a joint measurement of the wrong length is rejected"""
        with pytest.raises(DimensionMismatch):
            update(range_model, UnscentedQuadrature(), range_prior, np.ones(3))

    def test_prior_dimension_mismatch(self, range_model):
        """Test a prior matching neither the local nor the stacked state is rejected"""
        prior = GaussianBelief(np.zeros(5), np.eye(5))
        with pytest.raises(DimensionMismatch):
            update(range_model, UnscentedQuadrature(), prior, np.ones(4))

    def test_noise_dimension_mismatch(self, range_model, range_prior, range_measurement):
        """Test a noise override of the wrong dimension is rejected"""
        policy = MultiSensorSigmaPointUpdate(UnscentedQuadrature(), noise=GaussianBelief.standard_normal(2))
        with pytest.raises(DimensionMismatch):
            policy(range_model, range_prior, range_measurement)

    def test_non_finite_measurement(self, range_model, range_prior):
        """Test NaN measurements are rejected"""
        with pytest.raises(ValueError):
            update(range_model, UnscentedQuadrature(), range_prior, np.array([1.0, np.nan, 1.0, 1.0]))

    def test_singular_prior(self, range_model, range_measurement):
        """Test a singular prior covariance raises SingularCovariance"""
        prior = GaussianBelief(np.zeros(4), np.diag([1.0, 1.0, 0.0, 1.0]))
        with pytest.raises(SingularCovariance):
            update(range_model, UnscentedQuadrature(), prior, range_measurement)

    def test_ill_conditioned_state_covariance(self):
        """Test a prior that factorizes but gives an ill-conditioned c_xx"""
        model = FactorizedObservationModel(LinearObservationModel([[1.0, 0.0]], [[1.0]]), 2)
        prior = GaussianBelief([0.0, 0.0], np.diag([1.0, 1e-14]))

        with pytest.raises(SingularCovariance) as info:
            update(model, UnscentedQuadrature(), prior, np.array([0.5, 0.4]))
        assert info.value.what == "c_xx"

    def test_singular_innovation_covariance(self):
        """Test a noiseless sensor yields a singular innovation covariance"""
        model = FactorizedObservationModel(NoiselessDoubling(), 2)
        prior = GaussianBelief([0.0], [[1.0]])
        with pytest.raises(SingularCovariance) as info:
            update(model, UnscentedQuadrature(), prior, np.array([0.5, 0.4]))
        assert isinstance(info.value, np.linalg.LinAlgError)
        assert "innovation" in info.value.what

    def test_requires_factorized_model(self, range_prior):
        """Test a local model is rejected with TypeError"""
        policy = MultiSensorSigmaPointUpdate(UnscentedQuadrature())
        with pytest.raises(TypeError):
            policy(RangeSensor(RANGE_SENSOR_POSITIONS, 0.5), range_prior, np.ones(1))

    def test_invalid_sensor_order(self, range_model, range_prior, range_measurement):
        """Test a sensor order that is not a permutation is rejected"""
        policy = MultiSensorSigmaPointUpdate(UnscentedQuadrature())
        with pytest.raises(ValueError):
            policy(range_model, range_prior, range_measurement, sensor_order=[0, 1, 1, 2])

    def test_invalid_worker_count(self):
        """Test max_workers below one is rejected"""
        with pytest.raises(ValueError):
            MultiSensorSigmaPointUpdate(UnscentedQuadrature(), max_workers=0)


class TestAngularResiduals:
    """Test bearing updates on either side of the ±π discontinuity"""

    @staticmethod
    def _posterior(policy_name, target_x):
        sensor = BearingSensor(np.zeros((1, 2)), noise_std=0.01, state_dimension=2)
        prior = GaussianBelief([target_x, -0.05], np.diag([0.01, 0.01]))
        measurement = np.array([np.arctan2(0.0, target_x)])
        quadrature = UnscentedQuadrature()
        if policy_name == "multi":
            return MultiSensorSigmaPointUpdate(quadrature)(
                FactorizedObservationModel(sensor, 1), prior, measurement)
        return SigmaPointUpdate(quadrature)(sensor, prior, measurement, sensor_id=0)

    @pytest.mark.parametrize("policy_name", ["multi", "single"])
    def test_mirrored_geometry_gives_mirrored_posterior(self, policy_name):
        """Test a target behind the sensor (bearing near π) is fused like one in front"""
        front = self._posterior(policy_name, 10.0)
        behind = self._posterior(policy_name, -10.0)
        mirror = np.diag([-1.0, 1.0])

        np.testing.assert_allclose(behind.mean, mirror @ front.mean, atol=1e-9)
        np.testing.assert_allclose(behind.covariance, mirror @ front.covariance @ mirror, atol=1e-12)

    @pytest.mark.parametrize("policy_name", ["multi", "single"])
    def test_bearing_near_pi_moves_estimate_toward_measurement(self, policy_name):
        """Test the cross-track estimate is pulled halfway to the measured bearing"""
        behind = self._posterior(policy_name, -10.0)

        # Prior and measurement carry equal cross-track variance (0.1 m)²
        assert behind.mean[1] == pytest.approx(-0.025, abs=2e-3)
        assert behind.covariance[1, 1] == pytest.approx(0.005, rel=0.05)


class TestUpdateInPlace:
    """Test the atomic in-place variant"""

    def test_success_writes_posterior(self):
        """Test a successful update overwrites the belief"""
        model = FactorizedObservationModel(LinearObservationModel([[1.0]], [[1.0]]), 3)
        belief = GaussianBelief([0.0], [[1.0]])

        result = MultiSensorSigmaPointUpdate(UnscentedQuadrature()).update_in_place(
            model, belief, np.ones(3))

        assert result is belief
        np.testing.assert_allclose(belief.mean, [0.75], atol=1e-12)
        np.testing.assert_allclose(belief.covariance, [[0.25]], atol=1e-12)

    def test_failed_update_leaves_belief_unchanged(self):
        """Test a failing update does not touch the belief"""
        policy = MultiSensorSigmaPointUpdate(UnscentedQuadrature())
        belief = GaussianBelief([0.3], [[2.0]])

        with pytest.raises(DimensionMismatch):
            policy.update_in_place(
                FactorizedObservationModel(LinearObservationModel([[1.0]], [[1.0]]), 3),
                belief, np.ones(2))
        with pytest.raises(SingularCovariance):
            policy.update_in_place(FactorizedObservationModel(NoiselessDoubling(), 2),
                                   belief, np.ones(2))

        np.testing.assert_array_equal(belief.mean, [0.3])
        np.testing.assert_array_equal(belief.covariance, [[2.0]])


if __name__ == "__main__":
    pytest.main([__file__])

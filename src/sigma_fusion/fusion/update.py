"""
Sigma-point measurement updates.

Single-Sensor Update (Kalman gain form):
    S   = C_yy (+ R)
    K   = C_xy S⁻¹
    μ⁺  = μ_x + K (y - μ_y)
    P⁺  = C_xx - K S Kᵀ

Multi-Sensor Update (information form):
    For N conditionally independent sensors sharing one state, each sensor
    contributes an additive term to the information matrix and vector:

    A_i  = C_yx C_xx⁻¹                         regression of y_i on x
    Σ_i  = C_yy - C_yx C_xx⁻¹ C_xy (+ R)       covariance of y_i given x
    T_i  = A_iᵀ Σ_i⁻¹
    C    = C_xx⁻¹ + Σ T_i A_i
    D    = Σ T_i (y_i - μ_y,i)
    P⁺   = C⁻¹
    μ⁺   = μ_x + P⁺ D

    This costs N inversions of size dim(y_i) plus one of size dim(x),
    instead of one inversion of size N·dim(y_i).

Residuals y - μ_y go through the observation model's ``residual``, and the
propagated points are re-expressed about the centre point with the same
residual before moments are taken. Periodic observations such as bearings
are therefore averaged and differenced on the branch of the centre point.

Both updates are pure: they return a new belief and never touch the prior.
"""

import numpy as np
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Sequence, Tuple, Union
import logging

from .belief import GaussianBelief
from .errors import DimensionMismatch
from .linalg import DEFAULT_MAX_CONDITION_NUMBER, spd_inverse, symmetrize
from .point_set import PointSet
from .quadrature import UnscentedQuadrature
from ..models.observation import FactorizedObservationModel, LocalObservationModel

logger = logging.getLogger(__name__)


def _check_noise(noise: GaussianBelief, expected_dim: int) -> GaussianBelief:
    if noise.dimension != expected_dim:
        raise DimensionMismatch(
            f"Noise distribution has dimension {noise.dimension}, model expects {expected_dim}")
    return noise


def _unwrap_about_centre(points: PointSet,
                         residual: Callable[[np.ndarray, np.ndarray], np.ndarray]) -> PointSet:
    """
    Re-express propagated points as centre + residual(point, centre).

    For periodic observations this moves every point onto the branch of the
    centre point before moments are taken. For plain subtraction it leaves
    the points unchanged.
    """
    centre = points.point(0)
    columns = [centre + residual(points.points[:, i], centre) for i in range(points.count)]
    return PointSet(np.column_stack(columns), points.mean_weights,
                    points.covariance_weights, points.count)



class SigmaPointUpdate:
    """
    Standard sigma-point update for a single observation model.

    Accepts a local observation model (evaluated for one sensor index) or a
    factorized model, in which case all sensors are stacked into one joint
    observation and one joint innovation covariance is inverted.
    """

    name = "SigmaPointUpdate"
    description = "Sigma point based Kalman update for a single (possibly joint) observation model"

    def __init__(self, quadrature: UnscentedQuadrature, noise: Optional[GaussianBelief] = None,
                 max_condition_number: float = DEFAULT_MAX_CONDITION_NUMBER):
        """
        Args:
            quadrature: Sigma-point rule
            noise: Noise distribution override; defaults to the model's own
            max_condition_number: Threshold above which S is treated as singular
        """
        self.quadrature = quadrature
        self.noise = noise
        self.max_condition_number = max_condition_number

    def __call__(self, model: Union[LocalObservationModel, FactorizedObservationModel],
                 prior: GaussianBelief, measurement: np.ndarray,
                 sensor_id: int = 0) -> GaussianBelief:
        """
        Compute the posterior belief.

        Args:
            model: Local or factorized observation model
            prior: Prior state belief
            measurement: Observation vector
            sensor_id: Sensor index for local models

        Returns:
            Posterior GaussianBelief

        Raises:
            DimensionMismatch: If the measurement or noise has the wrong size
            SingularCovariance: If a covariance cannot be factorized or inverted
        """
        measurement = np.atleast_1d(np.asarray(measurement, dtype=float)).ravel()

        if isinstance(model, FactorizedObservationModel):
            measurement = model.validate_measurement(measurement)
            noise = self.noise or model.noise_distribution()
            if model.is_additive:
                def h(x):
                    return np.concatenate([model.expected_sensor_observation(x, i)
                                           for i in range(model.sensor_count)])
            else:
                h = model.predict_observation
        else:
            if measurement.shape[0] != model.observation_dimension():
                raise DimensionMismatch(
                    f"Measurement must have {model.observation_dimension()} elements, "
                    f"got {measurement.shape[0]}")
            noise = self.noise or model.noise_distribution()
            if model.is_additive:
                def h(x):
                    return model.expected_observation(x, sensor_id)
            else:
                def h(x, w):
                    return model.observation(x, w, sensor_id)

        _check_noise(noise, model.noise_dimension())

        if model.is_additive:
            p_X, _ = self.quadrature.transform_to_points(prior)
            p_Y = self.quadrature.propagate_points(h, p_X)
        else:
            p_X, p_Q = self.quadrature.transform_to_points(prior, noise)
            p_Y = self.quadrature.propagate_points(h, p_X, p_Q)
        p_Y = _unwrap_about_centre(p_Y, model.residual)

        mu_x = p_X.mean()
        mu_y = p_Y.mean()
        c_xx = p_X.covariance()
        c_xy = p_X.covariance_with(p_Y)
        S = p_Y.covariance()
        if model.is_additive:
            S = S + noise.covariance

        S_inv = spd_inverse(S, what="innovation covariance",
                            max_condition_number=self.max_condition_number)
        K = c_xy @ S_inv

        innovation = model.residual(measurement, mu_y)
        mean = mu_x + K @ innovation
        covariance = symmetrize(c_xx - K @ S @ K.T)

        logger.debug("Sigma point update: |innovation|=%.3g, trace(P)=%.3g",
                     np.linalg.norm(innovation), np.trace(covariance))
        return GaussianBelief(mean, covariance)


class MultiSensorSigmaPointUpdate:
    """
    Information-form sigma-point update for N IID sensors.

    One quadrature transform over [x; w_local] is shared by every sensor.
    For each sensor the points are propagated through that sensor's local
    observation function and the resulting information contribution is
    accumulated. Per-sensor contributions are independent and can be
    evaluated on a thread pool; they are always summed in sensor order.

    Additive local models skip the noise augmentation: the points span the
    state only and the local noise covariance R is added to each Σ_i.

    Attributes:
        quadrature: Sigma-point rule
        noise: Local noise distribution override
        max_workers: Thread count for per-sensor contributions (1 = sequential)
        max_condition_number: Threshold above which a matrix is treated as singular
    """

    name = "MultiSensorSigmaPointUpdate"
    description = ("Multi-sensor sigma point update for a factorized observation model "
                   "of IID local sensors, fused in information form")

    def __init__(self, quadrature: UnscentedQuadrature, noise: Optional[GaussianBelief] = None,
                 max_workers: int = 1,
                 max_condition_number: float = DEFAULT_MAX_CONDITION_NUMBER):
        """
        Args:
            quadrature: Sigma-point rule
            noise: Local (single sensor) noise distribution; defaults to the
                   local model's noise distribution
            max_workers: Threads used for per-sensor contributions
            max_condition_number: Singularity threshold for inversions

        Raises:
            ValueError: If max_workers is less than one
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.quadrature = quadrature
        self.noise = noise
        self.max_workers = int(max_workers)
        self.max_condition_number = max_condition_number

    def _inverse(self, matrix: np.ndarray, what: str, reference_scale: float = 0.0) -> np.ndarray:
        return spd_inverse(matrix, what=what, max_condition_number=self.max_condition_number,
                           reference_scale=reference_scale)

    def _sensor_order(self, model: FactorizedObservationModel,
                      sensor_order: Optional[Sequence[int]]) -> Sequence[int]:
        if sensor_order is None:
            return range(model.sensor_count)
        order = [int(i) for i in sensor_order]
        if sorted(order) != list(range(model.sensor_count)):
            raise ValueError(
                f"Sensor order must be a permutation of 0..{model.sensor_count - 1}, got {order}")
        return order

    def __call__(self, model: FactorizedObservationModel, prior: GaussianBelief,
                 measurement: np.ndarray,
                 sensor_order: Optional[Sequence[int]] = None) -> GaussianBelief:
        """
        Fuse a joint measurement of all sensors into the prior.

        Args:
            model: Factorized observation model of N IID sensors
            prior: Prior state belief
            measurement: Concatenated joint measurement (N × local observation dim)
            sensor_order: Optional permutation of sensor ids to accumulate in

        Returns:
            Posterior GaussianBelief

        Raises:
            TypeError: If model is not a FactorizedObservationModel
            DimensionMismatch: If prior, noise or measurement sizes disagree with the model
            SingularCovariance: If the joint, state or any innovation covariance
                                is not invertible
        """
        if not isinstance(model, FactorizedObservationModel):
            raise TypeError(
                f"Multi-sensor update requires a FactorizedObservationModel, got {type(model).__name__}")

        local = model.local_model
        if prior.dimension not in (local.state_dimension(), model.state_dimension()):
            raise DimensionMismatch(
                f"Prior has dimension {prior.dimension}, model expects "
                f"{local.state_dimension()} (shared) or {model.state_dimension()} (stacked)")
        measurement = model.validate_measurement(measurement)
        noise = _check_noise(self.noise or local.noise_distribution(), local.noise_dimension())
        order = self._sensor_order(model, sensor_order)
        additive = model.is_additive

        # One transform serves every sensor because the local noise is IID
        if additive:
            p_X, p_Q = self.quadrature.transform_to_points(prior)
            noise_covariance = noise.covariance
        else:
            p_X, p_Q = self.quadrature.transform_to_points(prior, noise)
            noise_covariance = None

        mu_x = p_X.mean()
        c_xx = p_X.covariance()
        c_xx_inv = self._inverse(c_xx, "c_xx")
        obsrv_dim = local.observation_dimension()

        def contribution(sensor_id: int) -> Tuple[np.ndarray, np.ndarray]:
            if additive:
                def h(x):
                    return model.expected_sensor_observation(x, sensor_id)
                p_Y = self.quadrature.propagate_points(h, p_X)
            else:
                p_Y = self.quadrature.propagate_points(model.sensor_function(sensor_id), p_X, p_Q)

            if p_Y.dimension != obsrv_dim:
                raise DimensionMismatch(
                    f"Sensor {sensor_id} produced {p_Y.dimension}-dimensional observations, "
                    f"expected {obsrv_dim}")

            def residual(observation, reference):
                return model.sensor_residual(observation, reference, sensor_id)

            p_Y = _unwrap_about_centre(p_Y, residual)
            mu_y = p_Y.mean()
            c_yy = p_Y.covariance()
            c_xy = p_X.covariance_with(p_Y)
            c_yx = c_xy.T

            A_i = c_yx @ c_xx_inv
            if noise_covariance is not None:
                c_yy = c_yy + noise_covariance
            # Schur complement is judged against the scale of C_yy it was taken from
            innovation_cov = c_yy - c_yx @ c_xx_inv @ c_xy
            T_i = A_i.T @ self._inverse(innovation_cov, f"innovation covariance of sensor {sensor_id}",
                                        reference_scale=np.linalg.norm(c_yy, 2))

            y_i = measurement[sensor_id * obsrv_dim:(sensor_id + 1) * obsrv_dim]
            return T_i @ A_i, T_i @ residual(y_i, mu_y)

        if self.max_workers > 1 and model.sensor_count > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, model.sensor_count)) as executor:
                contributions = list(executor.map(contribution, order))
        else:
            contributions = [contribution(i) for i in order]

        C = c_xx_inv.copy()
        D = np.zeros_like(mu_x)
        for information_matrix, information_vector in contributions:
            C += information_matrix
            D += information_vector

        covariance = self._inverse(C, "information matrix")
        mean = mu_x + covariance @ D

        logger.debug("Multi-sensor update fused %d sensors, trace(P)=%.3g",
                     model.sensor_count, np.trace(covariance))
        return GaussianBelief(mean, covariance)

    def update_in_place(self, model: FactorizedObservationModel, belief: GaussianBelief,
                        measurement: np.ndarray,
                        sensor_order: Optional[Sequence[int]] = None) -> GaussianBelief:
        """
        Fuse a joint measurement and write the posterior into ``belief``.

        The belief is only written after the whole computation succeeded.

        Returns:
            The same belief object, now holding the posterior
        """
        posterior = self(model, belief, measurement, sensor_order)
        belief.set(posterior.mean, posterior.covariance)
        return belief


def update(factorized_model: FactorizedObservationModel, quadrature: UnscentedQuadrature,
           prior_belief: GaussianBelief, joint_measurement: np.ndarray,
           noise: Optional[GaussianBelief] = None, max_workers: int = 1) -> GaussianBelief:
    """
    Multi-sensor sigma-point update.

    Args:
        factorized_model: N IID local sensors
        quadrature: Sigma-point rule
        prior_belief: Prior state belief
        joint_measurement: Concatenated measurement of all sensors
        noise: Local noise distribution override
        max_workers: Threads used for per-sensor contributions

    Returns:
        Posterior GaussianBelief
    """
    policy = MultiSensorSigmaPointUpdate(quadrature, noise=noise, max_workers=max_workers)
    return policy(factorized_model, prior_belief, joint_measurement)


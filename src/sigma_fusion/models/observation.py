"""
Observation model interfaces and the factorized IID sensor adapter.

A local observation model maps a state and a noise sample to one sensor's
observation:

    y_i = h(x, w_i; i)

The sensor index i is always passed explicitly; models never hold a
"current sensor" field.

For N independent, identically distributed sensors the joint model is

    y = [h(x₀, w₀; 0); h(x₁, w₁; 1); ...; h(x_{N-1}, w_{N-1}; N-1)]

where each sensor consumes its own slice of the noise vector and either
the shared state or its own slice of a stacked state.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Callable

from ..fusion.belief import GaussianBelief
from ..fusion.errors import DimensionMismatch, InvalidSensorCount
from ..fusion.linalg import block_diag, require_square


class LocalObservationModel(ABC):
    """
    Observation model of a single sensor.

    Subclasses declare whether their noise enters additively through the
    ``is_additive`` class attribute. Non-additive models receive standard
    normal noise samples and map them internally.
    """

    is_additive = False

    @abstractmethod
    def observation(self, state: np.ndarray, noise: np.ndarray, sensor_id: int) -> np.ndarray:
        """Observation of sensor ``sensor_id`` for the given state and noise sample."""

    @abstractmethod
    def state_dimension(self) -> int:
        """Dimension of the state this model consumes."""

    @abstractmethod
    def noise_dimension(self) -> int:
        """Dimension of the noise sample this model consumes."""

    @abstractmethod
    def observation_dimension(self) -> int:
        """Dimension of the produced observation."""

    def noise_distribution(self) -> GaussianBelief:
        """Distribution of the noise argument, N(0, I) unless overridden."""
        return GaussianBelief.standard_normal(self.noise_dimension())

    def residual(self, observation: np.ndarray, reference: np.ndarray) -> np.ndarray:
        """
        Difference observation - reference in the observation space.

        Models with periodic components (angles) override this so that
        residuals are taken on the shortest path.
        """
        return observation - reference


class AdditiveObservationModel(LocalObservationModel):
    """
    Observation model of the form y = h(x; i) + v,  v ~ N(0, R).

    Attributes:
        noise_covariance: Measurement noise covariance R
    """

    is_additive = True

    def __init__(self, noise_covariance: np.ndarray):
        """
        Args:
            noise_covariance: Square measurement noise covariance R

        Raises:
            DimensionMismatch: If R is not square
        """
        self._noise_covariance = require_square(noise_covariance, "noise covariance")

    @property
    def noise_covariance(self) -> np.ndarray:
        return self._noise_covariance.copy()

    @abstractmethod
    def expected_observation(self, state: np.ndarray, sensor_id: int) -> np.ndarray:
        """Noise-free observation h(x; i)."""

    def observation(self, state: np.ndarray, noise: np.ndarray, sensor_id: int) -> np.ndarray:
        return self.expected_observation(state, sensor_id) + noise

    def noise_dimension(self) -> int:
        return self._noise_covariance.shape[0]

    def observation_dimension(self) -> int:
        return self._noise_covariance.shape[0]

    def noise_distribution(self) -> GaussianBelief:
        return GaussianBelief(np.zeros(self.noise_dimension()), self._noise_covariance)


class LinearObservationModel(AdditiveObservationModel):
    """
    Linear Gaussian sensor y = H x + v, identical for every sensor index.
    """

    def __init__(self, observation_matrix: np.ndarray, noise_covariance: np.ndarray):
        """
        Args:
            observation_matrix: m×n matrix H
            noise_covariance: m×m covariance R

        Raises:
            DimensionMismatch: If H and R disagree on the observation dimension
        """
        super().__init__(noise_covariance)
        self._H = np.atleast_2d(np.asarray(observation_matrix, dtype=float))
        if self._H.shape[0] != self._noise_covariance.shape[0]:
            raise DimensionMismatch(
                f"H has {self._H.shape[0]} rows but R is "
                f"{self._noise_covariance.shape[0]}x{self._noise_covariance.shape[0]}")

    @property
    def observation_matrix(self) -> np.ndarray:
        return self._H.copy()

    def expected_observation(self, state: np.ndarray, sensor_id: int) -> np.ndarray:
        return self._H @ state

    def state_dimension(self) -> int:
        return self._H.shape[1]


class FactorizedObservationModel:
    """
    N homogeneous local sensors presented as one joint observation model.

    The aggregate view (``state_dimension``, ``noise_dimension``,
    ``observation_dimension``, ``predict_observation``) stacks N copies of
    the local model. The per-sensor entry point ``sensor_observation`` is
    what the multi-sensor update uses; it evaluates one sensor at a time.

    State handling:
        A state of the local dimension is shared by all sensors. A state
        of the aggregate dimension (local × N) is sliced per sensor.

    Attributes:
        local_model: The shared local observation model
        sensor_count: Number of sensors N
    """

    def __init__(self, local_model: LocalObservationModel, sensor_count: int):
        """
        Args:
            local_model: Observation model shared by every sensor
            sensor_count: Number of sensors N ≥ 1

        Raises:
            InvalidSensorCount: If sensor_count is not a positive integer
        """
        if isinstance(sensor_count, bool) or not isinstance(sensor_count, (int, np.integer)):
            raise InvalidSensorCount(f"Sensor count must be an integer, got {sensor_count!r}")
        if sensor_count <= 0:
            raise InvalidSensorCount(f"Sensor count must be positive, got {sensor_count}")
        self.local_model = local_model
        self.sensor_count = int(sensor_count)

    @property
    def is_additive(self) -> bool:
        return self.local_model.is_additive

    def observation_dimension(self) -> int:
        return self.local_model.observation_dimension() * self.sensor_count

    def state_dimension(self) -> int:
        return self.local_model.state_dimension() * self.sensor_count

    def noise_dimension(self) -> int:
        return self.local_model.noise_dimension() * self.sensor_count

    def _check_sensor(self, sensor_id: int) -> None:
        if not 0 <= sensor_id < self.sensor_count:
            raise ValueError(f"Sensor id must be in [0, {self.sensor_count}), got {sensor_id}")

    def _slice(self, vector: np.ndarray, local_dim: int, sensor_id: int, what: str) -> np.ndarray:
        vector = np.atleast_1d(np.asarray(vector, dtype=float))
        if vector.shape[0] == local_dim:
            return vector
        if vector.shape[0] == local_dim * self.sensor_count:
            return vector[sensor_id * local_dim:(sensor_id + 1) * local_dim]
        raise DimensionMismatch(
            f"{what} must have {local_dim} or {local_dim * self.sensor_count} "
            f"elements, got {vector.shape[0]}")

    def state_slice(self, state: np.ndarray, sensor_id: int) -> np.ndarray:
        """State seen by sensor ``sensor_id``."""
        self._check_sensor(sensor_id)
        return self._slice(state, self.local_model.state_dimension(), sensor_id, "State")

    def noise_slice(self, noise: np.ndarray, sensor_id: int) -> np.ndarray:
        """Noise sample consumed by sensor ``sensor_id``."""
        self._check_sensor(sensor_id)
        return self._slice(noise, self.local_model.noise_dimension(), sensor_id, "Noise")

    def measurement_slice(self, measurement: np.ndarray, sensor_id: int) -> np.ndarray:
        """
        Part of a joint measurement produced by sensor ``sensor_id``.

        Raises:
            DimensionMismatch: If the measurement is not of the aggregate dimension
        """
        self._check_sensor(sensor_id)
        measurement = self.validate_measurement(measurement)
        dim = self.local_model.observation_dimension()
        return measurement[sensor_id * dim:(sensor_id + 1) * dim]

    def validate_measurement(self, measurement: np.ndarray) -> np.ndarray:
        """
        Coerce a joint measurement to a float vector of the aggregate dimension.

        Raises:
            DimensionMismatch: If the size is wrong
            ValueError: If it contains non-finite values
        """
        measurement = np.atleast_1d(np.asarray(measurement, dtype=float)).ravel()
        if measurement.shape[0] != self.observation_dimension():
            raise DimensionMismatch(
                f"Joint measurement must have {self.observation_dimension()} elements "
                f"({self.sensor_count} sensors x {self.local_model.observation_dimension()}), "
                f"got {measurement.shape[0]}")
        if not np.all(np.isfinite(measurement)):
            raise ValueError("Joint measurement contains NaN or infinite values")
        return measurement

    def sensor_observation(self, state: np.ndarray, noise: np.ndarray, sensor_id: int) -> np.ndarray:
        """
        Evaluate the local model for one sensor.

        Args:
            state: Shared state (local dimension) or stacked state (aggregate dimension)
            noise: Local noise sample or stacked noise vector
            sensor_id: Sensor index in [0, N)

        Returns:
            Observation of that sensor
        """
        return np.atleast_1d(self.local_model.observation(
            self.state_slice(state, sensor_id),
            self.noise_slice(noise, sensor_id),
            sensor_id))

    def expected_sensor_observation(self, state: np.ndarray, sensor_id: int) -> np.ndarray:
        """Noise-free observation of one sensor; additive local models only."""
        if not self.is_additive:
            raise TypeError("Expected observations require an additive local model")
        return np.atleast_1d(self.local_model.expected_observation(
            self.state_slice(state, sensor_id), sensor_id))

    def sensor_residual(self, observation: np.ndarray, reference: np.ndarray,
                        sensor_id: int) -> np.ndarray:
        """Residual of one sensor's observation, as defined by the local model."""
        self._check_sensor(sensor_id)
        return np.atleast_1d(self.local_model.residual(
            np.atleast_1d(observation), np.atleast_1d(reference)))

    def residual(self, observation: np.ndarray, reference: np.ndarray) -> np.ndarray:
        """Residual of two joint observations, taken sensor by sensor."""
        dim = self.local_model.observation_dimension()
        return np.concatenate([
            self.sensor_residual(observation[i * dim:(i + 1) * dim],
                                 reference[i * dim:(i + 1) * dim], i)
            for i in range(self.sensor_count)
        ])

    def sensor_function(self, sensor_id: int) -> Callable[[np.ndarray, np.ndarray], np.ndarray]:
        """Local observation function h(x, w) bound to ``sensor_id``."""
        self._check_sensor(sensor_id)

        def h(state: np.ndarray, noise: np.ndarray) -> np.ndarray:
            return self.sensor_observation(state, noise, sensor_id)

        return h

    def predict_observation(self, state: np.ndarray, noise: np.ndarray) -> np.ndarray:
        """
        Joint observation of all sensors.

        Args:
            state: Shared or stacked state
            noise: Stacked noise vector of the aggregate noise dimension

        Returns:
            Concatenated observation of the aggregate dimension

        Raises:
            DimensionMismatch: If the noise vector is not of the aggregate dimension
        """
        noise = np.atleast_1d(np.asarray(noise, dtype=float))
        if noise.shape[0] != self.noise_dimension():
            raise DimensionMismatch(
                f"Noise must have {self.noise_dimension()} elements, got {noise.shape[0]}")
        return np.concatenate([
            self.sensor_observation(state, noise, i) for i in range(self.sensor_count)
        ])

    def noise_distribution(self) -> GaussianBelief:
        """Distribution of the stacked noise vector: N copies of the local noise."""
        local = self.local_model.noise_distribution()
        return GaussianBelief(
            np.tile(local.mean, self.sensor_count),
            block_diag(*[local.covariance] * self.sensor_count))

    def __repr__(self) -> str:
        return (f"FactorizedObservationModel({type(self.local_model).__name__}, "
                f"sensors={self.sensor_count})")

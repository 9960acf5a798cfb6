"""
Concrete local sensor models.

Provides:
- IdentitySensor: y = x + L w with w ~ N(0, I), L Lᵀ = R (non-additive form)
- RangeSensor: distance from sensor i to the target position, additive noise
- BearingSensor: planar bearing from sensor i to the target, non-additive noise
- wrap_angle utility

Range and bearing sensors are placed at fixed positions, one row per
sensor; the sensor index selects the row.
"""

import numpy as np

from .observation import AdditiveObservationModel, LocalObservationModel
from ..fusion.errors import DimensionMismatch
from ..fusion.linalg import require_square, spd_square_root


def wrap_angle(angle):
    """Wrap angle(s) to [-pi, pi)."""
    return (np.asarray(angle) + np.pi) % (2 * np.pi) - np.pi


class IdentitySensor(LocalObservationModel):
    """
    Direct noisy observation of the full state.

    The noise argument is a standard normal sample mapped through the
    Cholesky factor of R, so the sensor exercises the non-additive path.
    """

    def __init__(self, noise_covariance: np.ndarray):
        """
        Args:
            noise_covariance: n×n covariance R of the observation noise
        """
        self._noise_covariance = require_square(noise_covariance, "noise covariance")
        self._noise_root = spd_square_root(self._noise_covariance, what="noise covariance")

    @property
    def noise_covariance(self) -> np.ndarray:
        return self._noise_covariance.copy()

    def observation(self, state: np.ndarray, noise: np.ndarray, sensor_id: int) -> np.ndarray:
        return state + self._noise_root @ noise

    def state_dimension(self) -> int:
        return self._noise_covariance.shape[0]

    def noise_dimension(self) -> int:
        return self._noise_covariance.shape[0]

    def observation_dimension(self) -> int:
        return self._noise_covariance.shape[0]


class _PositionedSensor:
    """Mixin holding per-sensor positions and the state indices of the target position."""

    def _init_positions(self, sensor_positions: np.ndarray, position_indices, state_dimension: int):
        positions = np.atleast_2d(np.asarray(sensor_positions, dtype=float))
        indices = np.asarray(position_indices, dtype=int).ravel()
        if positions.shape[1] != indices.shape[0]:
            raise DimensionMismatch(
                f"Sensor positions have {positions.shape[1]} coordinates but "
                f"{indices.shape[0]} position indices were given")
        if np.any(indices < 0) or np.any(indices >= state_dimension):
            raise ValueError(f"Position indices {indices.tolist()} out of range for "
                             f"state dimension {state_dimension}")
        self._positions = positions
        self._indices = indices
        self._state_dimension = int(state_dimension)

    @property
    def sensor_positions(self) -> np.ndarray:
        return self._positions.copy()

    def _offset(self, state: np.ndarray, sensor_id: int) -> np.ndarray:
        if not 0 <= sensor_id < self._positions.shape[0]:
            raise ValueError(f"No position configured for sensor {sensor_id}")
        return state[self._indices] - self._positions[sensor_id]

    def state_dimension(self) -> int:
        return self._state_dimension


class RangeSensor(_PositionedSensor, AdditiveObservationModel):
    """
    Range measurement r_i = ‖p - s_i‖ + v,  v ~ N(0, σ²).

    Attributes:
        sensor_positions: (N, d) array of sensor positions s_i
    """

    def __init__(self, sensor_positions: np.ndarray, noise_std: float,
                 position_indices=(0, 1), state_dimension: int = 4):
        """
        Args:
            sensor_positions: (N, d) sensor positions
            noise_std: Range noise standard deviation σ
            position_indices: State indices holding the target position
            state_dimension: Full state dimension

        Raises:
            ValueError: If noise_std is not positive
        """
        if noise_std <= 0:
            raise ValueError(f"Noise standard deviation must be positive, got {noise_std}")
        AdditiveObservationModel.__init__(self, np.array([[noise_std ** 2]]))
        self._init_positions(sensor_positions, position_indices, state_dimension)

    def expected_observation(self, state: np.ndarray, sensor_id: int) -> np.ndarray:
        return np.array([np.linalg.norm(self._offset(state, sensor_id))])


class BearingSensor(_PositionedSensor, LocalObservationModel):
    """
    Planar bearing θ_i = atan2(Δy, Δx) + σ w,  w ~ N(0, 1).

    The bearing is wrapped to [-π, π). Residuals are wrapped as well, so
    sigma points and measurements on opposite sides of ±π stay close.
    """

    def __init__(self, sensor_positions: np.ndarray, noise_std: float,
                 position_indices=(0, 1), state_dimension: int = 4):
        if noise_std <= 0:
            raise ValueError(f"Noise standard deviation must be positive, got {noise_std}")
        self.noise_std = float(noise_std)
        self._init_positions(sensor_positions, position_indices, state_dimension)
        if self._indices.shape[0] != 2:
            raise DimensionMismatch("Bearing sensors require exactly two position indices")

    def observation(self, state: np.ndarray, noise: np.ndarray, sensor_id: int) -> np.ndarray:
        dx, dy = self._offset(state, sensor_id)
        return np.array([wrap_angle(np.arctan2(dy, dx) + self.noise_std * noise[0])])

    def residual(self, observation: np.ndarray, reference: np.ndarray) -> np.ndarray:
        return wrap_angle(np.asarray(observation) - np.asarray(reference))

    def noise_dimension(self) -> int:
        return 1

    def observation_dimension(self) -> int:
        return 1

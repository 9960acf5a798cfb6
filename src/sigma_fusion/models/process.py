"""
Process (state transition) models for the prediction stage.

    x(k+1) = f(x(k), w(k), dt)

Additive models have the form x(k+1) = f(x(k), dt) + w(k), w ~ N(0, Q(dt)).
"""

import numpy as np
from abc import ABC, abstractmethod

from ..fusion.belief import GaussianBelief
from ..fusion.errors import DimensionMismatch
from ..fusion.linalg import require_square


class ProcessModel(ABC):
    """State transition model interface."""

    is_additive = False

    @abstractmethod
    def state(self, state: np.ndarray, noise: np.ndarray, dt: float) -> np.ndarray:
        """Propagate a state and noise sample over dt."""

    @abstractmethod
    def state_dimension(self) -> int:
        """State dimension."""

    @abstractmethod
    def noise_dimension(self) -> int:
        """Process noise dimension."""

    def noise_distribution(self, dt: float) -> GaussianBelief:
        return GaussianBelief.standard_normal(self.noise_dimension())


class AdditiveProcessModel(ProcessModel):
    """Process model x(k+1) = f(x(k), dt) + w,  w ~ N(0, Q(dt))."""

    is_additive = True

    @abstractmethod
    def expected_state(self, state: np.ndarray, dt: float) -> np.ndarray:
        """Noise-free transition f(x, dt)."""

    @abstractmethod
    def noise_covariance(self, dt: float) -> np.ndarray:
        """Process noise covariance Q(dt)."""

    def state(self, state: np.ndarray, noise: np.ndarray, dt: float) -> np.ndarray:
        return self.expected_state(state, dt) + noise

    def noise_dimension(self) -> int:
        return self.state_dimension()

    def noise_distribution(self, dt: float) -> GaussianBelief:
        return GaussianBelief(np.zeros(self.state_dimension()), self.noise_covariance(dt))


class LinearProcessModel(AdditiveProcessModel):
    """
    Time-invariant linear model x(k+1) = F x(k) + w,  w ~ N(0, Q).

    Q is applied per step regardless of dt.
    """

    def __init__(self, transition_matrix: np.ndarray, noise_covariance: np.ndarray):
        self._F = require_square(transition_matrix, "transition matrix")
        self._Q = require_square(noise_covariance, "process noise covariance")
        if self._F.shape != self._Q.shape:
            raise DimensionMismatch(
                f"F is {self._F.shape} but Q is {self._Q.shape}")

    def expected_state(self, state: np.ndarray, dt: float) -> np.ndarray:
        return self._F @ state

    def noise_covariance(self, dt: float) -> np.ndarray:
        return self._Q.copy()

    def state_dimension(self) -> int:
        return self._F.shape[0]


class ConstantVelocityModel(AdditiveProcessModel):
    """
    Constant velocity (CV) model in d spatial dimensions.

    State: x = [p₁..p_d, v₁..v_d]

    F = [[I, dt·I],
         [0,   I ]]

    Piecewise constant white noise acceleration:
    Q = σ_a² [[dt⁴/4 I, dt³/2 I],
              [dt³/2 I, dt²   I]]
    """

    def __init__(self, spatial_dimension: int = 2, sigma_a: float = 1.0):
        """
        Args:
            spatial_dimension: Number of position axes d
            sigma_a: Acceleration noise standard deviation

        Raises:
            ValueError: If a parameter is not positive
        """
        if spatial_dimension <= 0:
            raise ValueError(f"Spatial dimension must be positive, got {spatial_dimension}")
        if sigma_a <= 0:
            raise ValueError(f"sigma_a must be positive, got {sigma_a}")
        self.spatial_dimension = int(spatial_dimension)
        self.sigma_a = float(sigma_a)

    def transition_matrix(self, dt: float) -> np.ndarray:
        d = self.spatial_dimension
        F = np.eye(2 * d)
        F[:d, d:] = np.eye(d) * dt
        return F

    def expected_state(self, state: np.ndarray, dt: float) -> np.ndarray:
        return self.transition_matrix(dt) @ state

    def noise_covariance(self, dt: float) -> np.ndarray:
        d = self.spatial_dimension
        q = self.sigma_a ** 2
        Q = np.zeros((2 * d, 2 * d))
        Q[:d, :d] = np.eye(d) * q * dt ** 4 / 4
        Q[:d, d:] = np.eye(d) * q * dt ** 3 / 2
        Q[d:, :d] = np.eye(d) * q * dt ** 3 / 2
        Q[d:, d:] = np.eye(d) * q * dt ** 2
        return Q

    def state_dimension(self) -> int:
        return 2 * self.spatial_dimension

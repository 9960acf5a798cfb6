"""
Gaussian belief representation for Kalman-family filters.

A belief is fully characterized by its first two moments:

    p(x) = N(x; μ, P)

Where:
    - μ ∈ ℝⁿ is the mean vector
    - P ∈ ℝⁿˣⁿ is the covariance matrix, symmetric positive semi-definite

Invariants:
    - P = Pᵀ (enforced by symmetrization within tolerance)
    - All entries of μ and P are finite
    - μ and P are only ever written together, after validation

License: MIT
"""

import numpy as np
from typing import Tuple

from .errors import DimensionMismatch, SingularCovariance
from .linalg import (
    DEFAULT_MAX_CONDITION_NUMBER,
    condition_number,
    spd_inverse,
    symmetrize,
)

# Relative asymmetry tolerated before a covariance is rejected
SYMMETRY_TOLERANCE = 1e-8


class GaussianBelief:
    """
    Mean / covariance container with validation and diagnostics.

    Mathematical Properties:
        - Symmetry: P = Pᵀ
        - Positive semi-definiteness: P ⪰ 0
        - Strict positive definiteness is required by every operation that
          inverts or factorizes P; those raise SingularCovariance otherwise

    Both accessors return copies, so a belief can only change through
    :meth:`set`, which writes mean and covariance atomically.
    """

    def __init__(self, mean: np.ndarray, covariance: np.ndarray):
        """
        Initialize belief from mean and covariance.

        Args:
            mean: n-element mean vector
            covariance: n×n covariance matrix

        Raises:
            DimensionMismatch: If shapes are inconsistent
            ValueError: If values are non-finite or covariance is asymmetric
        """
        self._mean, self._covariance = self._validate(mean, covariance)

    @classmethod
    def standard_normal(cls, dimension: int) -> 'GaussianBelief':
        """
        Create N(0, I) of the given dimension.

        Args:
            dimension: Positive dimension

        Returns:
            Standard normal belief
        """
        if dimension <= 0:
            raise DimensionMismatch(f"Dimension must be positive, got {dimension}")
        return cls(np.zeros(dimension), np.eye(dimension))

    @staticmethod
    def _validate(mean: np.ndarray, covariance: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        mean = np.atleast_1d(np.asarray(mean, dtype=float)).copy()
        covariance = np.atleast_2d(np.asarray(covariance, dtype=float)).copy()

        if mean.ndim != 1:
            raise DimensionMismatch(f"Mean must be a vector, got shape {mean.shape}")
        n = mean.shape[0]
        if covariance.shape != (n, n):
            raise DimensionMismatch(
                f"Covariance shape must be ({n}, {n}), got {covariance.shape}")

        if not np.all(np.isfinite(mean)):
            raise ValueError("Mean contains NaN or infinite values")
        if not np.all(np.isfinite(covariance)):
            raise ValueError("Covariance contains NaN or infinite values")

        scale = max(np.max(np.abs(covariance)), 1.0)
        asymmetry = np.max(np.abs(covariance - covariance.T))
        if asymmetry > SYMMETRY_TOLERANCE * scale:
            raise ValueError(f"Covariance is not symmetric (max asymmetry {asymmetry:.2e})")

        return mean, symmetrize(covariance)

    @property
    def dimension(self) -> int:
        """State dimension n."""
        return self._mean.shape[0]

    @property
    def mean(self) -> np.ndarray:
        """Copy of the mean vector μ."""
        return self._mean.copy()

    @property
    def covariance(self) -> np.ndarray:
        """Copy of the covariance matrix P."""
        return self._covariance.copy()

    def set(self, mean: np.ndarray, covariance: np.ndarray) -> None:
        """
        Replace mean and covariance together.

        Both are validated before anything is written, so on failure the
        belief keeps its previous moments.

        Args:
            mean: New mean vector (same dimension)
            covariance: New covariance matrix

        Raises:
            DimensionMismatch: If the dimension would change
            ValueError: If values are non-finite or covariance is asymmetric
        """
        new_mean, new_covariance = self._validate(mean, covariance)
        if new_mean.shape[0] != self.dimension:
            raise DimensionMismatch(
                f"Belief dimension is {self.dimension}, got {new_mean.shape[0]}")
        self._mean, self._covariance = new_mean, new_covariance

    def copy(self) -> 'GaussianBelief':
        return GaussianBelief(self._mean, self._covariance)

    def standard_deviation(self) -> np.ndarray:
        """Marginal standard deviations √diag(P)."""
        return np.sqrt(np.clip(np.diag(self._covariance), 0.0, None))

    def condition_number(self) -> float:
        """
        Condition number κ(P) = λ_max / λ_min.

        Returns:
            Condition number, inf if P is singular
        """
        return condition_number(self._covariance)

    def is_well_conditioned(self, max_condition_number: float = DEFAULT_MAX_CONDITION_NUMBER) -> bool:
        return self.condition_number() < max_condition_number

    def is_positive_definite(self) -> bool:
        """True if all eigenvalues of P are strictly positive."""
        return bool(np.min(np.linalg.eigvalsh(self._covariance)) > 0.0)

    def mahalanobis_distance(self, x: np.ndarray) -> float:
        """
        Squared Mahalanobis distance d² = (x - μ)ᵀ P⁻¹ (x - μ).

        Raises:
            DimensionMismatch: If x has the wrong size
            SingularCovariance: If P cannot be inverted
        """
        x = np.atleast_1d(np.asarray(x, dtype=float))
        if x.shape != self._mean.shape:
            raise DimensionMismatch(f"Expected vector of size {self.dimension}, got {x.shape}")
        residual = x - self._mean
        return float(residual @ spd_inverse(self._covariance, what="belief covariance") @ residual)

    def log_likelihood(self, x: np.ndarray) -> float:
        """
        Log density log N(x; μ, P).

        Raises:
            SingularCovariance: If P is not positive definite
        """
        sign, logdet = np.linalg.slogdet(self._covariance)
        if sign <= 0:
            raise SingularCovariance("Belief covariance is not positive definite",
                                     what="belief covariance")
        d2 = self.mahalanobis_distance(x)
        return float(-0.5 * (d2 + logdet + self.dimension * np.log(2.0 * np.pi)))

    def __repr__(self) -> str:
        std = self.standard_deviation()
        return (f"GaussianBelief(mean={np.array2string(self._mean, precision=3)}, "
                f"std={np.array2string(std, precision=3)})")

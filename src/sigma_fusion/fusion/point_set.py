"""
Weighted sigma-point sets.

A point set stores K points of dimension D as the columns of a D×K matrix
together with two weight vectors of length K:

    X = [χ₀, χ₁, ..., χ_{K-1}] ∈ ℝᴰˣᴷ
    mean(X)        = Σ wᵐᵢ χᵢ
    centered(X)    = X - mean(X) 1ᵀ
    cov(A, B)      = Ã diag(wᶜ) B̃ᵀ

Two point sets produced by the same quadrature share their weights, which
is what makes cross-covariances between them meaningful.

Mean weights always sum to one. Covariance weights need not: the unscented
rule adds (1 - α² + β) to the centre weight, so with α=1, β=2 they sum to 3.
"""

import numpy as np
from typing import Optional

from .errors import DimensionMismatch

WEIGHT_SUM_TOLERANCE = 1e-9


class PointSet:
    """
    Immutable weighted point set with derived moments.

    Attributes:
        dimension: Point dimension D
        count: Number of points K
    """

    def __init__(self, points: np.ndarray, mean_weights: np.ndarray,
                 covariance_weights: np.ndarray, expected_count: Optional[int] = None):
        """
        Args:
            points: D×K matrix, one point per column
            mean_weights: K weights summing to one
            covariance_weights: K weights used for second moments; their sum
                                is not constrained
            expected_count: Point count required by the generating rule

        Raises:
            DimensionMismatch: If K disagrees with the weights or expected_count
            ValueError: If points or weights are non-finite, or mean weights
                        do not sum to one
        """
        points = np.asarray(points, dtype=float)
        if points.ndim == 1:
            points = points.reshape(1, -1)
        mean_weights = np.asarray(mean_weights, dtype=float).ravel()
        covariance_weights = np.asarray(covariance_weights, dtype=float).ravel()

        count = points.shape[1]
        if expected_count is not None and count != expected_count:
            raise DimensionMismatch(f"Expected {expected_count} points, got {count}")
        if mean_weights.shape[0] != count or covariance_weights.shape[0] != count:
            raise DimensionMismatch(
                f"Weight vectors must have {count} entries, got "
                f"{mean_weights.shape[0]} and {covariance_weights.shape[0]}")

        if not np.all(np.isfinite(points)):
            raise ValueError("Point set contains NaN or infinite values")
        if not (np.all(np.isfinite(mean_weights)) and np.all(np.isfinite(covariance_weights))):
            raise ValueError("Point weights contain NaN or infinite values")
        if abs(np.sum(mean_weights) - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Mean weights must sum to 1, got {np.sum(mean_weights):.12f}")

        self._points = points.copy()
        self._mean_weights = mean_weights.copy()
        self._covariance_weights = covariance_weights.copy()
        for array in (self._points, self._mean_weights, self._covariance_weights):
            array.setflags(write=False)

    @property
    def points(self) -> np.ndarray:
        """Read-only D×K point matrix."""
        return self._points

    @property
    def mean_weights(self) -> np.ndarray:
        return self._mean_weights

    @property
    def covariance_weights(self) -> np.ndarray:
        return self._covariance_weights

    @property
    def dimension(self) -> int:
        return self._points.shape[0]

    @property
    def count(self) -> int:
        return self._points.shape[1]

    def point(self, index: int) -> np.ndarray:
        """Copy of the index-th point."""
        return self._points[:, index].copy()

    def mean(self) -> np.ndarray:
        """Weighted mean Σ wᵐᵢ χᵢ."""
        return self._points @ self._mean_weights

    def centered_points(self) -> np.ndarray:
        """Points with the weighted mean subtracted from every column."""
        return self._points - self.mean()[:, np.newaxis]

    def covariance_with(self, other: 'PointSet') -> np.ndarray:
        """
        Weighted cross-covariance Ã diag(wᶜ) B̃ᵀ.

        The covariance weights of this set are used for both operands, so
        ``covariance_with(self)`` is symmetric by construction.

        Raises:
            DimensionMismatch: If the sets have different point counts
        """
        if other.count != self.count:
            raise DimensionMismatch(
                f"Point sets have different sizes: {self.count} vs {other.count}")
        a = self.centered_points()
        b = a if other is self else other.centered_points()
        return (a * self._covariance_weights) @ b.T

    def covariance(self) -> np.ndarray:
        """Weighted auto-covariance."""
        return self.covariance_with(self)

    def __repr__(self) -> str:
        return f"PointSet(dimension={self.dimension}, count={self.count})"

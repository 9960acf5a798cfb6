"""
Dense linear-algebra helpers for Gaussian filtering.

Thin wrappers around numpy / scipy.linalg that turn numerical failures into
:class:`SingularCovariance` and keep covariance matrices symmetric.

Numerical Conventions:
    - Matrix square roots are lower Cholesky factors: S Sᵀ = P
    - SPD inverses are computed from the Cholesky factor (cho_factor/cho_solve)
    - A matrix is treated as singular when κ(P) exceeds max_condition_number
"""

import numpy as np
import scipy.linalg
from typing import Sequence

from .errors import DimensionMismatch, SingularCovariance

DEFAULT_MAX_CONDITION_NUMBER = 1e12


def symmetrize(matrix: np.ndarray) -> np.ndarray:
    """Return (M + Mᵀ) / 2."""
    return (matrix + matrix.T) * 0.5


def require_square(matrix: np.ndarray, what: str = "matrix") -> np.ndarray:
    """
    Coerce to a 2D float array and check that it is square.

    Raises:
        DimensionMismatch: If the array is not square
    """
    matrix = np.atleast_2d(np.asarray(matrix, dtype=float))
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise DimensionMismatch(f"{what} must be square, got shape {matrix.shape}")
    return matrix


def condition_number(matrix: np.ndarray) -> float:
    """Condition number κ(M), inf if it cannot be computed."""
    try:
        return float(np.linalg.cond(matrix))
    except np.linalg.LinAlgError:
        return float('inf')


def spd_square_root(matrix: np.ndarray, what: str = "covariance") -> np.ndarray:
    """
    Lower-triangular Cholesky factor S with S Sᵀ = matrix.

    Args:
        matrix: Symmetric positive definite matrix
        what: Name used in error messages

    Returns:
        Lower-triangular square root

    Raises:
        SingularCovariance: If the matrix is not positive definite
    """
    matrix = symmetrize(require_square(matrix, what))
    try:
        return scipy.linalg.cholesky(matrix, lower=True)
    except np.linalg.LinAlgError as exc:
        raise SingularCovariance(
            f"{what} is not positive definite: {exc}", what=what,
            condition_number=condition_number(matrix)) from exc


def require_well_conditioned(matrix: np.ndarray, what: str = "covariance",
                             max_condition_number: float = DEFAULT_MAX_CONDITION_NUMBER,
                             reference_scale: float = 0.0) -> np.ndarray:
    """
    Check that a symmetric matrix is positive definite within tolerance.

    A matrix is rejected when its smallest eigenvalue is not above
    max(λ_max, reference_scale) / max_condition_number. The reference scale
    lets callers judge a difference of covariances (e.g. a Schur complement)
    against the magnitude of the terms it was computed from.

    Returns:
        The symmetrized matrix

    Raises:
        SingularCovariance: If the matrix is non-finite, singular or ill-conditioned
    """
    matrix = symmetrize(require_square(matrix, what))
    if not np.all(np.isfinite(matrix)):
        raise SingularCovariance(f"{what} contains NaN or infinite values", what=what)

    eigenvalues = np.linalg.eigvalsh(matrix)
    scale = max(float(eigenvalues[-1]), float(reference_scale))
    if eigenvalues[0] <= scale / max_condition_number:
        kappa = scale / eigenvalues[0] if eigenvalues[0] > 0 else float('inf')
        raise SingularCovariance(
            f"{what} is singular or ill-conditioned: λ_min={eigenvalues[0]:.2e}, "
            f"scale={scale:.2e}", what=what, condition_number=kappa)
    return matrix


def spd_inverse(matrix: np.ndarray, what: str = "covariance",
                max_condition_number: float = DEFAULT_MAX_CONDITION_NUMBER,
                reference_scale: float = 0.0) -> np.ndarray:
    """
    Inverse of a symmetric positive definite matrix.

    Args:
        matrix: Symmetric positive definite matrix
        what: Name used in error messages
        max_condition_number: Largest acceptable ratio of scale to λ_min
        reference_scale: Magnitude the matrix is compared against

    Returns:
        Symmetric inverse

    Raises:
        SingularCovariance: If the matrix is ill-conditioned or not positive definite
    """
    matrix = require_well_conditioned(matrix, what, max_condition_number, reference_scale)

    try:
        factor = scipy.linalg.cho_factor(matrix, lower=True)
    except np.linalg.LinAlgError as exc:
        raise SingularCovariance(
            f"{what} is not positive definite: {exc}", what=what,
            condition_number=condition_number(matrix)) from exc

    inverse = scipy.linalg.cho_solve(factor, np.eye(matrix.shape[0]))
    return symmetrize(inverse)


def block_diag(*blocks: Sequence[np.ndarray]) -> np.ndarray:
    """Block-diagonal matrix from square blocks."""
    return scipy.linalg.block_diag(*[np.atleast_2d(b) for b in blocks])

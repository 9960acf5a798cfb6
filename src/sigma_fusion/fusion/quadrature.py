"""
Unscented sigma-point quadrature.

The unscented transform approximates the distribution of y = f(x, w) for
Gaussian x and w by pushing a deterministic set of weighted points through f.

Sigma Points (augmented dimension n = dim(x) + dim(w)):
    z = [x; w],  P_z = blockdiag(P_x, Q)
    λ = α²(n + κ) - n
    χ₀     = μ_z
    χᵢ     = μ_z + (√((n + λ) P_z))ᵢ        i = 1..n
    χᵢ₊ₙ   = μ_z - (√((n + λ) P_z))ᵢ        i = 1..n

Weights:
    Wᵐ₀ = λ / (n + λ)
    Wᶜ₀ = λ / (n + λ) + (1 - α² + β)
    Wᵐᵢ = Wᶜᵢ = 1 / (2(n + λ))             i = 1..2n

The weights characterize the shape of the input Gaussian and are reused
unchanged for every propagated point set.

References:
    - Julier, S. J., Uhlmann, J. K. (2004). Unscented Filtering and Nonlinear Estimation
    - Wan, E. A., van der Merwe, R. (2000). The Unscented Kalman Filter for Nonlinear Estimation
"""

import numpy as np
from typing import Callable, Optional, Tuple

from .belief import GaussianBelief
from .errors import DimensionMismatch
from .linalg import block_diag, require_well_conditioned, spd_square_root
from .point_set import PointSet


class UnscentedQuadrature:
    """
    Unscented transform with (α, β, κ) scaling.

    Parameters are fixed at construction; nothing is derived per call except
    what depends on the augmented dimension.

    Attributes:
        alpha: Spread of the points around the mean
        beta: Prior knowledge of the distribution (2 is optimal for Gaussians)
        kappa: Secondary scaling parameter
        max_condition_number: If set, joint covariances with a larger κ are
                              rejected before any points are generated
    """

    name = "UnscentedQuadrature"
    description = "Unscented transform based sigma point quadrature (2n+1 points)"

    def __init__(self, alpha: float = 1.0, beta: float = 2.0, kappa: float = 0.0,
                 max_condition_number: Optional[float] = None):
        """
        Args:
            alpha: Spread parameter, must be positive
            beta: Distribution prior parameter
            kappa: Secondary scaling parameter
            max_condition_number: Conditioning limit for the joint covariance;
                                  None checks only that Cholesky succeeds

        Raises:
            ValueError: If alpha is not positive, a parameter is non-finite or
                        max_condition_number does not exceed 1
        """
        if not all(np.isfinite([alpha, beta, kappa])):
            raise ValueError("Quadrature parameters must be finite")
        if alpha <= 0:
            raise ValueError(f"alpha must be positive, got {alpha}")
        self.alpha = float(alpha)
        self.beta = float(beta)
        self.kappa = float(kappa)
        if max_condition_number is not None and not max_condition_number > 1:
            raise ValueError(
                f"max_condition_number must exceed 1, got {max_condition_number}")
        self.max_condition_number = max_condition_number

    @staticmethod
    def number_of_points(dimension: int) -> int:
        """Number of sigma points 2n + 1 for an augmented dimension n."""
        if dimension <= 0:
            raise DimensionMismatch(f"Augmented dimension must be positive, got {dimension}")
        return 2 * dimension + 1

    def _lambda(self, dimension: int) -> float:
        lam = self.alpha ** 2 * (dimension + self.kappa) - dimension
        if dimension + lam <= 0:
            raise ValueError(
                f"Invalid unscented scaling: n + λ = {dimension + lam:.3g} for n={dimension}")
        return lam

    def weights(self, dimension: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Mean and covariance weights for an augmented dimension.

        Args:
            dimension: Augmented dimension n

        Returns:
            Tuple of (mean_weights, covariance_weights), each of length 2n + 1
        """
        count = self.number_of_points(dimension)
        lam = self._lambda(dimension)

        mean_weights = np.full(count, 0.5 / (dimension + lam))
        covariance_weights = mean_weights.copy()
        mean_weights[0] = lam / (dimension + lam)
        covariance_weights[0] = lam / (dimension + lam) + (1.0 - self.alpha ** 2 + self.beta)
        return mean_weights, covariance_weights

    def spread(self, dimension: int) -> float:
        """Column scaling √(n + λ) applied to the covariance square root."""
        return float(np.sqrt(dimension + self._lambda(dimension)))

    def transform_to_points(self, belief: GaussianBelief,
                            noise: Optional[GaussianBelief] = None
                            ) -> Tuple[PointSet, Optional[PointSet]]:
        """
        Generate sigma points for a state belief and an optional noise distribution.

        The state and noise are treated as one joint Gaussian with
        block-diagonal covariance; its points are split back into a state
        point set and a noise point set that share the same weights.

        Args:
            belief: Gaussian over the state
            noise: Gaussian over the noise, or None for state-only points

        Returns:
            Tuple of (state_points, noise_points); noise_points is None when
            no noise distribution is given

        Raises:
            SingularCovariance: If the joint covariance is not positive definite,
                                or exceeds max_condition_number when one is set
        """
        state_dim = belief.dimension
        if noise is None:
            joint_mean = belief.mean
            joint_cov = belief.covariance
        else:
            joint_mean = np.concatenate([belief.mean, noise.mean])
            joint_cov = block_diag(belief.covariance, noise.covariance)

        n = joint_mean.shape[0]
        mean_weights, covariance_weights = self.weights(n)
        if self.max_condition_number is not None:
            joint_cov = require_well_conditioned(
                joint_cov, "joint state/noise covariance", self.max_condition_number)
        root = spd_square_root(joint_cov, what="joint state/noise covariance") * self.spread(n)

        points = np.empty((n, 2 * n + 1))
        points[:, 0] = joint_mean
        points[:, 1:n + 1] = joint_mean[:, np.newaxis] + root
        points[:, n + 1:] = joint_mean[:, np.newaxis] - root

        count = self.number_of_points(n)
        state_points = PointSet(points[:state_dim], mean_weights, covariance_weights, count)
        if noise is None:
            return state_points, None
        noise_points = PointSet(points[state_dim:], mean_weights, covariance_weights, count)
        return state_points, noise_points

    def propagate_points(self, function: Callable[..., np.ndarray], state_points: PointSet,
                         noise_points: Optional[PointSet] = None) -> PointSet:
        """
        Apply a function column-wise to paired (state, noise) points.

        Args:
            function: f(x, w) -> y, or f(x) -> y when noise_points is None
            state_points: State point set
            noise_points: Noise point set with the same number of points

        Returns:
            Point set of the outputs, carrying the input weights

        Raises:
            DimensionMismatch: If the point counts differ or outputs vary in size
        """
        if noise_points is not None and noise_points.count != state_points.count:
            raise DimensionMismatch(
                f"State and noise point sets differ in size: "
                f"{state_points.count} vs {noise_points.count}")

        outputs = []
        for i in range(state_points.count):
            x = state_points.points[:, i]
            if noise_points is None:
                y = function(x)
            else:
                y = function(x, noise_points.points[:, i])
            outputs.append(np.atleast_1d(np.asarray(y, dtype=float)))

        sizes = {y.shape for y in outputs}
        if len(sizes) != 1:
            raise DimensionMismatch(f"Propagated points have inconsistent shapes: {sorted(sizes)}")

        return PointSet(np.column_stack(outputs), state_points.mean_weights,
                        state_points.covariance_weights, state_points.count)

    def integrate(self, function: Callable[..., np.ndarray], belief: GaussianBelief,
                  noise: Optional[GaussianBelief] = None) -> GaussianBelief:
        """
        Gaussian approximation of f(x, w) for x ~ belief, w ~ noise.

        Args:
            function: f(x, w) -> y, or f(x) -> y without noise
            belief: Input state belief
            noise: Optional noise distribution

        Returns:
            GaussianBelief of the output
        """
        state_points, noise_points = self.transform_to_points(belief, noise)
        output = self.propagate_points(function, state_points, noise_points)
        return GaussianBelief(output.mean(), output.covariance())

    def __repr__(self) -> str:
        return f"UnscentedQuadrature(alpha={self.alpha}, beta={self.beta}, kappa={self.kappa})"

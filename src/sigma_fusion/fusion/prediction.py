"""
Sigma-point time update.

    x⁻ = E[f(x, w, dt)],   P⁻ = Cov[f(x, w, dt)]

approximated with the unscented transform. Additive process models
propagate state-only points and add Q(dt) afterwards.
"""

import numpy as np
import logging

from .belief import GaussianBelief
from .linalg import symmetrize
from .quadrature import UnscentedQuadrature
from ..models.process import ProcessModel

logger = logging.getLogger(__name__)


class SigmaPointPrediction:
    """Sigma-point prediction policy."""

    name = "SigmaPointPrediction"
    description = "Sigma point based time update"

    def __init__(self, quadrature: UnscentedQuadrature):
        self.quadrature = quadrature

    def __call__(self, model: ProcessModel, belief: GaussianBelief, dt: float) -> GaussianBelief:
        """
        Predict the belief dt seconds ahead.

        Args:
            model: Process model
            belief: Current belief
            dt: Time step (seconds)

        Returns:
            Predicted GaussianBelief

        Raises:
            ValueError: If dt is negative
            SingularCovariance: If the belief covariance is not positive definite
        """
        if dt < 0:
            raise ValueError(f"Time step must be non-negative, got {dt}")

        if model.is_additive:
            p_X, _ = self.quadrature.transform_to_points(belief)
            p_F = self.quadrature.propagate_points(lambda x: model.expected_state(x, dt), p_X)
            covariance = p_F.covariance() + model.noise_covariance(dt)
        else:
            p_X, p_Q = self.quadrature.transform_to_points(belief, model.noise_distribution(dt))
            p_F = self.quadrature.propagate_points(lambda x, w: model.state(x, w, dt), p_X, p_Q)
            covariance = p_F.covariance()

        predicted = GaussianBelief(p_F.mean(), symmetrize(covariance))
        logger.debug("Prediction dt=%.3f, trace(P)=%.3g", dt, np.trace(predicted.covariance))
        return predicted

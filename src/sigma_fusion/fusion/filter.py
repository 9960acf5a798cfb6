"""
Gaussian filter assembled from a prediction policy, an update policy and a
sigma-point quadrature.

Filter Recursion:
    Prediction:
        p(x_k | y_{1:k-1}) ≈ N(μ⁻, P⁻)      via SigmaPointPrediction
    Update:
        p(x_k | y_{1:k})   ≈ N(μ⁺, P⁺)      via SigmaPointUpdate or
                                            MultiSensorSigmaPointUpdate

The update policy is chosen once, at construction: a factorized model of
IID sensors gets the multi-sensor information-form update, any other model
gets the standard sigma-point update. Either can be overridden explicitly.

License: MIT
"""

import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union
import logging

from .belief import GaussianBelief
from .errors import DimensionMismatch
from .linalg import DEFAULT_MAX_CONDITION_NUMBER
from .prediction import SigmaPointPrediction
from .quadrature import UnscentedQuadrature
from .update import MultiSensorSigmaPointUpdate, SigmaPointUpdate
from ..models.observation import FactorizedObservationModel, LocalObservationModel
from ..models.process import ProcessModel

logger = logging.getLogger(__name__)


class FilterState(Enum):
    """Enumeration of possible filter states for diagnostics."""
    INITIALIZING = "initializing"
    CONVERGED = "converged"
    DIVERGING = "diverging"
    ILL_CONDITIONED = "ill_conditioned"


@dataclass
class FilterDiagnostics:
    """Container for filter diagnostic information."""
    condition_number: float
    covariance_trace: float
    log_determinant: float
    correction_magnitude: float
    filter_state: FilterState
    prediction_count: int
    update_count: int


class GaussianFilter:
    """
    Sigma-point Gaussian filter with explicit policy composition.

    Key Features:
        - Any process model (additive or not) through SigmaPointPrediction
        - Single or multi-sensor measurement updates
        - Atomic belief updates: a failed update leaves the belief unchanged
        - Divergence and conditioning monitoring

    Attributes:
        process_model: State transition model
        observation_model: Local or factorized observation model
        quadrature: Sigma-point rule shared by both policies
        prediction: Prediction policy
        update_policy: Update policy
    """

    def __init__(self, process_model: ProcessModel,
                 observation_model: Union[LocalObservationModel, FactorizedObservationModel],
                 quadrature: Optional[UnscentedQuadrature] = None,
                 prediction: Optional[SigmaPointPrediction] = None,
                 update: Optional[Union[SigmaPointUpdate, MultiSensorSigmaPointUpdate]] = None,
                 max_workers: int = 1,
                 max_condition_number: float = DEFAULT_MAX_CONDITION_NUMBER,
                 divergence_threshold: float = 1e6):
        """
        Initialize the filter.

        Args:
            process_model: State transition model
            observation_model: Local or factorized observation model
            quadrature: Sigma-point rule; defaults to UnscentedQuadrature()
            prediction: Prediction policy override
            update: Update policy override
            max_workers: Threads for multi-sensor contributions
            max_condition_number: Singularity / ill-conditioning threshold
            divergence_threshold: Covariance trace treated as divergence
        """
        self.process_model = process_model
        self.observation_model = observation_model
        self.quadrature = quadrature or UnscentedQuadrature()
        self.prediction = prediction or SigmaPointPrediction(self.quadrature)

        if update is not None:
            self.update_policy = update
        elif isinstance(observation_model, FactorizedObservationModel):
            self.update_policy = MultiSensorSigmaPointUpdate(
                self.quadrature, max_workers=max_workers,
                max_condition_number=max_condition_number)
        else:
            self.update_policy = SigmaPointUpdate(
                self.quadrature, max_condition_number=max_condition_number)

        self._max_condition_number = max_condition_number
        self._divergence_threshold = divergence_threshold
        self._belief: Optional[GaussianBelief] = None
        self._prediction_count = 0
        self._update_count = 0
        self._last_correction = 0.0
        self._filter_state = FilterState.INITIALIZING

        logger.info("Gaussian filter initialized: %s + %s over %s",
                    self.prediction.name, self.update_policy.name, self.quadrature.name)

    @property
    def belief(self) -> GaussianBelief:
        """Current belief (a copy)."""
        self._require_initialized()
        return self._belief.copy()

    @property
    def initialized(self) -> bool:
        return self._belief is not None

    @property
    def filter_state(self) -> FilterState:
        return self._filter_state

    def _require_initialized(self) -> None:
        if self._belief is None:
            raise RuntimeError("Filter has not been initialized")

    def initialize(self, mean: np.ndarray, covariance: np.ndarray) -> None:
        """
        Set the initial belief.

        Raises:
            DimensionMismatch: If the dimension differs from the process model's
        """
        belief = GaussianBelief(mean, covariance)
        if belief.dimension != self.process_model.state_dimension():
            raise DimensionMismatch(
                f"Initial belief has dimension {belief.dimension}, process model "
                f"expects {self.process_model.state_dimension()}")
        self._belief = belief
        self._filter_state = FilterState.INITIALIZING

    def predict(self, dt: float) -> GaussianBelief:
        """
        Prediction step.

        Args:
            dt: Time step (seconds)

        Returns:
            Predicted belief
        """
        self._require_initialized()
        self._belief = self.prediction(self.process_model, self._belief, dt)
        self._prediction_count += 1
        self._check_divergence()
        return self._belief.copy()

    def update(self, measurement: np.ndarray) -> GaussianBelief:
        """
        Measurement update.

        The posterior replaces the current belief only if the update policy
        succeeds; errors propagate to the caller with the belief unchanged.

        Args:
            measurement: Observation (joint measurement for factorized models)

        Returns:
            Posterior belief
        """
        self._require_initialized()
        posterior = self.update_policy(self.observation_model, self._belief, measurement)

        self._last_correction = float(np.linalg.norm(posterior.mean - self._belief.mean))
        self._belief = posterior
        self._update_count += 1
        self._check_divergence()
        logger.debug("Update %d applied, correction=%.3g", self._update_count, self._last_correction)
        return self._belief.copy()

    def step(self, measurement: np.ndarray, dt: float) -> GaussianBelief:
        """Predict over dt, then update with the measurement."""
        self.predict(dt)
        return self.update(measurement)

    def _check_divergence(self) -> None:
        """
        Monitor the filter for divergence conditions.

        Divergence indicators:
        - Covariance trace exceeding threshold
        - Poor condition number
        """
        trace = float(np.trace(self._belief.covariance))
        if trace > self._divergence_threshold:
            self._filter_state = FilterState.DIVERGING
            logger.warning("Filter divergence detected: trace=%.2e", trace)
            return

        if not self._belief.is_well_conditioned(self._max_condition_number):
            self._filter_state = FilterState.ILL_CONDITIONED
            logger.warning("Ill-conditioned covariance: κ=%.2e", self._belief.condition_number())
            return

        if self._update_count > 0:
            self._filter_state = FilterState.CONVERGED

    def get_diagnostics(self) -> FilterDiagnostics:
        """
        Generate filter diagnostics.

        Returns:
            FilterDiagnostics object with current filter status
        """
        self._require_initialized()
        sign, logdet = np.linalg.slogdet(self._belief.covariance)
        return FilterDiagnostics(
            condition_number=self._belief.condition_number(),
            covariance_trace=float(np.trace(self._belief.covariance)),
            log_determinant=float(logdet) if sign > 0 else float('-inf'),
            correction_magnitude=self._last_correction,
            filter_state=self._filter_state,
            prediction_count=self._prediction_count,
            update_count=self._update_count,
        )

    def reset(self) -> None:
        """Drop the belief and all statistics."""
        self._belief = None
        self._prediction_count = 0
        self._update_count = 0
        self._last_correction = 0.0
        self._filter_state = FilterState.INITIALIZING
        logger.info("Gaussian filter reset")

    def get_state_dict(self) -> Dict[str, Any]:
        """
        Get state and diagnostic information as a dictionary.

        Returns:
            Dictionary of plain Python values
        """
        self._require_initialized()
        diagnostics = self.get_diagnostics()
        return {
            'mean': self._belief.mean.tolist(),
            'standard_deviation': self._belief.standard_deviation().tolist(),
            'covariance_trace': diagnostics.covariance_trace,
            'condition_number': diagnostics.condition_number,
            'filter_state': self._filter_state.value,
            'prediction_count': self._prediction_count,
            'update_count': self._update_count,
            'update_policy': self.update_policy.name,
        }

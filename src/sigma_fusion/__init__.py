"""
Sigma Fusion: Multi-Sensor Sigma-Point Gaussian Filtering

A scientific Python package for Bayesian state estimation with Kalman-family
filters built on the unscented (sigma-point) quadrature.

This package implements:
- Gaussian beliefs, weighted point sets and the unscented transform
- Single-sensor sigma-point measurement updates
- An information-form multi-sensor update for N IID sensors whose cost
  grows linearly in the number of sensors
- Sigma-point prediction and a filter composing both
- A range-only tracking scenario and plotting utilities
"""

from .fusion import (
    SigmaFusionError,
    DimensionMismatch,
    InvalidSensorCount,
    SingularCovariance,
    GaussianBelief,
    PointSet,
    UnscentedQuadrature,
    SigmaPointUpdate,
    MultiSensorSigmaPointUpdate,
    SigmaPointPrediction,
    GaussianFilter,
    update,
)
from .models import (
    LocalObservationModel,
    AdditiveObservationModel,
    LinearObservationModel,
    FactorizedObservationModel,
    LinearProcessModel,
    ConstantVelocityModel,
)
from .config import FilterConfiguration

# Optional visualization import (graceful failure if not available)
try:
    from .visualization.plotter import plot_estimates
    _has_visualization = True
except ImportError:
    plot_estimates = None
    _has_visualization = False

__version__ = "1.0.0"

__all__ = [
    "SigmaFusionError",
    "DimensionMismatch",
    "InvalidSensorCount",
    "SingularCovariance",
    "GaussianBelief",
    "PointSet",
    "UnscentedQuadrature",
    "SigmaPointUpdate",
    "MultiSensorSigmaPointUpdate",
    "SigmaPointPrediction",
    "GaussianFilter",
    "update",
    "LocalObservationModel",
    "AdditiveObservationModel",
    "LinearObservationModel",
    "FactorizedObservationModel",
    "LinearProcessModel",
    "ConstantVelocityModel",
    "FilterConfiguration",
]

# Add visualization to __all__ only if available
if _has_visualization:
    __all__.append("plot_estimates")

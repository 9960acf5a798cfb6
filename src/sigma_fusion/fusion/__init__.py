"""
Sigma-point Gaussian filtering and multi-sensor fusion.

This module implements the numerical core: Gaussian beliefs, weighted point
sets, the unscented quadrature, single and multi-sensor sigma-point updates,
the sigma-point prediction and the filter that composes them.
"""

from .errors import SigmaFusionError, DimensionMismatch, InvalidSensorCount, SingularCovariance
from .belief import GaussianBelief
from .point_set import PointSet
from .quadrature import UnscentedQuadrature
from .update import SigmaPointUpdate, MultiSensorSigmaPointUpdate, update
from .prediction import SigmaPointPrediction
from .filter import GaussianFilter, FilterState, FilterDiagnostics

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
    "update",
    "SigmaPointPrediction",
    "GaussianFilter",
    "FilterState",
    "FilterDiagnostics",
]

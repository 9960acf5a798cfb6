"""
Exception types raised by the sigma-point fusion core.

All errors are raised before any part of a posterior belief is written,
so a caller catching one of these can rely on its prior being intact.
"""

import numpy as np


class SigmaFusionError(Exception):
    """Base class for all sigma_fusion errors."""


class DimensionMismatch(SigmaFusionError, ValueError):
    """An input vector or matrix does not match the configured model dimensions."""


class InvalidSensorCount(SigmaFusionError, ValueError):
    """A factorized model was configured with fewer than one sensor."""


class SingularCovariance(SigmaFusionError, np.linalg.LinAlgError):
    """
    A covariance that must be inverted or factorized is not positive definite
    within numerical tolerance.

    Attributes:
        what: Short name of the offending quantity (e.g. "c_xx")
        condition_number: Condition number if it could be computed
    """

    def __init__(self, message: str, what: str = "", condition_number: float = float('inf')):
        super().__init__(message)
        self.what = what
        self.condition_number = condition_number

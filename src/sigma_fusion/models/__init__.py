"""
Process and observation models.

Observation models follow the local-model / factorized-adapter split: a
local model describes one sensor, and FactorizedObservationModel presents N
IID copies of it as one joint model.
"""

from .observation import (
    LocalObservationModel,
    AdditiveObservationModel,
    LinearObservationModel,
    FactorizedObservationModel,
)
from .process import ProcessModel, AdditiveProcessModel, LinearProcessModel, ConstantVelocityModel
from .sensors import IdentitySensor, RangeSensor, BearingSensor, wrap_angle

__all__ = [
    "LocalObservationModel",
    "AdditiveObservationModel",
    "LinearObservationModel",
    "FactorizedObservationModel",
    "ProcessModel",
    "AdditiveProcessModel",
    "LinearProcessModel",
    "ConstantVelocityModel",
    "IdentitySensor",
    "RangeSensor",
    "BearingSensor",
    "wrap_angle",
]

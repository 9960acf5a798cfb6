"""
Simulation components for sigma_fusion.

Components:
    - Scenario: constant velocity target tracked by N IID range sensors
    - ScenarioParameters: validated scenario settings
    - ScenarioResult: truth, estimates and error statistics of a run
"""

from .scenario import Scenario, ScenarioParameters, ScenarioResult

__all__ = [
    "Scenario",
    "ScenarioParameters",
    "ScenarioResult",
]

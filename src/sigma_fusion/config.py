"""
Filter configuration.

Quadrature parameters and numerical thresholds are fixed when the filter is
assembled; nothing here is re-derived per update.
"""

import json
import math
import numbers
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict

from .fusion.errors import InvalidSensorCount
from .fusion.linalg import DEFAULT_MAX_CONDITION_NUMBER
from .fusion.quadrature import UnscentedQuadrature


@dataclass
class FilterConfiguration:
    """
    Configuration parameters for filter assembly.

    Attributes:
        alpha: Unscented spread parameter
        beta: Unscented distribution parameter
        kappa: Unscented secondary scaling
        sensor_count: Number of IID sensors
        max_workers: Threads for per-sensor update contributions
        max_condition_number: Matrices above this κ are treated as singular
    """
    alpha: float = 1.0
    beta: float = 2.0
    kappa: float = 0.0
    sensor_count: int = 4
    max_workers: int = 1
    max_condition_number: float = DEFAULT_MAX_CONDITION_NUMBER

    def __post_init__(self):
        """Validate configuration parameters."""
        for name in ('alpha', 'beta', 'kappa', 'max_condition_number'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise ValueError(f"{name} must be a number, got {value!r}")
            setattr(self, name, float(value))
        if not all(math.isfinite(v) for v in (self.alpha, self.beta, self.kappa)):
            raise ValueError("alpha, beta and kappa must be finite")
        if isinstance(self.sensor_count, bool) or not isinstance(self.sensor_count, numbers.Integral):
            raise InvalidSensorCount(f"Sensor count must be an integer, got {self.sensor_count!r}")
        if isinstance(self.max_workers, bool) or not isinstance(self.max_workers, numbers.Integral):
            raise ValueError(f"max_workers must be an integer, got {self.max_workers!r}")
        self.sensor_count = int(self.sensor_count)
        self.max_workers = int(self.max_workers)

        if self.alpha <= 0:
            raise ValueError(f"alpha must be positive, got {self.alpha}")
        if self.sensor_count <= 0:
            raise InvalidSensorCount(f"Sensor count must be positive, got {self.sensor_count}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.max_condition_number <= 1:
            raise ValueError(
                f"max_condition_number must exceed 1, got {self.max_condition_number}")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'FilterConfiguration':
        """
        Build a configuration from a mapping, rejecting unknown keys.

        Raises:
            ValueError: If a key is not a configuration field
        """
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**values)

    @classmethod
    def from_json(cls, path: str) -> 'FilterConfiguration':
        with open(path, encoding='utf-8') as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def build_quadrature(self) -> UnscentedQuadrature:
        return UnscentedQuadrature(alpha=self.alpha, beta=self.beta, kappa=self.kappa)

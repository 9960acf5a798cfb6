"""
Visualization of filter runs.
"""

from .plotter import plot_estimates

__all__ = ["plot_estimates"]

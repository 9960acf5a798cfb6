"""
Plots of scenario runs: trajectory, sensors and position error with
k-sigma bounds from the filter covariance.
"""

import numpy as np
import matplotlib.pyplot as plt
from typing import Optional

from ..simulation.scenario import ScenarioResult


def plot_estimates(result: ScenarioResult, sigma: float = 3.0,
                   figure: Optional[plt.Figure] = None) -> plt.Figure:
    """
    Plot truth vs estimate and per-axis position errors.

    Args:
        result: Scenario run to plot
        sigma: Width of the uncertainty bounds in standard deviations
        figure: Figure to draw into; a new one is created if None

    Returns:
        The matplotlib figure
    """
    if sigma <= 0:
        raise ValueError(f"sigma must be positive, got {sigma}")
    fig = figure if figure is not None else plt.figure(figsize=(12, 5))
    ax_xy = fig.add_subplot(1, 2, 1)
    ax_err = fig.add_subplot(1, 2, 2)

    ax_xy.plot(result.truth[:, 0], result.truth[:, 1], 'k-', label='truth')
    ax_xy.plot(result.estimates[:, 0], result.estimates[:, 1], 'b--', label='estimate')
    ax_xy.scatter(result.sensor_positions[:, 0], result.sensor_positions[:, 1],
                  marker='^', c='r', label='sensors')
    ax_xy.set_xlabel('x [m]')
    ax_xy.set_ylabel('y [m]')
    ax_xy.set_aspect('equal', adjustable='datalim')
    ax_xy.legend()
    ax_xy.set_title('Trajectory')

    errors = result.estimates[:, :2] - result.truth[:, :2]
    std = np.sqrt(np.stack([result.covariances[:, 0, 0], result.covariances[:, 1, 1]], axis=1))
    for axis, (label, color) in enumerate([('x', 'tab:blue'), ('y', 'tab:orange')]):
        ax_err.plot(result.times, errors[:, axis], color=color, label=f'{label} error')
        ax_err.fill_between(result.times, -sigma * std[:, axis], sigma * std[:, axis],
                            color=color, alpha=0.2, label=f'±{sigma:g}σ {label}')
    ax_err.set_xlabel('time [s]')
    ax_err.set_ylabel('error [m]')
    ax_err.legend()
    ax_err.set_title(f'Position error (RMSE {result.position_rmse:.2f} m)')

    fig.tight_layout()
    return fig

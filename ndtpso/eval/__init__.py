"""
Evaluation and Visualization Module.

Modules:
    metrics: Pose error metrics (RMSE, error statistics, trajectory summary)
    plots: Trajectory, NDT map and occupancy grid figures
"""

from .metrics import compute_error_stats, compute_pose_errors, compute_rmse, summarize_trajectory
from .plots import plot_ndt_map, plot_occupancy_grid, plot_trajectory_2d, save_figure

__all__ = [
    # Metrics
    "compute_pose_errors",
    "compute_rmse",
    "compute_error_stats",
    "summarize_trajectory",
    # Plots
    "plot_trajectory_2d",
    "plot_ndt_map",
    "plot_occupancy_grid",
    "save_figure",
]

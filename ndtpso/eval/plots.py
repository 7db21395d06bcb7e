"""
Visualization utilities for the scan matcher.

Plots of estimated trajectories, NDT maps (one covariance ellipse per
informative cell) and occupancy grids.

All functions return matplotlib Figure objects for flexible display/saving.

Author: Navigation Engineering Team
"""

from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.patches import Ellipse

if TYPE_CHECKING:
    from ndtpso.slam.frame import NDTFrame
    from ndtpso.slam.occupancy import OccupancyGrid


def plot_trajectory_2d(
    est_xy_dict: Dict[str, np.ndarray],
    truth_xy: Optional[np.ndarray] = None,
    title: str = "2D Trajectory",
) -> plt.Figure:
    """
    Plot 2D trajectories, with an optional reference path.

    Args:
        est_xy_dict: Dictionary of estimated trajectories {name: array (N, 2)}
        truth_xy: Reference trajectory, shape (N, 2) (optional)
        title: Plot title

    Returns:
        fig: Matplotlib figure
    """
    fig, ax = plt.subplots(figsize=(10, 8))

    if truth_xy is not None and len(truth_xy):
        ax.plot(truth_xy[:, 0], truth_xy[:, 1], "k-", linewidth=2, label="Reference", zorder=10)
        ax.plot(truth_xy[0, 0], truth_xy[0, 1], "go", markersize=10, label="Start", zorder=11)
        ax.plot(truth_xy[-1, 0], truth_xy[-1, 1], "ro", markersize=10, label="End", zorder=11)

    colors = ["blue", "red", "green", "orange", "purple"]
    linestyles = ["-", "--", "-.", ":", "-"]

    for i, (name, est_xy) in enumerate(est_xy_dict.items()):
        if not len(est_xy):
            continue
        ax.plot(
            est_xy[:, 0],
            est_xy[:, 1],
            linestyle=linestyles[i % len(linestyles)],
            color=colors[i % len(colors)],
            linewidth=1.5,
            label=name,
            alpha=0.7,
        )

    ax.set_xlabel("X (m)", fontsize=12)
    ax.set_ylabel("Y (m)", fontsize=12)
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)
    ax.axis("equal")

    plt.tight_layout()
    return fig


def _covariance_ellipse(
    mean: np.ndarray, covariance: np.ndarray, n_sigma: float = 2.0, **kwargs
) -> Ellipse:
    eigenvalues, eigenvectors = np.linalg.eigh(covariance)
    eigenvalues = np.maximum(eigenvalues, 0.0)
    angle = np.degrees(np.arctan2(eigenvectors[1, 1], eigenvectors[0, 1]))
    width = 2.0 * n_sigma * np.sqrt(eigenvalues[1])
    height = 2.0 * n_sigma * np.sqrt(eigenvalues[0])
    return Ellipse(xy=mean, width=width, height=height, angle=angle, **kwargs)


def plot_ndt_map(
    frame: "NDTFrame",
    trajectory_xy: Optional[np.ndarray] = None,
    n_sigma: float = 2.0,
    title: str = "NDT Map",
) -> plt.Figure:
    """
    Plot the informative cells of a frame as covariance ellipses.

    Args:
        frame: Frame whose cells are drawn.
        trajectory_xy: Estimated positions drawn on top, shape (N, 2) (optional)
        n_sigma: Ellipse size in standard deviations.
        title: Plot title

    Returns:
        fig: Matplotlib figure
    """
    fig, ax = plt.subplots(figsize=(10, 10))

    means = []
    for _, cell in frame.cells():
        if not cell.is_informative:
            continue
        means.append(cell.mean)
        ax.add_patch(
            _covariance_ellipse(
                cell.mean,
                cell.covariance + np.eye(2) * cell.covariance_floor,
                n_sigma=n_sigma,
                facecolor="tab:blue",
                edgecolor="navy",
                alpha=0.4,
                linewidth=0.5,
            )
        )
    if means:
        means = np.asarray(means)
        ax.plot(means[:, 0], means[:, 1], ".", color="navy", markersize=2)

    if trajectory_xy is not None and len(trajectory_xy):
        ax.plot(trajectory_xy[:, 0], trajectory_xy[:, 1], "r-", linewidth=1.5, label="Trajectory")
        ax.legend(fontsize=10)

    half_x, half_y = (0.5 * s for s in frame.side_lengths)
    ax.set_xlim(-half_x, half_x)
    ax.set_ylim(-half_y, half_y)
    ax.set_xlabel("X (m)", fontsize=12)
    ax.set_ylabel("Y (m)", fontsize=12)
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.set_aspect("equal")
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    return fig


def plot_occupancy_grid(grid: "OccupancyGrid", title: str = "Occupancy Grid") -> plt.Figure:
    """
    Plot an occupancy grid (black = occupied, white = free, gray = unknown).

    Returns:
        fig: Matplotlib figure
    """
    fig, ax = plt.subplots(figsize=(10, 10))
    half_x = 0.5 * grid.width * grid.resolution
    half_y = 0.5 * grid.height * grid.resolution
    ax.imshow(
        grid.to_image(),
        cmap="gray",
        vmin=0,
        vmax=255,
        extent=(-half_x, half_x, -half_y, half_y),
        interpolation="nearest",
    )
    ax.set_xlabel("X (m)", fontsize=12)
    ax.set_ylabel("Y (m)", fontsize=12)
    ax.set_title(title, fontsize=14, fontweight="bold")

    plt.tight_layout()
    return fig


def save_figure(
    fig: plt.Figure,
    out_dir: Union[str, Path],
    name: str,
    formats: Tuple[str, ...] = ("png",),
) -> List[Path]:
    """
    Save figure in multiple formats.

    Args:
        fig: Matplotlib figure to save
        out_dir: Output directory
        name: Base filename (without extension)
        formats: Tuple of format extensions

    Returns:
        paths: List of saved file paths
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for fmt in formats:
        filepath = out_dir / f"{name}.{fmt}"
        fig.savefig(filepath, dpi=150, bbox_inches="tight")
        paths.append(filepath)

    return paths

"""Offline export of the trajectory and the map.

Files written for a base name ``<sanitized-topic>-<YYYYmmdd-HHMMSS>``:

    <base>.pose.csv   stamp, x, y, yaw [, ref_x, ref_y, ref_yaw]
    <base>.map.csv    i, j, n, mean_x, mean_y, cov_xx, cov_xy, cov_yy
                      (one row per informative cell)
    <base>.png        NDT map figure with the trajectory
    <base>.og.png     occupancy grid image, when the frame has one

Exports are write-only; nothing in the package reads them back.
"""

import logging
import time
from pathlib import Path
from typing import List, Optional, Union

import matplotlib.pyplot as plt
import numpy as np

from ndtpso.eval.plots import plot_ndt_map, plot_occupancy_grid
from ndtpso.slam.frame import NDTFrame
from ndtpso.slam.occupancy import OccupancyGrid

from .trajectory import TrajectoryLog

logger = logging.getLogger(__name__)


def sanitize_topic(topic: str) -> str:
    """Replace path separators so a topic name can prefix a file name."""
    return topic.replace("/", "_").replace("\\", "_")


def export_basename(topic: str, when: Optional[float] = None) -> str:
    """
    File base name for an export.

    Args:
        topic: Scan topic name, e.g. "/scan".
        when: POSIX time to format (local time); defaults to now.

    Returns:
        ``<sanitized-topic>-<YYYYmmdd-HHMMSS>``, e.g. "_scan-20240131-235959".
    """
    stamp = time.strftime("%Y%m%d-%H%M%S", time.localtime(when))
    return f"{sanitize_topic(topic)}-{stamp}"


def dump_trajectory(trajectory: TrajectoryLog, path: Union[str, Path]) -> Path:
    """Write the trajectory log as CSV and return the path."""
    path = Path(path)
    stamps = trajectory.stamps.reshape(-1, 1)
    poses = trajectory.poses
    header = "stamp,x,y,yaw"
    data = np.hstack([stamps, poses])
    if trajectory.has_reference:
        header += ",ref_x,ref_y,ref_yaw"
        data = np.hstack([data, trajectory.reference_poses])
    np.savetxt(path, data, delimiter=",", header=header, comments="", fmt="%.9g")
    return path


def dump_map(frame: NDTFrame, path: Union[str, Path]) -> Path:
    """Write one CSV row per informative cell of ``frame`` and return the path."""
    path = Path(path)
    rows = []
    for (i, j), cell in frame.cells():
        if not cell.is_informative:
            continue
        mean = cell.mean
        cov = cell.covariance
        rows.append([i, j, cell.n_points, mean[0], mean[1], cov[0, 0], cov[0, 1], cov[1, 1]])
    data = np.asarray(rows, dtype=np.float64).reshape(-1, 8)
    np.savetxt(
        path,
        data,
        delimiter=",",
        header="i,j,n,mean_x,mean_y,cov_xx,cov_xy,cov_yy",
        comments="",
        fmt=["%d", "%d", "%d", "%.9g", "%.9g", "%.9g", "%.9g", "%.9g"],
    )
    return path


def export_results(
    out_dir: Union[str, Path],
    topic: str,
    frame: NDTFrame,
    trajectory: TrajectoryLog,
    when: Optional[float] = None,
    save_images: bool = True,
    occupancy: Optional[OccupancyGrid] = None,
) -> List[Path]:
    """
    Write the pose CSV, map CSV and figures for one run.

    Args:
        out_dir: Output directory (created if missing).
        topic: Scan topic; prefixes the file names.
        frame: Map frame to export.
        trajectory: Trajectory log to export.
        when: Time used in the file names; defaults to now.
        save_images: Also render the map and occupancy figures.
        occupancy: Occupancy grid to render; defaults to ``frame.occupancy``.

    Returns:
        Paths of the written files.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    base = out_dir / export_basename(topic, when)

    paths = [
        dump_trajectory(trajectory, f"{base}.pose.csv"),
        dump_map(frame, f"{base}.map.csv"),
    ]

    if save_images:
        fig = plot_ndt_map(frame, trajectory_xy=trajectory.poses[:, :2], title=base.name)
        fig.savefig(f"{base}.png", dpi=150, bbox_inches="tight")
        plt.close(fig)
        paths.append(Path(f"{base}.png"))

        occupancy = frame.occupancy if occupancy is None else occupancy
        if occupancy is not None:
            fig = plot_occupancy_grid(occupancy, title=base.name)
            fig.savefig(f"{base}.og.png", dpi=150, bbox_inches="tight")
            plt.close(fig)
            paths.append(Path(f"{base}.og.png"))

    logger.info("Exported results to %s[.pose.csv, .map.csv, .png]", base)
    return paths

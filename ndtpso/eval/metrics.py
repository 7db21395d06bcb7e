"""
Evaluation metrics for scan matching trajectories.

Pose errors are computed component-wise, with heading differences wrapped
to [-π, π] so that estimates on either side of ±π compare correctly.

Author: Navigation Engineering Team
"""

from typing import Dict, Optional, Union

import numpy as np

from ndtpso.utils.angles import angle_diff


def compute_pose_errors(truth: np.ndarray, estimated: np.ndarray) -> np.ndarray:
    """
    Compute pose errors between true and estimated SE(2) poses.

    Args:
        truth: True poses, shape (N, 3) as [x, y, yaw].
        estimated: Estimated poses, shape (N, 3).

    Returns:
        errors: Error rows [dx, dy, dyaw], shape (N, 3); dyaw wrapped.

    Raises:
        ValueError: If inputs have incompatible shapes.
    """
    truth = np.asarray(truth, dtype=np.float64)
    estimated = np.asarray(estimated, dtype=np.float64)

    if truth.shape != estimated.shape:
        raise ValueError(
            f"Shape mismatch: truth {truth.shape} vs estimated {estimated.shape}"
        )
    if truth.ndim != 2 or truth.shape[1] != 3:
        raise ValueError(f"poses must have shape (N, 3), got {truth.shape}")

    errors = estimated - truth
    errors[:, 2] = angle_diff(estimated[:, 2], truth[:, 2])
    return errors


def compute_rmse(errors: np.ndarray, axis: Optional[int] = None) -> Union[float, np.ndarray]:
    """
    Compute Root Mean Square Error (RMSE).

    Args:
        errors: Error vectors, shape (N, d) or (N,)
        axis: Axis along which to compute RMSE
              None: scalar RMSE across all dimensions
              0: per-dimension RMSE
              1: per-sample RMSE

    Returns:
        rmse: RMSE value(s)
    """
    errors = np.asarray(errors)

    if axis is None:
        return float(np.sqrt(np.mean(errors**2)))
    return np.sqrt(np.mean(errors**2, axis=axis))


def compute_error_stats(errors: np.ndarray) -> Dict[str, float]:
    """
    Compute error statistics of position error magnitudes.

    Args:
        errors: Error vectors, shape (N, d) or (N,). For pose errors pass
                only the translational columns, e.g. ``errors[:, :2]``.

    Returns:
        stats: Dictionary with keys 'mean', 'median', 'std', 'rmse', 'p50',
               'p90', 'p95' and 'max'.
    """
    errors = np.asarray(errors)

    if errors.ndim > 1:
        error_magnitudes = np.linalg.norm(errors, axis=1)
    else:
        error_magnitudes = np.abs(errors)

    return {
        "mean": float(np.mean(error_magnitudes)),
        "median": float(np.median(error_magnitudes)),
        "std": float(np.std(error_magnitudes)),
        "rmse": float(np.sqrt(np.mean(error_magnitudes**2))),
        "p50": float(np.percentile(error_magnitudes, 50)),
        "p90": float(np.percentile(error_magnitudes, 90)),
        "p95": float(np.percentile(error_magnitudes, 95)),
        "max": float(np.max(error_magnitudes)),
    }


def summarize_trajectory(truth: np.ndarray, estimated: np.ndarray) -> Dict[str, float]:
    """
    Position and heading error summary of an estimated trajectory.

    Rows with non-finite reference poses are ignored.

    Returns:
        Dictionary with 'position_rmse', 'position_max', 'yaw_rmse_deg',
        'final_position_error' and 'n_poses'. Empty when no row is usable.
    """
    truth = np.asarray(truth, dtype=np.float64).reshape(-1, 3)
    estimated = np.asarray(estimated, dtype=np.float64).reshape(-1, 3)
    usable = np.all(np.isfinite(truth), axis=1) & np.all(np.isfinite(estimated), axis=1)
    if not np.any(usable):
        return {}

    errors = compute_pose_errors(truth[usable], estimated[usable])
    position = np.linalg.norm(errors[:, :2], axis=1)
    return {
        "position_rmse": compute_rmse(position),
        "position_max": float(position.max()),
        "yaw_rmse_deg": float(np.rad2deg(compute_rmse(errors[:, 2]))),
        "final_position_error": float(position[-1]),
        "n_poses": int(usable.sum()),
    }

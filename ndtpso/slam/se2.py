"""SE(2) operations (Special Euclidean Group in 2D).

Rigid transformations in the plane, used by the scan matcher to move point
clouds between the sensor, base and map frames and to compose pose
estimates.

Key functions:
    - se2_compose: Compose two SE(2) poses (p1 ⊕ p2)
    - se2_inverse: Invert an SE(2) pose (p⁻¹)
    - se2_apply: Transform points by an SE(2) pose
    - se2_relative: Relative pose p_from⁻¹ ⊕ p_to

SE(2) representation: poses are NumPy arrays [x, y, yaw] of shape (3,);
Pose2 instances and plain sequences are accepted as inputs.

Author: Navigation Engineer
"""

from typing import Sequence, Union

import numpy as np

from ndtpso.utils.angles import wrap_angle

from .types import Pose2

PoseLike = Union[np.ndarray, Pose2, Sequence[float]]


def _as_pose(p: PoseLike, name: str = "p") -> np.ndarray:
    """Convert a pose-like input to a float array of shape (3,)."""
    if isinstance(p, Pose2):
        return p.to_array()
    arr = np.asarray(p, dtype=np.float64)
    if arr.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {arr.shape}")
    return arr


def se2_compose(p1: PoseLike, p2: PoseLike) -> np.ndarray:
    """
    Compose two SE(2) poses: p_result = p1 ⊕ p2.

    The composition formula for SE(2):
        x_result = x1 + x2*cos(yaw1) - y2*sin(yaw1)
        y_result = y1 + x2*sin(yaw1) + y2*cos(yaw1)
        yaw_result = yaw1 + yaw2  (wrapped to [-π, π])

    Used for frame chaining, e.g. map→base ⊕ base→laser = map→laser.

    Args:
        p1: First pose [x1, y1, yaw1].
        p2: Second pose [x2, y2, yaw2].

    Returns:
        Composed pose as array [x, y, yaw] of shape (3,).

    Raises:
        ValueError: If poses do not have shape (3,).

    Examples:
        >>> p1 = np.array([0, 0, np.pi/2])  # 90° rotation
        >>> p2 = np.array([1, 0, 0])  # 1m forward
        >>> result = se2_compose(p1, p2)
        >>> np.allclose(result, [0, 1, np.pi/2], atol=1e-10)
        True
    """
    x1, y1, yaw1 = _as_pose(p1, "p1")
    x2, y2, yaw2 = _as_pose(p2, "p2")

    cos_yaw1 = np.cos(yaw1)
    sin_yaw1 = np.sin(yaw1)

    x_result = x1 + x2 * cos_yaw1 - y2 * sin_yaw1
    y_result = y1 + x2 * sin_yaw1 + y2 * cos_yaw1
    yaw_result = wrap_angle(yaw1 + yaw2)

    return np.array([x_result, y_result, yaw_result], dtype=np.float64)


def se2_inverse(p: PoseLike) -> np.ndarray:
    """
    Compute the inverse of an SE(2) pose: p_inv = p⁻¹.

    The inverse formula for SE(2):
        x_inv = -(x*cos(yaw) + y*sin(yaw))
        y_inv = -(-x*sin(yaw) + y*cos(yaw))
        yaw_inv = -yaw  (wrapped to [-π, π])

    Args:
        p: Pose to invert [x, y, yaw].

    Returns:
        Inverted pose as array [x, y, yaw] of shape (3,).

    Examples:
        >>> p = np.array([1, 2, np.pi/4])
        >>> np.allclose(se2_compose(p, se2_inverse(p)), [0, 0, 0], atol=1e-10)
        True
    """
    x, y, yaw = _as_pose(p)

    cos_yaw = np.cos(yaw)
    sin_yaw = np.sin(yaw)

    x_inv = -(x * cos_yaw + y * sin_yaw)
    y_inv = -(-x * sin_yaw + y * cos_yaw)
    yaw_inv = wrap_angle(-yaw)

    return np.array([x_inv, y_inv, yaw_inv], dtype=np.float64)


def se2_apply(p: PoseLike, points: np.ndarray) -> np.ndarray:
    """
    Transform 2D points by an SE(2) pose.

    Applies points_transformed = R(yaw) * points + [x, y].

    Args:
        p: Pose [x, y, yaw] defining the transformation.
        points: Points to transform, array of shape (N, 2).

    Returns:
        Transformed points, array of shape (N, 2).

    Raises:
        ValueError: If points does not have shape (N, 2).

    Examples:
        >>> p = np.array([0, 0, np.pi/2])
        >>> pts = np.array([[1, 0], [0, 1]])
        >>> np.allclose(se2_apply(p, pts), [[0, 1], [-1, 0]], atol=1e-10)
        True
    """
    x, y, yaw = _as_pose(p)

    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] != 2:
        raise ValueError(
            f"points must have shape (N, 2), got {points.shape}"
        )

    cos_yaw = np.cos(yaw)
    sin_yaw = np.sin(yaw)
    R = np.array([[cos_yaw, -sin_yaw], [sin_yaw, cos_yaw]], dtype=np.float64)

    # points.T has shape (2, N), R @ points.T has shape (2, N)
    return (R @ points.T).T + np.array([x, y], dtype=np.float64)


def se2_relative(p_from: PoseLike, p_to: PoseLike) -> np.ndarray:
    """
    Compute relative pose between two global poses.

        p_relative = p_from⁻¹ ⊕ p_to

    Args:
        p_from: Starting pose [x, y, yaw].
        p_to: Target pose [x, y, yaw].

    Returns:
        Relative pose as array [x, y, yaw] of shape (3,).

    Examples:
        >>> rel = se2_relative([0, 0, 0], [1, 1, np.pi/2])
        >>> np.allclose(rel, [1, 1, np.pi/2], atol=1e-10)
        True
    """
    return se2_compose(se2_inverse(p_from), p_to)

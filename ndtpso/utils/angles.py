"""
Angle wrapping utilities.

Provides functions for keeping headings within (-π, π] and for taking the
shortest signed difference between two headings.

Used by:
- SE(2) composition and inversion (yaw of the result)
- The particle swarm (yaw component of positions and velocities)
- Heading error metrics
"""

from typing import Union

import numpy as np


def wrap_angle(angle: float) -> float:
    """
    Wrap angle to (-π, π] range.

    Args:
        angle: Angle in radians (can be any value)

    Returns:
        Wrapped angle in range (-π, π]

    Example:
        >>> wrap_angle(3.5 * np.pi)  # 630° -> -90°
        -1.5707963267948966
        >>> wrap_angle(-3.5 * np.pi)  # -630° -> 90°
        1.5707963267948966
    """
    wrapped = float(np.arctan2(np.sin(angle), np.cos(angle)))
    # atan2 yields -π for sin == -0.0; the range is half-open
    return np.pi if wrapped == -np.pi else wrapped


def wrap_angle_array(angles: np.ndarray) -> np.ndarray:
    """
    Wrap array of angles to (-π, π] range.

    Vectorized version of wrap_angle() for particle populations.

    Args:
        angles: Array of angles in radians

    Returns:
        Array of wrapped angles in range (-π, π]
    """
    wrapped = np.arctan2(np.sin(angles), np.cos(angles))
    return np.where(wrapped == -np.pi, np.pi, wrapped)


def angle_diff(angle1: Union[float, np.ndarray],
               angle2: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """
    Compute the shortest angular difference between two angles.

    Returns angle1 - angle2, wrapped to (-π, π].

    Args:
        angle1: First angle in radians
        angle2: Second angle in radians

    Returns:
        Shortest signed difference angle1 - angle2 in (-π, π]

    Example:
        >>> d = angle_diff(np.pi - 0.1, -np.pi + 0.1)  # ≈ -0.2, not 2π - 0.2
        >>> d2 = angle_diff(0.1, -0.1)  # ≈ 0.2
    """
    if isinstance(angle1, np.ndarray) or isinstance(angle2, np.ndarray):
        return wrap_angle_array(np.asarray(angle1) - np.asarray(angle2))
    else:
        return wrap_angle(angle1 - angle2)

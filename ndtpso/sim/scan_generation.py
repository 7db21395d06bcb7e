"""Synthetic 2D laser scans with proper occlusion handling.

Ray-casting against wall segments: for each beam only the closest wall hit
is reported, like a real range sensor. Scans are returned as LaserScan
messages (ranges indexed by beam angle), the same input the matcher gets
from hardware; beams that hit nothing within range report ``inf``.

Also provides a rectangular room with interior obstacles and a smooth test
trajectory through it, used by the replay script and the tests.

Author: Li-Ta Hsu
"""

from typing import List, Optional, Tuple

import numpy as np

from ndtpso.slam.se2 import se2_compose
from ndtpso.slam.types import LaserScan
from ndtpso.utils.angles import wrap_angle_array

Wall = Tuple[np.ndarray, np.ndarray]


def ray_segment_distances(
    origin: np.ndarray,
    angles: np.ndarray,
    walls: List[Wall],
) -> np.ndarray:
    """Distance along each ray to the closest wall segment.

    Uses parametric line equations for every (ray, wall) pair at once:
        Ray: P = origin + t * direction (t >= 0)
        Segment: Q = start + s * (end - start) (0 <= s <= 1)

    Args:
        origin: Ray origin [x, y].
        angles: Ray directions (radians), shape (R,).
        walls: List of (start_point, end_point) wall segments.

    Returns:
        Distances of shape (R,); inf where a ray hits no wall.
    """
    angles = np.asarray(angles, dtype=np.float64)
    if not walls:
        return np.full(angles.shape, np.inf)

    o = np.asarray(origin, dtype=np.float64).reshape(2)
    starts = np.array([w[0] for w in walls], dtype=np.float64)  # (W, 2)
    ends = np.array([w[1] for w in walls], dtype=np.float64)
    seg = ends - starts

    d = np.column_stack([np.cos(angles), np.sin(angles)])  # (R, 2)
    diff = starts - o  # (W, 2)

    # Solve o + t*d = start + u*seg with Cramer's rule
    det = d[:, None, 0] * seg[None, :, 1] - d[:, None, 1] * seg[None, :, 0]  # (R, W)
    parallel = np.abs(det) < 1e-10
    safe_det = np.where(parallel, 1.0, det)
    t = (diff[None, :, 0] * seg[None, :, 1] - diff[None, :, 1] * seg[None, :, 0]) / safe_det
    u = (diff[None, :, 0] * d[:, None, 1] - diff[None, :, 1] * d[:, None, 0]) / safe_det

    hit = ~parallel & (t >= 0.0) & (u >= 0.0) & (u <= 1.0)
    return np.where(hit, t, np.inf).min(axis=1)


def simulate_ranges(
    pose: np.ndarray,
    walls: List[Wall],
    num_rays: int = 360,
    angle_min: float = -np.pi,
    max_range: float = 10.0,
    noise_std: float = 0.02,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Range readings of a sensor at ``pose``.

    Beam i points at yaw + angle_min + i·2π/num_rays in the world frame.

    Args:
        pose: Sensor pose [x, y, yaw] in the world frame.
        walls: Wall segments.
        num_rays: Number of beams over the full circle.
        angle_min: Angle of the first beam relative to the heading.
        max_range: Beams hitting nothing closer than this report inf.
        noise_std: Standard deviation of additive range noise (meters).
        rng: Random generator for the noise.

    Returns:
        Ranges of shape (num_rays,).
    """
    x, y, yaw = np.asarray(pose, dtype=np.float64)
    increment = 2.0 * np.pi / num_rays
    beam_angles = angle_min + np.arange(num_rays) * increment

    ranges = ray_segment_distances([x, y], yaw + beam_angles, walls)
    ranges[ranges >= max_range] = np.inf

    if noise_std > 0:
        rng = rng or np.random.default_rng()
        finite = np.isfinite(ranges)
        ranges[finite] += rng.normal(0.0, noise_std, size=int(finite.sum()))
        ranges[finite] = np.maximum(ranges[finite], 0.0)
    return ranges


def simulate_scan(
    pose: np.ndarray,
    walls: List[Wall],
    num_rays: int = 360,
    max_range: float = 10.0,
    noise_std: float = 0.02,
    stamp: float = 0.0,
    sensor_offset: Optional[np.ndarray] = None,
    rng: Optional[np.random.Generator] = None,
) -> LaserScan:
    """Simulate the LaserScan seen by a sensor mounted on a robot at ``pose``.

    Args:
        pose: Robot base pose [x, y, yaw] in the world frame.
        walls: Wall segments.
        num_rays: Number of beams over the full circle.
        max_range: Maximum sensor range (meters).
        noise_std: Range noise standard deviation (meters).
        stamp: Scan timestamp (seconds).
        sensor_offset: Pose of the sensor on the base [x, y, yaw]; identity
                       when omitted.
        rng: Random generator for the noise.

    Example:
        >>> walls = make_room_walls(10.0, 8.0)
        >>> scan = simulate_scan(np.array([0.0, 0.0, 0.0]), walls, num_rays=360)
        >>> scan.ranges.shape
        (360,)
    """
    sensor_pose = np.asarray(pose, dtype=np.float64)
    if sensor_offset is not None:
        sensor_pose = se2_compose(sensor_pose, sensor_offset)

    increment = 2.0 * np.pi / num_rays
    angle_min = -np.pi
    ranges = simulate_ranges(
        sensor_pose,
        walls,
        num_rays=num_rays,
        angle_min=angle_min,
        max_range=max_range,
        noise_std=noise_std,
        rng=rng,
    )
    return LaserScan(
        ranges=ranges,
        angle_min=angle_min,
        angle_increment=increment,
        range_max=max_range,
        angle_max=angle_min + (num_rays - 1) * increment,
        stamp=stamp,
    )


def make_room_walls(
    width: float = 12.0,
    height: float = 9.0,
    obstacles: bool = True,
) -> List[Wall]:
    """Walls of a rectangular room centred on the origin.

    Args:
        width: Room extent along x (meters).
        height: Room extent along y (meters).
        obstacles: Add a few interior boxes and a partition so that scans are
                   not symmetric.

    Returns:
        List of (start, end) wall segments.
    """
    hx, hy = 0.5 * width, 0.5 * height
    corners = [(-hx, -hy), (hx, -hy), (hx, hy), (-hx, hy)]
    walls = [
        (np.array(corners[k], dtype=float), np.array(corners[(k + 1) % 4], dtype=float))
        for k in range(4)
    ]
    if not obstacles:
        return walls

    def box(cx: float, cy: float, sx: float, sy: float) -> List[Wall]:
        pts = [
            (cx - sx, cy - sy),
            (cx + sx, cy - sy),
            (cx + sx, cy + sy),
            (cx - sx, cy + sy),
        ]
        return [
            (np.array(pts[k], dtype=float), np.array(pts[(k + 1) % 4], dtype=float))
            for k in range(4)
        ]

    walls += box(0.3 * width, 0.25 * height, 0.4, 0.3)
    walls += box(-0.3 * width, -0.2 * height, 0.3, 0.5)
    walls += box(-0.15 * width, 0.3 * height, 0.25, 0.25)
    # Partial partition with a doorway
    walls.append((np.array([0.1 * width, -hy]), np.array([0.1 * width, -0.15 * height])))
    return walls


def make_trajectory(
    n_poses: int = 60,
    radius: float = 2.0,
    center: Tuple[float, float] = (0.0, 0.0),
    arc: float = np.pi,
) -> np.ndarray:
    """Poses along a circular arc, heading tangent to the arc.

    Args:
        n_poses: Number of poses.
        radius: Arc radius (meters).
        center: Arc centre [x, y].
        arc: Swept angle (radians).

    Returns:
        Poses of shape (n_poses, 3).
    """
    phi = np.linspace(-0.5 * np.pi, -0.5 * np.pi + arc, n_poses)
    x = center[0] + radius * np.cos(phi)
    y = center[1] + radius * np.sin(phi) + radius
    yaw = wrap_angle_array(phi + 0.5 * np.pi)
    return np.column_stack([x, y, yaw])

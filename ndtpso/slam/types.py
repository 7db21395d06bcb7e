"""Type definitions and data structures for the NDT-PSO scan matcher.

Key types:
    - Pose2: SE(2) pose representation [x, y, yaw]
    - LaserScan: one planar range scan as delivered by the sensor
    - AlignmentResult: outcome of one particle swarm alignment
    - CycleResult: outcome of one matching cycle

Author: Navigation Engineer
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class Pose2:
    """
    SE(2) pose representation.

    Represents a rigid transformation in the plane: position (x, y) and
    orientation (yaw angle). The engine itself works on arrays of shape (3,);
    every pose argument also accepts a Pose2 (see se2._as_pose).

    Attributes:
        x: Position in x-axis (meters).
        y: Position in y-axis (meters).
        yaw: Heading angle (radians), counter-clockwise from the positive
             x-axis. Should be normalized to (-π, π].

    Examples:
        >>> p = Pose2(x=10.0, y=5.0, yaw=np.pi/2)
        >>> p.to_array()  # array([10., 5., 1.5707...])
        >>> p3 = Pose2.from_array(np.array([1.0, 2.0, np.pi/4]))
    """

    x: float
    y: float
    yaw: float

    def __post_init__(self) -> None:
        """Validate pose values after initialization."""
        if not np.isfinite(self.x):
            raise ValueError(f"x must be finite, got {self.x}")
        if not np.isfinite(self.y):
            raise ValueError(f"y must be finite, got {self.y}")
        if not np.isfinite(self.yaw):
            raise ValueError(f"yaw must be finite, got {self.yaw}")

    def to_array(self) -> np.ndarray:
        """Convert pose to NumPy array [x, y, yaw] of shape (3,)."""
        return np.array([self.x, self.y, self.yaw], dtype=np.float64)

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "Pose2":
        """
        Create Pose2 from NumPy array [x, y, yaw].

        Raises:
            ValueError: If array does not have exactly 3 elements.
        """
        arr = np.asarray(arr, dtype=np.float64)
        if arr.shape != (3,):
            raise ValueError(f"Array must have shape (3,), got {arr.shape}")
        return cls(x=float(arr[0]), y=float(arr[1]), yaw=float(arr[2]))

    @classmethod
    def identity(cls) -> "Pose2":
        """Create identity pose (origin with zero rotation)."""
        return cls(x=0.0, y=0.0, yaw=0.0)

    def __repr__(self) -> str:
        """Readable string representation."""
        return f"Pose2(x={self.x:.4f}, y={self.y:.4f}, yaw={self.yaw:.4f})"


@dataclass
class LaserScan:
    """
    One planar range scan.

    Mirrors the fields of a ROS ``sensor_msgs/LaserScan`` that the matcher
    actually consumes.

    Attributes:
        ranges: Range readings (meters), shape (N,). Non-finite entries and
                entries at or beyond range_max are treated as "no return".
        angle_min: Angle of the first reading (radians).
        angle_increment: Angular step between readings (radians).
        range_max: Maximum valid range (meters).
        range_min: Minimum valid range (meters).
        angle_max: Angle of the last reading (radians). When given, it fixes
                   the expected number of readings.
        stamp: Acquisition time (seconds).
        frame_id: Sensor frame name.
    """

    ranges: np.ndarray
    angle_min: float
    angle_increment: float
    range_max: float
    range_min: float = 0.0
    angle_max: Optional[float] = None
    stamp: float = 0.0
    frame_id: str = "laser"

    def __post_init__(self) -> None:
        self.ranges = np.asarray(self.ranges, dtype=np.float64)

    @property
    def expected_count(self) -> Optional[int]:
        """Number of readings implied by angle_min/angle_max/angle_increment."""
        if self.angle_max is None or self.angle_increment == 0:
            return None
        return int(round((self.angle_max - self.angle_min) / self.angle_increment)) + 1


@dataclass
class AlignmentResult:
    """
    Outcome of one particle swarm alignment.

    Attributes:
        pose: Best pose found [x, y, yaw], shape (3,).
        fitness: Fitness (sum of cell densities) at that pose.
        iterations: Number of evaluate/update/move rounds executed.
        evaluations: Number of fitness evaluations performed.
        degenerate: True when the seed was returned unchanged because there
                    was nothing to match (empty cloud or empty map).
    """

    pose: np.ndarray
    fitness: float
    iterations: int = 0
    evaluations: int = 0
    degenerate: bool = False


@dataclass
class CycleResult:
    """
    Outcome of one matching cycle.

    Attributes:
        index: Cycle counter, starting at 0.
        stamp: Scan timestamp (seconds).
        pose: Estimated sensor-base pose in the map frame [x, y, yaw].
        fitness: Alignment fitness (0 on the first cycle).
        elapsed: Wall-clock duration of the cycle (seconds).
        points: Candidate cloud of this cycle in the base frame, shape (N, 2).
        degenerate: True when alignment fell back to the previous pose.
        seed_pose: External pose that accompanied the scan, if any.
    """

    index: int
    stamp: float
    pose: np.ndarray
    fitness: float
    elapsed: float
    points: np.ndarray
    degenerate: bool = False
    seed_pose: Optional[np.ndarray] = None

    @property
    def n_points(self) -> int:
        """Number of valid points in the candidate cloud."""
        return int(self.points.shape[0])

"""Trajectory log: the estimated pose of every cycle, with optional reference poses."""

import threading
from typing import List, Optional

import numpy as np

from ndtpso.slam.se2 import PoseLike, _as_pose


class TrajectoryLog:
    """
    Append-only record of (stamp, pose, reference pose) triples.

    The reference pose is whatever external estimate accompanied the scan
    (odometry, ground truth in simulation); entries without one store NaN.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._stamps: List[float] = []
        self._poses: List[np.ndarray] = []
        self._references: List[np.ndarray] = []

    def append(self, stamp: float, pose: PoseLike, reference: Optional[PoseLike] = None) -> None:
        pose = _as_pose(pose, "pose").copy()
        ref = np.full(3, np.nan) if reference is None else _as_pose(reference, "reference").copy()
        with self._lock:
            self._stamps.append(float(stamp))
            self._poses.append(pose)
            self._references.append(ref)

    def __len__(self) -> int:
        with self._lock:
            return len(self._stamps)

    @property
    def stamps(self) -> np.ndarray:
        """Timestamps, shape (N,)."""
        with self._lock:
            return np.asarray(self._stamps, dtype=np.float64)

    @property
    def poses(self) -> np.ndarray:
        """Estimated poses, shape (N, 3)."""
        with self._lock:
            return np.asarray(self._poses, dtype=np.float64).reshape(-1, 3)

    @property
    def reference_poses(self) -> np.ndarray:
        """Reference poses, shape (N, 3); NaN rows where none was given."""
        with self._lock:
            return np.asarray(self._references, dtype=np.float64).reshape(-1, 3)

    @property
    def has_reference(self) -> bool:
        """True when at least one entry carries a reference pose."""
        refs = self.reference_poses
        return bool(refs.size) and bool(np.any(np.isfinite(refs[:, 0])))

"""Static transform buffer used to bootstrap the sensor mount offset.

The matcher needs the pose of the scan frame in the robot base frame before
its first cycle. A producer (a driver, a URDF loader, a test) publishes that
transform with set_transform(); the node blocks in wait_for_transform() for
a bounded time until it is available.
"""

import logging
import threading
import time
from typing import Dict, Optional, Tuple

import numpy as np

from ndtpso.errors import BootstrapTimeout
from ndtpso.slam.se2 import PoseLike, _as_pose, se2_inverse

logger = logging.getLogger(__name__)


class TransformBuffer:
    """
    Thread-safe store of static SE(2) transforms between named frames.

    A transform parent → child is the pose of ``child`` expressed in
    ``parent``. Lookups of child → parent return its inverse.
    """

    def __init__(self):
        self._transforms: Dict[Tuple[str, str], np.ndarray] = {}
        self._changed = threading.Condition()

    def set_transform(self, parent: str, child: str, pose: PoseLike) -> None:
        """Store (or replace) the transform parent → child and wake waiters."""
        pose = _as_pose(pose, "pose").copy()
        with self._changed:
            self._transforms[(parent, child)] = pose
            self._changed.notify_all()

    def _lookup(self, parent: str, child: str) -> Optional[np.ndarray]:
        if parent == child:
            return np.zeros(3)
        direct = self._transforms.get((parent, child))
        if direct is not None:
            return direct.copy()
        inverse = self._transforms.get((child, parent))
        if inverse is not None:
            return se2_inverse(inverse)
        return None

    def can_transform(self, parent: str, child: str) -> bool:
        with self._changed:
            return self._lookup(parent, child) is not None

    def lookup_transform(self, parent: str, child: str) -> np.ndarray:
        """
        Return the pose of ``child`` in ``parent`` without waiting.

        Raises:
            KeyError: If neither direction is known.
        """
        with self._changed:
            pose = self._lookup(parent, child)
        if pose is None:
            raise KeyError(f"no transform between '{parent}' and '{child}'")
        return pose

    def wait_for_transform(self, parent: str, child: str, timeout: float) -> np.ndarray:
        """
        Block until the transform parent → child is available.

        Args:
            parent: Parent frame name.
            child: Child frame name.
            timeout: Maximum wait (seconds).

        Returns:
            Pose of ``child`` in ``parent`` [x, y, yaw].

        Raises:
            BootstrapTimeout: If the transform is still unknown after ``timeout``.
        """
        deadline = time.monotonic() + timeout
        logger.info("Waiting for transform %s -> %s (timeout %.1f s)", parent, child, timeout)
        with self._changed:
            while True:
                pose = self._lookup(parent, child)
                if pose is not None:
                    logger.info(
                        "Transform %s -> %s: x=%.3f y=%.3f yaw=%.3f",
                        parent, child, pose[0], pose[1], pose[2],
                    )
                    return pose
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise BootstrapTimeout(
                        f"transform {parent} -> {child} not available after {timeout:.1f} s"
                    )
                self._changed.wait(remaining)

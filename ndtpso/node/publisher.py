"""Fixed-rate pose publication, decoupled from the matching cycle.

The matcher produces a pose whenever a scan has been processed; consumers
usually want one at a steady rate. PosePublisher keeps the latest pose as an
immutable PoseStamped snapshot, swapped under its own lock, and a background
thread hands that snapshot to a sink at ``rate_hz``. The thread never takes
the matcher's lock, so a slow alignment only makes the published pose stale.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

from ndtpso.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoseStamped:
    """
    Pose of ``child_frame_id`` in ``frame_id`` at time ``stamp``.

    Attributes:
        stamp: Time of the scan that produced the pose (seconds).
        frame_id: Parent frame (the map).
        child_frame_id: Frame whose pose is given (the robot base).
        x: Position x (meters).
        y: Position y (meters).
        yaw: Heading (radians).
    """

    stamp: float
    frame_id: str
    child_frame_id: str
    x: float
    y: float
    yaw: float

    def quaternion(self) -> Tuple[float, float, float, float]:
        """Planar rotation as a unit quaternion (x, y, z, w)."""
        half = 0.5 * self.yaw
        return (0.0, 0.0, float(np.sin(half)), float(np.cos(half)))

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.yaw], dtype=np.float64)


Sink = Callable[[PoseStamped], None]


class PosePublisher:
    """
    Publish the latest pose at a fixed rate on a background thread.

    Nothing is published before the first update().

    Example:
        >>> published = []
        >>> publisher = PosePublisher(published.append, rate_hz=30.0)
        >>> publisher.start()
        >>> publisher.update(PoseStamped(0.0, "map", "base_link", 1.0, 2.0, 0.1))
        >>> publisher.stop()
    """

    def __init__(self, sink: Sink, rate_hz: float = 30.0):
        if not rate_hz > 0:
            raise ConfigError(f"rate_hz must be positive, got {rate_hz}")
        self.sink = sink
        self.rate_hz = float(rate_hz)
        self._snapshot: Optional[PoseStamped] = None
        self._snapshot_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.published_count = 0

    def update(self, pose: PoseStamped) -> None:
        """Replace the snapshot returned by latest()."""
        with self._snapshot_lock:
            self._snapshot = pose

    def latest(self) -> Optional[PoseStamped]:
        with self._snapshot_lock:
            return self._snapshot

    def publish_once(self) -> bool:
        """Send the current snapshot to the sink; False if there is none yet."""
        snapshot = self.latest()
        if snapshot is None:
            return False
        self.sink(snapshot)
        self.published_count += 1
        return True

    def _run(self) -> None:
        period = 1.0 / self.rate_hz
        while not self._stop.wait(period):
            try:
                self.publish_once()
            except Exception:
                logger.exception("Pose sink failed")

    def start(self) -> None:
        """Start the publication thread (no-op if already running)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="ndtpso-pose-publisher", daemon=True
        )
        self._thread.start()
        logger.info("Publishing pose at %.1f Hz", self.rate_hz)

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        """Stop the publication thread and wait for it to exit."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

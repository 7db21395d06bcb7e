"""Scan matcher node: the matcher wired to its inputs and outputs.

Responsibilities around the matching engine:
    - bootstrap: wait (bounded) for the base → sensor transform and install
      it as the sensor offset
    - backpressure: a bounded queue feeds one worker thread; when the queue
      is full new scans are dropped and counted
    - outputs: fixed-rate pose publication, trajectory log, snapshot map
    - shutdown: drain, stop threads, export results
"""

import logging
import queue
import threading
from typing import List, Optional, Tuple

import numpy as np

from ndtpso.config import NodeConfig
from ndtpso.slam.frame import NDTFrame
from ndtpso.slam.matcher import ScanMatcher
from ndtpso.slam.se2 import PoseLike
from ndtpso.slam.types import CycleResult, LaserScan

from .bootstrap import TransformBuffer
from .export import export_results
from .publisher import PosePublisher, PoseStamped, Sink
from .trajectory import TrajectoryLog

logger = logging.getLogger(__name__)

_STOP = object()


class ScanMatcherNode:
    """
    Run a ScanMatcher on a stream of scans.

    Scans are either pushed through submit() (asynchronous, may drop) once
    start() has been called, or passed to process() (synchronous, never
    drops). Both paths go through the same matcher and listeners.

    Attributes:
        config: Node configuration.
        transforms: Transform buffer consulted at bootstrap.
        matcher: The matching engine.
        trajectory: Estimated pose of every cycle.
        snapshot_map: Frame of side ``map_size`` fed every
                      ``snapshot_interval`` cycles; used for export only.
        publisher: Fixed-rate pose publisher.
        dropped_scans: Number of scans rejected because the queue was full.

    Example:
        >>> node = ScanMatcherNode(NodeConfig(wait_for_tf=False))
        >>> node.start()
        >>> for scan in scans:
        ...     node.submit(scan)
        >>> paths = node.stop(export=True)
    """

    def __init__(
        self,
        config: Optional[NodeConfig] = None,
        transforms: Optional[TransformBuffer] = None,
        pose_sink: Optional[Sink] = None,
    ):
        self.config = config or NodeConfig()
        self.transforms = transforms or TransformBuffer()
        engine = self.config.ndtpso

        self.matcher = ScanMatcher.from_config(engine)
        self.trajectory = TrajectoryLog()
        self.snapshot_map = NDTFrame.from_side_length(
            self.config.map_size,
            engine.cell_side,
            min_points_per_cell=engine.min_points_per_cell,
            covariance_floor=engine.covariance_floor,
        )
        self.publisher = PosePublisher(pose_sink or self._discard, rate_hz=self.config.rate)

        self.dropped_scans = 0
        self._queue: "queue.Queue" = queue.Queue(maxsize=self.config.queue_size)
        self._worker: Optional[threading.Thread] = None
        self._bootstrapped = False

        self.matcher.add_listener(self._on_cycle)
        self._log_configuration()

    @staticmethod
    def _discard(pose: PoseStamped) -> None:
        pass

    def _log_configuration(self) -> None:
        cfg = self.config
        engine = cfg.ndtpso
        logger.info("Scan topic: %s", cfg.scan_topic)
        logger.info("Frames: %s -> %s", cfg.base_frame, cfg.scan_frame)
        logger.info(
            "NDT cell side: %.3f m, frame size: %.1f m, snapshot map size: %.1f m",
            engine.cell_side, engine.frame_size, cfg.map_size,
        )
        logger.info(
            "PSO: population %d, iterations %d, workers %d",
            engine.pso.population, engine.pso.iterations, engine.pso.worker_count,
        )
        if engine.occupancy_cell_side is not None:
            logger.info("Occupancy grid cell side: %.3f m", engine.occupancy_cell_side)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def bootstrap(self) -> np.ndarray:
        """
        Install the base → sensor transform as the matcher's sensor offset.

        Waits at most ``bootstrap_timeout`` seconds when ``wait_for_tf`` is
        set; otherwise uses the transform if already known, else identity.

        Returns:
            The installed offset [x, y, yaw].

        Raises:
            BootstrapTimeout: If waiting and the transform never arrives.
        """
        cfg = self.config
        if cfg.wait_for_tf:
            offset = self.transforms.wait_for_transform(
                cfg.base_frame, cfg.scan_frame, cfg.bootstrap_timeout
            )
        elif self.transforms.can_transform(cfg.base_frame, cfg.scan_frame):
            offset = self.transforms.lookup_transform(cfg.base_frame, cfg.scan_frame)
        else:
            logger.info("No %s -> %s transform, using identity", cfg.base_frame, cfg.scan_frame)
            offset = np.zeros(3)
        self.matcher.set_sensor_offset(offset)
        self._bootstrapped = True
        return offset

    def start(self) -> None:
        """Bootstrap, then start the pose publisher and the scan worker."""
        if not self._bootstrapped:
            self.bootstrap()
        self.publisher.start()
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(
                target=self._run, name="ndtpso-scan-worker", daemon=True
            )
            self._worker.start()

    def stop(self, export: bool = False, timeout: Optional[float] = None) -> List:
        """
        Process the scans still queued, stop all threads and optionally export.

        Args:
            export: Write the trajectory and map to ``export_dir``.
            timeout: Bound on the wait for the worker thread.

        Returns:
            Paths of exported files (empty without export).
        """
        if self._worker is not None:
            self._queue.put(_STOP)
            self._worker.join(timeout)
            self._worker = None
        self.publisher.stop()
        self.matcher.close()
        logger.info(
            "Stopped after %d cycles (%d scans dropped)", self.matcher.n_cycles, self.dropped_scans
        )
        if not export:
            return []
        return self.export()

    def export(self, when: Optional[float] = None) -> List:
        """Write the trajectory, snapshot map and figures to ``export_dir``."""
        return export_results(
            self.config.export_dir,
            self.config.scan_topic,
            self.snapshot_map,
            self.trajectory,
            when=when,
            occupancy=self.matcher.reference.occupancy,
        )

    def __enter__(self) -> "ScanMatcherNode":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def submit(self, scan: LaserScan, seed_pose: Optional[PoseLike] = None) -> bool:
        """
        Queue a scan for the worker thread.

        Returns:
            True if queued, False if dropped because the queue was full.
        """
        try:
            self._queue.put_nowait((scan, seed_pose))
        except queue.Full:
            self.dropped_scans += 1
            logger.warning(
                "Dropped scan at t=%.3f, matcher busy (%d dropped)",
                scan.stamp, self.dropped_scans,
            )
            return False
        return True

    def wait_idle(self) -> None:
        """Block until every queued scan has been processed."""
        self._queue.join()

    def process(self, scan: LaserScan, seed_pose: Optional[PoseLike] = None) -> CycleResult:
        """Run one cycle synchronously in the calling thread."""
        return self.matcher.process(scan, seed_pose)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                scan, seed_pose = item
                self.matcher.process(scan, seed_pose)
            except Exception:
                logger.exception("Scan matching cycle failed")
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _on_cycle(self, cycle: CycleResult) -> None:
        x, y, yaw = (float(v) for v in cycle.pose)
        self.publisher.update(
            PoseStamped(
                stamp=cycle.stamp,
                frame_id="map",
                child_frame_id=self.config.base_frame,
                x=x,
                y=y,
                yaw=yaw,
            )
        )
        self.trajectory.append(cycle.stamp, cycle.pose, cycle.seed_pose)

        if cycle.index % self.config.snapshot_interval == 0:
            self.snapshot_map.insert_points(cycle.pose, cycle.points)

        logger.debug(
            "Cycle %d: average rate %.2f Hz, matching rate %.2f Hz, fitness %.2f, %d points",
            cycle.index,
            self.matcher.average_rate_hz,
            self.matcher.matching_rate_hz,
            cycle.fitness,
            cycle.n_points,
        )

    @property
    def latest_pose(self) -> Optional[Tuple[float, float, float]]:
        snapshot = self.publisher.latest()
        if snapshot is None:
            return None
        return snapshot.x, snapshot.y, snapshot.yaw

"""Scan matching coordinator: one sense → align → update cycle at a time.

The ScanMatcher owns every piece of mutable engine state (reference frame,
local frame, previous and current pose, counters) and a single lock that
covers one whole cycle, so concurrent calls to process() are serialised and
never interleave their reads and writes of the reference frame.

Cycle:
    1. Load the scan into the local frame (its origin is the sensor mount).
    2. First cycle: adopt the seed pose, no alignment.
       Later cycles: align the local cloud against the reference, seeded
       with the previous pose.
    3. Insert the local cloud into the reference at the new pose.
    4. Reset the local frame and hand the CycleResult to the listeners.
"""

import threading
import time
import warnings
from typing import TYPE_CHECKING, Callable, List, Optional

import numpy as np

from ndtpso.errors import (
    DegenerateAlignmentWarning,
    InputError,
    ListenerWarning,
    ScanInputWarning,
)

from .cell import COVARIANCE_FLOOR, MIN_POINTS_PER_CELL
from .frame import NDTFrame
from .pso import PSOConfig
from .se2 import PoseLike, _as_pose
from .types import CycleResult, LaserScan

if TYPE_CHECKING:
    from ndtpso.config import NDTPSOConfig

Listener = Callable[[CycleResult], None]


class ScanMatcher:
    """
    Incremental NDT-PSO scan matcher.

    Attributes:
        reference: Long-lived frame holding the accumulated map.
        local: Frame reused every cycle for the incoming scan.

    Example:
        >>> matcher = ScanMatcher(cell_side=0.5, frame_size=100.0)
        >>> matcher.set_sensor_offset([0.1, 0.0, 0.0])
        >>> for scan in scans:
        ...     result = matcher.process(scan)
        ...     print(result.pose, result.fitness)
    """

    def __init__(
        self,
        cell_side: float = 0.5,
        frame_size: float = 100.0,
        pso: Optional[PSOConfig] = None,
        min_points_per_cell: int = MIN_POINTS_PER_CELL,
        covariance_floor: float = COVARIANCE_FLOOR,
        occupancy_cell_side: Optional[float] = None,
        initial_pose: Optional[PoseLike] = None,
    ):
        self.reference = NDTFrame.from_side_length(
            frame_size,
            cell_side,
            is_reference=True,
            config=pso,
            occupancy_resolution=occupancy_cell_side,
            min_points_per_cell=min_points_per_cell,
            covariance_floor=covariance_floor,
        )
        # The local frame only ever holds raw points; its grid stays unused
        self.local = NDTFrame(
            width=self.reference.width,
            height=self.reference.height,
            resolution=cell_side,
        )

        self._lock = threading.Lock()
        self._listeners: List[Listener] = []
        self._initial_pose = (
            np.zeros(3) if initial_pose is None else _as_pose(initial_pose, "initial_pose").copy()
        )
        self._previous = self._initial_pose.copy()
        self._current = self._initial_pose.copy()
        self._latest: Optional[CycleResult] = None
        self._n_cycles = 0
        self._first_cycle_time: Optional[float] = None
        self._last_elapsed = 0.0

    @classmethod
    def from_config(
        cls, config: "NDTPSOConfig", initial_pose: Optional[PoseLike] = None
    ) -> "ScanMatcher":
        """Build a matcher from an NDTPSOConfig."""
        return cls(
            cell_side=config.cell_side,
            frame_size=config.frame_size,
            pso=config.pso,
            min_points_per_cell=config.min_points_per_cell,
            covariance_floor=config.covariance_floor,
            occupancy_cell_side=config.occupancy_cell_side,
            initial_pose=initial_pose,
        )

    def set_sensor_offset(self, pose: PoseLike) -> None:
        """
        Set the sensor mount transform (base → sensor).

        load() lifts every scan through this offset, so poses and the map are
        expressed for the robot base rather than the sensor.
        """
        with self._lock:
            self.local.set_origin(pose)

    def add_listener(self, callback: Listener) -> None:
        """Register a callable invoked with every CycleResult."""
        with self._lock:
            self._listeners.append(callback)

    def process(self, scan: LaserScan, seed_pose: Optional[PoseLike] = None) -> CycleResult:
        """
        Run one matching cycle.

        Args:
            scan: Incoming range scan.
            seed_pose: External pose estimate (e.g. odometry) accompanying the
                       scan. Adopted as the starting pose on the first cycle;
                       only recorded afterwards.

        Returns:
            CycleResult of this cycle.
        """
        seed = None if seed_pose is None else _as_pose(seed_pose, "seed_pose").copy()

        with self._lock:
            start = time.perf_counter()
            if self._first_cycle_time is None:
                self._first_cycle_time = start

            try:
                self.local.load(
                    scan.ranges,
                    scan.angle_min,
                    scan.angle_increment,
                    scan.range_max,
                    min_range=scan.range_min,
                    expected_count=scan.expected_count,
                )
            except InputError as e:
                warnings.warn(
                    f"scan at t={scan.stamp:.3f} rejected: {e}", ScanInputWarning, stacklevel=2
                )
                self.local.set_points(np.empty((0, 2)))

            fitness = 0.0
            degenerate = False
            if self._n_cycles == 0:
                if seed is not None:
                    self._current = seed.copy()
            else:
                result = self.reference.align(self._previous, self.local)
                self._current = result.pose
                fitness = result.fitness
                degenerate = result.degenerate
                if degenerate:
                    warnings.warn(
                        f"cycle {self._n_cycles}: nothing to align, keeping previous pose",
                        DegenerateAlignmentWarning,
                        stacklevel=2,
                    )

            self._previous = self._current.copy()
            self.reference.update(self._current, self.local)

            self._last_elapsed = time.perf_counter() - start
            cycle = CycleResult(
                index=self._n_cycles,
                stamp=scan.stamp,
                pose=self._current.copy(),
                fitness=fitness,
                elapsed=self._last_elapsed,
                points=self.local.points,
                degenerate=degenerate,
                seed_pose=seed,
            )
            self.local.reset()
            self._n_cycles += 1
            self._latest = cycle

            for listener in self._listeners:
                try:
                    listener(cycle)
                except Exception as e:
                    warnings.warn(
                        f"cycle {cycle.index}: listener {listener!r} failed: {e!r}",
                        ListenerWarning,
                        stacklevel=2,
                    )
            return cycle

    @property
    def pose(self) -> np.ndarray:
        """Current pose estimate [x, y, yaw]."""
        return self._current.copy()

    @property
    def latest(self) -> Optional[CycleResult]:
        """Result of the most recent cycle, or None before the first one."""
        return self._latest

    @property
    def n_cycles(self) -> int:
        return self._n_cycles

    @property
    def matching_rate_hz(self) -> float:
        """Inverse duration of the last cycle."""
        if self._last_elapsed <= 0:
            return 0.0
        return 1.0 / self._last_elapsed

    @property
    def average_rate_hz(self) -> float:
        """Cycles per second since the first cycle started."""
        if self._first_cycle_time is None:
            return 0.0
        duration = time.perf_counter() - self._first_cycle_time
        if duration <= 0:
            return 0.0
        return self._n_cycles / duration

    def close(self) -> None:
        """Shut down the optimizer's worker pool."""
        self.reference.close()

    def __enter__(self) -> "ScanMatcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

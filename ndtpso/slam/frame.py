"""NDT frame: a fixed grid of Gaussian cells plus the most recent point cloud.

A frame plays one of two roles in the matcher:

    - Reference frame: the long-lived map. Aligned scans are inserted into
      its cells with update(); align() searches for the pose that best fits
      a new scan against those cells.
    - Local frame: the current observation. load() fills its raw point
      buffer from a range scan; its cells are never used.

Grid layout:
    The grid has ``width × height`` square cells of side ``resolution`` and
    is centred on the frame's coordinate origin, i.e. it covers
    [-width·res/2, width·res/2) × [-height·res/2, height·res/2). A point maps
    to cell floor((p - lower_corner) / res); points outside the array are
    discarded.

Reset:
    reset() bumps a generation counter instead of clearing the cells. A cell
    whose generation differs from the frame's is treated as empty and is
    re-initialised in place the next time a point lands in it, so a reset is
    O(1) and no cell storage is reallocated.

Scoring:
    For speed, score() does not call NDTCell.density() point by point.
    The frame keeps a dense table (mean, inverse covariance, informative
    flag, generation) per grid cell that is refreshed from the cells touched
    since the last refresh; score() then evaluates all points of a cloud in
    one vectorised pass. The result equals the sum of the cells' densities.

References:
    - Biber & Straßer (2003), The Normal Distributions Transform.
"""

from typing import Dict, Iterator, Optional, Set, Tuple

import numpy as np

from ndtpso.errors import ConfigError, DegenerateMapError, InputError, ResourceExhaustion

from .cell import COVARIANCE_FLOOR, MIN_POINTS_PER_CELL, NDTCell
from .occupancy import OccupancyGrid
from .pso import ParticleSwarmOptimizer, PSOConfig
from .se2 import PoseLike, _as_pose, se2_apply
from .types import AlignmentResult

CellKey = Tuple[int, int]


class NDTFrame:
    """
    Grid of NDT cells anchored at an origin pose.

    Attributes:
        width: Number of cells along x (immutable).
        height: Number of cells along y (immutable).
        resolution: Cell side length in meters (immutable).
        is_reference: Whether the frame serves as a matching reference. A
                      reference frame allocates its scoring table up front
                      and maintains the optional occupancy grid.
        origin: Anchor transform [x, y, yaw] applied by load() (e.g. the
                sensor-mount offset base_link → laser).
        points: Raw point buffer, shape (N, 2), in frame coordinates.
        generation: Current generation counter.
        config: Particle swarm parameters used by align().
        occupancy: Optional finer occupancy grid (reference frames only).

    Example:
        >>> ref = NDTFrame(width=200, height=200, resolution=0.5, is_reference=True)
        >>> scan = NDTFrame(width=200, height=200, resolution=0.5)
        >>> scan.load(ranges, angle_min=-np.pi, angle_increment=np.pi / 180, max_range=30.0)
        >>> ref.update(np.zeros(3), scan)
        >>> result = ref.align(np.zeros(3), scan)
    """

    def __init__(
        self,
        origin: Optional[PoseLike] = None,
        width: int = 200,
        height: int = 200,
        resolution: float = 0.5,
        is_reference: bool = False,
        config: Optional[PSOConfig] = None,
        occupancy_resolution: Optional[float] = None,
        min_points_per_cell: int = MIN_POINTS_PER_CELL,
        covariance_floor: float = COVARIANCE_FLOOR,
    ):
        if int(width) != width or width <= 0:
            raise ConfigError(f"width must be a positive integer, got {width}")
        if int(height) != height or height <= 0:
            raise ConfigError(f"height must be a positive integer, got {height}")
        if not resolution > 0:
            raise ConfigError(f"resolution must be positive, got {resolution}")
        if occupancy_resolution is not None and not occupancy_resolution > 0:
            raise ConfigError(
                f"occupancy_resolution must be positive, got {occupancy_resolution}"
            )
        if min_points_per_cell < 1:
            raise ConfigError(
                f"min_points_per_cell must be >= 1, got {min_points_per_cell}"
            )
        if covariance_floor < 0:
            raise ConfigError(
                f"covariance_floor must be non-negative, got {covariance_floor}"
            )

        self._width = int(width)
        self._height = int(height)
        self._resolution = float(resolution)
        self._lower = -0.5 * self._resolution * np.array(
            [self._width, self._height], dtype=np.float64
        )
        self.is_reference = is_reference
        self.origin = np.zeros(3) if origin is None else _as_pose(origin, "origin").copy()
        self.config = config or PSOConfig()
        self.min_points_per_cell = int(min_points_per_cell)
        self.covariance_floor = float(covariance_floor)

        self.points = np.empty((0, 2), dtype=np.float64)
        self.generation = 0
        self.point_count = 0
        self._cells: Dict[CellKey, NDTCell] = {}
        self._dirty: Set[CellKey] = set()
        self._optimizer: Optional[ParticleSwarmOptimizer] = None

        # Dense scoring table, allocated lazily except for reference frames
        self._means: Optional[np.ndarray] = None
        self._inv_covs: Optional[np.ndarray] = None
        self._informative: Optional[np.ndarray] = None
        self._table_generation: Optional[np.ndarray] = None

        self.occupancy: Optional[OccupancyGrid] = None
        try:
            if is_reference:
                self._allocate_table()
                if occupancy_resolution is not None:
                    self.occupancy = OccupancyGrid(
                        side_length=max(self.side_lengths), resolution=occupancy_resolution
                    )
        except MemoryError as e:
            raise ResourceExhaustion(
                f"cannot allocate a {self._width}x{self._height} grid: {e}"
            ) from e

    @classmethod
    def from_side_length(
        cls,
        side_length: float,
        resolution: float,
        origin: Optional[PoseLike] = None,
        **kwargs,
    ) -> "NDTFrame":
        """
        Build a square frame covering ``side_length`` meters.

        Args:
            side_length: Frame side in meters.
            resolution: Cell side in meters.
            origin: Anchor transform.
            **kwargs: Remaining NDTFrame arguments.
        """
        if not side_length > 0:
            raise ConfigError(f"side_length must be positive, got {side_length}")
        if not resolution > 0:
            raise ConfigError(f"resolution must be positive, got {resolution}")
        cells = int(np.ceil(side_length / resolution))
        return cls(origin=origin, width=cells, height=cells, resolution=resolution, **kwargs)

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def resolution(self) -> float:
        return self._resolution

    @property
    def side_lengths(self) -> Tuple[float, float]:
        """Extent of the grid in meters along x and y."""
        return self._width * self._resolution, self._height * self._resolution

    def set_origin(self, pose: PoseLike) -> None:
        """Set the anchor transform (one-time bootstrap, before the first cycle)."""
        self.origin = _as_pose(pose, "pose").copy()

    def cell_indices(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Map points in frame coordinates to cell indices.

        Args:
            points: Points of shape (N, 2).

        Returns:
            Tuple of (indices, inside): integer indices of shape (N, 2) and a
            boolean mask selecting the finite points that fall on the grid.
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        finite = np.all(np.isfinite(points), axis=1)
        scaled = np.where(finite[:, None], (points - self._lower) / self._resolution, -1.0)
        idx = np.floor(scaled).astype(np.int64)
        inside = (
            finite
            & (idx[:, 0] >= 0)
            & (idx[:, 0] < self._width)
            & (idx[:, 1] >= 0)
            & (idx[:, 1] < self._height)
        )
        return idx, inside

    def cell_center(self, i: int, j: int) -> np.ndarray:
        """Center of cell (i, j) in frame coordinates."""
        return self._lower + (np.array([i, j], dtype=np.float64) + 0.5) * self._resolution

    # ------------------------------------------------------------------
    # Cells
    # ------------------------------------------------------------------

    def cell(self, i: int, j: int) -> Optional[NDTCell]:
        """Cell (i, j) of the current generation, or None if it is empty."""
        cell = self._cells.get((i, j))
        if cell is None or cell.generation != self.generation:
            return None
        return cell

    def cells(self) -> Iterator[Tuple[CellKey, NDTCell]]:
        """Iterate over the non-empty cells of the current generation."""
        for key, cell in self._cells.items():
            if cell.generation == self.generation and cell.n_points > 0:
                yield key, cell

    @property
    def n_informative_cells(self) -> int:
        """Number of cells that currently contribute to the fitness."""
        self.prepare_scoring()
        if self._informative is None:
            return 0
        current = self._table_generation == self.generation
        return int(np.count_nonzero(self._informative & current))

    def require_informative(self) -> None:
        """
        Raise DegenerateMapError unless at least one cell is informative.
        """
        if self.n_informative_cells == 0:
            raise DegenerateMapError("reference frame has no informative cells")

    # ------------------------------------------------------------------
    # Point input
    # ------------------------------------------------------------------

    def load(
        self,
        ranges: np.ndarray,
        angle_min: float,
        angle_increment: float,
        max_range: float,
        min_range: float = 0.0,
        expected_count: Optional[int] = None,
    ) -> np.ndarray:
        """
        Convert a range scan to points and make them the raw buffer.

        Reading i lies at angle_min + i·angle_increment. Non-finite readings,
        readings at or beyond ``max_range``, below ``min_range`` or not
        strictly positive are dropped. The remaining points are lifted through
        the frame origin and *replace* the current buffer.

        Args:
            ranges: Range readings, shape (N,).
            angle_min: Angle of the first reading (radians).
            angle_increment: Angular step (radians).
            max_range: Readings >= max_range are "no return".
            min_range: Readings < min_range are discarded.
            expected_count: Expected number of readings, if known.

        Returns:
            The new point buffer, shape (M, 2) with M <= N.

        Raises:
            InputError: If ``ranges`` is not one-dimensional or its length
                        differs from ``expected_count``.
        """
        ranges = np.asarray(ranges, dtype=np.float64)
        if ranges.ndim != 1:
            raise InputError(f"ranges must be one-dimensional, got shape {ranges.shape}")
        if expected_count is not None and ranges.shape[0] != expected_count:
            raise InputError(
                f"expected {expected_count} range readings, got {ranges.shape[0]}"
            )

        angles = angle_min + np.arange(ranges.shape[0]) * angle_increment
        with np.errstate(invalid="ignore"):
            valid = (
                np.isfinite(ranges)
                & (ranges < max_range)
                & (ranges >= min_range)
                & (ranges > 0.0)
            )

        r = ranges[valid]
        theta = angles[valid]
        sensor_points = np.column_stack([r * np.cos(theta), r * np.sin(theta)])
        self.points = se2_apply(self.origin, sensor_points)
        return self.points

    def set_points(self, points: np.ndarray) -> None:
        """Replace the raw buffer with points already in frame coordinates."""
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 2:
            raise InputError(f"points must have shape (N, 2), got {points.shape}")
        self.points = points.copy()

    def update(self, pose: PoseLike, other: "NDTFrame") -> int:
        """
        Insert another frame's raw points, transformed by ``pose``, into the cells.

        Insertion is additive: calling update() twice with the same
        arguments doubles the counts of the touched cells.

        Args:
            pose: Pose of ``other`` in this frame [x, y, yaw].
            other: Frame whose raw buffer is inserted.

        Returns:
            Number of points that landed on the grid.
        """
        pose = _as_pose(pose, "pose")
        sensor_xy = se2_apply(pose, other.origin[None, :2])[0]
        return self.insert_points(pose, other.points, sensor_xy=sensor_xy)

    def insert_points(
        self,
        pose: PoseLike,
        points: np.ndarray,
        sensor_xy: Optional[np.ndarray] = None,
    ) -> int:
        """
        Insert points given in a body frame located at ``pose``.

        Args:
            pose: Pose of the body frame in this frame [x, y, yaw].
            points: Points in the body frame, shape (N, 2).
            sensor_xy: Ray origin for the occupancy grid; defaults to the
                       body position.

        Returns:
            Number of points that landed on the grid.
        """
        pose = _as_pose(pose, "pose")
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if points.shape[0] == 0:
            return 0

        transformed = se2_apply(pose, points)
        idx, inside = self.cell_indices(transformed)

        if self.occupancy is not None:
            origin = pose[:2] if sensor_xy is None else sensor_xy
            self.occupancy.integrate(origin, transformed[np.all(np.isfinite(transformed), axis=1)])

        transformed = transformed[inside]
        idx = idx[inside]
        if transformed.shape[0] == 0:
            return 0

        # Group points by cell so each cell takes one batch insertion
        linear = idx[:, 0] * self._height + idx[:, 1]
        keys, inverse, counts = np.unique(linear, return_inverse=True, return_counts=True)
        order = np.argsort(inverse.reshape(-1), kind="stable")
        groups = np.split(transformed[order], np.cumsum(counts)[:-1])

        for key, group in zip(keys, groups):
            cell_key = (int(key // self._height), int(key % self._height))
            cell = self._cells.get(cell_key)
            if cell is None:
                cell = NDTCell(
                    min_points=self.min_points_per_cell,
                    covariance_floor=self.covariance_floor,
                    generation=self.generation,
                )
                self._cells[cell_key] = cell
            elif cell.generation != self.generation:
                cell.reset(self.generation)
            cell.insert_batch(group)
            self._dirty.add(cell_key)

        self.point_count += transformed.shape[0]
        return int(transformed.shape[0])

    def reset(self) -> None:
        """Empty the frame in O(1): new generation, empty raw buffer, same origin."""
        self.generation += 1
        self.points = np.empty((0, 2), dtype=np.float64)
        self.point_count = 0
        self._dirty.clear()

    # ------------------------------------------------------------------
    # Scoring and alignment
    # ------------------------------------------------------------------

    def _allocate_table(self) -> None:
        shape = (self._width, self._height)
        self._means = np.zeros(shape + (2,), dtype=np.float64)
        self._inv_covs = np.zeros(shape + (2, 2), dtype=np.float64)
        self._informative = np.zeros(shape, dtype=bool)
        self._table_generation = np.full(shape, -1, dtype=np.int64)

    def prepare_scoring(self) -> None:
        """
        Bring the scoring table up to date with the cells.

        Called before any parallel evaluation so that score() itself only
        reads shared state.
        """
        if not self._dirty:
            return
        if self._informative is None:
            try:
                self._allocate_table()
            except MemoryError as e:
                raise ResourceExhaustion(
                    f"cannot allocate a {self._width}x{self._height} scoring table: {e}"
                ) from e

        for key in self._dirty:
            cell = self._cells[key]
            self._table_generation[key] = self.generation
            inverse = cell.inverse_covariance
            if inverse is None:
                self._informative[key] = False
                continue
            self._informative[key] = True
            self._means[key] = cell.mean
            self._inv_covs[key] = inverse
        self._dirty.clear()

    def score(self, pose: PoseLike, points: np.ndarray) -> float:
        """
        Fitness of ``points`` placed at ``pose``.

            fitness = Σ_p density_{cell(T(p))}(T(p))

        Points that leave the grid or fall into non-informative cells add 0.

        Args:
            pose: Candidate pose [x, y, yaw].
            points: Candidate cloud in its body frame, shape (N, 2).

        Returns:
            Non-negative fitness (higher is better).
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if points.shape[0] == 0:
            return 0.0
        self.prepare_scoring()
        if self._informative is None:
            return 0.0

        transformed = se2_apply(pose, points)
        idx, inside = self.cell_indices(transformed)
        i = idx[inside, 0]
        j = idx[inside, 1]
        valid = self._informative[i, j] & (self._table_generation[i, j] == self.generation)
        if not np.any(valid):
            return 0.0

        i = i[valid]
        j = j[valid]
        diff = transformed[inside][valid] - self._means[i, j]
        mahalanobis = np.einsum("ni,nij,nj->n", diff, self._inv_covs[i, j], diff)
        return float(np.exp(-0.5 * np.maximum(mahalanobis, 0.0)).sum())

    def align(self, initial_guess: PoseLike, other: "NDTFrame") -> AlignmentResult:
        """
        Find the pose of ``other`` in this frame by particle swarm search.

        Args:
            initial_guess: Seed pose [x, y, yaw].
            other: Frame whose raw buffer is the candidate cloud.

        Returns:
            AlignmentResult (see ParticleSwarmOptimizer.align).
        """
        if self._optimizer is None:
            self._optimizer = ParticleSwarmOptimizer(self.config)
        return self._optimizer.align(self, other.points, _as_pose(initial_guess, "initial_guess"))

    def close(self) -> None:
        """Release the optimizer's worker pool."""
        if self._optimizer is not None:
            self._optimizer.close()

    def __len__(self) -> int:
        """Number of points in the raw buffer."""
        return int(self.points.shape[0])

    def __repr__(self) -> str:
        return (
            f"NDTFrame(width={self._width}, height={self._height}, "
            f"resolution={self._resolution}, reference={self.is_reference}, "
            f"generation={self.generation})"
        )

"""Auxiliary log-odds occupancy grid kept alongside the reference NDT frame.

The NDT cells are coarse (typically 0.5 m) because each one must hold enough
points for a covariance estimate. For inspection the reference frame can
also maintain a finer occupancy grid (typically 0.05 m) fed with the same
aligned scans.

Inverse sensor model (standard log-odds):
    - cells traversed by a ray before its endpoint receive ``l_free``
    - the endpoint cell receives ``l_occ``
    - values are clamped to [-clamp, clamp]
    - 0.0 = unknown (p = 0.5), > 0 occupied, < 0 free

Rays are sampled at one-cell steps, which is vectorised over all rays of a
scan; each cell is updated at most once per ray set per scan.
"""

from typing import Tuple

import numpy as np

L_OCC = 0.85
L_FREE = -0.4
LOG_ODDS_CLAMP = 10.0


class OccupancyGrid:
    """
    Square log-odds occupancy grid centred on the map origin.

    Attributes:
        resolution: Cell side length (meters).
        width: Number of cells along x.
        height: Number of cells along y.
        log_odds: Log-odds values, shape (width, height).

    Example:
        >>> grid = OccupancyGrid(side_length=10.0, resolution=0.1)
        >>> grid.integrate(np.zeros(2), np.array([[2.0, 0.0]]))
        >>> grid.probabilities().max() > 0.5
        True
    """

    def __init__(
        self,
        side_length: float,
        resolution: float,
        l_occ: float = L_OCC,
        l_free: float = L_FREE,
        clamp: float = LOG_ODDS_CLAMP,
    ):
        if side_length <= 0:
            raise ValueError(f"side_length must be positive, got {side_length}")
        if resolution <= 0:
            raise ValueError(f"resolution must be positive, got {resolution}")

        self.resolution = float(resolution)
        self.width = int(np.ceil(side_length / resolution))
        self.height = self.width
        self.l_occ = l_occ
        self.l_free = l_free
        self.clamp = clamp
        self.log_odds = np.zeros((self.width, self.height), dtype=np.float32)
        self._lower = -0.5 * self.resolution * np.array(
            [self.width, self.height], dtype=np.float64
        )

    def world_to_cell(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Map points (meters) to integer cell indices.

        Returns:
            Tuple of (indices, inside): indices of shape (N, 2) and a boolean
            mask of the points that fall inside the grid.
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        finite = np.all(np.isfinite(points), axis=1)
        scaled = np.where(finite[:, None], (points - self._lower) / self.resolution, -1.0)
        idx = np.floor(scaled).astype(np.int64)
        inside = (
            finite
            & (idx[:, 0] >= 0)
            & (idx[:, 0] < self.width)
            & (idx[:, 1] >= 0)
            & (idx[:, 1] < self.height)
        )
        return idx, inside

    def integrate(self, sensor_xy: np.ndarray, endpoints: np.ndarray) -> None:
        """
        Integrate one scan given in map coordinates.

        Args:
            sensor_xy: Sensor position [x, y] in the map frame.
            endpoints: Ray endpoints (scan points) in the map frame, shape (N, 2).
        """
        endpoints = np.asarray(endpoints, dtype=np.float64).reshape(-1, 2)
        if endpoints.shape[0] == 0:
            return
        origin = np.asarray(sensor_xy, dtype=np.float64).reshape(2)

        deltas = endpoints - origin
        lengths = np.linalg.norm(deltas, axis=1)
        n_steps = np.floor(lengths / self.resolution).astype(np.int64)
        max_steps = int(n_steps.max()) if n_steps.size else 0

        hit_idx, inside = self.world_to_cell(endpoints)
        hits = self._linear(hit_idx[inside])

        if max_steps > 0:
            # Sample every ray at one-cell spacing, stopping short of the hit
            steps = np.arange(max_steps, dtype=np.float64)
            fractions = steps[None, :] * self.resolution / np.maximum(lengths[:, None], 1e-12)
            samples = origin + fractions[:, :, None] * deltas[:, None, :]
            keep = steps[None, :] < n_steps[:, None]
            free_idx, inside = self.world_to_cell(samples[keep])
            free = np.setdiff1d(self._linear(free_idx[inside]), hits)
            self._add(free, self.l_free)

        self._add(hits, self.l_occ)
        np.clip(self.log_odds, -self.clamp, self.clamp, out=self.log_odds)

    def _linear(self, idx: np.ndarray) -> np.ndarray:
        return np.unique(idx[:, 0] * self.height + idx[:, 1])

    def _add(self, linear: np.ndarray, value: float) -> None:
        if linear.shape[0] == 0:
            return
        self.log_odds[linear // self.height, linear % self.height] += value

    def probabilities(self) -> np.ndarray:
        """Occupancy probabilities p = 1 - 1 / (1 + exp(L)), shape (width, height)."""
        return 1.0 - 1.0 / (1.0 + np.exp(self.log_odds.astype(np.float64)))

    def to_image(self) -> np.ndarray:
        """
        Grayscale image of the grid (0 = occupied, 255 = free, 128 = unknown).

        Returns:
            uint8 array of shape (height, width), row 0 at the top (max y).
        """
        gray = np.round(255.0 * (1.0 - self.probabilities())).astype(np.uint8)
        return np.flipud(gray.T)

"""NDT cell: incremental Gaussian accumulator over the points of one grid square.

Each cell of an NDT grid summarises the points that fell into it by their
sample mean and covariance. The statistics are accumulated as raw moments,
so insertion is O(1) and never needs the previous points:

    n      = number of points
    s      = Σ p_i            (shape (2,))
    S      = Σ p_i p_iᵀ       (shape (2, 2))
    mean   = s / n
    cov    = S / n - mean meanᵀ

A cell is *informative* once it holds at least ``min_points`` samples and
its covariance, after adding ``covariance_floor`` to the diagonal, is
positive definite. Non-informative cells have zero density everywhere.

References:
    - Biber & Straßer (2003), The Normal Distributions Transform: A New
      Approach to Laser Scan Matching.
"""

from typing import Optional

import numpy as np

MIN_POINTS_PER_CELL = 3
COVARIANCE_FLOOR = 1e-3  # m², added to the covariance diagonal before inversion


class NDTCell:
    """
    Gaussian summary of the 2D points inside one grid square.

    Attributes:
        n_points: Number of points inserted since the last reset.
        generation: Frame generation in which the cell was last reset. The
                    owning frame treats a cell as empty when this differs from
                    its own current generation.
        min_points: Minimum sample count for the cell to be informative.
        covariance_floor: Diagonal regularisation added before inversion.

    Example:
        >>> cell = NDTCell()
        >>> for p in [[0.1, 0.1], [0.2, 0.3], [0.3, 0.2]]:
        ...     cell.insert(p)
        >>> cell.is_informative
        True
        >>> cell.density(cell.mean)
        1.0
    """

    __slots__ = (
        "n_points",
        "generation",
        "min_points",
        "covariance_floor",
        "_sum",
        "_sum_outer",
        "_inverse",
        "_stale",
    )

    def __init__(
        self,
        min_points: int = MIN_POINTS_PER_CELL,
        covariance_floor: float = COVARIANCE_FLOOR,
        generation: int = 0,
    ):
        if min_points < 1:
            raise ValueError(f"min_points must be >= 1, got {min_points}")
        if covariance_floor < 0:
            raise ValueError(
                f"covariance_floor must be non-negative, got {covariance_floor}"
            )
        self.min_points = int(min_points)
        self.covariance_floor = float(covariance_floor)
        self.generation = generation
        self.n_points = 0
        self._sum = np.zeros(2, dtype=np.float64)
        self._sum_outer = np.zeros((2, 2), dtype=np.float64)
        self._inverse: Optional[np.ndarray] = None
        self._stale = True

    def reset(self, generation: int) -> None:
        """Drop all statistics and stamp the cell with a new generation."""
        self.generation = generation
        self.n_points = 0
        self._sum[:] = 0.0
        self._sum_outer[:] = 0.0
        self._inverse = None
        self._stale = True

    def insert(self, point: np.ndarray) -> None:
        """
        Add one point to the cell statistics.

        Args:
            point: Point [x, y] in the frame's coordinates.
        """
        p = np.asarray(point, dtype=np.float64).reshape(2)
        self.n_points += 1
        self._sum += p
        self._sum_outer += np.outer(p, p)
        self._stale = True

    def insert_batch(self, points: np.ndarray) -> None:
        """
        Add several points at once.

        Produces the same statistics as calling insert() on every row.

        Args:
            points: Points of shape (N, 2).
        """
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if pts.shape[0] == 0:
            return
        self.n_points += pts.shape[0]
        self._sum += pts.sum(axis=0)
        self._sum_outer += pts.T @ pts
        self._stale = True

    @property
    def mean(self) -> Optional[np.ndarray]:
        """Sample mean, shape (2,), or None while the cell is empty."""
        if self.n_points == 0:
            return None
        return self._sum / self.n_points

    @property
    def covariance(self) -> Optional[np.ndarray]:
        """Biased sample covariance S/n - μμᵀ, shape (2, 2), or None if empty."""
        if self.n_points == 0:
            return None
        mu = self._sum / self.n_points
        cov = self._sum_outer / self.n_points - np.outer(mu, mu)
        # Raw-moment accumulation can leave a tiny asymmetry
        return 0.5 * (cov + cov.T)

    @property
    def inverse_covariance(self) -> Optional[np.ndarray]:
        """
        Inverse of the regularised covariance, or None when not informative.

        Computed lazily and cached until the next insertion.
        """
        if self._stale:
            self._inverse = self._compute_inverse()
            self._stale = False
        return self._inverse

    @property
    def is_informative(self) -> bool:
        """True when the cell has enough samples and an invertible covariance."""
        return self.inverse_covariance is not None

    def _compute_inverse(self) -> Optional[np.ndarray]:
        if self.n_points < self.min_points:
            return None

        cov = self.covariance + np.eye(2) * self.covariance_floor
        if not np.all(np.isfinite(cov)):
            return None

        try:
            # Cholesky succeeds only for positive-definite matrices
            L = np.linalg.cholesky(cov)
        except np.linalg.LinAlgError:
            return None

        L_inv = np.linalg.inv(L)
        inverse = L_inv.T @ L_inv
        if not np.all(np.isfinite(inverse)):
            return None
        return inverse

    def density(self, point: np.ndarray) -> float:
        """
        Unnormalised Gaussian density of a point under this cell.

            density(p) = exp(-0.5 * (p - μ)ᵀ Σ⁻¹ (p - μ))

        Args:
            point: Point [x, y] in the frame's coordinates.

        Returns:
            Density in [0, 1]; exactly 0.0 when the cell is not informative.
        """
        inverse = self.inverse_covariance
        if inverse is None:
            return 0.0

        diff = np.asarray(point, dtype=np.float64).reshape(2) - self.mean
        mahalanobis = float(diff @ inverse @ diff)
        if not np.isfinite(mahalanobis):
            return 0.0
        return float(np.exp(-0.5 * max(mahalanobis, 0.0)))

    def __repr__(self) -> str:
        return (
            f"NDTCell(n_points={self.n_points}, generation={self.generation}, "
            f"informative={self.is_informative})"
        )

"""Particle swarm optimisation over SE(2) for NDT scan matching.

A gradient-based matcher (ICP, Newton NDT) follows the local slope of its
cost and can stop in a local optimum when the initial guess is poor. The
particle swarm instead keeps a population of candidate poses around the seed
and moves each one towards a blend of its own best and the swarm's best,
which needs no derivatives and tolerates the remaining non-convexity of the
NDT density surface.

Per call to align():
    1. Initialise P particles uniformly in a window around the seed
       (particle 0 sits exactly on the seed).
    2. Evaluate fitness = reference.score(pose, cloud) for every particle.
    3. Update personal bests, then the swarm best (sequential reduction).
    4. Move: v ← w·v + c1·r1·(pbest − x) + c2·r2·(gbest − x); x ← x + v.
    5. Repeat 2-4 for a fixed number of iterations.
    6. Return the swarm best.

The default weights are the constriction coefficients of Clerc & Kennedy
(w = 0.7298, c1 = c2 = 1.49618), which contract the swarm within a few tens
of iterations without an explicit velocity schedule.

References:
    - Kennedy & Eberhart (1995), Particle Swarm Optimization.
    - Clerc & Kennedy (2002), The particle swarm: explosion, stability, and
      convergence in a multidimensional complex space.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

import numpy as np

from ndtpso.errors import ConfigError, DegenerateMapError
from ndtpso.utils.angles import angle_diff, wrap_angle_array

from .types import AlignmentResult

if TYPE_CHECKING:
    from .frame import NDTFrame

PSO_POPULATION_SIZE = 30
PSO_ITERATIONS = 50


@dataclass
class PSOConfig:
    """
    Particle swarm parameters.

    Attributes:
        population: Number of particles.
        iterations: Number of evaluate/update/move rounds per alignment.
        num_threads: Worker threads for fitness evaluation. 1 evaluates
                     sequentially; <= 0 uses all available CPUs.
        inertia: Weight w of the previous velocity.
        cognitive: Weight c1 of the attraction to the particle's own best.
        social: Weight c2 of the attraction to the swarm best.
        window_cells: Half-width of the initial xy window, in NDT cells.
        window_yaw: Half-width of the initial yaw window (radians).
        initial_velocity: Initial velocity as a fraction of the window.
        convergence_tol: Optional early exit when every particle lies within
                         this distance (meters / radians) of the swarm best.
                         None runs the full iteration budget.
        seed: Seed of the optimizer's random generator.
    """

    population: int = PSO_POPULATION_SIZE
    iterations: int = PSO_ITERATIONS
    num_threads: int = -1
    inertia: float = 0.7298
    cognitive: float = 1.49618
    social: float = 1.49618
    window_cells: float = 2.0
    window_yaw: float = 0.35
    initial_velocity: float = 0.1
    convergence_tol: Optional[float] = None
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate the swarm parameters."""
        if self.population < 1:
            raise ConfigError(f"population must be >= 1, got {self.population}")
        if self.iterations < 1:
            raise ConfigError(f"iterations must be >= 1, got {self.iterations}")
        for name in ("inertia", "cognitive", "social", "initial_velocity"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be non-negative, got {getattr(self, name)}")
        if self.window_cells <= 0:
            raise ConfigError(f"window_cells must be positive, got {self.window_cells}")
        if self.window_yaw <= 0:
            raise ConfigError(f"window_yaw must be positive, got {self.window_yaw}")
        if self.convergence_tol is not None and self.convergence_tol <= 0:
            raise ConfigError(
                f"convergence_tol must be positive or None, got {self.convergence_tol}"
            )

    @property
    def worker_count(self) -> int:
        """Resolved number of evaluation workers (the 'auto' value expanded)."""
        if self.num_threads <= 0:
            return os.cpu_count() or 1
        return self.num_threads


class ParticleSwarmOptimizer:
    """
    Particle swarm scan matcher.

    The optimizer is stateless between calls apart from its random generator
    and its worker pool, so one instance can serve a reference frame for the
    whole run.

    Attributes:
        config: Swarm parameters.

    Example:
        >>> optimizer = ParticleSwarmOptimizer(PSOConfig(population=30, seed=0))
        >>> result = optimizer.align(reference_frame, scan_points, np.zeros(3))
        >>> result.pose, result.fitness
    """

    def __init__(self, config: Optional[PSOConfig] = None):
        self.config = config or PSOConfig()
        self._rng = np.random.default_rng(self.config.seed)
        self._executor: Optional[ThreadPoolExecutor] = None

    def close(self) -> None:
        """Shut down the evaluation worker pool, if one was started."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "ParticleSwarmOptimizer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def align(
        self,
        reference: "NDTFrame",
        points: np.ndarray,
        initial_guess: np.ndarray,
    ) -> AlignmentResult:
        """
        Search for the pose that best aligns ``points`` with ``reference``.

        Args:
            reference: Frame whose cells define the fitness.
            points: Candidate cloud in its own (base) frame, shape (N, 2).
            initial_guess: Seed pose [x, y, yaw] in the reference frame.

        Returns:
            AlignmentResult with the swarm best. When the cloud is empty or
            the reference has no informative cell, the seed is returned
            unchanged with fitness 0 and ``degenerate=True``.
        """
        seed = np.asarray(initial_guess, dtype=np.float64).reshape(3).copy()
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)

        try:
            self._check_inputs(reference, points)
        except DegenerateMapError:
            return AlignmentResult(pose=seed, fitness=0.0, degenerate=True)

        cfg = self.config
        n = cfg.population
        window = np.array(
            [
                cfg.window_cells * reference.resolution,
                cfg.window_cells * reference.resolution,
                cfg.window_yaw,
            ],
            dtype=np.float64,
        )

        # 1. Initialise
        positions = seed + self._rng.uniform(-1.0, 1.0, size=(n, 3)) * window
        positions[0] = seed
        positions[:, 2] = wrap_angle_array(positions[:, 2])
        velocities = self._rng.uniform(-1.0, 1.0, size=(n, 3)) * window * cfg.initial_velocity

        best_positions = positions.copy()
        best_fitness = np.full(n, -np.inf)
        swarm_best = seed.copy()
        swarm_best_fitness = -np.inf

        iterations = 0
        evaluations = 0
        for _ in range(cfg.iterations):
            # 2. Evaluate
            fitness = self._evaluate(reference, points, positions)
            evaluations += n
            iterations += 1

            # 3. Personal and swarm bests
            improved = fitness > best_fitness
            best_fitness[improved] = fitness[improved]
            best_positions[improved] = positions[improved]

            leader = int(np.argmax(best_fitness))
            if best_fitness[leader] > swarm_best_fitness:
                swarm_best_fitness = float(best_fitness[leader])
                swarm_best = best_positions[leader].copy()

            if cfg.convergence_tol is not None and self._converged(positions, swarm_best):
                break

            # 4. Move
            velocities = self._next_velocities(
                velocities, positions, best_positions, swarm_best, window
            )
            positions = positions + velocities
            positions[:, 2] = wrap_angle_array(positions[:, 2])

        return AlignmentResult(
            pose=swarm_best,
            fitness=max(swarm_best_fitness, 0.0),
            iterations=iterations,
            evaluations=evaluations,
        )

    @staticmethod
    def _check_inputs(reference: "NDTFrame", points: np.ndarray) -> None:
        if points.shape[0] == 0:
            raise DegenerateMapError("candidate point cloud is empty")
        reference.require_informative()

    def _evaluate(
        self,
        reference: "NDTFrame",
        points: np.ndarray,
        positions: np.ndarray,
    ) -> np.ndarray:
        """Score every particle. Only reads the reference frame."""
        workers = self.config.worker_count
        if workers == 1 or positions.shape[0] == 1:
            scores: List[float] = [reference.score(pose, points) for pose in positions]
        else:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix="ndtpso-pso"
                )
            scores = list(
                self._executor.map(lambda pose: reference.score(pose, points), positions)
            )
        return np.asarray(scores, dtype=np.float64)

    def _next_velocities(
        self,
        velocities: np.ndarray,
        positions: np.ndarray,
        best_positions: np.ndarray,
        swarm_best: np.ndarray,
        window: np.ndarray,
    ) -> np.ndarray:
        cfg = self.config
        n = positions.shape[0]
        r1 = self._rng.random((n, 3))
        r2 = self._rng.random((n, 3))

        to_personal = best_positions - positions
        to_personal[:, 2] = angle_diff(best_positions[:, 2], positions[:, 2])
        to_swarm = swarm_best - positions
        to_swarm[:, 2] = angle_diff(np.full(n, swarm_best[2]), positions[:, 2])

        new_velocities = (
            cfg.inertia * velocities
            + cfg.cognitive * r1 * to_personal
            + cfg.social * r2 * to_swarm
        )
        return np.clip(new_velocities, -window, window)

    def _converged(self, positions: np.ndarray, swarm_best: np.ndarray) -> bool:
        spread = np.abs(positions - swarm_best)
        spread[:, 2] = np.abs(angle_diff(positions[:, 2], np.full(len(positions), swarm_best[2])))
        return bool(np.all(spread <= self.config.convergence_tol))

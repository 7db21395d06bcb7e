"""NDT grid + particle swarm scan matching in 2D.

This package holds the numerical core of the scan matcher. It knows nothing
about transports, threads beyond its own worker pool, or files; the node
layer in ndtpso.node wires it to sensors, publishers and exports.

Main components:
    - Pose2, LaserScan, AlignmentResult, CycleResult: Core data structures
    - se2_compose, se2_inverse, se2_apply, se2_relative: SE(2) operations
    - NDTCell: Gaussian accumulator for one grid square
    - NDTFrame: Fixed grid of cells with load/update/score/align
    - PSOConfig, ParticleSwarmOptimizer: Derivative-free pose search
    - OccupancyGrid: Optional fine log-odds grid kept with the map
    - ScanMatcher: One locked sense → align → update cycle

Example usage:
    >>> from ndtpso.slam import ScanMatcher, LaserScan
    >>> import numpy as np
    >>>
    >>> matcher = ScanMatcher(cell_side=0.5, frame_size=50.0)
    >>> scan = LaserScan(ranges=np.full(360, 4.0), angle_min=-np.pi,
    ...                  angle_increment=np.deg2rad(1.0), range_max=30.0)
    >>> result = matcher.process(scan)
    >>> result.pose
    array([0., 0., 0.])

References:
    - Biber & Straßer (2003), The Normal Distributions Transform.
    - Kennedy & Eberhart (1995), Particle Swarm Optimization.

Author: Navigation Engineer
"""

from .cell import COVARIANCE_FLOOR, MIN_POINTS_PER_CELL, NDTCell
from .frame import NDTFrame
from .matcher import ScanMatcher
from .occupancy import OccupancyGrid
from .pso import PSO_ITERATIONS, PSO_POPULATION_SIZE, ParticleSwarmOptimizer, PSOConfig
from .se2 import se2_apply, se2_compose, se2_inverse, se2_relative
from .types import AlignmentResult, CycleResult, LaserScan, Pose2

__all__ = [
    # Core types
    "Pose2",
    "LaserScan",
    "AlignmentResult",
    "CycleResult",
    # SE(2) operations
    "se2_compose",
    "se2_inverse",
    "se2_apply",
    "se2_relative",
    # NDT grid
    "NDTCell",
    "NDTFrame",
    "MIN_POINTS_PER_CELL",
    "COVARIANCE_FLOOR",
    "OccupancyGrid",
    # Optimizer
    "PSOConfig",
    "ParticleSwarmOptimizer",
    "PSO_POPULATION_SIZE",
    "PSO_ITERATIONS",
    # Coordinator
    "ScanMatcher",
]

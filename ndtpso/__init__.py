"""2D laser scan matcher built on an NDT grid and particle swarm optimisation.

This package contains:
- slam: NDT cells and frames, the particle swarm optimizer, the matcher
- node: bootstrap, pose publication, trajectory log and export around the matcher
- sim: synthetic range scans for demonstration and tests
- eval: pose error metrics and plots
- config: configuration dataclasses and JSON loading
- errors: exception and warning types
"""

__version__ = "0.1.0"

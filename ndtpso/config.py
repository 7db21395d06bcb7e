"""Configuration for the scan matcher and its node.

Two levels:
    - NDTPSOConfig: grid and optimizer parameters of the matching engine
    - NodeConfig: transport, bootstrap, publication and export parameters,
      plus the nested NDTPSOConfig

Configuration files are JSON objects with the same field names; nested
``ndtpso`` and ``pso`` objects map onto the nested dataclasses:

    {
        "scan_topic": "/scan",
        "rate": 30.0,
        "ndtpso": {
            "cell_side": 0.5,
            "frame_size": 100.0,
            "pso": {"population": 30, "iterations": 50, "num_threads": -1}
        }
    }

Unknown keys raise ConfigError so that typos do not silently fall back to
defaults. Every dataclass validates itself in __post_init__.
"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ndtpso.errors import ConfigError
from ndtpso.slam.pso import PSOConfig


@dataclass
class NDTPSOConfig:
    """
    Matching engine parameters.

    Attributes:
        cell_side: NDT cell side length (meters).
        frame_size: Side length of the square reference frame (meters).
        min_points_per_cell: Samples required for a cell to be informative.
        covariance_floor: Diagonal regularisation of cell covariances (m²).
        occupancy_cell_side: Cell side of the auxiliary occupancy grid
                             (meters); None disables the grid.
        pso: Particle swarm parameters.
    """

    cell_side: float = 0.5
    frame_size: float = 100.0
    min_points_per_cell: int = 3
    covariance_floor: float = 1e-3
    occupancy_cell_side: Optional[float] = None
    pso: PSOConfig = field(default_factory=PSOConfig)

    def __post_init__(self) -> None:
        """Validate grid parameters."""
        if not self.cell_side > 0:
            raise ConfigError(f"cell_side must be positive, got {self.cell_side}")
        if not self.frame_size > 0:
            raise ConfigError(f"frame_size must be positive, got {self.frame_size}")
        if self.frame_size < self.cell_side:
            raise ConfigError(
                f"frame_size ({self.frame_size}) must be at least one cell ({self.cell_side})"
            )
        if self.min_points_per_cell < 1:
            raise ConfigError(
                f"min_points_per_cell must be >= 1, got {self.min_points_per_cell}"
            )
        if self.covariance_floor < 0:
            raise ConfigError(
                f"covariance_floor must be non-negative, got {self.covariance_floor}"
            )
        if self.occupancy_cell_side is not None and not self.occupancy_cell_side > 0:
            raise ConfigError(
                f"occupancy_cell_side must be positive or None, got {self.occupancy_cell_side}"
            )


@dataclass
class NodeConfig:
    """
    Node parameters.

    Attributes:
        scan_topic: Name of the scan source; also the export file prefix.
        scan_frame: Sensor frame name.
        base_frame: Robot base frame name.
        map_size: Side length of the exported snapshot map (meters).
        rate: Pose publication rate (Hz).
        wait_for_tf: Block at startup until base_frame → scan_frame is known.
        bootstrap_timeout: Upper bound of that wait (seconds).
        snapshot_interval: Every n-th cycle is inserted into the snapshot map.
        queue_size: Depth of the incoming scan queue; full queue drops scans.
        export_dir: Directory for exported files.
        ndtpso: Matching engine parameters.
    """

    scan_topic: str = "/scan"
    scan_frame: str = "laser"
    base_frame: str = "base_link"
    map_size: float = 25.0
    rate: float = 30.0
    wait_for_tf: bool = True
    bootstrap_timeout: float = 10.0
    snapshot_interval: int = 10
    queue_size: int = 1
    export_dir: str = "."
    ndtpso: NDTPSOConfig = field(default_factory=NDTPSOConfig)

    def __post_init__(self) -> None:
        """Validate node parameters."""
        if not self.map_size > 0:
            raise ConfigError(f"map_size must be positive, got {self.map_size}")
        if not self.rate > 0:
            raise ConfigError(f"rate must be positive, got {self.rate}")
        if not self.bootstrap_timeout > 0:
            raise ConfigError(
                f"bootstrap_timeout must be positive, got {self.bootstrap_timeout}"
            )
        if self.snapshot_interval < 1:
            raise ConfigError(
                f"snapshot_interval must be >= 1, got {self.snapshot_interval}"
            )
        if self.queue_size < 1:
            raise ConfigError(f"queue_size must be >= 1, got {self.queue_size}")

    def to_dict(self) -> Dict[str, Any]:
        """Plain nested dict, suitable for json.dump."""
        return asdict(self)


def _build(cls, data: Dict[str, Any], section: str):
    if not isinstance(data, dict):
        raise ConfigError(f"'{section}' must be a JSON object, got {type(data).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown key(s) in '{section}': {', '.join(unknown)}")
    try:
        return cls(**data)
    except TypeError as e:
        raise ConfigError(f"invalid '{section}' section: {e}") from e


def config_from_dict(data: Dict[str, Any]) -> NodeConfig:
    """
    Build a NodeConfig from a nested dict.

    Args:
        data: Mapping with NodeConfig keys; ``ndtpso`` and ``ndtpso.pso`` may
              be nested mappings.

    Returns:
        Validated NodeConfig.

    Raises:
        ConfigError: On unknown keys or invalid values.
    """
    data = dict(data)
    engine = data.pop("ndtpso", None) or {}
    if not isinstance(engine, dict):
        raise ConfigError(f"'ndtpso' must be a JSON object, got {type(engine).__name__}")
    engine = dict(engine)
    pso = _build(PSOConfig, engine.pop("pso", {}) or {}, "ndtpso.pso")
    engine_cfg = _build(NDTPSOConfig, {**engine, "pso": pso}, "ndtpso")
    return _build(NodeConfig, {**data, "ndtpso": engine_cfg}, "root")


def load_config(path: Union[str, Path]) -> NodeConfig:
    """
    Load a NodeConfig from a JSON file.

    Raises:
        ConfigError: If the file is not valid JSON or holds invalid values.
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path}: invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a JSON object")
    return config_from_dict(data)

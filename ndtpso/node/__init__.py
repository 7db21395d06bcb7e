"""
Node layer around the scan matcher: bootstrap, publication, trajectory log, export.
"""

from .bootstrap import TransformBuffer
from .export import dump_map, dump_trajectory, export_basename, export_results, sanitize_topic
from .node import ScanMatcherNode
from .publisher import PosePublisher, PoseStamped
from .trajectory import TrajectoryLog

__all__ = [
    "ScanMatcherNode",
    "TransformBuffer",
    "PosePublisher",
    "PoseStamped",
    "TrajectoryLog",
    "sanitize_topic",
    "export_basename",
    "dump_map",
    "dump_trajectory",
    "export_results",
]

"""
Synthetic sensor data for demonstrations and tests.
"""

from .scan_generation import (
    make_room_walls,
    make_trajectory,
    ray_segment_distances,
    simulate_ranges,
    simulate_scan,
)

__all__ = [
    "ray_segment_distances",
    "simulate_ranges",
    "simulate_scan",
    "make_room_walls",
    "make_trajectory",
]

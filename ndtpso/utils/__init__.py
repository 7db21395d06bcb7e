"""
Utility functions shared by the scan matcher.
"""

from .angles import angle_diff, wrap_angle, wrap_angle_array

__all__ = [
    'wrap_angle',
    'wrap_angle_array',
    'angle_diff',
]

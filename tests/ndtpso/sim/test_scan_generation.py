"""Unit tests for ndtpso.sim.scan_generation.

Author: Li-Ta Hsu
"""

import numpy as np

from ndtpso.sim import (
    make_room_walls,
    make_trajectory,
    ray_segment_distances,
    simulate_ranges,
    simulate_scan,
)
from ndtpso.slam import NDTFrame


class TestRayCasting:
    """Closest-hit distances."""

    def test_single_wall(self):
        walls = [(np.array([2.0, -1.0]), np.array([2.0, 1.0]))]
        d = ray_segment_distances([0.0, 0.0], np.array([0.0, np.pi, np.pi / 2]), walls)
        assert np.isclose(d[0], 2.0)
        assert np.isinf(d[1])
        assert np.isinf(d[2])

    def test_occlusion(self):
        """The nearer wall hides the farther one."""
        walls = [
            (np.array([3.0, -1.0]), np.array([3.0, 1.0])),
            (np.array([1.5, -1.0]), np.array([1.5, 1.0])),
        ]
        d = ray_segment_distances([0.0, 0.0], np.array([0.0]), walls)
        assert np.isclose(d[0], 1.5)

    def test_no_walls(self):
        assert np.isinf(ray_segment_distances([0.0, 0.0], np.zeros(4), [])).all()


class TestSimulateScan:
    """LaserScan generation."""

    def test_empty_room_ranges(self):
        walls = make_room_walls(4.0, 4.0, obstacles=False)
        ranges = simulate_ranges(np.zeros(3), walls, num_rays=4, angle_min=0.0, noise_std=0.0)
        np.testing.assert_allclose(ranges, [2.0, 2.0, 2.0, 2.0])

    def test_out_of_range_is_inf(self):
        walls = make_room_walls(40.0, 40.0, obstacles=False)
        ranges = simulate_ranges(np.zeros(3), walls, num_rays=8, max_range=10.0, noise_std=0.0)
        assert np.isinf(ranges).all()

    def test_scan_fields(self):
        scan = simulate_scan(np.zeros(3), make_room_walls(), num_rays=360, stamp=1.5)
        assert scan.ranges.shape == (360,)
        assert scan.expected_count == 360
        assert scan.stamp == 1.5
        assert np.isclose(scan.angle_increment, np.deg2rad(1.0))

    def test_loaded_points_lie_on_walls(self):
        """Round trip through NDTFrame.load reproduces the room geometry."""
        walls = make_room_walls(6.0, 4.0, obstacles=False)
        scan = simulate_scan(np.zeros(3), walls, num_rays=90, noise_std=0.0)
        frame = NDTFrame()
        pts = frame.load(scan.ranges, scan.angle_min, scan.angle_increment, scan.range_max)
        on_x_wall = np.isclose(np.abs(pts[:, 0]), 3.0, atol=1e-9)
        on_y_wall = np.isclose(np.abs(pts[:, 1]), 2.0, atol=1e-9)
        assert np.all(on_x_wall | on_y_wall)

    def test_sensor_offset(self):
        walls = make_room_walls(6.0, 6.0, obstacles=False)
        scan = simulate_scan(np.zeros(3), walls, num_rays=4, noise_std=0.0, sensor_offset=[1.0, 0.0, 0.0])
        # Beams at -π, -π/2, 0, π/2 from a sensor at x = 1
        np.testing.assert_allclose(scan.ranges, [4.0, 3.0, 2.0, 3.0], atol=1e-9)

    def test_noise_is_reproducible(self):
        walls = make_room_walls()
        a = simulate_ranges(np.zeros(3), walls, rng=np.random.default_rng(1))
        b = simulate_ranges(np.zeros(3), walls, rng=np.random.default_rng(1))
        np.testing.assert_array_equal(a, b)


class TestTrajectory:
    """Test trajectory generator."""

    def test_starts_at_origin(self):
        poses = make_trajectory(n_poses=20, radius=1.5)
        assert poses.shape == (20, 3)
        np.testing.assert_allclose(poses[0], [0.0, 0.0, 0.0], atol=1e-12)

    def test_heading_follows_arc(self):
        poses = make_trajectory(n_poses=50, radius=2.0, arc=np.pi)
        np.testing.assert_allclose(poses[-1], [0.0, 4.0, np.pi], atol=1e-9)

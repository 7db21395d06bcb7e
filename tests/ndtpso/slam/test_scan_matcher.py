"""Unit tests for ndtpso.slam.matcher.

Author: Navigation Engineer
"""

import threading
import unittest
import warnings

import numpy as np

from ndtpso.errors import DegenerateAlignmentWarning, ListenerWarning, ScanInputWarning
from ndtpso.sim import make_room_walls, simulate_scan
from ndtpso.slam import LaserScan, PSOConfig, ScanMatcher


def make_matcher(**kwargs):
    pso = PSOConfig(population=30, iterations=50, num_threads=1, seed=0)
    return ScanMatcher(cell_side=0.5, frame_size=30.0, pso=pso, **kwargs)


def room_scan(pose, stamp=0.0, offset=None, num_rays=360):
    rng = np.random.default_rng(int(stamp * 100))
    return simulate_scan(
        np.asarray(pose, dtype=float),
        make_room_walls(12.0, 9.0),
        num_rays=num_rays,
        max_range=10.0,
        noise_std=0.0,
        stamp=stamp,
        sensor_offset=offset,
        rng=rng,
    )


class TestScanMatcherCycle(unittest.TestCase):
    """Single-threaded cycle behaviour."""

    def test_first_cycle_adopts_seed(self):
        matcher = make_matcher()
        seed = np.array([0.2, -0.1, 0.05])
        result = matcher.process(room_scan([0.0, 0.0, 0.0]), seed_pose=seed)

        self.assertEqual(result.index, 0)
        self.assertEqual(result.fitness, 0.0)
        self.assertFalse(result.degenerate)
        np.testing.assert_array_equal(result.pose, seed)
        np.testing.assert_array_equal(result.seed_pose, seed)
        self.assertGreater(result.n_points, 100)
        self.assertEqual(matcher.n_cycles, 1)
        self.assertGreater(matcher.reference.point_count, 0)
        self.assertEqual(len(matcher.local), 0)

    def test_first_cycle_defaults_to_initial_pose(self):
        matcher = make_matcher(initial_pose=[1.0, 0.0, 0.0])
        result = matcher.process(room_scan([0.0, 0.0, 0.0]))
        np.testing.assert_array_equal(result.pose, [1.0, 0.0, 0.0])

    def test_stationary_sensor_stays_put(self):
        """Self-alignment: identical scans keep the pose."""
        matcher = make_matcher()
        scan = room_scan([0.0, 0.0, 0.0])
        matcher.process(scan)
        result = matcher.process(scan)

        np.testing.assert_allclose(result.pose[:2], [0.0, 0.0], atol=0.05)
        self.assertLess(abs(result.pose[2]), np.deg2rad(2.0))
        self.assertGreater(result.fitness, 0.0)

    def test_tracks_small_motion(self):
        matcher = make_matcher()
        truth = [np.array([0.0, 0.0, 0.0]), np.array([0.15, 0.05, 0.04]), np.array([0.3, 0.1, 0.08])]
        results = [matcher.process(room_scan(p, stamp=0.1 * k)) for k, p in enumerate(truth)]
        np.testing.assert_allclose(results[-1].pose[:2], truth[-1][:2], atol=0.1)
        self.assertLess(abs(results[-1].pose[2] - truth[-1][2]), np.deg2rad(3.0))

    def test_sensor_offset_is_applied(self):
        matcher = make_matcher()
        offset = np.array([0.3, 0.0, 0.0])
        matcher.set_sensor_offset(offset)
        np.testing.assert_array_equal(matcher.local.origin, offset)
        result = matcher.process(room_scan([0.0, 0.0, 0.0], offset=offset))
        # Points are expressed for the base, so the closest wall stays at 4.5 m
        self.assertAlmostEqual(np.abs(result.points[:, 1]).max(), 4.5, places=6)

    def test_listeners_receive_results(self):
        matcher = make_matcher()
        received = []
        matcher.add_listener(received.append)
        matcher.process(room_scan([0.0, 0.0, 0.0]))
        matcher.process(room_scan([0.0, 0.0, 0.0], stamp=0.1))
        self.assertEqual([r.index for r in received], [0, 1])
        self.assertIs(matcher.latest, received[-1])

    def test_failing_listener_is_contained(self):
        matcher = make_matcher()
        received = []

        def broken(cycle):
            raise RuntimeError("sink down")

        matcher.add_listener(broken)
        matcher.add_listener(received.append)
        with self.assertWarns(ListenerWarning):
            result = matcher.process(room_scan([0.0, 0.0, 0.0]))

        # Later listeners still see the cycle
        self.assertEqual(received, [result])
        self.assertEqual(matcher.n_cycles, 1)
        self.assertIs(matcher.latest, result)

    def test_bad_scan_becomes_warning(self):
        matcher = make_matcher()
        matcher.process(room_scan([0.0, 0.0, 0.0]))
        bad = LaserScan(
            ranges=np.ones(10),
            angle_min=-np.pi,
            angle_increment=0.1,
            range_max=10.0,
            angle_max=-np.pi + 0.1 * 19,
        )
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            result = matcher.process(bad)

        categories = {w.category for w in caught}
        self.assertIn(ScanInputWarning, categories)
        self.assertIn(DegenerateAlignmentWarning, categories)
        self.assertTrue(result.degenerate)
        self.assertEqual(result.n_points, 0)
        np.testing.assert_array_equal(result.pose, matcher.pose)

    def test_rates(self):
        matcher = make_matcher()
        self.assertEqual(matcher.average_rate_hz, 0.0)
        matcher.process(room_scan([0.0, 0.0, 0.0]))
        self.assertGreater(matcher.matching_rate_hz, 0.0)
        self.assertGreater(matcher.average_rate_hz, 0.0)


class TestScanMatcherConcurrency(unittest.TestCase):
    """Cycles from several threads are serialised."""

    def test_concurrent_cycles_accumulate(self):
        matcher = make_matcher()
        scan = room_scan([0.0, 0.0, 0.0], num_rays=180)
        matcher.process(scan)
        per_cycle = matcher.reference.point_count
        cycles_per_thread = 3

        def worker():
            for _ in range(cycles_per_thread):
                matcher.process(scan)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(matcher.n_cycles, 1 + 2 * cycles_per_thread)
        # Every cycle inserted the same cloud near the same pose
        total = matcher.reference.point_count
        self.assertEqual(total, per_cycle * (1 + 2 * cycles_per_thread))


if __name__ == "__main__":
    unittest.main()

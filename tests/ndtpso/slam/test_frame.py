"""Unit tests for ndtpso.slam.frame.

Covers grid indexing, scan loading, insertion, generation-counter reset and
the vectorised fitness.

Author: Navigation Engineer
"""

import numpy as np
import pytest

from ndtpso.errors import ConfigError, InputError
from ndtpso.slam import NDTFrame, PSOConfig, se2_apply


def blob_cloud(n_blobs=20, per_blob=20, extent=4.0, seed=0):
    rng = np.random.default_rng(seed)
    centers = rng.uniform(-extent, extent, size=(n_blobs, 2))
    return np.vstack([rng.normal(c, 0.15, size=(per_blob, 2)) for c in centers])


class TestFrameConstruction:
    """Dimensions and validation."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"width": 0},
            {"height": -3},
            {"resolution": 0.0},
            {"resolution": -0.5},
            {"occupancy_resolution": 0.0},
            {"min_points_per_cell": 0},
        ],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ConfigError):
            NDTFrame(**kwargs)

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            NDTFrame(width=0)

    def test_from_side_length(self):
        frame = NDTFrame.from_side_length(10.0, 0.5)
        assert frame.width == 20
        assert frame.height == 20
        assert frame.side_lengths == (10.0, 10.0)

    def test_reference_frame_with_occupancy(self):
        frame = NDTFrame.from_side_length(10.0, 0.5, is_reference=True, occupancy_resolution=0.1)
        assert frame.occupancy is not None
        assert frame.occupancy.width == 100

    def test_occupancy_only_for_reference(self):
        frame = NDTFrame.from_side_length(10.0, 0.5, occupancy_resolution=0.1)
        assert frame.occupancy is None


class TestCellIndexing:
    """Point to cell mapping on the centred grid."""

    def test_origin_is_grid_centre(self):
        frame = NDTFrame(width=10, height=10, resolution=1.0)
        idx, inside = frame.cell_indices(np.array([[0.0, 0.0], [-0.01, -0.01]]))
        assert inside.all()
        np.testing.assert_array_equal(idx, [[5, 5], [4, 4]])

    def test_outside_points_are_flagged(self):
        frame = NDTFrame(width=10, height=10, resolution=1.0)
        pts = np.array([[4.99, 4.99], [5.0, 0.0], [0.0, -5.01], [np.nan, 0.0], [np.inf, 1.0]])
        _, inside = frame.cell_indices(pts)
        np.testing.assert_array_equal(inside, [True, False, False, False, False])

    def test_cell_center(self):
        frame = NDTFrame(width=4, height=4, resolution=0.5)
        np.testing.assert_allclose(frame.cell_center(0, 0), [-0.75, -0.75])
        np.testing.assert_allclose(frame.cell_center(3, 2), [0.75, 0.25])


class TestLoad:
    """Conversion of range readings to points."""

    def test_polar_to_cartesian(self):
        frame = NDTFrame()
        ranges = np.array([1.0, 2.0, 3.0])
        pts = frame.load(ranges, angle_min=0.0, angle_increment=np.pi / 2, max_range=10.0)
        np.testing.assert_allclose(pts, [[1.0, 0.0], [0.0, 2.0], [-3.0, 0.0]], atol=1e-12)
        assert frame.points is pts

    def test_invalid_readings_are_dropped(self):
        frame = NDTFrame()
        ranges = np.array([1.0, np.inf, np.nan, 30.0, 45.0, 0.0, -1.0, 0.05, 2.0])
        pts = frame.load(
            ranges, angle_min=0.0, angle_increment=0.1, max_range=30.0, min_range=0.1
        )
        assert pts.shape == (2, 2)
        np.testing.assert_allclose(np.linalg.norm(pts, axis=1), [1.0, 2.0])
        np.testing.assert_allclose(np.arctan2(pts[:, 1], pts[:, 0]), [0.0, 0.8], atol=1e-12)

    def test_origin_is_applied(self):
        frame = NDTFrame(origin=[0.5, 0.0, np.pi / 2])
        pts = frame.load(np.array([1.0]), angle_min=0.0, angle_increment=0.1, max_range=5.0)
        np.testing.assert_allclose(pts, [[0.5, 1.0]], atol=1e-12)

    def test_load_replaces_buffer(self):
        frame = NDTFrame()
        frame.load(np.ones(10), angle_min=0.0, angle_increment=0.1, max_range=5.0)
        frame.load(np.ones(4), angle_min=0.0, angle_increment=0.1, max_range=5.0)
        assert len(frame) == 4

    def test_length_mismatch(self):
        frame = NDTFrame()
        with pytest.raises(InputError):
            frame.load(np.ones(10), 0.0, 0.1, 5.0, expected_count=12)

    def test_not_one_dimensional(self):
        frame = NDTFrame()
        with pytest.raises(InputError):
            frame.load(np.ones((2, 5)), 0.0, 0.1, 5.0)


class TestUpdate:
    """Insertion of clouds into the cells."""

    def test_counts_and_bounds(self):
        frame = NDTFrame(width=10, height=10, resolution=1.0, is_reference=True)
        other = NDTFrame(width=10, height=10, resolution=1.0)
        other.set_points(np.array([[0.2, 0.2], [0.4, 0.3], [0.3, 0.6], [20.0, 0.0], [0.0, -7.0]]))
        inserted = frame.update(np.zeros(3), other)
        assert inserted == 3
        assert frame.point_count == 3
        cells = dict(frame.cells())
        assert list(cells) == [(5, 5)]
        assert cells[(5, 5)].n_points == 3

    def test_update_is_additive(self):
        frame = NDTFrame(width=40, height=40, resolution=0.5, is_reference=True)
        other = NDTFrame(width=40, height=40, resolution=0.5)
        other.set_points(blob_cloud(n_blobs=5, per_blob=10, extent=3.0))
        pose = np.array([0.3, -0.2, 0.1])

        frame.update(pose, other)
        once = {key: cell.n_points for key, cell in frame.cells()}
        frame.update(pose, other)
        twice = {key: cell.n_points for key, cell in frame.cells()}

        assert set(once) == set(twice)
        for key, n in once.items():
            assert twice[key] == 2 * n

    def test_cells_match_manual_statistics(self):
        frame = NDTFrame(width=20, height=20, resolution=1.0, is_reference=True)
        pts = blob_cloud(n_blobs=6, per_blob=15, extent=4.0, seed=3)
        pose = np.array([0.5, 0.2, -0.3])
        frame.insert_points(pose, pts)

        world = se2_apply(pose, pts)
        idx, inside = frame.cell_indices(world)
        for (i, j), cell in frame.cells():
            members = world[inside & (idx[:, 0] == i) & (idx[:, 1] == j)]
            assert cell.n_points == len(members)
            np.testing.assert_allclose(cell.mean, members.mean(axis=0), atol=1e-10)

    def test_occupancy_grid_is_fed(self):
        frame = NDTFrame.from_side_length(10.0, 0.5, is_reference=True, occupancy_resolution=0.1)
        other = NDTFrame.from_side_length(10.0, 0.5)
        other.set_points(np.array([[2.0, 0.0], [0.0, 2.0]]))
        frame.update(np.zeros(3), other)
        probs = frame.occupancy.probabilities()
        assert probs.max() > 0.5
        assert probs.min() < 0.5


class TestReset:
    """Generation-counter reset."""

    def test_reset_empties_frame(self):
        frame = NDTFrame(width=20, height=20, resolution=0.5, origin=[0.1, 0.0, 0.0])
        frame.set_points(blob_cloud(n_blobs=3, per_blob=10, extent=2.0))
        frame.update(np.zeros(3), frame)
        assert frame.point_count > 0

        frame.reset()
        assert frame.generation == 1
        assert len(frame) == 0
        assert frame.point_count == 0
        assert list(frame.cells()) == []
        np.testing.assert_allclose(frame.origin, [0.1, 0.0, 0.0])

    def test_reset_frame_behaves_like_new(self):
        pts = blob_cloud(n_blobs=8, per_blob=12, extent=3.0, seed=5)
        other = NDTFrame(width=30, height=30, resolution=0.5)
        other.set_points(pts)

        reused = NDTFrame(width=30, height=30, resolution=0.5, is_reference=True)
        reused.insert_points(np.zeros(3), blob_cloud(seed=9))
        reused.prepare_scoring()
        reused.reset()
        reused.update(np.zeros(3), other)

        fresh = NDTFrame(width=30, height=30, resolution=0.5, is_reference=True)
        fresh.update(np.zeros(3), other)

        assert reused.n_informative_cells == fresh.n_informative_cells
        assert {k: c.n_points for k, c in reused.cells()} == {
            k: c.n_points for k, c in fresh.cells()
        }
        pose = np.array([0.05, -0.02, 0.01])
        assert np.isclose(reused.score(pose, pts), fresh.score(pose, pts))

    def test_stale_cells_do_not_score(self):
        frame = NDTFrame(width=30, height=30, resolution=0.5, is_reference=True)
        pts = blob_cloud(n_blobs=8, per_blob=12, extent=3.0)
        frame.insert_points(np.zeros(3), pts)
        assert frame.score(np.zeros(3), pts) > 0.0
        frame.reset()
        assert frame.score(np.zeros(3), pts) == 0.0
        assert frame.n_informative_cells == 0


class TestScore:
    """Vectorised fitness."""

    def test_equals_sum_of_cell_densities(self):
        frame = NDTFrame(width=30, height=30, resolution=0.5, is_reference=True)
        frame.insert_points(np.zeros(3), blob_cloud(n_blobs=10, per_blob=15, extent=3.0))

        rng = np.random.default_rng(1)
        query = rng.uniform(-4.0, 4.0, size=(300, 2))
        pose = np.array([0.2, 0.1, 0.3])
        world = se2_apply(pose, query)
        idx, inside = frame.cell_indices(world)

        expected = 0.0
        for p, (i, j), ok in zip(world, idx, inside):
            if not ok:
                continue
            cell = frame.cell(int(i), int(j))
            if cell is not None:
                expected += cell.density(p)

        assert np.isclose(frame.score(pose, query), expected, rtol=1e-9, atol=1e-12)

    def test_empty_inputs(self):
        frame = NDTFrame(width=10, height=10, resolution=1.0, is_reference=True)
        assert frame.score(np.zeros(3), np.empty((0, 2))) == 0.0
        assert frame.score(np.zeros(3), np.ones((5, 2))) == 0.0

    def test_points_off_grid_score_zero(self):
        frame = NDTFrame(width=10, height=10, resolution=1.0, is_reference=True)
        pts = blob_cloud(n_blobs=4, per_blob=20, extent=3.0)
        frame.insert_points(np.zeros(3), pts)
        assert frame.score([100.0, 100.0, 0.0], pts) == 0.0

    def test_score_is_bounded_by_point_count(self):
        frame = NDTFrame(width=30, height=30, resolution=0.5, is_reference=True)
        pts = blob_cloud(n_blobs=10, per_blob=15, extent=3.0)
        frame.insert_points(np.zeros(3), pts)
        value = frame.score(np.zeros(3), pts)
        assert 0.0 < value <= len(pts)


class TestAlign:
    """Frame-level alignment entry point."""

    def test_self_alignment(self):
        pts = blob_cloud(n_blobs=30, per_blob=20, extent=4.0, seed=11)
        config = PSOConfig(population=30, iterations=30, num_threads=1, seed=7)
        reference = NDTFrame(width=30, height=30, resolution=1.0, is_reference=True, config=config)
        local = NDTFrame(width=30, height=30, resolution=1.0)
        local.set_points(pts)
        reference.update(np.zeros(3), local)

        result = reference.align(np.zeros(3), local)
        reference.close()

        assert not result.degenerate
        assert result.fitness >= reference.score(np.zeros(3), pts) - 1e-9
        np.testing.assert_allclose(result.pose[:2], [0.0, 0.0], atol=0.05)
        assert abs(result.pose[2]) < np.deg2rad(2.0)

    def test_identity_beats_offsets_beyond_one_cell(self):
        pts = blob_cloud(n_blobs=30, per_blob=20, extent=4.0, seed=11)
        reference = NDTFrame(width=30, height=30, resolution=1.0, is_reference=True)
        reference.insert_points(np.zeros(3), pts)
        at_identity = reference.score(np.zeros(3), pts)

        rng = np.random.default_rng(5)
        n = 300
        radius = rng.uniform(1.05, 3.0, size=n) * reference.resolution
        heading = rng.uniform(-np.pi, np.pi, size=n)
        offsets = np.column_stack(
            [radius * np.cos(heading), radius * np.sin(heading), rng.uniform(-0.35, 0.35, size=n)]
        )
        scores = np.array([reference.score(pose, pts) for pose in offsets])
        assert np.all(scores <= at_identity)

    def test_empty_reference_is_degenerate(self):
        reference = NDTFrame(width=10, height=10, resolution=1.0, is_reference=True)
        local = NDTFrame(width=10, height=10, resolution=1.0)
        local.set_points(np.ones((10, 2)))
        seed = np.array([0.4, -0.3, 0.2])
        result = reference.align(seed, local)
        assert result.degenerate
        assert result.fitness == 0.0
        np.testing.assert_array_equal(result.pose, seed)

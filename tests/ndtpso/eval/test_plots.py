"""Unit tests for ndtpso.eval.plots.

Author: Navigation Engineering Team
"""

import matplotlib.pyplot as plt
import numpy as np

from ndtpso.eval import plot_ndt_map, plot_occupancy_grid, plot_trajectory_2d, save_figure
from ndtpso.slam import NDTFrame


def small_map():
    frame = NDTFrame.from_side_length(8.0, 0.5, is_reference=True, occupancy_resolution=0.2)
    rng = np.random.default_rng(1)
    pts = np.vstack([rng.normal(c, 0.08, size=(10, 2)) for c in [[1.0, 1.2], [-2.1, 0.4]]])
    frame.insert_points(np.zeros(3), pts)
    return frame


class TestPlots:
    """Figures are built and saved."""

    def test_trajectory(self):
        xy = np.column_stack([np.linspace(0, 1, 5), np.zeros(5)])
        truth = xy.copy()
        truth[2] = np.nan
        fig = plot_trajectory_2d({"est": xy, "empty": np.empty((0, 2))}, truth_xy=truth)
        assert len(fig.axes[0].lines) >= 2
        plt.close(fig)

    def test_ndt_map_draws_one_ellipse_per_informative_cell(self):
        frame = small_map()
        n_informative = sum(1 for _, cell in frame.cells() if cell.is_informative)
        fig = plot_ndt_map(frame, trajectory_xy=np.zeros((2, 2)))
        assert len(fig.axes[0].patches) == n_informative
        plt.close(fig)

    def test_occupancy_and_save(self, tmp_path):
        fig = plot_occupancy_grid(small_map().occupancy)
        paths = save_figure(fig, tmp_path / "figs", "og", formats=("png", "svg"))
        plt.close(fig)
        assert [p.suffix for p in paths] == [".png", ".svg"]
        assert all(p.exists() for p in paths)

import matplotlib
matplotlib.use("Agg")

import pandas as pd

from fmt_alignment.plotting import plot_traj_points


def test_plot_traj_points_saves(tmp_path):
    points = pd.DataFrame({
        "layer": [0, 1, 2, 0],
        "x": [1.0, 2.0, 3.0, -1.0],
        "y": [0.5, -0.5, 1.5, 2.0],
        "costh": [0.95, 0.9, 0.97, 0.99],
    })
    out = tmp_path / "points.png"
    plot_traj_points(points, show=False, save_path=out)
    assert out.is_file()


def test_plot_traj_points_empty(tmp_path, caplog):
    out = tmp_path / "empty.png"
    plot_traj_points(pd.DataFrame(columns=["layer", "x", "y", "costh"]), show=False, save_path=out)
    assert not out.exists()
    assert "No trajectory points" in caplog.text

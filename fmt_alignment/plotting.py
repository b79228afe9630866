import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt


def _show_and_close(fig, *, do_show: bool = True, save_path: Optional[Union[str, Path]] = None) -> None:
    r"""
    Optionally save and show a Matplotlib figure, and always close it.

    Parameters
    ----------
    fig : matplotlib.figure.Figure
        Figure object to display and close.
    do_show : bool, optional
        If ``True`` (default) call ``plt.show()`` before closing.
    save_path : str or pathlib.Path, optional
        If given, the figure is written there first.
    """
    fig.tight_layout()
    if save_path is not None:
        fig.savefig(save_path)
        logging.info("Saved figure to %s", save_path)
    if do_show:
        plt.show()
    plt.close(fig)


def plot_traj_points(
    points: pd.DataFrame,
    *,
    n_layers: int = 3,
    show: bool = True,
    save_path: Optional[Union[str, Path]] = None,
    title: str = "FMT trajectory points",
) -> None:
    r"""
    Draw the extracted points: local :math:`(x, y)` per layer, and :math:`\cos\theta`.

    Parameters
    ----------
    points : pandas.DataFrame
        Output of :func:`fmt_alignment.traj_points.groups_to_frame`; needs
        columns ``layer, x, y, costh``.
    n_layers : int, optional
        One scatter panel per layer.
    show : bool, optional
        Call ``plt.show()`` (no-op under the runner's headless guard).
    save_path : str or pathlib.Path, optional
        Where to save the figure.
    title : str, optional
        Figure title.
    """
    if points.empty:
        logging.warning("No trajectory points to plot.")
        return

    fig, axes = plt.subplots(1, n_layers + 1, figsize=(4.2 * (n_layers + 1), 4.2))
    for li in range(n_layers):
        ax = axes[li]
        sel = points[points["layer"] == li]
        ax.scatter(sel["x"].to_numpy(), sel["y"].to_numpy(), s=2, alpha=0.5)
        ax.set_title(f"Layer {li + 1} ({len(sel)} points)")
        ax.set_xlabel("x local [cm]")
        ax.set_ylabel("y local [cm]")
        ax.set_aspect("equal", adjustable="datalim")
        ax.grid(True, alpha=0.25)

    ax = axes[-1]
    costh = points["costh"].to_numpy(dtype=float)
    ax.hist(costh[np.isfinite(costh)], bins=50, histtype="step")
    ax.set_xlabel(r"$\cos\theta$")
    ax.set_ylabel("points")
    ax.grid(True, alpha=0.25)

    fig.suptitle(title)
    _show_and_close(fig, do_show=show, save_path=save_path)

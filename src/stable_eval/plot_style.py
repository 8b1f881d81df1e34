import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
import seaborn as sns  # noqa: E402

log = logging.getLogger(__name__)

ERROR_LABELS = {
    "error_point_eval": r"$P_{SL}(\partial_n u) - P_{DL}(u)$, exact data",
    "error_stable": r"stable evaluation of $u_h$",
    "error_interpolation": r"nodal interpolation of $u_h$",
}


def setup_style():
    """Apply shared matplotlib style."""
    sns.set_theme(style="whitegrid", context="paper")
    plt.rcParams.setdefault("savefig.bbox", "tight")


def save_figure(fig, filename: str | Path) -> Path:
    """
    Save figure to the specified path.
    """
    filepath = Path(filename)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(filepath, bbox_inches="tight")
    log.info(f"Saved: {filepath}")
    return filepath


def plot_convergence(df: pd.DataFrame, filename: str | Path) -> Path:
    """Log-log plot of the point errors of a convergence study against h."""
    setup_style()
    colors = sns.color_palette("deep")

    fig, ax = plt.subplots(figsize=(6, 4.5))
    for color, (column, label) in zip(colors, ERROR_LABELS.items()):
        if column in df:
            ax.loglog(df["h"], df[column], "-o", color=color, label=label)

    h = df["h"].to_numpy()
    ax.loglog(h, (h / h[0]) ** 2 * df["error_stable"].iloc[0], "k:", label=r"$O(h^2)$")
    ax.set_xlabel(r"$h$")
    ax.set_ylabel(r"$|u(x) - \tilde{u}(x)|$")
    ax.legend()
    path = save_figure(fig, filename)
    plt.close(fig)
    return path

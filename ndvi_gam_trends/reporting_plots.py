# ndvi_gam_trends/reporting_plots.py

import os
from typing import Optional, List
import pandas as pd
import matplotlib.pyplot as plt


def _add_info_box(ax, n_rows, additional_info=None):
    """Add information box to plot."""
    info_lines = []
    if n_rows is not None and n_rows > 0:
        info_lines.append(f'Rows: {n_rows}')
    if additional_info:
        info_lines.extend(additional_info)
    if info_lines:
        ax.text(0.02, 0.98, "\n".join(info_lines), transform=ax.transAxes,
                verticalalignment='top',
                bbox=dict(boxstyle='round', facecolor='wheat', alpha=0.5),
                fontsize=8)


def _save_figure(fig, save_path: Optional[str], title: str) -> None:
    if not save_path:
        return
    os.makedirs(save_path, exist_ok=True)
    safe_title = title.lower().replace(' ', '_').replace('/', '_').replace('=', '_')
    fig.savefig(os.path.join(save_path, f"{safe_title}.png"), dpi=150, bbox_inches='tight')


def plot_credible_band(
    ci: pd.DataFrame,
    x_column: str = "x",
    title: str = "Posterior credible band",
    group_column: Optional[str] = None,
    alpha_fill: float = 0.3,
    ylabel: str = "NDVI",
    save_path: Optional[str] = None,
    show_info_box: bool = False,
    info: Optional[List[str]] = None,
) -> Optional[plt.Figure]:
    """
    Plot ``mean`` with a shaded ``lower``..``upper`` band against ``x_column``,
    one line per value of ``group_column`` when given.
    """
    needed = [x_column, "mean", "lower", "upper"]
    missing = [c for c in needed if c not in ci.columns]
    if missing:
        print(f"Missing columns {missing} for plot_credible_band. Skipping plot.")
        return None
    if ci.empty:
        print(f"No rows to plot for {title}. Skipping plot.")
        return None

    fig, ax = plt.subplots(figsize=(12, 6))
    groups = ci.groupby(group_column, sort=False) if group_column else [(None, ci)]
    for label, rows in groups:
        rows = rows.sort_values(x_column)
        x = rows[x_column].to_numpy()
        line, = ax.plot(x, rows["mean"].to_numpy(), lw=1.5,
                        label=str(label) if label is not None else "mean")
        ax.fill_between(x, rows["lower"].to_numpy(), rows["upper"].to_numpy(),
                        color=line.get_color(), alpha=alpha_fill)

    ax.set_title(title)
    ax.set_xlabel(x_column)
    ax.set_ylabel(ylabel)
    ax.grid(True, alpha=0.3)
    ax.legend(loc='best', fontsize=8)
    if show_info_box:
        _add_info_box(ax, len(ci), info)
    fig.tight_layout()
    _save_figure(fig, save_path, title)
    return fig


def plot_derivative_band(
    derivs: pd.DataFrame,
    title: str = "Rate of change",
    group_column: Optional[str] = None,
    save_path: Optional[str] = None,
) -> Optional[plt.Figure]:
    """Derivative band with a zero line; rows flagged ``sig`` are marked."""
    fig = plot_credible_band(derivs, x_column="x", title=title, group_column=group_column,
                             ylabel="d NDVI / d x", save_path=None)
    if fig is None:
        return None
    ax = fig.axes[0]
    ax.axhline(0.0, color='black', lw=0.8, ls='--')
    if "sig" in derivs.columns:
        flagged = derivs[derivs["sig"].astype(bool)]
        if not flagged.empty:
            ax.scatter(flagged["x"].to_numpy(), flagged["mean"].to_numpy(),
                       s=6, color='red', zorder=3, label='band excludes 0')
            ax.legend(loc='best', fontsize=8)
    _save_figure(fig, save_path, title)
    return fig

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from ndvi_gam_trends.reporting_plots import plot_credible_band, plot_derivative_band
from ndvi_gam_trends.derivatives import calc_derivs
from ndvi_gam_trends.interval_summary import posterior_intervals


def test_credible_band_figure(seasonal_model, tmp_path):
    days = pd.DataFrame({"dayOfYear": np.arange(1, 366)})
    ci = posterior_intervals(seasonal_model, days, ["dayOfYear"], n=50, terms=True)
    fig = plot_credible_band(ci, title="Seasonal term", save_path=str(tmp_path),
                             show_info_box=True, info=["n = 50"])
    assert fig is not None
    assert (tmp_path / "seasonal_term.png").exists()
    plt.close(fig)


def test_grouped_band_draws_one_line_per_group():
    ci = pd.DataFrame({
        "x": np.tile(np.arange(5), 2),
        "mean": np.r_[np.zeros(5), np.ones(5)],
        "lower": -0.1,
        "upper": 1.1,
        "type": np.repeat(["grass", "shrub"], 5),
    })
    fig = plot_credible_band(ci, group_column="type")
    assert len(fig.axes[0].get_lines()) == 2
    plt.close(fig)


def test_missing_columns_skip_plot(capsys):
    assert plot_credible_band(pd.DataFrame({"x": [1, 2]})) is None
    assert "Skipping plot" in capsys.readouterr().out


def test_empty_table_skips_plot():
    empty = pd.DataFrame(columns=["x", "mean", "lower", "upper"])
    assert plot_credible_band(empty) is None


def test_derivative_band_marks_zero(seasonal_model, tmp_path):
    days = pd.DataFrame({"dayOfYear": np.arange(1, 366)})
    derivs = calc_derivs(seasonal_model, days, ["dayOfYear"], n=50)
    fig = plot_derivative_band(derivs, title="Rate of change", save_path=str(tmp_path))
    ax = fig.axes[0]
    assert any(np.allclose(line.get_ydata(), 0.0) for line in ax.get_lines())
    assert (tmp_path / "rate_of_change.png").exists()
    plt.close(fig)

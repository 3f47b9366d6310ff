import numpy as np
import pandas as pd
import pytest

from ndvi_gam_trends.common_types import SimulationEnsemble, PosteriorIntervals, InvalidTailProbabilities
from ndvi_gam_trends.interval_summary import (
    summarize_ensemble,
    posterior_intervals,
    validate_tail_probabilities,
)


def test_band_ordering_on_gaussian_ensemble():
    rng = np.random.default_rng(0)
    draws = rng.normal(loc=np.linspace(-1, 1, 30)[:, None], scale=0.3, size=(30, 500))
    out = summarize_ensemble(draws)
    assert list(out.columns) == ["mean", "lower", "upper"]
    assert (out["lower"] <= out["mean"]).all()
    assert (out["mean"] <= out["upper"]).all()


def test_linear_interpolation_quantiles():
    draws = np.arange(101, dtype=float)[None, :]
    out = summarize_ensemble(draws, lower_tail=0.025, upper_tail=0.975)
    assert out.loc[0, "lower"] == pytest.approx(2.5)
    assert out.loc[0, "upper"] == pytest.approx(97.5)
    assert out.loc[0, "mean"] == pytest.approx(50.0)


def test_single_draw_collapses_band():
    draws = np.array([[0.1], [0.2], [-3.0]])
    out = summarize_ensemble(draws)
    np.testing.assert_array_equal(out["lower"], out["mean"])
    np.testing.assert_array_equal(out["upper"], out["mean"])


def test_constant_rows_keep_mean_inside_band():
    draws = np.full((4, 100), 0.1)
    out = summarize_ensemble(draws)
    assert (out["lower"] <= out["mean"]).all()
    assert (out["mean"] <= out["upper"]).all()


def test_non_finite_values_ignored_per_row():
    draws = np.array([
        [1.0, 2.0, 3.0, np.inf],
        [np.nan, np.nan, np.nan, np.nan],
        [1.0, 1.0, 1.0, 1.0],
    ])
    out = summarize_ensemble(draws, lower_tail=0.0, upper_tail=1.0)
    assert out.loc[0, "mean"] == pytest.approx(2.0)
    assert out.loc[0, "lower"] == pytest.approx(1.0)
    assert out.loc[0, "upper"] == pytest.approx(3.0)
    assert np.isnan(out.loc[1, ["mean", "lower", "upper"]].to_numpy(dtype=float)).all()
    assert out.loc[2, "mean"] == pytest.approx(1.0)


@pytest.mark.parametrize("lower,upper", [(0.5, 0.3), (0.4, 0.4), (-0.1, 0.9), (0.1, 1.5), (np.nan, 0.9)])
def test_invalid_tails_rejected(lower, upper):
    with pytest.raises(InvalidTailProbabilities):
        validate_tail_probabilities(lower, upper)
    with pytest.raises(InvalidTailProbabilities):
        summarize_ensemble(np.zeros((2, 3)), lower_tail=lower, upper_tail=upper)


def test_invalid_tails_fail_before_simulating(model, grid, monkeypatch):
    calls = []

    def fake_simulate(*args, **kwargs):
        calls.append(args)
        raise AssertionError("simulation should not run")

    monkeypatch.setattr("ndvi_gam_trends.interval_summary.simulate_posterior", fake_simulate)
    with pytest.raises(InvalidTailProbabilities):
        posterior_intervals(model, grid, ["a"], lower_tail=0.5, upper_tail=0.3)
    assert calls == []


def test_metadata_kept_in_order():
    ens = SimulationEnsemble(
        draws=np.zeros((3, 4)),
        term="yday",
        covariate_values=np.array([1, 2, 3]),
        passthrough=pd.DataFrame({"norm": ["a", "b", "c"]}),
    )
    out = summarize_ensemble(ens)
    assert list(out.columns) == ["term", "x", "mean", "lower", "upper", "norm"]
    assert list(out["norm"]) == ["a", "b", "c"]


def test_hdi_band_contains_mean():
    rng = np.random.default_rng(1)
    draws = rng.normal(size=(10, 2000))
    draws[3] = np.nan
    out = summarize_ensemble(draws, interval="hdi")
    valid = out.drop(index=3)
    assert (valid["lower"] <= valid["mean"]).all()
    assert (valid["mean"] <= valid["upper"]).all()
    np.testing.assert_allclose(valid["upper"] - valid["lower"], 2 * 1.96, atol=0.3)
    assert np.isnan(out.loc[3, "lower"])


def test_unknown_interval_method():
    with pytest.raises(ValueError):
        summarize_ensemble(np.zeros((2, 2)), interval="median")


def test_whole_model_intervals(model, grid):
    ci = posterior_intervals(model, grid, ["a", "b"], n=200)
    assert len(ci) == len(grid)
    assert list(ci.columns[:3]) == ["mean", "lower", "upper"]
    assert {"a", "b", "site"} <= set(ci.columns)
    assert (ci["lower"] <= ci["mean"]).all() and (ci["mean"] <= ci["upper"]).all()


def test_term_intervals_stack_terms(model, grid):
    ci = posterior_intervals(model, grid, ["a", "b"], n=200, terms=True)
    assert len(ci) == 2 * len(grid)
    assert list(ci["term"].unique()) == ["a", "b"]
    np.testing.assert_array_equal(ci.loc[ci["term"] == "a", "x"], grid["a"])


def test_return_sims_keeps_the_same_draws(model, grid):
    out = posterior_intervals(model, grid, ["a"], n=40, terms=True, return_sims=True)
    assert isinstance(out, PosteriorIntervals)
    sim_cols = [c for c in out.sims.columns if c.startswith("sim_")]
    assert len(sim_cols) == 40
    assert len(out.sims) == len(grid)
    np.testing.assert_allclose(out.sims[sim_cols].mean(axis=1), out.ci["mean"])
    np.testing.assert_array_equal(out.sims[sim_cols].to_numpy(), out.simulation.ensembles[0].draws)


def test_daily_scenario(seasonal_model):
    days = pd.DataFrame({"dayOfYear": np.arange(1, 366)})
    first = posterior_intervals(seasonal_model, days, ["dayOfYear"], n=100, seed=1034)
    second = posterior_intervals(seasonal_model, days, ["dayOfYear"], n=100, seed=1034)
    assert len(first) == 365
    assert {"mean", "lower", "upper"} <= set(first.columns)
    assert (first["lower"] <= first["mean"]).all()
    assert (first["mean"] <= first["upper"]).all()
    np.testing.assert_array_equal(first["mean"].to_numpy(), second["mean"].to_numpy())


def test_single_draw_intervals_are_degenerate(seasonal_model):
    days = pd.DataFrame({"dayOfYear": np.arange(1, 366)})
    ci = posterior_intervals(seasonal_model, days, ["dayOfYear"], n=1)
    np.testing.assert_array_equal(ci["lower"], ci["mean"])
    np.testing.assert_array_equal(ci["upper"], ci["mean"])


def test_asymmetric_tails_clamp_lower_to_mean():
    # left-skewed row: mean -10 sits below the 0.6 quantile (0)
    draws = np.array([[-100.0] + [0.0] * 9])
    out = summarize_ensemble(draws, lower_tail=0.6, upper_tail=0.95)
    assert out.loc[0, "mean"] == pytest.approx(-10.0)
    assert out.loc[0, "lower"] == pytest.approx(-10.0)
    assert out.loc[0, "upper"] == pytest.approx(0.0)


def test_passthrough_may_repeat_a_covariate(model, grid):
    ci = posterior_intervals(model, grid, ["a"], n=10, passthrough=["a", "site"])
    assert list(ci.columns) == ["mean", "lower", "upper", "a", "site"]
    np.testing.assert_array_equal(ci["a"], grid["a"])

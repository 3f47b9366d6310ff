# ndvi_gam_trends/interval_summary.py

import warnings
from typing import Any, Optional, Sequence, Tuple, Union
import numpy as np
import pandas as pd
import arviz as az

from .common_types import (
    SimulationEnsemble,
    PosteriorIntervals,
    InvalidTailProbabilities,
)
from .posterior_simulation import simulate_posterior
from .constants import (
    DEFAULT_LOWER_TAIL,
    DEFAULT_UPPER_TAIL,
    DEFAULT_NUM_SIMS,
    DEFAULT_SEED,
)

INTERVAL_METHODS = ("quantile", "hdi")


def validate_tail_probabilities(lower_tail: float, upper_tail: float) -> None:
    """Raise InvalidTailProbabilities unless 0 <= lower_tail < upper_tail <= 1."""
    for name, value in (("lower_tail", lower_tail), ("upper_tail", upper_tail)):
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise InvalidTailProbabilities(f"{name} must be a number, got {value!r}")
        if not np.isfinite(value) or value < 0.0 or value > 1.0:
            raise InvalidTailProbabilities(f"{name} must lie in [0, 1], got {value}")
    if not float(lower_tail) < float(upper_tail):
        raise InvalidTailProbabilities(
            f"lower_tail ({lower_tail}) must be strictly less than upper_tail ({upper_tail})")


def _finite_or_nan(draws: np.ndarray) -> np.ndarray:
    draws = np.asarray(draws, dtype=np.float64)
    return np.where(np.isfinite(draws), draws, np.nan)


def compute_quantile_band(draws: np.ndarray, lower_tail: float,
                          upper_tail: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Row-wise mean and linear-interpolation quantiles, ignoring non-finite draws."""
    clean = _finite_or_nan(draws)
    with warnings.catch_warnings():
        # All-NaN rows legitimately produce NaN summaries.
        warnings.simplefilter("ignore", RuntimeWarning)
        mean = np.nanmean(clean, axis=1)
        lower = np.nanquantile(clean, lower_tail, axis=1, method="linear")
        upper = np.nanquantile(clean, upper_tail, axis=1, method="linear")
    return mean, lower, upper


def compute_hdi_band(draws: np.ndarray, hdi_prob: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Row-wise mean and highest density interval of probability ``hdi_prob``.
    Rows without any finite draw yield NaN.
    """
    clean = _finite_or_nan(draws)
    n_rows = clean.shape[0]
    lower = np.full(n_rows, np.nan)
    upper = np.full(n_rows, np.nan)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        mean = np.nanmean(clean, axis=1)

    valid = np.any(np.isfinite(clean), axis=1)
    if np.any(valid):
        # ArviZ expects (chain, draw, *shape)
        ary = clean[valid].T[np.newaxis, :, :]
        hdi = np.asarray(az.hdi(ary, hdi_prob=hdi_prob, skipna=True))
        lower[valid] = hdi[:, 0]
        upper[valid] = hdi[:, 1]
    return mean, lower, upper


def summarize_ensemble(
    ensemble: Union[SimulationEnsemble, np.ndarray],
    lower_tail: float = DEFAULT_LOWER_TAIL,
    upper_tail: float = DEFAULT_UPPER_TAIL,
    interval: str = "quantile",
) -> pd.DataFrame:
    """
    Reduce a (rows, n) ensemble to one row per grid row with ``mean``,
    ``lower`` and ``upper``, keeping the ensemble's term/covariate/passthrough
    metadata.

    ``interval="quantile"`` uses the ``lower_tail``/``upper_tail`` empirical
    quantiles; ``interval="hdi"`` uses the highest density interval holding
    ``upper_tail - lower_tail`` of the draws. The band is always widened to
    include the mean: ``lower = min(lower, mean)`` and
    ``upper = max(upper, mean)``. For ordinary central tails this only
    absorbs floating-point rounding, but with asymmetric tails on a skewed
    row (say 0.6/0.9 where the mean sits below the 0.6 quantile) ``lower``
    is the mean rather than the requested quantile.
    """
    validate_tail_probabilities(lower_tail, upper_tail)
    if interval not in INTERVAL_METHODS:
        raise ValueError(f"interval must be one of {INTERVAL_METHODS}, got '{interval}'")

    if not isinstance(ensemble, SimulationEnsemble):
        ensemble = SimulationEnsemble(draws=np.asarray(ensemble, dtype=np.float64))
    draws = np.asarray(ensemble.draws, dtype=np.float64)
    if draws.ndim != 2:
        raise ValueError(f"Ensemble draws must be 2-D (rows, n), got shape {draws.shape}")

    if interval == "quantile":
        mean, lower, upper = compute_quantile_band(draws, lower_tail, upper_tail)
    else:
        mean, lower, upper = compute_hdi_band(draws, upper_tail - lower_tail)

    lower = np.fmin(lower, mean)
    upper = np.fmax(upper, mean)

    meta = ensemble.metadata_frame()
    lead = [c for c in ("term", "x") if c in meta.columns]
    out = meta[lead].copy()
    out["mean"] = mean
    out["lower"] = lower
    out["upper"] = upper
    for col in meta.columns:
        if col not in lead:
            out[col] = meta[col].to_numpy()
    return out


def posterior_intervals(
    model: Any,
    newdata: pd.DataFrame,
    vars: Sequence[str],
    n: int = DEFAULT_NUM_SIMS,
    terms: bool = False,
    lower_tail: float = DEFAULT_LOWER_TAIL,
    upper_tail: float = DEFAULT_UPPER_TAIL,
    return_sims: bool = False,
    seed: int = DEFAULT_SEED,
    passthrough: Optional[Sequence[str]] = None,
    interval: str = "quantile",
    singular_policy: str = "pinv",
) -> Union[pd.DataFrame, PosteriorIntervals]:
    """
    Posterior credible intervals for a whole fitted model or its smooth terms.

    Returns the CredibleInterval table; with ``return_sims=True`` returns a
    PosteriorIntervals holding that table, the long simulation table (one row
    per grid row and term, one ``sim_*`` column per draw) and the raw
    PosteriorSimulation, so later steps can reuse the same draws.
    """
    validate_tail_probabilities(lower_tail, upper_tail)

    simulation = simulate_posterior(
        model, newdata, vars, n=n, terms=terms, seed=seed,
        singular_policy=singular_policy, passthrough=passthrough,
    )

    ci = pd.concat(
        [summarize_ensemble(ens, lower_tail, upper_tail, interval) for ens in simulation.ensembles],
        ignore_index=True,
    )
    if not return_sims:
        return ci

    sims = pd.concat([ens.to_frame() for ens in simulation.ensembles], ignore_index=True)
    return PosteriorIntervals(ci=ci, sims=sims, simulation=simulation)

# ndvi_gam_trends/posterior_simulation.py

import jax
import jax.numpy as jnp
import jax.random as random
from typing import Any, List, Optional, Sequence
import numpy as np
import pandas as pd

from .common_types import (
    FittedSmoothModel,
    SimulationEnsemble,
    PosteriorSimulation,
    SingularCovariance,
    DimensionMismatch,
)
from .smooth_model import reduce_to_smooth_model
from .constants import (
    _DEFAULT_DTYPE,
    _EIG_RTOL,
    _NEG_EIG_RTOL,
    DEFAULT_NUM_SIMS,
    DEFAULT_SEED,
    BASELINE_TERM,
)

SINGULAR_POLICIES = ("pinv", "raise")


def _covariance_factor(covariance: jnp.ndarray, singular_policy: str = "pinv") -> jnp.ndarray:
    """
    Return L with L @ L.T == covariance.

    Positive-definite matrices use the Cholesky factor. Rank-deficient ones
    either raise SingularCovariance or, under "pinv", use the eigen factor
    V * sqrt(lambda) with the degenerate eigenvalues set exactly to zero, so
    draws carry no variation along those directions.
    """
    if singular_policy not in SINGULAR_POLICIES:
        raise ValueError(f"singular_policy must be one of {SINGULAR_POLICIES}, got '{singular_policy}'")

    if not bool(jnp.all(jnp.isfinite(covariance))):
        raise SingularCovariance("Covariance matrix contains non-finite values")

    p = covariance.shape[0]
    if p == 0:
        return jnp.zeros((0, 0), dtype=_DEFAULT_DTYPE)

    cov_sym = (covariance + covariance.T) / 2.0
    eigvals, eigvecs = jnp.linalg.eigh(cov_sym)
    scale = float(jnp.max(jnp.abs(eigvals)))
    if scale == 0.0:
        # All-zero covariance: every direction is degenerate.
        if singular_policy == "raise":
            raise SingularCovariance("Covariance matrix is identically zero")
        return jnp.zeros((p, p), dtype=_DEFAULT_DTYPE)

    min_eig = float(jnp.min(eigvals))
    if min_eig < -_NEG_EIG_RTOL * scale:
        raise SingularCovariance(
            f"Covariance matrix is not positive semidefinite (min eigenvalue {min_eig:.3e})")

    if min_eig > _EIG_RTOL * scale:
        chol = jnp.linalg.cholesky(cov_sym)
        if bool(jnp.all(jnp.isfinite(chol))):
            return chol

    if singular_policy == "raise":
        n_degenerate = int(jnp.sum(eigvals <= _EIG_RTOL * scale))
        raise SingularCovariance(
            f"Covariance matrix is rank-deficient ({n_degenerate} of {p} eigenvalues ~ 0)")

    eigvals = jnp.where(eigvals > _EIG_RTOL * scale, eigvals, 0.0)
    return eigvecs * jnp.sqrt(eigvals)[None, :]


def draw_coefficients(
    mean: Any,
    covariance: Any,
    n: int,
    rng_key: jax.Array,
    singular_policy: str = "pinv",
) -> np.ndarray:
    """Draw ``n`` coefficient vectors from N(mean, covariance); returns (n, p)."""
    if n < 1:
        raise ValueError(f"Number of simulations must be >= 1, got {n}")
    mean_j = jnp.asarray(mean, dtype=_DEFAULT_DTYPE).reshape(-1)
    cov_j = jnp.asarray(covariance, dtype=_DEFAULT_DTYPE)
    p = mean_j.shape[0]
    if cov_j.shape != (p, p):
        raise DimensionMismatch(f"Covariance shape {cov_j.shape} does not match mean length {p}")

    factor = _covariance_factor(cov_j, singular_policy)
    z = random.normal(rng_key, (n, p), dtype=_DEFAULT_DTYPE)
    draws = mean_j[None, :] + z @ factor.T
    return np.asarray(draws)


def _passthrough_columns(grid: pd.DataFrame, vars: Sequence[str],
                         passthrough: Optional[Sequence[str]]) -> pd.DataFrame:
    if passthrough is None:
        passthrough = [c for c in grid.columns if c not in vars]
    missing = [c for c in passthrough if c not in grid.columns]
    if missing:
        raise DimensionMismatch(f"Passthrough columns not in grid: {missing}")
    return grid[list(passthrough)].reset_index(drop=True)


def simulate_posterior(
    model: Any,
    grid: pd.DataFrame,
    vars: Sequence[str],
    n: int = DEFAULT_NUM_SIMS,
    terms: bool = False,
    seed: int = DEFAULT_SEED,
    rng_key: Optional[jax.Array] = None,
    singular_policy: str = "pinv",
    passthrough: Optional[Sequence[str]] = None,
) -> PosteriorSimulation:
    """
    Simulate the posterior of a fitted smooth model over a prediction grid.

    Draws ``n`` coefficient vectors from N(coefficients, covariance) and maps
    them through the prediction basis. With ``terms=False`` the result holds a
    single whole-model ensemble of shape (rows, n). With ``terms=True`` it
    holds one ensemble per entry of ``vars`` built from that smooth's
    coefficients only (mean-zero term curves, no intercept/grouping), plus
    the baseline ensemble from the intercept/grouping coefficients.

    The random stream comes from ``rng_key`` when given, else from
    ``jax.random.PRNGKey(seed)``; identical inputs give identical ensembles.
    """
    gam: FittedSmoothModel = reduce_to_smooth_model(model)
    vars = list(vars)

    unknown = [v for v in vars if v not in gam.term_columns]
    if unknown:
        raise DimensionMismatch(f"Model has no smooth term over {unknown}")
    missing = [v for v in vars if v not in grid.columns]
    if missing:
        raise DimensionMismatch(f"Prediction grid is missing covariate columns: {missing}")

    if rng_key is None:
        rng_key = random.PRNGKey(seed)
    else:
        # The caller's key, not the seed, determines the draws.
        seed = None

    coef_draws = draw_coefficients(gam.coefficients, gam.covariance, n, rng_key, singular_policy)
    basis = gam.prediction_basis(grid)
    extra = _passthrough_columns(grid, vars, passthrough)

    basis_j = jnp.asarray(basis, dtype=_DEFAULT_DTYPE)
    draws_j = jnp.asarray(coef_draws, dtype=_DEFAULT_DTYPE)

    ensembles: List[SimulationEnsemble] = []
    baseline = None
    if not terms:
        sims = np.asarray(basis_j @ draws_j.T)
        meta = pd.concat([grid[vars].reset_index(drop=True),
                          extra.drop(columns=[v for v in vars if v in extra.columns])], axis=1)
        ensembles.append(SimulationEnsemble(draws=sims, passthrough=meta))
    else:
        for v in vars:
            cols = jnp.asarray(gam.term_columns[v])
            sims = np.asarray(basis_j[:, cols] @ draws_j[:, cols].T)
            ensembles.append(SimulationEnsemble(
                draws=sims,
                term=v,
                covariate_values=grid[v].to_numpy(),
                passthrough=extra,
            ))
        base_cols = jnp.asarray(gam.baseline_columns)
        baseline = SimulationEnsemble(
            draws=np.asarray(basis_j[:, base_cols] @ draws_j[:, base_cols].T),
            term=BASELINE_TERM,
            passthrough=extra,
        )

    return PosteriorSimulation(
        coefficient_draws=coef_draws,
        basis=basis,
        ensembles=ensembles,
        decomposed=terms,
        baseline=baseline,
        seed=seed,
    )

# ndvi_gam_trends/derivatives.py
"""
First-derivative (rate of change) bands for fitted smooth terms.

The derivative of each simulated curve is taken individually, over the same
coefficient draws used for the level intervals, and the resulting derivative
ensemble is summarized exactly like a level ensemble.
"""

from typing import Any, List, Optional, Sequence, Union
import numpy as np
import pandas as pd

from .common_types import (
    SimulationEnsemble,
    PosteriorIntervals,
    DimensionMismatch,
)
from .posterior_simulation import simulate_posterior
from .interval_summary import summarize_ensemble, validate_tail_probabilities
from .smooth_model import reduce_to_smooth_model
from .constants import (
    DEFAULT_LOWER_TAIL,
    DEFAULT_UPPER_TAIL,
    DEFAULT_NUM_SIMS,
    DEFAULT_SEED,
    DEFAULT_DERIV_EPS,
)

DERIVATIVE_METHODS = ("ensemble", "basis")


def finite_difference(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Derivative of each column of ``y`` (rows, n) with respect to sorted ``x``.

    Interior rows use the central difference over their two neighbours; the
    first row uses the forward difference and the last row the backward
    difference. Repeated x values give non-finite entries for the rows that
    difference across them.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    m = x.shape[0]
    if m < 2:
        raise DimensionMismatch(f"Need at least two grid rows to difference, got {m}")

    d = np.empty_like(y)
    with np.errstate(divide="ignore", invalid="ignore"):
        d[0] = (y[1] - y[0]) / (x[1] - x[0])
        d[-1] = (y[-1] - y[-2]) / (x[-1] - x[-2])
        if m > 2:
            d[1:-1] = (y[2:] - y[:-2]) / (x[2:] - x[:-2])[:, None]
    return d


def _ensemble_derivative(ens: SimulationEnsemble) -> np.ndarray:
    x = np.asarray(ens.covariate_values, dtype=np.float64)
    order = np.argsort(x, kind="stable")
    deriv = np.empty_like(ens.draws)
    deriv[order] = finite_difference(x[order], ens.draws[order])
    return deriv


def _row_steps(gam, grid: pd.DataFrame, var: str, eps: float) -> np.ndarray:
    """+eps for rows whose forward step stays inside the basis range, else -eps."""
    steps = np.full(len(grid), eps)
    for i in range(len(grid)):
        row = grid.iloc[[i]].copy()
        row[var] = row[var].astype(np.float64) + eps
        try:
            gam.prediction_basis(row)
        except DimensionMismatch:
            steps[i] = -eps
    return steps


def _basis_derivative(gam, grid: pd.DataFrame, var: str, coef_draws: np.ndarray,
                      basis: np.ndarray, eps: float) -> np.ndarray:
    cols = gam.term_columns[var]
    x = grid[var].astype(np.float64)
    steps = np.full(len(grid), eps)
    shifted = grid.copy()
    shifted[var] = x + steps
    try:
        basis_shifted = gam.prediction_basis(shifted)
    except DimensionMismatch:
        # Rows at the upper end of the basis range difference backwards.
        steps = _row_steps(gam, grid, var, eps)
        shifted[var] = x + steps
        basis_shifted = gam.prediction_basis(shifted)
    xi = (basis_shifted - basis) / steps[:, None]
    return xi[:, cols] @ coef_draws[:, cols].T


def calc_derivs(
    model: Any,
    newdata: pd.DataFrame,
    vars: Sequence[str],
    n: int = DEFAULT_NUM_SIMS,
    method: str = "ensemble",
    eps: float = DEFAULT_DERIV_EPS,
    lower_tail: float = DEFAULT_LOWER_TAIL,
    upper_tail: float = DEFAULT_UPPER_TAIL,
    return_sims: bool = False,
    seed: int = DEFAULT_SEED,
    passthrough: Optional[Sequence[str]] = None,
    singular_policy: str = "pinv",
) -> Union[pd.DataFrame, PosteriorIntervals]:
    """
    Posterior derivative bands of each smooth term in ``vars``.

    ``method="ensemble"`` differences every simulated term curve across
    neighbouring grid rows (ordered by the covariate; result re-aligned to
    the caller's row order). ``method="basis"`` perturbs the covariate by
    ``eps`` and differences the prediction basis, then applies the same
    coefficient draws. Rows whose forward step would leave the basis range
    step backwards by ``eps`` instead.

    Output columns: ``var``, ``x``, ``mean``, ``lower``, ``upper``, ``sig``
    (band excludes zero) plus passthrough columns, one block per variable.
    """
    if method not in DERIVATIVE_METHODS:
        raise ValueError(f"method must be one of {DERIVATIVE_METHODS}, got '{method}'")
    validate_tail_probabilities(lower_tail, upper_tail)
    vars = list(vars)
    if len(newdata) < 2:
        raise DimensionMismatch(f"Need at least two grid rows to differentiate, got {len(newdata)}")

    gam = reduce_to_smooth_model(model)
    simulation = simulate_posterior(
        gam, newdata, vars, n=n, terms=True, seed=seed,
        singular_policy=singular_policy, passthrough=passthrough,
    )

    deriv_ensembles: List[SimulationEnsemble] = []
    for ens in simulation.ensembles:
        if method == "ensemble":
            deriv = _ensemble_derivative(ens)
        else:
            deriv = _basis_derivative(gam, newdata.reset_index(drop=True), ens.term,
                                      simulation.coefficient_draws, simulation.basis, eps)
        deriv_ensembles.append(SimulationEnsemble(
            draws=deriv,
            term=ens.term,
            covariate_values=ens.covariate_values,
            passthrough=ens.passthrough,
        ))

    blocks = []
    for ens in deriv_ensembles:
        block = summarize_ensemble(ens, lower_tail, upper_tail).rename(columns={"term": "var"})
        sig = (block["lower"] > 0) | (block["upper"] < 0)
        block.insert(block.columns.get_loc("upper") + 1, "sig", sig.to_numpy())
        blocks.append(block)
    derivs = pd.concat(blocks, ignore_index=True)

    if not return_sims:
        return derivs

    sims = pd.concat([ens.to_frame().rename(columns={"term": "var"}) for ens in deriv_ensembles],
                     ignore_index=True)
    return PosteriorIntervals(ci=derivs, sims=sims, simulation=simulation)

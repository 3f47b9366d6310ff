# ndvi_gam_trends/smooth_model.py
"""
Fitting and adapting smooth (GAM) models for posterior simulation.

Fitting is delegated to statsmodels (GLMGam with centred B-spline smooths).
Whatever produced the fit, the simulator only ever sees a FittedSmoothModel:
coefficients, covariance, a prediction-basis callable and an explicit
term -> coefficient-index partition built once here.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple, Any
import numpy as np
import pandas as pd
from statsmodels.gam.api import GLMGam, BSplines
from statsmodels.gam.generalized_additive_model import GLMGamResults

from .common_types import (
    FittedSmoothModel,
    MixedSmoothModel,
    InvalidModelKind,
    DimensionMismatch,
    InsufficientData,
)
from .constants import DEFAULT_SPLINE_DF, DEFAULT_SPLINE_DEGREE


INTERCEPT_NAME = "(Intercept)"


def reduce_to_smooth_model(model: Any) -> FittedSmoothModel:
    """
    Reduce any supported model kind to a plain FittedSmoothModel.

    Supported kinds: FittedSmoothModel (returned as is), MixedSmoothModel
    (its ``gam`` component) and a fitted statsmodels GLMGamResults with an
    intercept-only linear part.
    """
    if isinstance(model, FittedSmoothModel):
        return model
    if isinstance(model, MixedSmoothModel):
        return reduce_to_smooth_model(model.reduce())
    if isinstance(model, GLMGamResults):
        return smooth_model_from_glmgam(model)
    raise InvalidModelKind(
        f"Cannot simulate from model of type {type(model).__name__}; "
        "expected FittedSmoothModel, MixedSmoothModel or GLMGamResults")


def _intercept_design(n_linear: int) -> Callable[[pd.DataFrame], np.ndarray]:
    if n_linear == 0:
        return lambda grid: np.empty((len(grid), 0))
    if n_linear == 1:
        return lambda grid: np.ones((len(grid), 1))
    raise InvalidModelKind(
        f"GLMGam fit has {n_linear} linear columns; pass linear_design to rebuild them for new rows")


def smooth_model_from_glmgam(
    results: GLMGamResults,
    linear_design: Optional[Callable[[pd.DataFrame], np.ndarray]] = None,
    knot_bounds: Optional[Dict[str, Tuple[float, float]]] = None,
) -> FittedSmoothModel:
    """
    Adapt a fitted statsmodels GLMGam to a FittedSmoothModel.

    The term partition comes from the smoother's per-variable column masks,
    shifted past the linear (intercept/grouping) block.
    """
    gam = results.model
    smoother = gam.smoother
    n_linear = gam.k_exog_linear
    if linear_design is None:
        linear_design = _intercept_design(n_linear)

    covariates = list(smoother.variable_names)
    term_columns = {
        var: np.flatnonzero(np.asarray(mask)) + n_linear
        for var, mask in zip(covariates, smoother.mask)
    }
    baseline_columns = np.arange(n_linear)

    def basis_function(grid: pd.DataFrame) -> np.ndarray:
        x_new = grid[covariates].to_numpy(dtype=np.float64)
        if knot_bounds:
            for j, var in enumerate(covariates):
                if var not in knot_bounds:
                    continue
                lo, hi = knot_bounds[var]
                if np.any(x_new[:, j] < lo) or np.any(x_new[:, j] > hi):
                    raise DimensionMismatch(
                        f"Grid values of '{var}' fall outside the fitted basis range [{lo}, {hi}]")
        smooth_part = smoother.transform(x_new)
        return np.column_stack([linear_design(grid), smooth_part])

    return FittedSmoothModel(
        coefficient_names=list(gam.exog_names),
        coefficients=np.asarray(results.params, dtype=np.float64),
        covariance=np.asarray(results.cov_params(), dtype=np.float64),
        basis_function=basis_function,
        term_columns=term_columns,
        baseline_columns=baseline_columns,
        covariates=covariates,
        fit_result=results,
    )


def _group_design(levels: List[Any], group_column: Optional[str]) -> Callable[[pd.DataFrame], np.ndarray]:
    """Intercept plus treatment-coded dummies for every level but the first."""
    def design(grid: pd.DataFrame) -> np.ndarray:
        cols = [np.ones(len(grid))]
        if group_column is not None:
            values = grid[group_column].to_numpy()
            for level in levels[1:]:
                cols.append((values == level).astype(np.float64))
        return np.column_stack(cols)
    return design


def fit_smooth_model(
    data: pd.DataFrame,
    response: str,
    smooth_vars: Sequence[str],
    df: int = DEFAULT_SPLINE_DF,
    degree: int = DEFAULT_SPLINE_DEGREE,
    group_column: Optional[str] = None,
    penalty_weight: float = 1.0,
    select_penalty: bool = False,
    knot_bounds: Optional[Dict[str, Tuple[float, float]]] = None,
) -> FittedSmoothModel:
    """
    Fit ``response ~ intercept [+ group] + s(v1) + s(v2) ...`` as a Gaussian GAM.

    ``df`` is the basis size per smooth (mgcv's ``k``); centring removes one
    column per smooth so term curves are mean-zero over the data. Rows with
    a missing response or covariate are dropped before fitting.
    """
    smooth_vars = list(smooth_vars)
    needed = [response] + smooth_vars + ([group_column] if group_column else [])
    missing = [c for c in needed if c not in data.columns]
    if missing:
        raise DimensionMismatch(f"Data is missing columns: {missing}")

    usable = data.dropna(subset=needed)
    x = usable[smooth_vars].to_numpy(dtype=np.float64)

    levels: List[Any] = []
    if group_column is not None:
        levels = sorted(usable[group_column].unique().tolist())
    n_coef = 1 + max(len(levels) - 1, 0) + len(smooth_vars) * (df - 1)
    if len(usable) <= n_coef:
        raise InsufficientData(
            f"{len(usable)} usable rows for a model with {n_coef} coefficients")
    for j, var in enumerate(smooth_vars):
        n_unique = len(np.unique(x[:, j]))
        if n_unique < df:
            raise InsufficientData(
                f"Covariate '{var}' has {n_unique} distinct values, fewer than basis size {df}")

    bounds = dict(knot_bounds or {})
    for j, var in enumerate(smooth_vars):
        if var not in bounds:
            bounds[var] = (float(x[:, j].min()), float(x[:, j].max()))
    knot_kwds = [{"lower_bound": bounds[v][0], "upper_bound": bounds[v][1]} for v in smooth_vars]

    smoother = BSplines(
        x,
        df=[df] * len(smooth_vars),
        degree=[degree] * len(smooth_vars),
        constraints="center",
        variable_names=smooth_vars,
        knot_kwds=knot_kwds,
    )

    linear_design = _group_design(levels, group_column)
    exog_linear = linear_design(usable)
    endog = usable[response].to_numpy(dtype=np.float64)

    alpha = penalty_weight
    if select_penalty:
        alpha, _, _ = GLMGam(endog, exog=exog_linear, smoother=smoother).select_penweight()

    results = GLMGam(endog, exog=exog_linear, smoother=smoother, alpha=alpha).fit()

    model = smooth_model_from_glmgam(results, linear_design=linear_design, knot_bounds=bounds)
    linear_names = [INTERCEPT_NAME] + [f"{group_column}[{lvl}]" for lvl in levels[1:]]
    model.coefficient_names[:len(linear_names)] = linear_names
    return model

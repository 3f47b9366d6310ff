import matplotlib
matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest

from ndvi_gam_trends.common_types import FittedSmoothModel


COEFFICIENTS = np.array([0.5, 1.0, -0.5, 0.2])
COVARIANCE = np.array([
    [0.010, 0.002, 0.000, 0.000],
    [0.002, 0.040, 0.005, 0.000],
    [0.000, 0.005, 0.020, 0.001],
    [0.000, 0.000, 0.001, 0.030],
])


def polynomial_basis(grid: pd.DataFrame) -> np.ndarray:
    a = grid["a"].to_numpy(dtype=float) - 0.5
    b = grid["b"].to_numpy(dtype=float)
    return np.column_stack([np.ones(len(grid)), a, a ** 2, b])


def make_model(covariance=None, coefficients=None) -> FittedSmoothModel:
    """Intercept + quadratic term over ``a`` + linear term over ``b``."""
    return FittedSmoothModel(
        coefficient_names=["(Intercept)", "s(a).1", "s(a).2", "s(b).1"],
        coefficients=COEFFICIENTS if coefficients is None else coefficients,
        covariance=COVARIANCE if covariance is None else covariance,
        basis_function=polynomial_basis,
        term_columns={"a": [1, 2], "b": [3]},
        baseline_columns=[0],
    )


@pytest.fixture
def model():
    return make_model()


@pytest.fixture
def grid():
    a = np.linspace(0.0, 1.0, 21)
    return pd.DataFrame({"a": a, "b": np.linspace(-1.0, 1.0, 21), "site": "plot-1"})


def seasonal_basis(grid: pd.DataFrame) -> np.ndarray:
    d = 2.0 * np.pi * grid["dayOfYear"].to_numpy(dtype=float) / 365.0
    return np.column_stack([np.ones(len(grid)), np.sin(d), np.cos(d)])


@pytest.fixture
def seasonal_model():
    return FittedSmoothModel(
        coefficient_names=["(Intercept)", "s(dayOfYear).1", "s(dayOfYear).2"],
        coefficients=np.array([0.45, 0.25, -0.10]),
        covariance=np.diag([1e-4, 4e-4, 4e-4]),
        basis_function=seasonal_basis,
        term_columns={"dayOfYear": [1, 2]},
        baseline_columns=[0],
    )


def synthetic_ndvi(days, rng, level=0.45, amplitude=0.25, noise=0.02):
    days = np.asarray(days, dtype=float)
    return level + amplitude * np.sin(2.0 * np.pi * (days - 80.0) / 365.0) + rng.normal(0, noise, size=days.shape)

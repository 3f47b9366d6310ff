# ndvi_gam_trends/common_types.py
from typing import Callable, Dict, Optional, List, Any
from dataclasses import dataclass, field
import numpy as np
import pandas as pd


# --- Error kinds ---

class SmoothModelError(ValueError):
    """Base class for all errors raised by the posterior/derivative core."""


class InvalidModelKind(SmoothModelError):
    """Model object cannot be reduced to a plain FittedSmoothModel."""


class SingularCovariance(SmoothModelError):
    """Coefficient covariance is not (usable as) a positive-definite matrix."""


class InvalidTailProbabilities(SmoothModelError):
    """Tail probabilities outside [0, 1] or not strictly ordered."""


class DimensionMismatch(SmoothModelError):
    """Grid, basis, coefficient or covariance shapes do not line up."""


class InsufficientData(SmoothModelError):
    """Too few usable observations to fit a smooth model for a group."""


# --- Models ---

@dataclass
class FittedSmoothModel:
    """Plain fitted smooth model as consumed by the posterior simulator.

    ``term_columns`` maps each smooth covariate to the coefficient indices of
    its smooth term; ``baseline_columns`` holds the intercept and grouping
    coefficients. Both are fixed when the model is built, so simulation never
    has to inspect coefficient names.
    """
    coefficient_names: List[str]
    coefficients: np.ndarray                          # (p,)
    covariance: np.ndarray                            # (p, p)
    basis_function: Callable[[pd.DataFrame], np.ndarray]
    term_columns: Dict[str, np.ndarray]               # covariate -> indices
    baseline_columns: np.ndarray                      # intercept/grouping indices
    covariates: List[str] = field(default_factory=list)
    fit_result: Any = None                            # underlying fitted object, if any

    def __post_init__(self):
        self.coefficients = np.asarray(self.coefficients, dtype=np.float64).reshape(-1)
        self.covariance = np.asarray(self.covariance, dtype=np.float64)
        self.coefficient_names = list(self.coefficient_names)
        p = self.coefficients.shape[0]

        if len(self.coefficient_names) != p:
            raise DimensionMismatch(
                f"{len(self.coefficient_names)} coefficient names for {p} coefficients")
        if self.covariance.shape != (p, p):
            raise DimensionMismatch(
                f"Covariance shape {self.covariance.shape} does not match {p} coefficients")

        self.term_columns = {
            name: np.asarray(cols, dtype=int).reshape(-1)
            for name, cols in self.term_columns.items()
        }
        self.baseline_columns = np.asarray(self.baseline_columns, dtype=int).reshape(-1)
        if not self.covariates:
            self.covariates = list(self.term_columns.keys())

        seen = set()
        for name, cols in [("baseline", self.baseline_columns)] + list(self.term_columns.items()):
            if cols.size and (cols.min() < 0 or cols.max() >= p):
                raise DimensionMismatch(f"Partition '{name}' has indices outside 0..{p - 1}")
            overlap = seen.intersection(cols.tolist())
            if overlap:
                raise DimensionMismatch(
                    f"Partition '{name}' shares coefficients {sorted(overlap)} with another term")
            seen.update(cols.tolist())

    @property
    def n_coefficients(self) -> int:
        return self.coefficients.shape[0]

    def prediction_basis(self, grid: pd.DataFrame) -> np.ndarray:
        """Row-wise linear-predictor matrix for ``grid`` (rows x p)."""
        missing = [v for v in self.covariates if v not in grid.columns]
        if missing:
            raise DimensionMismatch(f"Prediction grid is missing covariate columns: {missing}")
        basis = np.asarray(self.basis_function(grid), dtype=np.float64)
        if basis.ndim != 2 or basis.shape != (len(grid), self.n_coefficients):
            raise DimensionMismatch(
                f"Prediction basis has shape {basis.shape}, expected ({len(grid)}, {self.n_coefficients})")
        return basis

    def fitted_values(self, grid: pd.DataFrame) -> np.ndarray:
        return self.prediction_basis(grid) @ self.coefficients


@dataclass
class MixedSmoothModel:
    """Mixed-model wrapper around a plain smooth model (GAMM-style fit)."""
    gam: FittedSmoothModel
    random_effects: Dict[str, Any] = field(default_factory=dict)

    def reduce(self) -> FittedSmoothModel:
        return self.gam


# --- Simulation outputs ---

@dataclass
class SimulationEnsemble:
    """Simulated curves over a prediction grid, shaped (rows, n_draws)."""
    draws: np.ndarray
    term: Optional[str] = None
    covariate_values: Optional[np.ndarray] = None
    passthrough: Optional[pd.DataFrame] = None

    @property
    def n_rows(self) -> int:
        return self.draws.shape[0]

    @property
    def n_draws(self) -> int:
        return self.draws.shape[1]

    def metadata_frame(self) -> pd.DataFrame:
        meta = pd.DataFrame(index=pd.RangeIndex(self.n_rows))
        if self.term is not None:
            meta["term"] = self.term
        if self.covariate_values is not None:
            meta["x"] = np.asarray(self.covariate_values)
        if self.passthrough is not None:
            for col in self.passthrough.columns:
                meta[col] = self.passthrough[col].to_numpy()
        return meta

    def to_frame(self) -> pd.DataFrame:
        """Metadata columns first, then one column per draw."""
        sims = pd.DataFrame(self.draws, columns=[f"sim_{i}" for i in range(self.n_draws)])
        return pd.concat([self.metadata_frame(), sims], axis=1)


@dataclass
class PosteriorSimulation:
    """Everything produced by one simulator call."""
    coefficient_draws: np.ndarray                    # (n, p)
    basis: np.ndarray                                # (rows, p)
    ensembles: List[SimulationEnsemble]
    decomposed: bool = False
    baseline: Optional[SimulationEnsemble] = None    # intercept/grouping part when decomposed
    seed: Optional[int] = None

    def ensemble_for(self, term: str) -> SimulationEnsemble:
        for ens in self.ensembles:
            if ens.term == term:
                return ens
        raise KeyError(f"No ensemble for term '{term}'")


@dataclass
class PosteriorIntervals:
    """Credible-interval table plus the simulations it was computed from."""
    ci: pd.DataFrame
    sims: Optional[pd.DataFrame] = None
    simulation: Optional[PosteriorSimulation] = None

# ndvi_gam_trends/group_workflow.py

import os
import time
import zlib
from typing import Any, Dict, List, Optional, Sequence, Tuple
import numpy as np
import pandas as pd
import jax.random as random

from .common_types import FittedSmoothModel, InvalidTailProbabilities, DimensionMismatch
from .smooth_model import fit_smooth_model
from .interval_summary import posterior_intervals, validate_tail_probabilities
from .derivatives import calc_derivs, DERIVATIVE_METHODS
from .landsat_tables import filter_low_ndvi_pixels
from .constants import (
    DEFAULT_SEED,
    DEFAULT_NUM_SIMS,
    DEFAULT_LOWER_TAIL,
    DEFAULT_UPPER_TAIL,
    DEFAULT_SPLINE_DF,
    DEFAULT_SPLINE_DEGREE,
)

_MIN_BASIS_SIZE = DEFAULT_SPLINE_DEGREE + 1


# --- Configuration Class Definition ---
class WorkflowConfig:
    def __init__(self,
                 data_file_path: str = 'data/raw_data_k=12.csv',
                 output_file_path: Optional[str] = 'output/k=12_individual_years_derivs_GAM.csv',
                 posterior_output_file_path: Optional[str] = None,
                 # Columns
                 response_column: str = 'NDVIReprojected',
                 covariate: str = 'yday',
                 group_columns: Optional[List[str]] = None,
                 year_column: str = 'year',
                 date_column: str = 'date',
                 # Model settings
                 spline_df: int = DEFAULT_SPLINE_DF,
                 current_year: Optional[int] = None,
                 penalty_weight: float = 1.0,
                 prediction_days: Optional[Sequence[int]] = None,
                 # Simulation settings
                 num_sims: int = DEFAULT_NUM_SIMS,
                 seed: int = DEFAULT_SEED,
                 lower_tail: float = DEFAULT_LOWER_TAIL,
                 upper_tail: float = DEFAULT_UPPER_TAIL,
                 derivative_method: str = 'ensemble',
                 # Per-pixel settings
                 pixel_response_column: str = 'NDVI',
                 min_observations: int = 40,
                 min_unique_days: int = 24,
                 min_mean_ndvi: float = 0.1
                 ):
        self.data_file_path = data_file_path
        self.output_file_path = output_file_path
        self.posterior_output_file_path = posterior_output_file_path
        self.response_column = response_column
        self.covariate = covariate
        self.group_columns = group_columns if group_columns is not None else ['type', 'year']
        self.year_column = year_column
        self.date_column = date_column
        self.spline_df = spline_df
        self.current_year = current_year
        self.penalty_weight = penalty_weight
        self.prediction_days = list(prediction_days) if prediction_days is not None else list(range(1, 366))
        self.num_sims = num_sims
        self.seed = seed
        self.lower_tail = lower_tail
        self.upper_tail = upper_tail
        self.derivative_method = derivative_method
        self.pixel_response_column = pixel_response_column
        self.min_observations = min_observations
        self.min_unique_days = min_unique_days
        self.min_mean_ndvi = min_mean_ndvi


def validate_workflow_config(config: WorkflowConfig, check_files: bool = True) -> bool:
    print("\n--- Validating Workflow Configuration ---"); issues = []
    if check_files and not os.path.exists(config.data_file_path):
        issues.append(f"Data file not found: {config.data_file_path}")
    if not isinstance(config.group_columns, list) or not config.group_columns:
        issues.append("`group_columns` must be a non-empty list.")
    if config.spline_df < _MIN_BASIS_SIZE:
        issues.append(f"`spline_df` must be at least {_MIN_BASIS_SIZE}.")
    if config.num_sims < 1:
        issues.append("`num_sims` must be at least 1.")
    if len(config.prediction_days) < 2:
        issues.append("`prediction_days` needs at least two days to difference.")
    if config.derivative_method not in DERIVATIVE_METHODS:
        issues.append(f"`derivative_method` must be one of {DERIVATIVE_METHODS}.")
    try:
        validate_tail_probabilities(config.lower_tail, config.upper_tail)
    except InvalidTailProbabilities as e:
        issues.append(str(e))

    if issues: print("❌ Configuration Issues Found:"); [print(f"  - {issue}") for issue in issues]; return False

    print("✓ Workflow configuration valid."); return True


# --- Helpers ---

def derive_group_seed(seed: int, *labels: Any) -> int:
    """Deterministic per-group seed, independent of loop order."""
    key = random.PRNGKey(seed)
    for label in labels:
        key = random.fold_in(key, zlib.crc32(str(label).encode("utf-8")) & 0x7FFFFFFF)
    return int(random.randint(key, (), 0, 2**31 - 1))


def basis_size_for_year(raw: pd.DataFrame, year: Any, config: WorkflowConfig) -> int:
    """
    Basis size for one year's fits. The configured current (partial) year
    gets one basis function per month observed so far.
    """
    if config.current_year is None or year != config.current_year:
        return config.spline_df
    year_rows = raw[raw[config.year_column] == year]
    n_months = pd.to_datetime(year_rows[config.date_column]).dt.month.nunique()
    return max(int(n_months), _MIN_BASIS_SIZE)


def _knot_bounds(data: pd.DataFrame, config: WorkflowConfig) -> Dict[str, Tuple[float, float]]:
    values = np.concatenate([data[config.covariate].dropna().to_numpy(dtype=np.float64),
                             np.asarray(config.prediction_days, dtype=np.float64)])
    return {config.covariate: (float(values.min()), float(values.max()))}


def fit_group_model(data: pd.DataFrame, config: WorkflowConfig, df: int,
                    response: Optional[str] = None) -> FittedSmoothModel:
    return fit_smooth_model(
        data,
        response=response or config.response_column,
        smooth_vars=[config.covariate],
        df=df,
        penalty_weight=config.penalty_weight,
        knot_bounds=_knot_bounds(data, config),
    )


def _labels(key: Any) -> Tuple:
    return key if isinstance(key, tuple) else (key,)


def _run_groups(raw: pd.DataFrame, config: WorkflowConfig,
                kind: str) -> Tuple[pd.DataFrame, List[Tuple[Tuple, str]]]:
    needed = config.group_columns + [config.covariate, config.response_column]
    if config.current_year is not None:
        needed.append(config.date_column)
    missing = [c for c in needed if c not in raw.columns]
    if missing:
        raise DimensionMismatch(f"Raw table is missing columns: {missing}")

    newdf = pd.DataFrame({config.covariate: config.prediction_days})
    year_pos = (config.group_columns.index(config.year_column)
                if config.year_column in config.group_columns else None)

    results = []
    failures: List[Tuple[Tuple, str]] = []
    for key, group in raw.groupby(config.group_columns, sort=False):
        labels = _labels(key)
        year = labels[year_pos] if year_pos is not None else None
        group_seed = derive_group_seed(config.seed, *labels)
        try:
            k = basis_size_for_year(raw, year, config) if year is not None else config.spline_df
            model = fit_group_model(group, config, k)
            if kind == "derivatives":
                out = calc_derivs(model, newdf, vars=[config.covariate], n=config.num_sims,
                                  method=config.derivative_method,
                                  lower_tail=config.lower_tail, upper_tail=config.upper_tail,
                                  seed=group_seed)
            else:
                out = posterior_intervals(model, newdf, vars=[config.covariate], n=config.num_sims,
                                          lower_tail=config.lower_tail, upper_tail=config.upper_tail,
                                          seed=group_seed)
        except (ValueError, np.linalg.LinAlgError) as e:
            print(f"⚠️  Skipping group {dict(zip(config.group_columns, labels))}: {e}")
            failures.append((labels, str(e)))
            continue

        for col, label in zip(config.group_columns, labels):
            out[col] = label
        results.append(out)

    combined = pd.concat(results, ignore_index=True) if results else pd.DataFrame()
    print(f"✓ {kind}: {len(results)} groups processed, {len(failures)} skipped")
    return combined, failures


def run_group_derivatives(raw: pd.DataFrame,
                          config: WorkflowConfig) -> Tuple[pd.DataFrame, List[Tuple[Tuple, str]]]:
    """Fit one GAM per group (land cover x year) and collect derivative bands."""
    print(f"\n=== GROUP DERIVATIVES ({', '.join(config.group_columns)}) ===")
    return _run_groups(raw, config, "derivatives")


def run_group_posteriors(raw: pd.DataFrame,
                         config: WorkflowConfig) -> Tuple[pd.DataFrame, List[Tuple[Tuple, str]]]:
    """Fit one GAM per group and collect whole-model posterior intervals."""
    print(f"\n=== GROUP POSTERIORS ({', '.join(config.group_columns)}) ===")
    return _run_groups(raw, config, "posteriors")


def run_pixel_predictions(long: pd.DataFrame, config: WorkflowConfig,
                          pixel_column: str = "xy") -> pd.DataFrame:
    """
    Fit ``s(yday)`` per pixel and store the fitted values as ``pred`` and
    ``resid``. Pixels whose mean NDVI is at most ``min_mean_ndvi`` are dropped;
    pixels with fewer than ``min_observations`` non-missing values
    or fewer than ``min_unique_days`` distinct observed days are left NaN.
    """
    print(f"\n=== PER-PIXEL PREDICTIONS ===")
    response = config.pixel_response_column
    table = filter_low_ndvi_pixels(long, config.min_mean_ndvi, response, pixel_column)
    table["pred"] = np.nan
    fitted = skipped = 0

    for pixel, rows in table.groupby(pixel_column, sort=False):
        observed = rows[rows[response].notna()]
        if len(observed) < config.min_observations or \
                observed[config.covariate].nunique() < config.min_unique_days:
            skipped += 1
            continue
        try:
            model = fit_smooth_model(
                observed, response=response, smooth_vars=[config.covariate],
                df=config.spline_df, penalty_weight=config.penalty_weight,
                knot_bounds={config.covariate: (float(rows[config.covariate].min()),
                                                 float(rows[config.covariate].max()))},
            )
        except (ValueError, np.linalg.LinAlgError) as e:
            print(f"⚠️  Pixel {pixel}: fit failed ({e})")
            skipped += 1
            continue
        table.loc[rows.index, "pred"] = model.fitted_values(rows)
        fitted += 1

    table["resid"] = table[response] - table["pred"]
    print(f"✓ Pixels fitted: {fitted}, skipped: {skipped}")
    return table


def pixel_residual_summary(table: pd.DataFrame, coord_columns: Sequence[str] = ("x", "y")) -> pd.DataFrame:
    """Per-pixel mean residual, mean squared residual and RMSE."""
    work = table.assign(resid_sq=table["resid"] ** 2)
    summary = work.groupby(list(coord_columns)).agg(
        resid=("resid", "mean"),
        resid_sq=("resid_sq", "mean"),
    ).reset_index()
    summary["rmse"] = np.sqrt(summary["resid_sq"])
    return summary


# --- I/O ---

def load_raw_ndvi_table(path: str, config: Optional[WorkflowConfig] = None) -> pd.DataFrame:
    print(f"\n--- Loading Data from: {path} ---")
    raw = pd.read_csv(path)
    if config is not None:
        needed = config.group_columns + [config.covariate, config.response_column]
        missing = [c for c in needed if c not in raw.columns]
        if missing:
            raise DimensionMismatch(f"{path} is missing columns: {missing}")
        if config.date_column in raw.columns:
            raw[config.date_column] = pd.to_datetime(raw[config.date_column])
    print(f"✓ Loaded {len(raw)} rows, {raw.shape[1]} columns")
    return raw


def write_results(df: pd.DataFrame, path: str) -> None:
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    df.to_csv(path, index=False)
    print(f"✓ Wrote {len(df)} rows to {path}")


def run_workflow(config: WorkflowConfig) -> Optional[Dict[str, pd.DataFrame]]:
    """Validate, load, run the group derivative (and posterior) loops, write CSVs."""
    print(f"\n=== NDVI GAM WORKFLOW ===")
    if not validate_workflow_config(config):
        return None

    start_time = time.time()
    raw = load_raw_ndvi_table(config.data_file_path, config)

    outputs: Dict[str, pd.DataFrame] = {}
    derivs, _ = run_group_derivatives(raw, config)
    outputs["derivatives"] = derivs
    if config.output_file_path:
        write_results(derivs, config.output_file_path)

    if config.posterior_output_file_path:
        posts, _ = run_group_posteriors(raw, config)
        outputs["posteriors"] = posts
        write_results(posts, config.posterior_output_file_path)

    print(f"Workflow completed in {time.time() - start_time:.2f}s.")
    return outputs

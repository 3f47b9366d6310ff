# Configure JAX as soon as the package is imported
from . import jax_config
jax_config.configure_jax()

# ndvi_gam_trends/__init__.py

"""
NDVI GAM Trends Package
Posterior simulation, credible intervals and derivative bands for
smooth (GAM) fits of NDVI time series.
"""

from .common_types import (
    FittedSmoothModel,
    MixedSmoothModel,
    SimulationEnsemble,
    PosteriorSimulation,
    PosteriorIntervals,
    SmoothModelError,
    InvalidModelKind,
    SingularCovariance,
    InvalidTailProbabilities,
    DimensionMismatch,
    InsufficientData,
)

from .smooth_model import (
    fit_smooth_model,
    smooth_model_from_glmgam,
    reduce_to_smooth_model,
)

from .posterior_simulation import draw_coefficients, simulate_posterior

from .interval_summary import summarize_ensemble, posterior_intervals

from .derivatives import calc_derivs

from .group_workflow import (
    WorkflowConfig,
    validate_workflow_config,
    run_group_derivatives,
    run_group_posteriors,
    run_pixel_predictions,
    run_workflow,
)

__version__ = "0.1.0"
__author__ = "NDVI Drought Monitoring Team"

__all__ = [
    'FittedSmoothModel',
    'MixedSmoothModel',
    'SimulationEnsemble',
    'PosteriorSimulation',
    'PosteriorIntervals',
    'SmoothModelError',
    'InvalidModelKind',
    'SingularCovariance',
    'InvalidTailProbabilities',
    'DimensionMismatch',
    'InsufficientData',
    'fit_smooth_model',
    'smooth_model_from_glmgam',
    'reduce_to_smooth_model',
    'draw_coefficients',
    'simulate_posterior',
    'summarize_ensemble',
    'posterior_intervals',
    'calc_derivs',
    'WorkflowConfig',
    'validate_workflow_config',
    'run_group_derivatives',
    'run_group_posteriors',
    'run_pixel_predictions',
    'run_workflow',
]

# ndvi_gam_trends/constants.py
import jax.numpy as jnp

_DEFAULT_DTYPE = jnp.float64

# Relative tolerance (to the largest eigenvalue) below which a covariance
# direction is treated as degenerate.
_EIG_RTOL = 1e-10

# Eigenvalues more negative than this (relative) mean the matrix is not PSD.
_NEG_EIG_RTOL = 1e-8

DEFAULT_SEED = 1034
DEFAULT_NUM_SIMS = 100
DEFAULT_LOWER_TAIL = 0.025
DEFAULT_UPPER_TAIL = 0.975

DEFAULT_SPLINE_DF = 12
DEFAULT_SPLINE_DEGREE = 3
DEFAULT_DERIV_EPS = 1e-7

BASELINE_TERM = "(baseline)"

"""
JAX Configuration Module
Centralized JAX configuration for all modules
"""
# In ndvi_gam_trends/jax_config.py
import jax
import os


def configure_jax():
    # Leave device-count flags to the caller's environment; only report them.
    xla_flags = os.environ.get("XLA_FLAGS")

    # Coefficient covariances from spline fits are badly conditioned in float32.
    jax.config.update("jax_enable_x64", True)
    jax.config.update("jax_platform_name", "cpu")

    print("✓ JAX configured from jax_config.py: Target platform CPU, float64 enabled."
          + (f" XLA_FLAGS={xla_flags}" if xla_flags else ""))

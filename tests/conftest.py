"""Pytest configuration for the heatgrid test suite."""

import jax

# Persistent JIT compilation cache: the stepper kernels are recompiled per
# grid shape, so reuse across runs keeps the suite fast.
jax.config.update("jax_compilation_cache_dir", "/tmp/jax_cache")
jax.config.update("jax_persistent_cache_min_entry_size_bytes", 0)

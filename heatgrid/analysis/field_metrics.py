"""Summary statistics of a thermal field for logging and streaming."""

import jax.numpy as jnp

from heatgrid.field.field import GridField


def total_heat(field: GridField) -> jnp.ndarray:
    """Sum of all cell temperatures.

    Without heat sources this is conserved by diffusion, so drift in this
    value over a run points at an unstable time step.
    """
    return jnp.sum(field.temperatures)


def temperature_spread(field: GridField) -> jnp.ndarray:
    """Difference between the hottest and coldest cell."""
    return jnp.max(field.temperatures) - jnp.min(field.temperatures)


def field_summary(field: GridField) -> dict[str, float]:
    """Scalar statistics of the field as plain Python floats.

    Returns:
        Dict with mean, min, max, std, spread and total heat of the
        temperatures, plus the number of pinned cells.
    """
    temps = field.temperatures
    return {
        "mean_temperature": float(jnp.mean(temps)),
        "min_temperature": float(jnp.min(temps)),
        "max_temperature": float(jnp.max(temps)),
        "std_temperature": float(jnp.std(temps)),
        "temperature_spread": float(temperature_spread(field)),
        "total_heat": float(total_heat(field)),
        "num_sources": float(jnp.sum(field.source_mask)),
    }

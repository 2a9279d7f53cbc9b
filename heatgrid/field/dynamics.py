"""Field dynamics: explicit heat diffusion on the thermal grid.

One step applies the 5-point discrete Laplacian to every unpinned cell:

    T' = T + rate * dt * (T_left + T_right + T_up + T_down - 4 * T)

Neighbors outside the grid take the cell's own value, so no heat crosses
the grid edge. Pinned cells are reset to their forced value every step.

The explicit scheme is only stable while rate * dt <= 0.25. The stepper
does not enforce this; callers that need it clamp the time step with
stable_delta_time().
"""

import math

import flax.struct
import jax
import jax.numpy as jnp

from heatgrid.field.field import GridField

CONVERGENCE_THRESHOLD = 1e-3
STABILITY_LIMIT = 0.25


@flax.struct.dataclass
class StepResult:
    """Outcome of one diffusion step.

    Attributes:
        next_field: The advanced field snapshot.
        max_abs_change: Largest |delta T| over unpinned cells this step.
    """
    next_field: GridField
    max_abs_change: float


@flax.struct.dataclass
class ConvergenceResult:
    """Outcome of stepping a field until it settles."""
    field: GridField
    num_steps: int
    max_abs_change: float
    converged: bool


def laplacian(values: jnp.ndarray) -> jnp.ndarray:
    """Discrete 5-point Laplacian with insulated (zero-flux) edges.

    Args:
        values: Temperatures with shape (H, W).

    Returns:
        Array of shape (H, W) holding left + right + up + down - 4 * center.
    """
    h, w = values.shape
    # Edge padding repeats the border cell, so a missing neighbor equals self
    padded = jnp.pad(values, 1, mode='edge')

    left = padded[1:h + 1, 0:w]
    right = padded[1:h + 1, 2:w + 2]
    up = padded[0:h, 1:w + 1]
    down = padded[2:h + 2, 1:w + 1]
    return left + right + up + down - 4.0 * values


@jax.jit
def _advance(field: GridField, coefficient: jnp.ndarray) -> tuple[GridField, jnp.ndarray]:
    grid = field.temperatures.reshape(field.height, field.width)
    delta = (coefficient * laplacian(grid)).reshape(-1)
    delta = jnp.where(field.source_mask, 0.0, delta)

    new_values = jnp.where(
        field.source_mask, field.source_values, field.temperatures + delta
    )
    return field.replace(temperatures=new_values), jnp.max(jnp.abs(delta))


def step(field: GridField, delta_time: float, diffusion_rate: float) -> StepResult:
    """Advance the field by one time increment.

    Args:
        field: Current field. Not modified.
        delta_time: Seconds since the previous step. Zero or negative
            values leave the field unchanged.
        diffusion_rate: Propagation speed, >= 0.

    Returns:
        StepResult with the new field and the largest per-cell change.
    """
    if delta_time <= 0:
        return StepResult(next_field=field, max_abs_change=0.0)

    coefficient = jnp.float32(diffusion_rate * delta_time)
    next_field, max_change = _advance(field, coefficient)
    return StepResult(next_field=next_field, max_abs_change=float(max_change))


def has_converged(max_abs_change: float, threshold: float = CONVERGENCE_THRESHOLD) -> bool:
    """Whether a step's largest change is below the settling tolerance."""
    return max_abs_change < threshold


def stable_delta_time(diffusion_rate: float, limit: float = STABILITY_LIMIT) -> float:
    """Largest delta_time for which rate * delta_time stays within limit."""
    if diffusion_rate <= 0:
        return math.inf
    return limit / diffusion_rate


def is_stable(delta_time: float, diffusion_rate: float, limit: float = STABILITY_LIMIT) -> bool:
    return diffusion_rate * delta_time <= limit


@jax.jit
def _iterate(
    field: GridField,
    coefficient: jnp.ndarray,
    threshold: jnp.ndarray,
    max_steps: jnp.ndarray,
) -> tuple[GridField, jnp.ndarray, jnp.ndarray]:
    def cond(carry: tuple) -> jnp.ndarray:
        _, n, change = carry
        return jnp.logical_and(n < max_steps, change >= threshold)

    def body(carry: tuple) -> tuple:
        f, n, _ = carry
        f, change = _advance(f, coefficient)
        return f, n + 1, change

    init = (field, jnp.int32(0), jnp.array(jnp.inf, dtype=jnp.float32))
    return jax.lax.while_loop(cond, body, init)


def run_until_converged(
    field: GridField,
    delta_time: float,
    diffusion_rate: float,
    threshold: float = CONVERGENCE_THRESHOLD,
    max_steps: int = 10_000,
) -> ConvergenceResult:
    """Step the field repeatedly until it settles or max_steps is reached.

    The whole loop runs inside a single compiled jax.lax.while_loop.

    Args:
        field: Starting field. Not modified.
        delta_time: Fixed time increment per step.
        diffusion_rate: Propagation speed, >= 0.
        threshold: Settling tolerance on max_abs_change.
        max_steps: Upper bound on the number of steps.

    Returns:
        ConvergenceResult with the final field, the number of steps taken
        and the last step's max_abs_change.
    """
    if max_steps <= 0:
        raise ValueError(f"max_steps must be positive, got {max_steps}")
    if delta_time <= 0:
        return ConvergenceResult(
            field=field, num_steps=0, max_abs_change=0.0, converged=True
        )

    final_field, num_steps, max_change = _iterate(
        field,
        jnp.float32(diffusion_rate * delta_time),
        jnp.float32(threshold),
        jnp.int32(max_steps),
    )
    max_change = float(max_change)
    return ConvergenceResult(
        field=final_field,
        num_steps=int(num_steps),
        max_abs_change=max_change,
        converged=has_converged(max_change, threshold),
    )

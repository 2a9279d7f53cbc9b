"""Simulation driver that owns the current field and its lifecycle.

The session is the only writer of the current GridField. It steps the
field once per tick while running, stops once the field settles, and
rebuilds the field from an explicit GridConfig whenever the grid is
reconfigured.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

import jax
import jax.numpy as jnp
import numpy as np

from heatgrid.configs import DisplayConfig, GridConfig, SimulationConfig
from heatgrid.field import ops
from heatgrid.field.dynamics import (
    StepResult,
    has_converged,
    is_stable,
    stable_delta_time,
    step,
)
from heatgrid.field.field import (
    GridDimensions,
    GridField,
    check_finite,
    create_field,
    create_random_field,
    parse_cell_id,
)

logger = logging.getLogger(__name__)


class UnknownCommandError(ValueError):
    """Raised for a dashboard command whose type is not recognized."""


def build_field(grid: GridConfig, display: DisplayConfig | None = None) -> GridField:
    """Create a fresh field for a grid configuration.

    Raises:
        InvalidDimensionsError: If the configured width or height is invalid.
    """
    dimensions = GridDimensions(width=grid.width, height=grid.height)
    if grid.initial_mode == "random":
        display = display or DisplayConfig()
        return create_random_field(
            dimensions,
            jax.random.PRNGKey(grid.seed),
            low=display.min_temperature,
            high=display.max_temperature,
        )
    if grid.initial_mode == "ambient":
        return create_field(dimensions, grid.ambient_temperature)
    raise ValueError(f"Unknown initial_mode: {grid.initial_mode!r}")


class SimulationSession:
    """Current field plus the running/converged state of the simulation.

    Editing a cell or a heat source replaces the field and clears the
    converged flag, so a running simulation picks up the change on the
    next tick. Changing the grid itself is a full reset.
    """

    def __init__(
        self,
        grid: GridConfig | None = None,
        simulation: SimulationConfig | None = None,
        display: DisplayConfig | None = None,
    ) -> None:
        self._grid = grid or GridConfig()
        self._simulation = simulation or SimulationConfig()
        self._display = display or DisplayConfig()
        self._field = build_field(self._grid, self._display)
        self._running = False
        self._converged = False
        self._step_count = 0
        self._last_max_change = 0.0
        self._revision = 0
        self._warned_unstable = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def field(self) -> GridField:
        return self._field

    @property
    def grid(self) -> GridConfig:
        return self._grid

    @property
    def simulation(self) -> SimulationConfig:
        return self._simulation

    @property
    def display(self) -> DisplayConfig:
        return self._display

    @property
    def running(self) -> bool:
        return self._running

    @property
    def converged(self) -> bool:
        return self._converged

    @property
    def step_count(self) -> int:
        return self._step_count

    @property
    def last_max_change(self) -> float:
        return self._last_max_change

    @property
    def revision(self) -> int:
        """Counter bumped on every change to the field or the run state."""
        return self._revision

    def _touch(self) -> None:
        self._revision += 1

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if not self._running:
            self._running = True
            self._touch()

    def pause(self) -> None:
        if self._running:
            self._running = False
            self._touch()

    def reconfigure(self, grid: GridConfig) -> None:
        """Rebuild the field from a new grid configuration.

        All temperatures and heat sources are discarded and the simulation
        stops. On invalid dimensions the previous field is kept.
        """
        new_field = build_field(grid, self._display)
        self._grid = grid
        self._field = new_field
        self._running = False
        self._converged = False
        self._step_count = 0
        self._last_max_change = 0.0
        self._touch()
        logger.info("Grid reset to %dx%d", grid.width, grid.height)

    def reset(self) -> None:
        """Rebuild the field from the current grid configuration."""
        self.reconfigure(self._grid)

    def resize(self, width: int, height: int) -> None:
        self.reconfigure(dataclasses.replace(self._grid, width=width, height=height))

    def set_ambient(self, temperature: float) -> None:
        """Reinitialize every cell to a uniform ambient temperature.

        Heat sources survive and keep their forced value. The run state and
        step count are left alone since the grid dimensions do not change.
        """
        temperature = check_finite(temperature)
        grid = dataclasses.replace(
            self._grid, ambient_temperature=temperature, initial_mode="ambient"
        )
        ambient = build_field(grid, self._display)
        mask = self._field.source_mask
        self._grid = grid
        self._replace_field(
            ambient.replace(
                temperatures=jnp.where(mask, self._field.source_values, ambient.temperatures),
                source_mask=mask,
                source_values=self._field.source_values,
            )
        )
        logger.info("Ambient temperature set to %.2f", temperature)

    def set_diffusion_rate(self, rate: float) -> None:
        # SimulationConfig rejects negative rates
        self._simulation = dataclasses.replace(self._simulation, diffusion_rate=float(rate))
        self._converged = False
        self._warned_unstable = False
        self._touch()

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def _replace_field(self, new_field: GridField) -> None:
        self._field = new_field
        self._converged = False
        self._touch()

    def set_temperature(self, cell: ops.CellRef, value: float) -> None:
        row, col = _coords(cell)
        self._replace_field(ops.set_cell(self._field, row, col, value))

    def pin_source(self, cell: ops.CellRef, value: float) -> None:
        self._replace_field(ops.pin_source(self._field, cell, value))

    def unpin_source(self, cell: ops.CellRef) -> None:
        self._replace_field(ops.unpin_source(self._field, cell))

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def _clamp_delta(self, delta_time: float) -> float:
        sim = self._simulation
        if not sim.enforce_stability or is_stable(
            delta_time, sim.diffusion_rate, sim.stability_limit
        ):
            return delta_time
        limit = stable_delta_time(sim.diffusion_rate, sim.stability_limit)
        if not self._warned_unstable:
            logger.warning(
                "delta_time %.4f exceeds stable limit %.4f for diffusion_rate %s; clamping",
                delta_time, limit, sim.diffusion_rate,
            )
            self._warned_unstable = True
        return limit

    def tick(self, delta_time: float) -> StepResult | None:
        """Advance the simulation by one frame.

        Args:
            delta_time: Seconds elapsed since the previous tick.

        Returns:
            The StepResult, or None if the simulation is paused, has
            already settled, or no time elapsed.
        """
        # A zero-length frame reports no change and would read as settled
        if not self._running or self._converged or delta_time <= 0:
            return None

        delta_time = self._clamp_delta(delta_time)
        result = step(self._field, delta_time, self._simulation.diffusion_rate)
        self._field = result.next_field
        self._step_count += 1
        self._last_max_change = result.max_abs_change
        self._touch()

        if has_converged(result.max_abs_change, self._simulation.convergence_threshold):
            self._converged = True
            self._running = False
            logger.info(
                "Field settled after %d steps (max change %.6f)",
                self._step_count, result.max_abs_change,
            )
        return result

    # ------------------------------------------------------------------
    # Dashboard commands
    # ------------------------------------------------------------------

    def apply_command(self, command: dict[str, Any]) -> None:
        """Apply a JSON command from the dashboard.

        Supported commands:
            {"type": "start"}, {"type": "pause"}, {"type": "resume"},
            {"type": "reset"},
            {"type": "resize", "width": int, "height": int},
            {"type": "set_ambient", "value": float},
            {"type": "set_temperature", "cell": "row-col", "value": float},
            {"type": "pin", "cell": "row-col", "value": float},
            {"type": "unpin", "cell": "row-col"},
            {"type": "set_param", "key": "diffusion_rate", "value": float}

        Raises:
            UnknownCommandError: For an unrecognized command type or
                parameter key.
            KeyError: If a required field is missing.
            GridError: For invalid dimensions or out-of-range cells.
        """
        cmd_type = command.get("type")
        if cmd_type in ("start", "resume"):
            self.start()
        elif cmd_type == "pause":
            self.pause()
        elif cmd_type == "reset":
            self.reset()
        elif cmd_type == "resize":
            self.resize(command["width"], command["height"])
        elif cmd_type == "set_ambient":
            self.set_ambient(command["value"])
        elif cmd_type == "set_temperature":
            self.set_temperature(command["cell"], command["value"])
        elif cmd_type == "pin":
            self.pin_source(command["cell"], command["value"])
        elif cmd_type == "unpin":
            self.unpin_source(command["cell"])
        elif cmd_type == "set_param":
            key = command.get("key")
            if key != "diffusion_rate":
                raise UnknownCommandError(f"Unknown parameter: {key!r}")
            self.set_diffusion_rate(command["value"])
        else:
            raise UnknownCommandError(f"Unknown command type: {cmd_type!r}")

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready view of the current state."""
        return {
            "revision": self._revision,
            "step": self._step_count,
            "width": self._field.width,
            "height": self._field.height,
            "temperatures": np.asarray(self._field.temperatures).tolist(),
            "heat_sources": self._field.heat_sources,
            "running": self._running,
            "converged": self._converged,
            "max_abs_change": self._last_max_change,
            "diffusion_rate": self._simulation.diffusion_rate,
            "display_range": [
                self._display.min_temperature,
                self._display.max_temperature,
            ],
        }


def _coords(cell: ops.CellRef) -> tuple[int, int]:
    if isinstance(cell, str):
        return parse_cell_id(cell)
    row, col = cell
    return int(row), int(col)

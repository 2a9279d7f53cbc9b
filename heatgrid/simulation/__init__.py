"""Simulation driver and headless runner.

Key components:
    - SimulationSession: owns the current field, steps it per tick, stops
      at convergence and applies dashboard edits
    - build_field: fresh field from a GridConfig
    - UnknownCommandError: unrecognized dashboard command
"""

from heatgrid.simulation.session import (
    SimulationSession,
    UnknownCommandError,
    build_field,
)

__all__ = [
    "SimulationSession",
    "UnknownCommandError",
    "build_field",
]

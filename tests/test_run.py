"""Tests for the headless runner and field metrics."""

import numpy as np
import pytest

from heatgrid.analysis.field_metrics import field_summary, temperature_spread, total_heat
from heatgrid.configs import Config
from heatgrid.field import ops
from heatgrid.field.field import GridDimensions, create_field
from heatgrid.simulation.run import run


def _config(**sim_overrides) -> Config:
    config = Config()
    config.grid.width = 4
    config.grid.height = 3
    config.grid.seed = 9
    config.simulation.diffusion_rate = 0.2
    config.simulation.delta_time = 1.0
    for k, v in sim_overrides.items():
        setattr(config.simulation, k, v)
    config.log.wandb = False
    return config


class TestFieldMetrics:
    """Tests for field summary statistics."""

    def test_summary_values(self):
        field = create_field(GridDimensions(2, 2), [0.0, 10.0, 20.0, 30.0])
        field = ops.pin_source(field, "0-0", 5.0)

        summary = field_summary(field)

        assert summary["mean_temperature"] == pytest.approx(16.25)
        assert summary["min_temperature"] == 5.0
        assert summary["max_temperature"] == 30.0
        assert summary["temperature_spread"] == 25.0
        assert summary["total_heat"] == pytest.approx(65.0)
        assert summary["num_sources"] == 1.0
        assert all(isinstance(v, float) for v in summary.values())

    def test_total_heat_and_spread(self):
        field = create_field(GridDimensions(3, 1), [-5.0, 0.0, 15.0])
        assert float(total_heat(field)) == pytest.approx(10.0)
        assert float(temperature_spread(field)) == pytest.approx(20.0)


class TestRun:
    """Tests for running to convergence."""

    def test_runs_until_settled(self, capsys):
        session = run(_config())

        assert session.converged
        assert not session.running
        assert session.step_count > 1
        temps = np.asarray(session.field.temperatures)
        assert temps.max() - temps.min() < 0.1
        assert "Settled after" in capsys.readouterr().out

    def test_stops_at_max_steps(self, capsys):
        session = run(_config(max_steps=5))

        assert not session.converged
        assert session.step_count == 5
        assert "without settling" in capsys.readouterr().out

    def test_uniform_grid_settles_in_one_step(self):
        config = _config()
        config.grid.initial_mode = "ambient"

        session = run(config)

        assert session.converged
        assert session.step_count == 1

    def test_prints_final_grid(self, capsys):
        config = _config()
        config.grid.initial_mode = "ambient"
        config.grid.ambient_temperature = 12.5

        run(config)

        out = capsys.readouterr().out
        assert "Final temperatures:" in out
        assert out.count("  12.50") == 12

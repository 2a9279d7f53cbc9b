"""Headless runner: step a configured grid until it settles.

Usage:
    python -m heatgrid.simulation.run --grid.width 20 --grid.height 12 \
        --simulation.diffusion-rate 0.2 --log.wandb
"""

from heatgrid.analysis.field_metrics import field_summary
from heatgrid.configs import Config
from heatgrid.field import ops
from heatgrid.simulation.session import SimulationSession
from heatgrid.utils.logging import finish_wandb, init_wandb, log_metrics


def run(config: Config) -> SimulationSession:
    """Run the simulation with a fixed time step until it converges.

    Steps stop at convergence or after config.simulation.max_steps.
    Field statistics are sent to W&B every config.log.log_interval steps
    when config.log.wandb is enabled.

    Args:
        config: Master configuration.

    Returns:
        The session in its final state.
    """
    sim = config.simulation

    print("=" * 60)
    print("Heatgrid: heat diffusion across thermal zones")
    print("=" * 60)
    print(f"Grid: {config.grid.width}x{config.grid.height}")
    print(f"Initial temperatures: {config.grid.initial_mode}"
          f" (ambient {config.grid.ambient_temperature}, seed {config.grid.seed})")
    print(f"Diffusion rate: {sim.diffusion_rate}")
    print(f"Delta time: {sim.delta_time:.6f}")
    print(f"Convergence threshold: {sim.convergence_threshold}")
    print(f"Max steps: {sim.max_steps}")
    print("=" * 60)

    if config.log.wandb:
        init_wandb(config)

    session = SimulationSession(config.grid, sim, config.display)
    initial = field_summary(session.field)
    session.start()

    while session.running and session.step_count < sim.max_steps:
        result = session.tick(sim.delta_time)
        if result is None:
            break
        if config.log.wandb and (
            session.step_count % config.log.log_interval == 0 or session.converged
        ):
            metrics = field_summary(session.field)
            metrics["max_abs_change"] = result.max_abs_change
            log_metrics(metrics, step=session.step_count)

    session.pause()
    final = field_summary(session.field)

    print()
    print("=" * 60)
    if session.converged:
        print(f"Settled after {session.step_count} steps")
    else:
        print(f"Stopped after {session.step_count} steps without settling")
    print(f"Last max change: {session.last_max_change:.6f}")
    print(f"Mean temperature: {initial['mean_temperature']:.4f}"
          f" -> {final['mean_temperature']:.4f}")
    print(f"Temperature spread: {initial['temperature_spread']:.4f}"
          f" -> {final['temperature_spread']:.4f}")
    if session.field.num_cells <= 100:
        print("Final temperatures:")
        for row in ops.as_grid(session.field):
            print("  " + " ".join(f"{value:7.2f}" for value in row))
    print("=" * 60)

    if config.log.wandb:
        finish_wandb()

    return session


def main() -> None:
    """CLI entry point using tyro for argument parsing."""
    import tyro

    config = tyro.cli(Config)
    run(config)


if __name__ == "__main__":
    main()

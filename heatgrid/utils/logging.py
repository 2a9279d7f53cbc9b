"""Weights & Biases tracking for headless simulation runs."""

import dataclasses
from typing import Any

from heatgrid.configs import Config


def _config_to_dict(config: Config) -> dict[str, Any]:
    """Flatten Config into "section.key" entries for the W&B run config."""
    result: dict[str, Any] = {}
    for section_name, section in dataclasses.asdict(config).items():
        for k, v in section.items():
            result[f"{section_name}.{k}"] = v
    return result


def init_wandb(config: Config) -> None:
    """Start a W&B run named after the grid size.

    Args:
        config: Master configuration. The run is created under
                config.log.project with every parameter attached.
    """
    import wandb

    grid = config.grid
    wandb.init(
        project=config.log.project,
        name=f"grid-{grid.width}x{grid.height}-seed{grid.seed}",
        config=_config_to_dict(config),
    )


def log_metrics(metrics: dict[str, Any], step: int, prefix: str = "field") -> None:
    """Log scalar metrics to W&B under a common prefix.

    Args:
        metrics: Metric name to scalar value. JAX scalars are converted
                 to Python floats.
        step: Simulation step for the x-axis.
        prefix: Namespace for the metric names in the W&B dashboard.
    """
    import wandb

    wandb.log({f"{prefix}/{k}": float(v) for k, v in metrics.items()}, step=step)


def finish_wandb() -> None:
    """Close the current W&B run."""
    import wandb

    wandb.finish()

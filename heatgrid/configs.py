"""Configuration dataclasses for heatgrid."""

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Literal

import yaml


@dataclass
class GridConfig:
    """Grid layout and initial temperatures.

    A change to any of these values rebuilds the field from scratch.
    """
    width: int = 10
    height: int = 10
    ambient_temperature: float = 22.0
    initial_mode: Literal["random", "ambient"] = "random"
    """How cells are initialized:
    - "random": integer temperatures drawn uniformly from the display range
    - "ambient": every cell starts at ambient_temperature
    """
    seed: int = 0


@dataclass
class SimulationConfig:
    """Diffusion stepper parameters."""
    diffusion_rate: float = 0.1
    convergence_threshold: float = 1e-3
    stability_limit: float = 0.25
    """Upper bound on diffusion_rate * delta_time for the explicit scheme."""
    enforce_stability: bool = True
    """Clamp per-tick delta_time so diffusion_rate * delta_time stays within
    stability_limit. When False, unstable settings are allowed to diverge."""
    delta_time: float = 1.0 / 30.0
    """Fixed time step used by the headless runner."""
    max_steps: int = 10_000

    def __post_init__(self) -> None:
        if self.diffusion_rate < 0:
            raise ValueError(f"diffusion_rate must be >= 0, got {self.diffusion_rate}")
        if self.convergence_threshold <= 0:
            raise ValueError(
                f"convergence_threshold must be > 0, got {self.convergence_threshold}"
            )
        if self.stability_limit <= 0:
            raise ValueError(f"stability_limit must be > 0, got {self.stability_limit}")


@dataclass
class DisplayConfig:
    """Temperature range used by clients for color normalization."""
    min_temperature: float = -20.0
    max_temperature: float = 50.0


@dataclass
class ServerConfig:
    """Dashboard server configuration."""
    host: str = "0.0.0.0"
    port: int = 8765
    target_fps: float = 30.0


@dataclass
class LogConfig:
    """Logging configuration."""
    wandb: bool = False
    project: str = "heatgrid"
    log_interval: int = 10


@dataclass
class Config:
    """Master configuration combining all sub-configs."""
    grid: GridConfig = dataclass_field(default_factory=GridConfig)
    simulation: SimulationConfig = dataclass_field(default_factory=SimulationConfig)
    display: DisplayConfig = dataclass_field(default_factory=DisplayConfig)
    server: ServerConfig = dataclass_field(default_factory=ServerConfig)
    log: LogConfig = dataclass_field(default_factory=LogConfig)

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load config from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(
            grid=GridConfig(**data.get("grid", {})),
            simulation=SimulationConfig(**data.get("simulation", {})),
            display=DisplayConfig(**data.get("display", {})),
            server=ServerConfig(**data.get("server", {})),
            log=LogConfig(**data.get("log", {})),
        )

    def to_yaml(self, path: str) -> None:
        """Save config to YAML file."""
        import dataclasses

        with open(path, 'w') as f:
            yaml.dump(dataclasses.asdict(self), f, default_flow_style=False)

"""
Runtime configuration for livemix.

Provides a single validated configuration object with support for:
- Built-in defaults
- An optional YAML file (loaded with OmegaConf)
- Environment variable overrides:
    LIVEMIX_TICK_INTERVAL_MS  - animation tick / signal wait period
    LIVEMIX_REWIRE_POLICY     - "rewire" or "error" for re-plugged input ports

Priority order (later wins): defaults, YAML file, environment.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

from omegaconf import OmegaConf
from omegaconf.errors import OmegaConfBaseException
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

logger = logging.getLogger(__name__)

# Environment variable for overriding the tick interval
TICK_INTERVAL_ENV_VAR = "LIVEMIX_TICK_INTERVAL_MS"

# Environment variable for overriding the rewire policy
REWIRE_POLICY_ENV_VAR = "LIVEMIX_REWIRE_POLICY"


class RuntimeConfig(BaseModel, extra="forbid"):
    """Validated runtime settings."""

    tick_interval_ms: float = Field(
        default=10.0,
        gt=0,
        description="Period of the animation tick and max blocking time of the signal wait",
    )
    rewire_policy: Literal["rewire", "error"] = Field(
        default="rewire",
        description="rewire = last plug wins on an input port, error = raise PlugConflictError",
    )
    terminal_events: list[str] = Field(
        default_factory=lambda: ["end"],
        description="Callback events that fire at most once per instance",
    )
    simulate_duration_s: float = Field(
        default=10.0,
        gt=0,
        description="Playback duration used by simulated clocks",
    )

    @property
    def tick_interval_s(self) -> float:
        return self.tick_interval_ms / 1000.0


def _env_overrides() -> dict:
    overrides: dict = {}
    tick = os.environ.get(TICK_INTERVAL_ENV_VAR)
    if tick:
        overrides["tick_interval_ms"] = tick
    policy = os.environ.get(REWIRE_POLICY_ENV_VAR)
    if policy:
        overrides["rewire_policy"] = policy.strip().lower()
    return overrides


def load_config(path: str | Path | None = None) -> RuntimeConfig:
    """
    Load the runtime configuration.

    Args:
        path: Optional YAML file with any subset of RuntimeConfig fields

    Returns:
        RuntimeConfig: merged and validated configuration

    Raises:
        ConfigError: if the file cannot be read or a value is invalid
    """
    layers = [OmegaConf.create(RuntimeConfig().model_dump())]

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
        try:
            layers.append(OmegaConf.load(config_path))
        except (OmegaConfBaseException, OSError, ValueError) as e:
            raise ConfigError(f"Could not load config file {config_path}: {e}") from e
        logger.info(f"Loaded runtime config from {config_path}")

    overrides = _env_overrides()
    if overrides:
        layers.append(OmegaConf.create(overrides))

    try:
        merged = OmegaConf.to_container(OmegaConf.merge(*layers), resolve=True)
    except OmegaConfBaseException as e:
        raise ConfigError(f"Could not merge runtime config: {e}") from e
    try:
        return RuntimeConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid runtime config: {e}") from e

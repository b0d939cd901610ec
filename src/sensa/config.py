# Copyright (c) Syntropy Systems
"""Configuration management for sensa."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, cast

import yaml

NO_PROJECT_MESSAGE = "No .sensa directory found. Run 'sensa init' first."


@dataclass
class SensaConfig:
    """Configuration for sensa."""

    # Perturbation percentage for new sessions
    default_delta: float = 10.0

    # Statistic shown by `sensa table` and the server
    default_statistic: str = "mean"

    # Color scale for relative deviations ("rb" or "no")
    color_scale: str = "rb"

    # Deviation that saturates the color scale; None scales to the largest
    saturation: Optional[float] = None

    # Show percentage deviation from the baseline by default
    relative: bool = True

    # Seconds before a solver command is killed; None waits forever
    solve_timeout: Optional[float] = None

    # Grace period before SIGKILL after SIGTERM (seconds)
    kill_grace_period: int = 10

    # Log level for the CLI
    log_level: str = "WARNING"

    def to_dict(self) -> dict[str, object]:
        """Return the config as plain data for config.yaml."""
        return {
            "default_delta": self.default_delta,
            "default_statistic": self.default_statistic,
            "color_scale": self.color_scale,
            "saturation": self.saturation,
            "relative": self.relative,
            "solve_timeout": self.solve_timeout,
            "kill_grace_period": self.kill_grace_period,
            "log_level": self.log_level,
        }


def find_sensa_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .sensa directory by walking up from start_path.

    Returns None if no .sensa directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        sensa_dir = current / ".sensa"
        if sensa_dir.is_dir():
            return sensa_dir
        current = current.parent

    # Check root
    sensa_dir = current / ".sensa"
    if sensa_dir.is_dir():
        return sensa_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global sensa config directory (~/.sensa)."""
    return Path.home() / ".sensa"


def _number(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def load_config(sensa_dir: Path | None = None) -> SensaConfig:
    """Load configuration from .sensa/config.yaml or defaults.

    Looks for config in:
    1. Provided sensa_dir
    2. Nearest .sensa directory walking up
    3. ~/.sensa/config.yaml
    4. Defaults

    Unknown keys and values of the wrong type are ignored.
    """
    config = SensaConfig()

    config_path = None

    if sensa_dir is not None:
        config_path = sensa_dir / "config.yaml"
    else:
        found_dir = find_sensa_dir()
        if found_dir is not None:
            config_path = found_dir / "config.yaml"
        else:
            global_config = get_global_config_dir() / "config.yaml"
            if global_config.exists():
                config_path = global_config

    if config_path is None or not config_path.exists():
        return config

    with config_path.open() as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        return config
    data = cast("dict[str, object]", loaded)

    default_delta = _number(data.get("default_delta"))
    if default_delta is not None:
        config.default_delta = default_delta
    default_statistic = data.get("default_statistic")
    if isinstance(default_statistic, str):
        config.default_statistic = default_statistic
    color_scale = data.get("color_scale")
    if isinstance(color_scale, str):
        config.color_scale = color_scale
    saturation = _number(data.get("saturation"))
    if saturation is not None and saturation > 0:
        config.saturation = saturation
    relative = data.get("relative")
    if isinstance(relative, bool):
        config.relative = relative
    solve_timeout = _number(data.get("solve_timeout"))
    if solve_timeout is not None and solve_timeout > 0:
        config.solve_timeout = solve_timeout
    kill_grace_period = _number(data.get("kill_grace_period"))
    if kill_grace_period is not None:
        config.kill_grace_period = int(kill_grace_period)
    log_level = data.get("log_level")
    if isinstance(log_level, str):
        config.log_level = log_level.upper()

    return config


def get_sessions_dir(sensa_dir: Path | None = None) -> Path:
    """Get the path to the sessions directory."""
    if sensa_dir is None:
        sensa_dir = require_sensa_dir()
    return sensa_dir / "sessions"


def require_sensa_dir() -> Path:
    """Get sensa directory or raise an error if not found."""
    sensa_dir = find_sensa_dir()
    if sensa_dir is None:
        raise RuntimeError(NO_PROJECT_MESSAGE)
    return sensa_dir

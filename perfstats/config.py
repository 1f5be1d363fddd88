"""Ambient settings with environment-specific profiles.

Supports dev, staging, and production environments via APP_ENV.
All values can be overridden by environment variables.

The dataclass defaults are the services' default history window and minimum
data points. Analysis entry points never read the environment themselves;
callers resolve get_settings() once and pass the values (preset name, history
window, minimum data points) as explicit arguments.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    """Immutable ambient settings resolved from environment."""

    app_env: str = "dev"
    log_level: str = "INFO"
    log_json: bool = True

    # Analysis defaults handed to the services by the calling layer
    validation_preset: str = "standard"
    history_window: int = 50
    min_data_points: int = 3

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "log_json": False,
    },
    "staging": {
        "log_level": "INFO",
        "log_json": True,
    },
    "production": {
        "log_level": "WARNING",
        "log_json": True,
        "validation_preset": "research_grade",
    },
}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        log_json=_env_bool("LOG_JSON", profile.get("log_json", True)),
        validation_preset=os.getenv("VALIDATION_PRESET", profile.get("validation_preset", "standard")),
        history_window=int(os.getenv("HISTORY_WINDOW", Settings.history_window)),
        min_data_points=int(os.getenv("MIN_DATA_POINTS", Settings.min_data_points)),
    )

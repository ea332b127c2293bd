"""Application configuration helpers."""

from __future__ import annotations

from .errors import ConfigurationError, InvalidConfigurationError
from .scheduler import DEFAULT_MAX_ITERATIONS, SchedulerConfig, get_scheduler_config

__all__ = [
    "DEFAULT_MAX_ITERATIONS",
    "ConfigurationError",
    "InvalidConfigurationError",
    "SchedulerConfig",
    "get_scheduler_config",
]

"""Scheduling limits for state application."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .env import env_bool, env_int

DEFAULT_MAX_ITERATIONS: Final[int] = 5000


@dataclass(frozen=True, slots=True)
class SchedulerConfig:
    # passes allowed before unapplied phases are treated as a deadlock
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    # re-scan every map after an unregister to check nothing dangles
    validate_slow: bool = False


def get_scheduler_config() -> SchedulerConfig:
    return SchedulerConfig(
        max_iterations=env_int(
            "PROPSTATE_MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS, minimum=1
        ),
        validate_slow=env_bool("PROPSTATE_VALIDATE_SLOW", default=False),
    )

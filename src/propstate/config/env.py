"""Environment variable loaders for configuration."""

from __future__ import annotations

import os

from .errors import InvalidConfigurationError

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    """Return an integer environment variable, or ``default`` when unset/blank."""

    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise InvalidConfigurationError(f"{name} must be an integer, got {value!r}") from exc
    if minimum is not None and parsed < minimum:
        raise InvalidConfigurationError(f"{name} must be >= {minimum}, got {parsed}")
    return parsed


def env_bool(name: str, default: bool) -> bool:  # noqa: FBT001
    """Return a boolean environment variable, or ``default`` when unset/blank."""

    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise InvalidConfigurationError(f"{name} must be a boolean flag, got {value!r}")

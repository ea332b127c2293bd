"""Error hierarchy for state application."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .scheduler import DeadlockReport


class PropertyStateError(RuntimeError):
    """Base class for all state application errors."""


class OrderDependencyError(PropertyStateError, ValueError):
    """Raised when an order dependency is registered or removed incorrectly."""


class IneligibleEntityError(PropertyStateError):
    """Raised when an entity without a stable identity is used in an order dependency."""


class HandlerStateError(PropertyStateError):
    """Raised when the state lifecycle is driven out of order."""


class StateDeadlockError(PropertyStateError):
    """Raised when the registered ordering constraints cannot all be satisfied."""

    def __init__(self, report: DeadlockReport) -> None:
        super().__init__(
            "Impossible set state: ordering constraints cannot be satisfied "
            f"after {report.iterations} passes ({len(report.pending)} phases still pending)"
        )
        self.report = report

"""Structural contracts the state handler relies on.

The handler never looks at concrete entity types. Anything with a stable id
and an eligibility check can take part in order dependencies; anything that
can also defer its value can be restored by a ``StateEngine``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .scheduler import NotifyAction


@runtime_checkable
class StatefulEntity(Protocol):
    @property
    def entity_id(self) -> str | None: ...

    def is_eligible(self) -> bool:
        """Return True if the entity is identifiable for order dependencies."""
        ...


@runtime_checkable
class RestorableEntity(StatefulEntity, Protocol):
    @property
    def is_deferred(self) -> bool: ...

    def set_deferred(self, deferred: bool) -> NotifyAction | None:  # noqa: FBT001
        """Start deferring, or commit and return the pending notification."""
        ...

    def apply_state(self, value: object) -> None:
        """Take ``value`` from a snapshot."""
        ...

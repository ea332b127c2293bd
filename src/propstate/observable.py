"""Observable values that support deferred commits.

``Property`` is the reference implementation of ``RestorableEntity``: while
deferred it records new values without applying them, and undeferring commits
the last recorded value and hands back the notification to send, if any.
"""

from __future__ import annotations

import operator
from typing import TYPE_CHECKING, Any, Generic, TypeAlias, TypeVar

from .emitter import Emitter
from .errors import HandlerStateError
from .handler import property_state_handler
from .phase import StatePhase

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .handler import PropertyStateHandler
    from .scheduler import NotifyAction

T = TypeVar("T")

PropertyListener: TypeAlias = "Callable[[T, T | None], object]"


class Property(Generic[T]):
    """A value with change listeners, optionally identified for state handling."""

    def __init__(
        self,
        value: T,
        *,
        entity_id: str | None = None,
        equals: Callable[[T, T], bool] = operator.eq,
        state_handler: PropertyStateHandler | None = None,
    ) -> None:
        self._value = value
        self._entity_id = entity_id
        self._equals = equals
        self._state_handler = state_handler or property_state_handler
        self._changed = Emitter()
        self._is_deferred = False
        self._has_deferred_value = False
        self._deferred_value: T | None = None
        self._is_disposed = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r}, entity_id={self._entity_id!r})"

    @property
    def entity_id(self) -> str | None:
        return self._entity_id

    def is_eligible(self) -> bool:
        return self._entity_id is not None and not self._is_disposed

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    @property
    def is_deferred(self) -> bool:
        return self._is_deferred

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, value: T) -> None:
        self.set(value)

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        self._assert_not_disposed()
        if self._is_deferred:
            self._deferred_value = value
            self._has_deferred_value = True
        elif not self._equals(value, self._value):
            old_value = self._value
            self._value = value
            self._notify_listeners(old_value)

    def apply_state(self, value: object) -> None:
        self.set(value)  # type: ignore[arg-type]

    def link(self, listener: PropertyListener[T]) -> None:
        """Add ``listener`` and call it right away with the current value."""

        self._changed.add_listener(listener)
        listener(self._value, None)

    def lazy_link(self, listener: PropertyListener[T]) -> None:
        self._changed.add_listener(listener)

    def unlink(self, listener: PropertyListener[T]) -> None:
        self._changed.remove_listener(listener)

    def has_listener(self, listener: PropertyListener[T]) -> bool:
        return self._changed.has_listener(listener)

    def set_deferred(self, deferred: bool) -> NotifyAction | None:  # noqa: FBT001
        """Start or stop deferring.

        While deferred, ``set`` only records the value. Stopping commits the last
        recorded value and returns an action that notifies listeners if the value
        changed, so the caller can send notifications once every other deferred
        value has been committed too. Returns ``None`` when nothing changed.
        """

        self._assert_not_disposed()
        if deferred:
            if self._is_deferred:
                raise HandlerStateError(f"{self!r} is already deferred")
            self._is_deferred = True
            return None

        if not self._is_deferred:
            raise HandlerStateError(f"{self!r} was not deferred")
        self._is_deferred = False
        old_value = self._value
        if self._has_deferred_value:
            self._value = self._deferred_value  # type: ignore[assignment]
            self._has_deferred_value = False
            self._deferred_value = None
        if self._equals(self._value, old_value):
            return None

        def notify() -> None:
            if not self._is_disposed:
                self._notify_listeners(old_value)

        return notify

    def add_state_dependencies(self, dependencies: Sequence[Property[Any]]) -> None:
        """Make each dependency commit its value before this property notifies."""

        for dependency in dependencies:
            if dependency.is_eligible() and self.is_eligible():
                self._state_handler.register_order_dependency(
                    dependency, StatePhase.UNDEFER, self, StatePhase.NOTIFY
                )

    def dispose(self) -> None:
        if self._is_disposed:
            return
        if self.is_eligible() and self._state_handler.in_order_dependency(self):
            self._state_handler.unregister_order_dependencies(self)
        self._changed.remove_all_listeners()
        self._is_disposed = True

    def _notify_listeners(self, old_value: T | None) -> None:
        self._changed.emit(self._value, old_value)

    def _assert_not_disposed(self) -> None:
        if self._is_disposed:
            raise HandlerStateError(f"{self!r} is disposed")


class DerivedProperty(Property[T]):
    """Read-only value computed from other properties.

    When both this property and a dependency are identifiable, the dependency
    is ordered to undefer first so the derivation sees committed values.
    """

    def __init__(
        self,
        dependencies: Sequence[Property[Any]],
        derivation: Callable[..., T],
        *,
        entity_id: str | None = None,
        equals: Callable[[T, T], bool] = operator.eq,
        state_handler: PropertyStateHandler | None = None,
    ) -> None:
        self._dependencies = tuple(dependencies)
        self._derivation = derivation
        super().__init__(
            self._derive(), entity_id=entity_id, equals=equals, state_handler=state_handler
        )

        for dependency in self._dependencies:
            dependency.lazy_link(self._on_dependency_changed)
            if dependency.is_eligible() and self.is_eligible():
                self._state_handler.register_order_dependency(
                    dependency, StatePhase.UNDEFER, self, StatePhase.UNDEFER
                )

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, value: T) -> None:
        raise AttributeError("cannot set the value of a DerivedProperty")

    def set(self, value: T) -> None:
        raise AttributeError("cannot set the value of a DerivedProperty")

    def apply_state(self, value: object) -> None:
        # the saved value is recomputed from the dependencies on undefer
        return

    def set_deferred(self, deferred: bool) -> NotifyAction | None:  # noqa: FBT001
        if not deferred and self._is_deferred:
            self._deferred_value = self._derive()
            self._has_deferred_value = True
        return super().set_deferred(deferred)

    def dispose(self) -> None:
        if self._is_disposed:
            return
        for dependency in self._dependencies:
            if not dependency.is_disposed and dependency.has_listener(self._on_dependency_changed):
                dependency.unlink(self._on_dependency_changed)
        super().dispose()

    def _derive(self) -> T:
        return self._derivation(*(dependency.value for dependency in self._dependencies))

    def _on_dependency_changed(self, _new: object, _old: object) -> None:
        Property.set(self, self._derive())

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from propstate import (
    HandlerStateError,
    IneligibleEntityError,
    OrderDependencyError,
    Property,
    PropertyStateHandler,
    StateDeadlockError,
    StatePhase,
)
from propstate.config import SchedulerConfig

if TYPE_CHECKING:
    from collections.abc import Callable

UNDEFER = StatePhase.UNDEFER
NOTIFY = StatePhase.NOTIFY


def _noop() -> None:
    return None


def test_register_and_unregister_order_dependencies(handler: PropertyStateHandler) -> None:
    a = Property(False, entity_id="test.a", state_handler=handler)
    b = Property(True, entity_id="test.b", state_handler=handler)
    c = Property(False, entity_id="test.c", state_handler=handler)

    handler.register_order_dependency(a, UNDEFER, b, NOTIFY)
    assert handler.dependency_count() == 1
    handler.register_order_dependency(a, UNDEFER, c, NOTIFY)
    assert handler.dependency_count() == 2
    handler.register_order_dependency(b, UNDEFER, c, NOTIFY)
    assert handler.dependency_count() == 3

    handler.unregister_order_dependencies(a)
    assert handler.dependency_count() == 1
    handler.unregister_order_dependencies(b)
    assert handler.dependency_count() == 0
    assert not handler.in_order_dependency(c)


def test_register_rejects_unidentified_property(handler: PropertyStateHandler) -> None:
    anonymous = Property(2, state_handler=handler)
    identified = Property(False, entity_id="test.identified", state_handler=handler)

    with pytest.raises(IneligibleEntityError):
        handler.register_order_dependency(anonymous, UNDEFER, identified, UNDEFER)


def test_register_rejects_same_property_same_phase(handler: PropertyStateHandler) -> None:
    prop = Property(False, entity_id="test.prop", state_handler=handler)

    with pytest.raises(OrderDependencyError):
        handler.register_order_dependency(prop, UNDEFER, prop, UNDEFER)


def test_register_rejects_disposed_property(handler: PropertyStateHandler) -> None:
    a = Property(1, entity_id="test.a", state_handler=handler)
    b = Property(2, entity_id="test.b", state_handler=handler)
    b.dispose()

    with pytest.raises(IneligibleEntityError):
        handler.register_order_dependency(a, UNDEFER, b, NOTIFY)


def test_unregister_without_dependencies_fails(handler: PropertyStateHandler) -> None:
    prop = Property(False, entity_id="test.prop", state_handler=handler)

    with pytest.raises(OrderDependencyError):
        handler.unregister_order_dependencies(prop)


def test_run_restoration_uses_registered_dependencies(handler: PropertyStateHandler) -> None:
    a = Property(0, entity_id="test.a", state_handler=handler)
    b = Property(0, entity_id="test.b", state_handler=handler)
    handler.register_order_dependency(a, NOTIFY, b, UNDEFER)
    calls: list[str] = []

    def undefer(name: str) -> Callable[[], None]:
        def action() -> None:
            calls.append(f"{name}:undefer")

        return action

    summary = handler.run_restoration(
        ["test.b", "test.a"], {"test.b": undefer("b"), "test.a": undefer("a")}
    )

    assert calls == ["a:undefer", "b:undefer"]
    assert summary.undeferred == 2


def test_run_restoration_honours_configured_ceiling() -> None:
    handler = PropertyStateHandler(config=SchedulerConfig(max_iterations=3))
    a = Property(0, entity_id="test.a", state_handler=handler)
    b = Property(0, entity_id="test.b", state_handler=handler)
    handler.register_order_dependency(a, NOTIFY, b, UNDEFER)
    handler.register_order_dependency(b, NOTIFY, a, UNDEFER)

    with pytest.raises(StateDeadlockError) as exc:
        handler.run_restoration(["test.a", "test.b"], {"test.a": _noop, "test.b": _noop})

    assert exc.value.report.iterations == 3
    assert len(exc.value.report.pending) == 2


def test_initialize_twice_fails(handler: PropertyStateHandler, engine: object) -> None:
    assert handler.initialized
    with pytest.raises(HandlerStateError, match="twice"):
        handler.initialize(engine)  # type: ignore[arg-type]

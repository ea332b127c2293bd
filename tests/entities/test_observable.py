from __future__ import annotations

import pytest

from propstate import (
    DerivedProperty,
    Emitter,
    HandlerStateError,
    Property,
    PropertyStateHandler,
    StatePhase,
)


def test_link_calls_listener_immediately_and_on_change() -> None:
    prop = Property(1)
    seen: list[tuple[object, object]] = []

    prop.link(lambda new, old: seen.append((new, old)))
    prop.value = 2
    prop.value = 2

    assert seen == [(1, None), (2, 1)]


def test_deferred_property_commits_last_value_and_returns_notification() -> None:
    prop = Property("a")
    seen: list[tuple[object, object]] = []
    prop.lazy_link(lambda new, old: seen.append((new, old)))

    assert prop.set_deferred(True) is None  # noqa: FBT003
    prop.value = "b"
    prop.value = "c"
    assert prop.value == "a"

    notify = prop.set_deferred(False)  # noqa: FBT003

    assert prop.value == "c"
    assert seen == []
    assert notify is not None
    notify()
    assert seen == [("c", "a")]


def test_undefer_without_change_returns_none() -> None:
    prop = Property(5)
    prop.set_deferred(True)  # noqa: FBT003
    prop.value = 6
    prop.value = 5

    assert prop.set_deferred(False) is None  # noqa: FBT003


def test_deferral_misuse_raises() -> None:
    prop = Property(0)

    with pytest.raises(HandlerStateError, match="not deferred"):
        prop.set_deferred(False)  # noqa: FBT003

    prop.set_deferred(True)  # noqa: FBT003
    with pytest.raises(HandlerStateError, match="already deferred"):
        prop.set_deferred(True)  # noqa: FBT003


def test_notification_is_skipped_after_dispose() -> None:
    prop = Property(0)
    seen: list[object] = []
    prop.lazy_link(lambda new, _old: seen.append(new))
    prop.set_deferred(True)  # noqa: FBT003
    prop.value = 1
    notify = prop.set_deferred(False)  # noqa: FBT003

    prop.dispose()
    assert notify is not None
    notify()

    assert seen == []
    with pytest.raises(HandlerStateError, match="disposed"):
        prop.value = 2


def test_add_state_dependencies_registers_undefer_before_notify(
    handler: PropertyStateHandler,
) -> None:
    range_prop = Property((0, 1), entity_id="test.range", state_handler=handler)
    number_prop = Property(0, entity_id="test.number", state_handler=handler)
    anonymous = Property(3, state_handler=handler)

    number_prop.add_state_dependencies([range_prop, anonymous])

    assert handler.dependency_count() == 1
    pair = handler.index.map_pair(StatePhase.UNDEFER, StatePhase.NOTIFY)
    assert pair.has("test.range", "test.number")


def test_dispose_unregisters_dependencies(handler: PropertyStateHandler) -> None:
    a = Property(0, entity_id="test.a", state_handler=handler)
    b = Property(0, entity_id="test.b", state_handler=handler)
    b.add_state_dependencies([a])

    a.dispose()
    b.dispose()

    assert handler.dependency_count() == 0


def test_dispose_without_dependencies_is_fine(handler: PropertyStateHandler) -> None:
    prop = Property(0, entity_id="test.lonely", state_handler=handler)

    prop.dispose()

    assert prop.is_disposed
    assert not prop.is_eligible()


def test_derived_property_tracks_dependencies(handler: PropertyStateHandler) -> None:
    width = Property(2, entity_id="test.width", state_handler=handler)
    height = Property(3, entity_id="test.height", state_handler=handler)
    area = DerivedProperty(
        [width, height], lambda w, h: w * h, entity_id="test.area", state_handler=handler
    )

    assert area.value == 6
    width.value = 4
    assert area.value == 12
    assert handler.dependency_count() == 2
    with pytest.raises(AttributeError):
        area.value = 1

    area.dispose()
    assert handler.dependency_count() == 0
    assert not width.has_listener(area._on_dependency_changed)  # noqa: SLF001


def test_emitter_calls_listeners_in_order_and_tolerates_removal() -> None:
    emitter = Emitter()
    calls: list[str] = []

    def first(value: object) -> None:
        calls.append(f"first {value}")
        emitter.remove_listener(first)

    emitter.add_listener(first)
    emitter.add_listener(lambda value: calls.append(f"second {value}"))
    emitter.emit(1)
    emitter.emit(2)

    assert calls == ["first 1", "second 1", "second 2"]
    assert emitter.listener_count == 1
    with pytest.raises(ValueError, match="never added"):
        emitter.remove_listener(first)

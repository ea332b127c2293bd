from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from propstate import Property, PropertyStateHandler, StateEngine
from propstate.config import SchedulerConfig

if TYPE_CHECKING:
    from collections.abc import Callable


@pytest.fixture
def handler() -> PropertyStateHandler:
    return PropertyStateHandler(config=SchedulerConfig(max_iterations=100, validate_slow=True))


@pytest.fixture
def engine(handler: PropertyStateHandler) -> StateEngine:
    return StateEngine(state_handler=handler)


@pytest.fixture
def make_property(
    handler: PropertyStateHandler, engine: StateEngine
) -> Callable[..., Property[Any]]:
    """Create an identifiable property registered with the engine."""

    def factory(entity_id: str, value: object) -> Property[Any]:
        prop: Property[Any] = Property(value, entity_id=entity_id, state_handler=handler)
        engine.register(prop)
        return prop

    return factory

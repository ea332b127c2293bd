"""Property-specific logic for applying saved state.

While a snapshot is being applied, every participating entity is deferred so
that all values change at once. Afterwards the handler undefers the entities
and lets them notify, honouring the order dependencies entities registered
against each other when they were created. Dependencies are unregistered when
an entity is disposed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from .config import SchedulerConfig, get_scheduler_config
from .dependencies import OrderDependencyIndex
from .errors import HandlerStateError, IneligibleEntityError
from .phase import StatePhase
from .scheduler import run_restoration

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from .entity import RestorableEntity, StatefulEntity
    from .scheduler import NotifyAction, RestorationSummary, UndeferAction

log = logging.getLogger(__name__)


class _Subscribable(Protocol):
    def add_listener(self, listener: Callable[..., object]) -> None: ...


class _LazyLinkable(Protocol):
    def lazy_link(self, listener: Callable[[bool, bool | None], object]) -> None: ...


class StateEngineHooks(Protocol):
    """The parts of a state engine the handler subscribes to."""

    @property
    def on_before_apply_state(self) -> _Subscribable: ...

    @property
    def state_set(self) -> _Subscribable: ...

    @property
    def is_setting_state(self) -> _LazyLinkable: ...


class PropertyStateHandler:
    """Registers order dependencies and applies deferred values in a valid order."""

    def __init__(self, *, config: SchedulerConfig | None = None) -> None:
        self._config = config or get_scheduler_config()
        self._index = OrderDependencyIndex(validate_slow=self._config.validate_slow)
        self._initialized = False
        # entities deferred while a snapshot is being applied
        self._queued: dict[str, RestorableEntity] = {}

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def index(self) -> OrderDependencyIndex:
        return self._index

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self, engine: StateEngineHooks) -> None:
        """Subscribe to the lifecycle events of ``engine``."""

        if self._initialized:
            raise HandlerStateError("cannot initialize twice")
        engine.on_before_apply_state.add_listener(self._defer_entity)
        engine.state_set.add_listener(self._apply_queued)
        engine.is_setting_state.lazy_link(self._check_all_applied)
        self._initialized = True

    def register_order_dependency(
        self,
        before: StatefulEntity,
        before_phase: StatePhase,
        after: StatefulEntity,
        after_phase: StatePhase,
    ) -> None:
        """Register that ``before`` must reach ``before_phase`` before ``after`` reaches
        ``after_phase`` when state is applied.

        UNDEFER always precedes NOTIFY for a single entity, so this is only
        needed between two different entities or across phases. Both entities
        must be eligible.
        """

        before_id = _eligible_id(before)
        after_id = _eligible_id(after)
        self._index.add_order_dependency(before_id, before_phase, after_id, after_phase)

    def in_order_dependency(self, entity: StatefulEntity) -> bool:
        return self._index.uses_entity(_eligible_id(entity))

    def unregister_order_dependencies(self, entity: StatefulEntity) -> int:
        """Remove all order dependencies of ``entity``, which must have at least one."""

        return self._index.unregister_all(_eligible_id(entity))

    def dependency_count(self) -> int:
        return self._index.count()

    def run_restoration(
        self,
        participating_ids: Iterable[str],
        undefer_actions: Mapping[str, UndeferAction],
    ) -> RestorationSummary:
        """Undefer and notify every entity in ``undefer_actions``.

        Raises ``StateDeadlockError`` if the registered dependencies between the
        participating entities cannot be satisfied.
        """

        return run_restoration(
            self._index,
            participating_ids,
            undefer_actions,
            max_iterations=self._config.max_iterations,
        )

    def _defer_entity(self, entity: RestorableEntity) -> None:
        # leave entities that someone else already deferred alone
        if entity.is_deferred:
            return
        entity_id = _eligible_id(entity)
        entity.set_deferred(True)  # noqa: FBT003
        self._queued[entity_id] = entity

    def _apply_queued(self, state: Mapping[str, object]) -> None:
        # an entity leaves the queue only once it is undeferred, so whatever a
        # failed restoration left behind is still there for _check_all_applied
        actions = {entity_id: self._dequeue(entity_id) for entity_id in self._queued}
        self.run_restoration(tuple(state), actions)

    def _dequeue(self, entity_id: str) -> UndeferAction:
        def undefer() -> NotifyAction | None:
            return self._queued.pop(entity_id).set_deferred(False)  # noqa: FBT003

        return undefer

    def _check_all_applied(self, is_setting_state: bool, _old: bool | None) -> None:  # noqa: FBT001
        if is_setting_state or not self._queued:
            return
        leftover, self._queued = self._queued, {}
        log.error(
            "State was not fully applied, undeferring without ordering: %s",
            ", ".join(sorted(leftover)),
        )
        notify_actions = [
            entity.set_deferred(False)  # noqa: FBT003
            for entity in leftover.values()
            # disposed entities have nothing left to commit
            if entity.is_eligible() and entity.is_deferred
        ]
        for notify in notify_actions:
            if notify is not None:
                notify()


def _eligible_id(entity: StatefulEntity) -> str:
    entity_id = entity.entity_id
    if entity_id is None or not entity.is_eligible():
        raise IneligibleEntityError(f"must be an identifiable entity: {entity!r}")
    return entity_id


# Single place for the whole process to register order dependencies and to
# attach to the state engine.
property_state_handler = PropertyStateHandler()

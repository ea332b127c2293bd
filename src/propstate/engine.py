"""Applies saved snapshots to registered entities."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .emitter import Emitter
from .errors import HandlerStateError, IneligibleEntityError
from .handler import property_state_handler
from .observable import Property

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .entity import RestorableEntity
    from .handler import PropertyStateHandler

log = logging.getLogger(__name__)


class StateSnapshot(BaseModel):
    """Serialized values keyed by entity id."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    values: dict[str, Any] = Field(default_factory=dict)

    @field_validator("values")
    @classmethod
    def _ids_not_blank(cls, values: dict[str, Any]) -> dict[str, Any]:
        blank = [entity_id for entity_id in values if not entity_id.strip()]
        if blank:
            raise ValueError("entity ids must not be blank")
        return values

    @classmethod
    def from_json(cls, payload: str | bytes) -> StateSnapshot:
        return cls.model_validate_json(payload)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> StateSnapshot:
        return cls(values=dict(values))

    @property
    def entity_ids(self) -> tuple[str, ...]:
        return tuple(self.values)


class StateEngine:
    """Drives a restoration: defer, assign, then let the state handler finish.

    Listeners of ``on_before_apply_state`` receive each entity before its value
    is assigned; listeners of ``state_set`` receive the applied values once
    every entity has been assigned. ``is_setting_state`` is True for the whole
    of ``set_state``.
    """

    def __init__(self, *, state_handler: PropertyStateHandler | None = None) -> None:
        self.on_before_apply_state = Emitter()
        self.state_set = Emitter()
        self.is_setting_state: Property[bool] = Property(False)  # noqa: FBT003
        self._entities: dict[str, RestorableEntity] = {}
        (state_handler or property_state_handler).initialize(self)

    def register(self, entity: RestorableEntity) -> None:
        entity_id = entity.entity_id
        if entity_id is None or not entity.is_eligible():
            raise IneligibleEntityError(f"only identifiable entities take state: {entity!r}")
        if entity_id in self._entities:
            raise ValueError(f"an entity is already registered as {entity_id!r}")
        self._entities[entity_id] = entity

    def unregister(self, entity_id: str) -> None:
        if self._entities.pop(entity_id, None) is None:
            raise KeyError(entity_id)

    def get(self, entity_id: str) -> RestorableEntity | None:
        return self._entities.get(entity_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def set_state(self, snapshot: StateSnapshot | Mapping[str, Any]) -> None:
        """Apply ``snapshot`` to the registered entities it names."""

        if self.is_setting_state.value:
            raise HandlerStateError("set_state is not re-entrant")
        if not isinstance(snapshot, StateSnapshot):
            snapshot = StateSnapshot.from_mapping(snapshot)

        self.is_setting_state.value = True
        try:
            applied: dict[str, Any] = {}
            for entity_id, value in snapshot.values.items():
                entity = self._entities.get(entity_id)
                if entity is None:
                    log.warning("No registered entity for %s, skipping", entity_id)
                    continue
                if not entity.is_eligible():
                    log.warning("Entity %s is no longer eligible for state, skipping", entity_id)
                    continue
                self.on_before_apply_state.emit(entity)
                entity.apply_state(value)
                applied[entity_id] = value
            self.state_set.emit(applied)
        finally:
            self.is_setting_state.value = False

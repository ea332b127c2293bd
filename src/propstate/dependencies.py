"""Registry of ordering constraints between entity phases.

Constraints are split by ``(before_phase, after_phase)`` into four map pairs.
Each pair keeps one map keyed by the "before" entity id and one keyed by the
"after" entity id, so registering, removing every constraint of an entity, and
looking up what must precede an entity's phase are all O(1) amortized (plus
the number of constraints touched).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeAlias

from .errors import IneligibleEntityError, OrderDependencyError
from .phase import OrderDependency, PhaseTerm, StatePhase

if TYPE_CHECKING:
    from collections.abc import Iterator, Set

log = logging.getLogger(__name__)

PhaseMap: TypeAlias = dict[str, set[str]]

_NO_IDS: frozenset[str] = frozenset()


@dataclass(slots=True)
class OrderDependencyMapPair:
    """Both lookup directions for one ``(before_phase, after_phase)`` combination."""

    before_phase: StatePhase
    after_phase: StatePhase
    # before id -> ids whose ``after_phase`` waits on it
    before_map: PhaseMap = field(default_factory=dict[str, set[str]], repr=False)
    # after id -> ids whose ``before_phase`` must come first
    after_map: PhaseMap = field(default_factory=dict[str, set[str]], repr=False)

    def add(self, before_id: str, after_id: str) -> bool:
        """Record ``before_id -> after_id``; return False if it was already known."""

        after_ids = self.before_map.setdefault(before_id, set())
        if after_id in after_ids:
            return False
        after_ids.add(after_id)
        self.after_map.setdefault(after_id, set()).add(before_id)
        return True

    def has(self, before_id: str, after_id: str) -> bool:
        return after_id in self.before_map.get(before_id, _NO_IDS)

    def uses(self, entity_id: str) -> bool:
        return entity_id in self.before_map or entity_id in self.after_map

    def before_ids_for(self, after_id: str) -> Set[str]:
        return self.after_map.get(after_id, _NO_IDS)

    def remove_entity(self, entity_id: str) -> int:
        """Drop every constraint mentioning ``entity_id`` and return how many went."""

        removed = 0
        for own_map, other_map in (
            (self.before_map, self.after_map),
            (self.after_map, self.before_map),
        ):
            partner_ids = own_map.pop(entity_id, None)
            if partner_ids is None:
                continue
            for partner_id in partner_ids:
                reciprocal = other_map[partner_id]
                reciprocal.discard(entity_id)
                # no empty sets left behind, ``uses`` relies on it
                if not reciprocal:
                    del other_map[partner_id]
            removed += len(partner_ids)
        return removed

    def mentions(self, entity_id: str) -> bool:
        """Full scan, only used for slow validation."""

        return any(
            key == entity_id or entity_id in values
            for phase_map in (self.before_map, self.after_map)
            for key, values in phase_map.items()
        )

    def __iter__(self) -> Iterator[OrderDependency]:
        for before_id, after_ids in self.before_map.items():
            for after_id in after_ids:
                yield OrderDependency(
                    before=PhaseTerm(before_id, self.before_phase),
                    after=PhaseTerm(after_id, self.after_phase),
                )


class OrderDependencyIndex:
    """Process-wide index of order dependencies, keyed by entity id."""

    def __init__(self, *, validate_slow: bool = False) -> None:
        self._validate_slow = validate_slow
        self._map_pairs: dict[tuple[StatePhase, StatePhase], OrderDependencyMapPair] = {
            (before_phase, after_phase): OrderDependencyMapPair(before_phase, after_phase)
            for before_phase in StatePhase
            for after_phase in StatePhase
        }
        self._count = 0

    @property
    def map_pairs(self) -> tuple[OrderDependencyMapPair, ...]:
        return tuple(self._map_pairs.values())

    def map_pair(
        self, before_phase: StatePhase, after_phase: StatePhase
    ) -> OrderDependencyMapPair:
        return self._map_pairs[(StatePhase(before_phase), StatePhase(after_phase))]

    def add_order_dependency(
        self,
        before_id: str,
        before_phase: StatePhase,
        after_id: str,
        after_phase: StatePhase,
    ) -> None:
        """Register that ``before_id``'s ``before_phase`` precedes ``after_id``'s ``after_phase``.

        Registering the same constraint again has no further effect. A constraint
        between an entity and the identical phase of itself is rejected, as is
        the reverse of an existing constraint within the same phase (a two-entity
        cycle that no restoration could ever satisfy).
        """

        _require_entity_id(before_id)
        _require_entity_id(after_id)
        if before_id == after_id and before_phase == after_phase:
            raise OrderDependencyError(
                f"cannot order {before_id!r} {before_phase} against itself"
            )

        map_pair = self.map_pair(before_phase, after_phase)
        if before_phase == after_phase and map_pair.has(after_id, before_id):
            raise OrderDependencyError(
                f"{after_id!r} {after_phase} is already ordered before {before_id!r} "
                f"{before_phase}; the reverse constraint would be a cycle"
            )
        if map_pair.add(before_id, after_id):
            self._count += 1
            log.debug(
                "Registered order dependency %s:%s -> %s:%s",
                before_id,
                before_phase,
                after_id,
                after_phase,
            )

    def uses_entity(self, entity_id: str) -> bool:
        return any(map_pair.uses(entity_id) for map_pair in self._map_pairs.values())

    def unregister_all(self, entity_id: str) -> int:
        """Remove every constraint mentioning ``entity_id``; return how many were removed."""

        _require_entity_id(entity_id)
        if not self.uses_entity(entity_id):
            raise OrderDependencyError(
                f"{entity_id!r} must be registered in an order dependency to be unregistered"
            )

        removed = sum(map_pair.remove_entity(entity_id) for map_pair in self._map_pairs.values())
        self._count -= removed
        log.debug("Unregistered %d order dependencies for %s", removed, entity_id)

        if self._validate_slow:
            for map_pair in self._map_pairs.values():
                if map_pair.mentions(entity_id):
                    raise AssertionError(
                        f"{entity_id!r} still referenced by the "
                        f"{map_pair.before_phase}->{map_pair.after_phase} map pair"
                    )
        return removed

    def dependencies_blocking(self, entity_id: str, phase: StatePhase) -> Iterator[PhaseTerm]:
        """Yield every entity phase registered to precede ``entity_id``'s ``phase``."""

        for map_pair in self._map_pairs.values():
            if map_pair.after_phase != phase:
                continue
            for before_id in map_pair.before_ids_for(entity_id):
                yield PhaseTerm(before_id, map_pair.before_phase)

    def count(self) -> int:
        return self._count

    def __len__(self) -> int:
        return self._count

    def __iter__(self) -> Iterator[OrderDependency]:
        for map_pair in self._map_pairs.values():
            yield from map_pair


def _require_entity_id(entity_id: str) -> None:
    if not isinstance(entity_id, str) or not entity_id:
        raise IneligibleEntityError(f"order dependencies need a stable entity id, got {entity_id!r}")

"""Phases an entity goes through while state is being applied.

UNDEFER - the entity commits its pending value; its value becomes accurate.
NOTIFY - listeners are told about a value change that happened while deferred.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class StatePhase(StrEnum):
    UNDEFER = "undefer"
    NOTIFY = "notify"


@dataclass(frozen=True, slots=True)
class PhaseTerm:
    """Unique key for one entity/phase pair."""

    entity_id: str
    phase: StatePhase

    def __str__(self) -> str:
        return f"{self.entity_id}:{self.phase}"


@dataclass(frozen=True, slots=True)
class OrderDependency:
    """``before`` must have been applied before ``after`` may be applied."""

    before: PhaseTerm
    after: PhaseTerm

    def __str__(self) -> str:
        return f"{self.before}\t{self.after}"

"""Two-phase application of deferred entity values.

One ``PhaseScheduler`` exists per restoration. It is seeded with an undefer
action for each deferred entity and then runs passes over the pending
callbacks, applying every callback whose prerequisites are complete, until
nothing is pending. A NOTIFY callback only comes into existence once the
entity's own UNDEFER has run, because the notify action is produced by the
undefer step itself.

Passes are bounded; if callbacks are still pending once the ceiling is hit
the registered constraints form a cycle among the participating entities and
``StateDeadlockError`` is raised with a ``DeadlockReport``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeAlias

from .config import DEFAULT_MAX_ITERATIONS
from .errors import HandlerStateError, OrderDependencyError, StateDeadlockError
from .phase import OrderDependency, PhaseTerm, StatePhase

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from .dependencies import OrderDependencyIndex

log = logging.getLogger(__name__)

NotifyAction: TypeAlias = Callable[[], None]
UndeferAction: TypeAlias = Callable[[], NotifyAction | None]


def _noop() -> None:
    return None


@dataclass(slots=True, eq=False)
class PhaseCallback:
    """A pending unit of work for one entity phase."""

    entity_id: str
    phase: StatePhase
    action: Callable[[], object] = _noop

    @property
    def term(self) -> PhaseTerm:
        return PhaseTerm(self.entity_id, self.phase)


@dataclass(frozen=True, slots=True)
class DeadlockReport:
    """What was left when the pass ceiling was reached.

    ``pending`` maps every unapplied entity phase to the prerequisites that kept
    it blocked. ``relevant_dependencies`` lists each registered constraint that
    touches a pending phase, which is enough to reconstruct the cycle.
    ``completed_related`` holds the phases that did complete for entities named
    in those constraints.
    """

    iterations: int
    pending: Mapping[PhaseTerm, frozenset[PhaseTerm]]
    relevant_dependencies: tuple[OrderDependency, ...] = ()
    completed_related: frozenset[PhaseTerm] = frozenset()

    def graphable(self) -> str:
        """Tab separated ``before<TAB>after`` lines, one per relevant constraint."""

        return "\n".join(str(dependency) for dependency in self.relevant_dependencies)

    def describe(self) -> str:
        lines = [f"still pending after {self.iterations} passes:"]
        for term, blockers in self.pending.items():
            waiting_on = ", ".join(sorted(str(blocker) for blocker in blockers)) or "nothing"
            lines.append(f"  {term} waiting on {waiting_on}")
        lines.append("order dependencies that apply to the pending phases:")
        lines.extend(f"  {dependency}" for dependency in self.relevant_dependencies)
        if self.completed_related:
            lines.append("completed phases of those entities:")
            lines.extend(f"  {term}" for term in sorted(self.completed_related, key=str))
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class RestorationSummary:
    undeferred: int
    notified: int
    iterations: int


@dataclass(slots=True)
class _PendingCallbacks:
    # dicts double as insertion-ordered sets
    undefer: dict[PhaseCallback, None] = field(default_factory=dict[PhaseCallback, None])
    notify: dict[PhaseCallback, None] = field(default_factory=dict[PhaseCallback, None])

    def __len__(self) -> int:
        return len(self.undefer) + len(self.notify)

    def __iter__(self) -> Iterator[PhaseCallback]:
        yield from self.undefer
        yield from self.notify

    def for_phase(self, phase: StatePhase) -> dict[PhaseCallback, None]:
        return self.notify if phase == StatePhase.NOTIFY else self.undefer


class PhaseScheduler:
    """Apply UNDEFER and NOTIFY for one batch of entities in a valid order."""

    def __init__(
        self,
        index: OrderDependencyIndex,
        participating_ids: Iterable[str],
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        ids = tuple(participating_ids)
        self._participating = frozenset(ids)
        if len(self._participating) != len(ids):
            duplicates = sorted({entity_id for entity_id in ids if ids.count(entity_id) > 1})
            raise OrderDependencyError(f"participating ids must be unique: {duplicates}")
        if max_iterations < 1:
            raise ValueError("max_iterations must be positive")

        self._index = index
        self._max_iterations = max_iterations
        self._pending = _PendingCallbacks()
        self._seeded: set[str] = set()
        self._completed: set[PhaseTerm] = set()
        self._iterations = 0
        self._notified = 0
        self._finished = False

    @property
    def participating_ids(self) -> frozenset[str]:
        return self._participating

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def completed(self) -> frozenset[PhaseTerm]:
        return frozenset(self._completed)

    def add_undefer_action(self, entity_id: str, action: UndeferAction) -> None:
        """Seed the UNDEFER callback for ``entity_id``.

        When the callback runs, a NOTIFY callback is queued for the same entity
        even if ``action`` returned ``None``, so constraints on that entity's
        NOTIFY phase can still be satisfied.
        """

        if self._finished:
            raise HandlerStateError("cannot seed a scheduler that has already run")
        if entity_id in self._seeded:
            raise HandlerStateError(f"{entity_id!r} already has an undefer action")
        self._seeded.add(entity_id)

        def undefer() -> None:
            notify_action = action()
            callback = PhaseCallback(entity_id, StatePhase.NOTIFY, notify_action or _noop)
            self._pending.notify[callback] = None

        self._pending.undefer[PhaseCallback(entity_id, StatePhase.UNDEFER, undefer)] = None

    def can_apply(self, entity_id: str, phase: StatePhase) -> bool:
        """Return whether every prerequisite of ``entity_id``'s ``phase`` is done."""

        if phase == StatePhase.NOTIFY and PhaseTerm(entity_id, StatePhase.UNDEFER) not in (
            self._completed
        ):
            return False
        return next(iter(self._incomplete_prerequisites(entity_id, phase)), None) is None

    def run(self) -> RestorationSummary:
        if self._finished:
            raise HandlerStateError("a PhaseScheduler can only run once")
        self._finished = True
        undeferred = len(self._pending.undefer)

        while self._pending:
            if self._iterations >= self._max_iterations:
                self._fail()
            # undefer as much as possible before notifying
            self._apply_phase(StatePhase.UNDEFER)
            self._apply_phase(StatePhase.NOTIFY)
            self._iterations += 1
            log.debug("Pass %d done, %d callbacks pending", self._iterations, len(self._pending))

        summary = RestorationSummary(
            undeferred=undeferred, notified=self._notified, iterations=self._iterations
        )
        log.info(
            "Applied state to %d entities (%d notify callbacks) in %d passes",
            summary.undeferred,
            summary.notified,
            summary.iterations,
        )
        return summary

    def _apply_phase(self, phase: StatePhase) -> None:
        pending = self._pending.for_phase(phase)
        for callback in tuple(pending):
            if not self.can_apply(callback.entity_id, phase):
                continue
            callback.action()
            del pending[callback]
            self._completed.add(callback.term)
            if phase == StatePhase.NOTIFY:
                self._notified += 1

    def _incomplete_prerequisites(self, entity_id: str, phase: StatePhase) -> Iterator[PhaseTerm]:
        # constraints only bind when both ends take part in this restoration
        if entity_id not in self._participating:
            return
        for before in self._index.dependencies_blocking(entity_id, phase):
            if before not in self._completed and before.entity_id in self._participating:
                yield before

    def _fail(self) -> None:
        pending_terms = [callback.term for callback in self._pending]
        pending_set = set(pending_terms)
        relevant = tuple(
            dependency
            for dependency in self._index
            if dependency.before in pending_set or dependency.after in pending_set
        )
        related_ids = {
            term.entity_id
            for dependency in relevant
            for term in (dependency.before, dependency.after)
        }
        report = DeadlockReport(
            iterations=self._iterations,
            pending={
                term: frozenset(self._incomplete_prerequisites(term.entity_id, term.phase))
                for term in pending_terms
            },
            relevant_dependencies=relevant,
            completed_related=frozenset(
                term for term in self._completed if term.entity_id in related_ids
            ),
        )
        log.error(
            "Impossible set state, ordering constraints cannot be satisfied\n%s\n\n"
            "in graphable form:\n%s",
            report.describe(),
            report.graphable(),
        )
        raise StateDeadlockError(report)


def run_restoration(
    index: OrderDependencyIndex,
    participating_ids: Iterable[str],
    undefer_actions: Mapping[str, UndeferAction],
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> RestorationSummary:
    """Run one restoration with a fresh scheduler and return its summary."""

    scheduler = PhaseScheduler(index, participating_ids, max_iterations=max_iterations)
    for entity_id, action in undefer_actions.items():
        scheduler.add_undefer_action(entity_id, action)
    return scheduler.run()

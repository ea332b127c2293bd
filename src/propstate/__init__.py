"""Phase-ordered application of saved state to observable entities."""

from __future__ import annotations

from importlib import metadata

from .dependencies import OrderDependencyIndex, OrderDependencyMapPair
from .emitter import Emitter
from .engine import StateEngine, StateSnapshot
from .entity import RestorableEntity, StatefulEntity
from .errors import (
    HandlerStateError,
    IneligibleEntityError,
    OrderDependencyError,
    PropertyStateError,
    StateDeadlockError,
)
from .handler import PropertyStateHandler, property_state_handler
from .observable import DerivedProperty, Property
from .phase import OrderDependency, PhaseTerm, StatePhase
from .scheduler import DeadlockReport, PhaseScheduler, RestorationSummary, run_restoration

try:
    __version__ = metadata.version("propstate")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+local"

__all__ = [  # noqa: RUF022
    # phases
    "StatePhase",
    "PhaseTerm",
    "OrderDependency",
    # core
    "OrderDependencyIndex",
    "OrderDependencyMapPair",
    "PhaseScheduler",
    "DeadlockReport",
    "RestorationSummary",
    "run_restoration",
    "PropertyStateHandler",
    "property_state_handler",
    # entities
    "StatefulEntity",
    "RestorableEntity",
    "Emitter",
    "Property",
    "DerivedProperty",
    "StateEngine",
    "StateSnapshot",
    # errors
    "PropertyStateError",
    "OrderDependencyError",
    "IneligibleEntityError",
    "HandlerStateError",
    "StateDeadlockError",
]

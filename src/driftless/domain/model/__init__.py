"""Domain model for the reconciler."""

from __future__ import annotations

from .declarations import UNKNOWN, Declaration, Lifecycle, Reference, Template
from .enums import ActionKind, EdgeKind, StepOutcome
from .identifiers import NAME_PATTERN, ResourceId
from .state import StateRecord, StateSnapshot

__all__ = [
    "NAME_PATTERN",
    "UNKNOWN",
    "ActionKind",
    "Declaration",
    "EdgeKind",
    "Lifecycle",
    "Reference",
    "ResourceId",
    "StateRecord",
    "StateSnapshot",
    "StepOutcome",
    "Template",
]

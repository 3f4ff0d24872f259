"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class ActionKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "no-op"


class EdgeKind(StrEnum):
    """Origin of a dependency edge between two declarations."""

    REFERENCE = "reference"
    EXPLICIT = "explicit"


class StepOutcome(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

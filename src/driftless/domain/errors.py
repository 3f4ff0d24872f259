"""Error taxonomy shared by every reconciler stage.

Fatal errors (configuration, graph, state corruption) abort a run before any
remote side effect. Provider errors are recorded per plan step by the executor.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from driftless.domain.model import ResourceId


class DriftlessError(Exception):
    """Base class for all reconciler errors."""


class ConfigurationError(DriftlessError):
    """Raised when a configuration document or setting is invalid."""


class CycleError(DriftlessError):
    """Raised when declarations depend on each other in a cycle."""

    def __init__(self, cycle: Sequence[ResourceId]) -> None:
        self.cycle = tuple(cycle)
        path = " -> ".join(str(resource_id) for resource_id in self.cycle)
        super().__init__(f"Dependency cycle detected: {path}")


class UnresolvedReferenceError(DriftlessError):
    """Raised when a declaration references something that does not exist."""

    def __init__(self, message: str, *, dependent: ResourceId | None = None) -> None:
        super().__init__(message)
        self.dependent = dependent


class StateCorruptionError(DriftlessError):
    """Raised when a persisted state document fails schema or version checks."""


class ProviderError(DriftlessError):
    """Permanent provider failure (validation error, permission denied, ...)."""


class ProviderTransientError(DriftlessError):
    """Provider failure worth retrying (throttling, timeouts, 5xx)."""

    def __init__(self, message: str, *, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class NotFoundError(DriftlessError):
    """Raised by providers when the addressed remote object does not exist."""

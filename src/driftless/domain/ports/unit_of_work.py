"""Unit-of-work abstractions for coordinating repositories."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from driftless.domain.model import ResourceId, StateRecord


@runtime_checkable
class RepositoryCollection(Protocol):
    """Marker protocol for groups of repositories managed together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Generic unit-of-work boundary around a repository collection."""

    @property
    def repositories(self) -> TRepositories: ...

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@runtime_checkable
class StateRecordRepository(Protocol):
    """Persistence contract for state records."""

    def get(self, resource_id: ResourceId) -> StateRecord | None: ...

    def upsert(self, record: StateRecord) -> None: ...

    def remove(self, resource_id: ResourceId) -> None: ...

    def all(self) -> tuple[StateRecord, ...]: ...


@runtime_checkable
class StateMetaRepository(Protocol):
    """Key/value metadata stored next to the records (schema version, lineage)."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


@dataclass(slots=True)
class StateRepositories(RepositoryCollection):
    """Repositories required to persist reconciler state."""

    records: StateRecordRepository
    meta: StateMetaRepository


type StateUnitOfWork = UnitOfWork[StateRepositories]

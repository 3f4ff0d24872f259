"""Port for the durable record of applied resources."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from driftless.domain.model import ResourceId, StateRecord, StateSnapshot


@runtime_checkable
class StateStore(Protocol):
    """Last-known resource attributes, shared by planner and executor.

    ``put`` and ``delete`` must be atomic and durable when they return;
    ``snapshot`` returns a read-only view that later writes do not mutate.
    """

    def get(self, resource_id: ResourceId) -> StateRecord | None: ...

    def put(self, record: StateRecord) -> None: ...

    def delete(self, resource_id: ResourceId) -> None: ...

    def list_records(self) -> tuple[StateRecord, ...]: ...

    def snapshot(self) -> StateSnapshot: ...


__all__ = ["StateStore"]

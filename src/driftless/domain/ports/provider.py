"""Port for the external system that creates, reads, updates and deletes resources."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True, kw_only=True)
class ProviderContext:
    """Credentials and settings handed explicitly to every provider call."""

    endpoint: str | None = None
    region: str | None = None
    credentials: Mapping[str, str] = field(default_factory=dict[str, str], repr=False)
    settings: Mapping[str, object] = field(default_factory=dict[str, object])


@dataclass(frozen=True, slots=True, kw_only=True)
class ResourceSchema:
    """Provider-declared attribute semantics for one resource type.

    ``immutable`` attributes force a replacement when they change.
    ``computed`` attributes are reported by the provider and never declared,
    so their absence from a declaration is not a removal.
    """

    immutable: frozenset[str] = frozenset()
    computed: frozenset[str] = frozenset({"id"})


type Attributes = dict[str, object]


@runtime_checkable
class Provider(Protocol):
    """Async CRUD contract implemented by provider adapters.

    Implementations raise ``ProviderTransientError`` for retryable failures,
    ``ProviderError`` for permanent ones and ``NotFoundError`` when the
    addressed object does not exist.
    """

    async def schema(self, resource_type: str, *, context: ProviderContext) -> ResourceSchema: ...

    async def create(
        self,
        resource_type: str,
        attributes: Mapping[str, object],
        *,
        context: ProviderContext,
    ) -> tuple[str, Attributes]: ...

    async def read(
        self, resource_type: str, provider_id: str, *, context: ProviderContext
    ) -> Attributes: ...

    async def update(
        self,
        resource_type: str,
        provider_id: str,
        delta: Mapping[str, object],
        *,
        context: ProviderContext,
    ) -> Attributes: ...

    async def delete(
        self, resource_type: str, provider_id: str, *, context: ProviderContext
    ) -> None: ...


__all__ = ["Attributes", "Provider", "ProviderContext", "ResourceSchema"]

"""Persisted knowledge about applied resources."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .identifiers import ResourceId


@dataclass(frozen=True, slots=True, kw_only=True, eq=False)
class StateRecord:
    """Last-applied attributes of one resource plus its provider identifier.

    ``deposed`` lists provider ids of replaced objects that still await
    deletion after a create-before-destroy replacement.
    """

    resource_id: ResourceId
    provider_id: str
    attributes: Mapping[str, object] = field(default_factory=dict[str, object])
    dependencies: tuple[ResourceId, ...] = ()
    create_before_destroy: bool = False
    deposed: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StateRecord):
            return NotImplemented
        return (
            self.resource_id == other.resource_id
            and self.provider_id == other.provider_id
            and dict(self.attributes) == dict(other.attributes)
            and self.dependencies == other.dependencies
            and self.create_before_destroy == other.create_before_destroy
            and self.deposed == other.deposed
        )

    __hash__ = None  # type: ignore[assignment]

    def with_attributes(self, attributes: Mapping[str, object]) -> StateRecord:
        return replace(self, attributes=attributes)

    def with_deposed(self, deposed: Iterable[str]) -> StateRecord:
        return replace(self, deposed=tuple(deposed))


type StateSnapshot = Mapping[ResourceId, StateRecord]

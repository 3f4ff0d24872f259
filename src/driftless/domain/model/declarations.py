"""Desired-state declarations and the value types they carry."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .identifiers import ResourceId


@dataclass(frozen=True, slots=True)
class Reference:
    """Pointer to an attribute of another declaration, e.g. ``bucket.main.arn``."""

    target: ResourceId
    path: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError(f"Reference to {self.target} must name an attribute")

    @property
    def attribute(self) -> str:
        return self.path[0]

    def __str__(self) -> str:
        return "${" + ".".join((str(self.target), *self.path)) + "}"


@dataclass(frozen=True, slots=True)
class Template:
    """String interpolation mixing literal text and references."""

    parts: tuple[str | Reference, ...]

    @property
    def references(self) -> tuple[Reference, ...]:
        return tuple(part for part in self.parts if isinstance(part, Reference))

    def __str__(self) -> str:
        return "".join(str(part) for part in self.parts)


class _Unknown:
    """Placeholder for values only known after a prerequisite is applied."""

    _instance: _Unknown | None = None

    def __new__(cls) -> _Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "(known after apply)"

    def __bool__(self) -> bool:
        return False


UNKNOWN: Final[_Unknown] = _Unknown()


@dataclass(frozen=True, slots=True, kw_only=True)
class Lifecycle:
    create_before_destroy: bool = False
    prevent_destroy: bool = False
    ignore_changes: frozenset[str] = frozenset()
    # poll the provider until applied values are observable before releasing dependents
    confirm_propagation: bool = False


def _frozen_mapping(values: Mapping[str, object]) -> Mapping[str, object]:
    return MappingProxyType(dict(values))


@dataclass(frozen=True, slots=True, kw_only=True, eq=False)
class Declaration:
    """Desired state for one resource instance. Immutable once loaded."""

    resource_id: ResourceId
    attributes: Mapping[str, object] = field(default_factory=dict[str, object])
    depends_on: tuple[ResourceId, ...] = ()
    lifecycle: Lifecycle = field(default_factory=Lifecycle)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", _frozen_mapping(self.attributes))

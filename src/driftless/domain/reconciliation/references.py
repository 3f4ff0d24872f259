"""Reference extraction and resolution.

Extraction is a standalone pass: it turns the typed :class:`Reference` values
left in declarations by the document loader into :class:`DependencyEdge`
records, so the graph builder only deals with edges. Resolution substitutes
references with concrete values from state, or :data:`UNKNOWN` when the
value will only exist after a prerequisite is applied.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

from driftless.domain.model import UNKNOWN, EdgeKind, Reference, Template

from driftless.domain._attributes import MISSING, render_text, walk_path

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from driftless.domain.model import Declaration, ResourceId, StateRecord


@dataclass(frozen=True, slots=True)
class DependencyEdge:
    """``dependent`` must be applied after ``prerequisite``."""

    dependent: ResourceId
    prerequisite: ResourceId
    kind: EdgeKind
    via: str | None = None

    def __str__(self) -> str:
        suffix = f" via {self.via}" if self.via else ""
        return f"{self.dependent} -> {self.prerequisite} ({self.kind}{suffix})"


def iter_references(value: object, *, path: str = "") -> Iterator[tuple[str, Reference]]:
    """Yield ``(attribute_path, reference)`` for every reference inside ``value``."""

    if isinstance(value, Reference):
        yield path, value
    elif isinstance(value, Template):
        for reference in value.references:
            yield path, reference
    elif isinstance(value, dict):
        for key, item in cast(dict[str, object], value).items():
            yield from iter_references(item, path=f"{path}.{key}" if path else key)
    elif isinstance(value, list):
        for index, item in enumerate(cast(list[object], value)):
            yield from iter_references(item, path=f"{path}[{index}]")


def extract_references(declaration: Declaration) -> tuple[DependencyEdge, ...]:
    """Return reference and explicit edges of ``declaration`` in a stable order."""

    edges: list[DependencyEdge] = []
    seen: set[tuple[ResourceId, EdgeKind, str | None]] = set()
    for name, value in declaration.attributes.items():
        for path, reference in iter_references(value, path=name):
            key = (reference.target, EdgeKind.REFERENCE, path)
            if key in seen:
                continue
            seen.add(key)
            edges.append(
                DependencyEdge(
                    dependent=declaration.resource_id,
                    prerequisite=reference.target,
                    kind=EdgeKind.REFERENCE,
                    via=path,
                )
            )
    for prerequisite in declaration.depends_on:
        key = (prerequisite, EdgeKind.EXPLICIT, None)
        if key in seen:
            continue
        seen.add(key)
        edges.append(
            DependencyEdge(
                dependent=declaration.resource_id,
                prerequisite=prerequisite,
                kind=EdgeKind.EXPLICIT,
            )
        )
    return tuple(edges)


def record_value(record: StateRecord, path: tuple[str, ...]) -> object:
    """Look up ``path`` in a state record; ``id`` falls back to the provider id."""

    value = walk_path(record.attributes, path)
    if value is MISSING and path == ("id",):
        return record.provider_id
    return value


def resolve_value(value: object, lookup: Callable[[Reference], object]) -> object:
    """Replace references inside ``value`` using ``lookup``.

    Templates containing an unknown part resolve to :data:`UNKNOWN` as a whole.
    """

    if isinstance(value, Reference):
        return lookup(value)
    if isinstance(value, Template):
        rendered: list[str] = []
        for part in value.parts:
            if isinstance(part, str):
                rendered.append(part)
                continue
            resolved = lookup(part)
            if resolved is UNKNOWN:
                return UNKNOWN
            rendered.append(render_text(resolved))
        return "".join(rendered)
    if isinstance(value, dict):
        return {
            key: resolve_value(item, lookup)
            for key, item in cast(dict[str, object], value).items()
        }
    if isinstance(value, list):
        return [resolve_value(item, lookup) for item in cast(list[object], value)]
    return value


def contains_unknown(value: object) -> bool:
    if value is UNKNOWN:
        return True
    if isinstance(value, dict):
        return any(contains_unknown(item) for item in cast(dict[str, object], value).values())
    if isinstance(value, list):
        return any(contains_unknown(item) for item in cast(list[object], value))
    return False


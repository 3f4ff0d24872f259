"""Differ: compare desired declarations with the state snapshot.

Pure and deterministic: declarations are visited in graph order so every
prerequisite's decision is known before its dependents resolve references
against it. A reference into a prerequisite that is being created, replaced
or has the referenced attribute changing resolves to :data:`UNKNOWN`, which
always counts as a change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from driftless.domain._attributes import MISSING
from driftless.domain.errors import ConfigurationError, UnresolvedReferenceError
from driftless.domain.model import UNKNOWN, ActionKind
from driftless.domain.ports.provider import ResourceSchema

from .references import contains_unknown, record_value, resolve_value

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from driftless.domain.model import (
        Declaration,
        Reference,
        ResourceId,
        StateRecord,
        StateSnapshot,
    )

    from .graph import ResourceGraph

_DEFAULT_SCHEMA = ResourceSchema()


@dataclass(frozen=True, slots=True)
class AttributeChange:
    """``before`` is ``None`` for new attributes; ``after`` is ``None`` for removals."""

    before: object
    after: object

    @property
    def known(self) -> bool:
        return not contains_unknown(self.after)


@dataclass(frozen=True, slots=True, kw_only=True)
class ResourceDiff:
    """Decision for one resource."""

    resource_id: ResourceId
    kind: ActionKind
    changes: Mapping[str, AttributeChange] = field(default_factory=dict[str, AttributeChange])
    replace_because: tuple[str, ...] = ()
    declaration: Declaration | None = None
    record: StateRecord | None = None

    @property
    def create_before_destroy(self) -> bool:
        if self.declaration is not None:
            return self.declaration.lifecycle.create_before_destroy
        return self.record.create_before_destroy if self.record is not None else False


def diff_resources(
    graph: ResourceGraph,
    snapshot: StateSnapshot,
    schemas: Mapping[str, ResourceSchema] | None = None,
) -> tuple[ResourceDiff, ...]:
    """Return one diff per declaration (graph order) followed by orphan deletes."""

    schema_by_type = schemas or {}
    decisions: dict[ResourceId, ResourceDiff] = {}
    for resource_id in graph.order:
        declaration = graph.declaration(resource_id)
        lookup = _planning_lookup(resource_id, decisions, snapshot)
        desired = {
            name: resolve_value(value, lookup) for name, value in declaration.attributes.items()
        }
        decisions[resource_id] = diff_declaration(
            declaration,
            snapshot.get(resource_id),
            desired,
            schema_by_type.get(resource_id.type, _DEFAULT_SCHEMA),
        )

    orphans = tuple(
        ResourceDiff(resource_id=resource_id, kind=ActionKind.DELETE, record=snapshot[resource_id])
        for resource_id in sorted(snapshot)
        if resource_id not in graph
    )
    return (*(decisions[resource_id] for resource_id in graph.order), *orphans)


def diff_declaration(
    declaration: Declaration,
    record: StateRecord | None,
    desired: Mapping[str, object],
    schema: ResourceSchema,
) -> ResourceDiff:
    """Classify a single declaration against its state record."""

    resource_id = declaration.resource_id
    if record is None:
        changes = {name: AttributeChange(None, value) for name, value in desired.items()}
        return ResourceDiff(
            resource_id=resource_id,
            kind=ActionKind.CREATE,
            changes=MappingProxyType(changes),
            declaration=declaration,
        )

    changes = attribute_changes(
        desired,
        record.attributes,
        ignore=declaration.lifecycle.ignore_changes,
        computed=schema.computed,
    )
    if not changes:
        return ResourceDiff(
            resource_id=resource_id,
            kind=ActionKind.NOOP,
            declaration=declaration,
            record=record,
        )

    replace_because = tuple(sorted(name for name in changes if name in schema.immutable))
    if replace_because:
        if declaration.lifecycle.prevent_destroy:
            raise ConfigurationError(
                f"{resource_id} has prevent_destroy set but changing "
                f"{', '.join(replace_because)} requires replacing it"
            )
        kind = ActionKind.REPLACE
    else:
        kind = ActionKind.UPDATE
    return ResourceDiff(
        resource_id=resource_id,
        kind=kind,
        changes=MappingProxyType(changes),
        replace_because=replace_because,
        declaration=declaration,
        record=record,
    )


def attribute_changes(
    desired: Mapping[str, object],
    current: Mapping[str, object],
    *,
    ignore: frozenset[str] = frozenset(),
    computed: frozenset[str] = frozenset(),
) -> dict[str, AttributeChange]:
    """Return changed attributes, in name order.

    Attributes present in ``current`` but no longer desired are removals,
    unless the provider computes them.
    """

    changes: dict[str, AttributeChange] = {}
    for name in sorted(set(desired) | set(current)):
        if name in ignore:
            continue
        if name not in desired:
            if name in computed:
                continue
            before = current[name]
            if before is not None:
                changes[name] = AttributeChange(before, None)
            continue
        after = desired[name]
        before = current.get(name)
        if contains_unknown(after) or after != before:
            changes[name] = AttributeChange(before, after)
    return changes


def _planning_lookup(
    dependent: ResourceId,
    decisions: Mapping[ResourceId, ResourceDiff],
    snapshot: StateSnapshot,
) -> Callable[[Reference], object]:
    def lookup(reference: Reference) -> object:
        decision = decisions[reference.target]
        if decision.kind in {ActionKind.CREATE, ActionKind.REPLACE}:
            return UNKNOWN
        if decision.kind is ActionKind.UPDATE and reference.attribute in decision.changes:
            return UNKNOWN
        record = snapshot[reference.target]
        value = record_value(record, reference.path)
        if value is MISSING:
            raise UnresolvedReferenceError(
                f"{dependent} references {reference} but {reference.target} "
                "has no such attribute in state",
                dependent=dependent,
            )
        return value

    return lookup

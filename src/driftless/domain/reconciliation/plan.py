"""Planner: turn resource diffs into an ordered, executable plan.

A replace decision becomes two steps on the same resource: the replacement
``create`` and a ``delete`` of the old object. With create-before-destroy the
delete targets the old object as *deposed* and runs after the create and
after every dependent has been re-pointed; otherwise it runs first.

Each step lists the steps it requires (``requires``). The executor only uses
those edges; the tuple order is a deterministic topological order (ties
broken by resource identifier, then step phase) used for display and
dispatch priority.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from driftless.domain.errors import ConfigurationError
from driftless.domain.model import ActionKind

from .diff import AttributeChange, ResourceDiff
from .graph import topological_order
from .references import contains_unknown

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from driftless.domain.model import Declaration, ResourceId, StateSnapshot

    from .graph import ResourceGraph

# step phases, in tie-break order
_DESTROY_FIRST = 0
_FORWARD = 1
_DEPOSED = 2


@dataclass(frozen=True, slots=True, kw_only=True)
class PlannedAction:
    """One executable step of a plan."""

    index: int
    resource_id: ResourceId
    kind: ActionKind
    changes: Mapping[str, AttributeChange] = field(default_factory=dict[str, AttributeChange])
    declaration: Declaration | None = None
    dependencies: tuple[ResourceId, ...] = ()
    replacing: bool = False
    provider_id: str | None = None
    deposed_id: str | None = None
    requires: tuple[int, ...] = ()

    @property
    def label(self) -> str:
        if self.deposed_id is not None:
            return f"delete {self.resource_id} (deposed {self.deposed_id})"
        suffix = " (replacement)" if self.replacing else ""
        return f"{self.kind} {self.resource_id}{suffix}"


@dataclass(frozen=True, slots=True)
class Plan:
    """Ordered steps plus the per-resource decisions they came from."""

    actions: tuple[PlannedAction, ...]
    diffs: tuple[ResourceDiff, ...] = ()
    destroy: bool = False

    @property
    def changes(self) -> tuple[PlannedAction, ...]:
        return tuple(action for action in self.actions if action.kind is not ActionKind.NOOP)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def summary(self) -> dict[ActionKind, int]:
        counts = dict.fromkeys(
            (ActionKind.CREATE, ActionKind.UPDATE, ActionKind.REPLACE, ActionKind.DELETE), 0
        )
        for diff in self.diffs:
            if diff.kind in counts:
                counts[diff.kind] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly rendering for human review."""

        return {
            "destroy": self.destroy,
            "summary": {str(kind): count for kind, count in self.summary().items()},
            "resources": [
                {
                    "resource": str(diff.resource_id),
                    "action": str(diff.kind),
                    "replace_because": list(diff.replace_because),
                    "changes": {
                        name: {"before": change.before, "after": _jsonable(change.after)}
                        for name, change in diff.changes.items()
                    },
                }
                for diff in self.diffs
            ],
            "steps": [
                {
                    "index": action.index,
                    "step": action.label,
                    "requires": list(action.requires),
                }
                for action in self.actions
            ],
        }


def _jsonable(value: object) -> object:
    return "(known after apply)" if contains_unknown(value) else value


@dataclass(slots=True)
class _Draft:
    resource_id: ResourceId
    kind: ActionKind
    phase: int
    changes: Mapping[str, AttributeChange] = field(default_factory=dict[str, AttributeChange])
    declaration: Declaration | None = None
    dependencies: tuple[ResourceId, ...] = ()
    replacing: bool = False
    provider_id: str | None = None
    deposed_id: str | None = None
    requires: set[int] = field(default_factory=set[int])

    @property
    def sort_key(self) -> tuple[ResourceId, int, str]:
        return (self.resource_id, self.phase, self.deposed_id or "")


class _StepGraph:
    """Drafts indexed by resource and phase while edges are being added."""

    def __init__(self) -> None:
        self.drafts: list[_Draft] = []
        self.forward: dict[ResourceId, int] = {}
        self.destroy_first: dict[ResourceId, int] = {}
        self.deposed: dict[ResourceId, list[int]] = defaultdict(list)

    def add(self, draft: _Draft) -> int:
        position = len(self.drafts)
        self.drafts.append(draft)
        if draft.phase == _FORWARD:
            self.forward[draft.resource_id] = position
        elif draft.phase == _DESTROY_FIRST:
            self.destroy_first[draft.resource_id] = position
        else:
            self.deposed[draft.resource_id].append(position)
        return position

    def deletes(self, resource_id: ResourceId) -> list[int]:
        positions = list(self.deposed.get(resource_id, ()))
        if resource_id in self.destroy_first:
            positions.append(self.destroy_first[resource_id])
        return positions

    def require(self, position: int, prerequisites: Iterable[int]) -> None:
        self.drafts[position].requires.update(p for p in prerequisites if p != position)

    def ordered(self) -> tuple[PlannedAction, ...]:
        positions = range(len(self.drafts))
        order = topological_order(
            positions,
            {position: self.drafts[position].requires for position in positions},
            sort_key=lambda position: self.drafts[position].sort_key,
            describe=lambda position: self.drafts[position].resource_id,
        )
        index_of = {position: index for index, position in enumerate(order)}
        actions: list[PlannedAction] = []
        for position in order:
            draft = self.drafts[position]
            actions.append(
                PlannedAction(
                    index=index_of[position],
                    resource_id=draft.resource_id,
                    kind=draft.kind,
                    changes=MappingProxyType(dict(draft.changes)),
                    declaration=draft.declaration,
                    dependencies=draft.dependencies,
                    replacing=draft.replacing,
                    provider_id=draft.provider_id,
                    deposed_id=draft.deposed_id,
                    requires=tuple(sorted(index_of[p] for p in draft.requires)),
                )
            )
        return tuple(actions)


def build_plan(
    graph: ResourceGraph,
    diffs: Iterable[ResourceDiff],
    snapshot: StateSnapshot,
) -> Plan:
    """Order the steps implied by ``diffs`` over the dependency graph."""

    diff_list = tuple(diffs)
    steps = _StepGraph()

    for diff in diff_list:
        resource_id = diff.resource_id
        dependencies = graph.prerequisites(resource_id) if resource_id in graph else ()
        if diff.kind in {ActionKind.CREATE, ActionKind.UPDATE, ActionKind.NOOP}:
            steps.add(
                _Draft(
                    resource_id=resource_id,
                    kind=diff.kind,
                    phase=_FORWARD,
                    changes=diff.changes,
                    declaration=diff.declaration,
                    dependencies=dependencies,
                    provider_id=diff.record.provider_id if diff.record else None,
                )
            )
        elif diff.kind is ActionKind.REPLACE:
            if diff.record is None:
                raise ValueError(f"Replace decision for {resource_id} without a state record")
            create = steps.add(
                _Draft(
                    resource_id=resource_id,
                    kind=ActionKind.CREATE,
                    phase=_FORWARD,
                    changes=diff.changes,
                    declaration=diff.declaration,
                    dependencies=dependencies,
                    replacing=True,
                    provider_id=diff.record.provider_id,
                )
            )
            if diff.create_before_destroy:
                delete = steps.add(
                    _Draft(
                        resource_id=resource_id,
                        kind=ActionKind.DELETE,
                        phase=_DEPOSED,
                        replacing=True,
                        deposed_id=diff.record.provider_id,
                    )
                )
                steps.require(delete, [create])
            else:
                delete = steps.add(
                    _Draft(
                        resource_id=resource_id,
                        kind=ActionKind.DELETE,
                        phase=_DESTROY_FIRST,
                        replacing=True,
                        provider_id=diff.record.provider_id,
                    )
                )
                steps.require(create, [delete])
        elif diff.kind is ActionKind.DELETE:
            if diff.record is None:
                raise ValueError(f"Delete decision for {resource_id} without a state record")
            steps.add(
                _Draft(
                    resource_id=resource_id,
                    kind=ActionKind.DELETE,
                    phase=_DESTROY_FIRST,
                    provider_id=diff.record.provider_id,
                )
            )

    # objects left behind by earlier create-before-destroy replacements
    leftovers: dict[ResourceId, list[int]] = defaultdict(list)
    for resource_id in sorted(snapshot):
        for deposed_id in snapshot[resource_id].deposed:
            leftovers[resource_id].append(
                steps.add(
                    _Draft(
                        resource_id=resource_id,
                        kind=ActionKind.DELETE,
                        phase=_DEPOSED,
                        deposed_id=deposed_id,
                    )
                )
            )
    for resource_id, positions in leftovers.items():
        if resource_id in steps.destroy_first:
            steps.require(steps.destroy_first[resource_id], positions)
        elif resource_id in steps.forward:
            for position in positions:
                steps.require(position, [steps.forward[resource_id]])

    dependents = _dependents(graph, snapshot)

    for resource_id, position in steps.forward.items():
        prerequisites = graph.prerequisites(resource_id) if resource_id in graph else ()
        steps.require(
            position,
            [steps.forward[item] for item in prerequisites if item in steps.forward],
        )

    for resource_id, position in steps.destroy_first.items():
        users = dependents.get(resource_id, set())
        steps.require(
            position,
            [steps.destroy_first[user] for user in users if user in steps.destroy_first],
        )
        if resource_id not in graph:
            # orphan: everything still using it must be re-pointed or gone first
            steps.require(position, _usages(steps, users))

    for resource_id, positions in steps.deposed.items():
        users = dependents.get(resource_id, set())
        for position in positions:
            if steps.drafts[position].replacing:
                steps.require(position, _usages(steps, users))

    return Plan(actions=steps.ordered(), diffs=diff_list)


def build_destroy_plan(
    snapshot: StateSnapshot,
    *,
    graph: ResourceGraph | None = None,
) -> Plan:
    """Delete every resource in state, in exactly the reverse of creation order."""

    if graph is not None:
        protected = sorted(
            resource_id
            for resource_id in snapshot
            if resource_id in graph and graph.declaration(resource_id).lifecycle.prevent_destroy
        )
        if protected:
            names = ", ".join(str(resource_id) for resource_id in protected)
            raise ConfigurationError(f"Cannot destroy resources with prevent_destroy set: {names}")

    prerequisites = {
        resource_id: [item for item in record.dependencies if item in snapshot]
        for resource_id, record in snapshot.items()
    }
    creation_order = topological_order(
        sorted(snapshot),
        prerequisites,
        sort_key=lambda resource_id: resource_id,
        describe=lambda resource_id: resource_id,
    )

    actions: list[PlannedAction] = []
    positions: dict[ResourceId, list[int]] = {}
    dependents = _dependents(None, snapshot)
    for resource_id in reversed(creation_order):
        record = snapshot[resource_id]
        requires = tuple(
            sorted(
                position
                for user in dependents.get(resource_id, set())
                for position in positions.get(user, ())
            )
        )
        own: list[int] = []
        for deposed_id in record.deposed:
            own.append(len(actions))
            actions.append(
                PlannedAction(
                    index=len(actions),
                    resource_id=resource_id,
                    kind=ActionKind.DELETE,
                    deposed_id=deposed_id,
                    requires=requires,
                )
            )
        primary = PlannedAction(
            index=len(actions),
            resource_id=resource_id,
            kind=ActionKind.DELETE,
            provider_id=record.provider_id,
            requires=(*requires, *own),
        )
        own.append(primary.index)
        actions.append(primary)
        positions[resource_id] = own

    diffs = tuple(
        ResourceDiff(resource_id=resource_id, kind=ActionKind.DELETE, record=snapshot[resource_id])
        for resource_id in reversed(creation_order)
    )
    return Plan(actions=tuple(actions), diffs=diffs, destroy=True)


def _dependents(
    graph: ResourceGraph | None,
    snapshot: StateSnapshot,
) -> dict[ResourceId, set[ResourceId]]:
    """Who uses each resource, according to declarations and recorded state."""

    dependents: dict[ResourceId, set[ResourceId]] = defaultdict(set)
    if graph is not None:
        for edge in graph.edges:
            dependents[edge.prerequisite].add(edge.dependent)
    for resource_id, record in snapshot.items():
        for prerequisite in record.dependencies:
            dependents[prerequisite].add(resource_id)
    return dependents


def _usages(steps: _StepGraph, users: Iterable[ResourceId]) -> list[int]:
    positions: list[int] = []
    for user in users:
        if user in steps.forward:
            positions.append(steps.forward[user])
        positions.extend(steps.deletes(user))
    return positions

"""Dependency graph over declarations.

The graph is immutable once built: nodes are declarations, edges come from
:func:`extract_references`. Building fails fast on references to undeclared
resources (:class:`UnresolvedReferenceError`) and on cycles
(:class:`CycleError`), before any diffing or provider call happens.
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from driftless.domain.errors import ConfigurationError, CycleError, UnresolvedReferenceError

from .references import DependencyEdge, extract_references

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Iterable, Mapping

    from driftless.domain.model import Declaration, ResourceId


def topological_order[TNode: Hashable, TKey](
    nodes: Iterable[TNode],
    prerequisites: Mapping[TNode, Iterable[TNode]],
    *,
    sort_key: Callable[[TNode], TKey],
    describe: Callable[[TNode], ResourceId],
) -> list[TNode]:
    """Kahn's algorithm with deterministic tie-breaking on ``sort_key``.

    ``prerequisites[n]`` lists nodes that must come before ``n``. Raises
    :class:`CycleError` naming the resources of one cycle if no order exists.
    """

    node_list = list(nodes)
    remaining: dict[TNode, int] = {}
    dependents: dict[TNode, list[TNode]] = defaultdict(list)
    for node in node_list:
        required = set(prerequisites.get(node, ()))
        remaining[node] = len(required)
        for prerequisite in required:
            dependents[prerequisite].append(node)

    heap: list[tuple[TKey, int, TNode]] = []
    tiebreak = {node: position for position, node in enumerate(node_list)}
    for node, count in remaining.items():
        if count == 0:
            heapq.heappush(heap, (sort_key(node), tiebreak[node], node))

    ordered: list[TNode] = []
    while heap:
        _, _, node = heapq.heappop(heap)
        ordered.append(node)
        for dependent in dependents[node]:
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                heapq.heappush(heap, (sort_key(dependent), tiebreak[dependent], dependent))

    if len(ordered) != len(node_list):
        blocked = {node for node, count in remaining.items() if count > 0}
        cycle = _find_cycle(blocked, prerequisites, sort_key=sort_key)
        raise CycleError([describe(node) for node in cycle])
    return ordered


def _find_cycle[TNode: Hashable, TKey](
    blocked: set[TNode],
    prerequisites: Mapping[TNode, Iterable[TNode]],
    *,
    sort_key: Callable[[TNode], TKey],
) -> list[TNode]:
    # every blocked node waits on at least one other blocked node, so walking
    # blocked prerequisites must revisit a node
    start = min(blocked, key=sort_key)  # pyright: ignore[reportArgumentType, reportCallIssue]
    path: list[TNode] = []
    position: dict[TNode, int] = {}
    node = start
    while node not in position:
        position[node] = len(path)
        path.append(node)
        candidates = [item for item in prerequisites.get(node, ()) if item in blocked]
        node = min(candidates, key=sort_key)  # pyright: ignore[reportArgumentType, reportCallIssue]
    cycle = path[position[node] :]
    return [*cycle, node]


@dataclass(frozen=True, slots=True)
class ResourceGraph:
    """Validated DAG of declarations with a deterministic topological order."""

    declarations: Mapping[ResourceId, Declaration]
    edges: tuple[DependencyEdge, ...]
    order: tuple[ResourceId, ...]
    _prerequisites: Mapping[ResourceId, frozenset[ResourceId]] = field(repr=False)
    _dependents: Mapping[ResourceId, frozenset[ResourceId]] = field(repr=False)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self.declarations

    def __len__(self) -> int:
        return len(self.declarations)

    def declaration(self, resource_id: ResourceId) -> Declaration:
        return self.declarations[resource_id]

    def prerequisites(self, resource_id: ResourceId) -> tuple[ResourceId, ...]:
        return tuple(sorted(self._prerequisites.get(resource_id, frozenset())))

    def dependents(self, resource_id: ResourceId) -> tuple[ResourceId, ...]:
        return tuple(sorted(self._dependents.get(resource_id, frozenset())))

    def reverse_order(self) -> tuple[ResourceId, ...]:
        return tuple(reversed(self.order))

    def transitive_dependents(self, resource_id: ResourceId) -> frozenset[ResourceId]:
        seen: set[ResourceId] = set()
        stack = list(self.dependents(resource_id))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.dependents(current))
        return frozenset(seen)


def build_graph(declarations: Iterable[Declaration]) -> ResourceGraph:
    """Build and validate the dependency graph of ``declarations``."""

    by_id: dict[ResourceId, Declaration] = {}
    for declaration in declarations:
        if declaration.resource_id in by_id:
            raise ConfigurationError(f"Duplicate declaration {declaration.resource_id}")
        by_id[declaration.resource_id] = declaration

    edges: list[DependencyEdge] = []
    prerequisites: dict[ResourceId, set[ResourceId]] = {resource_id: set() for resource_id in by_id}
    dependents: dict[ResourceId, set[ResourceId]] = {resource_id: set() for resource_id in by_id}
    for resource_id in sorted(by_id):
        for edge in extract_references(by_id[resource_id]):
            if edge.prerequisite not in by_id:
                detail = f" via {edge.via}" if edge.via else " in depends_on"
                raise UnresolvedReferenceError(
                    f"{edge.dependent} references undeclared resource {edge.prerequisite}{detail}",
                    dependent=edge.dependent,
                )
            edges.append(edge)
            prerequisites[edge.dependent].add(edge.prerequisite)
            dependents[edge.prerequisite].add(edge.dependent)

    order = topological_order(
        by_id,
        prerequisites,
        sort_key=lambda resource_id: resource_id,
        describe=lambda resource_id: resource_id,
    )
    return ResourceGraph(
        declarations=by_id,
        edges=tuple(edges),
        order=tuple(order),
        _prerequisites={key: frozenset(value) for key, value in prerequisites.items()},
        _dependents={key: frozenset(value) for key, value in dependents.items()},
    )

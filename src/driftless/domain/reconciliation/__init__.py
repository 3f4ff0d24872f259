"""Graph building, diffing, planning and execution."""

from __future__ import annotations

from .diff import AttributeChange, ResourceDiff, attribute_changes, diff_declaration, diff_resources
from .engine import Reconciler, RefreshResult
from .execute import CancellationToken, Executor, RunReport, StepResult, retry_transient
from .graph import ResourceGraph, build_graph, topological_order
from .plan import Plan, PlannedAction, build_destroy_plan, build_plan
from .policy import BackoffPolicy, ExecutionConfig, PropagationPolicy
from .references import (
    DependencyEdge,
    contains_unknown,
    extract_references,
    iter_references,
    record_value,
    resolve_value,
)

__all__ = [
    "AttributeChange",
    "BackoffPolicy",
    "CancellationToken",
    "DependencyEdge",
    "ExecutionConfig",
    "Executor",
    "Plan",
    "PlannedAction",
    "PropagationPolicy",
    "Reconciler",
    "RefreshResult",
    "ResourceDiff",
    "ResourceGraph",
    "RunReport",
    "StepResult",
    "attribute_changes",
    "build_destroy_plan",
    "build_graph",
    "build_plan",
    "contains_unknown",
    "diff_declaration",
    "diff_resources",
    "extract_references",
    "iter_references",
    "record_value",
    "resolve_value",
    "retry_transient",
    "topological_order",
]

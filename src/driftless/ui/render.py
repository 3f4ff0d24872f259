"""Human-readable rendering of plans, run reports, state and outputs."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from driftless.domain.model import ActionKind
from driftless.domain.reconciliation import contains_unknown

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

    from driftless.domain.model import StateRecord
    from driftless.domain.reconciliation import Plan, RefreshResult, ResourceDiff, RunReport

SENSITIVE = "(sensitive)"
KNOWN_AFTER_APPLY = "(known after apply)"

_SYMBOLS: dict[ActionKind, str] = {
    ActionKind.CREATE: "+",
    ActionKind.UPDATE: "~",
    ActionKind.DELETE: "-",
}


def format_value(value: object, *, sensitive: Collection[object] = ()) -> str:
    if contains_unknown(value):
        return KNOWN_AFTER_APPLY
    if isinstance(value, str | int | float) and not isinstance(value, bool) and value in sensitive:
        return SENSITIVE
    return json.dumps(value, sort_keys=True, default=str)


def _symbol(diff: ResourceDiff) -> str:
    if diff.kind is ActionKind.REPLACE:
        return "+/-" if diff.create_before_destroy else "-/+"
    return _SYMBOLS[diff.kind]


def render_plan(plan: Plan, *, sensitive: Collection[object] = ()) -> list[str]:
    lines: list[str] = []
    for diff in plan.diffs:
        if diff.kind is ActionKind.NOOP:
            continue
        header = f"  {_symbol(diff)} {diff.resource_id}"
        if diff.replace_because:
            header += f" (replace because {', '.join(diff.replace_because)} changed)"
        lines.append(header)
        for name, change in diff.changes.items():
            after = format_value(change.after, sensitive=sensitive)
            if change.before is None:
                lines.append(f"      {name}: {after}")
            elif change.after is None:
                before = format_value(change.before, sensitive=sensitive)
                lines.append(f"      {name}: {before} -> null")
            else:
                before = format_value(change.before, sensitive=sensitive)
                lines.append(f"      {name}: {before} -> {after}")

    deposed = [action for action in plan.actions if action.deposed_id and not action.replacing]
    for action in deposed:
        lines.append(f"  - {action.resource_id} (deposed {action.deposed_id})")

    counts = plan.summary()
    if not plan.has_changes:
        lines.append("No changes. Remote objects match the configuration.")
    else:
        lines.append(
            f"Plan: {counts[ActionKind.CREATE]} to create, {counts[ActionKind.UPDATE]} to update, "
            f"{counts[ActionKind.REPLACE]} to replace, {counts[ActionKind.DELETE]} to delete."
        )
    return lines


def render_report(report: RunReport) -> list[str]:
    lines: list[str] = []
    for result in report.failed:
        lines.append(f"  failed  {result.action.label}: {result.error}")
    for result in report.skipped:
        lines.append(f"  skipped {result.action.label}: {result.error}")
    status = "complete" if report.succeeded else "incomplete"
    lines.append(
        f"Apply {status}: {len(report.completed)} completed, {len(report.failed)} failed, "
        f"{len(report.skipped)} skipped."
    )
    return lines


def render_records(records: tuple[StateRecord, ...]) -> list[str]:
    lines: list[str] = []
    for record in records:
        line = f"{record.resource_id}\t{record.provider_id}"
        if record.deposed:
            line += f"\t(deposed: {', '.join(record.deposed)})"
        lines.append(line)
    return lines


def render_outputs(
    outputs: Mapping[str, object],
    *,
    sensitive: Collection[object] = (),
) -> list[str]:
    return [
        f"{name} = {format_value(value, sensitive=sensitive)}" for name, value in outputs.items()
    ]


def render_refresh(result: RefreshResult) -> list[str]:
    lines = [f"  ~ {resource_id} (drifted)" for resource_id in result.changed]
    lines.extend(f"  - {resource_id} (gone)" for resource_id in result.removed)
    lines.append(
        f"Refresh complete: {len(result.changed)} changed, {len(result.removed)} removed, "
        f"{len(result.unchanged)} unchanged."
    )
    return lines

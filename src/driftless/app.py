"""Application orchestration entry points."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING

from driftless.adapters.providers import HttpProvider, InMemoryProvider
from driftless.adapters.sqlalchemy import SqlAlchemyStateStore
from driftless.adapters.sqlalchemy.unit_of_work import is_started, startup
from driftless.adapters.state_file import JsonStateFile
from driftless.config import (
    ExecutionConfig,
    ProviderConfig,
    ResilienceConfig,
    StateBackendConfig,
    get_execution_config,
    get_provider_config,
    get_state_backend_config,
)
from driftless.domain.document import load_configuration, parse_assignment
from driftless.domain.reconciliation import Reconciler

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from driftless.domain.document import Configuration
    from driftless.domain.model import StateRecord
    from driftless.domain.ports.provider import Provider
    from driftless.domain.ports.state import StateStore
    from driftless.domain.reconciliation import (
        CancellationToken,
        Plan,
        RefreshResult,
        RunReport,
    )

type StateStoreFactory = Callable[[], StateStore]
type ProviderFactory = Callable[[], Provider]

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RunSettings:
    """Per-invocation options collected by the CLI."""

    config_path: Path
    state_path: Path | None = None
    var_files: tuple[Path, ...] = ()
    assignments: Mapping[str, str] = field(default_factory=dict[str, str])
    parallelism: int | None = None
    refresh: bool | None = None


@dataclass(frozen=True, slots=True)
class ApplyResult:
    plan: Plan
    report: RunReport | None = None

    @property
    def succeeded(self) -> bool:
        return self.report is None or self.report.succeeded


def build_state_store(
    backend: StateBackendConfig | None = None,
    *,
    state_path: Path | None = None,
) -> StateStore:
    """Open the configured State Store; ``state_path`` forces a JSON state file."""

    if state_path is not None:
        return JsonStateFile(state_path)
    config = backend or get_state_backend_config()
    if config.backend == "sqlalchemy":
        if not is_started():
            startup(database_uri=config.database_uri)
        return SqlAlchemyStateStore()
    return JsonStateFile(config.state_path)


def build_provider(config: ProviderConfig | None = None) -> Provider:
    provider_config = config or get_provider_config()
    if provider_config.kind == "http":
        return HttpProvider(
            ResilienceConfig(
                name="driftless-provider",
                timeout_seconds=provider_config.timeout_seconds,
                ratelimit=provider_config.ratelimit,
            ),
        )
    log.info("Using the in-memory provider; remote objects live only for this run")
    return InMemoryProvider()


def build_reconciler(
    settings: RunSettings,
    *,
    provider_factory: ProviderFactory | None = None,
    state_factory: StateStoreFactory | None = None,
    provider_config: ProviderConfig | None = None,
    execution: ExecutionConfig | None = None,
) -> Reconciler:
    resolved_provider_config = provider_config or get_provider_config()
    execution_config = execution or get_execution_config()
    if settings.parallelism is not None:
        execution_config = replace(execution_config, parallelism=settings.parallelism)
    if settings.refresh is not None:
        execution_config = replace(execution_config, refresh=settings.refresh)

    provider = (
        provider_factory() if provider_factory else build_provider(resolved_provider_config)
    )
    state = state_factory() if state_factory else build_state_store(state_path=settings.state_path)
    return Reconciler(
        provider,
        state,
        context=resolved_provider_config.to_context(),
        execution=execution_config,
    )


def load(settings: RunSettings, *, environ: Mapping[str, str] | None = None) -> Configuration:
    return load_configuration(
        settings.config_path,
        var_files=settings.var_files,
        assignments=settings.assignments,
        environ=os.environ if environ is None else environ,
    )


def plan_changes(
    configuration: Configuration,
    *,
    reconciler: Reconciler,
    destroy: bool = False,
    out: Path | None = None,
) -> Plan:
    """Compute a plan without touching remote objects or state."""

    plan = reconciler.plan(configuration, destroy=destroy)
    if out is not None:
        write_plan(plan, out)
    return plan


def apply_changes(
    configuration: Configuration,
    *,
    reconciler: Reconciler,
    destroy: bool = False,
    approve: Callable[[Plan], bool] | None = None,
    cancellation: CancellationToken | None = None,
) -> ApplyResult:
    """Plan, ask ``approve`` (if given) and execute the plan."""

    plan = reconciler.plan(configuration, destroy=destroy)
    if not plan.has_changes:
        log.info("No changes. Remote objects match the configuration.")
        return ApplyResult(plan)
    if approve is not None and not approve(plan):
        log.info("Apply cancelled")
        return ApplyResult(plan)

    report = reconciler.apply(plan, cancellation=cancellation)
    for result in report.failed:
        log.error("%s failed: %s", result.action.label, result.error)
    return ApplyResult(plan, report)


def refresh_state(*, reconciler: Reconciler) -> RefreshResult:
    return reconciler.refresh()


def evaluate_outputs(configuration: Configuration, *, reconciler: Reconciler) -> dict[str, object]:
    return reconciler.outputs(configuration)


def list_state(store: StateStore) -> tuple[StateRecord, ...]:
    return store.list_records()


def write_plan(plan: Plan, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(plan.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    log.info("Wrote plan to %s", path)


def parse_assignments(values: Sequence[str]) -> dict[str, str]:
    return dict(parse_assignment(value) for value in values)

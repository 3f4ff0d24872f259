"""Reconciler facade tying graph, diff, plan and execution together."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from driftless.domain._attributes import MISSING
from driftless.domain.errors import NotFoundError
from driftless.domain.model import UNKNOWN

from .diff import diff_resources
from .execute import Executor, retry_transient
from .graph import build_graph
from .plan import build_destroy_plan, build_plan
from .policy import ExecutionConfig
from .references import record_value, resolve_value

if TYPE_CHECKING:
    from collections.abc import Iterable

    from driftless.domain.document import Configuration
    from driftless.domain.model import Reference, ResourceId, StateRecord, StateSnapshot
    from driftless.domain.ports.provider import Provider, ProviderContext, ResourceSchema
    from driftless.domain.ports.state import StateStore

    from .execute import CancellationToken, RunReport, Sleep
    from .plan import Plan

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RefreshResult:
    changed: tuple[ResourceId, ...] = ()
    removed: tuple[ResourceId, ...] = ()
    unchanged: tuple[ResourceId, ...] = ()


class Reconciler:
    """Plan and apply configurations against one provider and one state store."""

    def __init__(
        self,
        provider: Provider,
        state: StateStore,
        *,
        context: ProviderContext,
        execution: ExecutionConfig | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._provider = provider
        self._state = state
        self._context = context
        self._execution = execution or ExecutionConfig()
        self._sleep: Sleep = sleep or asyncio.sleep
        self._executor = Executor(
            provider, state, context=context, config=self._execution, sleep=self._sleep
        )

    # plan

    def plan(
        self,
        configuration: Configuration,
        *,
        destroy: bool = False,
        refresh: bool | None = None,
    ) -> Plan:
        """Build a plan; nothing is written to state or sent to the provider's write API."""

        return asyncio.run(self.plan_async(configuration, destroy=destroy, refresh=refresh))

    async def plan_async(
        self,
        configuration: Configuration,
        *,
        destroy: bool = False,
        refresh: bool | None = None,
    ) -> Plan:
        graph = build_graph(configuration.declarations)
        snapshot = self._state.snapshot()
        if self._execution.refresh if refresh is None else refresh:
            snapshot = await self._refreshed(snapshot)

        if destroy:
            plan = build_destroy_plan(snapshot, graph=graph)
        else:
            schemas = await self._schemas(resource_id.type for resource_id in graph.order)
            plan = build_plan(graph, diff_resources(graph, snapshot, schemas), snapshot)

        summary = plan.summary()
        log.info(
            "Plan: %s to create, %s to update, %s to replace, %s to delete",
            *summary.values(),
        )
        return plan

    # apply

    def apply(self, plan: Plan, *, cancellation: CancellationToken | None = None) -> RunReport:
        return self._executor.execute(plan, cancellation=cancellation)

    async def apply_async(
        self,
        plan: Plan,
        *,
        cancellation: CancellationToken | None = None,
    ) -> RunReport:
        return await self._executor.execute_async(plan, cancellation=cancellation)

    # refresh

    def refresh(self) -> RefreshResult:
        """Re-read every recorded resource and persist what the provider reports."""

        return asyncio.run(self.refresh_async())

    async def refresh_async(self) -> RefreshResult:
        snapshot = self._state.snapshot()
        refreshed = await self._refreshed(snapshot)
        changed: list[ResourceId] = []
        removed: list[ResourceId] = []
        unchanged: list[ResourceId] = []
        for resource_id in sorted(snapshot):
            record = refreshed.get(resource_id)
            if record is None:
                self._state.delete(resource_id)
                removed.append(resource_id)
            elif record != snapshot[resource_id]:
                self._state.put(record)
                changed.append(resource_id)
            else:
                unchanged.append(resource_id)
        log.info(
            "Refreshed %s resource(s): %s changed, %s removed",
            len(snapshot),
            len(changed),
            len(removed),
        )
        return RefreshResult(tuple(changed), tuple(removed), tuple(unchanged))

    # outputs

    def outputs(self, configuration: Configuration) -> dict[str, object]:
        """Evaluate output expressions against state; unapplied values are UNKNOWN."""

        snapshot = self._state.snapshot()

        def lookup(reference: Reference) -> object:
            record = snapshot.get(reference.target)
            if record is None:
                return UNKNOWN
            value = record_value(record, reference.path)
            return UNKNOWN if value is MISSING else value

        return {
            name: resolve_value(value, lookup)
            for name, value in sorted(configuration.outputs.items())
        }

    # internals

    async def _refreshed(self, snapshot: StateSnapshot) -> dict[ResourceId, StateRecord]:
        semaphore = asyncio.Semaphore(self._execution.parallelism)

        async def read(record: StateRecord) -> StateRecord | None:
            async with semaphore:
                try:
                    observed = await retry_transient(
                        lambda: self._provider.read(
                            record.resource_id.type, record.provider_id, context=self._context
                        ),
                        policy=self._execution.backoff,
                        sleep=self._sleep,
                        label=f"refresh {record.resource_id}",
                    )
                except NotFoundError:
                    log.warning(
                        "%s (%s) no longer exists remotely", record.resource_id, record.provider_id
                    )
                    return None
            return record.with_attributes(observed)

        records = [snapshot[resource_id] for resource_id in sorted(snapshot)]
        results = await asyncio.gather(*(read(record) for record in records))
        return {
            record.resource_id: refreshed
            for record, refreshed in zip(records, results, strict=True)
            if refreshed is not None
        }

    async def _schemas(self, resource_types: Iterable[str]) -> dict[str, ResourceSchema]:
        types = sorted(set(resource_types))
        schemas = await asyncio.gather(
            *(
                retry_transient(
                    lambda resource_type=resource_type: self._provider.schema(
                        resource_type, context=self._context
                    ),
                    policy=self._execution.backoff,
                    sleep=self._sleep,
                    label=f"schema {resource_type}",
                )
                for resource_type in types
            )
        )
        return dict(zip(types, schemas, strict=True))

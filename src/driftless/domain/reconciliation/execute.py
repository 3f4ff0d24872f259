"""Executor: apply a plan through a provider, recording results in state.

Steps are dispatched in plan order as soon as every step they require has
completed, up to ``parallelism`` at a time. A step's state write happens
before its dependents are released, so references resolved at execution
time always see the values written by prerequisites.

A domain error fails one step and skips its dependents. Any other exception
stops dispatch, lets in-flight steps finish and is then re-raised.
"""

from __future__ import annotations

import asyncio
import threading
from collections import defaultdict
from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING

from driftless.domain._attributes import MISSING
from driftless.domain.errors import (
    DriftlessError,
    NotFoundError,
    ProviderError,
    ProviderTransientError,
    UnresolvedReferenceError,
)
from driftless.domain.model import ActionKind, StateRecord, StepOutcome

from .policy import ExecutionConfig
from .references import record_value, resolve_value

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from driftless.domain.model import Declaration, Reference, ResourceId
    from driftless.domain.ports.provider import Provider, ProviderContext
    from driftless.domain.ports.state import StateStore

    from .plan import Plan, PlannedAction
    from .policy import BackoffPolicy

type Sleep = Callable[[float], Awaitable[None]]

log = getLogger(__name__)


class CancellationToken:
    """Run-level cancellation flag, safe to set from a signal handler or thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True, slots=True)
class StepResult:
    action: PlannedAction
    outcome: StepOutcome
    error: str | None = None
    attempts: int = 0


@dataclass(frozen=True, slots=True)
class RunReport:
    """Outcome of every step of an executed plan, in plan order."""

    results: tuple[StepResult, ...] = ()

    def _with(self, outcome: StepOutcome) -> tuple[StepResult, ...]:
        return tuple(result for result in self.results if result.outcome is outcome)

    @property
    def completed(self) -> tuple[StepResult, ...]:
        return self._with(StepOutcome.COMPLETED)

    @property
    def failed(self) -> tuple[StepResult, ...]:
        return self._with(StepOutcome.FAILED)

    @property
    def skipped(self) -> tuple[StepResult, ...]:
        return self._with(StepOutcome.SKIPPED)

    @property
    def succeeded(self) -> bool:
        return not self.failed and not self.skipped


@dataclass(slots=True)
class _Attempts:
    count: int = 0


@dataclass(slots=True)
class _Schedule:
    """Mutable bookkeeping of one run."""

    pending: dict[int, PlannedAction]
    waiting_on: dict[int, set[int]]
    dependents: dict[int, list[int]]
    results: dict[int, StepResult] = field(default_factory=dict[int, StepResult])

    @classmethod
    def of(cls, plan: Plan) -> _Schedule:
        dependents: dict[int, list[int]] = defaultdict(list)
        for action in plan.actions:
            for required in action.requires:
                dependents[required].append(action.index)
        return cls(
            pending={action.index: action for action in plan.actions},
            waiting_on={action.index: set(action.requires) for action in plan.actions},
            dependents=dependents,
        )

    def ready(self) -> list[PlannedAction]:
        return [self.pending[index] for index in sorted(self.pending) if not self.waiting_on[index]]

    def release(self, index: int) -> None:
        for dependent in self.dependents[index]:
            self.waiting_on[dependent].discard(index)

    def skip_dependents(self, index: int, reason: str) -> None:
        stack = list(self.dependents[index])
        while stack:
            current = stack.pop()
            action = self.pending.pop(current, None)
            if action is None:
                continue
            self.results[current] = StepResult(action, StepOutcome.SKIPPED, error=reason)
            stack.extend(self.dependents[current])

    def skip_pending(self, reason: str) -> None:
        for index in sorted(self.pending):
            self.results[index] = StepResult(self.pending[index], StepOutcome.SKIPPED, error=reason)
        self.pending.clear()


class Executor:
    """Runs plan steps against a provider and a state store."""

    def __init__(
        self,
        provider: Provider,
        state: StateStore,
        *,
        context: ProviderContext,
        config: ExecutionConfig | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._provider = provider
        self._state = state
        self._context = context
        self._config = config or ExecutionConfig()
        self._sleep: Sleep = sleep or asyncio.sleep

    def execute(self, plan: Plan, *, cancellation: CancellationToken | None = None) -> RunReport:
        return asyncio.run(self.execute_async(plan, cancellation=cancellation))

    async def execute_async(
        self,
        plan: Plan,
        *,
        cancellation: CancellationToken | None = None,
    ) -> RunReport:
        token = cancellation or CancellationToken()
        schedule = _Schedule.of(plan)
        running: dict[asyncio.Task[StepResult], PlannedAction] = {}
        busy: set[ResourceId] = set()
        aborted: Exception | None = None

        while schedule.pending or running:
            if aborted is not None:
                schedule.skip_pending("run aborted")
            elif token.cancelled:
                if schedule.pending:
                    log.warning("Run cancelled, skipping %s pending step(s)", len(schedule.pending))
                schedule.skip_pending("cancelled")
            else:
                for action in schedule.ready():
                    if len(running) >= self._config.parallelism:
                        break
                    if action.resource_id in busy:
                        continue
                    del schedule.pending[action.index]
                    busy.add(action.resource_id)
                    running[asyncio.create_task(self._run_step(action))] = action

            if not running:
                # only reachable when the remaining steps wait on something that never ran
                schedule.skip_pending("unsatisfied prerequisites")
                break

            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                action = running.pop(task)
                busy.discard(action.resource_id)
                try:
                    result = task.result()
                except Exception as exc:
                    if aborted is None:
                        log.exception("%s aborted the run, draining in-flight steps", action.label)
                        aborted = exc
                    result = StepResult(action, StepOutcome.FAILED, error=str(exc))
                schedule.results[action.index] = result
                if result.outcome is StepOutcome.COMPLETED:
                    schedule.release(action.index)
                else:
                    schedule.skip_dependents(action.index, f"prerequisite {action.label} failed")

        report = RunReport(tuple(schedule.results[index] for index in sorted(schedule.results)))
        log.info(
            "Run finished: %s completed, %s failed, %s skipped",
            len(report.completed),
            len(report.failed),
            len(report.skipped),
        )
        if aborted is not None:
            raise aborted
        return report

    async def _run_step(self, action: PlannedAction) -> StepResult:
        attempts = _Attempts()
        log.info("Starting %s", action.label)
        try:
            await self._apply(action, attempts)
        except DriftlessError as exc:
            log.error("%s failed: %s", action.label, exc)  # noqa: TRY400
            return StepResult(action, StepOutcome.FAILED, error=str(exc), attempts=attempts.count)
        log.info("Finished %s", action.label)
        return StepResult(action, StepOutcome.COMPLETED, attempts=attempts.count)

    async def _apply(self, action: PlannedAction, attempts: _Attempts) -> None:
        match action.kind:
            case ActionKind.CREATE:
                await self._create(action, attempts)
            case ActionKind.UPDATE:
                await self._update(action, attempts)
            case ActionKind.DELETE:
                await self._delete(action, attempts)
            case ActionKind.NOOP:
                await self._touch(action)
            case _:
                raise ValueError(f"Unsupported plan step kind {action.kind}")

    async def _create(self, action: PlannedAction, attempts: _Attempts) -> None:
        declaration = _require_declaration(action)
        resource_type = action.resource_id.type
        desired = self._resolve(action.resource_id, declaration.attributes)

        provider_id, returned = await self._call(
            action,
            attempts,
            lambda: self._provider.create(resource_type, desired, context=self._context),
        )

        deposed: tuple[str, ...] = ()
        existing = self._state.get(action.resource_id)
        if existing is not None:
            deposed = existing.deposed
        if action.replacing and declaration.lifecycle.create_before_destroy and action.provider_id:
            deposed = (*deposed, action.provider_id)
        await asyncio.to_thread(
            self._state.put,
            StateRecord(
                resource_id=action.resource_id,
                provider_id=provider_id,
                attributes={**desired, **returned},
                dependencies=action.dependencies,
                create_before_destroy=declaration.lifecycle.create_before_destroy,
                deposed=deposed,
            )
        )
        if declaration.lifecycle.confirm_propagation:
            await self._confirm(action, attempts, provider_id, desired)

    async def _update(self, action: PlannedAction, attempts: _Attempts) -> None:
        declaration = _require_declaration(action)
        record = self._state.get(action.resource_id)
        if record is None:
            raise ProviderError(f"{action.resource_id} has no state record to update")
        desired = self._resolve(action.resource_id, declaration.attributes)
        delta = {name: desired.get(name) for name in action.changes}

        async def update() -> dict[str, object]:
            try:
                return await self._provider.update(
                    action.resource_id.type, record.provider_id, delta, context=self._context
                )
            except NotFoundError as exc:
                raise ProviderError(
                    f"{action.resource_id} ({record.provider_id}) no longer exists remotely"
                ) from exc

        returned = await self._call(action, attempts, update)

        attributes = dict(record.attributes)
        for name in action.changes:
            if name in desired:
                attributes[name] = desired[name]
            else:
                attributes.pop(name, None)
        attributes.update(returned)
        await asyncio.to_thread(
            self._state.put,
            replace(
                record,
                attributes=attributes,
                dependencies=action.dependencies,
                create_before_destroy=declaration.lifecycle.create_before_destroy,
            )
        )
        if declaration.lifecycle.confirm_propagation:
            expected = {name: value for name, value in delta.items() if value is not None}
            await self._confirm(action, attempts, record.provider_id, expected)

    async def _delete(self, action: PlannedAction, attempts: _Attempts) -> None:
        provider_id = action.deposed_id or action.provider_id
        if provider_id is None:
            raise ValueError(f"Delete step for {action.resource_id} carries no provider id")

        async def delete() -> None:
            try:
                await self._provider.delete(
                    action.resource_id.type, provider_id, context=self._context
                )
            except NotFoundError:
                log.info("%s (%s) was already gone", action.resource_id, provider_id)

        await self._call(action, attempts, delete)

        if action.deposed_id is None:
            await asyncio.to_thread(self._state.delete, action.resource_id)
            return
        record = self._state.get(action.resource_id)
        if record is not None and action.deposed_id in record.deposed:
            await asyncio.to_thread(
                self._state.put,
                record.with_deposed(item for item in record.deposed if item != action.deposed_id)
            )

    async def _touch(self, action: PlannedAction) -> None:
        record = self._state.get(action.resource_id)
        if record is None or action.declaration is None:
            return
        create_before_destroy = action.declaration.lifecycle.create_before_destroy
        if (
            record.dependencies != action.dependencies
            or record.create_before_destroy != create_before_destroy
        ):
            await asyncio.to_thread(
                self._state.put,
                replace(
                    record,
                    dependencies=action.dependencies,
                    create_before_destroy=create_before_destroy,
                )
            )

    async def _call[T](
        self,
        action: PlannedAction,
        attempts: _Attempts,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        return await retry_transient(
            call,
            policy=self._config.backoff,
            sleep=self._sleep,
            label=action.label,
            attempts=attempts,
        )

    async def _confirm(
        self,
        action: PlannedAction,
        attempts: _Attempts,
        provider_id: str,
        expected: Mapping[str, object],
    ) -> None:
        """Poll the provider until ``expected`` values are observable."""

        policy = self._config.propagation
        resource_type = action.resource_id.type
        for poll in range(1, policy.attempts + 1):
            try:
                observed = await self._call(
                    action,
                    attempts,
                    lambda: self._provider.read(resource_type, provider_id, context=self._context),
                )
            except NotFoundError:
                log.debug("%s not readable yet (poll %s)", action.label, poll)
                observed = None
            if observed is not None and all(
                observed.get(name) == value for name, value in expected.items()
            ):
                log.debug("%s confirmed after %s poll(s)", action.label, poll)
                return
            if poll < policy.attempts:
                await self._sleep(policy.interval_seconds)
        raise ProviderError(
            f"{action.label}: applied values not observable after {policy.attempts} poll(s)"
        )

    def _resolve(
        self,
        dependent: ResourceId,
        attributes: Mapping[str, object],
    ) -> dict[str, object]:
        def lookup(reference: Reference) -> object:
            record = self._state.get(reference.target)
            value = MISSING if record is None else record_value(record, reference.path)
            if value is MISSING:
                raise UnresolvedReferenceError(
                    f"{dependent} references {reference} which is not in state",
                    dependent=dependent,
                )
            return value

        return {name: resolve_value(value, lookup) for name, value in attributes.items()}


async def retry_transient[T](
    call: Callable[[], Awaitable[T]],
    *,
    policy: BackoffPolicy,
    sleep: Sleep,
    label: str,
    attempts: _Attempts | None = None,
) -> T:
    """Run ``call``, retrying transient provider errors with backoff.

    Raises :class:`ProviderError` once ``policy.attempts`` calls have failed.
    """

    attempt = 0
    while True:
        attempt += 1
        if attempts is not None:
            attempts.count += 1
        try:
            return await call()
        except ProviderTransientError as exc:
            if attempt >= policy.attempts:
                message = f"{label} still failing after {attempt} attempt(s): {exc}"
                raise ProviderError(message) from exc
            delay = policy.delay(attempt, retry_after=exc.retry_after)
            log.warning(
                "%s hit a transient provider error (%s), retrying in %.2fs", label, exc, delay
            )
            await sleep(delay)


def _require_declaration(action: PlannedAction) -> Declaration:
    if action.declaration is None:
        raise ValueError(f"{action.label} has no declaration")
    return action.declaration

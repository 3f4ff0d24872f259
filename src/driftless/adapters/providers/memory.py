"""In-process provider keeping remote objects in a dictionary.

Used for dry runs, local experiments and tests. Failures can be injected per
operation and resource type; reads can be made to lag behind writes to model
eventually consistent remote APIs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Literal

from driftless.domain.errors import NotFoundError, ProviderError, ProviderTransientError
from driftless.domain.ports.provider import ResourceSchema

if TYPE_CHECKING:
    from collections.abc import Mapping

    from driftless.domain.ports.provider import Attributes, ProviderContext

type Operation = Literal["schema", "create", "read", "update", "delete"]

log = getLogger(__name__)

DEFAULT_SCHEMA = ResourceSchema(computed=frozenset({"id", "arn"}))


@dataclass(frozen=True, slots=True)
class ProviderCall:
    operation: Operation
    resource_type: str
    provider_id: str | None = None


@dataclass(slots=True)
class _Failure:
    operation: Operation
    resource_type: str | None
    remaining: int
    transient: bool
    message: str
    retry_after: float | None


@dataclass(slots=True)
class _Lag:
    reads: int
    previous: Attributes


class InMemoryProvider:
    """Provider whose remote objects live in this process."""

    def __init__(
        self,
        schemas: Mapping[str, ResourceSchema] | None = None,
        *,
        latency: float = 0.0,
        propagation_lag: int = 0,
    ) -> None:
        self._schemas = dict(schemas or {})
        self._latency = latency
        self._propagation_lag = propagation_lag
        self._objects: dict[tuple[str, str], Attributes] = {}
        self._counters: dict[str, int] = {}
        self._failures: list[_Failure] = []
        self._lags: dict[tuple[str, str], _Lag] = {}
        self.calls: list[ProviderCall] = []
        self.in_flight = 0
        self.max_in_flight = 0

    # test and inspection helpers

    def fail(
        self,
        operation: Operation,
        resource_type: str | None = None,
        *,
        times: int = 1,
        transient: bool = False,
        message: str = "injected failure",
        retry_after: float | None = None,
    ) -> None:
        """Make the next ``times`` matching calls raise."""

        self._failures.append(
            _Failure(operation, resource_type, times, transient, message, retry_after)
        )

    def objects(self, resource_type: str | None = None) -> dict[str, Attributes]:
        """Return a copy of stored objects keyed by provider id."""

        return {
            provider_id: dict(attributes)
            for (kind, provider_id), attributes in self._objects.items()
            if resource_type is None or kind == resource_type
        }

    def seed(self, resource_type: str, provider_id: str, attributes: Mapping[str, object]) -> None:
        self._objects[(resource_type, provider_id)] = {**attributes, "id": provider_id}

    def remove(self, resource_type: str, provider_id: str) -> None:
        """Delete an object behind the reconciler's back."""

        self._objects.pop((resource_type, provider_id), None)

    def operations(self, operation: Operation | None = None) -> list[ProviderCall]:
        return [call for call in self.calls if operation is None or call.operation == operation]

    # Provider protocol

    async def schema(self, resource_type: str, *, context: ProviderContext) -> ResourceSchema:
        await self._enter("schema", resource_type, None)
        try:
            return self._schemas.get(resource_type, DEFAULT_SCHEMA)
        finally:
            self._leave()

    async def create(
        self,
        resource_type: str,
        attributes: Mapping[str, object],
        *,
        context: ProviderContext,
    ) -> tuple[str, Attributes]:
        await self._enter("create", resource_type, None)
        try:
            count = self._counters.get(resource_type, 0) + 1
            self._counters[resource_type] = count
            provider_id = f"{resource_type}-{count:04d}"
            stored: Attributes = dict(attributes)
            stored.update(self._computed(resource_type, provider_id, context))
            self._write(resource_type, provider_id, stored, previous={"id": provider_id})
            log.debug("Created %s %s", resource_type, provider_id)
            return provider_id, dict(stored)
        finally:
            self._leave()

    async def read(
        self, resource_type: str, provider_id: str, *, context: ProviderContext
    ) -> Attributes:
        await self._enter("read", resource_type, provider_id)
        try:
            key = (resource_type, provider_id)
            current = self._require(key)
            lag = self._lags.get(key)
            if lag is not None and lag.reads > 0:
                lag.reads -= 1
                return dict(lag.previous)
            return dict(current)
        finally:
            self._leave()

    async def update(
        self,
        resource_type: str,
        provider_id: str,
        delta: Mapping[str, object],
        *,
        context: ProviderContext,
    ) -> Attributes:
        await self._enter("update", resource_type, provider_id)
        try:
            key = (resource_type, provider_id)
            previous = self._require(key)
            schema = self._schemas.get(resource_type, DEFAULT_SCHEMA)
            rejected = sorted(name for name in delta if name in schema.immutable)
            if rejected:
                raise ProviderError(
                    f"Cannot update immutable attribute(s) {', '.join(rejected)} "
                    f"of {resource_type} {provider_id}"
                )
            stored = dict(previous)
            for name, value in delta.items():
                if value is None:
                    stored.pop(name, None)
                else:
                    stored[name] = value
            self._write(resource_type, provider_id, stored, previous=previous)
            return dict(stored)
        finally:
            self._leave()

    async def delete(
        self, resource_type: str, provider_id: str, *, context: ProviderContext
    ) -> None:
        await self._enter("delete", resource_type, provider_id)
        try:
            key = (resource_type, provider_id)
            self._require(key)
            del self._objects[key]
            self._lags.pop(key, None)
            log.debug("Deleted %s %s", resource_type, provider_id)
        finally:
            self._leave()

    # internals

    async def _enter(
        self, operation: Operation, resource_type: str, provider_id: str | None
    ) -> None:
        self.calls.append(ProviderCall(operation, resource_type, provider_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._latency:
                await asyncio.sleep(self._latency)
            self._maybe_fail(operation, resource_type)
        except BaseException:
            self._leave()
            raise

    def _leave(self) -> None:
        self.in_flight -= 1

    def _maybe_fail(self, operation: Operation, resource_type: str) -> None:
        for failure in self._failures:
            if failure.remaining <= 0 or failure.operation != operation:
                continue
            if failure.resource_type not in {None, resource_type}:
                continue
            failure.remaining -= 1
            message = f"{operation} {resource_type}: {failure.message}"
            if failure.transient:
                raise ProviderTransientError(message, retry_after=failure.retry_after)
            raise ProviderError(message)

    def _require(self, key: tuple[str, str]) -> Attributes:
        try:
            return self._objects[key]
        except KeyError:
            raise NotFoundError(f"{key[0]} {key[1]} does not exist") from None

    def _write(
        self,
        resource_type: str,
        provider_id: str,
        stored: Attributes,
        *,
        previous: Attributes,
    ) -> None:
        key = (resource_type, provider_id)
        self._objects[key] = stored
        if self._propagation_lag:
            self._lags[key] = _Lag(self._propagation_lag, dict(previous))

    def _computed(
        self, resource_type: str, provider_id: str, context: ProviderContext
    ) -> Attributes:
        schema = self._schemas.get(resource_type, DEFAULT_SCHEMA)
        region = context.region or "local"
        values: Attributes = {"id": provider_id}
        for name in sorted(schema.computed - {"id"}):
            if name == "arn":
                values[name] = f"arn:driftless:{region}:{resource_type}/{provider_id}"
            else:
                values[name] = f"{provider_id}/{name}"
        return values


if TYPE_CHECKING:
    from driftless.domain.ports.provider import Provider

    _provider_check: Provider = InMemoryProvider()

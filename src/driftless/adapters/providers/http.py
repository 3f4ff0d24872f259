"""Provider speaking to a generic REST resource API.

Endpoints::

    POST   /resources/{type}          create   {"attributes": {...}}
    GET    /resources/{type}/{id}     read
    PATCH  /resources/{type}/{id}     update   {"attributes": {...delta}}
    DELETE /resources/{type}/{id}     delete
    GET    /schemas/{type}            resource schema

Resource responses look like ``{"id": "...", "attributes": {...}}``.
"""

from __future__ import annotations

from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from driftless.adapters.http_resilience import ResilientClient, build_limiter
from driftless.config.http_resilience import ResilienceConfig
from driftless.domain.errors import NotFoundError, ProviderError, ProviderTransientError
from driftless.domain.ports.provider import ResourceSchema

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from driftless.domain.ports.provider import Attributes, ProviderContext

type ClientFactory = Callable[[ResilienceConfig], ResilientClient]

log = getLogger(__name__)

REGION_HEADER = "X-Driftless-Region"


class ProviderPayloadModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ResourcePayload(ProviderPayloadModel):
    id: str
    attributes: dict[str, Any] = Field(default_factory=dict[str, Any])


class SchemaPayload(ProviderPayloadModel):
    immutable: list[str] = Field(default_factory=list[str])
    computed: list[str] = Field(default_factory=lambda: ["id"])

    def to_schema(self) -> ResourceSchema:
        return ResourceSchema(
            immutable=frozenset(self.immutable),
            computed=frozenset(self.computed),
        )


class HttpProvider:
    """REST provider; endpoint and credentials come from the call's context."""

    def __init__(
        self,
        resilience: ResilienceConfig | None = None,
        *,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._resilience = resilience or ResilienceConfig(name="driftless-provider")
        self._limiter = build_limiter(self._resilience.ratelimit)
        self._client_factory = client_factory or self._default_client

    def _default_client(self, config: ResilienceConfig) -> ResilientClient:
        return ResilientClient(config, limiter=self._limiter)

    async def schema(self, resource_type: str, *, context: ProviderContext) -> ResourceSchema:
        response = await self._send(context, "GET", f"/schemas/{resource_type}")
        if response.status_code == httpx.codes.NOT_FOUND:
            raise ProviderError(f"Provider does not know resource type {resource_type!r}")
        _raise_for_status(response, f"schema {resource_type}")
        return _parse(SchemaPayload, response).to_schema()

    async def create(
        self,
        resource_type: str,
        attributes: Mapping[str, object],
        *,
        context: ProviderContext,
    ) -> tuple[str, Attributes]:
        response = await self._send(
            context,
            "POST",
            f"/resources/{resource_type}",
            json={"attributes": dict(attributes)},
        )
        _raise_for_status(response, f"create {resource_type}")
        payload = _parse(ResourcePayload, response)
        return payload.id, {**payload.attributes, "id": payload.id}

    async def read(
        self, resource_type: str, provider_id: str, *, context: ProviderContext
    ) -> Attributes:
        response = await self._send(context, "GET", f"/resources/{resource_type}/{provider_id}")
        _raise_for_status(response, f"read {resource_type} {provider_id}")
        payload = _parse(ResourcePayload, response)
        return {**payload.attributes, "id": payload.id}

    async def update(
        self,
        resource_type: str,
        provider_id: str,
        delta: Mapping[str, object],
        *,
        context: ProviderContext,
    ) -> Attributes:
        response = await self._send(
            context,
            "PATCH",
            f"/resources/{resource_type}/{provider_id}",
            json={"attributes": dict(delta)},
        )
        _raise_for_status(response, f"update {resource_type} {provider_id}")
        payload = _parse(ResourcePayload, response)
        return {**payload.attributes, "id": payload.id}

    async def delete(
        self, resource_type: str, provider_id: str, *, context: ProviderContext
    ) -> None:
        response = await self._send(context, "DELETE", f"/resources/{resource_type}/{provider_id}")
        _raise_for_status(response, f"delete {resource_type} {provider_id}")

    async def _send(
        self,
        context: ProviderContext,
        method: str,
        path: str,
        *,
        json: object = None,
    ) -> httpx.Response:
        if not context.endpoint:
            raise ProviderError("HTTP provider requires an endpoint in the provider context")
        config = replace(
            self._resilience,
            base_url=context.endpoint,
            default_headers=_headers(self._resilience, context),
        )
        try:
            async with self._client_factory(config) as client:
                if json is None:
                    return await client.request(method, path)
                return await client.request(method, path, json=json)
        except httpx.TransportError as exc:
            raise ProviderTransientError(f"{method} {path} failed: {exc}") from exc


def _headers(resilience: ResilienceConfig, context: ProviderContext) -> dict[str, str]:
    headers = {"Accept": "application/json", **(resilience.default_headers or {})}
    token = context.credentials.get("token")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    if context.region:
        headers[REGION_HEADER] = context.region
    return headers


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    status = response.status_code
    if status < httpx.codes.BAD_REQUEST:
        return
    detail = _detail(response)
    if status == httpx.codes.NOT_FOUND:
        raise NotFoundError(f"{operation}: not found")
    if status == httpx.codes.TOO_MANY_REQUESTS or status >= httpx.codes.INTERNAL_SERVER_ERROR:
        log.debug("%s answered %s: %s", operation, status, detail)
        raise ProviderTransientError(
            f"{operation}: HTTP {status} {detail}".rstrip(),
            retry_after=_retry_after(response),
        )
    raise ProviderError(f"{operation}: HTTP {status} {detail}".rstrip())


def _detail(response: httpx.Response) -> str:
    try:
        payload: object = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict) and "message" in payload:
        return str(payload["message"])  # pyright: ignore[reportUnknownArgumentType]
    return response.text[:200]


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _parse[TModel: BaseModel](model: type[TModel], response: httpx.Response) -> TModel:
    try:
        return model.model_validate_json(response.content)
    except ValidationError as exc:
        raise ProviderError(f"Unexpected provider response from {response.url}:\n{exc}") from exc


if TYPE_CHECKING:
    from driftless.domain.ports.provider import Provider

    _provider_check: Provider = HttpProvider()

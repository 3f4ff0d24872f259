"""Provider selection and the context object passed to provider calls."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Literal, cast

from driftless.domain.ports.provider import ProviderContext

from .env import env_float, env_int, optional_env, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit

if TYPE_CHECKING:
    from collections.abc import Mapping

type ProviderKind = Literal["memory", "http"]

PROVIDER_KINDS: Final[tuple[str, ...]] = ("memory", "http")


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    kind: ProviderKind = "memory"
    endpoint: str | None = None
    token: str | None = field(default=None, repr=False)
    region: str | None = None
    timeout_seconds: float = 30.0
    ratelimit: RateLimit | None = None
    settings: Mapping[str, object] = field(default_factory=dict[str, object])

    def to_context(self) -> ProviderContext:
        credentials = {"token": self.token} if self.token else {}
        return ProviderContext(
            endpoint=self.endpoint,
            region=self.region,
            credentials=credentials,
            settings=self.settings,
        )


def get_provider_config() -> ProviderConfig:
    kind = os.getenv("DRIFTLESS_PROVIDER", "memory").strip().lower()
    if kind not in PROVIDER_KINDS:
        raise ConfigurationError(f"Unsupported provider: {kind}")

    endpoint = optional_env("DRIFTLESS_PROVIDER_URL")
    if kind == "http":
        endpoint = require_env_vars(("DRIFTLESS_PROVIDER_URL",))["DRIFTLESS_PROVIDER_URL"]

    max_calls = env_int("DRIFTLESS_PROVIDER_MAX_CALLS", 0, minimum=0)
    ratelimit = (
        RateLimit(
            max_calls=max_calls,
            per_seconds=env_float("DRIFTLESS_PROVIDER_PER_SECONDS", 1.0, minimum=0.001),
        )
        if max_calls
        else None
    )

    return ProviderConfig(
        kind=cast("ProviderKind", kind),
        endpoint=endpoint,
        token=optional_env("DRIFTLESS_PROVIDER_TOKEN"),
        region=optional_env("DRIFTLESS_REGION"),
        timeout_seconds=env_float("DRIFTLESS_PROVIDER_TIMEOUT", 30.0, minimum=0.1),
        ratelimit=ratelimit,
    )

"""Executor tuning loaded from the environment."""

from __future__ import annotations

from driftless.domain.reconciliation.policy import (
    DEFAULT_PARALLELISM,
    BackoffPolicy,
    ExecutionConfig,
    PropagationPolicy,
)

from .env import env_bool, env_float, env_int

__all__ = ["BackoffPolicy", "ExecutionConfig", "PropagationPolicy", "get_execution_config"]


def get_execution_config() -> ExecutionConfig:
    return ExecutionConfig(
        parallelism=env_int("DRIFTLESS_PARALLELISM", DEFAULT_PARALLELISM, minimum=1),
        backoff=BackoffPolicy(
            attempts=env_int("DRIFTLESS_RETRY_ATTEMPTS", 5, minimum=1),
            base_delay=env_float("DRIFTLESS_RETRY_BASE_DELAY", 0.5, minimum=0.0),
            max_delay=env_float("DRIFTLESS_RETRY_MAX_DELAY", 30.0, minimum=0.0),
        ),
        propagation=PropagationPolicy(
            interval_seconds=env_float("DRIFTLESS_PROPAGATION_INTERVAL", 2.0, minimum=0.0),
            attempts=env_int("DRIFTLESS_PROPAGATION_ATTEMPTS", 15, minimum=1),
        ),
        refresh=env_bool("DRIFTLESS_REFRESH", True),  # noqa: FBT003
    )

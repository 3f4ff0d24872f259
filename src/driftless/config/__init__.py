"""Application configuration helpers."""

from __future__ import annotations

from .env import env_bool, env_float, env_int, optional_env, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .execution import BackoffPolicy, ExecutionConfig, PropagationPolicy, get_execution_config
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .provider import ProviderConfig, get_provider_config
from .storage import (
    StateBackendConfig,
    StorageConfig,
    get_state_backend_config,
    get_storage_config,
)

__all__ = [
    "BackoffPolicy",
    "ConfigurationError",
    "ExecutionConfig",
    "MissingConfigurationError",
    "PropagationPolicy",
    "ProviderConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StateBackendConfig",
    "StorageConfig",
    "configure_logging",
    "env_bool",
    "env_float",
    "env_int",
    "get_execution_config",
    "get_provider_config",
    "get_state_backend_config",
    "get_storage_config",
    "optional_env",
    "require_env_vars",
]

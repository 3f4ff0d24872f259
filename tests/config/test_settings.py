from __future__ import annotations

from pathlib import Path  # noqa: TC003

import pytest

from driftless.config import (
    ConfigurationError,
    ExecutionConfig,
    MissingConfigurationError,
    RateLimit,
    get_execution_config,
    get_provider_config,
    get_state_backend_config,
    get_storage_config,
)
from driftless.config.execution import BackoffPolicy
from driftless.config.storage import DEFAULT_DB_FILENAME, DEFAULT_STATE_FILENAME


def test_storage_config_prefers_explicit_data_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("DRIFTLESS_DATA_DIR", str(tmp_path / "data"))

    storage = get_storage_config()

    assert storage.resolve_data_dir() == (tmp_path / "data").resolve()
    assert storage.state_path() == (tmp_path / "data" / DEFAULT_STATE_FILENAME).resolve()
    assert (tmp_path / "data").is_dir()


def test_state_backend_defaults_to_state_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("DRIFTLESS_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("DRIFTLESS_STATE_BACKEND", raising=False)
    monkeypatch.delenv("DRIFTLESS_STATE_PATH", raising=False)
    monkeypatch.delenv("DATABASE_URI", raising=False)

    config = get_state_backend_config()

    assert config.backend == "file"
    assert config.state_path == (tmp_path / DEFAULT_STATE_FILENAME).resolve()
    assert not (tmp_path / DEFAULT_DB_FILENAME).exists()


def test_sqlalchemy_backend_uses_database_uri_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DRIFTLESS_STATE_BACKEND", "SQLAlchemy")
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")

    config = get_state_backend_config()

    assert config.backend == "sqlalchemy"
    assert config.database_uri == "sqlite:///override.db"


def test_sqlalchemy_backend_defaults_to_data_dir_database(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("DRIFTLESS_STATE_BACKEND", "sqlalchemy")
    monkeypatch.setenv("DRIFTLESS_DATA_DIR", str(tmp_path / "db-dir"))
    monkeypatch.delenv("DATABASE_URI", raising=False)

    config = get_state_backend_config()

    expected = (tmp_path / "db-dir" / DEFAULT_DB_FILENAME).resolve()
    assert config.database_uri == f"sqlite+pysqlite:///{expected}"
    assert expected.parent.is_dir()


def test_unknown_state_backend_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DRIFTLESS_STATE_BACKEND", "etcd")

    with pytest.raises(ConfigurationError, match="Unsupported state backend"):
        get_state_backend_config()


def test_provider_defaults_to_memory(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DRIFTLESS_PROVIDER",
        "DRIFTLESS_PROVIDER_URL",
        "DRIFTLESS_PROVIDER_TOKEN",
        "DRIFTLESS_REGION",
        "DRIFTLESS_PROVIDER_MAX_CALLS",
    ):
        monkeypatch.delenv(name, raising=False)

    config = get_provider_config()

    assert config.kind == "memory"
    assert config.ratelimit is None
    assert config.to_context().credentials == {}


def test_http_provider_requires_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DRIFTLESS_PROVIDER", "http")
    monkeypatch.delenv("DRIFTLESS_PROVIDER_URL", raising=False)

    with pytest.raises(MissingConfigurationError, match="DRIFTLESS_PROVIDER_URL"):
        get_provider_config()


def test_http_provider_context_carries_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DRIFTLESS_PROVIDER", "http")
    monkeypatch.setenv("DRIFTLESS_PROVIDER_URL", "https://provider.test")
    monkeypatch.setenv("DRIFTLESS_PROVIDER_TOKEN", "s3cr3t")
    monkeypatch.setenv("DRIFTLESS_REGION", "eu-test-1")
    monkeypatch.setenv("DRIFTLESS_PROVIDER_MAX_CALLS", "5")
    monkeypatch.setenv("DRIFTLESS_PROVIDER_PER_SECONDS", "2")

    config = get_provider_config()
    context = config.to_context()

    assert config.ratelimit == RateLimit(max_calls=5, per_seconds=2.0)
    assert context.endpoint == "https://provider.test"
    assert context.region == "eu-test-1"
    assert context.credentials == {"token": "s3cr3t"}
    assert "s3cr3t" not in repr(config)
    assert "s3cr3t" not in repr(context)


def test_unknown_provider_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DRIFTLESS_PROVIDER", "carrier-pigeon")

    with pytest.raises(ConfigurationError, match="Unsupported provider"):
        get_provider_config()


def test_execution_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DRIFTLESS_PARALLELISM", "3")
    monkeypatch.setenv("DRIFTLESS_RETRY_ATTEMPTS", "2")
    monkeypatch.setenv("DRIFTLESS_REFRESH", "false")

    config = get_execution_config()

    assert config.parallelism == 3
    assert config.backoff.attempts == 2
    assert config.refresh is False


def test_execution_config_rejects_zero_parallelism(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DRIFTLESS_PARALLELISM", "0")

    with pytest.raises(ConfigurationError):
        get_execution_config()


def test_backoff_grows_exponentially_up_to_the_cap() -> None:
    policy = BackoffPolicy(attempts=6, base_delay=1.0, max_delay=5.0, jitter=0.0)

    assert [policy.delay(attempt) for attempt in range(1, 5)] == [1.0, 2.0, 4.0, 5.0]
    assert policy.delay(1, retry_after=3.0) == 3.0
    assert policy.delay(1, retry_after=60.0) == 5.0


def test_backoff_jitter_stays_within_bounds() -> None:
    policy = BackoffPolicy(base_delay=1.0, jitter=0.5)

    delays = [policy.delay(1) for _ in range(50)]

    assert all(1.0 <= delay <= 1.5 for delay in delays)


def test_backoff_requires_at_least_one_attempt() -> None:
    with pytest.raises(ValueError, match="at least 1"):
        BackoffPolicy(attempts=0)


def test_execution_config_requires_positive_parallelism() -> None:
    with pytest.raises(ValueError, match="Parallelism must be at least 1"):
        ExecutionConfig(parallelism=0)

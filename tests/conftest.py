from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine

from driftless.adapters.providers import InMemoryProvider
from driftless.adapters.sqlalchemy import SqlAlchemyStateStore
from driftless.adapters.sqlalchemy.unit_of_work import shutdown, startup
from driftless.adapters.state_file import JsonStateFile
from driftless.config import BackoffPolicy, ExecutionConfig, PropagationPolicy
from driftless.domain.ports.provider import ProviderContext
from tests.helpers.recording import RecordingSleep

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from sqlalchemy.engine import Engine


@pytest.fixture
def sqlite_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'state.db'}", future=True)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_state_store(sqlite_engine: Engine) -> Iterator[SqlAlchemyStateStore]:
    startup(engine=sqlite_engine, force=True)
    try:
        yield SqlAlchemyStateStore()
    finally:
        shutdown()


@pytest.fixture
def state_file(tmp_path: Path) -> JsonStateFile:
    return JsonStateFile(tmp_path / "driftless.state.json")


@pytest.fixture
def provider() -> InMemoryProvider:
    return InMemoryProvider()


@pytest.fixture
def context() -> ProviderContext:
    return ProviderContext(region="eu-test-1")


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def execution() -> ExecutionConfig:
    return ExecutionConfig(
        parallelism=4,
        backoff=BackoffPolicy(attempts=3, base_delay=0.1, max_delay=1.0, jitter=0.0),
        propagation=PropagationPolicy(interval_seconds=0.5, attempts=4),
        refresh=False,
    )

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, inspect, select, update

from driftless.adapters.sqlalchemy import (
    SCHEMA_VERSION,
    SqlAlchemyStateStore,
    SqlAlchemyStateUnitOfWork,
    StartupError,
    shutdown,
    startup,
    state_meta_table,
)
from driftless.adapters.sqlalchemy.mappings import LINEAGE_KEY, SCHEMA_VERSION_KEY
from driftless.adapters.sqlalchemy.unit_of_work import configured_engine, is_started
from driftless.domain.errors import StateCorruptionError
from driftless.domain.ports.state import StateStore
from tests.helpers.declarations import record, rid

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_unit_of_work_requires_startup() -> None:
    with pytest.raises(StartupError):
        SqlAlchemyStateUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b
    assert is_started()


def test_migrations_create_tables_and_version(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    tables = set(inspect(sqlite_engine).get_table_names())
    assert {"state_record", "state_meta", "alembic_version"} <= tables
    columns = {column["name"] for column in inspect(sqlite_engine).get_columns("state_record")}
    assert "deposed" in columns
    with sqlite_engine.connect() as connection:
        version = connection.execute(
            select(state_meta_table.c.value).where(state_meta_table.c.key == SCHEMA_VERSION_KEY)
        ).scalar_one()
    assert int(version) == SCHEMA_VERSION


def test_records_persist_across_units_of_work(
    sqlite_state_store: SqlAlchemyStateStore,
) -> None:
    bucket = record("bucket.main", "b-1", {"name": "logs", "tags": {"team": "core"}})
    policy = record(
        "policy.main",
        "p-1",
        {"bucket": "b-1"},
        dependencies=["bucket.main"],
        create_before_destroy=True,
        deposed=["p-0"],
    )

    sqlite_state_store.put(policy)
    sqlite_state_store.put(bucket)

    assert isinstance(sqlite_state_store, StateStore)
    assert sqlite_state_store.get(rid("policy.main")) == policy
    assert sqlite_state_store.list_records() == (bucket, policy)
    assert dict(sqlite_state_store.snapshot()) == {
        rid("bucket.main"): bucket,
        rid("policy.main"): policy,
    }


def test_put_overwrites_and_delete_removes(sqlite_state_store: SqlAlchemyStateStore) -> None:
    sqlite_state_store.put(record("bucket.main", "b-1", {"name": "logs"}))
    sqlite_state_store.put(record("bucket.main", "b-2", {"name": "archive"}))

    stored = sqlite_state_store.get(rid("bucket.main"))
    assert stored is not None
    assert stored.provider_id == "b-2"
    assert stored.attributes["name"] == "archive"

    sqlite_state_store.delete(rid("bucket.main"))
    sqlite_state_store.delete(rid("bucket.main"))

    assert sqlite_state_store.get(rid("bucket.main")) is None
    assert sqlite_state_store.list_records() == ()


def test_lineage_is_created_once(sqlite_state_store: SqlAlchemyStateStore) -> None:
    assert SqlAlchemyStateStore().lineage == sqlite_state_store.lineage

    with SqlAlchemyStateUnitOfWork() as uow:
        assert uow.repositories.meta.get(LINEAGE_KEY) == sqlite_state_store.lineage


def test_unsupported_schema_version_is_rejected(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    with sqlite_engine.begin() as connection:
        connection.execute(
            update(state_meta_table)
            .where(state_meta_table.c.key == SCHEMA_VERSION_KEY)
            .values(value="99")
        )

    with pytest.raises(StateCorruptionError, match="version 99"):
        SqlAlchemyStateStore()


def test_in_memory_database_is_shared_with_worker_threads() -> None:
    startup(database_uri="sqlite+pysqlite:///:memory:", force=True)
    store = SqlAlchemyStateStore()
    bucket = record("bucket.main", "b-1", {"name": "logs"})

    worker = threading.Thread(target=store.put, args=(bucket,))
    worker.start()
    worker.join()

    assert store.get(rid("bucket.main")) == bucket

"""SQLAlchemy adapter package for driftless."""

from __future__ import annotations

from .mappings import (
    SCHEMA_VERSION,
    metadata,
    state_meta_table,
    state_record_table,
)
from .repositories import SqlAlchemyStateMetaRepository, SqlAlchemyStateRecordRepository
from .state_store import SqlAlchemyStateStore
from .unit_of_work import SqlAlchemyStateUnitOfWork, StartupError, shutdown, startup

__all__ = [
    "SCHEMA_VERSION",
    "SqlAlchemyStateMetaRepository",
    "SqlAlchemyStateRecordRepository",
    "SqlAlchemyStateStore",
    "SqlAlchemyStateUnitOfWork",
    "StartupError",
    "metadata",
    "shutdown",
    "startup",
    "state_meta_table",
    "state_record_table",
]

"""State Store backed by a relational database."""

from __future__ import annotations

import threading
import uuid
from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING

from driftless.domain.errors import StateCorruptionError

from .mappings import LINEAGE_KEY, SCHEMA_VERSION, SCHEMA_VERSION_KEY
from .unit_of_work import SqlAlchemyStateUnitOfWork

if TYPE_CHECKING:
    from collections.abc import Callable

    from driftless.domain.model import ResourceId, StateRecord, StateSnapshot
    from driftless.domain.ports.unit_of_work import StateUnitOfWork

type StateUnitOfWorkFactory = Callable[[], StateUnitOfWork]

log = getLogger(__name__)


class SqlAlchemyStateStore:
    """One row per resource; every write commits its own transaction."""

    def __init__(self, unit_of_work_factory: StateUnitOfWorkFactory | None = None) -> None:
        self._unit_of_work_factory = unit_of_work_factory or SqlAlchemyStateUnitOfWork
        self._write_lock = threading.Lock()
        self.lineage = self._check_schema()

    def _check_schema(self) -> str:
        with self._unit_of_work_factory() as uow:
            meta = uow.repositories.meta
            version = meta.get(SCHEMA_VERSION_KEY)
            if version is None:
                raise StateCorruptionError("State database has no schema version")
            try:
                found = int(version)
            except ValueError as exc:
                raise StateCorruptionError(f"Invalid state schema version {version!r}") from exc
            if found != SCHEMA_VERSION:
                raise StateCorruptionError(
                    f"State database schema version {found} is not supported "
                    f"(expected {SCHEMA_VERSION})"
                )
            lineage = meta.get(LINEAGE_KEY)
            if lineage is None:
                lineage = str(uuid.uuid4())
                meta.set(LINEAGE_KEY, lineage)
                uow.commit()
                log.info("Initialised state lineage %s", lineage)
            return lineage

    def get(self, resource_id: ResourceId) -> StateRecord | None:
        with self._unit_of_work_factory() as uow:
            return uow.repositories.records.get(resource_id)

    def put(self, record: StateRecord) -> None:
        with self._write_lock, self._unit_of_work_factory() as uow:
            uow.repositories.records.upsert(record)
            uow.commit()

    def delete(self, resource_id: ResourceId) -> None:
        with self._write_lock, self._unit_of_work_factory() as uow:
            uow.repositories.records.remove(resource_id)
            uow.commit()

    def list_records(self) -> tuple[StateRecord, ...]:
        with self._unit_of_work_factory() as uow:
            return uow.repositories.records.all()

    def snapshot(self) -> StateSnapshot:
        return MappingProxyType({record.resource_id: record for record in self.list_records()})


if TYPE_CHECKING:
    from driftless.domain.ports.state import StateStore

    _store_check: StateStore = SqlAlchemyStateStore()

"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, insert, select, update

from .mappings import record_to_row, row_to_record, state_meta_table, state_record_table

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement
    from sqlalchemy.orm import Session

    from driftless.domain.model import ResourceId, StateRecord


def _matches(resource_id: ResourceId) -> ColumnElement[bool]:
    return (state_record_table.c.resource_type == resource_id.type) & (
        state_record_table.c.resource_name == resource_id.name
    )


class SqlAlchemyStateRecordRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, resource_id: ResourceId) -> StateRecord | None:
        stmt = select(state_record_table).where(_matches(resource_id))
        row = self.session.execute(stmt).mappings().one_or_none()
        return row_to_record(row) if row is not None else None

    def upsert(self, record: StateRecord) -> None:
        values = record_to_row(record)
        exists = self.session.execute(
            select(state_record_table.c.provider_id).where(_matches(record.resource_id))
        ).first()
        if exists is None:
            self.session.execute(insert(state_record_table).values(**values))
        else:
            self.session.execute(
                update(state_record_table).where(_matches(record.resource_id)).values(**values)
            )

    def remove(self, resource_id: ResourceId) -> None:
        self.session.execute(delete(state_record_table).where(_matches(resource_id)))

    def all(self) -> tuple[StateRecord, ...]:
        stmt = select(state_record_table).order_by(
            state_record_table.c.resource_type, state_record_table.c.resource_name
        )
        return tuple(row_to_record(row) for row in self.session.execute(stmt).mappings())


class SqlAlchemyStateMetaRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, key: str) -> str | None:
        stmt = select(state_meta_table.c.value).where(state_meta_table.c.key == key)
        return self.session.execute(stmt).scalar_one_or_none()

    def set(self, key: str, value: str) -> None:
        if self.get(key) is None:
            self.session.execute(insert(state_meta_table).values(key=key, value=value))
        else:
            self.session.execute(
                update(state_meta_table).where(state_meta_table.c.key == key).values(value=value)
            )

"""SQLAlchemy table metadata for persisted reconciler state.

State records are immutable domain values, so they are not mapped onto
classes; repositories translate rows to and from :class:`StateRecord`.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final, cast

from sqlalchemy import JSON, Boolean, Column, DateTime, MetaData, String, Table

from driftless.domain.model import ResourceId, StateRecord

if TYPE_CHECKING:
    from collections.abc import Mapping

SCHEMA_VERSION: Final[int] = 2
SCHEMA_VERSION_KEY: Final[str] = "schema_version"
LINEAGE_KEY: Final[str] = "lineage"

metadata = MetaData()


def _utcnow() -> datetime:
    return datetime.now(UTC)


state_record_table = Table(
    "state_record",
    metadata,
    Column("resource_type", String(255), primary_key=True),
    Column("resource_name", String(255), primary_key=True),
    Column("provider_id", String(1024), nullable=False),
    Column("attributes", JSON, nullable=False),
    Column("dependencies", JSON, nullable=False),
    Column("create_before_destroy", Boolean, nullable=False, default=False),
    Column("deposed", JSON, nullable=False, default=list),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    ),
)

state_meta_table = Table(
    "state_meta",
    metadata,
    Column("key", String(64), primary_key=True),
    Column("value", String(1024), nullable=False),
)


def record_to_row(record: StateRecord) -> dict[str, Any]:
    return {
        "resource_type": record.resource_id.type,
        "resource_name": record.resource_id.name,
        "provider_id": record.provider_id,
        "attributes": dict(record.attributes),
        "dependencies": [str(item) for item in record.dependencies],
        "create_before_destroy": record.create_before_destroy,
        "deposed": list(record.deposed),
    }


def row_to_record(row: Mapping[str, Any]) -> StateRecord:
    return StateRecord(
        resource_id=ResourceId(row["resource_type"], row["resource_name"]),
        provider_id=row["provider_id"],
        attributes=cast("dict[str, object]", row["attributes"] or {}),
        dependencies=tuple(ResourceId.parse(item) for item in row["dependencies"] or ()),
        create_before_destroy=bool(row["create_before_destroy"]),
        deposed=tuple(row["deposed"] or ()),
    )


"""State Store persisted as a versioned JSON document.

Every mutation rewrites the whole document through a temporary file that is
fsynced and atomically renamed over the previous version, so readers never
observe a partially written state. Version 1 documents (no lineage, no
deposed ids) are migrated in memory on open and rewritten as version 2 on
the first mutation.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
import uuid
from logging import getLogger
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from driftless.domain.errors import StateCorruptionError
from driftless.domain.model import ResourceId, StateRecord

if TYPE_CHECKING:
    from collections.abc import Mapping

    from driftless.domain.model import StateSnapshot

log = getLogger(__name__)

STATE_VERSION: Final[int] = 2


class StateFileModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RecordPayloadV1(StateFileModel):
    provider_id: str
    attributes: dict[str, Any] = Field(default_factory=dict[str, Any])
    dependencies: list[str] = Field(default_factory=list[str])
    create_before_destroy: bool = False


class RecordPayload(RecordPayloadV1):
    deposed: list[str] = Field(default_factory=list[str])


class StateDocumentV1(StateFileModel):
    version: Literal[1]
    serial: int = Field(default=0, ge=0)
    resources: dict[str, RecordPayloadV1] = Field(default_factory=dict[str, RecordPayloadV1])


class StateDocument(StateFileModel):
    version: Literal[2] = 2
    serial: int = Field(default=0, ge=0)
    lineage: str
    resources: dict[str, RecordPayload] = Field(default_factory=dict[str, RecordPayload])


def migrate_document(raw: Mapping[str, Any]) -> StateDocument:
    """Validate ``raw`` and bring it forward to the current document version."""

    version = raw.get("version")
    try:
        if version == 1:
            legacy = StateDocumentV1.model_validate(raw)
            log.info("Migrating state document from version 1 to %s", STATE_VERSION)
            return StateDocument(
                serial=legacy.serial,
                lineage=str(uuid.uuid4()),
                resources={
                    key: RecordPayload(**payload.model_dump())
                    for key, payload in legacy.resources.items()
                },
            )
        if version == STATE_VERSION:
            return StateDocument.model_validate(raw)
    except ValidationError as exc:
        raise StateCorruptionError(f"Malformed state document:\n{exc}") from exc
    raise StateCorruptionError(f"Unsupported state document version {version!r}")


def document_to_records(document: StateDocument) -> dict[ResourceId, StateRecord]:
    records: dict[ResourceId, StateRecord] = {}
    try:
        for key, payload in document.resources.items():
            resource_id = ResourceId.parse(key)
            records[resource_id] = StateRecord(
                resource_id=resource_id,
                provider_id=payload.provider_id,
                attributes=payload.attributes,
                dependencies=tuple(ResourceId.parse(item) for item in payload.dependencies),
                create_before_destroy=payload.create_before_destroy,
                deposed=tuple(payload.deposed),
            )
    except ValueError as exc:
        raise StateCorruptionError(f"Malformed state document: {exc}") from exc
    return records


def records_to_document(
    records: Mapping[ResourceId, StateRecord],
    *,
    serial: int,
    lineage: str,
) -> StateDocument:
    return StateDocument(
        serial=serial,
        lineage=lineage,
        resources={
            str(resource_id): RecordPayload(
                provider_id=record.provider_id,
                attributes=dict(record.attributes),
                dependencies=[str(item) for item in record.dependencies],
                create_before_destroy=record.create_before_destroy,
                deposed=list(record.deposed),
            )
            for resource_id, record in sorted(records.items())
        },
    )


class JsonStateFile:
    """State Store keeping every record in one JSON document on disk."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        document = self._load()
        self.serial = document.serial
        self.lineage = document.lineage
        self._records: Mapping[ResourceId, StateRecord] = MappingProxyType(
            document_to_records(document)
        )

    def _load(self) -> StateDocument:
        if not self.path.exists():
            log.debug("No state document at %s, starting empty", self.path)
            return StateDocument(lineage=str(uuid.uuid4()))
        try:
            raw: object = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StateCorruptionError(f"Cannot read state document {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise StateCorruptionError(f"State document {self.path} must contain a JSON object")
        return migrate_document(raw)  # pyright: ignore[reportUnknownArgumentType]

    def get(self, resource_id: ResourceId) -> StateRecord | None:
        return self._records.get(resource_id)

    def put(self, record: StateRecord) -> None:
        with self._lock:
            records = dict(self._records)
            records[record.resource_id] = record
            self._commit(records)

    def delete(self, resource_id: ResourceId) -> None:
        with self._lock:
            if resource_id not in self._records:
                return
            records = dict(self._records)
            del records[resource_id]
            self._commit(records)

    def list_records(self) -> tuple[StateRecord, ...]:
        records = self._records
        return tuple(records[resource_id] for resource_id in sorted(records))

    def snapshot(self) -> StateSnapshot:
        # replaced wholesale on every write, never mutated in place
        return self._records

    def _commit(self, records: dict[ResourceId, StateRecord]) -> None:
        serial = self.serial + 1
        document = records_to_document(records, serial=serial, lineage=self.lineage)
        self._write(json.dumps(document.model_dump(mode="json"), indent=2, sort_keys=True))
        self.serial = serial
        self._records = MappingProxyType(records)

    def _write(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        descriptor, temp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
                handle.write(text)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            temp_path.replace(self.path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise


if TYPE_CHECKING:
    from driftless.domain.ports.state import StateStore

    _store_check: StateStore = JsonStateFile(Path("driftless.state.json"))

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from driftless.adapters.state_file import STATE_VERSION, JsonStateFile, migrate_document
from driftless.domain.errors import StateCorruptionError
from driftless.domain.ports.state import StateStore
from tests.helpers.declarations import record, rid

if TYPE_CHECKING:
    from pathlib import Path


def test_records_round_trip_through_the_document(tmp_path: Path) -> None:
    path = tmp_path / "state" / "driftless.state.json"
    store = JsonStateFile(path)
    bucket = record("bucket.main", "b-1", {"name": "logs", "tags": {"team": "core"}})
    policy = record(
        "policy.main",
        "p-1",
        {"bucket": "b-1"},
        dependencies=["bucket.main"],
        create_before_destroy=True,
        deposed=["p-0"],
    )

    store.put(policy)
    store.put(bucket)

    reopened = JsonStateFile(path)
    assert reopened.list_records() == (bucket, policy)
    assert reopened.serial == 2
    assert reopened.lineage == store.lineage
    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["version"] == STATE_VERSION
    assert list(document["resources"]) == ["bucket.main", "policy.main"]


def test_missing_file_starts_empty(state_file: JsonStateFile) -> None:
    assert isinstance(state_file, StateStore)
    assert state_file.list_records() == ()
    assert state_file.serial == 0
    assert not state_file.path.exists()


def test_snapshot_is_not_mutated_by_later_writes(state_file: JsonStateFile) -> None:
    state_file.put(record("bucket.main", "b-1"))
    snapshot = state_file.snapshot()

    state_file.put(record("bucket.other", "b-2"))
    state_file.delete(rid("bucket.main"))

    assert list(snapshot) == [rid("bucket.main")]
    assert [item.resource_id for item in state_file.list_records()] == [rid("bucket.other")]


def test_delete_of_unknown_resource_does_not_write(state_file: JsonStateFile) -> None:
    state_file.delete(rid("bucket.main"))

    assert state_file.serial == 0
    assert not state_file.path.exists()


def test_writes_leave_no_temporary_files(state_file: JsonStateFile) -> None:
    for index in range(3):
        state_file.put(record(f"bucket.b{index}", f"b-{index}"))

    assert [item.name for item in state_file.path.parent.iterdir()] == [state_file.path.name]


def test_failed_write_keeps_previous_document(
    state_file: JsonStateFile, monkeypatch: pytest.MonkeyPatch
) -> None:
    state_file.put(record("bucket.main", "b-1"))
    before = state_file.path.read_text(encoding="utf-8")

    def explode(_fd: int) -> None:
        raise OSError("disk full")

    monkeypatch.setattr("driftless.adapters.state_file.os.fsync", explode)

    with pytest.raises(OSError, match="disk full"):
        state_file.put(record("bucket.other", "b-2"))

    assert state_file.path.read_text(encoding="utf-8") == before
    assert state_file.get(rid("bucket.other")) is None
    assert [item.name for item in state_file.path.parent.iterdir()] == [state_file.path.name]


def test_version_one_documents_are_migrated(tmp_path: Path) -> None:
    path = tmp_path / "legacy.json"
    path.write_text(
        json.dumps(
            {
                "version": 1,
                "serial": 7,
                "resources": {"bucket.main": {"provider_id": "b-1", "attributes": {"x": 1}}},
            }
        ),
        encoding="utf-8",
    )

    store = JsonStateFile(path)

    assert store.serial == 7
    assert store.lineage
    stored = store.get(rid("bucket.main"))
    assert stored is not None
    assert stored.deposed == ()
    store.put(stored)
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == STATE_VERSION


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ('{"version": 3, "lineage": "x"}', "Unsupported state document version 3"),
        ('{"version": 2, "resources": {}}', "Malformed state document"),
        (
            '{"version": 2, "lineage": "x", "resources": {"nodot": {"provider_id": "p"}}}',
            "type.name",
        ),
        ("[1, 2]", "must contain a JSON object"),
        ("{not json", "Cannot read state document"),
    ],
)
def test_corrupt_documents_are_rejected_on_open(
    tmp_path: Path, content: str, message: str
) -> None:
    path = tmp_path / "state.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(StateCorruptionError, match=message):
        JsonStateFile(path)


def test_migrate_document_rejects_unknown_fields() -> None:
    with pytest.raises(StateCorruptionError):
        migrate_document({"version": 2, "lineage": "x", "extra": True})

from __future__ import annotations

from driftless.domain.model import UNKNOWN, Reference, Template
from driftless.domain.reconciliation import (
    contains_unknown,
    iter_references,
    record_value,
    resolve_value,
)
from tests.helpers.declarations import record, ref


def test_iter_references_walks_nested_values() -> None:
    value = {
        "statements": [{"principal": ref("role.reader", "arn")}],
        "note": Template(parts=("bucket ", ref("bucket.main", "name"))),
    }

    found = [(path, str(reference)) for path, reference in iter_references(value, path="policy")]

    assert found == [
        ("policy.statements[0].principal", "${role.reader.arn}"),
        ("policy.note", "${bucket.main.name}"),
    ]


def test_resolve_value_renders_templates() -> None:
    values = {"bucket.main": {"name": "logs", "size": 3, "versioned": True}}

    def lookup(reference: Reference) -> object:
        return values[str(reference.target)][reference.attribute]

    template = Template(
        parts=(
            ref("bucket.main", "name"),
            "-",
            ref("bucket.main", "size"),
            "-",
            ref("bucket.main", "versioned"),
        )
    )

    assert resolve_value(template, lookup) == "logs-3-true"
    assert resolve_value([ref("bucket.main", "size")], lookup) == [3]


def test_template_with_unknown_part_is_unknown() -> None:
    template = Template(parts=("arn:", ref("bucket.main", "arn")))

    resolved = resolve_value({"resource": template}, lambda _reference: UNKNOWN)

    assert resolved == {"resource": UNKNOWN}
    assert contains_unknown(resolved)
    assert not contains_unknown({"resource": "arn:x"})


def test_record_value_falls_back_to_provider_id() -> None:
    stored = record("bucket.main", "bkt-1", {"tags": {"team": "core"}, "ports": [80, 443]})
    bare = stored.with_attributes({})

    assert record_value(bare, ("id",)) == "bkt-1"
    assert record_value(stored, ("tags", "team")) == "core"
    assert record_value(stored, ("ports", "1")) == 443

from __future__ import annotations

from driftless.domain.model import UNKNOWN
from driftless.ui.render import (
    KNOWN_AFTER_APPLY,
    SENSITIVE,
    format_value,
    render_outputs,
    render_records,
)
from tests.helpers.declarations import record


def test_format_value_masks_sensitive_scalars_only() -> None:
    assert format_value("hunter2", sensitive={"hunter2"}) == SENSITIVE
    assert format_value("public", sensitive={"hunter2"}) == '"public"'
    assert format_value(True, sensitive={1}) == "true"  # noqa: FBT003
    assert format_value({"b": 1, "a": [UNKNOWN]}) == KNOWN_AFTER_APPLY
    assert format_value({"b": 1, "a": 2}) == '{"a": 2, "b": 1}'


def test_render_records_lists_deposed_objects() -> None:
    lines = render_records(
        (
            record("bucket.main", "b-2", deposed=["b-1"]),
            record("policy.main", "p-1"),
        )
    )

    assert lines == [
        "bucket.main\tb-2\t(deposed: b-1)",
        "policy.main\tp-1",
    ]


def test_render_outputs() -> None:
    lines = render_outputs({"endpoint": UNKNOWN, "password": "s3cr3t"}, sensitive={"s3cr3t"})

    assert lines == [f"endpoint = {KNOWN_AFTER_APPLY}", f"password = {SENSITIVE}"]

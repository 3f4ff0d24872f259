from __future__ import annotations

import pytest

from driftless.domain.document import parse_expression, parse_value
from driftless.domain.errors import ConfigurationError
from driftless.domain.model import Reference, ResourceId, Template

VARIABLES = {"name": "logs", "count": 3, "enabled": False, "tags": {"team": "core"}}


def _parse(value: object) -> object:
    return parse_value(value, variables=VARIABLES, where="test")


def test_lone_variable_keeps_its_type() -> None:
    assert _parse("${var.count}") == 3
    assert _parse("${var.tags}") == {"team": "core"}


def test_embedded_variables_are_rendered_as_text() -> None:
    assert _parse("bucket-${var.name}-${var.count}") == "bucket-logs-3"
    assert _parse("enabled=${var.enabled}") == "enabled=false"


def test_resource_expressions_become_references() -> None:
    bucket = ResourceId("bucket", "main")

    assert _parse("${bucket.main.tags.team}") == Reference(target=bucket, path=("tags", "team"))
    assert _parse("${var.name}:${bucket.main.arn}") == Template(
        parts=("logs:", Reference(target=bucket, path=("arn",)))
    )


def test_nested_values_are_parsed_recursively() -> None:
    parsed = _parse({"list": ["${var.name}", {"ref": "${bucket.main.id}"}], "n": 1})

    assert parsed == {
        "list": ["logs", {"ref": Reference(target=ResourceId("bucket", "main"), path=("id",))}],
        "n": 1,
    }


def test_double_dollar_escapes_expressions() -> None:
    assert _parse("$${var.name} costs $5") == "${var.name} costs $5"


@pytest.mark.parametrize(
    "expression",
    ["var.a.b", "bucket.main", "bucket..arn", "bucket.main name.arn"],
)
def test_malformed_expressions_are_rejected(expression: str) -> None:
    with pytest.raises(ConfigurationError):
        parse_expression(expression, where="test")

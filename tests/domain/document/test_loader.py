from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from driftless.domain.document import load_configuration, parse_document, read_mapping
from driftless.domain.errors import ConfigurationError
from driftless.domain.model import Reference, ResourceId, Template

if TYPE_CHECKING:
    from collections.abc import Mapping

EXAMPLE = Path(__file__).resolve().parents[3] / "examples" / "storage_bucket.toml"


def _write_json(path: Path, payload: Mapping[str, object]) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_example_document_loads_into_declarations() -> None:
    configuration = load_configuration(EXAMPLE, environ={})

    ids = [str(declaration.resource_id) for declaration in configuration.declarations]
    assert ids == ["storage_bucket.main", "storage_bucket_acl.main", "storage_bucket_policy.main"]

    bucket = configuration.declarations[0]
    assert bucket.attributes["bucket"] == "assets"
    assert bucket.attributes["versioning"] is True
    assert bucket.lifecycle.create_before_destroy
    assert bucket.lifecycle.ignore_changes == frozenset({"tags"})

    policy = configuration.declarations[2]
    assert policy.depends_on == (ResourceId("storage_bucket_acl", "main"),)
    assert policy.lifecycle.confirm_propagation
    assert policy.attributes["bucket"] == Reference(
        target=ResourceId("storage_bucket", "main"), path=("id",)
    )
    statement = policy.attributes["policy"]["statement"][0]  # type: ignore[index]
    assert statement["principals"] == ["arn:driftless:iam::reader"]
    assert statement["resource"] == Template(
        parts=(Reference(target=ResourceId("storage_bucket", "main"), path=("arn",)), "/*")
    )


def test_variables_from_files_environment_and_assignments(tmp_path: Path) -> None:
    var_file = _write_json(tmp_path / "vars.json", {"bucket_name": "logs", "versioning": False})

    configuration = load_configuration(
        EXAMPLE,
        var_files=[var_file],
        environ={"DRIFTLESS_VAR_region": "us-east-1", "DRIFTLESS_VAR_unused": "x"},
        assignments={"versioning": "true"},
    )

    assert configuration.variables["bucket_name"] == "logs"
    assert configuration.variables["region"] == "us-east-1"
    assert configuration.variables["versioning"] is True


def test_variable_validation_failures_are_reported_together() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        load_configuration(
            EXAMPLE,
            environ={},
            assignments={"bucket_name": "Invalid_Name", "versioning": "maybe", "nope": "1"},
        )

    message = str(excinfo.value)
    assert "'Invalid_Name' is not one of" in message
    assert "expected true or false" in message
    assert "undeclared variable 'nope'" in message


def test_json_documents_are_supported(tmp_path: Path) -> None:
    path = _write_json(
        tmp_path / "main.json",
        {
            "variables": {"size": {"type": "number"}},
            "resources": [{"type": "disk", "name": "data", "attributes": {"size": "${var.size}"}}],
            "outputs": {"disk": "${disk.data.id}"},
        },
    )

    configuration = load_configuration(path, assignments={"size": "20"}, environ={})

    assert configuration.declarations[0].attributes == {"size": 20}
    assert isinstance(configuration.outputs["disk"], Reference)


def test_required_variable_without_value(tmp_path: Path) -> None:
    path = _write_json(tmp_path / "main.json", {"variables": {"size": {"type": "number"}}})

    with pytest.raises(ConfigurationError, match="no value given for required variable 'size'"):
        load_configuration(path, environ={})


def test_sensitive_variables_are_tracked(tmp_path: Path) -> None:
    path = _write_json(
        tmp_path / "main.json",
        {"variables": {"token": {"type": "string", "default": "s3cr3t", "sensitive": True}}},
    )

    configuration = load_configuration(path, environ={})

    assert configuration.sensitive_variables == frozenset({"token"})


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"resources": [{"type": "a", "name": "b", "colour": "red"}]}, "colour"),
        (
            {"resources": [{"type": "a", "name": "b"}, {"type": "a", "name": "b"}]},
            "duplicate resource a.b",
        ),
        ({"resources": [{"type": "a.x", "name": "b"}]}, "type"),
        ({"outputs": {"x": "${a.b.id}"}}, "undeclared resource a.b"),
        (
            {"resources": [{"type": "a", "name": "b", "attributes": {"x": "${var.nope}"}}]},
            "undeclared variable 'nope'",
        ),
        (
            {"resources": [{"type": "a", "name": "b", "attributes": {"x": "${a.b}"}}]},
            "type.name.attribute",
        ),
        (
            {"resources": [{"type": "a", "name": "b", "depends_on": ["nodot"]}]},
            "a.b.depends_on",
        ),
    ],
)
def test_invalid_documents_raise_configuration_error(
    tmp_path: Path, payload: Mapping[str, object], message: str
) -> None:
    path = _write_json(tmp_path / "main.json", payload)

    with pytest.raises(ConfigurationError, match=message):
        load_configuration(path, environ={})


def test_read_mapping_rejects_unknown_formats_and_bad_syntax(tmp_path: Path) -> None:
    yaml_path = tmp_path / "main.yaml"
    yaml_path.write_text("resources: []", encoding="utf-8")
    toml_path = tmp_path / "main.toml"
    toml_path.write_text("resources = [", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Unsupported document format"):
        read_mapping(yaml_path)
    with pytest.raises(ConfigurationError, match="Malformed document"):
        read_mapping(toml_path)
    with pytest.raises(ConfigurationError, match="Cannot read"):
        read_mapping(tmp_path / "missing.toml")


def test_parse_document_names_its_origin() -> None:
    with pytest.raises(ConfigurationError, match="Invalid configuration document inline"):
        parse_document({"resources": "nope"}, origin="inline")

"""Reading configuration documents into declarations."""

from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, cast

from pydantic import ValidationError

from driftless.domain.errors import ConfigurationError
from driftless.domain.model import Declaration, Lifecycle, ResourceId
from driftless.domain.reconciliation.references import iter_references

from .interpolation import parse_value
from .schema import ConfigurationDocument
from .variables import RawValue, collect_values, resolve_variables

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Configuration:
    """A validated document with variables substituted."""

    declarations: tuple[Declaration, ...]
    outputs: Mapping[str, object] = field(default_factory=dict[str, object])
    variables: Mapping[str, object] = field(default_factory=dict[str, object])
    sensitive_variables: frozenset[str] = frozenset()


def read_mapping(path: Path) -> dict[str, Any]:
    """Load a JSON or TOML file into a mapping, raising ``ConfigurationError``."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read {path}: {exc}") from exc

    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            loaded: object = json.loads(text)
        elif suffix == ".toml":
            loaded = tomllib.loads(text)
        else:
            raise ConfigurationError(f"Unsupported document format {suffix!r} ({path})")
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Malformed document {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Document {path} must contain a mapping at the top level")
    return cast(dict[str, Any], loaded)


def parse_document(raw: Mapping[str, Any], *, origin: str = "<document>") -> ConfigurationDocument:
    try:
        return ConfigurationDocument.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration document {origin}:\n{exc}") from exc


def load_configuration(
    path: Path,
    *,
    var_files: Sequence[Path] = (),
    assignments: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Configuration:
    """Read, validate and interpolate the configuration document at ``path``."""

    document = parse_document(read_mapping(path), origin=str(path))
    file_values: dict[str, object] = {}
    for var_file in var_files:
        file_values.update(read_mapping(var_file))
    supplied = collect_values(file_values=file_values, environ=environ, assignments=assignments)
    configuration = build_configuration(document, supplied)
    log.info(
        "Loaded %s: %s resources, %s outputs",
        path,
        len(configuration.declarations),
        len(configuration.outputs),
    )
    return configuration


def build_configuration(
    document: ConfigurationDocument,
    supplied: Mapping[str, RawValue] | None = None,
) -> Configuration:
    """Evaluate variables and turn resource specs into declarations."""

    variables = resolve_variables(document.variables, supplied or {})

    declarations: list[Declaration] = []
    declared_ids: set[ResourceId] = set()
    for spec in document.resources:
        resource_id = ResourceId(spec.type, spec.name)
        attributes = {
            key: parse_value(value, variables=variables, where=f"{resource_id}.{key}")
            for key, value in spec.attributes.items()
        }
        depends_on: list[ResourceId] = []
        for entry in spec.depends_on:
            try:
                depends_on.append(ResourceId.parse(entry))
            except ValueError as exc:
                raise ConfigurationError(f"{resource_id}.depends_on: {exc}") from exc
        declarations.append(
            Declaration(
                resource_id=resource_id,
                attributes=attributes,
                depends_on=tuple(depends_on),
                lifecycle=Lifecycle(
                    create_before_destroy=spec.lifecycle.create_before_destroy,
                    prevent_destroy=spec.lifecycle.prevent_destroy,
                    ignore_changes=frozenset(spec.lifecycle.ignore_changes),
                    confirm_propagation=spec.lifecycle.confirm_propagation,
                ),
            )
        )
        declared_ids.add(resource_id)

    outputs: dict[str, object] = {}
    for name, value in document.outputs.items():
        parsed = parse_value(value, variables=variables, where=f"output.{name}")
        for _path, reference in iter_references(parsed):
            if reference.target not in declared_ids:
                raise ConfigurationError(
                    f"output.{name} references undeclared resource {reference.target}"
                )
        outputs[name] = parsed

    sensitive = frozenset(name for name, spec in document.variables.items() if spec.sensitive)
    return Configuration(
        declarations=tuple(declarations),
        outputs=MappingProxyType(outputs),
        variables=MappingProxyType(variables),
        sensitive_variables=sensitive,
    )


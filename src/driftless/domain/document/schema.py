"""Pydantic models describing the configuration document."""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from driftless.domain.model import NAME_PATTERN

VariableType = Literal["string", "number", "bool", "list", "map", "any"]


class DocumentModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class VariableSpec(DocumentModel):
    type: VariableType = "any"
    default: Any = None
    description: str | None = None
    allowed: list[Any] | None = None
    pattern: str | None = None
    sensitive: bool = False

    @property
    def required(self) -> bool:
        return "default" not in self.model_fields_set

    @field_validator("pattern")
    @classmethod
    def _compile_pattern(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid pattern {value!r}: {exc}") from exc
        return value


class LifecycleSpec(DocumentModel):
    create_before_destroy: bool = False
    prevent_destroy: bool = False
    ignore_changes: list[str] = Field(default_factory=list[str])
    confirm_propagation: bool = False


class ResourceSpec(DocumentModel):
    type: str = Field(pattern=NAME_PATTERN)
    name: str = Field(pattern=NAME_PATTERN)
    attributes: dict[str, Any] = Field(default_factory=dict[str, Any])
    depends_on: list[str] = Field(default_factory=list[str])
    lifecycle: LifecycleSpec = Field(default_factory=LifecycleSpec)

    @property
    def address(self) -> str:
        return f"{self.type}.{self.name}"


class ConfigurationDocument(DocumentModel):
    variables: dict[str, VariableSpec] = Field(default_factory=dict[str, VariableSpec])
    resources: list[ResourceSpec] = Field(default_factory=list[ResourceSpec])
    outputs: dict[str, Any] = Field(default_factory=dict[str, Any])

    @field_validator("variables")
    @classmethod
    def _check_variable_names(cls, value: dict[str, VariableSpec]) -> dict[str, VariableSpec]:
        for name in value:
            if not re.match(NAME_PATTERN, name):
                raise ValueError(f"invalid variable name {name!r}")
        return value

    @model_validator(mode="after")
    def _reject_duplicate_resources(self) -> ConfigurationDocument:
        seen: set[str] = set()
        for resource in self.resources:
            if resource.address in seen:
                raise ValueError(f"duplicate resource {resource.address}")
            seen.add(resource.address)
        return self

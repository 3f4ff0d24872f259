"""Configuration documents: schema, variables and interpolation."""

from __future__ import annotations

from .interpolation import parse_expression, parse_value
from .loader import (
    Configuration,
    build_configuration,
    load_configuration,
    parse_document,
    read_mapping,
)
from .schema import ConfigurationDocument, LifecycleSpec, ResourceSpec, VariableSpec
from .variables import ENV_PREFIX, RawValue, collect_values, parse_assignment, resolve_variables

__all__ = [
    "ENV_PREFIX",
    "Configuration",
    "ConfigurationDocument",
    "LifecycleSpec",
    "RawValue",
    "ResourceSpec",
    "VariableSpec",
    "build_configuration",
    "collect_values",
    "load_configuration",
    "parse_assignment",
    "parse_document",
    "parse_expression",
    "parse_value",
    "read_mapping",
    "resolve_variables",
]

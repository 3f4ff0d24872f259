"""Variable value collection, coercion and validation.

Values are layered in increasing precedence: declared defaults, variable
files, ``DRIFTLESS_VAR_<name>`` environment variables, explicit assignments.
Text coming from the environment or the command line is coerced to the
declared type; typed values from files must already match it.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, cast

from driftless.domain.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .schema import VariableSpec, VariableType

ENV_PREFIX: Final[str] = "DRIFTLESS_VAR_"


@dataclass(frozen=True, slots=True)
class RawValue:
    """A supplied variable value and whether it still needs parsing from text."""

    value: object
    source: str
    textual: bool = False


def parse_assignment(assignment: str) -> tuple[str, str]:
    """Split a ``name=value`` command-line assignment."""

    name, sep, value = assignment.partition("=")
    name = name.strip()
    if not sep or not name:
        raise ConfigurationError(f"Variable assignments must look like name=value: {assignment!r}")
    return name, value


def collect_values(
    *,
    file_values: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    assignments: Mapping[str, str] | None = None,
) -> dict[str, RawValue]:
    collected: dict[str, RawValue] = {}
    for name, value in (file_values or {}).items():
        collected[name] = RawValue(value, source="variable file")
    for key, value in (environ or {}).items():
        if key.startswith(ENV_PREFIX) and len(key) > len(ENV_PREFIX):
            name = key[len(ENV_PREFIX) :]
            collected[name] = RawValue(value, source=f"environment {key}", textual=True)
    for name, value in (assignments or {}).items():
        collected[name] = RawValue(value, source="command line", textual=True)
    return collected


def resolve_variables(
    specs: Mapping[str, VariableSpec],
    supplied: Mapping[str, RawValue],
    *,
    allow_undeclared_environment: bool = True,
) -> dict[str, object]:
    """Return the final value of every declared variable or raise ``ConfigurationError``."""

    errors: list[str] = []
    for name, raw in supplied.items():
        if name in specs:
            continue
        # stray DRIFTLESS_VAR_* entries are common in shared shells
        if allow_undeclared_environment and raw.source.startswith("environment"):
            continue
        errors.append(f"value for undeclared variable {name!r} ({raw.source})")

    resolved: dict[str, object] = {}
    for name, spec in specs.items():
        raw = supplied.get(name)
        if raw is None:
            if spec.required:
                errors.append(f"no value given for required variable {name!r}")
                continue
            value = spec.default
            source = "default"
        else:
            source = raw.source
            try:
                value = _from_text(raw.value, spec.type) if raw.textual else raw.value
            except ValueError as exc:
                errors.append(f"variable {name!r} ({source}): {exc}")
                continue

        problem = _type_problem(value, spec.type) or _predicate_problem(value, spec)
        if problem is not None:
            errors.append(f"variable {name!r} ({source}): {problem}")
            continue
        resolved[name] = value

    if errors:
        raise ConfigurationError("Invalid variables:\n  " + "\n  ".join(errors))
    return resolved


def _from_text(value: object, var_type: VariableType) -> object:
    text = str(value)
    if var_type == "string":
        return text
    if var_type == "number":
        try:
            return int(text)
        except ValueError:
            try:
                return float(text)
            except ValueError:
                raise ValueError(f"expected a number, got {text!r}") from None
    if var_type == "bool":
        lowered = text.strip().lower()
        if lowered in {"true", "1"}:
            return True
        if lowered in {"false", "0"}:
            return False
        raise ValueError(f"expected true or false, got {text!r}")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        if var_type == "any":
            return text
        raise ValueError(f"expected a JSON {var_type}, got {text!r}") from None


def _type_problem(value: object, var_type: VariableType) -> str | None:
    if value is None or var_type == "any":
        return None
    valid = {
        "string": isinstance(value, str),
        "number": isinstance(value, int | float) and not isinstance(value, bool),
        "bool": isinstance(value, bool),
        "list": isinstance(value, list),
        "map": isinstance(value, dict),
    }[var_type]
    if valid:
        return None
    return f"expected {var_type}, got {type(value).__name__}"


def _predicate_problem(value: object, spec: VariableSpec) -> str | None:
    if spec.allowed is not None and value not in spec.allowed:
        allowed = ", ".join(repr(item) for item in cast(list[object], spec.allowed))
        return f"{value!r} is not one of: {allowed}"
    if spec.pattern is not None:
        if not isinstance(value, str):
            return "pattern validation requires a string value"
        if re.fullmatch(spec.pattern, value) is None:
            return f"{value!r} does not match pattern {spec.pattern!r}"
    return None

"""Parsing of ``${...}`` expressions inside document values.

Variable expressions (``${var.name}``) are substituted immediately. Resource
expressions (``${type.name.attr}``) become typed :class:`Reference` values so
the graph builder never has to scan strings.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final, cast

from driftless.domain._attributes import render_text
from driftless.domain.errors import ConfigurationError
from driftless.domain.model import Reference, ResourceId, Template

if TYPE_CHECKING:
    from collections.abc import Mapping

# ``$${...}`` escapes a literal ``${...}``
_EXPRESSION: Final[re.Pattern[str]] = re.compile(r"(\$?)\$\{([^{}]*)\}")


def parse_value(value: object, *, variables: Mapping[str, object], where: str) -> object:
    """Return ``value`` with variables substituted and resource expressions typed."""

    if isinstance(value, str):
        return _parse_string(value, variables=variables, where=where)
    if isinstance(value, dict):
        mapping = cast(dict[str, object], value)
        return {
            key: parse_value(item, variables=variables, where=f"{where}.{key}")
            for key, item in mapping.items()
        }
    if isinstance(value, list):
        items = cast(list[object], value)
        return [
            parse_value(item, variables=variables, where=f"{where}[{index}]")
            for index, item in enumerate(items)
        ]
    return value


def parse_expression(expression: str, *, where: str) -> Reference | tuple[str, str]:
    """Parse the inside of ``${...}``.

    Returns ``("var", name)`` for variable lookups and a :class:`Reference`
    for resource attributes.
    """

    segments = [segment.strip() for segment in expression.strip().split(".")]
    if any(not segment for segment in segments):
        raise ConfigurationError(f"{where}: malformed expression ${{{expression}}}")
    if segments[0] == "var":
        if len(segments) != 2:  # noqa: PLR2004
            raise ConfigurationError(f"{where}: malformed variable expression ${{{expression}}}")
        return ("var", segments[1])
    if len(segments) < 3:  # noqa: PLR2004
        raise ConfigurationError(
            f"{where}: resource expressions must look like ${{type.name.attribute}}, "
            f"got ${{{expression}}}"
        )
    try:
        target = ResourceId(segments[0], segments[1])
    except ValueError as exc:
        raise ConfigurationError(f"{where}: {exc}") from exc
    return Reference(target=target, path=tuple(segments[2:]))


def _parse_string(text: str, *, variables: Mapping[str, object], where: str) -> object:
    matches = list(_EXPRESSION.finditer(text))
    if not matches:
        return text

    parts: list[str | Reference] = []
    cursor = 0
    for match in matches:
        if match.start() > cursor:
            parts.append(text[cursor : match.start()])
        cursor = match.end()
        if match.group(1):
            parts.append("${" + match.group(2) + "}")
            continue
        parsed = parse_expression(match.group(2), where=where)
        if isinstance(parsed, Reference):
            parts.append(parsed)
            continue
        name = parsed[1]
        if name not in variables:
            raise ConfigurationError(f"{where}: reference to undeclared variable {name!r}")
        if len(matches) == 1 and match.span() == (0, len(text)):
            # a lone variable keeps its type
            return variables[name]
        parts.append(render_text(variables[name]))
    if cursor < len(text):
        parts.append(text[cursor:])

    if len(parts) == 1 and isinstance(parts[0], Reference):
        return parts[0]
    if all(isinstance(part, str) for part in parts):
        return "".join(cast(list[str], parts))
    return Template(parts=tuple(_merge_literals(parts)))


def _merge_literals(parts: list[str | Reference]) -> list[str | Reference]:
    merged: list[str | Reference] = []
    for part in parts:
        if isinstance(part, str) and merged and isinstance(merged[-1], str):
            merged[-1] = cast(str, merged[-1]) + part
        else:
            merged.append(part)
    return merged

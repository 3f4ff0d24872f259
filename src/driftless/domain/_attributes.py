"""Helpers for walking and rendering JSON-like attribute values."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Final, cast


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING: Final[_Missing] = _Missing()


def walk_path(attributes: Mapping[str, object], path: tuple[str, ...]) -> object:
    """Follow ``path`` through nested mappings and lists, or return ``MISSING``."""

    current: object = attributes
    for segment in path:
        if isinstance(current, Mapping):
            mapping = cast(Mapping[str, object], current)
            if segment not in mapping:
                return MISSING
            current = mapping[segment]
        elif isinstance(current, list):
            items = cast(list[object], current)
            try:
                current = items[int(segment)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


def render_text(value: object) -> str:
    """Render a value for embedding inside a larger string."""

    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    return json.dumps(value, sort_keys=True)

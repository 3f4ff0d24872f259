"""Resource identity."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

NAME_PATTERN: Final[str] = r"^[A-Za-z_][A-Za-z0-9_-]*$"
_NAME_RE: Final[re.Pattern[str]] = re.compile(NAME_PATTERN)


@dataclass(frozen=True, slots=True, order=True)
class ResourceId:
    """Identifier of one resource instance: ``type.name``.

    Ordering compares ``type`` first, then ``name``; planners rely on it to
    break ties deterministically.
    """

    type: str
    name: str

    def __post_init__(self) -> None:
        for part in (self.type, self.name):
            if not _NAME_RE.match(part):
                raise ValueError(f"Invalid resource identifier segment: {part!r}")

    def __str__(self) -> str:
        return f"{self.type}.{self.name}"

    @classmethod
    def parse(cls, value: str) -> ResourceId:
        resource_type, sep, name = value.strip().partition(".")
        if not sep or "." in name:
            raise ValueError(f"Resource identifier must look like 'type.name': {value!r}")
        return cls(resource_type, name)

"""Core data structures shared by the loader components."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

DEFAULT_EXPORTS_TO = "window"


class ContentKind(str, Enum):
    """How fetched content is handed to the executor."""

    SCRIPT = "script"
    TEXT = "text"


class SubjectType(str, Enum):
    """Identifier family selected by the type tag prefix."""

    CLASS = "class"
    LIB = "lib"
    RES = "res"


class ResourceType(str, Enum):
    """Resource subtypes with their own directory and extension."""

    TEMPLATE = "template"
    LAYOUT_TEMPLATE = "layoutTemplate"
    LAYOUT = "layout"


@dataclass(frozen=True)
class LibConfig:
    """Fetch path and exported global symbol location for a library."""

    path: str | None = None
    exports_to: str | None = None
    exports_as: str | None = None

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> LibConfig:
        return cls(
            path=raw.get("path"),
            exports_to=raw.get("exportsTo", raw.get("exports_to")),
            exports_as=raw.get("exportsAs", raw.get("exports_as")),
        )


@dataclass(frozen=True)
class LoadRequest:
    """A resolved load: what to fetch, how to handle it and where it is cached."""

    name: str
    subject_type: SubjectType
    kind: ContentKind
    path: str
    cacheable: bool = True
    exports_to: str | None = None
    exports_as: str | None = None

    @property
    def is_class(self) -> bool:
        return self.subject_type is SubjectType.CLASS


@dataclass
class Definition:
    """A single ``define`` call captured while a script is evaluated."""

    subject: str | None
    dependencies: Sequence[str] | str | None
    factory: Callable[..., Any]


__all__ = [
    "ContentKind",
    "DEFAULT_EXPORTS_TO",
    "Definition",
    "LibConfig",
    "LoadRequest",
    "ResourceType",
    "SubjectType",
]

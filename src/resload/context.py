"""Mutable state owned by a single loader instance."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from .registry import ClassRegistry
from .types import LibConfig


@dataclass
class LoaderContext:
    """Registry, memo tables and in-flight loads shared by one loader."""

    registry: ClassRegistry = field(default_factory=ClassRegistry)
    loaded: dict[str, Any] = field(default_factory=dict)
    pending: dict[str, asyncio.Task[Any]] = field(default_factory=dict)
    libs: dict[str, LibConfig] = field(default_factory=dict)
    scope: dict[str, Any] = field(default_factory=dict)

    def add_libs(self, config: dict[str, LibConfig | dict[str, Any]]) -> None:
        for name, entry in config.items():
            if isinstance(entry, LibConfig):
                self.libs[name] = entry
            else:
                self.libs[name] = LibConfig.from_mapping(entry or {})


__all__ = ["LoaderContext"]

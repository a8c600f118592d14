"""Registry of classes produced by module definitions."""

from __future__ import annotations

from collections import OrderedDict
from typing import Any


class RegistrationError(RuntimeError):
    """Raised when a module script does not register the class it was loaded for."""

    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(message or f"Could not load '{name}'.")
        self.name = name


class ClassRegistry:
    """Session-wide mapping from class name to its registered value."""

    def __init__(self) -> None:
        self._entries: OrderedDict[str, Any] = OrderedDict()

    def register(self, name: str, value: Any) -> None:
        if not value:
            raise RegistrationError(name)
        if name in self._entries:
            raise RegistrationError(name, f"Class '{name}' is already registered.")
        self._entries[name] = value

    def get(self, name: str) -> Any:
        try:
            return self._entries[name]
        except KeyError as exc:
            raise KeyError(f"Class '{name}' is not registered.") from exc

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["ClassRegistry", "RegistrationError"]

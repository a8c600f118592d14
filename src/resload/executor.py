"""Evaluate fetched scripts and extract loaded values."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from types import ModuleType
from typing import Any, Protocol

from .types import DEFAULT_EXPORTS_TO, ContentKind, Definition

LOGGER = logging.getLogger(__name__)
_MODULE_PREFIX = "resload.loaded"
_IDENT_UNSAFE = re.compile(r"[^0-9a-zA-Z_]+")

DefineFunction = Callable[..., None]


class ScriptEvaluator(Protocol):
    """Runs a script with ``define`` and the global scope in reach."""

    def evaluate(
        self,
        source: str,
        *,
        name: str,
        scope: dict[str, Any],
        define: DefineFunction,
    ) -> None:
        """Execute ``source``; definitions are reported through ``define``."""


class PythonScriptEvaluator:
    """Execute Python source in a fresh module namespace.

    The module sees two globals: ``define``, which records definitions for the
    script being loaded, and ``scope``, where libraries export their symbols.
    """

    def evaluate(
        self,
        source: str,
        *,
        name: str,
        scope: dict[str, Any],
        define: DefineFunction,
    ) -> None:
        module = ModuleType(f"{_MODULE_PREFIX}.{_IDENT_UNSAFE.sub('_', name)}")
        module.__dict__["define"] = define
        module.__dict__["scope"] = scope
        code = compile(source, f"<{name}>", "exec")
        exec(code, module.__dict__)  # noqa: S102


def parse_define_args(*args: Any) -> Definition:
    """Split the three accepted ``define`` call forms.

    ``define(factory)``, ``define(deps, factory)`` and ``define(subject, deps, factory)``.
    """

    if len(args) == 1 and callable(args[0]):
        return Definition(subject=None, dependencies=None, factory=args[0])
    if len(args) == 2 and callable(args[1]):
        return Definition(subject=None, dependencies=args[0], factory=args[1])
    if len(args) == 3 and callable(args[2]):
        return Definition(subject=args[0] or None, dependencies=args[1], factory=args[2])
    raise TypeError(
        "define() expects (factory), (dependencies, factory) or (subject, dependencies, factory)."
    )


def fetch_object(scope: Mapping[str, Any], exports_to: str, exports_as: str) -> Any | None:
    """Look up ``exports_as`` under the dotted ``exports_to`` location of ``scope``."""

    origin: Any = scope
    if exports_to != DEFAULT_EXPORTS_TO:
        for item in exports_to.split("."):
            origin = _member(origin, item)
            if origin is None:
                return None
    return _member(origin, exports_as)


def _member(origin: Any, key: str) -> Any | None:
    if isinstance(origin, Mapping):
        return origin.get(key)
    return getattr(origin, key, None)


class Executor:
    """Turn fetched content into values, running scripts through an evaluator."""

    def __init__(self, scope: dict[str, Any], evaluator: ScriptEvaluator | None = None) -> None:
        self.scope = scope
        self.evaluator = evaluator or PythonScriptEvaluator()

    def evaluate(self, source: str, name: str) -> list[Definition]:
        """Run a script and return the definitions it made, in call order."""

        definitions: list[Definition] = []

        def define(*args: Any) -> None:
            definitions.append(parse_define_args(*args))

        LOGGER.debug("Evaluating script for '%s'", name)
        self.evaluator.evaluate(source, name=name, scope=self.scope, define=define)
        return definitions

    def handle(
        self,
        content: str,
        kind: ContentKind,
        name: str,
        exports_to: str | None = None,
        exports_as: str | None = None,
    ) -> Any:
        """Return the loaded value for ``content``.

        Text comes back unchanged. Scripts are evaluated and their value is read
        from ``exports_as`` under ``exports_to`` in the global scope.
        """

        if kind is ContentKind.TEXT:
            return content
        self.evaluate(content, name)
        return fetch_object(self.scope, exports_to or DEFAULT_EXPORTS_TO, exports_as or "")


__all__ = [
    "Executor",
    "PythonScriptEvaluator",
    "ScriptEvaluator",
    "fetch_object",
    "parse_define_args",
]

"""Asynchronous, single-flight loader for classes, libraries and resources."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from functools import partial
from typing import Any

from .cache import ResourceCache, ResponseCache
from .context import LoaderContext
from .executor import Executor, ScriptEvaluator, fetch_object, parse_define_args
from .registry import ClassRegistry, RegistrationError
from .resolver import NameResolver, ResolutionError, normalize_class_name
from .transport import FetchError, Transport, with_cache_buster
from .types import Definition, LibConfig, LoadRequest, ResourceType, SubjectType

LOGGER = logging.getLogger(__name__)

CACHE_NAMESPACE = "a"
_MISSING = object()

Callback = Callable[..., Any]
ErrorCallback = Callable[[], Any]


class Loader:
    """Load identifiers through the caches and transport, once per path.

    Concurrent loads of the same path share one in-flight task. Classes are
    memoised in the registry, libraries and resources in the loaded-data
    table; a memoised identifier resolves without suspending.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        cache: ResourceCache | None = None,
        response_cache: ResponseCache | None = None,
        cache_timestamp: str | None = None,
        base_path: str = "",
        resolver: NameResolver | None = None,
        evaluator: ScriptEvaluator | None = None,
        context: LoaderContext | None = None,
    ) -> None:
        self.transport = transport
        self.cache = cache
        self.response_cache = response_cache
        self.cache_timestamp = cache_timestamp
        self.base_path = base_path
        self.resolver = resolver or NameResolver()
        self.context = context or LoaderContext()
        self.executor = Executor(self.context.scope, evaluator)

    @property
    def registry(self) -> ClassRegistry:
        return self.context.registry

    def add_libs_config(self, config: dict[str, LibConfig | dict[str, Any]]) -> None:
        """Merge library settings; later entries override earlier ones."""

        self.context.add_libs(config)

    def resolve(self, name: str) -> str:
        return self.resolver.resolve(name, self.context.libs)

    async def load(
        self,
        name: str,
        callback: Callback | None = None,
        error_callback: ErrorCallback | None = None,
    ) -> Any:
        """Load ``name`` and return its value, also passing it to ``callback``.

        A :class:`FetchError` is handed to ``error_callback`` when one is given
        (the call then returns None); otherwise it propagates.
        """

        request = self.resolver.parse(name, self.context.libs)
        value = self._memoized(request)
        if value is _MISSING:
            try:
                value = await self._single_flight(request)
            except FetchError:
                if error_callback is None:
                    raise
                error_callback()
                return None
            if request.subject_type is SubjectType.LIB:
                # One path may back several library names with different exports.
                value = self._export(request)
                self.context.loaded[request.name] = value
        if callback is not None:
            callback(value)
        return value

    async def require(
        self,
        subject: str | Sequence[str] | None,
        callback: Callback | None = None,
        error_callback: ErrorCallback | None = None,
    ) -> Any:
        """Load one identifier or join a list of them.

        For a list, ``callback`` receives the values positionally in list order
        and the list of values is returned. The first failing member aborts the
        join: ``callback`` is never called.
        """

        if not subject:
            if callback is not None:
                callback()
            return None
        if isinstance(subject, str):
            return await self.load(subject, callback, error_callback)

        names = list(subject)
        try:
            values = await asyncio.gather(*(self.load(name) for name in names))
        except FetchError:
            if error_callback is None:
                raise
            error_callback()
            return None
        if callback is not None:
            callback(*values)
        return list(values)

    async def define(self, *args: Any) -> Any:
        """Register a class without fetching any script.

        Accepts ``(subject, dependencies, factory)``; ``dependencies`` may be
        None. The factory receives the loaded dependencies positionally.
        """

        definition = parse_define_args(*args)
        if not definition.subject:
            raise ResolutionError("define() outside of a module load requires a subject.")
        return await self._complete(definition, normalize_class_name(definition.subject))

    async def load_resource(
        self,
        resource_type: ResourceType | str,
        name: str,
        callback: Callback | None = None,
        error_callback: ErrorCallback | None = None,
    ) -> Any:
        """Load a template, layout template or layout by its resource name."""

        path = self.resolver.resource_path(resource_type, name)
        return await self.load(f"res!{path}", callback, error_callback)

    async def load_script(self, url: str, callback: Callable[[], Any] | None = None) -> None:
        """Fetch and evaluate a plain script; named definitions it makes are registered."""

        script = self.cache.get(CACHE_NAMESPACE, url) if self.cache is not None else None
        if script is None:
            script = await self._fetch(url, self.base_path + url, use_cache=False)
        for definition in self.executor.evaluate(script, url):
            if not definition.subject:
                LOGGER.warning("Ignoring anonymous definition in script %s", url)
                continue
            await self._complete(definition, normalize_class_name(definition.subject))
        if callback is not None:
            callback()

    def _memoized(self, request: LoadRequest) -> Any:
        if request.is_class:
            if request.name in self.context.registry:
                return self.context.registry.get(request.name)
            return _MISSING
        if request.subject_type is SubjectType.LIB:
            exported = self._export(request)
            if exported is not None:
                return exported
        return self.context.loaded.get(request.name, _MISSING)

    def _export(self, request: LoadRequest) -> Any:
        return fetch_object(
            self.context.scope,
            request.exports_to or "",
            request.exports_as or "",
        )

    async def _single_flight(self, request: LoadRequest) -> Any:
        task = self.context.pending.get(request.path)
        if task is None:
            task = asyncio.ensure_future(self._resolve(request))
            self.context.pending[request.path] = task
            task.add_done_callback(partial(self._forget, request.path))
        else:
            LOGGER.debug("Joining in-flight load of %s for '%s'", request.path, request.name)
        return await asyncio.shield(task)

    def _forget(self, path: str, task: asyncio.Task[Any]) -> None:
        if self.context.pending.get(path) is task:
            del self.context.pending[path]

    async def _resolve(self, request: LoadRequest) -> Any:
        content = await self._read(request)
        if not request.is_class:
            value = self.executor.handle(
                content,
                request.kind,
                request.name,
                request.exports_to,
                request.exports_as,
            )
            if value is None and request.subject_type is SubjectType.LIB:
                LOGGER.warning(
                    "Library '%s' did not export '%s' to '%s'",
                    request.name,
                    request.exports_as,
                    request.exports_to,
                )
            self.context.loaded[request.name] = value
            return value
        try:
            return await self._register(request.name, content)
        except Exception:
            self._invalidate(request.name)
            raise

    async def _read(self, request: LoadRequest) -> str:
        if self.cache is not None and self.response_cache is None:
            cached = self.cache.get(CACHE_NAMESPACE, request.name)
            if cached is not None:
                LOGGER.debug("Cache hit for '%s'", request.name)
                return cached

        path = with_cache_buster(request.path, self.cache_timestamp)
        url = self.base_path + path
        if self.response_cache is not None:
            cached = await self.response_cache.match(url)
            if cached is not None:
                LOGGER.debug("Response cache hit for %s", url)
                return cached

        content = await self._fetch(path, url, use_cache=bool(self.cache_timestamp))
        if self.response_cache is not None:
            await self.response_cache.put(url, content)
        elif self.cache is not None and request.cacheable:
            self.cache.set(CACHE_NAMESPACE, request.name, content)
        return content

    async def _fetch(self, path: str, url: str, *, use_cache: bool) -> str:
        try:
            return await self.transport.fetch(url, use_cache=use_cache)
        except FetchError as exc:
            LOGGER.debug("Fetching %s failed: %s", url, exc.reason)
            raise FetchError(url, path=path, reason=exc.reason) from exc

    async def _register(self, name: str, content: str) -> Any:
        definitions = self.executor.evaluate(content, name)
        if not definitions:
            raise RegistrationError(name, f"Could not load '{name}': script made no definition.")

        bound: str | None = name
        for definition in definitions:
            if definition.subject:
                subject = normalize_class_name(definition.subject)
            elif bound is not None:
                subject = bound
            else:
                raise RegistrationError(
                    name, f"Could not load '{name}': more than one anonymous definition."
                )
            bound = None
            await self._complete(definition, subject)

        if name not in self.context.registry:
            raise RegistrationError(name)
        return self.context.registry.get(name)

    async def _complete(self, definition: Definition, subject: str) -> Any:
        dependencies = definition.dependencies
        if isinstance(dependencies, str):
            dependencies = [dependencies]
        values = await self.require(list(dependencies)) if dependencies else []
        value = definition.factory(*values)
        self.context.registry.register(subject, value)
        LOGGER.debug("Registered class '%s'", subject)
        return value

    def _invalidate(self, name: str) -> None:
        if self.cache is None:
            return
        LOGGER.warning("Dropping cached script for '%s' after failed registration", name)
        self.cache.clear(CACHE_NAMESPACE, name)


__all__ = ["CACHE_NAMESPACE", "Loader"]

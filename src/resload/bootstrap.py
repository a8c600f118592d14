"""Build a ready-to-use loader from configuration."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from .cache import FileResourceCache, MemoryResponseCache
from .config import Config
from .loader import Loader
from .resolver import NameResolver
from .transport import HttpTransport, LocalTransport, Transport

LOGGER = logging.getLogger(__name__)


def open_resource_cache(config: Config) -> FileResourceCache | None:
    """Return the persistent cache, dropping entries from older generations."""

    if not config.cache.enabled or config.cache.response_cache:
        return None
    cache = FileResourceCache(config.cache_dir, config.cache.timestamp)
    if config.cache.timestamp:
        cache.handle_actuality(config.cache.timestamp)
    else:
        cache.store_timestamp()
    return cache


def build_transport(config: Config) -> tuple[Transport, str]:
    """Return the transport and the base path prefixed to every fetch path."""

    if config.is_remote:
        base_path = config.base_path if config.base_path.endswith("/") else f"{config.base_path}/"
        return HttpTransport(timeout=config.timeout), base_path
    return LocalTransport(Path(config.base_path)), ""


def create_loader(config: Config) -> Loader:
    transport, base_path = build_transport(config)
    response_cache = None
    if config.cache.enabled and config.cache.response_cache:
        response_cache = MemoryResponseCache(config.cache.timestamp)
    loader = Loader(
        transport,
        cache=open_resource_cache(config),
        response_cache=response_cache,
        cache_timestamp=config.cache.timestamp if config.cache.enabled else None,
        base_path=base_path,
        resolver=NameResolver(script_suffix=config.script_suffix),
    )
    loader.add_libs_config(dict(config.libs))
    LOGGER.debug(
        "Loader ready (base=%s, cache=%s, response_cache=%s, libs=%s)",
        config.base_path,
        loader.cache is not None,
        response_cache is not None,
        len(config.libs),
    )
    return loader


@asynccontextmanager
async def open_loader(config: Config) -> AsyncIterator[Loader]:
    """Yield a loader and close its HTTP client afterwards."""

    loader = create_loader(config)
    try:
        yield loader
    finally:
        if isinstance(loader.transport, HttpTransport):
            await loader.transport.aclose()


__all__ = ["build_transport", "create_loader", "open_loader", "open_resource_cache"]

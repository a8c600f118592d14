"""Persistent and URL-keyed caches consulted before the network."""

from __future__ import annotations

import hashlib
import logging
import shutil
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

LOGGER = logging.getLogger(__name__)

TIMESTAMP_FILENAME = "cache_timestamp"
ENTRY_SUFFIX = ".txt"


@runtime_checkable
class ResourceCache(Protocol):
    """Key/value store addressed by (namespace, logical name)."""

    def get(self, namespace: str, key: str) -> str | None:
        """Return the cached payload or None on a miss."""

    def set(self, namespace: str, key: str, payload: str) -> None:
        """Store a payload."""

    def clear(self, namespace: str, key: str) -> None:
        """Drop a single entry."""


@runtime_checkable
class ResponseCache(Protocol):
    """Durable request/response cache keyed by absolute URL."""

    async def match(self, url: str) -> str | None:
        """Return the cached body for ``url`` or None."""

    async def put(self, url: str, body: str) -> None:
        """Store the body fetched from ``url``."""


class FileResourceCache:
    """Resource cache stored as one text file per entry under ``root_dir``.

    Entries belong to a cache generation. :meth:`handle_actuality` drops every
    entry when the stored generation differs from the active one.
    """

    def __init__(self, root_dir: Path, cache_timestamp: str | None = None) -> None:
        self.root_dir = Path(root_dir).expanduser()
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.cache_timestamp = cache_timestamp
        self._timestamp_path = self.root_dir / TIMESTAMP_FILENAME

    def get(self, namespace: str, key: str) -> str | None:
        path = self._entry_path(namespace, key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            LOGGER.warning(
                "Failed to read cache entry '%s' in '%s' from %s",
                key,
                namespace,
                path,
                exc_info=True,
            )
            self._quarantine_corrupt_file(path)
            return None

    def set(self, namespace: str, key: str, payload: str) -> None:
        target = self._entry_path(namespace, key)

        def _write(tmp_path: Path) -> None:
            tmp_path.write_text(payload, encoding="utf-8")

        self._atomic_write(target, _write)

    def clear(self, namespace: str, key: str) -> None:
        self._entry_path(namespace, key).unlink(missing_ok=True)

    def clear_all(self) -> None:
        """Remove every entry in every namespace."""

        for child in self.root_dir.iterdir():
            if child.is_dir():
                shutil.rmtree(child)
        LOGGER.info("Cleared resource cache at %s", self.root_dir)

    def get_cache_timestamp(self) -> str | None:
        if not self._timestamp_path.exists():
            return None
        stored = self._timestamp_path.read_text(encoding="utf-8").strip()
        return stored or None

    def store_timestamp(self) -> None:
        token = self.cache_timestamp or ""

        def _write(tmp_path: Path) -> None:
            tmp_path.write_text(token, encoding="utf-8")

        self._atomic_write(self._timestamp_path, _write)

    def handle_actuality(self, cache_timestamp: str) -> None:
        """Invalidate stored entries when ``cache_timestamp`` starts a new generation."""

        stored = self.get_cache_timestamp()
        self.cache_timestamp = cache_timestamp
        if stored == cache_timestamp:
            return
        LOGGER.info(
            "Cache generation changed (%s -> %s); dropping stored entries.",
            stored,
            cache_timestamp,
        )
        self.clear_all()
        self.store_timestamp()

    def _entry_path(self, namespace: str, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.root_dir / namespace / f"{digest}{ENTRY_SUFFIX}"

    def _atomic_write(self, target: Path, writer: Callable[[Path], None]) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_name = f".{target.name}.{uuid.uuid4().hex}.tmp"
        tmp_path = target.with_name(tmp_name)
        try:
            writer(tmp_path)
            tmp_path.replace(target)
        finally:
            if tmp_path.exists():
                tmp_path.unlink(missing_ok=True)

    def _quarantine_corrupt_file(self, path: Path) -> None:
        if not path.exists():
            return
        suffix = ".corrupt"
        candidate = path.with_name(f"{path.name}{suffix}")
        counter = 1
        while candidate.exists():
            counter += 1
            candidate = path.with_name(f"{path.name}{suffix}{counter}")
        path.replace(candidate)


class MemoryResourceCache:
    """In-process resource cache, lost when the process exits."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], str] = {}

    def get(self, namespace: str, key: str) -> str | None:
        return self._entries.get((namespace, key))

    def set(self, namespace: str, key: str, payload: str) -> None:
        self._entries[(namespace, key)] = payload

    def clear(self, namespace: str, key: str) -> None:
        self._entries.pop((namespace, key), None)

    def __len__(self) -> int:
        return len(self._entries)


class MemoryResponseCache:
    """URL-keyed response cache tied to a cache generation."""

    def __init__(self, cache_timestamp: str | None = None) -> None:
        self.cache_timestamp = cache_timestamp
        self._responses: dict[str, str] = {}

    async def match(self, url: str) -> str | None:
        return self._responses.get(url)

    async def put(self, url: str, body: str) -> None:
        self._responses[url] = body

    def handle_actuality(self, cache_timestamp: str | None) -> None:
        if cache_timestamp and cache_timestamp == self.cache_timestamp:
            return
        self._responses.clear()
        self.cache_timestamp = cache_timestamp

    def __contains__(self, url: object) -> bool:
        return url in self._responses

    def __len__(self) -> int:
        return len(self._responses)


__all__ = [
    "FileResourceCache",
    "MemoryResourceCache",
    "MemoryResponseCache",
    "ResourceCache",
    "ResponseCache",
]

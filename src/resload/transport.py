"""Network and filesystem transports that fetch raw text."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import urlsplit

import httpx

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
CACHE_BUSTER_PARAM = "r"


class FetchError(RuntimeError):
    """Raised when content could not be fetched."""

    def __init__(self, url: str, *, path: str | None = None, reason: str | None = None) -> None:
        self.url = url
        self.path = path or url
        self.reason = reason
        message = f"Could not load file '{self.path}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


@runtime_checkable
class Transport(Protocol):
    """Fetches the body of ``url`` as text."""

    async def fetch(self, url: str, *, use_cache: bool = False) -> str:
        """Return the response body or raise :class:`FetchError`."""


def with_cache_buster(path: str, token: str | None) -> str:
    """Append the cache generation token as the ``r`` query parameter."""

    if not token:
        return path
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{CACHE_BUSTER_PARAM}={token}"


class HttpTransport:
    """Fetch text over HTTP with a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch(self, url: str, *, use_cache: bool = False) -> str:
        headers = {} if use_cache else {"Cache-Control": "no-cache"}
        LOGGER.debug("GET %s", url)
        try:
            response = await self.client.get(url, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(url, reason=f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(url, reason=str(exc) or type(exc).__name__) from exc
        return response.text

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, _exc_type, _exc, _tb) -> None:
        await self.aclose()


class LocalTransport:
    """Serve content from a directory, ignoring query strings."""

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = Path(root_dir).expanduser()

    async def fetch(self, url: str, *, use_cache: bool = False) -> str:
        relative = urlsplit(url).path.lstrip("/")
        target = self.root_dir / relative
        LOGGER.debug("Reading %s", target)
        try:
            return await asyncio.to_thread(target.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FetchError(url, reason=str(exc)) from exc


__all__ = [
    "CACHE_BUSTER_PARAM",
    "FetchError",
    "HttpTransport",
    "LocalTransport",
    "Transport",
    "with_cache_buster",
]

from __future__ import annotations

import asyncio
from urllib.parse import urlsplit

import pytest

from resload.transport import FetchError


class FakeTransport:
    """In-memory transport recording every fetched URL.

    Paths listed in ``gates`` block until their event is set.
    """

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files = dict(files or {})
        self.calls: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}

    def gate(self, path: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[path] = event
        return event

    async def fetch(self, url: str, *, use_cache: bool = False) -> str:
        self.calls.append(url)
        path = urlsplit(url).path.lstrip("/")
        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        try:
            return self.files[path]
        except KeyError as exc:
            raise FetchError(url, reason="not found") from exc


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run until they block."""

    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()

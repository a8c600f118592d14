"""Asynchronous module and resource loader."""

from importlib import metadata

from .cache import FileResourceCache, MemoryResourceCache, MemoryResponseCache
from .loader import Loader
from .registry import ClassRegistry, RegistrationError
from .resolver import NameResolver, ResolutionError
from .transport import FetchError, HttpTransport, LocalTransport


def _discover_version() -> str:
    """Return the installed package version, falling back to dev marker."""
    try:
        return metadata.version("resload")
    except metadata.PackageNotFoundError:  # pragma: no cover - occurs in editable installs
        return "0.0.0"


__all__ = [
    "ClassRegistry",
    "FetchError",
    "FileResourceCache",
    "HttpTransport",
    "Loader",
    "LocalTransport",
    "MemoryResourceCache",
    "MemoryResponseCache",
    "NameResolver",
    "RegistrationError",
    "ResolutionError",
    "__version__",
]
__version__ = _discover_version()

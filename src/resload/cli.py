"""resload command-line interface."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, NoReturn

import typer

from . import __version__
from .bootstrap import open_loader
from .config import Config, ConfigError, load_config, resolve_config_path
from .logging import configure_logging
from .registry import RegistrationError
from .resolver import NameResolver, ResolutionError
from .transport import FetchError

app = typer.Typer(help="Resolve, fetch and cache loader identifiers.")
LOGGER = logging.getLogger(__name__)


@dataclass
class CLIState:
    """Stores shared CLI options."""

    config_path: Path | None


@app.callback()
def _resload(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "-c",
            "--config",
            help="Path to config (env RESLOAD_CONFIG or ~/.config/resload/config.yaml).",
        ),
    ] = None,
) -> None:
    """Capture global CLI options."""

    resolved = config.expanduser() if config else None
    ctx.obj = CLIState(config_path=resolved)


@app.command()
def resolve(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Identifier, e.g. 'crm:views/record/detail'.")],
) -> None:
    """Print the fetch path of an identifier."""

    config = _optional_config(_state(ctx))
    resolver = _resolver(config)
    libs = config.libs if config else None
    try:
        typer.echo(resolver.resolve(name, libs))
    except ResolutionError as exc:
        _failure(str(exc))


@app.command()
def resource(
    ctx: typer.Context,
    resource_type: Annotated[
        str, typer.Argument(help="One of template, layoutTemplate or layout.")
    ],
    name: Annotated[str, typer.Argument(help="Resource name, optionally 'module:' prefixed.")],
) -> None:
    """Print the path of a template or layout resource."""

    resolver = _resolver(_optional_config(_state(ctx)))
    try:
        typer.echo(resolver.resource_path(resource_type, name))
    except ResolutionError as exc:
        _failure(str(exc))


@app.command()
def fetch(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Identifier to load.")],
) -> None:
    """Load an identifier through the caches and transport and print it."""

    config = _load_environment(_state(ctx))
    try:
        value = asyncio.run(_fetch(config, name))
    except (ResolutionError, FetchError, RegistrationError) as exc:
        _failure(str(exc))
    if isinstance(value, str):
        typer.echo(value, nl=not value.endswith("\n"))
    else:
        typer.echo(repr(value))


@app.command()
def status(ctx: typer.Context) -> None:
    """Display configuration and cache status."""

    state = _state(ctx)
    config = _load_environment(state)

    typer.echo("→ resload Status")
    typer.echo(f"Version: {__version__}")
    typer.echo(f"Config path: {resolve_config_path(state.config_path)}")
    typer.echo(f"Root dir: {config.root_dir}")
    typer.echo(f"Base path: {config.base_path}")
    if not config.cache.enabled:
        typer.echo("Cache: ○ Disabled")
    elif config.cache.response_cache:
        typer.echo("Cache: ● Response cache (URL keyed)")
    else:
        typer.echo(f"Cache: ● {config.cache_dir}")
    typer.echo(f"Cache timestamp: {config.cache.timestamp or '-'}")
    typer.echo("")
    typer.echo("Libraries:")
    if not config.libs:
        typer.echo("  (none)")
    for lib_name, lib in sorted(config.libs.items()):
        typer.echo(f"  - {lib_name}: {lib.path or lib_name}")


@app.command("clear-cache")
def clear_cache(ctx: typer.Context) -> None:
    """Remove every entry of the persistent cache."""

    config = _load_environment(_state(ctx))
    cache_dir = config.cache_dir
    if not cache_dir.exists():
        typer.echo(f"Nothing to clear at {cache_dir}")
        return
    shutil.rmtree(cache_dir)
    LOGGER.info("Removed cache directory %s", cache_dir)
    typer.echo(f"Cleared {cache_dir}")


async def _fetch(config: Config, name: str) -> Any:
    async with open_loader(config) as loader:
        return await loader.load(name)


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise RuntimeError("CLI state missing from context.")
    return state


def _load_environment(state: CLIState) -> Config:
    config = _load_config(state.config_path)
    configure_logging(config.logging, config.root_dir)
    return config


def _optional_config(state: CLIState) -> Config | None:
    if state.config_path is None and not resolve_config_path(None).exists():
        return None
    return _load_config(state.config_path)


def _resolver(config: Config | None) -> NameResolver:
    if config is None:
        return NameResolver()
    return NameResolver(script_suffix=config.script_suffix)


def _load_config(path: Path | None) -> Config:
    try:
        return load_config(path)
    except ConfigError as exc:  # pragma: no cover - exercised via CLI tests
        _config_failure(exc)


def _config_failure(exc: ConfigError) -> NoReturn:
    typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(2) from exc


def _failure(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


def main() -> None:  # pragma: no cover - delegated to Typer
    app()


__all__ = ["app", "main"]

"""Logging setup for the resload command line.

Besides the main log, every run writes ``loads.log``: only the records of the
load pipeline (loader, transport, caches), so a fetch session can be traced
without the CLI and config chatter around it.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import ConfigError, LoggingConfig

PACKAGE_LOGGER = "resload"
LOAD_LOGGERS = ("resload.loader", "resload.transport", "resload.cache")
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DIRNAME = "logs"
MAIN_LOG_NAME = "resload.log"
LOADS_LOG_NAME = "loads.log"
DEBUG_LOG_NAME = "debug.log"
# httpx logs every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")
MAX_BYTES = 5_000_000
BACKUP_COUNT = 5


class LoadRecordFilter(logging.Filter):
    """Pass records emitted by the load pipeline loggers and their children."""

    def __init__(self, names: tuple[str, ...] = LOAD_LOGGERS) -> None:
        super().__init__()
        self.names = names

    def filter(self, record: logging.LogRecord) -> bool:
        return any(
            record.name == name or record.name.startswith(f"{name}.") for name in self.names
        )


class ConsoleFormatter(logging.Formatter):
    """Render ``<tag> <component>: <message>`` with the package prefix dropped."""

    LEVEL_TAGS: dict[int, tuple[str, str]] = {
        logging.DEBUG: ("D", "\x1b[36m"),
        logging.INFO: ("I", "\x1b[32m"),
        logging.WARNING: ("!", "\x1b[33m"),
        logging.ERROR: ("X", "\x1b[31m"),
        logging.CRITICAL: ("X", "\x1b[35m"),
    }
    RESET = "\x1b[0m"

    def __init__(self, use_color: bool) -> None:
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        tag, color = self.LEVEL_TAGS.get(record.levelno, ("?", "\x1b[37m"))
        if self.use_color:
            tag = f"{color}{tag}{self.RESET}"
        line = f"{tag} {component_name(record.name)}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def component_name(logger_name: str) -> str:
    """``resload.loader`` -> ``loader``; foreign logger names are kept whole."""

    prefix = f"{PACKAGE_LOGGER}."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix) :]
    return logger_name


def configure_logging(logging_config: LoggingConfig, root_dir: Path) -> None:
    """Install the main, load-trace and console handlers on the root logger."""

    level = level_from_string(logging_config.level)
    log_dir = (root_dir / LOG_DIRNAME).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    loads = _file_handler(log_dir / LOADS_LOG_NAME, logging.DEBUG)
    loads.addFilter(LoadRecordFilter())
    handlers: list[logging.Handler] = [
        _file_handler(log_dir / MAIN_LOG_NAME, logging.INFO),
        loads,
        _console_handler(),
    ]
    if logging_config.debug_file:
        handlers.append(_file_handler(log_dir / DEBUG_LOG_NAME, logging.DEBUG))

    logging.basicConfig(level=level, handlers=handlers, force=True)
    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def level_from_string(level: str) -> int:
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ConfigError(f"Unknown log level: {level}")
    return value


def _file_handler(path: Path, level: int) -> logging.Handler:
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    isatty = getattr(handler.stream, "isatty", None)
    handler.setFormatter(ConsoleFormatter(bool(isatty and isatty())))
    return handler


__all__ = [
    "ConsoleFormatter",
    "LoadRecordFilter",
    "component_name",
    "configure_logging",
    "level_from_string",
]

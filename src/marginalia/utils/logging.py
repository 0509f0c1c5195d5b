"""Logging setup for the Marginalia shell plus an optional session event trace.

The application log goes through the root logger. The event trace is a
separate ``marginalia.trace`` logger with its own rotating ``events.log`` that
does not propagate, so tracing a busy session never floods the main log.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from ..ui.events import Event, EventBus

__all__ = [
    "LOG_FORMAT",
    "TRACE_LOGGER_NAME",
    "setup_logging",
    "get_logger",
    "get_log_path",
    "resolve_log_dir",
    "format_event",
    "EventTrace",
    "trace_events",
]

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
TRACE_LOGGER_NAME = "marginalia.trace"
LOG_DIR_ENV = "MARGINALIA_LOG_DIR"

_DEFAULT_LOG_DIR = Path.home() / ".marginalia" / "logs"
_QUIETED = ("asyncio", "httpx", "httpcore", "openai")
_MAX_FIELD_CHARS = 80

_log_path: Path | None = None


def resolve_log_dir(log_dir: Path | str | None = None) -> Path:
    """Pick the log directory: explicit argument, then ``MARGINALIA_LOG_DIR``, then ``~/.marginalia/logs``."""

    chosen = log_dir or os.environ.get(LOG_DIR_ENV) or _DEFAULT_LOG_DIR
    return Path(chosen).expanduser()


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route root logging to ``marginalia.log`` (and stderr when ``console``).

    Repeated calls are no-ops returning the existing path unless ``force``.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    directory = resolve_log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "marginalia.log"

    handlers: list[logging.Handler] = [_file_handler(path, level, max_bytes, backup_count)]
    if console:
        handlers.append(_console_handler(level))
    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)

    # Library chatter stays at WARNING even in debug runs
    floor = max(level, logging.WARNING)
    for name in _QUIETED:
        logging.getLogger(name).setLevel(floor)

    _log_path = path
    return path


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    """Return the active application log file, or None before setup."""

    return _log_path


def format_event(event: Any) -> str:
    """Render an event as ``Name key=value ...`` with long values shortened."""

    name = type(event).__name__
    if not dataclasses.is_dataclass(event):
        return f"{name} {event!r}"
    parts = [name]
    for field in dataclasses.fields(event):
        value = getattr(event, field.name)
        if value is None:
            continue
        text = repr(value)
        if len(text) > _MAX_FIELD_CHARS:
            text = text[: _MAX_FIELD_CHARS - 3] + "..."
        parts.append(f"{field.name}={text}")
    return " ".join(parts)


class EventTrace:
    """Writes one line per published event to a dedicated rotating log.

    Attach with :func:`trace_events`; :meth:`close` detaches from the bus and
    releases the file handle.
    """

    def __init__(
        self,
        path: Path,
        *,
        max_bytes: int = 5_000_000,
        backup_count: int = 2,
        logger: logging.Logger | None = None,
    ) -> None:
        self.path = path
        self.logger = logger or logging.getLogger(TRACE_LOGGER_NAME)
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        self._handler = _file_handler(path, logging.INFO, max_bytes, backup_count)
        self.logger.addHandler(self._handler)
        self._bus: EventBus[Any] | None = None
        self.count = 0

    def __call__(self, event: Event) -> None:
        self.count += 1
        self.logger.info(format_event(event))

    def attach(self, bus: EventBus[Any]) -> None:
        if self._bus is not None:
            raise RuntimeError("Event trace is already attached to a bus")
        bus.subscribe_all(self)
        self._bus = bus

    def close(self) -> None:
        if self._bus is not None:
            self._bus.unsubscribe_all(self)
            self._bus = None
        self.logger.removeHandler(self._handler)
        self._handler.close()


def trace_events(bus: EventBus[Any], *, log_dir: Path | str | None = None) -> EventTrace:
    """Record every event published on ``bus`` to ``events.log`` in the log directory."""

    directory = resolve_log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    trace = EventTrace(directory / "events.log")
    trace.attach(bus)
    logging.getLogger(__name__).info("Tracing session events to %s", trace.path)
    return trace


def _file_handler(path: Path, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    return handler

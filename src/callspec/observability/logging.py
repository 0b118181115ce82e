"""
callspec — structured logging for check evaluation

File: src/callspec/observability/logging.py

Purpose
- Route the ``callspec`` logger hierarchy to JSON-lines (or plain text) sinks
  through a ``QueueHandler``/``QueueListener`` pair so that validated calls never
  block on file or stream I/O.
- Stamp every record with the correlation fields bound on the emitting
  thread/task: ``validation_id`` for the root validated call, plus ``identity``
  and ``role`` when a check is being reported.

Record layout (one JSON object per line, keys sorted)
- ``timestamp`` (UTC, ``Z`` suffix), ``level``, ``logger``, ``message``.
- Correlation fields at top level.
- ``fields``: remaining ``extra=`` values, made JSON-safe.
- ``exception``: formatted traceback when ``exc_info`` is set.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from types import MappingProxyType
from typing import Final

from callspec.domain.models import JSONValue

_PACKAGE_LOGGER: Final[str] = "callspec"
_LOG_FILENAME: Final[str] = "callspec.jsonl"
_TEXT_FORMAT: Final[str] = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_NON_FINITE: Final[str] = "<non-finite>"

CORRELATION_FIELDS: Final[tuple[str, ...]] = ("validation_id", "identity", "role")

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "correlation"}

_EMPTY_CORRELATION: Final[Mapping[str, str]] = MappingProxyType({})
_CORRELATION: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "callspec_log_correlation", default=_EMPTY_CORRELATION
)

_active_lock = threading.Lock()
_active: LoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how ``callspec`` log records are written."""

    logger_name: str = _PACKAGE_LOGGER
    level: int | str = "WARNING"
    log_dir: Path | str | None = None
    log_filename: str = _LOG_FILENAME
    log_to_stderr: bool = True
    json_lines: bool = True

    def sink_count(self) -> int:
        return int(self.log_dir is not None) + int(self.log_to_stderr)


@dataclass(slots=True)
class LoggingHandle:
    """A running logging setup; ``close`` detaches it and drains the queue."""

    logger: logging.Logger
    log_path: Path | None
    _queue_handler: logging.Handler
    _listener: logging.handlers.QueueListener
    _sinks: tuple[logging.Handler, ...]
    _closed: bool = field(default=False)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.logger.removeHandler(self._queue_handler)
        # stop() processes everything already queued before returning.
        self._listener.stop()
        for sink in self._sinks:
            sink.close()


class _CorrelatingQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that snapshots correlation fields on the emitting thread."""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        correlation = _CORRELATION.get()
        if correlation:
            record.correlation = dict(correlation)
        return super().prepare(record)


class CheckEventFormatter(logging.Formatter):
    """Render a record as one canonical JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event.update(_correlation_of(record))

        extras = {
            key: _json_safe(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES
            and key not in CORRELATION_FIELDS
            and not key.startswith("_")
        }
        if extras:
            event["fields"] = extras
        if record.exc_info:
            event["exception"] = self.formatException(record.exc_info)
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def setup_structured_logging(config: LoggingConfig) -> LoggingHandle:
    """Install queue-backed sinks on ``config.logger_name``.

    Any previous setup made through this module is closed first. Raises
    ``ValueError`` when the config enables neither a file nor stderr.
    """

    if config.sink_count() == 0:
        raise ValueError("logging config enables no sink: set log_dir or log_to_stderr")
    level = _level_number(config.level)
    name = config.logger_name.strip()
    if not name:
        raise ValueError("logger_name must not be empty")

    shutdown_logging()

    formatter = CheckEventFormatter() if config.json_lines else logging.Formatter(_TEXT_FORMAT)
    sinks: list[logging.Handler] = []
    log_path: Path | None = None
    if config.log_dir is not None:
        filename = config.log_filename.strip()
        if not filename or Path(filename).name != filename:
            raise ValueError(f"log_filename must be a bare file name, got {config.log_filename!r}")
        log_path = Path(config.log_dir) / filename
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sinks.append(logging.FileHandler(log_path, encoding="utf-8"))
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler(sys.stderr))
    for sink in sinks:
        sink.setFormatter(formatter)

    logger = logging.getLogger(name)
    for previous in list(logger.handlers):
        logger.removeHandler(previous)
        previous.close()
    logger.setLevel(level)
    logger.propagate = False

    records: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
    queue_handler = _CorrelatingQueueHandler(records)
    listener = logging.handlers.QueueListener(records, *sinks)
    listener.start()
    logger.addHandler(queue_handler)

    handle = LoggingHandle(
        logger=logger,
        log_path=log_path,
        _queue_handler=queue_handler,
        _listener=listener,
        _sinks=tuple(sinks),
    )
    _set_active(handle)
    return handle


def configure_from_mapping(
    observability: Mapping[str, object] | None,
    *,
    logger_name: str = _PACKAGE_LOGGER,
) -> LoggingHandle | None:
    """Apply an ``[observability]`` config table.

    A table with no ``log_dir`` and ``log_to_stderr = false`` installs no sink and
    returns ``None``; its ``log_level`` still applies to ``logger_name`` so that
    records reach whatever handlers the application configured.
    """

    table = dict(observability or {})
    log_dir = table.get("log_dir") or None
    config = LoggingConfig(
        logger_name=logger_name,
        level=str(table.get("log_level", "WARNING")),
        log_dir=log_dir if isinstance(log_dir, (str, Path)) else None,
        log_to_stderr=bool(table.get("log_to_stderr", False)),
        json_lines=bool(table.get("json", True)),
    )
    if config.sink_count() == 0:
        logging.getLogger(logger_name).setLevel(_level_number(config.level))
        return None
    return setup_structured_logging(config)


def shutdown_logging(handle: LoggingHandle | None = None) -> None:
    """Close ``handle`` (default: the active setup), flushing queued records."""

    global _active
    with _active_lock:
        target = handle if handle is not None else _active
        if target is _active:
            _active = None
    if target is not None:
        target.close()


def get_active_logging_handle() -> LoggingHandle | None:
    with _active_lock:
        return _active


def get_correlation_context() -> dict[str, str]:
    """Correlation fields bound in the current thread/task."""

    return dict(_CORRELATION.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for the enclosed block; ``None`` unbinds a field."""

    updated = dict(_CORRELATION.get())
    for key, value in fields.items():
        if value is None:
            updated.pop(key, None)
        elif not isinstance(value, str) or not value.strip():
            raise ValueError(f"correlation field {key!r} needs a non-empty string")
        else:
            updated[key] = value.strip()
    token = _CORRELATION.set(MappingProxyType(updated))
    try:
        yield
    finally:
        _CORRELATION.reset(token)


def _set_active(handle: LoggingHandle) -> None:
    global _active, _atexit_hooked
    with _active_lock:
        _active = handle
        if not _atexit_hooked:
            atexit.register(shutdown_logging)
            _atexit_hooked = True


def _level_number(level: int | str) -> int:
    if isinstance(level, int) and not isinstance(level, bool):
        return level
    if isinstance(level, str):
        number = logging.getLevelNamesMapping().get(level.strip().upper())
        if number is not None:
            return number
    raise ValueError(f"unsupported logging level {level!r}")


def _utc_timestamp(created: float) -> str:
    moment = datetime.fromtimestamp(created, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _correlation_of(record: logging.LogRecord) -> dict[str, JSONValue]:
    found: dict[str, JSONValue] = {}
    bound = getattr(record, "correlation", None)
    if isinstance(bound, Mapping):
        found.update((str(key), str(value)) for key, value in bound.items())
    # Fields passed through ``extra=`` describe the record itself and win.
    for key in CORRELATION_FIELDS:
        value = getattr(record, key, None)
        if isinstance(value, str) and value:
            found[key] = value
    return found


def _json_safe(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else _NON_FINITE
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(item) for item in value]
    if isinstance(value, Path):
        return value.as_posix()
    return repr(value)


__all__ = [
    "CORRELATION_FIELDS",
    "CheckEventFormatter",
    "LoggingConfig",
    "LoggingHandle",
    "configure_from_mapping",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_structured_logging",
    "shutdown_logging",
]

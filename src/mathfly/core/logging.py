"""JSON-lines logging for mathfly commands.

Each record is written to ``<workspace>/logs/<name>.log`` as one JSON object.
Fields bound with :func:`log_context` (the running command, the player, the
phase being played) are attached to every record emitted inside the block,
next to the record's own ``extra`` fields.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping

__all__ = [
    "JsonLogFormatter",
    "configure_logger",
    "log_context",
    "release_logger",
]

_FILE_HANDLER = "mathfly-file"
_CONSOLE_HANDLER = "mathfly-console"

_STANDARD_ATTRS = frozenset(
    logging.makeLogRecord({}).__dict__
) | {"message", "asctime", "taskName"}

_context: ContextVar[Mapping[str, Any]] = ContextVar(
    "mathfly_log_context", default=MappingProxyType({})
)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block.

    Nested blocks add to the outer fields; ``None`` values are skipped.
    """

    merged = dict(_context.get())
    merged.update({k: v for k, v in fields.items() if v is not None})
    token = _context.set(MappingProxyType(merged))
    try:
        yield
    finally:
        _context.reset(token)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, Enum):
        return value.value
    return repr(value)


class JsonLogFormatter(logging.Formatter):
    """Render a record, its quiz context and its extras as a JSON line."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _context.get()
        if context:
            payload["context"] = dict(context)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS
        }
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default, ensure_ascii=True)


def configure_logger(
    name: str,
    *,
    log_dir: Path,
    level: str = "INFO",
    verbose: bool = False,
    max_bytes: int = 2 * 1024 * 1024,
    backup_count: int = 3,
) -> tuple[logging.Logger, Path]:
    """Route ``name`` (and its children) into a rotating JSON log file.

    Calling it again replaces the handlers installed by the previous call.
    With ``verbose`` the records are mirrored to stderr and the file level
    drops to DEBUG.
    """

    logger = logging.getLogger(name)
    release_logger(logger)
    logger.propagate = False
    logger.setLevel(logging.DEBUG)

    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / f"{name.rsplit('.', 1)[-1]}.log"

    file_handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.set_name(_FILE_HANDLER)
    file_handler.setLevel(logging.DEBUG if verbose else _level(level))
    file_handler.setFormatter(JsonLogFormatter())
    logger.addHandler(file_handler)

    if verbose:
        console = logging.StreamHandler(stream=sys.stderr)
        console.set_name(_CONSOLE_HANDLER)
        console.setLevel(logging.DEBUG)
        console.setFormatter(
            logging.Formatter("%(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(console)

    return logger, path


def release_logger(logger: logging.Logger) -> None:
    """Close and detach the handlers installed by :func:`configure_logger`."""

    for handler in list(logger.handlers):
        if handler.get_name() in (_FILE_HANDLER, _CONSOLE_HANDLER):
            logger.removeHandler(handler)
            handler.close()


def _level(level: str) -> int:
    numeric = logging.getLevelName(level.strip().upper())
    return numeric if isinstance(numeric, int) else logging.INFO

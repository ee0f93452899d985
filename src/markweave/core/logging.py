"""Structured logging helpers shared by markweave commands and the engine."""

from __future__ import annotations

import json
import logging
import sys
import tempfile
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

__all__ = [
    "JsonLogFormatter",
    "configure_logger",
    "get_logger",
]

_FILE_MARKER = "_markweave_file"
_CONSOLE_MARKER = "_markweave_console"


class JsonLogFormatter(logging.Formatter):
    """Render each record as a single JSON line.

    Values passed through ``extra=`` end up under an ``extra`` key; anything
    that is not JSON-friendly is reduced to its ``repr``.
    """

    _RESERVED = frozenset(
        {
            "name",
            "msg",
            "args",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "exc_info",
            "exc_text",
            "stack_info",
            "lineno",
            "funcName",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "taskName",
        }
    )

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extras = {
            key: _coerce_value(value)
            for key, value in record.__dict__.items()
            if key not in self._RESERVED
        }
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        return json.dumps(payload, ensure_ascii=True)


def get_logger(name: str, logger: Optional[logging.Logger] = None):
    """Return ``logger`` when supplied, otherwise the module logger ``name``."""

    if logger is not None:
        return logger
    return logging.getLogger(name)


def configure_logger(
    name: str,
    *,
    log_dir: Optional[Path],
    level: str = "INFO",
    verbose: bool = False,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    filename: str | None = None,
) -> tuple[logging.Logger, Optional[Path]]:
    """Configure a namespaced logger.

    With a ``log_dir`` the logger writes JSON lines to a rotating file in that
    directory. Without one only the stderr console handler is attached, which
    suits library callers that never set up a data home.
    """

    logger = logging.getLogger(name)
    logger.propagate = False
    logger.setLevel(logging.DEBUG)

    handler_level = _coerce_level(level)
    if verbose:
        handler_level = logging.DEBUG

    file_path: Optional[Path] = None
    if log_dir is not None:
        target_dir = _prepare_log_dir(log_dir)
        log_name = filename or f"{name.rsplit('.', 1)[-1]}.log"
        requested = _prepare_log_file(target_dir, log_name)
        file_handler, file_path = _ensure_file_handler(
            logger=logger,
            path=requested,
            filename=log_name,
            max_bytes=max_bytes,
            backup_count=backup_count,
        )
        file_handler.setLevel(handler_level)

    if verbose or log_dir is None:
        _enable_console_handler(logger, handler_level)
    else:
        _disable_console_handler(logger)

    return logger, file_path


def _coerce_level(level: str) -> int:
    numeric = logging.getLevelName(level.strip().upper())
    if isinstance(numeric, int):
        return numeric
    return logging.INFO


def _ensure_file_handler(
    *,
    logger: logging.Logger,
    path: Path,
    filename: str,
    max_bytes: int,
    backup_count: int,
) -> tuple[RotatingFileHandler, Path]:
    for handler in list(logger.handlers):
        if getattr(handler, _FILE_MARKER, False):
            if Path(handler.baseFilename) == path:  # type: ignore[attr-defined]
                return handler, path  # type: ignore[return-value]
            logger.removeHandler(handler)
            handler.close()
            break

    try:
        managed = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        active_path = path
    except PermissionError:
        fallback_dir = _prepare_log_dir(_fallback_log_dir())
        active_path = _prepare_log_file(fallback_dir, filename)
        managed = RotatingFileHandler(
            active_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    managed.setFormatter(JsonLogFormatter())
    setattr(managed, _FILE_MARKER, True)
    logger.addHandler(managed)
    return managed, Path(active_path)


def _enable_console_handler(logger: logging.Logger, level: int) -> None:
    for handler in logger.handlers:
        if getattr(handler, _CONSOLE_MARKER, False):
            handler.setLevel(level)
            return
    console = logging.StreamHandler(stream=sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    setattr(console, _CONSOLE_MARKER, True)
    logger.addHandler(console)


def _disable_console_handler(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _CONSOLE_MARKER, False):
            logger.removeHandler(handler)
            handler.close()


def _coerce_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {str(key): _coerce_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_coerce_value(item) for item in value]
    return repr(value)


def _prepare_log_dir(log_dir: Path) -> Path:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        fallback = _fallback_log_dir()
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback
    try:
        log_dir.chmod(0o700)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
    return log_dir


def _prepare_log_file(log_dir: Path, filename: str) -> Path:
    path = log_dir / filename
    try:
        path.touch(exist_ok=True)
    except PermissionError:  # pragma: no cover - depends on filesystem
        fallback = _fallback_log_dir()
        fallback.mkdir(parents=True, exist_ok=True)
        path = fallback / filename
        path.touch(exist_ok=True)
    try:
        path.chmod(0o600)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
    return path


def _fallback_log_dir() -> Path:
    return Path(tempfile.gettempdir()) / "markweave-logs"

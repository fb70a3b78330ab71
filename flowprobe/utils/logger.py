# flowprobe/utils/logger.py
from __future__ import annotations

"""Logging
----------
Rich console output for the operator watching a run, plus JSON-lines files
(one global, optional; one per scenario run) for post-hoc debugging. Context
such as run_id, scenario and step rides on every record through a
LoggerAdapter.
"""

import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler

from flowprobe.utils.config import get_settings, LogLevel


__all__ = [
    "get_logger",
    "set_log_level",
    "bind",
    "unbind",
    "bound",
    "log_with_context",
    "attach_file_logger",
    "detach_file_logger",
    "run_log",
]

_MAX_BYTES = 5 * 1024 * 1024

_config_lock = threading.Lock()
_configured = False
_context: Dict[str, Any] = {}  # run-wide fields (run_id, scenario, ...) shared by every adapter


class RunRecordFormatter(logging.Formatter):
    """One JSON object per line: time (ms, UTC), level, logger, message, context fields."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "ts": ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        ctx = getattr(record, "ctx", None)
        if isinstance(ctx, dict):
            payload.update({k: v for k, v in ctx.items() if k not in payload})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _level(value: LogLevel | str) -> int:
    name = value.value if isinstance(value, LogLevel) else str(value)
    return getattr(logging, name.upper(), logging.INFO)


def _json_file_handler(path: str, level: int, backups: int) -> RotatingFileHandler:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    fh = RotatingFileHandler(filename=path, maxBytes=_MAX_BYTES, backupCount=backups, encoding="utf-8", delay=True)
    fh.setLevel(level)
    fh.setFormatter(RunRecordFormatter())
    return fh


def _ensure_configured() -> None:
    global _configured
    if _configured:
        return

    with _config_lock:
        if _configured:
            return

        settings = get_settings()
        level = _level(settings.LOG_LEVEL)

        root = logging.getLogger()
        root.setLevel(level)
        for h in list(root.handlers):
            root.removeHandler(h)

        console = Console(stderr=True, color_system="auto" if settings.COLORIZED_OUTPUT else None)
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        rich_handler.setFormatter(logging.Formatter("%(message)s"))
        rich_handler.setLevel(level)
        root.addHandler(rich_handler)

        if settings.LOG_TO_FILE:
            root.addHandler(_json_file_handler(str(settings.LOG_FILE), level, backups=5))

        # Playwright's driver chatter is only useful when debugging the driver itself
        for n in ("asyncio", "playwright"):
            logging.getLogger(n).setLevel(max(level, logging.WARNING))

        _configured = True


def get_logger(name: Optional[str] = None) -> logging.LoggerAdapter:
    """Logger whose records carry the current run-wide context."""
    _ensure_configured()
    return logging.LoggerAdapter(logging.getLogger(name or "flowprobe"), extra={"ctx": _context})


def set_log_level(level: LogLevel | str) -> None:
    _ensure_configured()
    py_level = _level(level)
    root = logging.getLogger()
    root.setLevel(py_level)
    for h in root.handlers:
        h.setLevel(py_level)


def bind(**kwargs: Any) -> None:
    """Attach fields (e.g. run_id="20261019T120000Z") to every later record."""
    _context.update(kwargs)


def unbind(*keys: str) -> None:
    for k in keys:
        _context.pop(k, None)


@contextmanager
def bound(**kwargs: Any) -> Iterator[None]:
    """`bind` for the duration of a block; previous values come back afterwards."""
    previous = {k: _context[k] for k in kwargs if k in _context}
    bind(**kwargs)
    try:
        yield
    finally:
        unbind(*kwargs)
        _context.update(previous)


def log_with_context(logger: logging.LoggerAdapter, **kwargs: Any) -> logging.LoggerAdapter:
    """
    Adapter for a scoped section (one step, one probe) with extra fields:
        step_log = log_with_context(log, step_index=3, step="open_contact")
        step_log.info("searching")
    """
    merged = dict(_context)
    merged.update(kwargs)
    return logging.LoggerAdapter(logger.logger, extra={"ctx": merged})


def attach_file_logger(path: os.PathLike | str, level: Optional[int] = None) -> logging.Handler:
    """Add a JSON-lines handler on the root logger; pair with detach_file_logger."""
    _ensure_configured()
    root = logging.getLogger()
    fh = _json_file_handler(os.fspath(path), level if level is not None else root.level, backups=3)
    root.addHandler(fh)
    return fh


def detach_file_logger(handler: logging.Handler) -> None:
    logging.getLogger().removeHandler(handler)
    handler.close()


@contextmanager
def run_log(path: os.PathLike | str) -> Iterator[logging.Handler]:
    """Everything logged inside the block also lands in `path` (the run's run.log)."""
    handler = attach_file_logger(path)
    try:
        yield handler
    finally:
        detach_file_logger(handler)

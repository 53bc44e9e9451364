# cmdflow/utils/logger.py
from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from cmdflow.utils.config import get_settings, LogLevel


__all__ = [
    "get_logger",
    "set_log_level",
    "bind",
    "unbind",
    "log_with_context",
    "attach_file_logger",
    "detach_file_logger",
]


# ------------- Internal state -------------

_config_lock = threading.Lock()
_configured = False
_global_extra: Dict[str, Any] = {}  # context attached to every record (session id, graph id, ...)


# ------------- JSON Formatter (for file logs) -------------

class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.
    Keeps message as `msg` and merges the bound context if present.
    """

    default_time_format = "%Y-%m-%dT%H:%M:%S"

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(self.default_time_format),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        # Context added via LoggerAdapter(extra={"extra": {...}})
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            payload.update(record.extra)

        return json.dumps(payload, ensure_ascii=False, default=str)


# ------------- Helpers -------------

_LEVEL_MAP = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


def _ensure_configured() -> None:
    """
    Configure the `cmdflow` logger tree once based on settings.
    Subsequent calls are no-ops.
    """
    global _configured
    if _configured:
        return

    with _config_lock:
        if _configured:
            return

        settings = get_settings()
        level = _LEVEL_MAP.get(settings.LOG_LEVEL, logging.INFO)

        base = logging.getLogger("cmdflow")
        base.setLevel(level)
        for h in list(base.handlers):
            base.removeHandler(h)

        console = Console(stderr=True, force_jupyter=False, color_system="auto")
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
            omit_repeated_times=False,
        )
        rich_handler.setFormatter(logging.Formatter("%(message)s"))
        rich_handler.setLevel(level)
        if not settings.COLORIZED_OUTPUT:
            console.no_color = True
        base.addHandler(rich_handler)

        if settings.LOG_TO_FILE:
            settings.ensure_dirs()
            file_handler = RotatingFileHandler(
                filename=str(settings.LOG_FILE),
                maxBytes=5 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
                delay=True,
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(JsonFormatter())
            base.addHandler(file_handler)

        # asyncio chatter is only interesting while debugging the step loop
        logging.getLogger("asyncio").setLevel(max(level, logging.WARNING))

        _configured = True


def _qualify(name: Optional[str]) -> str:
    if not name:
        return "cmdflow"
    return name if name == "cmdflow" or name.startswith("cmdflow.") else f"cmdflow.{name}"


def get_logger(name: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Get a configured logger wrapped with a LoggerAdapter
    that injects `_global_extra` into every log record.
    """
    _ensure_configured()
    base = logging.getLogger(_qualify(name))
    return logging.LoggerAdapter(base, extra={"extra": _global_extra})


def set_log_level(level: LogLevel | str) -> None:
    """
    Dynamically adjust log level at runtime.
    """
    _ensure_configured()
    lvl = level if isinstance(level, str) else level.value
    py_level = getattr(logging, lvl.upper(), logging.INFO)
    base = logging.getLogger("cmdflow")
    base.setLevel(py_level)
    for h in base.handlers:
        h.setLevel(py_level)


def bind(**kwargs: Any) -> None:
    """
    Bind global context (e.g., graph_id="...", session="step-3").
    Attached to every subsequent log line.
    """
    _global_extra.update(kwargs)


def unbind(*keys: str) -> None:
    """
    Remove keys from global context.
    """
    for k in keys:
        _global_extra.pop(k, None)


def log_with_context(logger: logging.LoggerAdapter, **kwargs: Any) -> logging.LoggerAdapter:
    """
    Return a new LoggerAdapter that merges additional context for a scoped section.
    Usage:
        log = get_logger(__name__)
        node_log = log_with_context(log, node_id=node.id)
        node_log.info("stepping")
    """
    merged = dict(_global_extra)
    inherited = (logger.extra or {}).get("extra")
    if isinstance(inherited, dict):
        merged.update(inherited)
    merged.update(kwargs)
    return logging.LoggerAdapter(logger.logger, extra={"extra": merged})


# ------------- Dynamic per-session file logging -------------

def attach_file_logger(path: os.PathLike | str, level: Optional[int] = None) -> logging.Handler:
    """
    Attach a JSON file handler at runtime (e.g., one file per step session).
    Returns the handler so the caller can later detach it via detach_file_logger.
    """
    _ensure_configured()
    base = logging.getLogger("cmdflow")
    lvl = level if level is not None else base.level
    p = os.fspath(path)
    parent = os.path.dirname(p)
    if parent:
        os.makedirs(parent, exist_ok=True)
    fh = RotatingFileHandler(filename=p, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8", delay=True)
    fh.setLevel(lvl)
    fh.setFormatter(JsonFormatter())
    base.addHandler(fh)
    return fh


def detach_file_logger(handler: logging.Handler) -> None:
    """Remove a previously attached handler returned by attach_file_logger."""
    logging.getLogger("cmdflow").removeHandler(handler)
    handler.close()

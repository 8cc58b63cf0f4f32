"""Central logging utilities for the Ratings Pipeline.

One place to configure logging for the API process, the scheduler and CLI runs.

Environment:
    LOG_LEVEL=INFO|DEBUG|... (default: INFO, or the ``level`` argument)
    LOG_FORMAT=console|json (default: console)
    LOG_NO_COLOR=1 disables colour on console output
    LOG_TIMEZONE=utc|local (default: utc)

Usage:
    from ratings_pipeline.common.logging_utils import configure_logging, get_logger
    configure_logging(service="ingest")  # idempotent
    logger = get_logger(__name__)

Calling configure_logging() again is a no-op unless ``force=True`` is passed.
"""
from __future__ import annotations

import json
import logging
import os
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_CONFIG_LOCK = threading.Lock()
_ALREADY_CONFIGURED = False

# LogRecord attributes that are never copied into JSON output as extras
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys() | {"message", "asctime", "taskName"}
)

# third-party loggers that drown the pipeline's own output at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "playwright", "asyncio", "uvicorn.access")


def _timestamp(record: logging.LogRecord, tz_local: bool) -> datetime:
    ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
    return ts.astimezone() if tz_local else ts


class ColorFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\x1b[38;5;245m",  # grey
        "INFO": "\x1b[38;5;39m",  # blue
        "WARNING": "\x1b[38;5;214m",  # orange
        "ERROR": "\x1b[38;5;196m",  # red
        "CRITICAL": "\x1b[48;5;196m\x1b[38;5;231m",  # white on red
    }
    RESET = "\x1b[0m"

    def __init__(self, tz_local: bool = False, color: bool = True):
        super().__init__()
        self.tz_local = tz_local
        self.color = color

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        ts_str = _timestamp(record, self.tz_local).strftime("%Y-%m-%d %H:%M:%S")
        base = f"{ts_str} | {record.levelname:<8} | {record.name} | {record.getMessage()}"
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        level_color = self.COLORS.get(record.levelname, "") if self.color else ""
        if level_color:
            return f"{level_color}{base}{self.RESET}"
        return base


class JsonFormatter(logging.Formatter):
    def __init__(self, tz_local: bool = False):
        super().__init__()
        self.tz_local = tz_local

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": _timestamp(record, self.tz_local).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for k, v in record.__dict__.items():
            if k in _RESERVED_ATTRS or k in payload or k.startswith("_"):
                continue
            try:
                json.dumps(v)
                payload[k] = v
            except (TypeError, ValueError):
                payload[k] = repr(v)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(service: str | None = None, *, level: str | None = None, force: bool = False) -> None:
    """Configure root logging once.

    Parameters
    ----------
    service: logical process name (``api``, ``ingest``, ``scheduler``), added as
        ``service`` field to records of loggers obtained via get_logger()
    level: fallback level when LOG_LEVEL is not set (e.g. ``settings.log_level``)
    force: reconfigure even if already configured
    """
    global _ALREADY_CONFIGURED
    with _CONFIG_LOCK:
        if _ALREADY_CONFIGURED and not force:
            return

        log_level = os.getenv("LOG_LEVEL", level or "INFO").upper()
        log_format = os.getenv("LOG_FORMAT", "console").lower()
        tz_local = os.getenv("LOG_TIMEZONE", "utc").lower() == "local"
        no_color = os.getenv("LOG_NO_COLOR") == "1"

        root = logging.getLogger()
        for h in list(root.handlers):
            root.removeHandler(h)

        if log_format == "json":
            formatter: logging.Formatter = JsonFormatter(tz_local=tz_local)
        else:
            formatter = ColorFormatter(tz_local=tz_local, color=sys.stderr.isatty() and not no_color)

        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(getattr(logging, log_level, logging.INFO))

        if root.level > logging.DEBUG:
            for name in NOISY_LOGGERS:
                logging.getLogger(name).setLevel(logging.WARNING)

        _ServiceLoggerAdapter.BASE_SERVICE = service
        _ALREADY_CONFIGURED = True


def get_logger(name: str) -> logging.Logger | logging.LoggerAdapter:
    base = logging.getLogger(name)
    if _ServiceLoggerAdapter.BASE_SERVICE:
        return _ServiceLoggerAdapter(base, {"service": _ServiceLoggerAdapter.BASE_SERVICE})
    return base


class _ServiceLoggerAdapter(logging.LoggerAdapter):
    # set by configure_logging(service=...)
    BASE_SERVICE: Optional[str] = None

    def process(self, msg: Any, kwargs: Dict[str, Any]):  # noqa: D401
        extra = kwargs.get("extra") or {}
        extra.setdefault("service", self.extra["service"])
        kwargs["extra"] = extra
        return msg, kwargs


__all__ = [
    "configure_logging",
    "get_logger",
]

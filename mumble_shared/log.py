#!/usr/bin/env python3
"""
Logging setup shared by the session engine and the CLI.

Console output is coloured in development (PYTHON_ENV=dev); MUMBLE_LOG_FILE
adds a file handler. Records carrying session, msg_type or channel_id extras
get a bracketed context prefix.
"""

from __future__ import annotations
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional, Set


class ColoredFormatter(logging.Formatter):
    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m',
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class ProtocolFormatter(logging.Formatter):
    """Prefixes the message with [session=.. msg=.. channel=..] when present."""

    def format(self, record: logging.LogRecord) -> str:
        context = []
        if hasattr(record, 'session'):
            context.append(f"session={record.session}")
        if hasattr(record, 'msg_type'):
            context.append(f"msg={record.msg_type}")
        if hasattr(record, 'channel_id'):
            context.append(f"channel={record.channel_id}")

        if context:
            record = logging.makeLogRecord(record.__dict__)
            record.msg = f"[{' '.join(context)}] {record.msg}"

        return super().format(record)


_loggers_configured: Set[str] = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")
    """
    logger = logging.getLogger(name)
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)
    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    logger.setLevel(_get_log_level(level))
    logger.handlers.clear()

    _add_console_handler(logger, colored=_is_development())
    if _file_logging_enabled():
        _add_file_handler(logger)

    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    if level is None:
        level = os.getenv('MUMBLE_LOG_LEVEL')
    if level:
        return getattr(logging, level.upper(), logging.INFO)

    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    return os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development']


def _file_logging_enabled() -> bool:
    return bool(os.getenv('MUMBLE_LOG_FILE')) or _is_development()


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stdout)

    if colored and _supports_color():
        formatter: logging.Formatter = ColoredFormatter(fmt=fmt, datefmt='%H:%M:%S')
    else:
        formatter = ProtocolFormatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S')

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger) -> None:
    """MUMBLE_LOG_FILE overrides the default logs/mumble-session.log"""
    log_file = Path(os.getenv('MUMBLE_LOG_FILE') or Path("logs") / "mumble-session.log")
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)
    handler.setFormatter(ProtocolFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(handler)


def _supports_color() -> bool:
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False
    if os.getenv("TERM", "") == "dumb":
        return False
    if sys.platform == "win32":
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode"
    return True


def configure_root_logging(level: str = "INFO") -> None:
    """Configure the root logger once at CLI startup."""
    _configure_logger(logging.getLogger(), level)


def log_protocol_message(logger: logging.Logger, level: str, text: str,
                         message: Any = None,
                         **context: Any) -> None:
    """Log text with msg_type, channel_id and session pulled from a typed message."""
    extra_context = {}

    if message is not None:
        extra_context['msg_type'] = type(message).__name__
        channel_id = getattr(message, 'channel_id', None)
        if channel_id is not None:
            extra_context['channel_id'] = channel_id
        session = getattr(message, 'session', None)
        if session is not None:
            extra_context['session'] = session

    extra_context.update(context)

    log_func = getattr(logger, level.lower())
    log_func(text, extra=extra_context)

"""Logging configuration for extrabucket.

The library logs through loguru but stays silent until the application calls
``configure_logging``. Human-readable colored output is the default; JSON
output uses Google Cloud Logging field names.
"""

import json
import logging
import sys
import traceback
from typing import Any

from loguru import logger

_SEVERITY = {
    "TRACE": "DEBUG",
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "INFO",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL",
}


def _cloud_logging_serializer(record: dict[str, Any]) -> str:
    """Serialize a log record to Google Cloud Logging JSON format."""
    log_entry: dict[str, Any] = {
        "severity": _SEVERITY.get(record["level"].name, "INFO"),
        "message": record["message"],
        "time": record["time"].isoformat(),
        "logger": record["name"],
    }

    if record["exception"] is not None:
        exc_info = record["exception"]
        tb_str = None
        if exc_info.traceback:
            tb_str = "".join(
                traceback.format_exception(exc_info.type, exc_info.value, exc_info.traceback)
            )
        log_entry["exception"] = {
            "type": exc_info.type.__name__ if exc_info.type else None,
            "value": str(exc_info.value) if exc_info.value else None,
            "traceback": tb_str,
        }

    for key, value in record.get("extra", {}).items():
        if not key.startswith("_"):
            log_entry[key] = value

    return json.dumps(log_entry, default=str)


def _json_sink(message: Any) -> None:
    sys.stdout.write(_cloud_logging_serializer(message.record) + "\n")
    sys.stdout.flush()


def configure_logging(*, log_level: str = "INFO", json_output: bool = False) -> None:
    """Enable extrabucket logging and install a sink.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, write JSON lines to stdout instead of colored
            text to stderr.
    """
    logger.remove()
    logger.enable("extrabucket")

    if json_output:
        logger.add(
            _json_sink,
            level=log_level,
            format="{message}",
            backtrace=False,
            diagnose=False,
        )
    else:
        logger.add(
            sys.stderr,
            level=log_level,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level>"
            ),
            colorize=True,
        )

    _intercept_http_logging(log_level)


class _InterceptHandler(logging.Handler):
    """Route standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _intercept_http_logging(log_level: str) -> None:
    """Capture httpx and httpcore logs, which use the standard library."""
    # TRACE and SUCCESS are loguru-only levels
    std_level = _SEVERITY.get(log_level, log_level)
    for name in ["httpx", "httpcore"]:
        std_logger = logging.getLogger(name)
        std_logger.setLevel(std_level)
        std_logger.handlers = [_InterceptHandler()]
        std_logger.propagate = False

"""
tts-stream Structured Logging Module.

This module provides a unified logging system for the pipeline with:
    - Numeric log levels (1-4) for simplified configuration
    - Colored console output for human readability
    - JSONL file output for machine parsing and analysis
    - Job ID correlation across the scheduler and playback threads

Log Levels:
    1 = MINIMAL  - Startup, shutdown, failures only
    2 = NORMAL   - Utterance lifecycle (default)
    3 = VERBOSE  - Per-step timing, segment details
    4 = DEBUG    - Queue traffic, internal state

Configuration:
    Environment:
        export TTS_STREAM_LOG_LEVEL=3   # VERBOSE
        export TTS_STREAM_NO_COLOR=1    # Disable colors

    settings.yaml:
        logging:
          level: 2
          log_dir: logs
          jsonl_file: tts-stream.jsonl

Usage:
    from tts_stream.core.logging import get_logger, info, warn, verbose

    log = get_logger("tts-stream.scheduler")

    info(log, "job_enqueued", steps=4)
    warn(log, "input_too_long", tokens=640, limit=510)
    verbose(log, "step_done", step=1, seconds=0.41)

Module Structure:
    - levels.py: LogLevel enum and level mapping
    - context.py: Job ID context variable and configuration state
    - formatters.py: JsonlFormatter, ColoredConsoleFormatter and ANSI colors
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .levels import LEVEL_MAP, LEVEL_NAMES, LogLevel, coerce_level
from .context import (
    get_job_id,
    get_level,
    get_level_name,
    get_log_config,
    is_configured,
    read_logging_config,
    set_configured,
    set_job_id,
    set_level,
    set_log_config,
)
from .formatters import ColoredConsoleFormatter, Colors, JsonlFormatter, supports_color


def configure_logging(level: Optional[int | str | LogLevel] = None, force: bool = False) -> None:
    """
    Configure the root logger with console and (optional) JSONL handlers.

    Args:
        level: Log level (1-4, level name, or LogLevel enum). Defaults to
            the resolved configuration.
        force: Reconfigure even if logging was already configured.
    """
    if is_configured() and not force:
        return

    log_config = read_logging_config()
    set_log_config(log_config)

    current_level = coerce_level(level if level is not None else log_config.get("level", LogLevel.NORMAL))
    set_level(current_level)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG - 10)
    root.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(LEVEL_MAP.get(current_level, logging.INFO))
    console.setFormatter(ColoredConsoleFormatter())
    root.addHandler(console)

    log_dir = log_config.get("log_dir")
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            Path(log_dir) / str(log_config.get("jsonl_file", "tts-stream.jsonl")),
            maxBytes=int(log_config.get("rotate_max_bytes", 10 * 1024 * 1024)),
            backupCount=int(log_config.get("rotate_backup_count", 5)),
            encoding="utf-8",
            delay=True,
        )
        file_handler.setLevel(logging.DEBUG - 10)
        file_handler.setFormatter(JsonlFormatter())
        root.addHandler(file_handler)

    set_configured(True)


def _log(
    logger: logging.Logger,
    level: int,
    tag: str,
    msg: str,
    numeric_level: int = 2,
    **fields: Any
) -> None:
    if numeric_level > get_level():
        return

    event = fields.pop("event", None)
    seconds = fields.pop("seconds", None)
    logger.log(
        level,
        msg,
        extra={
            "tag": tag,
            "job_id": get_job_id(),
            "event": event,
            "seconds": seconds,
            "extra_data": fields or None,
            "numeric_level": numeric_level,
        },
    )


def get_logger(name: str = "tts-stream") -> logging.Logger:
    """Get a logger instance, configuring logging if needed."""
    configure_logging()
    return logging.getLogger(name)


def info(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log an info message (level 2 = NORMAL)."""
    _log(logger, logging.INFO, "INFO", msg, numeric_level=2, **fields)


def warn(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a warning message (level 2 = NORMAL)."""
    _log(logger, logging.WARNING, "WARN", msg, numeric_level=2, **fields)


def error(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log an error message (level 1 = MINIMAL)."""
    _log(logger, logging.ERROR, "ERROR", msg, numeric_level=1, **fields)


def success(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a success message (level 2 = NORMAL)."""
    _log(logger, logging.INFO, "SUCCESS", msg, numeric_level=2, **fields)


def fail(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a failure message (level 1 = MINIMAL)."""
    _log(logger, logging.ERROR, "FAIL", msg, numeric_level=1, **fields)


def verbose(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a verbose message (level 3 = VERBOSE)."""
    _log(logger, logging.DEBUG, "INFO", msg, numeric_level=3, **fields)


def debug(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a debug message (level 4 = DEBUG)."""
    _log(logger, logging.DEBUG - 5, "DEBUG", msg, numeric_level=4, **fields)


__all__ = [
    # Levels
    "LogLevel",
    "LEVEL_MAP",
    "LEVEL_NAMES",
    "coerce_level",
    # Formatting
    "Colors",
    "supports_color",
    "JsonlFormatter",
    "ColoredConsoleFormatter",
    # Context
    "get_job_id",
    "set_job_id",
    "get_level",
    "get_level_name",
    "get_log_config",
    # Configuration
    "configure_logging",
    "get_logger",
    # Logging functions
    "info",
    "warn",
    "error",
    "success",
    "fail",
    "verbose",
    "debug",
]

"""
Job Context and Configuration State for Logging.

Log lines emitted while a job is being processed carry that job's id. The
id lives in a context variable: the scheduler worker sets it before it
advances a job, and the HTTP layer sets it when a request creates one.
Threads start with a fresh context, so each worker sets its own id.

Module-level state holds the resolved logging configuration and the
active numeric level.

Environment Variables:
    - TTS_STREAM_SETTINGS: Settings file to read the `logging` section from
    - TTS_STREAM_LOG_LEVEL: Override log level (1-4 or name)
    - TTS_STREAM_LOG_DIR: Directory for the JSONL log file
    - TTS_STREAM_JSONL_FILE: JSONL filename
    - TTS_STREAM_LOG_ROTATE_BYTES: Max file size before rotation
    - TTS_STREAM_LOG_ROTATE_BACKUP: Number of rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

_job_id: ContextVar[str] = ContextVar("job_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_job_id() -> str:
    """Job id for the current context, or "-" outside a job."""
    return _job_id.get()


def set_job_id(job_id: str) -> None:
    """Tag subsequent log lines in this context with `job_id`."""
    _job_id.set(job_id)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(int(_current_level), "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve the logging configuration.

    Priority (highest first): environment variables, the `logging`
    section of the settings file, built-in defaults.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("TTS_STREAM_SETTINGS", "config/settings.yaml")
    if os.path.exists(settings_path):
        from tts_stream.core.config import load_settings
        cfg.update(load_settings(settings_path).raw.get("logging", {}) or {})

    if os.getenv("TTS_STREAM_LOG_LEVEL"):
        cfg["level"] = os.environ["TTS_STREAM_LOG_LEVEL"]
    if os.getenv("TTS_STREAM_LOG_DIR"):
        cfg["log_dir"] = os.environ["TTS_STREAM_LOG_DIR"]
    if os.getenv("TTS_STREAM_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["TTS_STREAM_JSONL_FILE"]

    rotate_bytes = _env_int("TTS_STREAM_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _env_int("TTS_STREAM_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg

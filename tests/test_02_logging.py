"""Tests for the logging level system and formatters."""
from __future__ import annotations

import json
import logging


class TestLogLevelEnum:
    """Test LogLevel enum values."""

    def test_level_enum_values(self):
        from tts_stream.core.logging import LogLevel

        assert LogLevel.MINIMAL == 1
        assert LogLevel.NORMAL == 2
        assert LogLevel.VERBOSE == 3
        assert LogLevel.DEBUG == 4

    def test_level_map_to_stdlib(self):
        from tts_stream.core.logging import LEVEL_MAP, LogLevel

        assert LEVEL_MAP[LogLevel.MINIMAL] == logging.WARNING
        assert LEVEL_MAP[LogLevel.NORMAL] == logging.INFO
        assert LEVEL_MAP[LogLevel.VERBOSE] == logging.DEBUG


class TestLevelCoercion:
    """Test level coercion from various input types."""

    def test_level_from_int(self):
        from tts_stream.core.logging import LogLevel, coerce_level

        assert coerce_level(1) == LogLevel.MINIMAL
        assert coerce_level(4) == LogLevel.DEBUG

    def test_level_from_names(self):
        from tts_stream.core.logging import LogLevel, coerce_level

        assert coerce_level("minimal") == LogLevel.MINIMAL
        assert coerce_level("VERBOSE") == LogLevel.VERBOSE
        assert coerce_level("info") == LogLevel.NORMAL
        assert coerce_level("trace") == LogLevel.DEBUG

    def test_level_from_numeric_string(self):
        from tts_stream.core.logging import LogLevel, coerce_level

        assert coerce_level("3") == LogLevel.VERBOSE

    def test_level_from_stdlib_int(self):
        from tts_stream.core.logging import LogLevel, coerce_level

        assert coerce_level(logging.WARNING) == LogLevel.MINIMAL
        assert coerce_level(logging.INFO) == LogLevel.NORMAL
        assert coerce_level(logging.DEBUG) == LogLevel.DEBUG

    def test_invalid_falls_back_to_normal(self):
        from tts_stream.core.logging import LogLevel, coerce_level

        assert coerce_level("loud") == LogLevel.NORMAL
        assert coerce_level(None) == LogLevel.NORMAL


class TestJsonlFormatter:
    """Test JSONL output format."""

    def _record(self, **extra):
        record = logging.LogRecord("tts-stream.test", logging.INFO, __file__, 1, "job_enqueued", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_fields(self):
        from tts_stream.core.logging import JsonlFormatter

        line = JsonlFormatter().format(self._record(tag="INFO", job_id="abc123", numeric_level=2))
        payload = json.loads(line)

        assert payload["message"] == "job_enqueued"
        assert payload["tag"] == "INFO"
        assert payload["job"] == "abc123"
        assert payload["level"] == 2
        assert "ts" in payload

    def test_extra_and_seconds(self):
        from tts_stream.core.logging import JsonlFormatter

        line = JsonlFormatter().format(self._record(seconds=0.25, extra_data={"steps": 3}))
        payload = json.loads(line)

        assert payload["seconds"] == 0.25
        assert payload["extra"] == {"steps": 3}


class TestJobContext:
    """Job ids are tagged per context."""

    def test_default_job_id(self):
        import contextvars

        from tts_stream.core.logging import get_job_id

        ctx = contextvars.Context()
        assert ctx.run(get_job_id) == "-"

    def test_set_job_id(self):
        import contextvars

        from tts_stream.core.logging import get_job_id, set_job_id

        def run():
            set_job_id("job-1")
            return get_job_id()

        assert contextvars.Context().run(run) == "job-1"


class TestLevelFiltering:
    """Messages above the configured level are dropped."""

    def test_verbose_hidden_at_normal(self, caplog):
        from tts_stream.core.logging import LogLevel, get_level, get_logger, info, set_level, verbose

        log = get_logger("tts-stream.test")
        previous = get_level()
        set_level(LogLevel.NORMAL)
        try:
            with caplog.at_level(logging.DEBUG - 5):
                verbose(log, "hidden_event")
                info(log, "shown_event", steps=2)
        finally:
            set_level(previous)

        messages = [r.getMessage() for r in caplog.records]
        assert "shown_event" in messages
        assert "hidden_event" not in messages

"""
Prometheus Metrics for the Speech Pipeline.

Counters, histograms and gauges describing what the scheduler, the
inference backend and the playback queue are doing. Recording can be
switched off with TTS_STREAM_METRICS=0, in which case every record_*
call returns immediately and /metrics reports that metrics are disabled.

Metrics Exposed:
    tts_stream_jobs_total{status}              - Jobs finished (completed, canceled, failed)
    tts_stream_steps_total{kind}               - Steps processed (inference, silence)
    tts_stream_inference_seconds               - Histogram of backend call latency
    tts_stream_audio_seconds_total             - Seconds of audio produced by the backend
    tts_stream_playback_handles_total{outcome} - Handles played (spoken, canceled, skipped)
    tts_stream_scheduler_queue_depth           - Jobs waiting for the scheduler worker
    tts_stream_playback_queue_depth            - Handles waiting for the playback worker
    tts_stream_backend_loaded{backend}         - Whether the backend model is loaded

Usage:
    from tts_stream.core.metrics import metrics

    metrics.record_step("inference", seconds=0.41, audio_seconds=2.3)
    metrics.record_job("completed")
    metrics.set_scheduler_queue_depth(2)

    content, content_type = metrics.get_metrics_response()

See Also:
    - api/routes.py: /metrics endpoint definition
    - tts/scheduler.py, tts/playback.py: where most metrics are recorded
"""
from __future__ import annotations

import os
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class PipelineMetrics:
    """
    Metrics collector for the speech pipeline.

    Each instance owns a private CollectorRegistry so tests can build
    fresh collectors without clashing with the global one.

    Thread Safety:
        Prometheus metric operations are thread-safe, so the scheduler
        and playback workers record without extra locking.

    Example:
        >>> from tts_stream.core.metrics import metrics
        >>> metrics.record_job("completed")
        >>> content, _ = metrics.get_metrics_response()
    """

    def __init__(self, enabled: Optional[bool] = None):
        if enabled is None:
            enabled = os.getenv("TTS_STREAM_METRICS", "1") != "0"
        self._enabled = enabled
        self._registry: Optional[CollectorRegistry] = None

        if self._enabled:
            self._setup_metrics()

    def _setup_metrics(self) -> None:
        self._registry = CollectorRegistry()

        self._jobs_total = Counter(
            "tts_stream_jobs_total",
            "Jobs finished by the scheduler",
            ["status"],
            registry=self._registry,
        )
        self._steps_total = Counter(
            "tts_stream_steps_total",
            "Job steps processed",
            ["kind"],
            registry=self._registry,
        )
        self._inference_seconds = Histogram(
            "tts_stream_inference_seconds",
            "Inference backend call duration in seconds",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self._registry,
        )
        self._audio_seconds_total = Counter(
            "tts_stream_audio_seconds_total",
            "Seconds of audio produced by the backend",
            registry=self._registry,
        )
        self._playback_handles_total = Counter(
            "tts_stream_playback_handles_total",
            "Playback handles by outcome",
            ["outcome"],
            registry=self._registry,
        )
        self._scheduler_queue_depth = Gauge(
            "tts_stream_scheduler_queue_depth",
            "Jobs waiting for the scheduler worker",
            registry=self._registry,
        )
        self._playback_queue_depth = Gauge(
            "tts_stream_playback_queue_depth",
            "Handles waiting for the playback worker",
            registry=self._registry,
        )
        self._backend_loaded = Gauge(
            "tts_stream_backend_loaded",
            "Whether the inference backend is loaded (1) or not (0)",
            ["backend"],
            registry=self._registry,
        )

    @property
    def enabled(self) -> bool:
        """Whether metrics collection is enabled."""
        return self._enabled

    def record_job(self, status: str) -> None:
        """Record a finished job ("completed", "canceled" or "failed")."""
        if not self._enabled:
            return
        self._jobs_total.labels(status=status).inc()

    def record_step(self, kind: str, seconds: float = 0.0, audio_seconds: float = 0.0) -> None:
        """
        Record a processed step.

        Args:
            kind: "inference" or "silence".
            seconds: Backend call duration; only observed for inference.
            audio_seconds: Length of the produced audio.
        """
        if not self._enabled:
            return
        self._steps_total.labels(kind=kind).inc()
        if kind == "inference":
            self._inference_seconds.observe(seconds)
            if audio_seconds > 0:
                self._audio_seconds_total.inc(audio_seconds)

    def record_playback(self, outcome: str) -> None:
        """Record a playback handle outcome ("spoken", "canceled", "skipped")."""
        if not self._enabled:
            return
        self._playback_handles_total.labels(outcome=outcome).inc()

    def set_scheduler_queue_depth(self, depth: int) -> None:
        if not self._enabled:
            return
        self._scheduler_queue_depth.set(depth)

    def set_playback_queue_depth(self, depth: int) -> None:
        if not self._enabled:
            return
        self._playback_queue_depth.set(depth)

    def set_backend_loaded(self, backend: str, loaded: bool) -> None:
        if not self._enabled:
            return
        self._backend_loaded.labels(backend=backend).set(1 if loaded else 0)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """
        Get metrics in Prometheus text format.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        if not self._enabled:
            return (
                b"# Metrics disabled (TTS_STREAM_METRICS=0)\n",
                "text/plain; charset=utf-8",
            )
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Global singleton metrics instance
metrics = PipelineMetrics()

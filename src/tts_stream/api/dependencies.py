"""
FastAPI Dependency Injection Providers.

Shared resources for API endpoints, injected with Depends().

Architecture:
    get_settings()     loads and caches config/settings.yaml
    get_config()       validated PipelineConfig from the settings
    get_engine()       singleton SpeechEngine (scheduler + playback threads)
    get_synthesizer()  singleton WavSynthesizer

    The engine and the synthesizer share the global inference backend,
    so the model is loaded once per process.

Environment:
    TTS_STREAM_SETTINGS: Settings file path (default config/settings.yaml)
    TTS_STREAM_SKIP_WARMUP: "1" skips loading the model at startup

Testing:
    Override get_engine/get_synthesizer through app.dependency_overrides,
    or call reset_dependencies() between tests.

See Also:
    - core/config.py: Settings and load_settings()
    - services/speech_service.py: SpeechEngine and get_speech_engine()
"""
from __future__ import annotations

import os
import threading
from functools import lru_cache
from typing import Optional

from tts_stream.core.config import PipelineConfig, Settings, load_settings
from tts_stream.core.logging import get_logger, info, warn
from tts_stream.services.speech_service import SpeechEngine, get_speech_engine, reset_speech_engine
from tts_stream.services.synthesizer import WavSynthesizer

_LOG = get_logger("tts-stream.api")

_synthesizer: Optional[WavSynthesizer] = None
_synthesizer_lock = threading.Lock()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    A missing settings file is not an error for the server: every value
    has a default in the Defaults class.
    """
    path = os.getenv("TTS_STREAM_SETTINGS", "config/settings.yaml")
    try:
        return load_settings(path)
    except FileNotFoundError:
        warn(_LOG, "settings_missing", path=path, using="defaults")
        return Settings(raw={})


@lru_cache(maxsize=1)
def get_config() -> PipelineConfig:
    """Validated pipeline configuration (cached)."""
    return get_settings().get_pipeline_config()


def get_engine() -> SpeechEngine:
    """The process-wide SpeechEngine."""
    return get_speech_engine(get_config())


def get_synthesizer() -> WavSynthesizer:
    """The process-wide WavSynthesizer."""
    global _synthesizer
    if _synthesizer is None:
        with _synthesizer_lock:
            if _synthesizer is None:
                _synthesizer = WavSynthesizer(get_config())
    return _synthesizer


def warmup_service() -> None:
    """Load the model in the background unless TTS_STREAM_SKIP_WARMUP=1."""
    if os.getenv("TTS_STREAM_SKIP_WARMUP", "0") == "1":
        info(_LOG, "warmup_skipped", reason="TTS_STREAM_SKIP_WARMUP=1")
        return
    get_engine().warmup()


def shutdown_service() -> None:
    """Dispose the engine on application shutdown."""
    reset_speech_engine()


def reset_dependencies() -> None:
    """Forget cached settings and singletons (for tests)."""
    global _synthesizer
    get_settings.cache_clear()
    get_config.cache_clear()
    reset_speech_engine()
    with _synthesizer_lock:
        _synthesizer = None

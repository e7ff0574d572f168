"""
Configuration Management for tts-stream.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Immutable policy objects shared by the pipeline threads
    - Dataclass-based configuration sections
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (TTS_STREAM_MODEL_PATH, ESPEAK_DATA_PATH, etc.)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    segmentation:
      max_first: 100
      min_followup: 200

    backend:
      model_path: models/kokoro.onnx
      voices_dir: voices

    playback:
      nicify: true
      volume: 1.0

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
import os
import yaml


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    This exception is thrown when a configuration value is outside
    acceptable bounds or of the wrong type.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Segmentation: Chunk windows for streaming synthesis
        - Pauses: Silence inserted after punctuated segments
        - Playback: Audio device and post-processing
        - Scheduler: Background job worker
        - Backend: Kokoro ONNX model
        - Phonemizer: espeak-ng process
        - Speech: Per-utterance defaults
        - Logging: Log level and formatting
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Segmentation (token counts)
    # ─────────────────────────────────────────────────────────────────────────
    SEGMENT_MIN_FIRST = 10          # Lower bound hint for the first segment
    SEGMENT_MAX_FIRST = 100         # First segment limit (fast first audio)
    SEGMENT_MAX_SECOND = 100        # Second segment limit
    SEGMENT_MIN_FOLLOWUP = 200      # Follow-up segments window start
    SEGMENT_TAIL_TOLERANCE = 20     # Absorb a remainder shorter than this
    MAX_TOKENS = 510                # Hard limit of the inference backend

    # ─────────────────────────────────────────────────────────────────────────
    # Pauses after punctuated segments (seconds)
    # ─────────────────────────────────────────────────────────────────────────
    PAUSE_COMMA = 0.1
    PAUSE_PERIOD = 0.5
    PAUSE_QUESTION = 0.5
    PAUSE_EXCLAMATION = 0.5
    PAUSE_NEWLINE = 0.5
    PAUSE_OTHERS = 0.5

    # ─────────────────────────────────────────────────────────────────────────
    # Playback
    # ─────────────────────────────────────────────────────────────────────────
    SAMPLE_RATE = 24000             # Kokoro outputs at 24kHz
    PLAYBACK_POLL_INTERVAL_S = 0.01 # Device state check interval
    PLAYBACK_IDLE_WAIT_S = 0.1      # Queue wait timeout when nothing is queued
    PLAYBACK_NICIFY = True          # Trim near-silence and noise floor
    PLAYBACK_VOLUME = 1.0
    NICIFY_LEAD_THRESHOLD = 0.01    # Leading samples at or below are trimmed
    NICIFY_TAIL_THRESHOLD = 0.005   # Trailing samples at or below are trimmed
    NICIFY_NOISE_FLOOR = 0.001      # Samples below are zeroed

    # ─────────────────────────────────────────────────────────────────────────
    # Scheduler
    # ─────────────────────────────────────────────────────────────────────────
    SCHEDULER_IDLE_WAIT_S = 0.1     # Condition wait timeout when idle

    # ─────────────────────────────────────────────────────────────────────────
    # Backend
    # ─────────────────────────────────────────────────────────────────────────
    BACKEND_MODEL_PATH = "models/kokoro.onnx"
    BACKEND_VOICES_DIR = "voices"
    BACKEND_PROVIDERS = ("CPUExecutionProvider",)
    BACKEND_INTRA_OP_THREADS = 8

    # ─────────────────────────────────────────────────────────────────────────
    # Phonemizer
    # ─────────────────────────────────────────────────────────────────────────
    ESPEAK_BINARY = "espeak-ng"
    ESPEAK_TIMEOUT_S = 30.0

    # ─────────────────────────────────────────────────────────────────────────
    # Speech
    # ─────────────────────────────────────────────────────────────────────────
    SPEECH_DEFAULT_VOICE = "af_heart"
    SPEECH_SPEED = 1.0
    SPEECH_PREPROCESS_TEXT = True
    SPEECH_INSERT_PAUSES = True

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2               # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


# =============================================================================
# Immutable policies (shared by the scheduler and playback threads)
# =============================================================================

@dataclass(frozen=True)
class SegmentationPolicy:
    """
    Length policy for splitting a token sequence into segments.

    The first segment is kept short so audio starts quickly, the second
    one is a mid-size buffer, and follow-up segments are large because
    they are synthesized while earlier audio is already playing.
    """
    min_first: int = Defaults.SEGMENT_MIN_FIRST
    max_first: int = Defaults.SEGMENT_MAX_FIRST
    max_second: int = Defaults.SEGMENT_MAX_SECOND
    min_followup: int = Defaults.SEGMENT_MIN_FOLLOWUP
    tail_tolerance: int = Defaults.SEGMENT_TAIL_TOLERANCE
    max_tokens: int = Defaults.MAX_TOKENS


@dataclass(frozen=True)
class PausePolicy:
    """
    Seconds of silence played after a segment ending in punctuation.

    Segments that end on a space or mid-word get no pause.
    """
    comma: float = Defaults.PAUSE_COMMA
    period: float = Defaults.PAUSE_PERIOD
    question: float = Defaults.PAUSE_QUESTION
    exclamation: float = Defaults.PAUSE_EXCLAMATION
    newline: float = Defaults.PAUSE_NEWLINE
    others: float = Defaults.PAUSE_OTHERS

    def seconds_after(self, symbol: str) -> float:
        """Pause length for a segment whose last symbol is `symbol`."""
        return {
            ",": self.comma,
            ".": self.period,
            "?": self.question,
            "!": self.exclamation,
            "\n": self.newline,
        }.get(symbol, self.others)


# Custom segmentation: tokens of one utterance -> ordered segments
Segmenter = Callable[[Sequence[int]], List[List[int]]]


@dataclass(frozen=True)
class SpeechOptions:
    """
    Per-utterance pipeline options.

    Passed to SpeechEngine.speak*/WavSynthesizer.synthesize*. Any field
    left at its default falls back to the Defaults class.

    `segmenter` replaces the built-in window-then-scan split: it gets the
    token list of one utterance and returns its segments. When set,
    `segmentation` is ignored.
    """
    speed: float = Defaults.SPEECH_SPEED
    preprocess_text: bool = Defaults.SPEECH_PREPROCESS_TEXT
    insert_pauses: bool = Defaults.SPEECH_INSERT_PAUSES
    segmentation: SegmentationPolicy = field(default_factory=SegmentationPolicy)
    pauses: PausePolicy = field(default_factory=PausePolicy)
    segmenter: Optional[Segmenter] = None


# =============================================================================
# Configuration sections
# =============================================================================

@dataclass
class PlaybackConfig:
    """
    Playback queue configuration.

    Controls the audio device format, how often the playback worker
    checks the device, and the sample post-processing thresholds.
    """
    sample_rate: int = Defaults.SAMPLE_RATE
    poll_interval_s: float = Defaults.PLAYBACK_POLL_INTERVAL_S
    idle_wait_s: float = Defaults.PLAYBACK_IDLE_WAIT_S
    nicify: bool = Defaults.PLAYBACK_NICIFY
    volume: float = Defaults.PLAYBACK_VOLUME
    lead_threshold: float = Defaults.NICIFY_LEAD_THRESHOLD
    tail_threshold: float = Defaults.NICIFY_TAIL_THRESHOLD
    noise_floor: float = Defaults.NICIFY_NOISE_FLOOR


@dataclass
class SchedulerConfig:
    """Job scheduler configuration."""
    idle_wait_s: float = Defaults.SCHEDULER_IDLE_WAIT_S


@dataclass
class BackendConfig:
    """
    Kokoro ONNX backend configuration.

    The model file comes from the taylorchu/kokoro-onnx releases; voices
    are stored one `.npy` style tensor per voice in `voices_dir`.
    """
    model_path: str = Defaults.BACKEND_MODEL_PATH
    voices_dir: str = Defaults.BACKEND_VOICES_DIR
    providers: List[str] = field(default_factory=lambda: list(Defaults.BACKEND_PROVIDERS))
    intra_op_threads: int = Defaults.BACKEND_INTRA_OP_THREADS
    max_tokens: int = Defaults.MAX_TOKENS
    sample_rate: int = Defaults.SAMPLE_RATE


@dataclass
class PhonemizerConfig:
    """espeak-ng phonemizer configuration."""
    binary: str = Defaults.ESPEAK_BINARY
    data_path: Optional[str] = None
    timeout_s: float = Defaults.ESPEAK_TIMEOUT_S


@dataclass
class SpeechConfig:
    """Defaults applied to every utterance."""
    default_voice: str = Defaults.SPEECH_DEFAULT_VOICE
    options: SpeechOptions = field(default_factory=SpeechOptions)


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Utterance lifecycle (default)
        3 = VERBOSE: Per-step timing, segment details
        4 = DEBUG: Internal state, full tracing
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class PipelineConfig:
    """
    Validated configuration for the whole pipeline.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = PipelineConfig.from_settings(settings)
        print(config.speech.options.segmentation.max_first)
    """
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    phonemizer: PhonemizerConfig = field(default_factory=PhonemizerConfig)
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PipelineConfig":
        """
        Create PipelineConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated PipelineConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Segmentation policy
        # ─────────────────────────────────────────────────────────────────────
        seg_raw = raw.get("segmentation", {}) or {}
        segmentation = SegmentationPolicy(
            min_first=int(seg_raw.get("min_first", Defaults.SEGMENT_MIN_FIRST)),
            max_first=int(seg_raw.get("max_first", Defaults.SEGMENT_MAX_FIRST)),
            max_second=int(seg_raw.get("max_second", Defaults.SEGMENT_MAX_SECOND)),
            min_followup=int(seg_raw.get("min_followup", Defaults.SEGMENT_MIN_FOLLOWUP)),
            tail_tolerance=int(seg_raw.get("tail_tolerance", Defaults.SEGMENT_TAIL_TOLERANCE)),
            max_tokens=int(seg_raw.get("max_tokens", Defaults.MAX_TOKENS)),
        )
        cls._validate_non_negative("segmentation.min_first", segmentation.min_first)
        cls._validate_positive("segmentation.max_first", segmentation.max_first)
        cls._validate_positive("segmentation.max_second", segmentation.max_second)
        cls._validate_positive("segmentation.min_followup", segmentation.min_followup)
        cls._validate_non_negative("segmentation.tail_tolerance", segmentation.tail_tolerance)
        cls._validate_range("segmentation.max_tokens", segmentation.max_tokens, 1, Defaults.MAX_TOKENS)

        # ─────────────────────────────────────────────────────────────────────
        # Pause policy
        # ─────────────────────────────────────────────────────────────────────
        pause_raw = raw.get("pauses", {}) or {}
        pauses = PausePolicy(
            comma=float(pause_raw.get("comma", Defaults.PAUSE_COMMA)),
            period=float(pause_raw.get("period", Defaults.PAUSE_PERIOD)),
            question=float(pause_raw.get("question", Defaults.PAUSE_QUESTION)),
            exclamation=float(pause_raw.get("exclamation", Defaults.PAUSE_EXCLAMATION)),
            newline=float(pause_raw.get("newline", Defaults.PAUSE_NEWLINE)),
            others=float(pause_raw.get("others", Defaults.PAUSE_OTHERS)),
        )
        for name in ("comma", "period", "question", "exclamation", "newline", "others"):
            cls._validate_non_negative(f"pauses.{name}", getattr(pauses, name))

        # ─────────────────────────────────────────────────────────────────────
        # Speech defaults
        # ─────────────────────────────────────────────────────────────────────
        speech_raw = raw.get("speech", {}) or {}
        options = SpeechOptions(
            speed=float(speech_raw.get("speed", Defaults.SPEECH_SPEED)),
            preprocess_text=bool(speech_raw.get("preprocess_text", Defaults.SPEECH_PREPROCESS_TEXT)),
            insert_pauses=bool(speech_raw.get("insert_pauses", Defaults.SPEECH_INSERT_PAUSES)),
            segmentation=segmentation,
            pauses=pauses,
        )
        cls._validate_range("speech.speed", options.speed, 0.25, 4.0)
        speech = SpeechConfig(
            default_voice=str(speech_raw.get("default_voice", Defaults.SPEECH_DEFAULT_VOICE)),
            options=options,
        )

        # ─────────────────────────────────────────────────────────────────────
        # Playback configuration
        # ─────────────────────────────────────────────────────────────────────
        playback_raw = raw.get("playback", {}) or {}
        playback = PlaybackConfig(
            sample_rate=int(playback_raw.get("sample_rate", Defaults.SAMPLE_RATE)),
            poll_interval_s=float(playback_raw.get("poll_interval_s", Defaults.PLAYBACK_POLL_INTERVAL_S)),
            idle_wait_s=float(playback_raw.get("idle_wait_s", Defaults.PLAYBACK_IDLE_WAIT_S)),
            nicify=bool(playback_raw.get("nicify", Defaults.PLAYBACK_NICIFY)),
            volume=float(playback_raw.get("volume", Defaults.PLAYBACK_VOLUME)),
            lead_threshold=float(playback_raw.get("lead_threshold", Defaults.NICIFY_LEAD_THRESHOLD)),
            tail_threshold=float(playback_raw.get("tail_threshold", Defaults.NICIFY_TAIL_THRESHOLD)),
            noise_floor=float(playback_raw.get("noise_floor", Defaults.NICIFY_NOISE_FLOOR)),
        )
        cls._validate_positive("playback.sample_rate", playback.sample_rate)
        cls._validate_positive("playback.poll_interval_s", playback.poll_interval_s)
        cls._validate_positive("playback.idle_wait_s", playback.idle_wait_s)
        cls._validate_range("playback.volume", playback.volume, 0.0, 1.0)
        cls._validate_non_negative("playback.noise_floor", playback.noise_floor)

        # ─────────────────────────────────────────────────────────────────────
        # Scheduler configuration
        # ─────────────────────────────────────────────────────────────────────
        scheduler_raw = raw.get("scheduler", {}) or {}
        scheduler = SchedulerConfig(
            idle_wait_s=float(scheduler_raw.get("idle_wait_s", Defaults.SCHEDULER_IDLE_WAIT_S)),
        )
        cls._validate_positive("scheduler.idle_wait_s", scheduler.idle_wait_s)

        # ─────────────────────────────────────────────────────────────────────
        # Backend configuration
        # ─────────────────────────────────────────────────────────────────────
        backend_raw = raw.get("backend", {}) or {}
        providers = backend_raw.get("providers", list(Defaults.BACKEND_PROVIDERS))
        if isinstance(providers, str):
            providers = [p.strip() for p in providers.split(",") if p.strip()]
        backend = BackendConfig(
            model_path=str(backend_raw.get("model_path", Defaults.BACKEND_MODEL_PATH)),
            voices_dir=str(backend_raw.get("voices_dir", Defaults.BACKEND_VOICES_DIR)),
            providers=list(providers),
            intra_op_threads=int(backend_raw.get("intra_op_threads", Defaults.BACKEND_INTRA_OP_THREADS)),
            max_tokens=segmentation.max_tokens,
            sample_rate=playback.sample_rate,
        )
        cls._validate_positive("backend.intra_op_threads", backend.intra_op_threads)

        # ─────────────────────────────────────────────────────────────────────
        # Phonemizer configuration
        # ─────────────────────────────────────────────────────────────────────
        phon_raw = raw.get("phonemizer", {}) or {}
        phonemizer = PhonemizerConfig(
            binary=str(phon_raw.get("binary", Defaults.ESPEAK_BINARY)),
            data_path=phon_raw.get("data_path"),
            timeout_s=float(phon_raw.get("timeout_s", Defaults.ESPEAK_TIMEOUT_S)),
        )
        cls._validate_positive("phonemizer.timeout_s", phonemizer.timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Logging configuration
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # Handle string log levels (e.g., "INFO", "DEBUG")
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            playback=playback,
            scheduler=scheduler,
            backend=backend,
            phonemizer=phonemizer,
            speech=speech,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_pipeline_config() to get a validated PipelineConfig.
    """
    raw: Dict[str, Any]

    @property
    def model_path(self) -> str:
        """Path to the Kokoro ONNX model file."""
        return str(self.raw.get("backend", {}).get("model_path", Defaults.BACKEND_MODEL_PATH))

    @property
    def voices_dir(self) -> str:
        """Directory holding `<voice>.npy` style tensors."""
        return str(self.raw.get("backend", {}).get("voices_dir", Defaults.BACKEND_VOICES_DIR))

    @property
    def default_voice(self) -> str:
        """Voice used when a request does not name one."""
        return str(self.raw.get("speech", {}).get("default_voice", Defaults.SPEECH_DEFAULT_VOICE))

    @property
    def sample_rate(self) -> int:
        """Output audio sample rate."""
        return int(self.raw.get("playback", {}).get("sample_rate", Defaults.SAMPLE_RATE))

    def get_pipeline_config(self) -> PipelineConfig:
        """
        Get validated PipelineConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return PipelineConfig.from_settings(self)


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    Environment variable overrides:
        - TTS_STREAM_MODEL_PATH: Override backend.model_path
        - TTS_STREAM_VOICES_DIR: Override backend.voices_dir
        - ESPEAK_DATA_PATH: Override phonemizer.data_path

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    model_path = os.getenv("TTS_STREAM_MODEL_PATH")
    if model_path:
        raw.setdefault("backend", {})["model_path"] = model_path

    voices_dir = os.getenv("TTS_STREAM_VOICES_DIR")
    if voices_dir:
        raw.setdefault("backend", {})["voices_dir"] = voices_dir

    espeak_data = os.getenv("ESPEAK_DATA_PATH")
    if espeak_data:
        raw.setdefault("phonemizer", {})["data_path"] = espeak_data

    return Settings(raw=raw)

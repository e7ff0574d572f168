"""
Inference Backends.

An inference backend turns (tokens, voice, speed) into a mono float32
waveform at a fixed sample rate. It is a synchronous, non-preemptable
call: the scheduler calls it for one step at a time and cancellation is
only observed between calls.

This module provides:
    - InferenceBackend: Base class shared by all backends
    - OnnxKokoroBackend: Kokoro v1.0 through ONNX Runtime
    - get_backend(): Factory returning the process-wide backend instance

Model Inputs (Kokoro ONNX):
    tokens: int64 [1, T + 2]   pad, tokens..., pad (line breaks become '.')
    style:  float32 [1, 256]   voice.style_for(T)
    speed:  float32 [1]

Limits:
    Kokoro accepts at most 510 tokens. Longer input is logged and
    truncated here; the segmenter is responsible for never sending it.

Implementing a New Backend:
    1. Inherit from InferenceBackend
    2. Implement load() and _infer()
    3. Return it from _create_backend()

See Also:
    - tts/job.py: Calls backend.infer() for inference steps
    - tts/scheduler.py: Owns the backend and closes it on dispose
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from tts_stream.core.config import BackendConfig, Defaults
from tts_stream.core.errors import ErrorCode, InferenceError, PipelineError
from tts_stream.core.logging import debug, get_logger, info, success, warn
from tts_stream.core.metrics import metrics
from tts_stream.tts.voice import Voice
from tts_stream.utils.timeit import timeit

PAD_TOKEN = 0
LINE_BREAK_SUBSTITUTE = 4  # '.'


class InferenceBackend:
    """
    Base class for inference backends.

    Subclasses implement load() and _infer(). infer() serializes calls
    with a lock, since inference sessions are not reentrant, and loads
    the model on first use.

    Attributes:
        name: Backend identifier.
        sample_rate: Output sample rate in Hz.
        max_tokens: Largest token sequence accepted per call.
    """
    name: str = "base"

    def __init__(
        self,
        sample_rate: int = Defaults.SAMPLE_RATE,
        max_tokens: int = Defaults.MAX_TOKENS,
    ):
        self.sample_rate = sample_rate
        self.max_tokens = max_tokens
        self.logger = get_logger(f"tts-stream.backend.{self.name}")
        self._lock = threading.Lock()
        self._loaded = False

    def load(self) -> None:
        """Load the model. Must set self._loaded = True when complete."""
        raise NotImplementedError

    def is_loaded(self) -> bool:
        return bool(self._loaded)

    def ensure_loaded(self) -> None:
        """Load the model under the inference lock, unless it is loaded already."""
        with self._lock:
            if not self._loaded:
                self.load()

    def infer(self, tokens: Sequence[int], voice: Voice, speed: float = 1.0) -> np.ndarray:
        """
        Synthesize one token sequence.

        Returns:
            Mono float32 samples in [-1, 1]. Empty input gives an empty array.
        """
        tokens = list(tokens)
        if not tokens:
            debug(self.logger, "empty_input")
            return np.zeros(0, dtype=np.float32)
        if len(tokens) > self.max_tokens:
            warn(self.logger, "input_too_long", tokens=len(tokens), limit=self.max_tokens)
            tokens = tokens[:self.max_tokens]

        with self._lock:
            if not self._loaded:
                self.load()
            samples = self._infer(tokens, voice, speed)
        return np.asarray(samples, dtype=np.float32).reshape(-1)

    def _infer(self, tokens: Sequence[int], voice: Voice, speed: float) -> np.ndarray:
        raise NotImplementedError

    def close(self) -> None:
        """Release the model. The backend may be loaded again afterwards."""
        with self._lock:
            self._loaded = False
        metrics.set_backend_loaded(self.name, False)


class OnnxKokoroBackend(InferenceBackend):
    """
    Kokoro v1.0 on ONNX Runtime.

    The session is created lazily on the first call to load() or infer(),
    so building the backend is cheap and does not need the model file.
    """
    name = "kokoro-onnx"

    def __init__(self, config: Optional[BackendConfig] = None):
        config = config or BackendConfig()
        super().__init__(sample_rate=config.sample_rate, max_tokens=config.max_tokens)
        self.config = config
        self._session = None

    def load(self) -> None:
        if self._loaded:
            return

        import onnxruntime as ort

        model_path = Path(self.config.model_path)
        if not model_path.exists():
            raise PipelineError(
                f"model file not found: {model_path}",
                ErrorCode.MODEL_NOT_READY,
                details={"model_path": str(model_path)},
            )

        info(self.logger, "loading model", model=str(model_path), providers=self.config.providers)
        options = ort.SessionOptions()
        options.intra_op_num_threads = self.config.intra_op_threads
        options.inter_op_num_threads = self.config.intra_op_threads
        options.enable_mem_pattern = True

        with timeit("load_model") as t:
            self._session = ort.InferenceSession(
                str(model_path),
                sess_options=options,
                providers=list(self.config.providers),
            )
        self._loaded = True
        metrics.set_backend_loaded(self.name, True)
        success(self.logger, "model loaded", seconds=round(t.seconds, 3))

    def _infer(self, tokens: Sequence[int], voice: Voice, speed: float) -> np.ndarray:
        ids = [PAD_TOKEN] + [t if t >= 0 else LINE_BREAK_SUBSTITUTE for t in tokens] + [PAD_TOKEN]
        inputs = {
            "tokens": np.asarray([ids], dtype=np.int64),
            "style": voice.style_for(len(tokens)),
            "speed": np.asarray([speed], dtype=np.float32),
        }
        try:
            outputs = self._session.run(None, inputs)
        except Exception as exc:
            raise InferenceError(
                f"inference failed: {exc}",
                details={"tokens": len(tokens), "voice": voice.name},
            ) from exc
        return outputs[0]

    def close(self) -> None:
        with self._lock:
            self._session = None
            self._loaded = False
        metrics.set_backend_loaded(self.name, False)


# =============================================================================
# Backend Factory (Singleton Pattern)
# =============================================================================

_BACKEND: Optional[InferenceBackend] = None
_BACKEND_LOCK = threading.Lock()


def _create_backend(config: BackendConfig) -> InferenceBackend:
    return OnnxKokoroBackend(config)


def get_backend(config: Optional[BackendConfig] = None) -> InferenceBackend:
    """
    Get or create the global inference backend.

    One session per process keeps a single copy of the model in memory.
    """
    global _BACKEND
    if _BACKEND is not None:
        return _BACKEND
    with _BACKEND_LOCK:
        if _BACKEND is None:
            _BACKEND = _create_backend(config or BackendConfig())
        return _BACKEND


def reset_backend() -> None:
    """Close and forget the global backend (for tests)."""
    global _BACKEND
    with _BACKEND_LOCK:
        if _BACKEND is not None:
            _BACKEND.close()
        _BACKEND = None

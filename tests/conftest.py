"""
Shared test doubles.

FakeBackend    deterministic InferenceBackend (no model file, no onnxruntime)
FakeClock      manually advanced monotonic clock
FakeDevice     AudioDevice whose position follows a FakeClock
FakePhonemizer stands in for espeak-ng and records its input
"""
from __future__ import annotations

import os
import threading
import time
from typing import Callable, List, Optional

import numpy as np
import pytest

os.environ.setdefault("TTS_STREAM_SKIP_WARMUP", "1")

from tts_stream.core.errors import InferenceError
from tts_stream.tts.backend import InferenceBackend
from tts_stream.tts.device import AudioDevice, PlaybackState
from tts_stream.tts.voice import Voice


class FakeBackend(InferenceBackend):
    """
    Returns `samples_per_token` samples of 0.5 per token.

    Args:
        gate: If given, every inference call blocks until it is set.
        fail_when: Predicate on the call number (0-based); True raises.
    """
    name = "fake"

    def __init__(
        self,
        sample_rate: int = 24000,
        max_tokens: int = 510,
        samples_per_token: int = 10,
        gate: Optional[threading.Event] = None,
        fail_when: Optional[Callable[[int], bool]] = None,
    ):
        super().__init__(sample_rate=sample_rate, max_tokens=max_tokens)
        self.samples_per_token = samples_per_token
        self.gate = gate
        self.fail_when = fail_when
        self.calls: List[tuple] = []
        self.entered = threading.Event()
        self.closed = 0

    def load(self) -> None:
        self._loaded = True

    def _infer(self, tokens, voice, speed):
        call = len(self.calls)
        self.calls.append(tuple(tokens))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.fail_when is not None and self.fail_when(call):
            raise InferenceError("boom", details={"call": call})
        return np.full(len(tokens) * self.samples_per_token, 0.5, dtype=np.float32)

    def close(self) -> None:
        self.closed += 1
        self._loaded = False


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


class FakeDevice(AudioDevice):
    """
    With `instant=True` every buffer finishes the moment it is played.
    Otherwise the position is (clock - play time) * sample_rate, so a
    buffer plays until the test advances the clock or stops it.
    """
    name = "fake"

    def __init__(self, clock: Optional[FakeClock] = None, sample_rate: int = 24000, instant: bool = True):
        self.clock = clock or FakeClock()
        self.sample_rate = sample_rate
        self.instant = instant
        self.buffers: List[np.ndarray] = []
        self.played = threading.Event()
        self.volume = 1.0
        self.closed = False
        self._samples = np.zeros(0, dtype=np.float32)
        self._state = PlaybackState.STOPPED
        self._started_at = 0.0
        self._position = 0

    def init(self, samples: np.ndarray) -> None:
        self._samples = np.asarray(samples, dtype=np.float32)
        self._position = 0
        self._state = PlaybackState.STOPPED

    def play(self) -> None:
        self.buffers.append(self._samples)
        self._started_at = self.clock()
        if self.instant or self.length == 0:
            self._position = self.length
            self._state = PlaybackState.STOPPED
        else:
            self._state = PlaybackState.PLAYING
        self.played.set()

    def stop(self) -> None:
        self._position = self._live_position()
        self._state = PlaybackState.STOPPED

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    def _live_position(self) -> int:
        if self._state is not PlaybackState.PLAYING:
            return self._position
        elapsed = self.clock() - self._started_at
        return min(self.length, int(round(elapsed * self.sample_rate)))

    @property
    def playback_state(self) -> PlaybackState:
        if self._state is PlaybackState.PLAYING and self._live_position() >= self.length:
            self._position = self.length
            self._state = PlaybackState.STOPPED
        return self._state

    @property
    def position(self) -> int:
        return self._live_position()

    @property
    def length(self) -> int:
        return len(self._samples)

    def close(self) -> None:
        self.closed = True


class FakePhonemizer:
    """Returns the configured lines for every call."""

    def __init__(self, lines: List[str]):
        self.lines = list(lines)
        self.calls: List[tuple] = []

    def phonemize_lines(self, text: str, language: str = "en-us") -> List[str]:
        self.calls.append((text, language))
        return list(self.lines)


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll `predicate` until it holds or `timeout` passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def voice():
    return Voice(name="af_heart", features=np.zeros((510, 1, 256), dtype=np.float32))


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def fake_clock():
    return FakeClock()

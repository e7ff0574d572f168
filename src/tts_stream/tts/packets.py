"""
Speech Packets and Synthesis Handles.

Packets are the immutable payloads of the four speech lifecycle signals.
Phonemes are plain strings; "best guess" fields come from the progress
estimator and are approximate by nature.

    SpeechStartPacket         step 0 started playing
    SpeechProgressPacket      a segment finished playing
    SpeechCompletionPacket    the last segment finished playing
    SpeechCancellationPacket  playback stopped part-way

A SynthesisHandle is returned by every SpeechEngine.speak* call. It
carries the job, the text, the playback handles that are ready so far,
and per-utterance signals mirroring the engine-level ones.

Usage:
    handle = engine.speak_fast("Hello there. How are you?", voice)

    @handle.speech_progressed.connect
    def on_progress(packet):
        print(packet.spoken_text_best_guess)

    handle.wait(timeout=30)
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, TypeVar

from tts_stream.core.logging import error, get_logger
from tts_stream.tts.job import Job, JobStep
from tts_stream.tts.playback import PlaybackHandle

_LOG = get_logger("tts-stream.packets")

T = TypeVar("T")


@dataclass(frozen=True, eq=False)
class SpeechStartPacket:
    phonemes_to_speak: str
    text_to_speak: str
    job: Job


@dataclass(frozen=True, eq=False)
class SpeechProgressPacket:
    """
    Attributes:
        phonemes_spoken: Phonemes of the segment that just finished. Exact.
        spoken_text_best_guess: Text spoken since the utterance began
            (a guess, except for the last segment where it is the full text).
    """
    phonemes_spoken: str
    spoken_text_best_guess: str
    job: Job
    step: JobStep


@dataclass(frozen=True, eq=False)
class SpeechCompletionPacket:
    """
    Attributes:
        step: The last step, or None for an utterance with no segments.
    """
    phonemes_spoken: str
    spoken_text: str
    job: Job
    step: Optional[JobStep]


@dataclass(frozen=True, eq=False)
class SpeechCancellationPacket:
    """
    Attributes:
        phonemes_spoken_prev_segments_certain: Phonemes of the segments
            that finished before the cancellation.
        phonemes_spoken_last_segment_best_guess: The first
            round(len * fraction) phonemes of the interrupted segment.
        phonemes_spoken_best_guess: Both of the above, concatenated.
        spoken_text_best_guess: Estimated prefix of the text.
        step: The interrupted step; for a job that stopped on a failed
            step, the step that failed. None if the job had no steps.
    """
    phonemes_spoken_prev_segments_certain: str
    phonemes_spoken_last_segment_best_guess: str
    phonemes_spoken_best_guess: str
    spoken_text_best_guess: str
    job: Job
    step: Optional[JobStep]


class Signal(Generic[T]):
    """
    Minimal thread-safe event hook.

    Receivers are called in connection order on the emitting thread.
    A receiver that raises is logged and does not stop the others.
    """

    def __init__(self, name: str):
        self.name = name
        self._receivers: List[Callable[[T], Any]] = []
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, receivers={len(self._receivers)})"

    def __len__(self) -> int:
        return len(self._receivers)

    def connect(self, receiver: Callable[[T], Any]) -> Callable[[T], Any]:
        """Add a receiver. Returns it, so connect() works as a decorator."""
        with self._lock:
            self._receivers.append(receiver)
        return receiver

    def disconnect(self, receiver: Callable[[T], Any]) -> bool:
        with self._lock:
            if receiver in self._receivers:
                self._receivers.remove(receiver)
                return True
        return False

    def emit(self, payload: T) -> None:
        with self._lock:
            receivers = list(self._receivers)
        for receiver in receivers:
            try:
                receiver(payload)
            except Exception as exc:
                error(_LOG, "receiver_failed", signal=self.name, error=str(exc))


@dataclass(eq=False)
class SynthesisHandle:
    """
    Everything a caller needs to follow one utterance.

    Attributes:
        job: The synthesis job.
        text: Text the job speaks.
        phonemes: Phonemes of every segment, in order.
        ready_playback_handles: Playback handles queued so far, in order.
    """
    job: Job
    text: str
    phonemes: str = ""
    ready_playback_handles: List[PlaybackHandle] = field(default_factory=list)
    step_started: Signal = field(default_factory=lambda: Signal("step_started"))
    step_completed: Signal = field(default_factory=lambda: Signal("step_completed"))
    speech_started: Signal = field(default_factory=lambda: Signal("speech_started"))
    speech_progressed: Signal = field(default_factory=lambda: Signal("speech_progressed"))
    speech_completed: Signal = field(default_factory=lambda: Signal("speech_completed"))
    speech_canceled: Signal = field(default_factory=lambda: Signal("speech_canceled"))
    _finished: threading.Event = field(default_factory=threading.Event, repr=False)
    _outcome: Optional[str] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    @property
    def outcome(self) -> Optional[str]:
        """"completed", "canceled" or None while the utterance is live."""
        return self._outcome

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the utterance completed or was canceled."""
        return self._finished.wait(timeout)

    def cancel(self) -> None:
        """Cancel the job and abort every ready playback handle."""
        self.job.cancel()
        for handle in list(self.ready_playback_handles):
            handle.abort()
        self._finish("canceled")

    def _finish(self, outcome: str) -> None:
        if self._outcome is None:
            self._outcome = outcome
        self._finished.set()

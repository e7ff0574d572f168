"""
Synthesis Jobs and Steps.

A Job is one synthesis request: an ordered tuple of steps, one per
segment, plus a small state machine. The scheduler advances a job one
step per progress() call; consumers follow it through typed events
instead of callback fields on the job.

States:
    QUEUED -> RUNNING -> COMPLETED
       \\         \\
        +---------+--> CANCELED

    COMPLETED and CANCELED are terminal. step_index never decreases.
    A job with no steps still passes through RUNNING on its first
    progress() call.

Step Kinds:
    INFERENCE  tokens + voice + speed, rendered by the backend
    SILENCE    duration_s of zeros, rendered without the backend

Events (delivered to subscribers, in order):
    StepStarted    a step is about to be rendered
    StepCompleted  a step was rendered; carries the samples
    StepFailed     rendering raised; the error is re-raised afterwards
    JobCompleted   the last step completed
    JobCanceled    cancel() moved the job to CANCELED

Cancellation:
    Cooperative. A backend call in flight always runs to completion; if
    the job was canceled meanwhile, its result is dropped and no
    StepCompleted is emitted. StepCompleted is emitted while the job lock
    is held, so cancel() is ordered entirely before or after it.

Example:
    >>> job = Job.create([[50, 83, 54]], voice, speed=1.0)
    >>> unsubscribe = job.subscribe(lambda event: print(type(event).__name__))
    >>> while not job.is_done:
    ...     job.progress(backend)
    StepStarted
    StepCompleted
    JobCompleted
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from tts_stream.core.config import PausePolicy
from tts_stream.core.logging import debug, error, get_logger, verbose
from tts_stream.core.metrics import metrics
from tts_stream.tts.vocab import DEFAULT_VOCABULARY, Vocabulary
from tts_stream.tts.voice import Voice
from tts_stream.utils.audio import silence
from tts_stream.utils.timeit import timeit

_LOG = get_logger("tts-stream.job")


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELED = "canceled"


class StepKind(str, Enum):
    INFERENCE = "inference"
    SILENCE = "silence"


@dataclass(frozen=True)
class JobStep:
    """
    One unit of work of a job.

    Attributes:
        index: Position within the job.
        kind: INFERENCE or SILENCE.
        tokens: Segment tokens (inference only).
        voice: Voice to synthesize with (inference only).
        speed: Speech speed multiplier (inference only).
        duration_s: Length of the silence (silence only).
    """
    index: int
    kind: StepKind
    tokens: Tuple[int, ...] = ()
    voice: Optional[Voice] = None
    speed: float = 1.0
    duration_s: float = 0.0

    @classmethod
    def inference(cls, index: int, tokens: Sequence[int], voice: Voice, speed: float = 1.0) -> "JobStep":
        return cls(index=index, kind=StepKind.INFERENCE, tokens=tuple(tokens), voice=voice, speed=speed)

    @classmethod
    def silence(cls, index: int, duration_s: float) -> "JobStep":
        return cls(index=index, kind=StepKind.SILENCE, duration_s=duration_s)


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True, eq=False)
class StepStarted:
    job: "Job"
    step: JobStep


@dataclass(frozen=True, eq=False)
class StepCompleted:
    job: "Job"
    step: JobStep
    samples: np.ndarray


@dataclass(frozen=True, eq=False)
class StepFailed:
    job: "Job"
    step: JobStep
    error: BaseException


@dataclass(frozen=True, eq=False)
class JobCompleted:
    job: "Job"


@dataclass(frozen=True, eq=False)
class JobCanceled:
    job: "Job"


JobEvent = Union[StepStarted, StepCompleted, StepFailed, JobCompleted, JobCanceled]
JobListener = Callable[[JobEvent], None]


# =============================================================================
# Job
# =============================================================================

class Job:
    """
    Ordered steps plus lifecycle state.

    Thread Safety:
        State changes happen under a reentrant lock, so listeners may
        call back into the job (e.g. cancel() from a StepCompleted
        listener).
    """

    def __init__(self, steps: Sequence[JobStep], job_id: Optional[str] = None):
        self.id = job_id or uuid.uuid4().hex[:12]
        self.steps: Tuple[JobStep, ...] = tuple(steps)
        self._state = JobState.QUEUED
        self._step_index = 0
        self._lock = threading.RLock()
        self._listeners: List[JobListener] = []

    @classmethod
    def create(
        cls,
        segments: Sequence[Sequence[int]],
        voice: Voice,
        speed: float = 1.0,
        pauses: Optional[PausePolicy] = None,
        vocab: Vocabulary = DEFAULT_VOCABULARY,
    ) -> "Job":
        """
        Build a job with one inference step per segment.

        With `pauses`, a silence step follows every segment but the last
        that ends on punctuation. Live playback inserts its pauses at the playback
        queue instead and passes no policy here.
        """
        steps: List[JobStep] = []
        for position, segment in enumerate(segments):
            steps.append(JobStep.inference(len(steps), segment, voice, speed))
            if pauses is None or not segment or position == len(segments) - 1:
                continue
            end = segment[-1]
            if vocab.is_punctuation(end):
                seconds = pauses.seconds_after(vocab.token_to_char[end])
                if seconds > 0:
                    steps.append(JobStep.silence(len(steps), seconds))
        return cls(steps)

    def __repr__(self) -> str:
        return f"Job(id={self.id!r}, state={self._state.value}, step={self._step_index}/{len(self.steps)})"

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def step_index(self) -> int:
        """Index of the next step to render."""
        return self._step_index

    @property
    def is_done(self) -> bool:
        return self._state in (JobState.COMPLETED, JobState.CANCELED)

    @property
    def is_canceled(self) -> bool:
        return self._state is JobState.CANCELED

    # ─────────────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────────────

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        """Register a listener for job events. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: JobEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                error(_LOG, "listener_failed", job=self.id, event=type(event).__name__, error=str(exc))

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def cancel(self) -> bool:
        """
        Cancel the job.

        Returns:
            True if the job moved to CANCELED, False if it was already
            completed or canceled.
        """
        with self._lock:
            if self.is_done:
                return False
            self._state = JobState.CANCELED
            debug(_LOG, "job_canceled", job=self.id, step=self._step_index)
            self._emit(JobCanceled(self))
        return True

    def progress(self, backend) -> None:
        """
        Render the next step.

        Raises:
            Whatever the backend raised; StepFailed is emitted first.
        """
        with self._lock:
            if self.is_done:
                return
            if self._state is JobState.QUEUED:
                self._state = JobState.RUNNING
            if self._step_index >= len(self.steps):
                self._complete()
                return
            step = self.steps[self._step_index]

        self._emit(StepStarted(self, step))
        try:
            samples = self._render(step, backend)
        except Exception as exc:
            self._emit(StepFailed(self, step, exc))
            raise

        with self._lock:
            if self._state is JobState.CANCELED:
                debug(_LOG, "step_discarded", job=self.id, step=step.index)
                return
            self._step_index += 1
            self._emit(StepCompleted(self, step, samples))
            if self._step_index >= len(self.steps) and self._state is JobState.RUNNING:
                self._complete()

    def _complete(self) -> None:
        self._state = JobState.COMPLETED
        self._emit(JobCompleted(self))

    def _render(self, step: JobStep, backend) -> np.ndarray:
        if step.kind is StepKind.SILENCE:
            samples = silence(step.duration_s, backend.sample_rate)
            metrics.record_step("silence", audio_seconds=step.duration_s)
            return samples

        with timeit("inference") as t:
            samples = backend.infer(step.tokens, step.voice, step.speed)
        audio_s = len(samples) / float(backend.sample_rate)
        metrics.record_step("inference", seconds=t.seconds, audio_seconds=audio_s)
        verbose(
            _LOG,
            "step_inferred",
            job=self.id,
            step=step.index,
            tokens=len(step.tokens),
            audio_s=round(audio_s, 3),
            rtf=round(t.seconds / audio_s, 3) if audio_s else None,
            seconds=round(t.seconds, 3),
        )
        return samples

"""
SpeechEngine - Live Streaming Speech.

This module provides the SpeechEngine class, which speaks text through
the audio device while it is still being synthesized, and reports what
was heard.

Architecture:
    speak() → Tokenize → Segment → Job → Scheduler (inference, FIFO)
            → Playback queue (ordered) → Speech packets

    The scheduler thread renders one segment at a time. Each rendered
    segment is handed to the playback queue the moment it is ready, so
    the first segment plays while the rest is still being synthesized.

Modes:
    speak()        one segment: best prosody, audio starts after the
                   whole text is synthesized. Falls back to speak_fast()
                   above the backend token limit.
    speak_fast()   segmented: the first segment is short, so audio
                   starts almost immediately.
    speak_tokens() pre-phonemized tokens, segmented or not.

    Every speak* call first stops the current utterance, so new text
    replaces whatever is being spoken.

Speech Signals (engine-level and per SynthesisHandle):
    speech_started     SpeechStartPacket when segment 0 starts playing
    speech_progressed  SpeechProgressPacket after each segment
    speech_completed   SpeechCompletionPacket after the last segment
    speech_canceled    SpeechCancellationPacket when playback stops early

    Receivers run on the playback thread; exceptions are logged.

Pauses:
    With options.insert_pauses, a zero-filled buffer follows each segment
    that ends on punctuation (except the last one). The pause is
    abort-linked to its segment.

Example:
    >>> from tts_stream.services import SpeechEngine
    >>> with SpeechEngine() as engine:
    ...     handle = engine.speak_fast("Hello there. How are you today?")
    ...     handle.speech_completed.connect(lambda p: print(p.spoken_text))
    ...     handle.wait()
"""
from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional, Sequence, Union

from tts_stream.core.config import PipelineConfig, SpeechOptions
from tts_stream.core.errors import EngineDisposedError
from tts_stream.core.logging import debug, error, get_logger, info, success, verbose, warn
from tts_stream.tts.backend import InferenceBackend, get_backend
from tts_stream.tts.device import AudioDevice
from tts_stream.tts.job import Job, JobCanceled, JobCompleted, JobEvent, JobStep, StepCompleted, StepStarted
from tts_stream.tts.packets import (
    SpeechCancellationPacket,
    SpeechCompletionPacket,
    SpeechProgressPacket,
    SpeechStartPacket,
    Signal,
    SynthesisHandle,
)
from tts_stream.tts.playback import HandleState, PlaybackQueue
from tts_stream.tts.progress import estimate_spoken_text
from tts_stream.tts.scheduler import JobScheduler, SchedulerStats
from tts_stream.tts.segmenter import segment_tokens
from tts_stream.tts.tokenizer import EspeakPhonemizer, Tokenizer
from tts_stream.tts.voice import Voice, VoiceLibrary
from tts_stream.utils.audio import silence
from tts_stream.utils.timeit import timeit

_LOG = get_logger("tts-stream.engine")

VoiceLike = Union[Voice, str, None]


class _UtteranceTracker:
    """
    Connects one job to the playback queue and the speech signals.

    Job events arrive on the scheduler thread; playback callbacks on the
    playback thread. The spoken-phoneme list and the hand-off count are
    guarded by a per-tracker lock.

    A job canceled without stop() (a failed step) ends the utterance
    once every segment handed to playback has been spoken.
    """

    def __init__(self, engine: "SpeechEngine", handle: SynthesisHandle, segments: List[List[int]], options: SpeechOptions):
        self.engine = engine
        self.handle = handle
        self.segments = segments
        self.options = options
        self._spoken: List[str] = []
        self._handed = 0
        self._stopped = False
        self._ended = False
        self._lock = threading.Lock()

    @property
    def job(self) -> Job:
        return self.handle.job

    def _phonemes(self, step: JobStep) -> str:
        return self.engine.tokenizer.vocab.decode(step.tokens)

    def _emit(self, name: str, packet) -> None:
        getattr(self.engine, name).emit(packet)
        getattr(self.handle, name).emit(packet)

    # ─────────────────────────────────────────────────────────────────────────
    # Job events (scheduler thread)
    # ─────────────────────────────────────────────────────────────────────────

    def on_job_event(self, event: JobEvent) -> None:
        if isinstance(event, StepStarted):
            self.handle.step_started.emit(event.step)
        elif isinstance(event, StepCompleted):
            self.handle.step_completed.emit(event.step)
            self._hand_off(event.step, event.samples)
        elif isinstance(event, JobCompleted):
            if not self.job.steps:
                # Nothing to play: complete right away, with no step
                self._emit("speech_completed", SpeechCompletionPacket(
                    phonemes_spoken="",
                    spoken_text=self.handle.text,
                    job=self.job,
                    step=None,
                ))
                self.handle._finish("completed")
                self.engine._release(self)
        elif isinstance(event, JobCanceled):
            if self._stopped:
                return
            with self._lock:
                drained = len(self._spoken) == self._handed
            if drained:
                self._end_canceled()

    def _hand_off(self, step: JobStep, samples) -> None:
        # Runs under the job lock, so stop() sees every handle queued here
        with self._lock:
            self._handed += 1
        playback = self.engine.playback
        segment = playback.enqueue(
            samples,
            on_started=lambda: self._on_started(step),
            on_spoken=lambda: self._on_spoken(step),
            on_canceled=lambda seconds, fraction: self._on_canceled(step, seconds, fraction),
        )
        self.handle.ready_playback_handles.append(segment)

        last = step.index == len(self.job.steps) - 1
        if not self.options.insert_pauses or last or not step.tokens:
            return
        vocab = self.engine.tokenizer.vocab
        if not vocab.is_punctuation(step.tokens[-1]):
            return
        seconds = self.options.pauses.seconds_after(vocab.token_to_char[step.tokens[-1]])
        if seconds <= 0:
            return
        pause = playback.enqueue(
            silence(seconds, playback.config.sample_rate),
            on_canceled=lambda s, f: self._on_pause_canceled(step),
        )
        segment.link_abort(pause)
        self.handle.ready_playback_handles.append(pause)

    # ─────────────────────────────────────────────────────────────────────────
    # Playback callbacks (playback thread)
    # ─────────────────────────────────────────────────────────────────────────

    def _on_started(self, step: JobStep) -> None:
        if step.index != 0:
            return
        self._emit("speech_started", SpeechStartPacket(
            phonemes_to_speak=self.handle.phonemes,
            text_to_speak=self.handle.text,
            job=self.job,
        ))

    def _on_spoken(self, step: JobStep) -> None:
        phonemes = self._phonemes(step)
        with self._lock:
            self._spoken.append(phonemes)
            drained = self.job.is_canceled and len(self._spoken) == self._handed
        last = step.index == len(self.job.steps) - 1
        text = self.handle.text
        guess = text if last else estimate_spoken_text(self.segments, step.index, 1.0, text)

        self._emit("speech_progressed", SpeechProgressPacket(
            phonemes_spoken=phonemes,
            spoken_text_best_guess=guess,
            job=self.job,
            step=step,
        ))
        if last:
            self._emit("speech_completed", SpeechCompletionPacket(
                phonemes_spoken="".join(self._spoken),
                spoken_text=text,
                job=self.job,
                step=step,
            ))
            self.handle._finish("completed")
            self.engine._release(self)
            info(_LOG, "utterance_completed", job=self.job.id, segments=len(self.job.steps))
        elif drained and not self._stopped:
            self._end_canceled()

    def _on_canceled(self, step: JobStep, seconds: float, fraction: float) -> None:
        phonemes = self._phonemes(step)
        heard = phonemes[:int(round(len(phonemes) * fraction))]
        with self._lock:
            certain = "".join(self._spoken)
            self._spoken.append(heard)
        self._emit("speech_canceled", SpeechCancellationPacket(
            phonemes_spoken_prev_segments_certain=certain,
            phonemes_spoken_last_segment_best_guess=heard,
            phonemes_spoken_best_guess=certain + heard,
            spoken_text_best_guess=estimate_spoken_text(self.segments, step.index, fraction, self.handle.text),
            job=self.job,
            step=step,
        ))
        self.handle._finish("canceled")
        info(_LOG, "utterance_canceled", job=self.job.id, step=step.index,
             seconds=round(seconds, 3), fraction=round(fraction, 3))

    def _on_pause_canceled(self, step: JobStep) -> None:
        certain = "".join(self._spoken)
        self._emit("speech_canceled", SpeechCancellationPacket(
            phonemes_spoken_prev_segments_certain=certain,
            phonemes_spoken_last_segment_best_guess="",
            phonemes_spoken_best_guess=certain,
            spoken_text_best_guess=estimate_spoken_text(self.segments, step.index, 1.0, self.handle.text),
            job=self.job,
            step=step,
        ))
        self.handle._finish("canceled")

    def _end_canceled(self) -> None:
        """Finish an utterance whose job stopped on its own, e.g. after a failed step."""
        with self._lock:
            if self._ended:
                return
            self._ended = True
            certain = "".join(self._spoken)
        index = min(self.job.step_index, len(self.job.steps) - 1)
        step = self.job.steps[index] if index >= 0 else None
        guess = estimate_spoken_text(self.segments, index, 0.0, self.handle.text) if step else ""
        self._emit("speech_canceled", SpeechCancellationPacket(
            phonemes_spoken_prev_segments_certain=certain,
            phonemes_spoken_last_segment_best_guess="",
            phonemes_spoken_best_guess=certain,
            spoken_text_best_guess=guess,
            job=self.job,
            step=step,
        ))
        self.handle._finish("canceled")
        self.engine._release(self)
        warn(_LOG, "utterance_aborted", job=self.job.id, step=index)

    # ─────────────────────────────────────────────────────────────────────────
    # Stop (caller thread)
    # ─────────────────────────────────────────────────────────────────────────

    def stop(self) -> None:
        """Cancel the job and abort its playback handles."""
        self._stopped = True
        self.job.cancel()
        interrupted = False
        for playback_handle in list(self.handle.ready_playback_handles):
            was_playing = playback_handle.state is HandleState.IN_PROGRESS
            if playback_handle.abort() and was_playing:
                interrupted = True
        # An interrupted handle finishes the utterance from its on_canceled
        if not interrupted:
            self.handle._finish("canceled")


class SpeechEngine:
    """
    Streaming text-to-speech with playback and progress reporting.

    Args:
        config: Pipeline configuration. Defaults to PipelineConfig().
        backend: Inference backend. Defaults to the global ONNX backend.
        device: Audio device. Defaults to a sounddevice output.
        tokenizer: Tokenizer. Defaults to espeak-ng per config.phonemizer.
        clock: Monotonic clock for playback accounting.

    Thread Safety:
        speak*/stop_playback may be called from any thread. The engine
        owns two daemon threads (scheduler and playback) until dispose().
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        backend: Optional[InferenceBackend] = None,
        device: Optional[AudioDevice] = None,
        tokenizer: Optional[Tokenizer] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or PipelineConfig()
        self.backend = backend or get_backend(self.config.backend)
        self.tokenizer = tokenizer or Tokenizer(EspeakPhonemizer.from_config(self.config.phonemizer))
        self.voices = VoiceLibrary(self.config.backend.voices_dir, self.config.speech.default_voice)

        # ─────────────────────────────────────────────────────────────────────
        # Workers
        # ─────────────────────────────────────────────────────────────────────
        self.scheduler = JobScheduler(self.backend, idle_wait_s=self.config.scheduler.idle_wait_s)
        self.playback = PlaybackQueue(device, self.config.playback, clock)

        # ─────────────────────────────────────────────────────────────────────
        # Engine-level speech signals
        # ─────────────────────────────────────────────────────────────────────
        self.speech_started: Signal = Signal("speech_started")
        self.speech_progressed: Signal = Signal("speech_progressed")
        self.speech_completed: Signal = Signal("speech_completed")
        self.speech_canceled: Signal = Signal("speech_canceled")

        self._lock = threading.Lock()
        self._active: Optional[_UtteranceTracker] = None
        self._disposed = False
        self._text_preview_chars = self.config.logging.text_preview_chars
        self._warmup_in_progress = False

        info(_LOG, "engine_ready", backend=self.backend.name, sr=self.backend.sample_rate)

    def __enter__(self) -> "SpeechEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def active_handle(self) -> Optional[SynthesisHandle]:
        """Handle of the utterance being spoken, if any."""
        tracker = self._active
        return tracker.handle if tracker else None

    @property
    def nicify(self) -> bool:
        return self.playback.nicify

    @nicify.setter
    def nicify(self, value: bool) -> None:
        self.playback.nicify = value

    def set_volume(self, volume: float) -> None:
        self.playback.set_volume(volume)

    # =========================================================================
    # Warmup
    # =========================================================================

    def warmup(self) -> None:
        """Load the backend in a background thread, under the backend lock."""
        if self.backend.is_loaded() or self._warmup_in_progress:
            return
        self._warmup_in_progress = True

        def _do():
            try:
                with timeit("warmup") as t:
                    self.backend.ensure_loaded()
                success(_LOG, "warmup_done", seconds=round(t.seconds, 3))
            except Exception as e:
                error(_LOG, "warmup_failed", error=str(e))
            finally:
                self._warmup_in_progress = False

        threading.Thread(target=_do, name="tts-stream-warmup", daemon=True).start()

    # =========================================================================
    # Speaking
    # =========================================================================

    def enqueue(self, job: Job) -> Job:
        """Queue a raw job on the scheduler. Its audio is not played."""
        self._check_disposed()
        return self.scheduler.enqueue(job)

    def speak(self, text: str, voice: VoiceLike = None, options: Optional[SpeechOptions] = None) -> SynthesisHandle:
        """
        Speak `text` as a single segment.

        Input longer than the backend token limit is spoken segmented.

        Raises:
            EngineDisposedError: After dispose().
            VoiceNotFoundError: If the voice cannot be loaded.
            PhonemizerError: If espeak-ng fails.
        """
        self._check_disposed()
        options = options or self.config.speech.options
        voice = self.voices.get(voice)
        self.stop_playback()

        tokens = self.tokenizer.tokenize(text, voice.language, options.preprocess_text)
        segmented = False
        if len(tokens) > self.backend.max_tokens:
            warn(_LOG, "input_too_long", tokens=len(tokens), limit=self.backend.max_tokens, fallback="segmented")
            segmented = True
        return self._start(text, tokens, voice, options, segmented)

    def speak_fast(self, text: str, voice: VoiceLike = None, options: Optional[SpeechOptions] = None) -> SynthesisHandle:
        """Segment `text` and speak it, starting audio as early as possible."""
        self._check_disposed()
        options = options or self.config.speech.options
        voice = self.voices.get(voice)
        self.stop_playback()

        tokens = self.tokenizer.tokenize(text, voice.language, options.preprocess_text)
        return self._start(text, tokens, voice, options, segmented=True)

    def speak_tokens(
        self,
        text: str,
        tokens: Sequence[int],
        voice: VoiceLike = None,
        options: Optional[SpeechOptions] = None,
        segmented: bool = True,
    ) -> SynthesisHandle:
        """
        Speak pre-tokenized input. `text` is only used for the packets.

        Unsegmented input above the backend token limit is segmented.
        """
        self._check_disposed()
        options = options or self.config.speech.options
        voice = self.voices.get(voice)
        self.stop_playback()

        tokens = list(tokens)
        if not segmented and len(tokens) > self.backend.max_tokens:
            warn(_LOG, "input_too_long", tokens=len(tokens), limit=self.backend.max_tokens, fallback="segmented")
            segmented = True
        return self._start(text, tokens, voice, options, segmented)

    def stop_playback(self) -> None:
        """Cancel the current utterance and abort its queued audio."""
        with self._lock:
            tracker, self._active = self._active, None
        if tracker is None:
            return
        tracker.stop()
        debug(_LOG, "utterance_stopped", job=tracker.job.id)

    def _start(
        self,
        text: str,
        tokens: List[int],
        voice: Voice,
        options: SpeechOptions,
        segmented: bool,
    ) -> SynthesisHandle:
        vocab = self.tokenizer.vocab
        if segmented:
            segments = segment_tokens(tokens, options, vocab)
        else:
            segments = [list(tokens)] if tokens else []

        job = Job.create(segments, voice, speed=options.speed)
        handle = SynthesisHandle(
            job=job,
            text=text,
            phonemes="".join(vocab.decode(segment) for segment in segments),
        )
        tracker = _UtteranceTracker(self, handle, segments, options)
        job.subscribe(tracker.on_job_event)

        with self._lock:
            self._active = tracker
        self.scheduler.enqueue(job)

        preview = text[:self._text_preview_chars]
        info(_LOG, "utterance_queued", job=job.id, voice=voice.name, tokens=len(tokens),
             segments=len(segments), segmented=segmented)
        verbose(_LOG, "utterance_text", job=job.id, text=preview)
        return handle

    def _release(self, tracker: _UtteranceTracker) -> None:
        with self._lock:
            if self._active is tracker:
                self._active = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _check_disposed(self) -> None:
        if self._disposed:
            raise EngineDisposedError()

    def stats(self) -> dict:
        scheduler: SchedulerStats = self.scheduler.stats()
        playback = self.playback.stats()
        active = self.active_handle
        return {
            "backend": self.backend.name,
            "loaded": self.backend.is_loaded(),
            "active_job": active.job.id if active else None,
            "scheduler": {
                "queued": scheduler.queued,
                "active_job": scheduler.active_job,
                "jobs_completed": scheduler.jobs_completed,
                "jobs_canceled": scheduler.jobs_canceled,
                "jobs_failed": scheduler.jobs_failed,
            },
            "playback": {
                "queued": playback.queued,
                "playing": playback.playing,
                "handles_spoken": playback.handles_spoken,
                "handles_canceled": playback.handles_canceled,
                "handles_skipped": playback.handles_skipped,
                "volume": playback.volume,
                "nicify": playback.nicify,
            },
            "disposed": self._disposed,
        }

    def dispose(self) -> None:
        """Stop speaking, stop both workers and release the backend and device."""
        if self._disposed:
            return
        self._disposed = True
        self.stop_playback()
        self.scheduler.dispose()
        self.playback.dispose()
        info(_LOG, "engine_disposed")


# =============================================================================
# Global Engine Singleton
# =============================================================================

_engine: Optional[SpeechEngine] = None
_engine_lock = threading.Lock()


def get_speech_engine(config: Optional[PipelineConfig] = None, device: Optional[AudioDevice] = None) -> SpeechEngine:
    """
    Get or create the global SpeechEngine.

    Thread-safe lazy singleton; the arguments are only used on the first call.
    """
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = SpeechEngine(config, device=device)
    return _engine


def reset_speech_engine() -> None:
    """Dispose and forget the global engine (for tests)."""
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None

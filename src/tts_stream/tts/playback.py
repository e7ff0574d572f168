"""
Ordered Audio Playback.

A background worker plays queued sample buffers back-to-back, in the
order they were enqueued, through one audio device. Every buffer is
wrapped in a PlaybackHandle that can be aborted at any time, whether it
is still waiting or already playing.

Handle States:
    QUEUED -> IN_PROGRESS -> COMPLETED
       \\           \\
        +-----------+--> ABORTED

Callbacks (called on the playback thread):
    on_started()                   the handle starts playing
    on_spoken()                    the buffer played to the end
    on_canceled(seconds, fraction) playback stopped early; `seconds` of
                                   wall-clock time and `fraction` of the
                                   buffer (0-1) were output

    A handle aborted before it started is skipped silently, unless
    abort(raise_canceled=True) asks for an on_canceled(0, 0).

Nicify:
    With nicify enabled, near-silent edges are trimmed and the noise
    floor is zeroed before a buffer is played, so separately synthesized
    chunks join without audible gaps. Inserted pause buffers are all
    zeros and keep their length.

Abort Links:
    handle.link_abort(pause) makes aborting `handle` abort `pause` too.
    The speech engine links every segment to the pause that follows it.

Usage:
    queue = PlaybackQueue(SoundDeviceOutput())
    handle = queue.enqueue(samples, on_spoken=lambda: print("done"))
    handle.abort()

See Also:
    - tts/device.py: Audio device contract
    - services/speech_service.py: Turns handle callbacks into speech packets
"""
from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, List, Optional

import numpy as np

from tts_stream.core.config import PlaybackConfig
from tts_stream.core.errors import EngineDisposedError
from tts_stream.core.logging import debug, error, get_logger, info, verbose
from tts_stream.core.metrics import metrics
from tts_stream.tts.device import AudioDevice, PlaybackState, SoundDeviceOutput
from tts_stream.utils.audio import post_process_samples

_LOG = get_logger("tts-stream.playback")

StartedCallback = Callable[[], None]
SpokenCallback = Callable[[], None]
CanceledCallback = Callable[[float, float], None]


def _invoke(name: str, callback: Optional[Callable], *args) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception as exc:
        error(_LOG, "callback_failed", callback=name, error=str(exc))


class HandleState(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


class PlaybackHandle:
    """
    One queued buffer of audio and its callbacks.

    Thread Safety:
        State transitions are guarded by a per-handle lock; the abort
        flag is a threading.Event the playback worker waits on.
    """

    def __init__(
        self,
        samples: np.ndarray,
        on_started: Optional[StartedCallback] = None,
        on_spoken: Optional[SpokenCallback] = None,
        on_canceled: Optional[CanceledCallback] = None,
    ):
        self.samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        self.on_started = on_started
        self.on_spoken = on_spoken
        self.on_canceled = on_canceled
        self._state = HandleState.QUEUED
        self._lock = threading.Lock()
        self._aborted = threading.Event()
        self._abort_listeners: List[Callable[[], None]] = []

    def __repr__(self) -> str:
        return f"PlaybackHandle(samples={len(self.samples)}, state={self._state.value})"

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    @property
    def done(self) -> bool:
        return self._state in (HandleState.COMPLETED, HandleState.ABORTED)

    def add_abort_listener(self, listener: Callable[[], None]) -> None:
        """Call `listener` when the handle is aborted (immediately if it already was)."""
        with self._lock:
            if self._state is not HandleState.ABORTED:
                self._abort_listeners.append(listener)
                return
        _invoke("abort_listener", listener)

    def link_abort(self, other: "PlaybackHandle") -> None:
        """Abort `other` whenever this handle is aborted."""
        self.add_abort_listener(lambda: other.abort())

    def abort(self, raise_canceled: bool = False) -> bool:
        """
        Abort the handle.

        Args:
            raise_canceled: Call on_canceled(0, 0) if the handle had not
                started yet.

        Returns:
            True if the handle moved to ABORTED, False if it was already
            completed or aborted.
        """
        with self._lock:
            if self._state in (HandleState.COMPLETED, HandleState.ABORTED):
                return False
            never_started = self._state is HandleState.QUEUED
            self._state = HandleState.ABORTED
            listeners, self._abort_listeners = self._abort_listeners, []
        self._aborted.set()

        if raise_canceled and never_started:
            _invoke("on_canceled", self.on_canceled, 0.0, 0.0)
        for listener in listeners:
            _invoke("abort_listener", listener)
        return True

    def wait_aborted(self, timeout: float) -> bool:
        return self._aborted.wait(timeout)

    def _start(self) -> bool:
        with self._lock:
            if self._state is not HandleState.QUEUED:
                return False
            self._state = HandleState.IN_PROGRESS
            return True

    def _complete(self) -> bool:
        with self._lock:
            if self._state is not HandleState.IN_PROGRESS:
                return False
            self._state = HandleState.COMPLETED
            return True


@dataclass
class PlaybackStats:
    """Statistics for the playback queue."""
    queued: int
    playing: bool
    handles_spoken: int
    handles_canceled: int
    handles_skipped: int
    volume: float
    nicify: bool
    disposed: bool


class PlaybackQueue:
    """
    Plays handles back-to-back on a background thread.

    Args:
        device: Audio device. Defaults to a SoundDeviceOutput at the
            configured sample rate.
        config: Playback configuration.
        clock: Monotonic clock used for elapsed-time accounting.
    """

    def __init__(
        self,
        device: Optional[AudioDevice] = None,
        config: Optional[PlaybackConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or PlaybackConfig()
        self._device = device if device is not None else SoundDeviceOutput(self.config.sample_rate)
        self._clock = clock
        self._nicify = self.config.nicify
        self._volume = min(1.0, max(0.0, self.config.volume))
        self._device.set_volume(self._volume)

        self._cond = threading.Condition()
        self._queue: Deque[PlaybackHandle] = deque()
        self._current: Optional[PlaybackHandle] = None
        self._disposed = False

        self._spoken = 0
        self._canceled = 0
        self._skipped = 0

        self._thread = threading.Thread(target=self._run, name="tts-stream-playback", daemon=True)
        self._thread.start()

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def device(self) -> AudioDevice:
        return self._device

    @property
    def nicify(self) -> bool:
        return self._nicify

    @nicify.setter
    def nicify(self, value: bool) -> None:
        self._nicify = bool(value)

    @property
    def volume(self) -> float:
        return self._volume

    def set_volume(self, volume: float) -> None:
        """Set the output volume, clamped to [0, 1]."""
        self._volume = min(1.0, max(0.0, float(volume)))
        self._device.set_volume(self._volume)

    def enqueue(
        self,
        samples: np.ndarray,
        on_started: Optional[StartedCallback] = None,
        on_spoken: Optional[SpokenCallback] = None,
        on_canceled: Optional[CanceledCallback] = None,
    ) -> PlaybackHandle:
        """
        Queue samples for playback after everything queued before them.

        Raises:
            EngineDisposedError: If the queue was disposed.
        """
        handle = PlaybackHandle(samples, on_started, on_spoken, on_canceled)
        with self._cond:
            if self._disposed:
                raise EngineDisposedError()
            self._queue.append(handle)
            depth = len(self._queue)
            self._cond.notify_all()
        metrics.set_playback_queue_depth(depth)
        debug(_LOG, "handle_enqueued", samples=len(handle.samples), queued=depth)
        return handle

    def stop_playback(self, clear_queue: bool = True) -> None:
        """
        Abort the playing handle and, with `clear_queue`, every queued one.

        Without `clear_queue` the next queued handle starts right away.
        """
        with self._cond:
            current = self._current
            pending = list(self._queue) if clear_queue else []
            if clear_queue:
                self._queue.clear()
            self._cond.notify_all()

        for handle in pending:
            handle.abort()
        if current is not None:
            current.abort()
        metrics.set_playback_queue_depth(0 if clear_queue else len(self._queue))

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until nothing is queued or playing. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while (self._queue or self._current is not None) and not self._disposed:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._cond.wait(remaining)
        return True

    def stats(self) -> PlaybackStats:
        with self._cond:
            return PlaybackStats(
                queued=len(self._queue),
                playing=self._current is not None,
                handles_spoken=self._spoken,
                handles_canceled=self._canceled,
                handles_skipped=self._skipped,
                volume=self._volume,
                nicify=self._nicify,
                disposed=self._disposed,
            )

    def dispose(self, timeout: Optional[float] = 5.0) -> None:
        """Abort everything, stop the worker and close the device."""
        with self._cond:
            if self._disposed:
                return
            self._disposed = True
            pending = list(self._queue)
            self._queue.clear()
            current = self._current
            self._cond.notify_all()

        for handle in pending:
            handle.abort()
        if current is not None:
            current.abort()
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)
        self._device.close()
        metrics.set_playback_queue_depth(0)
        info(_LOG, "playback_disposed", dropped=len(pending))

    # ─────────────────────────────────────────────────────────────────────────
    # Worker
    # ─────────────────────────────────────────────────────────────────────────

    def _next_handle(self) -> Optional[PlaybackHandle]:
        with self._cond:
            while not self._queue and not self._disposed:
                self._cond.wait(self.config.idle_wait_s)
            if self._disposed:
                return None
            handle = self._queue.popleft()
            self._current = handle
            depth = len(self._queue)
        metrics.set_playback_queue_depth(depth)
        return handle

    def _run(self) -> None:
        while True:
            handle = self._next_handle()
            if handle is None:
                break
            try:
                self._play(handle)
            except Exception as exc:
                error(_LOG, "playback_failed", error=str(exc))
                handle.abort()
            finally:
                with self._cond:
                    self._current = None
                    self._cond.notify_all()

    def _play(self, handle: PlaybackHandle) -> None:
        if not handle._start():
            with self._cond:
                self._skipped += 1
            metrics.record_playback("skipped")
            debug(_LOG, "handle_skipped", samples=len(handle.samples))
            return

        _invoke("on_started", handle.on_started)

        samples = handle.samples
        if self._nicify:
            samples = post_process_samples(
                samples,
                lead_threshold=self.config.lead_threshold,
                tail_threshold=self.config.tail_threshold,
                noise_floor=self.config.noise_floor,
            )

        device = self._device
        started_at = self._clock()
        device.init(samples)
        device.play()
        while device.playback_state is PlaybackState.PLAYING:
            if handle.wait_aborted(self.config.poll_interval_s):
                break
        if device.playback_state is PlaybackState.PLAYING:
            device.stop()

        if not handle.aborted and device.reached_end and handle._complete():
            with self._cond:
                self._spoken += 1
            metrics.record_playback("spoken")
            verbose(_LOG, "handle_spoken", samples=len(samples))
            _invoke("on_spoken", handle.on_spoken)
            return

        elapsed = self._clock() - started_at
        fraction = min(1.0, max(0.0, device.current_percentage))
        handle.abort()
        with self._cond:
            self._canceled += 1
        metrics.record_playback("canceled")
        verbose(_LOG, "handle_canceled", seconds=round(elapsed, 3), fraction=round(fraction, 3))
        _invoke("on_canceled", handle.on_canceled, elapsed, fraction)

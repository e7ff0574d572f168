"""
Audio Output Devices.

The playback queue drives a device through a small contract:

    init(samples)       load a mono float32 buffer, position back to 0
    play()              start output (non-blocking)
    stop()              stop immediately, keeping the position
    set_volume(v)       0.0 - 1.0
    playback_state      PLAYING until the buffer ran out or stop() was called
    position / length   samples output so far / samples in the buffer

Output format is fixed: mono, 16-bit, 24000 Hz.

SoundDeviceOutput streams through PortAudio with the sounddevice
library. The read position is advanced by the stream callback, so it is
the amount of audio handed to the driver; the audible position lags it
by the driver latency.

See Also:
    - tts/playback.py: The only user of a device
"""
from __future__ import annotations

import threading
from enum import Enum
from typing import Optional

import numpy as np

from tts_stream.core.config import Defaults
from tts_stream.core.logging import debug, get_logger, info
from tts_stream.utils.audio import float32_to_pcm16

_LOG = get_logger("tts-stream.device")


class PlaybackState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"


class AudioDevice:
    """Base class for audio devices."""
    name: str = "base"

    def init(self, samples: np.ndarray) -> None:
        raise NotImplementedError

    def play(self) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    def set_volume(self, volume: float) -> None:
        raise NotImplementedError

    @property
    def playback_state(self) -> PlaybackState:
        raise NotImplementedError

    @property
    def position(self) -> int:
        raise NotImplementedError

    @property
    def length(self) -> int:
        raise NotImplementedError

    @property
    def current_percentage(self) -> float:
        """Fraction of the buffer output so far, in [0, 1]."""
        if self.length <= 0:
            return 0.0
        return min(1.0, max(0.0, self.position / self.length))

    @property
    def reached_end(self) -> bool:
        return self.position >= self.length

    def close(self) -> None:
        pass


class SoundDeviceOutput(AudioDevice):
    """
    PortAudio output through sounddevice.

    sounddevice is imported when the device is created, so the rest of
    the package works on machines without PortAudio.
    """
    name = "sounddevice"

    def __init__(self, sample_rate: int = Defaults.SAMPLE_RATE, device: Optional[int | str] = None):
        import sounddevice as sd

        self._sd = sd
        self.sample_rate = sample_rate
        self.device = device
        self._lock = threading.Lock()
        self._samples = np.zeros(0, dtype=np.float32)
        self._position = 0
        self._volume = 1.0
        self._state = PlaybackState.STOPPED
        self._stream = None
        info(_LOG, "device_opened", device=str(device or "default"), sr=sample_rate)

    def init(self, samples: np.ndarray) -> None:
        self._close_stream()
        with self._lock:
            self._samples = np.asarray(samples, dtype=np.float32).reshape(-1)
            self._position = 0

    def play(self) -> None:
        if self.length == 0:
            self._state = PlaybackState.STOPPED
            return
        self._stream = self._sd.OutputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="int16",
            device=self.device,
            callback=self._callback,
            finished_callback=self._finished,
        )
        self._state = PlaybackState.PLAYING
        self._stream.start()

    def stop(self) -> None:
        stream = self._stream
        if stream is not None and stream.active:
            stream.abort()
        self._state = PlaybackState.STOPPED

    def set_volume(self, volume: float) -> None:
        with self._lock:
            self._volume = min(1.0, max(0.0, float(volume)))

    @property
    def playback_state(self) -> PlaybackState:
        return self._state

    @property
    def position(self) -> int:
        return self._position

    @property
    def length(self) -> int:
        return len(self._samples)

    def close(self) -> None:
        self.stop()
        self._close_stream()
        debug(_LOG, "device_closed")

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()

    # Runs on the PortAudio thread
    def _callback(self, outdata, frames, time_info, status) -> None:
        with self._lock:
            chunk = self._samples[self._position:self._position + frames]
            self._position += len(chunk)
            volume = self._volume
        outdata[:len(chunk), 0] = float32_to_pcm16(chunk, volume)
        outdata[len(chunk):] = 0
        if len(chunk) < frames:
            raise self._sd.CallbackStop()

    def _finished(self) -> None:
        self._state = PlaybackState.STOPPED

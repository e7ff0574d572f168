"""
Audio Processing Utilities.

All audio in tts-stream is mono float32 in [-1, 1] at the backend sample
rate (24kHz for Kokoro). It is converted at the edges only:
    - PCM 16-bit for the sound device stream
    - WAV (PCM 16-bit) for offline synthesis and the HTTP API

Key Functions:
    wav_bytes_from_float32: Encode samples as WAV bytes
    wav_bytes_to_float32: Decode WAV bytes to samples
    float32_to_pcm16: Scale and clip samples to int16
    post_process_samples: Trim near-silent edges and zero the noise floor
    silence: Zero-filled buffer of a given length

Dependencies:
    - numpy: Array operations
    - soundfile: WAV reading/writing (uses libsndfile)

Example:
    >>> import numpy as np
    >>> audio = np.zeros(24000, dtype=np.float32)
    >>> wav_bytes, timings = wav_bytes_from_float32(audio, 24000)
    >>> print(f"Generated {len(wav_bytes)} bytes in {timings['wav_encode']:.4f}s")

See Also:
    - tts/playback.py: Nicifies samples before handing them to the device
    - services/synthesizer.py: Builds WAV files from finished jobs
"""
from __future__ import annotations

import io
from typing import Dict

import numpy as np
import soundfile as sf

from tts_stream.core.config import Defaults
from tts_stream.core.logging import get_logger, verbose
from tts_stream.utils.timeit import timeit

_LOG = get_logger("tts-stream.audio")


def wav_bytes_from_float32(waveform: np.ndarray, sample_rate: int) -> tuple[bytes, Dict[str, float]]:
    """
    Convert a float32 waveform to WAV bytes (PCM 16-bit).

    Args:
        waveform: Audio samples in [-1, 1]. Multi-dimensional input is
            flattened to mono.
        sample_rate: Audio sample rate.

    Returns:
        Tuple of (wav_bytes, timing_dict) where timing_dict holds the
        'wav_encode' duration in seconds.
    """
    timings: Dict[str, float] = {}

    with timeit("wav_encode") as t:
        wav = np.asarray(waveform, dtype=np.float32)
        if wav.ndim > 1:
            wav = wav.reshape(-1)

        buf = io.BytesIO()
        sf.write(buf, wav, sample_rate, format="WAV", subtype="PCM_16")
        out = buf.getvalue()

    timings["wav_encode"] = t.seconds
    verbose(_LOG, "wav_encoded", bytes=len(out), sr=sample_rate, seconds=round(timings["wav_encode"], 4))
    return out, timings


def wav_bytes_to_float32(wav_bytes: bytes) -> tuple[np.ndarray, int]:
    """
    Decode WAV bytes to a mono float32 array.

    Stereo input is averaged to mono.

    Returns:
        Tuple of (audio_array, sample_rate).
    """
    buf = io.BytesIO(wav_bytes)
    wav, sr = sf.read(buf, dtype="float32")
    if wav.ndim > 1:
        wav = wav.mean(axis=1)
    return np.asarray(wav, dtype=np.float32), int(sr)


def float32_to_pcm16(samples: np.ndarray, volume: float = 1.0) -> np.ndarray:
    """Scale float samples by `volume` and convert to clipped int16."""
    scaled = np.clip(np.asarray(samples, dtype=np.float32) * volume, -1.0, 1.0)
    return (scaled * 32767).astype(np.int16)


def post_process_samples(
    samples: np.ndarray,
    lead_threshold: float = Defaults.NICIFY_LEAD_THRESHOLD,
    tail_threshold: float = Defaults.NICIFY_TAIL_THRESHOLD,
    noise_floor: float = Defaults.NICIFY_NOISE_FLOOR,
) -> np.ndarray:
    """
    Make back-to-back playback of separately synthesized chunks sound smooth.

    Leading samples with magnitude <= lead_threshold and trailing samples
    with magnitude <= tail_threshold are cut, then anything quieter than
    noise_floor is zeroed. A buffer with nothing left after trimming keeps
    its full length, so inserted pauses survive.
    """
    out = np.asarray(samples, dtype=np.float32).reshape(-1).copy()
    out[np.abs(out) < noise_floor] = 0.0

    magnitude = np.abs(out)
    loud_start = np.flatnonzero(magnitude > lead_threshold)
    if loud_start.size == 0:
        return out
    start = int(loud_start[0])
    loud_end = np.flatnonzero(magnitude[start:] > tail_threshold)
    end = start + (int(loud_end[-1]) if loud_end.size else 0) + 1
    return out[start:end]


def silence(seconds: float, sample_rate: int = Defaults.SAMPLE_RATE) -> np.ndarray:
    """Zero-filled float32 buffer `seconds` long."""
    return np.zeros(max(0, int(round(seconds * sample_rate))), dtype=np.float32)

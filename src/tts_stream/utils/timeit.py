"""
Timing Utilities for Performance Measurement.

The scheduler times every backend call and the tokenizer times every
espeak-ng run; the measured seconds end up in log lines and in the
tts_stream_inference_seconds histogram.

Precision:
    Uses time.perf_counter() for high-resolution timing.

Example Usage:
    with timeit("inference", meta={"tokens": 87}) as t:
        samples = backend.infer(tokens, voice, speed)
    print(f"Took {t.timing.seconds:.3f}s")

See Also:
    - tts/job.py: Times each rendered step
    - core/logging/: Timing data included in log messages
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    """
    Timing measurement result.

    Attributes:
        name: Identifier for what was timed (e.g., "inference", "espeak").
        seconds: Duration in seconds.
        meta: Optional metadata dictionary for additional context.
    """
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """
    Context manager for timing code blocks.

    The result is available as `timing` once the block exits, also when
    the block raised.
    """

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        t1 = perf_counter()
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=(t1 - self._t0), meta=self.meta)

    @property
    def seconds(self) -> float:
        """Elapsed seconds, or -1.0 while the block is still running."""
        return self.timing.seconds if self.timing else -1.0

"""
Spoken-Text Estimation.

Maps "segment i is x% through playback" onto a prefix of the original
text. The mapping is a best guess: it assumes characters and tokens are
proportional across the whole utterance, which phonemization only
roughly preserves. Use it for subtitles and logs, never as an exact
alignment.

    fraction = (tokens of segments before i + x * tokens of segment i) / total
    prefix   = text[:round(fraction * len(text))]

Both functions are pure and non-decreasing in `index` and `fraction`.
"""
from __future__ import annotations

from typing import Sequence


def spoken_fraction(segments: Sequence[Sequence[int]], index: int, fraction: float) -> float:
    """
    Token-weighted fraction of the whole utterance consumed so far.

    Args:
        segments: Segments of the utterance, in speech order.
        index: Segment currently playing. Values past the end count as done.
        fraction: How much of that segment was played, clamped to [0, 1].

    Returns:
        A value in [0, 1]. An utterance without tokens returns 1.0 once
        anything was played and 0.0 otherwise.
    """
    fraction = min(1.0, max(0.0, float(fraction)))
    lengths = [len(segment) for segment in segments]
    total = sum(lengths)
    if total == 0:
        return 1.0 if index > 0 or fraction > 0 else 0.0
    if index < 0:
        return 0.0
    if index >= len(lengths):
        return 1.0

    consumed = sum(lengths[:index]) + fraction * lengths[index]
    return min(1.0, consumed / total)


def estimate_spoken_text(
    segments: Sequence[Sequence[int]],
    index: int,
    fraction: float,
    text: str,
) -> str:
    """
    Best guess of the text spoken so far.

    Example:
        >>> estimate_spoken_text([[1, 2], [3, 4]], 1, 0.5, "Hello world!")
        'Hello wor'
    """
    ratio = spoken_fraction(segments, index, fraction)
    return text[:int(round(ratio * len(text)))]

"""
Token Segmentation for Streaming Synthesis.

Splits a token sequence into segments that are synthesized one at a time,
so playback of the first segment can start while the rest is still being
inferred.

Window-then-scan:
    Every segment gets a window of allowed lengths that depends on its
    position. Segment 0 is short (fast first audio), segment 1 is a
    mid-size buffer, and segments 2+ are long because they are inferred
    while earlier audio is playing.

    Within the window the cut is placed, in order of preference:
        1. right after the first newline
        2. after a hard terminator (. ! ? :), the earliest one for
           segments 0 and 1, the latest one afterwards
        3. after the latest comma, else after the latest space
        4. after the earliest terminator anywhere in the remainder
        5. at a fixed length, breaking a word (no terminator left at all)

Boundary Finishing:
    - Terminators and spaces directly after the cut join the segment.
    - Spaces at the end of a segment are dropped as separators, together
      with any spaces that follow the cut, so only the first segment can
      start with a space and none ends with one.
    - A remainder shorter than the tail tolerance is absorbed, so no tiny
      trailing segment is produced.

Example:
    >>> from tts_stream.core.config import SegmentationPolicy
    >>> from tts_stream.tts.segmenter import split_to_segments
    >>> from tts_stream.tts.vocab import DEFAULT_VOCABULARY as vocab
    >>> tokens = vocab.encode("ab,cd.ef.")
    >>> [vocab.decode(s) for s in split_to_segments(tokens, SegmentationPolicy(max_first=4))]
    ['ab,', 'cd.ef.']

See Also:
    - tts/job.py: One inference step per segment
    - core/config.py: SegmentationPolicy defaults, SpeechOptions.segmenter
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from tts_stream.core.config import SegmentationPolicy, SpeechOptions
from tts_stream.core.logging import debug, get_logger, verbose
from tts_stream.tts.vocab import DEFAULT_VOCABULARY, Vocabulary
from tts_stream.utils.timeit import timeit

_LOG = get_logger("tts-stream.segmenter")


# =============================================================================
# Windows
# =============================================================================

def segment_window(index: int, policy: SegmentationPolicy) -> Tuple[int, int]:
    """
    Allowed (minimum, maximum) length of the segment at position `index`.

    The minimum is advisory; only the maximum bounds the cut.
    """
    if index == 0:
        return min(policy.min_first, 3), policy.max_first
    if index == 1:
        return 0, policy.max_second
    return policy.min_followup, min(2 * policy.min_followup, policy.max_tokens)


# =============================================================================
# Cut selection
# =============================================================================

def _first_index(window: Sequence[int], targets) -> Optional[int]:
    for i, token in enumerate(window):
        if token in targets:
            return i
    return None


def _last_index(window: Sequence[int], targets) -> Optional[int]:
    for i in range(len(window) - 1, -1, -1):
        if window[i] in targets:
            return i
    return None


def _window_cut(window: Sequence[int], index: int, vocab: Vocabulary) -> Optional[int]:
    """Number of window tokens to take, or None when the window has no break point."""
    newline = _first_index(window, (vocab.newline_token,))
    if newline is not None:
        return newline + 1

    hard = frozenset(vocab.hard_terminators)
    found = _first_index(window, hard) if index < 2 else _last_index(window, hard)
    if found is not None:
        return found + 1

    for soft in vocab.soft_terminators:
        found = _last_index(window, (soft,))
        if found is not None:
            return found + 1
    return None


# =============================================================================
# Segmentation
# =============================================================================

def split_to_segments(
    tokens: Sequence[int],
    policy: Optional[SegmentationPolicy] = None,
    vocab: Vocabulary = DEFAULT_VOCABULARY,
) -> List[List[int]]:
    """
    Split tokens into segments for streaming synthesis.

    Args:
        tokens: Token sequence of one utterance.
        policy: Segment length policy (defaults to SegmentationPolicy()).
        vocab: Vocabulary that defines the terminator tokens.

    Returns:
        Ordered, non-empty segments. Concatenated, they reproduce `tokens`
        once the separator spaces dropped at each boundary are put back.
    """
    policy = policy or SegmentationPolicy()
    tokens = list(tokens)
    total = len(tokens)
    if total == 0:
        return []
    if total <= policy.max_first:
        return [tokens]

    newline = vocab.newline_token
    space = vocab.space_token
    joinable = vocab.terminators
    any_break = joinable | {newline}

    segments: List[List[int]] = []
    cursor = 0

    with timeit("segment") as t:
        while cursor < total:
            index = len(segments)
            _, maximum = segment_window(index, policy)
            # The first segment stays within its window even in the fallbacks
            cap = maximum if index == 0 else policy.max_tokens

            cut = _window_cut(tokens[cursor:cursor + maximum], index, vocab)
            hard_cut = False
            if cut is None:
                found = _first_index(tokens[cursor:], any_break)
                if found is not None and found < cap:
                    cut = found + 1
                else:
                    cut = min(cap, total - cursor)
                    hard_cut = True

            end = cursor + cut
            if not hard_cut and tokens[end - 1] != newline:
                limit = max(cursor + maximum, end)
                while end < total and end < limit and tokens[end] in joinable:
                    end += 1
                if total - end < policy.tail_tolerance and total - cursor <= maximum:
                    end = total

            segment_end = end
            while segment_end > cursor and tokens[segment_end - 1] == space:
                segment_end -= 1
            if segment_end > cursor:
                segments.append(tokens[cursor:segment_end])
            # The whole run of separator spaces at the boundary is dropped
            while end < total and tokens[end] == space:
                end += 1
            cursor = end

    verbose(
        _LOG,
        "segmented",
        tokens=total,
        segments=len(segments),
        lengths=[len(s) for s in segments],
        seconds=round(t.seconds, 4),
    )
    return segments


def segment_tokens(
    tokens: Sequence[int],
    options: SpeechOptions,
    vocab: Vocabulary = DEFAULT_VOCABULARY,
) -> List[List[int]]:
    """
    Segment one utterance with options.segmenter, or split_to_segments().

    Empty segments returned by a custom segmenter are dropped.
    """
    if options.segmenter is None:
        return split_to_segments(tokens, options.segmentation, vocab)

    segments = [list(segment) for segment in options.segmenter(list(tokens))]
    kept = [segment for segment in segments if segment]
    if len(kept) != len(segments):
        debug(_LOG, "empty_segments_dropped", count=len(segments) - len(kept))
    return kept

"""
Tests for window-then-scan segmentation.

Tests cover:
- Short input is a single segment, empty input none
- Break preference: newline, hard terminator, comma, space
- Earliest hard terminator for segments 0-1, latest afterwards
- Scan beyond the window, hard cut without terminators
- Joining trailing terminators, absorbing short tails
- Order and content preservation on long input
- Custom segmenters from SpeechOptions
"""
from __future__ import annotations

import pytest

from tts_stream.core.config import SegmentationPolicy, SpeechOptions
from tts_stream.tts.segmenter import segment_tokens, segment_window, split_to_segments
from tts_stream.tts.vocab import DEFAULT_VOCABULARY as vocab


def split(text: str, **policy) -> list:
    segments = split_to_segments(vocab.encode(text), SegmentationPolicy(**policy))
    return [vocab.decode(s) for s in segments]


def rebuild(tokens: list, segments: list) -> list:
    """
    Concatenate segments, putting back the separators dropped between them.

    Each segment must appear in `tokens` at the current position, and
    everything skipped between segments must be spaces.
    """
    out, pos = [], 0
    for segment in segments:
        start = pos
        while tokens[start:start + len(segment)] != segment:
            assert tokens[start] == vocab.space_token, f"non-space dropped at {start}"
            start += 1
        out.extend(tokens[pos:start])
        out.extend(segment)
        pos = start + len(segment)
    assert all(t == vocab.space_token for t in tokens[pos:])
    out.extend(tokens[pos:])
    return out


class TestSegmentWindow:
    def test_first_window(self):
        assert segment_window(0, SegmentationPolicy()) == (3, 100)

    def test_second_window(self):
        assert segment_window(1, SegmentationPolicy(max_second=80)) == (0, 80)

    def test_followup_window(self):
        assert segment_window(2, SegmentationPolicy()) == (200, 400)
        assert segment_window(5, SegmentationPolicy(min_followup=300)) == (300, 510)


class TestShortInput:
    def test_empty(self):
        assert split_to_segments([]) == []

    def test_within_first_limit(self):
        tokens = vocab.encode("həlˈoʊ wˈɜːld. hˈaʊ ɑːɹ juː?")
        assert split_to_segments(tokens) == [tokens]

    def test_exactly_first_limit(self):
        tokens = vocab.encode("abcd")
        assert split_to_segments(tokens, SegmentationPolicy(max_first=4)) == [tokens]


class TestBreakPreference:
    def test_documented_example(self):
        """A comma inside the first window; the rest is absorbed as a tail."""
        assert split("ab,cd.ef.", max_first=4) == ["ab,", "cd.ef."]

    def test_newline_wins(self):
        assert split("ab\ncdefgh.", max_first=8) == ["ab\n", "cdefgh."]

    def test_earliest_hard_terminator_first_segments(self):
        assert split("a.b.cdefgh", max_first=5) == ["a.", "b.cdefgh"]

    def test_latest_hard_terminator_later_segments(self):
        segments = split("ab.cd.e.f.g.hijklmn", max_first=3, max_second=3, min_followup=4, tail_tolerance=0)
        assert segments == ["ab.", "cd.", "e.f.g.", "hijklmn"]

    def test_comma_preferred_over_space(self):
        assert split("ab cd,efgh ij", max_first=6) == ["ab cd,", "efgh ij"]

    def test_space_fallback_drops_separator(self):
        assert split("ab cd efgh", max_first=6) == ["ab cd", "efgh"]

    def test_trailing_terminators_join(self):
        assert split("ab.!?cdef", max_first=5, tail_tolerance=0) == ["ab.!?", "cdef"]


class TestFallbacks:
    def test_scan_beyond_window(self):
        """No break in the window: the earliest terminator of the remainder is used."""
        segments = split("ab.cdefgh.ij", max_first=3, max_second=3, tail_tolerance=0)
        assert segments == ["ab.", "cdefgh.", "ij"]

    def test_first_segment_never_exceeds_window(self):
        segments = split("abcdefg.hi", max_first=4, tail_tolerance=0)
        assert segments[0] == "abcd"

    def test_hard_cut_without_terminators(self):
        segments = split("abcdefghijklm", max_first=3, max_second=3, max_tokens=5)
        assert segments == ["abc", "defgh", "ijklm"]


class TestProperties:
    """Invariants on long, realistic input."""

    SENTENCE = "ðə kwˈɪk bɹˈaʊn fˈɑks dʒˈʌmps ˈoʊvɚ ðə lˈeɪzi dˈɑɡ, ˈægən ænd ˈægən. "

    @pytest.fixture
    def tokens(self):
        return vocab.encode(self.SENTENCE * 20)

    def test_order_and_content_preserved(self, tokens):
        segments = split_to_segments(tokens)
        assert rebuild(tokens, segments) == tokens

    def test_double_space_at_boundary(self):
        tokens = vocab.encode("ab,  cdef gh ij.")
        segments = split_to_segments(tokens, SegmentationPolicy(max_first=4))

        assert [vocab.decode(s) for s in segments] == ["ab,", "cdef gh ij."]
        assert rebuild(tokens, segments) == tokens

    def test_inner_spaces_kept(self):
        tokens = vocab.encode("ab  cd, ef.  gh ij.")
        segments = split_to_segments(tokens, SegmentationPolicy(max_first=8, tail_tolerance=0))

        assert vocab.decode(segments[0]) == "ab  cd,"
        assert rebuild(tokens, segments) == tokens

    def test_segments_non_empty_and_bounded(self, tokens):
        policy = SegmentationPolicy()
        segments = split_to_segments(tokens, policy)

        assert len(segments) > 2
        assert all(segments)
        assert len(segments[0]) <= policy.max_first
        assert len(segments[1]) <= policy.max_second
        assert all(len(s) <= policy.max_tokens for s in segments)

    def test_segments_end_on_terminators(self, tokens):
        segments = split_to_segments(tokens)
        for segment in segments[:-1]:
            assert vocab.token_to_char[segment[-1]] in ".,"

    def test_no_trailing_spaces(self, tokens):
        for segment in split_to_segments(tokens):
            assert segment[-1] != vocab.space_token

    def test_deterministic(self, tokens):
        assert split_to_segments(tokens) == split_to_segments(list(tokens))


class TestCustomSegmenter:
    def test_default_uses_policy(self):
        tokens = vocab.encode("ab,cd.ef.")
        options = SpeechOptions(segmentation=SegmentationPolicy(max_first=4))
        assert segment_tokens(tokens, options) == split_to_segments(tokens, options.segmentation)

    def test_custom_segmenter_replaces_policy(self):
        seen = []

        def halves(tokens):
            seen.append(tokens)
            middle = len(tokens) // 2
            return [tokens[:middle], tokens[middle:]]

        tokens = vocab.encode("abcdef")
        options = SpeechOptions(segmenter=halves, segmentation=SegmentationPolicy(max_first=1))

        assert segment_tokens(tokens, options) == [vocab.encode("abc"), vocab.encode("def")]
        assert seen == [tokens]

    def test_empty_segments_dropped(self):
        options = SpeechOptions(segmenter=lambda tokens: [[], list(tokens), []])
        assert segment_tokens(vocab.encode("ab"), options) == [vocab.encode("ab")]

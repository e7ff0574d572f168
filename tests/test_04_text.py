"""
Tests for text preprocessing.

Tests cover:
- Honorifics, money, clock times and decimals are spelled out
- Punctuation re-spacing
- Brackets and leading punctuation
- collect_symbols() for espeak-ng input
"""
import pytest

from tts_stream.utils.text import collect_symbols, preprocess_text


class TestPreprocessText:
    """Tests for preprocess_text()."""

    def test_empty(self):
        assert preprocess_text("") == ""

    def test_plain_sentence_unchanged(self):
        assert preprocess_text("Hello there.") == "Hello there."

    def test_documented_example(self):
        text = "Dr. Who paid $5 at 10:30 ,then left."
        assert preprocess_text(text) == "Doctor Who paid 5 dollars at 10 30, then left."

    @pytest.mark.parametrize("text,expected", [
        ("Pi is 3.14", "Pi is 3 point 1 4"),
        ("It costs $1", "It costs 1 dollar"),
        ("It costs €20", "It costs 20 euros"),
        ("Mr. Smith", "Mister Smith"),
        ("Ms. Jones", "Miss Jones"),
    ])
    def test_spoken_forms(self, text, expected):
        assert preprocess_text(text) == expected

    def test_byte_sizes(self):
        assert preprocess_text("Download 5MB now") == "Download 5 megabyte now"

    def test_comma_respacing(self):
        assert preprocess_text("a ,b") == "a, b"

    def test_brackets_become_commas(self):
        assert preprocess_text("(aside) text") == "aside, text"

    def test_markdown_link_keeps_label(self):
        assert preprocess_text("See [the docs](http://x) please") == "See the docs please"

    def test_repeated_spaces_collapsed(self):
        assert preprocess_text("one    two") == "one two"

    def test_blank_lines_collapsed(self):
        assert "\n\n" not in preprocess_text("one.\n\n\ntwo.")


class TestCollectSymbols:
    """Tests for collect_symbols()."""

    def test_replaceable_symbols_become_commas(self):
        assert collect_symbols("Hi! You?") == "Hi, You,"

    def test_quotes_become_commas(self):
        assert collect_symbols('say "hi"') == "say, hi,"

    def test_newline_padded(self):
        assert collect_symbols("a.\nb") == "a,, b"

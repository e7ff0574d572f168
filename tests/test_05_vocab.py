"""Tests for the Kokoro token vocabulary."""
from __future__ import annotations

import pytest

from tts_stream.tts.vocab import DEFAULT_VOCABULARY as vocab
from tts_stream.tts.vocab import Vocabulary


class TestVocabulary:
    """Symbol <-> token mapping."""

    def test_encode_documented_example(self):
        assert vocab.encode("həlˈoʊ.") == [50, 83, 54, 156, 57, 135, 4]

    def test_decode_documented_example(self):
        assert vocab.decode([50, 83, 54]) == "həl"

    def test_mapping_is_bijective(self):
        assert len(set(vocab.char_to_token.values())) == len(vocab)
        for symbol, token in vocab.char_to_token.items():
            assert vocab.token_to_char[token] == symbol

    def test_special_tokens(self):
        assert vocab.newline_token == -1
        assert vocab.char_to_token["$"] == 0
        assert vocab.space_token == 16
        assert vocab.comma_token == 3

    def test_unknown_symbols_dropped(self):
        """Characters outside the vocabulary are never encoded."""
        assert vocab.encode("a#b") == vocab.encode("ab")
        assert vocab.filter("a#b€") == "ab"

    def test_terminators(self):
        assert vocab.decode(vocab.hard_terminators) == ".!?:"
        assert vocab.decode(vocab.soft_terminators) == ", "
        assert vocab.char_to_token[";"] not in vocab.terminators

    def test_is_punctuation(self):
        assert vocab.is_punctuation(vocab.char_to_token["."])
        assert vocab.is_punctuation(vocab.newline_token)
        assert not vocab.is_punctuation(vocab.space_token)
        assert not vocab.is_punctuation(vocab.char_to_token["a"])

    def test_contains(self):
        assert "ə" in vocab
        assert "#" not in vocab

    def test_mapping_read_only(self):
        with pytest.raises(TypeError):
            vocab.char_to_token["#"] = 999

    def test_custom_vocabulary(self):
        pairs = [("\n", -1), ("$", 0), (";", 1), (":", 2), (",", 3), (".", 4), ("!", 5), ("?", 6),
                 ("…", 10), ("¿", 8), (" ", 16), ("a", 43)]
        custom = Vocabulary.from_pairs(pairs)
        assert custom.encode("a, a.") == [43, 3, 16, 43, 4]
        assert len(custom) == len(pairs)

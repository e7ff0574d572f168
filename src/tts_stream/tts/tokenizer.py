"""
Text to Token Conversion.

Turns plain text into Kokoro tokens in three stages:

    text --preprocess_text--> spoken-form text
         --espeak-ng--------> IPA lines (punctuation dropped)
         --restore----------> one phoneme string with punctuation
         --vocabulary-------> tokens

espeak-ng is run as a subprocess (`--ipa=3 -b 1 -q -v <lang> --stdin`).
It starts a new output line at every punctuation mark and drops the mark
itself, so the tokenizer records the punctuation runs of the input and
re-inserts them after each line.

Phoneme Literals:
    "[Kokoro](/kˈOkəɹO/)" is spoken with the phonemes between the slashes
    and never reaches espeak-ng.

Pre-phonemized Input:
    tokenize_phonemes() maps phonemes straight to tokens, for platforms
    without espeak-ng or callers with their own G2P.

Usage:
    tokenizer = Tokenizer(EspeakPhonemizer(data_path="/usr/share/espeak-ng-data"))
    tokens = tokenizer.tokenize("Hello there!", "en-us")

See Also:
    - utils/text.py: preprocess_text() and the punctuation sets
    - tts/vocab.py: Symbol/token table
"""
from __future__ import annotations

import os
import re
import subprocess
from typing import List, Optional, Sequence

from tts_stream.core.config import Defaults, PhonemizerConfig
from tts_stream.core.errors import PhonemizerError
from tts_stream.core.logging import debug, get_logger, verbose
from tts_stream.tts.vocab import DEFAULT_VOCABULARY, Vocabulary
from tts_stream.tts.voice import DEFAULT_LANGUAGE
from tts_stream.utils.text import PUNCTUATION, REPLACEABLE, SPACE_NEEDING, collect_symbols, preprocess_text
from tts_stream.utils.timeit import timeit

_LOG = get_logger("tts-stream.tokenizer")

_PHONEME_LITERAL_RE = re.compile(r"(\[[^\]]+\]\(/[^/]+/\))")
_PHONEME_LITERAL_BODY_RE = re.compile(r"\[[^\]]+\]\(/([^/]+)/\)")


class EspeakPhonemizer:
    """
    espeak-ng command line wrapper.

    Args:
        binary: espeak-ng executable name or path.
        data_path: Value for ESPEAK_DATA_PATH, if the data is not installed
            system-wide.
        timeout_s: Subprocess timeout.
    """

    def __init__(
        self,
        binary: str = Defaults.ESPEAK_BINARY,
        data_path: Optional[str] = None,
        timeout_s: float = Defaults.ESPEAK_TIMEOUT_S,
    ):
        self.binary = binary
        self.data_path = data_path
        self.timeout_s = timeout_s

    @classmethod
    def from_config(cls, config: PhonemizerConfig) -> "EspeakPhonemizer":
        return cls(binary=config.binary, data_path=config.data_path, timeout_s=config.timeout_s)

    def phonemize_lines(self, text: str, language: str = DEFAULT_LANGUAGE) -> List[str]:
        """
        Phonemize `text`, returning one IPA line per punctuation-delimited run.

        Raises:
            PhonemizerError: If espeak-ng is missing, times out or fails.
        """
        cmd = [self.binary, "--ipa=3", "-b", "1", "-q", "-v", language, "--stdin"]
        env = dict(os.environ)
        if self.data_path:
            env["ESPEAK_DATA_PATH"] = self.data_path

        details = {"binary": self.binary, "language": language}
        try:
            result = subprocess.run(
                cmd,
                input=text + "\n",
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout_s,
                env=env,
            )
        except FileNotFoundError as exc:
            raise PhonemizerError(f"espeak-ng not found: {self.binary}", details=details) from exc
        except subprocess.TimeoutExpired as exc:
            raise PhonemizerError(f"espeak-ng timed out after {self.timeout_s}s", details=details) from exc

        if result.returncode != 0:
            details["returncode"] = result.returncode
            raise PhonemizerError(f"espeak-ng failed: {result.stderr.strip()}", details=details)

        return result.stdout.replace("\r\n", "\n").strip().split("\n")


# =============================================================================
# Punctuation restoration
# =============================================================================

def punctuation_runs(text: str) -> List[str]:
    """
    Runs of replaceable symbols (with the spaces between them) in `text`.

    Example:
        >>> punctuation_runs("Hi, you! Ok")
        [', ', '! ']
    """
    runs: List[str] = []
    i = 0
    while i < len(text):
        if text[i] not in REPLACEABLE:
            i += 1
            continue
        j = i + 1
        while j < len(text) and (text[j] in REPLACEABLE or text[j] == " "):
            j += 1
        runs.append(text[i:j])
        i = j
    return runs


def restore_punctuation(text: str, lines: Sequence[str]) -> str:
    """Join espeak-ng output lines, re-inserting the punctuation of `text` after each."""
    runs = punctuation_runs(text)
    parts: List[str] = []
    for i, line in enumerate(lines):
        if line.startswith("ˈɛ"):
            line = "ˌɛ" + line[2:]
        parts.append(line)
        if i < len(runs):
            parts.append(runs[i])
    return "".join(parts).strip()


def post_process_phonemes(phonemes: str, vocab: Vocabulary = DEFAULT_VOCABULARY) -> str:
    """
    Condense spacing and punctuation and drop symbols outside the vocabulary.
    """
    for _ in range(5):
        phonemes = phonemes.replace("  ", " ")
    for p in PUNCTUATION:
        phonemes = phonemes.replace(f" {p}", p)
    for _ in range(5):
        phonemes = phonemes.replace("!!", "!").replace("!?!", "!?")

    # Quotes and ellipses are preceded by a space
    out: List[str] = []
    for i, c in enumerate(phonemes):
        inner = 0 < i < len(phonemes) - 1
        if inner and c in SPACE_NEEDING and phonemes[i - 1] != " ":
            if not (c == '"' and phonemes[i + 1] == " "):
                out.append(" ")
        out.append(c)
    phonemes = "".join(out)

    phonemes = phonemes.replace("ː ", " ").replace("ɔː", "ˌɔ").replace("\n ", "\n")
    return vocab.filter(phonemes)


# =============================================================================
# Tokenizer
# =============================================================================

class Tokenizer:
    """
    Text -> phonemes -> tokens.

    Args:
        phonemizer: Object with phonemize_lines(text, language). Defaults
            to an EspeakPhonemizer with default settings.
        vocab: Symbol/token table.
    """

    def __init__(self, phonemizer: Optional[EspeakPhonemizer] = None, vocab: Vocabulary = DEFAULT_VOCABULARY):
        self.phonemizer = phonemizer or EspeakPhonemizer()
        self.vocab = vocab

    def phonemize(self, text: str, language: str = DEFAULT_LANGUAGE, preprocess: bool = True) -> str:
        """
        Convert text to a phoneme string with punctuation preserved.

        Raises:
            PhonemizerError: If espeak-ng fails.
        """
        with timeit("phonemize") as t:
            parts: List[str] = []
            for piece in _PHONEME_LITERAL_RE.split(text):
                literal = _PHONEME_LITERAL_BODY_RE.fullmatch(piece)
                if literal:
                    parts.append(literal.group(1))
                    continue
                if preprocess:
                    piece = preprocess_text(piece)
                if not piece.strip():
                    continue
                lines = self.phonemizer.phonemize_lines(collect_symbols(piece), language)
                parts.append(restore_punctuation(piece, lines))
            phonemes = post_process_phonemes(" ".join(parts), self.vocab)

        verbose(_LOG, "phonemized", chars=len(text), phonemes=len(phonemes), lang=language, seconds=round(t.seconds, 3))
        return phonemes

    def tokenize(self, text: str, language: str = DEFAULT_LANGUAGE, preprocess: bool = True) -> List[int]:
        """Phonemize `text` and encode it to tokens."""
        return self.vocab.encode(self.phonemize(text, language, preprocess))

    def tokenize_phonemes(self, phonemes: str) -> List[int]:
        """Encode pre-phonemized input as-is. Unknown symbols are dropped."""
        tokens = self.vocab.encode(phonemes)
        if len(tokens) != len(phonemes):
            debug(_LOG, "symbols_dropped", count=len(phonemes) - len(tokens))
        return tokens

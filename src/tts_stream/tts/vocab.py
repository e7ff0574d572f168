"""
Kokoro Token Vocabulary.

The Kokoro model reads integer tokens from a closed vocabulary of IPA
symbols, a few Latin letters used by espeak-ng, and punctuation. The
mapping is bijective and never changes at runtime: DEFAULT_VOCABULARY is
built once at import and shared by the tokenizer, the segmenter and the
speech engine.

Special Tokens:
    '\\n' -> -1   Line break. Never sent to the model (the backend maps it
                 to '.'), but kept in segments so the segmenter can split
                 on it.
    '$'  ->  0   Pad. Also used around every token sequence by the backend.

Terminators (used by the segmenter):
    hard: . ! ? :
    soft: , and space (in this order of preference)

Example:
    >>> from tts_stream.tts.vocab import DEFAULT_VOCABULARY as vocab
    >>> vocab.encode("həlˈoʊ.")
    [50, 83, 54, 156, 57, 135, 4]
    >>> vocab.decode([50, 83, 54])
    'həl'
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Iterable, List, Mapping, Tuple

from tts_stream.utils.text import PUNCTUATION

_SYMBOLS: Tuple[Tuple[str, int], ...] = (
    ("\n", -1), ("$", 0), (";", 1), (":", 2), (",", 3), (".", 4), ("!", 5),
    ("?", 6), ("¡", 7), ("¿", 8), ("—", 9), ("…", 10), ("\"", 11), ("(", 12),
    (")", 13), ("“", 14), ("”", 15), (" ", 16), ("\u0303", 17), ("ʣ", 18),
    ("ʥ", 19), ("ʦ", 20), ("ʨ", 21), ("ᵝ", 22), ("\uab67", 23),
    # Uppercase letters are espeak-ng diphthong shorthands
    ("A", 24), ("I", 25), ("O", 31), ("Q", 33), ("S", 35), ("T", 36),
    ("W", 39), ("Y", 41), ("ᵊ", 42),
    ("a", 43), ("b", 44), ("c", 45), ("d", 46), ("e", 47), ("f", 48),
    ("h", 50), ("i", 51), ("j", 52), ("k", 53), ("l", 54), ("m", 55),
    ("n", 56), ("o", 57), ("p", 58), ("q", 59), ("r", 60), ("s", 61),
    ("t", 62), ("u", 63), ("v", 64), ("w", 65), ("x", 66), ("y", 67),
    ("z", 68),
    ("ɑ", 69), ("ɐ", 70), ("ɒ", 71), ("æ", 72), ("β", 75), ("ɔ", 76),
    ("ɕ", 77), ("ç", 78), ("ɖ", 80), ("ð", 81), ("ʤ", 82), ("ə", 83),
    ("ɚ", 85), ("ɛ", 86), ("ɜ", 87), ("ɟ", 90), ("ɡ", 92), ("ɥ", 99),
    ("ɨ", 101), ("ɪ", 102), ("ʝ", 103), ("ɯ", 110), ("ɰ", 111), ("ŋ", 112),
    ("ɳ", 113), ("ɲ", 114), ("ɴ", 115), ("ø", 116), ("ɸ", 118), ("θ", 119),
    ("œ", 120), ("ɹ", 123), ("ɾ", 125), ("ɻ", 126), ("ʁ", 128), ("ɽ", 129),
    ("ʂ", 130), ("ʃ", 131), ("ʈ", 132), ("ʧ", 133), ("ʊ", 135), ("ʋ", 136),
    ("ʌ", 138), ("ɣ", 139), ("ɤ", 140), ("χ", 142), ("ʎ", 143), ("ʒ", 147),
    ("ʔ", 148),
    # Stress, length and intonation marks
    ("ˈ", 156), ("ˌ", 157), ("ː", 158), ("ʰ", 162), ("ʲ", 164), ("↓", 169),
    ("→", 171), ("↗", 172), ("↘", 173), ("ᵻ", 177),
)

HARD_TERMINATORS = ".!?:"
SOFT_TERMINATORS = ", "


@dataclass(frozen=True)
class Vocabulary:
    """
    Immutable symbol <-> token mapping.

    Attributes:
        char_to_token: Read-only symbol -> token mapping.
        token_to_char: Read-only token -> symbol mapping.
        punctuation_tokens: Tokens of the symbols espeak-ng breaks lines on.
        hard_terminators: Tokens of . ! ? : in preference order.
        soft_terminators: Tokens of comma then space.
    """
    char_to_token: Mapping[str, int]
    token_to_char: Mapping[int, str] = field(init=False)
    punctuation_tokens: FrozenSet[int] = field(init=False)
    hard_terminators: Tuple[int, ...] = field(init=False)
    soft_terminators: Tuple[int, ...] = field(init=False)

    def __post_init__(self) -> None:
        # frozen: assign derived fields through object.__setattr__
        c2t = MappingProxyType(dict(self.char_to_token))
        object.__setattr__(self, "char_to_token", c2t)
        object.__setattr__(self, "token_to_char", MappingProxyType({t: c for c, t in c2t.items()}))
        object.__setattr__(self, "punctuation_tokens", frozenset(c2t[c] for c in PUNCTUATION))
        object.__setattr__(self, "hard_terminators", tuple(c2t[c] for c in HARD_TERMINATORS))
        object.__setattr__(self, "soft_terminators", tuple(c2t[c] for c in SOFT_TERMINATORS))

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, int]]) -> "Vocabulary":
        return cls(char_to_token=dict(pairs))

    @property
    def newline_token(self) -> int:
        return self.char_to_token["\n"]

    @property
    def space_token(self) -> int:
        return self.char_to_token[" "]

    @property
    def comma_token(self) -> int:
        return self.char_to_token[","]

    @property
    def terminators(self) -> FrozenSet[int]:
        """Every hard or soft terminator token."""
        return frozenset(self.hard_terminators + self.soft_terminators)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self.char_to_token

    def __len__(self) -> int:
        return len(self.char_to_token)

    def filter(self, text: str) -> str:
        """Drop every character that has no token."""
        return "".join(c for c in text if c in self.char_to_token)

    def encode(self, phonemes: str) -> List[int]:
        """Map phonemes to tokens, dropping symbols outside the vocabulary."""
        return [self.char_to_token[c] for c in phonemes if c in self.char_to_token]

    def decode(self, tokens: Iterable[int]) -> str:
        """Map tokens back to their phoneme string."""
        return "".join(self.token_to_char[t] for t in tokens)

    def is_punctuation(self, token: int) -> bool:
        return token in self.punctuation_tokens


DEFAULT_VOCABULARY = Vocabulary.from_pairs(_SYMBOLS)

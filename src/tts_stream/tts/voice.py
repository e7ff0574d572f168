"""
Kokoro Voices.

A voice is a style tensor of shape [510, 1, 256]: one 256-wide style
vector per possible token count. The backend picks the row that matches
the length of the token sequence it is synthesizing.

Naming:
    Voice names follow "LG_name": L is the language letter and G the
    gender letter, e.g. "af_heart" (American English, female) or
    "bm_george" (British English, male). The language decides which
    espeak-ng voice phonemizes text for it.

    a -> en-us   b -> en-gb   e -> es     f -> fr    h -> hi
    i -> it      j -> ja      p -> pt-br  z -> cmn

Storage:
    One `<name>.npy` file per voice in the voices directory, loaded with
    numpy.

Example:
    >>> from tts_stream.tts.voice import load_voice
    >>> voice = load_voice("bf_emma", "voices")
    >>> voice.language
    'en-gb'
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Union

import numpy as np

from tts_stream.core.config import Defaults
from tts_stream.core.errors import VoiceNotFoundError
from tts_stream.core.logging import get_logger, verbose, warn

_LOG = get_logger("tts-stream.voice")

DEFAULT_LANGUAGE = "en-us"

LANGUAGE_CODES = {
    "a": "en-us",
    "b": "en-gb",
    "e": "es",
    "f": "fr",
    "h": "hi",
    "i": "it",
    "j": "ja",
    "p": "pt-br",
    "z": "cmn",
}

STYLE_WIDTH = 256


def language_for(name: str) -> str:
    """
    espeak-ng language code for a voice name.

    Names that do not look like "LG_name" (mixed voices, custom names)
    speak en-us.
    """
    name = name or ""
    if not name.strip():
        return DEFAULT_LANGUAGE
    if len(name) > 2 and name[2] != "_":
        return DEFAULT_LANGUAGE
    return LANGUAGE_CODES.get(name[0], DEFAULT_LANGUAGE)


@dataclass(frozen=True, eq=False)
class Voice:
    """
    Named style tensor.

    Attributes:
        name: Voice name ("af_heart"). May be empty for mixed voices, which
            then speak en-us.
        features: float32 array of shape [N, 1, 256].
    """
    name: str
    features: np.ndarray

    @property
    def language(self) -> str:
        """espeak-ng language code inferred from the voice name."""
        return language_for(self.name)

    @property
    def gender(self) -> str:
        """Second letter of the name ("f" or "m"), empty when unknown."""
        return self.name[1] if len(self.name) > 1 else ""

    def style_for(self, token_count: int) -> np.ndarray:
        """Style vector for a sequence of `token_count` tokens, shape (1, 256)."""
        row = min(max(token_count - 1, 0), len(self.features) - 1)
        return np.asarray(self.features[row], dtype=np.float32).reshape(1, STYLE_WIDTH)


def load_voice(name: str, voices_dir: str | Path) -> Voice:
    """
    Load `<voices_dir>/<name>.npy`.

    Raises:
        VoiceNotFoundError: If the file does not exist.
    """
    path = Path(voices_dir) / f"{name}.npy"
    if not path.exists():
        warn(_LOG, "voice_not_found", voice=name, path=str(path))
        raise VoiceNotFoundError(f"voice not found: {name}", details={"path": str(path)})

    features = np.load(path).astype(np.float32)
    if features.ndim == 2:
        features = features[:, None, :]
    verbose(_LOG, "voice_loaded", voice=name, shape=list(features.shape))
    return Voice(name=name, features=features)


def list_voices(voices_dir: str | Path) -> List[str]:
    """Names of the voices available in `voices_dir`, sorted."""
    root = Path(voices_dir)
    if not root.is_dir():
        return []
    return sorted(p.stem for p in root.glob("*.npy"))


class VoiceLibrary:
    """
    Loads voices from a directory on first use and keeps them.

    Args:
        voices_dir: Directory with `<name>.npy` files.
        default_voice: Voice used when get() is called with None.
    """

    def __init__(self, voices_dir: str | Path, default_voice: str = Defaults.SPEECH_DEFAULT_VOICE):
        self.voices_dir = Path(voices_dir)
        self.default_voice = default_voice
        self._voices: Dict[str, Voice] = {}
        self._lock = threading.Lock()

    def add(self, voice: Voice) -> Voice:
        with self._lock:
            self._voices[voice.name] = voice
        return voice

    def get(self, voice: Union[Voice, str, None] = None) -> Voice:
        """
        Resolve a voice object or name.

        Raises:
            VoiceNotFoundError: If the named voice has no file.
        """
        if isinstance(voice, Voice):
            return voice
        name = voice or self.default_voice
        with self._lock:
            cached = self._voices.get(name)
        if cached is not None:
            return cached
        return self.add(load_voice(name, self.voices_dir))

    def names(self) -> List[str]:
        """Loaded and on-disk voice names, sorted."""
        with self._lock:
            loaded = set(self._voices)
        return sorted(loaded | set(list_voices(self.voices_dir)))

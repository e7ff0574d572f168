"""Tests for voice loading and language inference."""
from __future__ import annotations

import numpy as np
import pytest

from tts_stream.core.errors import VoiceNotFoundError
from tts_stream.tts.voice import Voice, VoiceLibrary, language_for, list_voices, load_voice


def save_voice(directory, name, rows=510):
    np.save(directory / f"{name}.npy", np.ones((rows, 1, 256), dtype=np.float32))


class TestLanguage:
    @pytest.mark.parametrize("name,language", [
        ("af_heart", "en-us"),
        ("bf_emma", "en-gb"),
        ("ef_dora", "es"),
        ("ff_siwis", "fr"),
        ("jf_alpha", "ja"),
        ("zm_yunxi", "cmn"),
        ("pm_alex", "pt-br"),
    ])
    def test_language_from_prefix(self, name, language):
        assert language_for(name) == language

    def test_empty_name_is_english(self):
        assert language_for("") == "en-us"
        assert Voice("", np.zeros((1, 1, 256), dtype=np.float32)).language == "en-us"

    def test_non_standard_name_is_english(self):
        """Only names shaped like "LG_name" pick a language."""
        assert language_for("bella") == "en-us"
        assert language_for("mixed-voice") == "en-us"

    def test_unknown_language_letter(self):
        assert language_for("xf_test") == "en-us"

    def test_gender(self):
        assert Voice("bm_george", np.zeros((1, 1, 256), dtype=np.float32)).gender == "m"


class TestLoadVoice:
    def test_load(self, tmp_path):
        save_voice(tmp_path, "af_heart")
        voice = load_voice("af_heart", tmp_path)

        assert voice.name == "af_heart"
        assert voice.features.shape == (510, 1, 256)
        assert voice.features.dtype == np.float32

    def test_two_dimensional_file(self, tmp_path):
        np.save(tmp_path / "af_flat.npy", np.ones((510, 256), dtype=np.float64))
        assert load_voice("af_flat", tmp_path).features.shape == (510, 1, 256)

    def test_missing_voice(self, tmp_path):
        with pytest.raises(VoiceNotFoundError) as excinfo:
            load_voice("af_nobody", tmp_path)
        assert excinfo.value.code == "VOICE_NOT_FOUND"

    def test_style_row_clamped(self):
        features = np.arange(4, dtype=np.float32)[:, None, None] * np.ones((1, 1, 256), dtype=np.float32)
        voice = Voice("af_x", features)

        assert voice.style_for(0)[0, 0] == 0.0
        assert voice.style_for(3)[0, 0] == 2.0
        assert voice.style_for(100)[0, 0] == 3.0
        assert voice.style_for(1).shape == (1, 256)

    def test_list_voices(self, tmp_path):
        save_voice(tmp_path, "bf_emma", rows=2)
        save_voice(tmp_path, "af_heart", rows=2)
        assert list_voices(tmp_path) == ["af_heart", "bf_emma"]
        assert list_voices(tmp_path / "missing") == []


class TestVoiceLibrary:
    def test_default_voice(self, tmp_path):
        save_voice(tmp_path, "af_heart", rows=2)
        library = VoiceLibrary(tmp_path, default_voice="af_heart")
        assert library.get().name == "af_heart"

    def test_voices_cached(self, tmp_path):
        save_voice(tmp_path, "af_heart", rows=2)
        library = VoiceLibrary(tmp_path)
        assert library.get("af_heart") is library.get("af_heart")

    def test_voice_object_passthrough(self, tmp_path, voice):
        assert VoiceLibrary(tmp_path).get(voice) is voice

    def test_added_voice_without_file(self, tmp_path, voice):
        library = VoiceLibrary(tmp_path)
        library.add(voice)
        assert library.get(voice.name) is voice
        assert voice.name in library.names()

    def test_missing_voice(self, tmp_path):
        with pytest.raises(VoiceNotFoundError):
            VoiceLibrary(tmp_path).get("af_nobody")

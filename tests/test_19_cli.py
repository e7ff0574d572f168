"""Tests for the command-line interface."""
from __future__ import annotations

import json

import numpy as np
import pytest

from conftest import FakeBackend
from tts_stream import cli


def json_line(out: str) -> dict:
    for line in out.splitlines():
        if line.startswith("{"):
            return json.loads(line)
    raise AssertionError(f"no JSON line in output: {out!r}")


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    """Settings pointing at a voices dir with one voice."""
    monkeypatch.delenv("TTS_STREAM_VOICES_DIR", raising=False)
    monkeypatch.delenv("TTS_STREAM_MODEL_PATH", raising=False)
    voices = tmp_path / "voices"
    voices.mkdir()
    np.save(voices / "af_heart.npy", np.zeros((510, 1, 256), dtype=np.float32))

    path = tmp_path / "settings.yaml"
    path.write_text(
        "backend:\n"
        f"  voices_dir: {voices.as_posix()}\n"
        "segmentation:\n"
        "  max_first: 14\n",
        encoding="utf-8",
    )
    return path


class TestDryRun:
    def test_phonemes_dry_run(self, capsys, settings_file):
        code = cli.main([
            "--text", "həlˈoʊ ðˈɛɹ. hˈaʊ ɑːɹ juː?",
            "--phonemes", "--dry-run", "--json", "--settings", str(settings_file),
        ])
        assert code == 0

        out = capsys.readouterr().out
        assert "DRY_RUN_OK" in out
        payload = json_line(out)
        assert payload["ok"] is True
        assert payload["dry_run"] is True
        item = payload["items"][0]
        assert item["tokens"] == 26
        assert item["segment_lengths"] == [12, 13]
        assert item["first_segment"] == "həlˈoʊ ðˈɛɹ."
        assert item["language"] == "en-us"

    def test_voice_sets_language(self, capsys, settings_file):
        code = cli.main([
            "hˈaɪ", "--phonemes", "--dry-run", "--json",
            "--voice", "bf_emma", "--settings", str(settings_file),
        ])
        assert code == 0
        assert json_line(capsys.readouterr().out)["items"][0]["language"] == "en-gb"

    def test_batch_file(self, capsys, settings_file, tmp_path):
        inputs = tmp_path / "inputs.txt"
        inputs.write_text("hˈaɪ.\n\nbˈaɪ.\n", encoding="utf-8")

        code = cli.main(["--file", str(inputs), "--phonemes", "--dry-run", "--json",
                         "--settings", str(settings_file)])
        assert code == 0
        assert len(json_line(capsys.readouterr().out)["items"]) == 2


class TestErrors:
    def test_missing_settings(self, tmp_path):
        assert cli.main(["--text", "hi", "--dry-run", "--settings", str(tmp_path / "missing.yaml")]) == 2

    def test_invalid_settings(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("segmentation:\n  max_tokens: 9999\n", encoding="utf-8")
        assert cli.main(["--text", "hi", "--dry-run", "--settings", str(path)]) == 2

    def test_no_input(self, settings_file):
        with pytest.raises(SystemExit):
            cli.main(["--dry-run", "--settings", str(settings_file)])

    def test_file_and_text_conflict(self, settings_file, tmp_path):
        inputs = tmp_path / "inputs.txt"
        inputs.write_text("hi\n", encoding="utf-8")
        with pytest.raises(SystemExit):
            cli.main(["hi", "--file", str(inputs), "--dry-run", "--settings", str(settings_file)])


class TestSynthesis:
    def test_writes_wav(self, capsys, settings_file, tmp_path, monkeypatch):
        import tts_stream.services.synthesizer as synthesizer

        backend = FakeBackend()
        monkeypatch.setattr(synthesizer, "get_backend", lambda config=None: backend)
        out_path = tmp_path / "out" / "hello.wav"

        code = cli.main([
            "--text", "həlˈoʊ ðˈɛɹ. hˈaʊ ɑːɹ juː?", "--phonemes",
            "--out", str(out_path), "--json", "--settings", str(settings_file),
        ])
        assert code == 0

        out = capsys.readouterr().out
        assert "CLI_OK" in out
        data = out_path.read_bytes()
        assert data[:4] == b"RIFF"
        assert data[8:12] == b"WAVE"
        assert json_line(out)["items"][0]["sample_rate"] == 24000
        assert len(backend.calls) == 2
        assert backend.closed == 1

    def test_unknown_voice_fails(self, capsys, settings_file, tmp_path, monkeypatch):
        import tts_stream.services.synthesizer as synthesizer

        monkeypatch.setattr(synthesizer, "get_backend", lambda config=None: FakeBackend())

        code = cli.main([
            "--text", "hˈaɪ", "--phonemes", "--voice", "af_nobody", "--json",
            "--out", str(tmp_path / "x.wav"), "--settings", str(settings_file),
        ])
        assert code == 1
        assert json_line(capsys.readouterr().out)["error"] == "VOICE_NOT_FOUND"

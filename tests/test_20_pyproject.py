"""Tests for pyproject.toml and package installation."""
from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

PYPROJECT = Path(__file__).parent.parent / "pyproject.toml"


class TestPackageInstallation:
    """Test that the package is properly installed."""

    def test_version_defined(self):
        import tts_stream
        assert isinstance(tts_stream.__version__, str)
        assert tts_stream.__version__

    def test_core_modules_importable(self):
        from tts_stream.api import routes, schemas
        from tts_stream.core import config, logging
        from tts_stream.tts import job, playback, scheduler, segmenter

        for module in (routes, schemas, config, logging, job, playback, scheduler, segmenter):
            assert module is not None

    def test_cli_help_exits_zero(self):
        env = dict(os.environ)
        src = str(PYPROJECT.parent / "src")
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [src, env.get("PYTHONPATH")]))
        result = subprocess.run(
            [sys.executable, "-m", "tts_stream.cli", "--help"],
            capture_output=True,
            text=True,
            env=env,
        )
        assert result.returncode == 0
        assert "tts-stream CLI" in result.stdout


class TestPyprojectToml:
    """Test pyproject.toml configuration."""

    def load(self) -> dict:
        tomllib = pytest.importorskip("tomllib")  # Python 3.11+
        return tomllib.loads(PYPROJECT.read_text(encoding="utf-8"))

    def test_project_name(self):
        data = self.load()
        assert data["project"]["name"] == "tts-stream"
        assert data["project"]["scripts"]["tts-stream"] == "tts_stream.cli:main"

    def test_dependencies(self):
        deps = self.load()["project"]["dependencies"]
        names = [d.split(">=")[0].split("[")[0] for d in deps]
        for required in ("numpy", "soundfile", "onnxruntime", "sounddevice", "fastapi", "pydantic", "pyyaml"):
            assert required in names

    def test_test_extra(self):
        extras = self.load()["project"]["optional-dependencies"]
        names = [d.split(">=")[0] for d in extras["test"]]
        assert "pytest" in names
        assert "httpx" in names

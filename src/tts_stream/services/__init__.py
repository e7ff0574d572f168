"""
TTS-Stream Services Layer.

This package wires the pipeline components into the two public entry
points used by the API and the CLI.

Components:
    - speech_service.py: SpeechEngine (live speech through the audio device)
    - synthesizer.py: WavSynthesizer (offline synthesis to samples or WAV)
"""
from .speech_service import SpeechEngine, get_speech_engine, reset_speech_engine
from .synthesizer import WavSynthesizer

__all__ = [
    "SpeechEngine",
    "WavSynthesizer",
    "get_speech_engine",
    "reset_speech_engine",
]

"""
API Request/Response Schemas.

This module defines Pydantic models for the tts-stream API endpoints.

Models:
    SpeakRequest: Input schema for POST /v1/speak
    SpeakAck: 202 response of POST /v1/speak
    StopAck: Response of POST /v1/stop
    SynthesizeRequest: Input schema for POST /v1/synthesize

Example Request:
    {
        "text": "Hello there. How are you today?",
        "voice": "af_heart",
        "fast": true,
        "speed": 1.0
    }

See Also:
    - api/routes.py: Endpoints using these models
    - core/config.py: SpeechOptions (server-side defaults)
"""
from __future__ import annotations

from pydantic import BaseModel, Field

MAX_TEXT_CHARS = 20000


class SpeakRequest(BaseModel):
    """
    Speak text on the server's audio device.

    Attributes:
        text: Text to speak.
        voice: Voice name (e.g. "af_heart"). None uses the default voice.
        fast: Segment the text so audio starts right away.
        speed: Speech speed multiplier. None uses the configured speed.
    """
    text: str = Field(
        ...,
        min_length=1,
        max_length=MAX_TEXT_CHARS,
        description="Text to speak",
    )
    voice: str | None = Field(
        default=None,
        description="Voice name, None for the default voice",
    )
    fast: bool = Field(
        default=True,
        description="Segment the text for fast first audio",
    )
    speed: float | None = Field(
        default=None,
        gt=0.0,
        le=4.0,
        description="Speech speed multiplier",
    )


class SpeakAck(BaseModel):
    """
    Acknowledgment of a queued utterance.

    Example Response:
        {"job_id": "3f9a0c1d2b4e", "voice": "af_heart", "tokens": 42, "segments": 2}
    """
    job_id: str = Field(..., description="Job identifier, also used in logs")
    voice: str = Field(..., description="Voice speaking the text")
    tokens: int = Field(..., description="Token count after phonemization")
    segments: int = Field(..., description="Number of synthesis segments")


class StopAck(BaseModel):
    stopped: bool = Field(..., description="True if an utterance was active")
    job_id: str | None = Field(default=None, description="Job that was stopped")


class SynthesizeRequest(BaseModel):
    """Offline synthesis to a WAV file."""
    text: str = Field(
        ...,
        min_length=1,
        max_length=MAX_TEXT_CHARS,
        description="Text to synthesize",
    )
    voice: str | None = Field(
        default=None,
        description="Voice name, None for the default voice",
    )
    speed: float | None = Field(
        default=None,
        gt=0.0,
        le=4.0,
        description="Speech speed multiplier",
    )

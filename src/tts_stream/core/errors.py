"""
Pipeline Error Types.

Every failure the pipeline surfaces to a caller is a PipelineError with a
stable error code, so the HTTP layer and the CLI can report it uniformly.

Taxonomy:
    EngineDisposedError   - enqueue/speak on a disposed engine ("already disposed")
    InferenceError        - the inference backend failed; fatal to the current step
    PhonemizerError       - espeak-ng is missing or failed
    VoiceNotFoundError    - a voice style file does not exist
    InvalidInputError     - bad request data (empty text, bad speed, ...)

Not errors:
    - Token sequences longer than the backend limit are logged and either
      segmented or truncated, never raised.
    - A job canceled while its step was being inferred discards the
      result silently.

Usage:
    from tts_stream.core.errors import EngineDisposedError

    try:
        engine.speak_fast(text, voice)
    except EngineDisposedError as exc:
        return JSONResponse(status_code=503, content=exc.to_dict())
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """
    Standardized error codes for API responses.

    These codes are used in PipelineError exceptions and returned in API
    error responses for consistent client handling.
    """
    ENGINE_DISPOSED = "ENGINE_DISPOSED"       # Engine/scheduler already disposed
    INFERENCE_FAILED = "INFERENCE_FAILED"     # Backend call raised
    PHONEMIZER_FAILED = "PHONEMIZER_FAILED"   # espeak-ng failed
    VOICE_NOT_FOUND = "VOICE_NOT_FOUND"       # Unknown voice name
    INVALID_INPUT = "INVALID_INPUT"           # Bad request data
    MODEL_NOT_READY = "MODEL_NOT_READY"       # Backend not loaded
    INTERNAL_ERROR = "INTERNAL_ERROR"         # Unexpected error


class PipelineError(Exception):
    """
    Base exception for pipeline errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode class.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to standardized error response dict for API."""
        result = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class EngineDisposedError(PipelineError):
    """Raised when work is submitted to a disposed scheduler or engine."""
    def __init__(self, message: str = "already disposed", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.ENGINE_DISPOSED, details)


class InferenceError(PipelineError):
    """Raised when the inference backend fails on a step."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INFERENCE_FAILED, details)


class PhonemizerError(PipelineError):
    """Raised when the espeak-ng process cannot be run or exits non-zero."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.PHONEMIZER_FAILED, details)


class VoiceNotFoundError(PipelineError):
    """Raised when a voice style file cannot be found."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.VOICE_NOT_FOUND, details)


class InvalidInputError(PipelineError):
    """Raised when request data is invalid."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)

"""
tts-stream API Routes.

Endpoints:
    POST /v1/speak       - Speak text on the server audio device (202)
    POST /v1/stop        - Stop the current utterance
    POST /v1/synthesize  - Offline synthesis (returns WAV audio)
    GET  /health         - Backend, scheduler and playback status
    GET  /metrics        - Prometheus metrics

Error Handling:
    All pipeline errors are returned as JSON:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "details": {...}
    }

    HTTP status codes are mapped from ErrorCode:
        - INVALID_INPUT -> 400 Bad Request
        - VOICE_NOT_FOUND -> 404 Not Found
        - ENGINE_DISPOSED, MODEL_NOT_READY -> 503 Service Unavailable
        - anything else -> 500 Internal Server Error

Example Usage:
    curl -X POST http://localhost:8000/v1/speak \\
        -H "Content-Type: application/json" \\
        -d '{"text": "Hello there. How are you today?"}'

See Also:
    - api/schemas.py: Request/response Pydantic models
    - services/speech_service.py: SpeechEngine
"""
from __future__ import annotations

import dataclasses

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from tts_stream import __version__
from tts_stream.api.dependencies import get_config, get_engine, get_synthesizer
from tts_stream.api.schemas import SpeakAck, SpeakRequest, StopAck, SynthesizeRequest
from tts_stream.core.config import PipelineConfig, SpeechOptions
from tts_stream.core.errors import ErrorCode, PipelineError
from tts_stream.core.logging import error, get_logger, info, set_job_id
from tts_stream.core.metrics import metrics
from tts_stream.services.speech_service import SpeechEngine
from tts_stream.services.synthesizer import WavSynthesizer

router = APIRouter()

_LOG = get_logger("tts-stream.api")

_STATUS_MAP = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.VOICE_NOT_FOUND: 404,
    ErrorCode.ENGINE_DISPOSED: 503,
    ErrorCode.MODEL_NOT_READY: 503,
}


def _error_response(exc: PipelineError) -> JSONResponse:
    """Standardized JSON error response with the mapped status code."""
    return JSONResponse(status_code=_STATUS_MAP.get(exc.code, 500), content=exc.to_dict())


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": ErrorCode.INTERNAL_ERROR, "message": "Internal server error"},
    )


def _options(config: PipelineConfig, speed: float | None) -> SpeechOptions:
    options = config.speech.options
    if speed is not None:
        options = dataclasses.replace(options, speed=speed)
    return options


@router.post("/v1/speak", status_code=202, response_model=SpeakAck)
def speak(
    req: SpeakRequest,
    engine: SpeechEngine = Depends(get_engine),
    config: PipelineConfig = Depends(get_config),
):
    """
    Speak text through the server's audio device.

    Returns as soon as the utterance is queued; the current utterance,
    if any, is replaced.
    """
    try:
        options = _options(config, req.speed)
        if req.fast:
            handle = engine.speak_fast(req.text, req.voice, options)
        else:
            handle = engine.speak(req.text, req.voice, options)
    except PipelineError as e:
        return _error_response(e)
    except Exception as e:
        error(_LOG, "speak_failed", error=str(e))
        return _internal_error()

    job = handle.job
    set_job_id(job.id)
    voice = job.steps[0].voice.name if job.steps else (req.voice or config.speech.default_voice)
    return SpeakAck(
        job_id=job.id,
        voice=voice,
        tokens=sum(len(step.tokens) for step in job.steps),
        segments=len(job.steps),
    )


@router.post("/v1/stop", response_model=StopAck)
def stop(engine: SpeechEngine = Depends(get_engine)):
    """Stop the current utterance and drop its queued audio."""
    active = engine.active_handle
    engine.stop_playback()
    if active is not None:
        info(_LOG, "stop_requested", job=active.job.id)
    return StopAck(stopped=active is not None, job_id=active.job.id if active else None)


@router.post("/v1/synthesize", response_class=Response)
def synthesize(
    req: SynthesizeRequest,
    synthesizer: WavSynthesizer = Depends(get_synthesizer),
    config: PipelineConfig = Depends(get_config),
):
    """
    Synthesize text to a WAV file without playing it.

    Returns:
        audio/wav bytes with X-Sample-Rate and X-Bytes headers.
    """
    try:
        wav = synthesizer.synthesize_wav(req.text, req.voice, _options(config, req.speed))
    except PipelineError as e:
        return _error_response(e)
    except Exception as e:
        error(_LOG, "synthesize_failed", error=str(e))
        return _internal_error()

    headers = {
        "X-Sample-Rate": str(synthesizer.sample_rate),
        "X-Bytes": str(len(wav)),
    }
    return Response(content=wav, media_type="audio/wav", headers=headers)


@router.get("/health")
def health(engine: SpeechEngine = Depends(get_engine)):
    """Backend load state plus scheduler and playback statistics."""
    result = {"ok": not engine.disposed, "version": __version__}
    result.update(engine.stats())
    return result


@router.get("/metrics")
def prometheus_metrics():
    """Prometheus metrics in text exposition format."""
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)


def warmup_engine():
    """Startup hook: load the model unless TTS_STREAM_SKIP_WARMUP=1."""
    from tts_stream.api.dependencies import warmup_service
    warmup_service()


def shutdown_engine():
    """Shutdown hook: stop the workers and release the device."""
    from tts_stream.api.dependencies import shutdown_service
    shutdown_service()

"""
FastAPI Application Entry Point.

This module creates and configures the FastAPI application instance for
tts-stream. It sets up routing, logging, and startup/shutdown handlers.

Usage:
    # Run with uvicorn
    uvicorn tts_stream.main:app --host 0.0.0.0 --port 8000

    # Without loading the model at startup (tests, smoke runs)
    TTS_STREAM_SKIP_WARMUP=1 uvicorn tts_stream.main:app
"""

from __future__ import annotations

from fastapi import FastAPI

from tts_stream import __version__
from tts_stream.api.routes import router, shutdown_engine, warmup_engine
from tts_stream.core.logging import configure_logging


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function:
        1. Configures structured logging based on environment settings
        2. Creates a FastAPI instance with the service title
        3. Registers the speech router
        4. Loads the model on startup and disposes the engine on shutdown

    Returns:
        FastAPI: Configured application instance ready to serve requests.
    """
    # Initialize structured logging (reads TTS_STREAM_LOG_LEVEL env var)
    configure_logging()

    app = FastAPI(title="tts-stream", version=__version__)
    app.include_router(router)

    app.add_event_handler("startup", warmup_engine)
    app.add_event_handler("shutdown", shutdown_engine)

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()

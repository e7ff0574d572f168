"""
Core Infrastructure for tts-stream.

This package provides foundational components:
    - config.py: Configuration loading, policies and validation
    - errors.py: PipelineError hierarchy and error codes
    - logging/: Structured logging with numeric levels
    - metrics.py: Prometheus metrics collection
"""

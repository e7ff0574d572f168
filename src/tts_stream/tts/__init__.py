"""
Streaming Speech Pipeline Components.

This package provides the pipeline from tokens to audible speech:
    - vocab.py: Immutable symbol/token table
    - tokenizer.py: Text -> phonemes (espeak-ng) -> tokens
    - segmenter.py: Window-then-scan split into segments
    - job.py: Jobs, steps and job events
    - scheduler.py: Single FIFO worker driving jobs
    - backend.py: Kokoro inference on ONNX Runtime
    - voice.py: Voice style tensors and language codes
    - device.py: Audio output devices
    - playback.py: Ordered playback queue with abort
    - progress.py: Spoken-text estimation
    - packets.py: Speech packets, signals and synthesis handles
"""

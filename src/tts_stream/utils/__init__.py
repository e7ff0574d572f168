"""
Utility Modules for tts-stream.

This package provides common utility functions used across the codebase:
    - audio.py: WAV encoding, PCM conversion and sample post-processing
    - text.py: Text preprocessing before phonemization
    - timeit.py: Performance measurement utilities
"""

"""
tts-stream: Streaming Text-to-Speech Orchestration Pipeline.

Turns arbitrary input text into an ordered sequence of synthesized audio
chunks, dispatches each chunk to a Kokoro ONNX inference backend one at a
time, and plays the resulting audio back-to-back while supporting
mid-utterance cancellation and best-guess progress reporting.

Pipeline:
    text -> Tokenizer (espeak-ng) -> tokens -> Segmenter -> segments
         -> Job -> JobScheduler (one step in flight) -> PlaybackQueue
         -> started / progressed / completed / canceled packets

Key Features:
    - Window-then-scan segmentation for fast time-to-first-audio
    - Single background scheduler with cooperative cancellation
    - Ordered playback queue with abort-in-place and heard-extent accounting
    - Offline WAV synthesis (no audio device required)
    - FastAPI control surface (/v1/speak, /v1/stop, /v1/synthesize)
    - Prometheus metrics support

Example Usage:
    >>> from tts_stream.services import SpeechEngine
    >>> from tts_stream.tts.voice import load_voice
    >>>
    >>> engine = SpeechEngine()
    >>> voice = load_voice("af_heart", "voices")
    >>> handle = engine.speak_fast("Hello there. How are you today?", voice)
    >>> handle.speech_completed.connect(lambda packet: print(packet.spoken_text))
"""

__version__ = "0.1.0"
__all__ = ["__version__"]

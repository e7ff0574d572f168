"""
WavSynthesizer - Offline Synthesis.

Runs the same tokenize -> segment -> job pipeline as SpeechEngine, but on
the calling thread and without a playback device. Pauses become silence
steps of the job, inference output is nicified, and the result is one
float32 buffer or a PCM_16 WAV file.

Example:
    >>> from tts_stream.services import WavSynthesizer
    >>> with WavSynthesizer() as synth:
    ...     wav = synth.synthesize_wav("Hello there. How are you?", "af_heart")
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from tts_stream.core.config import PipelineConfig, SpeechOptions
from tts_stream.core.errors import InvalidInputError
from tts_stream.core.logging import get_logger, info, verbose
from tts_stream.tts.backend import InferenceBackend, get_backend
from tts_stream.tts.job import Job, JobEvent, StepCompleted, StepKind
from tts_stream.tts.segmenter import segment_tokens
from tts_stream.tts.tokenizer import EspeakPhonemizer, Tokenizer
from tts_stream.tts.voice import Voice, VoiceLibrary
from tts_stream.utils.audio import post_process_samples, wav_bytes_from_float32
from tts_stream.utils.timeit import timeit

_LOG = get_logger("tts-stream.synthesizer")


class WavSynthesizer:
    """
    Text to samples or WAV bytes, synchronously.

    Args:
        config: Pipeline configuration.
        backend: Inference backend. Defaults to the global ONNX backend.
        tokenizer: Tokenizer. Defaults to espeak-ng per config.phonemizer.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        backend: Optional[InferenceBackend] = None,
        tokenizer: Optional[Tokenizer] = None,
    ):
        self.config = config or PipelineConfig()
        self.backend = backend or get_backend(self.config.backend)
        self.tokenizer = tokenizer or Tokenizer(EspeakPhonemizer.from_config(self.config.phonemizer))
        self.voices = VoiceLibrary(self.config.backend.voices_dir, self.config.speech.default_voice)

    def __enter__(self) -> "WavSynthesizer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    @property
    def sample_rate(self) -> int:
        return self.backend.sample_rate

    def synthesize(self, text: str, voice=None, options: Optional[SpeechOptions] = None) -> np.ndarray:
        """
        Synthesize `text` to mono float32 samples.

        Raises:
            InvalidInputError: If the text is empty.
        """
        if not text or not text.strip():
            raise InvalidInputError("text is empty")
        options = options or self.config.speech.options
        voice = self.voices.get(voice)
        tokens = self.tokenizer.tokenize(text, voice.language, options.preprocess_text)
        return self.synthesize_tokens(tokens, voice, options)

    def synthesize_tokens(
        self,
        tokens: Sequence[int],
        voice=None,
        options: Optional[SpeechOptions] = None,
    ) -> np.ndarray:
        """Synthesize pre-tokenized input to mono float32 samples."""
        options = options or self.config.speech.options
        voice: Voice = self.voices.get(voice)
        segments = segment_tokens(tokens, options, self.tokenizer.vocab)
        job = Job.create(
            segments,
            voice,
            speed=options.speed,
            pauses=options.pauses if options.insert_pauses else None,
            vocab=self.tokenizer.vocab,
        )

        chunks: List[np.ndarray] = []
        playback = self.config.playback

        def collect(event: JobEvent) -> None:
            if not isinstance(event, StepCompleted):
                return
            samples = event.samples
            if event.step.kind is StepKind.INFERENCE and playback.nicify:
                samples = post_process_samples(
                    samples,
                    lead_threshold=playback.lead_threshold,
                    tail_threshold=playback.tail_threshold,
                    noise_floor=playback.noise_floor,
                )
            chunks.append(samples)

        job.subscribe(collect)
        with timeit("synthesize") as t:
            while not job.is_done:
                job.progress(self.backend)

        audio = np.concatenate(chunks) if chunks else np.zeros(0, dtype=np.float32)
        audio_s = len(audio) / float(self.sample_rate)
        info(
            _LOG,
            "synthesized",
            job=job.id,
            tokens=len(tokens),
            segments=len(segments),
            steps=len(job.steps),
            audio_s=round(audio_s, 3),
            seconds=round(t.seconds, 3),
        )
        return audio.astype(np.float32, copy=False)

    def synthesize_wav(self, text: str, voice=None, options: Optional[SpeechOptions] = None) -> bytes:
        """Synthesize `text` to PCM_16 WAV bytes."""
        audio = self.synthesize(text, voice, options)
        wav, timings = wav_bytes_from_float32(audio, self.sample_rate)
        verbose(_LOG, "wav_encoded", bytes=len(wav), seconds=round(timings["wav_encode"], 4))
        return wav

    def save_wav(self, text: str, path: str | Path, voice=None, options: Optional[SpeechOptions] = None) -> Path:
        """Synthesize `text` and write it to `path`."""
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(self.synthesize_wav(text, voice, options))
        return out

    def dispose(self) -> None:
        self.backend.close()

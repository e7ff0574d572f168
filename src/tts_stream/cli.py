"""
Command-Line Interface for tts-stream.

Synthesizes text to WAV files or speaks it through the audio device,
without running the HTTP server. A dry-run mode shows how the text would
be tokenized and segmented without loading the model.

Usage Examples:
    # Single text to a WAV file
    tts-stream "Hello there. How are you today?" --out hello.wav

    # Batch processing from file (one text per line)
    tts-stream --file inputs.txt --out output_dir/

    # Speak through the default audio device
    tts-stream --text "Hello there." --play --fast

    # Dry-run: segmentation summary only
    tts-stream --text "Hello there." --dry-run --json

    # Dry-run on phonemes (no espeak-ng needed)
    tts-stream --text "həlˈO." --phonemes --dry-run

Environment Variables:
    TTS_STREAM_SETTINGS: Settings file (default config/settings.yaml)
    TTS_STREAM_MODEL_PATH: Kokoro ONNX model path
    TTS_STREAM_VOICES_DIR: Voices directory
    TTS_STREAM_LOG_LEVEL: 1-4 or MINIMAL/NORMAL/VERBOSE/DEBUG
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import os
from pathlib import Path
from typing import List, Optional

from tts_stream.core.config import ConfigValidationError, PipelineConfig, Settings, SpeechOptions, load_settings
from tts_stream.core.errors import PipelineError
from tts_stream.core.logging import configure_logging, fail, get_logger, info, set_job_id


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="tts-stream CLI (streaming Kokoro TTS)")

    # Input options
    parser.add_argument("text_pos", nargs="?", help="Text to synthesize (positional)")
    parser.add_argument("--text", help="Text to synthesize")
    parser.add_argument("--file", help="Batch input file (1 line = 1 item)")
    parser.add_argument("--phonemes", action="store_true",
                        help="Treat the input as phonemes (skips espeak-ng)")

    # Output options
    parser.add_argument("--out", help="Output path (file or dir in batch mode)")
    parser.add_argument("--play", action="store_true",
                        help="Speak through the audio device instead of writing WAV")

    # Speech options
    parser.add_argument("--voice", help="Voice name override")
    parser.add_argument("--speed", type=float, help="Speech speed multiplier")
    parser.add_argument("--fast", action="store_true",
                        help="Segment the text for fast first audio (with --play)")
    parser.add_argument("--settings", help="Settings YAML path")

    # Execution modes
    parser.add_argument("--dry-run", action="store_true",
                        help="Tokenize and segment without synthesis")
    parser.add_argument("--json", action="store_true", help="Print JSON summary")

    return parser.parse_args(argv)


def _load_texts(args: argparse.Namespace) -> List[str]:
    """
    Load input texts from the positional argument, --text or --file.

    Raises:
        SystemExit: If no input is given or options conflict.
    """
    text = args.text or args.text_pos

    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        lines = Path(args.file).read_text(encoding="utf-8").splitlines()
        items = [line.strip() for line in lines if line.strip()]
        if not items:
            raise SystemExit("Input file is empty.")
        return items

    if not text:
        raise SystemExit("Provide --text or a positional text.")
    return [text]


def _resolve_output_paths(args: argparse.Namespace, count: int) -> List[Path]:
    """Numbered files in a directory for --file, else --out or out.wav."""
    if args.file:
        out_dir = Path(args.out or "out")
        out_dir.mkdir(parents=True, exist_ok=True)
        return [out_dir / f"item_{i + 1:03d}.wav" for i in range(count)]

    out_path = Path(args.out or "out.wav")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    return [out_path]


def _load_config(args: argparse.Namespace) -> PipelineConfig:
    path = args.settings or os.getenv("TTS_STREAM_SETTINGS")
    if path:
        return load_settings(path).get_pipeline_config()
    default = Path("config/settings.yaml")
    settings = load_settings(str(default)) if default.exists() else Settings(raw={})
    return settings.get_pipeline_config()


def _options(config: PipelineConfig, args: argparse.Namespace) -> SpeechOptions:
    options = config.speech.options
    if args.speed is not None:
        options = dataclasses.replace(options, speed=args.speed)
    return options


def _summary_for_text(text: str, tokens: List[int], options: SpeechOptions, voice: str, language: str) -> dict:
    """Segmentation summary for one input, without synthesis."""
    from tts_stream.tts.segmenter import segment_tokens
    from tts_stream.tts.vocab import DEFAULT_VOCABULARY

    segments = segment_tokens(tokens, options)
    return {
        "text_len": len(text),
        "tokens": len(tokens),
        "segments": len(segments),
        "segment_lengths": [len(s) for s in segments],
        "first_segment": DEFAULT_VOCABULARY.decode(segments[0]) if segments else "",
        "voice": voice,
        "language": language,
    }


def _print(payload: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Workflow:
        1. Parse arguments, configure logging, load settings
        2. --dry-run: tokenize + segment, print summary and DRY_RUN_OK
        3. --play: speak each input through the audio device
        4. Otherwise: synthesize each input to a WAV file

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("tts-stream.cli")

    try:
        config = _load_config(args)
    except (FileNotFoundError, ConfigValidationError) as e:
        fail(log, "settings_invalid", error=str(e))
        return 2

    texts = _load_texts(args)
    options = _options(config, args)
    voice_name = args.voice or config.speech.default_voice

    from tts_stream.tts.tokenizer import EspeakPhonemizer, Tokenizer
    from tts_stream.tts.voice import language_for

    tokenizer = Tokenizer(EspeakPhonemizer.from_config(config.phonemizer))
    language = language_for(voice_name)

    def tokenize(text: str) -> List[int]:
        if args.phonemes:
            return tokenizer.tokenize_phonemes(text)
        return tokenizer.tokenize(text, language, options.preprocess_text)

    # ─────────────────────────────────────────────────────────────────────────
    # Dry run: no model, no device
    # ─────────────────────────────────────────────────────────────────────────
    if args.dry_run:
        try:
            summaries = [_summary_for_text(t, tokenize(t), options, voice_name, language) for t in texts]
        except PipelineError as e:
            fail(log, "dry_run_failed", error=e.message, code=e.code)
            return 1
        payload = {"ok": True, "dry_run": True, "items": summaries}
        if not args.json:
            info(log, "dry_run", items=len(texts), voice=voice_name, language=language)
        _print(payload, args.json)
        print("DRY_RUN_OK")
        return 0

    results = []
    try:
        if args.play:
            from tts_stream.services.speech_service import SpeechEngine

            with SpeechEngine(config, tokenizer=tokenizer) as engine:
                for text in texts:
                    if args.phonemes:
                        handle = engine.speak_tokens(text, tokenize(text), voice_name, options, segmented=args.fast)
                    elif args.fast:
                        handle = engine.speak_fast(text, voice_name, options)
                    else:
                        handle = engine.speak(text, voice_name, options)
                    set_job_id(handle.job.id)
                    try:
                        handle.wait()
                    except KeyboardInterrupt:
                        engine.stop_playback()
                        handle.wait(timeout=1.0)
                    results.append({"job": handle.job.id, "outcome": handle.outcome})
                    if handle.outcome == "canceled":
                        break
        else:
            from tts_stream.services.synthesizer import WavSynthesizer
            from tts_stream.utils.audio import wav_bytes_from_float32

            out_paths = _resolve_output_paths(args, len(texts))
            with WavSynthesizer(config, tokenizer=tokenizer) as synth:
                for text, out_path in zip(texts, out_paths):
                    info(log, "synth_start", chars=len(text), out=str(out_path))
                    if args.phonemes:
                        samples = synth.synthesize_tokens(tokenize(text), voice_name, options)
                        wav, _ = wav_bytes_from_float32(samples, synth.sample_rate)
                    else:
                        wav = synth.synthesize_wav(text, voice_name, options)
                    out_path.write_bytes(wav)
                    results.append({"out": str(out_path), "bytes": len(wav), "sample_rate": synth.sample_rate})
    except PipelineError as e:
        fail(log, "cli_failed", error=e.message, code=e.code)
        _print(e.to_dict(), args.json)
        return 1

    _print({"ok": True, "dry_run": False, "items": results}, args.json)
    print("CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Command-line voice cloning.

Usage: python -m voiceclone "reference transcript" "text to speak" \
           --ref-audio reference.wav --output generated.wav
"""
import argparse
import sys
from typing import Optional, Sequence

import soundfile as sf

from voiceclone.exceptions import VoiceCloneError
from voiceclone.config import load_config
from voiceclone.tts import SynthesisContext, SynthesisOrchestrator, SynthesisRequest, TTSError
from voiceclone.utils.logging import get_logger, init_logging

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="voiceclone", description="Clone a voice from a reference recording")
    parser.add_argument("reference_text", help="Transcript of the reference audio")
    parser.add_argument("generation_text", help="Text to synthesize in the reference voice")
    parser.add_argument("--ref-audio", required=True, help="Reference waveform file")
    parser.add_argument("--output", required=True, help="Where to write the generated WAV")
    parser.add_argument("--nfe-steps", type=int, help="Denoising iterations (default 32)")
    parser.add_argument("--speed", type=float, help="Speech rate divisor (default 1.0)")
    parser.add_argument("--vocab", help="Vocabulary file")
    parser.add_argument("--models-dir", help="Directory holding the three ONNX stages")
    parser.add_argument("--first-variant", action="store_true", help="Keep only the first pinyin reading per character")
    parser.add_argument("--normalize", action="store_true", help="Strip punctuation and collapse whitespace first")
    parser.add_argument("--env-file", help="Path to a .env file (default ./.env)")
    parser.add_argument("--log-level", help="Logging level (default LOG_LEVEL or INFO)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for the CLI script."""
    args = build_parser().parse_args(argv)
    init_logging(level=args.log_level)

    overrides = {
        "nfe_steps": args.nfe_steps,
        "speed": args.speed,
        "vocab_path": args.vocab,
        "models_dir": args.models_dir,
    }
    if args.first_variant:
        overrides["heteronyms"] = False
    if args.normalize:
        overrides["normalize"] = True

    try:
        config = load_config(env_file=args.env_file, **overrides)
        logger.info(f"Loading models: {config.preprocess_model}, {config.denoise_model}, {config.decode_model}")
        context = SynthesisContext.from_config(config)
        orchestrator = SynthesisOrchestrator(context)

        request = SynthesisRequest(
            reference_text=args.reference_text,
            generation_text=args.generation_text,
            reference_audio=args.ref_audio,
        )
        run = orchestrator.run(request, args.output)
    except TTSError as e:
        logger.error(f"TTS error ({e.state or 'INIT'}): {e}")
        sys.exit(1)
    except VoiceCloneError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    info = sf.info(str(run.output_path))
    logger.info(
        f"Audio duration: {info.duration:.2f}s, sample rate: {info.samplerate}Hz, "
        f"tokens: {run.token_count}, frames: {run.max_duration}, NFE steps: {run.denoise_steps}"
    )


if __name__ == "__main__":
    main()

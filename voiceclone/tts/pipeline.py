# -*- coding: utf-8 -*-
"""
Voice-cloning synthesis pipeline.

One request walks a fixed sequence of states::

    INIT → TOKENIZE → PREPROCESS → DENOISE → DECODE → ENCODE → DONE

and lands in ERROR from whichever state raised. The orchestrator holds no
per-request state of its own: everything a request touches lives in its
SynthesisRun, so one orchestrator (and one SynthesisContext) can serve
concurrent requests.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import numpy as np

from voiceclone.config import SynthesisConfig
from voiceclone.metrics import STAGE_SECONDS, SYNTHESIS_TOTAL, Metrics, NoopMetrics, get_metrics
from voiceclone.tts.audio import decode_audio, write_audio
from voiceclone.tts.duration import estimate_duration, text_length
from voiceclone.tts.errors import EmptyInputError, SynthesisError, TTSError
from voiceclone.tts.stages import ModelStages, PreprocessOutput, load_stages
from voiceclone.tts.text import normalize_text, tokenize
from voiceclone.tts.vocab import Vocabulary, load_vocab

logger = logging.getLogger(__name__)


class SynthesisState(str, Enum):
    INIT = "INIT"
    TOKENIZE = "TOKENIZE"
    PREPROCESS = "PREPROCESS"
    DENOISE = "DENOISE"
    DECODE = "DECODE"
    ENCODE = "ENCODE"
    DONE = "DONE"
    ERROR = "ERROR"


@dataclass(frozen=True)
class SynthesisRequest:
    reference_text: str
    generation_text: str
    reference_audio: Path

    def __post_init__(self):
        object.__setattr__(self, "reference_audio", Path(self.reference_audio))


@dataclass
class SynthesisRun:
    """Progress and diagnostics for a single request."""

    request: SynthesisRequest
    state: SynthesisState = SynthesisState.INIT
    history: list[SynthesisState] = field(default_factory=lambda: [SynthesisState.INIT])
    failed_state: Optional[SynthesisState] = None
    error: Optional[TTSError] = None
    token_count: int = 0
    max_duration: int = 0
    denoise_steps: int = 0
    output_path: Optional[Path] = None

    def advance(self, state: SynthesisState) -> None:
        logger.debug(
            f"{self.state.value} → {state.value}",
            extra={"subsys": "tts.pipeline", "event": "transition", "stage": state.value},
        )
        self.state = state
        self.history.append(state)

    def fail(self, error: TTSError) -> None:
        self.failed_state = self.state
        if error.state is None:
            error.state = self.state.value
        self.error = error
        self.state = SynthesisState.ERROR
        self.history.append(SynthesisState.ERROR)


@dataclass(frozen=True)
class SynthesisContext:
    """Immutable bundle of everything loaded once and shared by requests."""

    config: SynthesisConfig
    vocab: Vocabulary
    stages: ModelStages
    metrics: Metrics = field(default_factory=NoopMetrics)

    @classmethod
    def from_config(cls, config: SynthesisConfig, metrics: Optional[Metrics] = None) -> "SynthesisContext":
        """Load the vocabulary and the three model stages described by ``config``."""
        return cls(
            config=config,
            vocab=load_vocab(config.vocab_path),
            stages=load_stages(config),
            metrics=metrics if metrics is not None else get_metrics(),
        )


class SynthesisOrchestrator:
    def __init__(self, context: SynthesisContext):
        self.context = context

    @property
    def config(self) -> SynthesisConfig:
        return self.context.config

    def run(self, request: SynthesisRequest, out_path: str | Path) -> SynthesisRun:
        """Run the full pipeline for ``request`` and write the result to ``out_path``.

        Errors propagate to the caller tagged with the failing state; nothing
        is retried and no file is written unless every stage succeeds.
        """
        run = SynthesisRun(request=request)
        metrics = self.context.metrics
        try:
            reference_text, generation_text = self._prepare_texts(request)
            text_ids = self._tokenize(run, reference_text, generation_text)
            latent = self._preprocess(run, reference_text, generation_text, text_ids)
            noise = self._denoise(run, latent)
            signal = self._decode(run, noise)
            self._encode(run, signal, Path(out_path))
        except TTSError as e:
            run.fail(e)
            metrics.inc(SYNTHESIS_TOTAL, labels={"status": "error"})
            logger.error(
                f"✖ Synthesis failed in {run.failed_state.value}: {e}",
                extra={"subsys": "tts.pipeline", "event": "error", "stage": run.failed_state.value},
            )
            raise
        except Exception as e:
            err = SynthesisError(f"{run.state.value} failed: {e}")
            run.fail(err)
            metrics.inc(SYNTHESIS_TOTAL, labels={"status": "error"})
            logger.error(
                f"✖ Unexpected error in {run.failed_state.value}: {e}",
                exc_info=True,
                extra={"subsys": "tts.pipeline", "event": "error", "stage": run.failed_state.value},
            )
            raise err from e

        run.advance(SynthesisState.DONE)
        metrics.inc(SYNTHESIS_TOTAL, labels={"status": "success"})
        logger.info(
            f"✔ Generated audio saved to: {run.output_path}",
            extra={"subsys": "tts.pipeline", "event": "done", "detail": str(run.output_path)},
        )
        return run

    def synthesize(self, request: SynthesisRequest, out_path: str | Path) -> Path:
        return self.run(request, out_path).output_path

    async def synthesize_async(self, request: SynthesisRequest, out_path: str | Path) -> Path:
        """Run the blocking pipeline in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.synthesize, request, out_path))

    def _prepare_texts(self, request: SynthesisRequest) -> tuple[str, str]:
        if self.config.normalize:
            return normalize_text(request.reference_text), normalize_text(request.generation_text)
        return request.reference_text, request.generation_text

    def _tokenize(self, run: SynthesisRun, reference_text: str, generation_text: str) -> np.ndarray:
        run.advance(SynthesisState.TOKENIZE)
        # Checked here so an empty reference fails before any model call
        if text_length(reference_text) == 0:
            raise EmptyInputError("Reference text is empty")

        ids = tokenize(
            reference_text + generation_text,
            self.context.vocab,
            heteronyms=self.config.heteronyms,
            metrics=self.context.metrics,
        )
        if not ids:
            raise EmptyInputError("Tokenization produced no tokens")
        run.token_count = len(ids)
        return np.array([ids], dtype=np.int32)

    def _preprocess(
        self, run: SynthesisRun, reference_text: str, generation_text: str, text_ids: np.ndarray
    ) -> PreprocessOutput:
        run.advance(SynthesisState.PREPROCESS)
        audio = decode_audio(run.request.reference_audio)
        if audio.sample_rate != self.config.sample_rate:
            logger.warning(
                f"Reference audio is {audio.sample_rate}Hz, model expects {self.config.sample_rate}Hz; not resampling",
                extra={"subsys": "tts.pipeline", "event": "sample_rate_mismatch"},
            )

        run.max_duration = estimate_duration(
            audio,
            reference_text,
            generation_text,
            hop_length=self.config.hop_length,
            speed=self.config.speed,
        )
        logger.debug(
            f"tokens={run.token_count} ref_samples={audio.length} max_duration={run.max_duration}",
            extra={"subsys": "tts.pipeline", "stage": "PREPROCESS"},
        )

        with self.context.metrics.timer(STAGE_SECONDS, labels={"stage": "preprocess"}):
            return self.context.stages.preprocess(
                audio.as_tensor(),
                np.array([run.max_duration], dtype=np.int64),
                text_ids,
            )

    def _denoise(self, run: SynthesisRun, latent: PreprocessOutput) -> np.ndarray:
        run.advance(SynthesisState.DENOISE)
        denoise = self.context.stages.denoise

        def step(noise: np.ndarray, i: int) -> np.ndarray:
            logger.debug(f"NFE step: {i}", extra={"subsys": "tts.pipeline", "stage": "DENOISE"})
            refined = denoise(noise, latent.rope_cos, latent.rope_sin)
            run.denoise_steps += 1
            return refined

        with self.context.metrics.timer(STAGE_SECONDS, labels={"stage": "denoise"}):
            return functools.reduce(step, range(self.config.nfe_steps), latent.noise)

    def _decode(self, run: SynthesisRun, noise: np.ndarray) -> np.ndarray:
        run.advance(SynthesisState.DECODE)
        with self.context.metrics.timer(STAGE_SECONDS, labels={"stage": "decode"}):
            return self.context.stages.decode(noise)

    def _encode(self, run: SynthesisRun, signal: np.ndarray, out_path: Path) -> None:
        run.advance(SynthesisState.ENCODE)
        run.output_path = write_audio(out_path, signal, self.config.sample_rate)

# -*- coding: utf-8 -*-
"""
Typed wrappers around the three exported inference stages.

Each stage owns one ONNX session and turns tensors in into tensors out:

- Preprocess: audio [1,1,N] float32, max_duration [1] int64, text_ids [1,T] int32
  -> noise, rope_cos, rope_sin
- Denoise:    noise, rope_cos, rope_sin -> refined noise (same shape)
- Decode:     noise -> flat float32 waveform

Sessions are read-only after construction and can be shared by concurrent
requests. Outputs are taken positionally, in the exported model's order.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, NamedTuple, Sequence

import numpy as np
import onnxruntime as ort

from voiceclone.config import SynthesisConfig
from voiceclone.tts.errors import ModelLoadError, StageInvocationError

logger = logging.getLogger(__name__)


class PreprocessOutput(NamedTuple):
    noise: np.ndarray
    rope_cos: np.ndarray
    rope_sin: np.ndarray


def load_session(model_path: str | Path, intra_op_threads: int = 0, inter_op_threads: int = 0) -> ort.InferenceSession:
    """Create an ONNX session, preferring CUDA when onnxruntime reports a GPU.

    Raises:
        ModelLoadError: if the file is missing or the runtime rejects it.
    """
    if not Path(model_path).exists():
        raise ModelLoadError(f"ONNX model not found: {model_path}")

    session_options = ort.SessionOptions()
    session_options.log_severity_level = 3
    session_options.intra_op_num_threads = intra_op_threads
    session_options.inter_op_num_threads = inter_op_threads
    session_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL

    providers = []
    if ort.get_device() == "GPU":
        providers.append("CUDAExecutionProvider")
    providers.append("CPUExecutionProvider")

    try:
        session = ort.InferenceSession(str(model_path), session_options, providers=providers)
    except Exception as e:
        # onnxruntime raises its own Fail/InvalidGraph/... types, none shared
        raise ModelLoadError(f"Failed to initialize ONNX session for {model_path}: {e}") from e

    logger.debug(
        f"Initialized ONNX session {Path(model_path).name} with providers: {providers}",
        extra={"subsys": "tts.stages", "event": "session.loaded"},
    )
    return session


class ModelStage:
    """Base wrapper: names the stage and converts runtime failures."""

    name = "stage"
    input_names: tuple[str, ...] = ()
    min_outputs = 1

    def __init__(self, session: Any):
        self.session = session

    def _run(self, *inputs: np.ndarray) -> Sequence[np.ndarray]:
        feeds = dict(zip(self.input_names, inputs))
        try:
            outputs = self.session.run(None, feeds)
        except Exception as e:
            raise StageInvocationError(self.name, str(e)) from e
        if outputs is None or len(outputs) < self.min_outputs:
            got = 0 if outputs is None else len(outputs)
            raise StageInvocationError(self.name, f"expected {self.min_outputs} output(s), got {got}")
        return outputs


class PreprocessStage(ModelStage):
    name = "preprocess"
    input_names = ("audio", "max_duration", "text_ids")
    min_outputs = 3

    def __call__(self, audio: np.ndarray, max_duration: np.ndarray, text_ids: np.ndarray) -> PreprocessOutput:
        if audio.dtype != np.float32 or audio.ndim != 3:
            raise StageInvocationError(self.name, f"audio must be float32 [1,1,N], got {audio.dtype} {audio.shape}")
        if max_duration.dtype != np.int64 or max_duration.shape != (1,):
            raise StageInvocationError(self.name, f"max_duration must be int64 [1], got {max_duration.dtype} {max_duration.shape}")
        if text_ids.dtype != np.int32 or text_ids.ndim != 2:
            raise StageInvocationError(self.name, f"text_ids must be int32 [1,T], got {text_ids.dtype} {text_ids.shape}")

        noise, rope_cos, rope_sin = self._run(audio, max_duration, text_ids)[:3]
        return PreprocessOutput(noise=noise, rope_cos=rope_cos, rope_sin=rope_sin)


class DenoiseStage(ModelStage):
    name = "denoise"
    input_names = ("noise", "rope_cos", "rope_sin")

    def __call__(self, noise: np.ndarray, rope_cos: np.ndarray, rope_sin: np.ndarray) -> np.ndarray:
        output = np.asarray(self._run(noise, rope_cos, rope_sin)[0])
        if output.shape != np.shape(noise):
            raise StageInvocationError(
                self.name, f"output shape {output.shape} does not match noise shape {np.shape(noise)}"
            )
        return output


class DecodeStage(ModelStage):
    name = "decode"
    input_names = ("noise",)

    def __call__(self, noise: np.ndarray) -> np.ndarray:
        signal = self._run(noise)[0]
        return np.asarray(signal, dtype=np.float32).reshape(-1)


class ModelStages(NamedTuple):
    preprocess: PreprocessStage
    denoise: DenoiseStage
    decode: DecodeStage


def load_stages(config: SynthesisConfig) -> ModelStages:
    """Load all three stages; any failure aborts before a stage runs."""
    threads = dict(intra_op_threads=config.intra_op_threads, inter_op_threads=config.inter_op_threads)
    stages = ModelStages(
        preprocess=PreprocessStage(load_session(config.preprocess_model, **threads)),
        denoise=DenoiseStage(load_session(config.denoise_model, **threads)),
        decode=DecodeStage(load_session(config.decode_model, **threads)),
    )
    logger.info("✔ Model stages loaded", extra={"subsys": "tts.stages", "event": "stages.loaded"})
    return stages

"""
Pytest configuration for synthesis tests.

Model stages are backed by MagicMock sessions whose ``run`` returns numpy
arrays, so the pipeline runs end to end without ONNX model files.
"""

from unittest.mock import MagicMock

import numpy as np
import pytest
import soundfile as sf

from voiceclone.config import SynthesisConfig
from voiceclone.tts.pipeline import SynthesisContext, SynthesisOrchestrator, SynthesisRequest
from voiceclone.tts.stages import DecodeStage, DenoiseStage, ModelStages, PreprocessStage
from voiceclone.tts.vocab import load_vocab

VOCAB_TOKENS = [" ", "d", "e", "h", "l", "o", "r", "w", "ni3", "hao3", "hao4", "。"]

NOISE_SHAPE = (1, 200, 100)
DECODED_SAMPLES = 2400


@pytest.fixture
def vocab_file(tmp_path):
    path = tmp_path / "vocab.txt"
    path.write_text("\n".join(VOCAB_TOKENS) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def vocab(vocab_file):
    return load_vocab(vocab_file)


@pytest.fixture
def reference_wav(tmp_path):
    """2.0s of a 220Hz tone at 24kHz, 16-bit PCM (48000 samples)."""
    path = tmp_path / "reference.wav"
    t = np.arange(48000) / 24000.0
    tone = (0.3 * np.sin(2 * np.pi * 220.0 * t) * 32767).astype(np.int16)
    sf.write(str(path), tone, 24000, subtype="PCM_16")
    return path


@pytest.fixture
def preprocess_session():
    session = MagicMock()
    session.run.return_value = [
        np.zeros(NOISE_SHAPE, dtype=np.float32),
        np.ones((1, 200, 32), dtype=np.float32),
        np.full((1, 200, 32), 0.5, dtype=np.float32),
    ]
    return session


@pytest.fixture
def denoise_session():
    session = MagicMock()
    session.run.side_effect = lambda names, feeds: [feeds["noise"] + 1.0]
    return session


@pytest.fixture
def decode_session():
    session = MagicMock()
    session.run.return_value = [np.full((1, DECODED_SAMPLES), 0.25, dtype=np.float32)]
    return session


@pytest.fixture
def stages(preprocess_session, denoise_session, decode_session):
    return ModelStages(
        preprocess=PreprocessStage(preprocess_session),
        denoise=DenoiseStage(denoise_session),
        decode=DecodeStage(decode_session),
    )


@pytest.fixture
def metrics():
    return MagicMock()


@pytest.fixture
def config(vocab_file):
    return SynthesisConfig(nfe_steps=4, vocab_path=str(vocab_file))


@pytest.fixture
def context(config, vocab, stages, metrics):
    return SynthesisContext(config=config, vocab=vocab, stages=stages, metrics=metrics)


@pytest.fixture
def orchestrator(context):
    return SynthesisOrchestrator(context)


@pytest.fixture
def make_request(reference_wav):
    def _make(reference_text="hello", generation_text="hello world", reference_audio=None):
        return SynthesisRequest(
            reference_text=reference_text,
            generation_text=generation_text,
            reference_audio=reference_audio or reference_wav,
        )

    return _make

# -*- coding: utf-8 -*-
"""
Waveform I/O for reference and generated audio.

Reference audio is read from the first channel; integer PCM is scaled to
[-1, 1] by FULL_SCALE. Generated audio is written as 32-bit float WAV.
"""

from __future__ import annotations

import io
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import soundfile as sf

from voiceclone.tts.errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)

FULL_SCALE = 32768.0
FLOAT_SUBTYPES = ("FLOAT", "DOUBLE")


@dataclass(frozen=True)
class AudioBuffer:
    samples: np.ndarray
    sample_rate: int

    @property
    def length(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        return self.length / float(self.sample_rate)

    def as_tensor(self) -> np.ndarray:
        """Shape ``[1, 1, N]`` float32, as the preprocess stage expects."""
        return self.samples.astype(np.float32, copy=False).reshape(1, 1, -1)


def decode_audio(path: str | Path) -> AudioBuffer:
    """Read a waveform file into a normalized mono buffer.

    Integer PCM is read as 16-bit and divided by FULL_SCALE; float containers
    already hold [-1, 1] samples and are read as-is (libsndfile does not
    rescale float data read as integers). Only the first channel is kept.

    Raises:
        DecodeError: if the file is missing, unreadable or not a valid container.
    """
    try:
        with sf.SoundFile(str(path)) as f:
            sample_rate = f.samplerate
            if f.subtype in FLOAT_SUBTYPES:
                data = f.read(dtype="float32", always_2d=True)
                samples = data[:, 0].copy()
            else:
                data = f.read(dtype="int16", always_2d=True)
                samples = data[:, 0].astype(np.float32) / FULL_SCALE
    except (OSError, RuntimeError) as e:
        # soundfile raises LibsndfileError (a RuntimeError) for bad containers
        raise DecodeError(f"Cannot decode reference audio {path}: {e}") from e

    logger.debug(
        f"Decoded {path}: {samples.shape[0]} samples @ {sample_rate}Hz, {data.shape[1]} channel(s)",
        extra={"subsys": "tts.audio", "event": "decode"},
    )
    return AudioBuffer(samples=samples, sample_rate=int(sample_rate))


def encode_audio(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode samples as a 32-bit float mono WAV payload.

    Raises:
        EncodeError: if the sample buffer is empty.
    """
    audio = np.asarray(samples, dtype=np.float32).reshape(-1)
    if audio.size == 0:
        raise EncodeError("Empty audio from model")

    buf = io.BytesIO()
    sf.write(buf, audio, int(sample_rate), format="WAV", subtype="FLOAT")
    return buf.getvalue()


def write_audio(path: str | Path, samples: np.ndarray, sample_rate: int) -> Path:
    """Encode and write samples to ``path`` atomically (temp file, then rename)."""
    payload = encode_audio(samples, sample_rate)
    dest = Path(path)
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp: Path | None = None
    try:
        # one temp file per writer
        with tempfile.NamedTemporaryFile(dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp", delete=False) as f:
            tmp = Path(f.name)
            f.write(payload)
        os.replace(tmp, dest)
    except OSError as e:
        if tmp is not None:
            tmp.unlink(missing_ok=True)
        raise EncodeError(f"Failed to write {dest}: {e}") from e
    return dest

"""Target-duration estimate for the generated audio, in latent frames."""

from __future__ import annotations

import math

from voiceclone.tts.audio import AudioBuffer
from voiceclone.tts.errors import EmptyInputError

# Chinese pause punctuation; each counts as 3 extra bytes of text length
PAUSE_PUNCTUATION = frozenset("。，、；：？！")
PAUSE_WEIGHT = 3


def text_length(text: str) -> int:
    """UTF-8 byte length plus a weight for every wide pause mark."""
    pauses = sum(1 for ch in text if ch in PAUSE_PUNCTUATION)
    return len(text.encode("utf-8")) + PAUSE_WEIGHT * pauses


def reference_frames(num_samples: int, hop_length: int) -> int:
    return num_samples // hop_length + 1


def estimate_duration(
    reference_audio: AudioBuffer,
    reference_text: str,
    generation_text: str,
    hop_length: int = 256,
    speed: float = 1.0,
) -> int:
    """Frames to synthesize: the reference frames plus the generated share.

    The generated share scales the reference frame count by the ratio of
    generated to reference text length, divided by ``speed``.

    Raises:
        EmptyInputError: if the reference text has zero length.
    """
    ref_len = text_length(reference_text)
    if ref_len == 0:
        raise EmptyInputError("Reference text is empty; cannot estimate duration")

    ref_frames = reference_frames(reference_audio.length, hop_length)
    gen_len = text_length(generation_text)
    return ref_frames + math.floor(ref_frames * gen_len / ref_len / speed)

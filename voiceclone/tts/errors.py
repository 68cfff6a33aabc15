"""Custom exceptions for the synthesis pipeline."""
from typing import Optional

from voiceclone.exceptions import VoiceCloneError


class TTSError(VoiceCloneError):
    """Base class for synthesis errors.

    ``state`` is filled in by the orchestrator with the pipeline state the
    error was raised from (e.g. ``"DENOISE"``).
    """

    def __init__(self, message: str = "", state: Optional[str] = None):
        super().__init__(message)
        self.state = state


class ModelLoadError(TTSError):
    """An inference stage could not be created (missing file, bad runtime)."""
    pass


class VocabularyLoadError(TTSError, OSError):
    """The vocabulary file could not be read."""
    pass


class AudioError(TTSError):
    pass


class DecodeError(AudioError):
    """Reference audio is missing, unreadable or not a valid container."""
    pass


class EncodeError(AudioError):
    """Generated samples could not be encoded (empty buffer)."""
    pass


class EmptyInputError(TTSError, ValueError):
    """Degenerate input: empty tokenization or empty reference text."""
    pass


class StageInvocationError(TTSError):
    """A model stage rejected its tensors or failed at runtime."""

    def __init__(self, stage: str, message: str, state: Optional[str] = None):
        super().__init__(f"{stage} stage failed: {message}", state=state)
        self.stage = stage


class SynthesisError(TTSError):
    """Unexpected failure inside a pipeline state, wrapped with its state tag."""
    pass

"""
Synthesis package: text front end, audio I/O, duration estimate, model
stages and the orchestrating pipeline.
"""

from .errors import (
    DecodeError,
    EmptyInputError,
    EncodeError,
    ModelLoadError,
    StageInvocationError,
    SynthesisError,
    TTSError,
    VocabularyLoadError,
)
from .pipeline import (
    SynthesisContext,
    SynthesisOrchestrator,
    SynthesisRequest,
    SynthesisRun,
    SynthesisState,
)

__all__ = [
    "DecodeError",
    "EmptyInputError",
    "EncodeError",
    "ModelLoadError",
    "StageInvocationError",
    "SynthesisError",
    "TTSError",
    "VocabularyLoadError",
    "SynthesisContext",
    "SynthesisOrchestrator",
    "SynthesisRequest",
    "SynthesisRun",
    "SynthesisState",
]

"""Configuration loading and environment setup."""
import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MODELS_DIR = "models"
PREPROCESS_MODEL_NAME = "F5_Preprocess.onnx"
DENOISE_MODEL_NAME = "F5_Transformer.onnx"
DECODE_MODEL_NAME = "F5_Decode.onnx"


@dataclass(frozen=True)
class SynthesisConfig:
    """Immutable settings for one synthesis context.

    hop_length: raw samples per latent frame, used by the duration estimate.
    sample_rate: rate the generated waveform is written at.
    nfe_steps: number of denoise iterations (quality/latency tradeoff).
    speed: divisor applied to the estimated generated duration.
    heteronyms: keep every pinyin reading the converter returns.
    normalize: strip punctuation and collapse whitespace before tokenizing.
    """

    hop_length: int = 256
    sample_rate: int = 24000
    nfe_steps: int = 32
    speed: float = 1.0
    vocab_path: str = "data/vocab.txt"
    preprocess_model: str = f"{DEFAULT_MODELS_DIR}/{PREPROCESS_MODEL_NAME}"
    denoise_model: str = f"{DEFAULT_MODELS_DIR}/{DENOISE_MODEL_NAME}"
    decode_model: str = f"{DEFAULT_MODELS_DIR}/{DECODE_MODEL_NAME}"
    heteronyms: bool = True
    normalize: bool = False
    intra_op_threads: int = 0
    inter_op_threads: int = 0

    def __post_init__(self):
        if self.hop_length <= 0:
            raise ConfigurationError(f"hop_length must be positive, got {self.hop_length}")
        if self.sample_rate <= 0:
            raise ConfigurationError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.speed <= 0:
            raise ConfigurationError(f"speed must be positive, got {self.speed}")
        if self.nfe_steps < 0:
            raise ConfigurationError(f"nfe_steps must not be negative, got {self.nfe_steps}")
        if self.intra_op_threads < 0 or self.inter_op_threads < 0:
            raise ConfigurationError("thread counts must not be negative")

    def replace(self, **changes: Any) -> "SynthesisConfig":
        return dataclasses.replace(self, **changes)


def _parse_bool(value: str) -> bool:
    v = value.strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


# env var -> (field, parser)
_ENV_FIELDS: Dict[str, tuple[str, Callable[[str], Any]]] = {
    "TTS_HOP_LENGTH": ("hop_length", int),
    "TTS_SAMPLE_RATE": ("sample_rate", int),
    "TTS_NFE_STEPS": ("nfe_steps", int),
    "TTS_SPEED": ("speed", float),
    "TTS_VOCAB_PATH": ("vocab_path", str),
    "TTS_PREPROCESS_MODEL": ("preprocess_model", str),
    "TTS_DENOISE_MODEL": ("denoise_model", str),
    "TTS_DECODE_MODEL": ("decode_model", str),
    "TTS_PINYIN_HETERONYM": ("heteronyms", _parse_bool),
    "TTS_NORMALIZE_TEXT": ("normalize", _parse_bool),
    "TTS_INTRA_OP_THREADS": ("intra_op_threads", int),
    "TTS_INTER_OP_THREADS": ("inter_op_threads", int),
}


def _models_dir_paths(models_dir: str) -> Dict[str, str]:
    root = Path(models_dir)
    return {
        "preprocess_model": str(root / PREPROCESS_MODEL_NAME),
        "denoise_model": str(root / DENOISE_MODEL_NAME),
        "decode_model": str(root / DECODE_MODEL_NAME),
    }


def load_config(env_file: str | None = None, **overrides: Any) -> SynthesisConfig:
    """Build a SynthesisConfig from a .env file, the environment and overrides.

    Precedence, lowest first: dataclass defaults, ``TTS_MODELS_DIR``, the
    individual ``TTS_*`` variables, then keyword ``overrides``. A
    ``models_dir`` override expands to the three model paths.

    Raises:
        ConfigurationError: if a variable cannot be parsed or a value is invalid.
    """
    load_dotenv(dotenv_path=env_file or Path.cwd() / ".env", override=False)

    values: Dict[str, Any] = {}
    models_dir = os.getenv("TTS_MODELS_DIR", "").strip()
    if models_dir:
        values.update(_models_dir_paths(models_dir))

    for var, (field, parse) in _ENV_FIELDS.items():
        raw = os.getenv(var)
        if raw is None or not raw.strip():
            continue
        try:
            values[field] = parse(raw.strip())
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {var}: {raw!r} ({e})") from e
        logger.debug(f"{var} → {values[field]!r}", extra={"subsys": "config"})

    override_dir = overrides.pop("models_dir", None)
    if override_dir:
        values.update(_models_dir_paths(override_dir))
    values.update({k: v for k, v in overrides.items() if v is not None})

    unknown = set(values) - {f.name for f in dataclasses.fields(SynthesisConfig)}
    if unknown:
        raise ConfigurationError(f"Unknown configuration options: {sorted(unknown)}")

    return SynthesisConfig(**values)

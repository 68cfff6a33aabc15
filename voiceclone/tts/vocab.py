# -*- coding: utf-8 -*-
"""
Vocabulary loader for the phoneme-token vocabulary.

The vocabulary file is a newline-delimited token list; a token's id is its
0-based line number. Tokens absent from the vocabulary map to FALLBACK_ID.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Optional

from voiceclone.metrics import UNKNOWN_TOKENS, Metrics
from voiceclone.tts.errors import VocabularyLoadError

logger = logging.getLogger(__name__)

FALLBACK_ID = 0


@dataclass(frozen=True, eq=False)
class Vocabulary(Mapping):
    """Read-only token → id mapping loaded from a token list.

    Behaves as a Mapping over distinct tokens: ``vocab[token]`` raises
    KeyError for unknown tokens, use ``encode`` for the fallback id.
    """

    token_to_id: Mapping[str, int]
    id_to_token: tuple[str, ...]
    path: Optional[str] = None

    def __getitem__(self, token: str) -> int:
        return self.token_to_id[token]

    def __iter__(self) -> Iterator[str]:
        return iter(self.token_to_id)

    def __len__(self) -> int:
        return len(self.token_to_id)

    @property
    def size(self) -> int:
        """Number of lines in the token list, duplicates included."""
        return len(self.id_to_token)

    def lookup(self, token: str) -> Optional[int]:
        """Return the id for ``token`` or None when it is not in the vocabulary."""
        return self.token_to_id.get(token)

    def encode(self, tokens: Iterable[str], metrics: Optional[Metrics] = None) -> list[int]:
        """Map tokens to ids, substituting FALLBACK_ID for unknown tokens.

        Unknown tokens are logged and, when ``metrics`` is given, counted under
        ``tts_vocab_unknown_tokens_total``.
        """
        ids: list[int] = []
        unknown: list[str] = []
        for token in tokens:
            token_id = self.token_to_id.get(token)
            if token_id is None:
                logger.debug(f"Unknown token {token!r}", extra={"subsys": "tts.vocab", "event": "unknown_token"})
                unknown.append(token)
                token_id = FALLBACK_ID
            ids.append(token_id)

        if unknown:
            logger.warning(
                f"{len(unknown)} token(s) not in vocabulary; using fallback id {FALLBACK_ID}",
                extra={"subsys": "tts.vocab", "event": "unknown_tokens", "detail": sorted(set(unknown))},
            )
            if metrics is not None:
                metrics.inc(UNKNOWN_TOKENS, len(unknown))
        return ids


def parse_vocab(lines: Iterable[str], path: Optional[str] = None) -> Vocabulary:
    """Build a Vocabulary from token lines (line terminators already removed).

    Only the line terminator is stripped, so whitespace tokens such as a single
    space keep their own id. When a token appears twice the first line wins.
    """
    token_to_id: dict[str, int] = {}
    id_to_token: list[str] = []
    for i, token in enumerate(lines):
        id_to_token.append(token)
        if token in token_to_id:
            logger.warning(
                f"Duplicate vocabulary token {token!r} at line {i}; keeping id {token_to_id[token]}",
                extra={"subsys": "tts.vocab"},
            )
            continue
        token_to_id[token] = i
    return Vocabulary(
        token_to_id=MappingProxyType(token_to_id),
        id_to_token=tuple(id_to_token),
        path=path,
    )


def load_vocab(path: str | Path) -> Vocabulary:
    """Load a vocabulary file.

    Raises:
        VocabularyLoadError: if the file cannot be read or decoded as UTF-8.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise VocabularyLoadError(f"Cannot read vocabulary {path}: {e}") from e

    # str.splitlines() also breaks on \x85 and \u2028, which are valid tokens
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    vocab = parse_vocab((line.rstrip("\r") for line in lines), path=str(path))
    logger.debug(f"Loaded vocabulary: {vocab.size} tokens from {path}", extra={"subsys": "tts.vocab"})
    return vocab

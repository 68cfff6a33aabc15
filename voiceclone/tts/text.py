# -*- coding: utf-8 -*-
"""
Text front end: normalization, segmentation and phonetic tokenization.

Latin (ASCII) segments are split into single characters, matching the
character-level Latin entries of the vocabulary. Other segments are treated as
Chinese and converted to tone-numbered pinyin syllables (``ni3``, ``hao3``).
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import jieba
from pypinyin import Style, pinyin

from voiceclone.metrics import Metrics
from voiceclone.tts.vocab import Vocabulary

logger = logging.getLogger(__name__)

# ASCII punctuation without the apostrophe, so contractions survive
NORMALIZE_PUNCTUATION = "!\"#$%&()*+,-./:;<=>?@[\\]^_`{|}~"
_PUNCT_RE = re.compile(f"[{re.escape(NORMALIZE_PUNCTUATION)}]")

CJK_RANGES = (
    (0x4E00, 0x9FFF),
    (0x3400, 0x4DBF),
    (0x20000, 0x2A6DF),
    (0x2A700, 0x2B73F),
    (0x2B740, 0x2B81F),
    (0x2B820, 0x2CEAF),
    (0xF900, 0xFAFF),
    (0x2F800, 0x2FA1F),
)


def normalize_text(text: str) -> str:
    """Strip ASCII punctuation (keeping apostrophes), lowercase and collapse whitespace."""
    return " ".join(_PUNCT_RE.sub("", text).lower().split())


def is_cjk_char(ch: str) -> bool:
    cp = ord(ch)
    return any(lo <= cp <= hi for lo, hi in CJK_RANGES)


def segment_text(text: str) -> list[str]:
    """Split text into words/phrases with jieba, keeping every character."""
    return [seg for seg in jieba.lcut(text) if seg]


def segment_to_tokens(segment: str, heteronyms: bool = True) -> list[str]:
    """Convert one segment to vocabulary token strings.

    With ``heteronyms`` every reading pypinyin returns for a character is
    appended in order; otherwise only the first reading is kept.
    """
    if segment.isascii():
        return list(segment)

    readings = pinyin(segment, style=Style.TONE3, heteronym=heteronyms)
    if heteronyms:
        return [syllable for variants in readings for syllable in variants]
    return [variants[0] for variants in readings if variants]


def text_to_tokens(text: str, heteronyms: bool = True) -> list[str]:
    tokens: list[str] = []
    for segment in segment_text(text):
        tokens.extend(segment_to_tokens(segment, heteronyms=heteronyms))
    return tokens


def tokenize(
    text: str,
    vocab: Vocabulary,
    heteronyms: bool = True,
    metrics: Optional[Metrics] = None,
) -> list[int]:
    """Convert raw text to vocabulary ids. Empty text yields an empty list."""
    if not text:
        return []
    tokens = text_to_tokens(text, heteronyms=heteronyms)
    ids = vocab.encode(tokens, metrics=metrics)
    logger.debug(
        f"Tokenized {len(text)} chars into {len(ids)} ids "
        f"({sum(1 for ch in text if is_cjk_char(ch))} CJK)",
        extra={"subsys": "tts.text", "event": "tokenize"},
    )
    return ids

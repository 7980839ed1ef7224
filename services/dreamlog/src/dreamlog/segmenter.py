"""Split story prose into beginning, middle and end for scene illustration."""

from __future__ import annotations

import re
from typing import List, NamedTuple

# A sentence is a run of non-terminal characters closed by one or more of . ! ?
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")


class Segments(NamedTuple):
    beginning: str
    middle: str
    end: str


def split_sentences(prose: str) -> List[str]:
    return _SENTENCE_RE.findall(prose or "")


def segment(prose: str) -> Segments:
    """Partition ``prose`` into three contiguous narrative thirds.

    With fewer than three sentences every segment is the whole (trimmed) text,
    so downstream image prompts are never empty. Otherwise the first two
    groups hold ``n // 3`` sentences each and the last group takes the rest.
    """
    sentences = split_sentences(prose)
    if len(sentences) < 3:
        whole = (prose or "").strip()
        return Segments(whole, whole, whole)

    third = len(sentences) // 3
    groups = (sentences[:third], sentences[third:third * 2], sentences[third * 2:])
    return Segments(*(" ".join(s.strip() for s in group).strip() for group in groups))


__all__ = ["Segments", "segment", "split_sentences"]

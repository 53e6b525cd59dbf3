"""Deterministic gate deciding whether a generated rewrite is worth showing."""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional

from captions.diff import changed_characters, diff_words
from common.schemas import DiffType


class RejectReason(str, Enum):
    empty = "empty"
    no_op = "no_op"
    whitespace_only = "whitespace_only"
    length_ratio = "length_ratio"
    incompatible_tokens = "incompatible_tokens"
    degenerate = "degenerate"


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def length_ratio(original: str, rewrite: str) -> float:
    """Rewrite length over original length, whitespace runs collapsed."""
    original_len = len(" ".join(original.split())) or 1
    rewrite_len = len(" ".join(rewrite.split())) or 1
    return rewrite_len / original_len


def tokens_compatible(original: str, rewrite: str) -> bool:
    """Position-by-position check that each changed word is a plausible edit."""
    for a, b in zip(original.lower().split(), rewrite.lower().split()):
        if a == b:
            continue
        threshold = max(2, math.ceil(max(len(a), len(b)) * 0.6))
        if levenshtein(a, b) > threshold:
            return False
    return True


def check_rewrite(
    original: str,
    rewrite: str,
    max_char_delta: int,
    max_ratio: float,
    min_ratio: float,
) -> Optional[RejectReason]:
    """Return why a rewrite is rejected, or None when it is acceptable."""
    original = (original or "").strip()
    rewrite = (rewrite or "").strip()
    if not rewrite:
        return RejectReason.empty
    if rewrite.lower() == original.lower():
        return RejectReason.no_op

    diff = diff_words(original, rewrite)
    if not any(
        any(ch.isalnum() for ch in token.value)
        for token in diff
        if token.type is not DiffType.equal
    ):
        return RejectReason.whitespace_only

    ratio = length_ratio(original, rewrite)
    if ratio < min_ratio or ratio > max_ratio:
        return RejectReason.length_ratio

    changed = changed_characters(diff)
    if changed > max_char_delta and not tokens_compatible(original, rewrite):
        return RejectReason.incompatible_tokens

    if changed <= 2 and abs(ratio - 1.0) <= 0.05:
        return RejectReason.degenerate

    return None


def is_acceptable(
    original: str,
    rewrite: str,
    max_char_delta: int,
    max_ratio: float,
    min_ratio: float,
) -> bool:
    return check_rewrite(original, rewrite, max_char_delta, max_ratio, min_ratio) is None

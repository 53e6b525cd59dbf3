"""Word-level diff between two caption strings."""

from __future__ import annotations

import re

from common.schemas import DiffToken, DiffType

_TOKEN = re.compile(r"\S+|\s+")


def tokenize(text: str) -> list[str]:
    """Split text into alternating runs of non-whitespace and whitespace."""
    return _TOKEN.findall(text or "")


def _lcs_table(a: list[str], b: list[str]) -> list[list[int]]:
    """Suffix LCS lengths: ``table[i][j]`` covers ``a[i:]`` and ``b[j:]``."""
    m, n = len(a), len(b)
    table = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(m - 1, -1, -1):
        row, below = table[i], table[i + 1]
        for j in range(n - 1, -1, -1):
            if a[i] == b[j]:
                row[j] = below[j + 1] + 1
            else:
                row[j] = max(below[j], row[j + 1])
    return table


def diff_words(original: str = "", edited: str = "") -> list[DiffToken]:
    a = tokenize(original)
    b = tokenize(edited)
    table = _lcs_table(a, b)

    steps: list[tuple[DiffType, str]] = []
    i = j = 0
    while i < len(a) and j < len(b):
        if a[i] == b[j]:
            steps.append((DiffType.equal, a[i]))
            i += 1
            j += 1
        elif table[i + 1][j] >= table[i][j + 1]:
            steps.append((DiffType.delete, a[i]))
            i += 1
        else:
            steps.append((DiffType.insert, b[j]))
            j += 1
    steps.extend((DiffType.delete, token) for token in a[i:])
    steps.extend((DiffType.insert, token) for token in b[j:])

    merged: list[list] = []
    for kind, value in steps:
        if merged and merged[-1][0] is kind:
            merged[-1][1] += value
        else:
            merged.append([kind, value])
    return [DiffToken(type=kind, value=value) for kind, value in merged]


def reconstruct_original(tokens: list[DiffToken]) -> str:
    return "".join(t.value for t in tokens if t.type is not DiffType.insert)


def reconstruct_edited(tokens: list[DiffToken]) -> str:
    return "".join(t.value for t in tokens if t.type is not DiffType.delete)


def changed_characters(tokens: list[DiffToken]) -> int:
    """Count non-whitespace characters in inserted and deleted runs."""
    return sum(len("".join(t.value.split())) for t in tokens if t.type is not DiffType.equal)

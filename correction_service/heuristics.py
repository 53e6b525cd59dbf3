"""Cheap local checks that flag caption lines likely to need a rewrite."""

from __future__ import annotations

import re
import unicodedata

_WORD = re.compile(r"\w+", re.UNICODE)
_LETTER_DIGIT_MIX = re.compile(r"\w*[^\W\d_]\d+[^\W\d_]\w*")
_STRETCHED = re.compile(r"([^\W\d_])\1{3,}")
_REPEATED_PUNCT = re.compile(r"([!?.,])\1{3,}")
_MAX_TOKEN_LEN = 25

# kana and han share a line legitimately
_SCRIPT_ALIASES = {"HIRAGANA": "CJK", "KATAKANA": "CJK", "KATAKANA-HIRAGANA": "CJK"}
# letter names that describe a symbol rather than a script
_NOT_A_SCRIPT = {"MICRO", "MODIFIER", "FEMININE", "MASCULINE", "COMBINING", "SUPERSCRIPT", "SUBSCRIPT"}


def _first_name_word(ch: str) -> str:
    return unicodedata.name(ch, "").split(" ", 1)[0]


def _script_of(ch: str) -> str:
    if _first_name_word(ch) in _NOT_A_SCRIPT:
        return ""
    # fullwidth, halfwidth and styled letters fold to their base letter
    folded = unicodedata.normalize("NFKC", ch)[:1] or ch
    first = _first_name_word(folded)
    if first in _NOT_A_SCRIPT:
        return ""
    return _SCRIPT_ALIASES.get(first, first)


def detect_scripts(text: str) -> set[str]:
    scripts = set()
    for ch in text:
        if ch.isalpha():
            script = _script_of(ch)
            if script:
                scripts.add(script)
    return scripts


def suspicious_tokens(text: str) -> list[str]:
    found = []
    for token in text.split():
        if (
            "�" in token
            or len(token) > _MAX_TOKEN_LEN
            or _LETTER_DIGIT_MIX.fullmatch(token.strip(".,!?;:\"'()"))
            or _STRETCHED.search(token)
            or _REPEATED_PUNCT.search(token)
        ):
            found.append(token)
    return found


def repeated_words(text: str) -> list[str]:
    words = [w.lower() for w in _WORD.findall(text)]
    return [w for prev, w in zip(words, words[1:]) if w == prev and not w.isdigit()]


def collect_hints(text: str) -> list[str]:
    """Human-readable hints for the diagnosis prompt; empty when the line looks clean."""
    hints = []
    scripts = detect_scripts(text)
    if len(scripts) > 1:
        hints.append(f"mixed scripts ({', '.join(sorted(s.lower() for s in scripts))})")
    tokens = suspicious_tokens(text)
    if tokens:
        hints.append(f"suspicious tokens: {', '.join(tokens[:5])}")
    repeats = repeated_words(text)
    if repeats:
        hints.append(f"repeated words: {', '.join(dict.fromkeys(repeats))}")
    return hints

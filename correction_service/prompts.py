from __future__ import annotations

import json
from typing import Optional

from captions.timestamps import format_timestamp
from common.schemas import Segment, SeverityAssessment

DIAGNOSIS_SYSTEM_PROMPT = """\
You are a subtitle quality reviewer. For every caption line you receive,
judge how badly it needs correction before publication.

You MUST respond with valid JSON matching this schema:
{
  "segments": [
    {
      "index": number,
      "severity": "none | minor | major",
      "reason": "string — short explanation, max 12 words",
      "confidence": number between 0 and 1
    }
  ]
}

Severity guide:
- none: the line reads naturally and is correct
- minor: small grammar, punctuation, spelling or capitalization issues
- major: garbled, misheard, nonsensical or wrong-language text

Local checks may attach hints to a line; treat them as evidence, not verdicts.
Return one entry per supplied index.
"""

PRIORITY_SYSTEM_PROMPT = """\
You are planning a limited subtitle correction pass. Given caption lines that
were flagged for review, choose the ones whose correction matters most to a
viewer, most urgent first.

You MUST respond with valid JSON matching this schema:
{"indices": [number]}

Return at most the requested number of indices and only indices you were given.
"""

REWRITE_SYSTEM_PROMPT = """\
You are a senior subtitle editor finishing captions before a video goes live.
- Rewrite only the target lines so they read naturally for spoken dialogue.
- Use the full transcript for context; never merge or split lines.
- When a line is garbled or repetitive, infer the most likely intent.
- Fix grammar, punctuation, capitalization and obvious misspellings.
- Preserve speaker intent and proper nouns whenever they can be inferred.
- Keep each line concise, generally under 20 words.
- Skip a target only when no improvement is genuinely needed.
- Do not add timestamps, numbering or commentary.

You MUST respond with valid JSON matching this schema:
{
  "segments": [
    {"index": number, "rewrite": "string", "confidence": number between 0 and 1, "notes": "string or null"}
  ]
}
"""


def format_transcript(segments: list[Segment]) -> str:
    lines = []
    for seg in segments:
        text = " ".join(seg.original_text.split())
        lines.append(f"[{seg.index}] {format_timestamp(seg.start_ms)} {text}")
    return "\n".join(lines)


def _header(title: str, language: Optional[str]) -> str:
    return f"Project: {title or 'Untitled project'}\nLanguage: {language or 'unknown'}"


def build_diagnosis_prompt(
    segments: list[Segment],
    hints: dict[int, list[str]],
    title: str = "",
    language: Optional[str] = None,
) -> str:
    payload = []
    for seg in segments:
        item = {"index": seg.index, "text": seg.original_text}
        if hints.get(seg.index):
            item["hints"] = hints[seg.index]
        payload.append(item)

    return f"""\
{_header(title, language)}

Caption lines:
{json.dumps(payload, ensure_ascii=False, indent=2)}

Classify every line and respond with the JSON structure specified."""


def build_priority_prompt(
    candidates: list[tuple[Segment, SeverityAssessment]],
    limit: int,
    title: str = "",
    language: Optional[str] = None,
) -> str:
    payload = [
        {
            "index": seg.index,
            "text": seg.original_text,
            "severity": assessment.severity.value,
            "reason": assessment.reason,
            "confidence": round(assessment.confidence, 2),
        }
        for seg, assessment in candidates
    ]

    return f"""\
{_header(title, language)}

Flagged lines:
{json.dumps(payload, ensure_ascii=False, indent=2)}

Pick at most {limit} indices and respond with the JSON structure specified."""


def build_rewrite_prompt(
    segments: list[Segment],
    targets: list[SeverityAssessment],
    title: str = "",
    language: Optional[str] = None,
) -> str:
    target_payload = [
        {"index": t.index, "severity": t.severity.value, "reason": t.reason}
        for t in targets
    ]

    return f"""\
{_header(title, language)}

Full transcript:
{format_transcript(segments)}

Target lines:
{json.dumps(target_payload, ensure_ascii=False, indent=2)}

Rewrite the target lines and respond with the JSON structure specified."""

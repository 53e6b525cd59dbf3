"""SRT / WebVTT transcript parsing and SRT serialization."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from captions.timestamps import format_timestamp, parse_timestamp
from common.errors import (
    EmptySegments,
    EmptyTranscript,
    MalformedBlock,
    MalformedTimestamp,
    NoSegmentsFound,
)
from common.schemas import Cue, Segment

logger = logging.getLogger(__name__)

TIMING_DIVIDER = "-->"
BOM = "﻿"
VTT_HEADER = "WEBVTT"
METADATA_KEYWORDS = ("NOTE", "STYLE", "REGION")

_HEADER_END = re.compile(r"\r?\n(?:[ \t]*\r?\n)+")
_BLOCK_SPLIT = re.compile(r"\n\s*\n")
_NUMERIC = re.compile(r"[0-9]+")


def strip_container_header(raw: str) -> str:
    """Drop a BOM and a leading WEBVTT header block.

    A header with no blank line after it means the document holds no cues,
    which is reported as an empty string.
    """
    content = raw[1:] if raw.startswith(BOM) else raw
    if not content.startswith(VTT_HEADER):
        return content
    match = _HEADER_END.search(content)
    if match is None:
        return ""
    return content[match.end():]


def _is_metadata_block(lines: list[str]) -> bool:
    first = lines[0].strip().upper()
    return first.startswith(METADATA_KEYWORDS)


def _split_blocks(raw: str) -> list[list[str]]:
    if not isinstance(raw, str) or not raw.strip():
        raise EmptyTranscript("Transcript content must be a non-empty string")

    cleaned = strip_container_header(raw).replace("\r", "").strip()
    if not cleaned:
        raise EmptyTranscript("Transcript appears to be empty")

    blocks = []
    for block in _BLOCK_SPLIT.split(cleaned):
        lines = [line for line in block.strip().split("\n") if line]
        if lines and not _is_metadata_block(lines):
            blocks.append(lines)
    return blocks


def _parse_block(lines: list[str], position: int) -> Segment:
    number = position + 1
    first = lines.pop(0).strip()
    explicit_index = int(first) if _NUMERIC.fullmatch(first) else None

    if explicit_index is None and TIMING_DIVIDER in first:
        timing_line = first
    else:
        # numeric index or a WebVTT cue identifier; the timing line follows
        if not lines:
            raise MalformedBlock(number, "missing timing line")
        timing_line = lines.pop(0)

    if TIMING_DIVIDER not in timing_line:
        raise MalformedBlock(number, f"malformed timing line {timing_line!r}")

    start_raw, _, end_raw = timing_line.partition(TIMING_DIVIDER)
    end_fields = end_raw.split()
    if not end_fields:
        raise MalformedBlock(number, f"missing end time in {timing_line!r}")

    try:
        start_ms = parse_timestamp(start_raw)
        end_ms = parse_timestamp(end_fields[0])
    except MalformedTimestamp as exc:
        raise MalformedTimestamp(f"Block {number}: {exc}") from exc

    if start_ms > end_ms:
        logger.warning("Block %d has inverted timing (%d > %d ms); kept as-is", number, start_ms, end_ms)

    text = "\n".join(lines).strip()
    index = explicit_index if explicit_index else number
    return Segment(index=index, start_ms=start_ms, end_ms=end_ms, original_text=text)


def parse_transcript(raw: str) -> list[Segment]:
    """Parse SRT or WebVTT text into segments, in file order.

    Indices are unique; a repeated block number is moved past the highest
    index seen so far.
    """
    segments = []
    seen: set[int] = set()
    for position, lines in enumerate(_split_blocks(raw)):
        segment = _parse_block(lines, position)
        if segment.index in seen:
            reassigned = max(seen) + 1
            logger.warning("Block %d repeats index %d; using %d", position + 1, segment.index, reassigned)
            segment.index = reassigned
        seen.add(segment.index)
        segments.append(segment)
    if not segments:
        raise NoSegmentsFound("No subtitle segments were detected in the file")
    return segments


def serialize_transcript(cues: Iterable[Cue]) -> str:
    """Render cues as SRT, renumbering blocks from 1."""
    blocks = [
        f"{i}\n{format_timestamp(cue.start_ms)} {TIMING_DIVIDER} {format_timestamp(cue.end_ms)}\n{cue.text}\n"
        for i, cue in enumerate(cues, start=1)
    ]
    if not blocks:
        raise EmptySegments("Cues are required to build SRT output")
    return "\n".join(blocks)

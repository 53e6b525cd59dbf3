from __future__ import annotations

from typing import Iterable

from common.schemas import Cue, Segment


def resolve_display_text(segment: Segment) -> str:
    """Text the reviewer currently wants shown for a segment.

    Precedence when accepted: edited text, then proposed text, then the
    original, skipping only unset (``None``) fields. An edit emptied on
    purpose is kept. A segment that is not accepted always shows the
    original.
    """
    if not segment.accepted:
        return segment.original_text
    for text in (segment.edited_text, segment.proposed_text):
        if text is not None:
            return text
    return segment.original_text


def export_cues(segments: Iterable[Segment]) -> list[Cue]:
    """Order segments by index and pair their timings with display text."""
    return [
        Cue(start_ms=s.start_ms, end_ms=s.end_ms, text=resolve_display_text(s))
        for s in sorted(segments, key=lambda s: s.index)
    ]

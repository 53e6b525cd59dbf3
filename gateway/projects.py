"""Project-level operations the review gateway performs on parsed transcripts."""

from __future__ import annotations

import uuid
from pathlib import PurePosixPath
from typing import Iterable, Optional

from captions.display import export_cues
from captions.srt import parse_transcript, serialize_transcript
from common.schemas import Project, RewriteCandidate, Segment, SegmentUpdate


def build_project(
    owner_id: str,
    content: str,
    title: Optional[str] = None,
    language: str = "",
    file_name: Optional[str] = None,
) -> Project:
    segments = parse_transcript(content)
    return Project(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        title=(title or "").strip() or file_name or "Untitled project",
        language=language,
        source_file_name=file_name,
        segments=segments,
    )


def apply_suggestions(project: Project, suggestions: dict[int, RewriteCandidate]) -> Project:
    """Load pipeline output into the segments as the proposed text.

    Segments with a suggestion start out accepted. Segments without one
    fall back to their original text; a reviewer's hand edit is kept.
    """
    project.suggestions = dict(suggestions)
    for seg in project.segments:
        candidate = suggestions.get(seg.index)
        if candidate is not None:
            seg.proposed_text = candidate.rewrite
            seg.accepted = True
        else:
            seg.proposed_text = seg.original_text
            if seg.edited_text is None:
                seg.accepted = False
    return project


def apply_segment_updates(project: Project, updates: Iterable[SegmentUpdate]) -> list[Segment]:
    by_index = {seg.index: seg for seg in project.segments}
    applied = []
    for update in updates:
        seg = by_index.get(update.index)
        if seg is None or update.is_empty:
            continue
        if update.accepted is not None:
            seg.accepted = update.accepted
        if update.edited_text is not None:
            seg.edited_text = update.edited_text
        if update.proposed_text is not None:
            seg.proposed_text = update.proposed_text
            # an edit that only mirrored the original follows the new proposal
            if update.edited_text is None and seg.edited_text == seg.original_text:
                seg.edited_text = update.proposed_text
        applied.append(seg.model_copy())
    return applied


def export_file_name(project: Project) -> str:
    if project.source_file_name:
        base = PurePosixPath(project.source_file_name).stem
    else:
        base = project.title
    return f"{base or 'export'}.srt"


def export_project(project: Project) -> tuple[str, str]:
    """Return ``(file_name, srt_content)`` with each segment's display text."""
    return export_file_name(project), serialize_transcript(export_cues(project.segments))

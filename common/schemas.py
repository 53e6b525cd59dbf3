from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# --- Caption data model ---

class Segment(BaseModel):
    index: int = Field(gt=0)
    start_ms: int = Field(ge=0)
    end_ms: int = Field(ge=0)
    original_text: str = Field(frozen=True)
    proposed_text: Optional[str] = None
    accepted: bool = False
    edited_text: Optional[str] = None

    def model_post_init(self, __context) -> None:
        if self.proposed_text is None:
            self.proposed_text = self.original_text


class Cue(BaseModel):
    """One serializer input: timings plus the text chosen for display."""

    start_ms: int = Field(ge=0)
    end_ms: int = Field(ge=0)
    text: str


class DiffType(str, Enum):
    equal = "equal"
    insert = "insert"
    delete = "delete"


class DiffToken(BaseModel):
    type: DiffType
    value: str


class Severity(str, Enum):
    none = "none"
    minor = "minor"
    major = "major"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.none: 0, Severity.minor: 1, Severity.major: 2}


class SeverityAssessment(BaseModel):
    index: int
    severity: Severity
    reason: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class RewriteCandidate(BaseModel):
    index: int
    rewrite: str
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    notes: Optional[str] = None
    severity: Severity


class PipelineState(str, Enum):
    pending = "pending"
    diagnosing = "diagnosing"
    prioritizing = "prioritizing"
    rewriting = "rewriting"
    validating = "validating"
    completed = "completed"
    failed_soft = "failed_soft"


# --- Generative service replies ---

def _clamp_unit(value: Optional[float]) -> Optional[float]:
    if value is None or math.isnan(value):
        return None
    return min(max(float(value), 0.0), 1.0)


class DiagnosisItem(BaseModel):
    index: int
    severity: Severity
    reason: str = ""
    confidence: float = 0.5

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("reason", mode="before")
    @classmethod
    def _none_reason(cls, value):
        return value or ""

    @field_validator("confidence", mode="after")
    @classmethod
    def _clamp(cls, value: float) -> float:
        clamped = _clamp_unit(value)
        return 0.5 if clamped is None else clamped


class DiagnosisReply(BaseModel):
    segments: list[DiagnosisItem]


class PriorityReply(BaseModel):
    indices: list[int]


class RewriteItem(BaseModel):
    index: int
    rewrite: str = ""
    confidence: Optional[float] = None
    notes: Optional[str] = None

    @field_validator("rewrite", mode="before")
    @classmethod
    def _none_rewrite(cls, value):
        return value or ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _numeric_confidence(cls, value):
        if isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError, OverflowError):
            return None

    @field_validator("confidence", mode="after")
    @classmethod
    def _clamp(cls, value: Optional[float]) -> Optional[float]:
        return _clamp_unit(value)


class RewriteReply(BaseModel):
    # entries are validated one by one so a bad record only drops itself
    segments: list[Any]


# --- Correction service request / response ---

class ParseRequest(BaseModel):
    content: str


class ParseResponse(BaseModel):
    segments: list[Segment]


class DiffRequest(BaseModel):
    original: str = ""
    edited: str = ""


class DiffResponse(BaseModel):
    tokens: list[DiffToken]


class SuggestRequest(BaseModel):
    title: str = "Untitled project"
    language: str = ""
    segments: list[Segment]


class SuggestResponse(BaseModel):
    state: PipelineState
    suggestions: list[RewriteCandidate]
    failures: list[str] = []


class SerializeRequest(BaseModel):
    cues: list[Cue]


class SerializeResponse(BaseModel):
    content: str


# --- Review gateway ---

class ProjectStatus(str, Enum):
    processing = "processing"
    review = "review"


class Project(BaseModel):
    id: str
    owner_id: str
    title: str = "Untitled project"
    language: str = ""
    source_file_name: Optional[str] = None
    status: ProjectStatus = ProjectStatus.review
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    segments: list[Segment] = []
    suggestions: dict[int, RewriteCandidate] = {}


class CreateProjectRequest(BaseModel):
    title: Optional[str] = None
    language: str = ""
    file_name: Optional[str] = None
    content: str


class SegmentUpdate(BaseModel):
    index: int
    accepted: Optional[bool] = None
    edited_text: Optional[str] = None
    proposed_text: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.accepted is None and self.edited_text is None and self.proposed_text is None


class SegmentUpdateRequest(BaseModel):
    updates: list[SegmentUpdate] = []


class SegmentUpdateResponse(BaseModel):
    segments: list[Segment]

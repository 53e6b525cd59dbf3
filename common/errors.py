"""Error types shared by the caption parser, serializer and correction pipeline."""

from __future__ import annotations


class CaptionError(Exception):
    """Base class for fatal transcript parse/serialize errors."""


class MalformedTimestamp(CaptionError, ValueError):
    pass


class EmptyTranscript(CaptionError):
    pass


class NoSegmentsFound(CaptionError):
    pass


class MalformedBlock(CaptionError):
    def __init__(self, position: int, detail: str) -> None:
        self.position = position
        self.detail = detail
        super().__init__(f"Block {position}: {detail}")


class EmptySegments(CaptionError):
    pass


class ExternalServiceFailure(Exception):
    """A generative-service call failed; the pipeline degrades instead of aborting."""

    def __init__(self, phase: str, detail: str) -> None:
        self.phase = phase
        self.detail = detail
        super().__init__(f"{phase}: {detail}")

"""Multi-phase rewrite suggestion pipeline.

A run diagnoses every segment, picks the most urgent ones, asks for
rewrites of those in a single call and keeps only the rewrites that pass
the acceptance gate. Service failures never escape a run: a failed phase
contributes nothing and the run carries on with what it has.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from captions.diff import changed_characters, diff_words
from common.config import CorrectionSettings
from common.errors import ExternalServiceFailure
from common.schemas import (
    DiagnosisItem,
    DiagnosisReply,
    PipelineState,
    PriorityReply,
    RewriteCandidate,
    RewriteItem,
    RewriteReply,
    Segment,
    Severity,
    SeverityAssessment,
)
from correction_service.heuristics import collect_hints
from correction_service.prompts import (
    DIAGNOSIS_SYSTEM_PROMPT,
    PRIORITY_SYSTEM_PROMPT,
    REWRITE_SYSTEM_PROMPT,
    build_diagnosis_prompt,
    build_priority_prompt,
    build_rewrite_prompt,
)
from correction_service.validator import check_rewrite

logger = logging.getLogger(__name__)

HEURISTIC_CONFIDENCE = 0.35
PADDING_CONFIDENCE = 0.2
PADDING_REASON = "general polish pass"

ReplyT = TypeVar("ReplyT", bound=BaseModel)


@dataclass
class PipelineResult:
    state: PipelineState = PipelineState.pending
    suggestions: dict[int, RewriteCandidate] = field(default_factory=dict)
    assessments: dict[int, SeverityAssessment] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)


def merge_assessment(index: int, item: Optional[DiagnosisItem], hints: list[str]) -> SeverityAssessment:
    """Combine a service verdict (if any) with local hints for one segment."""
    if item is not None:
        severity, reason, confidence = item.severity, item.reason.strip(), item.confidence
    elif hints:
        severity, reason, confidence = Severity.minor, "", HEURISTIC_CONFIDENCE
    else:
        severity, reason, confidence = Severity.none, "", 0.0

    if hints:
        if severity is Severity.none:
            severity = Severity.minor
        hint_text = "hints: " + "; ".join(hints)
        reason = f"{reason} [{hint_text}]" if reason else hint_text

    return SeverityAssessment(index=index, severity=severity, reason=reason, confidence=confidence)


def local_rank_key(assessment: SeverityAssessment) -> tuple:
    return (-assessment.severity.rank, -assessment.confidence, assessment.index)


class SuggestionPipeline:
    """Turns parsed segments into accepted rewrite candidates.

    ``client`` is anything with an async ``complete_json(messages, *,
    temperature, model, phase)`` returning a dict, normally a shared
    :class:`correction_service.llm_client.ChatClient`. The pipeline keeps no
    per-run state, so one instance can serve concurrent runs.
    """

    def __init__(self, client, settings: CorrectionSettings | None = None) -> None:
        self.client = client
        self.settings = settings or CorrectionSettings()

    async def suggest(
        self,
        segments: Sequence[Segment],
        title: str = "",
        language: str = "",
        cancel: asyncio.Event | None = None,
    ) -> dict[int, RewriteCandidate]:
        result = await self.run(segments, title=title, language=language, cancel=cancel)
        return result.suggestions

    async def run(
        self,
        segments: Sequence[Segment],
        title: str = "",
        language: str = "",
        cancel: asyncio.Event | None = None,
    ) -> PipelineResult:
        settings = self.settings
        result = PipelineResult()

        working = list(segments[: settings.max_segments])
        if len(working) < len(segments):
            logger.info("Limiting suggestion run to %d of %d segments", len(working), len(segments))
        if not working:
            result.state = PipelineState.completed
            return result

        result.state = PipelineState.diagnosing
        result.assessments = await self._diagnose(working, title, language, cancel, result.failures)

        result.state = PipelineState.prioritizing
        targets = await self._prioritize(working, result.assessments, title, language, cancel, result.failures)
        if not targets:
            logger.info("No segments selected for rewriting")
            result.state = PipelineState.completed
            return result

        result.state = PipelineState.rewriting
        try:
            reply = await self._call(
                "rewrite",
                REWRITE_SYSTEM_PROMPT,
                build_rewrite_prompt(working, targets, title, language),
                temperature=settings.rewrite_temperature,
                model=settings.effective_rewrite_model,
                reply_model=RewriteReply,
                cancel=cancel,
            )
        except ExternalServiceFailure as exc:
            logger.warning("Rewrite phase failed, no suggestions this run: %s", exc)
            result.failures.append(str(exc))
            result.state = PipelineState.failed_soft
            return result

        result.state = PipelineState.validating
        result.suggestions = self._accept(working, targets, self._rewrite_items(reply.segments))
        logger.info(
            "Suggestion run complete: %d targets, %d rewrites returned, %d accepted",
            len(targets), len(reply.segments), len(result.suggestions),
        )
        result.state = PipelineState.completed
        return result

    async def _call(
        self,
        phase: str,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        model: str,
        reply_model: Type[ReplyT],
        cancel: asyncio.Event | None,
    ) -> ReplyT:
        if cancel is not None and cancel.is_set():
            raise ExternalServiceFailure(phase, "cancelled")

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        request = asyncio.ensure_future(
            self.client.complete_json(messages, temperature=temperature, model=model, phase=phase)
        )
        if cancel is None:
            raw = await request
        else:
            waiter = asyncio.ensure_future(cancel.wait())
            try:
                done, _ = await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                waiter.cancel()
                if not request.done():
                    request.cancel()
            if request not in done:
                raise ExternalServiceFailure(phase, "cancelled")
            raw = request.result()

        try:
            return reply_model.model_validate(raw)
        except ValidationError as exc:
            raise ExternalServiceFailure(phase, f"unexpected reply shape ({exc.error_count()} errors)") from exc

    # --- diagnose ---

    async def _diagnose(
        self,
        working: list[Segment],
        title: str,
        language: str,
        cancel: asyncio.Event | None,
        failures: list[str],
    ) -> dict[int, SeverityAssessment]:
        size = self.settings.batch_size
        hints = {seg.index: collect_hints(seg.original_text) for seg in working}
        batches = [working[i : i + size] for i in range(0, len(working), size)]
        logger.info("Diagnosing %d segments in %d batches", len(working), len(batches))

        replies = await asyncio.gather(
            *(self._diagnose_batch(n, batch, hints, title, language, cancel, failures) for n, batch in enumerate(batches))
        )

        assessments: dict[int, SeverityAssessment] = {}
        for batch, verdicts in zip(batches, replies):
            for seg in batch:
                assessments[seg.index] = merge_assessment(seg.index, verdicts.get(seg.index), hints[seg.index])
        return assessments

    async def _diagnose_batch(
        self,
        number: int,
        batch: list[Segment],
        hints: dict[int, list[str]],
        title: str,
        language: str,
        cancel: asyncio.Event | None,
        failures: list[str],
    ) -> dict[int, DiagnosisItem]:
        try:
            reply = await self._call(
                "diagnose",
                DIAGNOSIS_SYSTEM_PROMPT,
                build_diagnosis_prompt(batch, hints, title, language),
                temperature=self.settings.diagnosis_temperature,
                model=self.settings.model_name,
                reply_model=DiagnosisReply,
                cancel=cancel,
            )
        except ExternalServiceFailure as exc:
            logger.warning("Diagnosis batch %d failed, using local hints only: %s", number, exc)
            failures.append(f"batch {number}: {exc}")
            return {}

        known = {seg.index for seg in batch}
        return {item.index: item for item in reply.segments if item.index in known}

    # --- prioritize ---

    async def _prioritize(
        self,
        working: list[Segment],
        assessments: dict[int, SeverityAssessment],
        title: str,
        language: str,
        cancel: asyncio.Event | None,
        failures: list[str],
    ) -> list[SeverityAssessment]:
        settings = self.settings
        by_index = {seg.index: seg for seg in working}
        ranked = sorted(
            (a for a in assessments.values() if a.severity is not Severity.none),
            key=local_rank_key,
        )

        picks: list[int] = []
        if ranked:
            try:
                reply = await self._call(
                    "prioritize",
                    PRIORITY_SYSTEM_PROMPT,
                    build_priority_prompt(
                        [(by_index[a.index], a) for a in ranked], settings.max_targets, title, language
                    ),
                    temperature=settings.diagnosis_temperature,
                    model=settings.model_name,
                    reply_model=PriorityReply,
                    cancel=cancel,
                )
            except ExternalServiceFailure as exc:
                logger.warning("Prioritization failed, ranking locally: %s", exc)
                failures.append(str(exc))
            else:
                flagged = {a.index for a in ranked}
                for index in reply.indices:
                    if index in flagged and index not in picks:
                        picks.append(index)
                picks = picks[: settings.max_targets]

        if len(picks) < settings.min_targets:
            for assessment in ranked:
                if len(picks) >= settings.max_targets:
                    break
                if assessment.index not in picks:
                    picks.append(assessment.index)

        targets = [assessments[index] for index in picks]
        floor = min(settings.min_targets, settings.max_targets)
        if len(targets) < floor and len(working) >= settings.padding_min_segments:
            targets.extend(self._pad_targets(working, assessments, set(picks), floor - len(targets)))

        logger.info("Selected %d of %d segments for rewriting", len(targets), len(working))
        return targets

    def _pad_targets(
        self,
        working: list[Segment],
        assessments: dict[int, SeverityAssessment],
        selected: set[int],
        need: int,
    ) -> list[SeverityAssessment]:
        """Spread extra low-confidence targets evenly over unflagged segments."""
        pool = [
            seg
            for seg in working
            if seg.index not in selected
            and assessments[seg.index].severity is Severity.none
            and seg.original_text.strip()
        ]
        if need <= 0 or not pool:
            return []

        stride = max(1, len(pool) // need)
        padded = []
        for seg in pool[::stride][:need]:
            assessment = SeverityAssessment(
                index=seg.index,
                severity=Severity.minor,
                reason=PADDING_REASON,
                confidence=PADDING_CONFIDENCE,
            )
            assessments[seg.index] = assessment
            padded.append(assessment)
        return padded

    # --- validate and rank ---

    @staticmethod
    def _rewrite_items(entries: list) -> list[RewriteItem]:
        items = []
        for entry in entries:
            try:
                items.append(RewriteItem.model_validate(entry))
            except ValidationError as exc:
                logger.debug("Skipping malformed rewrite entry %r (%d errors)", entry, exc.error_count())
        return items

    def _accept(
        self,
        working: list[Segment],
        targets: list[SeverityAssessment],
        items: list[RewriteItem],
    ) -> dict[int, RewriteCandidate]:
        settings = self.settings
        by_index = {seg.index: seg for seg in working}
        target_map = {t.index: t for t in targets}

        ranked = []
        seen: set[int] = set()
        for item in items:
            target = target_map.get(item.index)
            rewrite = item.rewrite.strip()
            if target is None or not rewrite or item.index in seen:
                continue
            seen.add(item.index)

            original = by_index[item.index].original_text
            rejection = check_rewrite(
                original,
                rewrite,
                settings.max_char_delta,
                settings.max_length_ratio,
                settings.min_length_ratio,
            )
            if rejection is not None:
                logger.debug("Rejected rewrite for segment %d (%s)", item.index, rejection.value)
                continue

            confidence = item.confidence if item.confidence is not None else target.confidence
            changed = changed_characters(diff_words(original.strip(), rewrite))
            candidate = RewriteCandidate(
                index=item.index,
                rewrite=rewrite,
                confidence=item.confidence,
                notes=(item.notes or "").strip() or None,
                severity=target.severity,
            )
            ranked.append(((-target.severity.rank, -confidence, -changed), candidate))

        ranked.sort(key=lambda pair: pair[0])
        return {candidate.index: candidate for _, candidate in ranked[: settings.max_targets]}

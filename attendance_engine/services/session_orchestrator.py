# attendance_engine/services/session_orchestrator.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.config import EngineConfig
from attendance_engine.models.session import ClassSession
from attendance_engine.schemas.attendance import AttendanceCounts
from attendance_engine.schemas.cliff_detection import (
    Applied,
    CliffDetectionResult,
    Confidence,
    DetectionStatus,
    Dismissed,
    NotReviewed,
    ReviewState,
)
from attendance_engine.schemas.meeting import MeetingRecord
from attendance_engine.schemas.participant import IdentityMatchResult, RejectedParticipant
from attendance_engine.schemas.session import (
    ApplyAllItem,
    ApplyAllResponse,
    BulkDetectionResponse,
    BulkSummary,
    PerSessionResult,
    ReviewOutcome,
    SessionCliffState,
)
from attendance_engine.services import session_store
from attendance_engine.services.attendance_calculator import AttendanceCalculator
from attendance_engine.services.cliff_detector import CliffDetector
from attendance_engine.services.departure_histogram import DepartureHistogramBuilder
from attendance_engine.services.errors import (
    InsufficientDataError,
    MalformedEventError,
    ParticipantSourceError,
    RecalculationError,
)
from attendance_engine.services.identity_matcher import IdentityMatcher, UserDirectory
from attendance_engine.services.participant_source import ParticipantSource
from attendance_engine.services.segment_normalizer import SegmentNormalizer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure pipeline
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MeetingAnalysis:
    matches: IdentityMatchResult
    rejected: tuple[MalformedEventError, ...]
    meeting_duration_minutes: float

    @property
    def rejected_participants(self) -> List[RejectedParticipant]:
        return [
            RejectedParticipant(participant_key=exc.participant_key, reason=exc.problem)
            for exc in self.rejected
        ]


def analyze_meeting(
    record: MeetingRecord,
    directory: UserDirectory,
    config: EngineConfig,
) -> MeetingAnalysis:
    """
    Raw events -> normalized segments -> identity-resolved attendees.
    """
    normalized = SegmentNormalizer(config.merge_gap_minutes).normalize(
        record.events,
        meeting_start=record.start_time,
        meeting_end=record.end_time,
    )
    matches = IdentityMatcher(directory, config.merge_gap_minutes).match(
        normalized.participants
    )
    return MeetingAnalysis(
        matches=matches,
        rejected=normalized.rejected,
        meeting_duration_minutes=record.observed_duration_minutes,
    )


def detect_formal_end(analysis: MeetingAnalysis, config: EngineConfig) -> CliffDetectionResult:
    """
    Histogram + cliff detection. Insufficient data yields a `skipped` result.
    Participants rejected during normalization are listed on the result.
    """
    result = _run_detector(analysis, config)
    if not analysis.rejected:
        return result
    return result.model_copy(update={"rejected_participants": analysis.rejected_participants})


def _run_detector(analysis: MeetingAnalysis, config: EngineConfig) -> CliffDetectionResult:
    participants = analysis.matches.participants
    if not participants:
        return CliffDetectionResult.skipped("NO_PARTICIPANT_DATA")

    try:
        histogram = DepartureHistogramBuilder.build(
            participants,
            analysis.meeting_duration_minutes,
            config.bucket_width_minutes,
        )
    except InsufficientDataError as exc:
        return CliffDetectionResult.skipped(exc.code, total_participants=len(participants))

    try:
        return CliffDetector(config).detect(histogram)
    except InsufficientDataError as exc:
        return CliffDetectionResult.skipped(
            exc.code,
            total_participants=histogram.total_participants,
            histogram=list(histogram.buckets),
        )


def resolve_full_duration(record: MeetingRecord, session: ClassSession) -> int:
    """
    Provider actual duration -> stored actual duration -> scheduled duration.
    """
    for candidate in (
        record.actual_duration_minutes,
        session.actual_duration_minutes,
        session.duration_minutes,
    ):
        if candidate and candidate > 0:
            return int(candidate)
    raise RecalculationError(
        "could not determine meeting duration from any source",
        session_id=session.id,
    )


def summarize(results: List[PerSessionResult]) -> BulkSummary:
    detected = [r for r in results if r.status == DetectionStatus.DETECTED]
    return BulkSummary(
        total=len(results),
        detected=len(detected),
        high_confidence=sum(1 for r in detected if r.confidence == Confidence.HIGH),
        medium_confidence=sum(1 for r in detected if r.confidence == Confidence.MEDIUM),
        low_confidence=sum(1 for r in detected if r.confidence == Confidence.LOW),
        no_cliff=sum(1 for r in results if r.status == DetectionStatus.NO_CLIFF),
        skipped=sum(1 for r in results if r.status == DetectionStatus.SKIPPED),
        errors=sum(1 for r in results if r.status == DetectionStatus.ERROR),
        total_students_impacted=sum(r.students_impacted or 0 for r in detected),
    )


@dataclass(frozen=True)
class _SessionRef:
    id: int
    title: str
    meeting_uuid: Optional[str]
    review_state: ReviewState


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class SessionOrchestrator:
    """
    Public entry point of the attendance engine.

    Owns every write to a session's detection result and review state, and
    every attendance recalculation. Provider fetches are the only awaited
    I/O besides the database.

    State machine
    -------------
    - detect: stores a fresh CliffDetectionResult, never touches the review
      state.
    - apply: review state -> Applied(effective_end), then recalculates with
      the effective end as basis.
    - dismiss: review state -> Dismissed, then recalculates with the full
      meeting duration.

    The review decision is committed before recalculating. A failed
    recalculation is reported in the outcome, not by undoing the decision.
    """

    def __init__(
        self,
        db: AsyncSession,
        participant_source: ParticipantSource,
        config: Optional[EngineConfig] = None,
        fetch_concurrency: int = 4,
    ) -> None:
        self.db = db
        self.source = participant_source
        self.config = config or EngineConfig()
        self.fetch_concurrency = max(1, fetch_concurrency)

    # -- reads --------------------------------------------------------------

    async def get_state(self, session_id: int) -> SessionCliffState:
        session = await session_store.get_session(self.db, session_id)
        return SessionCliffState(
            session_id=session.id,
            title=session.title,
            formal_end_minutes=session.formal_end_minutes,
            cliff_detection=session_store.stored_detection(session),
            review_state=session_store.review_state_of(session),
        )

    # -- detection ----------------------------------------------------------

    async def detect(self, session_id: int) -> CliffDetectionResult:
        """
        Run detection for one session and store the result.

        Raises SessionNotFoundError or ParticipantSourceError (with the
        session id attached); insufficient data is a `skipped` result.
        """
        session = await session_store.get_session(self.db, session_id)

        if not session.zoom_meeting_uuid:
            result = CliffDetectionResult.skipped("NO_MEETING_UUID")
        else:
            try:
                record = await self.source.fetch_meeting(session.zoom_meeting_uuid)
            except ParticipantSourceError as exc:
                raise exc.with_session(session.id)
            directory = await session_store.load_user_directory(self.db)
            result = self._detect_from_record(session.id, record, directory)

        session_store.write_detection(session, result)
        await self.db.commit()
        return result

    async def detect_bulk(self, force: bool = False) -> BulkDetectionResponse:
        """
        Detect cliffs for every session linked to a meeting.

        Sessions already Applied/Dismissed are skipped unless `force`; even
        when forced, only the stored detection is overwritten and the review
        decision is kept. Each session is isolated: a failure becomes an
        `error` entry and the batch carries on.
        """
        sessions = await session_store.list_sessions_with_meetings(self.db)
        refs = [
            _SessionRef(
                id=s.id,
                title=s.title,
                meeting_uuid=s.zoom_meeting_uuid,
                review_state=session_store.review_state_of(s),
            )
            for s in sessions
        ]

        eligible = [ref for ref in refs if force or isinstance(ref.review_state, NotReviewed)]
        records = await self._prefetch(eligible)
        directory = await session_store.load_user_directory(self.db)

        results: List[PerSessionResult] = []
        for ref in refs:
            if ref.id not in records:
                reason = (
                    "PREVIOUSLY_APPLIED"
                    if isinstance(ref.review_state, Applied)
                    else "PREVIOUSLY_DISMISSED"
                )
                results.append(
                    PerSessionResult(
                        session_id=ref.id,
                        title=ref.title,
                        status=DetectionStatus.SKIPPED,
                        reason=reason,
                    )
                )
                continue

            fetched = records[ref.id]
            if isinstance(fetched, Exception):
                results.append(self._error_result(ref, fetched))
                continue

            try:
                session = await session_store.get_session(self.db, ref.id)
                result = self._detect_from_record(ref.id, fetched, directory)
                session_store.write_detection(session, result)
                await self.db.commit()
            except Exception as exc:
                await self.db.rollback()
                logger.warning(
                    "Bulk detection failed for session %s: %s",
                    ref.id,
                    exc,
                    exc_info=True,
                    extra={"session_id": ref.id},
                )
                results.append(self._error_result(ref, exc))
                continue

            results.append(
                PerSessionResult(
                    session_id=ref.id,
                    title=ref.title,
                    status=result.status,
                    confidence=result.confidence,
                    effective_end_minutes=result.effective_end_minutes,
                    students_impacted=result.students_impacted,
                    reason=result.reason,
                    rejected_participants=result.rejected_participants,
                )
            )

        summary = summarize(results)
        logger.info(
            "Bulk detection finished: total=%s detected=%s no_cliff=%s skipped=%s errors=%s",
            summary.total,
            summary.detected,
            summary.no_cliff,
            summary.skipped,
            summary.errors,
        )
        return BulkDetectionResponse(summary=summary, results=results)

    # -- review -------------------------------------------------------------

    async def apply(self, session_id: int, effective_end_minutes: int) -> ReviewOutcome:
        if effective_end_minutes <= 0:
            raise ValueError("effective_end_minutes must be a positive number of minutes")

        state = Applied(
            effective_end_minutes=effective_end_minutes,
            applied_at=datetime.now(tz=timezone.utc),
        )
        return await self._review(session_id, state)

    async def dismiss(self, session_id: int) -> ReviewOutcome:
        state = Dismissed(dismissed_at=datetime.now(tz=timezone.utc))
        return await self._review(session_id, state)

    async def apply_all(self, min_confidence: Confidence = Confidence.HIGH) -> ApplyAllResponse:
        """
        Apply the stored effective end of every not-yet-reviewed session
        whose last detection reached `min_confidence`.
        """
        sessions = await session_store.list_sessions_with_meetings(self.db)
        candidates = []
        for s in sessions:
            detection = session_store.stored_detection(s)
            if (
                isinstance(session_store.review_state_of(s), NotReviewed)
                and detection is not None
                and detection.detected
                and detection.confidence is not None
                and detection.confidence.rank >= min_confidence.rank
                and detection.effective_end_minutes
            ):
                candidates.append((s.id, s.title, detection.effective_end_minutes))

        items: List[ApplyAllItem] = []
        for session_id, title, effective_end in candidates:
            try:
                outcome = await self.apply(session_id, effective_end)
            except Exception as exc:
                await self.db.rollback()
                logger.warning(
                    "Apply-all failed for session %s: %s",
                    session_id,
                    exc,
                    extra={"session_id": session_id},
                )
                items.append(
                    ApplyAllItem(
                        session_id=session_id,
                        title=title,
                        effective_end_minutes=effective_end,
                        applied=False,
                        error=str(exc),
                    )
                )
                continue

            items.append(
                ApplyAllItem(
                    session_id=session_id,
                    title=title,
                    effective_end_minutes=effective_end,
                    applied=True,
                    attendance=outcome.attendance,
                    error=outcome.recalculation_error,
                )
            )

        return ApplyAllResponse(
            total=len(candidates),
            applied=sum(1 for i in items if i.applied),
            failed=sum(1 for i in items if not i.applied or i.error),
            results=items,
        )

    # -- attendance ---------------------------------------------------------

    async def calculate(self, session_id: int) -> AttendanceCounts:
        """
        Recompute attendance with the basis implied by the current review
        state. Raises RecalculationError on failure.
        """
        session = await session_store.get_session(self.db, session_id)
        try:
            counts = await self._recalculate(session)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise RecalculationError(str(exc), session_id=session_id) from exc
        except RecalculationError:
            await self.db.rollback()
            raise
        return counts

    # -- internals ----------------------------------------------------------

    async def _review(self, session_id: int, state: Union[Applied, Dismissed]) -> ReviewOutcome:
        session = await session_store.get_session(self.db, session_id)
        session_store.write_review_state(session, state)
        await self.db.commit()
        formal_end = session.formal_end_minutes

        logger.info(
            "Session %s review state -> %s (formal_end=%s)",
            session_id,
            state.kind,
            formal_end,
            extra={"session_id": session_id},
        )

        try:
            counts = await self.calculate(session_id)
        except RecalculationError as exc:
            logger.warning(
                "Recalculation after %s failed for session %s: %s",
                state.kind,
                session_id,
                exc,
                extra={"session_id": session_id},
            )
            return ReviewOutcome(
                session_id=session_id,
                review_state=state,
                formal_end_minutes=formal_end,
                recalculation_error=str(exc),
            )

        return ReviewOutcome(
            session_id=session_id,
            review_state=state,
            formal_end_minutes=formal_end,
            attendance=counts,
        )

    async def _recalculate(self, session: ClassSession) -> AttendanceCounts:
        if not session.zoom_meeting_uuid:
            raise RecalculationError("session is not linked to a meeting", session_id=session.id)

        try:
            record = await self.source.fetch_meeting(session.zoom_meeting_uuid)
        except ParticipantSourceError as exc:
            raise RecalculationError(exc.reason, session_id=session.id) from exc

        directory = await session_store.load_user_directory(self.db)
        analysis = analyze_meeting(record, directory, self.config)
        self._report_rejected(session.id, analysis)

        state = session_store.review_state_of(session)
        if isinstance(state, Applied):
            basis: float = state.effective_end_minutes
        else:
            basis = resolve_full_duration(record, session)

        try:
            records = AttendanceCalculator.calculate_all(analysis.matches.attendees, basis)
        except RecalculationError as exc:
            raise exc.with_session(session.id)

        await session_store.replace_attendance(self.db, session.id, records)

        logger.info(
            "Session %s attendance recalculated: imported=%s unmatched=%s basis=%s",
            session.id,
            analysis.matches.imported,
            analysis.matches.unmatched_count,
            basis,
            extra={"session_id": session.id},
        )
        return AttendanceCounts(
            imported=analysis.matches.imported,
            unmatched=analysis.matches.unmatched_count,
            duration_basis_minutes=basis,
            rejected_participants=analysis.rejected_participants,
        )

    def _detect_from_record(
        self,
        session_id: int,
        record: MeetingRecord,
        directory: UserDirectory,
    ) -> CliffDetectionResult:
        analysis = analyze_meeting(record, directory, self.config)
        self._report_rejected(session_id, analysis)
        result = detect_formal_end(analysis, self.config)

        logger.info(
            "Session %s detection: status=%s confidence=%s effective_end=%s reason=%s",
            session_id,
            result.status.value,
            result.confidence.value if result.confidence else None,
            result.effective_end_minutes,
            result.reason,
            extra={"session_id": session_id},
        )
        return result

    async def _prefetch(
        self,
        refs: List[_SessionRef],
    ) -> Dict[int, Union[MeetingRecord, Exception]]:
        """
        Fetch meeting records concurrently, at most `fetch_concurrency` at a
        time. Failures are returned in place of the record.
        """
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def _one(ref: _SessionRef) -> Union[MeetingRecord, Exception]:
            async with semaphore:
                try:
                    return await self.source.fetch_meeting(ref.meeting_uuid or "")
                except ParticipantSourceError as exc:
                    return exc.with_session(ref.id)
                except Exception as exc:
                    logger.warning(
                        "Unexpected fetch failure for session %s: %s",
                        ref.id,
                        exc,
                        exc_info=True,
                        extra={"session_id": ref.id},
                    )
                    return exc

        fetched = await asyncio.gather(*(_one(ref) for ref in refs))
        return {ref.id: value for ref, value in zip(refs, fetched)}

    @staticmethod
    def _error_result(ref: _SessionRef, exc: Exception) -> PerSessionResult:
        return PerSessionResult(
            session_id=ref.id,
            title=ref.title,
            status=DetectionStatus.ERROR,
            error=str(exc) or exc.__class__.__name__,
        )

    @staticmethod
    def _report_rejected(session_id: int, analysis: MeetingAnalysis) -> None:
        for exc in analysis.rejected:
            exc.with_session(session_id)
            logger.warning("%s", exc, extra={"session_id": session_id})

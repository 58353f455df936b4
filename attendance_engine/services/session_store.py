# attendance_engine/services/session_store.py
from __future__ import annotations

import logging
from typing import List, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.models.attendance import Attendance, AttendanceSegmentRow
from attendance_engine.models.session import ClassSession, ReviewStateValue
from attendance_engine.models.user import Profile, UserEmailAlias
from attendance_engine.schemas.attendance import AttendanceRecord
from attendance_engine.schemas.cliff_detection import (
    Applied,
    CliffDetectionResult,
    Dismissed,
    NotReviewed,
    ReviewState,
)
from attendance_engine.schemas.participant import MatchedAttendee
from attendance_engine.services.errors import SessionNotFoundError
from attendance_engine.services.identity_matcher import UserDirectory

logger = logging.getLogger(__name__)


async def get_session(db: AsyncSession, session_id: int) -> ClassSession:
    result = await db.execute(select(ClassSession).where(ClassSession.id == session_id))
    session = result.scalar_one_or_none()
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


async def list_sessions_with_meetings(db: AsyncSession) -> List[ClassSession]:
    """
    Sessions linked to a provider meeting, newest first.
    """
    stmt = (
        select(ClassSession)
        .where(ClassSession.zoom_meeting_uuid.is_not(None))
        .order_by(ClassSession.scheduled_at.desc(), ClassSession.id.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def load_user_directory(db: AsyncSession) -> UserDirectory:
    profiles = await db.execute(select(Profile.email, Profile.id))
    aliases = await db.execute(select(UserEmailAlias.alias_email, UserEmailAlias.user_id))
    return UserDirectory.from_entries(
        primary=[(email, user_id) for email, user_id in profiles.all()],
        aliases=[(email, user_id) for email, user_id in aliases.all()],
    )


# ---------------------------------------------------------------------------
# Detection / review state
# ---------------------------------------------------------------------------

def stored_detection(session: ClassSession) -> CliffDetectionResult | None:
    if not session.cliff_detection:
        return None
    return CliffDetectionResult.model_validate(session.cliff_detection)


def review_state_of(session: ClassSession) -> ReviewState:
    """
    Rebuild the tagged review state from its persisted columns.

    An `applied` row without a positive effective end cannot be honoured;
    it is logged and read as not reviewed so the session can be re-decided.
    """
    if session.review_state == ReviewStateValue.APPLIED:
        if session.formal_end_minutes and session.formal_end_minutes > 0:
            return Applied(
                effective_end_minutes=session.formal_end_minutes,
                applied_at=session.applied_at,
            )
        logger.warning(
            "Session %s is marked applied but has no effective end (formal_end_minutes=%r); "
            "treating it as not reviewed",
            session.id,
            session.formal_end_minutes,
            extra={"session_id": session.id},
        )
        return NotReviewed()
    if session.review_state == ReviewStateValue.DISMISSED:
        return Dismissed(dismissed_at=session.dismissed_at)
    return NotReviewed()


def write_detection(session: ClassSession, result: CliffDetectionResult) -> None:
    session.cliff_detection = result.model_dump(mode="json")


def write_review_state(session: ClassSession, state: ReviewState) -> None:
    if isinstance(state, Applied):
        session.review_state = ReviewStateValue.APPLIED
        session.formal_end_minutes = state.effective_end_minutes
        session.applied_at = state.applied_at
        session.dismissed_at = None
    elif isinstance(state, Dismissed):
        session.review_state = ReviewStateValue.DISMISSED
        session.formal_end_minutes = None
        session.applied_at = None
        session.dismissed_at = state.dismissed_at
    else:
        session.review_state = ReviewStateValue.NOT_REVIEWED
        session.formal_end_minutes = None
        session.applied_at = None
        session.dismissed_at = None


# ---------------------------------------------------------------------------
# Attendance rows
# ---------------------------------------------------------------------------

async def replace_attendance(
    db: AsyncSession,
    session_id: int,
    records: Sequence[AttendanceRecord],
) -> None:
    """
    Delete every attendance row of the session and insert the new ones.
    Does not commit.
    """
    existing = select(Attendance.id).where(Attendance.session_id == session_id)
    await db.execute(
        delete(AttendanceSegmentRow).where(AttendanceSegmentRow.attendance_id.in_(existing))
    )
    await db.execute(delete(Attendance).where(Attendance.session_id == session_id))

    for record in records:
        attendee = record.participant
        participant = attendee.participant
        row = Attendance(
            session_id=session_id,
            user_id=attendee.user_id if isinstance(attendee, MatchedAttendee) else None,
            participant_email=participant.email,
            display_name=participant.display_name,
            first_join_minute=participant.first_join_minute,
            last_leave_minute=participant.final_departure_minute,
            duration_attended_minutes=record.duration_attended_minutes,
            duration_basis_minutes=record.duration_basis_minutes,
            attendance_percentage=record.percentage,
        )
        row.segments = [
            AttendanceSegmentRow(start_minute=seg.start_minute, end_minute=seg.end_minute)
            for seg in participant.segments
        ]
        db.add(row)

    await db.flush()


async def list_attendance(db: AsyncSession, session_id: int) -> List[Attendance]:
    result = await db.execute(
        select(Attendance)
        .where(Attendance.session_id == session_id)
        .order_by(Attendance.id.asc())
    )
    return list(result.scalars().all())

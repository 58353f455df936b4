# attendance_engine/models/session.py
from sqlalchemy import JSON, Column, DateTime, Integer, String, func

from attendance_engine.db.base import Base


class ReviewStateValue:
    NOT_REVIEWED = "not_reviewed"
    APPLIED = "applied"
    DISMISSED = "dismissed"


class ClassSession(Base):
    """
    A live teaching session backed by a recorded provider meeting.

    Holds the last cliff detection result and the admin's review decision.
    `cliff_detection` is only ever written by detection; the review columns
    only by apply/dismiss.
    """

    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)

    zoom_meeting_uuid = Column(String(255), nullable=True, index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=True, index=True)

    duration_minutes = Column(
        Integer,
        nullable=False,
        default=60,
    )
    actual_duration_minutes = Column(Integer, nullable=True)

    formal_end_minutes = Column(Integer, nullable=True)
    cliff_detection = Column(JSON, nullable=True)

    review_state = Column(
        String(32),
        nullable=False,
        default=ReviewStateValue.NOT_REVIEWED,
    )
    applied_at = Column(DateTime(timezone=True), nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return (
            f"<ClassSession id={self.id} title={self.title!r} "
            f"review_state={self.review_state} formal_end={self.formal_end_minutes}>"
        )

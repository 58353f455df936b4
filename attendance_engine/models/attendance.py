# attendance_engine/models/attendance.py
from sqlalchemy import Column, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from attendance_engine.db.base import Base


class Attendance(Base):
    """
    Computed attendance of one participant in one session. All rows of a
    session are deleted and re-inserted on every recalculation.
    """

    __tablename__ = "attendance"

    id = Column(Integer, primary_key=True, index=True)

    session_id = Column(
        Integer,
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    participant_email = Column(String(320), nullable=True)
    display_name = Column(String(255), nullable=True)

    first_join_minute = Column(Float, nullable=False, default=0.0)
    last_leave_minute = Column(Float, nullable=False, default=0.0)
    duration_attended_minutes = Column(Float, nullable=False, default=0.0)
    duration_basis_minutes = Column(Float, nullable=False)
    attendance_percentage = Column(Integer, nullable=False, default=0)

    segments = relationship(
        "AttendanceSegmentRow",
        backref="attendance",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Attendance id={self.id} session_id={self.session_id} "
            f"user_id={self.user_id} pct={self.attendance_percentage}>"
        )


class AttendanceSegmentRow(Base):
    """
    One merged presence segment backing an attendance row.
    """

    __tablename__ = "attendance_segments"

    id = Column(Integer, primary_key=True, index=True)
    attendance_id = Column(
        Integer,
        ForeignKey("attendance.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_minute = Column(Float, nullable=False)
    end_minute = Column(Float, nullable=False)

# attendance_engine/services/errors.py
from __future__ import annotations

from datetime import datetime
from typing import Optional


class AttendanceEngineError(RuntimeError):
    """
    Base class for every failure raised by the attendance engine.

    `session_id` is attached whenever the failing session is known, and is
    always part of the rendered message so callers can report it as-is.
    """

    def __init__(self, reason: str, session_id: Optional[int] = None) -> None:
        self.reason = reason
        self.session_id = session_id
        super().__init__(reason)

    def with_session(self, session_id: int) -> "AttendanceEngineError":
        self.session_id = session_id
        return self

    def __str__(self) -> str:
        if self.session_id is None:
            return self.reason
        return f"Session {self.session_id}: {self.reason}"


class MalformedEventError(AttendanceEngineError):
    """
    Raised (or collected) when a raw presence event is unusable, e.g. its
    leave time is at or before its join time.

    Only the offending participant is dropped; the rest of the session is
    still analyzed.
    """

    def __init__(
        self,
        participant_key: str,
        join_time: Optional[datetime],
        leave_time: Optional[datetime],
        reason: str = "leave time must be after join time",
        session_id: Optional[int] = None,
    ) -> None:
        self.participant_key = participant_key
        self.join_time = join_time
        self.leave_time = leave_time
        self.problem = reason
        super().__init__(
            f"Malformed event for participant '{participant_key}' "
            f"(join={_iso(join_time)}, leave={_iso(leave_time)}): {reason}",
            session_id=session_id,
        )


class InsufficientDataError(AttendanceEngineError):
    """
    Too few participants or too short a meeting to run cliff detection.
    Surfaces as a `skipped` status, never as a hard failure.
    """

    def __init__(self, reason: str, code: str, session_id: Optional[int] = None) -> None:
        self.code = code
        super().__init__(reason, session_id=session_id)


class RecalculationError(AttendanceEngineError):
    """
    Attendance could not be recomputed. When raised after an apply/dismiss,
    the review decision has already been stored and only the recalculation
    needs to be retried.
    """


class ParticipantSourceError(AttendanceEngineError):
    """
    The meeting provider could not deliver participant data.
    """


class SessionNotFoundError(AttendanceEngineError, LookupError):
    def __init__(self, session_id: int) -> None:
        super().__init__("session not found", session_id=session_id)


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else "None"

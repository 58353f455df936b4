# attendance_engine/schemas/attendance.py
from pydantic import BaseModel, ConfigDict, Field

from attendance_engine.schemas.participant import Attendee, MatchedAttendee, RejectedParticipant


class AttendanceRecord(BaseModel):
    """
    Attendance of one matched or unmatched participant against a duration
    basis. Always recomputed from scratch, never patched.
    """

    model_config = ConfigDict(frozen=True)

    participant: Attendee = Field(..., discriminator="kind")
    duration_attended_minutes: float = Field(
        ...,
        ge=0,
        description="Presence inside [0, duration_basis_minutes].",
        examples=[43.0],
    )
    duration_basis_minutes: float = Field(
        ...,
        gt=0,
        description="Denominator: full meeting duration or the applied effective end.",
        examples=[45.0],
    )
    percentage: int = Field(..., ge=0, le=100, examples=[96])

    @property
    def is_matched(self) -> bool:
        return isinstance(self.participant, MatchedAttendee)


class AttendanceCounts(BaseModel):
    """
    Result of an attendance recalculation for one session.
    """

    imported: int = Field(..., description="Attendance rows tied to a known user.", examples=[27])
    unmatched: int = Field(..., description="Attendance rows left unmatched.", examples=[3])
    duration_basis_minutes: float = Field(
        ...,
        description="Denominator used for every percentage in this run.",
        examples=[45.0],
    )
    rejected_participants: list[RejectedParticipant] = Field(
        default_factory=list,
        description="Participants without an attendance row because of malformed events.",
    )

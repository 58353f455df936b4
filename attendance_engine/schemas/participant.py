# attendance_engine/schemas/participant.py
from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AttendanceSegment(BaseModel):
    """
    A continuous presence interval, in minutes relative to the meeting start.
    """

    model_config = ConfigDict(frozen=True)

    start_minute: float = Field(..., ge=0, examples=[0.0])
    end_minute: float = Field(..., ge=0, examples=[10.0])

    @model_validator(mode="after")
    def _check_order(self) -> "AttendanceSegment":
        if self.end_minute < self.start_minute:
            raise ValueError("end_minute must not precede start_minute")
        return self

    @property
    def length(self) -> float:
        return self.end_minute - self.start_minute


class NormalizedParticipant(BaseModel):
    """
    One participant after segment normalization.

    Segments are sorted and non-overlapping; segments closer than the merge
    gap have already been merged.
    """

    model_config = ConfigDict(frozen=True)

    identity_key: str = Field(..., description="Grouping key the segments were merged under.")
    email: str | None = Field(None, description="Normalized (trimmed, lower-case) email.")
    display_name: str | None = None
    segments: tuple[AttendanceSegment, ...] = Field(default_factory=tuple)

    @property
    def final_departure_minute(self) -> float:
        if not self.segments:
            return 0.0
        return self.segments[-1].end_minute

    @property
    def first_join_minute(self) -> float:
        if not self.segments:
            return 0.0
        return self.segments[0].start_minute


class MatchedAttendee(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["matched"] = "matched"
    user_id: int
    participant: NormalizedParticipant


class UnmatchedAttendee(BaseModel):
    """
    A participant that could not be tied to a known account. Keeps whatever
    the provider reported so an admin can resolve it by hand.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["unmatched"] = "unmatched"
    email: str | None = None
    display_name: str | None = None
    participant: NormalizedParticipant


Attendee = Union[MatchedAttendee, UnmatchedAttendee]


class IdentityMatchResult(BaseModel):
    """
    Total, disjoint partition of normalized participants.
    """

    model_config = ConfigDict(frozen=True)

    matched: tuple[MatchedAttendee, ...] = ()
    unmatched: tuple[UnmatchedAttendee, ...] = ()

    @property
    def attendees(self) -> list[Attendee]:
        return [*self.matched, *self.unmatched]

    @property
    def participants(self) -> list[NormalizedParticipant]:
        return [a.participant for a in self.attendees]

    @property
    def imported(self) -> int:
        return len(self.matched)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched)


class RejectedParticipant(BaseModel):
    """
    A participant dropped before analysis because one of its raw events was
    malformed.
    """

    model_config = ConfigDict(frozen=True)

    participant_key: str = Field(..., examples=["jane.doe@example.com"])
    reason: str = Field(..., examples=["leave time must be after join time"])

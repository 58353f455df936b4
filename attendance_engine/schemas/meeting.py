# attendance_engine/schemas/meeting.py
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RawEvent(BaseModel):
    """
    One raw presence interval as reported by the meeting provider.

    A participant who drops and rejoins produces several events under the
    same `participant_key`.
    """

    model_config = ConfigDict(frozen=True)

    participant_key: str = Field(
        ...,
        description=(
            "Provider-side identity of the participant. Normalized email when "
            "available, otherwise a key derived from the provider participant id."
        ),
        examples=["jane.doe@example.com"],
    )
    join_time: datetime = Field(..., description="UTC join time.")
    leave_time: datetime | None = Field(
        None,
        description="UTC leave time. Missing leave times are closed at the meeting end.",
    )
    email: str | None = Field(None, description="Email reported by the provider, if any.")
    display_name: str | None = Field(None, description="Display name shown in the meeting.")


class MeetingRecord(BaseModel):
    """
    A complete, closed meeting as delivered by the participant source.
    """

    meeting_uuid: str = Field(..., description="Provider identifier of the meeting instance.")
    start_time: datetime = Field(..., description="UTC meeting start.")
    end_time: datetime = Field(..., description="UTC meeting end.")
    actual_duration_minutes: int | None = Field(
        None,
        description=(
            "Duration reported by the provider (end - start, whole minutes). "
            "None when the provider could not report meeting details."
        ),
        examples=[92],
    )
    events: list[RawEvent] = Field(
        default_factory=list,
        description="Every raw join/leave interval of the meeting.",
    )

    @property
    def observed_duration_minutes(self) -> float:
        return max((self.end_time - self.start_time).total_seconds() / 60.0, 0.0)

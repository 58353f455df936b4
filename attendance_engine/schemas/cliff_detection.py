# attendance_engine/schemas/cliff_detection.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from attendance_engine.schemas.participant import RejectedParticipant


class Confidence(str, Enum):
    """
    Confidence tier of a detected cliff.
    """

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {Confidence.LOW: 0, Confidence.MEDIUM: 1, Confidence.HIGH: 2}[self]


class DetectionStatus(str, Enum):
    """
    Outcome of one detection run for a session.
    """

    DETECTED = "detected"
    NO_CLIFF = "no_cliff"
    SKIPPED = "skipped"
    ERROR = "error"


class HistogramBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    minute: int = Field(..., description="Bucket start, minutes from meeting start.", examples=[45])
    departures: int = Field(..., ge=0, description="Final departures inside the bucket.", examples=[18])
    is_cliff: bool = Field(False, description="True if the bucket overlaps the cliff window.")


class DepartureHistogram(BaseModel):
    """
    Final departures bucketed over the observed meeting duration.

    The last bucket also holds everyone who stayed to (or past) the
    natural meeting end, so the bucket counts always add up to
    `total_participants`.
    """

    model_config = ConfigDict(frozen=True)

    bucket_width_minutes: int
    meeting_duration_minutes: float
    total_participants: int
    buckets: tuple[HistogramBucket, ...]


class CliffDetectionResult(BaseModel):
    """
    Pure output of the cliff detector. Carries no review decision; that
    lives in `ReviewState`.
    """

    model_config = ConfigDict(frozen=True)

    detected: bool = Field(..., examples=[True])
    status: DetectionStatus = Field(..., examples=["detected"])
    reason: str | None = Field(
        None,
        description="Machine-readable reason when nothing was detected.",
        examples=["NOT_ENOUGH_SPIKE"],
    )
    confidence: Confidence | None = Field(None, examples=["high"])
    total_participants: int = Field(0, examples=[30])
    cliff_window_start_min: int | None = Field(None, examples=[45])
    cliff_window_end_min: int | None = Field(None, examples=[50])
    departures_in_cliff: int | None = Field(None, examples=[18])
    spike_ratio: float | None = Field(None, examples=[36.0])
    meeting_end_stayers: int | None = Field(None, examples=[12])
    effective_end_minutes: int | None = Field(None, examples=[45])
    students_impacted: int | None = Field(None, examples=[18])
    histogram: list[HistogramBucket] = Field(default_factory=list)
    rejected_participants: list[RejectedParticipant] = Field(
        default_factory=list,
        description="Participants left out of the analysis because of malformed events.",
    )

    @classmethod
    def skipped(
        cls,
        reason: str,
        total_participants: int = 0,
        histogram: list[HistogramBucket] | None = None,
    ) -> "CliffDetectionResult":
        return cls(
            detected=False,
            status=DetectionStatus.SKIPPED,
            reason=reason,
            total_participants=total_participants,
            histogram=histogram or [],
        )


# ---------------------------------------------------------------------------
# Review state: the human decision taken on top of a detection result
# ---------------------------------------------------------------------------

class NotReviewed(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["not_reviewed"] = "not_reviewed"


class Applied(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["applied"] = "applied"
    effective_end_minutes: int = Field(..., gt=0, examples=[45])
    applied_at: datetime


class Dismissed(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["dismissed"] = "dismissed"
    dismissed_at: datetime


ReviewState = Annotated[
    Union[NotReviewed, Applied, Dismissed],
    Field(discriminator="kind"),
]

# attendance_engine/schemas/session.py
from __future__ import annotations

from pydantic import BaseModel, Field

from attendance_engine.schemas.attendance import AttendanceCounts
from attendance_engine.schemas.cliff_detection import (
    CliffDetectionResult,
    Confidence,
    DetectionStatus,
    ReviewState,
)
from attendance_engine.schemas.participant import RejectedParticipant


# --------------------------------------------------------------------------
# Single-session review
# --------------------------------------------------------------------------

class ApplyCliffRequest(BaseModel):
    """
    Body of the apply endpoint. The effective end may come from a detection
    result or be entered manually by an admin.
    """

    effective_end_minutes: int = Field(
        ...,
        gt=0,
        description="Minute (from meeting start) at which the substantive session ended.",
        examples=[45],
    )


class ReviewOutcome(BaseModel):
    """
    Result of an apply/dismiss call.

    The review decision is durable once stored. If the follow-up
    recalculation fails, `attendance` is None and `recalculation_error`
    explains why, so the caller can retry the recalculation alone.
    """

    session_id: int = Field(..., examples=[12])
    review_state: ReviewState
    formal_end_minutes: int | None = Field(None, examples=[45])
    attendance: AttendanceCounts | None = None
    recalculation_error: str | None = Field(
        None,
        examples=["Session 12: could not determine meeting duration from any source"],
    )


class SessionCliffState(BaseModel):
    """
    Stored detection output plus the review decision for one session.
    """

    session_id: int
    title: str
    formal_end_minutes: int | None = None
    cliff_detection: CliffDetectionResult | None = None
    review_state: ReviewState


# --------------------------------------------------------------------------
# Batch detection
# --------------------------------------------------------------------------

class PerSessionResult(BaseModel):
    session_id: int = Field(..., examples=[12])
    title: str = Field(..., examples=["Cohort 7 - Week 3 live session"])
    status: DetectionStatus = Field(..., examples=["detected"])
    confidence: Confidence | None = Field(None, examples=["high"])
    effective_end_minutes: int | None = Field(None, examples=[45])
    students_impacted: int | None = Field(None, examples=[18])
    reason: str | None = Field(None, examples=["PREVIOUSLY_DISMISSED"])
    error: str | None = None
    rejected_participants: list[RejectedParticipant] = Field(default_factory=list)


class BulkSummary(BaseModel):
    total: int = Field(..., description="Sessions considered in this run.", examples=[8])
    detected: int = Field(0, examples=[3])
    high_confidence: int = Field(0, examples=[2])
    medium_confidence: int = Field(0, examples=[1])
    low_confidence: int = Field(0, examples=[0])
    no_cliff: int = Field(0, examples=[4])
    skipped: int = Field(0, examples=[1])
    errors: int = Field(0, examples=[0])
    total_students_impacted: int = Field(0, examples=[41])


class BulkDetectionResponse(BaseModel):
    summary: BulkSummary
    results: list[PerSessionResult]


# --------------------------------------------------------------------------
# Batch apply
# --------------------------------------------------------------------------

class ApplyAllItem(BaseModel):
    session_id: int
    title: str
    effective_end_minutes: int
    applied: bool = Field(..., description="True if the review decision was stored.")
    attendance: AttendanceCounts | None = None
    error: str | None = None


class ApplyAllResponse(BaseModel):
    total: int = Field(..., description="Eligible sessions found.", examples=[2])
    applied: int = Field(..., examples=[2])
    failed: int = Field(
        ...,
        description="Sessions whose decision or recalculation failed.",
        examples=[0],
    )
    results: list[ApplyAllItem]

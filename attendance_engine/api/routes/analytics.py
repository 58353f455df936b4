# attendance_engine/api/routes/analytics.py
from http import HTTPStatus

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.api.dependencies.admin_auth import verify_admin_api_key
from attendance_engine.core.config import get_engine_config, get_settings
from attendance_engine.db.session import get_db
from attendance_engine.schemas.attendance import AttendanceCounts
from attendance_engine.schemas.cliff_detection import CliffDetectionResult, Confidence
from attendance_engine.schemas.session import (
    ApplyAllResponse,
    ApplyCliffRequest,
    BulkDetectionResponse,
    ReviewOutcome,
    SessionCliffState,
)
from attendance_engine.services.participant_source import ParticipantSource, ZoomParticipantSource
from attendance_engine.services.session_orchestrator import SessionOrchestrator
from attendance_engine.services.zoom_client import get_zoom_client

router = APIRouter(
    prefix="/admin/analytics",
    tags=["Admin analytics"],
    dependencies=[Depends(verify_admin_api_key)],
)


def get_participant_source() -> ParticipantSource:
    """
    Provider adapter used by the admin routes. Overridden in tests.
    """
    return ZoomParticipantSource(get_zoom_client())


def get_orchestrator(
    db: AsyncSession = Depends(get_db),
    source: ParticipantSource = Depends(get_participant_source),
) -> SessionOrchestrator:
    return SessionOrchestrator(
        db=db,
        participant_source=source,
        config=get_engine_config(),
        fetch_concurrency=get_settings().BULK_FETCH_CONCURRENCY,
    )


_NOT_FOUND = {404: {"description": "Session not found."}}
_PROVIDER_DOWN = {502: {"description": "Meeting provider could not deliver participant data."}}


@router.get(
    "/sessions/{session_id}/cliff-detection",
    response_model=SessionCliffState,
    summary="Stored cliff detection and review state of a session",
    responses=_NOT_FOUND,
)
async def get_cliff_state(
    session_id: int,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionCliffState:
    return await orchestrator.get_state(session_id)


@router.post(
    "/sessions/{session_id}/cliff-detection",
    response_model=CliffDetectionResult,
    status_code=HTTPStatus.OK,
    summary="Run attendance cliff detection for one session",
    description=(
        "Fetches the meeting's participant data, rebuilds the departure histogram and "
        "stores a fresh detection result.\n\n"
        "Running detection never changes the session's review decision. Sessions with "
        "too few participants or a meeting shorter than one bucket come back as "
        "`skipped` with a `reason`."
    ),
    responses={**_NOT_FOUND, **_PROVIDER_DOWN},
)
async def detect_cliff(
    session_id: int,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> CliffDetectionResult:
    return await orchestrator.detect(session_id)


@router.post(
    "/sessions/{session_id}/cliff-detection/apply",
    response_model=ReviewOutcome,
    summary="Apply an effective end and recalculate attendance",
    description=(
        "Stores the admin's decision (`applied`, with the given effective end) and "
        "recalculates every attendee's percentage against it.\n\n"
        "The decision is kept even when recalculation fails; in that case "
        "`attendance` is null and `recalculation_error` explains why."
    ),
    responses=_NOT_FOUND,
)
async def apply_cliff(
    session_id: int,
    payload: ApplyCliffRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> ReviewOutcome:
    return await orchestrator.apply(session_id, payload.effective_end_minutes)


@router.post(
    "/sessions/{session_id}/cliff-detection/dismiss",
    response_model=ReviewOutcome,
    summary="Dismiss the detected cliff and recalculate on the full duration",
    responses=_NOT_FOUND,
)
async def dismiss_cliff(
    session_id: int,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> ReviewOutcome:
    return await orchestrator.dismiss(session_id)


@router.post(
    "/sessions/{session_id}/attendance/calculate",
    response_model=AttendanceCounts,
    summary="Recalculate attendance using the current review decision",
    responses={
        **_NOT_FOUND,
        500: {"description": "Attendance could not be recalculated."},
    },
)
async def calculate_attendance(
    session_id: int,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> AttendanceCounts:
    return await orchestrator.calculate(session_id)


@router.post(
    "/cliff-detection/bulk",
    response_model=BulkDetectionResponse,
    summary="Run cliff detection for every session linked to a meeting",
    description=(
        "Sessions already applied or dismissed are reported as `skipped` unless "
        "`force=true`. Forcing refreshes the stored detection only; review decisions "
        "are left untouched.\n\n"
        "A failing session becomes an `error` entry; the batch itself always completes."
    ),
)
async def detect_bulk(
    force: bool = Query(
        default=False,
        description="Re-run detection on sessions that already carry a review decision.",
    ),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> BulkDetectionResponse:
    return await orchestrator.detect_bulk(force=force)


@router.post(
    "/cliff-detection/apply-all",
    response_model=ApplyAllResponse,
    summary="Apply every pending detection at or above a confidence level",
)
async def apply_all(
    min_confidence: Confidence = Query(
        default=Confidence.HIGH,
        description="Lowest detection confidence that gets applied.",
    ),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> ApplyAllResponse:
    return await orchestrator.apply_all(min_confidence=min_confidence)

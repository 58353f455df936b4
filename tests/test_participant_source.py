# tests/test_participant_source.py
from datetime import datetime, timezone

import pytest

from attendance_engine.services.errors import ParticipantSourceError
from attendance_engine.services.participant_source import ZoomParticipantSource
from attendance_engine.services.zoom_client import ZoomClientError


class FakeZoomClient:
    """
    Stub for ZoomClient returning canned past-meeting payloads.
    """

    def __init__(self, participants, details=None, details_error: bool = False):
        self.participants = participants
        self.details = details or {}
        self.details_error = details_error

    async def get_past_meeting_participants(self, meeting_uuid: str):
        return self.participants

    async def get_past_meeting_details(self, meeting_uuid: str):
        if self.details_error:
            raise ZoomClientError("Simulated Zoom failure")
        return self.details


PARTICIPANTS = [
    {
        "id": "p1",
        "name": "Ana",
        "user_email": " Ana@School.test ",
        "join_time": "2026-03-02T15:00:00Z",
        "leave_time": "2026-03-02T15:10:00Z",
    },
    {
        "id": "p1",
        "name": "Ana",
        "user_email": "ana@school.test",
        "join_time": "2026-03-02T15:12:00Z",
        "leave_time": "2026-03-02T16:00:00Z",
    },
    {"id": "g1", "name": "iPad", "user_email": "", "join_time": "2026-03-02T15:05:00Z"},
    {"id": "g2", "name": "iPad", "join_time": "2026-03-02T15:06:00Z", "leave_time": "2026-03-02T15:30:00Z"},
    {"id": "broken", "name": "No join"},
]


@pytest.mark.asyncio
async def test_fetch_meeting_uses_details_for_bounds():
    source = ZoomParticipantSource(
        FakeZoomClient(
            PARTICIPANTS,
            details={"start_time": "2026-03-02T15:00:00Z", "end_time": "2026-03-02T16:02:00Z"},
        )
    )

    record = await source.fetch_meeting("uuid-1")

    assert record.meeting_uuid == "uuid-1"
    assert record.start_time == datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
    assert record.actual_duration_minutes == 62
    # The record without a join time is dropped.
    assert len(record.events) == 4


@pytest.mark.asyncio
async def test_participants_are_keyed_by_email_or_provider_id():
    source = ZoomParticipantSource(
        FakeZoomClient(
            PARTICIPANTS,
            details={"start_time": "2026-03-02T15:00:00Z", "end_time": "2026-03-02T16:00:00Z"},
        )
    )

    record = await source.fetch_meeting("uuid-1")

    keys = [e.participant_key for e in record.events]
    assert keys == ["ana@school.test", "ana@school.test", "__nomail__g1", "__nomail__g2"]
    assert record.events[2].leave_time is None
    assert record.events[2].email is None


@pytest.mark.asyncio
async def test_bounds_fall_back_to_participant_times_when_details_fail():
    source = ZoomParticipantSource(FakeZoomClient(PARTICIPANTS, details_error=True))

    record = await source.fetch_meeting("uuid-1")

    assert record.start_time == datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
    assert record.end_time == datetime(2026, 3, 2, 16, 0, tzinfo=timezone.utc)
    assert record.actual_duration_minutes is None


@pytest.mark.asyncio
async def test_no_events_and_no_details_is_a_source_error():
    source = ZoomParticipantSource(FakeZoomClient([], details_error=True))

    with pytest.raises(ParticipantSourceError):
        await source.fetch_meeting("uuid-empty")

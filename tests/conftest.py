# tests/conftest.py
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

# Must be set before the application modules read their settings.
os.environ["DB_URL"] = "sqlite+aiosqlite:///./attendance_engine_test.db"
os.environ["APP_ENV"] = "test"
os.environ.pop("ADMIN_API_KEY", None)

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from attendance_engine.api.routes.analytics import get_participant_source  # noqa: E402
from attendance_engine.db.session import AsyncSessionLocal, init_db  # noqa: E402
from attendance_engine.main import create_app  # noqa: E402
from attendance_engine.schemas.meeting import MeetingRecord, RawEvent  # noqa: E402
from attendance_engine.services.errors import ParticipantSourceError  # noqa: E402

MEETING_START = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def at(minute: float) -> datetime:
    return MEETING_START + timedelta(minutes=minute)


def make_event(
    key: str,
    join_min: float,
    leave_min: Optional[float],
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> RawEvent:
    return RawEvent(
        participant_key=key,
        join_time=at(join_min),
        leave_time=at(leave_min) if leave_min is not None else None,
        email=email,
        display_name=name,
    )


def make_meeting(
    events: List[RawEvent],
    duration: int = 60,
    meeting_uuid: str = "meeting-uuid-1",
) -> MeetingRecord:
    return MeetingRecord(
        meeting_uuid=meeting_uuid,
        start_time=MEETING_START,
        end_time=at(duration),
        actual_duration_minutes=duration,
        events=events,
    )


def cliff_meeting(meeting_uuid: str = "meeting-uuid-1") -> MeetingRecord:
    """
    60-minute meeting, 36 students: 18 leave at minute 47, 12 stay to the
    end and s30..s35 drop out one per bucket between minute 12 and 37.
    """
    events = [
        make_event(f"s{i}@school.test", 0, 47, email=f"s{i}@school.test")
        for i in range(18)
    ]
    events += [
        make_event(f"s{i}@school.test", 0, 60, email=f"s{i}@school.test")
        for i in range(18, 30)
    ]
    events += [
        make_event(f"s{i}@school.test", 0, 12 + 5 * (i - 30), email=f"s{i}@school.test")
        for i in range(30, 36)
    ]
    return make_meeting(events, duration=60, meeting_uuid=meeting_uuid)


class FakeParticipantSource:
    """
    In-memory participant source keyed by meeting uuid.
    """

    def __init__(self) -> None:
        self.meetings: Dict[str, MeetingRecord] = {}
        self.failing: set[str] = set()
        self.calls: List[str] = []

    def add(self, record: MeetingRecord) -> None:
        self.meetings[record.meeting_uuid] = record

    async def fetch_meeting(self, meeting_uuid: str) -> MeetingRecord:
        self.calls.append(meeting_uuid)
        if meeting_uuid in self.failing or meeting_uuid not in self.meetings:
            raise ParticipantSourceError(f"simulated provider failure for {meeting_uuid}")
        return self.meetings[meeting_uuid]


@pytest_asyncio.fixture
async def db():
    """
    Fresh schema for every test that touches the database.
    """
    await init_db()
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def fake_source() -> FakeParticipantSource:
    return FakeParticipantSource()


@pytest.fixture
def app(fake_source):
    application = create_app()
    application.dependency_overrides[get_participant_source] = lambda: fake_source
    return application


@pytest_asyncio.fixture
async def api_client(db, app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def client(app) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client

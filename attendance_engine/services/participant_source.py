# attendance_engine/services/participant_source.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from attendance_engine.schemas.meeting import MeetingRecord, RawEvent
from attendance_engine.services.errors import ParticipantSourceError
from attendance_engine.services.segment_normalizer import normalize_email
from attendance_engine.services.zoom_client import ZoomClient, ZoomClientError

logger = logging.getLogger(__name__)


class ParticipantSource(Protocol):
    """
    External collaborator delivering a closed meeting's raw presence data.
    """

    async def fetch_meeting(self, meeting_uuid: str) -> MeetingRecord:
        ...


class ZoomParticipantSource:
    """
    Builds MeetingRecords from Zoom's past-meeting reports:

        GET /v2/past_meetings/{uuid}/participants   (paginated)
        GET /v2/past_meetings/{uuid}

    Participants are keyed by normalized email; participants without an
    email are keyed by their Zoom participant id so two guests sharing a
    display name never collapse into one.
    """

    def __init__(self, zoom_client: ZoomClient) -> None:
        self.zoom = zoom_client

    async def fetch_meeting(self, meeting_uuid: str) -> MeetingRecord:
        records = await self.zoom.get_past_meeting_participants(meeting_uuid)
        events = self._to_events(records)

        start, end, actual = await self._resolve_bounds(meeting_uuid, events)

        return MeetingRecord(
            meeting_uuid=meeting_uuid,
            start_time=start,
            end_time=end,
            actual_duration_minutes=actual,
            events=events,
        )

    async def _resolve_bounds(
        self,
        meeting_uuid: str,
        events: List[RawEvent],
    ) -> tuple[datetime, datetime, Optional[int]]:
        """
        Prefer the meeting details; fall back to the earliest join and the
        latest leave among participants.
        """
        try:
            details = await self.zoom.get_past_meeting_details(meeting_uuid)
        except ZoomClientError as exc:
            logger.warning(
                "Could not fetch details for meeting %s, deriving bounds from participants: %s",
                meeting_uuid,
                exc,
            )
            details = {}

        start = _parse_iso_utc(details.get("start_time"))
        end = _parse_iso_utc(details.get("end_time"))
        if start is not None and end is not None and end > start:
            actual = round((end - start).total_seconds() / 60.0)
            return start, end, actual if actual > 0 else None

        if not events:
            raise ParticipantSourceError(
                f"no participant data and no meeting times for meeting {meeting_uuid}"
            )

        joins = [e.join_time for e in events]
        leaves = [e.leave_time for e in events if e.leave_time is not None]
        return min(joins), max(leaves) if leaves else max(joins), None

    def _to_events(self, records: List[Dict[str, Any]]) -> List[RawEvent]:
        events: List[RawEvent] = []
        for rec in records:
            join_time = _parse_iso_utc(rec.get("join_time"))
            if join_time is None:
                logger.warning("Skipping Zoom participant record without join_time: %s", rec.get("id"))
                continue

            email = normalize_email(rec.get("user_email"))
            key = email or f"__nomail__{rec.get('id') or rec.get('user_id') or rec.get('name')}"

            events.append(
                RawEvent(
                    participant_key=key,
                    join_time=join_time,
                    leave_time=_parse_iso_utc(rec.get("leave_time")),
                    email=email,
                    display_name=rec.get("name"),
                )
            )
        return events


def _parse_iso_utc(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC.

    Returns None if the value is missing or parsing fails.
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

# attendance_engine/services/segment_normalizer.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from attendance_engine.schemas.meeting import RawEvent
from attendance_engine.schemas.participant import AttendanceSegment, NormalizedParticipant
from attendance_engine.services.errors import MalformedEventError

DEFAULT_MERGE_GAP_MINUTES = 1.0


@dataclass(frozen=True)
class NormalizationResult:
    participants: tuple[NormalizedParticipant, ...] = ()
    rejected: tuple[MalformedEventError, ...] = field(default_factory=tuple)


def normalize_email(value: Optional[str]) -> Optional[str]:
    """
    Trim and lower-case an email; empty strings become None.
    """
    if value is None:
        return None
    cleaned = value.strip().lower()
    return cleaned or None


def merge_segments(
    segments: Iterable[AttendanceSegment],
    merge_gap_minutes: float = DEFAULT_MERGE_GAP_MINUTES,
) -> tuple[AttendanceSegment, ...]:
    """
    Sort segments and merge every pair separated by less than the merge gap
    (overlaps have a negative gap and always merge).

    The output is minimal, so merging it again returns it unchanged.
    """
    ordered = sorted(segments, key=lambda s: (s.start_minute, s.end_minute))
    merged: List[AttendanceSegment] = []

    for seg in ordered:
        if merged and seg.start_minute - merged[-1].end_minute < merge_gap_minutes:
            last = merged[-1]
            if seg.end_minute > last.end_minute:
                merged[-1] = AttendanceSegment(
                    start_minute=last.start_minute,
                    end_minute=seg.end_minute,
                )
        else:
            merged.append(seg)

    return tuple(merged)


class SegmentNormalizer:
    """
    Turns raw provider join/leave events into per-participant, minute-based
    attendance segments.

    Rules
    -----
    - Events are grouped by `participant_key`.
    - Times become minute offsets from the meeting start. A join before the
      meeting start (waiting room, early join) is clamped to minute 0.
    - A missing leave time is closed at `meeting_end`.
    - An event whose leave is at/before its join, or that ends before the
      meeting started, is malformed. The whole participant is rejected and
      reported; other participants are unaffected.
    - Segments closer than `merge_gap_minutes` are merged.
    """

    def __init__(self, merge_gap_minutes: float = DEFAULT_MERGE_GAP_MINUTES) -> None:
        self.merge_gap_minutes = merge_gap_minutes

    def normalize(
        self,
        events: Sequence[RawEvent],
        meeting_start: datetime,
        meeting_end: Optional[datetime] = None,
    ) -> NormalizationResult:
        grouped: Dict[str, List[RawEvent]] = {}
        for event in events:
            grouped.setdefault(event.participant_key, []).append(event)

        participants: List[NormalizedParticipant] = []
        rejected: List[MalformedEventError] = []

        for key, group in grouped.items():
            try:
                segments = [
                    self._to_segment(event, meeting_start, meeting_end) for event in group
                ]
            except MalformedEventError as exc:
                rejected.append(exc)
                continue

            participants.append(
                NormalizedParticipant(
                    identity_key=key,
                    email=next(
                        (normalize_email(e.email) for e in group if normalize_email(e.email)),
                        None,
                    ),
                    display_name=next(
                        (e.display_name for e in group if e.display_name), None
                    ),
                    segments=merge_segments(segments, self.merge_gap_minutes),
                )
            )

        return NormalizationResult(participants=tuple(participants), rejected=tuple(rejected))

    @staticmethod
    def _to_segment(
        event: RawEvent,
        meeting_start: datetime,
        meeting_end: Optional[datetime],
    ) -> AttendanceSegment:
        leave_time = event.leave_time or meeting_end
        if leave_time is None:
            raise MalformedEventError(
                event.participant_key,
                event.join_time,
                event.leave_time,
                reason="missing leave time and no meeting end to close it",
            )
        if leave_time <= event.join_time:
            raise MalformedEventError(event.participant_key, event.join_time, leave_time)

        start = (event.join_time - meeting_start).total_seconds() / 60.0
        end = (leave_time - meeting_start).total_seconds() / 60.0
        if end <= 0:
            raise MalformedEventError(
                event.participant_key,
                event.join_time,
                leave_time,
                reason="presence ends before the meeting started",
            )

        return AttendanceSegment(start_minute=max(start, 0.0), end_minute=end)

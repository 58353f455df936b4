# tests/test_attendance_calculator.py
import math

import pytest

from attendance_engine.schemas.participant import (
    AttendanceSegment,
    MatchedAttendee,
    NormalizedParticipant,
    UnmatchedAttendee,
)
from attendance_engine.services.attendance_calculator import (
    AttendanceCalculator,
    round_half_up,
    trim_segments,
)
from attendance_engine.services.errors import RecalculationError


def _attendee(*segments) -> MatchedAttendee:
    return MatchedAttendee(
        user_id=1,
        participant=NormalizedParticipant(
            identity_key="ana@school.test",
            email="ana@school.test",
            segments=tuple(AttendanceSegment(start_minute=s, end_minute=e) for s, e in segments),
        ),
    )


def test_full_presence_is_100_percent():
    record = AttendanceCalculator.calculate(_attendee((0, 60)), 60)

    assert record.duration_attended_minutes == 60
    assert record.percentage == 100


def test_rejoin_gap_counts_against_attendance():
    record = AttendanceCalculator.calculate(_attendee((0, 10), (12, 60)), 60)

    assert record.duration_attended_minutes == 58
    assert record.percentage == 97


def test_effective_end_trims_tail_presence():
    """
    A student who stayed to minute 60 is fully present for an effective end
    at 45.
    """
    record = AttendanceCalculator.calculate(_attendee((0, 60)), 45)

    assert record.duration_attended_minutes == 45
    assert record.percentage == 100


def test_presence_after_effective_end_is_ignored():
    record = AttendanceCalculator.calculate(_attendee((0, 20), (50, 60)), 45)

    assert record.duration_attended_minutes == 20
    assert record.percentage == 44


def test_basis_equal_to_full_duration_matches_no_trim():
    attendee = _attendee((0, 10), (12, 40))

    full = AttendanceCalculator.calculate(attendee, 60)
    trimmed_at_end = AttendanceCalculator.calculate(
        attendee.model_copy(
            update={
                "participant": attendee.participant.model_copy(
                    update={"segments": tuple(trim_segments(attendee.participant.segments, 60))}
                )
            }
        ),
        60,
    )

    assert full == trimmed_at_end


def test_no_presence_is_zero_percent():
    attendee = UnmatchedAttendee(
        email="guest@mail.test",
        participant=NormalizedParticipant(identity_key="guest@mail.test"),
    )

    record = AttendanceCalculator.calculate(attendee, 60)

    assert record.duration_attended_minutes == 0
    assert record.percentage == 0
    assert record.is_matched is False


def test_percentage_is_rounded_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(66.4999) == 66
    record = AttendanceCalculator.calculate(_attendee((0, 8.75)), 70)
    assert record.percentage == 13  # 12.5 -> 13


@pytest.mark.parametrize("basis", [0, -5, math.inf, math.nan])
def test_invalid_basis_is_rejected(basis):
    with pytest.raises(RecalculationError):
        AttendanceCalculator.calculate(_attendee((0, 60)), basis)


def test_calculate_all_keeps_order():
    attendees = [_attendee((0, 30)), _attendee((0, 60))]

    records = AttendanceCalculator.calculate_all(attendees, 60)

    assert [r.percentage for r in records] == [50, 100]

# tests/test_departure_histogram.py
import pytest

from attendance_engine.schemas.participant import AttendanceSegment, NormalizedParticipant
from attendance_engine.services.departure_histogram import DepartureHistogramBuilder
from attendance_engine.services.errors import InsufficientDataError


def _left_at(minute: float, key: str = "p") -> NormalizedParticipant:
    return NormalizedParticipant(
        identity_key=key,
        segments=(AttendanceSegment(start_minute=0, end_minute=minute),),
    )


def test_departures_are_bucketed_by_final_departure():
    participants = [_left_at(m, f"p{i}") for i, m in enumerate([2, 4.99, 5, 47, 59.5])]

    histogram = DepartureHistogramBuilder.build(participants, meeting_duration_minutes=60)

    counts = {b.minute: b.departures for b in histogram.buckets}
    assert len(histogram.buckets) == 12
    assert counts[0] == 2
    assert counts[5] == 1
    assert counts[45] == 1
    assert counts[55] == 1


def test_stayers_past_the_end_land_in_the_last_bucket():
    participants = [_left_at(60, "a"), _left_at(63, "b")]

    histogram = DepartureHistogramBuilder.build(participants, meeting_duration_minutes=60)

    assert histogram.buckets[-1].minute == 55
    assert histogram.buckets[-1].departures == 2


def test_counts_sum_to_total_participants():
    participants = [_left_at(m, f"p{i}") for i, m in enumerate(range(1, 93, 3))]

    histogram = DepartureHistogramBuilder.build(participants, meeting_duration_minutes=92)

    assert len(histogram.buckets) == 19
    assert sum(b.departures for b in histogram.buckets) == histogram.total_participants
    assert histogram.total_participants == len(participants)


def test_participants_without_segments_are_not_counted():
    empty = NormalizedParticipant(identity_key="ghost")

    histogram = DepartureHistogramBuilder.build([empty, _left_at(30)], meeting_duration_minutes=60)

    assert histogram.total_participants == 1


def test_meeting_shorter_than_one_bucket_is_insufficient():
    with pytest.raises(InsufficientDataError) as exc_info:
        DepartureHistogramBuilder.build([_left_at(3)], meeting_duration_minutes=4)

    assert exc_info.value.code == "MEETING_TOO_SHORT"


def test_non_positive_bucket_width_is_rejected():
    with pytest.raises(ValueError):
        DepartureHistogramBuilder.build([_left_at(3)], meeting_duration_minutes=60, bucket_width_minutes=0)

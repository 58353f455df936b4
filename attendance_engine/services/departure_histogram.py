# attendance_engine/services/departure_histogram.py
from __future__ import annotations

import math
from typing import Sequence

from attendance_engine.schemas.cliff_detection import DepartureHistogram, HistogramBucket
from attendance_engine.schemas.participant import NormalizedParticipant
from attendance_engine.services.errors import InsufficientDataError

DEFAULT_BUCKET_WIDTH_MINUTES = 5


class DepartureHistogramBuilder:
    """
    Buckets final-departure minutes into fixed-width buckets covering
    [0, meeting_duration_minutes).

    Rules
    -----
    - bucket index = floor(final_departure_minute / bucket_width).
    - Departures at or past the meeting end land in the last bucket: these
      are the natural-end stayers.
    - Every participant with at least one segment is counted exactly once,
      so the bucket counts sum to `total_participants`.
    """

    @staticmethod
    def build(
        participants: Sequence[NormalizedParticipant],
        meeting_duration_minutes: float,
        bucket_width_minutes: int = DEFAULT_BUCKET_WIDTH_MINUTES,
    ) -> DepartureHistogram:
        if bucket_width_minutes <= 0:
            raise ValueError("bucket_width_minutes must be positive")

        if meeting_duration_minutes < bucket_width_minutes:
            raise InsufficientDataError(
                f"meeting lasted {meeting_duration_minutes:.1f} min, shorter than one "
                f"{bucket_width_minutes}-minute bucket",
                code="MEETING_TOO_SHORT",
            )

        bucket_count = math.ceil(meeting_duration_minutes / bucket_width_minutes)
        counts = [0] * bucket_count
        total = 0

        for participant in participants:
            if not participant.segments:
                continue
            index = int(participant.final_departure_minute // bucket_width_minutes)
            counts[min(max(index, 0), bucket_count - 1)] += 1
            total += 1

        return DepartureHistogram(
            bucket_width_minutes=bucket_width_minutes,
            meeting_duration_minutes=meeting_duration_minutes,
            total_participants=total,
            buckets=tuple(
                HistogramBucket(minute=i * bucket_width_minutes, departures=count)
                for i, count in enumerate(counts)
            ),
        )

# attendance_engine/services/attendance_calculator.py
from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Sequence

from attendance_engine.schemas.attendance import AttendanceRecord
from attendance_engine.schemas.participant import Attendee, AttendanceSegment
from attendance_engine.services.errors import RecalculationError


def trim_segments(
    segments: Iterable[AttendanceSegment],
    duration_basis_minutes: float,
) -> List[AttendanceSegment]:
    """
    Clip segments to [0, duration_basis_minutes]; segments starting at or
    after the basis are dropped.
    """
    trimmed: List[AttendanceSegment] = []
    for seg in segments:
        if seg.start_minute >= duration_basis_minutes:
            continue
        trimmed.append(
            AttendanceSegment(
                start_minute=seg.start_minute,
                end_minute=min(seg.end_minute, duration_basis_minutes),
            )
        )
    return trimmed


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class AttendanceCalculator:
    """
    Computes attended minutes and percentage for each attendee against a
    single duration basis.

    The basis is either the full meeting duration or, once an admin has
    applied a cliff, the effective end. Percentages are rounded half-up and
    clamped to [0, 100]; attendees without presence get 0.
    """

    @staticmethod
    def calculate(attendee: Attendee, duration_basis_minutes: float) -> AttendanceRecord:
        AttendanceCalculator._check_basis(duration_basis_minutes)

        attended = sum(
            seg.length
            for seg in trim_segments(attendee.participant.segments, duration_basis_minutes)
        )
        percentage = round_half_up(100.0 * attended / duration_basis_minutes)

        return AttendanceRecord(
            participant=attendee,
            duration_attended_minutes=attended,
            duration_basis_minutes=duration_basis_minutes,
            percentage=min(max(percentage, 0), 100),
        )

    @staticmethod
    def calculate_all(
        attendees: Sequence[Attendee],
        duration_basis_minutes: float,
    ) -> List[AttendanceRecord]:
        AttendanceCalculator._check_basis(duration_basis_minutes)
        return [
            AttendanceCalculator.calculate(attendee, duration_basis_minutes)
            for attendee in attendees
        ]

    @staticmethod
    def _check_basis(duration_basis_minutes: float) -> None:
        if not math.isfinite(duration_basis_minutes) or duration_basis_minutes <= 0:
            raise RecalculationError(
                f"invalid duration basis {duration_basis_minutes!r}; must be a positive number of minutes"
            )

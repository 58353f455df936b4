# attendance_engine/services/cliff_detector.py
from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

from attendance_engine.core.config import EngineConfig
from attendance_engine.schemas.cliff_detection import (
    CliffDetectionResult,
    Confidence,
    DepartureHistogram,
    DetectionStatus,
    HistogramBucket,
)
from attendance_engine.services.errors import InsufficientDataError


class CliffDetector:
    """
    Looks for a short window in which a disproportionate share of
    participants left for good, i.e. the moment the host wrapped up and
    only an optional Q&A tail remained.

    Rules
    -----
    1) The final bucket holds the natural-end stayers and is never part of
       a candidate window or of the baseline.
       baseline_rate = mean departures per non-empty bucket before it.
    2) Every window of `cliff_window_minutes` is scanned; the one with the
       most departures wins, ties going to the earliest start.
    3) The reported window is narrowed to its occupied buckets, so its start
       is the first bucket anyone actually left in.
    4) spike_ratio = window departures divided by
       max(baseline_rate, spike_epsilon). A lone cluster with no other
       departures therefore has a spike of 1.0.
    5) Detected iff the absolute count, the share of all participants and
       the spike ratio all reach their configured minimums.
    6) Stayers and impacted students are counted at bucket resolution.
       The window end is a bucket boundary, so a departure exactly at
       `cliff_window_end_min` lands in the next bucket and counts as a
       stayer, not as impacted.

    Raises InsufficientDataError when there are too few participants or the
    meeting is too short to hold a window before the final bucket.
    """

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or EngineConfig()

    def detect(self, histogram: DepartureHistogram) -> CliffDetectionResult:
        cfg = self.config
        total = histogram.total_participants

        if total < cfg.min_participants:
            raise InsufficientDataError(
                f"{total} participants, at least {cfg.min_participants} required",
                code="TOO_FEW_PARTICIPANTS",
            )

        scan = histogram.buckets[:-1]
        if not scan:
            raise InsufficientDataError(
                "meeting too short to separate departures from the natural end",
                code="MEETING_TOO_SHORT",
            )

        width = histogram.bucket_width_minutes
        per_window = min(max(1, math.ceil(cfg.cliff_window_minutes / width)), len(scan))

        start_idx, in_window = self._best_window(scan, per_window)
        window = scan[start_idx:start_idx + per_window]
        occupied = [b for b in window if b.departures > 0] or list(window)
        window_start = occupied[0].minute
        window_end = occupied[-1].minute + width

        baseline_rate = self._baseline_rate(scan)
        spike_ratio = round(in_window / max(baseline_rate, cfg.spike_epsilon), 3)
        fraction = in_window / total

        reason: Optional[str] = None
        if in_window < cfg.min_absolute_departures:
            reason = "ABSOLUTE_COUNT_LOW"
        elif fraction < cfg.min_fraction:
            reason = "CLUSTER_TOO_SMALL"
        elif spike_ratio < cfg.min_spike_ratio:
            reason = "NOT_ENOUGH_SPIKE"

        if reason is not None:
            return CliffDetectionResult(
                detected=False,
                status=DetectionStatus.NO_CLIFF,
                reason=reason,
                total_participants=total,
                spike_ratio=spike_ratio,
                histogram=list(histogram.buckets),
            )

        return CliffDetectionResult(
            detected=True,
            status=DetectionStatus.DETECTED,
            confidence=self._confidence(spike_ratio, fraction),
            total_participants=total,
            cliff_window_start_min=window_start,
            cliff_window_end_min=window_end,
            departures_in_cliff=in_window,
            spike_ratio=spike_ratio,
            meeting_end_stayers=sum(
                b.departures for b in histogram.buckets if b.minute >= window_end
            ),
            effective_end_minutes=window_start,
            students_impacted=sum(
                b.departures
                for b in histogram.buckets
                if window_start <= b.minute < window_end
            ),
            histogram=[
                b.model_copy(
                    update={"is_cliff": b.minute < window_end and b.minute + width > window_start}
                )
                for b in histogram.buckets
            ],
        )

    @staticmethod
    def _best_window(
        buckets: Sequence[HistogramBucket],
        per_window: int,
    ) -> Tuple[int, int]:
        best_idx, best_count = 0, -1
        for idx in range(len(buckets) - per_window + 1):
            count = sum(b.departures for b in buckets[idx:idx + per_window])
            if count > best_count:
                best_idx, best_count = idx, count
        return best_idx, best_count

    @staticmethod
    def _baseline_rate(buckets: Sequence[HistogramBucket]) -> float:
        non_empty = [b.departures for b in buckets if b.departures > 0]
        if not non_empty:
            return 0.0
        return sum(non_empty) / len(non_empty)

    def _confidence(self, spike_ratio: float, fraction: float) -> Confidence:
        cfg = self.config
        if spike_ratio >= cfg.high_spike_ratio and fraction >= cfg.high_fraction:
            return Confidence.HIGH
        if spike_ratio >= cfg.medium_spike_ratio and fraction >= cfg.medium_fraction:
            return Confidence.MEDIUM
        return Confidence.LOW

# backend/app/domain/scheduling/intervals.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional

from .errors import InvalidTimeRange


def _as_naive_utc(v: datetime) -> datetime:
    # Stored columns are naive UTC; aware inputs are normalized to match.
    if v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


def parse_dt(v: Any) -> datetime:
    if isinstance(v, datetime):
        return _as_naive_utc(v)
    try:
        return _as_naive_utc(datetime.fromisoformat(str(v).replace("Z", "+00:00")))
    except ValueError:
        raise InvalidTimeRange(f"not an ISO datetime: {v!r}")


@dataclass(frozen=True, order=True)
class TimeWindow:
    """Half-open range [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise InvalidTimeRange(
                "end must be after start",
                start=self.start.isoformat(),
                end=self.end.isoformat(),
            )

    @classmethod
    def of(cls, start: Any, end: Any) -> "TimeWindow":
        return cls(parse_dt(start), parse_dt(end))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeWindow") -> bool:
        return self.start <= other.start and other.end <= self.end

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def first_overlap(windows: List[TimeWindow]) -> Optional[tuple[int, int]]:
    """Index pair of the first two mutually overlapping windows (any order), else None."""
    ordered = sorted(range(len(windows)), key=lambda i: (windows[i].start, windows[i].end, i))
    for a, b in zip(ordered, ordered[1:]):
        if windows[a].overlaps(windows[b]):
            return (min(a, b), max(a, b))
    return None


def free_segments(window: TimeWindow, busy: Iterable[TimeWindow]) -> List[TimeWindow]:
    """
    Parts of `window` not covered by any busy interval, in time order.
    Busy intervals may overlap each other and may extend past the window.
    """
    clipped = sorted(
        (max(b.start, window.start), min(b.end, window.end))
        for b in busy
        if b.overlaps(window)
    )

    out: List[TimeWindow] = []
    cursor = window.start
    for b_start, b_end in clipped:
        if b_start > cursor:
            out.append(TimeWindow(cursor, b_start))
        if b_end > cursor:
            cursor = b_end
    if cursor < window.end:
        out.append(TimeWindow(cursor, window.end))
    return out


def is_aligned(v: datetime, granularity_minutes: int) -> bool:
    if v.second or v.microsecond:
        return False
    return (v.hour * 60 + v.minute) % granularity_minutes == 0

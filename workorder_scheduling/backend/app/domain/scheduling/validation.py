# backend/app/domain/scheduling/validation.py
from __future__ import annotations

from datetime import datetime
from typing import List, Sequence

from .errors import (
    InvalidSlotCount,
    NoWindows,
    SlotInPast,
    SlotMisaligned,
    SlotOverlap,
    SlotTooShort,
    WindowInPast,
    WindowOverlap,
    WindowTooShort,
)
from .intervals import TimeWindow, first_overlap, is_aligned


def validate_proposal_slots(
    slots: Sequence[TimeWindow],
    *,
    now: datetime,
    expected_count: int,
    min_minutes: int,
    granularity_minutes: int,
) -> List[TimeWindow]:
    """
    Contractor-issued slots: exact count, future, aligned to the scheduling grid,
    long enough, and pairwise disjoint. Returns slots in submitted order.
    """
    if len(slots) != int(expected_count):
        raise InvalidSlotCount(
            f"a proposal needs exactly {expected_count} slots",
            expected=int(expected_count),
            got=len(slots),
        )

    for i, s in enumerate(slots):
        if s.start <= now:
            raise SlotInPast(f"slot {i + 1} starts in the past", slot_number=i + 1)
        if s.minutes < int(min_minutes):
            raise SlotTooShort(
                f"slot {i + 1} is shorter than {min_minutes} minutes",
                slot_number=i + 1,
                minutes=s.minutes,
            )
        if not (is_aligned(s.start, granularity_minutes) and is_aligned(s.end, granularity_minutes)):
            raise SlotMisaligned(
                f"slot {i + 1} must start and end on a {granularity_minutes}-minute boundary",
                slot_number=i + 1,
            )

    clash = first_overlap(list(slots))
    if clash is not None:
        a, b = clash
        raise SlotOverlap(f"slots {a + 1} and {b + 1} overlap", slot_numbers=[a + 1, b + 1])

    # identical ranges are caught as overlap above; distinctness follows
    return list(slots)


def validate_availability_windows(
    windows: Sequence[TimeWindow],
    *,
    now: datetime,
    required_minutes: int,
) -> List[TimeWindow]:
    """Tenant-declared windows keep their order: it is the tenant's preference."""
    if not windows:
        raise NoWindows("at least one availability window is required")

    for i, w in enumerate(windows):
        if w.start <= now:
            raise WindowInPast(f"window {i} starts in the past", window_index=i)
        if w.minutes < int(required_minutes):
            raise WindowTooShort(
                f"window {i} is shorter than the job ({required_minutes} minutes)",
                window_index=i,
                minutes=w.minutes,
                required_minutes=int(required_minutes),
            )

    clash = first_overlap(list(windows))
    if clash is not None:
        raise WindowOverlap(f"windows {clash[0]} and {clash[1]} overlap", window_indexes=list(clash))

    return list(windows)

# backend/app/domain/scheduling/conflict_resolver.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .intervals import TimeWindow, free_segments

# -----------------------------------------------------------------------------
# Conflict resolver
# -----------------------------------------------------------------------------
# Given the tenant's availability windows (in preference order) and the
# contractor's other bookings, rank the windows the contractor can accept:
#
#   clean    window does not touch any booking; the whole window is usable
#   partial  window touches bookings but a conflict-free stretch of at least
#            the required duration remains
#   none     nothing usable inside the window
#
# Pure and deterministic: no I/O, no clock, no mutation of inputs. The
# contractor still makes the final accept/reject call.
# -----------------------------------------------------------------------------

CLEAN = "clean"
PARTIAL = "partial"
NONE = "none"

_KIND_RANK = {CLEAN: 0, PARTIAL: 1, NONE: 2}


@dataclass(frozen=True)
class Booking:
    appointment_id: int
    window: TimeWindow


@dataclass(frozen=True)
class WindowMatch:
    window_index: int
    kind: str
    window: TimeWindow
    candidate: Optional[TimeWindow]
    conflict_ids: Tuple[int, ...] = ()

    @property
    def conflict_count(self) -> int:
        return len(self.conflict_ids)

    @property
    def usable(self) -> bool:
        return self.kind != NONE and self.candidate is not None

    def sort_key(self) -> tuple:
        if self.kind == PARTIAL:
            return (_KIND_RANK[self.kind], self.conflict_count, self.window_index)
        return (_KIND_RANK[self.kind], 0, self.window_index)


@dataclass(frozen=True)
class Resolution:
    ranked: Tuple[WindowMatch, ...]
    conflicts: Tuple[int, ...] = field(default=())

    @property
    def match(self) -> Optional[WindowMatch]:
        if self.ranked and self.ranked[0].usable:
            return self.ranked[0]
        return None

    def for_index(self, window_index: int) -> Optional[WindowMatch]:
        for m in self.ranked:
            if m.window_index == window_index:
                return m
        return None


def _longest_segment(segments: Sequence[TimeWindow]) -> Optional[TimeWindow]:
    best: Optional[TimeWindow] = None
    for s in segments:
        # strict '>' keeps the earliest segment on equal length
        if best is None or s.duration > best.duration:
            best = s
    return best


def match_window(
    window_index: int,
    window: TimeWindow,
    bookings: Sequence[Booking],
    required_minutes: int,
) -> WindowMatch:
    hits = [b for b in bookings if b.window.overlaps(window)]
    if not hits:
        return WindowMatch(window_index=window_index, kind=CLEAN, window=window, candidate=window)

    conflict_ids = tuple(sorted({int(b.appointment_id) for b in hits}))
    longest = _longest_segment(free_segments(window, [b.window for b in hits]))

    if longest is not None and longest.minutes >= int(required_minutes):
        return WindowMatch(
            window_index=window_index,
            kind=PARTIAL,
            window=window,
            candidate=longest,
            conflict_ids=conflict_ids,
        )

    return WindowMatch(
        window_index=window_index,
        kind=NONE,
        window=window,
        candidate=None,
        conflict_ids=conflict_ids,
    )


def resolve_windows(
    windows: Sequence[TimeWindow],
    bookings: Sequence[Booking],
    required_minutes: int,
) -> Resolution:
    """
    Rank tenant windows against contractor bookings.

    Ordering: clean by submitted index, then partial by conflict count and
    submitted index, then unusable windows by submitted index.
    """
    matches = [match_window(i, w, bookings, required_minutes) for i, w in enumerate(windows)]
    ranked = tuple(sorted(matches, key=lambda m: m.sort_key()))

    all_conflicts = sorted({cid for m in matches for cid in m.conflict_ids})
    return Resolution(ranked=ranked, conflicts=tuple(all_conflicts))


def conflicting_bookings(window: TimeWindow, bookings: Sequence[Booking]) -> List[int]:
    """Appointment ids whose booking intersects `window` (used to re-validate an explicit pick)."""
    return sorted({int(b.appointment_id) for b in bookings if b.window.overlaps(window)})

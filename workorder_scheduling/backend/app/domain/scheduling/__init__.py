# backend/app/domain/scheduling/__init__.py
from .conflict_resolver import Booking, Resolution, WindowMatch, resolve_windows
from .intervals import TimeWindow
from .state_machine import assert_transition, can_transition

__all__ = [
    "Booking",
    "Resolution",
    "WindowMatch",
    "resolve_windows",
    "TimeWindow",
    "assert_transition",
    "can_transition",
]

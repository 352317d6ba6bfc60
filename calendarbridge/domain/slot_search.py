"""
Alternative-slot search used when a requested booking window is busy.

The engine only walks the candidate grid; whether a window is free is
answered by the caller-supplied check, so no I/O happens here.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Sequence

from pendulum import Date

from .models import Slot, TimeRange

logger = logging.getLogger(__name__)

DEFAULT_START_TIMES = ("09:00", "10:00", "11:00", "13:00", "14:00", "15:00", "16:00")
DEFAULT_SEARCH_DAYS = 7
DEFAULT_MAX_ALTERNATIVES = 3

WindowCheck = Callable[[TimeRange], bool]


class SlotSearchEngine:
    """
    Finds free alternatives on a fixed grid of local start times.

    Algorithm:
    1. For each day from the requested date onward (``days`` days in total)
    2. For each configured start time, in order
    3. Check ``[start, start + duration)``; keep it if free
    4. Stop as soon as ``max_results`` free slots are collected

    Results are ordered day first, then time of day. The requested slot is
    never offered back as its own alternative.
    """

    def __init__(
        self,
        start_times: Sequence[str] = DEFAULT_START_TIMES,
        days: int = DEFAULT_SEARCH_DAYS,
        max_results: int = DEFAULT_MAX_ALTERNATIVES,
    ):
        self.start_times = list(start_times)
        self.days = days
        self.max_results = max_results

    def find_alternatives(
        self,
        requested: Slot,
        timezone: str,
        is_free: WindowCheck,
    ) -> List[Slot]:
        """
        Search the grid for free slots of the requested duration.

        Args:
            requested: The busy slot the caller originally asked for
            timezone: IANA zone the local dates and times are expressed in
            is_free: Callback answering whether a window has no conflicts

        Returns:
            Up to ``max_results`` free slots in search order
        """
        found: List[Slot] = []

        for day_offset in range(self.days):
            day: Date = requested.date.add(days=day_offset)

            for start_time in self.start_times:
                candidate = Slot(
                    date=day,
                    time=start_time,
                    duration_minutes=requested.duration_minutes,
                )
                if candidate.date == requested.date and candidate.time == requested.time:
                    continue

                window = candidate.window(timezone)
                if is_free(window):
                    logger.debug("Free alternative found: %s", window)
                    found.append(candidate)
                    if len(found) >= self.max_results:
                        return found

        return found

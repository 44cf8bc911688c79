"""Sleep cycle length estimation and wake-time recommendation.

A cycle is approximated by the time between two successive entries into
deep sleep.

Juan Hernandez-Vargas - 2025
"""

import math
from datetime import datetime
from datetime import timedelta
from typing import Iterable
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple

from lib.models import StageEvent


DEFAULT_CYCLE_MINUTES = 90
MIN_CYCLE_MINUTES = 45
MAX_CYCLE_MINUTES = 150
RECOMMENDED_CYCLES = (3, 4, 5)


def deep_sleep_entries(events: Sequence[StageEvent]) -> List[datetime]:
    """Timestamps where the timeline switches into deep sleep from another stage."""
    return [
        current.timestamp
        for previous, current in zip(events, events[1:])
        if current.stage == 'deep' and previous.stage != 'deep'
    ]


def estimate_cycle_minutes(events: Sequence[StageEvent]) -> Optional[int]:
    """Estimate the average sleep cycle length.

    Args:
        events: Ordered stage events of one sleep session.

    Returns:
        Mean of the cycle lengths between 45 and 150 minutes (exclusive),
        rounded half-up to a whole minute, or None if fewer than two deep
        sleep entries exist or no cycle length falls inside that band.
    """
    entries = deep_sleep_entries(events)
    if len(entries) < 2:
        return None

    durations = [(later - earlier).total_seconds() / 60 for earlier, later in zip(entries, entries[1:])]

    # Gaps in the data produce implausibly short or long cycles
    plausible = [d for d in durations if MIN_CYCLE_MINUTES < d < MAX_CYCLE_MINUTES]
    if not plausible:
        return None

    mean = sum(plausible) / len(plausible)
    return int(math.floor(mean + 0.5))


def cycle_minutes_or_default(events: Sequence[StageEvent]) -> int:
    """Estimated cycle length, falling back to DEFAULT_CYCLE_MINUTES."""
    estimate = estimate_cycle_minutes(events)
    return estimate if estimate is not None else DEFAULT_CYCLE_MINUTES


def parse_hhmm(hhmm: str) -> Tuple[int, int]:
    """Parse an 'HH:MM' string.

    Raises:
        ValueError: If the string is malformed or out of range.
    """
    parts = hhmm.strip().split(':')
    if len(parts) != 2:
        raise ValueError('time must be HH:MM')
    hour = int(parts[0])
    minute = int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError('hour/minute out of range')
    return hour, minute


def recommend_wake_times(
    bedtime: Tuple[int, int],
    cycle_minutes: int,
    now: Optional[datetime] = None,
    cycles: Iterable[int] = RECOMMENDED_CYCLES,
) -> List[Tuple[int, datetime]]:
    """Wake-up times that complete a whole number of sleep cycles.

    Args:
        bedtime: (hour, minute) of going to bed. A time already passed
            today is taken to mean tomorrow.
        cycle_minutes: Length of one cycle.
        now: Current local time, defaults to datetime.now().
        cycles: Cycle counts to recommend.

    Returns:
        List of (cycle count, wake-up datetime).
    """
    now = now or datetime.now()
    hour, minute = bedtime
    start = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if start < now:
        start += timedelta(days=1)

    return [(count, start + timedelta(minutes=cycle_minutes * count)) for count in cycles]

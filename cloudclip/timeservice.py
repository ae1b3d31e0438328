"""
Civil-time instants.

Every timestamp cloudclip stores or compares is "UTC milliseconds as if the
clock were running at a fixed UTC offset" (UTC+8 by default). Server, client
cache and cleanup all go through the same TimeService so no component ever
compares a raw UTC instant against a civil one.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DEFAULT_UTC_OFFSET_HOURS = 8


def utc_now_ms() -> int:
    """Wall clock in UTC milliseconds since the epoch"""
    return time.time_ns() // 1_000_000


class TimeService:
    """Produces civil-time instants in milliseconds"""

    def __init__(self, utc_offset_hours: float = DEFAULT_UTC_OFFSET_HOURS,
                 clock: Optional[Callable[[], int]] = None):
        self.utc_offset_hours = utc_offset_hours
        self.offset_ms = int(utc_offset_hours * HOUR_MS)
        # clock returns UTC milliseconds since the epoch
        self.clock = clock or utc_now_ms

    def now(self) -> int:
        """Current instant in civil milliseconds"""
        return self.to_civil(self.clock())

    def to_civil(self, utc_ms: int) -> int:
        """Re-express a UTC millisecond instant in the civil convention"""
        return int(utc_ms) + self.offset_ms

    def format(self, instant: int) -> str:
        """Render a civil instant as wall-clock text"""
        # The offset is already baked into the instant, so render it as UTC
        dt = datetime.fromtimestamp(instant / 1000, tz=timezone.utc)
        return dt.strftime('%Y-%m-%d %H:%M:%S')

    @staticmethod
    def hours_to_ms(hours: float) -> int:
        return int(round(hours * HOUR_MS))


class ManualClock:
    """A settable UTC millisecond clock for driving TimeService by hand"""

    def __init__(self, ms: int = 0):
        self.ms = ms

    def __call__(self) -> int:
        return self.ms

    def set(self, ms: int) -> None:
        self.ms = ms

    def advance(self, ms: int) -> None:
        self.ms += ms

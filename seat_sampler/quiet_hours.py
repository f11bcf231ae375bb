"""
Quiet-hours gate.

During the configured local-time band every periodic stage is a no-op;
the night is left to capacity resolution.
"""

from datetime import datetime
from datetime import time
from datetime import timezone
from typing import Optional
from zoneinfo import ZoneInfo

from seat_sampler.settings import Settings


def in_band(current: time, start: time, end: time) -> bool:
    """Check ``current`` against ``[start, end)``, wrapping past midnight when ``start > end``."""
    if start == end:
        return False
    if start < end:
        return start <= current < end
    return current >= start or current < end


class QuietHours:
    """Local wall-clock blackout band."""

    def __init__(self, start: time, end: time, tz: ZoneInfo) -> None:
        self.start = start
        self.end = end
        self.tz = tz

    @classmethod
    def from_settings(cls, settings: Settings) -> "QuietHours":
        return cls(settings.quiet_start_time, settings.quiet_end_time, ZoneInfo(settings.timezone))

    def is_quiet(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        local = now.astimezone(self.tz)
        current = time(local.hour, local.minute, local.second)
        return in_band(current, self.start, self.end)

    def __repr__(self) -> str:
        return f"QuietHours({self.start:%H:%M}-{self.end:%H:%M} {self.tz.key})"

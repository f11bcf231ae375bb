"""
Scheduler context.

Owns every piece of mutable scheduler state (queue, measurement buffer,
credential cache, failure log, concurrency limiters) and is passed to each
stage explicitly, so stages can be exercised in isolation.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from datetime import timezone
from typing import Any
from typing import Callable
from typing import Deque
from typing import Dict
from typing import List
from typing import Optional
from typing import Set
from zoneinfo import ZoneInfo

from seat_sampler.credentials import CredentialCache
from seat_sampler.database import Database
from seat_sampler.models import FailureRecord
from seat_sampler.models import Measurement
from seat_sampler.providers.base import ProviderRegistry
from seat_sampler.quiet_hours import QuietHours
from seat_sampler.settings import Settings
from seat_sampler.settings import get_settings
from seat_sampler.time_queue import PriorityTimeQueue
from seat_sampler.windows import WindowPolicy

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MeasurementBuffer:
    """
    Successful probe results awaiting flush.

    Tick appends; flush takes everything at once with :meth:`drain`, which
    swaps in a fresh list so appends made while a flush is in flight land
    in the next batch.
    """

    def __init__(self) -> None:
        self._items: List[Measurement] = []

    def append(self, measurement: Measurement) -> None:
        self._items.append(measurement)

    def drain(self) -> List[Measurement]:
        items, self._items = self._items, []
        return items

    def restore(self, items: List[Measurement]) -> None:
        """Put a drained batch back ahead of anything appended since."""
        self._items = list(items) + self._items

    def show_ids(self) -> Set[int]:
        return {m.show_id for m in self._items}

    def __len__(self) -> int:
        return len(self._items)


class FailureLog:
    """Bounded record of recent per-item failures."""

    def __init__(self, maxlen: int = 500) -> None:
        self._records: Deque[FailureRecord] = deque(maxlen=maxlen)
        self.counts: Dict[str, int] = {}

    def record(
        self,
        kind: str,
        error: Any,
        at: datetime,
        show_id: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> FailureRecord:
        message = str(error) or type(error).__name__
        record = FailureRecord(kind=kind, show_id=show_id, payload=payload or {}, error=message, at=at)
        self._records.append(record)
        self.counts[kind] = self.counts.get(kind, 0) + 1
        logger.warning(f"[{kind}] showing_id={show_id} {message}")
        return record

    def recent(self, kind: Optional[str] = None) -> List[FailureRecord]:
        return [r for r in self._records if kind is None or r.kind == kind]

    def __len__(self) -> int:
        return len(self._records)


class SchedulerContext:
    """
    State shared by the sync, tick, flush and resolution stages.

    Args:
        db: Store adapter
        providers: Provider registry used for classification and probing
        settings: Configuration; the global settings by default
        clock: Returns the current UTC time; replaceable in tests
    """

    def __init__(
        self,
        db: Database,
        providers: ProviderRegistry,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.db = db
        self.providers = providers
        self.clock = clock or utc_now
        self.tz = ZoneInfo(self.settings.timezone)

        self.queue = PriorityTimeQueue()
        self.buffer = MeasurementBuffer()
        self.credentials = CredentialCache(self.settings.credential_ttl_seconds)
        self.failures = FailureLog(self.settings.failure_log_size)
        # show id -> window end of its last dispatched probe
        self.dispatched: Dict[int, datetime] = {}
        self.windows = WindowPolicy.from_settings(self.settings)
        self.quiet_hours = QuietHours.from_settings(self.settings)

        self.probe_limit = asyncio.Semaphore(self.settings.probe_concurrency)
        self.write_limit = asyncio.Semaphore(self.settings.write_concurrency)

    def now(self) -> datetime:
        return self.clock()

    def is_quiet(self, now: Optional[datetime] = None) -> bool:
        return self.quiet_hours.is_quiet(now or self.now())

    def forget_closed_dispatches(self, now: datetime) -> None:
        for show_id in [k for k, end in self.dispatched.items() if now > end]:
            del self.dispatched[show_id]

    def provider_rank(self, tag: str) -> int:
        return self.settings.provider_priority.get(tag, 99)

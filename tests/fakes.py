"""Test doubles shared by the test modules."""

from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

from seat_sampler.database import Database
from seat_sampler.database import to_db_timestamp
from seat_sampler.exceptions import CredentialError
from seat_sampler.exceptions import ProbeError
from seat_sampler.models import CapacityProbeRequest
from seat_sampler.models import CapacityProbeResult
from seat_sampler.models import Measurement
from seat_sampler.models import ProbeRequest
from seat_sampler.models import ProbeResult
from seat_sampler.models import SampleTask
from seat_sampler.models import TaskPayload
from seat_sampler.providers import Provider

# 14:00 in Toronto (EDT)
DAY = datetime(2026, 6, 15, 18, 0, tzinfo=timezone.utc)
# 03:00 in Toronto, inside the default quiet band
NIGHT = datetime(2026, 6, 16, 7, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeProvider(Provider):
    """
    Provider answering from a table keyed by detail URL.

    Values may be a ProbeResult, None (showing not found) or an exception
    to raise. Unknown URLs get ``default``.
    """

    tag = "cineplex"

    def __init__(
        self,
        venue_names: Iterable[str] = (),
        tag: Optional[str] = None,
        results: Optional[Dict[Optional[str], object]] = None,
        default: Optional[ProbeResult] = None,
        order: Optional[List[str]] = None,
    ) -> None:
        if tag:
            self.tag = tag
        super().__init__(venue_names)
        self.results = results or {}
        self.default = default or ProbeResult(auditorium="Salle 1", seats_remaining=40)
        self.calls: List[ProbeRequest] = []
        self.order = order
        self.closed = False

    async def probe_seats(self, request: ProbeRequest) -> Optional[ProbeResult]:
        self.calls.append(request)
        if self.order is not None:
            self.order.append(self.tag)
        outcome = self.results.get(request.detail_url, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


class CredentialProvider(FakeProvider):
    """Provider that needs a per-venue token."""

    tag = "cineentreprise"

    def __init__(self, *args, token: str = "token-1", fail: bool = False, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.token = token
        self.fail = fail
        self.credential_calls: List[tuple] = []

    async def fetch_credential(self, venue_url: str, api_id: Optional[str]) -> str:
        self.credential_calls.append((venue_url, api_id))
        if self.fail:
            raise CredentialError(f"token endpoint refused {venue_url}")
        return self.token


class CapacityProvider(FakeProvider):
    """Provider that can test whether a reservation of N seats is accepted."""

    tag = "webdev"

    def __init__(self, *args, accepted: Iterable[int] = (), fail_on: Optional[int] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.accepted = set(accepted)
        self.fail_on = fail_on
        self.capacity_calls: List[int] = []

    async def probe_capacity_candidate(self, request: CapacityProbeRequest, candidate: int) -> CapacityProbeResult:
        self.capacity_calls.append(candidate)
        if candidate == self.fail_on:
            raise ProbeError(f"reservation endpoint failed for {candidate}")
        return CapacityProbeResult(ok=candidate in self.accepted)


class NoStore:
    """Stands in for the store; any use of it fails the test."""

    def __getattr__(self, name: str):
        raise AssertionError(f"store accessed: {name}")


class StoreSeeder:
    """Inserts fixture rows straight into the test database."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def _insert(self, sql: str, params: tuple) -> int:
        async with self.db._get_connection() as conn:
            cursor = await conn.execute(sql, params)
            await conn.commit()
            return cursor.lastrowid

    async def theater(self, name: str, api_id: Optional[str] = None, showings_url: Optional[str] = None) -> int:
        return await self._insert(
            "INSERT INTO theaters (name, api_id, showings_url) VALUES (?, ?, ?)",
            (name, api_id, showings_url)
        )

    async def movie(self, title: str = "Dune", fr_title: Optional[str] = None) -> int:
        return await self._insert("INSERT INTO movies (title, fr_title) VALUES (?, ?)", (title, fr_title))

    async def screen(self, theater_id: int, name: str, seat_count: Optional[int]) -> int:
        return await self._insert(
            "INSERT INTO screens (theater_id, name, seat_count) VALUES (?, ?, ?)",
            (theater_id, name, seat_count)
        )

    async def showing(
        self,
        theater_id: int,
        movie_id: int,
        start_at: datetime,
        purchase_url: Optional[str] = None,
        screen_id: Optional[int] = None,
        seats_sold: Optional[int] = None,
    ) -> int:
        return await self._insert(
            """
            INSERT INTO showings (movie_id, theater_id, start_at, purchase_url, screen_id, seats_sold)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (movie_id, theater_id, to_db_timestamp(start_at), purchase_url, screen_id, seats_sold)
        )

    async def row(self, showing_id: int) -> dict:
        async with self.db._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT seats_sold, screen_id, sampled_at FROM showings WHERE id = ?", (showing_id,)
            )
            row = await cursor.fetchone()
        return dict(row)


def make_task(
    show_id: int,
    trigger: datetime,
    window_end: Optional[datetime] = None,
    provider: str = "cineplex",
    purchase_url: Optional[str] = None,
    theater_id: int = 1,
) -> SampleTask:
    payload = TaskPayload(
        show_id=show_id,
        provider=provider,
        movie_id=1,
        theater_id=theater_id,
        theater_name="Cinema",
        movie_title="Dune",
        purchase_url=purchase_url or f"https://tickets.example/{show_id}",
        local_date=trigger.strftime("%Y-%m-%d"),
        local_time=trigger.strftime("%H:%M"),
    )
    return SampleTask(
        trigger=trigger,
        window_end=window_end or trigger + timedelta(minutes=3),
        payload=payload,
    )


def make_measurement(
    show_id: int,
    theater_id: int,
    auditorium: Optional[str] = "Salle 1",
    seats_remaining: Optional[int] = 40,
    capacity: Optional[int] = None,
    measured_at: datetime = DAY,
) -> Measurement:
    return Measurement(
        show_id=show_id,
        theater_id=theater_id,
        movie_id=1,
        auditorium=auditorium,
        seats_remaining=seats_remaining,
        capacity=capacity,
        source="cineplex",
        measured_at=measured_at,
    )

from datetime import timedelta

import pytest

from fakes import DAY
from fakes import FakeProvider
from fakes import make_task
from seat_sampler.exceptions import ProbeError
from seat_sampler.models import Credential
from seat_sampler.models import ProbeResult
from seat_sampler.scheduler import sync
from seat_sampler.scheduler import tick
from seat_sampler.scheduler.tick import build_request

pytestmark = pytest.mark.asyncio


async def test_task_waits_for_trigger_then_is_dispatched(make_ctx, seed, clock):
    """A show at T with window [T-7m15s, T], enqueued at T-8m."""
    show_start = DAY + timedelta(minutes=8)
    theater = await seed.theater("Cinema")
    movie = await seed.movie()
    await seed.showing(theater, movie, show_start, "https://t.example/1")
    provider = FakeProvider(["Cinema"], tag="cineentreprise")
    ctx = make_ctx(provider)

    await sync(ctx)
    assert ctx.queue.peek().trigger == show_start - timedelta(minutes=7, seconds=15)

    result = await tick(ctx)
    assert result.due == 0
    assert provider.calls == []

    clock.advance(seconds=44)
    await tick(ctx)
    assert provider.calls == []

    clock.now = show_start - timedelta(minutes=7, seconds=15)
    result = await tick(ctx)

    assert result.sampled == 1
    assert len(provider.calls) == 1
    assert provider.calls[0].detail_url == "https://t.example/1"


async def test_task_first_popped_after_window_is_dropped(make_ctx, seed, clock):
    show_start = DAY + timedelta(minutes=8)
    theater = await seed.theater("Cinema")
    movie = await seed.movie()
    await seed.showing(theater, movie, show_start)
    provider = FakeProvider(["Cinema"], tag="cineentreprise")
    ctx = make_ctx(provider)

    await sync(ctx)
    clock.now = show_start + timedelta(seconds=1)
    result = await tick(ctx)

    assert result.expired == 1
    assert result.due == 0
    assert provider.calls == []
    assert len(ctx.queue) == 0
    assert len(ctx.failures) == 0


async def test_expired_tasks_are_never_dispatched(make_ctx, clock):
    provider = FakeProvider(["Cinema"])
    ctx = make_ctx(provider)
    now = clock.now
    expired_urls = set()
    for show_id in range(30):
        trigger = now - timedelta(minutes=show_id)
        window_end = trigger + timedelta(minutes=3)
        task = make_task(show_id, trigger, window_end)
        if window_end < now:
            expired_urls.add(task.payload.purchase_url)
        ctx.queue.push(task)

    result = await tick(ctx)

    dispatched = {call.detail_url for call in provider.calls}
    assert result.expired == len(expired_urls) == 26
    assert dispatched.isdisjoint(expired_urls)
    assert result.due == len(dispatched) == 4


async def test_due_tasks_dispatch_in_provider_priority_order(make_ctx, clock):
    order = []
    slow = FakeProvider(["Webdev Cinema"], tag="webdev", order=order)
    mid = FakeProvider(["Plex Cinema"], tag="cineplex", order=order)
    fast = FakeProvider(["Entreprise Cinema"], tag="cineentreprise", order=order)
    ctx = make_ctx(slow, mid, fast)
    ctx.queue.push(make_task(1, clock.now - timedelta(seconds=30), provider="webdev"))
    ctx.queue.push(make_task(2, clock.now - timedelta(seconds=20), provider="cineplex"))
    ctx.queue.push(make_task(3, clock.now - timedelta(seconds=10), provider="cineentreprise"))

    await tick(ctx)

    assert order == ["cineentreprise", "cineplex", "webdev"]


async def test_probe_failure_does_not_affect_siblings(make_ctx, clock):
    provider = FakeProvider(
        ["Cinema"],
        results={
            "https://t.example/1": ProbeError("vendor returned HTTP 503"),
            "https://t.example/3": None,
        },
    )
    ctx = make_ctx(provider)
    for show_id in (1, 2, 3):
        ctx.queue.push(make_task(show_id, clock.now, purchase_url=f"https://t.example/{show_id}"))

    result = await tick(ctx)

    assert (result.sampled, result.failed, result.empty) == (1, 1, 1)
    assert len(ctx.buffer) == 1
    [failure] = ctx.failures.recent("probe")
    assert failure.show_id == 1
    assert "503" in failure.error
    assert failure.payload["purchase_url"] == "https://t.example/1"
    assert "credential" not in failure.payload


async def test_failed_probe_is_not_retried_in_same_window(make_ctx, seed):
    theater = await seed.theater("Cinema")
    movie = await seed.movie()
    await seed.showing(theater, movie, DAY + timedelta(minutes=3), "https://t.example/1")
    provider = FakeProvider(["Cinema"], tag="cineentreprise", results={"https://t.example/1": ProbeError("boom")})
    ctx = make_ctx(provider)

    await sync(ctx)
    first = await tick(ctx)
    resync = await sync(ctx)
    second = await tick(ctx)

    assert first.failed == 1
    assert resync.already_dispatched == 1
    assert second.due == 0
    assert len(provider.calls) == 1


async def test_measurement_is_buffered(make_ctx, clock):
    provider = FakeProvider(
        ["Cinema"],
        default=ProbeResult(auditorium="Salle 2", seats_remaining=17, capacity=150),
    )
    ctx = make_ctx(provider)
    ctx.queue.push(make_task(5, clock.now, theater_id=9))

    await tick(ctx)

    [measurement] = ctx.buffer.drain()
    assert measurement.show_id == 5
    assert measurement.theater_id == 9
    assert measurement.auditorium == "Salle 2"
    assert measurement.seats_remaining == 17
    assert measurement.capacity == 150
    assert measurement.source == "cineplex"
    assert measurement.measured_at == clock.now


async def test_unregistered_provider_is_a_failure(make_ctx, clock):
    ctx = make_ctx(FakeProvider(["Cinema"]))
    ctx.queue.push(make_task(1, clock.now, provider="gone"))

    result = await tick(ctx)

    assert result.failed == 1
    assert len(ctx.failures.recent("probe")) == 1


async def test_request_prefers_cached_credential(make_ctx, clock):
    ctx = make_ctx(FakeProvider(["Cinema"]))
    task = make_task(1, clock.now, theater_id=4)
    task = task.model_copy(update={
        "payload": task.payload.model_copy(update={
            "credential": Credential(token="old", fetched_at=DAY - timedelta(hours=2)),
            "expected_capacity": 180,
            "venue_api_id": "977",
        })
    })
    ctx.credentials.put(4, Credential(token="new", fetched_at=DAY))

    request = build_request(ctx, task)

    assert request.credential.token == "new"
    assert request.venue_hints == {"expected_capacity": 180, "venue_api_id": "977"}
    assert request.date == task.payload.local_date
    assert request.title == "Dune"


async def test_stale_cached_credential_is_not_used(make_ctx, clock, settings):
    ctx = make_ctx(FakeProvider(["Cinema"]))
    task = make_task(1, clock.now, theater_id=4)
    task = task.model_copy(update={
        "payload": task.payload.model_copy(update={
            "credential": Credential(token="enqueued", fetched_at=DAY),
        })
    })
    stale_at = DAY - timedelta(seconds=settings.credential_ttl_seconds + 1)
    ctx.credentials.put(4, Credential(token="stale", fetched_at=stale_at))

    request = build_request(ctx, task)

    assert request.credential.token == "enqueued"

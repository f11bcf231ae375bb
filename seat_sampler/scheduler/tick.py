"""
Tick stage: drain due tasks and probe them.

Pops every task whose trigger has passed, silently drops those whose window
closed meanwhile, orders the rest by provider priority and probes them
concurrently under the probe limiter. Each probe settles on its own; a
failure is recorded and never affects its siblings.
"""

import asyncio
import logging
from datetime import datetime
from typing import List
from typing import Optional

from seat_sampler.exceptions import ClassificationError
from seat_sampler.models import Measurement
from seat_sampler.models import ProbeRequest
from seat_sampler.models import ProbeResult
from seat_sampler.models import SampleTask
from seat_sampler.models import TickResult
from seat_sampler.scheduler.context import SchedulerContext

logger = logging.getLogger(__name__)


def pop_due(ctx: SchedulerContext, now: datetime) -> tuple:
    """
    Pop all tasks with ``trigger <= now``.

    Returns:
        ``(due, expired_count)`` with ``due`` in trigger order
    """
    due: List[SampleTask] = []
    expired = 0
    while True:
        task = ctx.queue.peek()
        if task is None or task.trigger > now:
            break
        ctx.queue.pop()
        if task.is_expired(now):
            expired += 1
            continue
        due.append(task)
    return due, expired


def build_request(ctx: SchedulerContext, task: SampleTask) -> ProbeRequest:
    payload = task.payload
    credential = ctx.credentials.get_fresh(payload.theater_id, ctx.now()) or payload.credential
    hints = {}
    if payload.expected_capacity is not None:
        hints["expected_capacity"] = payload.expected_capacity
    if payload.venue_api_id:
        hints["venue_api_id"] = payload.venue_api_id
    return ProbeRequest(
        date=payload.local_date,
        time=payload.local_time,
        title=payload.movie_title,
        detail_url=payload.purchase_url,
        venue_name=payload.theater_name,
        venue_hints=hints,
        credential=credential,
    )


def to_measurement(task: SampleTask, result: ProbeResult, measured_at: datetime) -> Measurement:
    payload = task.payload
    return Measurement(
        show_id=payload.show_id,
        theater_id=payload.theater_id,
        movie_id=payload.movie_id,
        auditorium=result.auditorium,
        seats_remaining=result.seats_remaining,
        capacity=result.capacity,
        source=result.source or payload.provider,
        measured_at=measured_at,
    )


async def _probe(ctx: SchedulerContext, task: SampleTask) -> Optional[Measurement]:
    payload = task.payload
    provider = ctx.providers.get(payload.provider)
    if provider is None:
        raise ClassificationError(f"provider {payload.provider!r} is not registered", payload.show_id)
    request = build_request(ctx, task)
    async with ctx.probe_limit:
        result = await provider.probe_seats(request)
    if result is None:
        return None
    measurement = to_measurement(task, result, ctx.now())
    ctx.buffer.append(measurement)
    return measurement


async def tick(ctx: SchedulerContext) -> TickResult:
    """
    Dispatch every due, unexpired task to its provider.

    Dispatch order follows provider priority; completion order is whatever
    the network gives.
    """
    now = ctx.now()
    if ctx.is_quiet(now):
        return TickResult(quiet=True, buffered=len(ctx.buffer))

    due, expired = pop_due(ctx, now)
    result = TickResult(due=len(due), expired=expired)
    if not due:
        result.buffered = len(ctx.buffer)
        return result

    due.sort(key=lambda t: ctx.provider_rank(t.payload.provider))
    for task in due:
        ctx.dispatched[task.payload.show_id] = task.window_end

    outcomes = await asyncio.gather(
        *(_probe(ctx, task) for task in due),
        return_exceptions=True,
    )

    for task, outcome in zip(due, outcomes):
        if isinstance(outcome, BaseException):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            result.failed += 1
            ctx.failures.record(
                "probe", outcome, ctx.now(), show_id=task.payload.show_id,
                payload=task.payload.model_dump(mode="json", exclude={"credential"}),
            )
        elif outcome is None:
            result.empty += 1
        else:
            result.sampled += 1

    result.buffered = len(ctx.buffer)
    logger.info(
        f"Tick sampled {result.sampled}/{result.due} showings "
        f"(failed={result.failed}, empty={result.empty}, expired={result.expired}); "
        f"buffered={result.buffered}",
        extra={"stage": "tick", **result.model_dump()},
    )
    return result

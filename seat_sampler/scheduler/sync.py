"""
Sync stage: rebuild the sampling queue from the store.

Every pending showing in ``[now - backpad, now + lookahead]`` is classified
to a provider, given its credential if the provider needs one, and queued
at the start of its eligibility window. Showings whose window already
closed are dropped; late data is not chased.
"""

import logging
from datetime import timedelta
from typing import List
from typing import Optional

from seat_sampler.models import Credential
from seat_sampler.models import SampleTask
from seat_sampler.models import ShowEvent
from seat_sampler.models import SyncResult
from seat_sampler.models import TaskPayload
from seat_sampler.providers.base import Provider
from seat_sampler.scheduler.context import SchedulerContext

logger = logging.getLogger(__name__)


def local_date_time(ctx: SchedulerContext, show: ShowEvent) -> tuple:
    local = show.start_at.astimezone(ctx.tz)
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M")


async def _ensure_credential(
    ctx: SchedulerContext,
    provider: Provider,
    show: ShowEvent,
    result: SyncResult,
) -> Optional[Credential]:
    """
    Return a fresh credential for the show's venue, fetching it if needed.

    Returns None when the row has to be skipped for this pass.
    """
    now = ctx.now()
    credential = ctx.credentials.get_fresh(show.theater_id, now)
    if credential is not None:
        return credential

    if not show.theater_url or not show.theater_api_id:
        result.missing_prerequisites += 1
        logger.debug(f"Skipping showing {show.id}: venue {show.theater_name!r} lacks URL or API id")
        return None

    try:
        token = await provider.fetch_credential(show.theater_url, show.theater_api_id)
    except Exception as e:
        result.credential_failures += 1
        ctx.failures.record(
            "credential", e, now, show_id=show.id,
            payload={"theater_id": show.theater_id, "theater_url": show.theater_url},
        )
        return None

    credential = Credential(token=token, fetched_at=ctx.now(), api_id=show.theater_api_id)
    ctx.credentials.put(show.theater_id, credential)
    logger.info(f"Fetched credential for venue {show.theater_name!r}")
    return credential


async def sync(ctx: SchedulerContext) -> SyncResult:
    """
    Rebuild the priority queue from pending showings.

    Per-row failures are recorded and skipped; the pass always walks every
    candidate. The queue is only replaced once the store read succeeded.
    """
    now = ctx.now()
    if ctx.is_quiet(now):
        return SyncResult(quiet=True, queue_size=len(ctx.queue))

    settings = ctx.settings
    rows = await ctx.db.get_pending_showings(
        now - timedelta(minutes=settings.backpad_minutes),
        now + timedelta(hours=settings.lookahead_hours),
    )

    result = SyncResult(candidates=len(rows))
    buffered = ctx.buffer.show_ids()
    ctx.forget_closed_dispatches(now)
    tasks: List[SampleTask] = []

    for show in rows:
        if show.id in buffered:
            result.already_buffered += 1
            continue
        if show.id in ctx.dispatched:
            result.already_dispatched += 1
            continue

        provider = ctx.providers.classify(show.theater_name)
        if provider is None:
            result.unclassified += 1
            ctx.failures.record(
                "classification", "unmapped_theater", now, show_id=show.id,
                payload={"theater_name": show.theater_name},
            )
            continue

        credential = None
        if provider.requires_credential:
            credential = await _ensure_credential(ctx, provider, show, result)
            if credential is None:
                continue

        window = ctx.windows.window_for(
            provider.tag, show.theater_name, provider.window_override(show.theater_name)
        )
        window_start, window_end = ctx.windows.bounds(window, show.start_at)
        if now > window_end:
            result.closed += 1
            continue

        local_date, local_time = local_date_time(ctx, show)
        payload = TaskPayload(
            show_id=show.id,
            provider=provider.tag,
            movie_id=show.movie_id,
            theater_id=show.theater_id,
            theater_name=show.theater_name,
            movie_title=show.movie_title,
            purchase_url=show.purchase_url,
            local_date=local_date,
            local_time=local_time,
            expected_capacity=show.screen_seat_count,
            venue_api_id=show.theater_api_id,
            credential=credential,
        )
        # A window that already opened is drained by the next tick.
        tasks.append(SampleTask(trigger=window_start, window_end=window_end, payload=payload))

    ctx.queue.replace_all(tasks)
    result.enqueued = len(tasks)
    result.queue_size = len(ctx.queue)

    logger.info(
        f"Sync queued {result.enqueued}/{result.candidates} showings "
        f"(closed={result.closed}, unclassified={result.unclassified}, "
        f"credential_failures={result.credential_failures}, "
        f"missing_prerequisites={result.missing_prerequisites}); queue={result.queue_size}",
        extra={"stage": "sync", **result.model_dump()},
    )
    return result

"""
Capacity resolution job.

Runs during quiet hours only. For every upcoming showing without a screen,
the provider is asked, largest first, whether a reservation of each seat
count known for the venue would be accepted. The first accepted count is
mapped to a screen and written as a write-once assignment.

The candidate list is walked in order rather than bisected: inventory is
live and acceptance is not monotonic across probes.
"""

import asyncio
import logging
from datetime import datetime
from datetime import timedelta
from typing import List
from typing import Optional

from seat_sampler.matching import map_capacity_to_screen
from seat_sampler.models import CapacityProbeRequest
from seat_sampler.models import ResolutionResult
from seat_sampler.models import ShowEvent
from seat_sampler.providers.base import Provider
from seat_sampler.scheduler.context import SchedulerContext

logger = logging.getLogger(__name__)


async def find_capacity(
    ctx: SchedulerContext,
    provider: Provider,
    show: ShowEvent,
    candidates: List[int],
    result: ResolutionResult,
) -> Optional[int]:
    """
    Probe candidate capacities in order and return the first accepted one.

    A probe error stops the search for this showing.
    """
    request = CapacityProbeRequest(detail_url=show.purchase_url)
    for candidate in candidates:
        result.probes += 1
        try:
            async with ctx.probe_limit:
                outcome = await provider.probe_capacity_candidate(request, candidate)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            result.failed += 1
            ctx.failures.record(
                "capacity_probe", e, ctx.now(), show_id=show.id,
                payload={"candidate": candidate, "detail_url": show.purchase_url},
            )
            return None
        logger.debug(f"[resolve] showing_id={show.id} candidate={candidate} ok={outcome.ok}")
        if outcome.ok:
            return candidate
    return None


async def _resolve_one(
    ctx: SchedulerContext,
    provider: Provider,
    show: ShowEvent,
    not_before: datetime,
    not_after: datetime,
    result: ResolutionResult,
) -> bool:
    candidates = await ctx.db.get_known_seat_counts(show.theater_id)
    if not candidates:
        result.unresolved += 1
        logger.debug(f"[resolve] showing_id={show.id}: venue has no known seat counts")
        return False

    capacity = await find_capacity(ctx, provider, show, candidates, result)
    if capacity is None:
        result.unresolved += 1
        return False

    screens = await ctx.db.get_screens(show.theater_id)
    screen = map_capacity_to_screen(screens, capacity)
    if screen is None:
        result.unresolved += 1
        return False

    if await ctx.db.assign_screen(show.id, screen.id, not_before, not_after):
        logger.info(
            f"[resolve] showing_id={show.id} {show.theater_name!r} -> screen {screen.name!r} "
            f"(capacity {capacity})"
        )
        return True
    logger.debug(f"[resolve] showing_id={show.id} already assigned or out of range")
    return False


async def resolve_assignments(ctx: SchedulerContext) -> ResolutionResult:
    """
    Assign screens to upcoming showings by probing candidate capacities.

    Outside quiet hours this does nothing and touches no store.
    """
    now = ctx.now()
    if not ctx.is_quiet(now):
        return ResolutionResult(quiet=False)

    not_after = now + timedelta(days=ctx.settings.resolution_lookahead_days)
    rows = await ctx.db.get_unassigned_showings(now, not_after)
    result = ResolutionResult()

    for show in rows:
        provider = ctx.providers.classify(show.theater_name)
        if provider is None or not provider.supports_capacity_probe or not show.purchase_url:
            continue
        result.candidates += 1
        try:
            if await _resolve_one(ctx, provider, show, now, not_after, result):
                result.assigned += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            result.failed += 1
            ctx.failures.record("resolution", e, ctx.now(), show_id=show.id)

    logger.info(
        f"Resolution assigned {result.assigned}/{result.candidates} showings "
        f"(probes={result.probes}, unresolved={result.unresolved}, failed={result.failed})",
        extra={"stage": "resolution", **result.model_dump()},
    )
    return result

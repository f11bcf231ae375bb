"""Housekeeping: credential pruning and the missing-data report."""

import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict
from typing import List

from seat_sampler.models import HousekeepingResult
from seat_sampler.models import ShowEvent
from seat_sampler.scheduler.context import SchedulerContext

logger = logging.getLogger(__name__)


def group_by_venue(shows: List[ShowEvent]) -> Dict[str, List[ShowEvent]]:
    grouped: Dict[str, List[ShowEvent]] = defaultdict(list)
    for show in shows:
        grouped[show.theater_name or f"theater {show.theater_id}"].append(show)
    return dict(grouped)


async def housekeeping(ctx: SchedulerContext) -> HousekeepingResult:
    """
    Drop stale credentials and warn about showings that were never sampled.

    A showing is reported once it started between ``missing_data_alert_hours``
    and ``missing_data_alert_hours + 24`` hours ago without seats sold.
    """
    now = ctx.now()
    if ctx.is_quiet(now):
        return HousekeepingResult(quiet=True)

    result = HousekeepingResult(credentials_pruned=ctx.credentials.prune(now))

    alert = timedelta(hours=ctx.settings.missing_data_alert_hours)
    missing = await ctx.db.get_missing_data(now - alert - timedelta(hours=24), now - alert)
    result.missing_data = len(missing)

    if missing:
        lines = []
        for venue, shows in sorted(group_by_venue(missing).items()):
            local = ", ".join(s.start_at.astimezone(ctx.tz).strftime("%m-%d %H:%M") for s in shows[:5])
            more = f" (+{len(shows) - 5} more)" if len(shows) > 5 else ""
            lines.append(f"{venue}: {len(shows)} [{local}{more}]")
        logger.warning(f"{len(missing)} showing(s) without seats sold: " + "; ".join(lines))

    logger.info(
        f"Housekeeping pruned {result.credentials_pruned} credential(s); "
        f"missing_data={result.missing_data}",
        extra={"stage": "housekeeping", **result.model_dump()},
    )
    return result

"""
Flush stage: commit buffered measurements in one transaction.

Each measurement is matched to a screen of its venue, turned into a seats
sold value and written with conditional updates: seats sold only when it
changed, the screen only when none is assigned yet. A measurement that
cannot be matched or written is skipped; only a failure of the
transaction itself rolls the batch back.
"""

import asyncio
import logging
from typing import Dict
from typing import List
from typing import Optional

from seat_sampler.database import StoreTransaction
from seat_sampler.exceptions import ScreenResolutionError
from seat_sampler.matching import compute_seats_sold
from seat_sampler.matching import match_screen_by_name
from seat_sampler.matching import match_screen_by_seat_count
from seat_sampler.models import FlushResult
from seat_sampler.models import Measurement
from seat_sampler.models import Screen
from seat_sampler.scheduler.context import SchedulerContext

logger = logging.getLogger(__name__)


class _ScreenLookup:
    """Screens per venue, read once per batch inside the transaction."""

    def __init__(self, tx: StoreTransaction) -> None:
        self._tx = tx
        self._screens: Dict[int, asyncio.Future] = {}

    async def get(self, theater_id: int) -> List[Screen]:
        if theater_id not in self._screens:
            self._screens[theater_id] = asyncio.ensure_future(self._tx.get_screens(theater_id))
        return await self._screens[theater_id]


def resolve_screen(
    ctx: SchedulerContext,
    screens: List[Screen],
    measurement: Measurement,
) -> Screen:
    """
    Pick the screen a measurement refers to.

    The auditorium label is tried first; when it names no known screen, the
    observed capacity is matched against screen seat counts.

    Raises:
        ScreenResolutionError: when nothing matches
    """
    screen: Optional[Screen] = None
    if measurement.auditorium:
        screen, strategy = match_screen_by_name(screens, measurement.auditorium)
        if screen is not None and strategy != "exact":
            logger.debug(
                f"[flush] {strategy} auditorium match showing_id={measurement.show_id} "
                f"auditorium={measurement.auditorium!r} screen={screen.name!r}"
            )
    if screen is None and measurement.capacity is not None:
        screen, fuzzy = match_screen_by_seat_count(
            screens, measurement.capacity, ctx.settings.seat_count_tolerance
        )
        if screen is not None and fuzzy:
            logger.debug(
                f"[flush] fuzzy seat_count match showing_id={measurement.show_id} "
                f"capacity={measurement.capacity} screen_seat_count={screen.seat_count}"
            )
    if screen is None:
        raise ScreenResolutionError(
            f"No screen matched auditorium={measurement.auditorium!r} "
            f"capacity={measurement.capacity} in theater_id={measurement.theater_id}",
            measurement.show_id,
        )
    return screen


async def _write_one(
    ctx: SchedulerContext,
    tx: StoreTransaction,
    lookup: _ScreenLookup,
    measurement: Measurement,
) -> bool:
    """Write one measurement. Returns False when it was skipped."""
    async with ctx.write_limit:
        try:
            if measurement.seats_remaining is None:
                logger.debug(f"[flush] skip showing_id={measurement.show_id}: no seats_remaining")
                return False
            screens = await lookup.get(measurement.theater_id)
            screen = resolve_screen(ctx, screens, measurement)
            seats_sold = compute_seats_sold(screen.seat_count, measurement.seats_remaining)
            await tx.set_seats_sold(measurement.show_id, seats_sold, measurement.measured_at)
            await tx.set_screen_if_unset(measurement.show_id, screen.id)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            ctx.failures.record(
                getattr(e, "kind", "write"), e, ctx.now(), show_id=measurement.show_id,
                payload=measurement.model_dump(mode="json"),
            )
            return False


async def flush(ctx: SchedulerContext, force: bool = False) -> FlushResult:
    """
    Commit the measurement buffer.

    Args:
        ctx: Scheduler context
        force: Commit whatever is buffered, ignoring batch size and quiet hours

    Returns:
        Counts of written and skipped measurements
    """
    if not force:
        if ctx.is_quiet():
            return FlushResult(quiet=True)
        if len(ctx.buffer) < ctx.settings.flush_batch:
            return FlushResult()

    batch = ctx.buffer.drain()
    result = FlushResult(batch_size=len(batch))
    if not batch:
        return result

    written = 0
    try:
        async with ctx.db.transaction() as tx:
            lookup = _ScreenLookup(tx)
            outcomes = await asyncio.gather(
                *(_write_one(ctx, tx, lookup, m) for m in batch)
            )
            written = sum(1 for ok in outcomes if ok)
    except asyncio.CancelledError:
        ctx.buffer.restore(batch)
        logger.warning(f"[flush] cancelled, {len(batch)} measurement(s) returned to the buffer")
        raise
    except Exception as e:
        result.rolled_back = True
        result.skipped = len(batch)
        logger.exception(f"[flush] transaction failed, {len(batch)} measurement(s) dropped: {e}")
        return result

    result.written = written
    result.skipped = len(batch) - written
    logger.info(
        f"Flush wrote {result.written}, skipped {result.skipped}",
        extra={"stage": "flush", **result.model_dump()},
    )
    return result

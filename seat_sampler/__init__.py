"""
Seat Availability Sampler for cinema showings.

A background daemon that observes how many seats are still free for each
upcoming showing, once, inside a short provider-specific window around its
start time, and records seats sold and the auditorium it played in.

Main Components:
- Sync: rebuilds a time-ordered queue of sampling tasks from the store
- Tick: probes due tasks through the venue's ticketing provider
- Flush: commits buffered measurements in one transaction, idempotently
- Capacity resolution: assigns screens to upcoming showings during quiet hours
- Providers: pluggable per-vendor probes loaded from settings

Usage:
    # Run the daemon
    python -m seat_sampler.main --mode daemon

    # One sync pass
    python -m seat_sampler.main --mode sync

    # Drive the stages programmatically
    from seat_sampler.database import Database
    from seat_sampler.providers import ProviderRegistry
    from seat_sampler.scheduler import SchedulerContext, sync, tick, flush

    db = Database()
    await db.initialize()
    ctx = SchedulerContext(db, ProviderRegistry([MyProvider()]))
    await sync(ctx)
"""

__version__ = "1.0.0"

from seat_sampler.database import Database
from seat_sampler.models import Measurement
from seat_sampler.models import SampleTask
from seat_sampler.models import ShowEvent
from seat_sampler.providers import Provider
from seat_sampler.providers import ProviderRegistry
from seat_sampler.scheduler import SchedulerContext

__all__ = [
    "Database",
    "Measurement",
    "Provider",
    "ProviderRegistry",
    "SampleTask",
    "SchedulerContext",
    "ShowEvent",
]

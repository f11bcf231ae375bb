"""
Scheduler stages.

Each stage is a coroutine taking the :class:`SchedulerContext` and
returning a result model with its counters.
"""

from seat_sampler.scheduler.context import SchedulerContext
from seat_sampler.scheduler.flush import flush
from seat_sampler.scheduler.housekeeping import housekeeping
from seat_sampler.scheduler.resolution import resolve_assignments
from seat_sampler.scheduler.sync import sync
from seat_sampler.scheduler.tick import tick

__all__ = [
    "SchedulerContext",
    "flush",
    "housekeeping",
    "resolve_assignments",
    "sync",
    "tick",
]

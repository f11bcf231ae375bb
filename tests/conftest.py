from pathlib import Path

import pytest
import pytest_asyncio

from fakes import DAY
from fakes import FakeClock
from fakes import StoreSeeder
from seat_sampler.database import Database
from seat_sampler.providers import ProviderRegistry
from seat_sampler.scheduler import SchedulerContext
from seat_sampler.settings import Settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(db_path=tmp_path / "test.db", log_dir=tmp_path / "logs")


@pytest_asyncio.fixture
async def db(settings: Settings):
    """Provides an initialized file-based database instance for each test."""
    db_instance = Database(db_path=settings.db_path)
    await db_instance.initialize()
    yield db_instance
    await db_instance.close()


@pytest.fixture
def seed(db: Database) -> StoreSeeder:
    return StoreSeeder(db)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(DAY)


@pytest.fixture
def make_ctx(db: Database, settings: Settings, clock: FakeClock):
    """Build a scheduler context over the test store with the given providers."""

    def _make(*providers, store=None, **overrides) -> SchedulerContext:
        ctx_settings = settings.model_copy(update=overrides) if overrides else settings
        return SchedulerContext(
            store if store is not None else db,
            ProviderRegistry(providers),
            settings=ctx_settings,
            clock=clock,
        )

    return _make

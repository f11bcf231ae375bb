"""
Database layer for the seat sampler.

Provides an async SQLite interface with connection management, schema
creation, the read queries used by sync and capacity resolution, and the
conditional updates that keep seats sold idempotent and screen assignment
write-once.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from datetime import timezone
from pathlib import Path
from typing import AsyncGenerator
from typing import List
from typing import Optional

import aiosqlite

from seat_sampler.exceptions import StoreError
from seat_sampler.models import Screen
from seat_sampler.models import ShowEvent
from seat_sampler.settings import get_settings

logger = logging.getLogger(__name__)

_SHOWING_COLUMNS = """
    s.id                          AS showing_id,
    s.movie_id,
    s.theater_id,
    COALESCE(m.fr_title, m.title) AS movie_title,
    s.start_at,
    s.purchase_url,
    s.seats_sold,
    s.screen_id,
    t.name                        AS theater_name,
    t.api_id                      AS theater_api_id,
    t.showings_url                AS theater_url,
    sc.seat_count                 AS screen_seat_count
"""

_SHOWING_JOINS = """
    FROM showings s
    JOIN theaters t ON t.id = s.theater_id
    JOIN movies   m ON m.id = s.movie_id
    LEFT JOIN screens sc ON sc.id = s.screen_id
"""


def to_db_timestamp(dt: datetime) -> str:
    """Store timestamps as second-precision ISO-8601 UTC so they sort as text."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


def from_db_timestamp(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _row_to_show(row: aiosqlite.Row) -> ShowEvent:
    return ShowEvent(
        id=row["showing_id"],
        movie_id=row["movie_id"],
        theater_id=row["theater_id"],
        movie_title=row["movie_title"] or "",
        start_at=from_db_timestamp(row["start_at"]),
        purchase_url=row["purchase_url"],
        seats_sold=row["seats_sold"],
        screen_id=row["screen_id"],
        theater_name=row["theater_name"] or "",
        theater_api_id=row["theater_api_id"],
        theater_url=row["theater_url"],
        screen_seat_count=row["screen_seat_count"],
    )


def _row_to_screen(row: aiosqlite.Row) -> Screen:
    return Screen(
        id=row["id"],
        theater_id=row["theater_id"],
        name=row["name"] or "",
        seat_count=row["seat_count"] or 0,
    )


class StoreTransaction:
    """
    Write operations available inside :meth:`Database.transaction`.

    All statements run on the connection that holds the open transaction.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_screens(self, theater_id: int) -> List[Screen]:
        cursor = await self._conn.execute(
            "SELECT id, theater_id, name, seat_count FROM screens WHERE theater_id = ? ORDER BY name",
            (theater_id,)
        )
        return [_row_to_screen(row) for row in await cursor.fetchall()]

    async def set_seats_sold(self, showing_id: int, seats_sold: int, sampled_at: datetime) -> bool:
        """Write seats sold only when it differs from the stored value."""
        cursor = await self._conn.execute(
            """
            UPDATE showings
               SET seats_sold = ?, sampled_at = ?
             WHERE id = ?
               AND seats_sold IS NOT ?
            """,
            (seats_sold, to_db_timestamp(sampled_at), showing_id, seats_sold)
        )
        return cursor.rowcount > 0

    async def set_screen_if_unset(self, showing_id: int, screen_id: int) -> bool:
        """Assign a screen only if the showing has none yet."""
        cursor = await self._conn.execute(
            """
            UPDATE showings
               SET screen_id = ?
             WHERE id = ?
               AND screen_id IS NULL
            """,
            (screen_id, showing_id)
        )
        return cursor.rowcount > 0


class Database:
    """
    Async SQLite database interface for the seat sampler.

    Handles schema creation and every store access of the scheduler:
    pending showings for sync, screens and seat counts for matching,
    transactional flush writes and write-once screen assignment.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        """Initialize database with optional custom path."""
        self.db_path = db_path or get_settings().db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize database schema and run migrations."""
        try:
            await self._ensure_schema()
            await self._run_migrations()
        except (aiosqlite.Error, OSError) as e:
            raise StoreError(f"Cannot open store at {self.db_path}: {e}") from e
        logger.info(f"Database initialized at {self.db_path}")

    async def close(self) -> None:
        """Close database connection cleanly."""
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None

    @asynccontextmanager
    async def _get_connection(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Get database connection with proper lifecycle management."""
        async with self._lock:
            if not self._connection:
                self._connection = await aiosqlite.connect(
                    self.db_path,
                    timeout=30.0,
                    isolation_level=None,  # Autocommit mode
                )
                self._connection.row_factory = aiosqlite.Row

                await self._connection.execute("PRAGMA foreign_keys = ON")
                await self._connection.execute("PRAGMA journal_mode = WAL")
                await self._connection.execute("PRAGMA synchronous = NORMAL")

            yield self._connection

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[StoreTransaction, None]:
        """
        Run a block inside one explicit transaction.

        Commits when the block exits normally; rolls back and re-raises
        otherwise. The connection stays reserved for the whole block.
        """
        async with self._get_connection() as conn:
            await conn.execute("BEGIN")
            try:
                yield StoreTransaction(conn)
                await conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                raise

    async def _ensure_schema(self) -> None:
        """Create database tables if they don't exist."""
        schema_sql = """
        CREATE TABLE IF NOT EXISTS theaters (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            api_id TEXT,
            showings_url TEXT
        );

        CREATE TABLE IF NOT EXISTS movies (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            fr_title TEXT
        );

        CREATE TABLE IF NOT EXISTS screens (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            theater_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            seat_count INTEGER,
            FOREIGN KEY (theater_id) REFERENCES theaters(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS showings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            movie_id INTEGER NOT NULL,
            theater_id INTEGER NOT NULL,
            start_at TIMESTAMP NOT NULL,
            purchase_url TEXT,
            screen_id INTEGER,
            seats_sold INTEGER,
            sampled_at TIMESTAMP,
            FOREIGN KEY (movie_id) REFERENCES movies(id) ON DELETE CASCADE,
            FOREIGN KEY (theater_id) REFERENCES theaters(id) ON DELETE CASCADE,
            FOREIGN KEY (screen_id) REFERENCES screens(id) ON DELETE SET NULL
        );

        CREATE INDEX IF NOT EXISTS idx_screens_theater ON screens(theater_id, seat_count);
        CREATE INDEX IF NOT EXISTS idx_showings_start ON showings(start_at);
        CREATE INDEX IF NOT EXISTS idx_showings_pending ON showings(seats_sold, start_at);
        CREATE INDEX IF NOT EXISTS idx_showings_unassigned ON showings(screen_id, start_at);
        """

        async with self._get_connection() as conn:
            await conn.executescript(schema_sql)
            await conn.commit()

    async def _run_migrations(self) -> None:
        """Run database migrations if needed."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
            )
            has_version_table = await cursor.fetchone() is not None

            if not has_version_table:
                await conn.execute(
                    "CREATE TABLE schema_version (version INTEGER PRIMARY KEY)"
                )
                await conn.execute("INSERT INTO schema_version (version) VALUES (1)")
                await conn.commit()
                logger.info("Database schema initialized to version 1")

    async def get_pending_showings(self, start_from: datetime, start_to: datetime) -> List[ShowEvent]:
        """
        Get showings still missing seats sold whose start lies in a range.

        Args:
            start_from: Earliest show start (inclusive)
            start_to: Latest show start (inclusive)

        Returns:
            Showings ordered by start time
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {_SHOWING_COLUMNS}
                {_SHOWING_JOINS}
                WHERE s.seats_sold IS NULL
                  AND s.start_at BETWEEN ? AND ?
                ORDER BY s.start_at
                """,
                (to_db_timestamp(start_from), to_db_timestamp(start_to))
            )
            rows = await cursor.fetchall()
        return [_row_to_show(row) for row in rows]

    async def get_unassigned_showings(self, start_from: datetime, start_to: datetime) -> List[ShowEvent]:
        """Get showings without a screen whose start lies in ``[start_from, start_to]``."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {_SHOWING_COLUMNS}
                {_SHOWING_JOINS}
                WHERE s.screen_id IS NULL
                  AND s.start_at BETWEEN ? AND ?
                ORDER BY t.name, m.title, s.start_at
                """,
                (to_db_timestamp(start_from), to_db_timestamp(start_to))
            )
            rows = await cursor.fetchall()
        return [_row_to_show(row) for row in rows]

    async def get_missing_data(self, started_after: datetime, started_before: datetime) -> List[ShowEvent]:
        """Get showings that started in the given range and were never sampled."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {_SHOWING_COLUMNS}
                {_SHOWING_JOINS}
                WHERE s.seats_sold IS NULL
                  AND s.start_at > ?
                  AND s.start_at < ?
                ORDER BY t.name, s.start_at DESC
                """,
                (to_db_timestamp(started_after), to_db_timestamp(started_before))
            )
            rows = await cursor.fetchall()
        return [_row_to_show(row) for row in rows]

    async def get_showing(self, showing_id: int) -> Optional[ShowEvent]:
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"SELECT {_SHOWING_COLUMNS} {_SHOWING_JOINS} WHERE s.id = ?",
                (showing_id,)
            )
            row = await cursor.fetchone()
        return _row_to_show(row) if row else None

    async def get_screens(self, theater_id: int) -> List[Screen]:
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT id, theater_id, name, seat_count FROM screens WHERE theater_id = ? ORDER BY name",
                (theater_id,)
            )
            rows = await cursor.fetchall()
        return [_row_to_screen(row) for row in rows]

    async def get_known_seat_counts(self, theater_id: int) -> List[int]:
        """Distinct positive seat counts configured for a venue, largest first."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT DISTINCT seat_count
                FROM screens
                WHERE theater_id = ?
                  AND seat_count IS NOT NULL
                  AND seat_count > 0
                ORDER BY seat_count DESC
                """,
                (theater_id,)
            )
            rows = await cursor.fetchall()
        return [int(row["seat_count"]) for row in rows]

    async def assign_screen(
        self,
        showing_id: int,
        screen_id: int,
        not_before: datetime,
        not_after: datetime,
    ) -> bool:
        """
        Assign a screen to a showing, write-once.

        The update only applies while the showing has no screen and starts
        within ``[not_before, not_after]``.

        Returns:
            True if the row was updated
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                UPDATE showings
                   SET screen_id = ?
                 WHERE id = ?
                   AND screen_id IS NULL
                   AND start_at BETWEEN ? AND ?
                """,
                (screen_id, showing_id, to_db_timestamp(not_before), to_db_timestamp(not_after))
            )
            updated = cursor.rowcount > 0
            await conn.commit()
        return updated

    async def get_database_stats(self) -> dict:
        """
        Get database statistics for monitoring.

        Returns:
            Dictionary with database metrics
        """
        async with self._get_connection() as conn:
            stats = {}

            cursor = await conn.execute("SELECT COUNT(*) FROM showings")
            stats["total_showings"] = (await cursor.fetchone())[0]

            cursor = await conn.execute("SELECT COUNT(*) FROM showings WHERE seats_sold IS NULL")
            stats["pending_showings"] = (await cursor.fetchone())[0]

            cursor = await conn.execute("SELECT COUNT(*) FROM showings WHERE seats_sold IS NOT NULL")
            stats["sampled_showings"] = (await cursor.fetchone())[0]

            cursor = await conn.execute("SELECT COUNT(*) FROM showings WHERE screen_id IS NULL")
            stats["unassigned_showings"] = (await cursor.fetchone())[0]

            cursor = await conn.execute("SELECT COUNT(*) FROM screens")
            stats["screens"] = (await cursor.fetchone())[0]

            cursor = await conn.execute("SELECT MAX(sampled_at) FROM showings")
            last_sample = await cursor.fetchone()
            stats["last_sample"] = last_sample[0] if last_sample[0] else None

        stats["db_size_bytes"] = self.db_path.stat().st_size if self.db_path.exists() else 0
        return stats

    async def __aenter__(self) -> "Database":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

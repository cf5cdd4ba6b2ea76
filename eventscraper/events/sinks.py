"""
Event persistence with natural-key de-duplication.
"""

import calendar
import logging
from typing import List, Optional, Sequence

from ..infra.db import Database
from ..models import EventData, EventRecord, StoreResult, utcnow
from .schema import ensure_schema


logger = logging.getLogger(__name__)

_EVENT_COLUMNS = (
    "e.id, e.title, e.event_date, e.event_time, e.location, e.location_city, "
    "e.description, e.source_url, e.event_url, e.webpage_config_id, e.scraped_at, "
    "e.deleted_at, s.organisation_title"
)


class EventStore:
    """Inserts extracted events that are not stored yet and serves event queries."""

    name = "EventStore"

    def __init__(self, db: Database):
        self.db = db

    async def ensure_schema(self) -> None:
        await ensure_schema(self.db)

    async def _exists(self, event: EventData) -> bool:
        row = await self.db.fetch_one(
            """
            SELECT id FROM events
             WHERE title = ? AND event_date = ? AND source_url = ?
               AND deleted_at IS NULL
             LIMIT 1
            """,
            event.natural_key,
        )
        return row is not None

    async def store(self, events: Sequence[EventData], site_id: int) -> StoreResult:
        """Insert each event whose (title, event_date, source_url) is not live yet.

        Rows are handled independently: one failing row is counted and the
        rest are still attempted.
        """
        result = StoreResult()
        scraped_at = utcnow().isoformat()

        for event in events:
            try:
                if await self._exists(event):
                    result.existing_count += 1
                    continue
                await self.db.insert(
                    """
                    INSERT INTO events (
                        title, event_date, event_time, location, location_city,
                        description, source_url, event_url, webpage_config_id, scraped_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.title,
                        event.event_date,
                        event.event_time,
                        event.location,
                        event.location_city,
                        event.description,
                        event.source_url,
                        event.event_url,
                        site_id,
                        scraped_at,
                    ),
                )
                result.inserted_count += 1
            except Exception as e:
                result.failed_count += 1
                logger.error(f"Failed to store event {event.title!r} ({event.event_date}): {e}")

        logger.info(
            f"Site {site_id}: {result.inserted_count} inserted, "
            f"{result.existing_count} existing, {result.failed_count} failed"
        )
        return result

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    async def _select(self, where: str, params: tuple = ()) -> List[EventRecord]:
        rows = await self.db.fetch_all(
            f"""
            SELECT {_EVENT_COLUMNS}
              FROM events e
              LEFT JOIN sites s ON s.id = e.webpage_config_id
             WHERE e.deleted_at IS NULL {where}
             ORDER BY e.event_date, e.event_time, e.id
            """,
            params,
        )
        return [EventRecord(**dict(r)) for r in rows]

    async def all_events(self, city: Optional[str] = None) -> List[EventRecord]:
        if city:
            return await self._select("AND e.location_city = ?", (city,))
        return await self._select("")

    async def events_for_month(self, year: int, month: int, city: Optional[str] = None) -> List[EventRecord]:
        last_day = calendar.monthrange(year, month)[1]
        start = f"{year:04d}-{month:02d}-01"
        end = f"{year:04d}-{month:02d}-{last_day:02d}"
        where = "AND e.event_date BETWEEN ? AND ?"
        params: tuple = (start, end)
        if city:
            where += " AND e.location_city = ?"
            params += (city,)
        return await self._select(where, params)

    async def location_cities(self) -> List[str]:
        rows = await self.db.fetch_all(
            """
            SELECT DISTINCT location_city FROM events
             WHERE deleted_at IS NULL AND location_city IS NOT NULL AND location_city != ''
             ORDER BY location_city
            """
        )
        return [r["location_city"] for r in rows]

    # ------------------------------------------------------------------ #
    # Deletion
    # ------------------------------------------------------------------ #
    async def soft_delete_event(self, event_id: int) -> bool:
        """Hide an event; a later crawl may insert it again."""
        cursor = await self.db.execute(
            "UPDATE events SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
            (utcnow().isoformat(), event_id),
        )
        return cursor.rowcount > 0

    async def delete_all_events(self) -> int:
        cursor = await self.db.execute("DELETE FROM events")
        logger.info(f"Deleted {cursor.rowcount} events")
        return cursor.rowcount

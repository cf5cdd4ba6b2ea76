"""events.sites – the configured sites and their crawl status.

Status writes go through :class:`~eventscraper.models.SiteStatus` so a row
can only move along the crawl state machine.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional

from ..exceptions import DuplicateSiteError, InvalidSiteUrlError, SiteNotFoundError, StatusTransitionError
from ..infra.db import Database
from ..models import ScrapeSiteTask, Site, SiteStatus, utcnow
from .schema import ensure_schema

logger = logging.getLogger(__name__)

__all__ = ["SiteRepository"]

_URL_RE = re.compile(r"^https?://.+")

_SITE_COLUMNS = "s.id, s.url, s.organisation_title, s.status, s.error_message, s.last_scraped_at, s.created_at"


class SiteRepository:
    name = "SiteRepository"

    def __init__(self, db: Database) -> None:
        self.db = db

    async def ensure_schema(self) -> None:
        await ensure_schema(self.db)

    # ------------------------------------------------------------------ #
    # Registry
    # ------------------------------------------------------------------ #
    async def add_site(self, url: str) -> Site:
        url = (url or "").strip()
        if not _URL_RE.match(url):
            raise InvalidSiteUrlError(url)
        if await self.db.fetch_one("SELECT id FROM sites WHERE url = ?", (url,)):
            raise DuplicateSiteError(url)

        site_id = await self.db.insert(
            "INSERT INTO sites (url, status, created_at) VALUES (?, ?, ?)",
            (url, SiteStatus.PENDING.value, utcnow().isoformat()),
        )
        logger.info(f"Added site {site_id}: {url}")
        return await self.get_site(site_id)

    async def get_site(self, site_id: int) -> Optional[Site]:
        row = await self.db.fetch_one(
            f"""
            SELECT {_SITE_COLUMNS},
                   (SELECT COUNT(*) FROM events e
                     WHERE e.webpage_config_id = s.id AND e.deleted_at IS NULL) AS event_count
              FROM sites s
             WHERE s.id = ?
            """,
            (site_id,),
        )
        return Site(**dict(row)) if row else None

    async def list_sites(self) -> List[Site]:
        rows = await self.db.fetch_all(
            f"""
            SELECT {_SITE_COLUMNS}, COUNT(e.id) AS event_count
              FROM sites s
              LEFT JOIN events e ON e.webpage_config_id = s.id AND e.deleted_at IS NULL
             GROUP BY s.id
             ORDER BY s.created_at DESC, s.id DESC
            """
        )
        return [Site(**dict(r)) for r in rows]

    async def list_targets(self) -> List[ScrapeSiteTask]:
        rows = await self.db.fetch_all("SELECT id, url FROM sites ORDER BY id")
        return [ScrapeSiteTask(site_id=r["id"], url=r["url"]) for r in rows]

    async def delete_site(self, site_id: int) -> bool:
        """Delete a site together with all of its events."""
        await self.db.execute("DELETE FROM events WHERE webpage_config_id = ?", (site_id,))
        cursor = await self.db.execute("DELETE FROM sites WHERE id = ?", (site_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted site {site_id} and its events")
        return deleted

    async def update_organisation_title(self, site_id: int, title: str) -> None:
        await self.db.execute(
            "UPDATE sites SET organisation_title = ? WHERE id = ?",
            (title, site_id),
        )
        logger.info(f"Site {site_id}: organisation title set to {title!r}")

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #
    async def _current_status(self, site_id: int) -> SiteStatus:
        row = await self.db.fetch_one("SELECT status FROM sites WHERE id = ?", (site_id,))
        if row is None:
            raise SiteNotFoundError(site_id)
        try:
            return SiteStatus(row["status"])
        except ValueError:
            # legacy / hand-edited value: treat like a fresh site
            logger.warning(f"Site {site_id} has unknown status {row['status']!r}")
            return SiteStatus.PENDING

    async def _check_transition(self, site_id: int, target: SiteStatus) -> None:
        current = await self._current_status(site_id)
        if not current.can_transition(target):
            raise StatusTransitionError(site_id, current.value, target.value)

    async def mark_scraping(self, site_id: int) -> None:
        await self._check_transition(site_id, SiteStatus.SCRAPING)
        await self.db.execute(
            "UPDATE sites SET status = ?, error_message = NULL WHERE id = ?",
            (SiteStatus.SCRAPING.value, site_id),
        )

    async def finish(
        self,
        site_id: int,
        status: SiteStatus,
        message: Optional[str] = None,
        *,
        touch_last_scraped: bool = True,
    ) -> None:
        """Record a terminal status (and optionally the crawl timestamp)."""
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        await self._check_transition(site_id, status)

        sets: List[str] = ["status = ?", "error_message = ?"]
        params: List[object] = [status.value, message]
        if touch_last_scraped:
            sets.append("last_scraped_at = ?")
            params.append(utcnow().isoformat())
        params.append(site_id)
        await self.db.execute(f"UPDATE sites SET {', '.join(sets)} WHERE id = ?", tuple(params))
        logger.info(f"Site {site_id} -> {status.value}" + (f" ({message})" if message else ""))

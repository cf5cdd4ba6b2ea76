"""
Per-site worker: acquire → normalise → extract → store → status.

:class:`SiteScraper` runs the stages for one site strictly in sequence and
turns every way a run can end into exactly one terminal
:class:`~eventscraper.models.SiteStatus`, paired with a progress event.
"""

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional

from .events.extractor import EventExtractor
from .events.parser import normalize
from .events.sinks import EventStore
from .events.sites import SiteRepository
from .exceptions import AcquisitionError
from .interfaces import Acquirer, NullPublisher, ProgressPublisher
from .models import ProgressEvent, ProgressStatus, ScrapeOutcome, SiteStatus


logger = logging.getLogger(__name__)

NO_HTML_MESSAGE = "Successfully fetched URL but no HTML content was returned"
NO_EVENTS_MESSAGE = "Scraped successfully, but no distinct events were identified"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class SiteScraper:
    """Runs one crawl of one site and records the outcome."""

    def __init__(
        self,
        sites: SiteRepository,
        store: EventStore,
        acquirer: Acquirer,
        extractor: EventExtractor,
        progress: Optional[ProgressPublisher] = None,
        today_fn: Callable[[], date] = utc_today,
        normalizer: Callable[[str], str] = normalize,
    ):
        self.sites = sites
        self.store = store
        self.acquirer = acquirer
        self.extractor = extractor
        self.progress = progress or NullPublisher()
        self.today_fn = today_fn
        self.normalizer = normalizer

    async def _publish(
        self,
        site_id: int,
        url: str,
        status: ProgressStatus,
        message: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        try:
            await self.progress.publish(
                ProgressEvent(site_id=site_id, url=url, status=status, message=message, error=error)
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Progress publish failed for site {site_id}: {e}")

    async def _fail(self, site_id: int, url: str, status: SiteStatus, message: str, **finish_kwargs) -> ScrapeOutcome:
        await self.sites.finish(site_id, status, message, **finish_kwargs)
        await self._publish(site_id, url, ProgressStatus.FAILED, error=message)
        return ScrapeOutcome(site_id=site_id, url=url, status=status, message=message)

    async def scrape(self, site_id: int, url: str) -> ScrapeOutcome:
        """Crawl *url* for site *site_id*; never raises (except on cancellation)."""
        try:
            return await self._run(site_id, url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Scrape of site {site_id} ({url}) failed: {message}", exc_info=True)
            try:
                await self.sites.finish(site_id, SiteStatus.FAILED_EXCEPTION, message)
            except Exception as status_error:
                logger.error(f"Could not record failure for site {site_id}: {status_error}")
            await self._publish(site_id, url, ProgressStatus.FAILED, error=message)
            return ScrapeOutcome(site_id=site_id, url=url, status=SiteStatus.FAILED_EXCEPTION, message=message)

    async def _run(self, site_id: int, url: str) -> ScrapeOutcome:
        await self.sites.mark_scraping(site_id)
        await self._publish(site_id, url, ProgressStatus.READING_SITE, message=f"Reading {url}")

        try:
            crawl = await self.acquirer.acquire(url)
        except AcquisitionError as e:
            logger.error(f"Site {site_id}: {e}")
            return await self._fail(site_id, url, SiteStatus.FAILED_NO_HTML, str(e))

        if crawl.is_empty:
            logger.error(f"Site {site_id}: empty page from {url} ({crawl.source.value})")
            return await self._fail(site_id, url, SiteStatus.FAILED_NO_HTML, NO_HTML_MESSAGE)

        text = self.normalizer(crawl.html)
        if text == crawl.html and "<" in crawl.html:
            logger.warning(f"Site {site_id}: HTML conversion failed, using raw HTML for extraction")

        await self._publish(site_id, url, ProgressStatus.PROCESSING_EVENTS, message="Extracting events")
        extraction = await self.extractor.extract(text, url, self.today_fn())

        if extraction.organisation_title:
            await self.sites.update_organisation_title(site_id, extraction.organisation_title)

        if not extraction.events:
            await self.sites.finish(site_id, SiteStatus.SUCCESS_NO_EVENTS_FOUND, NO_EVENTS_MESSAGE)
            await self._publish(site_id, url, ProgressStatus.COMPLETED, message=NO_EVENTS_MESSAGE)
            return ScrapeOutcome(
                site_id=site_id,
                url=url,
                status=SiteStatus.SUCCESS_NO_EVENTS_FOUND,
                message=NO_EVENTS_MESSAGE,
            )

        stored = await self.store.store(extraction.events, site_id)
        found = len(extraction.events)

        if stored.inserted_count == 0 and stored.failed_count > 0:
            message = f"Failed to insert any events ({stored.failed_count} failures)"
            outcome = await self._fail(
                site_id, url, SiteStatus.FAILED_DB_EVENT_INSERT, message, touch_last_scraped=False
            )
            outcome.events_found = found
            return outcome

        message = (
            f"Successfully processed {found} events "
            f"({stored.inserted_count} new, {stored.existing_count} existing)"
        )
        if stored.failed_count:
            message += f", {stored.failed_count} failed"
        await self.sites.finish(site_id, SiteStatus.SUCCESS)
        await self._publish(site_id, url, ProgressStatus.COMPLETED, message=message)
        logger.info(f"Site {site_id}: {message}")
        return ScrapeOutcome(
            site_id=site_id,
            url=url,
            status=SiteStatus.SUCCESS,
            events_found=found,
            new_events=stored.inserted_count,
            message=message,
        )

"""
Plan stage and bounded worker pool.

``plan()`` loads every configured site and enqueues one
:class:`~eventscraper.models.ScrapeSiteTask` per site; a fixed number of
worker tasks drain the queue, so at most ``concurrency`` sites are crawled
at the same time.  Single-site triggers go through ``submit()`` into the
same queue.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from .events.sites import SiteRepository
from .exceptions import SiteNotFoundError
from .interfaces import NullPublisher, ProgressPublisher
from .models import PlanOutcome, ProgressEvent, ProgressStatus, ScrapeOutcome, ScrapeSiteTask
from .pipeline import SiteScraper

logger = logging.getLogger(__name__)

NO_SITES_MESSAGE = "No sites configured"


class Orchestrator:
    """Fans "scrape all" out to a worker pool capped at ``concurrency``."""

    def __init__(
        self,
        sites: SiteRepository,
        scraper: SiteScraper,
        progress: Optional[ProgressPublisher] = None,
        concurrency: int = 5,
        skip_if_running: bool = True,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.sites = sites
        self.scraper = scraper
        self.progress = progress or NullPublisher()
        self.concurrency = concurrency
        self.skip_if_running = skip_if_running

        self._queue: Optional["asyncio.Queue[ScrapeSiteTask]"] = None
        self._workers: List[asyncio.Task] = []
        self._active: Set[int] = set()
        # outcomes are only collected while run_once is waiting on them
        self._results: Optional[List[ScrapeOutcome]] = None

    # ------------------------------------------------------------------ #
    # Pool lifecycle
    # ------------------------------------------------------------------ #
    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def active_sites(self) -> Set[int]:
        """Sites queued or being crawled right now."""
        return set(self._active)

    async def start(self) -> None:
        if self._workers:
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"scrape-worker-{n}")
            for n in range(1, self.concurrency + 1)
        ]
        logger.info(f"Started {self.concurrency} scrape workers")

    async def stop(self) -> None:
        if not self._workers:
            return
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        self._active.clear()
        logger.info("Scrape workers stopped")

    async def join(self) -> None:
        """Wait until every queued task has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def __aenter__(self) -> "Orchestrator":
        await self.start()
        return self

    async def __aexit__(self, *_) -> None:
        await self.stop()

    # ------------------------------------------------------------------ #
    # Triggers
    # ------------------------------------------------------------------ #
    def submit(self, site_id: int, url: str) -> bool:
        """Queue one site; returns False when it is already queued or running."""
        if self._queue is None:
            raise RuntimeError("Orchestrator is not started")
        if self.skip_if_running and site_id in self._active:
            logger.info(f"Site {site_id} is already queued or running, skipping trigger")
            return False
        self._active.add(site_id)
        self._queue.put_nowait(ScrapeSiteTask(site_id=site_id, url=url))
        return True

    async def submit_site(self, site_id: int) -> bool:
        site = await self.sites.get_site(site_id)
        if site is None:
            raise SiteNotFoundError(site_id)
        return self.submit(site.id, site.url)

    async def plan(self) -> PlanOutcome:
        """Enqueue one task per configured site."""
        targets = await self.sites.list_targets()
        if not targets:
            logger.info(NO_SITES_MESSAGE)
            return PlanOutcome(count=0, message=NO_SITES_MESSAGE)

        queued = skipped = 0
        for target in targets:
            if self.submit(target.site_id, target.url):
                queued += 1
            else:
                skipped += 1

        message = f"Queued {queued} site(s)"
        if skipped:
            message += f", {skipped} already running"
        logger.info(message)
        return PlanOutcome(count=queued, message=message, skipped=skipped)

    async def run_once(self) -> List[ScrapeOutcome]:
        """Plan, wait for every site to finish and return the outcomes."""
        started_here = not self.running
        await self.start()
        self._results = results = []
        try:
            await self.plan()
            await self.join()
            return results
        finally:
            self._results = None
            if started_here:
                await self.stop()

    # ------------------------------------------------------------------ #
    # Worker
    # ------------------------------------------------------------------ #
    async def _worker(self, n: int) -> None:
        queue = self._queue
        while True:
            task = await queue.get()
            try:
                logger.debug(f"Worker {n} scraping site {task.site_id}")
                outcome = await self.scraper.scrape(task.site_id, task.url)
                if self._results is not None:
                    self._results.append(outcome)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Worker {n} failed on site {task.site_id}: {e}", exc_info=True)
                await self._publish_worker_error(task, e)
            finally:
                self._active.discard(task.site_id)
                queue.task_done()

    async def _publish_worker_error(self, task: ScrapeSiteTask, error: Exception) -> None:
        try:
            await self.progress.publish(
                ProgressEvent(
                    site_id=task.site_id,
                    url=task.url,
                    status=ProgressStatus.FAILED,
                    error=f"Worker error: {error}",
                )
            )
        except Exception as e:
            logger.warning(f"Progress publish failed for site {task.site_id}: {e}")


# --------------------------------------------------------------------------- #
# Scheduler entry point
# --------------------------------------------------------------------------- #
# APScheduler stores jobs by textual reference; the job id selects the
# orchestrator registered under it.
_orchestrators: Dict[str, Orchestrator] = {}

SCHEDULED_SCRAPE_ALL = "eventscraper.orchestrator:scheduled_scrape_all"


def register_orchestrator(job_id: str, orchestrator: Orchestrator) -> str:
    _orchestrators[job_id] = orchestrator
    return SCHEDULED_SCRAPE_ALL


def unregister_orchestrator(job_id: str) -> None:
    _orchestrators.pop(job_id, None)


async def scheduled_scrape_all(job_id: str) -> None:
    """Run the plan stage of the orchestrator registered as *job_id*."""
    orchestrator = _orchestrators.get(job_id)
    if orchestrator is None:
        logger.error(f"No orchestrator registered for job_id: {job_id}")
        return
    try:
        outcome = await orchestrator.plan()
        logger.info(f"Scheduled scrape-all ({job_id}): {outcome.message}")
    except Exception as e:
        logger.error(f"Scheduled scrape-all ({job_id}) failed: {e}", exc_info=True)

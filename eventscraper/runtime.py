"""
Wires settings into the database, pipeline stages and orchestrator.
"""

import logging
from typing import Optional

from .config import Settings
from .events.extractor import EventExtractor
from .events.fetcher import PageAcquirer, RemoteRenderService
from .events.schema import ensure_schema
from .events.sinks import EventStore
from .events.sites import SiteRepository
from .infra.db import Database
from .infra.llm import GeminiModel
from .infra.pubsub import ProgressChannel
from .orchestrator import Orchestrator
from .pipeline import SiteScraper


logger = logging.getLogger(__name__)


class Runtime:
    """Owns the shared resources of one process.

    The database opens on entry; the browser acquirer, model client and
    worker pool are only built when :meth:`orchestrator` is first called, so
    read-only commands need no model API key.
    """

    def __init__(self, settings: Settings, progress: Optional[ProgressChannel] = None):
        self.settings = settings
        self.db = Database(settings.database_url)
        self.sites = SiteRepository(self.db)
        self.store = EventStore(self.db)
        self.progress = progress or ProgressChannel()
        self._acquirer: Optional[PageAcquirer] = None
        self._orchestrator: Optional[Orchestrator] = None

    async def open(self) -> None:
        await self.db.connect()
        await ensure_schema(self.db)

    def orchestrator(self) -> Orchestrator:
        if self._orchestrator is None:
            s = self.settings
            self._acquirer = PageAcquirer(
                s.acquirer,
                fallback=RemoteRenderService.from_settings(s.fallback),
            )
            model = GeminiModel(
                api_key=s.extractor.api_key,
                model=s.extractor.model,
                temperature=s.extractor.temperature,
            )
            scraper = SiteScraper(
                self.sites,
                self.store,
                self._acquirer,
                EventExtractor(model),
                progress=self.progress,
            )
            self._orchestrator = Orchestrator(
                self.sites,
                scraper,
                progress=self.progress,
                concurrency=s.orchestrator.concurrency,
                skip_if_running=s.orchestrator.skip_if_running,
            )
            logger.info(
                f"Pipeline ready (model {s.extractor.model}, concurrency {s.orchestrator.concurrency}, "
                f"fallback {'on' if s.fallback.url else 'off'})"
            )
        return self._orchestrator

    async def close(self) -> None:
        if self._orchestrator is not None:
            await self._orchestrator.stop()
        if self._acquirer is not None:
            await self._acquirer.close()
        await self.db.close()

    async def __aenter__(self) -> "Runtime":
        await self.open()
        return self

    async def __aexit__(self, *_) -> None:
        await self.close()

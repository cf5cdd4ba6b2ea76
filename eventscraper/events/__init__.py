"""Event pipeline stages – fetcher, parser, extractor, sinks.

The worker in :mod:`eventscraper.pipeline` composes the classes below:

* :class:`PageAcquirer`    – rendered HTML via Playwright, remote render fallback
* :func:`normalize`        – HTML -> compact annotated text
* :class:`EventExtractor`  – text -> future :class:`~eventscraper.models.EventData`
* :class:`EventStore`      – de-duplicated inserts and event queries
* :class:`SiteRepository`  – configured sites and their crawl status

All logic lives in the sibling modules; this file only re-exports them.
"""

from .extractor import EventExtractor      # noqa: F401
from .fetcher import PageAcquirer, RemoteRenderService  # noqa: F401
from .parser import normalize               # noqa: F401
from .sinks import EventStore               # noqa: F401
from .sites import SiteRepository           # noqa: F401

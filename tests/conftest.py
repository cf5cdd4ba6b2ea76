"""
Shared fakes for the pipeline tests.
"""

import os
import sys
from datetime import date
from typing import List, Optional

import pytest

# Add project root to PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eventscraper.events.schema import ensure_schema
from eventscraper.events.sinks import EventStore
from eventscraper.events.sites import SiteRepository
from eventscraper.infra.db import Database
from eventscraper.interfaces import ProgressPublisher, RenderService, StructuredModel
from eventscraper.models import EventsPage, ExtractedEvent, ProgressEvent

TODAY = date(2025, 3, 14)
SITE_URL = "https://example.org/whats-on"


class FakeModel(StructuredModel):
    """Returns a canned page (or raises) and remembers the prompts it saw."""

    def __init__(self, page: Optional[EventsPage] = None, error: Optional[Exception] = None):
        self.page = page or EventsPage()
        self.error = error
        self.prompts: List[str] = []

    async def generate(self, prompt, schema):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return schema.model_validate(self.page.model_dump())


class FakeSession:
    """Stands in for PlaywrightClient; one instance per attempt."""

    def __init__(self, factory: "FakeSessionFactory"):
        self.factory = factory

    async def __aenter__(self):
        self.factory.opened += 1
        return self

    async def __aexit__(self, *_):
        self.factory.closed += 1

    async def get_page_content(self, url, **kwargs):
        self.factory.calls.append(url)
        outcome = self.factory.outcomes.pop(0) if self.factory.outcomes else self.factory.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeSessionFactory:
    """Yields scripted results per attempt: a string is HTML, an exception is raised."""

    def __init__(self, *outcomes, default="<html><body><p>ok</p></body></html>"):
        self.outcomes = list(outcomes)
        self.default = default
        self.calls: List[str] = []
        self.opened = 0
        self.closed = 0
        self.timeouts: List[float] = []

    def __call__(self, timeout_ms):
        self.timeouts.append(timeout_ms)
        return FakeSession(self)


class FakeRender(RenderService):
    def __init__(self, html: Optional[str] = None, error: Optional[Exception] = None):
        self.html = html
        self.error = error
        self.calls: List[str] = []
        self.closed = False

    async def render(self, url):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.html

    async def close(self):
        self.closed = True


class RecordingPublisher(ProgressPublisher):
    def __init__(self):
        self.events: List[ProgressEvent] = []

    async def publish(self, event):
        self.events.append(event)

    def statuses(self, site_id: int) -> List[str]:
        return [e.status.value for e in self.events if e.site_id == site_id]


class NoSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


def event(title: str, day: str, **kwargs) -> ExtractedEvent:
    return ExtractedEvent(title=title, event_date=day, **kwargs)


async def open_stores(path: str):
    db = Database(path)
    await db.connect()
    await ensure_schema(db)
    return db, SiteRepository(db), EventStore(db)


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "events.db")


@pytest.fixture
def sleeper() -> NoSleep:
    return NoSleep()


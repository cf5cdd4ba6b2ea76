"""
Core data models for the event scraper.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


# --------------------------------------------------------------------------- #
# Site status state machine
# --------------------------------------------------------------------------- #
class SiteStatus(str, Enum):
    """Crawl state persisted on every site row."""

    PENDING = "pending"
    SCRAPING = "scraping"
    SUCCESS = "success"
    SUCCESS_NO_EVENTS_FOUND = "success_no_events_found"
    FAILED_NO_HTML = "failed_no_html"
    FAILED_DB_EVENT_INSERT = "failed_db_event_insert"
    FAILED_EXCEPTION = "failed_exception"

    @property
    def is_terminal(self) -> bool:
        return self not in (SiteStatus.PENDING, SiteStatus.SCRAPING)

    @property
    def is_failure(self) -> bool:
        return self.value.startswith("failed")

    @property
    def label(self) -> str:
        return _SITE_LABELS[self]

    def can_transition(self, target: "SiteStatus") -> bool:
        return target in _TRANSITIONS[self]


_TERMINAL: FrozenSet[SiteStatus] = frozenset(s for s in SiteStatus if s.is_terminal)

# A terminal site only re-enters "scraping" on a new trigger.  "scraping" may
# restart itself so a run interrupted by a crash can be triggered again.
_TRANSITIONS: Dict[SiteStatus, FrozenSet[SiteStatus]] = {
    SiteStatus.PENDING: frozenset({SiteStatus.SCRAPING}),
    SiteStatus.SCRAPING: _TERMINAL | {SiteStatus.SCRAPING},
    **{s: frozenset({SiteStatus.SCRAPING}) for s in _TERMINAL},
}

_SITE_LABELS: Dict[SiteStatus, str] = {
    SiteStatus.PENDING: "⏳ Pending",
    SiteStatus.SCRAPING: "🔄 Scraping...",
    SiteStatus.SUCCESS: "✅ Ready",
    SiteStatus.SUCCESS_NO_EVENTS_FOUND: "✅ No events found",
    SiteStatus.FAILED_NO_HTML: "❌ No content",
    SiteStatus.FAILED_DB_EVENT_INSERT: "❌ Database error",
    SiteStatus.FAILED_EXCEPTION: "❌ Failed",
}


class ProgressStatus(str, Enum):
    READING_SITE = "reading-site"
    PROCESSING_EVENTS = "processing-events"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def label(self) -> str:
        return _PROGRESS_LABELS[self]


_PROGRESS_LABELS: Dict[ProgressStatus, str] = {
    ProgressStatus.READING_SITE: "📖 Reading site",
    ProgressStatus.PROCESSING_EVENTS: "⚙️ Processing events",
    ProgressStatus.COMPLETED: "✅ Completed",
    ProgressStatus.FAILED: "❌ Failed",
}


class CrawlSource(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


# --------------------------------------------------------------------------- #
# Persistent records
# --------------------------------------------------------------------------- #
class Site(BaseModel):
    """A configured web page plus its mutable crawl state."""

    id: int
    url: str
    organisation_title: Optional[str] = None
    status: SiteStatus = SiteStatus.PENDING
    error_message: Optional[str] = None
    last_scraped_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    event_count: int = 0

    @property
    def status_label(self) -> str:
        return self.status.label

    @property
    def status_detail(self) -> Optional[str]:
        """Longer error text shown on demand; empty pages are not errors."""
        if self.status is SiteStatus.SUCCESS_NO_EVENTS_FOUND:
            return None
        return self.error_message


class EventData(BaseModel):
    """An extracted event ready to be stored."""

    title: str
    event_date: str  # YYYY-MM-DD
    event_time: Optional[str] = None  # HH:MM
    location: Optional[str] = None
    location_city: Optional[str] = None
    description: Optional[str] = None
    source_url: str
    event_url: Optional[str] = None

    @property
    def natural_key(self) -> Tuple[str, str, str]:
        return (self.title, self.event_date, self.source_url)


class EventRecord(EventData):
    id: int
    webpage_config_id: Optional[int] = None
    scraped_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    organisation_title: Optional[str] = None


# --------------------------------------------------------------------------- #
# Structured-output schema handed to the model
# --------------------------------------------------------------------------- #
class ExtractedEvent(BaseModel):
    title: str = Field(description="The title or name of the event")
    event_date: str = Field(description="The date of the event in YYYY-MM-DD format")
    event_time: Optional[str] = Field(
        default=None, description="The time of the event in HH:MM format (24-hour)"
    )
    location: Optional[str] = Field(
        default=None,
        description="The location of the event (physical address or 'Online' if virtual)",
    )
    location_city: Optional[str] = Field(
        default=None,
        description=(
            "The major city where the event takes place (e.g. Brisbane, Sydney) or 'Online'. "
            "No state suffixes; fold suburbs into their major city."
        ),
    )
    description: Optional[str] = Field(default=None, description="A brief description of the event")
    event_url: Optional[str] = Field(
        default=None,
        description=(
            "Direct link to this event's own page, usually the bracketed URL next to the "
            "event title, e.g. 'Event Title [https://example.com/event]'"
        ),
    )


class EventsPage(BaseModel):
    organisation_title: Optional[str] = Field(
        default=None, description="The name of the organisation hosting these events"
    )
    events: List[ExtractedEvent] = Field(
        default_factory=list, description="List of future events found on the webpage"
    )


# --------------------------------------------------------------------------- #
# Transient pipeline values
# --------------------------------------------------------------------------- #
class CrawlResult(BaseModel):
    url: str
    html: str
    source: CrawlSource = CrawlSource.PRIMARY
    attempts: int = 1
    fetched_at: datetime = Field(default_factory=utcnow)

    @property
    def is_empty(self) -> bool:
        return not self.html.strip()


class ExtractionResult(BaseModel):
    events: List[EventData] = Field(default_factory=list)
    organisation_title: Optional[str] = None


class StoreResult(BaseModel):
    inserted_count: int = 0
    failed_count: int = 0
    existing_count: int = 0


class ProgressEvent(BaseModel):
    """Best-effort status broadcast for live subscribers."""

    model_config = ConfigDict(populate_by_name=True)

    site_id: int = Field(alias="siteId")
    url: str
    status: ProgressStatus
    message: Optional[str] = None
    error: Optional[str] = None
    published_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in (ProgressStatus.COMPLETED, ProgressStatus.FAILED)


class ScrapeSiteTask(BaseModel):
    """One "scrape this site" unit of work."""

    site_id: int
    url: str


class ScrapeOutcome(BaseModel):
    site_id: int
    url: str
    status: SiteStatus
    events_found: int = 0
    new_events: int = 0
    message: Optional[str] = None


class PlanOutcome(BaseModel):
    count: int
    message: Optional[str] = None
    skipped: int = 0

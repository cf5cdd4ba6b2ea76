"""events.extractor – normalised page text → future :class:`EventData` records.

One structured-output request per page.  The reply is post-filtered
(events dated before *as_of* are dropped; the ISO ``YYYY-MM-DD`` format
makes the string comparison safe) and root-relative event links are rebased
onto the scraped page's origin.  Any failure of the model call yields an
empty result instead of an exception.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional
from urllib.parse import urlsplit

from ..interfaces import StructuredModel
from ..models import EventData, EventsPage, ExtractedEvent, ExtractionResult

logger = logging.getLogger(__name__)

__all__ = ["EventExtractor", "build_prompt", "resolve_event_url", "is_iso_date"]


PROMPT_TEMPLATE = """\
Analyze this structured text content (taken from a webpage) and extract all
future events, i.e. events that take place on or after {today}.

Look for:
- The name of the organisation hosting these events
- Event titles
- Dates (YYYY-MM-DD)
- Times (HH:MM, 24-hour clock)
- Locations (physical address, or "Online" for virtual events)
- Location cities (just the major city name such as Brisbane, Adelaide or Sydney, or "Online")
- Short descriptions
- Event URLs: direct links to the specific event page

Only include events that:
1. Have a clear date that is {today} or later
2. Are actual events, not general information
3. Have enough information to be meaningful

DO NOT include or make up events that are not in the content. Every event
you return must be stated in the text below.

Links in the text are written as "text [URL]"; the URL in brackets is the
target of that text, e.g. "Event Title [https://example.com/event]" or
"Event Title [/event/123]".

Structured text content:
{content}
"""


def build_prompt(text: str, as_of: date) -> str:
    return PROMPT_TEMPLATE.format(today=as_of.isoformat(), content=text)


def is_iso_date(value: Optional[str]) -> bool:
    if not value or len(value) != 10:
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def resolve_event_url(event_url: Optional[str], source_url: str) -> Optional[str]:
    """Absolute links pass through, ``/path`` links are rebased onto *source_url*'s origin.

    Path-relative links (``event.html``, ``../x``) are returned unresolved.
    """
    if not event_url:
        return event_url
    if event_url.startswith(("http://", "https://")):
        return event_url
    if event_url.startswith("/"):
        parts = urlsplit(source_url)
        try:
            hostname, port = parts.hostname, parts.port
        except ValueError:
            hostname = port = None
        if not parts.scheme or not hostname:
            logger.warning(f"Cannot parse source URL {source_url}, leaving {event_url} relative")
            return event_url
        host = f"[{hostname}]" if ":" in hostname else hostname
        if port:
            host = f"{host}:{port}"
        return f"{parts.scheme}://{host}{event_url}"
    return event_url


class EventExtractor:
    """Wraps a :class:`StructuredModel` with the event prompt, schema and filters."""

    name = "EventExtractor"

    def __init__(self, model: StructuredModel) -> None:
        self._model = model

    async def extract(self, text: str, source_url: str, as_of: date) -> ExtractionResult:
        if not text or not text.strip():
            logger.warning(f"No content to extract events from for {source_url}")
            return ExtractionResult()

        try:
            page = await self._model.generate(build_prompt(text, as_of), EventsPage)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Event extraction failed for {source_url}: {e}")
            return ExtractionResult()

        events = self._post_process(page.events, source_url, as_of)
        logger.info(
            f"Extracted {len(events)} future event(s) from {source_url} "
            f"({len(page.events) - len(events)} dropped)"
        )
        return ExtractionResult(
            events=events,
            organisation_title=(page.organisation_title or "").strip() or None,
        )

    @staticmethod
    def _post_process(raw: List[ExtractedEvent], source_url: str, as_of: date) -> List[EventData]:
        today = as_of.isoformat()
        out: List[EventData] = []
        for event in raw:
            title = (event.title or "").strip()
            if not title or not is_iso_date(event.event_date):
                logger.debug(f"Dropping malformed event {event.title!r} dated {event.event_date!r}")
                continue
            if event.event_date < today:
                continue

            event_url = resolve_event_url(event.event_url, source_url)
            if event_url != event.event_url:
                logger.debug(f"Resolved event URL {event.event_url!r} -> {event_url!r} for {title!r}")

            out.append(
                EventData(
                    title=title,
                    event_date=event.event_date,
                    event_time=event.event_time or None,
                    location=event.location or None,
                    location_city=event.location_city or None,
                    description=event.description or None,
                    source_url=source_url,
                    event_url=event_url or None,
                )
            )
        return out

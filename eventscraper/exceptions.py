"""
Exception types shared across the scraping pipeline.
"""

from __future__ import annotations

from typing import Optional


def _first_line(exc: Optional[BaseException]) -> str:
    if exc is None:
        return "unknown error"
    text = str(exc).strip()
    # Playwright errors carry a multi-line call log after the message
    return text.splitlines()[0] if text else type(exc).__name__


class ScraperError(Exception):
    """Base class for all errors raised by the platform."""


class AcquisitionError(ScraperError):
    """Page could not be loaded by the browser nor by the fallback service."""

    def __init__(self, url: str, attempts: int, cause: Optional[BaseException] = None):
        self.url = url
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Failed to load {url} after {attempts} attempt(s): {_first_line(cause)}")


class SiteNotFoundError(ScraperError):
    def __init__(self, site_id: int):
        self.site_id = site_id
        super().__init__(f"Site {site_id} does not exist")


class DuplicateSiteError(ScraperError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"URL already exists: {url}")


class InvalidSiteUrlError(ScraperError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid URL format: {url!r}")


class StatusTransitionError(ScraperError):
    """Raised when a site status write would break the state machine."""

    def __init__(self, site_id: int, current: str, target: str):
        self.site_id = site_id
        self.current = current
        self.target = target
        super().__init__(f"Site {site_id}: illegal status transition {current} -> {target}")

"""events.fetcher – page acquisition.

:class:`PageAcquirer` drives a headless browser with bounded retries and
linear back-off; when every attempt fails it asks a remote render service
(:class:`RemoteRenderService`) for the page before giving up with a single
:class:`~eventscraper.exceptions.AcquisitionError`.

An attempt that loads but yields blank HTML is *not* retried – it comes
back as an empty :class:`~eventscraper.models.CrawlResult` and the caller
decides what that means.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncContextManager, Awaitable, Callable, Optional

from ..config import AcquirerSettings, FallbackSettings
from ..exceptions import AcquisitionError
from ..infra.http import HttpClient
from ..infra.sel import PlaywrightClient
from ..interfaces import Acquirer, RenderService
from ..models import CrawlResult, CrawlSource

logger = logging.getLogger(__name__)

__all__ = ["PageAcquirer", "RemoteRenderService"]

# Browser launch + context setup on top of the navigation timeout
LAUNCH_GRACE_S = 15.0

SessionFactory = Callable[[float], AsyncContextManager[Any]]
Sleeper = Callable[[float], Awaitable[None]]


# --------------------------------------------------------------------------- #
class RemoteRenderService(RenderService):
    """POSTs ``{"url": ...}`` to a fetch-and-render endpoint and returns its HTML body."""

    def __init__(
        self,
        endpoint: str,
        *,
        token: Optional[str] = None,
        timeout_s: float = 60.0,
        max_retries: int = 2,
        http: Optional[HttpClient] = None,
    ) -> None:
        self._endpoint = endpoint
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = http or HttpClient(
            timeout=timeout_s,
            max_retries=max_retries,
            default_headers=headers,
        )

    @classmethod
    def from_settings(cls, settings: FallbackSettings) -> Optional["RemoteRenderService"]:
        if not settings.url:
            return None
        return cls(
            settings.url,
            token=settings.token,
            timeout_s=settings.timeout_s,
            max_retries=settings.max_retries,
        )

    async def render(self, url: str) -> str:
        logger.info("Requesting remote render for %s", url)
        return await self._http.post_text(self._endpoint, {"url": url})

    async def close(self) -> None:
        await self._http.close()


# --------------------------------------------------------------------------- #
class PageAcquirer(Acquirer):
    """Browser-first acquisition with retries and a remote fallback."""

    def __init__(
        self,
        settings: Optional[AcquirerSettings] = None,
        *,
        fallback: Optional[RenderService] = None,
        session_factory: Optional[SessionFactory] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._settings = settings or AcquirerSettings()
        self._fallback = fallback
        self._session_factory = session_factory or self._playwright_session
        self._sleep = sleep

    # ------------------------------------------------------------------- #
    def _playwright_session(self, timeout_ms: float) -> PlaywrightClient:
        s = self._settings
        return PlaywrightClient(
            headless=s.headless,
            browser_type=s.browser_type,
            timeout=timeout_ms,
            user_agent=s.user_agent,
            viewport={"width": s.viewport_width, "height": s.viewport_height},
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt *attempt* (1-based): grows linearly."""
        return self._settings.backoff_base_s * attempt

    def attempt_deadline(self, timeout_ms: float) -> float:
        """Hard wall-clock bound for a single attempt, in seconds."""
        return timeout_ms / 1000 + self._settings.settle_delay_max_s + LAUNCH_GRACE_S

    async def _load_once(self, url: str, timeout_ms: float) -> str:
        s = self._settings
        async with self._session_factory(timeout_ms) as session:
            return await session.get_page_content(
                url,
                wait_until=s.wait_until,
                settle_delay=(s.settle_delay_min_s, s.settle_delay_max_s),
                scroll=s.scroll_to_bottom,
            )

    # ------------------------------------------------------------------- #
    async def acquire(
        self,
        url: str,
        *,
        timeout_ms: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> CrawlResult:
        timeout_ms = timeout_ms or self._settings.timeout_ms
        max_retries = max(1, max_retries or self._settings.max_retries)
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_retries + 1):
            logger.info("Attempt %d/%d for %s", attempt, max_retries, url)
            try:
                html = await asyncio.wait_for(
                    self._load_once(url, timeout_ms),
                    timeout=self.attempt_deadline(timeout_ms),
                )
                logger.info("Loaded %s on attempt %d (%d chars)", url, attempt, len(html or ""))
                return CrawlResult(url=url, html=html or "", source=CrawlSource.PRIMARY, attempts=attempt)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Attempt %d/%d failed for %s: %s",
                    attempt,
                    max_retries,
                    url,
                    str(exc).splitlines()[0] if str(exc) else type(exc).__name__,
                )
                if attempt < max_retries:
                    await self._sleep(self.backoff_delay(attempt))

        if self._fallback is not None:
            try:
                html = await self._fallback.render(url)
                logger.info("Fallback render succeeded for %s (%d chars)", url, len(html or ""))
                return CrawlResult(url=url, html=html or "", source=CrawlSource.FALLBACK, attempts=max_retries)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Fallback render failed for %s: %s", url, exc)

        raise AcquisitionError(url, max_retries, last_error) from last_error

    async def close(self) -> None:
        if self._fallback is not None:
            await self._fallback.close()

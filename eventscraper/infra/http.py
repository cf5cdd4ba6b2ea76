"""
http.py – aiohttp client for the remote render service: JSON POST in,
          page body out, with back-off on 429 / 5xx and dropped connections.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional

import aiohttp

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)


class HttpClient:
    """Lazily opened *aiohttp* session with jittered retries."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        default_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._headers: Dict[str, str] = dict(default_headers or {})
        self._session: Optional[aiohttp.ClientSession] = None

    def _open(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._timeout))
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def parse_retry_after(header_val: Optional[str]) -> Optional[float]:
        """Seconds to wait for a Retry-After value (delta seconds or HTTP date)."""
        if not header_val:
            return None
        header_val = header_val.strip()
        if header_val.isdigit():
            return float(header_val)
        try:
            retry_at = parsedate_to_datetime(header_val)
        except (TypeError, ValueError):
            return None
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=timezone.utc)
        return max(0.0, (retry_at - datetime.now(tz=timezone.utc)).total_seconds())

    def _backoff(self, attempt: int) -> float:
        return min(self._base_delay * 2 ** (attempt - 1), self._max_delay) + random.uniform(0, self._base_delay)

    async def post_text(self, url: str, data: Any) -> str:
        """POST *data* as JSON and return the response body."""
        session = self._open()
        for attempt in range(1, self._max_retries + 1):
            wait = None
            try:
                async with session.post(url, json=data, headers=self._headers) as resp:
                    if resp.status not in RETRY_STATUSES:
                        resp.raise_for_status()
                        return await resp.text()
                    wait = self.parse_retry_after(resp.headers.get("Retry-After"))
                    problem = f"status {resp.status}"
            except aiohttp.ClientResponseError as e:
                logger.error("POST %s rejected: %s", url, e)
                raise
            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
                problem = str(e) or type(e).__name__
                if attempt == self._max_retries:
                    logger.error("POST %s failed after %d attempt(s): %s", url, attempt, problem)
                    raise

            if attempt == self._max_retries:
                logger.error("POST %s failed after %d attempt(s): %s", url, attempt, problem)
                raise aiohttp.ClientResponseError(
                    resp.request_info, resp.history, status=resp.status, message=problem, headers=resp.headers
                )
            delay = wait if wait is not None else self._backoff(attempt)
            logger.warning("POST %s: %s (attempt %d/%d, retrying in %.1fs)", url, problem, attempt, self._max_retries, delay)
            await asyncio.sleep(delay)

        raise RuntimeError("Unreachable retry loop")

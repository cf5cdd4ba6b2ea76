"""
Core interfaces for the event scraper.

Each pipeline stage that talks to the outside world sits behind one of
these narrow contracts so it can be swapped (or faked in tests) without
touching the worker logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Type, TypeVar

from pydantic import BaseModel

from .models import CrawlResult, ProgressEvent

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class Acquirer(ABC):
    """Fetches fully rendered HTML for a URL."""

    @abstractmethod
    async def acquire(
        self,
        url: str,
        *,
        timeout_ms: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> CrawlResult:
        """Return the rendered page or raise :class:`~eventscraper.exceptions.AcquisitionError`."""
        ...


class RenderService(ABC):
    """Remote fetch-and-render service used when the local browser gives up."""

    @abstractmethod
    async def render(self, url: str) -> str:
        ...

    async def close(self) -> None:
        pass


class StructuredModel(ABC):
    """Generative model constrained to answer with an instance of *schema*."""

    @abstractmethod
    async def generate(self, prompt: str, schema: Type[SchemaT]) -> SchemaT:
        ...


class ProgressPublisher(ABC):
    """Fire-and-forget status channel.  Implementations must not raise."""

    @abstractmethod
    async def publish(self, event: ProgressEvent) -> None:
        ...


class NullPublisher(ProgressPublisher):
    async def publish(self, event: ProgressEvent) -> None:
        return None

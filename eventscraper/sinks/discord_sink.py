"""
Discord sink for posting crawl progress to a webhook.
"""

import logging
from typing import Iterable, Optional

import aiohttp
import discord
from discord import Embed

from ..models import ProgressEvent, ProgressStatus


logger = logging.getLogger(__name__)

_COLORS = {
    ProgressStatus.READING_SITE: 0x0099FF,
    ProgressStatus.PROCESSING_EVENTS: 0xFF8C00,
    ProgressStatus.COMPLETED: 0x2ECC71,
    ProgressStatus.FAILED: 0xFF0000,
}


class DiscordProgressSink:
    """Progress listener that sends selected statuses to a Discord webhook as embeds."""

    name = "DiscordProgressSink"

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        notify_on: Iterable[str] = ("completed", "failed"),
        *,
        webhook=None,
    ):
        if webhook is None and not webhook_url:
            raise ValueError("webhook_url is required")
        self.webhook_url = webhook_url
        self.notify_on = {ProgressStatus(s) for s in notify_on}
        self._webhook = webhook
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_webhook(self):
        if self._webhook is None:
            self._session = aiohttp.ClientSession()
            self._webhook = discord.Webhook.from_url(self.webhook_url, session=self._session)
        return self._webhook

    def build_embed(self, event: ProgressEvent) -> Embed:
        embed = Embed(
            title=event.status.label,
            description=f"**{event.url}**",
            color=_COLORS[event.status],
        )
        embed.add_field(name="Site", value=str(event.site_id), inline=True)
        if event.message:
            embed.add_field(name="Details", value=event.message[:1000], inline=False)
        if event.error:
            embed.add_field(name="Error", value=event.error[:1000], inline=False)
        embed.timestamp = event.published_at
        return embed

    async def __call__(self, event: ProgressEvent) -> None:
        await self.handle(event)

    async def handle(self, event: ProgressEvent) -> None:
        if event.status not in self.notify_on:
            return
        try:
            await self._get_webhook().send(embed=self.build_embed(event))
            logger.debug(f"Sent progress for site {event.site_id} to Discord")
        except Exception as e:
            logger.error(f"Failed to send Discord notification: {e}")

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

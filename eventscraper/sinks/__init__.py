"""Progress sinks that forward crawl status to external services."""

from .discord_sink import DiscordProgressSink

__all__ = ["DiscordProgressSink"]

import asyncio

import pytest

from eventscraper.infra.pubsub import ProgressChannel
from eventscraper.models import ProgressEvent, ProgressStatus
from eventscraper.sinks import DiscordProgressSink


class FakeWebhook:
    def __init__(self, error=None):
        self.sent = []
        self.error = error

    async def send(self, **kwargs):
        if self.error:
            raise self.error
        self.sent.append(kwargs["embed"])


def progress(status, **kwargs):
    return ProgressEvent(site_id=4, url="https://a.example/events", status=status, **kwargs)


def test_only_selected_statuses_are_posted():
    webhook = FakeWebhook()
    sink = DiscordProgressSink(notify_on=["failed"], webhook=webhook)

    async def _run():
        channel = ProgressChannel()
        channel.add_listener(sink)
        await channel.publish(progress(ProgressStatus.READING_SITE))
        await channel.publish(progress(ProgressStatus.COMPLETED, message="3 events"))
        await channel.publish(progress(ProgressStatus.FAILED, error="Failed to load"))

    asyncio.run(_run())
    (embed,) = webhook.sent
    assert embed.title == ProgressStatus.FAILED.label
    assert "https://a.example/events" in embed.description
    assert [f.value for f in embed.fields if f.name == "Error"] == ["Failed to load"]


def test_webhook_errors_are_swallowed():
    sink = DiscordProgressSink(webhook=FakeWebhook(error=RuntimeError("rate limited")))
    asyncio.run(sink.handle(progress(ProgressStatus.COMPLETED)))


def test_requires_a_target():
    with pytest.raises(ValueError):
        DiscordProgressSink()

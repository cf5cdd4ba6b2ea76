import asyncio

from eventscraper.infra.pubsub import ProgressChannel
from eventscraper.models import ProgressEvent, ProgressStatus


def progress(site_id, status, **kwargs):
    return ProgressEvent(site_id=site_id, url=f"https://s{site_id}.example", status=status, **kwargs)


def test_subscribers_receive_events_in_order():
    async def _run():
        channel = ProgressChannel()
        sub = channel.subscribe()
        await channel.publish(progress(1, ProgressStatus.READING_SITE))
        await channel.publish(progress(1, ProgressStatus.COMPLETED))
        return [(await sub.get()).status for _ in range(2)]

    assert asyncio.run(_run()) == [ProgressStatus.READING_SITE, ProgressStatus.COMPLETED]


def test_full_queue_drops_oldest():
    async def _run():
        channel = ProgressChannel()
        sub = channel.subscribe(maxsize=2)
        for status in (ProgressStatus.READING_SITE, ProgressStatus.PROCESSING_EVENTS, ProgressStatus.COMPLETED):
            await channel.publish(progress(1, status))
        return sub.dropped, [sub.get_nowait().status, sub.get_nowait().status], sub.get_nowait()

    dropped, kept, empty = asyncio.run(_run())
    assert dropped == 1
    assert kept == [ProgressStatus.PROCESSING_EVENTS, ProgressStatus.COMPLETED]
    assert empty is None


def test_latest_wins_per_site():
    async def _run():
        channel = ProgressChannel()
        await channel.publish(progress(1, ProgressStatus.READING_SITE))
        await channel.publish(progress(2, ProgressStatus.READING_SITE))
        await channel.publish(progress(1, ProgressStatus.FAILED, error="boom"))
        return channel

    channel = asyncio.run(_run())
    assert channel.latest(1).status is ProgressStatus.FAILED
    assert channel.latest(2).status is ProgressStatus.READING_SITE
    assert channel.latest(3) is None
    assert set(channel.snapshot()) == {1, 2}


def test_failing_listener_does_not_block_others():
    seen = []

    async def broken(event):
        raise RuntimeError("listener down")

    async def recorder(event):
        seen.append(event.site_id)

    async def _run():
        channel = ProgressChannel()
        channel.add_listener(broken)
        channel.add_listener(recorder)
        await channel.publish(progress(7, ProgressStatus.COMPLETED))
        channel.remove_listener(recorder)
        await channel.publish(progress(8, ProgressStatus.COMPLETED))

    asyncio.run(_run())
    assert seen == [7]


def test_unsubscribed_queue_stops_receiving():
    async def _run():
        channel = ProgressChannel()
        sub = channel.subscribe()
        sub.close()
        await channel.publish(progress(1, ProgressStatus.COMPLETED))
        return sub.get_nowait()

    assert asyncio.run(_run()) is None

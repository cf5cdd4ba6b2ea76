import asyncio

import pytest

from eventscraper.config import AcquirerSettings
from eventscraper.events.fetcher import LAUNCH_GRACE_S, PageAcquirer
from eventscraper.exceptions import AcquisitionError
from eventscraper.models import CrawlSource

from conftest import SITE_URL, FakeRender, FakeSessionFactory

SETTINGS = AcquirerSettings(max_retries=3, backoff_base_s=2.0, timeout_ms=5000)


def acquirer(factory, sleeper, fallback=None, settings=SETTINGS):
    return PageAcquirer(settings, fallback=fallback, session_factory=factory, sleep=sleeper)


def test_first_attempt_success(sleeper):
    factory = FakeSessionFactory("<html><body>hi</body></html>")
    result = asyncio.run(acquirer(factory, sleeper).acquire(SITE_URL))
    assert result.html == "<html><body>hi</body></html>"
    assert result.source is CrawlSource.PRIMARY
    assert result.attempts == 1
    assert sleeper.delays == []
    assert factory.timeouts == [5000]


def test_retries_with_linear_backoff_then_succeeds(sleeper):
    factory = FakeSessionFactory(TimeoutError("nav timeout"), RuntimeError("crashed"), "<p>third time</p>")
    result = asyncio.run(acquirer(factory, sleeper).acquire(SITE_URL))
    assert result.attempts == 3
    assert sleeper.delays == [2.0, 4.0]
    assert factory.opened == factory.closed == 3


def test_all_attempts_and_fallback_fail(sleeper):
    factory = FakeSessionFactory(*(RuntimeError(f"boom {n}\ncall log...") for n in range(3)))
    render = FakeRender(error=RuntimeError("render service down"))

    with pytest.raises(AcquisitionError) as info:
        asyncio.run(acquirer(factory, sleeper, fallback=render).acquire(SITE_URL))

    err = info.value
    assert err.attempts == 3
    assert err.url == SITE_URL
    assert "boom 2" in str(err)
    assert "call log" not in str(err)
    assert render.calls == [SITE_URL]
    assert len(factory.calls) == 3
    assert factory.opened == factory.closed == 3


def test_fallback_after_exhaustion(sleeper):
    factory = FakeSessionFactory(*(RuntimeError("blocked") for _ in range(3)))
    render = FakeRender(html="<html>rendered remotely</html>")
    result = asyncio.run(acquirer(factory, sleeper, fallback=render).acquire(SITE_URL))
    assert result.source is CrawlSource.FALLBACK
    assert result.html == "<html>rendered remotely</html>"
    assert factory.opened == factory.closed == 3


def test_no_fallback_configured_raises(sleeper):
    factory = FakeSessionFactory(*(RuntimeError("blocked") for _ in range(3)))
    with pytest.raises(AcquisitionError):
        asyncio.run(acquirer(factory, sleeper).acquire(SITE_URL))


def test_empty_html_is_not_retried(sleeper):
    factory = FakeSessionFactory("   ")
    result = asyncio.run(acquirer(factory, sleeper).acquire(SITE_URL))
    assert result.is_empty
    assert result.attempts == 1
    assert len(factory.calls) == 1


def test_overrides_per_call(sleeper):
    factory = FakeSessionFactory(RuntimeError("x"), RuntimeError("y"))
    with pytest.raises(AcquisitionError) as info:
        asyncio.run(acquirer(factory, sleeper).acquire(SITE_URL, timeout_ms=1000, max_retries=2))
    assert info.value.attempts == 2
    assert factory.timeouts == [1000, 1000]


def test_hung_attempt_is_cut_off(sleeper):
    class HangingSession:
        closed = 0

        async def __aenter__(self):
            return self

        async def __aexit__(self, *_):
            HangingSession.closed += 1

        async def get_page_content(self, url, **kwargs):
            await asyncio.sleep(3600)

    settings = AcquirerSettings(max_retries=1, timeout_ms=10, settle_delay_max_s=0.0)
    acq = PageAcquirer(settings, session_factory=lambda t: HangingSession(), sleep=sleeper)
    acq.attempt_deadline = lambda timeout_ms: 0.05

    with pytest.raises(AcquisitionError):
        asyncio.run(acq.acquire(SITE_URL))
    assert HangingSession.closed == 1


def test_attempt_deadline_covers_timeout_and_settle_delay():
    acq = PageAcquirer(AcquirerSettings(settle_delay_max_s=3.0))
    assert acq.attempt_deadline(30_000) == 30 + 3.0 + LAUNCH_GRACE_S


def test_close_releases_fallback(sleeper):
    render = FakeRender(html="x")
    asyncio.run(acquirer(FakeSessionFactory(), sleeper, fallback=render).close())
    assert render.closed

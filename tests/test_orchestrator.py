import asyncio

import pytest

from eventscraper.exceptions import SiteNotFoundError
from eventscraper.models import ScrapeOutcome, SiteStatus
from eventscraper.orchestrator import (
    NO_SITES_MESSAGE,
    Orchestrator,
    register_orchestrator,
    scheduled_scrape_all,
    unregister_orchestrator,
)

from conftest import RecordingPublisher, open_stores


class SlowScraper:
    """Records how many scrapes overlap."""

    def __init__(self, delay=0.02, fail_on=()):
        self.delay = delay
        self.fail_on = set(fail_on)
        self.running = 0
        self.peak = 0
        self.calls = []

    async def scrape(self, site_id, url):
        self.calls.append(site_id)
        self.running += 1
        self.peak = max(self.peak, self.running)
        try:
            await asyncio.sleep(self.delay)
            if site_id in self.fail_on:
                raise RuntimeError("status update lost")
            return ScrapeOutcome(site_id=site_id, url=url, status=SiteStatus.SUCCESS)
        finally:
            self.running -= 1


async def seeded(db_path, count):
    db, sites, store = await open_stores(db_path)
    for n in range(count):
        await sites.add_site(f"https://site{n}.example/events")
    return db, sites


def test_zero_sites_is_a_noop(db_path):
    async def _run():
        db, sites = await seeded(db_path, 0)
        scraper = SlowScraper()
        try:
            async with Orchestrator(sites, scraper) as orch:
                outcome = await orch.plan()
                await orch.join()
            return outcome, scraper.calls
        finally:
            await db.close()

    outcome, calls = asyncio.run(_run())
    assert outcome.count == 0
    assert outcome.message == NO_SITES_MESSAGE
    assert calls == []


def test_fan_out_respects_concurrency_cap(db_path):
    async def _run():
        db, sites = await seeded(db_path, 12)
        scraper = SlowScraper()
        try:
            outcomes = await Orchestrator(sites, scraper, concurrency=3).run_once()
            return outcomes, scraper
        finally:
            await db.close()

    outcomes, scraper = asyncio.run(_run())
    assert len(outcomes) == 12
    assert sorted(scraper.calls) == list(range(1, 13))
    assert scraper.peak == 3


def test_daemon_triggers_do_not_accumulate_outcomes(db_path):
    async def _run():
        db, sites = await seeded(db_path, 2)
        scraper = SlowScraper(delay=0)
        try:
            async with Orchestrator(sites, scraper) as orch:
                for _ in range(25):
                    await orch.plan()
                    await orch.join()
                held = orch._results
                after_run = await orch.run_once()
                return held, after_run, orch._results, len(scraper.calls)
        finally:
            await db.close()

    held, after_run, held_after_run, calls = asyncio.run(_run())
    assert held is None
    assert len(after_run) == 2
    assert held_after_run is None
    assert calls == 52


def test_duplicate_trigger_is_skipped_while_running(db_path):
    async def _run():
        db, sites = await seeded(db_path, 2)
        scraper = SlowScraper(delay=0.05)
        try:
            async with Orchestrator(sites, scraper, concurrency=2) as orch:
                first = await orch.plan()
                again = await orch.plan()
                single = await orch.submit_site(1)
                await orch.join()
                after = await orch.submit_site(1)
                await orch.join()
            return first, again, single, after, scraper.calls
        finally:
            await db.close()

    first, again, single, after, calls = asyncio.run(_run())
    assert (first.count, first.skipped) == (2, 0)
    assert (again.count, again.skipped) == (0, 2)
    assert single is False
    assert after is True
    assert sorted(calls) == [1, 1, 2]


def test_duplicates_allowed_when_guard_disabled(db_path):
    async def _run():
        db, sites = await seeded(db_path, 1)
        scraper = SlowScraper()
        try:
            async with Orchestrator(sites, scraper, skip_if_running=False) as orch:
                await orch.plan()
                await orch.plan()
                await orch.join()
            return scraper.calls
        finally:
            await db.close()

    assert asyncio.run(_run()) == [1, 1]


def test_worker_error_is_published_and_pool_survives(db_path):
    async def _run():
        db, sites = await seeded(db_path, 3)
        scraper = SlowScraper(fail_on={2})
        progress = RecordingPublisher()
        try:
            outcomes = await Orchestrator(sites, scraper, progress=progress, concurrency=1).run_once()
            return outcomes, progress
        finally:
            await db.close()

    outcomes, progress = asyncio.run(_run())
    assert sorted(o.site_id for o in outcomes) == [1, 3]
    (failure,) = progress.events
    assert failure.site_id == 2
    assert failure.status.value == "failed"
    assert failure.error == "Worker error: status update lost"


def test_unknown_site_trigger(db_path):
    async def _run():
        db, sites = await seeded(db_path, 0)
        try:
            async with Orchestrator(sites, SlowScraper()) as orch:
                with pytest.raises(SiteNotFoundError):
                    await orch.submit_site(42)
        finally:
            await db.close()

    asyncio.run(_run())


def test_submit_requires_started_pool(db_path):
    async def _run():
        db, sites = await seeded(db_path, 0)
        try:
            with pytest.raises(RuntimeError):
                Orchestrator(sites, SlowScraper()).submit(1, "https://x.example")
        finally:
            await db.close()

    asyncio.run(_run())


def test_invalid_concurrency():
    with pytest.raises(ValueError):
        Orchestrator(None, SlowScraper(), concurrency=0)


def test_scheduled_entry_point_plans_registered_orchestrator(db_path):
    async def _run():
        db, sites = await seeded(db_path, 2)
        scraper = SlowScraper()
        try:
            async with Orchestrator(sites, scraper) as orch:
                ref = register_orchestrator("test_job", orch)
                await scheduled_scrape_all("test_job")
                await scheduled_scrape_all("missing_job")
                await orch.join()
            unregister_orchestrator("test_job")
            return ref, scraper.calls
        finally:
            await db.close()

    ref, calls = asyncio.run(_run())
    assert ref == "eventscraper.orchestrator:scheduled_scrape_all"
    assert sorted(calls) == [1, 2]

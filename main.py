"""
Main entry point for the event scraper daemon with scheduling support.
"""

import asyncio
import logging
import os
import signal
import sys

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from eventscraper.config import Settings, configure_logging, load_settings
from eventscraper.infra.discord_bot import ScraperBot, create_bot_commands
from eventscraper.infra.scheduler import Scheduler
from eventscraper.orchestrator import register_orchestrator, unregister_orchestrator
from eventscraper.runtime import Runtime
from eventscraper.sinks import DiscordProgressSink

logger = logging.getLogger(__name__)

SCRAPE_ALL_JOB = "scrape_all"


async def main():
    """Main entry point with scheduler and optional Discord bot support."""
    settings = load_settings()
    configure_logging(settings.log_level)

    scheduler_mode = os.getenv("SCHEDULER_MODE", "enabled")
    logger.info("Discord token: %s", "set" if settings.discord.token else "not set")

    if scheduler_mode == "disabled" or not settings.schedule.enabled:
        logger.info("Starting event scraper (one-time run)...")
        await run_without_scheduler(settings)
        return

    logger.info("Starting event scraper with scheduler...")
    await run_with_scheduler(settings)


async def run_with_scheduler(settings: Settings):
    scheduler = Scheduler(
        db_url=settings.schedule.job_store_url,
        timezone=settings.schedule.timezone,
        enable_persistence=settings.schedule.persistence,
    )

    # Setup graceful shutdown
    stop_event = asyncio.Event()
    bot_task = None
    sink = None

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        asyncio.get_running_loop().add_signal_handler(sig, signal_handler)

    async with Runtime(settings) as runtime:
        orchestrator = runtime.orchestrator()
        try:
            await orchestrator.start()

            if settings.discord.webhook_url:
                sink = DiscordProgressSink(settings.discord.webhook_url, settings.discord.notify_on)
                runtime.progress.add_listener(sink)
                logger.info("Discord progress notifications enabled")

            runner = register_orchestrator(SCRAPE_ALL_JOB, orchestrator)
            await scheduler.start()
            scheduler.add_cron_job(runner, cron_expression=settings.schedule.cron, job_id=SCRAPE_ALL_JOB)

            if settings.discord.token:
                logger.info("Starting Discord bot...")
                bot = ScraperBot(
                    orchestrator,
                    runtime.sites,
                    scheduler,
                    admin_user_id=settings.discord.admin_user_id,
                    admin_guild_id=settings.discord.admin_guild_id,
                )
                create_bot_commands(bot)
                bot_task = asyncio.create_task(bot.start(settings.discord.token))

            await stop_event.wait()

        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
        finally:
            logger.info("Shutting down...")

            if bot_task and not bot_task.done():
                logger.info("Stopping Discord bot...")
                bot_task.cancel()
                try:
                    await bot_task
                except asyncio.CancelledError:
                    pass

            await scheduler.stop()
            unregister_orchestrator(SCRAPE_ALL_JOB)
            if sink is not None:
                await sink.close()

    logger.info("Shutdown complete")


async def run_without_scheduler(settings: Settings):
    """Run a single "scrape all" pass and exit."""
    sink = None
    async with Runtime(settings) as runtime:
        if settings.discord.webhook_url:
            sink = DiscordProgressSink(settings.discord.webhook_url, settings.discord.notify_on)
            runtime.progress.add_listener(sink)
        try:
            outcomes = await runtime.orchestrator().run_once()
        finally:
            if sink is not None:
                await sink.close()

    for outcome in outcomes:
        logger.info(f"  - site {outcome.site_id}: {outcome.status.value} {outcome.message or ''}")
    logger.info(f"Scraped {len(outcomes)} site(s)")


def run_scraper_system():
    """Entry point that can be called from other scripts."""
    asyncio.run(main())


if __name__ == "__main__":
    run_scraper_system()

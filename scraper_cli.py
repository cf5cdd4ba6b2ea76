#!/usr/bin/env python3
"""
Event scraper CLI - commands for managing sites and running scrapes.

Usage: python scraper_cli.py <command> [options]

Commands:
    scrape-all          - Scrape every configured site once
    scrape <site_id>    - Scrape a single site
    add <url>           - Add a site to scrape
    remove <site_id>    - Remove a site and all of its events
    sites               - List sites with their status
    events [city]       - List upcoming events, optionally for one city
    month <YYYY-MM> [city] - List events in one month
    cities              - List the cities events take place in
    delete-event <id>   - Hide an event
    clear-events        - Delete every stored event
"""

import asyncio
import os
import sys
from typing import List

# Add project root to PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from eventscraper.config import configure_logging, load_settings
from eventscraper.exceptions import ScraperError
from eventscraper.models import ProgressEvent, ProgressStatus, ScrapeOutcome, SiteStatus
from eventscraper.runtime import Runtime


class Colors:
    """ANSI color codes for terminal output."""
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    END = "\033[0m"


def status_color(status: SiteStatus) -> str:
    if status.is_failure:
        return Colors.RED
    if status.is_terminal:
        return Colors.GREEN
    return Colors.YELLOW


async def print_progress(event: ProgressEvent) -> None:
    color = Colors.RED if event.status is ProgressStatus.FAILED else Colors.BLUE
    detail = event.error or event.message or ""
    print(f"{color}[{event.site_id}] {event.status.label}{Colors.END} {detail}")


def print_outcomes(outcomes: List[ScrapeOutcome]) -> None:
    if not outcomes:
        print(f"{Colors.YELLOW}No sites configured{Colors.END}")
        return
    print(f"\n{Colors.BOLD}Results:{Colors.END}")
    for o in outcomes:
        print(f"  {status_color(o.status)}{o.status.label}{Colors.END} {o.url}")
        if o.message:
            print(f"    └─ {o.message}")


async def scrape_all(runtime: Runtime) -> None:
    runtime.progress.add_listener(print_progress)
    print(f"{Colors.BLUE}🚀 Scraping all sites...{Colors.END}")
    print_outcomes(await runtime.orchestrator().run_once())


async def scrape_site(runtime: Runtime, site_id: int) -> None:
    runtime.progress.add_listener(print_progress)
    orchestrator = runtime.orchestrator()
    async with orchestrator:
        await orchestrator.submit_site(site_id)
        await orchestrator.join()
    site = await runtime.sites.get_site(site_id)
    print(f"{status_color(site.status)}{site.status_label}{Colors.END} {site.url}")
    if site.status_detail:
        print(f"  └─ {site.status_detail}")


async def add_site(runtime: Runtime, url: str) -> None:
    site = await runtime.sites.add_site(url)
    print(f"{Colors.GREEN}✅ Added site {site.id}: {site.url}{Colors.END}")


async def remove_site(runtime: Runtime, site_id: int) -> None:
    if await runtime.sites.delete_site(site_id):
        print(f"{Colors.GREEN}✅ Removed site {site_id}{Colors.END}")
    else:
        print(f"{Colors.YELLOW}⚠️  No site with id {site_id}{Colors.END}")


async def show_sites(runtime: Runtime) -> None:
    sites = await runtime.sites.list_sites()
    if not sites:
        print(f"{Colors.YELLOW}No sites configured{Colors.END}")
        return
    print(f"{Colors.BOLD}{'ID':>4}  {'Status':<22} {'Events':>6}  Site{Colors.END}")
    for site in sites:
        last = site.last_scraped_at.strftime("%Y-%m-%d %H:%M") if site.last_scraped_at else "never"
        title = site.organisation_title or "-"
        print(
            f"{site.id:>4}  {status_color(site.status)}{site.status_label:<22}{Colors.END} "
            f"{site.event_count:>6}  {title} ({site.url}), last scraped {last}"
        )
        if site.status_detail:
            print(f"{'':>6}└─ {Colors.RED}{site.status_detail}{Colors.END}")


def print_events(events) -> None:
    if not events:
        print(f"{Colors.YELLOW}No events found{Colors.END}")
        return
    for e in events:
        when = f"{e.event_date} {e.event_time or ''}".strip()
        where = e.location_city or e.location or ""
        print(f"{Colors.CYAN}{e.id:>5}{Colors.END}  {when:<16} {Colors.BOLD}{e.title}{Colors.END}  {where}")
        if e.event_url:
            print(f"{'':>7}{e.event_url}")


async def show_events(runtime: Runtime, city: str = None) -> None:
    print_events(await runtime.store.all_events(city))


async def show_month(runtime: Runtime, month: str, city: str = None) -> None:
    year, _, mon = month.partition("-")
    print_events(await runtime.store.events_for_month(int(year), int(mon), city))


async def show_cities(runtime: Runtime) -> None:
    for city in await runtime.store.location_cities():
        print(city)


async def delete_event(runtime: Runtime, event_id: int) -> None:
    if await runtime.store.soft_delete_event(event_id):
        print(f"{Colors.GREEN}✅ Deleted event {event_id}{Colors.END}")
    else:
        print(f"{Colors.YELLOW}⚠️  No event with id {event_id}{Colors.END}")


async def clear_events(runtime: Runtime) -> None:
    removed = await runtime.store.delete_all_events()
    print(f"{Colors.GREEN}✅ Deleted {removed} event(s){Colors.END}")

async def main(argv: List[str]) -> int:
    """Main CLI entry point."""
    if not argv:
        print(__doc__)
        return 1

    command, args = argv[0].lower(), argv[1:]
    settings = load_settings()
    configure_logging(settings.log_level)

    try:
        async with Runtime(settings) as runtime:
            if command == "scrape-all":
                await scrape_all(runtime)
            elif command == "scrape" and args:
                await scrape_site(runtime, int(args[0]))
            elif command == "add" and args:
                await add_site(runtime, args[0])
            elif command == "remove" and args:
                await remove_site(runtime, int(args[0]))
            elif command == "sites":
                await show_sites(runtime)
            elif command == "events":
                await show_events(runtime, args[0] if args else None)
            elif command == "month" and args:
                await show_month(runtime, args[0], args[1] if len(args) > 1 else None)
            elif command == "cities":
                await show_cities(runtime)
            elif command == "delete-event" and args:
                await delete_event(runtime, int(args[0]))
            elif command == "clear-events":
                await clear_events(runtime)
            else:
                print(f"{Colors.RED}Unknown command: {' '.join(argv)}{Colors.END}")
                print(__doc__)
                return 1
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Interrupted{Colors.END}")
        return 130
    except (ScraperError, ValueError) as e:
        print(f"{Colors.RED}Error: {e}{Colors.END}")
        return 1
    return 0


def run() -> None:
    sys.exit(asyncio.run(main(sys.argv[1:])))


if __name__ == "__main__":
    run()

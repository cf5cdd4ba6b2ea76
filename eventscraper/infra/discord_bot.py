"""
Discord bot for triggering scrapes and inspecting site status.
Trigger commands are visible **only** to server administrators.

Visibility is handled via
    @app_commands.default_permissions(administrator=True)
Runtime execution is then further locked down to the configured
admin user id (or any user with the Administrator permission).
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..events.sites import SiteRepository
from ..exceptions import SiteNotFoundError
from ..orchestrator import Orchestrator
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

MAX_MESSAGE = 1990


def _truncate(content: str, limit: int = MAX_MESSAGE) -> str:
    return content if len(content) <= limit else content[: limit - 3] + "..."


# ──────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────

async def is_bot_admin(interaction: discord.Interaction) -> bool:
    """Return *True* if the caller is the configured admin or has Administrator."""

    if getattr(interaction.client, "admin_user_id", None) is None:
        logger.warning("Admin check: admin_user_id not configured, falling back to Administrator permission")

    user = interaction.user
    is_admin_id = user.id == getattr(interaction.client, "admin_user_id", None)
    permissions = getattr(user, "guild_permissions", None)
    is_admin_perm = getattr(permissions, "administrator", False)

    if is_admin_id or is_admin_perm:
        return True

    await interaction.response.send_message(
        "❌ You are not authorized to use this command.", ephemeral=True
    )
    return False


def format_sites(sites) -> str:
    if not sites:
        return "📋 No sites configured"
    lines: List[str] = []
    for site in sites:
        title = site.organisation_title or site.url
        lines.append(f"**{site.id}. {title}** {site.status_label} ({site.event_count} events)")
        detail = site.status_detail
        if detail:
            lines.append(f"  └─ {detail}")
    return _truncate("📋 **Sites:**\n\n" + "\n".join(lines))


def format_jobs(jobs) -> str:
    if not jobs:
        return "📋 No jobs scheduled"
    lines: List[str] = []
    for job_id, meta in jobs.items():
        next_run = meta.get("next_run")
        next_run_str = next_run.strftime("%Y-%m-%d %H:%M:%S %Z") if next_run else "N/A"
        lines.append(f"**{job_id}**")
        lines.append(f"  └─ Next run: `{next_run_str}`")
        lines.append(f"  └─ Trigger: `{meta.get('trigger', 'Unknown')}`")
    return _truncate("📋 **Scheduled Jobs:**\n\n" + "\n".join(lines))


# ──────────────────────────────────────────────────────────────────────────
# Bot implementation
# ──────────────────────────────────────────────────────────────────────────

class ScraperBot(commands.Bot):
    """Discord front end for the scrape orchestrator."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        sites: SiteRepository,
        scheduler: Optional[Scheduler] = None,
        *,
        admin_user_id: Optional[int] = None,
        admin_guild_id: Optional[int] = None,
        **kwargs,
    ):
        intents = discord.Intents.default()  # slash-command-only bot
        super().__init__(command_prefix="!", intents=intents, **kwargs)

        self.orchestrator = orchestrator
        self.sites = sites
        self.scheduler = scheduler
        self.admin_user_id = admin_user_id
        self.admin_guild_id = admin_guild_id

    async def setup_hook(self):
        """Runs at startup before connecting to the gateway."""
        try:
            if self.admin_guild_id:
                synced_admin = await self.tree.sync(guild=discord.Object(id=self.admin_guild_id))
                logger.info("Synced %d admin command(s) to guild %s", len(synced_admin), self.admin_guild_id)
            synced_global = await self.tree.sync()
            logger.info("Synced %d global command(s)", len(synced_global))
        except Exception as exc:  # pragma: no cover
            logger.exception("Failed to sync commands: %s", exc)

    async def on_error(self, event_method: str, *args: Any, **kwargs: Any) -> None:
        logger.exception(f"Unhandled exception in {event_method}")

    async def close(self):
        # orchestrator and scheduler lifecycles belong to main.py
        await super().close()
        logger.info("Bot has been closed.")


# ──────────────────────────────────────────────────────────────────────────
# Command registration helper
# ──────────────────────────────────────────────────────────────────────────

def create_bot_commands(bot: ScraperBot) -> ScraperBot:
    """Create and register Discord application (slash) commands."""

    admin_guild_obj = discord.Object(id=bot.admin_guild_id) if bot.admin_guild_id else None

    # /scrape_all
    @bot.tree.command(
        name="scrape_all",
        description="Queue every configured site for scraping",
        guild=admin_guild_obj,
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.check(is_bot_admin)
    async def _scrape_all(interaction: discord.Interaction):
        await interaction.response.defer(thinking=True)
        try:
            outcome = await bot.orchestrator.plan()
            await interaction.followup.send(f"🚀 {outcome.message}")
        except Exception as exc:
            logger.exception("scrape_all failed: %s", exc)
            await interaction.followup.send(f"❌ Failed to queue sites: {exc}")

    # /scrape
    @bot.tree.command(
        name="scrape",
        description="Queue a single site for scraping",
        guild=admin_guild_obj,
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.check(is_bot_admin)
    async def _scrape(interaction: discord.Interaction, site_id: int):
        try:
            queued = await bot.orchestrator.submit_site(site_id)
        except SiteNotFoundError:
            await interaction.response.send_message(f"❌ Unknown site {site_id}", ephemeral=True)
            return
        if queued:
            await interaction.response.send_message(f"🚀 Site {site_id} queued")
        else:
            await interaction.response.send_message(f"⏳ Site {site_id} is already being scraped", ephemeral=True)

    # /jobs
    @bot.tree.command(
        name="jobs",
        description="List all scheduled jobs",
        guild=admin_guild_obj,
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.check(is_bot_admin)
    async def _jobs(interaction: discord.Interaction):
        jobs = bot.scheduler.list_jobs() if bot.scheduler else {}
        await interaction.response.send_message(format_jobs(jobs))

    # /sites (public)
    @bot.tree.command(name="sites", description="List configured sites and their status")
    async def _sites(interaction: discord.Interaction):
        await interaction.response.defer(thinking=True)
        sites = await bot.sites.list_sites()
        await interaction.followup.send(format_sites(sites))

    return bot

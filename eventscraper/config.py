"""
Configuration loading: defaults -> config.yaml -> environment (.env aware).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


class AcquirerSettings(BaseModel):
    timeout_ms: float = 30_000
    max_retries: int = Field(default=3, ge=1)
    backoff_base_s: float = 2.0
    wait_until: str = "networkidle"
    settle_delay_min_s: float = 1.0
    settle_delay_max_s: float = 3.0
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1920
    viewport_height: int = 1080
    headless: bool = True
    browser_type: str = "chromium"
    scroll_to_bottom: bool = False


class FallbackSettings(BaseModel):
    url: Optional[str] = None
    token: Optional[str] = None
    timeout_s: float = 60.0
    max_retries: int = Field(default=2, ge=1)


class ExtractorSettings(BaseModel):
    model: str = "gemini-2.5-flash"
    api_key: Optional[str] = None
    temperature: float = 0.0


class OrchestratorSettings(BaseModel):
    concurrency: int = Field(default=5, ge=1)
    skip_if_running: bool = True


class ScheduleSettings(BaseModel):
    enabled: bool = True
    cron: str = "0 6 * * *"
    timezone: str = "UTC"
    persistence: bool = False
    job_store_url: str = "sqlite:///scheduler_jobs.db"


class DiscordSettings(BaseModel):
    token: Optional[str] = None
    webhook_url: Optional[str] = None
    admin_user_id: Optional[int] = None
    admin_guild_id: Optional[int] = None
    notify_on: List[str] = Field(default_factory=lambda: ["completed", "failed"])


class Settings(BaseModel):
    database_url: str = "events.db"
    log_level: str = "INFO"
    acquirer: AcquirerSettings = Field(default_factory=AcquirerSettings)
    fallback: FallbackSettings = Field(default_factory=FallbackSettings)
    extractor: ExtractorSettings = Field(default_factory=ExtractorSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    schedule: ScheduleSettings = Field(default_factory=ScheduleSettings)
    discord: DiscordSettings = Field(default_factory=DiscordSettings)


# (section, key, env var)
_ENV_OVERRIDES = [
    (None, "database_url", "DATABASE_URL"),
    (None, "log_level", "LOG_LEVEL"),
    ("fallback", "url", "FALLBACK_RENDER_URL"),
    ("fallback", "token", "FALLBACK_RENDER_TOKEN"),
    ("extractor", "api_key", "GEMINI_API_KEY"),
    ("extractor", "model", "GEMINI_MODEL"),
    ("orchestrator", "concurrency", "SCRAPE_CONCURRENCY"),
    ("schedule", "cron", "SCRAPE_CRON"),
    ("schedule", "timezone", "SCHEDULER_TIMEZONE"),
    ("discord", "token", "DISCORD_TOKEN"),
    ("discord", "webhook_url", "DISCORD_WEBHOOK_URL"),
    ("discord", "admin_user_id", "ADMIN_USER_ID"),
    ("discord", "admin_guild_id", "ADMIN_GUILD_ID"),
]


def load_config(path: str = "config.yaml") -> Dict[str, Any]:
    """Load raw configuration from a YAML file; a missing file yields {}."""
    cfg_path = Path(path)
    if not cfg_path.exists():
        logger.debug(f"Config file not found, using defaults: {path}")
        return {}
    with cfg_path.open() as f:
        data = yaml.safe_load(f) or {}
    # a section with only comments under it loads as None
    return {k: v for k, v in data.items() if v is not None}


def _apply_env(data: Dict[str, Any], environ: Dict[str, str]) -> Dict[str, Any]:
    for section, key, var in _ENV_OVERRIDES:
        value = environ.get(var)
        if not value:
            continue
        target = data if section is None else data.setdefault(section, {})
        target[key] = value
    return data


def load_settings(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Settings:
    """Build validated :class:`Settings`.

    ``path`` defaults to ``$SCRAPER_CONFIG`` or ``config.yaml``.  Environment
    variables win over the file.
    """
    if environ is None:
        load_dotenv()
        environ = dict(os.environ)
    path = path or environ.get("SCRAPER_CONFIG", "config.yaml")
    data = _apply_env(load_config(path), environ)
    return Settings.model_validate(data)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )

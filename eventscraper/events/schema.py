"""
SQLite schema for sites and their events.
"""

from ..infra.db import Database


SITES_DDL = """
CREATE TABLE IF NOT EXISTS sites (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL UNIQUE,
    organisation_title TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    error_message TEXT,
    last_scraped_at TEXT,
    created_at TEXT
);
"""

EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    event_date TEXT NOT NULL,
    event_time TEXT,
    location TEXT,
    location_city TEXT,
    description TEXT,
    source_url TEXT NOT NULL,
    event_url TEXT,
    webpage_config_id INTEGER REFERENCES sites(id) ON DELETE CASCADE,
    scraped_at TEXT,
    deleted_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_events_natural_key ON events (title, event_date, source_url);
CREATE INDEX IF NOT EXISTS idx_events_date ON events (event_date);
CREATE INDEX IF NOT EXISTS idx_events_site ON events (webpage_config_id);
"""


async def ensure_schema(db: Database) -> None:
    await db.ensure_tables([SITES_DDL, EVENTS_DDL])

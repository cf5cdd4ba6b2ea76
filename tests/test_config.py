import pytest
from pydantic import ValidationError

from eventscraper.config import load_config, load_settings


def test_defaults_without_file(tmp_path):
    settings = load_settings(str(tmp_path / "missing.yaml"), environ={})
    assert settings.database_url == "events.db"
    assert settings.acquirer.max_retries == 3
    assert settings.acquirer.wait_until == "networkidle"
    assert settings.orchestrator.concurrency == 5
    assert settings.fallback.url is None
    assert settings.schedule.cron == "0 6 * * *"


def test_yaml_then_environment(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "database_url: sqlite:///db/from_yaml.db\n"
        "orchestrator:\n  concurrency: 2\n"
        "acquirer:\n  timeout_ms: 10000\n"
    )
    settings = load_settings(
        str(path),
        environ={
            "SCRAPE_CONCURRENCY": "8",
            "GEMINI_API_KEY": "key-123",
            "FALLBACK_RENDER_URL": "https://render.example/fetch",
            "ADMIN_USER_ID": "1234",
        },
    )
    assert settings.database_url == "sqlite:///db/from_yaml.db"
    assert settings.acquirer.timeout_ms == 10000
    assert settings.orchestrator.concurrency == 8
    assert settings.extractor.api_key == "key-123"
    assert settings.fallback.url == "https://render.example/fetch"
    assert settings.discord.admin_user_id == 1234


def test_config_path_from_environment(tmp_path):
    path = tmp_path / "other.yaml"
    path.write_text("log_level: DEBUG\n")
    assert load_settings(environ={"SCRAPER_CONFIG": str(path)}).log_level == "DEBUG"


def test_invalid_values_are_rejected(tmp_path):
    with pytest.raises(ValidationError):
        load_settings(str(tmp_path / "none.yaml"), environ={"SCRAPE_CONCURRENCY": "0"})


def test_empty_yaml_is_empty_config(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(str(path)) == {}


def test_environment_fills_section_left_empty_in_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("discord:\n  # notify_on: [completed, failed]\n")
    settings = load_settings(str(path), environ={"DISCORD_TOKEN": "tok", "ADMIN_GUILD_ID": "42"})
    assert settings.discord.token == "tok"
    assert settings.discord.admin_guild_id == 42


def test_commented_out_section_uses_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("schedule:\n  # cron: '0 6 * * *'\ndiscord:\n")
    settings = load_settings(str(path), environ={})
    assert settings.schedule.cron == "0 6 * * *"
    assert settings.discord.notify_on == ["completed", "failed"]

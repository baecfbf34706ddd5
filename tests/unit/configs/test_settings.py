from pydantic import SecretStr

from event_ingest.configs.settings import Settings, get_settings


def test_settings_default_values(monkeypatch):
    """Defaults apply when nothing is set in the environment."""
    for key in ("ENV", "DEBUG", "LOG_LEVEL", "BROWSER_HEADLESS", "ROBOTS_CACHE_TTL_HOURS"):
        monkeypatch.delenv(key, raising=False)
    settings = Settings(_env_file=None)
    assert settings.ENV == "development"
    assert settings.DEBUG is False
    assert settings.LOG_LEVEL == "INFO"
    assert settings.BROWSER_HEADLESS is True
    assert settings.robots_cache_ttl_seconds == 24 * 3600


def test_settings_from_environment(monkeypatch):
    """Environment variables override defaults."""
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("ROBOTS_CACHE_TTL_HOURS", "2")
    monkeypatch.setenv("BROWSER_HEADLESS", "false")
    settings = Settings(_env_file=None)
    assert settings.LOG_LEVEL == "DEBUG"
    assert settings.robots_cache_ttl_seconds == 7200
    assert settings.BROWSER_HEADLESS is False


def test_ticketmaster_key_is_secret():
    """The API key is kept as a SecretStr and unwrapped on request."""
    settings = Settings(_env_file=None, TICKETMASTER_API_KEY="abc123")
    assert isinstance(settings.TICKETMASTER_API_KEY, SecretStr)
    assert "abc123" not in repr(settings)
    assert settings.get_ticketmaster_api_key() == "abc123"


def test_ticketmaster_key_missing(monkeypatch):
    monkeypatch.delenv("TICKETMASTER_API_KEY", raising=False)
    assert Settings(_env_file=None).get_ticketmaster_api_key() is None
    assert Settings(_env_file=None, TICKETMASTER_API_KEY="").get_ticketmaster_api_key() is None


def test_paths():
    """Paths point at the packaged config."""
    settings = Settings(_env_file=None)
    assert settings.INGESTION_CONFIG_PATH.name == "ingestion.yaml"
    assert settings.INGESTION_CONFIG_PATH.exists()
    assert settings.CATALOG_OUTPUT_PATH.name == "catalog.jsonl"


def test_get_settings_is_cached():
    assert get_settings() is get_settings()

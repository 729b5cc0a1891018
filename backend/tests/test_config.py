import pytest
from slotbook.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PRESENCE_TTL_SECONDS", "90")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
    monkeypatch.setenv("SENDGRID_API_KEY", "  ")
    settings = get_settings()
    assert settings.presence_ttl_seconds == 90
    assert settings.redis_url == "redis://cache:6379/1"
    assert settings.sendgrid_api_key is None


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PRESENCE_TTL_SECONDS", "PRESENCE_REFRESH_SECONDS", "REDIS_URL", "TWILIO_ACCOUNT_SID"):
        monkeypatch.delenv(name, raising=False)
    settings = get_settings()
    assert settings.presence_ttl_seconds == 120
    assert settings.presence_refresh_seconds == 30
    assert settings.redis_url is None
    assert settings.twilio_account_sid is None

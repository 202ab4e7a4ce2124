import pytest

import config.settings as settings


@pytest.fixture
def valid_settings(monkeypatch):
    monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", "token")
    monkeypatch.setattr(settings, "LLM_PROVIDER", "gemini")
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "key")
    monkeypatch.setattr(settings, "USER_TIMEZONE", "Asia/Almaty")


def test_valid_settings_pass(valid_settings):
    settings.validate_settings()


def test_unknown_timezone_is_fatal(valid_settings, monkeypatch):
    monkeypatch.setattr(settings, "USER_TIMEZONE", "Mars/Olympus_Mons")
    with pytest.raises(SystemExit):
        settings.validate_settings()


def test_missing_bot_token_is_fatal(valid_settings, monkeypatch):
    monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", "")
    with pytest.raises(SystemExit):
        settings.validate_settings()

"""
Tests for Canvass Service settings.
"""

import pytest

from services.canvass.settings import Settings, get_settings, reset_settings


def test_defaults(canvass_env):
    settings = get_settings()
    assert settings.db_url_canvass.startswith("sqlite:///")
    assert settings.api_frontend_canvass_key == "test-frontend-key"
    assert settings.SEARCH_PAGE_SIZE == 20
    assert settings.NOTES_MAX_LENGTH == 2000
    assert settings.FILTER_TOKEN_EXPIRY == 3600
    assert settings.LOG_FORMAT == "text"


def test_singleton_and_reset(canvass_env, monkeypatch):
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("NOTES_MAX_LENGTH", "500")
    assert get_settings().NOTES_MAX_LENGTH == 2000
    reset_settings()
    assert get_settings().NOTES_MAX_LENGTH == 500


def test_database_url_is_required(canvass_env, monkeypatch):
    monkeypatch.delenv("DB_URL_CANVASS")
    with pytest.raises(ValueError, match="db_url_canvass"):
        Settings()


def test_frontend_key_is_required(canvass_env, monkeypatch):
    monkeypatch.delenv("API_FRONTEND_CANVASS_KEY")
    with pytest.raises(ValueError, match="api_frontend_canvass_key"):
        Settings()

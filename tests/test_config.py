"""Tests for configuration module."""

from __future__ import annotations

from perfstats.config import Settings, get_settings, _ENV_PROFILES


def test_settings_dataclass():
    s = Settings()
    assert s.app_env == "dev"
    assert s.validation_preset == "standard"
    assert s.history_window == 50
    assert s.min_data_points == 3


def test_settings_frozen():
    s = Settings()
    try:
        s.log_level = "DEBUG"
        assert False, "Should raise"
    except AttributeError:
        pass


def test_settings_is_production():
    s = Settings(app_env="production")
    assert s.is_production is True
    assert s.is_dev is False


def test_settings_is_dev():
    s = Settings(app_env="dev")
    assert s.is_dev is True
    assert s.is_production is False


def test_env_profiles_exist():
    assert "dev" in _ENV_PROFILES
    assert "staging" in _ENV_PROFILES
    assert "production" in _ENV_PROFILES


def test_production_profile_uses_research_grade():
    assert _ENV_PROFILES["production"]["validation_preset"] == "research_grade"


def test_dev_profile_debug_logging():
    assert _ENV_PROFILES["dev"]["log_level"] == "DEBUG"
    assert _ENV_PROFILES["dev"]["log_json"] is False


def test_get_settings_uses_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("HISTORY_WINDOW", "20")
    monkeypatch.setenv("LOG_JSON", "no")
    monkeypatch.delenv("VALIDATION_PRESET", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    s = get_settings()
    assert s.app_env == "production"
    assert s.history_window == 20
    assert s.log_json is False
    assert s.log_level == "WARNING"
    assert s.validation_preset == "research_grade"


def test_settings_profile_defaults(monkeypatch):
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_JSON", raising=False)
    monkeypatch.delenv("MIN_DATA_POINTS", raising=False)
    s = get_settings()
    assert s.log_level == "DEBUG"
    assert s.log_json is False
    assert s.min_data_points == 3


def test_unknown_env_falls_back_to_dev_profile(monkeypatch):
    monkeypatch.setenv("APP_ENV", "qa")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    s = get_settings()
    assert s.app_env == "qa"
    assert s.log_level == "DEBUG"


def test_settings_supply_service_defaults():
    from perfstats.services.data_quality import DEFAULT_HISTORY_WINDOW
    from perfstats.services.individual_response import DEFAULT_MIN_DATA_POINTS

    assert DEFAULT_HISTORY_WINDOW == Settings().history_window
    assert DEFAULT_MIN_DATA_POINTS == Settings().min_data_points


def test_production_preset_resolves_to_criteria(monkeypatch):
    from perfstats.services.data_quality import ValidationCriteria

    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.delenv("VALIDATION_PRESET", raising=False)
    criteria = ValidationCriteria.preset(get_settings().validation_preset)
    assert criteria.name == "research_grade"
    assert criteria.min_sample_size == 10

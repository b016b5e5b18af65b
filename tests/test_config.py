"""Тесты для config.py."""

import pytest

from bridge_core import config


class TestMinDuration:
    def test_default(self, monkeypatch):
        monkeypatch.delenv("MUTUAL_MIN_DURATION_MINUTES", raising=False)
        assert config.get_min_duration_minutes() == 30

    def test_override(self, monkeypatch):
        monkeypatch.setenv("MUTUAL_MIN_DURATION_MINUTES", " 45 ")
        assert config.get_min_duration_minutes() == 45

    @pytest.mark.parametrize("raw", ["-5", "half an hour", "1.5"])
    def test_invalid(self, monkeypatch, raw):
        """Тест: нецелое или отрицательное значение - ValueError."""
        monkeypatch.setenv("MUTUAL_MIN_DURATION_MINUTES", raw)
        with pytest.raises(ValueError):
            config.get_min_duration_minutes()


class TestOtherSettings:
    def test_cors_origins_split(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "https://app.example.com, http://localhost:3000,")
        assert config.get_cors_origins() == ["https://app.example.com", "http://localhost:3000"]

    def test_cors_default(self, monkeypatch):
        monkeypatch.delenv("CORS_ORIGINS", raising=False)
        assert config.get_cors_origins() == ["*"]

    def test_cooldown(self, monkeypatch):
        monkeypatch.delenv("TRAVEL_ESTIMATE_COOLDOWN_SECONDS", raising=False)
        assert config.get_travel_estimate_cooldown_seconds() == 120
        monkeypatch.setenv("TRAVEL_ESTIMATE_COOLDOWN_SECONDS", "5")
        assert config.get_travel_estimate_cooldown_seconds() == 5

    def test_openrouter_key_required(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        with pytest.raises(ValueError, match="OPENROUTER_API_KEY"):
            config.get_openrouter_api_key()

    def test_port_default(self, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        assert config.get_port() == 3001

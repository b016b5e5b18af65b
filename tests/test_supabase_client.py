"""Тесты для supabase_client.py."""

from unittest.mock import patch

import pytest

from bridge_core.supabase_client import get_supabase_service_client


@pytest.fixture
def supabase_env(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")


def test_service_client(supabase_env):
    """Тест: клиент создается с service_role ключом."""
    with patch("bridge_core.supabase_client.create_client") as create_client:
        client = get_supabase_service_client()

    create_client.assert_called_once_with("https://project.supabase.co", "service-key")
    assert client is create_client.return_value


def test_missing_url(monkeypatch):
    """Тест: без SUPABASE_URL - ValueError с подсказкой."""
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    with pytest.raises(ValueError, match="SUPABASE_URL"):
        get_supabase_service_client()


def test_missing_service_key(supabase_env, monkeypatch):
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY")
    with pytest.raises(ValueError, match="SUPABASE_SERVICE_ROLE_KEY"):
        get_supabase_service_client()

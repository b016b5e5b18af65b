"""Supabase client configuration and utilities."""

import os
from supabase import create_client, Client

from .config import get_supabase_url


def get_supabase_service_client() -> Client:
    """
    Создает клиент с service_role ключом.

    Используется бэкендом и для запросов к таблицам, и для проверки
    bearer-токенов пользователей (auth.get_user).
    """
    url = get_supabase_url()
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

    if not key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in .env file. "
            "Get them from your Supabase project settings."
        )

    return create_client(url, key)

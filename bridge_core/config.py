"""Application configuration read from environment variables."""

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

DEFAULT_MIN_DURATION_MINUTES = 30
DEFAULT_OPENROUTER_MODEL = "minimax/minimax-m2:free"
DEFAULT_TRAVEL_ESTIMATE_COOLDOWN_SECONDS = 120
DEFAULT_AMADEUS_API_URL = "https://test.api.amadeus.com"
DEFAULT_PORT = 3001


def get_supabase_url() -> str:
    """
    Возвращает URL проекта Supabase.

    Raises:
        ValueError: Если SUPABASE_URL не задан
    """
    url = os.getenv("SUPABASE_URL")
    if not url:
        raise ValueError(
            "SUPABASE_URL must be set in .env file. "
            "Get it from your Supabase project settings."
        )
    return url


def get_min_duration_minutes() -> int:
    """
    Минимальная длительность общего окна (в минутах) по умолчанию.

    Берется из MUTUAL_MIN_DURATION_MINUTES, иначе 30.

    Raises:
        ValueError: Если значение не целое неотрицательное число
    """
    raw = os.getenv("MUTUAL_MIN_DURATION_MINUTES")
    if raw is None or not raw.strip():
        return DEFAULT_MIN_DURATION_MINUTES
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValueError("MUTUAL_MIN_DURATION_MINUTES должен быть целым числом")
    if value < 0:
        raise ValueError("MUTUAL_MIN_DURATION_MINUTES не может быть отрицательным")
    return value


def get_openrouter_api_key() -> str:
    """
    Возвращает ключ OpenRouter.

    Raises:
        ValueError: Если OPENROUTER_API_KEY не задан
    """
    key = os.getenv("OPENROUTER_API_KEY")
    if not key:
        raise ValueError("OpenRouter API key not configured. Add OPENROUTER_API_KEY to .env file.")
    return key


def get_openrouter_model() -> str:
    return os.getenv("OPENROUTER_MODEL", DEFAULT_OPENROUTER_MODEL)


def get_travel_estimate_cooldown_seconds() -> float:
    """Пауза между запросами AI-оценки стоимости поездок (секунды)."""
    raw = os.getenv("TRAVEL_ESTIMATE_COOLDOWN_SECONDS")
    if raw is None or not raw.strip():
        return float(DEFAULT_TRAVEL_ESTIMATE_COOLDOWN_SECONDS)
    value = float(raw)
    if value < 0:
        raise ValueError("TRAVEL_ESTIMATE_COOLDOWN_SECONDS не может быть отрицательным")
    return value


def get_amadeus_api_url() -> str:
    return os.getenv("AMADEUS_API_URL", DEFAULT_AMADEUS_API_URL)


def get_cors_origins() -> List[str]:
    """Список разрешенных origin для CORS (через запятую, по умолчанию '*')."""
    raw = os.getenv("CORS_ORIGINS", "*")
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or ["*"]


def get_port() -> int:
    return int(os.getenv("PORT", str(DEFAULT_PORT)))

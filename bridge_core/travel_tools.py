"""Поиск поездок (Amadeus, Google Directions) и AI-оценка их стоимости."""

import logging
import os
import threading
import time
from datetime import datetime, time as dt_time
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx
import pytz
from agno.agent import Agent
from agno.models.openrouter import OpenRouter
from pydantic import ValidationError

from .config import get_amadeus_api_url, get_openrouter_api_key, get_openrouter_model
from .schedule_parser import extract_json_payload
from .schemas import TravelEstimate, TravelEstimateRequest, TravelMode, TravelSearchRequest

logger = logging.getLogger(__name__)

METERS_PER_MILE = 1609.34
GROUND_PRICING = {
    TravelMode.TRAIN: (10.0, 0.25),
    TravelMode.BUS: (5.0, 0.15),
}
REQUEST_TIMEOUT_SECONDS = 15.0


class ProviderNotConfiguredError(RuntimeError):
    """У внешнего сервиса поиска нет ключей доступа."""


class RateLimitedError(RuntimeError):
    """Запрос отклонен: не прошла пауза между вызовами."""

    def __init__(self, seconds_remaining: int):
        super().__init__(
            f"Rate limit: Please wait {seconds_remaining} seconds before requesting cost estimates again."
        )
        self.seconds_remaining = seconds_remaining


class CooldownLimiter:
    """
    Ограничитель "не чаще одного вызова в N секунд".

    Один экземпляр живет весь процесс и передается туда, где делается вызов;
    глобального состояния нет.
    """

    def __init__(self, cooldown_seconds: float, clock: Callable[[], float] = time.monotonic):
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds не может быть отрицательным")
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._last_call: Optional[float] = None
        self._previous_call: Optional[float] = None
        self._lock = threading.Lock()

    def seconds_remaining(self) -> int:
        """Сколько секунд (с округлением вверх) осталось до следующего разрешенного вызова."""
        with self._lock:
            return self._remaining_locked()

    def _remaining_locked(self) -> int:
        if self._last_call is None:
            return 0
        remaining = self.cooldown_seconds - (self._clock() - self._last_call)
        if remaining <= 0:
            return 0
        return int(remaining) + (0 if remaining == int(remaining) else 1)

    def acquire(self) -> int:
        """
        Занимает слот, если пауза прошла.

        Проверка и захват делаются под одной блокировкой.

        Returns:
            0, если слот получен; иначе сколько секунд осталось ждать
        """
        with self._lock:
            remaining = self._remaining_locked()
            if remaining > 0:
                return remaining
            self._previous_call = self._last_call
            self._last_call = self._clock()
            return 0

    def release(self) -> None:
        """Возвращает слот последнего acquire(), если вызов так и не состоялся."""
        with self._lock:
            self._last_call = self._previous_call


class TravelSearchProvider(Protocol):
    def search(self, request: TravelSearchRequest, mode: TravelMode) -> List[Dict[str, Any]]:
        ...


class AmadeusFlightSearch:
    """Поиск авиабилетов через Amadeus Self-Service API."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id or os.getenv("AMADEUS_CLIENT_ID")
        self.client_secret = client_secret or os.getenv("AMADEUS_CLIENT_SECRET")
        self.base_url = (base_url or get_amadeus_api_url()).rstrip("/")
        self._http = http_client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)
        self._clock = clock
        self._access_token: Optional[str] = None
        self._token_expiry = 0.0

    def _get_access_token(self) -> str:
        """OAuth client_credentials; токен обновляется за минуту до истечения."""
        if self._access_token and self._clock() < self._token_expiry:
            return self._access_token

        if not self.client_id or not self.client_secret:
            raise ProviderNotConfiguredError("Amadeus API credentials not configured")

        response = self._http.post(
            f"{self.base_url}/v1/security/oauth2/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        response.raise_for_status()
        payload = response.json()
        self._access_token = payload["access_token"]
        self._token_expiry = self._clock() + int(payload.get("expires_in", 0)) - 60
        return self._access_token

    def search(self, request: TravelSearchRequest, mode: TravelMode = TravelMode.FLIGHT) -> List[Dict[str, Any]]:
        token = self._get_access_token()
        params: Dict[str, Any] = {
            "originLocationCode": request.origin.upper(),
            "destinationLocationCode": request.destination.upper(),
            "departureDate": request.date.isoformat(),
            "adults": 1,
            "max": 10,
        }
        if request.return_date:
            params["returnDate"] = request.return_date.isoformat()

        response = self._http.get(
            f"{self.base_url}/v2/shopping/flight-offers",
            headers={"Authorization": f"Bearer {token}"},
            params=params,
        )
        response.raise_for_status()
        return [_flight_offer_from_amadeus(offer) for offer in response.json().get("data", [])]


def _flight_offer_from_amadeus(offer: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": offer["id"],
        "price": {"total": offer["price"]["total"], "currency": offer["price"]["currency"]},
        "itineraries": [
            {
                "duration": itinerary.get("duration"),
                "segments": [
                    {
                        "departure": {"airport": s["departure"]["iataCode"], "time": s["departure"]["at"]},
                        "arrival": {"airport": s["arrival"]["iataCode"], "time": s["arrival"]["at"]},
                        "carrier": s.get("carrierCode"),
                        "flightNumber": s.get("number"),
                        "duration": s.get("duration"),
                    }
                    for s in itinerary.get("segments", [])
                ],
            }
            for itinerary in offer.get("itineraries", [])
        ],
        "type": TravelMode.FLIGHT.value,
    }


def estimate_ground_price(distance_meters: float, mode: TravelMode) -> str:
    """Грубая оценка цены наземного транспорта по расстоянию: база + цена за милю."""
    base_price, price_per_mile = GROUND_PRICING[mode]
    total = base_price + (distance_meters / METERS_PER_MILE) * price_per_mile
    return f"{total:.2f}"


class GoogleTransitSearch:
    """Поиск поездов и автобусов через Google Directions API (режим transit)."""

    DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"

    def __init__(self, api_key: Optional[str] = None, http_client: Optional[httpx.Client] = None):
        self.api_key = api_key or os.getenv("GOOGLE_MAPS_API_KEY")
        self._http = http_client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)

    def search(self, request: TravelSearchRequest, mode: TravelMode) -> List[Dict[str, Any]]:
        if mode not in GROUND_PRICING:
            raise ValueError(f"GoogleTransitSearch не поддерживает режим {mode.value}")
        if not self.api_key:
            raise ProviderNotConfiguredError("Google Maps API key not configured")

        departure = pytz.UTC.localize(datetime.combine(request.date, dt_time(8, 0)))
        response = self._http.get(self.DIRECTIONS_URL, params={
            "origin": request.origin,
            "destination": request.destination,
            "mode": "transit",
            "transit_mode": "rail" if mode == TravelMode.TRAIN else "bus",
            "departure_time": int(departure.timestamp()),
            "alternatives": "true",
            "key": self.api_key,
        })
        response.raise_for_status()
        payload = response.json()

        status = payload.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            raise RuntimeError(f"Google Directions API returned {status}")

        return [_route_from_google(route, index, mode) for index, route in enumerate(payload.get("routes", []))]


def _route_from_google(route: Dict[str, Any], index: int, mode: TravelMode) -> Dict[str, Any]:
    leg = route["legs"][0]
    transit_steps = [step for step in leg.get("steps", []) if step.get("travel_mode") == "TRANSIT"]
    return {
        "id": f"{mode.value}-{index}",
        "duration": leg["duration"]["text"],
        "durationMinutes": leg["duration"]["value"] / 60,
        "distance": leg["distance"]["text"],
        "departure": (leg.get("departure_time") or {}).get("text", "Flexible"),
        "arrival": (leg.get("arrival_time") or {}).get("text", "Flexible"),
        "transitDetails": [
            {
                "line": step["transit_details"]["line"].get("name"),
                "vehicle": step["transit_details"]["line"].get("vehicle", {}).get("type"),
                "departure": {
                    "stop": step["transit_details"]["departure_stop"]["name"],
                    "time": (step["transit_details"].get("departure_time") or {}).get("text", ""),
                },
                "arrival": {
                    "stop": step["transit_details"]["arrival_stop"]["name"],
                    "time": (step["transit_details"].get("arrival_time") or {}).get("text", ""),
                },
                "numStops": step["transit_details"].get("num_stops"),
            }
            for step in transit_steps
        ],
        "price": {"total": estimate_ground_price(leg["distance"]["value"], mode), "currency": "USD"},
        "type": mode.value,
    }


def default_providers() -> Dict[TravelMode, TravelSearchProvider]:
    transit = GoogleTransitSearch()
    return {
        TravelMode.FLIGHT: AmadeusFlightSearch(),
        TravelMode.TRAIN: transit,
        TravelMode.BUS: transit,
    }


SEARCH_RESULT_KEYS = {
    TravelMode.FLIGHT: "flights",
    TravelMode.TRAIN: "trains",
    TravelMode.BUS: "buses",
}


def search_travel(
    request: TravelSearchRequest,
    providers: Dict[TravelMode, TravelSearchProvider],
) -> Dict[str, Any]:
    """
    Ищет варианты поездки по всем запрошенным видам транспорта.

    Ошибка одного вида транспорта не мешает остальным: вместо списка
    для него возвращается {"error": "..."}.

    Returns:
        {"flights": [...], "trains": [...], "buses": [...]}
    """
    results: Dict[str, Any] = {key: [] for key in SEARCH_RESULT_KEYS.values()}
    for mode in dict.fromkeys(request.modes):
        key = SEARCH_RESULT_KEYS[mode]
        provider = providers.get(mode)
        if provider is None:
            results[key] = {"error": f"No provider configured for {mode.value}"}
            continue
        try:
            results[key] = provider.search(request, mode)
        except (ProviderNotConfiguredError, httpx.HTTPError, RuntimeError, KeyError) as e:
            logger.error(f"Ошибка поиска ({mode.value}) {request.origin} -> {request.destination}: {e}")
            results[key] = {"error": str(e)}
    return results


def create_travel_estimate_agent(model_id: Optional[str] = None) -> Agent:
    return Agent(
        name="travel-cost-estimator",
        model=OpenRouter(id=model_id or get_openrouter_model(), api_key=get_openrouter_api_key()),
        instructions=(
            "You estimate travel costs for college students in long-distance relationships. "
            "Return ONLY a valid JSON array, one object per trip, in the order given."
        ),
        markdown=False,
    )


def build_estimate_prompt(requests: List[TravelEstimateRequest]) -> str:
    lines = []
    for index, req in enumerate(requests, start=1):
        return_info = f"Return date: {req.return_date.isoformat()}" if req.return_date else "One-way trip"
        lines.append(
            f"{index}. {req.mode.value.upper()}: {req.origin} to {req.destination} "
            f"on {req.date.isoformat()}. {return_info}"
        )
    trips = "\n".join(lines)
    return f"""Estimate travel costs for the following trips. Return ONLY a valid JSON array with cost estimates.

For each trip, provide:
- mode: "flight", "train" or "bus"
- estimatedCost: {{ min, max, average, currency }} in USD
- confidence: "high", "medium", or "low" based on route popularity and data availability
- notes: brief explanation if needed

Trips to estimate:
{trips}

Consider:
- Flight costs vary by route popularity, time of year, advance booking
- Train costs are usually more stable
- Bus costs are typically the cheapest
- Return trips are usually cheaper per leg than two one-way tickets"""


def estimate_travel_costs(
    requests: List[TravelEstimateRequest],
    limiter: CooldownLimiter,
    agent: Optional[Any] = None,
) -> List[TravelEstimate]:
    """
    Оценивает стоимость поездок с помощью LLM.

    Не чаще одного вызова за паузу limiter'а. Если модель не ответила (ошибка
    при вызове), слот возвращается.

    Raises:
        ValueError: Если список запросов пуст
        RateLimitedError: Если пауза еще не прошла
        ScheduleParseError: Если ответ модели не JSON
    """
    if not requests:
        raise ValueError("At least one travel request is required")
    remaining = limiter.acquire()
    if remaining:
        raise RateLimitedError(remaining)

    try:
        agent = agent or create_travel_estimate_agent()
        response = agent.run(build_estimate_prompt(requests))
    except Exception:
        limiter.release()
        raise

    payload = extract_json_payload(getattr(response, "content", None) or "")
    if isinstance(payload, dict):
        payload = [payload]

    estimates = []
    for item in payload:
        try:
            estimates.append(TravelEstimate(**item))
        except (TypeError, ValidationError) as e:
            logger.warning(f"Пропущена невалидная оценка стоимости: {item!r} ({e})")
    logger.info(f"Получено оценок стоимости: {len(estimates)} из {len(requests)}")
    return estimates


"""REST API для приложения Bridge The Gap (FastAPI)."""

import logging
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

import pytz
from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from postgrest.exceptions import APIError
from supabase import Client

from bridge_core import database
from bridge_core.availability import compute_mutual_availability
from bridge_core.config import get_cors_origins, get_port, get_travel_estimate_cooldown_seconds
from bridge_core.errors import AvailabilityError
from bridge_core.schedule_parser import ScheduleParseError, create_schedule_parser_agent, parse_schedule_text
from bridge_core.schemas import (
    ConnectionRequest,
    ParseScheduleRequest,
    ProfileUpdate,
    ScheduleEntryInput,
    TravelEstimateBatch,
    TravelPlanInput,
    TravelSearchRequest,
)
from bridge_core.supabase_client import get_supabase_service_client
from bridge_core.travel_tools import (
    CooldownLimiter,
    RateLimitedError,
    create_travel_estimate_agent,
    default_providers,
    estimate_travel_costs,
    search_travel,
)

load_dotenv()

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass
class AuthUser:
    """Пользователь, определенный по bearer-токену."""
    id: str
    email: Optional[str] = None


# ==================== Зависимости ====================

@lru_cache(maxsize=1)
def get_db_client() -> Client:
    """Один service-role клиент Supabase на процесс."""
    return get_supabase_service_client()


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    client: Client = Depends(get_db_client),
) -> AuthUser:
    """
    Проверяет bearer-токен через Supabase Auth.

    Raises:
        HTTPException 401: Если токена нет или он недействителен
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="No token provided")

    try:
        response = client.auth.get_user(credentials.credentials)
    except Exception as e:
        logger.warning(f"Токен отклонен провайдером авторизации: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    user = getattr(response, "user", None)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return AuthUser(id=str(user.id), email=getattr(user, "email", None))


def get_travel_limiter(request: Request) -> CooldownLimiter:
    return request.app.state.travel_limiter


def get_schedule_parser_agent() -> Any:
    return create_schedule_parser_agent()


def get_travel_estimate_agent() -> Any:
    return create_travel_estimate_agent()


@lru_cache(maxsize=1)
def get_travel_providers() -> Dict[Any, Any]:
    return default_providers()


# ==================== Пользователи ====================

users_router = APIRouter(prefix="/api/users", tags=["Users"])


@users_router.get("/profile")
def get_my_profile(user: AuthUser = Depends(get_current_user), client: Client = Depends(get_db_client)):
    profile = database.get_profile(client, user.id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@users_router.post("/profile")
def update_my_profile(
    update: ProfileUpdate,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    return database.upsert_profile(client, user.id, user.email, update)


@users_router.get("/search")
def search_users(
    university: Optional[str] = None,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    return database.search_users(client, user.id, university)


@users_router.get("/by-public-id/{public_id}")
def get_user_by_public_id(
    public_id: str,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    profile = database.get_profile_by_public_id(client, public_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found with that ID")
    return profile


@users_router.get("/{user_id}")
def get_user(user_id: str, user: AuthUser = Depends(get_current_user), client: Client = Depends(get_db_client)):
    profile = database.get_public_profile(client, user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


# ==================== Связи ====================

connections_router = APIRouter(prefix="/api/connections", tags=["Connections"])


@connections_router.get("")
def list_connections(user: AuthUser = Depends(get_current_user), client: Client = Depends(get_db_client)):
    return database.list_connections(client, user.id)


@connections_router.post("/request")
def request_connection(
    body: ConnectionRequest,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    return database.request_connection(client, user.id, body.target_user_id or "")


@connections_router.put("/{connection_id}/accept")
def accept_connection(
    connection_id: str,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    connection = database.accept_connection(client, user.id, connection_id)
    if connection is None:
        raise HTTPException(status_code=404, detail="Connection request not found")
    return connection


@connections_router.delete("/{connection_id}")
def delete_connection(
    connection_id: str,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    database.delete_connection(client, user.id, connection_id)
    return {"success": True}


# ==================== Расписание ====================

schedule_router = APIRouter(prefix="/api/schedule", tags=["Schedule"])


@schedule_router.get("")
def get_my_schedule(user: AuthUser = Depends(get_current_user), client: Client = Depends(get_db_client)):
    return database.list_schedule(client, user.id)


@schedule_router.get("/user/{user_id}")
def get_user_schedule(
    user_id: str,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    return database.list_schedule(client, user_id)


@schedule_router.get("/mutual/{partner_id}")
def get_mutual_availability(
    partner_id: str,
    min_duration: Optional[int] = Query(default=None, description="Минимальная длительность окна, минуты"),
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    """Общие свободные окна текущего пользователя и партнера."""
    my_rows = database.list_schedule_rows(client, user.id)
    partner_rows = database.list_schedule_rows(client, partner_id)
    result = compute_mutual_availability(my_rows, partner_rows, min_duration)
    return result.to_dict()


@schedule_router.post("")
def create_schedule_entry(
    entry: ScheduleEntryInput,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    return database.create_schedule_entry(client, user.id, entry)


@schedule_router.post("/bulk")
def create_schedule_entries(
    entries: List[ScheduleEntryInput],
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    """Сохраняет сразу несколько записей (например, подтвержденный результат /api/ai/parse-schedule)."""
    return database.create_schedule_entries(client, user.id, entries)


@schedule_router.put("/{entry_id}")
def update_schedule_entry(
    entry_id: str,
    entry: ScheduleEntryInput,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    updated = database.update_schedule_entry(client, user.id, entry_id, entry)
    if updated is None:
        raise HTTPException(status_code=404, detail="Schedule entry not found")
    return updated


@schedule_router.delete("/{entry_id}")
def delete_schedule_entry(
    entry_id: str,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    database.delete_schedule_entry(client, user.id, entry_id)
    return {"success": True}


# ==================== Поездки ====================

travel_router = APIRouter(prefix="/api/travel", tags=["Travel"])


@travel_router.post("/search")
def search_travel_options(
    request: TravelSearchRequest,
    user: AuthUser = Depends(get_current_user),
    providers: Dict[Any, Any] = Depends(get_travel_providers),
):
    return search_travel(request, providers)


@travel_router.get("/plans")
def list_travel_plans(user: AuthUser = Depends(get_current_user), client: Client = Depends(get_db_client)):
    return database.list_travel_plans(client, user.id)


@travel_router.post("/plans")
def create_travel_plan(
    plan: TravelPlanInput,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    return database.create_travel_plan(client, user.id, plan)


@travel_router.delete("/plans/{plan_id}")
def delete_travel_plan(
    plan_id: str,
    user: AuthUser = Depends(get_current_user),
    client: Client = Depends(get_db_client),
):
    database.delete_travel_plan(client, user.id, plan_id)
    return {"success": True}


# ==================== AI ====================

ai_router = APIRouter(prefix="/api/ai", tags=["AI"])


@ai_router.post("/parse-schedule")
def parse_schedule(
    body: ParseScheduleRequest,
    user: AuthUser = Depends(get_current_user),
    agent: Any = Depends(get_schedule_parser_agent),
):
    entries = parse_schedule_text(body.text, agent=agent)
    return {"entries": [entry.to_row() for entry in entries]}


@ai_router.post("/estimate-travel-costs")
def estimate_costs(
    body: TravelEstimateBatch,
    user: AuthUser = Depends(get_current_user),
    limiter: CooldownLimiter = Depends(get_travel_limiter),
    agent: Any = Depends(get_travel_estimate_agent),
):
    estimates = estimate_travel_costs(body.requests, limiter, agent=agent)
    return {"estimates": [estimate.model_dump(mode="json", by_alias=True) for estimate in estimates]}


# ==================== Обработчики ошибок ====================

def _availability_error_handler(request: Request, exc: AvailabilityError) -> JSONResponse:
    return JSONResponse(status_code=422, content=exc.to_dict())


def _schedule_parse_error_handler(request: Request, exc: ScheduleParseError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"error": str(exc)})


def _rate_limited_handler(request: Request, exc: RateLimitedError) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": str(exc), "retry_after": exc.seconds_remaining},
        headers={"Retry-After": str(exc.seconds_remaining)},
    )


def _value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


def _storage_error_handler(request: Request, exc: APIError) -> JSONResponse:
    logger.error(f"Ошибка хранилища на {request.method} {request.url.path}: {exc}", exc_info=exc)
    message = getattr(exc, "message", None) or str(exc)
    return JSONResponse(status_code=500, content={"error": message})


def _http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


def create_app(travel_limiter: Optional[CooldownLimiter] = None) -> FastAPI:
    """
    Создает FastAPI приложение со всеми роутерами и обработчиками ошибок.

    Args:
        travel_limiter: Ограничитель частоты AI-оценок (по умолчанию из конфигурации)
    """
    app = FastAPI(title="Bridge The Gap API")
    app.state.travel_limiter = travel_limiter or CooldownLimiter(get_travel_estimate_cooldown_seconds())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in (users_router, connections_router, schedule_router, travel_router, ai_router):
        app.include_router(router)

    app.add_exception_handler(AvailabilityError, _availability_error_handler)
    app.add_exception_handler(ScheduleParseError, _schedule_parse_error_handler)
    app.add_exception_handler(RateLimitedError, _rate_limited_handler)
    app.add_exception_handler(ValueError, _value_error_handler)
    app.add_exception_handler(APIError, _storage_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(pytz.UTC).isoformat()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )
    port = get_port()
    logger.info(f"🚀 Запуск API на http://localhost:{port}")
    uvicorn.run("api_app:app", host="0.0.0.0", port=port, reload=False)

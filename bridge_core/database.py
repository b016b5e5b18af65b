"""Работа с таблицами Supabase: профили, связи, расписания и планы поездок."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
import pytz
from supabase import Client

from .schemas import (
    Connection,
    ConnectionStatus,
    ConnectionView,
    ProfileUpdate,
    PublicProfile,
    ScheduleEntry,
    ScheduleEntryInput,
    TravelPlan,
    TravelPlanInput,
    UserProfile,
)

logger = logging.getLogger(__name__)

PUBLIC_PROFILE_COLUMNS = "id, email, university_name, major, location_city, location_state, bio, public_id"
SEARCH_LIMIT = 50


def _utc_now_iso() -> str:
    return datetime.now(pytz.UTC).isoformat()


def _first(rows: Optional[List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    return rows[0] if rows else None


# ==================== Профили пользователей ====================

def get_profile(client: Client, user_id: str) -> Optional[UserProfile]:
    """
    Получает полный профиль пользователя.

    Args:
        client: Клиент Supabase
        user_id: ID пользователя (UUID из auth)

    Returns:
        UserProfile или None, если профиль еще не создан
    """
    response = client.table("users").select("*").eq("id", user_id).limit(1).execute()
    row = _first(response.data)
    return UserProfile(**row) if row else None


def upsert_profile(client: Client, user_id: str, email: Optional[str], update: ProfileUpdate) -> UserProfile:
    """
    Создает или обновляет профиль текущего пользователя.

    Args:
        client: Клиент Supabase
        user_id: ID пользователя
        email: Email из токена
        update: Изменяемые поля профиля

    Returns:
        Сохраненный профиль
    """
    payload = update.model_dump()
    payload.update({"id": user_id, "email": email, "updated_at": _utc_now_iso()})

    response = client.table("users").upsert(payload).execute()
    row = _first(response.data)
    if row is None:
        raise ValueError("Профиль не сохранен: пустой ответ хранилища")
    logger.info(f"Обновлен профиль пользователя {user_id}")
    return UserProfile(**row)


def get_public_profile(client: Client, user_id: str) -> Optional[PublicProfile]:
    response = client.table("users").select(PUBLIC_PROFILE_COLUMNS).eq("id", user_id).limit(1).execute()
    row = _first(response.data)
    return PublicProfile(**row) if row else None


def get_profile_by_public_id(client: Client, public_id: str) -> Optional[PublicProfile]:
    """
    Ищет пользователя по короткому публичному ID (регистр не важен).

    Returns:
        PublicProfile или None, если такого ID нет
    """
    if not public_id or not public_id.strip():
        raise ValueError("public_id не может быть пустым")

    response = (
        client.table("users")
        .select(PUBLIC_PROFILE_COLUMNS)
        .eq("public_id", public_id.strip().upper())
        .limit(1)
        .execute()
    )
    row = _first(response.data)
    return PublicProfile(**row) if row else None


def search_users(client: Client, current_user_id: str, university: Optional[str] = None) -> List[PublicProfile]:
    """
    Ищет других пользователей, опционально по названию университета.

    Текущий пользователь в выдачу не попадает, не больше 50 записей.
    """
    query = client.table("users").select(PUBLIC_PROFILE_COLUMNS).neq("id", current_user_id)
    if university:
        query = query.ilike("university_name", f"%{university}%")

    response = query.limit(SEARCH_LIMIT).execute()
    return [PublicProfile(**row) for row in response.data or []]


# ==================== Связи между пользователями ====================

def find_connection_between(client: Client, user_id: str, other_user_id: str) -> Optional[Connection]:
    """Находит связь между двумя пользователями в любом направлении."""
    response = (
        client.table("connections")
        .select("*")
        .or_(
            f"and(user1_id.eq.{user_id},user2_id.eq.{other_user_id}),"
            f"and(user1_id.eq.{other_user_id},user2_id.eq.{user_id})"
        )
        .limit(1)
        .execute()
    )
    row = _first(response.data)
    return Connection(**row) if row else None


def list_connections(client: Client, user_id: str) -> List[ConnectionView]:
    """
    Получает все связи пользователя вместе с профилями партнеров.

    Args:
        client: Клиент Supabase
        user_id: ID текущего пользователя

    Returns:
        Список ConnectionView
    """
    response = (
        client.table("connections")
        .select("id, user1_id, user2_id, status, created_at")
        .or_(f"user1_id.eq.{user_id},user2_id.eq.{user_id}")
        .execute()
    )

    views = []
    for row in response.data or []:
        connection = Connection(**row)
        partner = get_public_profile(client, connection.partner_of(user_id))
        views.append(ConnectionView(
            id=connection.id,
            partner=partner,
            status=connection.status,
            created_at=connection.created_at,
        ))
    return views


def request_connection(client: Client, user_id: str, target_user_id: str) -> Connection:
    """
    Создает запрос на связь (статус pending).

    Raises:
        ValueError: Если target_user_id пустой, совпадает с user_id или связь уже существует
    """
    if not target_user_id:
        raise ValueError("target_user_id is required")
    if target_user_id == user_id:
        raise ValueError("Нельзя создать связь с самим собой")
    if find_connection_between(client, user_id, target_user_id):
        raise ValueError("Connection already exists")

    response = client.table("connections").insert({
        "user1_id": user_id,
        "user2_id": target_user_id,
        "status": ConnectionStatus.PENDING.value,
    }).execute()
    connection = Connection(**response.data[0])
    logger.info(f"Создан запрос на связь {connection.id}: {user_id} -> {target_user_id}")
    return connection


def accept_connection(client: Client, user_id: str, connection_id: str) -> Optional[Connection]:
    """
    Принимает запрос на связь. Принять может только тот, кому запрос адресован.

    Returns:
        Обновленная связь или None, если связь не найдена
    """
    response = (
        client.table("connections")
        .update({"status": ConnectionStatus.ACCEPTED.value})
        .eq("id", connection_id)
        .eq("user2_id", user_id)
        .execute()
    )
    row = _first(response.data)
    if row:
        logger.info(f"Связь {connection_id} принята")
    return Connection(**row) if row else None


def delete_connection(client: Client, user_id: str, connection_id: str) -> None:
    """Удаляет связь; удалить может любая из двух сторон."""
    (
        client.table("connections")
        .delete()
        .eq("id", connection_id)
        .or_(f"user1_id.eq.{user_id},user2_id.eq.{user_id}")
        .execute()
    )
    logger.info(f"Связь {connection_id} удалена")


# ==================== Расписания ====================

def list_schedule(client: Client, user_id: str) -> List[ScheduleEntry]:
    """
    Получает расписание пользователя, отсортированное по дню и времени начала.
    """
    response = (
        client.table("schedules")
        .select("*")
        .eq("user_id", user_id)
        .order("day_of_week")
        .order("start_time")
        .execute()
    )
    return [ScheduleEntry(**row) for row in response.data or []]


def list_schedule_rows(client: Client, user_id: str) -> List[Dict[str, Any]]:
    """
    Сырые строки расписания без валидации.

    Нужны для расчета общей доступности: строки проверяет сам движок,
    чтобы ошибка указывала на конкретное поле.
    """
    response = client.table("schedules").select("*").eq("user_id", user_id).execute()
    return list(response.data or [])


def create_schedule_entry(client: Client, user_id: str, entry: ScheduleEntryInput) -> ScheduleEntry:
    row = entry.to_row()
    row["user_id"] = user_id
    response = client.table("schedules").insert(row).execute()
    created = ScheduleEntry(**response.data[0])
    logger.info(f"Добавлена запись расписания {created.id} для пользователя {user_id}")
    return created


def create_schedule_entries(
    client: Client, user_id: str, entries: List[ScheduleEntryInput]
) -> List[ScheduleEntry]:
    """Массовое добавление записей (после AI-разбора текста)."""
    if not entries:
        return []
    rows = [dict(entry.to_row(), user_id=user_id) for entry in entries]
    response = client.table("schedules").insert(rows).execute()
    logger.info(f"Добавлено записей расписания: {len(rows)} (пользователь {user_id})")
    return [ScheduleEntry(**row) for row in response.data or []]


def update_schedule_entry(
    client: Client, user_id: str, entry_id: str, entry: ScheduleEntryInput
) -> Optional[ScheduleEntry]:
    """
    Обновляет запись расписания. Менять можно только свои записи.

    Returns:
        Обновленная запись или None, если запись не найдена у этого пользователя
    """
    response = (
        client.table("schedules")
        .update(entry.to_row())
        .eq("id", entry_id)
        .eq("user_id", user_id)
        .execute()
    )
    row = _first(response.data)
    return ScheduleEntry(**row) if row else None


def delete_schedule_entry(client: Client, user_id: str, entry_id: str) -> None:
    client.table("schedules").delete().eq("id", entry_id).eq("user_id", user_id).execute()
    logger.info(f"Удалена запись расписания {entry_id} (пользователь {user_id})")


# ==================== Планы поездок ====================

def list_travel_plans(client: Client, user_id: str) -> List[TravelPlan]:
    response = (
        client.table("travel_plans")
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return [TravelPlan(**row) for row in response.data or []]


def create_travel_plan(client: Client, user_id: str, plan: TravelPlanInput) -> TravelPlan:
    row = plan.model_dump(mode="json")
    row["user_id"] = user_id
    response = client.table("travel_plans").insert(row).execute()
    created = TravelPlan(**response.data[0])
    logger.info(f"Сохранен план поездки {created.id}: {plan.origin} -> {plan.destination}")
    return created


def delete_travel_plan(client: Client, user_id: str, plan_id: str) -> None:
    client.table("travel_plans").delete().eq("id", plan_id).eq("user_id", user_id).execute()

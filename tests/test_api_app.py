"""Тесты для api_app.py (FastAPI TestClient, хранилище и агенты подменяются)."""

import json
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

from api_app import (
    AuthUser,
    create_app,
    get_current_user,
    get_db_client,
    get_schedule_parser_agent,
    get_travel_estimate_agent,
    get_travel_providers,
)
from bridge_core.schemas import Connection, PublicProfile, ScheduleEntry, TravelMode
from bridge_core.travel_tools import CooldownLimiter

CURRENT_USER = AuthUser(id="user-a", email="a@example.edu")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def db_client():
    return MagicMock()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(db_client, clock):
    """Приложение с авторизованным пользователем и фейковым хранилищем."""
    application = create_app(travel_limiter=CooldownLimiter(120, clock=clock))
    application.dependency_overrides[get_current_user] = lambda: CURRENT_USER
    application.dependency_overrides[get_db_client] = lambda: db_client
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


def make_agent(content):
    agent = MagicMock()
    agent.run = MagicMock(return_value=MagicMock(content=content))
    return agent


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestAuth:
    """Тесты для проверки bearer-токена."""

    @pytest.fixture
    def auth_client(self, db_client):
        application = create_app()
        application.dependency_overrides[get_db_client] = lambda: db_client
        return TestClient(application)

    def test_no_token(self, auth_client):
        """Тест: без токена - 401."""
        response = auth_client.get("/api/schedule")
        assert response.status_code == 401
        assert response.json() == {"error": "No token provided"}

    def test_invalid_token(self, auth_client, db_client):
        """Тест: токен, который провайдер авторизации не принял - 401."""
        db_client.auth.get_user.side_effect = Exception("JWT expired")

        response = auth_client.get("/api/schedule", headers={"Authorization": "Bearer bad"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid token"}

    def test_token_without_user(self, auth_client, db_client):
        db_client.auth.get_user.return_value = MagicMock(user=None)

        response = auth_client.get("/api/schedule", headers={"Authorization": "Bearer empty"})

        assert response.status_code == 401

    def test_valid_token(self, auth_client, db_client):
        """Тест: валидный токен - запрос выполняется от имени пользователя."""
        db_client.auth.get_user.return_value = MagicMock(user=MagicMock(id="user-a", email="a@example.edu"))

        with patch("bridge_core.database.list_schedule", return_value=[]) as list_schedule:
            response = auth_client.get("/api/schedule", headers={"Authorization": "Bearer good"})

        assert response.status_code == 200
        assert list_schedule.call_args[0][1] == "user-a"
        db_client.auth.get_user.assert_called_once_with("good")


class TestMutualAvailability:
    """Тесты для GET /api/schedule/mutual/{partner_id}."""

    ROWS = {
        "user-a": [{"day_of_week": 1, "start_time": "09:00:00", "end_time": "17:00:00", "title": "Work", "type": "work"}],
        "user-b": [
            {"day_of_week": 1, "start_time": "08:00:00", "end_time": "12:00:00", "title": "CS 101", "type": "class"},
            {"day_of_week": 1, "start_time": "14:00:00", "end_time": "18:00:00", "title": "Shift", "type": "work"},
        ],
    }

    def rows_for(self, client, user_id):
        return self.ROWS.get(user_id, [])

    def test_mutual_windows(self, client):
        """Тест: общие окна понедельника из примера."""
        with patch("bridge_core.database.list_schedule_rows", side_effect=self.rows_for):
            response = client.get("/api/schedule/mutual/user-b", params={"min_duration": 30})

        assert response.status_code == 200
        data = response.json()
        monday = [(w["start"], w["end"]) for w in data["mutualFreeWindows"] if w["day"] == 1]
        assert monday == [(0, 480), (1080, 1440)]
        assert data["coverageNote"] == "normal"
        assert len(data["busyUnion"]["1"]) == 3

    def test_partner_without_schedule(self, client):
        with patch("bridge_core.database.list_schedule_rows", side_effect=self.rows_for):
            response = client.get("/api/schedule/mutual/user-z")

        assert response.json()["coverageNote"] == "one-empty"

    def test_negative_min_duration(self, client):
        """Тест: отрицательная длительность - 422 с именем поля."""
        with patch("bridge_core.database.list_schedule_rows", side_effect=self.rows_for):
            response = client.get("/api/schedule/mutual/user-b", params={"min_duration": -5})

        assert response.status_code == 422
        assert response.json()["field"] == "min_duration"

    def test_broken_stored_row(self, client):
        """Тест: битая строка в хранилище - 422 с указанием поля."""
        broken = {"day_of_week": 9, "start_time": "09:00", "end_time": "10:00"}
        with patch("bridge_core.database.list_schedule_rows", return_value=[broken]):
            response = client.get("/api/schedule/mutual/user-b")

        assert response.status_code == 422
        assert response.json()["field"] == "day_of_week"

    def test_non_ascii_digits_in_stored_time(self, client):
        """Тест: время с не-ASCII цифрами - 422 с именем поля, а не 400."""
        broken = {"day_of_week": 1, "start_time": "²:00", "end_time": "10:00"}
        with patch("bridge_core.database.list_schedule_rows", return_value=[broken]):
            response = client.get("/api/schedule/mutual/user-b")

        assert response.status_code == 422
        assert response.json()["field"] == "start_time"


class TestScheduleRoutes:
    """Тесты для CRUD расписания."""

    ENTRY = {"day_of_week": 2, "start_time": "13:00:00", "end_time": "14:15:00", "title": "Lab", "type": "class"}

    def test_create_entry(self, client, db_client):
        created = ScheduleEntry(id="entry-1", user_id="user-a", **self.ENTRY)
        with patch("bridge_core.database.create_schedule_entry", return_value=created) as create:
            response = client.post("/api/schedule", json=self.ENTRY)

        assert response.status_code == 200
        assert response.json()["id"] == "entry-1"
        assert create.call_args[0][:2] == (db_client, "user-a")

    def test_create_entry_invalid_order(self, client):
        """Тест: start_time позже end_time - ошибка валидации запроса."""
        response = client.post("/api/schedule", json=dict(self.ENTRY, start_time="15:00:00"))
        assert response.status_code == 422

    def test_create_entry_invalid_day(self, client):
        response = client.post("/api/schedule", json=dict(self.ENTRY, day_of_week=7))
        assert response.status_code == 422

    def test_bulk_create_entries(self, client, db_client):
        """Тест: несколько записей сохраняются одной вставкой."""
        second = dict(self.ENTRY, day_of_week=4)
        created = [
            ScheduleEntry(id="entry-1", user_id="user-a", **self.ENTRY),
            ScheduleEntry(id="entry-2", user_id="user-a", **second),
        ]
        with patch("bridge_core.database.create_schedule_entries", return_value=created) as create:
            response = client.post("/api/schedule/bulk", json=[self.ENTRY, second])

        assert response.status_code == 200
        assert [e["id"] for e in response.json()] == ["entry-1", "entry-2"]
        args = create.call_args[0]
        assert args[:2] == (db_client, "user-a")
        assert [e.day_of_week for e in args[2]] == [2, 4]

    def test_bulk_create_rejects_invalid_entry(self, client):
        response = client.post("/api/schedule/bulk", json=[self.ENTRY, dict(self.ENTRY, end_time="12:00:00")])
        assert response.status_code == 422

    def test_update_missing_entry(self, client):
        with patch("bridge_core.database.update_schedule_entry", return_value=None):
            response = client.put("/api/schedule/entry-x", json=self.ENTRY)

        assert response.status_code == 404
        assert response.json() == {"error": "Schedule entry not found"}

    def test_delete_entry(self, client):
        with patch("bridge_core.database.delete_schedule_entry") as delete:
            response = client.delete("/api/schedule/entry-1")

        assert response.json() == {"success": True}
        delete.assert_called_once()

    def test_storage_error(self, client):
        """Тест: ошибка Supabase - 500 с сообщением."""
        error = APIError({"message": "relation does not exist", "code": "42P01"})
        with patch("bridge_core.database.list_schedule", side_effect=error):
            response = client.get("/api/schedule")

        assert response.status_code == 500
        assert response.json() == {"error": "relation does not exist"}


class TestUserAndConnectionRoutes:
    def test_profile_not_found(self, client):
        with patch("bridge_core.database.get_profile", return_value=None):
            response = client.get("/api/users/profile")
        assert response.status_code == 404

    def test_by_public_id(self, client):
        profile = PublicProfile(id="user-b", public_id="ZX81QW")
        with patch("bridge_core.database.get_profile_by_public_id", return_value=profile) as lookup:
            response = client.get("/api/users/by-public-id/zx81qw")

        assert response.json()["id"] == "user-b"
        assert lookup.call_args[0][1] == "zx81qw"

    def test_duplicate_connection(self, client):
        """Тест: ValueError из слоя данных превращается в 400."""
        with patch("bridge_core.database.request_connection", side_effect=ValueError("Connection already exists")):
            response = client.post("/api/connections/request", json={"target_user_id": "user-b"})

        assert response.status_code == 400
        assert response.json() == {"error": "Connection already exists"}

    def test_accept_connection(self, client):
        connection = Connection(id="conn-1", user1_id="user-b", user2_id="user-a", status="accepted")
        with patch("bridge_core.database.accept_connection", return_value=connection):
            response = client.put("/api/connections/conn-1/accept")

        assert response.json()["status"] == "accepted"


class TestAIRoutes:
    """Тесты для /api/ai."""

    def test_parse_schedule(self, app, client):
        content = json.dumps([TestScheduleRoutes.ENTRY])
        app.dependency_overrides[get_schedule_parser_agent] = lambda: make_agent(content)

        response = client.post("/api/ai/parse-schedule", json={"text": "Lab on Tuesday 1pm to 2:15pm"})

        assert response.status_code == 200
        assert response.json() == {"entries": [TestScheduleRoutes.ENTRY]}

    def test_parse_schedule_empty_text(self, app, client):
        app.dependency_overrides[get_schedule_parser_agent] = lambda: make_agent("[]")

        response = client.post("/api/ai/parse-schedule", json={"text": ""})

        assert response.status_code == 400
        assert response.json() == {"error": "Schedule text is required"}

    def test_parse_schedule_bad_model_output(self, app, client):
        """Тест: модель ответила не JSON - 502."""
        app.dependency_overrides[get_schedule_parser_agent] = lambda: make_agent("I'm not sure.")

        response = client.post("/api/ai/parse-schedule", json={"text": "something"})

        assert response.status_code == 502

    def test_estimate_rate_limited(self, app, client, clock):
        """Тест: вторая оценка в течение паузы - 429 с Retry-After."""
        estimates = [{"mode": "bus", "estimatedCost": {"min": 20, "max": 45, "average": 30}, "confidence": "high"}]
        app.dependency_overrides[get_travel_estimate_agent] = lambda: make_agent(json.dumps(estimates))
        body = {"requests": [{"origin": "Austin", "destination": "Dallas", "date": "2026-03-06", "mode": "bus"}]}

        first = client.post("/api/ai/estimate-travel-costs", json=body)
        clock.now += 30
        second = client.post("/api/ai/estimate-travel-costs", json=body)

        assert first.status_code == 200
        assert first.json()["estimates"][0]["estimatedCost"]["average"] == 30
        assert second.status_code == 429
        assert second.json()["retry_after"] == 90
        assert second.headers["Retry-After"] == "90"

    def test_estimate_requires_requests(self, app, client):
        app.dependency_overrides[get_travel_estimate_agent] = lambda: make_agent("[]")

        response = client.post("/api/ai/estimate-travel-costs", json={"requests": []})
        assert response.status_code == 422


class TestTravelRoutes:
    def test_search(self, app, client):
        flights = MagicMock()
        flights.search.return_value = [{"id": "1", "type": "flight"}]
        app.dependency_overrides[get_travel_providers] = lambda: {TravelMode.FLIGHT: flights}

        response = client.post("/api/travel/search", json={
            "origin": "AUS", "destination": "BOS", "date": "2026-03-06", "returnDate": "2026-03-09",
        })

        assert response.status_code == 200
        assert response.json() == {"flights": [{"id": "1", "type": "flight"}], "trains": [], "buses": []}
        request = flights.search.call_args[0][0]
        assert request.return_date == date(2026, 3, 9)

    def test_plan_with_return_before_departure(self, client):
        response = client.post("/api/travel/plans", json={
            "origin": "AUS", "destination": "BOS", "travel_date": "2026-03-06", "return_date": "2026-03-01",
        })
        assert response.status_code == 422

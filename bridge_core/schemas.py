"""Pydantic models for data structures."""

from datetime import date as date_type, datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from .availability import ScheduleType, parse_time_of_day
from .errors import InvalidRange


class ConnectionStatus(str, Enum):
    """Статус связи между двумя пользователями."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class TravelMode(str, Enum):
    """Способ передвижения."""
    FLIGHT = "flight"
    TRAIN = "train"
    BUS = "bus"


class EstimateConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PublicProfile(BaseModel):
    """Публичная часть профиля (то, что видят другие пользователи)."""
    id: str
    email: Optional[str] = None
    public_id: Optional[str] = None
    university_name: Optional[str] = None
    major: Optional[str] = None
    location_city: Optional[str] = None
    location_state: Optional[str] = None
    bio: Optional[str] = None


class UserProfile(PublicProfile):
    """Полный профиль пользователя."""
    name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    """Поля профиля, которые пользователь может изменить сам."""
    university_name: Optional[str] = None
    major: Optional[str] = None
    location_city: Optional[str] = None
    location_state: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=1000)


class Connection(BaseModel):
    """Строка таблицы connections."""
    id: str
    user1_id: str
    user2_id: str
    status: ConnectionStatus = ConnectionStatus.PENDING
    created_at: Optional[datetime] = None

    def partner_of(self, user_id: str) -> str:
        return self.user2_id if self.user1_id == user_id else self.user1_id


class ConnectionView(BaseModel):
    """Связь с точки зрения текущего пользователя: партнер + статус."""
    id: str
    partner: Optional[PublicProfile] = None
    status: ConnectionStatus
    created_at: Optional[datetime] = None


class ConnectionRequest(BaseModel):
    target_user_id: Optional[str] = None


class ScheduleEntryInput(BaseModel):
    """
    Запись расписания, пришедшая от пользователя или от AI-парсера.

    Время в формате "HH:MM[:SS]", день недели 0 (воскресенье) - 6 (суббота).
    """
    day_of_week: int = Field(ge=0, le=6, description="0=воскресенье ... 6=суббота")
    start_time: str
    end_time: str
    title: Optional[str] = None
    type: ScheduleType = ScheduleType.OTHER

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str, info: ValidationInfo) -> str:
        try:
            parse_time_of_day(value, info.field_name)
        except InvalidRange as e:
            raise ValueError(e.message)
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "ScheduleEntryInput":
        if parse_time_of_day(self.start_time) >= parse_time_of_day(self.end_time):
            raise ValueError("start_time должен быть раньше end_time")
        return self

    def to_row(self) -> dict:
        return {
            "day_of_week": self.day_of_week,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "title": self.title,
            "type": self.type.value,
        }


class ScheduleEntry(ScheduleEntryInput):
    """Строка таблицы schedules."""
    id: str
    user_id: str
    created_at: Optional[datetime] = None


class ParseScheduleRequest(BaseModel):
    text: str = ""


class TravelPlanInput(BaseModel):
    origin: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    travel_date: date_type
    return_date: Optional[date_type] = None
    preferred_method: Optional[str] = None
    saved_routes: Optional[Any] = None

    @model_validator(mode="after")
    def validate_dates(self) -> "TravelPlanInput":
        if self.return_date and self.return_date < self.travel_date:
            raise ValueError("return_date не может быть раньше travel_date")
        return self


class TravelPlan(TravelPlanInput):
    """Строка таблицы travel_plans."""
    id: str
    user_id: str
    created_at: Optional[datetime] = None


class TravelSearchRequest(BaseModel):
    origin: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    date: date_type
    return_date: Optional[date_type] = Field(default=None, alias="returnDate")
    modes: List[TravelMode] = Field(default_factory=lambda: [TravelMode.FLIGHT])

    model_config = {"populate_by_name": True}


class TravelEstimateRequest(BaseModel):
    origin: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    date: date_type
    return_date: Optional[date_type] = Field(default=None, alias="returnDate")
    mode: TravelMode

    model_config = {"populate_by_name": True}


class EstimatedCost(BaseModel):
    min: float = Field(ge=0)
    max: float = Field(ge=0)
    average: float = Field(ge=0)
    currency: str = "USD"


class TravelEstimate(BaseModel):
    """Оценка стоимости поездки от AI."""
    mode: TravelMode
    estimated_cost: EstimatedCost = Field(alias="estimatedCost")
    confidence: EstimateConfidence = EstimateConfidence.LOW
    notes: Optional[str] = None

    model_config = {"populate_by_name": True}


class TravelEstimateBatch(BaseModel):
    requests: List[TravelEstimateRequest] = Field(min_length=1, max_length=10)

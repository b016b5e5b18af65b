"""Ошибки валидации движка доступности."""

from typing import Optional


class AvailabilityError(ValueError):
    """
    Базовая ошибка валидации расписания.

    Наследуется от ValueError, поэтому обрабатывается так же, как
    остальные ошибки входных данных. Поле ``field`` указывает, какое
    именно поле запроса невалидно (для сообщения 4xx).
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {"error": self.message, "field": self.field}


class InvalidRange(AvailabilityError):
    """Неверные или перевернутые границы интервала, либо битая строка времени."""


class InvalidDay(AvailabilityError):
    """День недели вне диапазона 0-6."""


class InvalidParameter(AvailabilityError):
    """Неверный параметр расчета (например, отрицательная минимальная длительность)."""

"""Разбор расписания, описанного обычным текстом, с помощью LLM (Agno + OpenRouter)."""

import json
import logging
import re
from typing import Any, List, Optional

from agno.agent import Agent
from agno.models.openrouter import OpenRouter
from pydantic import ValidationError

from .availability import interval_from_row
from .config import get_openrouter_api_key, get_openrouter_model
from .schemas import ScheduleEntryInput

logger = logging.getLogger(__name__)

SCHEDULE_PARSER_INSTRUCTIONS = """You are a schedule parser. Convert natural language schedule descriptions into structured JSON format.

CRITICAL RULES - ALL FIELDS ARE REQUIRED:
- day_of_week: MUST be a number 0-6 (0=Sunday, 1=Monday, 2=Tuesday, 3=Wednesday, 4=Thursday, 5=Friday, 6=Saturday)
- start_time: MUST be "HH:MM:SS" format in 24-hour time (e.g., "17:00:00" for 5pm, "09:00:00" for 9am)
- end_time: MUST be "HH:MM:SS" format in 24-hour time
- title: Course name or activity title (required string)
- type: MUST be exactly "class", "work", or "other" (default to "class" for courses)

An activity that runs past midnight MUST be split into two entries: one ending at "24:00:00"
and one starting at "00:00:00" on the next day.

Examples:
Input: "CS 101 on Monday and Wednesday from 9am to 10:30am"
Output: [{"day_of_week": 1, "start_time": "09:00:00", "end_time": "10:30:00", "title": "CS 101", "type": "class"}, {"day_of_week": 3, "start_time": "09:00:00", "end_time": "10:30:00", "title": "CS 101", "type": "class"}]

Input: "barista shift saturday 7am to 1pm"
Output: [{"day_of_week": 6, "start_time": "07:00:00", "end_time": "13:00:00", "title": "Barista shift", "type": "work"}]

Return ONLY a valid JSON array. No markdown, no explanation, no extra text."""

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


class ScheduleParseError(ValueError):
    """Ответ модели не удалось превратить в записи расписания."""


def create_schedule_parser_agent(model_id: Optional[str] = None) -> Agent:
    """
    Создает агента для разбора расписаний.

    Args:
        model_id: ID модели OpenRouter (по умолчанию из OPENROUTER_MODEL)
    """
    return Agent(
        name="schedule-parser",
        model=OpenRouter(id=model_id or get_openrouter_model(), api_key=get_openrouter_api_key()),
        instructions=SCHEDULE_PARSER_INSTRUCTIONS,
        markdown=False,
    )


def extract_json_payload(content: str) -> Any:
    """
    Достает JSON из ответа модели: снимает markdown-ограждения и лишний текст вокруг массива.

    Raises:
        ScheduleParseError: Если в ответе нет валидного JSON
    """
    text = (content or "").strip()
    fenced = _CODE_FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    array_match = _JSON_ARRAY_RE.search(text)
    if array_match:
        text = array_match.group(0)

    if not text.startswith("[") and not text.startswith("{"):
        raise ScheduleParseError(
            "AI response was not in the expected format. Please try rephrasing your schedule description."
        )
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ScheduleParseError(f"AI response is not valid JSON: {e.msg}")


def parse_schedule_text(text: str, agent: Optional[Any] = None) -> List[ScheduleEntryInput]:
    """
    Превращает текстовое описание расписания в записи расписания.

    Каждая запись проходит ту же строгую проверку, что и строки из хранилища:
    неоднозначные значения отклоняются, а не исправляются.

    Args:
        text: Описание расписания ("CS 101 on Monday 9am to 10:30am")
        agent: Агент с методом run(); по умолчанию создается агент OpenRouter

    Returns:
        Список ScheduleEntryInput

    Raises:
        ValueError: Если текст пустой
        ScheduleParseError: Если ответ модели не является массивом записей
        AvailabilityError: Если запись содержит неверный день или время
    """
    if not text or not text.strip():
        raise ValueError("Schedule text is required")

    agent = agent or create_schedule_parser_agent()
    response = agent.run(f"Parse this schedule: {text.strip()}")
    payload = extract_json_payload(getattr(response, "content", None) or "")

    if not isinstance(payload, list):
        raise ScheduleParseError("Expected an array of schedule entries")

    entries: List[ScheduleEntryInput] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ScheduleParseError(f"Entry {index} is not an object")
        interval_from_row(item)
        try:
            entries.append(ScheduleEntryInput(**item))
        except ValidationError as e:
            raise ScheduleParseError(f"Entry {index} is invalid: {e.errors()[0]['msg']}")

    logger.info(f"Из текста разобрано записей расписания: {len(entries)}")
    return entries

"""Скрипт для расчета общих свободных окон двух расписаний."""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from bridge_core.availability import DAY_NAMES, AvailabilityResult, compute_mutual_availability
from bridge_core.errors import AvailabilityError

load_dotenv()


def load_rows_from_file(path: str) -> List[Dict[str, Any]]:
    """Читает JSON-файл со списком строк расписания."""
    with open(path, "r", encoding="utf-8") as f:
        rows = json.load(f)
    if not isinstance(rows, list):
        raise ValueError(f"{path}: ожидался JSON-массив строк расписания")
    return rows


def load_rows_from_supabase(user_id: str) -> List[Dict[str, Any]]:
    """Загружает строки расписания пользователя из Supabase."""
    from bridge_core.database import list_schedule_rows
    from bridge_core.supabase_client import get_supabase_service_client

    return list_schedule_rows(get_supabase_service_client(), user_id)


def print_result(result: AvailabilityResult) -> None:
    print("Общие свободные окна")
    print("=" * 50)

    if result.coverage_note.value != "normal":
        print(f"⚠️ Мало данных: {result.coverage_note.value} (у кого-то расписание пустое)")

    if not result.mutual_free_windows:
        print("\nОбщих свободных окон нет.")
        return

    current_day = None
    for window in result.mutual_free_windows:
        if window.day != current_day:
            current_day = window.day
            print(f"\n{DAY_NAMES[window.day]}:")
        data = window.to_dict()
        print(f"   {data['start_time']}–{data['end_time']} ({window.duration_minutes()} мин)")

    print("\nЛучшие окна:")
    for window in result.best_windows():
        data = window.to_dict()
        print(f"   {data['day_name']} {data['start_time']}–{data['end_time']}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Расчет общей доступности двух расписаний")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--files", nargs=2, metavar=("SCHEDULE_A", "SCHEDULE_B"),
                        help="Два JSON-файла со строками расписания")
    source.add_argument("--users", nargs=2, metavar=("USER_A", "USER_B"),
                        help="Два ID пользователей в Supabase")
    parser.add_argument("--min-duration", type=int, default=None,
                        help="Минимальная длительность окна в минутах (по умолчанию из конфигурации)")
    parser.add_argument("--json", action="store_true", help="Вывести результат в JSON")
    parser.add_argument("--verbose", action="store_true", help="Подробное логирование")

    args = parser.parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if args.verbose else logging.WARNING,
    )

    if args.files:
        rows_a, rows_b = (load_rows_from_file(path) for path in args.files)
    else:
        rows_a, rows_b = (load_rows_from_supabase(user_id) for user_id in args.users)

    try:
        result = compute_mutual_availability(rows_a, rows_b, args.min_duration)
    except AvailabilityError as e:
        print(f"❌ Ошибка в расписании ({e.field}): {e.message}")
        return 2

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    else:
        print_result(result)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\n❌ Прервано пользователем")
        sys.exit(1)

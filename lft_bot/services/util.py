"""
Утилиты для работы с файлами и парсинга env.
"""

import os
import json
from typing import Any, TypedDict
from pathlib import Path


class MatchSettings(TypedDict):
    """Настраиваемые параметры матчмейкинга."""
    wait_min: float
    wait_max: float
    bracket_low_max: float
    bracket_mid_max: float


def atomic_write(file_path: str, data: Any) -> None:
    """
    Атомарная запись в JSON файл через временный файл.

    Args:
        file_path: Путь к целевому файлу
        data: Данные для записи
    """
    tmp_path = file_path + '.tmp'
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, file_path)
    except Exception:
        # Удаляем временный файл в случае ошибки
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def ensure_file_exists(file_path: str, default_content: Any = None) -> None:
    """Создает файл с дефолтным содержимым, если его нет."""
    if not os.path.exists(file_path):
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        atomic_write(file_path, default_content or {})


def parse_int_list(value: str) -> list[int]:
    """
    Парсит строку с числами через запятую в список int.

    Args:
        value: Строка вида "123,456,789"

    Returns:
        Список чисел
    """
    if not value.strip():
        return []
    return [int(x.strip()) for x in value.split(',') if x.strip()]


def env_float(name: str, default: float) -> float:
    """Читает число из переменной окружения, пустое значение = default."""
    value = os.getenv(name, '').strip()
    if not value:
        return default
    return float(value)


def load_match_settings() -> MatchSettings:
    """Собирает параметры матчмейкинга из переменных окружения."""
    wait_min = env_float('PROMOTION_WAIT_MIN', 10)
    wait_max = env_float('PROMOTION_WAIT_MAX', 20)
    if wait_max < wait_min:
        raise ValueError(
            f"PROMOTION_WAIT_MAX ({wait_max}) меньше PROMOTION_WAIT_MIN ({wait_min})"
        )
    return {
        'wait_min': wait_min,
        'wait_max': wait_max,
        'bracket_low_max': env_float('BRACKET_LOW_MAX', 3),
        'bracket_mid_max': env_float('BRACKET_MID_MAX', 8),
    }

"""
Классификация игроков по сеткам скилла и группировка очереди по сеткам.
"""

from typing import Dict, Iterable, List

from ..types import QueueEntry

# Значение stat_number, когда статистику получить не удалось
UNKNOWN_STAT = 1000

DEFAULT_LOW_MAX = 3
DEFAULT_MID_MAX = 8


def convert_stars_to_stat(stars: int) -> int:
    """Переводит звёзды (опыт) в заменяющую оценку скилла."""
    if stars < 100:
        return 2
    if stars < 400:
        return 6
    return 10


def get_bracket(
    stat_number: float,
    stars: int,
    low_max: float = DEFAULT_LOW_MAX,
    mid_max: float = DEFAULT_MID_MAX
) -> int:
    """
    Определяет сетку игрока (1, 2 или 3).

    Если статистика неизвестна (UNKNOWN_STAT), сетка считается только по
    звёздам. Иначе берется смесь 0.7 * stat_number + 0.3 * оценка по звёздам.

    Args:
        stat_number: Оценка скилла
        stars: Звёзды игрока
        low_max: Верхняя граница сетки 1 (включительно)
        mid_max: Верхняя граница сетки 2 (включительно)

    Returns:
        Номер сетки
    """
    substitute = convert_stars_to_stat(stars)
    if stat_number == UNKNOWN_STAT:
        value = substitute
    else:
        value = stat_number * 0.7 + substitute * 0.3

    if value <= low_max:
        return 1
    if value <= mid_max:
        return 2
    return 3


def classify(entry: QueueEntry, low_max: float = DEFAULT_LOW_MAX, mid_max: float = DEFAULT_MID_MAX) -> int:
    """Пересчитывает сетку записи очереди и обновляет кэш в записи."""
    entry['bracket'] = get_bracket(entry['stat_number'], entry['stars'], low_max, mid_max)
    return entry['bracket']


def group_by_bracket(
    entries: Iterable[QueueEntry],
    low_max: float = DEFAULT_LOW_MAX,
    mid_max: float = DEFAULT_MID_MAX
) -> Dict[int, List[QueueEntry]]:
    """
    Группирует очередь по сеткам, сохраняя исходный порядок внутри сетки.

    Сетки всегда пересчитываются заново: кэш в записи не используется.
    """
    groups: Dict[int, List[QueueEntry]] = {}
    for entry in entries:
        bracket = classify(entry, low_max, mid_max)
        groups.setdefault(bracket, []).append(entry)
    return groups

"""
Предпочтения игроков по режимам (2v2, 3v3, 4v4).

Единственное правило по умолчанию: нет записи о предпочтениях - игрок
участвует во всех режимах.
"""

from typing import Dict, List, Mapping, Optional

ALL_MODES = ('2', '3', '4')


def get_modes(preferences: Optional[Mapping[str, List[str]]], user_id: str) -> List[str]:
    """
    Возвращает упорядоченный список режимов игрока.

    Args:
        preferences: Словарь user_id -> режимы (может быть None)
        user_id: ID игрока

    Returns:
        Режимы в порядке ALL_MODES
    """
    if not preferences or user_id not in preferences:
        return list(ALL_MODES)
    chosen = set(preferences[user_id])
    return [mode for mode in ALL_MODES if mode in chosen]


def is_eligible(preferences: Optional[Mapping[str, List[str]]], user_id: str, mode: str) -> bool:
    """Проверяет, согласен ли игрок играть в режиме mode."""
    return mode in get_modes(preferences, user_id)


def toggle_mode(preferences: Dict[str, List[str]], user_id: str, mode: str) -> List[str]:
    """Включает/выключает режим для игрока и возвращает новый список."""
    if mode not in ALL_MODES:
        raise ValueError(f"Неизвестный режим: {mode}")

    modes = get_modes(preferences, user_id)
    if mode in modes:
        modes.remove(mode)
    else:
        modes.append(mode)

    updated = [m for m in ALL_MODES if m in modes]
    preferences[user_id] = updated
    return updated


def format_modes(modes: List[str]) -> str:
    """Форматирует список режимов: ['2', '3'] -> '2v2, 3v3'."""
    if not modes:
        return 'нет режимов'
    return ', '.join(f"{m}v{m}" for m in modes)

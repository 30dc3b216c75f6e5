"""
Финализация команд: удаление игроков из всех очередей, создание темы
команды и перенос участников.
"""

import logging
from typing import Dict, Iterable, List, Tuple

from ..types import QueueEntry, Team
from .preferences import ALL_MODES

logger = logging.getLogger(__name__)


def remove_from_all_queues(queue: Dict[str, List[QueueEntry]], user_ids: Iterable[str]) -> int:
    """
    Удаляет игроков из очередей всех режимов (а не только того, откуда
    собрана команда). Повторный вызов ничего не меняет.

    Args:
        queue: Словарь режим -> очередь, изменяется на месте
        user_ids: ID игроков

    Returns:
        Количество удаленных записей
    """
    ids = set(user_ids)
    removed = 0
    for mode in ALL_MODES:
        entries = queue.get(mode) or []
        kept = [entry for entry in entries if entry['user_id'] not in ids]
        removed += len(entries) - len(kept)
        queue[mode] = kept
    return removed


def entry_key(entry: QueueEntry) -> Tuple[str, str]:
    """Ключ конкретной постановки в очередь: повторный вход дает новый timestamp."""
    return entry['user_id'], entry.get('timestamp', '')


def remove_entries_from_all_queues(queue: Dict[str, List[QueueEntry]],
                                   keys: Iterable[Tuple[str, str]]) -> int:
    """
    Удаляет из всех режимов только указанные постановки (user_id, timestamp).

    Новые записи тех же игроков, сделанные после чтения, остаются в очереди.
    """
    keys = set(keys)
    removed = 0
    for mode in ALL_MODES:
        entries = queue.get(mode) or []
        kept = [entry for entry in entries if entry_key(entry) not in keys]
        removed += len(entries) - len(kept)
        queue[mode] = kept
    return removed


class TeamFinalizer:
    """Создает ресурс команды и переносит в него участников."""

    def __init__(self, platform):
        self.platform = platform

    async def finalize(self, server_id: str, category: str, team: Team) -> Team:
        """
        Запрашивает тему для команды и переносит подключенных участников.

        Ошибка создания темы не отменяет команду: она остается сформированной,
        но без channel.
        """
        label = f"{team['mode']}v{team['mode']} (сетка {team['bracket']})"
        try:
            team['channel'] = await self.platform.create_team_channel(server_id, category, team)
        except Exception as e:
            logger.error(f"Не удалось создать тему для команды {label}: {e}", exc_info=True)
            team['channel'] = None
            return team

        if team['channel'] is None:
            logger.warning(f"Тема для команды {label} не создана")
            return team

        for player in team['players']:
            user_id = player['user_id']
            try:
                result = await self.platform.move_member(team['channel'], user_id)
            except Exception as e:
                logger.error(f"Не удалось перенести игрока {user_id}: {e}")
                continue

            if result == 'moved':
                logger.debug(f"Игрок {user_id} перенесен в {team['channel']['name']}")
            else:
                logger.debug(f"Игрок {user_id} не подключен, перенос пропущен")

        return team

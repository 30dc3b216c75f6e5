"""
Матчмейкинг одного сервера: 4v4 собираются сразу, 3v3 и 2v2 ждут
случайное окно и по возможности повышаются до режима на единицу больше.
"""

import asyncio
import copy
import logging
import random
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from ..types import QueueEntry, ServerQueue, Team
from .brackets import classify, group_by_bracket
from .finalizer import TeamFinalizer, entry_key, remove_from_all_queues
from .preferences import ALL_MODES, is_eligible
from .storage import Storage
from .util import MatchSettings, load_match_settings

logger = logging.getLogger(__name__)

MAX_MODE = '4'


class ConfigurationError(Exception):
    """На сервере не настроена очередь или категория для команд."""


class MatchRound:
    """
    Рабочая копия состояния сервера на время одного прохода матчмейкинга.

    Все изменения очередей во время прохода идут сюда; в хранилище они
    попадают одним пакетным удалением в конце прохода.
    """

    def __init__(self, server_id: str, state: ServerQueue):
        self.server_id = server_id
        self.category = state['category']
        self.queue: Dict[str, List[QueueEntry]] = {
            mode: copy.deepcopy(state['queue'].get(mode) or []) for mode in ALL_MODES
        }
        self.preferences = dict(state.get('preferences') or {})
        # Игроки, уже вышедшие из очереди в этом проходе (команды и выбывшие)
        self.removed: Set[str] = set()
        # Постановки (user_id, timestamp), которые удаляются из хранилища в конце прохода
        self.consumed: Set[Tuple[str, str]] = set()
        # Игроки, удерживаемые кандидатскими группами на время ожидания
        self.pending: Set[str] = set()
        self.teams: List[Team] = []

    def available(self, mode: str) -> List[QueueEntry]:
        """Записи очереди режима, не занятые этим проходом."""
        return [
            entry for entry in self.queue[mode]
            if entry['user_id'] not in self.pending and entry['user_id'] not in self.removed
        ]

    def finalize(self, mode: str, bracket: int, players: List[QueueEntry]) -> Team:
        """Фиксирует команду и убирает ее участников из всех очередей."""
        self._consume(players)

        team: Team = {
            'mode': mode,
            'bracket': bracket,
            'players': players,
            'matched_at': datetime.now().isoformat(),
            'channel': None
        }
        self.teams.append(team)
        return team

    def _consume(self, players: List[QueueEntry]) -> None:
        user_ids = {player['user_id'] for player in players}
        # Записи тех же постановок в других режимах рабочей копии
        self.consumed.update(entry_key(player) for player in players)
        self.consumed.update(
            entry_key(entry)
            for entries in self.queue.values() for entry in entries
            if entry['user_id'] in user_ids
        )
        remove_from_all_queues(self.queue, user_ids)
        self.removed.update(user_ids)
        self.pending.difference_update(user_ids)

    def drop(self, players: List[QueueEntry]) -> None:
        """Окончательно убирает игроков, покинувших сервер, из очередей."""
        self._consume(players)

    def release(self, players: List[QueueEntry]) -> None:
        """Снимает удержание с игроков, которые сами вышли из очереди."""
        self.pending.difference_update(player['user_id'] for player in players)

    def restore(self, mode: str, players: List[QueueEntry]) -> None:
        """Возвращает игроков в очередь на их исходные места (по времени постановки)."""
        user_ids = {player['user_id'] for player in players}
        self.pending.difference_update(user_ids)
        present = {entry['user_id'] for entry in self.queue[mode]}
        self.queue[mode].extend(p for p in players if p['user_id'] not in present)
        self.queue[mode].sort(key=lambda entry: entry['timestamp'])


class Matchmaker:
    """Оркестратор матчмейкинга по всем режимам и сеткам сервера."""

    def __init__(
        self,
        storage: Storage,
        platform,
        settings: Optional[MatchSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None
    ):
        self.storage = storage
        self.platform = platform
        self.settings = settings or load_match_settings()
        self.finalizer = TeamFinalizer(platform)
        self._sleep = sleep
        self._rng = rng or random.Random()

    def _bracket_of(self, entry: QueueEntry) -> int:
        return classify(entry, self.settings['bracket_low_max'], self.settings['bracket_mid_max'])

    async def run(self, server_id: str) -> List[Team]:
        """
        Выполняет один проход матчмейкинга для сервера.

        Raises:
            ConfigurationError: нет документа сервера или не задана категория

        Returns:
            Сформированные команды
        """
        state = self.storage.load_server(server_id)
        if not state:
            logger.warning(f"Очередь сервера {server_id} не найдена, матчмейкинг отменен")
            raise ConfigurationError(f"Очередь сервера {server_id} не найдена")
        if not state.get('category'):
            logger.warning(f"Для сервера {server_id} не задана категория, матчмейкинг отменен")
            raise ConfigurationError(f"Для сервера {server_id} не задана категория")

        match_round = MatchRound(server_id, state)

        self._match_instant(match_round, MAX_MODE)

        jobs = []
        labels = []
        for mode in ('3', '2'):
            brackets = group_by_bracket(
                match_round.available(mode),
                self.settings['bracket_low_max'],
                self.settings['bracket_mid_max']
            )
            for bracket in sorted(brackets):
                jobs.append(self._promote_bracket(match_round, mode, bracket))
                labels.append(f"[MODE {mode}][BRACKET {bracket}]")

        results = await asyncio.gather(*jobs, return_exceptions=True)
        for label, result in zip(labels, results):
            if isinstance(result, Exception):
                logger.error(f"{label} Ошибка обработки сетки: {result}", exc_info=result)

        for team in match_round.teams:
            logger.debug(
                f"Итоговая команда {team['mode']}v{team['mode']} в сетке {team['bracket']}: "
                f"{', '.join(p['user_id'] for p in team['players'])}"
            )

        self.storage.remove_players(server_id, match_round.consumed)

        for team in match_round.teams:
            await self.finalizer.finalize(server_id, match_round.category, team)

        if match_round.teams:
            logger.info(
                f"Сервер {server_id}: сформировано команд {len(match_round.teams)}"
            )
        return match_round.teams

    def _match_instant(self, match_round: MatchRound, mode: str) -> None:
        """Мгновенно собирает команды режима без ожидания, по FIFO внутри сетки."""
        size = int(mode)
        groups = group_by_bracket(
            match_round.available(mode),
            self.settings['bracket_low_max'],
            self.settings['bracket_mid_max']
        )
        for bracket, players in groups.items():
            while len(players) >= size:
                team_players, players = players[:size], players[size:]
                match_round.finalize(mode, bracket, team_players)
                logger.debug(
                    f"[MODE {mode}][BRACKET {bracket}] Собрана команда: "
                    f"{', '.join(p['user_id'] for p in team_players)}"
                )

    def _refresh(self, match_round: MatchRound, mode: str) -> Set[Tuple[str, str]]:
        """
        Перечитывает очередь режима и предпочтения из хранилища.

        Returns:
            Ключи (user_id, timestamp) постановок, которые сейчас лежат в очереди режима
        """
        fresh = self.storage.load_server(match_round.server_id)
        if not fresh:
            match_round.queue[mode] = []
            return set()

        live = fresh['queue'].get(mode) or []
        match_round.queue[mode] = [
            entry for entry in live if entry['user_id'] not in match_round.removed
        ]
        match_round.preferences = dict(fresh.get('preferences') or {})
        return {entry_key(entry) for entry in live}

    async def _check_group(self, match_round: MatchRound, group: List[QueueEntry],
                           live_keys: Set[Tuple[str, str]]) -> Tuple[List[QueueEntry], List[QueueEntry]]:
        """
        Проверяет, что игроки группы все еще в очереди и на сервере.

        Returns:
            (вышедшие из очереди, покинувшие сервер)
        """
        left_queue = []
        left_server = []
        for player in group:
            user_id = player['user_id']
            if entry_key(player) not in live_keys:
                logger.debug(f"Игрок {user_id} больше не в очереди")
                left_queue.append(player)
            elif not await self.platform.is_member(match_round.server_id, user_id):
                logger.debug(f"Игрок {user_id} больше не на сервере")
                left_server.append(player)
        return left_queue, left_server

    async def _promote_bracket(self, match_round: MatchRound, mode: str, bracket: int) -> None:
        """
        Собирает команды режима mode в одной сетке с окном повышения.

        Кандидатская группа изымается из очереди, ждет случайное время, после
        чего либо добирает одного игрока и становится командой режима mode + 1,
        либо фиксируется в исходном размере.
        """
        size = int(mode)
        next_mode = str(size + 1)
        prefix = f"[MODE {mode}][BRACKET {bracket}]"

        while True:
            group = [p for p in match_round.available(mode) if self._bracket_of(p) == bracket]
            if len(group) < size:
                break

            initial = group[:size]
            initial_ids = [p['user_id'] for p in initial]
            match_round.pending.update(initial_ids)
            logger.debug(f"{prefix} Выбрана начальная группа: {', '.join(initial_ids)}")

            wait_time = self._rng.uniform(self.settings['wait_min'], self.settings['wait_max'])
            logger.debug(f"{prefix} Ожидание {wait_time:.1f}с для повышения")
            await self._sleep(wait_time)

            live_keys = self._refresh(match_round, mode)
            candidates = [
                p for p in match_round.available(mode)
                if self._bracket_of(p) == bracket and p['user_id'] not in initial_ids
            ]
            logger.debug(f"{prefix} Найдено кандидатов для повышения: {len(candidates)}")

            if candidates:
                candidate = candidates[0]
                everyone = initial_ids + [candidate['user_id']]
                if all(is_eligible(match_round.preferences, uid, next_mode) for uid in everyone):
                    match_round.finalize(next_mode, bracket, initial + [candidate])
                    logger.debug(
                        f"{prefix} Группа повышена до {next_mode}v{next_mode} "
                        f"с игроком {candidate['user_id']}"
                    )
                    continue
                logger.debug(
                    f"{prefix} Повышение с игроком {candidate['user_id']} невозможно: "
                    f"не все согласны на {next_mode}v{next_mode}"
                )

            left_queue, left_server = await self._check_group(match_round, initial, live_keys)
            if left_queue or left_server:
                gone = left_queue + left_server
                logger.debug(
                    f"{prefix} Игроки {', '.join(p['user_id'] for p in gone)} недоступны, группа распущена"
                )
                # Вышедшие сами уже отсутствуют в хранилище, их новые записи не трогаем
                match_round.release(left_queue)
                match_round.drop(left_server)
                match_round.restore(mode, [p for p in initial if p not in gone])
                break

            match_round.finalize(mode, bracket, initial)
            logger.debug(f"{prefix} Команда зафиксирована: {', '.join(initial_ids)}")

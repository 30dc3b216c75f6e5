"""
Запуск матчмейкинга: по событиям (вход в очередь, команда админа) и
периодическим обходом серверов с непустой очередью.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..types import Team
from .matcher import ConfigurationError, Matchmaker

logger = logging.getLogger(__name__)


class MatchmakingRunner:
    """
    Не более одного прохода матчмейкинга на сервер одновременно.

    Триггер, пришедший во время прохода, не запускает второй проход, а
    помечает сервер для одного повторного прохода после текущего.
    """

    def __init__(self, matchmaker: Matchmaker, interval: float = 30,
                 on_teams: Optional[Callable[[str, List[Team]], None]] = None,
                 on_sweep: Optional[Callable[[], Awaitable[Any]]] = None):
        self.matchmaker = matchmaker
        self.interval = interval
        self.on_teams = on_teams
        # Дополнительная работа на каждом обходе (удаление старых тем)
        self.on_sweep = on_sweep
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._rerun: Set[str] = set()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def is_running(self, server_id: str) -> bool:
        """Идет ли сейчас проход для сервера."""
        return server_id in self._in_flight

    def trigger(self, server_id: str) -> bool:
        """
        Запрашивает проход матчмейкинга для сервера.

        Returns:
            True, если проход запущен; False, если он уже идет и помечен на повтор
        """
        if server_id in self._in_flight:
            self._rerun.add(server_id)
            logger.debug(f"Матчмейкинг сервера {server_id} уже идет, повтор запланирован")
            return False

        task = asyncio.create_task(self._run_server(server_id))
        self._in_flight[server_id] = task
        return True

    async def _run_server(self, server_id: str) -> None:
        try:
            while True:
                self._rerun.discard(server_id)
                try:
                    teams = await self.matchmaker.run(server_id)
                    if teams and self.on_teams:
                        self.on_teams(server_id, teams)
                except ConfigurationError as e:
                    logger.warning(f"Матчмейкинг сервера {server_id} пропущен: {e}")
                except Exception as e:
                    logger.error(f"Ошибка матчмейкинга сервера {server_id}: {e}", exc_info=True)

                if server_id not in self._rerun:
                    break
        finally:
            self._in_flight.pop(server_id, None)
            self._rerun.discard(server_id)

    async def wait_idle(self) -> None:
        """Дожидается завершения всех текущих проходов."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    def start(self):
        """Запускает периодический обход серверов."""
        if self._running:
            logger.warning("Планировщик матчмейкинга уже запущен")
            return
        if not self.interval:
            logger.info("Периодический матчмейкинг отключен (MATCH_SWEEP_INTERVAL=0)")
            return

        self._running = True
        self._task = asyncio.create_task(self._scheduler_loop())
        logger.info(f"Периодический матчмейкинг запущен (каждые {self.interval}с)")

    def stop(self):
        """Останавливает периодический обход."""
        if not self._running:
            return

        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()

        logger.info("Периодический матчмейкинг остановлен")

    async def _scheduler_loop(self):
        """Основной цикл планировщика."""
        try:
            while self._running:
                await asyncio.sleep(self.interval)
                if not self._running:
                    break

                for server_id in self.matchmaker.storage.servers_with_queue():
                    self.trigger(server_id)

                if self.on_sweep:
                    try:
                        await self.on_sweep()
                    except Exception as e:
                        logger.error(f"Ошибка при обходе: {e}", exc_info=True)

        except asyncio.CancelledError:
            logger.info("Планировщик матчмейкинга был отменен")
        except Exception as e:
            logger.error(f"Ошибка в планировщике матчмейкинга: {e}", exc_info=True)

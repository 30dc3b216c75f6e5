"""
JSON-хранилище очередей серверов с атомарной записью.
"""

import json
import os
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from threading import RLock

from ..types import ChannelRef, Store, ServerQueue, QueueEntry, TeamTopic, UsedStat
from .finalizer import remove_entries_from_all_queues
from .preferences import ALL_MODES, get_modes
from .util import atomic_write, ensure_file_exists


def default_server(server_name: str = '') -> ServerQueue:
    """Пустой документ сервера."""
    return {
        'server_name': server_name,
        'category': None,
        'panel_chat_id': None,
        'preferences': {},
        'nicknames': {},
        'used_stats': {},
        'team_topics': [],
        'queue': {mode: [] for mode in ALL_MODES},
    }


class Storage:
    """Класс для работы с JSON-хранилищем очередей."""

    def __init__(self, file_path: Optional[str] = None):
        self.file_path = file_path or os.getenv('DATA_FILE', 'data.json')
        self._lock = RLock()
        self._ensure_initialized()

    def _ensure_initialized(self) -> None:
        """Инициализирует файл хранилища, если он не существует."""
        default_store: Store = {'servers': {}}
        ensure_file_exists(self.file_path, default_store)

    def load(self) -> Store:
        """Загружает данные из файла."""
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                store = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            # Если файл поврежден или отсутствует - возвращаем пустой store
            self._ensure_initialized()
            return {'servers': {}}
        store.setdefault('servers', {})
        return store

    def save(self, store: Store) -> None:
        """Сохраняет данные в файл атомарно."""
        with self._lock:
            atomic_write(self.file_path, store)

    def load_server(self, server_id: str) -> Optional[ServerQueue]:
        """Возвращает документ сервера или None."""
        server = self.load()['servers'].get(server_id)
        if server is None:
            return None
        server.setdefault('queue', {})
        for mode in ALL_MODES:
            server['queue'].setdefault(mode, [])
        server.setdefault('preferences', {})
        server.setdefault('nicknames', {})
        server.setdefault('used_stats', {})
        server.setdefault('team_topics', [])
        server.setdefault('category', None)
        return server

    def ensure_server(self, server_id: str, server_name: str = '') -> ServerQueue:
        """Создает документ сервера, если его нет."""
        with self._lock:
            store = self.load()
            if server_id not in store['servers']:
                store['servers'][server_id] = default_server(server_name)
                self.save(store)
        return self.load_server(server_id)

    def set_category(self, server_id: str, category: str, server_name: str = '') -> None:
        """Устанавливает форум, в котором создаются темы команд."""
        with self._lock:
            store = self.load()
            server = store['servers'].setdefault(server_id, default_server(server_name))
            server['category'] = category
            self.save(store)

    def set_panel_chat(self, server_id: str, chat_id: str) -> None:
        """Запоминает чат, где размещена панель очереди."""
        with self._lock:
            store = self.load()
            server = store['servers'].setdefault(server_id, default_server())
            server['panel_chat_id'] = chat_id
            self.save(store)

    def get_preferences(self, server_id: str, user_id: str) -> List[str]:
        """Возвращает режимы игрока (по умолчанию - все)."""
        server = self.load_server(server_id)
        return get_modes(server['preferences'] if server else None, user_id)

    def set_preferences(self, server_id: str, user_id: str, modes: List[str]) -> None:
        """Сохраняет режимы игрока."""
        with self._lock:
            store = self.load()
            server = store['servers'].setdefault(server_id, default_server())
            server.setdefault('preferences', {})[user_id] = [m for m in ALL_MODES if m in modes]
            self.save(store)

    def set_nickname(self, server_id: str, user_id: str, nickname: str) -> None:
        """Сохраняет ник игрока вида "[312⭐] Steve"."""
        with self._lock:
            store = self.load()
            server = store['servers'].setdefault(server_id, default_server())
            server.setdefault('nicknames', {})[user_id] = nickname
            self.save(store)

    def get_used_stat(self, server_id: str, uuid: str) -> Optional[UsedStat]:
        """Возвращает закэшированную статистику по UUID."""
        server = self.load_server(server_id)
        if not server:
            return None
        return server['used_stats'].get(uuid)

    def add_used_stat(self, server_id: str, uuid: str, stat_number: float, stars: int) -> None:
        """Кэширует статистику игрока по UUID."""
        with self._lock:
            store = self.load()
            server = store['servers'].setdefault(server_id, default_server())
            server.setdefault('used_stats', {})[uuid] = {
                'stat_number': stat_number,
                'stars': stars
            }
            self.save(store)

    def queued_modes(self, server_id: str, user_id: str) -> List[str]:
        """Режимы, в очередях которых сейчас стоит игрок."""
        server = self.load_server(server_id)
        if not server:
            return []
        return [
            mode for mode in ALL_MODES
            if any(entry['user_id'] == user_id for entry in server['queue'][mode])
        ]

    def enqueue(self, server_id: str, user_id: str, stat_number: float, stars: int,
                modes: Iterable[str]) -> List[str]:
        """
        Ставит игрока в очереди указанных режимов.

        Returns:
            Режимы, в которые игрок был добавлен (без повторов)
        """
        added = []
        with self._lock:
            store = self.load()
            server = store['servers'].setdefault(server_id, default_server())
            timestamp = datetime.now().isoformat()
            for mode in modes:
                entries = server['queue'].setdefault(mode, [])
                if any(entry['user_id'] == user_id for entry in entries):
                    continue
                entry: QueueEntry = {
                    'user_id': user_id,
                    'stat_number': stat_number,
                    'stars': stars,
                    'timestamp': timestamp
                }
                entries.append(entry)
                added.append(mode)
            if added:
                self.save(store)
        return added

    def remove_from_queues(self, server_id: str, user_id: str,
                           modes: Optional[Iterable[str]] = None) -> List[str]:
        """
        Удаляет игрока из очередей (по умолчанию - из всех).

        Returns:
            Режимы, из которых игрок был удален
        """
        removed = []
        with self._lock:
            store = self.load()
            server = store['servers'].get(server_id)
            if not server:
                return []
            for mode in (modes or ALL_MODES):
                entries = server['queue'].get(mode) or []
                kept = [entry for entry in entries if entry['user_id'] != user_id]
                if len(kept) != len(entries):
                    server['queue'][mode] = kept
                    removed.append(mode)
            if removed:
                self.save(store)
        return removed

    def remove_players(self, server_id: str, keys: Iterable[Tuple[str, str]]) -> int:
        """
        Пакетно удаляет из всех очередей сервера постановки (user_id, timestamp).

        Меняется только поле queue свежего документа, поэтому параллельно
        записанные предпочтения и повторные входы тех же игроков не затираются.
        """
        keys = set(keys)
        if not keys:
            return 0
        with self._lock:
            store = self.load()
            server = store['servers'].get(server_id)
            if not server:
                return 0
            removed = remove_entries_from_all_queues(server.setdefault('queue', {}), keys)
            if removed:
                self.save(store)
        return removed

    def queue_sizes(self, server_id: str) -> Dict[str, int]:
        """Размеры очередей по режимам."""
        server = self.load_server(server_id)
        if not server:
            return {mode: 0 for mode in ALL_MODES}
        return {mode: len(server['queue'][mode]) for mode in ALL_MODES}

    def servers_with_queue(self) -> List[str]:
        """ID серверов, у которых есть хотя бы один игрок в очереди."""
        store = self.load()
        return [
            server_id for server_id, server in store['servers'].items()
            if any(server.get('queue', {}).get(mode) for mode in ALL_MODES)
        ]

    def add_team_topic(self, server_id: str, channel: ChannelRef) -> None:
        """Запоминает созданную тему команды."""
        with self._lock:
            store = self.load()
            server = store['servers'].setdefault(server_id, default_server())
            topic: TeamTopic = {**channel, 'created_at': datetime.now().isoformat()}
            server.setdefault('team_topics', []).append(topic)
            self.save(store)

    def pop_expired_topics(self, older_than: datetime) -> List[TeamTopic]:
        """Забирает из хранилища темы команд, созданные раньше older_than."""
        expired = []
        with self._lock:
            store = self.load()
            for server in store['servers'].values():
                topics = server.get('team_topics') or []
                kept = []
                for topic in topics:
                    if datetime.fromisoformat(topic['created_at']) < older_than:
                        expired.append(topic)
                    else:
                        kept.append(topic)
                server['team_topics'] = kept
            if expired:
                self.save(store)
        return expired

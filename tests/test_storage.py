"""
Тесты JSON-хранилища очередей.
"""

from lft_bot.services.finalizer import entry_key
from lft_bot.services.storage import Storage

SERVER = 's1'


def entry_keys(storage, user_ids):
    queue = storage.load_server(SERVER)['queue']
    return {entry_key(e) for entries in queue.values() for e in entries if e['user_id'] in user_ids}


class TestQueue:
    """Тесты операций с очередью."""

    def test_enqueue_skips_duplicates(self, storage):
        """Повторная постановка в очередь ничего не добавляет."""
        assert storage.enqueue(SERVER, 'u1', 2.0, 50, ['2', '3']) == ['2', '3']
        assert storage.enqueue(SERVER, 'u1', 2.0, 50, ['2', '3', '4']) == ['4']
        assert storage.queue_sizes(SERVER) == {'2': 1, '3': 1, '4': 1}

    def test_remove_from_selected_modes(self, storage):
        """Удаление только из указанных режимов."""
        storage.enqueue(SERVER, 'u1', 2.0, 50, ['2', '3', '4'])

        assert storage.remove_from_queues(SERVER, 'u1', ['3']) == ['3']
        assert storage.queued_modes(SERVER, 'u1') == ['2', '4']
        assert storage.remove_from_queues(SERVER, 'u1') == ['2', '4']
        assert storage.remove_from_queues(SERVER, 'u1') == []

    def test_remove_players_is_idempotent(self, storage):
        """Пакетное удаление можно повторять."""
        storage.enqueue(SERVER, 'u1', 2.0, 50, ['2', '3'])
        storage.enqueue(SERVER, 'u2', 2.0, 50, ['2'])
        keys = entry_keys(storage, ['u1', 'u2'])

        assert storage.remove_players(SERVER, keys) == 3
        assert storage.remove_players(SERVER, keys) == 0
        assert storage.queue_sizes(SERVER) == {'2': 0, '3': 0, '4': 0}

    def test_remove_players_keeps_new_entry(self, storage):
        """Повторный вход игрока после чтения очереди не удаляется."""
        storage.enqueue(SERVER, 'u1', 2.0, 50, ['2'])
        old_keys = entry_keys(storage, ['u1'])
        storage.remove_from_queues(SERVER, 'u1')
        storage.enqueue(SERVER, 'u1', 2.0, 50, ['2'])

        assert storage.remove_players(SERVER, old_keys) == 0
        assert storage.queued_modes(SERVER, 'u1') == ['2']

    def test_remove_players_keeps_other_fields(self, storage):
        """Пакетное удаление не трогает предпочтения и ники."""
        storage.set_preferences(SERVER, 'u1', ['2'])
        storage.set_nickname(SERVER, 'u1', '[10⭐] Steve')
        storage.enqueue(SERVER, 'u1', 2.0, 50, ['2'])

        storage.remove_players(SERVER, entry_keys(storage, ['u1']))

        server = storage.load_server(SERVER)
        assert server['preferences'] == {'u1': ['2']}
        assert server['nicknames'] == {'u1': '[10⭐] Steve'}

    def test_servers_with_queue(self, storage):
        """Список серверов с непустой очередью."""
        storage.ensure_server('empty')
        storage.enqueue(SERVER, 'u1', 2.0, 50, ['4'])

        assert storage.servers_with_queue() == [SERVER]


class TestServerDocument:
    """Тесты документа сервера."""

    def test_category_and_panel(self, storage):
        """Категория и чат панели сохраняются."""
        storage.ensure_server(SERVER, 'Bedwars RU')
        storage.set_category(SERVER, '-100777')
        storage.set_panel_chat(SERVER, '-100500')

        server = storage.load_server(SERVER)
        assert server['server_name'] == 'Bedwars RU'
        assert server['category'] == '-100777'
        assert server['panel_chat_id'] == '-100500'

    def test_unknown_server(self, storage):
        """Неизвестный сервер."""
        assert storage.load_server('nope') is None
        assert storage.queued_modes('nope', 'u1') == []
        assert storage.get_preferences('nope', 'u1') == ['2', '3', '4']

    def test_used_stats_cache(self, storage):
        """Статистика кэшируется по UUID."""
        storage.add_used_stat(SERVER, 'uuid-1', 3.5, 120)

        assert storage.get_used_stat(SERVER, 'uuid-1') == {'stat_number': 3.5, 'stars': 120}
        assert storage.get_used_stat(SERVER, 'uuid-2') is None

    def test_corrupted_file(self, tmp_path):
        """Поврежденный файл читается как пустое хранилище."""
        path = tmp_path / 'data.json'
        path.write_text('{', encoding='utf-8')

        assert Storage(str(path)).load() == {'servers': {}}

"""
Общие фикстуры тестов матчмейкинга.
"""

import asyncio

import pytest

from lft_bot.services.storage import Storage

SERVER_ID = '-100500'
CATEGORY = '-100777'


class FakePlatform:
    """Платформа без Telegram: запоминает созданные темы и переносы."""

    def __init__(self):
        self.gone = set()
        self.broken = set()
        self.fail_channels = False
        self.skip_moves = set()
        self.channels = []
        self.moves = []

    async def is_member(self, chat_id, user_id):
        if user_id in self.broken:
            raise RuntimeError(f"get_chat_member failed for {user_id}")
        return user_id not in self.gone

    async def create_team_channel(self, server_id, category, team):
        if self.fail_channels:
            raise RuntimeError("forum is closed")
        channel = {
            'chat_id': category,
            'thread_id': len(self.channels) + 1,
            'name': f"Team-{len(self.channels) + 1}",
            'link': f"https://t.me/c/777/{len(self.channels) + 1}"
        }
        self.channels.append(channel)
        return channel

    async def move_member(self, channel, user_id):
        if user_id in self.skip_moves:
            return 'skipped'
        self.moves.append((channel['thread_id'], user_id))
        return 'moved'


class ScriptedSleep:
    """Подменяет asyncio.sleep: перед первым ожиданием выполняет действие."""

    def __init__(self, action=None):
        self.action = action
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        if self.action is not None:
            action, self.action = self.action, None
            action()
        await asyncio.sleep(0)


class StagedSleep:
    """Подменяет asyncio.sleep: уступает цикл, затем выполняет действие своего вызова."""

    def __init__(self, *actions):
        self.actions = actions
        self.calls = []

    async def __call__(self, seconds):
        index = len(self.calls)
        self.calls.append(seconds)
        await asyncio.sleep(0)
        if index < len(self.actions) and self.actions[index] is not None:
            self.actions[index]()


@pytest.fixture
def storage(tmp_path):
    return Storage(str(tmp_path / 'data.json'))


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def settings():
    return {'wait_min': 0, 'wait_max': 0, 'bracket_low_max': 3, 'bracket_mid_max': 8}


@pytest.fixture
def scripted_sleep():
    return ScriptedSleep


@pytest.fixture
def staged_sleep():
    return StagedSleep


@pytest.fixture
def server(storage):
    storage.ensure_server(SERVER_ID, 'Bedwars RU')
    storage.set_category(SERVER_ID, CATEGORY)
    return SERVER_ID

"""
Unit-тесты для модуля matcher.
"""

import random

import pytest

from lft_bot.services.matcher import ConfigurationError, Matchmaker

# stat 2, звёзд 50 -> сетка 1; stat 20, звёзд 500 -> сетка 3
LOW = (2.0, 50)
HIGH = (20.0, 500)


def join(storage, server_id, user_id, modes=('2', '3', '4'), stat=LOW):
    storage.set_preferences(server_id, user_id, list(modes))
    storage.enqueue(server_id, user_id, stat[0], stat[1], modes)


def ids(team):
    return [p['user_id'] for p in team['players']]


def make_matchmaker(storage, platform, settings, sleep=None):
    if sleep is None:
        async def sleep(seconds):
            return None
    return Matchmaker(storage, platform, settings=settings, sleep=sleep, rng=random.Random(1))


class TestInstantMatching:
    """Тесты мгновенного сбора 4v4."""

    @pytest.mark.asyncio
    async def test_four_players_make_instant_team(self, storage, platform, settings, server):
        """Четыре игрока одной сетки сразу становятся командой 4v4."""
        for uid in ('a', 'b', 'c', 'd'):
            join(storage, server, uid)

        teams = await make_matchmaker(storage, platform, settings).run(server)

        assert len(teams) == 1
        assert teams[0]['mode'] == '4'
        assert teams[0]['bracket'] == 1
        assert ids(teams[0]) == ['a', 'b', 'c', 'd']
        assert storage.queue_sizes(server) == {'2': 0, '3': 0, '4': 0}

    @pytest.mark.asyncio
    async def test_fifo_inside_bracket(self, storage, platform, settings, server):
        """Команда собирается из самых ранних игроков сетки."""
        for uid in ('a', 'b', 'c', 'd', 'e'):
            join(storage, server, uid, modes=('4',))

        teams = await make_matchmaker(storage, platform, settings).run(server)

        assert [ids(t) for t in teams] == [['a', 'b', 'c', 'd']]
        assert [e['user_id'] for e in storage.load_server(server)['queue']['4']] == ['e']

    @pytest.mark.asyncio
    async def test_brackets_are_not_mixed(self, storage, platform, settings, server):
        """Игроки разных сеток не попадают в одну команду."""
        for uid in ('a', 'b'):
            join(storage, server, uid, modes=('4',), stat=LOW)
        for uid in ('c', 'd'):
            join(storage, server, uid, modes=('4',), stat=HIGH)

        teams = await make_matchmaker(storage, platform, settings).run(server)

        assert teams == []
        assert storage.queue_sizes(server)['4'] == 4

    @pytest.mark.asyncio
    async def test_team_players_removed_from_every_mode(self, storage, platform, settings, server):
        """Игроки команды убираются из очередей всех режимов."""
        for uid in ('a', 'b', 'c', 'd', 'e', 'f'):
            join(storage, server, uid)

        teams = await make_matchmaker(storage, platform, settings).run(server)

        assert [t['mode'] for t in teams] == ['4', '2']
        assert ids(teams[0]) == ['a', 'b', 'c', 'd']
        assert ids(teams[1]) == ['e', 'f']
        assert storage.queue_sizes(server) == {'2': 0, '3': 0, '4': 0}


class TestPromotion:
    """Тесты окна повышения для 2v2 и 3v3."""

    @pytest.mark.asyncio
    async def test_three_players_make_single_three_team(self, storage, platform, settings, server):
        """Игрок не попадает одновременно в группу 3v3 и 2v2."""
        for uid in ('a', 'b', 'c'):
            join(storage, server, uid)

        teams = await make_matchmaker(storage, platform, settings).run(server)

        assert len(teams) == 1
        assert teams[0]['mode'] == '3'
        assert sorted(ids(teams[0])) == ['a', 'b', 'c']

    @pytest.mark.asyncio
    async def test_two_team_promoted_to_three(self, storage, platform, settings, server, scripted_sleep):
        """Пришедший во время ожидания игрок превращает 2v2 в 3v3."""
        join(storage, server, 'a', modes=('2', '3'))
        join(storage, server, 'b', modes=('2', '3'))
        sleep = scripted_sleep(lambda: join(storage, server, 'c', modes=('2', '3')))

        teams = await make_matchmaker(storage, platform, settings, sleep).run(server)

        assert len(teams) == 1
        assert teams[0]['mode'] == '3'
        assert ids(teams[0]) == ['a', 'b', 'c']
        assert len(sleep.calls) == 1
        assert storage.queue_sizes(server) == {'2': 0, '3': 0, '4': 0}

    @pytest.mark.asyncio
    async def test_three_team_promoted_to_four(self, storage, platform, settings, server, scripted_sleep):
        """Повышенная команда состоит ровно из size + 1 игроков."""
        for uid in ('a', 'b', 'c'):
            join(storage, server, uid)
        sleep = scripted_sleep(lambda: join(storage, server, 'd'))

        teams = await make_matchmaker(storage, platform, settings, sleep).run(server)

        assert len(teams) == 1
        assert teams[0]['mode'] == '4'
        assert len(teams[0]['players']) == 4
        assert ids(teams[0]) == ['a', 'b', 'c', 'd']

    @pytest.mark.asyncio
    async def test_promotion_requires_everyone_eligible(self, storage, platform, settings, server, scripted_sleep):
        """Без согласия всех игроков на 3v3 команда остается 2v2."""
        join(storage, server, 'a', modes=('2',))
        join(storage, server, 'b', modes=('2',))
        sleep = scripted_sleep(lambda: join(storage, server, 'c', modes=('2', '3')))

        teams = await make_matchmaker(storage, platform, settings, sleep).run(server)

        assert len(teams) == 1
        assert teams[0]['mode'] == '2'
        assert ids(teams[0]) == ['a', 'b']
        queue = storage.load_server(server)['queue']
        assert [e['user_id'] for e in queue['2']] == ['c']
        assert [e['user_id'] for e in queue['3']] == ['c']

    @pytest.mark.asyncio
    async def test_wait_uses_configured_window(self, storage, platform, server, scripted_sleep):
        """Время ожидания берется из окна wait_min..wait_max."""
        settings = {'wait_min': 10, 'wait_max': 20, 'bracket_low_max': 3, 'bracket_mid_max': 8}
        join(storage, server, 'a', modes=('2',))
        join(storage, server, 'b', modes=('2',))
        sleep = scripted_sleep()

        await make_matchmaker(storage, platform, settings, sleep).run(server)

        assert len(sleep.calls) == 1
        assert 10 <= sleep.calls[0] <= 20


class TestAbandonment:
    """Тесты роспуска группы при уходе игрока."""

    @pytest.mark.asyncio
    async def test_player_left_queue_during_wait(self, storage, platform, settings, server, scripted_sleep):
        """Вышедший из очереди игрок распускает группу, остальные остаются в очереди."""
        join(storage, server, 'a', modes=('2',))
        join(storage, server, 'b', modes=('2',))
        before = storage.load_server(server)['queue']['2'][0]
        sleep = scripted_sleep(lambda: storage.remove_from_queues(server, 'b'))

        teams = await make_matchmaker(storage, platform, settings, sleep).run(server)

        assert teams == []
        queue = storage.load_server(server)['queue']['2']
        assert [e['user_id'] for e in queue] == ['a']
        assert queue[0]['timestamp'] == before['timestamp']

    @pytest.mark.asyncio
    async def test_player_left_server_removed_everywhere(self, storage, platform, settings, server):
        """Покинувший сервер игрок убирается из очередей всех режимов."""
        join(storage, server, 'a', modes=('2',))
        join(storage, server, 'b')
        platform.gone.add('b')

        teams = await make_matchmaker(storage, platform, settings).run(server)

        assert teams == []
        assert storage.queued_modes(server, 'b') == []
        assert storage.queued_modes(server, 'a') == ['2']

    @pytest.mark.asyncio
    async def test_concurrent_join_is_preserved(self, storage, platform, settings, server, scripted_sleep):
        """Игрок, вставший в очередь другой сетки во время прохода, не теряется."""
        join(storage, server, 'a', modes=('2',))
        join(storage, server, 'b', modes=('2',))
        sleep = scripted_sleep(lambda: join(storage, server, 'z', modes=('4',), stat=HIGH))

        teams = await make_matchmaker(storage, platform, settings, sleep).run(server)

        assert [ids(t) for t in teams] == [['a', 'b']]
        assert storage.queued_modes(server, 'z') == ['4']
        assert storage.get_preferences(server, 'z') == ['4']


class TestConfigurationAndChannels:
    """Тесты настройки сервера и создания тем команд."""

    @pytest.mark.asyncio
    async def test_unknown_server(self, storage, platform, settings):
        """Проход для неизвестного сервера завершается ConfigurationError."""
        with pytest.raises(ConfigurationError):
            await make_matchmaker(storage, platform, settings).run('nope')

    @pytest.mark.asyncio
    async def test_missing_category_changes_nothing(self, storage, platform, settings):
        """Без категории очередь не изменяется."""
        storage.ensure_server('s1')
        for uid in ('a', 'b', 'c', 'd'):
            join(storage, 's1', uid)
        before = storage.load_server('s1')

        with pytest.raises(ConfigurationError):
            await make_matchmaker(storage, platform, settings).run('s1')

        assert storage.load_server('s1') == before
        assert platform.channels == []

    @pytest.mark.asyncio
    async def test_channel_failure_keeps_team(self, storage, platform, settings, server):
        """Ошибка создания темы не отменяет команду."""
        platform.fail_channels = True
        for uid in ('a', 'b', 'c', 'd'):
            join(storage, server, uid)

        teams = await make_matchmaker(storage, platform, settings).run(server)

        assert len(teams) == 1
        assert teams[0]['channel'] is None
        assert storage.queue_sizes(server) == {'2': 0, '3': 0, '4': 0}
        assert platform.moves == []

    @pytest.mark.asyncio
    async def test_members_moved_to_channel(self, storage, platform, settings, server):
        """Подключенные игроки переносятся в тему, неподключенные пропускаются."""
        platform.skip_moves.add('c')
        for uid in ('a', 'b', 'c', 'd'):
            join(storage, server, uid)

        teams = await make_matchmaker(storage, platform, settings).run(server)

        assert teams[0]['channel']['thread_id'] == 1
        assert platform.moves == [(1, 'a'), (1, 'b'), (1, 'd')]


class TestRejoinDuringPass:
    """Тесты повторного входа в очередь во время прохода."""

    @pytest.mark.asyncio
    async def test_rejoin_after_leaving_is_kept(self, storage, platform, settings, server, staged_sleep):
        """Игрок вышел во время ожидания и снова встал в очередь: новая запись остается."""
        join(storage, server, 'a', modes=('2',))
        join(storage, server, 'b', modes=('2',))
        join(storage, server, 'c', modes=('2',), stat=HIGH)
        join(storage, server, 'd', modes=('2',), stat=HIGH)
        sleep = staged_sleep(
            lambda: storage.remove_from_queues(server, 'b'),
            lambda: join(storage, server, 'b', modes=('2',))
        )

        teams = await make_matchmaker(storage, platform, settings, sleep).run(server)

        assert [ids(t) for t in teams] == [['c', 'd']]
        assert storage.queued_modes(server, 'a') == ['2']
        assert storage.queued_modes(server, 'b') == ['2']

    @pytest.mark.asyncio
    async def test_rejoin_after_match_is_kept(self, storage, platform, settings, server, staged_sleep):
        """Новая постановка уже сыгранного игрока не удаляется при фиксации прохода."""
        join(storage, server, 'a', modes=('2',))
        join(storage, server, 'b', modes=('2',))
        join(storage, server, 'c', modes=('2',), stat=HIGH)
        join(storage, server, 'd', modes=('2',), stat=HIGH)
        sleep = staged_sleep(None, lambda: join(storage, server, 'a', modes=('2',)))

        teams = await make_matchmaker(storage, platform, settings, sleep).run(server)

        assert sorted(ids(t) for t in teams) == [['a', 'b'], ['c', 'd']]
        assert storage.queued_modes(server, 'a') == ['2']
        assert storage.queued_modes(server, 'b') == []


class TestBracketIsolation:
    """Тесты независимости сеток."""

    @pytest.mark.asyncio
    async def test_failing_bracket_does_not_block_others(self, storage, platform, settings, server):
        """Ошибка в одной сетке не мешает другой собрать и сохранить команду."""
        join(storage, server, 'a', modes=('2',))
        join(storage, server, 'b', modes=('2',))
        join(storage, server, 'c', modes=('2',), stat=HIGH)
        join(storage, server, 'd', modes=('2',), stat=HIGH)
        platform.broken.add('c')

        teams = await make_matchmaker(storage, platform, settings).run(server)

        assert [ids(t) for t in teams] == [['a', 'b']]
        assert storage.queued_modes(server, 'a') == []
        assert storage.queued_modes(server, 'c') == ['2']
        assert storage.queued_modes(server, 'd') == ['2']

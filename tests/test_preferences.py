"""
Тесты предпочтений по режимам.
"""

import pytest

from lft_bot.handlers.queue_panel import preferences_keyboard
from lft_bot.services.preferences import format_modes, get_modes, is_eligible, toggle_mode


class TestPreferences:
    """Тесты модуля preferences."""

    def test_absent_means_all_modes(self):
        """Нет записи - игрок участвует во всех режимах."""
        assert get_modes({}, 'u1') == ['2', '3', '4']
        assert get_modes(None, 'u1') == ['2', '3', '4']
        assert is_eligible({}, 'u1', '3')

    def test_empty_list_means_no_modes(self):
        """Пустой список - ни одного режима."""
        assert get_modes({'u1': []}, 'u1') == []
        assert not is_eligible({'u1': []}, 'u1', '2')

    def test_modes_are_ordered(self):
        """Режимы всегда возвращаются по порядку."""
        assert get_modes({'u1': ['4', '2']}, 'u1') == ['2', '4']

    def test_toggle(self):
        """Переключение режима выключает и включает его."""
        prefs = {}
        assert toggle_mode(prefs, 'u1', '3') == ['2', '4']
        assert prefs['u1'] == ['2', '4']
        assert toggle_mode(prefs, 'u1', '3') == ['2', '3', '4']

    def test_toggle_unknown_mode(self):
        """Неизвестный режим отклоняется."""
        with pytest.raises(ValueError):
            toggle_mode({}, 'u1', '5')

    def test_format_modes(self):
        """Форматирование списка режимов."""
        assert format_modes(['2', '3']) == '2v2, 3v3'
        assert format_modes([]) == 'нет режимов'


class TestPreferencesKeyboard:
    """Тесты клавиатуры предпочтений."""

    def test_callback_data_carries_mode_and_owner(self):
        """Кнопка хранит режим и владельца: pref:<mode>:<owner_id>."""
        keyboard = preferences_keyboard('42', ['3'])
        buttons = keyboard.inline_keyboard[0]

        assert [b.callback_data for b in buttons] == ['pref:2:42', 'pref:3:42', 'pref:4:42']
        assert [b.text.startswith('✅') for b in buttons] == [False, True, False]

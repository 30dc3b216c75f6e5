"""
Кнопки панели очереди: вход/выход из очереди и предпочтения режимов.
"""

import logging
from typing import Optional, Tuple

import aiohttp
from aiogram import Router, F
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, InlineKeyboardButton

from ..services.preferences import ALL_MODES, format_modes, get_modes, toggle_mode
from ..services.scheduler import MatchmakingRunner
from ..services.stats import get_bedwars_stats, get_uuid, is_valid_stat, parse_stars, parse_username
from ..services.storage import Storage

logger = logging.getLogger(__name__)

router = Router()

# Константы для текстов (alert - до 200 символов)
CATEGORY_NOT_SET_TEXT = "🚫 Форум для команд не настроен. Попросите админа выполнить /set."
NO_MODES_TEXT = "⚙️ У тебя не выбран ни один режим. Открой «Предпочтения»."
NICK_REQUIRED_TEXT = "❓ Сначала укажи ник: /nick [312⭐] Steve"
UUID_FAILED_TEXT = "😞 Не удалось найти игрока с ником {username}."
STATS_UNAVAILABLE_TEXT = "😞 Не удалось получить статистику. Попробуй позже."
LEFT_QUEUE_TEXT = "👋 Ты вышел из очереди."
JOINED_QUEUE_TEXT = "🎉 Ты в очереди: {modes}. Удачи!"
PREFS_DENIED_TEXT = "🚫 Нельзя менять предпочтения в очереди. Сначала выйди из нее."
PREFS_TEXT = "⚙️ Предпочтения {name}: нажимай на форматы, чтобы включить или выключить их."
NOT_YOUR_PREFS_TEXT = "Это не твои предпочтения."


def preferences_keyboard(user_id: str, modes) -> InlineKeyboardMarkup:
    """Кнопки переключения режимов; владелец зашит в callback_data."""
    buttons = [
        InlineKeyboardButton(
            text=f"{'✅' if mode in modes else '▫️'} {mode}v{mode}",
            callback_data=f"pref:{mode}:{user_id}"
        )
        for mode in ALL_MODES
    ]
    return InlineKeyboardMarkup(inline_keyboard=[buttons])


async def resolve_stats(storage: Storage, server_id: str, nickname: str) -> Tuple[Optional[Tuple[float, int]], str]:
    """
    Находит статистику игрока: сначала в кэше по UUID, затем через API.

    Returns:
        ((stat_number, stars), '') или (None, текст ошибки)
    """
    username = parse_username(nickname)
    async with aiohttp.ClientSession() as session:
        uuid = await get_uuid(session, username)
        if not uuid:
            return None, UUID_FAILED_TEXT.format(username=username)

        cached = storage.get_used_stat(server_id, uuid)
        if cached:
            return (cached['stat_number'], cached['stars']), ''

        stat_number = await get_bedwars_stats(session, username)

    stars = parse_stars(nickname)
    logger.debug(f"Статистика {username}: stat={stat_number}, stars={stars}")
    if not is_valid_stat(stat_number) or not is_valid_stat(stars):
        return None, STATS_UNAVAILABLE_TEXT

    storage.add_used_stat(server_id, uuid, stat_number, stars)
    return (stat_number, stars), ''


@router.callback_query(F.data == "join_queue")
async def callback_join_queue(callback: CallbackQuery, runner: MatchmakingRunner):
    """Вход в очередь; повторное нажатие выводит из очереди."""
    if not callback.from_user or not callback.message:
        return

    storage = Storage()
    server_id = str(callback.message.chat.id)
    user_id = str(callback.from_user.id)

    server = storage.load_server(server_id)
    if not server:
        storage.ensure_server(server_id, callback.message.chat.title or '')
        await callback.answer(CATEGORY_NOT_SET_TEXT, show_alert=True)
        return

    if storage.queued_modes(server_id, user_id):
        storage.remove_from_queues(server_id, user_id)
        logger.info(f"Игрок {user_id} вышел из очереди сервера {server_id}")
        await callback.answer(LEFT_QUEUE_TEXT, show_alert=True)
        return

    if not server['category']:
        await callback.answer(CATEGORY_NOT_SET_TEXT, show_alert=True)
        return

    modes = get_modes(server['preferences'], user_id)
    if not modes:
        await callback.answer(NO_MODES_TEXT, show_alert=True)
        return

    nickname = server['nicknames'].get(user_id)
    if not nickname:
        await callback.answer(NICK_REQUIRED_TEXT, show_alert=True)
        return

    stats, error_text = await resolve_stats(storage, server_id, nickname)
    if not stats:
        await callback.answer(error_text, show_alert=True)
        return

    stat_number, stars = stats
    storage.enqueue(server_id, user_id, stat_number, stars, modes)
    logger.info(f"Игрок {user_id} встал в очередь {modes} сервера {server_id}")

    await callback.answer(JOINED_QUEUE_TEXT.format(modes=format_modes(modes)), show_alert=True)
    runner.trigger(server_id)


@router.callback_query(F.data == "set_preferences")
async def callback_set_preferences(callback: CallbackQuery):
    """Показывает кнопки выбора режимов."""
    if not callback.from_user or not callback.message:
        return

    storage = Storage()
    server_id = str(callback.message.chat.id)
    user_id = str(callback.from_user.id)

    if storage.queued_modes(server_id, user_id):
        logger.debug(f"Игрок {user_id} пытался менять предпочтения в очереди")
        await callback.answer(PREFS_DENIED_TEXT, show_alert=True)
        return

    modes = storage.get_preferences(server_id, user_id)
    await callback.message.answer(
        PREFS_TEXT.format(name=callback.from_user.first_name),
        reply_markup=preferences_keyboard(user_id, modes)
    )
    await callback.answer()


@router.callback_query(F.data.startswith("pref:"))
async def callback_toggle_preference(callback: CallbackQuery):
    """Переключает один режим в предпочтениях игрока."""
    if not callback.from_user or not callback.message:
        return

    _, mode, owner_id = callback.data.split(":", 2)
    user_id = str(callback.from_user.id)
    if user_id != owner_id:
        await callback.answer(NOT_YOUR_PREFS_TEXT, show_alert=True)
        return

    storage = Storage()
    server_id = str(callback.message.chat.id)
    if storage.queued_modes(server_id, user_id):
        await callback.answer(PREFS_DENIED_TEXT, show_alert=True)
        return

    server = storage.ensure_server(server_id, callback.message.chat.title or '')
    modes = toggle_mode(server['preferences'], user_id, mode)
    storage.set_preferences(server_id, user_id, modes)

    await callback.message.edit_reply_markup(reply_markup=preferences_keyboard(user_id, modes))
    await callback.answer(f"Режимы: {format_modes(modes)}")

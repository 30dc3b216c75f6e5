"""
Админские команды /setup и /set: панель очереди и форум для команд.
"""

import logging
from aiogram import Router
from aiogram.types import Message, InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.filters import Command, CommandObject

from ..services.acl import require_admin
from ..services.storage import Storage

logger = logging.getLogger(__name__)

router = Router()

PANEL_TEXT = """🌱 <b>Очередь Bedwars LFT</b>

🌎 <b>Как пользоваться:</b> укажи ник командой /nick, затем нажми «Встать в очередь», и бот подберет тебе команду игроков твоего уровня.

🍂 <b>Предпочтения:</b> выбери форматы (2v2, 3v3, 4v4), в которых готов играть.

🍃 Повторное нажатие «Встать в очередь» выводит из очереди."""

CATEGORY_HINT_TEXT = "⚠️ Форум для команд не задан. Используйте /set, чтобы выбрать его."
SET_USAGE_TEXT = """Использование: /set &lt;chat_id форума&gt;

Или отправьте /set без аргументов прямо в группе-форуме."""


def panel_keyboard() -> InlineKeyboardMarkup:
    """Кнопки панели очереди."""
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="🎮 Встать в очередь", callback_data="join_queue")],
        [InlineKeyboardButton(text="⚙️ Предпочтения", callback_data="set_preferences")]
    ])


@router.message(Command("setup"))
@require_admin
async def cmd_setup(message: Message):
    """Публикует панель очереди в текущем чате."""
    storage = Storage()
    server_id = str(message.chat.id)

    server = storage.ensure_server(server_id, message.chat.title or '')
    await message.answer(PANEL_TEXT, reply_markup=panel_keyboard())
    storage.set_panel_chat(server_id, server_id)
    logger.info(f"Панель очереди опубликована в {server_id}")

    if not server['category']:
        await message.reply(CATEGORY_HINT_TEXT)


@router.message(Command("set"))
@require_admin
async def cmd_set_category(message: Message, command: CommandObject):
    """Задает форум, в котором создаются темы команд."""
    storage = Storage()
    server_id = str(message.chat.id)

    if command.args:
        category = command.args.strip()
        try:
            int(category)
        except ValueError:
            await message.reply(SET_USAGE_TEXT)
            return
    elif message.chat.is_forum:
        category = server_id
    else:
        await message.reply(SET_USAGE_TEXT)
        return

    had_category = bool((storage.load_server(server_id) or {}).get('category'))
    storage.set_category(server_id, category, message.chat.title or '')
    logger.info(f"Категория сервера {server_id}: {category}")

    if had_category:
        await message.reply("✅ Форум для команд обновлен!")
    else:
        await message.reply("✅ Форум для команд задан!")

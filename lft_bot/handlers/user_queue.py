"""
Команды игроков: /nick, /leave, /queue, /ping.
"""

import html
import logging
from aiogram import Router
from aiogram.types import Message
from aiogram.filters import Command, CommandObject

from ..services.preferences import format_modes
from ..services.stats import parse_stars, parse_username
from ..services.storage import Storage

logger = logging.getLogger(__name__)

router = Router()

NICK_USAGE_TEXT = """Укажи ник со звёздами Bedwars:
/nick [312⭐] Steve"""


@router.message(Command("nick"))
async def cmd_nick(message: Message, command: CommandObject):
    """Сохраняет ник игрока для этого сервера."""
    if not message.from_user:
        return

    nickname = (command.args or '').strip()
    if not nickname or parse_stars(nickname) is None or not parse_username(nickname):
        await message.reply(NICK_USAGE_TEXT)
        return

    storage = Storage()
    storage.set_nickname(str(message.chat.id), str(message.from_user.id), nickname)
    await message.reply(f"✅ Ник сохранен: {html.escape(nickname)}")


@router.message(Command("leave"))
async def cmd_leave(message: Message):
    """Убирает игрока из всех очередей сервера."""
    if not message.from_user:
        return

    storage = Storage()
    removed = storage.remove_from_queues(str(message.chat.id), str(message.from_user.id))
    if removed:
        logger.info(f"Игрок {message.from_user.id} вышел из очередей {removed}")
        await message.reply(f"👋 Ты вышел из очереди: {format_modes(removed)}.")
    else:
        await message.reply("Ты не в очереди.")


@router.message(Command("queue"))
async def cmd_queue(message: Message):
    """Показывает размеры очередей и статус игрока."""
    if not message.from_user:
        return

    storage = Storage()
    server_id = str(message.chat.id)
    sizes = storage.queue_sizes(server_id)
    mine = storage.queued_modes(server_id, str(message.from_user.id))

    lines = [f"{mode}v{mode}: {count}" for mode, count in sizes.items()]
    text = "📋 В очереди сейчас:\n" + "\n".join(lines)
    if mine:
        text += f"\n\nТы в очереди: {format_modes(mine)}"
    await message.reply(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    await message.reply("🏓 Понг!")

"""
Проверка прав доступа (ACL) для админских команд.
"""

import os
from functools import wraps
from typing import Callable, Any
from aiogram import types
from aiogram.enums import ChatMemberStatus
from aiogram.exceptions import TelegramBadRequest

from .util import parse_int_list


def is_admin_by_env(tg_id: int) -> bool:
    """Проверяет, является ли пользователь админом согласно переменной окружения ADMINS."""
    return tg_id in parse_int_list(os.getenv('ADMINS', ''))


async def is_chat_admin(message: types.Message) -> bool:
    """Проверяет, является ли автор сообщения создателем или админом чата."""
    if message.chat.type == 'private':
        return False
    try:
        member = await message.bot.get_chat_member(message.chat.id, message.from_user.id)
    except TelegramBadRequest:
        return False
    return member.status in (ChatMemberStatus.CREATOR, ChatMemberStatus.ADMINISTRATOR)


def require_admin(func: Callable) -> Callable:
    """
    Декоратор для проверки прав админа.
    Если пользователь не админ, отправляет сообщение об отказе.
    """
    @wraps(func)
    async def wrapper(message: types.Message, *args, **kwargs) -> Any:
        if not message.from_user:
            return
        if not (is_admin_by_env(message.from_user.id) or await is_chat_admin(message)):
            await message.reply("🚫 Эта команда доступна только администраторам.")
            return
        return await func(message, *args, **kwargs)
    return wrapper

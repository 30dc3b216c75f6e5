"""
Связь матчмейкинга с Telegram: проверка участников, темы форума для
команд и уведомления игроков.
"""

import html
import logging
from datetime import datetime, timedelta
from typing import Optional

from aiogram import Bot
from aiogram.enums import ChatMemberStatus
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError, TelegramRetryAfter

from ..types import ChannelRef, Team
from .storage import Storage

logger = logging.getLogger(__name__)

GONE_STATUSES = (ChatMemberStatus.LEFT, ChatMemberStatus.KICKED)


def topic_link(chat_id: str, thread_id: int) -> str:
    """Ссылка на тему супергруппы: -1001234567890 -> https://t.me/c/1234567890/<thread>."""
    internal = str(chat_id)
    if internal.startswith('-100'):
        internal = internal[4:]
    return f"https://t.me/c/{internal.lstrip('-')}/{thread_id}"


class TelegramPlatform:
    """Внешние операции матчмейкинга поверх Bot API."""

    def __init__(self, bot: Bot, storage: Optional[Storage] = None):
        self.bot = bot
        self.storage = storage or Storage()

    async def is_member(self, chat_id: str, user_id: str) -> bool:
        """Состоит ли пользователь в чате."""
        try:
            member = await self.bot.get_chat_member(chat_id=int(chat_id), user_id=int(user_id))
        except (TelegramBadRequest, TelegramForbiddenError) as e:
            logger.debug(f"Не удалось проверить участника {user_id} в {chat_id}: {e}")
            return False
        return member.status not in GONE_STATUSES

    def format_team_card(self, server_id: str, team: Team) -> str:
        """Форматирует карточку команды."""
        server = self.storage.load_server(server_id)
        nicknames = server['nicknames'] if server else {}

        members_list = []
        for i, player in enumerate(team['players']):
            user_id = player['user_id']
            name = html.escape(nicknames.get(user_id, f"ID:{user_id}"))
            members_list.append(f"{i + 1}. {name}")

        return (
            f"🎮 Команда {team['mode']}v{team['mode']} · сетка {team['bracket']}\n\n"
            f"{chr(10).join(members_list)}\n\n"
            f"Удачной игры!"
        )

    async def create_team_channel(self, server_id: str, category: str, team: Team) -> ChannelRef:
        """
        Создает тему форума для команды и публикует в ней карточку.

        Ошибка публикации карточки не отменяет тему: она уже создана и
        возвращается, чтобы игроки получили ссылку.
        """
        name = f"Team-{'-'.join(p['user_id'] for p in team['players'])}"[:128]
        topic = await self.bot.create_forum_topic(chat_id=int(category), name=name)

        channel: ChannelRef = {
            'chat_id': str(category),
            'thread_id': topic.message_thread_id,
            'name': topic.name,
            'link': topic_link(category, topic.message_thread_id)
        }
        self.storage.add_team_topic(server_id, channel)

        try:
            await self.bot.send_message(
                chat_id=int(category),
                message_thread_id=topic.message_thread_id,
                text=self.format_team_card(server_id, team)
            )
        except (TelegramBadRequest, TelegramForbiddenError, TelegramRetryAfter) as e:
            logger.warning(f"Не удалось опубликовать карточку в теме {channel['name']}: {e}")

        logger.debug(f"Создана тема {channel['name']} для команды")
        return channel

    async def close_expired_topics(self, max_age: float) -> int:
        """
        Удаляет темы команд старше max_age секунд.

        Returns:
            Количество удаленных тем
        """
        expired = self.storage.pop_expired_topics(datetime.now() - timedelta(seconds=max_age))
        closed = 0
        for topic in expired:
            try:
                await self.bot.delete_forum_topic(
                    chat_id=int(topic['chat_id']),
                    message_thread_id=topic['thread_id']
                )
                closed += 1
            except (TelegramBadRequest, TelegramForbiddenError) as e:
                # Тему могли удалить вручную
                logger.debug(f"Не удалось удалить тему {topic['name']}: {e}")
        if closed:
            logger.info(f"Удалено старых тем команд: {closed}")
        return closed

    async def move_member(self, channel: ChannelRef, user_id: str) -> str:
        """
        Отправляет игроку ссылку на тему команды.

        Returns:
            'moved' или 'skipped', если игрока нет в чате команд
        """
        if not await self.is_member(channel['chat_id'], user_id):
            return 'skipped'

        await self.bot.send_message(
            chat_id=int(user_id),
            text=f"✅ Команда найдена! Переходи в тему команды: {channel['link']}"
        )
        return 'moved'

    async def notify_removed(self, user_id: str, reason: str) -> bool:
        """Сообщает игроку, что его убрали из очереди."""
        try:
            await self.bot.send_message(chat_id=int(user_id), text=reason)
            return True
        except (TelegramForbiddenError, TelegramBadRequest):
            # Пользователь заблокировал бота или не начинал с ним диалог
            return False

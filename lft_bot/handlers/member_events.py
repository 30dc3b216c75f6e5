"""
Выход участника из группы: игрок убирается из всех очередей.
"""

import logging
from aiogram import Router
from aiogram.filters import ChatMemberUpdatedFilter, LEAVE_TRANSITION
from aiogram.types import ChatMemberUpdated

from ..services.preferences import format_modes
from ..services.storage import Storage
from ..services.telegram_platform import TelegramPlatform

logger = logging.getLogger(__name__)

router = Router()


@router.chat_member(ChatMemberUpdatedFilter(member_status_changed=LEAVE_TRANSITION))
async def on_member_left(event: ChatMemberUpdated, platform: TelegramPlatform):
    """Убирает ушедшего участника из очередей и сообщает ему об этом."""
    server_id = str(event.chat.id)
    user_id = str(event.new_chat_member.user.id)

    removed = Storage().remove_from_queues(server_id, user_id)
    if not removed:
        return

    logger.info(f"Игрок {user_id} покинул {server_id} и убран из очередей {removed}")
    await platform.notify_removed(
        user_id,
        f"Ты убран из очереди {format_modes(removed)}, потому что покинул группу."
    )

"""
Админские команды /adm_match (внеочередной матчмейкинг) и /adm_stats.
"""

from aiogram import Router
from aiogram.types import Message
from aiogram.filters import Command

from ..services.acl import require_admin
from ..services.logger import get_metrics
from ..services.scheduler import MatchmakingRunner
from ..services.storage import Storage

router = Router()


@router.message(Command("adm_match"))
@require_admin
async def cmd_adm_match(message: Message, runner: MatchmakingRunner):
    """Запускает проход матчмейкинга для этого сервера."""
    storage = Storage()
    server_id = str(message.chat.id)

    server = storage.load_server(server_id)
    if not server or not server.get('category'):
        await message.reply("🚫 Форум для команд не настроен. Используйте /set.")
        return

    if runner.trigger(server_id):
        await message.reply("🔄 Матчмейкинг запущен.")
    else:
        await message.reply("⏳ Матчмейкинг уже идет, повтор запланирован.")


@router.message(Command("adm_stats"))
@require_admin
async def cmd_adm_stats(message: Message):
    """Сводка по очередям сервера и метрикам бота."""
    storage = Storage()
    sizes = storage.queue_sizes(str(message.chat.id))
    metrics = get_metrics()

    response = "📊 <b>Статистика</b>\n\n"
    response += "⏳ <b>Очереди:</b> " + ", ".join(f"{m}v{m}: {n}" for m, n in sizes.items()) + "\n"
    response += "🎮 <b>Команд собрано:</b> " + ", ".join(
        f"{m}v{m}: {n}" for m, n in metrics['teams_matched'].items()
    ) + "\n"
    response += f"📩 <b>Сообщений:</b> {metrics['messages_processed']}\n"
    response += f"🔘 <b>Callback:</b> {metrics['callbacks_processed']}\n"
    response += f"❌ <b>Ошибок:</b> {metrics['errors_count']}"

    await message.reply(response)

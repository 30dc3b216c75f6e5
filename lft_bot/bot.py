"""
Создание экземпляра бота, диспетчера, матчмейкинга и настройка middlewares.
"""

import os
from typing import List

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage
from dotenv import load_dotenv

# Загружаем переменные окружения
load_dotenv()

# Инициализируем систему логирования
from .services.logger import bot_logger, get_logger, log_team

bot_logger.start_metrics_logging(interval=300)

logger = get_logger('bot')

from .types import Team
from .services.matcher import Matchmaker
from .services.scheduler import MatchmakingRunner
from .services.storage import Storage
from .services.telegram_platform import TelegramPlatform
from .services.util import env_float

BOT_TOKEN = os.getenv('BOT_TOKEN')
if not BOT_TOKEN:
    raise ValueError("BOT_TOKEN не найден в переменных окружения")

bot = Bot(
    token=BOT_TOKEN,
    default=DefaultBotProperties(parse_mode=ParseMode.HTML)
)

dp = Dispatcher(storage=MemoryStorage())


def _report_teams(server_id: str, teams: List[Team]) -> None:
    for team in teams:
        log_team(server_id, team['mode'], team['bracket'], len(team['players']))


storage = Storage()
platform = TelegramPlatform(bot, storage)

# Темы команд старше TEAM_TOPIC_TTL секунд удаляются при обходе (0 - не удалять)
TEAM_TOPIC_TTL = env_float('TEAM_TOPIC_TTL', 7200)


async def _close_old_topics() -> None:
    await platform.close_expired_topics(TEAM_TOPIC_TTL)


runner = MatchmakingRunner(
    Matchmaker(storage, platform),
    interval=env_float('MATCH_SWEEP_INTERVAL', 30),
    on_teams=_report_teams,
    on_sweep=_close_old_topics if TEAM_TOPIC_TTL else None
)

# Доступны в обработчиках как аргументы runner и platform
dp['runner'] = runner
dp['platform'] = platform

from .handlers import admin_setup, admin_match, queue_panel, user_queue, member_events

dp.include_router(admin_setup.router)
dp.include_router(admin_match.router)
dp.include_router(queue_panel.router)
dp.include_router(user_queue.router)
dp.include_router(member_events.router)

from .middlewares.error_handler import ErrorHandlerMiddleware, PerformanceMiddleware
dp.message.middleware(PerformanceMiddleware(slow_threshold_ms=500))
dp.callback_query.middleware(PerformanceMiddleware(slow_threshold_ms=500))
dp.message.middleware(ErrorHandlerMiddleware())
dp.callback_query.middleware(ErrorHandlerMiddleware())

logger.info("Handlers и middleware зарегистрированы")


async def on_startup():
    """Выполняется при запуске бота."""
    from aiogram.types import BotCommand

    me = await bot.get_me()
    logger.info(f"✅ Бот подключен: @{me.username}")

    await bot.set_my_commands([
        BotCommand(command="nick", description="🏷 Указать ник Bedwars"),
        BotCommand(command="queue", description="📋 Состояние очереди"),
        BotCommand(command="leave", description="❌ Выйти из очереди"),
        BotCommand(command="ping", description="🏓 Проверить бота"),
    ])

    runner.start()
    logger.info("🎉 Бот запущен и готов к работе!")


async def on_shutdown():
    """Выполняется при остановке бота."""
    runner.stop()
    await runner.wait_idle()
    logger.info("Бот остановлен")


dp.startup.register(on_startup)
dp.shutdown.register(on_shutdown)

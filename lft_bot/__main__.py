"""
Точка входа для запуска бота: python -m lft_bot
"""

import asyncio
import logging
from dotenv import load_dotenv

from .services.process_lock import ProcessLock

# Загружаем переменные окружения
load_dotenv()

logger = logging.getLogger('lft_bot.main')


async def polling_main():
    """Запуск бота через long polling."""
    from .bot import bot, dp

    logger.info("📡 Запуск в режиме long polling...")

    webhook_info = await bot.get_webhook_info()
    if webhook_info.url:
        logger.info(f"Очищаем webhook: {webhook_info.url}")
        await bot.delete_webhook(drop_pending_updates=True)

    # chat_member нужен для отслеживания выхода игроков из группы
    await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())


def main():
    """Главная функция запуска."""
    with ProcessLock():
        try:
            asyncio.run(polling_main())
        except KeyboardInterrupt:
            logger.info("🔴 Получен сигнал прерывания")
        finally:
            logger.info("🔴 Бот остановлен")


if __name__ == '__main__':
    main()

"""
Middleware для обработки ошибок, логирования и замера времени обработчиков.
"""

import time
from typing import Callable, Dict, Any, Awaitable, Optional
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery

from ..services.logger import get_logger, log_message, log_callback, log_error, log_timing

logger = get_logger('middleware')


def _handler_name(data: Dict[str, Any]) -> Optional[str]:
    handler = data.get('handler')
    callback = getattr(handler, 'callback', None)
    return getattr(callback, '__name__', None)


class ErrorHandlerMiddleware(BaseMiddleware):
    """Глобальная обработка ошибок с детальным логированием."""

    def __init__(self):
        super().__init__()
        self.error_count = 0

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        start_time = time.time()
        user = getattr(event, 'from_user', None)
        user_id = user.id if user else None
        handler_name = _handler_name(data)

        if isinstance(event, Message):
            chat_id = event.chat.id
            log_message(user_id or 0, chat_id, event.text or 'non-text', handler_name)
        elif isinstance(event, CallbackQuery):
            chat_id = event.message.chat.id if event.message else None
            log_callback(user_id or 0, chat_id or 0, event.data or 'no-data', handler_name)
        else:
            chat_id = None

        try:
            result = await handler(event, data)
        except Exception as e:
            self.error_count += 1
            log_error(e, {
                'handler_name': handler_name,
                'chat_id': chat_id,
                'error_count': self.error_count
            }, user_id)
            logger.error(f"❌ Ошибка в обработчике #{self.error_count} ({handler_name}): {e}")

            try:
                if isinstance(event, Message):
                    await event.reply(
                        "⚠️ Произошла ошибка при обработке команды. Попробуйте ещё раз.\n\n"
                        f"🔍 Код ошибки: #{self.error_count}"
                    )
                elif isinstance(event, CallbackQuery):
                    await event.answer(
                        f"⚠️ Произошла ошибка (#{self.error_count}). Попробуйте ещё раз.",
                        show_alert=True
                    )
            except Exception as reply_error:
                logger.error(f"❌ Не удалось отправить сообщение об ошибке: {reply_error}")
            return None

        log_timing(handler_name or 'unknown_handler', (time.time() - start_time) * 1000, user_id)
        return result


class PerformanceMiddleware(BaseMiddleware):
    """Предупреждает о медленных обработчиках."""

    def __init__(self, slow_threshold_ms: float = 1000):
        super().__init__()
        self.slow_threshold_ms = slow_threshold_ms

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        start_time = time.time()
        try:
            return await handler(event, data)
        finally:
            duration_ms = (time.time() - start_time) * 1000
            if duration_ms > self.slow_threshold_ms:
                logger.warning(
                    f"🐌 Медленная операция: {_handler_name(data)} ({duration_ms:.2f}ms)",
                    extra={'handler_name': _handler_name(data), 'duration': duration_ms}
                )

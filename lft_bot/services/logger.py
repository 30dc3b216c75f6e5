"""
Централизованная система логирования и метрик бота.
"""

import logging
import logging.handlers
import os
import json
import sys
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import threading
import time
from pathlib import Path

# Поля, которые обработчики передают через extra
EXTRA_FIELDS = ('user_id', 'chat_id', 'server_id', 'handler_name', 'mode', 'bracket',
                'duration', 'error_type', 'stack_trace')


class JsonFormatter(logging.Formatter):
    """Форматтер для JSON логов."""

    def format(self, record: logging.LogRecord) -> str:
        """Форматирует запись лога в JSON."""
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


class BotLogger:
    """Менеджер логирования для бота."""

    def __init__(self, logs_dir: Optional[str] = None):
        self.logs_dir = Path(logs_dir or os.getenv('LOGS_DIR', 'logs'))
        self.logs_dir.mkdir(exist_ok=True)

        self._metrics = {
            'messages_processed': 0,
            'callbacks_processed': 0,
            'errors_count': 0,
            'teams_matched': {'2': 0, '3': 0, '4': 0},
            'users_active': set(),
            'handlers_timing': {},
            'last_activity': time.time()
        }
        self._metrics_lock = threading.Lock()
        self._start_time = time.time()

        self._setup_loggers()

    def _rotating(self, filename: str, level: int, formatter: logging.Formatter,
                  when: str = 'midnight', backup_count: int = 7) -> logging.Handler:
        handler = logging.handlers.TimedRotatingFileHandler(
            self.logs_dir / filename,
            when=when,
            interval=1,
            backupCount=backup_count,
            encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        return handler

    def _setup_loggers(self):
        """Настраивает все логгеры."""
        self.main_logger = logging.getLogger('lft_bot')
        self.main_logger.setLevel(logging.DEBUG)
        self.main_logger.handlers.clear()

        console_formatter = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(console_formatter)
        self.main_logger.addHandler(console_handler)

        # Все логи, включая отладку матчмейкинга
        self.main_logger.addHandler(self._rotating('bot_all.log', logging.DEBUG, console_formatter))
        self.main_logger.addHandler(self._rotating('bot_structured.jsonl', logging.INFO, JsonFormatter()))
        self.main_logger.addHandler(
            self._rotating('bot_errors.log', logging.ERROR, JsonFormatter(), backup_count=30)
        )

        # Отдельный логгер для метрик
        self.metrics_logger = logging.getLogger('lft_bot.metrics')
        self.metrics_logger.setLevel(logging.INFO)
        self.metrics_logger.addHandler(
            self._rotating('bot_performance.jsonl', logging.INFO, JsonFormatter(), when='H', backup_count=24)
        )
        self.metrics_logger.propagate = False

        logging.getLogger('aiogram').setLevel(logging.WARNING)
        logging.getLogger('aiohttp').setLevel(logging.WARNING)

        self.main_logger.info("🔧 Система логирования инициализирована")

    def get_logger(self, name: str) -> logging.Logger:
        """Возвращает логгер с указанным именем."""
        return logging.getLogger(f'lft_bot.{name}')

    def log_message_processed(self, user_id: int, chat_id: int, message_text: str, handler_name: str = None):
        """Логирует обработку сообщения."""
        with self._metrics_lock:
            self._metrics['messages_processed'] += 1
            self._metrics['users_active'].add(user_id)
            self._metrics['last_activity'] = time.time()

        self.get_logger('messages').info(
            f"📩 Сообщение обработано: {message_text[:50]}{'...' if len(message_text) > 50 else ''}",
            extra={'user_id': user_id, 'chat_id': chat_id, 'handler_name': handler_name}
        )

    def log_callback_processed(self, user_id: int, chat_id: int, callback_data: str, handler_name: str = None):
        """Логирует обработку callback."""
        with self._metrics_lock:
            self._metrics['callbacks_processed'] += 1
            self._metrics['users_active'].add(user_id)
            self._metrics['last_activity'] = time.time()

        self.get_logger('callbacks').info(
            f"🔘 Callback обработан: {callback_data}",
            extra={'user_id': user_id, 'chat_id': chat_id, 'handler_name': handler_name}
        )

    def log_team_matched(self, server_id: str, mode: str, bracket: int, size: int):
        """Учитывает сформированную команду."""
        with self._metrics_lock:
            self._metrics['teams_matched'][mode] = self._metrics['teams_matched'].get(mode, 0) + 1

        self.get_logger('matchmaking').info(
            f"🎮 Команда {mode}v{mode} (сетка {bracket}, игроков {size})",
            extra={'server_id': server_id, 'mode': mode, 'bracket': bracket}
        )

    def log_error(self, error: Exception, context: Dict[str, Any] = None, user_id: int = None):
        """Логирует ошибку с контекстом."""
        with self._metrics_lock:
            self._metrics['errors_count'] += 1

        extra_data = {
            'error_type': type(error).__name__,
            'stack_trace': traceback.format_exc()
        }
        if user_id:
            extra_data['user_id'] = user_id
        if context:
            extra_data.update({k: v for k, v in context.items() if k not in ('message', 'asctime')})

        self.get_logger('errors').error(f"❌ Ошибка: {error}", extra=extra_data, exc_info=True)

    def log_handler_timing(self, handler_name: str, duration_ms: float, user_id: int = None):
        """Логирует время выполнения обработчика."""
        with self._metrics_lock:
            timings = self._metrics['handlers_timing'].setdefault(handler_name, [])
            timings.append(duration_ms)
            # Оставляем только последние 100 измерений
            del timings[:-100]

        if duration_ms > 1000:
            self.get_logger('performance').warning(
                f"⏱️ Медленный обработчик: {handler_name} ({duration_ms:.2f}ms)",
                extra={'handler_name': handler_name, 'duration': duration_ms, 'user_id': user_id}
            )

    def get_metrics(self) -> Dict[str, Any]:
        """Возвращает текущие метрики."""
        with self._metrics_lock:
            avg_timings = {}
            for handler, timings in self._metrics['handlers_timing'].items():
                if timings:
                    avg_timings[handler] = {
                        'avg_ms': sum(timings) / len(timings),
                        'max_ms': max(timings),
                        'count': len(timings)
                    }

            return {
                'messages_processed': self._metrics['messages_processed'],
                'callbacks_processed': self._metrics['callbacks_processed'],
                'errors_count': self._metrics['errors_count'],
                'teams_matched': dict(self._metrics['teams_matched']),
                'active_users_count': len(self._metrics['users_active']),
                'last_activity': self._metrics['last_activity'],
                'handlers_performance': avg_timings,
                'uptime_seconds': time.time() - self._start_time
            }

    def log_metrics(self):
        """Записывает текущие метрики в лог."""
        self.metrics_logger.info("📊 Метрики", extra={'metrics': self.get_metrics()})

    def start_metrics_logging(self, interval: int = 300):
        """Запускает периодическое логирование метрик."""
        def log_metrics_periodically():
            while True:
                time.sleep(interval)
                self.log_metrics()

        thread = threading.Thread(target=log_metrics_periodically, daemon=True)
        thread.start()

        self.main_logger.info(f"📊 Запущено периодическое логирование метрик (каждые {interval}с)")


# Глобальный экземпляр логгера
bot_logger = BotLogger()


def get_logger(name: str) -> logging.Logger:
    """Возвращает логгер для указанного модуля."""
    return bot_logger.get_logger(name)


def log_message(user_id: int, chat_id: int, message_text: str, handler_name: str = None):
    bot_logger.log_message_processed(user_id, chat_id, message_text, handler_name)


def log_callback(user_id: int, chat_id: int, callback_data: str, handler_name: str = None):
    bot_logger.log_callback_processed(user_id, chat_id, callback_data, handler_name)


def log_team(server_id: str, mode: str, bracket: int, size: int):
    bot_logger.log_team_matched(server_id, mode, bracket, size)


def log_error(error: Exception, context: Dict[str, Any] = None, user_id: int = None):
    bot_logger.log_error(error, context, user_id)


def log_timing(handler_name: str, duration_ms: float, user_id: int = None):
    bot_logger.log_handler_timing(handler_name, duration_ms, user_id)


def get_metrics() -> Dict[str, Any]:
    return bot_logger.get_metrics()

"""
Блокировка процесса: один экземпляр бота на машину.

Защита от параллельных проходов матчмейкинга работает внутри одного
процесса, поэтому второй процесс с тем же хранилищем запускать нельзя.
"""

import os
import logging
import tempfile
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)

BOT_CMDLINE_KEYWORDS = ('lft_bot', '-m lft_bot')


class ProcessLock:
    """Lock-файл с PID текущего процесса."""

    def __init__(self, lock_name: str = "lft_bot"):
        self.lock_file = Path(tempfile.gettempdir()) / f"{lock_name}.lock"
        self._locked = False
        self._current_pid = os.getpid()

    def is_process_running(self, pid: int) -> bool:
        """Проверяет, что PID принадлежит живому процессу бота."""
        try:
            process = psutil.Process(pid)
            cmdline = ' '.join(process.cmdline())
            return process.is_running() and any(k in cmdline for k in BOT_CMDLINE_KEYWORDS)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return False

    def acquire(self) -> bool:
        """
        Получает блокировку.

        Returns:
            True, если блокировка получена; False, если бот уже запущен
        """
        if self.lock_file.exists():
            try:
                existing_pid = int(self.lock_file.read_text().strip())
            except (ValueError, OSError) as e:
                logger.warning(f"Поврежденный lock файл ({e}), удаляем")
                existing_pid = None

            if existing_pid and existing_pid != self._current_pid and self.is_process_running(existing_pid):
                logger.warning(f"Обнаружен запущенный экземпляр бота (PID: {existing_pid})")
                return False
            logger.info("Найден устаревший lock файл, перезаписываем")

        self.lock_file.write_text(str(self._current_pid))
        self._locked = True
        logger.info(f"✅ Блокировка процесса получена (PID: {self._current_pid})")
        return True

    def release(self):
        """Освобождает блокировку, если она наша."""
        if not self._locked:
            return
        try:
            if self.lock_file.exists() and int(self.lock_file.read_text().strip()) == self._current_pid:
                self.lock_file.unlink()
                logger.info("✅ Блокировка процесса освобождена")
        except (OSError, ValueError) as e:
            logger.warning(f"Ошибка при освобождении блокировки: {e}")
        finally:
            self._locked = False

    def __enter__(self):
        if not self.acquire():
            raise RuntimeError("Не удалось получить блокировку: возможно уже запущен другой экземпляр бота")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

"""
Получение статистики Bedwars (Hypixel) и UUID игрока (Mojang).
"""

import asyncio
import logging
import math
import os
import re
from typing import Any, Dict, Optional

import aiohttp

from .brackets import UNKNOWN_STAT

logger = logging.getLogger(__name__)

HYPIXEL_PLAYER_URL = "https://api.hypixel.net/player"
MOJANG_PROFILE_URL = "https://api.mojang.com/users/profiles/minecraft/{username}"

# Веса статистики
WEIGHT_FINAL_KILLS = 0.3
WEIGHT_FINAL_DEATHS = 0.5
WEIGHT_WINS = 0.3
WEIGHT_LOSSES = 0.4
WEIGHT_EXPERIENCE = 0.00005
WEIGHT_KILLS = 0.2
WEIGHT_DEATHS = 0.3

SCALING_FACTOR = 1000
MIN_SCORE = 0
# Оценка для игрока, у которого формула дала ровно ноль
ZERO_SCORE_FALLBACK = 4

_BRACKET_PREFIX = re.compile(r"\[.*?\] ")
_STARS = re.compile(r"\[\s*(\d+)")


def parse_username(nickname: str) -> str:
    """Убирает префикс со звёздами: "[312⭐] Steve" -> "Steve"."""
    return _BRACKET_PREFIX.sub("", nickname, count=1).strip()


def parse_stars(nickname: str) -> Optional[int]:
    """Достает число звёзд из ника вида "[312⭐] Steve"; None, если их нет."""
    match = _STARS.search(nickname)
    if not match:
        logger.debug(f"В нике не найдены звёзды: {nickname}")
        return None
    return int(match.group(1))


def is_valid_stat(value: Any) -> bool:
    """Статистика пригодна для очереди: число, не NaN и больше нуля."""
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return not math.isnan(number) and number > 0


def calculate_score(bedwars: Dict[str, Any]) -> float:
    """
    Считает нормализованную оценку скилла по статистике Bedwars.

    Args:
        bedwars: Раздел stats.Bedwars ответа Hypixel

    Returns:
        Оценка не меньше MIN_SCORE; ровный ноль заменяется на ZERO_SCORE_FALLBACK
    """
    score = (
        WEIGHT_FINAL_KILLS * bedwars.get('final_kills_bedwars', 0)
        + WEIGHT_KILLS * bedwars.get('kills_bedwars', 0)
        - WEIGHT_FINAL_DEATHS * bedwars.get('final_deaths_bedwars', 0)
        - WEIGHT_DEATHS * bedwars.get('deaths_bedwars', 0)
        + WEIGHT_WINS * bedwars.get('wins_bedwars', 0)
        - WEIGHT_LOSSES * bedwars.get('losses_bedwars', 0)
        + WEIGHT_EXPERIENCE * bedwars.get('Experience', 0)
    )
    normalized = max(score / SCALING_FACTOR, MIN_SCORE)
    if normalized == 0:
        normalized = ZERO_SCORE_FALLBACK
    return normalized


def _timeout() -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=float(os.getenv('STATS_HTTP_TIMEOUT', '10')))


async def get_uuid(session: aiohttp.ClientSession, username: str) -> Optional[str]:
    """Возвращает UUID игрока Minecraft или None."""
    try:
        async with session.get(MOJANG_PROFILE_URL.format(username=username), timeout=_timeout()) as response:
            if response.status != 200:
                logger.warning(f"Mojang вернул {response.status} для {username}")
                return None
            data = await response.json()
            return data.get('id')
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"Ошибка получения UUID для {username}: {e}")
        return None


async def get_bedwars_stats(session: aiohttp.ClientSession, username: str,
                            api_key: Optional[str] = None) -> float:
    """
    Запрашивает статистику Bedwars и возвращает оценку скилла.

    Returns:
        Оценка или UNKNOWN_STAT, если статистики нет или запрос не удался
    """
    api_key = api_key if api_key is not None else os.getenv('HYPIXEL_API_KEY', '')
    try:
        async with session.get(
            HYPIXEL_PLAYER_URL,
            params={'name': username, 'key': api_key},
            timeout=_timeout()
        ) as response:
            if response.status != 200:
                logger.warning(f"Hypixel вернул {response.status} для {username}")
                return UNKNOWN_STAT
            data = await response.json()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"Ошибка получения статистики для {username}: {e}")
        return UNKNOWN_STAT

    player = data.get('player') or {}
    bedwars = (player.get('stats') or {}).get('Bedwars')
    if not bedwars:
        logger.info(f"Статистика Bedwars для {username} не найдена")
        return UNKNOWN_STAT
    return calculate_score(bedwars)

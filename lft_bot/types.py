"""
Модели данных для бота подбора команд (очереди 2v2, 3v3, 4v4).
"""

from typing import TypedDict, List, Dict, Literal, Optional

Mode = Literal['2', '3', '4']


class QueueEntry(TypedDict, total=False):
    """Запись игрока в очереди одного режима."""
    user_id: str        # str(tg_id)
    stat_number: float  # нормализованный скилл, 1000 = статистика не найдена
    stars: int          # звёзды Bedwars (опыт)
    timestamp: str      # время постановки в очередь, ISO
    bracket: int        # кэш сетки, пересчитывается при каждом чтении, не сохраняется


class UsedStat(TypedDict):
    """Кэш статистики игрока по UUID."""
    stat_number: float
    stars: int


class ChannelRef(TypedDict):
    """Ссылка на созданный ресурс команды (тема форума)."""
    chat_id: str
    thread_id: int
    name: str
    link: str


class TeamTopic(ChannelRef):
    """Тема команды, созданная ботом; удаляется по истечении срока."""
    created_at: str


class Team(TypedDict):
    """Модель сформированной команды."""
    mode: Mode
    bracket: int
    players: List[QueueEntry]  # порядок FIFO
    matched_at: str
    channel: Optional[ChannelRef]


class ServerQueue(TypedDict):
    """Состояние очередей одного сервера (группы)."""
    server_name: str
    category: Optional[str]        # id форума, где создаются темы команд
    panel_chat_id: Optional[str]
    preferences: Dict[str, List[str]]  # user_id -> режимы; нет записи = все режимы
    nicknames: Dict[str, str]
    used_stats: Dict[str, UsedStat]    # uuid -> статистика
    team_topics: List[TeamTopic]       # созданные темы команд
    queue: Dict[str, List[QueueEntry]]  # "2"/"3"/"4" -> очередь


class Store(TypedDict):
    """Главная модель хранилища данных."""
    servers: Dict[str, ServerQueue]  # str(chat_id) как ключи

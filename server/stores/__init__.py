"""Stores package for Pass the Bluff room and chat persistence."""

from .room_store import ConcurrencyError, RoomStore, InMemoryRoomStore, RedisRoomStore
from .chat_log import ChatLog, InMemoryChatLog, RedisChatLog

__all__ = [
    # Room documents
    "ConcurrencyError",
    "RoomStore",
    "InMemoryRoomStore",
    "RedisRoomStore",
    # Chat log
    "ChatLog",
    "InMemoryChatLog",
    "RedisChatLog",
]

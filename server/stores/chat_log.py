"""
Append-only chat logs, one per room.

Chat, system and declaration entries all live in the same log. Reads return
the whole log ordered by timestamp (append order breaks ties).

Key patterns (Redis):
- bluff:chat:{room_id}  -> List (JSON chat messages)
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import timedelta

import redis.asyncio as redis

from game import ChatMessage

logger = logging.getLogger(__name__)


class ChatLog(ABC):
    """Append-only message log keyed by room id."""

    @abstractmethod
    async def append(self, room_id: str, message: ChatMessage) -> None:
        """Append a message to a room's log."""

    @abstractmethod
    async def messages(self, room_id: str) -> list[ChatMessage]:
        """All messages for a room, sorted by timestamp."""


class InMemoryChatLog(ChatLog):
    """Process-local chat log."""

    def __init__(self) -> None:
        self._logs: dict[str, list[dict]] = {}

    async def append(self, room_id: str, message: ChatMessage) -> None:
        self._logs.setdefault(room_id, []).append(message.to_dict())

    async def messages(self, room_id: str) -> list[ChatMessage]:
        entries = [ChatMessage.from_dict(d) for d in self._logs.get(room_id, [])]
        return sorted(entries, key=lambda m: m.timestamp)


class RedisChatLog(ChatLog):
    """Redis list per room, expiring with the room."""

    CHAT_KEY = "bluff:chat:{room_id}"

    def __init__(self, redis_client: redis.Redis, ttl: timedelta = timedelta(hours=24)):
        self.redis = redis_client
        self.ttl = ttl

    def _key(self, room_id: str) -> str:
        return self.CHAT_KEY.format(room_id=room_id)

    async def append(self, room_id: str, message: ChatMessage) -> None:
        key = self._key(room_id)
        pipe = self.redis.pipeline()
        pipe.rpush(key, json.dumps(message.to_dict()))
        pipe.expire(key, int(self.ttl.total_seconds()))
        await pipe.execute()

    async def messages(self, room_id: str) -> list[ChatMessage]:
        raw = await self.redis.lrange(self._key(room_id), 0, -1)
        entries = [ChatMessage.from_dict(json.loads(r)) for r in raw]
        return sorted(entries, key=lambda m: m.timestamp)

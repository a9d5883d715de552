"""
Room document stores.

A room is one JSON document. Every write is a compare-and-set on the
document's version: a save made from a stale copy raises ConcurrencyError
instead of silently overwriting a newer state.

Two implementations:
- InMemoryRoomStore: single-process, keeps serialized copies so every load
  is an independent object.
- RedisRoomStore: shared across server processes, with TTL expiry for
  abandoned rooms.

Key patterns (Redis):
- bluff:room:{room_id}   -> JSON (full room document)
- bluff:rooms:active     -> Set (room ids)
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

from errors import RoomAlreadyExists
from game import GameRoom

logger = logging.getLogger(__name__)


class ConcurrencyError(Exception):
    """Raised when optimistic concurrency check fails."""
    pass


class RoomStore(ABC):
    """Keyed storage for room documents."""

    @abstractmethod
    async def create(self, room: GameRoom) -> None:
        """
        Store a new room.

        Raises:
            RoomAlreadyExists: If a room with this id is stored.
        """

    @abstractmethod
    async def load(self, room_id: str) -> Optional[GameRoom]:
        """Load a fresh copy of a room, or None if it does not exist."""

    @abstractmethod
    async def save(self, room: GameRoom) -> None:
        """
        Write a room loaded earlier.

        The stored version must still equal room.version; on success the
        room's version is bumped.

        Raises:
            ConcurrencyError: If the room changed since it was loaded.
        """

    @abstractmethod
    async def room_ids(self) -> set[str]:
        """Ids of all stored rooms."""


class InMemoryRoomStore(RoomStore):
    """Process-local room store."""

    def __init__(self) -> None:
        self._docs: dict[str, dict] = {}

    async def create(self, room: GameRoom) -> None:
        if room.id in self._docs:
            raise RoomAlreadyExists(f"Room {room.id} already exists")
        self._docs[room.id] = room.to_dict()

    async def load(self, room_id: str) -> Optional[GameRoom]:
        doc = self._docs.get(room_id)
        return GameRoom.from_dict(doc) if doc else None

    async def save(self, room: GameRoom) -> None:
        stored = self._docs.get(room.id)
        if stored is None or stored["version"] != room.version:
            raise ConcurrencyError(f"Room {room.id} changed since version {room.version}")
        room.version += 1
        self._docs[room.id] = room.to_dict()

    async def room_ids(self) -> set[str]:
        return set(self._docs)


class RedisRoomStore(RoomStore):
    """Redis-backed room store using WATCH/MULTI compare-and-set."""

    ROOM_KEY = "bluff:room:{room_id}"
    ACTIVE_ROOMS_KEY = "bluff:rooms:active"

    def __init__(self, redis_client: redis.Redis, ttl: timedelta = timedelta(hours=24)):
        """
        Initialize the store with a Redis client.

        Args:
            redis_client: Async Redis client.
            ttl: Expiry for room documents, refreshed on every write.
        """
        self.redis = redis_client
        self.ttl = ttl

    @classmethod
    async def create_from_url(cls, redis_url: str, ttl: timedelta = timedelta(hours=24)) -> "RedisRoomStore":
        """
        Create a store with a new Redis connection.

        Args:
            redis_url: Redis connection URL.
            ttl: Expiry for room documents.
        """
        client = redis.from_url(redis_url, decode_responses=False)
        await client.ping()
        logger.info("RedisRoomStore connected to Redis")
        return cls(client, ttl)

    def _key(self, room_id: str) -> str:
        return self.ROOM_KEY.format(room_id=room_id)

    async def create(self, room: GameRoom) -> None:
        created = await self.redis.set(
            self._key(room.id),
            json.dumps(room.to_dict()),
            nx=True,
            ex=int(self.ttl.total_seconds()),
        )
        if not created:
            raise RoomAlreadyExists(f"Room {room.id} already exists")
        await self.redis.sadd(self.ACTIVE_ROOMS_KEY, room.id)
        logger.debug(f"Created room {room.id}")

    async def load(self, room_id: str) -> Optional[GameRoom]:
        raw = await self.redis.get(self._key(room_id))
        if not raw:
            # Expired or never created; drop it from the active set
            await self.redis.srem(self.ACTIVE_ROOMS_KEY, room_id)
            return None
        return GameRoom.from_dict(json.loads(raw))

    async def save(self, room: GameRoom) -> None:
        key = self._key(room.id)
        doc = room.to_dict()
        doc["version"] = room.version + 1

        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                stored_version = json.loads(raw)["version"] if raw else None
                if stored_version != room.version:
                    raise ConcurrencyError(
                        f"Room {room.id} is at version {stored_version}, expected {room.version}"
                    )
                pipe.multi()
                pipe.set(key, json.dumps(doc), ex=int(self.ttl.total_seconds()))
                await pipe.execute()
            except WatchError:
                raise ConcurrencyError(f"Room {room.id} was written concurrently")

        room.version += 1

    async def room_ids(self) -> set[str]:
        ids = await self.redis.smembers(self.ACTIVE_ROOMS_KEY)
        return {i.decode() if isinstance(i, bytes) else i for i in ids}

    async def close(self) -> None:
        """Close the Redis connection."""
        await self.redis.close()

"""
Tests for room and chat persistence.

These tests cover:
- RoomStore: create, isolated loads, versioned compare-and-set saves
- ChatLog: append and timestamp ordering
- RoomManager running on the Redis stores

Both the in-memory and Redis implementations run through the same checks.
Tests use fakeredis for isolated Redis testing.
"""

import random
from datetime import timedelta

import fakeredis
import pytest

from errors import RoomAlreadyExists
from game import CardPool, ChatMessage, GamePhase, GameRoom, MessageKind, Player
from ids import SequentialIdGenerator
from room import RoomManager
from stores.chat_log import InMemoryChatLog, RedisChatLog
from stores.room_store import ConcurrencyError, InMemoryRoomStore, RedisRoomStore


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def redis_client():
    """In-process Redis."""
    return fakeredis.FakeAsyncRedis()


@pytest.fixture(params=["memory", "redis"])
def room_store(request, redis_client):
    if request.param == "memory":
        return InMemoryRoomStore()
    return RedisRoomStore(redis_client, ttl=timedelta(hours=1))


@pytest.fixture(params=["memory", "redis"])
def chat_log(request, redis_client):
    if request.param == "memory":
        return InMemoryChatLog()
    return RedisChatLog(redis_client, ttl=timedelta(hours=1))


def make_room(room_id: str = "ABCD") -> GameRoom:
    room = GameRoom(id=room_id, created_at=1000.0)
    room.add_player(Player(id="p0", name="Alice"))
    return room


def make_message(msg_id: str, timestamp: float, text: str = "hi") -> ChatMessage:
    return ChatMessage(
        id=msg_id,
        player_id="p0",
        player_name="Alice",
        text=text,
        timestamp=timestamp,
    )


# =============================================================================
# RoomStore Tests
# =============================================================================

class TestRoomStore:

    @pytest.mark.asyncio
    async def test_create_and_load(self, room_store):
        await room_store.create(make_room())
        loaded = await room_store.load("ABCD")
        assert loaded.to_dict() == make_room().to_dict()
        assert await room_store.room_ids() == {"ABCD"}

    @pytest.mark.asyncio
    async def test_load_missing(self, room_store):
        assert await room_store.load("NOPE") is None

    @pytest.mark.asyncio
    async def test_create_duplicate(self, room_store):
        await room_store.create(make_room())
        with pytest.raises(RoomAlreadyExists):
            await room_store.create(make_room())

    @pytest.mark.asyncio
    async def test_loads_are_independent_copies(self, room_store):
        await room_store.create(make_room())
        loaded = await room_store.load("ABCD")
        loaded.players["p0"].name = "Mallory"
        assert (await room_store.load("ABCD")).players["p0"].name == "Alice"

    @pytest.mark.asyncio
    async def test_save_bumps_version(self, room_store):
        await room_store.create(make_room())
        room = await room_store.load("ABCD")
        room.add_player(Player(id="p1", name="Bob"))
        await room_store.save(room)

        assert room.version == 1
        stored = await room_store.load("ABCD")
        assert stored.version == 1
        assert list(stored.players) == ["p0", "p1"]

    @pytest.mark.asyncio
    async def test_stale_save_rejected(self, room_store):
        await room_store.create(make_room())
        first = await room_store.load("ABCD")
        second = await room_store.load("ABCD")

        first.add_player(Player(id="p1", name="Bob"))
        await room_store.save(first)
        second.add_player(Player(id="p2", name="Carol"))
        with pytest.raises(ConcurrencyError):
            await room_store.save(second)

        stored = await room_store.load("ABCD")
        assert list(stored.players) == ["p0", "p1"]
        assert second.version == 0

    @pytest.mark.asyncio
    async def test_save_unknown_room(self, room_store):
        with pytest.raises(ConcurrencyError):
            await room_store.save(make_room("GHOST"))


class TestRedisRoomStoreKeys:

    @pytest.mark.asyncio
    async def test_room_key_has_ttl(self, redis_client):
        store = RedisRoomStore(redis_client, ttl=timedelta(hours=1))
        await store.create(make_room())
        ttl = await redis_client.ttl("bluff:room:ABCD")
        assert 0 < ttl <= 3600

    @pytest.mark.asyncio
    async def test_save_refreshes_ttl(self, redis_client):
        store = RedisRoomStore(redis_client, ttl=timedelta(hours=1))
        await store.create(make_room())
        await redis_client.expire("bluff:room:ABCD", 10)
        room = await store.load("ABCD")
        await store.save(room)
        assert await redis_client.ttl("bluff:room:ABCD") > 10

    @pytest.mark.asyncio
    async def test_active_rooms_set(self, redis_client):
        store = RedisRoomStore(redis_client)
        await store.create(make_room("AAAA"))
        await store.create(make_room("BBBB"))
        assert await redis_client.scard("bluff:rooms:active") == 2
        assert await store.room_ids() == {"AAAA", "BBBB"}

    @pytest.mark.asyncio
    async def test_expired_room_leaves_active_set(self, redis_client):
        store = RedisRoomStore(redis_client)
        await store.create(make_room("AAAA"))
        await store.create(make_room("BBBB"))
        await redis_client.delete("bluff:room:AAAA")

        assert await store.load("AAAA") is None
        assert await store.room_ids() == {"BBBB"}


# =============================================================================
# ChatLog Tests
# =============================================================================

class TestChatLog:

    @pytest.mark.asyncio
    async def test_empty_log(self, chat_log):
        assert await chat_log.messages("ABCD") == []

    @pytest.mark.asyncio
    async def test_append_and_read(self, chat_log):
        await chat_log.append("ABCD", make_message("m1", 1.0, "first"))
        await chat_log.append("ABCD", make_message("m2", 2.0, "second"))
        assert [m.text for m in await chat_log.messages("ABCD")] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_sorted_by_timestamp(self, chat_log):
        await chat_log.append("ABCD", make_message("m2", 5.0, "late"))
        await chat_log.append("ABCD", make_message("m1", 1.0, "early"))
        await chat_log.append("ABCD", make_message("m3", 5.0, "tie"))
        assert [m.text for m in await chat_log.messages("ABCD")] == ["early", "late", "tie"]

    @pytest.mark.asyncio
    async def test_rooms_are_separate(self, chat_log):
        await chat_log.append("AAAA", make_message("m1", 1.0))
        assert await chat_log.messages("BBBB") == []

    @pytest.mark.asyncio
    async def test_declaration_fields_survive(self, chat_log):
        declaration = ChatMessage(
            id="m1",
            player_id="p0",
            player_name="Alice",
            text="Alice is passing a Cat",
            timestamp=1.0,
            kind=MessageKind.DECLARATION,
            round=3,
            declared_name="Cat",
            card_id="card_9",
            recipient_id="p1",
        )
        await chat_log.append("ABCD", declaration)
        assert (await chat_log.messages("ABCD"))[0] == declaration


# =============================================================================
# RoomManager on Redis
# =============================================================================

class TestManagerOnRedis:

    @pytest.mark.asyncio
    async def test_full_round_on_redis(self, redis_client):
        ids = SequentialIdGenerator()
        rng = random.Random(4)
        manager = RoomManager(
            store=RedisRoomStore(redis_client),
            chat_log=RedisChatLog(redis_client),
            pool=CardPool(rng=rng, ids=ids),
            ids=ids,
            rng=rng,
            bluff_result_seconds=0,
        )
        await manager.create_room("ABCD", "p0", "Alice")
        await manager.join_room("ABCD", "p1", "Bob")
        await manager.join_room("ABCD", "p2", "Carol")
        await manager.start_game("ABCD", "p0")
        for pid in ("p0", "p1", "p2"):
            room = await manager.set_ready("ABCD", pid)

        card = room.players["p0"].hand[0]
        recipient = room.pass_target("p0", card)
        await manager.pass_card("ABCD", "p0", card.id, card.name)
        caller = "p1" if recipient.id == "p2" else "p2"
        await manager.call_bluff("ABCD", caller, recipient.id, card.id)
        await manager.scheduler.wait_all()

        room = await manager.get_room("ABCD")
        assert room.current_round == 2
        assert room.phase == GamePhase.MEMORIZING
        assert room.players[recipient.id].score == 1
        assert room.current_turn == recipient.id
        texts = [m.text for m in await manager.get_chat_messages("ABCD")]
        assert texts[-1] == f"New round started! {recipient.name} goes first."


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""
Room management for Pass the Bluff.

This module is the operation surface the transport layer calls into. Each
operation loads the room document, validates and mutates it through
game.GameRoom, writes it back, appends the matching chat entries and pushes
the new state to subscribers.

Mutations of one room are serialized twice over:
    - an asyncio.Lock per room id inside this process
    - a compare-and-set on the document version in the store, retried a
      few times, for writers in other processes

A bluff call leaves the room in ROUND_END and schedules the next deal on
a RoundResetScheduler keyed by (room_id, round).
"""

import asyncio
import logging
import random
import string
import time
from typing import Awaitable, Callable, Optional, TypeVar

from ai import create_computer_player
from config import config
from constants import SYSTEM_PLAYER_ID, SYSTEM_PLAYER_NAME
from errors import CardNotFound, GameError, PlayerNotFound, RoomNotFound
from game import (
    CardPool,
    ChatMessage,
    GameRoom,
    MessageKind,
    Player,
    latest_declaration,
)
from ids import IdGenerator
from logging_config import get_logger
from services.round_reset import RoundResetScheduler
from stores.chat_log import ChatLog, InMemoryChatLog
from stores.room_store import ConcurrencyError, InMemoryRoomStore, RoomStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

RoomCallback = Callable[[GameRoom], Awaitable[None]]
ChatCallback = Callable[[list[ChatMessage]], Awaitable[None]]


class RoomManager:
    """
    Runs room operations against a room store and a chat log.

    A single RoomManager instance is used by the server. Stores, card
    pool, ids and clock are injectable so tests can run deterministic
    games without Redis.
    """

    def __init__(
        self,
        store: Optional[RoomStore] = None,
        chat_log: Optional[ChatLog] = None,
        pool: Optional[CardPool] = None,
        ids: Optional[IdGenerator] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        scheduler: Optional[RoundResetScheduler] = None,
        bluff_result_seconds: Optional[float] = None,
        retry_attempts: Optional[int] = None,
    ) -> None:
        self.store = store or InMemoryRoomStore()
        self.chat_log = chat_log or InMemoryChatLog()
        self.ids = ids or IdGenerator()
        self.rng = rng or random.Random()
        self.pool = pool or CardPool(rng=self.rng, ids=self.ids)
        self.clock = clock
        self.scheduler = scheduler or RoundResetScheduler()
        self.bluff_result_seconds = (
            config.BLUFF_RESULT_SECONDS if bluff_result_seconds is None else bluff_result_seconds
        )
        self.retry_attempts = max(
            1, config.STORE_RETRY_ATTEMPTS if retry_attempts is None else retry_attempts
        )

        self._locks: dict[str, asyncio.Lock] = {}
        self._room_subscribers: dict[str, list[RoomCallback]] = {}
        self._chat_subscribers: dict[str, list[ChatCallback]] = {}
        self._last_timestamp = 0.0
        self.log = get_logger(__name__)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _timestamp(self) -> float:
        """Clock reading, nudged forward so entries never share a timestamp."""
        now = self.clock()
        if now <= self._last_timestamp:
            now = self._last_timestamp + 1e-6
        self._last_timestamp = now
        return now

    def _system_message(self, room: GameRoom, text: str) -> ChatMessage:
        return ChatMessage(
            id=self.ids.new_id("msg_"),
            player_id=SYSTEM_PLAYER_ID,
            player_name=SYSTEM_PLAYER_NAME,
            text=text,
            timestamp=self._timestamp(),
            kind=MessageKind.SYSTEM,
            round=room.current_round,
        )

    async def _room_lock(self, room_id: str) -> asyncio.Lock:
        """Lock for an existing room. Unknown ids never get one."""
        lock = self._locks.get(room_id)
        if lock is None:
            if await self.store.load(room_id) is None:
                raise RoomNotFound(f"Room {room_id} not found")
            lock = self._locks.setdefault(room_id, asyncio.Lock())
        return lock

    async def _mutate(
        self,
        room_id: str,
        action: Callable[[GameRoom], Awaitable[T]],
        entries: Optional[Callable[[GameRoom, T], list[ChatMessage]]] = None,
        skip_if_none: bool = False,
    ) -> tuple[GameRoom, T]:
        """
        Read-modify-write one room under its lock.

        The action validates and mutates a freshly loaded copy. If it
        raises, nothing is written. A version conflict with another writer
        reruns the whole action on a fresh copy.

        Args:
            room_id: Room to mutate.
            action: Coroutine function applied to the loaded room.
            entries: Builds the chat entries for a committed change. They
                are appended before the lock is released, so the next
                operation on the room sees them.
            skip_if_none: Don't write when the action returns None.
        """
        log = self.log.with_context(room_code=room_id)
        attempt = 0
        async with await self._room_lock(room_id):
            while True:
                attempt += 1
                room = await self.store.load(room_id)
                if room is None:
                    self._locks.pop(room_id, None)
                    raise RoomNotFound(f"Room {room_id} not found")
                try:
                    result = await action(room)
                except GameError as e:
                    log.debug(f"Rejected: {e}")
                    raise
                if skip_if_none and result is None:
                    return room, result
                try:
                    await self.store.save(room)
                except ConcurrencyError:
                    if attempt >= self.retry_attempts:
                        raise
                    log.warning(f"Version conflict on attempt {attempt}, retrying")
                    continue
                if entries is not None:
                    await self._append(room_id, *entries(room, result))
                return room, result

    async def _append(self, room_id: str, *messages: ChatMessage) -> None:
        for message in messages:
            await self.chat_log.append(room_id, message)

    async def _notify(self, room_id: str, room: bool = True, chat: bool = True) -> None:
        """Push the latest room snapshot and/or chat list to subscribers."""
        if room and self._room_subscribers.get(room_id):
            snapshot = await self.store.load(room_id)
            if snapshot is not None:
                for callback in list(self._room_subscribers.get(room_id, [])):
                    try:
                        await callback(snapshot)
                    except Exception as e:
                        logger.error(f"Error in room subscriber: {e}", exc_info=True)
        if chat and self._chat_subscribers.get(room_id):
            messages = await self.chat_log.messages(room_id)
            for callback in list(self._chat_subscribers.get(room_id, [])):
                try:
                    await callback(messages)
                except Exception as e:
                    logger.error(f"Error in chat subscriber: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # Lobby
    # -------------------------------------------------------------------------

    async def generate_room_code(self, max_attempts: int = 100) -> str:
        """Generate an unused 4-letter room code."""
        existing = await self.store.room_ids()
        for _ in range(max_attempts):
            code = "".join(self.rng.choices(string.ascii_uppercase, k=4))
            if code not in existing:
                return code
        raise RuntimeError("Could not generate unique room code")

    async def create_room(self, room_id: str, host_id: str, host_name: str) -> GameRoom:
        """
        Create a room with its host seated at position 0.

        Raises:
            RoomAlreadyExists: If the id is taken.
        """
        lock = self._locks.setdefault(room_id, asyncio.Lock())
        async with lock:
            room = GameRoom(id=room_id, created_at=self.clock())
            room.add_player(Player(id=host_id, name=host_name))
            await self.store.create(room)
            await self._append(room_id, self._system_message(room, f"{host_name} created the room"))
        self.log.with_context(room_code=room_id, player_id=host_id).info(f"Room created by {host_name}")
        await self._notify(room_id)
        return room

    async def join_room(self, room_id: str, player_id: str, name: str) -> GameRoom:
        """
        Seat a player in a waiting room.

        Raises:
            RoomNotFound, RoomFull, IllegalPhaseTransition, PlayerAlreadyInRoom
        """
        async def action(room: GameRoom) -> Player:
            return room.add_player(Player(id=player_id, name=name))

        def entries(room: GameRoom, player: Player) -> list[ChatMessage]:
            return [self._system_message(room, f"{name} joined the room")]

        room, player = await self._mutate(room_id, action, entries)
        self.log.with_context(room_code=room_id, player_id=player_id).info(
            f"{name} joined at position {player.position}"
        )
        await self._notify(room_id)
        return room

    async def add_computer_player(self, room_id: str) -> GameRoom:
        """
        Seat a computer player with an unused name.

        Raises:
            RoomNotFound, RoomFull, IllegalPhaseTransition, NoNamesAvailable
        """
        async def action(room: GameRoom) -> Player:
            return room.add_player(create_computer_player(room, self.rng, self.ids))

        def entries(room: GameRoom, player: Player) -> list[ChatMessage]:
            return [self._system_message(room, f"{player.name} (computer) joined the room")]

        room, player = await self._mutate(room_id, action, entries)
        self.log.with_context(room_code=room_id, player_id=player.id).info(f"Computer player {player.name} added")
        await self._notify(room_id)
        return room

    # -------------------------------------------------------------------------
    # Round flow
    # -------------------------------------------------------------------------

    async def start_game(self, room_id: str, requester_id: Optional[str] = None) -> GameRoom:
        """
        Deal the first round and enter MEMORIZING.

        Raises:
            RoomNotFound, IllegalPhaseTransition, NotHost, NotEnoughPlayers
        """
        async def action(room: GameRoom) -> Player:
            return room.start_game(self.pool, requester_id)

        def entries(room: GameRoom, starter: Player) -> list[ChatMessage]:
            return [self._system_message(room, "Game started! Memorize your cards and click Ready when done.")]

        room, starter = await self._mutate(room_id, action, entries)
        self.log.with_context(room_code=room_id).info(
            f"Game started with {len(room.players)} players, {starter.name} goes first"
        )
        await self._notify(room_id)
        return room

    async def set_ready(self, room_id: str, player_id: str) -> GameRoom:
        """
        Mark a player ready; the last one flips the room to PLAYING.

        Raises:
            RoomNotFound, IllegalPhaseTransition, PlayerNotFound
        """
        async def action(room: GameRoom) -> bool:
            return room.set_ready(player_id)

        def entries(room: GameRoom, started: bool) -> list[ChatMessage]:
            if not started:
                return []
            active = room.active_player()
            name = active.name if active else "Unknown Player"
            return [self._system_message(room, f"{name}'s turn! Choose a card to pass.")]

        room, started = await self._mutate(room_id, action, entries)
        if started:
            self.log.with_context(room_code=room_id).info(f"All players ready, round {room.current_round} playing")
        await self._notify(room_id)
        return room

    async def pass_card(self, room_id: str, player_id: str, card_id: str, declared_name: str) -> GameRoom:
        """
        Pass a card along the ring and log the declaration.

        The declaration is in the chat log before any other operation on
        the room runs, so a bluff call is always judged against the pass
        that produced the current hands.

        Raises:
            RoomNotFound, IllegalPhaseTransition, NotYourTurn, PlayerNotFound,
            InvalidDeclaration, CardNotFound
        """
        async def action(room: GameRoom):
            return room.pass_card(player_id, card_id, declared_name, self.pool)

        def entries(room: GameRoom, outcome) -> list[ChatMessage]:
            declared = declared_name.strip()
            return [
                ChatMessage(
                    id=self.ids.new_id("msg_"),
                    player_id=outcome.sender.id,
                    player_name=outcome.sender.name,
                    text=f"{outcome.sender.name} is passing a {declared}",
                    timestamp=self._timestamp(),
                    kind=MessageKind.DECLARATION,
                    round=room.current_round,
                    declared_name=declared,
                    card_id=outcome.card.id,
                    recipient_id=outcome.recipient.id,
                )
            ]

        room, outcome = await self._mutate(room_id, action, entries)
        self.log.with_context(room_code=room_id, player_id=player_id).info(
            f"{outcome.sender.name} passed {outcome.card.id} {outcome.card.arrow.value} to {outcome.recipient.name}"
        )
        await self._notify(room_id)
        return room

    async def call_bluff(self, room_id: str, caller_id: str, target_player_id: str, card_id: str) -> GameRoom:
        """
        Judge the latest declaration and schedule the next round.

        Raises:
            RoomNotFound, IllegalPhaseTransition, NoDeclaration,
            CallerIsDeclarant, PlayerNotFound, CardNotFound
        """
        async def action(room: GameRoom):
            declaration = latest_declaration(await self.chat_log.messages(room_id))
            return room.call_bluff(caller_id, target_player_id, card_id, declaration)

        def entries(room: GameRoom, result) -> list[ChatMessage]:
            return [self._system_message(room, result.message)]

        room, result = await self._mutate(room_id, action, entries)
        self.scheduler.schedule(room_id, result.round, self.bluff_result_seconds, self._reset_round)
        self.log.with_context(room_code=room_id, player_id=caller_id).info(
            f"Bluff call by {result.caller_name}: declared {result.declared_card_name}, "
            f"actual {result.actual_card_name}, correct={result.is_correct_call}"
        )
        await self._notify(room_id)
        return room

    async def _reset_round(self, room_id: str, round_num: int) -> None:
        """Deal the round after a bluff call. Stale or failed resets only log."""
        log = self.log.with_context(room_code=room_id, round=round_num)

        async def action(room: GameRoom) -> Optional[Player]:
            return room.reset_round(self.pool, round_num)

        def entries(room: GameRoom, winner: Player) -> list[ChatMessage]:
            return [self._system_message(room, f"New round started! {winner.name} goes first.")]

        try:
            room, winner = await self._mutate(room_id, action, entries, skip_if_none=True)
            if winner is None:
                log.info("Skipping stale round reset")
                return
            log.info(f"Round {room.current_round} dealt, {winner.name} goes first")
            await self._notify(room_id)
        except Exception as e:
            log.error(f"Round reset failed: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # Chat and reads
    # -------------------------------------------------------------------------

    async def send_chat_message(self, room_id: str, player_id: str, text: str) -> Optional[ChatMessage]:
        """
        Append a player's chat message. Blank messages are ignored.

        Raises:
            RoomNotFound, PlayerNotFound
        """
        room = await self.get_room(room_id)
        if room is None:
            raise RoomNotFound(f"Room {room_id} not found")
        player = room.get_player(player_id)
        if not text or not text.strip():
            return None
        message = ChatMessage(
            id=self.ids.new_id("msg_"),
            player_id=player.id,
            player_name=player.name,
            text=text.strip(),
            timestamp=self._timestamp(),
            kind=MessageKind.CHAT,
            round=room.current_round,
        )
        await self._append(room_id, message)
        await self._notify(room_id, room=False)
        return message

    async def pass_target(self, room_id: str, player_id: str, card_id: str) -> Player:
        """
        Preview who would receive a card if the player passed it now.

        Raises:
            RoomNotFound, PlayerNotFound, CardNotFound
        """
        room = await self.get_room(room_id)
        if room is None:
            raise RoomNotFound(f"Room {room_id} not found")
        player = room.get_player(player_id)
        card = player.find_card(card_id)
        if card is None:
            raise CardNotFound(f"Card {card_id} is not in {player.name}'s hand")
        return room.pass_target(player.id, card)

    async def get_room(self, room_id: str) -> Optional[GameRoom]:
        return await self.store.load(room_id)

    async def get_chat_messages(self, room_id: str) -> list[ChatMessage]:
        return await self.chat_log.messages(room_id)

    async def room_ids(self) -> set[str]:
        return await self.store.room_ids()

    async def find_player(self, room_id: str, player_id: str) -> Player:
        room = await self.get_room(room_id)
        if room is None:
            raise RoomNotFound(f"Room {room_id} not found")
        if player_id not in room.players:
            raise PlayerNotFound(f"Player {player_id} is not in room {room_id}")
        return room.players[player_id]

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe_to_room(self, room_id: str, callback: RoomCallback) -> Callable[[], None]:
        """
        Receive the full room snapshot after every change.

        Returns:
            Function that removes the subscription.
        """
        self._room_subscribers.setdefault(room_id, []).append(callback)

        def unsubscribe() -> None:
            subscribers = self._room_subscribers.get(room_id, [])
            if callback in subscribers:
                subscribers.remove(callback)
            if not subscribers:
                self._room_subscribers.pop(room_id, None)

        return unsubscribe

    def subscribe_to_chat(self, room_id: str, callback: ChatCallback) -> Callable[[], None]:
        """
        Receive the full sorted chat list after every append.

        Returns:
            Function that removes the subscription.
        """
        self._chat_subscribers.setdefault(room_id, []).append(callback)

        def unsubscribe() -> None:
            subscribers = self._chat_subscribers.get(room_id, [])
            if callback in subscribers:
                subscribers.remove(callback)
            if not subscribers:
                self._chat_subscribers.pop(room_id, None)

        return unsubscribe

    async def shutdown(self) -> None:
        """Cancel pending round resets and drop subscribers."""
        await self.scheduler.shutdown()
        self._room_subscribers.clear()
        self._chat_subscribers.clear()

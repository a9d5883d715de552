"""
Tests for computer player decisions.

Covers:
- Name assignment for new computer players
- BluffAI.decide in each phase
- process_computer_turns applying actions through the RoomManager

Run with: pytest test_ai_decisions.py -v
"""

import random

import pytest

from ai import (
    BluffAI,
    COMPUTER_PROFILES,
    CpuAction,
    CpuActionType,
    create_computer_player,
    get_available_profiles,
    process_computer_turns,
)
from config import config
from errors import IllegalPhaseTransition, NoNamesAvailable, RoomFull
from game import Arrow, CardPool, ChatMessage, GamePhase, GameRoom, MessageKind, Player
from ids import SequentialIdGenerator
from room import RoomManager


# =============================================================================
# Helpers
# =============================================================================

def make_pool(seed: int = 5) -> CardPool:
    return CardPool(rng=random.Random(seed), ids=SequentialIdGenerator())


def make_playing_room(num_players: int = 3) -> tuple[GameRoom, CardPool]:
    pool = make_pool()
    room = GameRoom(id="ROOM")
    for i in range(num_players):
        room.add_player(Player(id=f"p{i}", name=f"Player {i}"))
    room.start_game(pool)
    for pid in room.players:
        room.set_ready(pid)
    return room, pool


def declare(room: GameRoom, sender_id: str, card_id: str, recipient_id: str, name: str = "Apple") -> ChatMessage:
    return ChatMessage(
        id="msg_1",
        player_id=sender_id,
        player_name=room.players[sender_id].name,
        text=f"{room.players[sender_id].name} is passing a {name}",
        timestamp=1.0,
        kind=MessageKind.DECLARATION,
        round=room.current_round,
        declared_name=name,
        card_id=card_id,
        recipient_id=recipient_id,
    )


def make_manager(**kwargs) -> RoomManager:
    ids = SequentialIdGenerator()
    rng = random.Random(3)
    return RoomManager(pool=CardPool(rng=rng, ids=ids), ids=ids, rng=rng, **kwargs)


# =============================================================================
# Computer player creation
# =============================================================================

class TestCreateComputerPlayer:

    def test_ten_distinct_profiles(self):
        assert len(COMPUTER_PROFILES) == 10
        assert len({p.name for p in COMPUTER_PROFILES}) == 10

    def test_available_profiles_skip_taken_names(self):
        room = GameRoom(id="ROOM")
        room.add_player(Player(id="p0", name="Sofia"))
        names = {p.name for p in get_available_profiles(room)}
        assert "Sofia" not in names
        assert len(names) == 9

    def test_creates_ready_computer(self):
        room = GameRoom(id="ROOM")
        room.add_player(Player(id="p0", name="Host"))
        cpu = create_computer_player(room, random.Random(1), SequentialIdGenerator())
        assert cpu.is_computer
        assert cpu.is_ready
        assert cpu.id == "cpu_1"
        assert cpu.name in {p.name for p in COMPUTER_PROFILES}

    def test_rejected_after_start(self):
        room, _ = make_playing_room()
        with pytest.raises(IllegalPhaseTransition):
            create_computer_player(room)

    def test_rejected_when_full(self):
        room = GameRoom(id="ROOM", max_players=1)
        room.add_player(Player(id="p0", name="Host"))
        with pytest.raises(RoomFull):
            create_computer_player(room)

    def test_no_names_left(self):
        room = GameRoom(id="ROOM", max_players=20)
        room.add_player(Player(id="p0", name="Host"))
        for i, profile in enumerate(COMPUTER_PROFILES):
            room.add_player(Player(id=f"cpu_{i}", name=profile.name, is_computer=True))
        with pytest.raises(NoNamesAvailable):
            create_computer_player(room)


# =============================================================================
# Decisions
# =============================================================================

class TestDecide:

    def test_waiting_room_waits(self):
        room = GameRoom(id="ROOM")
        player = room.add_player(Player(id="p0", name="Host"))
        action = BluffAI.decide(room, player, [], random.Random(1))
        assert action == CpuAction.wait()

    def test_memorizing_readies_up(self):
        room = GameRoom(id="ROOM")
        for i in range(3):
            room.add_player(Player(id=f"p{i}", name=f"Player {i}"))
        room.start_game(make_pool())
        player = room.players["p1"]
        assert BluffAI.decide(room, player, [], random.Random(1)).type == CpuActionType.READY

        player.is_ready = True
        assert BluffAI.decide(room, player, [], random.Random(1)).type == CpuActionType.WAIT

    def test_two_card_holder_passes_truthfully(self):
        room, _ = make_playing_room()
        holder = room.active_player()
        action = BluffAI.decide(room, holder, [], random.Random(1), bluff_probability=0.0)

        assert action.type == CpuActionType.PASS
        card = holder.find_card(action.card_id)
        assert card is not None
        assert action.declared_name == card.name

    def test_two_card_holder_bluffs_with_name_in_play(self):
        room, _ = make_playing_room()
        holder = room.active_player()
        action = BluffAI.decide(room, holder, [], random.Random(1), bluff_probability=1.0)

        card = holder.find_card(action.card_id)
        assert action.declared_name != card.name
        assert action.declared_name in room.cards_in_play()

    def test_two_card_holder_never_waits(self):
        room, _ = make_playing_room()
        holder = room.active_player()
        rng = random.Random(9)
        for _ in range(50):
            assert BluffAI.decide(room, holder, [], rng).type == CpuActionType.PASS

    def test_calls_bluff_on_latest_declaration(self):
        room, pool = make_playing_room()
        sender = room.active_player()
        card = sender.hand[0]
        outcome = room.pass_card(sender.id, card.id, card.name, pool)
        chat = [declare(room, sender.id, card.id, outcome.recipient.id)]
        watcher = next(p for p in room.players.values() if len(p.hand) == 1 and p.id != sender.id)

        action = BluffAI.decide(room, watcher, chat, random.Random(1), call_probability=1.0)

        assert action.type == CpuActionType.CALL_BLUFF
        assert action.target_player_id == outcome.recipient.id
        assert action.card_id == card.id

    def test_no_call_without_declaration(self):
        room, _ = make_playing_room()
        idle = next(p for p in room.players.values() if len(p.hand) == 1)
        action = BluffAI.decide(room, idle, [], random.Random(1), call_probability=1.0)
        assert action.type == CpuActionType.WAIT

    def test_no_call_on_own_declaration(self):
        room, pool = make_playing_room()
        sender = room.active_player()
        card = sender.hand[0]
        outcome = room.pass_card(sender.id, card.id, card.name, pool)
        chat = [declare(room, sender.id, card.id, outcome.recipient.id)]

        action = BluffAI.decide(room, sender, chat, random.Random(1), call_probability=1.0)

        assert action.type == CpuActionType.WAIT

    def test_no_call_on_previous_round(self):
        room, pool = make_playing_room()
        sender = room.active_player()
        card = sender.hand[0]
        outcome = room.pass_card(sender.id, card.id, card.name, pool)
        old = declare(room, sender.id, card.id, outcome.recipient.id)
        old.round = room.current_round - 1
        watcher = next(p for p in room.players.values() if len(p.hand) == 1 and p.id != sender.id)

        action = BluffAI.decide(room, watcher, [old], random.Random(1), call_probability=1.0)

        assert action.type == CpuActionType.WAIT

    def test_call_probability_zero_never_calls(self):
        room, pool = make_playing_room()
        sender = room.active_player()
        card = sender.hand[0]
        outcome = room.pass_card(sender.id, card.id, card.name, pool)
        chat = [declare(room, sender.id, card.id, outcome.recipient.id)]
        watcher = next(p for p in room.players.values() if len(p.hand) == 1 and p.id != sender.id)
        rng = random.Random(2)
        for _ in range(50):
            assert BluffAI.decide(room, watcher, chat, rng, call_probability=0.0).type == CpuActionType.WAIT


# =============================================================================
# process_computer_turns
# =============================================================================

class TestProcessComputerTurns:

    @pytest.mark.asyncio
    async def test_missing_room(self):
        assert await process_computer_turns(make_manager(), "NOPE") == 0

    @pytest.mark.asyncio
    async def test_computers_ready_up(self):
        manager = make_manager()
        await manager.create_room("ROOM", "host", "Host")
        await manager.add_computer_player("ROOM")
        await manager.add_computer_player("ROOM")
        await manager.start_game("ROOM", "host")

        room = await manager.get_room("ROOM")
        for player in room.players.values():
            player.is_ready = False
        await manager.store.save(room)

        applied = await process_computer_turns(manager, "ROOM", random.Random(1))

        room = await manager.get_room("ROOM")
        assert applied == 2
        assert [p.is_ready for p in room.ring_order()] == [False, True, True]
        assert room.phase == GamePhase.MEMORIZING

    @pytest.mark.asyncio
    async def test_computer_passes_when_holding_two(self, monkeypatch):
        monkeypatch.setattr(config.computer, "CALL_PROBABILITY", 0.0)
        manager = make_manager()
        await manager.create_room("ROOM", "host", "Host")
        await manager.add_computer_player("ROOM")
        await manager.add_computer_player("ROOM")
        await manager.start_game("ROOM", "host")
        room = await manager.set_ready("ROOM", "host")
        assert await process_computer_turns(manager, "ROOM", random.Random(1)) == 0

        card = room.players["host"].hand[0]
        await manager.pass_card("ROOM", "host", card.id, card.name)
        applied = await process_computer_turns(manager, "ROOM", random.Random(1))

        room = await manager.get_room("ROOM")
        chat = await manager.get_chat_messages("ROOM")
        cpu_declarations = [m for m in chat if m.is_declaration and m.player_id.startswith("cpu_")]
        assert applied >= 1
        assert len(cpu_declarations) == applied
        assert room.total_cards() == 4
        assert room.phase == GamePhase.PLAYING

    @pytest.mark.asyncio
    async def test_computer_calls_bluff(self, monkeypatch):
        monkeypatch.setattr(config.computer, "CALL_PROBABILITY", 1.0)
        manager = make_manager(bluff_result_seconds=60)
        await manager.create_room("ROOM", "host", "Host")
        await manager.add_computer_player("ROOM")
        await manager.add_computer_player("ROOM")
        await manager.join_room("ROOM", "guest", "Guest")
        await manager.start_game("ROOM", "host")
        await manager.set_ready("ROOM", "host")
        room = await manager.set_ready("ROOM", "guest")

        # Route the host's pass to the human guest seated last
        room.players["host"].hand[0].arrow = Arrow.LEFT
        await manager.store.save(room)
        card = room.players["host"].hand[0]
        await manager.pass_card("ROOM", "host", card.id, "Unicorn")

        applied = await process_computer_turns(manager, "ROOM", random.Random(1))

        room = await manager.get_room("ROOM")
        first_cpu = room.ring_order()[1]
        assert applied == 1
        assert room.phase == GamePhase.ROUND_END
        assert room.bluff_result.caller_name == first_cpu.name
        assert room.bluff_result.is_correct_call is True
        assert room.players[first_cpu.id].score == 1
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_rejected_action_is_skipped(self, monkeypatch):
        manager = make_manager()
        await manager.create_room("ROOM", "host", "Host")
        await manager.add_computer_player("ROOM")
        await manager.add_computer_player("ROOM")
        await manager.start_game("ROOM", "host")
        await manager.set_ready("ROOM", "host")

        monkeypatch.setattr(
            BluffAI,
            "decide",
            staticmethod(lambda *a, **kw: CpuAction(CpuActionType.PASS, card_id="card_x", declared_name="Apple")),
        )
        before = await manager.get_room("ROOM")

        assert await process_computer_turns(manager, "ROOM", random.Random(1)) == 0
        assert (await manager.get_room("ROOM")).version == before.version


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

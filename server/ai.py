"""Computer players for Pass the Bluff."""

import logging
import os
import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from config import config
from errors import GameError, IllegalPhaseTransition, NoNamesAvailable, RoomFull
from game import ChatMessage, GamePhase, GameRoom, Player, latest_declaration
from ids import IdGenerator

if TYPE_CHECKING:
    from room import RoomManager

logger = logging.getLogger(__name__)


# Debug logging configuration
# Set AI_DEBUG=1 environment variable to enable detailed AI decision logging
AI_DEBUG = os.environ.get("AI_DEBUG", "0") == "1"

ai_logger = logging.getLogger("bluff.ai")
if AI_DEBUG:
    ai_logger.setLevel(logging.DEBUG)
    if not ai_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [AI] %(message)s", datefmt="%H:%M:%S"
        ))
        ai_logger.addHandler(handler)


def ai_log(message: str):
    """Log AI decision info when AI_DEBUG is enabled."""
    if AI_DEBUG:
        ai_logger.debug(message)


@dataclass(frozen=True)
class ComputerProfile:
    """Name and table persona of a computer player."""
    name: str
    style: str  # Brief description shown to players


COMPUTER_PROFILES = [
    ComputerProfile(name="Sofia", style="Calculated & Patient"),
    ComputerProfile(name="Maya", style="Aggressive Closer"),
    ComputerProfile(name="Priya", style="Card Counter"),
    ComputerProfile(name="Marcus", style="Steady Eddie"),
    ComputerProfile(name="Kenji", style="Risk Taker"),
    ComputerProfile(name="Diego", style="Chaotic Gambler"),
    ComputerProfile(name="River", style="Adaptive Strategist"),
    ComputerProfile(name="Sage", style="Sneaky Finisher"),
    ComputerProfile(name="Nadia", style="Poker Face"),
    ComputerProfile(name="Theo", style="Honest Abe"),
]


def get_available_profiles(room: GameRoom) -> list[ComputerProfile]:
    """Profiles whose name no player in the room carries."""
    taken = {p.name for p in room.players.values()}
    return [p for p in COMPUTER_PROFILES if p.name not in taken]


def create_computer_player(
    room: GameRoom,
    rng: Optional[random.Random] = None,
    ids: Optional[IdGenerator] = None,
) -> Player:
    """
    Build a computer player for a lobby.

    The player is not seated; pass it to GameRoom.add_player.

    Raises:
        IllegalPhaseTransition: If the room is not WAITING.
        RoomFull: If the room has no free seat.
        NoNamesAvailable: If every profile name is taken.
    """
    rng = rng or random.Random()
    ids = ids or IdGenerator()
    if room.phase != GamePhase.WAITING:
        raise IllegalPhaseTransition("Cannot add computer players after the game has started")
    if room.is_full():
        raise RoomFull(f"Room {room.id} is full")
    available = get_available_profiles(room)
    if not available:
        raise NoNamesAvailable("No computer player names available")

    profile = rng.choice(available)
    return Player(
        id=ids.new_id("cpu_"),
        name=profile.name,
        is_ready=True,
        is_computer=True,
    )


class CpuActionType(str, Enum):
    READY = "ready"
    PASS = "pass"
    CALL_BLUFF = "call_bluff"
    WAIT = "wait"


@dataclass
class CpuAction:
    """One decision for one computer player."""
    type: CpuActionType
    card_id: Optional[str] = None
    declared_name: Optional[str] = None
    target_player_id: Optional[str] = None

    @classmethod
    def wait(cls) -> "CpuAction":
        return cls(CpuActionType.WAIT)


class BluffAI:
    """Decision-making for computer players."""

    @staticmethod
    def choose_pass(
        room: GameRoom,
        player: Player,
        rng: random.Random,
        bluff_probability: float,
    ) -> CpuAction:
        """Pick a random card and decide whether to lie about it."""
        card = rng.choice(player.hand)
        declared = card.name
        if rng.random() < bluff_probability:
            others = [name for name in room.cards_in_play() if name != card.name]
            if others:
                declared = rng.choice(others)
        ai_log(
            f"{player.name} passes {card.id} ({card.name}) declaring {declared}"
            f"{' [BLUFF]' if declared != card.name else ''}"
        )
        return CpuAction(CpuActionType.PASS, card_id=card.id, declared_name=declared)

    @staticmethod
    def consider_bluff_call(
        room: GameRoom,
        player: Player,
        chat: list[ChatMessage],
        rng: random.Random,
        call_probability: float,
    ) -> CpuAction:
        """Maybe call bluff on the latest declaration of this round."""
        declaration = latest_declaration(chat)
        if declaration is None or declaration.round != room.current_round:
            return CpuAction.wait()
        if declaration.player_id == player.id:
            return CpuAction.wait()
        if rng.random() >= call_probability:
            return CpuAction.wait()
        ai_log(f"{player.name} calls bluff on {declaration.declared_name} ({declaration.card_id})")
        return CpuAction(
            CpuActionType.CALL_BLUFF,
            card_id=declaration.card_id,
            target_player_id=declaration.recipient_id,
        )

    @staticmethod
    def decide(
        room: GameRoom,
        player: Player,
        chat: list[ChatMessage],
        rng: random.Random,
        bluff_probability: Optional[float] = None,
        call_probability: Optional[float] = None,
    ) -> CpuAction:
        """
        Choose one action for a computer player.

        Args:
            room: Current room snapshot.
            player: The computer player deciding.
            chat: Room chat log, sorted.
            rng: Randomness source.
            bluff_probability: Chance of declaring a false name when passing.
            call_probability: Chance of calling bluff on a declaration.

        Returns:
            The chosen action; CpuActionType.WAIT when there is nothing to do.
        """
        if bluff_probability is None:
            bluff_probability = config.computer.BLUFF_PROBABILITY
        if call_probability is None:
            call_probability = config.computer.CALL_PROBABILITY

        if room.phase == GamePhase.MEMORIZING:
            if not player.is_ready:
                return CpuAction(CpuActionType.READY)
            return CpuAction.wait()

        if room.phase == GamePhase.PLAYING:
            if len(player.hand) == 2:
                return BluffAI.choose_pass(room, player, rng, bluff_probability)
            return BluffAI.consider_bluff_call(room, player, chat, rng, call_probability)

        return CpuAction.wait()


async def process_computer_turns(
    manager: "RoomManager",
    room_id: str,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Let every computer player in a room act once.

    Each decision is made on a fresh snapshot, so an earlier computer's
    pass or bluff call is seen by the ones after it. Actions rejected by
    the room (typically a lost race with a human) are logged and skipped.

    Returns:
        Number of actions applied.
    """
    rng = rng or random.Random()
    room = await manager.get_room(room_id)
    if room is None:
        return 0

    applied = 0
    for cpu_id in [p.id for p in room.ring_order() if p.is_computer]:
        room = await manager.get_room(room_id)
        if room is None or room.phase not in (GamePhase.MEMORIZING, GamePhase.PLAYING):
            break
        player = room.players[cpu_id]
        chat = await manager.get_chat_messages(room_id)
        action = BluffAI.decide(room, player, chat, rng)

        try:
            if action.type == CpuActionType.READY:
                await manager.set_ready(room_id, cpu_id)
            elif action.type == CpuActionType.PASS:
                await manager.pass_card(room_id, cpu_id, action.card_id, action.declared_name)
            elif action.type == CpuActionType.CALL_BLUFF:
                await manager.call_bluff(room_id, cpu_id, action.target_player_id, action.card_id)
            else:
                continue
        except GameError as e:
            logger.info(f"Computer {player.name} {action.type.value} in room {room_id} skipped: {e}")
            continue
        applied += 1

    return applied

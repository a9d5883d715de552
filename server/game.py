"""
Game logic for Pass the Bluff.

This module implements the core game mechanics: the card catalog and
unique dealing, player and room state, ring routing of passed cards, and
bluff judgement with the round reset that follows it.

Pass the Bluff Rules Summary:
    - Players sit in a fixed ring ordered by join position
    - Each round deals N+1 distinct cards: one per player, plus one extra
      for whoever goes first
    - Everybody memorizes the cards, then all cards are hidden
    - The player holding two cards passes one of them, announcing what it
      is (truthfully or not); the card's arrow alone decides whether it
      goes to the next or the previous seat
    - Any other player may call bluff on the latest announcement; a right
      call scores for the caller, a wrong call scores for the target
    - The round winner starts the next round with the extra card

Phases:
    WAITING -> MEMORIZING -> PLAYING -> ROUND_END -> MEMORIZING -> ...
"""

import random
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional

from constants import CARD_ITEMS, MAX_PLAYERS, MIN_PLAYERS
from errors import (
    CallerIsDeclarant,
    CardNotFound,
    IllegalPhaseTransition,
    InsufficientCardTypes,
    InvalidDeclaration,
    NoDeclaration,
    NotEnoughPlayers,
    NotHost,
    NotYourTurn,
    PlayerAlreadyInRoom,
    PlayerNotFound,
    RoomFull,
)
from ids import IdGenerator


class Arrow(str, Enum):
    """Direction a card travels when passed. Fixed when the card is dealt."""

    LEFT = "left"
    RIGHT = "right"


class GamePhase(str, Enum):
    """
    Room phases.

    WAITING: Lobby, players join and computers are added
    MEMORIZING: Cards are face-up, players mark themselves ready
    PLAYING: Cards are hidden, the two-card holder passes
    ROUND_END: A bluff was called; the result is shown until the reset
    GAME_OVER: Declared for clients, never entered (rounds loop forever)
    """

    WAITING = "waiting"
    MEMORIZING = "memorizing"
    PLAYING = "playing"
    ROUND_END = "round_end"
    GAME_OVER = "game_over"


class MessageKind(str, Enum):
    """Kinds of chat log entries."""

    CHAT = "chat"
    SYSTEM = "system"
    DECLARATION = "declaration"


@dataclass(frozen=True)
class CardType:
    """A catalog entry: item name and the icon the client draws for it."""

    name: str
    icon_name: str


CARD_CATALOG: tuple[CardType, ...] = tuple(CardType(name, icon) for name, icon in CARD_ITEMS)


@dataclass
class Card:
    """
    A dealt card.

    Attributes:
        id: Unique card id, stable for the card's lifetime.
        name: Item name from the catalog (secret while cards are hidden).
        icon_name: Client icon for the item.
        arrow: Direction the card travels when passed.
    """

    id: str
    name: str
    icon_name: str
    arrow: Arrow

    def to_dict(self) -> dict:
        """Full card data, for storage."""
        return {
            "id": self.id,
            "name": self.name,
            "icon_name": self.icon_name,
            "arrow": self.arrow.value,
        }

    def to_client_dict(self, visible: bool) -> dict:
        """
        Card data for a client.

        Hidden cards keep their id and arrow (both are printed on the back)
        but not the item.
        """
        if visible:
            return {**self.to_dict(), "visible": True}
        return {"id": self.id, "arrow": self.arrow.value, "visible": False}

    @classmethod
    def from_dict(cls, d: dict) -> "Card":
        return cls(
            id=d["id"],
            name=d["name"],
            icon_name=d["icon_name"],
            arrow=Arrow(d["arrow"]),
        )


class CardPool:
    """
    Deals cards from the catalog.

    Every card dealt in a round has a distinct name, so a pool can produce
    at most len(catalog) cards at once. Randomness and ids are injected so
    tests can seed the deal.
    """

    def __init__(
        self,
        catalog: tuple[CardType, ...] = CARD_CATALOG,
        rng: Optional[random.Random] = None,
        ids: Optional[IdGenerator] = None,
    ) -> None:
        self.catalog = catalog
        self.rng = rng or random.Random()
        self.ids = ids or IdGenerator()

    def _make_card(self, card_type: CardType) -> Card:
        arrow = Arrow.RIGHT if self.rng.random() < 0.5 else Arrow.LEFT
        return Card(
            id=self.ids.new_id("card_"),
            name=card_type.name,
            icon_name=card_type.icon_name,
            arrow=arrow,
        )

    def draw_unique(self, count: int) -> list[Card]:
        """
        Draw cards with pairwise-distinct names.

        Args:
            count: Number of cards wanted.

        Returns:
            Cards in shuffled order.

        Raises:
            InsufficientCardTypes: If count exceeds the catalog size.
        """
        if count > len(self.catalog):
            raise InsufficientCardTypes(
                f"Cannot generate {count} unique cards. "
                f"Only {len(self.catalog)} card types available."
            )
        shuffled = list(self.catalog)
        self.rng.shuffle(shuffled)
        return [self._make_card(card_type) for card_type in shuffled[:count]]

    def draw_unused(self, names_in_play: set[str]) -> Optional[Card]:
        """Draw one card whose name is not in play, or None if none is left."""
        available = [t for t in self.catalog if t.name not in names_in_play]
        if not available:
            return None
        return self._make_card(self.rng.choice(available))


@dataclass
class Player:
    """
    A seated player.

    Attributes:
        id: Stable player id supplied by the identity layer.
        name: Display name.
        hand: Cards held, front first (the front slot is the one just received).
        is_ready: Whether the player finished memorizing.
        score: Rounds won.
        is_host: Whether this player created the room.
        position: Seat number; fixed at join time.
        is_computer: Whether a scripted policy plays this seat.
    """

    id: str
    name: str
    hand: list[Card] = field(default_factory=list)
    is_ready: bool = False
    score: int = 0
    is_host: bool = False
    position: int = 0
    is_computer: bool = False

    def find_card(self, card_id: str) -> Optional[Card]:
        for card in self.hand:
            if card.id == card_id:
                return card
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "hand": [c.to_dict() for c in self.hand],
            "is_ready": self.is_ready,
            "score": self.score,
            "is_host": self.is_host,
            "position": self.position,
            "is_computer": self.is_computer,
        }

    def to_client_dict(self, cards_visible: bool) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cards": [c.to_client_dict(cards_visible) for c in self.hand],
            "card_count": len(self.hand),
            "is_ready": self.is_ready,
            "score": self.score,
            "is_host": self.is_host,
            "position": self.position,
            "is_computer": self.is_computer,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Player":
        return cls(
            id=d["id"],
            name=d["name"],
            hand=[Card.from_dict(c) for c in d.get("hand", [])],
            is_ready=d.get("is_ready", False),
            score=d.get("score", 0),
            is_host=d.get("is_host", False),
            position=d.get("position", 0),
            is_computer=d.get("is_computer", False),
        )


@dataclass
class BluffResult:
    """Outcome of a bluff call, shown to everyone until the next deal."""

    show: bool
    message: str
    is_correct_call: bool
    caller_name: str
    target_name: str
    actual_card_name: str
    declared_card_name: str
    winner_id: str
    round: int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "BluffResult":
        return cls(**d)


@dataclass
class ChatMessage:
    """
    A chat log entry.

    Declarations carry the declared item explicitly, plus the public facts
    of the pass (which card id went to which player). The text is only
    for display.
    """

    id: str
    player_id: str
    player_name: str
    text: str
    timestamp: float
    kind: MessageKind = MessageKind.CHAT
    round: int = 0
    declared_name: Optional[str] = None
    card_id: Optional[str] = None
    recipient_id: Optional[str] = None

    @property
    def is_declaration(self) -> bool:
        return self.kind == MessageKind.DECLARATION

    def to_dict(self) -> dict:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ChatMessage":
        return cls(**{**d, "kind": MessageKind(d["kind"])})


def latest_declaration(messages: list[ChatMessage]) -> Optional[ChatMessage]:
    """Return the most recent declaration in a chat log, if any."""
    for message in reversed(messages):
        if message.is_declaration:
            return message
    return None


@dataclass
class PassOutcome:
    """What happened during a pass: the card, who sent it, who got it."""

    card: Card
    sender: Player
    recipient: Player
    topped_up: Optional[Card] = None


@dataclass
class GameRoom:
    """
    Authoritative state of one room.

    Manages the full round lifecycle:
        - Seating (join order defines the ring)
        - Dealing N+1 unique cards
        - Ready-up and hiding the cards
        - Card passing along the ring
        - Bluff calls and the round reset

    The active player during PLAYING is derived (whoever holds two cards);
    current_turn only records who was dealt the extra card.

    Attributes:
        id: Room id.
        players: Players by id, in join order.
        phase: Current phase.
        current_turn: Player dealt the extra card this round.
        current_round: Round counter (0 before the first deal).
        cards_visible: Whether card faces are shown to clients.
        bluff_result: Latest bluff call result, if any.
        created_at: Creation time (epoch seconds).
        version: Commit counter used by stores for compare-and-set.
    """

    id: str
    players: dict[str, Player] = field(default_factory=dict)
    phase: GamePhase = GamePhase.WAITING
    current_turn: Optional[str] = None
    current_round: int = 0
    max_players: int = MAX_PLAYERS
    min_players: int = MIN_PLAYERS
    cards_visible: bool = True
    bluff_result: Optional[BluffResult] = None
    created_at: float = field(default_factory=time.time)
    version: int = 0

    # -------------------------------------------------------------------------
    # Seating
    # -------------------------------------------------------------------------

    def _require_phase(self, *phases: GamePhase, action: str) -> None:
        if self.phase not in phases:
            raise IllegalPhaseTransition(f"Cannot {action} while room is {self.phase.value}")

    def get_player(self, player_id: str) -> Player:
        """Look up a player or raise PlayerNotFound."""
        player = self.players.get(player_id)
        if player is None:
            raise PlayerNotFound(f"Player {player_id} is not in room {self.id}")
        return player

    @property
    def host(self) -> Optional[Player]:
        return next((p for p in self.players.values() if p.is_host), None)

    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    def add_player(self, player: Player) -> Player:
        """
        Seat a player in the lobby.

        The first player seated is the host at position 0; everyone after
        sits at one past the highest existing position.

        Raises:
            IllegalPhaseTransition: If the game has already started.
            RoomFull: If max_players are seated.
            PlayerAlreadyInRoom: If the id is already seated.
        """
        self._require_phase(GamePhase.WAITING, action="join")
        if self.is_full():
            raise RoomFull(f"Room {self.id} is full")
        if player.id in self.players:
            raise PlayerAlreadyInRoom(f"{player.name} is already in room {self.id}")

        if self.players:
            player.position = max(p.position for p in self.players.values()) + 1
            player.is_host = False
        else:
            player.position = 0
            player.is_host = True
        self.players[player.id] = player
        return player

    def ring_order(self) -> list[Player]:
        """Players in seating order (ascending position)."""
        return sorted(self.players.values(), key=lambda p: p.position)

    def active_player(self) -> Optional[Player]:
        """
        The player whose move it is.

        During PLAYING this is whoever holds exactly two cards. Outside it
        falls back to current_turn (the player dealt the extra card).
        """
        if self.phase == GamePhase.PLAYING:
            holders = [p for p in self.players.values() if len(p.hand) == 2]
            return holders[0] if len(holders) == 1 else None
        if self.current_turn:
            return self.players.get(self.current_turn)
        return None

    def cards_in_play(self) -> list[str]:
        """Sorted unique names of all cards held by players."""
        return sorted({c.name for p in self.players.values() for c in p.hand})

    def total_cards(self) -> int:
        return sum(len(p.hand) for p in self.players.values())

    # -------------------------------------------------------------------------
    # Dealing and readiness
    # -------------------------------------------------------------------------

    def _deal(self, pool: CardPool, starter_id: str) -> None:
        """Deal one card to everyone and the extra card to the starter."""
        cards = pool.draw_unique(len(self.players) + 1)
        for player, card in zip(self.players.values(), cards):
            player.hand = [card]
        self.players[starter_id].hand.append(cards[-1])
        self.current_turn = starter_id
        self.phase = GamePhase.MEMORIZING
        self.cards_visible = True

    def start_game(self, pool: CardPool, requester_id: Optional[str] = None) -> Player:
        """
        Deal the first round.

        Args:
            pool: Card pool to deal from.
            requester_id: Who asked to start; must be the host when given.

        Returns:
            The first player (lowest position), who holds two cards.
        """
        self._require_phase(GamePhase.WAITING, action="start the game")
        if requester_id is not None:
            requester = self.get_player(requester_id)
            if not requester.is_host:
                raise NotHost("Only the host can start the game")
        if len(self.players) < self.min_players:
            raise NotEnoughPlayers(f"Need at least {self.min_players} players to start")

        starter = self.ring_order()[0]
        self._deal(pool, starter.id)
        self.current_round = 1
        for player in self.players.values():
            player.is_ready = player.is_computer
        return starter

    def all_ready(self) -> bool:
        return all(p.is_ready for p in self.players.values())

    def set_ready(self, player_id: str) -> bool:
        """
        Mark a player done memorizing.

        Returns:
            True if this made everyone ready and play began.
        """
        self._require_phase(GamePhase.MEMORIZING, action="ready up")
        self.get_player(player_id).is_ready = True
        if not self.all_ready():
            return False
        self.phase = GamePhase.PLAYING
        self.cards_visible = False
        return True

    # -------------------------------------------------------------------------
    # Passing
    # -------------------------------------------------------------------------

    def pass_target(self, player_id: str, card: Card) -> Player:
        """
        Where a card goes when passed by a player.

        Right arrows go to the next seat in ring order, left arrows to the
        previous one, wrapping around.
        """
        ring = self.ring_order()
        index = next(i for i, p in enumerate(ring) if p.id == player_id)
        if card.arrow == Arrow.RIGHT:
            return ring[(index + 1) % len(ring)]
        return ring[(index - 1 + len(ring)) % len(ring)]

    def pass_card(
        self,
        player_id: str,
        card_id: str,
        declared_name: str,
        pool: CardPool,
    ) -> PassOutcome:
        """
        Pass one of the active player's cards along the ring.

        The card goes to the front of the recipient's hand. If the
        recipient then holds fewer than two cards they are topped up with
        a fresh card whose name is not in play (skipped if none is left).

        Raises:
            IllegalPhaseTransition: If not PLAYING.
            NotYourTurn: If the player does not hold two cards.
            InvalidDeclaration: If declared_name is blank.
            CardNotFound: If the card is not in the player's hand.
        """
        self._require_phase(GamePhase.PLAYING, action="pass a card")
        sender = self.get_player(player_id)
        if len(sender.hand) != 2:
            raise NotYourTurn("Not your turn - you must have 2 cards to pass")
        if not declared_name or not declared_name.strip():
            raise InvalidDeclaration("Declare what you are passing")
        card = sender.find_card(card_id)
        if card is None:
            raise CardNotFound(f"Card {card_id} is not in {sender.name}'s hand")

        recipient = self.pass_target(sender.id, card)
        sender.hand.remove(card)
        recipient.hand.insert(0, card)

        topped_up = None
        if len(recipient.hand) < 2:
            topped_up = pool.draw_unused(set(self.cards_in_play()))
            if topped_up:
                recipient.hand.append(topped_up)

        return PassOutcome(card=card, sender=sender, recipient=recipient, topped_up=topped_up)

    # -------------------------------------------------------------------------
    # Bluff calls and round reset
    # -------------------------------------------------------------------------

    def call_bluff(
        self,
        caller_id: str,
        target_id: str,
        card_id: str,
        declaration: Optional[ChatMessage],
    ) -> BluffResult:
        """
        Judge the latest declaration against the real card.

        The declaration is a bluff if the card's name differs from the
        declared name (ignoring case). A right call scores for the caller,
        a wrong one for the target; the scorer wins the round. The room
        then waits in ROUND_END until reset_round deals the next round.

        Args:
            caller_id: Player calling bluff.
            target_id: Player holding the card being checked.
            card_id: Card to check.
            declaration: Latest declaration in the chat log.

        Raises:
            IllegalPhaseTransition: If not PLAYING.
            NoDeclaration: If there is no declaration this round.
            CallerIsDeclarant: If the caller made the declaration.
            CardNotFound: If the target does not hold the card.
        """
        self._require_phase(GamePhase.PLAYING, action="call bluff")
        if declaration is None or declaration.round != self.current_round:
            raise NoDeclaration("No declaration found")
        caller = self.get_player(caller_id)
        if caller.id == declaration.player_id:
            raise CallerIsDeclarant("You cannot call bluff on your own declaration")
        target = self.get_player(target_id)
        card = target.find_card(card_id)
        if card is None:
            raise CardNotFound(f"Card {card_id} is not in {target.name}'s hand")

        declared = declaration.declared_name or ""
        is_bluff = card.name.lower() != declared.lower()
        if is_bluff:
            winner = caller
            message = f"{caller.name} correctly called bluff and wins the round!"
        else:
            winner = target
            message = f"{caller.name} was wrong! {target.name} wins the round!"
        winner.score += 1

        self.bluff_result = BluffResult(
            show=True,
            message=message,
            is_correct_call=is_bluff,
            caller_name=caller.name,
            target_name=target.name,
            actual_card_name=card.name,
            declared_card_name=declared,
            winner_id=winner.id,
            round=self.current_round,
        )
        self.phase = GamePhase.ROUND_END
        return self.bluff_result

    def reset_round(self, pool: CardPool, for_round: int) -> Optional[Player]:
        """
        Deal the next round after a bluff call.

        A reset scheduled for an earlier round, or arriving when the room
        is not waiting on a bluff result, does nothing.

        Returns:
            The round winner (who now holds two cards), or None if stale.
        """
        result = self.bluff_result
        if (
            self.phase != GamePhase.ROUND_END
            or self.current_round != for_round
            or result is None
            or result.round != for_round
        ):
            return None

        winner = self.players.get(result.winner_id) or self.ring_order()[0]
        self._deal(pool, winner.id)
        self.current_round += 1
        for player in self.players.values():
            player.is_ready = False
        result.show = False
        return winner

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Full room document, for storage."""
        return {
            "id": self.id,
            "players": [p.to_dict() for p in self.players.values()],
            "phase": self.phase.value,
            "current_turn": self.current_turn,
            "current_round": self.current_round,
            "max_players": self.max_players,
            "min_players": self.min_players,
            "cards_visible": self.cards_visible,
            "bluff_result": self.bluff_result.to_dict() if self.bluff_result else None,
            "created_at": self.created_at,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "GameRoom":
        players = [Player.from_dict(p) for p in d.get("players", [])]
        bluff = d.get("bluff_result")
        return cls(
            id=d["id"],
            players={p.id: p for p in players},
            phase=GamePhase(d.get("phase", GamePhase.WAITING.value)),
            current_turn=d.get("current_turn"),
            current_round=d.get("current_round", 0),
            max_players=d.get("max_players", MAX_PLAYERS),
            min_players=d.get("min_players", MIN_PLAYERS),
            cards_visible=d.get("cards_visible", True),
            bluff_result=BluffResult.from_dict(bluff) if bluff else None,
            created_at=d.get("created_at", 0.0),
            version=d.get("version", 0),
        )

    def to_client_dict(self, for_player_id: Optional[str] = None) -> dict:
        """
        Room snapshot for a client.

        Card faces are included only while cards_visible is set; hidden
        cards still show their id and arrow.

        Args:
            for_player_id: Viewer's player id (echoed back as "you").
        """
        active = self.active_player()
        return {
            "room_id": self.id,
            "you": for_player_id,
            "phase": self.phase.value,
            "current_round": self.current_round,
            "turn_player_id": active.id if active else None,
            "cards_visible": self.cards_visible,
            "max_players": self.max_players,
            "min_players": self.min_players,
            "players": [p.to_client_dict(self.cards_visible) for p in self.ring_order()],
            "cards_in_play": self.cards_in_play(),
            "bluff_result": self.bluff_result.to_dict() if self.bluff_result else None,
            "created_at": self.created_at,
        }

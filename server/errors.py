"""
Game errors raised by room operations.

Every rejected operation raises a GameError subclass before anything is
mutated, so the caller can surface the code to the client and the stored
room stays as it was.
"""


class GameError(Exception):
    """Base exception for rule violations and lookup failures."""

    code = "GAME_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"[{self.code}] {message}")


class RoomNotFound(GameError):
    code = "ROOM_NOT_FOUND"


class RoomAlreadyExists(GameError):
    code = "ROOM_ALREADY_EXISTS"


class RoomFull(GameError):
    code = "ROOM_FULL"


class NotEnoughPlayers(GameError):
    code = "NOT_ENOUGH_PLAYERS"


class IllegalPhaseTransition(GameError):
    """Operation is not legal in the room's current phase."""
    code = "ILLEGAL_PHASE_TRANSITION"


class NotYourTurn(IllegalPhaseTransition):
    """Only the player holding two cards may pass."""
    code = "NOT_YOUR_TURN"


class NotHost(GameError):
    code = "NOT_HOST"


class PlayerNotFound(GameError):
    code = "PLAYER_NOT_FOUND"


class PlayerAlreadyInRoom(GameError):
    code = "PLAYER_ALREADY_IN_ROOM"


class CardNotFound(GameError):
    code = "CARD_NOT_FOUND"


class InvalidDeclaration(GameError):
    code = "INVALID_DECLARATION"


class CallerIsDeclarant(GameError):
    code = "CALLER_IS_DECLARANT"


class NoDeclaration(GameError):
    code = "NO_DECLARATION"


class InsufficientCardTypes(GameError):
    code = "INSUFFICIENT_CARD_TYPES"


class NoNamesAvailable(GameError):
    code = "NO_NAMES_AVAILABLE"

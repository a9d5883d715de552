"""Id generation for cards, players and chat messages."""

import itertools
import uuid


class IdGenerator:
    """Random, collision-free ids (uuid4 hex)."""

    def new_id(self, prefix: str = "") -> str:
        return f"{prefix}{uuid.uuid4().hex[:12]}"


class SequentialIdGenerator(IdGenerator):
    """
    Monotonic ids, for deterministic tests and replays.

    Ids look like "card_1", "msg_2"; the counter is shared across prefixes
    so no two ids ever repeat.
    """

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def new_id(self, prefix: str = "") -> str:
        return f"{prefix}{next(self._counter)}"

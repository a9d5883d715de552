"""
Delayed round resets.

After a bluff call the result stays on screen for a few seconds before the
next round is dealt. Each pending reset is an asyncio task keyed by
(room_id, round), so a reset can be cancelled, is never scheduled twice,
and can be checked against the room's round when it fires.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

ResetCallback = Callable[[str, int], Awaitable[None]]


class RoundResetScheduler:
    """Runs one delayed callback per (room_id, round)."""

    def __init__(self) -> None:
        self._tasks: dict[tuple[str, int], asyncio.Task] = {}

    def schedule(
        self,
        room_id: str,
        round_num: int,
        delay: float,
        callback: ResetCallback,
    ) -> bool:
        """
        Schedule callback(room_id, round_num) after delay seconds.

        Returns:
            False if a reset for this key is already pending.
        """
        key = (room_id, round_num)
        if key in self._tasks:
            return False
        self._tasks[key] = asyncio.create_task(self._run(key, delay, callback))
        logger.debug(f"Scheduled reset for room {room_id} round {round_num} in {delay}s")
        return True

    async def _run(self, key: tuple[str, int], delay: float, callback: ResetCallback) -> None:
        try:
            await asyncio.sleep(delay)
            await callback(*key)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Round reset for room {key[0]} round {key[1]} failed: {e}", exc_info=True)
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    def is_pending(self, room_id: str, round_num: int) -> bool:
        return (room_id, round_num) in self._tasks

    def pending(self) -> set[tuple[str, int]]:
        return set(self._tasks)

    def cancel(self, room_id: str, round_num: int) -> bool:
        """Cancel a pending reset. Returns False if none was pending."""
        task: Optional[asyncio.Task] = self._tasks.pop((room_id, round_num), None)
        if task is None:
            return False
        task.cancel()
        return True

    async def wait_all(self) -> None:
        """Wait for every pending reset to finish."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all pending resets."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Round reset scheduler stopped ({len(tasks)} pending resets cancelled)")

"""
Tests for the delayed round reset scheduler.

Covers scheduling, duplicate keys, cancellation, error containment
and shutdown.
"""

import asyncio

import pytest

from services.round_reset import RoundResetScheduler


class Recorder:
    """Async callback that records its calls."""

    def __init__(self, fail: bool = False):
        self.calls: list[tuple[str, int]] = []
        self.fail = fail

    async def __call__(self, room_id: str, round_num: int) -> None:
        self.calls.append((room_id, round_num))
        if self.fail:
            raise RuntimeError("reset blew up")


class TestRoundResetScheduler:

    @pytest.mark.asyncio
    async def test_runs_callback_after_delay(self):
        scheduler = RoundResetScheduler()
        recorder = Recorder()

        assert scheduler.schedule("ABCD", 1, 0, recorder) is True
        assert scheduler.is_pending("ABCD", 1)
        await scheduler.wait_all()

        assert recorder.calls == [("ABCD", 1)]
        assert not scheduler.is_pending("ABCD", 1)

    @pytest.mark.asyncio
    async def test_duplicate_key_ignored(self):
        scheduler = RoundResetScheduler()
        recorder = Recorder()

        assert scheduler.schedule("ABCD", 1, 0, recorder) is True
        assert scheduler.schedule("ABCD", 1, 0, recorder) is False
        await scheduler.wait_all()

        assert recorder.calls == [("ABCD", 1)]

    @pytest.mark.asyncio
    async def test_keys_are_per_room_and_round(self):
        scheduler = RoundResetScheduler()
        recorder = Recorder()

        scheduler.schedule("ABCD", 1, 0, recorder)
        scheduler.schedule("ABCD", 2, 0, recorder)
        scheduler.schedule("WXYZ", 1, 0, recorder)
        assert scheduler.pending() == {("ABCD", 1), ("ABCD", 2), ("WXYZ", 1)}
        await scheduler.wait_all()

        assert sorted(recorder.calls) == [("ABCD", 1), ("ABCD", 2), ("WXYZ", 1)]

    @pytest.mark.asyncio
    async def test_cancel(self):
        scheduler = RoundResetScheduler()
        recorder = Recorder()

        scheduler.schedule("ABCD", 1, 60, recorder)
        assert scheduler.cancel("ABCD", 1) is True
        assert scheduler.cancel("ABCD", 1) is False
        await asyncio.sleep(0)

        assert recorder.calls == []
        assert scheduler.pending() == set()

    @pytest.mark.asyncio
    async def test_can_reschedule_after_cancel(self):
        scheduler = RoundResetScheduler()
        recorder = Recorder()

        scheduler.schedule("ABCD", 1, 60, recorder)
        scheduler.cancel("ABCD", 1)
        assert scheduler.schedule("ABCD", 1, 0, recorder) is True
        await scheduler.wait_all()

        assert recorder.calls == [("ABCD", 1)]

    @pytest.mark.asyncio
    async def test_callback_error_is_contained(self):
        scheduler = RoundResetScheduler()
        recorder = Recorder(fail=True)

        scheduler.schedule("ABCD", 1, 0, recorder)
        await scheduler.wait_all()

        assert recorder.calls == [("ABCD", 1)]
        assert scheduler.pending() == set()

    @pytest.mark.asyncio
    async def test_shutdown_cancels_everything(self):
        scheduler = RoundResetScheduler()
        recorder = Recorder()

        scheduler.schedule("ABCD", 1, 60, recorder)
        scheduler.schedule("WXYZ", 4, 60, recorder)
        await scheduler.shutdown()

        assert scheduler.pending() == set()
        assert recorder.calls == []

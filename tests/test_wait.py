"""Tests for fixed-interval polling."""

import asyncio

import pytest

from penguinctl.wait import WaitCancelledError, WaitTimeoutError, wait_until


class Counter:
    """Check that succeeds on the given attempt."""

    def __init__(self, succeed_on: int | None = None):
        self.succeed_on = succeed_on
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.succeed_on is not None and self.calls >= self.succeed_on


class TestWaitUntil:
    """Polling semantics."""

    @pytest.mark.asyncio
    async def test_immediate_success_does_not_sleep(self):
        check = Counter(succeed_on=1)
        await wait_until(check, interval=60)
        assert check.calls == 1

    @pytest.mark.asyncio
    async def test_polls_until_done(self):
        check = Counter(succeed_on=3)
        await wait_until(check, interval=0.01)
        assert check.calls == 3

    @pytest.mark.asyncio
    async def test_check_error_propagates_without_retry(self):
        calls = 0

        async def check() -> bool:
            nonlocal calls
            calls += 1
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await wait_until(check, interval=0.01)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_cancel_aborts_pending_sleep(self):
        check = Counter()
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, cancel.set)

        with pytest.raises(WaitCancelledError):
            await asyncio.wait_for(wait_until(check, interval=30, cancel=cancel), 5)
        assert check.calls == 1

    @pytest.mark.asyncio
    async def test_timeout(self):
        check = Counter()
        with pytest.raises(WaitTimeoutError):
            await wait_until(check, interval=0.02, timeout=0.1)
        assert check.calls >= 2

    @pytest.mark.asyncio
    async def test_timeout_is_a_cancellation(self):
        check = Counter()
        with pytest.raises(WaitCancelledError):
            await wait_until(check, interval=0.01, timeout=0.03)

    @pytest.mark.asyncio
    async def test_deadline_clips_long_interval(self):
        check = Counter()
        with pytest.raises(WaitTimeoutError):
            await asyncio.wait_for(wait_until(check, interval=30, timeout=0.05), 5)

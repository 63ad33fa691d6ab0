"""Unit tests for CancellationToken."""

import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest

from llmstream.cancellation import CancellationToken
from llmstream.exceptions import ErrorCode, OperationCancelledError


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_initial_state(self):
        """Test a fresh token is not cancelled."""
        token = CancellationToken()

        assert not token.is_cancelled()
        token.check_cancelled()

    def test_cancel_is_idempotent(self):
        """Test repeated cancel calls run callbacks once."""
        token = CancellationToken()
        callback = MagicMock()
        token.add_callback(callback)

        token.cancel()
        token.cancel()

        assert token.is_cancelled()
        callback.assert_called_once_with()

    def test_check_cancelled_raises(self):
        """Test check_cancelled raises OperationCancelledError."""
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledError) as exc_info:
            token.check_cancelled()

        assert exc_info.value.error_code == ErrorCode.CANCELLED

    def test_callback_added_after_cancel_runs_immediately(self):
        """Test late callbacks still run."""
        token = CancellationToken()
        token.cancel()
        callback = MagicMock()

        token.add_callback(callback)

        callback.assert_called_once_with()

    def test_removed_callback_is_not_run(self):
        """Test remove_callback."""
        token = CancellationToken()
        callback = MagicMock()
        token.add_callback(callback)
        token.remove_callback(callback)

        token.cancel()

        callback.assert_not_called()

    def test_failing_callback_does_not_block_others(self):
        """Test a raising callback is logged and the rest still run."""
        token = CancellationToken()
        second = MagicMock()
        token.add_callback(MagicMock(side_effect=RuntimeError("boom")))
        token.add_callback(second)

        token.cancel()

        second.assert_called_once_with()
        assert token.is_cancelled()

    def test_concurrent_cancel_from_threads(self):
        """Test many threads cancelling at once flip the flag once."""
        token = CancellationToken()
        callback = MagicMock()
        token.add_callback(callback)

        threads = [threading.Thread(target=token.cancel) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert token.is_cancelled()
        callback.assert_called_once_with()


class TestCancellationTokenAsync:
    """Tests for the asyncio helpers of CancellationToken."""

    @pytest.mark.asyncio
    async def test_sleep_completes(self):
        """Test sleep returns normally when not cancelled."""
        token = CancellationToken()

        await token.sleep(0.01)

        assert not token.is_cancelled()

    @pytest.mark.asyncio
    async def test_sleep_raises_if_already_cancelled(self):
        """Test sleep checks the token before waiting."""
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            await token.sleep(10)

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        """Test cancelling during sleep wakes it early."""
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)
        started = time.monotonic()

        with pytest.raises(OperationCancelledError):
            await token.sleep(10)

        assert time.monotonic() - started < 5

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel_from_thread(self):
        """Test cancelling from another thread wakes the sleeping task."""
        token = CancellationToken()
        timer = threading.Timer(0.01, token.cancel)
        timer.start()
        started = time.monotonic()

        try:
            with pytest.raises(OperationCancelledError):
                await token.sleep(10)
        finally:
            timer.cancel()

        assert time.monotonic() - started < 5

    @pytest.mark.asyncio
    async def test_cancel_after(self):
        """Test cancel_after cancels the token once the delay passes."""
        token = CancellationToken()

        token.cancel_after(0.01)
        await asyncio.sleep(0.05)

        assert token.is_cancelled()

    @pytest.mark.asyncio
    async def test_cancel_after_disarmed(self):
        """Test cancelling the returned handle disarms the deadline."""
        token = CancellationToken()

        handle = token.cancel_after(0.01)
        handle.cancel()
        await asyncio.sleep(0.05)

        assert not token.is_cancelled()

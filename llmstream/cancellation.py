"""
Cooperative cancellation for in-flight LLM requests.

A ``CancellationToken`` is a plain flag object owned by whoever issues a
request. Work only ever reads it, at explicit check points, so cancelling
before the work starts and cancelling while it runs behave the same way.
"""

import asyncio
import logging
import threading
from typing import Callable

from llmstream.exceptions import OperationCancelledError

logger = logging.getLogger(__name__)

CancelCallback = Callable[[], None]


class CancellationToken:
    """
    Single-writer, multi-reader cooperative cancellation signal.

    The flag transitions from "not cancelled" to "cancelled" exactly once and
    never back. The transition is guarded by a lock so ``cancel()`` may be
    called from another thread or task while the owning request checks the
    token.

    Examples
    --------
    >>> token = CancellationToken()
    >>> token.is_cancelled()
    False
    >>> token.cancel()
    >>> token.is_cancelled()
    True
    >>> token.check_cancelled()
    Traceback (most recent call last):
        ...
    llmstream.exceptions.OperationCancelledError: [CANCELLED] The operation was cancelled
    """

    def __init__(self) -> None:
        self._cancelled: bool = False
        self._lock: threading.Lock = threading.Lock()
        self._callbacks: list[CancelCallback] = []

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"

    def cancel(self) -> None:
        """
        Cancel the token.

        Idempotent: only the first call flips the flag and runs the
        registered callbacks.
        """
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []

        logger.debug("Cancellation requested")
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}", exc_info=True)

    def is_cancelled(self) -> bool:
        """Return whether ``cancel()`` has been called."""
        return self._cancelled

    def check_cancelled(self) -> None:
        """
        Raise if the token has been cancelled.

        Raises
        ------
        OperationCancelledError
            If ``cancel()`` has been called.
        """
        if self._cancelled:
            raise OperationCancelledError()

    def add_callback(self, callback: CancelCallback) -> None:
        """
        Register a callback to run once when the token is cancelled.

        If the token is already cancelled the callback runs immediately.

        Parameters
        ----------
        callback : Callable[[], None]
            Zero-argument function to invoke on cancellation.
        """
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: CancelCallback) -> None:
        """Unregister a callback previously passed to ``add_callback``."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    async def sleep(self, delay: float) -> None:
        """
        Sleep for ``delay`` seconds, waking early if the token is cancelled.

        Parameters
        ----------
        delay : float
            Time to wait in seconds.

        Raises
        ------
        OperationCancelledError
            If the token is cancelled before or during the wait.
        """
        self.check_cancelled()

        loop = asyncio.get_running_loop()
        woken: asyncio.Future[None] = loop.create_future()

        def _resolve() -> None:
            if not woken.done():
                woken.set_result(None)

        def _wake() -> None:
            loop.call_soon_threadsafe(_resolve)

        self.add_callback(_wake)
        try:
            await asyncio.wait([woken], timeout=delay)
        finally:
            self.remove_callback(_wake)
            if not woken.done():
                woken.cancel()

        self.check_cancelled()

    def cancel_after(self, delay: float) -> asyncio.TimerHandle:
        """
        Schedule ``cancel()`` on the running event loop after ``delay`` seconds.

        This is how deadlines are composed with a token; the returned handle
        can be cancelled to disarm the deadline.

        Parameters
        ----------
        delay : float
            Seconds until the token is cancelled.

        Returns
        -------
        asyncio.TimerHandle
            Handle for the scheduled cancellation.

        Examples
        --------
        >>> token = CancellationToken()
        >>> handle = token.cancel_after(30.0)  # inside a running loop
        >>> handle.cancel()  # disarm once the request finished
        """
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self.cancel)

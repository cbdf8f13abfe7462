"""Cancellation and timeout supervision for transcription work."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..errors import TranscriptionCancelledError, TranscriptionTimeoutError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation signal shared by a transcription and its callers."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TranscriptionCancelledError()


async def _abort(task: "asyncio.Task", on_abort: Optional[Callable[[], Awaitable[Any]]]) -> None:
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    if on_abort is not None:
        try:
            await on_abort()
        except Exception as e:
            logger.warning(f"Abort handler failed: {e}")


async def run_supervised(operation: Callable[[], Awaitable[Any]],
                         timeout: float,
                         token: Optional[CancellationToken] = None,
                         on_abort: Optional[Callable[[], Awaitable[Any]]] = None,
                         label: str = "transcription") -> Any:
    """Run ``operation`` racing a timer and an optional cancellation token.

    Whichever finishes first wins. If the timer or the token wins, the
    operation is cancelled and ``on_abort`` is awaited before raising.

    Args:
        operation: Zero-argument coroutine function to run
        timeout: Seconds before the operation is abandoned
        token: Cancellation token checked alongside the operation
        on_abort: Coroutine function called after the operation is cancelled
        label: Operation name used in the timeout error

    Returns:
        The operation's result

    Raises:
        TranscriptionTimeoutError: The timer won
        TranscriptionCancelledError: The token won
    """
    if token is not None:
        token.raise_if_cancelled()

    task = asyncio.ensure_future(operation())
    waiters = {task}
    cancel_waiter = None
    if token is not None:
        cancel_waiter = asyncio.ensure_future(token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    await _abort(task, on_abort)
    if token is not None and token.cancelled:
        logger.info(f"{label.capitalize()} cancelled")
        raise TranscriptionCancelledError()
    logger.warning(f"{label.capitalize()} exceeded {timeout:g}s, abandoning it")
    raise TranscriptionTimeoutError(label, timeout)


async def cancellable_sleep(seconds: float, token: Optional[CancellationToken] = None) -> None:
    """Sleep for ``seconds`` unless the token is cancelled first."""
    if seconds <= 0:
        if token is not None:
            token.raise_if_cancelled()
        return
    if token is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(token.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise TranscriptionCancelledError()

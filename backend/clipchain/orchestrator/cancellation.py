"""Cooperative cancellation for a generation attempt.

A single CancellationToken is handed to every suspension point of an attempt
(submission, status checks, backoff sleeps, video download) so one cancel()
stops the whole pipeline.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, TypeVar

from clipchain.errors import GenerationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal shared by the suspension points of an attempt."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if not self._event.is_set():
            logger.info("Cancellation requested")
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelled("Cancelled by user")

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for delay seconds or until cancelled.

        Returns:
            True if woken by cancellation, False if the full delay elapsed.
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await a call unless cancellation arrives first.

        If the token fires while the call is pending, the call's task is
        cancelled and GenerationCancelled is raised. A result that arrives
        after cancellation is discarded the same way.
        """
        if self._event.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            elif isinstance(awaitable, asyncio.Future):
                awaitable.cancel()
            raise GenerationCancelled("Cancelled by user")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise GenerationCancelled("Cancelled by user")

        if self._event.is_set():
            if not task.cancelled() and task.exception() is None:
                logger.info("Ignoring response that arrived after cancellation")
            raise GenerationCancelled("Cancelled by user")

        return task.result()

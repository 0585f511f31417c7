"""
Cooperative cancellation for action execution.

A CancellationSource owns the right to cancel; the CancellationToken it hands
out can only be observed. Sources compose first-of-N: a linked source fires as
soon as any of its inputs fires and keeps that input's reason, so a caller's
abort and an internal timer can be merged into one token that is threaded
through execute().

Everything here runs on a single asyncio event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class CancelReason(Enum):
    """Why a token fired."""
    USER = "user"
    TIMEOUT = "timeout"


class OperationCancelled(Exception):
    """Raised when work stops because its token fired."""

    def __init__(self, reason: CancelReason = CancelReason.USER, message: str | None = None):
        self.reason = reason
        if message is None:
            message = (
                "Operation timed out"
                if reason is CancelReason.TIMEOUT
                else "Operation was cancelled"
            )
        super().__init__(message)


class CancellationToken:
    """Read-only view of a CancellationSource."""

    def __init__(self, source: CancellationSource):
        self._source = source

    @staticmethod
    def none() -> CancellationToken:
        """A token that never fires."""
        return CancellationSource().token

    @property
    def cancelled(self) -> bool:
        return self._source.cancelled

    @property
    def reason(self) -> CancelReason | None:
        return self._source.reason

    def add_callback(self, callback: Callable[[CancelReason], None]) -> Callable[[], None]:
        """
        Run callback(reason) when the token fires.

        If the token already fired the callback runs immediately. Returns a
        function that detaches the callback.
        """
        return self._source._add_callback(callback)

    async def wait(self) -> CancelReason:
        """Suspend until the token fires."""
        return await self._source._wait()

    def raise_if_cancelled(self) -> None:
        reason = self._source.reason
        if reason is not None:
            raise OperationCancelled(reason)


class CancellationSource:
    """Owner side of a cancellation token."""

    def __init__(self) -> None:
        self._reason: CancelReason | None = None
        self._callbacks: list[Callable[[CancelReason], None]] = []
        self._event: asyncio.Event | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._detach: list[Callable[[], None]] = []
        self._token = CancellationToken(self)

    @classmethod
    def linked(cls, *tokens: CancellationToken | None) -> CancellationSource:
        """
        Create a source that fires when any of the given tokens fires.

        None entries are skipped. If one input already fired, the new source
        is born cancelled with that input's reason.
        """
        source = cls()
        for token in tokens:
            if token is None:
                continue
            if token.cancelled:
                source.cancel(token.reason or CancelReason.USER)
                break
            source._detach.append(token.add_callback(source.cancel))
        return source

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> CancelReason | None:
        return self._reason

    def cancel(self, reason: CancelReason = CancelReason.USER) -> None:
        """Fire the token. Only the first call has any effect."""
        if self._reason is not None:
            return
        self._reason = reason
        self._disarm_timer()
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(reason)
            except Exception:
                logger.exception("Cancellation callback failed")

    def cancel_after(self, seconds: float) -> None:
        """Fire with CancelReason.TIMEOUT after the given delay."""
        if self._reason is not None:
            return
        self._disarm_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(seconds, self.cancel, CancelReason.TIMEOUT)

    def close(self) -> None:
        """Disarm the timer and stop listening to linked tokens."""
        self._disarm_timer()
        detach, self._detach = self._detach, []
        for remove in detach:
            remove()

    def _disarm_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _add_callback(self, callback: Callable[[CancelReason], None]) -> Callable[[], None]:
        if self._reason is not None:
            callback(self._reason)
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return remove

    async def _wait(self) -> CancelReason:
        if self._reason is None:
            if self._event is None:
                self._event = asyncio.Event()
            await self._event.wait()
        assert self._reason is not None
        return self._reason


async def run_cancellable(awaitable, token: CancellationToken):
    """
    Await awaitable unless token fires first.

    When the token wins, the pending work is cancelled and OperationCancelled
    is raised with the token's reason.
    """
    token.raise_if_cancelled()
    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()
    if work in done:
        return work.result()
    work.cancel()
    try:
        await work
    except (asyncio.CancelledError, Exception):
        logger.debug("Cancelled work finished after its token fired", exc_info=True)
    raise OperationCancelled(token.reason or CancelReason.USER)

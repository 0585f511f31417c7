"""
Two-phase confirmation protocol.

An invocation that wants approval returns a ConfirmationRequest from
should_confirm_execute(). The dispatcher hands the request to a
ConfirmationSink and then waits; whoever is on the other side (a person in a
terminal, a UI, an auto-approver) settles it with resolve(request, outcome).
Each request is settled exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal, Protocol

from toolgate.types import ConfirmationOutcome

logger = logging.getLogger(__name__)


class ConfirmationError(RuntimeError):
    """Raised when a request is resolved more than once."""


@dataclass
class ConfirmationRequest:
    """
    A pending approval for one invocation.

    kind is "exec" for commands and "edit" for file mutations. on_resolve is
    the invocation's own hook (e.g. to extend its allow-list on
    PROCEED_ALWAYS); it runs before anyone waiting on the request is woken.
    """
    kind: Literal["exec", "edit"]
    title: str
    command: str | None = None
    file_path: str | None = None
    diff: str | None = None
    original_content: str | None = None
    new_content: str | None = None
    on_resolve: Callable[[ConfirmationOutcome], None] | None = None
    _outcome: ConfirmationOutcome | None = field(default=None, init=False, repr=False)
    _event: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    @property
    def resolved(self) -> bool:
        return self._outcome is not None

    @property
    def outcome(self) -> ConfirmationOutcome | None:
        return self._outcome

    def resolve(self, outcome: ConfirmationOutcome) -> None:
        if self._outcome is not None:
            raise ConfirmationError(
                f"Confirmation '{self.title}' already resolved as {self._outcome.value}"
            )
        self._outcome = outcome
        logger.debug(f"Confirmation '{self.title}' resolved: {outcome.value}")
        try:
            if self.on_resolve is not None:
                self.on_resolve(outcome)
        finally:
            self._event.set()

    async def wait(self) -> ConfirmationOutcome:
        """Suspend until the request is resolved."""
        await self._event.wait()
        assert self._outcome is not None
        return self._outcome

    def describe(self) -> str:
        """Plain-text preview of what is about to happen."""
        lines = [self.title]
        if self.command:
            lines.append(f"Command: {self.command}")
        if self.file_path:
            lines.append(f"File: {self.file_path}")
        if self.diff:
            lines.append("Diff preview:")
            lines.append(self.diff)
        return "\n".join(lines)


def resolve(request: ConfirmationRequest, outcome: ConfirmationOutcome) -> None:
    """Settle a pending confirmation request."""
    request.resolve(outcome)


class ConfirmationSink(Protocol):
    """Receives confirmation requests. Must eventually resolve each one."""

    async def submit(self, request: ConfirmationRequest) -> None: ...


class AutoApproveSink:
    """Approves everything. Used when the orchestrator policy is auto-approve."""

    async def submit(self, request: ConfirmationRequest) -> None:
        logger.info(f"Auto-approving: {request.title}")
        request.resolve(ConfirmationOutcome.PROCEED)


class DenyAllSink:
    """Declines everything."""

    async def submit(self, request: ConfirmationRequest) -> None:
        logger.info(f"Declining: {request.title}")
        request.resolve(ConfirmationOutcome.CANCEL)


class QueueConfirmationSink:
    """
    Publishes requests on a queue for a UI layer to pick up.

    The consumer takes a request off `requests`, shows request.describe() to a
    person, and calls resolve() with their answer.
    """

    def __init__(self, maxsize: int = 0):
        self.requests: asyncio.Queue[ConfirmationRequest] = asyncio.Queue(maxsize=maxsize)

    async def submit(self, request: ConfirmationRequest) -> None:
        await self.requests.put(request)

    async def next_request(self) -> ConfirmationRequest:
        return await self.requests.get()

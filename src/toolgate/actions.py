"""
Action Contract - The only way to affect the world.

Every side effect an AI can request goes through an Action. An Action is a
declarative description (name, schema, parameter validation); calling it
produces a short-lived Invocation bound to concrete parameters, which may ask
for confirmation and then executes.

    validate -> create invocation -> (confirm)? -> execute -> ActionResult

Validation is pure. Only Invocation.execute() may touch the filesystem or
spawn processes.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from toolgate.cancellation import CancellationToken, CancelReason, OperationCancelled
from toolgate.confirmation import ConfirmationRequest, ConfirmationSink
from toolgate.events import CallState
from toolgate.types import (
    ActionError,
    ActionKind,
    ActionResult,
    ActionSchema,
    ConfirmationOutcome,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class ToolgateError(Exception):
    """Base class for framework exceptions."""


class ConfigurationError(ToolgateError):
    """A programmer or deployment mistake, raised before any side effect."""


class UnknownActionError(ConfigurationError):
    """No action is registered under the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown action: {name}")


class RegistrationError(ConfigurationError):
    """An action could not be registered (usually a duplicate name)."""


class ValidationError(ToolgateError):
    """Parameters do not satisfy the action's contract."""

    def __init__(self, action_name: str, message: str):
        self.action_name = action_name
        self.message = message
        super().__init__(f"Action validation failed: {message}")


class ConfirmationCancelled(ToolgateError):
    """The confirming party declined. Nothing was executed."""

    def __init__(self, title: str):
        self.title = title
        super().__init__("Action execution cancelled by user")


class ActionFailure(ToolgateError):
    """An execution-level failure raised where no result can be produced yet."""

    def __init__(self, error: ActionError):
        self.error = error
        super().__init__(error.message)

    def to_result(self) -> ActionResult:
        return ActionResult.failure(self.error.message, self.error.kind)


class Invocation(ABC):
    """One in-flight call of an Action, bound to validated parameters."""

    def __init__(self, params: dict[str, Any]):
        self.params = params

    @abstractmethod
    def get_description(self) -> str:
        """One line describing what this call will do."""
        ...

    def tool_locations(self) -> list[str]:
        """Filesystem paths this call touches."""
        return []

    async def should_confirm_execute(
        self, token: CancellationToken
    ) -> ConfirmationRequest | None:
        """Return a request to gate execution on approval, or None."""
        return None

    @abstractmethod
    async def execute(
        self,
        token: CancellationToken,
        on_progress: ProgressCallback | None = None,
    ) -> ActionResult:
        """Perform the side effect. Execution errors go into the result."""
        ...


class Action(ABC):
    """
    Declarative definition of something the AI may invoke.

    Subclasses implement validate_params() and create_invocation(). The
    default confirmation policy lives on the Invocation and is "no
    confirmation needed".
    """

    def __init__(
        self,
        name: str,
        display_name: str,
        description: str,
        kind: ActionKind,
        parameters: dict[str, Any],
        output_is_markdown: bool = False,
        output_can_be_updated: bool = False,
    ):
        self.name = name
        self.display_name = display_name
        self.description = description
        self.kind = kind
        self.parameters = parameters
        self.output_is_markdown = output_is_markdown
        self.output_can_be_updated = output_can_be_updated

    @property
    def schema(self) -> ActionSchema:
        return ActionSchema(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    @abstractmethod
    def validate_params(self, params: dict[str, Any]) -> str | None:
        """Return an error message, or None if params are acceptable. Must be pure."""
        ...

    @abstractmethod
    def create_invocation(self, params: dict[str, Any]) -> Invocation:
        ...

    async def invoke(
        self,
        params: dict[str, Any],
        token: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
        confirm: ConfirmationSink | None = None,
        on_state: Callable[[CallState], None] | None = None,
    ) -> ActionResult:
        """
        Validate, confirm and execute one call.

        Raises ValidationError before anything is created,
        ConfirmationCancelled if the request is declined (or there is no sink
        to ask), and OperationCancelled if the token fires while waiting for
        confirmation.
        """
        token = token or CancellationToken.none()
        _notify(on_state, CallState.VALIDATING)
        error = self.validate_params(params)
        if error is not None:
            raise ValidationError(self.name, error)

        invocation = self.create_invocation(params)
        request = await invocation.should_confirm_execute(token)
        if request is not None:
            _notify(on_state, CallState.CONFIRMING)
            outcome = await _await_confirmation(request, confirm, token)
            if not outcome.approved:
                raise ConfirmationCancelled(request.title)

        token.raise_if_cancelled()
        _notify(on_state, CallState.EXECUTING)
        logger.info(f"Executing action: {invocation.get_description()}")
        return await invocation.execute(token, on_progress)


def _notify(on_state: Callable[[CallState], None] | None, state: CallState) -> None:
    if on_state is not None:
        on_state(state)


async def _await_confirmation(
    request: ConfirmationRequest,
    sink: ConfirmationSink | None,
    token: CancellationToken,
) -> ConfirmationOutcome:
    if sink is None:
        logger.warning(f"No confirmation sink; declining '{request.title}'")
        request.resolve(ConfirmationOutcome.CANCEL)
        return ConfirmationOutcome.CANCEL

    await sink.submit(request)
    if request.resolved:
        assert request.outcome is not None
        return request.outcome

    waiter = asyncio.ensure_future(request.wait())
    cancelled = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait(
            {waiter, cancelled}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        waiter.cancel()
        cancelled.cancel()
    if waiter in done:
        return waiter.result()
    raise OperationCancelled(token.reason or CancelReason.USER)

"""
Action Manager - the single dispatch surface for built-in and bridged actions.

The manager owns the built-in registry (write_file, run_shell_command), the
capability bridge, the confirmation policy and the call event log.

call_action() is the raw path: it dispatches and lets exceptions through.
execute_safely() is what an AI loop should use. It composes the caller's
token with a timer and turns every failure into an ActionResult. The one
exception is an unknown action name, which is a caller bug and is raised
before anything happens.
"""

import logging
import uuid
from collections.abc import Callable
from typing import Any

from toolgate.actions import (
    Action,
    ActionFailure,
    ConfirmationCancelled,
    ProgressCallback,
    RegistrationError,
    UnknownActionError,
    ValidationError,
)
from toolgate.cancellation import (
    CancellationSource,
    CancellationToken,
    CancelReason,
    OperationCancelled,
)
from toolgate.capabilities import CapabilityBridge, CapabilityProvider, ProviderStatus
from toolgate.config import ActionsConfig, CapabilityServerConfig
from toolgate.confirmation import AutoApproveSink, ConfirmationSink
from toolgate.events import CallState, EventLog
from toolgate.mcp_provider import McpCapabilityProvider
from toolgate.registry import ActionRegistry
from toolgate.shell import CommandAllowList, ShellAction
from toolgate.types import ActionResult, ActionSchema, ErrorKind
from toolgate.write_file import WriteFileAction

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[CapabilityServerConfig], CapabilityProvider]

_CANCELLED_KINDS = frozenset({
    ErrorKind.CONFIRMATION_CANCELLED,
    ErrorKind.EXECUTION_CANCELLED,
    ErrorKind.EXECUTION_TIMEOUT,
})


def cancelled_result(reason: CancelReason | None) -> ActionResult:
    """The uniform result for a call stopped by its composed token."""
    if reason is CancelReason.TIMEOUT:
        return ActionResult.failure(
            "Operation timed out",
            ErrorKind.EXECUTION_TIMEOUT,
            content="Action execution was cancelled or timed out",
            display="Operation timed out",
        )
    return ActionResult.failure(
        "Operation cancelled",
        ErrorKind.EXECUTION_CANCELLED,
        content="Action execution was cancelled or timed out",
        display="Operation cancelled",
    )


class ActionManager:
    """Dispatches action calls and applies the confirmation policy."""

    def __init__(
        self,
        config: ActionsConfig,
        confirmation_sink: ConfirmationSink | None = None,
        bridge: CapabilityBridge | None = None,
        provider_factory: ProviderFactory | None = None,
        trust_store: CommandAllowList | None = None,
    ):
        self.config = config
        if confirmation_sink is None and config.auto_approve:
            confirmation_sink = AutoApproveSink()
        self.confirmation_sink = confirmation_sink
        self.registry = ActionRegistry()
        self.bridge = bridge or CapabilityBridge()
        self.events = EventLog()
        self._provider_factory: ProviderFactory = provider_factory or McpCapabilityProvider
        self._trust_store = trust_store
        self._register_builtin_actions()

    def _register_builtin_actions(self) -> None:
        root = self.config.workspace_root
        self.registry.register(WriteFileAction(root), replace=False)
        self.registry.register(
            ShellAction(root, trust_store=self._trust_store, kill_grace=self.config.kill_grace),
            replace=False,
        )
        logger.info(f"Registered built-in actions: {', '.join(self.registry.names)}")

    async def initialize(self) -> None:
        """
        Connect the configured capability servers, if enabled.

        Servers that fail to connect are logged and skipped. A bridged name
        that collides with a built-in raises RegistrationError.
        """
        if not self.config.enable_capabilities:
            return
        providers = [self._provider_factory(server) for server in self.config.capability_servers]
        if not providers:
            logger.info("Capabilities enabled but no capability servers configured")
            return

        for provider in providers:
            try:
                await self.add_provider(provider)
            except RegistrationError:
                await self.bridge.disconnect_all()
                raise
            except Exception as e:
                logger.warning(f"Failed to connect capability provider {provider.name}: {e}")

        connected = self.bridge.connected_providers
        if connected:
            logger.info(f"Connected capability providers: {', '.join(connected)}")
        else:
            logger.warning("No capability providers connected")

    async def shutdown(self) -> None:
        await self.bridge.disconnect_all()

    async def add_provider(self, provider: CapabilityProvider) -> list[str]:
        """Connect one provider. Its action names must not shadow built-ins."""
        names = await self.bridge.add_provider(provider)
        shadowed = sorted(name for name in names if name in self.registry)
        if shadowed:
            await self.bridge.remove_provider(provider.name)
            raise RegistrationError(
                f"Capability provider {provider.name} shadows built-in actions: {', '.join(shadowed)}"
            )
        return names

    async def remove_provider(self, name: str) -> None:
        await self.bridge.remove_provider(name)

    def get_all_schemas(self) -> list[ActionSchema]:
        return self.get_builtin_schemas() + self.get_capability_schemas()

    def get_builtin_schemas(self) -> list[ActionSchema]:
        return self.registry.get_schemas()

    def get_capability_schemas(self) -> list[ActionSchema]:
        return self.bridge.get_schemas()

    def get_schema(self, name: str) -> ActionSchema | None:
        action = self.get_action(name)
        return action.schema if action is not None else None

    def schemas_by_source(self) -> dict[str, list[ActionSchema]]:
        return {
            "builtin": self.get_builtin_schemas(),
            "capabilities": self.get_capability_schemas(),
        }

    def provider_statuses(self) -> list[ProviderStatus]:
        names = [server.name for server in self.config.capability_servers]
        names += [name for name in self.bridge.connected_providers if name not in names]
        return [self.bridge.provider_status(name) for name in names]

    def get_action(self, name: str) -> Action | None:
        """Built-in actions win over bridged ones."""
        return self.registry.get(name) or self.bridge.get(name)

    def _resolve(self, name: str) -> Action:
        action = self.get_action(name)
        if action is None:
            raise UnknownActionError(name)
        return action

    async def call_action(
        self,
        name: str,
        params: dict[str, Any],
        token: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ActionResult:
        """
        Dispatch one call without any exception conversion.

        Raises UnknownActionError for an unregistered name, and whatever
        Action.invoke() raises.
        """
        action = self._resolve(name)
        return await action.invoke(params, token, on_progress, self.confirmation_sink)

    async def execute_safely(
        self,
        name: str,
        params: dict[str, Any],
        token: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
        call_id: str | None = None,
    ) -> ActionResult:
        """
        Dispatch one call and always come back with an ActionResult.

        timeout (seconds) defaults to config.default_timeout; zero or a
        negative value disables the timer. Only UnknownActionError is raised.
        """
        action = self._resolve(name)
        call_id = call_id or str(uuid.uuid4())[:8]
        self.events.log_event(CallState.CREATED, call_id, name)

        if timeout is None:
            timeout = self.config.default_timeout
        source = CancellationSource.linked(token)
        if timeout > 0:
            source.cancel_after(timeout)

        def on_state(state: CallState) -> None:
            self.events.log_event(state, call_id, name)

        try:
            result = await action.invoke(
                params, source.token, on_progress, self.confirmation_sink, on_state
            )
        except ValidationError as e:
            logger.info(f"Rejected {name}: {e.message}")
            result = ActionResult.failure(str(e), ErrorKind.VALIDATION_ERROR)
        except ConfirmationCancelled as e:
            logger.info(f"Declined: {e.title}")
            result = ActionResult.failure(
                str(e),
                ErrorKind.CONFIRMATION_CANCELLED,
                content="Action execution cancelled by user",
                display="Operation cancelled by user",
            )
        except OperationCancelled as e:
            result = cancelled_result(source.reason or e.reason)
        except ActionFailure as e:
            result = e.to_result()
        except Exception as e:
            if source.cancelled:
                result = cancelled_result(source.reason)
            else:
                logger.exception(f"Action {name} failed unexpectedly")
                result = ActionResult.failure(
                    str(e),
                    ErrorKind.EXECUTION_ERROR,
                    content=f"Action execution failed: {e}",
                    display=f"Error: {e}",
                )
        finally:
            source.close()

        self._record_outcome(call_id, name, result)
        return result

    def _record_outcome(self, call_id: str, name: str, result: ActionResult) -> None:
        if result.error is None:
            self.events.log_event(CallState.COMPLETED, call_id, name)
        elif result.error.kind in _CANCELLED_KINDS:
            self.events.log_event(
                CallState.CANCELLED, call_id, name, error_kind=result.error.kind.value
            )
        else:
            self.events.log_event(
                CallState.FAILED,
                call_id,
                name,
                error_kind=result.error.kind.value,
                message=result.error.message,
            )

    def suggest_actions(
        self,
        has_files: bool = False,
        needs_execution: bool = False,
        working_with_code: bool = False,
    ) -> list[ActionSchema]:
        """Pick schemas whose names look relevant to the given context."""
        keywords: list[str] = []
        if has_files:
            keywords += ["file", "read", "write"]
        if needs_execution:
            keywords += ["shell", "run", "exec"]
        if working_with_code:
            keywords += ["git", "code", "lint"]

        suggestions: list[ActionSchema] = []
        seen: set[str] = set()
        for schema in self.get_all_schemas():
            if schema.name in seen:
                continue
            if any(keyword in schema.name for keyword in keywords):
                suggestions.append(schema)
                seen.add(schema.name)
        return suggestions

"""
Capability Bridge - external capability providers as ordinary actions.

A capability provider is anything that can list named operations and call
them (an MCP server, in practice). The bridge wraps each capability in a
BridgedAction named "<provider>_<capability>" so the orchestrator cannot tell
it apart from a built-in action. Provider errors become CAPABILITY_ERROR
results; they never escape the action boundary.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, best_match
from jsonschema.validators import validator_for

from toolgate.actions import (
    Action,
    Invocation,
    ProgressCallback,
    RegistrationError,
)
from toolgate.cancellation import CancellationToken, OperationCancelled, run_cancellable
from toolgate.confirmation import ConfirmationSink
from toolgate.events import CallState
from toolgate.registry import ActionRegistry
from toolgate.types import ActionKind, ActionResult, ActionSchema, ErrorKind

logger = logging.getLogger(__name__)

EMPTY_OBJECT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


@dataclass
class CapabilityInfo:
    """One operation advertised by a provider."""
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=lambda: dict(EMPTY_OBJECT_SCHEMA))


@runtime_checkable
class CapabilityProvider(Protocol):
    """An external source of callable capabilities. Transport is its own business."""

    name: str

    async def connect(self) -> None: ...

    async def list_capabilities(self) -> list[CapabilityInfo]: ...

    async def call_capability(self, name: str, args: dict[str, Any]) -> Any: ...

    async def disconnect(self) -> None: ...


@dataclass
class ProviderStatus:
    name: str
    connected: bool
    action_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "connected": self.connected,
            "action_count": self.action_count,
        }


def _field(raw: Any, name: str) -> Any:
    if isinstance(raw, dict):
        return raw.get(name)
    return getattr(raw, name, None)


def _block_text(block: Any) -> str:
    block_type = _field(block, "type")
    text = _field(block, "text")
    if block_type == "text" or (block_type is None and isinstance(text, str)):
        return text or ""
    if block_type == "resource":
        resource_text = _field(_field(block, "resource"), "text")
        if isinstance(resource_text, str):
            return resource_text
    if isinstance(block, str):
        return block
    return f"[{block_type or type(block).__name__}]"


def normalize_capability_result(raw: Any) -> tuple[str, bool]:
    """
    Collapse a provider response into (display text, is_error).

    Handles plain text, content-block lists (MCP-style objects or dicts),
    {"result": ...} payloads and opaque JSON.
    """
    if raw is None:
        return "", False
    if isinstance(raw, str):
        return raw, False
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace"), False

    is_error = bool(_field(raw, "isError") or _field(raw, "is_error"))
    content = _field(raw, "content")
    if isinstance(content, list):
        return "\n".join(_block_text(block) for block in content), is_error
    if isinstance(content, str):
        return content, is_error
    if isinstance(raw, dict) and "result" in raw:
        return str(raw["result"]), is_error

    if hasattr(raw, "model_dump"):
        raw = raw.model_dump(mode="json")
    try:
        return json.dumps(raw, default=str), is_error
    except (TypeError, ValueError):
        return str(raw), is_error


class BridgedInvocation(Invocation):
    def __init__(
        self,
        params: dict[str, Any],
        provider: CapabilityProvider,
        capability: CapabilityInfo,
    ):
        super().__init__(params)
        self.provider = provider
        self.capability = capability

    def get_description(self) -> str:
        return f"{self.capability.name} via capability provider {self.provider.name}"

    async def execute(
        self,
        token: CancellationToken,
        on_progress: ProgressCallback | None = None,
    ) -> ActionResult:
        token.raise_if_cancelled()
        try:
            raw = await run_cancellable(
                self.provider.call_capability(self.capability.name, self.params),
                token,
            )
        except OperationCancelled:
            raise
        except Exception as e:
            logger.error(f"Capability {self.provider.name}/{self.capability.name} failed: {e}")
            message = f"Capability error: {e}"
            return ActionResult.failure(str(e), ErrorKind.CAPABILITY_ERROR, content=message, display=message)

        text, is_error = normalize_capability_result(raw)
        if is_error:
            message = text or "Capability reported an error"
            return ActionResult.failure(message, ErrorKind.CAPABILITY_ERROR)
        if not text:
            text = "Capability executed successfully (no output)"
        if on_progress is not None:
            on_progress(text)
        return ActionResult(content=text, display=text)


class BridgedAction(Action):
    """A provider capability presented through the Action contract."""

    def __init__(self, provider: CapabilityProvider, capability: CapabilityInfo):
        description = capability.description or f"Capability from provider {provider.name}"
        super().__init__(
            name=f"{provider.name}_{capability.name}",
            display_name=f"Capability:{provider.name}",
            description=f"{description} (via capability provider: {provider.name})",
            kind=ActionKind.EXECUTE,
            parameters=capability.input_schema or dict(EMPTY_OBJECT_SCHEMA),
        )
        self.provider = provider
        self.capability = capability
        self._validator = self._build_validator(self.parameters)

    def _build_validator(self, schema: dict[str, Any]) -> Any:
        try:
            validator_cls = validator_for(schema, default=Draft7Validator)
            validator_cls.check_schema(schema)
        except SchemaError as e:
            logger.warning(f"Ignoring invalid input schema for {self.name}: {e.message}")
            return None
        return validator_cls(schema)

    def validate_params(self, params: dict[str, Any]) -> str | None:
        if not isinstance(params, dict):
            return "Parameters must be an object"
        if self._validator is None:
            return None
        error = best_match(self._validator.iter_errors(params))
        if error is None:
            return None
        location = "/".join(str(part) for part in error.absolute_path)
        return f"{location}: {error.message}" if location else error.message

    def create_invocation(self, params: dict[str, Any]) -> BridgedInvocation:
        return BridgedInvocation(params, self.provider, self.capability)


class CapabilityBridge:
    """Connects providers and exposes their capabilities as actions."""

    def __init__(self) -> None:
        self.registry = ActionRegistry()
        self._providers: dict[str, CapabilityProvider] = {}
        self._provider_actions: dict[str, list[str]] = {}

    async def add_provider(self, provider: CapabilityProvider) -> list[str]:
        """
        Connect a provider and register its capabilities.

        Raises RegistrationError if the provider name is taken or a bridged
        name would collide with one already registered.
        """
        if provider.name in self._providers:
            raise RegistrationError(f"Capability provider already connected: {provider.name}")

        logger.info(f"Connecting capability provider: {provider.name}")
        await provider.connect()
        try:
            capabilities = await provider.list_capabilities()
        except Exception as e:
            logger.error(f"Failed to list capabilities from {provider.name}: {e}")
            capabilities = []

        actions = [BridgedAction(provider, capability) for capability in capabilities]
        names = [action.name for action in actions]
        clashes = sorted({n for n in names if n in self.registry or names.count(n) > 1})
        if clashes:
            await self._disconnect(provider)
            raise RegistrationError(
                f"Capability names from {provider.name} collide: {', '.join(clashes)}"
            )

        for action in actions:
            self.registry.register(action, replace=False)
            logger.debug(f"Registered capability action: {action.name}")
        self._providers[provider.name] = provider
        self._provider_actions[provider.name] = names
        logger.info(f"Connected capability provider {provider.name} ({len(names)} actions)")
        return names

    async def connect_all(self, providers: list[CapabilityProvider]) -> list[str]:
        """Add each provider, logging and skipping the ones that fail."""
        connected = []
        for provider in providers:
            try:
                await self.add_provider(provider)
            except RegistrationError:
                raise
            except Exception as e:
                logger.warning(f"Failed to connect capability provider {provider.name}: {e}")
                continue
            connected.append(provider.name)
        return connected

    async def remove_provider(self, name: str) -> None:
        provider = self._providers.pop(name, None)
        if provider is None:
            return
        for action_name in self._provider_actions.pop(name, []):
            self.registry.unregister(action_name)
        await self._disconnect(provider)
        logger.info(f"Disconnected capability provider: {name}")

    async def disconnect_all(self) -> None:
        for name in list(self._providers):
            await self.remove_provider(name)

    async def _disconnect(self, provider: CapabilityProvider) -> None:
        try:
            await provider.disconnect()
        except Exception as e:
            logger.error(f"Error disconnecting from {provider.name}: {e}")

    def get(self, name: str) -> Action | None:
        return self.registry.get(name)

    def get_schemas(self) -> list[ActionSchema]:
        return self.registry.get_schemas()

    @property
    def connected_providers(self) -> list[str]:
        return list(self._providers)

    def provider_status(self, name: str) -> ProviderStatus:
        if name not in self._providers:
            return ProviderStatus(name=name, connected=False, action_count=0)
        return ProviderStatus(
            name=name,
            connected=True,
            action_count=len(self._provider_actions.get(name, [])),
        )

    async def call_action(
        self,
        name: str,
        params: dict[str, Any],
        token: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
        confirm: ConfirmationSink | None = None,
        on_state: Callable[[CallState], None] | None = None,
    ) -> ActionResult:
        action = self.registry.require(name)
        return await action.invoke(params, token, on_progress, confirm, on_state)

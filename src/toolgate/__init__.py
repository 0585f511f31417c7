"""
toolgate - confirmation-gated actions for AI models.

An AI model can only affect the world through an Action: a named,
schema-described operation that validates its parameters, may ask a human
(or a policy) for confirmation with a diff or command preview, and then
executes under a cancellation token that merges the caller's abort with a
timeout. Two actions are built in (whole-file writes and shell commands);
capabilities from external providers (MCP servers) are bridged in as
ordinary actions.
"""

__version__ = "0.1.0"

from toolgate.actions import (
    Action,
    ActionFailure,
    ConfigurationError,
    ConfirmationCancelled,
    Invocation,
    RegistrationError,
    ToolgateError,
    UnknownActionError,
    ValidationError,
)
from toolgate.cancellation import (
    CancellationSource,
    CancellationToken,
    CancelReason,
    OperationCancelled,
)
from toolgate.capabilities import (
    BridgedAction,
    CapabilityBridge,
    CapabilityInfo,
    CapabilityProvider,
    ProviderStatus,
)
from toolgate.config import ActionsConfig, CapabilityServerConfig
from toolgate.confirmation import (
    AutoApproveSink,
    ConfirmationRequest,
    ConfirmationSink,
    DenyAllSink,
    QueueConfirmationSink,
    resolve,
)
from toolgate.events import CallEvent, CallState, EventLog
from toolgate.integration import (
    AIActionsIntegration,
    create_actions_integration,
    enhance_prompt_with_actions,
)
from toolgate.manager import ActionManager
from toolgate.mcp_provider import McpCapabilityProvider
from toolgate.registry import ActionRegistry
from toolgate.shell import CommandAllowList, ShellAction
from toolgate.types import (
    ActionCall,
    ActionError,
    ActionKind,
    ActionResponse,
    ActionResult,
    ActionSchema,
    ConfirmationOutcome,
    DiffStat,
    ErrorKind,
    FileDiff,
)
from toolgate.write_file import WriteFileAction

__all__ = [
    "Action",
    "ActionCall",
    "ActionError",
    "ActionFailure",
    "ActionKind",
    "ActionManager",
    "ActionRegistry",
    "ActionResponse",
    "ActionResult",
    "ActionSchema",
    "ActionsConfig",
    "AIActionsIntegration",
    "AutoApproveSink",
    "BridgedAction",
    "CallEvent",
    "CallState",
    "CancelReason",
    "CancellationSource",
    "CancellationToken",
    "CapabilityBridge",
    "CapabilityInfo",
    "CapabilityProvider",
    "CapabilityServerConfig",
    "CommandAllowList",
    "ConfigurationError",
    "ConfirmationCancelled",
    "ConfirmationOutcome",
    "ConfirmationRequest",
    "ConfirmationSink",
    "DenyAllSink",
    "DiffStat",
    "ErrorKind",
    "EventLog",
    "FileDiff",
    "Invocation",
    "McpCapabilityProvider",
    "OperationCancelled",
    "ProviderStatus",
    "QueueConfirmationSink",
    "RegistrationError",
    "ShellAction",
    "ToolgateError",
    "UnknownActionError",
    "ValidationError",
    "WriteFileAction",
    "create_actions_integration",
    "enhance_prompt_with_actions",
    "resolve",
]

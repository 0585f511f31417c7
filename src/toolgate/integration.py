"""
AI-facing adapter.

Turns the manager's schemas into provider function-call declarations (OpenAI,
Anthropic), runs the calls a model asks for, and formats results back into
text for the next model turn. It also carries the keyword heuristics used to
guess which actions a free-text request needs.
"""

import logging
import os
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

from toolgate.actions import UnknownActionError
from toolgate.cancellation import CancellationSource
from toolgate.capabilities import CapabilityProvider
from toolgate.config import ActionsConfig
from toolgate.confirmation import ConfirmationSink
from toolgate.manager import ActionManager, cancelled_result
from toolgate.types import (
    ActionCall,
    ActionResponse,
    ActionResult,
    ActionSchema,
    ErrorKind,
    FileDiff,
)

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str, str], None]

_FILE_INTENT = re.compile(r"\b(file|write|create|save|edit)\b")
_EXECUTION_INTENT = re.compile(r"\b(run|execute|command|shell|install|build)\b")
_CODE_INTENT = re.compile(r"\b(code|git|commit|push|pull|branch)\b")

ACTION_KEYWORDS = (
    "create", "write", "file", "save", "edit", "modify",
    "run", "execute", "command", "shell", "install",
    "git", "commit", "push", "pull", "clone",
    "build", "compile", "test", "deploy",
)


class AIActionsIntegration:
    """What an AI provider loop talks to."""

    def __init__(
        self,
        config: ActionsConfig,
        confirmation_sink: ConfirmationSink | None = None,
        manager: ActionManager | None = None,
    ):
        self.config = config
        self.manager = manager or ActionManager(config, confirmation_sink=confirmation_sink)
        self._cancel_source = CancellationSource()

    async def initialize(self) -> None:
        await self.manager.initialize()

    async def shutdown(self) -> None:
        self._cancel_source.cancel()
        await self.manager.shutdown()

    def get_schemas(self) -> list[ActionSchema]:
        return self.manager.get_all_schemas()

    def get_openai_functions(self) -> list[dict[str, Any]]:
        return [schema.to_openai_function() for schema in self.get_schemas()]

    def get_openai_tools(self) -> list[dict[str, Any]]:
        return [schema.to_openai_tool() for schema in self.get_schemas()]

    def get_anthropic_tools(self) -> list[dict[str, Any]]:
        return [schema.to_anthropic_tool() for schema in self.get_schemas()]

    async def execute_calls(
        self,
        calls: list[ActionCall],
        on_output: OutputCallback | None = None,
    ) -> list[ActionResponse]:
        """
        Run calls one after another and answer each of them.

        The batch holds the token of the adapter's cancellation source at the
        time it starts, so cancel_all() stops the whole batch: the running
        call is cancelled and the calls after it are answered as cancelled
        without running. An unknown action name answers that call with an
        ACTION_CALL_ERROR instead of raising.
        """
        responses = []
        token = self._cancel_source.token
        for call in calls:
            if token.cancelled:
                logger.info(f"Skipping action {call.name}: batch cancelled")
                result = cancelled_result(token.reason)
                responses.append(ActionResponse(
                    call_id=call.id,
                    result=result,
                    success=False,
                    error=result.error.message,
                ))
                continue
            logger.info(f"Executing action: {call.name}")
            progress = None
            if on_output is not None:
                progress = _bind_output(on_output, call.name)
            try:
                result = await self.manager.execute_safely(
                    call.name,
                    call.parameters,
                    token=token,
                    on_progress=progress,
                    timeout=self.config.call_timeout,
                    call_id=call.id,
                )
            except UnknownActionError as e:
                logger.error(f"Action {call.name} failed: {e}")
                responses.append(ActionResponse(
                    call_id=call.id,
                    result=ActionResult.failure(
                        str(e),
                        ErrorKind.ACTION_CALL_ERROR,
                        content=f"Action execution failed: {e}",
                        display=f"Error: {e}",
                    ),
                    success=False,
                    error=str(e),
                ))
                continue

            if result.success:
                logger.info(f"Action {call.name} completed successfully")
            else:
                logger.warning(f"Action {call.name} returned an error: {result.error.message}")
            responses.append(ActionResponse(
                call_id=call.id,
                result=result,
                success=result.success,
                error=result.error.message if result.error else None,
            ))
        return responses

    def format_results_for_ai(self, responses: list[ActionResponse]) -> str:
        return "\n\n---\n\n".join(_format_result(r.result) for r in responses)

    def suggest_for_intent(self, text: str) -> list[ActionSchema]:
        lowered = text.lower()
        return self.manager.suggest_actions(
            has_files=bool(_FILE_INTENT.search(lowered)),
            needs_execution=bool(_EXECUTION_INTENT.search(lowered)),
            working_with_code=bool(_CODE_INTENT.search(lowered)),
        )

    def should_use_action(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in ACTION_KEYWORDS)

    def get_status(self) -> dict[str, Any]:
        by_source = self.manager.schemas_by_source()
        return {
            "total_actions": len(self.get_schemas()),
            "builtin_actions": len(by_source["builtin"]),
            "capability_actions": len(by_source["capabilities"]),
            "providers": [status.to_dict() for status in self.manager.provider_statuses()],
        }

    def cancel_all(self) -> None:
        """Cancel every running call; later calls get a fresh source."""
        self._cancel_source.cancel()
        self._cancel_source = CancellationSource()

    async def add_provider(self, provider: CapabilityProvider) -> list[str]:
        return await self.manager.add_provider(provider)

    async def remove_provider(self, name: str) -> None:
        await self.manager.remove_provider(name)


def _bind_output(on_output: OutputCallback, name: str) -> Callable[[str], None]:
    def progress(output: str) -> None:
        on_output(name, output)
    return progress


def _format_result(result: ActionResult) -> str:
    if result.error is not None:
        return f"Action Error: {result.error.message}"
    if isinstance(result.display, FileDiff):
        diff = result.display
        return "\n".join([
            f"File Operation: {diff.file_name}",
            f"Changes: +{diff.stats.additions} -{diff.stats.deletions}",
            "",
            "Diff:",
            diff.unified_diff,
        ])
    return result.content or result.display_text or "Action completed successfully"


def create_actions_integration(
    workspace_root: str | os.PathLike[str],
    enable_capabilities: bool = True,
) -> AIActionsIntegration:
    """An adapter that always asks before writing or running anything."""
    config = ActionsConfig.from_env()
    config.workspace_root = Path(os.path.abspath(workspace_root))
    config.enable_capabilities = enable_capabilities
    config.auto_approve = False
    return AIActionsIntegration(config)


def enhance_prompt_with_actions(prompt: str, schemas: list[ActionSchema]) -> str:
    """Append action descriptions and usage guidance to a user prompt."""
    if not schemas:
        return prompt

    descriptions = "\n".join(f"- {schema.name}: {schema.description}" for schema in schemas)
    return f"""{prompt}

IMPORTANT: You have access to these actions and should use them when appropriate:
{descriptions}

ACTION USAGE GUIDELINES:
- When the user asks to "create", "write", "save", or "generate" a file, use the write_file action
- When the user asks to run commands, use the run_shell_command action
- When the user asks to read files or check directories, use the appropriate capability actions
- Always prefer using actions over just explaining how to do something manually
- If the user's request can be accomplished with actions, DO IT instead of just describing it"""

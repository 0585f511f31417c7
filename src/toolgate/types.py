"""
Core types for the action framework.

These are the values that cross the boundary between an AI loop and the
side effects it asks for. Results are immutable once produced: an action
hands back an ActionResult and nothing downstream is allowed to edit it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActionKind(Enum):
    """What kind of side effect an action has."""
    EXECUTE = "execute"
    EDIT = "edit"
    READ = "read"


class ErrorKind(str, Enum):
    """Machine-readable error categories carried on ActionResult.error."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIRMATION_CANCELLED = "CONFIRMATION_CANCELLED"
    FILE_READ_ERROR = "FILE_READ_ERROR"
    FILE_WRITE_ERROR = "FILE_WRITE_ERROR"
    SHELL_EXECUTION_ERROR = "SHELL_EXECUTION_ERROR"
    CAPABILITY_ERROR = "CAPABILITY_ERROR"
    EXECUTION_CANCELLED = "EXECUTION_CANCELLED"
    EXECUTION_TIMEOUT = "EXECUTION_TIMEOUT"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    ACTION_CALL_ERROR = "ACTION_CALL_ERROR"


class ConfirmationOutcome(str, Enum):
    """How a confirmation request was settled."""
    PROCEED = "proceed"
    PROCEED_ALWAYS = "proceed_always"
    CANCEL = "cancel"

    @property
    def approved(self) -> bool:
        return self is not ConfirmationOutcome.CANCEL


@dataclass(frozen=True)
class ActionError:
    """An error captured into a result instead of being raised."""
    message: str
    kind: ErrorKind

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "kind": self.kind.value}


@dataclass(frozen=True)
class DiffStat:
    """Line counts for a diff. Unchanged lines count toward neither field."""
    additions: int = 0
    deletions: int = 0

    @property
    def changes(self) -> int:
        return self.additions + self.deletions

    def to_dict(self) -> dict[str, int]:
        return {
            "additions": self.additions,
            "deletions": self.deletions,
            "changes": self.changes,
        }


@dataclass(frozen=True)
class FileDiff:
    """
    The structured display for a file mutation.

    Produced once per write and handed to the caller for rendering.
    """
    unified_diff: str
    file_name: str
    original_content: str
    new_content: str
    stats: DiffStat = field(default_factory=DiffStat)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unified_diff": self.unified_diff,
            "file_name": self.file_name,
            "original_content": self.original_content,
            "new_content": self.new_content,
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class ActionResult:
    """
    The outcome of one action call.

    content is written for the AI; display is for a human and is either
    plain text (shell output, capability output) or a FileDiff.
    """
    content: str
    display: "str | FileDiff"
    error: ActionError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def display_text(self) -> str:
        if isinstance(self.display, FileDiff):
            return self.display.unified_diff
        return self.display

    @classmethod
    def failure(
        cls,
        message: str,
        kind: ErrorKind,
        content: str | None = None,
        display: str | None = None,
    ) -> "ActionResult":
        """Build a result that carries an error."""
        text = content if content is not None else message
        return cls(
            content=text,
            display=display if display is not None else text,
            error=ActionError(message=message, kind=kind),
        )

    def to_dict(self) -> dict[str, Any]:
        display: Any = self.display
        if isinstance(display, FileDiff):
            display = display.to_dict()
        result: dict[str, Any] = {"content": self.content, "display": display}
        if self.error is not None:
            result["error"] = self.error.to_dict()
        return result


@dataclass(frozen=True)
class ActionSchema:
    """Name, description and JSON schema of an action, as shown to a model."""
    name: str
    description: str
    parameters: dict[str, Any]

    def to_openai_function(self) -> dict[str, Any]:
        """Legacy OpenAI `functions` format."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def to_openai_tool(self) -> dict[str, Any]:
        """OpenAI tool format."""
        return {
            "type": "function",
            "function": self.to_openai_function(),
        }

    def to_anthropic_tool(self) -> dict[str, Any]:
        """Anthropic tool format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }


@dataclass
class ActionCall:
    """
    A request from the model to run an action.

    id is whatever call identifier the provider attached, if any.
    """
    name: str
    parameters: dict[str, Any]
    id: str | None = None


@dataclass
class ActionResponse:
    """The answer to one ActionCall."""
    call_id: str | None
    result: ActionResult
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "call_id": self.call_id,
            "success": self.success,
            "result": self.result.to_dict(),
        }
        if self.error is not None:
            data["error"] = self.error
        return data

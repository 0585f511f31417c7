"""
File-Write Action - whole-file writes with a diff preview.

Every write replaces the whole file. Before anything is written the
invocation reads the current content (a missing file is an empty baseline),
builds a diff, and asks for confirmation. Execution reads the baseline again,
so the reported diff is accurate even if the file changed while the
confirmation was pending.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from toolgate.actions import Action, ActionFailure, Invocation, ProgressCallback
from toolgate.cancellation import CancellationToken
from toolgate.confirmation import ConfirmationRequest
from toolgate.diff import build_file_diff, create_unified_diff
from toolgate.types import (
    ActionError,
    ActionKind,
    ActionResult,
    ConfirmationOutcome,
    ErrorKind,
)
from toolgate.workspace import display_path, is_strictly_within

logger = logging.getLogger(__name__)


def read_baseline(path: str) -> tuple[str, bool]:
    """Current file content and whether the file exists."""
    try:
        with open(path, encoding="utf-8", newline="") as f:
            return f.read(), True
    except FileNotFoundError:
        return "", False


def atomic_write_text(path: Path, content: str) -> None:
    """
    Replace path with content via a temp file in the same directory.

    The temp file is removed if anything fails, including content the
    UTF-8 codec rejects.
    """
    fd, name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(name)
    try:
        with open(fd, "w", encoding="utf-8", newline="") as tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        if path.exists():
            os.chmod(tmp_path, path.stat().st_mode & 0o7777)
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class WriteFileInvocation(Invocation):
    """One write of one file."""

    def __init__(self, params: dict[str, Any], workspace_root: str):
        super().__init__(params)
        self.workspace_root = workspace_root
        self._confirmed_baseline: str | None = None

    @property
    def file_path(self) -> str:
        return self.params["file_path"]

    @property
    def content(self) -> str:
        return self.params["content"]

    def get_description(self) -> str:
        description = f"Writing to {display_path(self.workspace_root, self.file_path)}"
        if self.params.get("description"):
            description += f" ({self.params['description']})"
        return description

    def tool_locations(self) -> list[str]:
        return [self.file_path]

    async def should_confirm_execute(
        self, token: CancellationToken
    ) -> ConfirmationRequest | None:
        try:
            original, exists = read_baseline(self.file_path)
        except (OSError, UnicodeDecodeError) as e:
            raise ActionFailure(
                ActionError(message=str(e), kind=ErrorKind.FILE_READ_ERROR)
            ) from e

        self._confirmed_baseline = original
        relative = display_path(self.workspace_root, self.file_path)
        diff = create_unified_diff(
            original,
            self.content,
            os.path.basename(self.file_path),
            "Current" if exists else "New File",
            "Proposed",
        )
        return ConfirmationRequest(
            kind="edit",
            title=f"Modify {relative}" if exists else f"Create {relative}",
            file_path=self.file_path,
            diff=diff,
            original_content=original,
            new_content=self.content,
            on_resolve=self._on_resolve,
        )

    def _on_resolve(self, outcome: ConfirmationOutcome) -> None:
        # Auto-approval for later writes is the orchestrator's policy, not ours.
        if outcome is ConfirmationOutcome.PROCEED_ALWAYS:
            logger.info("PROCEED_ALWAYS on a file write applies to this write only")

    async def execute(
        self,
        token: CancellationToken,
        on_progress: ProgressCallback | None = None,
    ) -> ActionResult:
        token.raise_if_cancelled()
        path = Path(self.file_path)

        try:
            original, exists = read_baseline(self.file_path)
        except (OSError, UnicodeDecodeError) as e:
            message = str(e)
            return ActionResult.failure(
                message,
                ErrorKind.FILE_READ_ERROR,
                content=f"Error reading existing file: {message}",
                display=f"Error: {message}",
            )

        if self._confirmed_baseline is not None and original != self._confirmed_baseline:
            logger.warning(
                f"{self.file_path} changed between confirmation and write; "
                "reporting the diff against the current content"
            )

        try:
            if self.params.get("create_directories", True):
                path.parent.mkdir(parents=True, exist_ok=True)
            token.raise_if_cancelled()
            atomic_write_text(path, self.content)
        except (OSError, ValueError) as e:
            # UnicodeEncodeError is a ValueError.
            message = f"Error writing to file '{self.file_path}': {e}"
            return ActionResult.failure(str(e), ErrorKind.FILE_WRITE_ERROR, content=message, display=message)

        file_diff = build_file_diff(
            path.name, original, self.content, "Original", "Written"
        )
        relative = display_path(self.workspace_root, self.file_path)
        summary = (
            f"Successfully updated file: {relative}"
            if exists
            else f"Successfully created file: {relative}"
        )
        logger.info(f"{summary} (+{file_diff.stats.additions} -{file_diff.stats.deletions})")
        return ActionResult(
            content=(
                f"{summary}\n\nChanges: +{file_diff.stats.additions} "
                f"-{file_diff.stats.deletions}"
            ),
            display=file_diff,
        )


class WriteFileAction(Action):
    """Writes content to a file inside the workspace. Always asks first."""

    NAME = "write_file"

    def __init__(self, workspace_root: str | os.PathLike[str]):
        super().__init__(
            name=self.NAME,
            display_name="WriteFile",
            description=(
                "Writes content to a specified file. Shows diff preview and "
                "requires confirmation for safety."
            ),
            kind=ActionKind.EDIT,
            parameters={
                "type": "object",
                "properties": {
                    "file_path": {
                        "type": "string",
                        "description": "Absolute path to the file to write",
                    },
                    "content": {
                        "type": "string",
                        "description": "Content to write to the file",
                    },
                    "description": {
                        "type": "string",
                        "description": "Brief description of what this file change does",
                    },
                    "create_directories": {
                        "type": "boolean",
                        "description": "Whether to create parent directories if they don't exist",
                        "default": True,
                    },
                },
                "required": ["file_path", "content"],
            },
        )
        self.workspace_root = os.path.abspath(os.fspath(workspace_root))

    def validate_params(self, params: dict[str, Any]) -> str | None:
        if not isinstance(params, dict):
            return "Parameters must be an object"
        file_path = params.get("file_path")
        if not file_path or not isinstance(file_path, str):
            return "file_path is required"
        if not os.path.isabs(file_path):
            return "file_path must be absolute"
        if params.get("content") is None:
            return "content is required"
        if not isinstance(params["content"], str):
            return "content must be a string"
        if not is_strictly_within(self.workspace_root, file_path):
            return f"File path must be within workspace: {self.workspace_root}"
        return None

    def create_invocation(self, params: dict[str, Any]) -> WriteFileInvocation:
        return WriteFileInvocation(params, self.workspace_root)

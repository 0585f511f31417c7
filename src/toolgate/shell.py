"""
Process-Execution Action - shell commands with timeout and cancellation.

Commands run through the host shell in the workspace (or a directory inside
it), inheriting the environment. Output is streamed to the progress callback
as it arrives. When the cancellation token fires the whole process group gets
SIGTERM, and SIGKILL if it is still alive after a grace period.

Trust model: a static allow-list of root command tokens runs without
confirmation. Anything else, and any command that chains or substitutes
further commands, needs approval. PROCEED_ALWAYS adds the root token to the
invocation's own allow-list; it persists across calls only if the caller
injects a shared CommandAllowList.

This is a confirmation gate, not a sandbox.
"""

import asyncio
import codecs
import logging
import os
import re
import signal
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from toolgate.actions import Action, Invocation, ProgressCallback
from toolgate.cancellation import (
    CancellationSource,
    CancellationToken,
    CancelReason,
)
from toolgate.confirmation import ConfirmationRequest
from toolgate.types import (
    ActionError,
    ActionKind,
    ActionResult,
    ConfirmationOutcome,
    ErrorKind,
)
from toolgate.workspace import is_strictly_within, resolve_in_workspace

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_COMMANDS = frozenset({
    "ls", "dir", "pwd", "echo", "cat", "head", "tail", "grep", "find",
    "git", "npm", "node", "python", "pip", "cargo", "rustc",
    "mkdir", "touch", "cp", "mv", "rm",
})

MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 300
DEFAULT_TIMEOUT_SECONDS = 30
KILL_GRACE_SECONDS = 5.0
READ_CHUNK_SIZE = 4096

# Chaining, piping, redirection and substitution all let an allowed root
# token run something else.
_COMPOUND_COMMAND = re.compile(r"[;&|<>`\n]|\$\(")


def root_command(command: str) -> str:
    """First whitespace-separated token of a command."""
    parts = command.strip().split()
    return parts[0] if parts else ""


def is_compound_command(command: str) -> bool:
    return bool(_COMPOUND_COMMAND.search(command))


class CommandAllowList:
    """Root command tokens that run without confirmation."""

    def __init__(self, commands: Iterable[str] | None = None):
        self._commands = set(DEFAULT_ALLOWED_COMMANDS if commands is None else commands)

    def allows(self, command: str) -> bool:
        return root_command(command) in self._commands and not is_compound_command(command)

    def add(self, root: str) -> None:
        if root:
            self._commands.add(root)

    def copy(self) -> "CommandAllowList":
        return CommandAllowList(self._commands)

    def __contains__(self, root: str) -> bool:
        return root in self._commands

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._commands))

    def __len__(self) -> int:
        return len(self._commands)


@dataclass
class ShellResult:
    """What a finished (or killed) child process left behind."""
    stdout: str
    stderr: str
    exit_code: int | None
    signal: str | None
    aborted: bool


def _signal_process(process: asyncio.subprocess.Process, force: bool) -> None:
    if process.returncode is not None:
        return
    try:
        if os.name == "posix":
            os.killpg(process.pid, signal.SIGKILL if force else signal.SIGTERM)
        elif force:
            process.kill()
        else:
            process.terminate()
    except ProcessLookupError:
        pass


def _exit_status(returncode: int | None) -> tuple[int | None, str | None]:
    if returncode is not None and returncode < 0:
        try:
            return None, signal.Signals(-returncode).name
        except ValueError:
            return None, str(-returncode)
    return returncode, None


async def run_process(
    command: str,
    cwd: str,
    token: CancellationToken,
    on_progress: ProgressCallback | None = None,
    kill_grace: float = KILL_GRACE_SECONDS,
    env: dict[str, str] | None = None,
) -> ShellResult:
    """
    Run command through the host shell until it exits or token fires.

    Raises OSError if the process cannot be spawned, ValueError if the
    command cannot be passed to the OS (e.g. an embedded NUL byte).
    """
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env if env is not None else os.environ.copy(),
        start_new_session=os.name == "posix",
    )
    logger.debug(f"Spawned pid {process.pid}: {command}")

    stdout_parts: list[str] = []
    stderr_parts: list[str] = []

    def report() -> None:
        if on_progress is None:
            return
        out = "".join(stdout_parts)
        err = "".join(stderr_parts)
        try:
            on_progress(out + (f"\n{err}" if err else ""))
        except Exception:
            # Keep draining the pipe so the child never blocks on a full buffer.
            logger.exception("Progress callback failed")

    async def pump(stream: asyncio.StreamReader | None, parts: list[str]) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(READ_CHUNK_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                parts.append(text)
                report()
            if not data:
                return

    readers = [
        asyncio.create_task(pump(process.stdout, stdout_parts)),
        asyncio.create_task(pump(process.stderr, stderr_parts)),
    ]
    exited = asyncio.create_task(process.wait())
    cancelled = asyncio.create_task(token.wait())
    aborted = False
    try:
        await asyncio.wait({exited, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        if not exited.done():
            aborted = True
            logger.info(f"Terminating pid {process.pid} ({token.reason})")
            _signal_process(process, force=False)
            try:
                await asyncio.wait_for(asyncio.shield(exited), kill_grace)
            except asyncio.TimeoutError:
                logger.warning(f"pid {process.pid} ignored SIGTERM; killing")
                _signal_process(process, force=True)
                await exited

        # Grandchildren that outlive the shell can hold the pipes open.
        _, pending = await asyncio.wait(readers, timeout=kill_grace)
        for reader in pending:
            reader.cancel()
    finally:
        cancelled.cancel()
        if process.returncode is None:
            _signal_process(process, force=True)
        for reader in readers:
            if not reader.done():
                reader.cancel()

    exit_code, signal_name = _exit_status(process.returncode)
    return ShellResult(
        stdout="".join(stdout_parts).strip(),
        stderr="".join(stderr_parts).strip(),
        exit_code=exit_code,
        signal=signal_name,
        aborted=aborted,
    )


class ShellInvocation(Invocation):
    """One command run."""

    def __init__(
        self,
        params: dict[str, Any],
        workspace_root: str,
        allow_list: CommandAllowList,
        kill_grace: float = KILL_GRACE_SECONDS,
        env: dict[str, str] | None = None,
    ):
        super().__init__(params)
        self.workspace_root = workspace_root
        self.allow_list = allow_list
        self.kill_grace = kill_grace
        self.env = env

    @property
    def command(self) -> str:
        return self.params["command"]

    @property
    def cwd(self) -> str:
        directory = self.params.get("directory")
        if directory:
            return resolve_in_workspace(self.workspace_root, directory)
        return self.workspace_root

    @property
    def timeout(self) -> float:
        return float(self.params.get("timeout") or DEFAULT_TIMEOUT_SECONDS)

    def get_description(self) -> str:
        description = f"Execute: {self.command}"
        if self.params.get("directory"):
            description += f" [in {self.params['directory']}]"
        if self.params.get("description"):
            description += f" ({self.params['description']})"
        return description

    def tool_locations(self) -> list[str]:
        return [self.cwd]

    async def should_confirm_execute(
        self, token: CancellationToken
    ) -> ConfirmationRequest | None:
        if self.allow_list.allows(self.command):
            return None
        root = root_command(self.command)

        def on_resolve(outcome: ConfirmationOutcome) -> None:
            if outcome is ConfirmationOutcome.PROCEED_ALWAYS:
                logger.info(f"Trusting '{root}' for the rest of this allow-list's lifetime")
                self.allow_list.add(root)

        return ConfirmationRequest(
            kind="exec",
            title="Confirm Shell Command",
            command=self.command,
            on_resolve=on_resolve,
        )

    async def execute(
        self,
        token: CancellationToken,
        on_progress: ProgressCallback | None = None,
    ) -> ActionResult:
        token.raise_if_cancelled()
        timer = CancellationSource.linked(token)
        timer.cancel_after(self.timeout)
        try:
            result = await run_process(
                self.command,
                self.cwd,
                timer.token,
                on_progress,
                kill_grace=self.kill_grace,
                env=self.env,
            )
        except (OSError, ValueError) as e:
            message = f"Failed to execute command: {e}"
            logger.error(message)
            return ActionResult.failure(str(e), ErrorKind.SHELL_EXECUTION_ERROR, content=message, display=message)
        finally:
            timer.close()

        content = "\n".join([
            f"Command: {self.command}",
            f"Directory: {self.params.get('directory') or '(root)'}",
            f"Stdout: {result.stdout or '(empty)'}",
            f"Stderr: {result.stderr or '(empty)'}",
            f"Exit Code: {result.exit_code if result.exit_code is not None else '(none)'}",
            f"Signal: {result.signal or '(none)'}",
            f"Aborted: {'yes' if result.aborted else 'no'}",
        ])

        if result.aborted:
            if timer.reason is CancelReason.TIMEOUT:
                # The caller's token may carry its own, shorter deadline.
                message = (
                    "Command timed out"
                    if token.cancelled
                    else f"Command timed out after {self.timeout:g} seconds"
                )
                kind = ErrorKind.EXECUTION_TIMEOUT
            else:
                message = "Command cancelled by user"
                kind = ErrorKind.EXECUTION_CANCELLED
            return ActionResult(
                content=content,
                display=message,
                error=ActionError(message=message, kind=kind),
            )

        if result.stdout:
            display = result.stdout
        elif result.stderr:
            display = f"Error: {result.stderr}"
        elif result.signal:
            display = f"Command terminated by signal: {result.signal}"
        elif result.exit_code not in (0, None):
            display = f"Command exited with code: {result.exit_code}"
        else:
            display = "Command completed successfully"
        return ActionResult(content=content, display=display)


class ShellAction(Action):
    """Runs shell commands in the workspace."""

    NAME = "run_shell_command"

    def __init__(
        self,
        workspace_root: str | os.PathLike[str],
        allowed_commands: Iterable[str] | None = None,
        trust_store: CommandAllowList | None = None,
        kill_grace: float = KILL_GRACE_SECONDS,
        env: dict[str, str] | None = None,
    ):
        super().__init__(
            name=self.NAME,
            display_name="Shell",
            description=(
                "Executes shell commands in the workspace. Requires confirmation "
                "for potentially dangerous commands."
            ),
            kind=ActionKind.EXECUTE,
            parameters={
                "type": "object",
                "properties": {
                    "command": {
                        "type": "string",
                        "description": "Shell command to execute",
                    },
                    "description": {
                        "type": "string",
                        "description": "Brief description of what this command does",
                    },
                    "directory": {
                        "type": "string",
                        "description": "Directory to run the command in (inside the workspace root)",
                    },
                    "timeout": {
                        "type": "number",
                        "description": (
                            f"Timeout in seconds ({MIN_TIMEOUT_SECONDS}-{MAX_TIMEOUT_SECONDS}, "
                            f"default: {DEFAULT_TIMEOUT_SECONDS})"
                        ),
                        "default": DEFAULT_TIMEOUT_SECONDS,
                    },
                },
                "required": ["command"],
            },
            output_can_be_updated=True,
        )
        self.workspace_root = os.path.abspath(os.fspath(workspace_root))
        self.allowed_commands = CommandAllowList(allowed_commands)
        self.trust_store = trust_store
        self.kill_grace = kill_grace
        self.env = env

    def validate_params(self, params: dict[str, Any]) -> str | None:
        if not isinstance(params, dict):
            return "Parameters must be an object"
        command = params.get("command")
        if not isinstance(command, str) or not command.strip():
            return "command is required and cannot be empty"

        directory = params.get("directory")
        if directory is not None:
            if not isinstance(directory, str):
                return "directory must be a string"
            if not is_strictly_within(self.workspace_root, directory):
                return "directory must be within workspace"

        timeout = params.get("timeout")
        if timeout is not None:
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
                return "timeout must be a number of seconds"
            if not MIN_TIMEOUT_SECONDS <= timeout <= MAX_TIMEOUT_SECONDS:
                return (
                    f"timeout must be between {MIN_TIMEOUT_SECONDS}s "
                    f"and {MAX_TIMEOUT_SECONDS}s"
                )
        return None

    def create_invocation(self, params: dict[str, Any]) -> ShellInvocation:
        allow_list = self.trust_store if self.trust_store is not None else self.allowed_commands.copy()
        return ShellInvocation(
            params,
            self.workspace_root,
            allow_list,
            kill_grace=self.kill_grace,
            env=self.env,
        )

"""
Tests for the file-write action.

Tests cover:
- Parameter validation and workspace containment
- Create vs modify confirmation previews
- Declined or cancelled confirmation leaves the filesystem untouched
- Result diff and content after a write
"""

import asyncio
import os

import pytest

from toolgate.actions import ActionFailure, ConfirmationCancelled, ValidationError
from toolgate.cancellation import CancellationSource, OperationCancelled
from toolgate.confirmation import AutoApproveSink, DenyAllSink, QueueConfirmationSink
from toolgate.types import ConfirmationOutcome, ErrorKind, FileDiff
from toolgate.write_file import WriteFileAction, atomic_write_text, read_baseline


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "ws"
    root.mkdir()
    return root


@pytest.fixture
def action(workspace):
    return WriteFileAction(workspace)


class TestValidation:
    """Tests for WriteFileAction.validate_params."""

    def test_valid(self, action, workspace):
        assert action.validate_params({"file_path": str(workspace / "a.txt"), "content": ""}) is None

    def test_missing_file_path(self, action):
        assert action.validate_params({"content": "x"}) == "file_path is required"

    def test_relative_path_rejected(self, action):
        assert action.validate_params({"file_path": "a.txt", "content": "x"}) == "file_path must be absolute"

    def test_missing_content(self, action, workspace):
        error = action.validate_params({"file_path": str(workspace / "a.txt")})
        assert error == "content is required"

    def test_non_string_content(self, action, workspace):
        error = action.validate_params({"file_path": str(workspace / "a.txt"), "content": 3})
        assert error == "content must be a string"

    def test_escape_rejected(self, action, workspace):
        error = action.validate_params(
            {"file_path": os.path.join(str(workspace), "..", "escape.txt"), "content": "x"}
        )
        assert error.startswith("File path must be within workspace")

    def test_root_rejected(self, action, workspace):
        assert action.validate_params({"file_path": str(workspace), "content": "x"}) is not None

    def test_validation_has_no_side_effects(self, action, workspace):
        action.validate_params({"file_path": str(workspace / "new" / "a.txt"), "content": "x"})
        action.validate_params({"file_path": "/etc/../escape", "content": None})
        assert list(workspace.iterdir()) == []

    @pytest.mark.asyncio
    async def test_invoke_raises_validation_error_before_invocation(self, action, workspace):
        created = []
        original = action.create_invocation

        def spy(params):
            created.append(params)
            return original(params)

        action.create_invocation = spy
        with pytest.raises(ValidationError) as exc_info:
            await action.invoke(
                {"file_path": os.path.join(str(workspace), "..", "escape.txt"), "content": "x"},
                confirm=AutoApproveSink(),
            )
        assert "within workspace" in str(exc_info.value)
        assert created == []
        assert not (workspace.parent / "escape.txt").exists()


class TestConfirmationPreview:
    """Tests for WriteFileInvocation.should_confirm_execute."""

    @pytest.mark.asyncio
    async def test_new_file_uses_create_framing(self, action, workspace):
        path = workspace / "out.md"
        invocation = action.create_invocation({"file_path": str(path), "content": "# Title\n"})
        request = await invocation.should_confirm_execute(CancellationSource().token)
        assert request.kind == "edit"
        assert request.title == "Create out.md"
        assert request.original_content == ""
        assert "out.md\tNew File" in request.diff
        assert "+# Title" in request.diff

    @pytest.mark.asyncio
    async def test_existing_file_uses_modify_framing(self, action, workspace):
        path = workspace / "notes.txt"
        path.write_text("old\n")
        invocation = action.create_invocation({"file_path": str(path), "content": "new\n"})
        request = await invocation.should_confirm_execute(CancellationSource().token)
        assert request.title == "Modify notes.txt"
        assert "notes.txt\tCurrent" in request.diff
        assert "-old" in request.diff
        assert "+new" in request.diff

    @pytest.mark.asyncio
    async def test_unreadable_baseline_raises_action_failure(self, action, workspace):
        path = workspace / "binary.dat"
        path.write_bytes(b"\xff\xfe\x00\x81")
        invocation = action.create_invocation({"file_path": str(path), "content": "x"})
        with pytest.raises(ActionFailure) as exc_info:
            await invocation.should_confirm_execute(CancellationSource().token)
        assert exc_info.value.error.kind is ErrorKind.FILE_READ_ERROR


class TestExecution:
    """Tests for the full write pipeline."""

    @pytest.mark.asyncio
    async def test_create_new_file(self, action, workspace):
        path = workspace / "out.md"
        result = await action.invoke(
            {"file_path": str(path), "content": "# Title\n"}, confirm=AutoApproveSink()
        )
        assert result.success
        assert isinstance(result.display, FileDiff)
        assert result.display.stats.additions == 1
        assert result.display.stats.deletions == 0
        assert path.read_text() == "# Title\n"
        assert result.content.startswith("Successfully created file: out.md")
        assert "Changes: +1 -0" in result.content

    @pytest.mark.asyncio
    async def test_update_existing_file(self, action, workspace):
        path = workspace / "a.txt"
        path.write_text("one\ntwo\n")
        result = await action.invoke(
            {"file_path": str(path), "content": "one\nthree\n"}, confirm=AutoApproveSink()
        )
        assert result.content.startswith("Successfully updated file: a.txt")
        assert result.display.stats.additions == 1
        assert result.display.stats.deletions == 1
        assert path.read_text() == "one\nthree\n"

    @pytest.mark.asyncio
    async def test_creates_parent_directories(self, action, workspace):
        path = workspace / "deep" / "er" / "file.txt"
        result = await action.invoke(
            {"file_path": str(path), "content": "x"}, confirm=AutoApproveSink()
        )
        assert result.success
        assert path.read_text() == "x"

    @pytest.mark.asyncio
    async def test_missing_parent_without_create_directories(self, action, workspace):
        path = workspace / "missing" / "file.txt"
        result = await action.invoke(
            {"file_path": str(path), "content": "x", "create_directories": False},
            confirm=AutoApproveSink(),
        )
        assert result.error.kind is ErrorKind.FILE_WRITE_ERROR
        assert "Error writing to file" in result.content
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_preserves_line_endings(self, action, workspace):
        path = workspace / "crlf.txt"
        await action.invoke(
            {"file_path": str(path), "content": "a\r\nb\r\n"}, confirm=AutoApproveSink()
        )
        assert path.read_bytes() == b"a\r\nb\r\n"


class TestConfirmationGate:
    """The write must not happen unless the request is approved."""

    @pytest.mark.asyncio
    async def test_declined_write_has_no_side_effect(self, action, workspace):
        path = workspace / "sub" / "out.md"
        with pytest.raises(ConfirmationCancelled):
            await action.invoke({"file_path": str(path), "content": "x"}, confirm=DenyAllSink())
        assert not path.exists()
        assert not (workspace / "sub").exists()

    @pytest.mark.asyncio
    async def test_no_sink_fails_closed(self, action, workspace):
        path = workspace / "out.md"
        with pytest.raises(ConfirmationCancelled):
            await action.invoke({"file_path": str(path), "content": "x"})
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_write_waits_for_resolution(self, action, workspace):
        path = workspace / "out.md"
        sink = QueueConfirmationSink()
        task = asyncio.create_task(
            action.invoke({"file_path": str(path), "content": "hello\n"}, confirm=sink)
        )
        request = await asyncio.wait_for(sink.next_request(), 1)
        await asyncio.sleep(0.01)
        assert not path.exists()
        request.resolve(ConfirmationOutcome.PROCEED_ALWAYS)
        result = await asyncio.wait_for(task, 1)
        assert result.success
        assert path.read_text() == "hello\n"

    @pytest.mark.asyncio
    async def test_cancel_while_confirming_has_no_side_effect(self, action, workspace):
        path = workspace / "out.md"
        sink = QueueConfirmationSink()
        source = CancellationSource()
        task = asyncio.create_task(
            action.invoke({"file_path": str(path), "content": "x"}, token=source.token, confirm=sink)
        )
        await asyncio.wait_for(sink.next_request(), 1)
        source.cancel()
        with pytest.raises(OperationCancelled):
            await asyncio.wait_for(task, 1)
        assert not path.exists()


class TestHelpers:
    """Tests for read_baseline and atomic_write_text."""

    def test_read_baseline_missing(self, workspace):
        assert read_baseline(str(workspace / "nope")) == ("", False)

    def test_atomic_write_preserves_mode(self, workspace):
        path = workspace / "script.sh"
        path.write_text("old")
        os.chmod(path, 0o755)
        atomic_write_text(path, "new")
        assert path.read_text() == "new"
        assert path.stat().st_mode & 0o777 == 0o755
        assert [p.name for p in workspace.iterdir()] == ["script.sh"]

    def test_atomic_write_removes_temp_file_on_fsync_failure(self, workspace, monkeypatch):
        def failing_fsync(fd):
            raise OSError("disk full")

        monkeypatch.setattr(os, "fsync", failing_fsync)
        with pytest.raises(OSError, match="disk full"):
            atomic_write_text(workspace / "a.txt", "x")
        assert list(workspace.iterdir()) == []


class TestWriteFailures:
    """Write errors come back as results and leave nothing behind."""

    @pytest.mark.asyncio
    async def test_unencodable_content(self, action, workspace):
        path = workspace / "a.txt"
        result = await action.invoke(
            {"file_path": str(path), "content": "x\ud800y"}, confirm=AutoApproveSink()
        )
        assert result.error.kind is ErrorKind.FILE_WRITE_ERROR
        assert result.content.startswith("Error writing to file")
        assert list(workspace.iterdir()) == []

    @pytest.mark.asyncio
    async def test_unencodable_content_keeps_existing_file(self, action, workspace):
        path = workspace / "a.txt"
        path.write_text("keep\n")
        result = await action.invoke(
            {"file_path": str(path), "content": "\udcff"}, confirm=AutoApproveSink()
        )
        assert result.error.kind is ErrorKind.FILE_WRITE_ERROR
        assert path.read_text() == "keep\n"
        assert [p.name for p in workspace.iterdir()] == ["a.txt"]


class TestBaselineDrift:
    """The file may change while the confirmation is pending."""

    @pytest.mark.asyncio
    async def test_result_diff_uses_execution_time_baseline(self, action, workspace):
        path = workspace / "a.txt"
        path.write_text("one\n")
        sink = QueueConfirmationSink()
        task = asyncio.create_task(
            action.invoke({"file_path": str(path), "content": "one\nnew\n"}, confirm=sink)
        )
        request = await asyncio.wait_for(sink.next_request(), 1)
        assert request.original_content == "one\n"

        path.write_text("zero\none\ntwo\n")
        request.resolve(ConfirmationOutcome.PROCEED)
        result = await asyncio.wait_for(task, 1)

        assert result.success
        assert result.display.original_content == "zero\none\ntwo\n"
        assert result.display.new_content == "one\nnew\n"
        assert result.display.stats.additions == 1
        assert result.display.stats.deletions == 2
        assert "-zero" in result.display.unified_diff
        assert path.read_text() == "one\nnew\n"

"""Tests for result, schema and call types."""

from toolgate.types import (
    ActionError,
    ActionResponse,
    ActionResult,
    ActionSchema,
    ConfirmationOutcome,
    DiffStat,
    ErrorKind,
    FileDiff,
)


class TestConfirmationOutcome:
    """Tests for ConfirmationOutcome."""

    def test_approved(self):
        assert ConfirmationOutcome.PROCEED.approved
        assert ConfirmationOutcome.PROCEED_ALWAYS.approved
        assert not ConfirmationOutcome.CANCEL.approved


class TestActionResult:
    """Tests for ActionResult."""

    def test_success_without_error(self):
        result = ActionResult(content="done", display="done")
        assert result.success
        assert result.display_text == "done"

    def test_failure_defaults_content_and_display_to_message(self):
        result = ActionResult.failure("boom", ErrorKind.EXECUTION_ERROR)
        assert not result.success
        assert result.content == "boom"
        assert result.display == "boom"
        assert result.error == ActionError(message="boom", kind=ErrorKind.EXECUTION_ERROR)

    def test_display_text_renders_file_diff(self):
        diff = FileDiff(
            unified_diff="--- a\n+++ b\n",
            file_name="a",
            original_content="",
            new_content="x",
            stats=DiffStat(additions=1),
        )
        result = ActionResult(content="ok", display=diff)
        assert result.display_text == "--- a\n+++ b\n"

    def test_to_dict_includes_error_kind(self):
        result = ActionResult.failure("nope", ErrorKind.VALIDATION_ERROR)
        data = result.to_dict()
        assert data["error"] == {"message": "nope", "kind": "VALIDATION_ERROR"}

    def test_to_dict_serializes_file_diff(self):
        diff = FileDiff("d", "f.txt", "", "x\n", DiffStat(additions=1, deletions=0))
        data = ActionResult(content="ok", display=diff).to_dict()
        assert data["display"]["file_name"] == "f.txt"
        assert "error" not in data


class TestDiffStat:
    """Tests for DiffStat."""

    def test_changes(self):
        assert DiffStat(additions=3, deletions=2).changes == 5


class TestActionSchema:
    """Tests for provider declaration formats."""

    def setup_method(self):
        self.schema = ActionSchema(
            name="write_file",
            description="Writes a file",
            parameters={"type": "object", "properties": {}},
        )

    def test_openai_function(self):
        assert self.schema.to_openai_function() == {
            "name": "write_file",
            "description": "Writes a file",
            "parameters": {"type": "object", "properties": {}},
        }

    def test_openai_tool_wraps_function(self):
        tool = self.schema.to_openai_tool()
        assert tool["type"] == "function"
        assert tool["function"]["name"] == "write_file"

    def test_anthropic_tool_uses_input_schema(self):
        tool = self.schema.to_anthropic_tool()
        assert tool["input_schema"] == {"type": "object", "properties": {}}
        assert "parameters" not in tool


class TestActionResponse:
    """Tests for ActionResponse."""

    def test_to_dict(self):
        response = ActionResponse(
            call_id="call_1",
            result=ActionResult(content="ok", display="ok"),
            success=True,
        )
        data = response.to_dict()
        assert data["call_id"] == "call_1"
        assert data["success"] is True
        assert "error" not in data

"""Tests for the two-phase confirmation protocol."""

import asyncio

import pytest

from toolgate.confirmation import (
    AutoApproveSink,
    ConfirmationError,
    ConfirmationRequest,
    DenyAllSink,
    QueueConfirmationSink,
    resolve,
)
from toolgate.types import ConfirmationOutcome


class TestConfirmationRequest:
    """Tests for ConfirmationRequest."""

    def test_resolve_exactly_once(self):
        request = ConfirmationRequest(kind="exec", title="Confirm", command="make")
        resolve(request, ConfirmationOutcome.PROCEED)
        assert request.resolved
        assert request.outcome is ConfirmationOutcome.PROCEED
        with pytest.raises(ConfirmationError):
            resolve(request, ConfirmationOutcome.CANCEL)
        assert request.outcome is ConfirmationOutcome.PROCEED

    def test_on_resolve_receives_outcome(self):
        seen = []
        request = ConfirmationRequest(kind="exec", title="Confirm", on_resolve=seen.append)
        request.resolve(ConfirmationOutcome.PROCEED_ALWAYS)
        assert seen == [ConfirmationOutcome.PROCEED_ALWAYS]

    @pytest.mark.asyncio
    async def test_wait_returns_outcome(self):
        request = ConfirmationRequest(kind="edit", title="Modify a.txt")

        async def answer():
            await asyncio.sleep(0)
            request.resolve(ConfirmationOutcome.CANCEL)

        task = asyncio.create_task(answer())
        outcome = await asyncio.wait_for(request.wait(), 1)
        await task
        assert outcome is ConfirmationOutcome.CANCEL

    def test_describe_includes_preview(self):
        request = ConfirmationRequest(
            kind="edit",
            title="Create out.md",
            file_path="/ws/out.md",
            diff="+# Title\n",
        )
        text = request.describe()
        assert "Create out.md" in text
        assert "File: /ws/out.md" in text
        assert "+# Title" in text


class TestSinks:
    """Tests for the stock confirmation sinks."""

    @pytest.mark.asyncio
    async def test_auto_approve(self):
        request = ConfirmationRequest(kind="exec", title="Confirm")
        await AutoApproveSink().submit(request)
        assert request.outcome is ConfirmationOutcome.PROCEED

    @pytest.mark.asyncio
    async def test_deny_all(self):
        request = ConfirmationRequest(kind="exec", title="Confirm")
        await DenyAllSink().submit(request)
        assert request.outcome is ConfirmationOutcome.CANCEL

    @pytest.mark.asyncio
    async def test_queue_sink_leaves_request_pending(self):
        sink = QueueConfirmationSink()
        request = ConfirmationRequest(kind="exec", title="Confirm")
        await sink.submit(request)
        assert not request.resolved
        assert await sink.next_request() is request

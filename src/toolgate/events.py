"""
Call lifecycle events.

Each action call moves through

    CREATED -> VALIDATING -> (CONFIRMING)? -> EXECUTING -> COMPLETED | FAILED | CANCELLED

The orchestrator appends one CallEvent per transition to an in-memory
EventLog so a caller (or a test) can inspect what happened to a call. The
log lives as long as the orchestrator and is never written to disk.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class CallState(Enum):
    """States of a single action call."""
    CREATED = "created"
    VALIDATING = "validating"
    CONFIRMING = "confirming"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (CallState.COMPLETED, CallState.FAILED, CallState.CANCELLED)


@dataclass
class CallEvent:
    """A single transition in the event log."""
    timestamp: datetime
    state: CallState
    call_id: str
    action_name: str
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "state": self.state.value,
            "call_id": self.call_id,
            "action_name": self.action_name,
            "data": self.data,
        }


@dataclass
class EventLog:
    """Append-only, bounded, in-memory log of call transitions."""
    max_events: int = 10_000
    events: list[CallEvent] = field(default_factory=list)

    def append(self, event: CallEvent) -> None:
        self.events.append(event)
        if len(self.events) > self.max_events:
            del self.events[: len(self.events) - self.max_events]

    def log_event(
        self,
        state: CallState,
        call_id: str,
        action_name: str,
        **data: Any,
    ) -> CallEvent:
        event = CallEvent(
            timestamp=datetime.now(UTC),
            state=state,
            call_id=call_id,
            action_name=action_name,
            data=data,
        )
        self.append(event)
        return event

    def get_events_for_call(self, call_id: str) -> list[CallEvent]:
        return [e for e in self.events if e.call_id == call_id]

    def states_for_call(self, call_id: str) -> list[CallState]:
        return [e.state for e in self.get_events_for_call(call_id)]

    def clear(self) -> None:
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)

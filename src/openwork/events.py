"""
Stream events emitted by the execution engine.

``StreamEvent`` is a closed union: every event produced by
``ExecutionEngine.run`` is exactly one of the dataclasses below, each with
a fixed ``type`` tag. Consumers can dispatch with ``match`` on the class or
on ``event.type``.

Example:
    async for event in engine.run(history):
        match event:
            case TextDelta(content=text):
                print(text, end="")
            case ToolCallStarted(request=req):
                print(f"\\n[calling {req.name}]")
            case TurnFinished(reason=reason):
                print(f"\\n[done: {reason}]")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Union

from openwork.models import ToolInvocationRequest, ToolInvocationResult

# ---------------------------------------------------------------------------
# Finish reasons
# ---------------------------------------------------------------------------

FINISH_STOP = "stop"
FINISH_TOOL_CALLS = "tool-calls"
FINISH_LENGTH = "length"
FINISH_CONTENT_FILTER = "content-filter"
FINISH_STEP_LIMIT = "step-limit"
FINISH_OTHER = "other"

FinishReason = Literal["stop", "tool-calls", "length", "content-filter", "step-limit", "other"]


# ---------------------------------------------------------------------------
# Event variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TurnStarted:
    id: str
    type: ClassVar[str] = "turn-started"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "id": self.id}


@dataclass(frozen=True)
class TextDelta:
    content: str
    type: ClassVar[str] = "text-delta"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "content": self.content}


@dataclass(frozen=True)
class ToolCallStarted:
    request: ToolInvocationRequest
    type: ClassVar[str] = "tool-call-started"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "request": self.request.to_dict()}


@dataclass(frozen=True)
class ToolCallFinished:
    invocation_id: str
    result: ToolInvocationResult
    type: ClassVar[str] = "tool-call-finished"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "invocationId": self.invocation_id,
            "result": self.result.to_dict(),
        }


@dataclass(frozen=True)
class TurnFinished:
    id: str
    reason: str = FINISH_STOP
    type: ClassVar[str] = "turn-finished"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "id": self.id, "reason": self.reason}


@dataclass(frozen=True)
class ErrorEvent:
    description: str
    details: dict[str, Any] = field(default_factory=dict, compare=False)
    type: ClassVar[str] = "error"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "description": self.description}


StreamEvent = Union[
    TurnStarted,
    TextDelta,
    ToolCallStarted,
    ToolCallFinished,
    TurnFinished,
    ErrorEvent,
]

EVENT_TYPES: tuple[type, ...] = (
    TurnStarted,
    TextDelta,
    ToolCallStarted,
    ToolCallFinished,
    TurnFinished,
    ErrorEvent,
)


def is_terminal(event: StreamEvent) -> bool:
    """Whether ``event`` ends a run."""
    return isinstance(event, (TurnFinished, ErrorEvent))

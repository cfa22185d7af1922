"""Folding an event stream back into conversation messages."""

from __future__ import annotations

from collections.abc import AsyncIterable

from openwork.events import (
    ErrorEvent,
    StreamEvent,
    TextDelta,
    ToolCallFinished,
    ToolCallStarted,
    TurnFinished,
    TurnStarted,
)
from openwork.models import ConversationMessage, ToolInvocationRequest


class TranscriptBuilder:
    """
    Builds the messages a turn produced, for the caller to persist.

    Text and tool calls accumulate into an assistant message, which is
    closed when a tool result arrives; each result becomes a ``tool``
    message right after it.

    Example:
        builder = TranscriptBuilder()
        async for event in engine.run(history):
            builder.add(event)
        for message in builder.messages:
            storage.append_message(session_id, message)
    """

    def __init__(self) -> None:
        self.messages: list[ConversationMessage] = []
        self.turn_id: str | None = None
        self.finish_reason: str | None = None
        self.error: str | None = None
        self._text: list[str] = []
        self._calls: list[ToolInvocationRequest] = []

    @property
    def finished(self) -> bool:
        return self.finish_reason is not None or self.error is not None

    @property
    def text(self) -> str:
        """All assistant text of the turn."""
        parts = [m.content for m in self.messages if m.role == "assistant"]
        parts.extend(self._text)
        return "".join(parts)

    def add(self, event: StreamEvent) -> None:
        if isinstance(event, TurnStarted):
            self.turn_id = event.id
        elif isinstance(event, TextDelta):
            self._text.append(event.content)
        elif isinstance(event, ToolCallStarted):
            self._calls.append(event.request)
        elif isinstance(event, ToolCallFinished):
            self.flush()
            self.messages.append(ConversationMessage(role="tool", tool_results=(event.result,)))
        elif isinstance(event, TurnFinished):
            self.flush()
            self.finish_reason = event.reason
        elif isinstance(event, ErrorEvent):
            self.flush()
            self.error = event.description

    def flush(self) -> None:
        """Close the pending assistant message, if any."""
        if not self._text and not self._calls:
            return
        self.messages.append(ConversationMessage(
            role="assistant", content="".join(self._text), tool_calls=tuple(self._calls),
        ))
        self._text = []
        self._calls = []


async def collect_events(events: AsyncIterable[StreamEvent]) -> list[StreamEvent]:
    """Drain an event stream into a list."""
    return [event async for event in events]

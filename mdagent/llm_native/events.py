from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .messages import ToolCall


@dataclass(frozen=True, slots=True)
class TextDeltaEvent:
    delta: str
    type: Literal["text.delta"] = "text.delta"


@dataclass(frozen=True, slots=True)
class ThinkingDeltaEvent:
    delta: str
    type: Literal["thinking.delta"] = "thinking.delta"


@dataclass(frozen=True, slots=True)
class ToolCallDeltaEvent:
    index: int
    tool_call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None
    type: Literal["tool_call.delta"] = "tool_call.delta"


@dataclass(frozen=True, slots=True)
class DoneEvent:
    finish_reason: str | None = None
    type: Literal["done"] = "done"


StreamEvent = TextDeltaEvent | ThinkingDeltaEvent | ToolCallDeltaEvent | DoneEvent


@dataclass(slots=True)
class ToolCallState:
    index: int
    tool_call_id: str | None = None
    name: str | None = None
    arguments_json: str = ""

    def to_tool_call(self, fallback_id: str | None = None) -> ToolCall:
        return ToolCall(
            id=str(self.tool_call_id or fallback_id or ""),
            name=str(self.name or ""),
            arguments_json=self.arguments_json,
        )


class ToolCallAccumulator:
    """
    Accumulate streaming tool_call deltas (Chat Completions style).

    Fragments are keyed by the stream's tool-call index and concatenated in arrival order; nothing
    is parsed until the round is finalized.
    """

    def __init__(self) -> None:
        self._calls: dict[int, ToolCallState] = {}

    def apply(self, event: ToolCallDeltaEvent) -> ToolCallState:
        state = self._calls.get(event.index)
        if state is None:
            state = ToolCallState(index=event.index)
            self._calls[event.index] = state

        if event.tool_call_id:
            state.tool_call_id = event.tool_call_id
        if event.name:
            state.name = event.name
        if event.arguments_delta:
            state.arguments_json += event.arguments_delta
        return state

    def __len__(self) -> int:
        return len(self._calls)

    def list(self) -> list[ToolCallState]:
        return [self._calls[i] for i in sorted(self._calls)]

    def finalize(self, round_number: int) -> list[ToolCall]:
        """Freeze accumulated state; calls that never received an id get a synthetic one."""
        return [
            state.to_tool_call(fallback_id=f"call_{round_number}_{state.index}")
            for state in self.list()
        ]

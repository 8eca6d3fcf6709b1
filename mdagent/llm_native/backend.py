from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol, Sequence

from .events import StreamEvent
from .messages import Message
from .tools import ToolSpec


@dataclass(frozen=True, slots=True)
class BackendConfig:
    """Runtime config for an OpenAI-compatible backend."""

    base_url: str
    api_key: str
    model: str
    timeout_s: float = 60.0
    max_retries: int = 2


@dataclass(frozen=True, slots=True)
class ChatRequest:
    messages: Sequence[Message]
    tools: Sequence[ToolSpec] | None = None
    model: str | None = None
    options: dict[str, Any] = field(default_factory=dict)
    # Ollama model parameters; not part of the Chat Completions payload
    model_params: dict[str, Any] = field(default_factory=dict)

    def to_openai_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "messages": [m.to_openai() for m in self.messages],
        }
        if self.tools:
            kwargs["tools"] = [t.to_openai() for t in self.tools]
        if self.options:
            kwargs.update(self.options)
        return kwargs


class ChatBackend(Protocol):
    """
    Streaming chat interface used by the phase runner.

    ``stream`` yields normalized events for exactly one model call and always terminates, also
    when the model produced nothing. Transport failures propagate as exceptions.
    """

    def stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        raise NotImplementedError

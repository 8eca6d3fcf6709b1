"""
Shared pytest fixtures.

A temporary directory and a scripted model backend.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, List, Sequence

import pytest

from mdagent.llm_native.backend import ChatRequest
from mdagent.llm_native.events import DoneEvent, StreamEvent, TextDeltaEvent, ToolCallDeltaEvent


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def temp_dir():
    """Temporary directory removed after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@dataclass
class ScriptedBackend:
    """
    Replays one scripted list of events per model call.

    An exception instance inside a script is raised at that point of the stream.
    """

    scripts: List[Sequence[Any]]
    requests: List[ChatRequest] = field(default_factory=list)
    closed: bool = False

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        self.requests.append(request)
        call = len(self.requests)
        if call > len(self.scripts):
            raise AssertionError(f"unexpected model call #{call}")
        for event in self.scripts[call - 1]:
            if isinstance(event, BaseException):
                raise event
            yield event

    async def close(self) -> None:
        self.closed = True


def text_round(text: str) -> list:
    return [TextDeltaEvent(delta=text), DoneEvent(finish_reason="stop")]


def tool_round(*calls: tuple[str, str, str]) -> list:
    """``calls`` are ``(tool_call_id, name, arguments_json)`` triples."""
    events: list = [
        ToolCallDeltaEvent(index=i, tool_call_id=call_id, name=name, arguments_delta=args)
        for i, (call_id, name, args) in enumerate(calls)
    ]
    events.append(DoneEvent(finish_reason="tool_calls"))
    return events


@pytest.fixture
def scripted_backend():
    """Factory fixture: ``scripted_backend([round1_events, round2_events, ...])``."""

    def factory(scripts: List[Sequence[Any]]) -> ScriptedBackend:
        return ScriptedBackend(scripts=list(scripts))

    return factory


@pytest.fixture
def rounds():
    """Helpers for building scripted rounds."""

    class _Rounds:
        text = staticmethod(text_round)
        tools = staticmethod(tool_round)

    return _Rounds

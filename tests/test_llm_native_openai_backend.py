from __future__ import annotations

from types import SimpleNamespace

import openai
import pytest

from mdagent.llm_native.backend import BackendConfig, ChatRequest
from mdagent.llm_native.events import (
    DoneEvent,
    TextDeltaEvent,
    ThinkingDeltaEvent,
    ToolCallDeltaEvent,
)
from mdagent.llm_native.messages import Message
from mdagent.llm_native.openai_backend import OpenAICompatibleBackend, _normalize_base_url
from mdagent.llm_native.tools import ToolSpec
from mdagent.utils.exceptions import ModelStreamError


async def _aiter(items):  # noqa: ANN001 - test stub
    for item in items:
        yield item


def _chunk(delta=None, finish_reason=None, usage=None):  # noqa: ANN001 - test stub
    choices = [] if delta is None else [SimpleNamespace(delta=delta, finish_reason=finish_reason)]
    return SimpleNamespace(choices=choices, usage=usage)


def _delta(content=None, tool_calls=None, **extra):  # noqa: ANN001, ANN003 - test stub
    return SimpleNamespace(content=content, tool_calls=tool_calls, **extra)


class DummyChatCompletions:
    def __init__(self, *, stream_chunks=None, error=None) -> None:  # noqa: ANN001 - test stub
        self._stream_chunks = list(stream_chunks or [])
        self._error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):  # noqa: ANN003 - test stub
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return _aiter(self._stream_chunks)


class DummyClient:
    def __init__(self, **kwargs) -> None:  # noqa: ANN003 - test stub
        self.chat = SimpleNamespace(completions=DummyChatCompletions(**kwargs))
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def _backend(client: DummyClient, model: str = "default-model") -> OpenAICompatibleBackend:
    return OpenAICompatibleBackend(
        BackendConfig(base_url="http://localhost:11434", api_key="", model=model),
        client=client,
    )


async def _collect(backend: OpenAICompatibleBackend, request: ChatRequest) -> list:
    return [event async for event in backend.stream(request)]


def test_normalize_base_url_adds_v1_for_bare_host():
    assert _normalize_base_url("https://api.example.com") == "https://api.example.com/v1"
    assert _normalize_base_url("https://api.example.com/") == "https://api.example.com/v1"
    assert _normalize_base_url("https://api.example.com/v1") == "https://api.example.com/v1"
    assert _normalize_base_url("localhost:8000") == "localhost:8000"
    assert _normalize_base_url("") == ""


@pytest.mark.anyio
async def test_stream_normalizes_chunks():
    tool_delta = SimpleNamespace(
        index=0,
        id="call_1",
        function=SimpleNamespace(name="echo", arguments='{"text"'),
    )
    tool_delta_more = SimpleNamespace(
        index=0, id=None, function=SimpleNamespace(name=None, arguments=': "hi"}')
    )
    usage = SimpleNamespace(
        prompt_tokens=10,
        completion_tokens=5,
        completion_tokens_details=SimpleNamespace(reasoning_tokens=3),
    )
    client = DummyClient(
        stream_chunks=[
            _chunk(_delta(reasoning="let me think")),
            _chunk(_delta(content="Hel")),
            _chunk(_delta(content="lo", model_extra={"reasoning_content": "more"})),
            _chunk(_delta(tool_calls=[tool_delta])),
            _chunk(_delta(tool_calls=[tool_delta_more]), finish_reason="tool_calls"),
            _chunk(usage=usage),
        ]
    )

    events = await _collect(_backend(client), ChatRequest(messages=[Message(role="user", content="hi")]))

    assert events == [
        ThinkingDeltaEvent(delta="let me think"),
        TextDeltaEvent(delta="Hel"),
        ThinkingDeltaEvent(delta="more"),
        TextDeltaEvent(delta="lo"),
        ToolCallDeltaEvent(index=0, tool_call_id="call_1", name="echo", arguments_delta='{"text"'),
        ToolCallDeltaEvent(index=0, tool_call_id=None, name=None, arguments_delta=': "hi"}'),
        DoneEvent(finish_reason="tool_calls"),
    ]


@pytest.mark.anyio
async def test_stream_request_arguments():
    async def execute(args):  # noqa: ANN001 - test stub
        return args

    spec = ToolSpec(
        name="echo",
        description="Echo",
        parameters={"type": "object", "properties": {}},
        execute=execute,
    )
    client = DummyClient(stream_chunks=[])
    request = ChatRequest(
        messages=[Message(role="system", content="sys"), Message(role="user", content="hi")],
        tools=[spec],
        model="override-model",
        options={"temperature": 0.3},
    )

    events = await _collect(_backend(client), request)

    assert events == [DoneEvent(finish_reason=None)]
    (kwargs,) = client.chat.completions.calls
    assert kwargs["model"] == "override-model"
    assert kwargs["stream"] is True
    assert kwargs["stream_options"] == {"include_usage": True}
    assert kwargs["temperature"] == 0.3
    assert kwargs["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "hi"},
    ]
    assert kwargs["tools"][0]["function"]["name"] == "echo"


@pytest.mark.anyio
async def test_configured_model_is_the_default():
    client = DummyClient(stream_chunks=[])
    await _collect(_backend(client, model="llama3"), ChatRequest(messages=[]))
    assert client.chat.completions.calls[0]["model"] == "llama3"
    assert "tools" not in client.chat.completions.calls[0]


@pytest.mark.anyio
async def test_sdk_errors_become_model_stream_errors():
    client = DummyClient(error=openai.OpenAIError("upstream unavailable"))

    with pytest.raises(ModelStreamError) as excinfo:
        await _collect(_backend(client, model="llama3"), ChatRequest(messages=[]))

    assert excinfo.value.message == "upstream unavailable"
    assert excinfo.value.context["model_name"] == "llama3"


@pytest.mark.anyio
async def test_close_closes_the_client():
    client = DummyClient()
    backend = _backend(client)
    await backend.close()
    assert client.closed is True


class RecordingModelManager:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    async def ensure_model(self, base_model: str, params: dict) -> str:
        self.calls.append((base_model, dict(params)))
        return f"{base_model}-custom-test"


@pytest.mark.anyio
async def test_model_params_select_the_derived_model():
    client = DummyClient(stream_chunks=[])
    manager = RecordingModelManager()
    backend = OpenAICompatibleBackend(
        BackendConfig(base_url="http://localhost:11434/v1", api_key="", model="llama3"),
        client=client,
        model_manager=manager,  # type: ignore[arg-type]
    )

    await _collect(backend, ChatRequest(messages=[], model_params={"num_ctx": 8192}))

    assert manager.calls == [("llama3", {"num_ctx": 8192})]
    (kwargs,) = client.chat.completions.calls
    assert kwargs["model"] == "llama3-custom-test"
    assert "num_ctx" not in kwargs
    assert "model_params" not in kwargs


@pytest.mark.anyio
async def test_model_params_are_ignored_on_openai():
    client = DummyClient(stream_chunks=[])
    backend = OpenAICompatibleBackend(
        BackendConfig(base_url="https://api.openai.com/v1", api_key="k", model="gpt-4o"),
        client=client,
    )

    await _collect(backend, ChatRequest(messages=[], model_params={"top_k": 20}))

    assert client.chat.completions.calls[0]["model"] == "gpt-4o"

from __future__ import annotations

import aiohttp
import pytest

from mdagent.llm_native.ollama_models import (
    OllamaModelManager,
    custom_model_name,
    extract_model_params,
    is_ollama_endpoint,
    ollama_host,
)


class FakeResponse:
    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info) -> bool:  # noqa: ANN002 - test stub
        return False


class FakeSession:
    """Answers POSTs from a per-path queue of status codes."""

    def __init__(self, statuses: dict[str, list[int]]) -> None:
        self.statuses = {path: list(codes) for path, codes in statuses.items()}
        self.posts: list[tuple[str, dict]] = []

    def post(self, url: str, json: dict) -> FakeResponse:  # noqa: A002 - aiohttp signature
        self.posts.append((url, json))
        path = url.split(":11434", 1)[1]
        return FakeResponse(self.statuses[path].pop(0), "not found")


class FailingSession:
    def post(self, url: str, json: dict) -> FakeResponse:  # noqa: A002 - aiohttp signature
        raise aiohttp.ClientConnectionError("connection refused")


def test_custom_model_name_is_stable():
    first = custom_model_name("llama3", {"num_ctx": 8192, "top_k": 20})
    second = custom_model_name("llama3", {"top_k": 20, "num_ctx": 8192})

    assert first == second
    assert first.startswith("llama3-custom-")
    assert len(first) == len("llama3-custom-") + 8
    assert custom_model_name("llama3", {"num_ctx": 4096}) != first
    assert custom_model_name("llama3", {}) == "llama3"


def test_extract_model_params():
    options = {"num_ctx": 8192, "temperature": 0.2, "top_k": None, "mirostat": 2}
    assert extract_model_params(options) == {"num_ctx": 8192, "mirostat": 2}


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("http://localhost:11434/v1", True),
        ("http://127.0.0.1:11434", True),
        ("http://gpu-box:8000/v1", True),
        ("https://api.openai.com/v1", False),
        ("", False),
    ],
)
def test_is_ollama_endpoint(url: str, expected: bool):
    assert is_ollama_endpoint(url) is expected


def test_ollama_host_strips_the_openai_path():
    assert ollama_host("http://localhost:11434/v1/") == "http://localhost:11434"
    assert ollama_host("http://localhost:11434") == "http://localhost:11434"


@pytest.mark.anyio
async def test_missing_model_is_created_once():
    session = FakeSession({"/api/show": [404], "/api/create": [200]})
    manager = OllamaModelManager("http://localhost:11434/v1", session=session)
    params = {"num_ctx": 8192}
    target = custom_model_name("llama3", params)

    assert await manager.ensure_model("llama3", params) == target
    assert await manager.ensure_model("llama3", params) == target

    assert [url for url, _ in session.posts] == [
        "http://localhost:11434/api/show",
        "http://localhost:11434/api/create",
    ]
    assert session.posts[1][1] == {
        "model": target,
        "from": "llama3",
        "parameters": {"num_ctx": 8192},
        "stream": False,
    }


@pytest.mark.anyio
async def test_existing_model_is_reused():
    session = FakeSession({"/api/show": [200]})
    manager = OllamaModelManager("http://localhost:11434", session=session)

    model = await manager.ensure_model("llama3", {"top_k": 20})

    assert model == custom_model_name("llama3", {"top_k": 20})
    assert len(session.posts) == 1


@pytest.mark.anyio
async def test_no_params_means_base_model():
    session = FakeSession({})
    manager = OllamaModelManager("http://localhost:11434", session=session)

    assert await manager.ensure_model("llama3", {}) == "llama3"
    assert session.posts == []


@pytest.mark.anyio
async def test_create_failure_falls_back_to_base_model():
    session = FakeSession({"/api/show": [404], "/api/create": [500]})
    manager = OllamaModelManager("http://localhost:11434", session=session)

    assert await manager.ensure_model("llama3", {"num_ctx": 8192}) == "llama3"


@pytest.mark.anyio
async def test_unreachable_server_falls_back_to_base_model():
    manager = OllamaModelManager("http://localhost:11434", session=FailingSession())

    assert await manager.ensure_model("llama3", {"num_ctx": 8192}) == "llama3"

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator
from urllib.parse import urlparse

from openai import AsyncOpenAI, OpenAIError

from mdagent.utils.exceptions import ModelStreamError
from mdagent.utils.logger import get_logger

from .backend import BackendConfig, ChatBackend, ChatRequest
from .events import DoneEvent, StreamEvent, TextDeltaEvent, ThinkingDeltaEvent, ToolCallDeltaEvent
from .ollama_models import OllamaModelManager, is_ollama_endpoint

logger = get_logger(__name__)


def _normalize_base_url(base_url: str) -> str:
    raw = str(base_url or "").strip()
    if not raw:
        return ""
    raw = raw.rstrip("/")
    try:
        parsed = urlparse(raw)
    except ValueError:
        return raw
    if not parsed.scheme or not parsed.netloc:
        return raw
    if parsed.path in ("", "/"):
        return f"{raw}/v1"
    return raw


def _thinking_text(delta: Any) -> str:
    # Ollama and vLLM expose chain-of-thought under non-standard field names.
    for attr in ("reasoning", "reasoning_content"):
        value = getattr(delta, attr, None)
        if value:
            return str(value)
    extra = getattr(delta, "model_extra", None)
    if isinstance(extra, dict):
        for key in ("reasoning", "reasoning_content"):
            value = extra.get(key)
            if value:
                return str(value)
    return ""


def _log_usage(usage: Any, model: str) -> None:
    details = getattr(usage, "completion_tokens_details", None)
    reasoning_tokens = getattr(details, "reasoning_tokens", None) if details is not None else None
    logger.debug(
        "usage model=%s prompt=%s completion=%s reasoning=%s",
        model,
        getattr(usage, "prompt_tokens", None),
        getattr(usage, "completion_tokens", None),
        reasoning_tokens,
    )


def _events_from_chunk(chunk: Any) -> list[StreamEvent]:
    events: list[StreamEvent] = []
    for choice in getattr(chunk, "choices", None) or []:
        delta = getattr(choice, "delta", None)
        if delta is None:
            continue

        thinking = _thinking_text(delta)
        if thinking:
            events.append(ThinkingDeltaEvent(delta=thinking))

        content = getattr(delta, "content", None)
        if content:
            events.append(TextDeltaEvent(delta=str(content)))

        for tool_call in getattr(delta, "tool_calls", None) or []:
            function = getattr(tool_call, "function", None)
            name = getattr(function, "name", None) if function is not None else None
            arguments = getattr(function, "arguments", None) if function is not None else None
            tool_call_id = getattr(tool_call, "id", None)
            events.append(
                ToolCallDeltaEvent(
                    index=int(getattr(tool_call, "index", 0) or 0),
                    tool_call_id=str(tool_call_id) if tool_call_id else None,
                    name=str(name) if name else None,
                    arguments_delta=str(arguments) if arguments else None,
                )
            )
    return events


@dataclass(slots=True)
class OpenAICompatibleBackend(ChatBackend):
    """
    Streaming backend built on the official OpenAI Python SDK (``AsyncOpenAI``).

    Works against any Chat Completions compatible server selected via ``base_url`` (OpenAI,
    Ollama, vLLM, LM Studio, ...). Only ``create(stream=True)`` is used; the SDK's ``.stream()``
    helper rejects chunk shapes some local servers emit.

    Ollama model parameters on a request (``num_ctx``, ``top_k``, ...) are applied through a
    derived model on Ollama-style servers and ignored with a warning elsewhere.
    """

    config: BackendConfig
    _client: Any
    _models: OllamaModelManager | None

    def __init__(
        self,
        config: BackendConfig,
        *,
        client: Any | None = None,
        model_manager: OllamaModelManager | None = None,
    ) -> None:
        self.config = config
        kwargs: dict[str, Any] = {
            "base_url": _normalize_base_url(config.base_url) or None,
            "timeout": float(config.timeout_s),
            "max_retries": int(config.max_retries),
            # The SDK refuses to start without a key; local servers ignore it.
            "api_key": str(config.api_key or "").strip() or "EMPTY",
        }
        self._client = client or AsyncOpenAI(**kwargs)
        if model_manager is None and is_ollama_endpoint(config.base_url):
            model_manager = OllamaModelManager(
                _normalize_base_url(config.base_url), timeout_s=float(config.timeout_s)
            )
        self._models = model_manager

    async def close(self) -> None:
        await self._client.close()

    async def _resolve_model(self, request: ChatRequest) -> str:
        model = request.model or self.config.model
        if not request.model_params:
            return model
        if self._models is None:
            logger.warning(
                "model parameters %s need an Ollama server; ignored for %s",
                sorted(request.model_params),
                self.config.base_url,
            )
            return model
        return await self._models.ensure_model(model, request.model_params)

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        kwargs = request.to_openai_kwargs()
        model = await self._resolve_model(request)
        kwargs["model"] = model
        kwargs["stream"] = True
        kwargs.setdefault("stream_options", {"include_usage": True})

        finish_reason: str | None = None
        try:
            response = await self._client.chat.completions.create(**kwargs)
            async for chunk in response:
                for event in _events_from_chunk(chunk):
                    yield event

                for choice in getattr(chunk, "choices", None) or []:
                    fr = getattr(choice, "finish_reason", None)
                    if fr:
                        finish_reason = str(fr)

                usage = getattr(chunk, "usage", None)
                if usage is not None:
                    _log_usage(usage, model)
        except OpenAIError as exc:
            raise ModelStreamError(str(exc) or type(exc).__name__, model_name=model) from exc

        yield DoneEvent(finish_reason=finish_reason)


__all__ = ["OpenAICompatibleBackend"]

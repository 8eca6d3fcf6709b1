from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Mapping, Protocol, Sequence

from mdagent.utils.exceptions import PhaseExecutionError, RoundLimitError, UnknownToolError
from mdagent.utils.logger import get_logger, log_context

from .backend import ChatBackend, ChatRequest
from .events import (
    DoneEvent,
    TextDeltaEvent,
    ThinkingDeltaEvent,
    ToolCallAccumulator,
    ToolCallDeltaEvent,
)
from .messages import Message, ToolCall
from .options import ResolvedOptions, resolve_request_options
from .phase import Phase
from .store import MessageStore
from .structured import StructuredResponseError, format_instructions, validate_structured_response
from .templating import replace_template_variables
from .tool_runner import ToolRunner
from .tools import ToolRegistry, ToolSpec, as_registry

logger = get_logger(__name__)

DEFAULT_MAX_ROUNDS = 30


class TranscriptSink(Protocol):
    def save(self, messages: Sequence[Message]) -> Any:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class RunnerConfig:
    max_rounds: int = DEFAULT_MAX_ROUNDS
    tool_max_retries: int = 2


@dataclass(slots=True)
class ChatObservers:
    """
    Optional progress callbacks. Any of them may be a coroutine function.

    A failing observer is logged and ignored; it never changes how a phase runs.
    """

    on_thinking_chunk: Callable[[str], Any] | None = None
    on_content_chunk: Callable[[str], Any] | None = None
    on_tool_call: Callable[[ToolCall], Any] | None = None
    on_tool_response: Callable[[Any], Any] | None = None
    on_phase_end: Callable[[list[Message]], Any] | None = None

    async def notify(self, event: str, *args: Any) -> None:
        callback = getattr(self, event, None)
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning("observer %s raised; ignoring", event, exc_info=True)


@dataclass(slots=True)
class _RoundOutput:
    content: str
    tool_calls: list[ToolCall]
    finish_reason: str | None = None


def _describe(exc: BaseException) -> str:
    return str(getattr(exc, "message", "") or exc) or type(exc).__name__


@dataclass(slots=True)
class ChatRunner:
    """
    Phase executor: owns the message store and runs the model-call / tool-call round loop.

    One runner drives one conversation. Call :meth:`run` once per phase, in order; later phases
    see earlier output through the context view unless a purge removed it.
    """

    backend: ChatBackend
    system_prompt: str = ""
    tools: ToolRegistry | Sequence[ToolSpec] | Mapping[str, ToolSpec] | None = None
    options: dict[str, Any] = field(default_factory=dict)
    template_variables: dict[str, Any] = field(default_factory=dict)
    observers: ChatObservers = field(default_factory=ChatObservers)
    config: RunnerConfig = field(default_factory=RunnerConfig)
    debug_writer: TranscriptSink | None = None
    today: date | None = None
    _store: MessageStore = field(default_factory=MessageStore, init=False, repr=False)
    _tool_runner: ToolRunner = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if int(self.config.max_rounds) < 1:
            raise ValueError("max_rounds must be at least 1")
        self.tools = as_registry(self.tools)
        self._tool_runner = ToolRunner(default_max_retries=self.config.tool_max_retries)

    @property
    def messages(self) -> list[Message]:
        """Permanent record (never purged)."""
        return list(self._store.record)

    @property
    def context(self) -> list[Message]:
        """Context view sent to the model on the next call."""
        return list(self._store.context)

    def _render(self, template: str) -> str:
        return replace_template_variables(template, self.template_variables, today=self.today)

    def _snapshot(self) -> None:
        if self.debug_writer is None:
            return
        try:
            self.debug_writer.save(self._store.record)
        except OSError as exc:
            logger.warning("debug snapshot failed: %s", exc)

    def _append(self, message: Message) -> None:
        self._store.append(message)

    def _user_prompt(self, phase: Phase) -> str:
        prompt = self._render(phase.prompt)
        if phase.response_schema is not None:
            prompt = f"{prompt}\n\n{format_instructions(phase.response_schema)}"
        return prompt

    async def run(self, phase: Phase) -> list[Message]:
        """Run one phase to completion and return the messages it added to the record."""
        record_start = len(self._store.record)
        context_start = len(self._store.context)

        with log_context(phase=phase.name):
            if not self._store.record:
                self._append(Message(role="system", content=self._render(self.system_prompt)))

            self._append(Message(role="user", content=self._user_prompt(phase)))
            self._snapshot()

            tools = phase.active_tools(self.tools)  # type: ignore[arg-type]
            resolved = resolve_request_options(self.options, phase.options, phase.think)
            logger.info(
                "phase %s started (tools=%s, max_rounds=%s)",
                phase.name,
                len(tools),
                self.config.max_rounds,
            )

            final_content = await self._round_loop(phase, tools, resolved)

            if phase.purge:
                self._store.purge(phase.purge, context_start)
                logger.debug(
                    "purged context with %s; %s message(s) remain",
                    list(phase.purge),
                    len(self._store.context),
                )

            if phase.response_schema is not None and final_content:
                self._apply_structured_response(phase, final_content)

            new_messages = list(self._store.record[record_start:])
            await self.observers.notify("on_phase_end", new_messages)
            logger.info("phase %s finished with %s new message(s)", phase.name, len(new_messages))
            return new_messages

    async def _round_loop(
        self,
        phase: Phase,
        tools: ToolRegistry,
        resolved: ResolvedOptions,
    ) -> str:
        max_rounds = int(self.config.max_rounds)

        for round_number in range(1, max_rounds + 1):
            with log_context(round=round_number):
                request = ChatRequest(
                    messages=list(self._store.context),
                    tools=tools.tools() or None,
                    model=resolved.model,
                    options=dict(resolved.params),
                    model_params=dict(resolved.model_params),
                )
                output = await self._stream_round(phase, round_number, request)

                if output.content or output.tool_calls:
                    self._append(
                        Message(
                            role="assistant",
                            content=output.content,
                            tool_calls=list(output.tool_calls) or None,
                        )
                    )
                    self._snapshot()

                if not output.tool_calls:
                    logger.debug("round %s finished without tool calls", round_number)
                    return output.content

                if round_number >= max_rounds:
                    break

                logger.debug(
                    "round %s requested %s tool call(s)", round_number, len(output.tool_calls)
                )
                for call in output.tool_calls:
                    await self._execute_tool_call(phase, round_number, call, tools)

        logger.error("phase %s exhausted its round budget (%s)", phase.name, max_rounds)
        raise RoundLimitError(phase.name, max_rounds)

    async def _stream_round(
        self,
        phase: Phase,
        round_number: int,
        request: ChatRequest,
    ) -> _RoundOutput:
        accumulator = ToolCallAccumulator()
        notified: set[str] = set()
        content_parts: list[str] = []
        finish_reason: str | None = None

        try:
            async for event in self.backend.stream(request):
                if isinstance(event, TextDeltaEvent):
                    if event.delta:
                        content_parts.append(event.delta)
                        await self.observers.notify("on_content_chunk", event.delta)
                elif isinstance(event, ThinkingDeltaEvent):
                    if event.delta:
                        await self.observers.notify("on_thinking_chunk", event.delta)
                elif isinstance(event, ToolCallDeltaEvent):
                    state = accumulator.apply(event)
                    if state.tool_call_id and state.tool_call_id not in notified:
                        notified.add(state.tool_call_id)
                        await self.observers.notify("on_tool_call", state.to_tool_call())
                elif isinstance(event, DoneEvent):
                    finish_reason = event.finish_reason
        except Exception as exc:
            logger.error("model call failed in round %s: %s", round_number, _describe(exc))
            raise PhaseExecutionError(
                f"Phase '{phase.name}' failed in round {round_number}: {_describe(exc)}",
                phase=phase.name,
                round=round_number,
                cause=exc,
            ) from exc

        tool_calls = accumulator.finalize(round_number)
        for call in tool_calls:
            if call.id not in notified:
                notified.add(call.id)
                await self.observers.notify("on_tool_call", call)

        return _RoundOutput(
            content="".join(content_parts),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )

    async def _execute_tool_call(
        self,
        phase: Phase,
        round_number: int,
        call: ToolCall,
        tools: ToolRegistry,
    ) -> None:
        try:
            results = await self._tool_runner.run(call, tools)
        except UnknownToolError as exc:
            logger.error("model requested unknown tool %r", call.name)
            raise PhaseExecutionError(
                f"Phase '{phase.name}' failed in round {round_number}: {exc.message}",
                phase=phase.name,
                round=round_number,
                cause=exc,
            ) from exc

        for result in results:
            self._append(result.message)
            await self.observers.notify("on_tool_response", result.response)
        self._snapshot()

    def _apply_structured_response(self, phase: Phase, content: str) -> None:
        try:
            canonical = validate_structured_response(phase.response_schema, content)
        except StructuredResponseError as exc:
            logger.warning("phase %s response validation failed: %s", phase.name, exc)
            logger.debug("raw content: %s", content)
            return

        last = self._store.record[-1] if self._store.record else None
        if last is not None and last.role == "assistant":
            last.content = canonical
            self._snapshot()
        logger.info("phase %s response validated", phase.name)


__all__ = [
    "ChatObservers",
    "ChatRunner",
    "DEFAULT_MAX_ROUNDS",
    "RunnerConfig",
    "TranscriptSink",
]

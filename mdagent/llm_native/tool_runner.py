from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from mdagent.utils.exceptions import UnknownToolError
from mdagent.utils.logger import get_logger

from .messages import Message, ToolCall
from .tools import ToolRegistry

logger = get_logger(__name__)


class ToolArgumentsError(ValueError):
    pass


def _parse_tool_arguments(arguments_json: str) -> dict[str, Any]:
    raw = str(arguments_json or "").strip()
    if not raw:
        return {}

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolArgumentsError(f"tool arguments are not valid JSON: {exc}") from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ToolArgumentsError(
            f"tool arguments must be a JSON object, got {type(parsed).__name__}"
        )
    return parsed


def stringify_tool_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    return json.dumps(result, ensure_ascii=False, default=str)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@dataclass(frozen=True, slots=True)
class ToolResult:
    """One appended tool-result message plus what observers are told about it."""

    message: Message
    response: Any
    ok: bool


@dataclass(slots=True)
class ToolRunner:
    """
    Execute one tool call against a registry with bounded local retry.

    - Unknown tool names raise :class:`UnknownToolError`; the caller treats that as fatal.
    - Unparseable or non-object arguments produce a single terminal diagnostic.
    - A failing ``execute`` is retried up to ``max_retries`` more times (tool value wins over
      ``default_max_retries``). Every failed attempt yields its own diagnostic message.
    """

    default_max_retries: int = 2

    def max_retries_for(self, registry: ToolRegistry, name: str) -> int:
        spec = registry.get(name)
        if spec is not None and spec.max_retries is not None:
            return max(0, int(spec.max_retries))
        return max(0, int(self.default_max_retries))

    def _message(self, call: ToolCall, content: str) -> Message:
        return Message(role="tool", content=content, tool_call_id=call.id, name=call.name)

    async def run(self, call: ToolCall, registry: ToolRegistry) -> list[ToolResult]:
        spec = registry.get(call.name)
        if spec is None:
            raise UnknownToolError(call.name, available=registry.names())

        try:
            args = _parse_tool_arguments(call.arguments_json)
        except ToolArgumentsError as exc:
            logger.warning("tool %s received unusable arguments: %s", call.name, exc)
            diagnostic = (
                f"Tool execution failed: {exc}. Please call the tool again with a JSON object."
            )
            return [
                ToolResult(
                    message=self._message(call, f"Error: {diagnostic}"),
                    response=diagnostic,
                    ok=False,
                )
            ]

        max_retries = self.max_retries_for(registry, call.name)
        attempts = max_retries + 1
        results: list[ToolResult] = []

        for attempt in range(1, attempts + 1):
            try:
                result = await spec.execute(args)
            except Exception as exc:
                logger.warning(
                    "tool %s failed (attempt %s/%s): %s",
                    call.name,
                    attempt,
                    attempts,
                    _describe(exc),
                )
                if attempt < attempts:
                    diagnostic = (
                        f"Tool execution failed (attempt {attempt}/{attempts}): {_describe(exc)}. "
                        "Please retry this tool call."
                    )
                else:
                    logger.debug("tool %s gave up", call.name, exc_info=exc)
                    noun = "attempt" if attempts == 1 else "attempts"
                    diagnostic = (
                        f"Tool execution failed after {attempts} {noun}: {_describe(exc)}"
                    )
                results.append(
                    ToolResult(
                        message=self._message(call, f"Error: {diagnostic}"),
                        response=diagnostic,
                        ok=False,
                    )
                )
                continue

            results.append(
                ToolResult(
                    message=self._message(call, stringify_tool_result(result)),
                    response=result,
                    ok=True,
                )
            )
            break

        return results


__all__ = ["ToolArgumentsError", "ToolResult", "ToolRunner", "stringify_tool_result"]

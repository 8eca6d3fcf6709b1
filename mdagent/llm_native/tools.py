from __future__ import annotations

import inspect
import types
import typing
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, get_args, get_origin

from pydantic import BaseModel

ToolExecute = Callable[[dict[str, Any]], Awaitable[Any]]


def pydantic_to_strict_json_schema(model: type[BaseModel]) -> dict[str, Any]:
    """Build a strict JSON schema from a Pydantic model."""

    schema = model.model_json_schema()
    schema.setdefault("additionalProperties", False)
    return schema


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """
    An executable tool: OpenAI function schema plus the coroutine that runs it.

    ``execute`` receives the parsed argument object. ``max_retries`` overrides the runner's
    retry budget for this tool when set.
    """

    name: str
    description: str
    parameters: dict[str, Any]
    execute: ToolExecute
    max_retries: int | None = None
    strict: bool | None = None

    def to_openai(self) -> dict[str, Any]:
        func: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }
        if self.strict is not None:
            func["strict"] = bool(self.strict)
        return {
            "type": "function",
            "function": func,
        }


class ToolRegistry:
    """Name -> ToolSpec lookup table; tools are offered to the model in insertion order."""

    def __init__(self, tools: Iterable[ToolSpec] | None = None) -> None:
        self._tools: dict[str, ToolSpec] = {}
        for spec in tools or ():
            self.register(spec)

    def register(self, tool: ToolSpec, *, replace: bool = False) -> None:
        if not tool.name:
            raise ValueError("tool.name is required")
        if tool.name in self._tools and not replace:
            raise ValueError(f"tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def tools(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def merged(self, overrides: ToolRegistry | Iterable[ToolSpec]) -> ToolRegistry:
        """Return a new registry where ``overrides`` replace same-named entries."""
        result = ToolRegistry(self.tools())
        specs = overrides.tools() if isinstance(overrides, ToolRegistry) else overrides
        for spec in specs:
            result.register(spec, replace=True)
        return result

    def to_openai(self) -> list[dict[str, Any]]:
        return [tool.to_openai() for tool in self.tools()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self):
        return iter(self._tools.values())


def as_registry(
    tools: ToolRegistry | Iterable[ToolSpec] | Mapping[str, ToolSpec] | None,
) -> ToolRegistry:
    if tools is None:
        return ToolRegistry()
    if isinstance(tools, ToolRegistry):
        return tools
    if isinstance(tools, Mapping):
        return ToolRegistry(tools.values())
    return ToolRegistry(tools)


def _is_optional_annotation(annotation: Any) -> bool:
    if annotation is inspect.Signature.empty:
        return False
    origin = get_origin(annotation)
    if origin in (types.UnionType, typing.Union):
        return type(None) in get_args(annotation)
    return False


def _annotation_to_json_schema(annotation: Any) -> dict[str, Any]:
    if annotation is inspect.Signature.empty:
        return {"type": "string"}

    origin = get_origin(annotation)
    if origin in (types.UnionType, typing.Union):
        args = [a for a in get_args(annotation) if a is not type(None)]  # noqa: E721
        if len(args) == 1:
            return _annotation_to_json_schema(args[0])
        return {"type": "string"}

    if annotation is str:
        return {"type": "string"}
    if annotation is bool:
        return {"type": "boolean"}
    if annotation is int:
        return {"type": "integer"}
    if annotation is float:
        return {"type": "number"}
    if annotation is dict or origin is dict:
        return {"type": "object"}

    if origin in (list, tuple) or annotation in (list, tuple):
        item = get_args(annotation)[0] if get_args(annotation) else str
        return {"type": "array", "items": _annotation_to_json_schema(item)}

    return {"type": "string"}


def _signature_schema(fn: Callable[..., Any]) -> dict[str, Any]:
    signature = inspect.signature(inspect.unwrap(fn))
    try:
        hints = typing.get_type_hints(fn)
    except (NameError, TypeError):
        # Forward references that cannot be resolved fall back to the raw annotations.
        hints = {}

    properties: dict[str, Any] = {}
    required: list[str] = []
    for param in signature.parameters.values():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        if param.name in ("self", "cls"):
            continue

        annotation = hints.get(param.name, param.annotation)
        properties[param.name] = _annotation_to_json_schema(annotation)

        if param.default is inspect.Signature.empty and not _is_optional_annotation(annotation):
            required.append(param.name)

    schema: dict[str, Any] = {
        "type": "object",
        "properties": properties,
        "additionalProperties": False,
    }
    if required:
        schema["required"] = required
    return schema


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def callable_to_toolspec(
    fn: Callable[..., Any],
    *,
    name: str | None = None,
    description: str | None = None,
    args_model: type[BaseModel] | None = None,
    max_retries: int | None = None,
    strict: bool | None = None,
) -> ToolSpec:
    """
    Wrap a plain (sync or async) function as a ToolSpec.

    With ``args_model`` the raw arguments are validated into that model and passed as a single
    positional argument; otherwise they are passed as keyword arguments and the JSON schema is
    derived from the signature.
    """

    tool_name = str(name or getattr(fn, "__name__", "") or "").strip()
    if not tool_name:
        raise ValueError("tool name is required")

    description_text = str(description or inspect.getdoc(fn) or "").strip()

    if args_model is not None:
        parameters = pydantic_to_strict_json_schema(args_model)

        async def execute(args: dict[str, Any]) -> Any:
            return await _maybe_await(fn(args_model.model_validate(args)))

    else:
        parameters = _signature_schema(fn)

        async def execute(args: dict[str, Any]) -> Any:
            return await _maybe_await(fn(**args))

    return ToolSpec(
        name=tool_name,
        description=description_text,
        parameters=parameters,
        execute=execute,
        max_retries=max_retries,
        strict=strict,
    )


def tool(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    args_model: type[BaseModel] | None = None,
    max_retries: int | None = None,
) -> Any:
    """Decorator form of :func:`callable_to_toolspec`; usable bare or with keyword arguments."""

    def decorator(inner: Callable[..., Any]) -> ToolSpec:
        return callable_to_toolspec(
            inner,
            name=name,
            description=description,
            args_model=args_model,
            max_retries=max_retries,
        )

    if func is None:
        return decorator
    return decorator(func)


__all__ = [
    "ToolExecute",
    "ToolRegistry",
    "ToolSpec",
    "as_registry",
    "callable_to_toolspec",
    "pydantic_to_strict_json_schema",
    "tool",
]

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError

FORMAT_SEPARATOR = "--------"


class StructuredResponseError(ValueError):
    """The final phase text is not valid JSON for the declared response schema."""


@lru_cache(maxsize=64)
def _adapter(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def response_json_schema(schema: Any) -> dict[str, Any]:
    return _adapter(schema).json_schema()


def format_instructions(schema: Any) -> str:
    """Prompt suffix asking the model for a bare JSON object matching ``schema``."""
    return (
        f"{FORMAT_SEPARATOR}\n"
        "Respond in the following format. Respond ONLY with a JSON object, no wrappers or "
        "commentary.\n"
        f"{json.dumps(response_json_schema(schema), ensure_ascii=False)}"
    )


def _whole_numbers_as_int(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, list):
        return [_whole_numbers_as_int(v) for v in value]
    if isinstance(value, dict):
        return {k: _whole_numbers_as_int(v) for k, v in value.items()}
    return value


def validate_structured_response(schema: Any, content: str) -> str:
    """
    Validate ``content`` strictly against ``schema`` and return the compact serialization of the
    validated value.

    Strict mode: no coercion, so ``"1"`` is not accepted for a number field. Whole floats are
    written without a fraction (``1.0`` becomes ``1``).
    """
    try:
        json.loads(content)
    except json.JSONDecodeError as exc:
        raise StructuredResponseError(f"response is not valid JSON: {exc}") from exc

    adapter = _adapter(schema)
    try:
        value = adapter.validate_json(content, strict=True)
    except ValidationError as exc:
        raise StructuredResponseError(f"response does not match schema: {exc}") from exc

    canonical = _whole_numbers_as_int(adapter.dump_python(value, mode="json"))
    return json.dumps(canonical, ensure_ascii=False, separators=(",", ":"))


__all__ = [
    "StructuredResponseError",
    "format_instructions",
    "response_json_schema",
    "validate_structured_response",
]

"""
Model option resolution.

Options reach a request in three fixed layers: system-wide options, then the phase's overrides,
then a projection onto the parameters an OpenAI-compatible endpoint understands. Ollama model
parameters are split off into ``model_params``; see :mod:`mdagent.llm_native.ollama_models`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from mdagent.utils.logger import get_logger

from .ollama_models import OLLAMA_MODEL_PARAMS, extract_model_params

logger = get_logger(__name__)

THINK_TO_REASONING_EFFORT: dict[str, str] = {
    "low": "minimal",
    "medium": "medium",
    "high": "high",
}

OPENAI_PASSTHROUGH_PARAMS: tuple[str, ...] = (
    "max_tokens",
    "max_completion_tokens",
    "temperature",
    "top_p",
    "seed",
    "frequency_penalty",
    "presence_penalty",
    "logit_bias",
    "logprobs",
    "top_logprobs",
    "n",
    "stop",
    "user",
    "response_format",
    "reasoning_effort",
)

# Consumed by the projection itself rather than passed through.
_PROJECTED_KEYS = frozenset({"think", "num_predict", "model"})


@dataclass(frozen=True, slots=True)
class ResolvedOptions:
    params: dict[str, Any] = field(default_factory=dict)
    model: str | None = None
    # Ollama model parameters (num_ctx, top_k, ...), applied through a derived model
    model_params: dict[str, Any] = field(default_factory=dict)


def merge_options(
    system_options: Mapping[str, Any] | None,
    phase_options: Mapping[str, Any] | None,
) -> dict[str, Any]:
    merged: dict[str, Any] = dict(system_options or {})
    merged.update(phase_options or {})
    return merged


def project_openai_options(merged: Mapping[str, Any], think: str | None = None) -> ResolvedOptions:
    params: dict[str, Any] = {}

    think_level = think if think is not None else merged.get("think")
    effort = THINK_TO_REASONING_EFFORT.get(str(think_level)) if think_level else None
    if effort:
        params["reasoning_effort"] = effort

    if merged.get("num_predict") and not merged.get("max_tokens"):
        params["max_tokens"] = merged["num_predict"]

    for name in OPENAI_PASSTHROUGH_PARAMS:
        value = merged.get(name)
        if value is not None:
            params[name] = value

    dropped = sorted(
        key
        for key in merged
        if key not in OPENAI_PASSTHROUGH_PARAMS
        and key not in _PROJECTED_KEYS
        and key not in OLLAMA_MODEL_PARAMS
    )
    if dropped:
        logger.warning("options not supported by the chat endpoint were dropped: %s", dropped)

    model = merged.get("model")
    return ResolvedOptions(
        params=params,
        model=str(model) if model else None,
        model_params=extract_model_params(merged),
    )


def resolve_request_options(
    system_options: Mapping[str, Any] | None,
    phase_options: Mapping[str, Any] | None = None,
    think: str | None = None,
) -> ResolvedOptions:
    return project_openai_options(merge_options(system_options, phase_options), think=think)


__all__ = [
    "OPENAI_PASSTHROUGH_PARAMS",
    "ResolvedOptions",
    "THINK_TO_REASONING_EFFORT",
    "merge_options",
    "project_openai_options",
    "resolve_request_options",
]

"""
mdagent phase execution engine.

- Message / ToolCall (OpenAI Chat Completions message shapes)
- StreamEvent protocol (TextDelta / ThinkingDelta / ToolCallDelta / Done), tool-call accumulator
- ToolSpec / ToolRegistry (tool schema plus executable)
- ChatBackend interface and the OpenAI-compatible streaming backend
- Ollama model parameters applied through derived models
- MessageStore with the context purge policy
- ChatRunner (round loop), ToolRunner (bounded retry), structured response validation
"""

from .backend import BackendConfig, ChatBackend, ChatRequest
from .events import (
    DoneEvent,
    StreamEvent,
    TextDeltaEvent,
    ThinkingDeltaEvent,
    ToolCallAccumulator,
    ToolCallDeltaEvent,
    ToolCallState,
)
from .messages import Message, Role, ToolCall, message_from_openai, messages_from_openai
from .ollama_models import OllamaModelManager, custom_model_name
from .openai_backend import OpenAICompatibleBackend
from .options import ResolvedOptions, resolve_request_options
from .phase import Phase
from .phase_runner import ChatObservers, ChatRunner, RunnerConfig
from .store import PURGE_ORDER, MessageStore, PurgeDirective, apply_purge
from .structured import StructuredResponseError, format_instructions, validate_structured_response
from .templating import replace_template_variables
from .tool_runner import ToolResult, ToolRunner
from .tools import (
    ToolRegistry,
    ToolSpec,
    callable_to_toolspec,
    pydantic_to_strict_json_schema,
    tool,
)

__all__ = [
    "BackendConfig",
    "ChatBackend",
    "ChatObservers",
    "ChatRequest",
    "ChatRunner",
    "DoneEvent",
    "Message",
    "MessageStore",
    "OllamaModelManager",
    "OpenAICompatibleBackend",
    "PURGE_ORDER",
    "Phase",
    "PurgeDirective",
    "ResolvedOptions",
    "Role",
    "RunnerConfig",
    "StreamEvent",
    "StructuredResponseError",
    "TextDeltaEvent",
    "ThinkingDeltaEvent",
    "ToolCall",
    "ToolCallAccumulator",
    "ToolCallDeltaEvent",
    "ToolCallState",
    "ToolRegistry",
    "ToolResult",
    "ToolRunner",
    "ToolSpec",
    "apply_purge",
    "callable_to_toolspec",
    "custom_model_name",
    "format_instructions",
    "message_from_openai",
    "messages_from_openai",
    "pydantic_to_strict_json_schema",
    "replace_template_variables",
    "resolve_request_options",
    "tool",
    "validate_structured_response",
]

"""Markdown agent definitions: parsing, tool loading, built-in tools, multi-phase runs."""

from .builtin_tools import BUILTIN_TOOLS, ToolContext
from .converter import MarkdownAgent, create_markdown_agent, load_object
from .markdown_parser import (
    ParsedMarkdownAgent,
    PhaseConfig,
    SystemConfig,
    parse_markdown_agent,
)
from .multi_phase import final_response, run_multi_phase
from .tool_loader import load_tools

__all__ = [
    "BUILTIN_TOOLS",
    "MarkdownAgent",
    "ParsedMarkdownAgent",
    "PhaseConfig",
    "SystemConfig",
    "ToolContext",
    "create_markdown_agent",
    "final_response",
    "load_object",
    "load_tools",
    "parse_markdown_agent",
    "run_multi_phase",
]

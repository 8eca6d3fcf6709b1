from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from mdagent.llm_native.phase import Phase
from mdagent.llm_native.tools import ToolRegistry
from mdagent.utils.exceptions import AgentDefinitionError, ToolLoadError
from mdagent.utils.logger import get_logger

from .markdown_parser import ParsedPhase, SystemConfig, parse_markdown_agent
from .tool_loader import import_from_path, load_tools

logger = get_logger(__name__)


@dataclass
class MarkdownAgent:
    """A markdown agent file turned into runnable pieces."""

    path: Path
    system_prompt: str
    system_config: SystemConfig
    tools: ToolRegistry
    phases: List[Phase] = field(default_factory=list)

    @property
    def base_path(self) -> Path:
        return self.path.parent

    @property
    def name(self) -> str:
        return self.path.stem

    @property
    def model(self) -> Optional[str]:
        return self.system_config.model

    def system_options(self) -> dict[str, Any]:
        options = self.system_config.request_options()
        # The model is chosen once per run, not per request.
        options.pop("model", None)
        return options


def load_object(reference: str, base_dir: Path) -> Any:
    """
    Resolve ``module:Attribute`` or ``file.py:Attribute``.

    File paths are relative to ``base_dir``. Dotted attribute paths are supported.
    """
    target, sep, attribute = reference.rpartition(":")
    if not sep or not target or not attribute:
        raise ValueError(f"expected 'module:Attribute' or 'file.py:Attribute', got {reference!r}")

    if target.endswith(".py"):
        path = Path(target)
        module = import_from_path(path if path.is_absolute() else base_dir / path)
    else:
        module = importlib.import_module(target)

    obj: Any = module
    for part in attribute.split("."):
        obj = getattr(obj, part)
    return obj


def _resolve_response_schema(reference: str, phase_name: str, base_dir: Path) -> Any:
    try:
        return load_object(reference, base_dir)
    except (ImportError, AttributeError, ValueError, OSError) as exc:
        logger.warning(
            "response schema %r for phase %r could not be resolved, ignoring it: %s",
            reference,
            phase_name,
            exc,
        )
        return None


def _build_phase(
    parsed: ParsedPhase,
    system_tools: ToolRegistry,
    base_dir: Path,
) -> Phase:
    config = parsed.config
    phase_tools = system_tools
    options: dict[str, Any] = {}
    think = None
    purge: List[str] = []
    response_schema = None

    if config is not None:
        if config.tools:
            try:
                phase_tools = system_tools.merged(load_tools(config.tools, base_dir))
            except ToolLoadError as exc:
                raise AgentDefinitionError(
                    f"Failed to load tools for phase '{parsed.name}': {exc.message}",
                    section=parsed.name,
                ) from exc
        think = config.think
        purge = config.purge_list()
        if config.response_schema:
            response_schema = _resolve_response_schema(
                config.response_schema, parsed.name, base_dir
            )
        options = config.request_options()
        options.pop("think", None)

    try:
        return Phase(
            name=parsed.name,
            prompt=parsed.content,
            options=options,
            think=think,
            purge=purge,
            response_schema=response_schema,
            tools=phase_tools if len(phase_tools) else None,
        )
    except ValueError as exc:
        raise AgentDefinitionError(str(exc), section=parsed.name) from exc


def create_markdown_agent(markdown_path: str | Path) -> MarkdownAgent:
    path = Path(markdown_path).resolve()
    base_dir = path.parent
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise AgentDefinitionError(
            f"Failed to read markdown file '{markdown_path}': {exc}"
        ) from exc

    parsed = parse_markdown_agent(text)

    system_tools = ToolRegistry()
    if parsed.system_config.tools:
        try:
            system_tools = load_tools(parsed.system_config.tools, base_dir)
        except ToolLoadError as exc:
            raise AgentDefinitionError(
                f"Failed to load system tools: {exc.message}", section="System"
            ) from exc

    phases = [_build_phase(p, system_tools, base_dir) for p in parsed.phases]
    logger.info(
        "loaded agent %s: %s phase(s), tools=%s",
        path.name,
        len(phases),
        system_tools.names(),
    )

    return MarkdownAgent(
        path=path,
        system_prompt=parsed.system_prompt,
        system_config=parsed.system_config,
        tools=system_tools,
        phases=phases,
    )


__all__ = ["MarkdownAgent", "create_markdown_agent", "load_object"]

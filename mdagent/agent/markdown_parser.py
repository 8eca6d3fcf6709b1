"""
Markdown agent definitions.

An agent file is a sequence of top-level ``# Header`` sections. ``# System`` holds the system
prompt; every other section is a phase, run in file order. A section may contain one fenced
yaml code block with its configuration; the rest of the section is the prompt text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mdagent.utils.exceptions import AgentDefinitionError

SYSTEM_SECTION = "System"

_HEADER_RE = re.compile(r"^#\s+(.+?)\s*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_YAML_BLOCK_RE = re.compile(r"```ya?ml[ \t]*\n(.*?)\n[ \t]*```", re.DOTALL)

PurgeName = Literal["tool-calls", "all-tool-calls", "previous-messages"]


class ModelOptions(BaseModel):
    """Model options; anything not listed here is kept and passed along as-is."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    model: Optional[str] = None
    think: Optional[Literal["low", "medium", "high"]] = None

    temperature: Optional[float] = None
    top_p: Optional[float] = None
    seed: Optional[int] = None
    stop: Optional[Union[str, List[str]]] = None

    # Ollama-style
    num_ctx: Optional[int] = None
    num_predict: Optional[int] = None
    top_k: Optional[int] = None
    repeat_penalty: Optional[float] = None

    # OpenAI-style
    max_tokens: Optional[int] = None
    max_completion_tokens: Optional[int] = None
    reasoning_effort: Optional[Literal["minimal", "low", "medium", "high"]] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    logit_bias: Optional[Dict[str, float]] = None
    logprobs: Optional[bool] = None
    top_logprobs: Optional[int] = None
    n: Optional[int] = None
    user: Optional[str] = None
    response_format: Optional[Dict[str, Any]] = None

    input: Optional[List[str]] = None
    tools: Optional[List[str]] = None

    def request_options(self) -> Dict[str, Any]:
        """Options sent to the model; ``input`` and ``tools`` configure the agent itself."""
        data = self.model_dump(exclude_none=True, exclude={"input", "tools"})
        for key in ("purge", "response_schema"):
            data.pop(key, None)
        return data


class SystemConfig(ModelOptions):
    def missing_inputs(self, variables: Dict[str, Any]) -> List[str]:
        return [name for name in (self.input or []) if variables.get(name) is None]


class PhaseConfig(ModelOptions):
    purge: Optional[Union[PurgeName, List[PurgeName]]] = None
    response_schema: Optional[str] = Field(default=None, alias="responseSchema")

    def purge_list(self) -> List[str]:
        if self.purge is None:
            return []
        if isinstance(self.purge, str):
            return [self.purge]
        return list(self.purge)


@dataclass
class ParsedPhase:
    name: str
    content: str
    config: Optional[PhaseConfig] = None


@dataclass
class ParsedMarkdownAgent:
    system_prompt: str
    system_config: SystemConfig
    phases: List[ParsedPhase] = field(default_factory=list)


@dataclass
class _Section:
    header: str
    lines: List[str] = field(default_factory=list)

    @property
    def content(self) -> str:
        return "\n".join(self.lines)


def _split_sections(text: str) -> List[_Section]:
    sections: List[_Section] = []
    current: Optional[_Section] = None
    in_fence = False

    for line in text.splitlines():
        if _FENCE_RE.match(line):
            in_fence = not in_fence
        match = None if in_fence else _HEADER_RE.match(line)
        if match:
            current = _Section(header=match.group(1))
            sections.append(current)
        elif current is not None:
            current.lines.append(line)

    return sections


def extract_yaml_block(content: str) -> tuple[str, str]:
    """Return ``(yaml_text, remaining_text)``; tabs in the YAML become two spaces."""
    match = _YAML_BLOCK_RE.search(content)
    if not match:
        return "", content.strip()
    yaml_text = match.group(1).replace("\t", "  ")
    remaining = (content[: match.start()] + content[match.end() :]).strip()
    return yaml_text, remaining


def _load_yaml(yaml_text: str, section: str) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(yaml_text) or {}
    except yaml.YAMLError as exc:
        raise AgentDefinitionError(
            f"Invalid YAML in section '{section}': {exc}", section=section
        ) from exc
    if not isinstance(data, dict):
        raise AgentDefinitionError(
            f"YAML in section '{section}' must be a mapping", section=section
        )
    return data


def parse_markdown_agent(text: str) -> ParsedMarkdownAgent:
    sections = _split_sections(text)
    if not sections:
        raise AgentDefinitionError(
            "No sections found in markdown file. Expected at least a System section."
        )

    system_section = next((s for s in sections if s.header == SYSTEM_SECTION), None)
    if system_section is None:
        raise AgentDefinitionError("No System section found in markdown file.")

    system_yaml, system_prompt = extract_yaml_block(system_section.content)
    try:
        system_config = SystemConfig.model_validate(_load_yaml(system_yaml, SYSTEM_SECTION))
    except ValidationError as exc:
        raise AgentDefinitionError(
            f"Invalid configuration in System section: {exc}", section=SYSTEM_SECTION
        ) from exc

    phases: List[ParsedPhase] = []
    for section in sections:
        if section.header == SYSTEM_SECTION:
            continue
        phase_yaml, phase_content = extract_yaml_block(section.content)
        config: Optional[PhaseConfig] = None
        if phase_yaml:
            try:
                config = PhaseConfig.model_validate(_load_yaml(phase_yaml, section.header))
            except ValidationError as exc:
                raise AgentDefinitionError(
                    f"Invalid configuration in phase '{section.header}': {exc}",
                    section=section.header,
                ) from exc
        phases.append(ParsedPhase(name=section.header, content=phase_content, config=config))

    return ParsedMarkdownAgent(
        system_prompt=system_prompt,
        system_config=system_config,
        phases=phases,
    )

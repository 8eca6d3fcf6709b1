from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Mapping

from .store import PurgeDirective, normalize_purge
from .tools import ToolRegistry, ToolSpec, as_registry

ThinkLevel = Literal["low", "medium", "high"]
_THINK_LEVELS = ("low", "medium", "high")


@dataclass(slots=True)
class Phase:
    """
    One unit of work in a multi-phase agent run.

    ``purge`` accepts a single directive name or a sequence and is normalized to the fixed
    evaluation order. ``tools`` may be a registry, a sequence or a mapping of ToolSpecs.
    """

    name: str
    prompt: str
    options: dict[str, Any] = field(default_factory=dict)
    think: ThinkLevel | None = None
    purge: tuple[PurgeDirective, ...] | str | Iterable[str] | None = ()
    response_schema: Any = None
    tools: ToolRegistry | Iterable[ToolSpec] | Mapping[str, ToolSpec] | None = None

    def __post_init__(self) -> None:
        if not str(self.prompt or "").strip():
            raise ValueError(f"phase {self.name!r} has an empty prompt")
        if self.think is not None and self.think not in _THINK_LEVELS:
            raise ValueError(
                f"phase {self.name!r}: think must be one of {', '.join(_THINK_LEVELS)}"
            )
        self.options = dict(self.options or {})
        self.purge = normalize_purge(self.purge)
        if self.tools is not None:
            self.tools = as_registry(self.tools)

    def active_tools(self, default: ToolRegistry) -> ToolRegistry:
        """Phase tools replace the system-wide set when non-empty."""
        if isinstance(self.tools, ToolRegistry) and len(self.tools) > 0:
            return self.tools
        return default

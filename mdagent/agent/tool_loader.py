from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Iterable, List

from mdagent.llm_native.tools import ToolRegistry, ToolSpec
from mdagent.utils.exceptions import ToolLoadError
from mdagent.utils.logger import get_logger

from .builtin_tools import BUILTIN_TOOLS, ToolContext

logger = get_logger(__name__)

TOOL_ATTRIBUTE = "tool"


def import_from_path(path: Path, module_name: str | None = None) -> ModuleType:
    """Import a standalone ``.py`` file as a module."""
    name = module_name or f"mdagent_user_{path.stem}_{abs(hash(str(path)))}"
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(name, None)
        raise
    return module


def _tool_path(base_path: Path, name: str) -> Path:
    path = Path(name)
    if path.suffix != ".py":
        path = path.with_name(path.name + ".py")
    return path if path.is_absolute() else base_path / path


def _materialize(candidate: Any, context: ToolContext) -> Any:
    if isinstance(candidate, ToolSpec):
        return candidate
    if callable(candidate):
        return candidate(context)
    return candidate


def load_tools(names: Iterable[str], base_path: str | Path) -> ToolRegistry:
    """
    Resolve tool names to a registry.

    Built-in names win; anything else is imported from ``<base_path>/<name>[.py]`` whose
    ``tool`` attribute is a ToolSpec or a factory taking a :class:`ToolContext`. Every failure is
    collected and reported in a single :class:`ToolLoadError`.
    """
    base = Path(base_path)
    context = ToolContext(base_path=base)
    registry = ToolRegistry()
    errors: List[str] = []

    for name in names:
        if name in BUILTIN_TOOLS:
            registry.register(BUILTIN_TOOLS[name](context), replace=True)
            continue

        path = _tool_path(base, name)
        try:
            module = import_from_path(path)
        except Exception as exc:
            errors.append(f"Failed to load tool '{name}': {type(exc).__name__}: {exc}")
            continue

        candidate = getattr(module, TOOL_ATTRIBUTE, None)
        if candidate is None:
            errors.append(f"Tool '{name}' does not define a '{TOOL_ATTRIBUTE}' attribute")
            continue

        try:
            spec = _materialize(candidate, context)
        except Exception as exc:
            errors.append(f"Tool '{name}' factory failed: {type(exc).__name__}: {exc}")
            continue

        if not isinstance(spec, ToolSpec) or not spec.name or not spec.description:
            errors.append(
                f"Tool '{name}' does not have the required structure "
                "(ToolSpec with name, description, parameters, execute)"
            )
            continue

        registry.register(spec, replace=True)
        logger.debug("loaded tool %s from %s", spec.name, path)

    if errors:
        available = ", ".join(sorted(BUILTIN_TOOLS))
        raise ToolLoadError(
            "Tool loading failed (built-in tools: " + available + "):\n" + "\n".join(errors),
            failures=errors,
        )

    return registry


__all__ = ["TOOL_ATTRIBUTE", "import_from_path", "load_tools"]

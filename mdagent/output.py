"""
Run output on disk.

- debug snapshots: the permanent record as JSON, rewritten after every step of a run
- final output: the last answer as markdown
- transcripts: a debug snapshot rendered back into readable markdown
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from mdagent.llm_native.messages import Message, messages_from_openai
from mdagent.utils.logger import get_logger

logger = get_logger(__name__)

TOOL_PREVIEW_CHARS = 2000


def run_start_time() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. ``2025-01-15T09:30:00.123Z``."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def output_filename(output_name: str, start_time: str, suffix: str) -> str:
    stamp = start_time.replace(":", "-").replace(".", "-")
    return f"{output_name}-{stamp}{suffix}"


def snapshot_payload(start_time: str, messages: Sequence[Message]) -> Dict[str, Any]:
    return {
        "startTime": start_time,
        "messages": [m.to_openai() for m in messages],
        "metadata": {
            "totalMessages": len(messages),
            "phases": sum(1 for m in messages if m.role == "user"),
            "toolCalls": sum(len(m.tool_calls or []) for m in messages),
        },
    }


@dataclass
class DebugOutputWriter:
    """Writes the permanent record to ``<debug_dir>/<name>-<start time>.json``."""

    debug_dir: Path
    output_name: str
    start_time: str = field(default_factory=run_start_time)

    def __post_init__(self) -> None:
        self.debug_dir = Path(self.debug_dir)

    @property
    def path(self) -> Path:
        return self.debug_dir / output_filename(self.output_name, self.start_time, ".json")

    def save(self, messages: Sequence[Message]) -> Path:
        self.debug_dir.mkdir(parents=True, exist_ok=True)
        payload = snapshot_payload(self.start_time, messages)
        target = self.path
        with open(target, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        return target


def save_final_output(
    output_dir: str | Path,
    output_name: str,
    start_time: str,
    content: str,
) -> Path:
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / output_filename(output_name, start_time, ".md")
    target.write_text(content, encoding="utf-8")
    logger.info("final output saved to %s", target)
    return target


def load_debug_messages(path: str | Path) -> List[Message]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    messages = data.get("messages") if isinstance(data, dict) else None
    if not isinstance(messages, list):
        raise ValueError(f"invalid debug output format (missing messages array): {path}")
    return messages_from_openai(messages)


def find_latest_debug_file(debug_dir: str | Path) -> Path:
    directory = Path(debug_dir)
    if not directory.is_dir():
        raise FileNotFoundError(f"debug output directory not found: {directory}")
    files = sorted(directory.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)
    if not files:
        raise FileNotFoundError(f"no debug output files in {directory}")
    return files[0]


def _pretty(text: str) -> str:
    """Pretty-print JSON text; anything else is returned unchanged."""
    stripped = text.strip()
    if not stripped or stripped[0] not in "[{":
        return text
    try:
        pretty = json.dumps(json.loads(stripped), ensure_ascii=False, indent=2)
    except json.JSONDecodeError:
        return text
    return "```json\n" + pretty + "\n```"


def _preview(text: str, limit: Optional[int]) -> str:
    if limit is not None and len(text) > limit:
        return text[:limit] + "..."
    return text


def format_transcript(
    messages: Sequence[Message],
    *,
    tool_preview: Optional[int] = TOOL_PREVIEW_CHARS,
) -> str:
    """Render messages as a markdown document."""
    blocks: List[str] = []
    for message in messages:
        if message.role == "system":
            blocks.append(f"## System\n\n{message.content}")
        elif message.role == "user":
            blocks.append(f"## User\n\n{message.content}")
        elif message.role == "assistant":
            parts = ["## Assistant"]
            if message.content:
                parts.append(_pretty(message.content))
            for call in message.tool_calls or []:
                parts.append(f"- tool call `{call.name}` ({call.id}): `{call.arguments_json}`")
            blocks.append("\n\n".join(parts))
        elif message.role == "tool":
            body = _pretty(_preview(message.content, tool_preview))
            title = f"### Tool result: {message.name or 'tool'} ({message.tool_call_id})"
            blocks.append(f"{title}\n\n{body}")
    return "\n\n".join(blocks) + "\n"


__all__ = [
    "DebugOutputWriter",
    "find_latest_debug_file",
    "format_transcript",
    "load_debug_messages",
    "output_filename",
    "run_start_time",
    "save_final_output",
    "snapshot_payload",
]

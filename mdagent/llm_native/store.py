"""
Conversation state for one run: the permanent record and the context view.

Both sequences receive every appended message. Only the context view is ever purged; the
permanent record is what gets persisted and rendered once the run is over.
"""

from __future__ import annotations

from typing import Iterable, Literal, Sequence, get_args

from .messages import Message

PurgeDirective = Literal["tool-calls", "all-tool-calls", "previous-messages"]

# Directives are always evaluated in this order regardless of how they were declared.
PURGE_ORDER: tuple[PurgeDirective, ...] = get_args(PurgeDirective)


def normalize_purge(value: str | Iterable[str] | None) -> tuple[PurgeDirective, ...]:
    """Validate purge directive names; accepts a single name or a sequence of names."""
    if value is None:
        return ()
    names = [value] if isinstance(value, str) else list(value)
    unknown = [name for name in names if name not in PURGE_ORDER]
    if unknown:
        raise ValueError(
            f"unknown purge directive(s): {', '.join(map(str, unknown))} "
            f"(expected one of: {', '.join(PURGE_ORDER)})"
        )
    return tuple(d for d in PURGE_ORDER if d in names)


def strip_tool_evidence(messages: Sequence[Message]) -> tuple[list[Message], int]:
    """
    Drop tool results and strip tool_calls from assistant turns.

    Returns the new list and how many messages were removed. Stripped assistant messages are
    copies, so the originals (shared with the permanent record) stay intact.
    """
    result: list[Message] = []
    removed = 0
    for message in messages:
        if message.role == "tool":
            removed += 1
            continue
        if message.role == "assistant" and message.tool_calls:
            result.append(message.without_tool_calls())
            continue
        result.append(message)
    return result, removed


def apply_purge(
    context: Sequence[Message],
    directives: Iterable[str],
    phase_start: int,
) -> list[Message]:
    """Return the purged context view; ``phase_start`` is the view length when the phase began."""
    view = list(context)
    start = max(0, min(int(phase_start), len(view)))
    active = normalize_purge(list(directives))

    for directive in active:
        if directive == "tool-calls":
            tail, _ = strip_tool_evidence(view[start:])
            view = view[:start] + tail
        elif directive == "all-tool-calls":
            head, removed_before_start = strip_tool_evidence(view[:start])
            tail, _ = strip_tool_evidence(view[start:])
            view = head + tail
            start -= removed_before_start
        elif directive == "previous-messages":
            view = view[start:]
            start = 0

    return view


class MessageStore:
    def __init__(self) -> None:
        self._record: list[Message] = []
        self._context: list[Message] = []

    @property
    def record(self) -> list[Message]:
        return self._record

    @property
    def context(self) -> list[Message]:
        return self._context

    @property
    def has_system(self) -> bool:
        return bool(self._record) and self._record[0].role == "system"

    def append(self, message: Message) -> None:
        self._record.append(message)
        self._context.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def last_assistant(self) -> Message | None:
        for message in reversed(self._record):
            if message.role == "assistant":
                return message
        return None

    def purge(self, directives: Iterable[str], phase_start: int) -> None:
        self._context = apply_purge(self._context, directives, phase_start)

    def __len__(self) -> int:
        return len(self._record)


__all__ = [
    "MessageStore",
    "PURGE_ORDER",
    "PurgeDirective",
    "apply_purge",
    "normalize_purge",
    "strip_tool_evidence",
]

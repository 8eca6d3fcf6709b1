from __future__ import annotations

from typing import Iterable, List

from mdagent.llm_native.messages import Message
from mdagent.llm_native.phase import Phase
from mdagent.llm_native.phase_runner import ChatRunner
from mdagent.utils.logger import get_logger

logger = get_logger(__name__)


async def run_multi_phase(runner: ChatRunner, phases: Iterable[Phase]) -> List[Message]:
    """Run ``phases`` in order on one runner and return the full permanent record."""
    phase_list = list(phases)
    for index, phase in enumerate(phase_list, start=1):
        logger.info("running phase %s/%s: %s", index, len(phase_list), phase.name)
        await runner.run(phase)
    return runner.messages


def final_response(messages: List[Message]) -> str:
    """Content of the last assistant message, or an empty string."""
    for message in reversed(messages):
        if message.role == "assistant" and message.content:
            return message.content
    return ""

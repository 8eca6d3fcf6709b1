"""
Command line entry points.

    mdagent <agent.md> [--verbose] [--config PATH] [--no-debug] [--key value ...]
    mdagent-render [debug.json] [--debug-dir DIR] [-o out.md]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO

from mdagent.agent import create_markdown_agent, final_response, run_multi_phase
from mdagent.agent.converter import MarkdownAgent
from mdagent.config import Settings, load_settings
from mdagent.config.config_files import DEFAULT_DEV_CONFIG_PATH, DEFAULT_USER_CONFIG_PATH
from mdagent.llm_native import (
    ChatObservers,
    ChatRunner,
    Message,
    OpenAICompatibleBackend,
    RunnerConfig,
    ToolCall,
)
from mdagent.output import (
    TOOL_PREVIEW_CHARS,
    DebugOutputWriter,
    find_latest_debug_file,
    format_transcript,
    load_debug_messages,
    run_start_time,
    save_final_output,
)
from mdagent.utils.exceptions import ConfigurationError, handle_exception
from mdagent.utils.logger import get_logger, set_log_level

logger = get_logger(__name__)

GREY = "\x1b[90m"
BLUE = "\x1b[34m"
GREEN = "\x1b[32m"
RESET = "\x1b[0m"
RULE = "─" * 50


def parse_template_variables(args: Sequence[str]) -> Dict[str, str]:
    """Turn ``--key value`` / ``key value`` / ``--key=value`` tokens into a mapping."""
    tokens: List[str] = []
    for arg in args:
        if arg.startswith("-") and "=" in arg:
            tokens.extend(arg.split("=", 1))
        else:
            tokens.append(arg)

    if len(tokens) % 2:
        raise ValueError(f"Invalid argument pair: {tokens[-1]}")

    variables: Dict[str, str] = {}
    for key, value in zip(tokens[0::2], tokens[1::2]):
        clean_key = key.lstrip("-")
        if not clean_key:
            raise ValueError(f"Invalid argument pair: {key} {value}")
        variables[clean_key] = value
    return variables


class ConsoleObserver:
    """Streams run progress to a terminal with ANSI colours."""

    def __init__(self, stream: Optional[TextIO] = None, preview_chars: int = TOOL_PREVIEW_CHARS):
        self.stream = stream or sys.stdout
        self.preview_chars = preview_chars
        self._chunk_type: Optional[str] = None

    def _write_chunk(self, text: str, chunk_type: str) -> None:
        if self._chunk_type and self._chunk_type != chunk_type:
            self.stream.write("\n")
        self._chunk_type = chunk_type
        self.stream.write(text)
        self.stream.flush()

    def _line(self, text: str) -> None:
        self._chunk_type = None
        self.stream.write(text + "\n")
        self.stream.flush()

    def on_thinking_chunk(self, chunk: str) -> None:
        self._write_chunk(f"{GREY}{chunk}{RESET}", "thinking")

    def on_content_chunk(self, chunk: str) -> None:
        self._write_chunk(chunk, "content")

    def on_tool_call(self, call: ToolCall) -> None:
        self._line(f"\n{BLUE}🔧 {call.name}({call.arguments_json}){RESET}")

    def on_tool_response(self, response: Any) -> None:
        if isinstance(response, str):
            text = response
            if len(text) > self.preview_chars:
                text = text[: self.preview_chars] + "..."
        else:
            text = json.dumps(response, ensure_ascii=False, indent=2, default=str)
        self._line(f"{GREEN}✅ {text}{RESET}\n")

    def on_phase_end(self, messages: List[Message]) -> None:
        self._line(f"\n✅ Phase completed with {len(messages)} messages")

    def observers(self) -> ChatObservers:
        return ChatObservers(
            on_thinking_chunk=self.on_thinking_chunk,
            on_content_chunk=self.on_content_chunk,
            on_tool_call=self.on_tool_call,
            on_tool_response=self.on_tool_response,
            on_phase_end=self.on_phase_end,
        )


def build_runner(
    agent: MarkdownAgent,
    settings: Settings,
    variables: Dict[str, Any],
    *,
    backend: Any,
    observers: Optional[ChatObservers] = None,
    debug_writer: Optional[DebugOutputWriter] = None,
) -> ChatRunner:
    return ChatRunner(
        backend=backend,
        system_prompt=agent.system_prompt,
        tools=agent.tools,
        options=agent.system_options(),
        template_variables=dict(variables),
        observers=observers or ChatObservers(),
        config=RunnerConfig(
            max_rounds=settings.agent.max_rounds,
            tool_max_retries=settings.agent.tool_max_retries,
        ),
        debug_writer=debug_writer,
    )


async def run_agent(
    agent_path: Path,
    settings: Settings,
    variables: Dict[str, str],
    *,
    debug: bool = True,
    verbose: bool = False,
    stream: Optional[TextIO] = None,
) -> str:
    out = stream or sys.stdout
    agent = create_markdown_agent(agent_path)

    missing = agent.system_config.missing_inputs(variables)
    if missing:
        raise ConfigurationError(
            f"Missing required input(s): {', '.join(missing)}",
            context={"agent": agent.name, "missing": missing},
        )

    if verbose:
        out.write(f"🤖 Created agent with {len(agent.phases)} phases\n")
        out.write(f"🛠️  Available tools: {agent.tools.names()}\n")

    start_time = run_start_time()
    writer: Optional[DebugOutputWriter] = None
    if debug and settings.agent.debug_output:
        writer = DebugOutputWriter(
            debug_dir=agent.base_path / settings.agent.debug_dir,
            output_name=agent.name,
            start_time=start_time,
        )

    backend = OpenAICompatibleBackend(settings.llm.to_backend_config(model=agent.model))
    runner = build_runner(
        agent,
        settings,
        variables,
        backend=backend,
        observers=ConsoleObserver(out).observers(),
        debug_writer=writer,
    )
    try:
        messages = await run_multi_phase(runner, agent.phases)
    finally:
        await backend.close()

    final = final_response(messages)
    if final:
        out.write(f"\n📋 Final Response:\n{RULE}\n{final}\n{RULE}\n")
        output_dir = agent.base_path / settings.agent.output_dir
        save_final_output(output_dir, agent.name, start_time, final)
    else:
        out.write("\n✅ Agent completed successfully\n")
    if writer is not None:
        logger.info("debug output: %s", writer.path)
    return final


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mdagent",
        description="Run a multi-phase markdown agent.",
        epilog=(
            "Template variables are passed as key-value pairs: --key value or key value.\n"
            'Example: mdagent ./my-agent.md --topic "AI" --date "2025-01-15"'
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        # Trailing --key value pairs are template variables; never expand them to options.
        allow_abbrev=False,
    )
    parser.add_argument("agent", help="Markdown agent file")
    parser.add_argument("--verbose", action="store_true", help="Verbose output and DEBUG logging")
    parser.add_argument(
        "--config", default=DEFAULT_USER_CONFIG_PATH, help="Settings file (YAML)"
    )
    parser.add_argument("--no-debug", action="store_true", help="Do not write debug snapshots")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args, extras = parser.parse_known_args(argv)
    try:
        variables = parse_template_variables(extras)
    except ValueError as exc:
        parser.error(str(exc))

    settings = load_settings(args.config, DEFAULT_DEV_CONFIG_PATH)
    if args.verbose:
        set_log_level("DEBUG")

    agent_path = Path(args.agent).resolve()
    if args.verbose:
        print(f"📄 Loading markdown file: {agent_path}")
        print(f"🔧 Template variables: {variables}")

    try:
        asyncio.run(
            run_agent(
                agent_path,
                settings,
                variables,
                debug=not args.no_debug,
                verbose=args.verbose,
            )
        )
    except KeyboardInterrupt:
        logger.warning("interrupted")
        return 130
    except Exception as exc:
        print("\n❌ Error:", file=sys.stderr)
        handle_exception(exc, logger, "Agent run failed")
        return 1
    return 0


def render_main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="mdagent-render",
        description="Render a debug snapshot as a markdown transcript.",
        allow_abbrev=False,
    )
    parser.add_argument(
        "debug_file",
        nargs="?",
        help="Debug JSON file (default: most recent file in --debug-dir)",
    )
    parser.add_argument("--debug-dir", default="debug-output", help="Directory to search")
    parser.add_argument("-o", "--output", help="Write the transcript here instead of stdout")
    args = parser.parse_args(argv)

    try:
        if args.debug_file:
            source = Path(args.debug_file)
        else:
            source = find_latest_debug_file(args.debug_dir)
        messages = load_debug_messages(source)
    except (OSError, ValueError) as exc:
        handle_exception(exc, logger, "Could not load debug output", log_traceback=False)
        return 1

    transcript = format_transcript(messages)
    if args.output:
        Path(args.output).write_text(transcript, encoding="utf-8")
        print(f"✅ Rendered transcript saved to: {args.output}")
    else:
        sys.stdout.write(transcript)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

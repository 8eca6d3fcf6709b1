from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from mdagent.agent import (
    create_markdown_agent,
    final_response,
    load_object,
    load_tools,
    run_multi_phase,
)
from mdagent.llm_native.messages import Message
from mdagent.llm_native.phase_runner import ChatRunner
from mdagent.llm_native.tools import ToolRegistry, ToolSpec
from mdagent.utils.exceptions import AgentDefinitionError, ToolLoadError

SHOUT_TOOL = '''
from mdagent.llm_native.tools import tool as make_tool


@make_tool
async def shout(text: str) -> str:
    """Upper-case the text."""
    return text.upper()


tool = shout
'''

FACTORY_TOOL = '''
from mdagent.llm_native.tools import callable_to_toolspec


def tool(context):
    async def where() -> str:
        return str(context.base_path)

    return callable_to_toolspec(where, description="Report the agent directory")
'''

SCHEMAS = '''
from pydantic import BaseModel


class Report(BaseModel):
    title: str
    score: int
'''

AGENT = """\
# System
```yaml
model: llama3.1:8b
temperature: 0.2
tools:
  - load_file
  - shout
```
You are helpful.

# Gather
```yaml
think: medium
temperature: 0.7
purge: [tool-calls]
tools:
  - where
responseSchema: schemas.py:Report
```
Gather facts about {{topic}}.

# Write
Write it up.
"""


def _write(directory: Path, name: str, text: str) -> Path:
    path = directory / name
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def agent_dir(tmp_path: Path) -> Path:
    _write(tmp_path, "shout.py", SHOUT_TOOL)
    _write(tmp_path, "where.py", FACTORY_TOOL)
    _write(tmp_path, "schemas.py", SCHEMAS)
    _write(tmp_path, "research.md", AGENT)
    return tmp_path


def test_create_markdown_agent(agent_dir: Path):
    agent = create_markdown_agent(agent_dir / "research.md")

    assert agent.name == "research"
    assert agent.base_path == agent_dir.resolve()
    assert agent.model == "llama3.1:8b"
    assert agent.system_prompt == "You are helpful."
    assert agent.system_options() == {"temperature": 0.2}
    assert agent.tools.names() == ["load_file", "shout"]

    gather, write = agent.phases
    assert gather.name == "Gather"
    assert gather.prompt == "Gather facts about {{topic}}."
    assert gather.think == "medium"
    assert gather.purge == ("tool-calls",)
    assert gather.options == {"temperature": 0.7}
    assert gather.tools.names() == ["load_file", "shout", "where"]
    assert gather.response_schema.__name__ == "Report"

    assert write.think is None
    assert write.purge == ()
    assert write.options == {}
    assert write.tools.names() == ["load_file", "shout"]


@pytest.mark.anyio
async def test_loaded_tools_execute(agent_dir: Path):
    registry = load_tools(["shout", "where"], agent_dir)

    assert await registry.get("shout").execute({"text": "hi"}) == "HI"
    assert await registry.get("where").execute({}) == str(agent_dir)
    assert registry.get("shout").description == "Upper-case the text."


def test_unresolvable_response_schema_is_ignored(tmp_path: Path):
    _write(
        tmp_path,
        "agent.md",
        "# System\nsys\n\n# P\n```yaml\nresponseSchema: missing.py:Nope\n```\ngo\n",
    )
    agent = create_markdown_agent(tmp_path / "agent.md")
    assert agent.phases[0].response_schema is None


def test_tool_load_failures_are_collected(tmp_path: Path):
    _write(tmp_path, "empty.py", "x = 1\n")
    _write(tmp_path, "broken.py", "raise RuntimeError('import time failure')\n")

    with pytest.raises(ToolLoadError) as excinfo:
        load_tools(["load_file", "empty", "broken", "absent"], tmp_path)

    err = excinfo.value
    assert len(err.failures) == 3
    assert "does not define a 'tool' attribute" in err.failures[0]
    assert "import time failure" in err.failures[1]
    assert "absent" in err.failures[2]
    assert "fetch_urls" in err.message


def test_tool_without_description_is_rejected(tmp_path: Path):
    _write(
        tmp_path,
        "bare.py",
        "from mdagent.llm_native.tools import callable_to_toolspec\n\n"
        "def run():\n    return 1\n\n"
        "tool = callable_to_toolspec(run)\n",
    )
    with pytest.raises(ToolLoadError, match="required structure"):
        load_tools(["bare"], tmp_path)


def test_builtin_aliases(tmp_path: Path):
    registry = load_tools(["loadFile", "fetchUrls", "fetchRss"], tmp_path)
    assert registry.names() == ["load_file", "fetch_urls", "fetch_rss"]
    assert registry.get("load_file").max_retries == 0


def test_missing_system_tool_becomes_definition_error(tmp_path: Path):
    _write(tmp_path, "agent.md", "# System\n```yaml\ntools: [nope]\n```\nsys\n\n# P\ngo\n")
    with pytest.raises(AgentDefinitionError, match="system tools") as excinfo:
        create_markdown_agent(tmp_path / "agent.md")
    assert excinfo.value.context["section"] == "System"


def test_missing_phase_tool_names_the_phase(tmp_path: Path):
    _write(tmp_path, "agent.md", "# System\nsys\n\n# Fetch\n```yaml\ntools: [nope]\n```\ngo\n")
    with pytest.raises(AgentDefinitionError, match="phase 'Fetch'"):
        create_markdown_agent(tmp_path / "agent.md")


def test_missing_file_and_empty_phase(tmp_path: Path):
    with pytest.raises(AgentDefinitionError, match="Failed to read markdown file"):
        create_markdown_agent(tmp_path / "nope.md")

    _write(tmp_path, "agent.md", "# System\nsys\n\n# Empty\n")
    with pytest.raises(AgentDefinitionError, match="empty prompt"):
        create_markdown_agent(tmp_path / "agent.md")


def test_load_object(tmp_path: Path):
    _write(tmp_path, "schemas.py", SCHEMAS)

    assert load_object("json:dumps", tmp_path) is json.dumps
    assert load_object("schemas.py:Report", tmp_path).__name__ == "Report"
    assert load_object("os:path.join", tmp_path).__name__ == "join"
    with pytest.raises(ValueError):
        load_object("no-colon", tmp_path)


@pytest.mark.anyio
async def test_run_multi_phase_end_to_end(agent_dir: Path, scripted_backend, rounds):
    _write(agent_dir, "notes.txt", "mdagent runs phases in order")
    agent = create_markdown_agent(agent_dir / "research.md")
    backend = scripted_backend(
        [
            rounds.tools(("call_1", "load_file", '{"path": "notes.txt"}')),
            rounds.text('{"title": "Notes", "score": 9}'),
            rounds.text("Final write-up"),
        ]
    )
    runner = ChatRunner(
        backend=backend,
        system_prompt=agent.system_prompt,
        tools=agent.tools,
        options=agent.system_options(),
        template_variables={"topic": "phases"},
        today=date(2025, 1, 15),
    )

    messages = await run_multi_phase(runner, agent.phases)

    tool_msg = next(m for m in messages if m.role == "tool")
    assert tool_msg.content == "mdagent runs phases in order"
    assert messages[1].content.startswith("Gather facts about phases.")
    assert '{"title":"Notes","score":9}' in [m.content for m in messages]
    assert final_response(messages) == "Final write-up"

    gather_request = backend.requests[0]
    assert gather_request.options == {"reasoning_effort": "medium", "temperature": 0.7}
    assert [t.name for t in gather_request.tools] == ["load_file", "shout", "where"]
    # The gather phase purged its tool evidence before the write phase ran.
    assert all(m.role != "tool" for m in backend.requests[2].messages)


def test_final_response_skips_empty_turns():
    messages = [
        Message(role="assistant", content="first answer"),
        Message(role="user", content="again"),
        Message(role="assistant", content=""),
    ]
    assert final_response(messages) == "first answer"
    assert final_response([]) == ""


def test_registry_type_is_returned(tmp_path: Path):
    assert isinstance(load_tools([], tmp_path), ToolRegistry)
    assert all(isinstance(t, ToolSpec) for t in load_tools(["load_file"], tmp_path))

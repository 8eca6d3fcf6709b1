from __future__ import annotations

import pytest

from mdagent.agent.markdown_parser import extract_yaml_block, parse_markdown_agent
from mdagent.utils.exceptions import AgentDefinitionError

AGENT = """\
# System
```yaml
model: llama3.1:8b
temperature: 0.3
num_ctx: 8192
custom_flag: true
input:
  - topic
tools:
  - load_file
```
You are a careful researcher. Today is {{CURRENT_DATE}}.

# Research
```yaml
think: high
purge: tool-calls
responseSchema: schemas.py:Report
```
Research {{topic}}.

# Summary
Summarize the findings.

```python
# not a header
print("hi")
```
"""


def test_parse_sections_and_configs():
    agent = parse_markdown_agent(AGENT)

    assert agent.system_prompt == "You are a careful researcher. Today is {{CURRENT_DATE}}."
    assert [p.name for p in agent.phases] == ["Research", "Summary"]

    system = agent.system_config
    assert system.model == "llama3.1:8b"
    assert system.input == ["topic"]
    assert system.tools == ["load_file"]
    assert system.request_options() == {
        "model": "llama3.1:8b",
        "temperature": 0.3,
        "num_ctx": 8192,
        "custom_flag": True,
    }

    research = agent.phases[0]
    assert research.content == "Research {{topic}}."
    assert research.config is not None
    assert research.config.think == "high"
    assert research.config.purge_list() == ["tool-calls"]
    assert research.config.response_schema == "schemas.py:Report"
    assert research.config.request_options() == {"think": "high"}


def test_headers_inside_code_fences_are_content():
    summary = parse_markdown_agent(AGENT).phases[1]

    assert summary.config is None
    assert "# not a header" in summary.content
    assert summary.content.startswith("Summarize the findings.")


def test_missing_inputs():
    system = parse_markdown_agent(AGENT).system_config
    assert system.missing_inputs({}) == ["topic"]
    assert system.missing_inputs({"topic": None}) == ["topic"]
    assert system.missing_inputs({"topic": "AI"}) == []


def test_purge_list_accepts_a_list():
    text = "# System\nsys\n\n# P\n```yaml\npurge:\n  - previous-messages\n  - tool-calls\n```\ngo\n"
    config = parse_markdown_agent(text).phases[0].config
    assert config.purge_list() == ["previous-messages", "tool-calls"]


def test_tabs_in_yaml_are_normalized():
    yaml_text, remaining = extract_yaml_block("```yaml\ninput:\n\t- topic\n```\nprompt")
    assert yaml_text == "input:\n  - topic"
    assert remaining == "prompt"

    agent = parse_markdown_agent("# System\n```yaml\ninput:\n\t- topic\n```\nsys\n")
    assert agent.system_config.input == ["topic"]


def test_system_without_yaml():
    agent = parse_markdown_agent("# System\nJust a prompt.\n\n# Only\nDo it.\n")
    assert agent.system_prompt == "Just a prompt."
    assert agent.system_config.request_options() == {}
    assert agent.phases[0].content == "Do it."


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("no headers at all", "No sections found"),
        ("# Phase\nDo it.\n", "No System section"),
    ],
)
def test_structure_errors(text: str, message: str):
    with pytest.raises(AgentDefinitionError, match=message):
        parse_markdown_agent(text)


def test_invalid_yaml_names_the_section():
    text = "# System\nsys\n\n# Broken\n```yaml\nthink: [unclosed\n```\ngo\n"
    with pytest.raises(AgentDefinitionError) as excinfo:
        parse_markdown_agent(text)
    assert excinfo.value.context["section"] == "Broken"


def test_non_mapping_yaml_is_rejected():
    with pytest.raises(AgentDefinitionError, match="must be a mapping"):
        parse_markdown_agent("# System\n```yaml\n- a\n- b\n```\nsys\n")


def test_invalid_option_values_are_rejected():
    text = "# System\nsys\n\n# P\n```yaml\nthink: extreme\n```\ngo\n"
    with pytest.raises(AgentDefinitionError) as excinfo:
        parse_markdown_agent(text)
    assert excinfo.value.context["section"] == "P"

    bad_purge = "# System\nsys\n\n# P\n```yaml\npurge: everything\n```\ngo\n"
    with pytest.raises(AgentDefinitionError):
        parse_markdown_agent(bad_purge)

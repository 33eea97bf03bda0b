from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from arcwire.core.message import Message, ToolCall, ToolResult  # noqa: E402


@pytest.fixture
def list_tables_history() -> list[Message]:
    """A user question answered by a tool call that never got a result."""

    return [
        Message.user("List tables"),
        Message.agent(tool_calls=[ToolCall(tool_name="get_schema", input_args={}, id="t1")]),
    ]


@pytest.fixture
def answered_history() -> list[Message]:
    return [
        Message.user("How many users?"),
        Message.agent(
            "Let me check.",
            tool_calls=[ToolCall(tool_name="run_sql", input_args={"sql": "select count(*) from users"}, id="c1")],
        ),
        Message.results(ToolResult.ok("c1", [{"count": 42}], tool_name="run_sql")),
        Message.agent("There are 42 users."),
    ]

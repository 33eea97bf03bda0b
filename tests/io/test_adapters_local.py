from __future__ import annotations

import json
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

from arcwire.core.message import Message, ToolCall, ToolResult
from arcwire.io.adapters.local import InMemorySettingsStore, LocalMessageStore, LocalSettingsStore


def test_message_store_appends_and_lists_in_order() -> None:
    with TemporaryDirectory() as tmpdir:
        store = LocalMessageStore(tmpdir)
        first = [
            Message.user("hello"),
            Message.agent(tool_calls=[ToolCall(tool_name="lookup", input_args={"q": 1}, id="c1")]),
        ]
        second = [Message.results(ToolResult.ok("c1", [1, 2])), Message.agent("done")]

        store.append_messages("s-1", first)
        store.append_messages("s-1", second)

        assert store.list_messages("s-1") == first + second
        assert store.list_messages("other") == []


def test_message_store_writes_one_json_row_per_message() -> None:
    with TemporaryDirectory() as tmpdir:
        store = LocalMessageStore(tmpdir)
        store.append_messages("chat/42", [Message.user("a"), Message.agent("b")])

        path = store.path_for("chat/42")
        assert path.parent == Path(tmpdir)
        assert path.name == "chat_42.jsonl"
        rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert [row["role"] for row in rows] == ["user", "agent"]
        assert all(row["session_id"] == "chat/42" for row in rows)


def test_message_store_ignores_empty_appends() -> None:
    with TemporaryDirectory() as tmpdir:
        store = LocalMessageStore(tmpdir)
        store.append_messages("s", [])
        assert not store.path_for("s").exists()


def test_message_store_rejects_empty_session_id() -> None:
    with TemporaryDirectory() as tmpdir:
        with pytest.raises(ValueError):
            LocalMessageStore(tmpdir).list_messages("")


def test_local_settings_store_persists_to_disk() -> None:
    with TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "nested" / "settings.json"
        store = LocalSettingsStore(path)
        assert store.get("ai_provider") is None

        store.set("ai_provider", "anthropic")
        store.set("ai_api_key", "k")

        reopened = LocalSettingsStore(path)
        assert reopened.get("ai_provider") == "anthropic"
        assert json.loads(path.read_text(encoding="utf-8")) == {"ai_api_key": "k", "ai_provider": "anthropic"}


def test_local_settings_store_rejects_non_object_file() -> None:
    with TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "settings.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError, match="JSON object"):
            LocalSettingsStore(path).get("anything")


def test_in_memory_settings_store() -> None:
    store = InMemorySettingsStore({"ai_model": "gpt-4o"})
    store.set("ai_api_key", "k")
    assert store.get("ai_model") == "gpt-4o"
    assert store.get("ai_api_key") == "k"
    assert store.get("missing") is None

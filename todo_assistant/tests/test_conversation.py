import json

import pytest

from src.assistant.conversation import build_conversation, summarize_todos, to_chat_message
from src.assistant.errors import ToolCallDecodeError, UnsupportedRoleError
from src.assistant.schemas import decode_tool_calls, encode_tool_calls

from fakes import tool_call

TODOS = [
    {
        "id": 1,
        "text": "Buy milk",
        "completed": False,
        "subtasks": [{"id": 4, "text": "skim", "completed": True}],
    },
    {"id": 2, "text": "Walk dog", "completed": True, "subtasks": []},
]


def msg(role, content="", tool_calls=None, tool_call_id=None):
    return {"role": role, "content": content, "tool_calls": tool_calls, "tool_call_id": tool_call_id}


class TestSummary:
    def test_lists_todos_and_subtasks(self):
        assert summarize_todos(TODOS).splitlines() == [
            '- ID: 1, Text: "Buy milk", Completed: false, Subtasks: [{ID: 4, Text: "skim", Completed: true}]',
            '- ID: 2, Text: "Walk dog", Completed: true',
        ]

    def test_empty_list(self):
        assert summarize_todos([]) == ""


class TestBuildConversation:
    def test_system_prompt_first_and_user_message_last(self):
        messages = build_conversation(TODOS, [msg("assistant", "Hi")], "add bread")
        assert messages[0]["role"] == "system"
        assert 'Text: "Buy milk"' in messages[0]["content"]
        assert messages[1] == {"role": "assistant", "content": "Hi"}
        assert messages[-1] == {"role": "user", "content": "add bread"}

    def test_leading_tool_message_is_dropped(self):
        history = [msg("tool", "[]", tool_call_id="orphan"), msg("user", "hello")]
        messages = build_conversation([], history, "again")
        assert [m["role"] for m in messages] == ["system", "user", "user"]

    def test_only_the_first_message_is_dropped(self):
        call = tool_call("call_1", "completeTodos", ids=[1])
        history = [
            msg("tool", "[]", tool_call_id="orphan"),
            msg("assistant", "", tool_calls=encode_tool_calls([call])),
            msg("tool", '["Buy milk"]', tool_call_id="call_1"),
        ]
        messages = build_conversation([], history, "ok")
        assert [m["role"] for m in messages] == ["system", "assistant", "tool", "user"]

    def test_assistant_tool_calls_are_decoded(self):
        call = tool_call("call_1", "completeTodos", ids=[1])
        converted = to_chat_message(msg("assistant", "", tool_calls=encode_tool_calls([call])))
        assert converted["tool_calls"] == [
            {"id": "call_1", "type": "function", "function": {"name": "completeTodos", "arguments": '{"ids": [1]}'}}
        ]

    def test_tool_message_keeps_call_id(self):
        converted = to_chat_message(msg("tool", '["Buy milk"]', tool_call_id="call_1"))
        assert converted == {"role": "tool", "content": '["Buy milk"]', "tool_call_id": "call_1"}

    def test_system_history_passes_through(self):
        assert to_chat_message(msg("system", "note")) == {"role": "system", "content": "note"}

    def test_unknown_role_is_fatal(self):
        with pytest.raises(UnsupportedRoleError):
            build_conversation([], [msg("user", "hi"), msg("developer", "x")], "hello")


class TestToolCallSerialization:
    def test_envelope_is_versioned(self):
        stored = json.loads(encode_tool_calls([tool_call("call_1", "deleteTodos", ids=[2])]))
        assert stored["version"] == 1
        assert stored["calls"][0]["function"]["name"] == "deleteTodos"

    def test_no_calls_encode_to_none(self):
        assert encode_tool_calls([]) is None
        assert encode_tool_calls(None) is None

    def test_bare_list_is_accepted(self):
        raw = json.dumps([{"id": "c", "type": "function", "function": {"name": "addTodos", "arguments": "{}"}}])
        assert decode_tool_calls(raw)[0].id == "c"

    def test_unknown_version_is_rejected(self):
        raw = json.dumps({"version": 2, "calls": []})
        with pytest.raises(ToolCallDecodeError):
            decode_tool_calls(raw)

    def test_garbage_is_rejected(self):
        with pytest.raises(ToolCallDecodeError):
            decode_tool_calls("not json")

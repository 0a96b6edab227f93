import pytest
from pydantic import ValidationError

from src.assistant.errors import UnknownToolError
from src.assistant.schemas import AddTodosArgs, TodoInput, ToolCall, ToolFunction
from src.assistant.tools import TOOL_SPECS, ToolName, dispatch, openai_tools, parse_tool_call

from fakes import tool_call


class TestCatalog:
    def test_catalog_is_the_fixed_tool_set(self):
        assert {t["function"]["name"] for t in openai_tools()} == {
            "addTodos",
            "completeTodos",
            "completeSubtasks",
            "uncompleteTodos",
            "uncompleteSubtasks",
            "deleteTodos",
            "deleteSubtasks",
            "addSubtasks",
        }
        assert set(TOOL_SPECS) == set(ToolName)

    def test_openai_format(self):
        for tool in openai_tools():
            assert tool["type"] == "function"
            fn = tool["function"]
            assert fn["description"]
            assert fn["parameters"]["type"] == "object"
            assert fn["parameters"]["required"]


class TestParse:
    def test_add_todos_mixed_items(self):
        invocation = parse_tool_call(
            tool_call("call_1", "addTodos", todos=[{"text": "Buy milk", "subtasks": ["skim"]}, "Buy eggs"])
        )
        assert invocation.name is ToolName.ADD_TODOS
        assert invocation.call_id == "call_1"
        assert isinstance(invocation.args, AddTodosArgs)
        assert invocation.args.todos == [TodoInput(text="Buy milk", subtasks=["skim"]), "Buy eggs"]

    def test_subtask_refs_use_camel_case(self):
        invocation = parse_tool_call(
            tool_call("call_2", "completeSubtasks", subtaskIds=[{"todoId": 3, "subtaskId": 7}])
        )
        ref = invocation.args.subtask_ids[0]
        assert (ref.todo_id, ref.subtask_id) == (3, 7)

    def test_unknown_tool(self):
        with pytest.raises(UnknownToolError):
            parse_tool_call(tool_call("call_3", "renameTodo", id=1))

    def test_invalid_json_arguments(self):
        call = ToolCall(id="call_4", function=ToolFunction(name="completeTodos", arguments="{not json"))
        with pytest.raises(ValueError):
            parse_tool_call(call)

    def test_schema_mismatch(self):
        with pytest.raises(ValidationError):
            parse_tool_call(tool_call("call_5", "completeTodos", ids="one"))

    def test_missing_required_field(self):
        with pytest.raises(ValidationError):
            parse_tool_call(tool_call("call_6", "addSubtasks", subtasks=["x"]))


class TestDispatch:
    def test_scenario_add_todos_with_subtask(self, store, user_id):
        invocation = parse_tool_call(
            tool_call("call_1", "addTodos", todos=[{"text": "Buy milk", "subtasks": ["skim"]}, "Buy eggs"])
        )
        assert dispatch(store, user_id, invocation) == ["Buy milk", "Buy eggs"]
        todos = store.get_todos(user_id)
        assert [s["text"] for s in todos[0]["subtasks"]] == ["skim"]
        assert todos[1]["subtasks"] == []

    def test_every_tool_reaches_the_store(self, store, user_id):
        store.add_todos(user_id, [TodoInput(text="T", subtasks=["s"])])
        todo = store.get_todos(user_id)[0]
        pair = [{"todoId": todo["id"], "subtaskId": todo["subtasks"][0]["id"]}]

        def run(name, **args):
            return dispatch(store, user_id, parse_tool_call(tool_call("c", name, **args)))

        assert run("addSubtasks", todoId=todo["id"], subtasks=["s2"]) == ["s2"]
        assert run("completeSubtasks", subtaskIds=pair) == ["s"]
        assert run("uncompleteSubtasks", subtaskIds=pair) == ["s"]
        assert run("completeTodos", ids=[todo["id"]]) == ["T"]
        assert run("uncompleteTodos", ids=[todo["id"]]) == ["T"]
        assert run("deleteSubtasks", subtaskIds=pair) == ["s"]
        assert run("deleteTodos", ids=[todo["id"]]) == ["T"]
        assert store.get_todos(user_id) == []

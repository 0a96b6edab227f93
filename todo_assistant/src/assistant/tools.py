"""
Tool catalog exposed to the chat model.

Each tool has a name, a description the model uses for selection, a JSON
parameter schema sent to the provider, and a pydantic model used to validate
the arguments the model actually produced. Dispatch maps a validated call to
the matching Store mutation and returns the list of affected texts.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Type

from pydantic import BaseModel

from .errors import UnknownToolError
from .repositories import Store
from .schemas import AddSubtasksArgs, AddTodosArgs, SubtaskRefsArgs, TodoIdsArgs, ToolCall


class ToolName(str, Enum):
    ADD_TODOS = "addTodos"
    COMPLETE_TODOS = "completeTodos"
    COMPLETE_SUBTASKS = "completeSubtasks"
    UNCOMPLETE_TODOS = "uncompleteTodos"
    UNCOMPLETE_SUBTASKS = "uncompleteSubtasks"
    DELETE_TODOS = "deleteTodos"
    DELETE_SUBTASKS = "deleteSubtasks"
    ADD_SUBTASKS = "addSubtasks"


_IDS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "ids": {
            "type": "array",
            "items": {"type": "integer"},
            "description": "IDs of the todos",
        }
    },
    "required": ["ids"],
    "additionalProperties": False,
}

_SUBTASK_REFS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "subtaskIds": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "todoId": {"type": "integer", "description": "ID of the parent todo"},
                    "subtaskId": {"type": "integer", "description": "ID of the subtask"},
                },
                "required": ["todoId", "subtaskId"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["subtaskIds"],
    "additionalProperties": False,
}


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    parameters: Dict[str, Any]
    args_model: Type[BaseModel]

    def as_openai_tool(self) -> Dict[str, Any]:
        """Return the tool in the chat completions 'tools' format."""
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


TOOL_SPECS: Dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name=ToolName.ADD_TODOS,
            description=(
                "Add one or more todos to the list. Each todo is either a plain string or an "
                "object with its text and optional subtasks."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "todos": {
                        "type": "array",
                        "items": {
                            "anyOf": [
                                {"type": "string"},
                                {
                                    "type": "object",
                                    "properties": {
                                        "text": {"type": "string"},
                                        "subtasks": {"type": "array", "items": {"type": "string"}},
                                    },
                                    "required": ["text"],
                                    "additionalProperties": False,
                                },
                            ]
                        },
                    }
                },
                "required": ["todos"],
                "additionalProperties": False,
            },
            args_model=AddTodosArgs,
        ),
        ToolSpec(
            name=ToolName.COMPLETE_TODOS,
            description="Mark todos as completed. All of their subtasks are completed as well.",
            parameters=_IDS_SCHEMA,
            args_model=TodoIdsArgs,
        ),
        ToolSpec(
            name=ToolName.COMPLETE_SUBTASKS,
            description="Mark individual subtasks as completed.",
            parameters=_SUBTASK_REFS_SCHEMA,
            args_model=SubtaskRefsArgs,
        ),
        ToolSpec(
            name=ToolName.UNCOMPLETE_TODOS,
            description="Mark todos as not completed. All of their subtasks are marked not completed as well.",
            parameters=_IDS_SCHEMA,
            args_model=TodoIdsArgs,
        ),
        ToolSpec(
            name=ToolName.UNCOMPLETE_SUBTASKS,
            description="Mark individual subtasks as not completed.",
            parameters=_SUBTASK_REFS_SCHEMA,
            args_model=SubtaskRefsArgs,
        ),
        ToolSpec(
            name=ToolName.DELETE_TODOS,
            description="Delete todos together with their subtasks.",
            parameters=_IDS_SCHEMA,
            args_model=TodoIdsArgs,
        ),
        ToolSpec(
            name=ToolName.DELETE_SUBTASKS,
            description="Delete individual subtasks.",
            parameters=_SUBTASK_REFS_SCHEMA,
            args_model=SubtaskRefsArgs,
        ),
        ToolSpec(
            name=ToolName.ADD_SUBTASKS,
            description="Add subtasks to an existing todo.",
            parameters={
                "type": "object",
                "properties": {
                    "todoId": {"type": "integer", "description": "ID of the todo to add subtasks to"},
                    "subtasks": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["todoId", "subtasks"],
                "additionalProperties": False,
            },
            args_model=AddSubtasksArgs,
        ),
    )
}


# PUBLIC_INTERFACE
def openai_tools() -> List[Dict[str, Any]]:
    """Return the full catalog in the provider's 'tools' format."""
    return [spec.as_openai_tool() for spec in TOOL_SPECS.values()]


@dataclass(frozen=True)
class ToolInvocation:
    """A tool call whose name is known and whose arguments passed validation."""

    call_id: str
    name: ToolName
    args: BaseModel


# PUBLIC_INTERFACE
def parse_tool_call(call: ToolCall) -> ToolInvocation:
    """
    Resolve a model tool call into a validated invocation.

    Raises:
        UnknownToolError: the name is not in the catalog.
        pydantic.ValidationError / ValueError: the arguments are not valid JSON
            or do not match the tool's schema.
    """
    try:
        name = ToolName(call.function.name)
    except ValueError:
        raise UnknownToolError(call.function.name) from None
    raw = call.function.arguments or "{}"
    args = TOOL_SPECS[name].args_model.model_validate(json.loads(raw))
    return ToolInvocation(call_id=call.id, name=name, args=args)


_Handler = Callable[[Store, int, Any], List[str]]

_HANDLERS: Dict[ToolName, _Handler] = {
    ToolName.ADD_TODOS: lambda store, user_id, a: store.add_todos(user_id, a.todos),
    ToolName.COMPLETE_TODOS: lambda store, user_id, a: store.complete_todos(user_id, a.ids),
    ToolName.COMPLETE_SUBTASKS: lambda store, user_id, a: store.complete_subtasks(user_id, a.subtask_ids),
    ToolName.UNCOMPLETE_TODOS: lambda store, user_id, a: store.uncomplete_todos(user_id, a.ids),
    ToolName.UNCOMPLETE_SUBTASKS: lambda store, user_id, a: store.uncomplete_subtasks(user_id, a.subtask_ids),
    ToolName.DELETE_TODOS: lambda store, user_id, a: store.delete_todos(user_id, a.ids),
    ToolName.DELETE_SUBTASKS: lambda store, user_id, a: store.delete_subtasks(user_id, a.subtask_ids),
    ToolName.ADD_SUBTASKS: lambda store, user_id, a: store.add_subtasks(user_id, a.todo_id, a.subtasks),
}


# PUBLIC_INTERFACE
def dispatch(store: Store, user_id: int, invocation: ToolInvocation) -> List[str]:
    """Execute a validated invocation against the store for one user."""
    handler = _HANDLERS.get(invocation.name)
    if handler is None:
        raise UnknownToolError(invocation.name.value)
    return handler(store, user_id, invocation.args)

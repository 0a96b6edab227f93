from __future__ import annotations

from typing import Any, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import ToolCallDecodeError
from .models import Role

# Current layout of the messages.tool_calls column
TOOL_CALLS_FORMAT_VERSION = 1


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# PUBLIC_INTERFACE
class TodoInput(_ToolArgs):
    """A todo to create, optionally with subtasks."""

    text: str = Field(..., description="Text of the todo")
    subtasks: Optional[List[str]] = Field(default=None, description="Subtask texts to create under the todo")


# PUBLIC_INTERFACE
class SubtaskRef(_ToolArgs):
    """Reference to a subtask through its parent todo."""

    todo_id: int = Field(..., alias="todoId")
    subtask_id: int = Field(..., alias="subtaskId")


class AddTodosArgs(_ToolArgs):
    todos: List[Union[str, TodoInput]]


class TodoIdsArgs(_ToolArgs):
    ids: List[int]


class SubtaskRefsArgs(_ToolArgs):
    subtask_ids: List[SubtaskRef] = Field(..., alias="subtaskIds")


class AddSubtasksArgs(_ToolArgs):
    todo_id: int = Field(..., alias="todoId")
    subtasks: List[str]


# PUBLIC_INTERFACE
class ToolFunction(BaseModel):
    """Function name and raw JSON arguments as produced by the model."""

    name: str
    arguments: str


# PUBLIC_INTERFACE
class ToolCall(BaseModel):
    """
    A single tool invocation requested by the model.

    The shape mirrors the OpenAI chat completions tool call so it can be sent
    back to the model unchanged.
    """

    id: str
    type: Literal["function"] = "function"
    function: ToolFunction


# PUBLIC_INTERFACE
class AssistantReply(BaseModel):
    """One model response: final text, tool calls, or both."""

    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)

    def to_message(self) -> dict:
        """Return the reply as a chat message for the next model call."""
        message: dict = {"role": "assistant", "content": self.content or ""}
        if self.tool_calls:
            message["tool_calls"] = [call.model_dump() for call in self.tool_calls]
        return message


class ToolCallEnvelope(BaseModel):
    version: Literal[1] = TOOL_CALLS_FORMAT_VERSION
    calls: List[ToolCall]


# Older rows hold a bare list of calls
_StoredToolCalls = TypeAdapter(Union[ToolCallEnvelope, List[ToolCall]])


# PUBLIC_INTERFACE
def encode_tool_calls(calls: Optional[Iterable[Union[ToolCall, dict]]]) -> Optional[str]:
    """
    Serialize tool calls for the messages table.

    Returns None when there are no calls so that assistant messages carry
    tool_calls only when the model actually requested invocations.
    """
    if not calls:
        return None
    validated = [c if isinstance(c, ToolCall) else ToolCall.model_validate(c) for c in calls]
    if not validated:
        return None
    return ToolCallEnvelope(calls=validated).model_dump_json()


# PUBLIC_INTERFACE
def decode_tool_calls(raw: Optional[str]) -> List[ToolCall]:
    """
    Validate and decode a stored tool_calls value.

    Raises:
        ToolCallDecodeError: if the value is not a known envelope version or list of calls.
    """
    if raw is None or raw == "":
        return []
    try:
        stored = _StoredToolCalls.validate_json(raw)
    except ValidationError as exc:
        raise ToolCallDecodeError(f"Stored tool calls failed validation: {exc.error_count()} error(s)") from exc
    if isinstance(stored, ToolCallEnvelope):
        return stored.calls
    return stored


# PUBLIC_INTERFACE
class SubtaskOut(BaseModel):
    id: int = Field(..., description="Unique identifier of the subtask")
    text: str = Field(..., description="Subtask text")
    completed: bool = Field(..., description="Completion status flag")


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item with its subtasks.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 1,
                "text": "Buy milk",
                "completed": False,
                "subtasks": [{"id": 4, "text": "skim", "completed": False}],
            }
        }
    )

    id: int = Field(..., description="Unique identifier of the todo item")
    text: str = Field(..., description="Todo text")
    completed: bool = Field(..., description="Completion status flag")
    subtasks: List[SubtaskOut] = Field(default_factory=list, description="Subtasks ordered by id")


# PUBLIC_INTERFACE
class MessageOut(BaseModel):
    """
    A chat message as returned to clients, with tool calls decoded.
    """

    role: Role = Field(..., description="Message author role")
    content: str = Field(..., description="Message text; JSON result list for tool messages")
    tool_calls: Optional[List[ToolCall]] = Field(default=None, description="Tool calls requested by the assistant")
    tool_call_id: Optional[str] = Field(default=None, description="Originating call id for tool messages")

    @classmethod
    def from_row(cls, row: Any) -> "MessageOut":
        calls = decode_tool_calls(row.get("tool_calls"))
        return cls(
            role=row["role"],
            content=row["content"],
            tool_calls=calls or None,
            tool_call_id=row.get("tool_call_id"),
        )


class StateOut(BaseModel):
    todos: List[TodoOut] = Field(..., description="Current todos of the user")
    messages: List[MessageOut] = Field(..., description="Full chat history in chronological order")


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    avatar_url: Optional[str] = None


class ResetOut(BaseModel):
    # forbid keeps chat replies from validating as a reset acknowledgement
    model_config = ConfigDict(extra="forbid")

    success: bool = True

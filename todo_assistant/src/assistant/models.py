from __future__ import annotations

from typing import List, Literal, Optional, TypedDict

Role = Literal["user", "assistant", "system", "tool"]


# PUBLIC_INTERFACE
class Subtask(TypedDict):
    """
    A child item of exactly one Todo.

    Fields:
    - id: Unique integer identifier
    - text: Trimmed, non-empty text
    - completed: Boolean completion flag (stored as 0/1)
    """

    id: int
    text: str
    completed: bool


# PUBLIC_INTERFACE
class Todo(TypedDict):
    """
    A top-level task owned by a single user.

    Fields:
    - id: Unique integer identifier assigned by the store
    - text: Trimmed, non-empty text
    - completed: Boolean completion flag
    - subtasks: Subtasks ordered by id
    """

    id: int
    text: str
    completed: bool
    subtasks: List[Subtask]


# PUBLIC_INTERFACE
class Message(TypedDict):
    """
    One row of a user's chat history.

    tool_calls holds the serialized call envelope exactly as stored; use
    schemas.decode_tool_calls to turn it back into ToolCall objects.
    """

    role: Role
    content: str
    tool_calls: Optional[str]
    tool_call_id: Optional[str]


class User(TypedDict):
    id: int
    external_id: str
    name: str
    email: str
    avatar_url: Optional[str]

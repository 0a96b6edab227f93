from __future__ import annotations

from typing import Any, Dict, List, Sequence

from .errors import UnsupportedRoleError
from .models import Message, Todo
from .schemas import decode_tool_calls

ChatMessage = Dict[str, Any]

SYSTEM_PROMPT = """You are a helpful AI assistant that can manage a todo list. The current tasks
and their status can be seen below in case you need to discuss them with the user
or reference them in tools etc.

{todo_summary}

Whenever you respond to the user, be succinct. Don't ever repeat the whole task
list because the user will be able to see it in the UI. Provide brief, helpful
summaries of your actions so that you respond quickly."""


def _flag(value: bool) -> str:
    return "true" if value else "false"


# PUBLIC_INTERFACE
def summarize_todos(todos: Sequence[Todo]) -> str:
    """Render one line per todo with id, text, completion state and subtasks."""
    lines: List[str] = []
    for todo in todos:
        line = f'- ID: {todo["id"]}, Text: "{todo["text"]}", Completed: {_flag(todo["completed"])}'
        subtasks = todo.get("subtasks") or []
        if subtasks:
            rendered = ", ".join(
                f'{{ID: {s["id"]}, Text: "{s["text"]}", Completed: {_flag(s["completed"])}}}'
                for s in subtasks
            )
            line += f", Subtasks: [{rendered}]"
        lines.append(line)
    return "\n".join(lines)


def build_system_message(todos: Sequence[Todo]) -> ChatMessage:
    return {"role": "system", "content": SYSTEM_PROMPT.format(todo_summary=summarize_todos(todos))}


# PUBLIC_INTERFACE
def to_chat_message(message: Message) -> ChatMessage:
    """
    Translate a stored message into the provider's message shape.

    Raises:
        UnsupportedRoleError: the stored role is not user/assistant/system/tool.
        ToolCallDecodeError: stored assistant tool calls fail validation.
    """
    role = message["role"]
    if role == "tool":
        return {"role": "tool", "content": message["content"], "tool_call_id": message["tool_call_id"]}
    if role == "assistant":
        out: ChatMessage = {"role": "assistant", "content": message["content"]}
        calls = decode_tool_calls(message.get("tool_calls"))
        if calls:
            out["tool_calls"] = [call.model_dump() for call in calls]
        return out
    if role in ("user", "system"):
        return {"role": role, "content": message["content"]}
    raise UnsupportedRoleError(str(role))


# PUBLIC_INTERFACE
def build_conversation(todos: Sequence[Todo], history: Sequence[Message], user_message: str) -> List[ChatMessage]:
    """
    Build the ordered message list for one model turn.

    The system prompt is rebuilt from the given todos on every call. A tool
    message at the very start of history has lost its assistant call and is
    dropped.
    """
    if history and history[0]["role"] == "tool":
        history = history[1:]
    messages: List[ChatMessage] = [build_system_message(todos)]
    messages.extend(to_chat_message(m) for m in history)
    messages.append({"role": "user", "content": user_message})
    return messages

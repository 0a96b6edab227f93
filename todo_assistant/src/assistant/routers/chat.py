from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends, Form, Request
from fastapi.exceptions import RequestValidationError

from ..auth import get_current_user, get_store
from ..llm import ChatModel
from ..models import User
from ..orchestrator import Assistant
from ..repositories import Store
from ..schemas import MessageOut, ResetOut, StateOut, TodoOut, UserOut
from ..settings import get_settings
from ..utils import clean_text

router = APIRouter(
    prefix="/api/v1",
    tags=["assistant"],
)


def get_chat_model(request: Request) -> ChatModel:
    """
    Dependency returning the chat model created at startup. Tests override it.
    """
    return request.app.state.chat_model


def _get_assistant(
    request: Request,
    store: Store = Depends(get_store),
    model: ChatModel = Depends(get_chat_model),
) -> Assistant:
    return Assistant(
        store,
        model,
        max_steps=get_settings().max_tool_steps,
        locks=request.app.state.turn_locks,
    )


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=UserOut,
    summary="Current User",
    description="Return the authenticated user's profile.",
)
def get_me(user: User = Depends(get_current_user)) -> UserOut:
    return UserOut(id=user["id"], name=user["name"], email=user["email"], avatar_url=user["avatar_url"])


# PUBLIC_INTERFACE
@router.get(
    "/state",
    response_model=StateOut,
    summary="Load State",
    description="Return the user's todos with subtasks and the full chat history for the initial render.",
    responses={
        200: {"description": "State loaded"},
        401: {"description": "Not authenticated"},
    },
)
def get_state(user: User = Depends(get_current_user), store: Store = Depends(get_store)) -> StateOut:
    """
    Loader for the chat page.
    """
    todos = [TodoOut(**todo) for todo in store.get_todos(user["id"])]  # type: ignore[arg-type]
    messages = [MessageOut.from_row(m) for m in store.get_messages(user["id"])]
    return StateOut(todos=todos, messages=messages)


# PUBLIC_INTERFACE
@router.post(
    "/chat",
    response_model=Union[ResetOut, MessageOut],
    summary="Chat",
    description=(
        "Form submission handled in one of two ways:\n\n"
        "- intent=reset: clear the chat history and start over with a greeting\n"
        "- message=<text>: run one assistant turn and return the final assistant message\n"
    ),
    responses={
        200: {"description": "Reset acknowledged or final assistant message"},
        422: {"description": "Missing or empty message"},
        502: {"description": "Chat model unavailable"},
    },
)
def post_chat(
    intent: Optional[str] = Form(default=None),
    message: Optional[str] = Form(default=None),
    user: User = Depends(get_current_user),
    store: Store = Depends(get_store),
    assistant: Assistant = Depends(_get_assistant),
) -> Union[ResetOut, MessageOut]:
    """
    Reset the conversation or run a chat turn for the current user.
    """
    if intent == "reset":
        store.reset_messages(user["id"])
        return ResetOut(success=True)

    text = clean_text(message)
    if text is None:
        raise RequestValidationError(
            [{"type": "value_error", "loc": ("body", "message"), "msg": "message must not be empty", "input": message}]
        )

    reply = assistant.respond(user["id"], text)
    return MessageOut(role="assistant", content=reply.content or "", tool_calls=reply.tool_calls or None)

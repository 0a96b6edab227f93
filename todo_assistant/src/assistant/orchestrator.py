from __future__ import annotations

import json
from contextlib import contextmanager
from threading import Lock
from typing import Any, Dict, Generator, List, Optional

import structlog

from .conversation import ChatMessage, build_conversation, build_system_message
from .errors import StepLimitExceededError, UnknownToolError
from .llm import ChatModel
from .repositories import Store
from .schemas import AssistantReply, ToolCall
from .tools import dispatch, openai_tools, parse_tool_call
from .utils import dump_result

logger = structlog.get_logger(__name__)

DEFAULT_MAX_STEPS = 10


class TurnLocks:
    """
    Per-user locks so that two turns for the same user never interleave.

    An entry lives only while some turn holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        # user id -> [lock, number of holders and waiters]
        self._locks: Dict[int, List[Any]] = {}

    @contextmanager
    def hold(self, user_id: int) -> Generator[None, None, None]:
        with self._guard:
            entry = self._locks.setdefault(user_id, [Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[user_id]


# PUBLIC_INTERFACE
class Assistant:
    """
    Runs chat turns: user message in, final assistant reply out.

    Each model call is persisted as an assistant message. Every tool call in a
    reply is validated, executed against the store and persisted as a tool
    message before the model is called again. The turn ends on the first reply
    without tool calls, or fails with StepLimitExceededError after max_steps
    model calls. Model errors propagate to the caller; whatever was already
    persisted stays.
    """

    def __init__(
        self,
        store: Store,
        model: ChatModel,
        max_steps: int = DEFAULT_MAX_STEPS,
        locks: Optional[TurnLocks] = None,
    ) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.store = store
        self.model = model
        self.max_steps = max_steps
        self.locks = locks or TurnLocks()
        self._tools = openai_tools()

    def respond(self, user_id: int, user_message: str) -> AssistantReply:
        with self.locks.hold(user_id), structlog.contextvars.bound_contextvars(user_id=user_id):
            history = self.store.get_messages(user_id)
            self.store.save_message(user_id, "user", user_message)
            messages = build_conversation(self.store.get_todos(user_id), history, user_message)
            return self._run(user_id, messages)

    def _run(self, user_id: int, messages: List[ChatMessage]) -> AssistantReply:
        for step in range(1, self.max_steps + 1):
            if step > 1:
                messages[0] = build_system_message(self.store.get_todos(user_id))

            reply = self.model.complete(messages, self._tools)
            logger.info("model_replied", step=step, tool_calls=len(reply.tool_calls))
            self.store.save_message(user_id, "assistant", reply.content or "", reply.tool_calls or None)
            messages.append(reply.to_message())

            if not reply.tool_calls:
                return reply

            for call in reply.tool_calls:
                content = self._execute(user_id, call, step)
                if content is None:
                    continue
                self.store.save_message(user_id, "tool", content, tool_call_id=call.id)
                messages.append({"role": "tool", "content": content, "tool_call_id": call.id})

        logger.error("turn_step_limit_exceeded", max_steps=self.max_steps)
        raise StepLimitExceededError(self.max_steps)

    def _execute(self, user_id: int, call: ToolCall, step: int) -> Optional[str]:
        """Return the tool message content for call, or None if the call is skipped."""
        try:
            invocation = parse_tool_call(call)
        except UnknownToolError:
            logger.warning("unknown_tool_skipped", tool=call.function.name, call_id=call.id, step=step)
            return None
        except ValueError as exc:
            logger.warning("tool_arguments_invalid", tool=call.function.name, call_id=call.id, step=step)
            error: Dict[str, Any] = {"error": f"Invalid arguments for {call.function.name}: {exc}"}
            return json.dumps(error, ensure_ascii=False)

        result = dispatch(self.store, user_id, invocation)
        logger.info("tool_executed", tool=invocation.name.value, call_id=call.id, step=step, affected=len(result))
        return dump_result(result)

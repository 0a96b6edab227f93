from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence

import structlog
from openai import OpenAI

from .schemas import AssistantReply, ToolCall, ToolFunction

logger = structlog.get_logger(__name__)


class ChatModel(Protocol):
    """Anything that can turn a conversation plus tool catalog into one reply."""

    def complete(self, messages: Sequence[Dict[str, Any]], tools: Sequence[Dict[str, Any]]) -> AssistantReply:
        ...


class OpenAIChatModel:
    """
    Chat completions adapter.

    The client is created on first use so the application can start (and be
    tested) without provider credentials. Provider errors are not caught here.
    """

    def __init__(self, model: str, api_key: Optional[str] = None, base_url: Optional[str] = None) -> None:
        self.model = model
        self._api_key = api_key
        self._base_url = base_url
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            kwargs: Dict[str, Any] = {}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = OpenAI(**kwargs)
        return self._client

    def complete(self, messages: Sequence[Dict[str, Any]], tools: Sequence[Dict[str, Any]]) -> AssistantReply:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=list(messages),
            tools=list(tools),
            tool_choice="auto",
            parallel_tool_calls=False,
        )
        message = response.choices[0].message
        calls: List[ToolCall] = []
        for tool_call in message.tool_calls or []:
            function = getattr(tool_call, "function", None)
            if function is None:
                logger.warning("non_function_tool_call_ignored", call_id=tool_call.id)
                continue
            calls.append(
                ToolCall(
                    id=tool_call.id,
                    function=ToolFunction(name=function.name, arguments=function.arguments or "{}"),
                )
            )
        return AssistantReply(content=message.content, tool_calls=calls)

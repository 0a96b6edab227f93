import copy
import json

from src.assistant.schemas import AssistantReply, ToolCall, ToolFunction


def tool_call(call_id, name, **arguments):
    return ToolCall(id=call_id, function=ToolFunction(name=name, arguments=json.dumps(arguments)))


def tool_reply(*calls, content=None):
    return AssistantReply(content=content, tool_calls=list(calls))


def text_reply(content):
    return AssistantReply(content=content)


class FakeChatModel:
    """
    Scripted chat model. Each complete() call pops the next reply; an
    Exception instance in the script is raised instead of returned.
    """

    def __init__(self, replies=None, repeat_last=False):
        self.replies = list(replies or [])
        self.repeat_last = repeat_last
        self.calls = []
        self.tools = None

    def queue(self, *replies):
        self.replies.extend(replies)

    def complete(self, messages, tools):
        self.calls.append(copy.deepcopy(list(messages)))
        self.tools = tools
        if not self.replies:
            raise AssertionError("FakeChatModel ran out of scripted replies")
        reply = self.replies[0] if (self.repeat_last and len(self.replies) == 1) else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

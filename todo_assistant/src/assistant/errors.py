from __future__ import annotations


class StoreError(RuntimeError):
    """Raised by the store when a write cannot be applied."""


class OwnershipError(StoreError):
    """A referenced todo does not exist or belongs to another user."""

    def __init__(self, todo_id: int, user_id: int):
        super().__init__(f"Todo {todo_id} not found or doesn't belong to user {user_id}")
        self.todo_id = todo_id
        self.user_id = user_id


class ConversationError(RuntimeError):
    """Persisted history cannot be turned into a model conversation."""


class UnsupportedRoleError(ConversationError):
    def __init__(self, role: str):
        super().__init__(f"Unsupported message role: {role}")
        self.role = role


class ToolCallDecodeError(ConversationError):
    """Stored tool calls failed schema validation."""


class UnknownToolError(LookupError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class StepLimitExceededError(RuntimeError):
    """Raised when a chat turn needs more model calls than allowed."""

    def __init__(self, max_steps: int):
        super().__init__(f"Turn exceeded step limit of {max_steps} model calls")
        self.max_steps = max_steps

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence, Union

from .models import Message, Role, Todo, User
from .schemas import SubtaskRef, TodoInput, ToolCall

TodoItem = Union[str, TodoInput]

GREETING = "How can I help with your tasks today?"


# PUBLIC_INTERFACE
class Store(ABC):
    """
    Abstract storage contract for users, todos, subtasks and chat history.

    Every operation is scoped to one user. Mutations run as a single
    transaction: they either apply completely or leave state unchanged, in
    which case the failure is logged and an empty result is returned.
    """

    @abstractmethod
    def open(self) -> None:
        """Open the underlying connection and ensure the schema exists."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying connection."""

    @abstractmethod
    def get_todos(self, user_id: int) -> List[Todo]:
        """Return the user's todos ordered by id, each with its subtasks."""

    @abstractmethod
    def add_todos(self, user_id: int, items: Sequence[TodoItem]) -> List[str]:
        """Insert todos (and nested subtasks), skipping blank texts. Return inserted texts."""

    @abstractmethod
    def add_subtasks(self, user_id: int, todo_id: int, subtasks: Sequence[str]) -> List[str]:
        """Insert subtasks under an owned todo. Return inserted texts."""

    @abstractmethod
    def complete_todos(self, user_id: int, ids: Iterable[int]) -> List[str]:
        """Mark owned todos and all their subtasks completed. Return updated todo texts."""

    @abstractmethod
    def uncomplete_todos(self, user_id: int, ids: Iterable[int]) -> List[str]:
        """Mark owned todos and all their subtasks incomplete. Return updated todo texts."""

    @abstractmethod
    def complete_subtasks(self, user_id: int, refs: Iterable[SubtaskRef]) -> List[str]:
        """Mark subtasks of owned todos completed. Return updated subtask texts."""

    @abstractmethod
    def uncomplete_subtasks(self, user_id: int, refs: Iterable[SubtaskRef]) -> List[str]:
        """Mark subtasks of owned todos incomplete. Return updated subtask texts."""

    @abstractmethod
    def delete_todos(self, user_id: int, ids: Iterable[int]) -> List[str]:
        """Delete owned todos together with their subtasks. Return deleted texts."""

    @abstractmethod
    def delete_subtasks(self, user_id: int, refs: Iterable[SubtaskRef]) -> List[str]:
        """Delete subtasks of owned todos. Return deleted texts."""

    @abstractmethod
    def save_message(
        self,
        user_id: int,
        role: Role,
        content: str,
        tool_calls: Optional[Sequence[ToolCall]] = None,
        tool_call_id: Optional[str] = None,
    ) -> None:
        """Append one message to the user's history."""

    @abstractmethod
    def get_messages(self, user_id: int) -> List[Message]:
        """Return the user's full history in insertion order."""

    @abstractmethod
    def reset_messages(self, user_id: int) -> None:
        """Replace the user's history with a single assistant greeting."""

    @abstractmethod
    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        """Return the user with this external identity, or None."""

    @abstractmethod
    def create_or_update_user(
        self,
        external_id: str,
        name: str,
        email: str,
        avatar_url: Optional[str] = None,
    ) -> User:
        """Upsert a user by external identity and return the stored record."""

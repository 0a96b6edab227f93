from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from threading import RLock
from typing import Any, Callable, Generator, Iterable, List, Mapping, Optional, Sequence, Tuple

import structlog

from .errors import OwnershipError, StoreError
from .models import Message, Role, Subtask, Todo, User
from .repositories import GREETING, Store, TodoItem
from .schemas import SubtaskRef, ToolCall, encode_tool_calls
from .utils import clean_text, clean_texts

logger = structlog.get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT UNIQUE NOT NULL,
    name TEXT NOT NULL,
    email TEXT UNIQUE NOT NULL,
    avatar_url TEXT
);

CREATE TABLE IF NOT EXISTS todos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    text TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS subtasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    todo_id INTEGER,
    text TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (todo_id) REFERENCES todos(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    tool_calls TEXT,
    tool_call_id TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_todos_user_id ON todos(user_id);
CREATE INDEX IF NOT EXISTS idx_subtasks_todo_id ON subtasks(todo_id);
CREATE INDEX IF NOT EXISTS idx_messages_user_id ON messages(user_id);
"""

# Errors that roll back a mutation and turn into an empty result
_RECOVERABLE = (sqlite3.Error, StoreError)


def _split_item(item: Any) -> Tuple[Optional[str], Sequence[Any]]:
    if isinstance(item, str):
        return clean_text(item), ()
    if isinstance(item, Mapping):
        return clean_text(item.get("text")), item.get("subtasks") or ()
    text = getattr(item, "text", None)
    return clean_text(text), getattr(item, "subtasks", None) or ()


def _ref_ids(ref: Any) -> Tuple[int, int]:
    if isinstance(ref, Mapping):
        return int(ref["todoId"]), int(ref["subtaskId"])
    return int(ref.todo_id), int(ref.subtask_id)


class SQLiteStore(Store):
    """
    SQLite implementation of the Store contract.

    A single connection is opened by open() and shared by all callers; an
    RLock serializes access so each transaction runs to completion before the
    next statement from another thread.
    """

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._timeout = timeout
        self._lock = RLock()
        self._conn: Optional[sqlite3.Connection] = None

    # lifecycle

    def open(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            conn = sqlite3.connect(
                self._db_path, timeout=self._timeout, check_same_thread=False, isolation_level=None
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.executescript(_SCHEMA)
            self._conn = conn
            logger.info("store_opened", path=self._db_path)

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            logger.info("store_closed", path=self._db_path)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Store is not open")
        return self._conn

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection, None, None]:
        with self._lock:
            conn = self._connection()
            conn.execute("BEGIN")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                # a failed COMMIT (e.g. SQLITE_BUSY) leaves the transaction open
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def _mutate(self, event: str, user_id: int, apply: Callable[[sqlite3.Connection], List[str]]) -> List[str]:
        """Run apply in one transaction; log and return [] if it fails."""
        try:
            with self._transaction() as conn:
                return apply(conn)
        except _RECOVERABLE:
            logger.exception(event, user_id=user_id)
            return []

    @staticmethod
    def _check_owner(conn: sqlite3.Connection, user_id: int, todo_id: int) -> None:
        row = conn.execute("SELECT 1 FROM todos WHERE id = ? AND user_id = ?", (todo_id, user_id)).fetchone()
        if row is None:
            raise OwnershipError(todo_id, user_id)

    @staticmethod
    def _insert_subtasks(conn: sqlite3.Connection, todo_id: int, subtasks: Iterable[Any]) -> List[str]:
        added: List[str] = []
        for text in clean_texts(subtasks):
            conn.execute("INSERT INTO subtasks (todo_id, text) VALUES (?, ?)", (todo_id, text))
            added.append(text)
        return added

    # todos

    def get_todos(self, user_id: int) -> List[Todo]:
        with self._lock:
            rows = self._connection().execute(
                """
                SELECT t.id AS todo_id, t.text AS todo_text, t.completed AS todo_completed,
                       s.id AS subtask_id, s.text AS subtask_text, s.completed AS subtask_completed
                FROM todos t
                LEFT JOIN subtasks s ON s.todo_id = t.id
                WHERE t.user_id = ?
                ORDER BY t.id ASC, s.id ASC
                """,
                (user_id,),
            ).fetchall()

        todos: dict[int, Todo] = {}
        for row in rows:
            todo = todos.get(row["todo_id"])
            if todo is None:
                todo = {
                    "id": int(row["todo_id"]),
                    "text": str(row["todo_text"]),
                    "completed": bool(row["todo_completed"]),
                    "subtasks": [],
                }
                todos[todo["id"]] = todo
            if row["subtask_id"] is not None:
                subtask: Subtask = {
                    "id": int(row["subtask_id"]),
                    "text": str(row["subtask_text"]),
                    "completed": bool(row["subtask_completed"]),
                }
                todo["subtasks"].append(subtask)
        return list(todos.values())

    def add_todos(self, user_id: int, items: Sequence[TodoItem]) -> List[str]:
        def apply(conn: sqlite3.Connection) -> List[str]:
            added: List[str] = []
            for item in items:
                text, subtasks = _split_item(item)
                if text is None:
                    continue
                cur = conn.execute("INSERT INTO todos (user_id, text) VALUES (?, ?)", (user_id, text))
                added.append(text)
                self._insert_subtasks(conn, int(cur.lastrowid), subtasks)
            return added

        return self._mutate("todos_add_failed", user_id, apply)

    def add_subtasks(self, user_id: int, todo_id: int, subtasks: Sequence[str]) -> List[str]:
        def apply(conn: sqlite3.Connection) -> List[str]:
            self._check_owner(conn, user_id, todo_id)
            return self._insert_subtasks(conn, todo_id, subtasks)

        return self._mutate("subtasks_add_failed", user_id, apply)

    def _set_todos_completed(self, user_id: int, ids: Iterable[int], completed: bool) -> List[str]:
        flag = 1 if completed else 0

        def apply(conn: sqlite3.Connection) -> List[str]:
            updated: List[str] = []
            for todo_id in ids:
                cur = conn.execute(
                    "UPDATE todos SET completed = ? WHERE id = ? AND user_id = ?",
                    (flag, todo_id, user_id),
                )
                if cur.rowcount == 0:
                    continue
                conn.execute("UPDATE subtasks SET completed = ? WHERE todo_id = ?", (flag, todo_id))
                row = conn.execute(
                    "SELECT text FROM todos WHERE id = ? AND user_id = ?", (todo_id, user_id)
                ).fetchone()
                if row is not None:
                    updated.append(row["text"])
            return updated

        event = "todos_complete_failed" if completed else "todos_uncomplete_failed"
        return self._mutate(event, user_id, apply)

    def complete_todos(self, user_id: int, ids: Iterable[int]) -> List[str]:
        return self._set_todos_completed(user_id, ids, True)

    def uncomplete_todos(self, user_id: int, ids: Iterable[int]) -> List[str]:
        return self._set_todos_completed(user_id, ids, False)

    def delete_todos(self, user_id: int, ids: Iterable[int]) -> List[str]:
        def apply(conn: sqlite3.Connection) -> List[str]:
            deleted: List[str] = []
            for todo_id in ids:
                row = conn.execute(
                    "SELECT text FROM todos WHERE id = ? AND user_id = ?", (todo_id, user_id)
                ).fetchone()
                if row is None:
                    continue
                deleted.append(row["text"])
                conn.execute("DELETE FROM todos WHERE id = ? AND user_id = ?", (todo_id, user_id))
            return deleted

        return self._mutate("todos_delete_failed", user_id, apply)

    # subtasks

    def _set_subtasks_completed(self, user_id: int, refs: Iterable[SubtaskRef], completed: bool) -> List[str]:
        flag = 1 if completed else 0

        def apply(conn: sqlite3.Connection) -> List[str]:
            updated: List[str] = []
            for ref in refs:
                todo_id, subtask_id = _ref_ids(ref)
                self._check_owner(conn, user_id, todo_id)
                cur = conn.execute(
                    "UPDATE subtasks SET completed = ? WHERE id = ? AND todo_id = ?",
                    (flag, subtask_id, todo_id),
                )
                if cur.rowcount == 0:
                    continue
                row = conn.execute(
                    "SELECT text FROM subtasks WHERE id = ? AND todo_id = ?", (subtask_id, todo_id)
                ).fetchone()
                if row is not None:
                    updated.append(row["text"])
            return updated

        event = "subtasks_complete_failed" if completed else "subtasks_uncomplete_failed"
        return self._mutate(event, user_id, apply)

    def complete_subtasks(self, user_id: int, refs: Iterable[SubtaskRef]) -> List[str]:
        return self._set_subtasks_completed(user_id, refs, True)

    def uncomplete_subtasks(self, user_id: int, refs: Iterable[SubtaskRef]) -> List[str]:
        return self._set_subtasks_completed(user_id, refs, False)

    def delete_subtasks(self, user_id: int, refs: Iterable[SubtaskRef]) -> List[str]:
        def apply(conn: sqlite3.Connection) -> List[str]:
            deleted: List[str] = []
            for ref in refs:
                todo_id, subtask_id = _ref_ids(ref)
                self._check_owner(conn, user_id, todo_id)
                row = conn.execute(
                    "SELECT text FROM subtasks WHERE id = ? AND todo_id = ?", (subtask_id, todo_id)
                ).fetchone()
                if row is None:
                    continue
                deleted.append(row["text"])
                conn.execute("DELETE FROM subtasks WHERE id = ? AND todo_id = ?", (subtask_id, todo_id))
            return deleted

        return self._mutate("subtasks_delete_failed", user_id, apply)

    # messages

    def save_message(
        self,
        user_id: int,
        role: Role,
        content: str,
        tool_calls: Optional[Sequence[ToolCall]] = None,
        tool_call_id: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._connection().execute(
                "INSERT INTO messages (user_id, role, content, tool_calls, tool_call_id) VALUES (?, ?, ?, ?, ?)",
                (user_id, role, content, encode_tool_calls(tool_calls), tool_call_id),
            )

    def get_messages(self, user_id: int) -> List[Message]:
        with self._lock:
            rows = self._connection().execute(
                "SELECT role, content, tool_calls, tool_call_id FROM messages WHERE user_id = ? ORDER BY id ASC",
                (user_id,),
            ).fetchall()
        return [
            {
                "role": row["role"],
                "content": row["content"],
                "tool_calls": row["tool_calls"],
                "tool_call_id": row["tool_call_id"],
            }
            for row in rows
        ]

    def reset_messages(self, user_id: int) -> None:
        try:
            with self._transaction() as conn:
                conn.execute("DELETE FROM messages WHERE user_id = ?", (user_id,))
                conn.execute(
                    "INSERT INTO messages (user_id, role, content) VALUES (?, ?, ?)",
                    (user_id, "assistant", GREETING),
                )
        except _RECOVERABLE:
            logger.exception("messages_reset_failed", user_id=user_id)

    # users

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        with self._lock:
            row = self._connection().execute(
                "SELECT id, external_id, name, email, avatar_url FROM users WHERE external_id = ?",
                (external_id,),
            ).fetchone()
        if row is None:
            return None
        return {
            "id": int(row["id"]),
            "external_id": row["external_id"],
            "name": row["name"],
            "email": row["email"],
            "avatar_url": row["avatar_url"],
        }

    def create_or_update_user(
        self,
        external_id: str,
        name: str,
        email: str,
        avatar_url: Optional[str] = None,
    ) -> User:
        try:
            with self._transaction() as conn:
                row = conn.execute("SELECT id FROM users WHERE external_id = ?", (external_id,)).fetchone()
                if row is not None:
                    conn.execute(
                        "UPDATE users SET name = ?, email = ?, avatar_url = ? WHERE external_id = ?",
                        (name, email, avatar_url, external_id),
                    )
                    user_id = int(row["id"])
                else:
                    cur = conn.execute(
                        "INSERT INTO users (external_id, name, email, avatar_url) VALUES (?, ?, ?, ?)",
                        (external_id, name, email, avatar_url),
                    )
                    if not cur.lastrowid:
                        raise StoreError("Failed to insert new user: no id returned")
                    user_id = int(cur.lastrowid)
        except _RECOVERABLE:
            logger.exception("user_upsert_failed", external_id=external_id)
            raise

        return {
            "id": user_id,
            "external_id": external_id,
            "name": name,
            "email": email,
            "avatar_url": avatar_url,
        }

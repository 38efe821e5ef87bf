"""SQLite persistence for todos."""
import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union
from pydantic import BaseModel

logger = logging.getLogger(__name__)

TodoIds = Union[Sequence[str], str]


class Todo(BaseModel):
    id: str
    text: str
    completed: bool
    createdAt: str


class TodoNotFound(Exception):
    """No todo with the given id."""

    def __init__(self, todo_id: str):
        self.todo_id = todo_id
        super().__init__(f"Todo not found: {todo_id}")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _row_to_todo(row: sqlite3.Row) -> Todo:
    return Todo(
        id=row["id"],
        text=row["text"],
        completed=bool(row["completed"]),
        createdAt=row["created_at"],
    )


class TodoStore:
    """Keyed todo records in a single ``todos`` table.

    One connection is shared by all threads and guarded by a lock, which is
    what FastAPI's threadpool needs for the sync route handlers.
    """

    def __init__(self, db_name: str = "todos.sqlite"):
        self.db_name = db_name
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_name, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS todos (
                  id TEXT PRIMARY KEY,
                  text TEXT NOT NULL,
                  completed BOOLEAN NOT NULL DEFAULT 0,
                  created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
        logger.info(f"[TODOS] Opened todo database {db_name}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def list_todos(self) -> List[Todo]:
        rows = self._query("SELECT * FROM todos ORDER BY created_at DESC, rowid DESC")
        return [_row_to_todo(row) for row in rows]

    def get_todo(self, todo_id: str) -> Todo:
        rows = self._query("SELECT * FROM todos WHERE id = ?", (todo_id,))
        if not rows:
            raise TodoNotFound(todo_id)
        return _row_to_todo(rows[0])

    def create_todo(self, text: str) -> Todo:
        todo = Todo(id=str(uuid.uuid4()), text=text, completed=False, createdAt=_utc_now())
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO todos (id, text, completed, created_at) VALUES (?, ?, 0, ?)",
                (todo.id, todo.text, todo.createdAt),
            )
        logger.info(f"[TODOS] Created todo {todo.id}")
        return todo

    def update_todo(self, todo_id: str, completed: Optional[bool] = None, text: Optional[str] = None) -> Todo:
        fields: List[str] = []
        values: List[Any] = []
        if completed is not None:
            fields.append("completed = ?")
            values.append(1 if completed else 0)
        if text is not None:
            fields.append("text = ?")
            values.append(text)

        with self._lock, self._conn:
            exists = self._conn.execute("SELECT 1 FROM todos WHERE id = ?", (todo_id,)).fetchone()
            if not exists:
                raise TodoNotFound(todo_id)
            if fields:
                self._conn.execute(f"UPDATE todos SET {', '.join(fields)} WHERE id = ?", (*values, todo_id))
        return self.get_todo(todo_id)

    def delete_todo(self, todo_id: str) -> None:
        with self._lock, self._conn:
            cursor = self._conn.execute("DELETE FROM todos WHERE id = ?", (todo_id,))
        if cursor.rowcount == 0:
            raise TodoNotFound(todo_id)
        logger.info(f"[TODOS] Deleted todo {todo_id}")

    def delete_todos(self, ids: TodoIds) -> Dict[str, Any]:
        """Delete the given ids, or every todo when ``ids`` is ``"all"``."""
        with self._lock, self._conn:
            if ids == "all":
                cursor = self._conn.execute("DELETE FROM todos")
            else:
                ids = list(ids)
                placeholders = ",".join("?" for _ in ids)
                cursor = self._conn.execute(f"DELETE FROM todos WHERE id IN ({placeholders})", ids)
        logger.info(f"[TODOS] Deleted {cursor.rowcount} todos")
        return {"success": True, "deleted": cursor.rowcount}

    def complete_todos(self, ids: TodoIds, completed: bool) -> List[Todo]:
        """Set ``completed`` on the given ids, or on every todo when ``ids`` is ``"all"``."""
        value = 1 if completed else 0
        with self._lock, self._conn:
            if ids == "all":
                self._conn.execute("UPDATE todos SET completed = ?", (value,))
                rows = self._conn.execute("SELECT * FROM todos ORDER BY created_at DESC, rowid DESC").fetchall()
            else:
                ids = list(ids)
                placeholders = ",".join("?" for _ in ids)
                self._conn.execute(f"UPDATE todos SET completed = ? WHERE id IN ({placeholders})", (value, *ids))
                rows = self._conn.execute(
                    f"SELECT * FROM todos WHERE id IN ({placeholders}) ORDER BY created_at DESC, rowid DESC", ids
                ).fetchall()
        return [_row_to_todo(row) for row in rows]

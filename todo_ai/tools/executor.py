"""Execute a validated tool selection against the todo store."""
import logging
from typing import Any, Callable, Dict

from todo_ai.tools.store import TodoStore

logger = logging.getLogger(__name__)


class UnsupportedCommand(Exception):
    """The selected tool has no handler in this executor."""


class CommandExecutor:
    """Maps tool names from the API description onto TodoStore operations.

    Only call this with a succeeded dispatch outcome: the parameters are
    expected to have passed validation already.
    """

    def __init__(self, store: TodoStore):
        self.store = store
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "listTodos": lambda p: self.store.list_todos(),
            "createTodo": lambda p: self.store.create_todo(p["text"]),
            "updateTodo": lambda p: self.store.update_todo(p["id"], completed=p.get("completed"), text=p.get("text")),
            "deleteTodo": lambda p: self.store.delete_todo(p["id"]),
            "deleteTodos": lambda p: self.store.delete_todos(p["ids"]),
            "completeTodos": lambda p: self.store.complete_todos(p["ids"], p["completed"]),
        }

    def supports(self, tool_name: str) -> bool:
        return tool_name in self._handlers

    def execute(self, tool_name: str, parameters: Dict[str, Any]) -> Any:
        handler = self._handlers.get(tool_name)
        if handler is None:
            raise UnsupportedCommand(f"No handler for tool {tool_name!r}")
        logger.info(f"[EXECUTE] {tool_name} with {sorted(parameters)}")
        return handler(parameters)

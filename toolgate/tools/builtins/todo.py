"""Todo list tools backed by the session-scoped TodoStore."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING

from toolgate.infra.errors import TodoError
from toolgate.todo.store import TodoStatus, TodoStore
from toolgate.tools.base import BaseTool, RiskLevel, ToolGroup, ToolMode
from toolgate.tools.envelope import failure

if TYPE_CHECKING:
    from toolgate.tools.context import ToolContext

_INDEX_SCHEMA = {"type": "integer", "minimum": 1, "description": "Todo index to update."}


def _coerce_index(value: object) -> object:
    # numeric strings come through from loosely typed model output
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


class _TodoTool(BaseTool):
    def __init__(self, store: TodoStore) -> None:
        self._store = store

    @property
    def group(self) -> ToolGroup:
        return ToolGroup.planning

    @property
    def allowed_modes(self) -> frozenset[ToolMode]:
        return frozenset({ToolMode.chat_safe, ToolMode.coding})

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.low

    async def execute(self, arguments: dict, context: ToolContext) -> dict:
        try:
            result = await self._run(arguments, context.session_id)
        except TodoError as e:
            return failure(str(e), e.code)
        return {"ok": True, **result}

    @abstractmethod
    async def _run(self, arguments: dict, session_id: str | None) -> dict:
        ...


class AddTodoTool(_TodoTool):
    @property
    def name(self) -> str:
        return "add_todo_tool"

    @property
    def description(self) -> str:
        return 'Add a todo item with status "todo" to the shared task list.'

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "Todo text to add."},
            },
            "required": ["content"],
        }

    async def _run(self, arguments: dict, session_id: str | None) -> dict:
        return await self._store.add(session_id, arguments.get("content"))


class UpdateTodoItemTool(_TodoTool):
    @property
    def name(self) -> str:
        return "update_todo_item_tool"

    @property
    def description(self) -> str:
        return "Update the text of an existing todo item by index."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "index": _INDEX_SCHEMA,
                "content": {"type": "string", "description": "New todo content."},
            },
            "required": ["index", "content"],
        }

    async def _run(self, arguments: dict, session_id: str | None) -> dict:
        return await self._store.update_content(
            session_id, _coerce_index(arguments.get("index")), arguments.get("content")
        )


class UpdateTodoStatusTool(_TodoTool):
    @property
    def name(self) -> str:
        return "update_todo_status_tool"

    @property
    def description(self) -> str:
        return "Update the status of a todo item (todo, in_progress, done)."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "index": _INDEX_SCHEMA,
                "status": {
                    "type": "string",
                    "enum": [s.value for s in TodoStatus],
                    "description": "New status.",
                },
            },
            "required": ["index", "status"],
        }

    async def _run(self, arguments: dict, session_id: str | None) -> dict:
        return await self._store.update_status(
            session_id, _coerce_index(arguments.get("index")), arguments.get("status")
        )


class ClearTodosTool(_TodoTool):
    @property
    def name(self) -> str:
        return "clear_todos_tool"

    @property
    def description(self) -> str:
        return "Clear all todo items from the shared task list."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def _run(self, arguments: dict, session_id: str | None) -> dict:
        return await self._store.clear(session_id)


class ListTodosTool(_TodoTool):
    @property
    def name(self) -> str:
        return "list_todos_tool"

    @property
    def description(self) -> str:
        return "Return the current todo collection."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def _run(self, arguments: dict, session_id: str | None) -> dict:
        return await self._store.list(session_id)

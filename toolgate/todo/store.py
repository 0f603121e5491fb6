"""Session-scoped in-memory todo lists.

Indices are 1-based and never reused within a session; ``clear`` is the only
operation that resets the counter. The store is the one piece of shared
mutable state in the tool layer, so every mutation runs under the session's
lock, and sessions beyond ``max_sessions`` are evicted least-recently-used.

Stored content is kept whole; replies are bounded. Each item's content is
clamped to ``item_limit`` characters and a snapshot lists at most
``list_limit`` items (lowest indices first), with ``truncated``,
``omitted_items`` and ``omitted_chars`` reporting what was left out.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import StrEnum

import structlog

from toolgate.config.settings import DEFAULT_TODO_ITEM_LIMIT, DEFAULT_TODO_LIST_LIMIT
from toolgate.infra.errors import TodoError
from toolgate.tools.envelope import clamp_text

logger = structlog.get_logger()

DEFAULT_SESSION_KEY = "__default__"


class TodoStatus(StrEnum):
    todo = "todo"
    in_progress = "in_progress"
    done = "done"


STATUS_ALIASES: dict[str, TodoStatus] = {
    "todo": TodoStatus.todo,
    "to-do": TodoStatus.todo,
    "backlog": TodoStatus.todo,
    "pending": TodoStatus.todo,
    "open": TodoStatus.todo,
    "in_progress": TodoStatus.in_progress,
    "in progress": TodoStatus.in_progress,
    "progress": TodoStatus.in_progress,
    "doing": TodoStatus.in_progress,
    "working": TodoStatus.in_progress,
    "started": TodoStatus.in_progress,
    "wip": TodoStatus.in_progress,
    "active": TodoStatus.in_progress,
    "done": TodoStatus.done,
    "complete": TodoStatus.done,
    "completed": TodoStatus.done,
    "finished": TodoStatus.done,
    "shipped": TodoStatus.done,
    "resolved": TodoStatus.done,
}


@dataclass
class TodoItem:
    content: str
    status: TodoStatus = TodoStatus.todo

    def to_dict(self, limit: int = DEFAULT_TODO_ITEM_LIMIT) -> dict:
        clamp = clamp_text(self.content, limit)
        rendered = {"status": self.status.value, "content": clamp.text}
        if clamp.clamped:
            rendered["omitted_chars"] = clamp.omitted
        return rendered


@dataclass
class _SessionTodos:
    items: dict[int, TodoItem] = field(default_factory=dict)
    next_index: int = 1
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def normalize_session_key(session_id: str | None) -> str:
    key = session_id.strip() if isinstance(session_id, str) else ""
    return key or DEFAULT_SESSION_KEY


def normalize_status(value: object) -> TodoStatus | None:
    """Map a free-form status (case-insensitive, aliases allowed) onto TodoStatus."""
    return STATUS_ALIASES.get(str(value or "").strip().lower())


def _require_content(content: object) -> str:
    if not isinstance(content, str) or not content.strip():
        raise TodoError("content must be a non-empty string")
    return content.strip()


def _require_index(index: object) -> int:
    if isinstance(index, bool):
        raise TodoError("index must be a positive integer")
    if isinstance(index, float) and index.is_integer():
        index = int(index)
    if not isinstance(index, int) or index <= 0:
        raise TodoError("index must be a positive integer")
    return index


class TodoStore:
    """Per-session todo collections keyed by session id."""

    def __init__(
        self,
        max_sessions: int = 256,
        *,
        item_limit: int = DEFAULT_TODO_ITEM_LIMIT,
        list_limit: int = DEFAULT_TODO_LIST_LIMIT,
    ) -> None:
        self._max_sessions = max_sessions
        self._item_limit = item_limit
        self._list_limit = list_limit
        self._sessions: OrderedDict[str, _SessionTodos] = OrderedDict()

    def _session(self, session_id: str | None) -> _SessionTodos:
        key = normalize_session_key(session_id)
        state = self._sessions.get(key)
        if state is None:
            state = _SessionTodos()
            self._sessions[key] = state
            self._evict()
        else:
            self._sessions.move_to_end(key)
        return state

    def _evict(self) -> None:
        while len(self._sessions) > self._max_sessions:
            key, _ = self._sessions.popitem(last=False)
            logger.info("todo_session_evicted", session_key=key)

    def _snapshot(self, state: _SessionTodos) -> dict:
        indices = sorted(state.items)
        shown = indices[: self._list_limit]
        todos = {idx: state.items[idx].to_dict(self._item_limit) for idx in shown}
        omitted_chars = sum(item.get("omitted_chars", 0) for item in todos.values())
        omitted_items = len(indices) - len(shown)
        return {
            "count": len(indices),
            "todos": todos,
            "truncated": omitted_items > 0 or omitted_chars > 0,
            "omitted_items": omitted_items,
            "omitted_chars": omitted_chars,
        }

    def _reply(self, state: _SessionTodos, message: str, index: int | None = None) -> dict:
        result: dict = {"message": message, **self._snapshot(state)}
        if index is not None:
            result["item"] = {"index": index, **state.items[index].to_dict(self._item_limit)}
        return result

    async def add(self, session_id: str | None, content: object) -> dict:
        clean = _require_content(content)
        state = self._session(session_id)
        async with state.lock:
            index = state.next_index
            state.next_index += 1
            state.items[index] = TodoItem(content=clean)
            return self._reply(state, f"Added todo #{index}", index)

    async def update_content(self, session_id: str | None, index: object, content: object) -> dict:
        idx = _require_index(index)
        clean = _require_content(content)
        state = self._session(session_id)
        async with state.lock:
            item = state.items.get(idx)
            if item is None:
                raise TodoError(f"todo #{idx} does not exist")
            item.content = clean
            return self._reply(state, f"Updated todo #{idx} content", idx)

    async def update_status(self, session_id: str | None, index: object, status: object) -> dict:
        idx = _require_index(index)
        normalized = normalize_status(status)
        if normalized is None:
            raise TodoError("status must be one of: 'todo', 'in_progress', 'done'")
        state = self._session(session_id)
        async with state.lock:
            item = state.items.get(idx)
            if item is None:
                raise TodoError(f"todo #{idx} does not exist")
            item.status = normalized
            return self._reply(state, f"Updated todo #{idx} status to {normalized}", idx)

    async def clear(self, session_id: str | None) -> dict:
        state = self._session(session_id)
        async with state.lock:
            prior = len(state.items)
            state.items.clear()
            state.next_index = 1
            return self._reply(state, f"Cleared {prior} todo item(s)")

    async def list(self, session_id: str | None) -> dict:
        state = self._session(session_id)
        async with state.lock:
            return self._snapshot(state)

    def session_count(self) -> int:
        return len(self._sessions)

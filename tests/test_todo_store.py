from __future__ import annotations

import asyncio

import pytest

from toolgate.infra.errors import TodoError
from toolgate.todo.store import (
    DEFAULT_SESSION_KEY,
    TodoStatus,
    TodoStore,
    normalize_session_key,
    normalize_status,
)
from toolgate.tools.envelope import truncation_suffix


class TestStatusAliases:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("todo", TodoStatus.todo),
            ("Backlog", TodoStatus.todo),
            (" in progress ", TodoStatus.in_progress),
            ("WIP", TodoStatus.in_progress),
            ("shipped", TodoStatus.done),
            ("completed", TodoStatus.done),
        ],
    )
    def test_aliases(self, raw, expected) -> None:
        assert normalize_status(raw) is expected

    def test_unknown(self) -> None:
        assert normalize_status("blocked") is None
        assert normalize_status(None) is None

    def test_session_key(self) -> None:
        assert normalize_session_key(None) == DEFAULT_SESSION_KEY
        assert normalize_session_key("   ") == DEFAULT_SESSION_KEY
        assert normalize_session_key(" s1 ") == "s1"


class TestTodoStore:
    @pytest.mark.asyncio()
    async def test_add_and_list(self) -> None:
        store = TodoStore()
        first = await store.add("s", "  write tests ")
        assert first["message"] == "Added todo #1"
        assert first["item"] == {"index": 1, "status": "todo", "content": "write tests"}
        await store.add("s", "ship it")

        listed = await store.list("s")
        assert listed["count"] == 2
        assert listed["todos"][2] == {"status": "todo", "content": "ship it"}

    @pytest.mark.asyncio()
    async def test_indices_never_reused_until_clear(self) -> None:
        store = TodoStore()
        for text in ("a", "b", "c"):
            await store.add(None, text)
        cleared = await store.clear(None)
        assert cleared["message"] == "Cleared 3 todo item(s)"
        assert cleared["count"] == 0
        again = await store.add(None, "d")
        assert again["item"]["index"] == 1

    @pytest.mark.asyncio()
    async def test_update_content_and_status(self) -> None:
        store = TodoStore()
        await store.add("s", "draft")
        updated = await store.update_content("s", 1, "final")
        assert updated["item"]["content"] == "final"
        status = await store.update_status("s", 1, "Done")
        assert status["message"] == "Updated todo #1 status to done"
        assert status["item"]["status"] == "done"

    @pytest.mark.asyncio()
    async def test_sessions_are_isolated(self) -> None:
        store = TodoStore()
        await store.add("a", "one")
        assert (await store.list("b"))["count"] == 0
        assert (await store.list("a"))["count"] == 1

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ("op", "args", "message"),
        [
            ("add", ("",), "content must be a non-empty string"),
            ("add", (None,), "content must be a non-empty string"),
            ("update_content", (0, "x"), "index must be a positive integer"),
            ("update_content", (True, "x"), "index must be a positive integer"),
            ("update_content", (9, "x"), "todo #9 does not exist"),
            ("update_status", (1, "blocked"), "status must be one of"),
        ],
    )
    async def test_validation(self, op, args, message) -> None:
        store = TodoStore()
        if op != "add":
            await store.add("s", "seed")
        with pytest.raises(TodoError, match=message):
            await getattr(store, op)("s", *args)

    @pytest.mark.asyncio()
    async def test_float_index_accepted_when_integral(self) -> None:
        store = TodoStore()
        await store.add("s", "x")
        result = await store.update_status("s", 1.0, "wip")
        assert result["item"]["status"] == "in_progress"

    @pytest.mark.asyncio()
    async def test_concurrent_adds_get_unique_indices(self) -> None:
        store = TodoStore()
        results = await asyncio.gather(*(store.add("s", f"t{i}") for i in range(20)))
        indices = sorted(r["item"]["index"] for r in results)
        assert indices == list(range(1, 21))

    @pytest.mark.asyncio()
    async def test_lru_eviction(self) -> None:
        store = TodoStore(max_sessions=2)
        await store.add("a", "x")
        await store.add("b", "x")
        await store.list("a")
        await store.add("c", "x")

        assert store.session_count() == 2
        assert (await store.list("a"))["count"] == 1
        # "b" was least recently used and starts over empty
        assert (await store.list("b"))["count"] == 0


class TestBoundedReplies:
    @pytest.mark.asyncio()
    async def test_long_content_clamped_in_reply(self) -> None:
        store = TodoStore(item_limit=10)
        reply = await store.add("s", "x" * 25)

        assert reply["item"]["content"] == "x" * 10 + truncation_suffix(15)
        assert reply["item"]["omitted_chars"] == 15
        assert reply["todos"][1]["omitted_chars"] == 15
        assert reply["truncated"]
        assert reply["omitted_chars"] == 15
        assert reply["omitted_items"] == 0

    @pytest.mark.asyncio()
    async def test_full_content_kept_in_store(self) -> None:
        store = TodoStore(item_limit=10)
        await store.add("s", "y" * 25)
        reply = await store.update_status("s", 1, "done")
        assert reply["item"]["omitted_chars"] == 15
        assert reply["item"]["status"] == "done"

    @pytest.mark.asyncio()
    async def test_snapshot_capped_by_item_count(self) -> None:
        store = TodoStore(list_limit=3)
        for i in range(5):
            await store.add("s", f"task {i}")

        listed = await store.list("s")

        assert listed["count"] == 5
        assert sorted(listed["todos"]) == [1, 2, 3]
        assert listed["truncated"]
        assert listed["omitted_items"] == 2
        assert listed["omitted_chars"] == 0

    @pytest.mark.asyncio()
    async def test_small_list_not_truncated(self) -> None:
        store = TodoStore()
        await store.add("s", "short")
        listed = await store.list("s")
        assert listed == {
            "count": 1,
            "todos": {1: {"status": "todo", "content": "short"}},
            "truncated": False,
            "omitted_items": 0,
            "omitted_chars": 0,
        }

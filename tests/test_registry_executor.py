from __future__ import annotations

import json

import pytest

from toolgate.config.settings import Settings, ToolSettings
from toolgate.tools.base import BaseTool, RiskLevel, ToolGroup, ToolMode
from toolgate.tools.builtins import register_builtins
from toolgate.tools.executor import ToolExecutor
from toolgate.tools.registry import SchemaStyle, ToolRegistry


class _EchoTool(BaseTool):
    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo arguments back."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {"text": {"type": "string"}}}

    @property
    def allowed_modes(self) -> frozenset[ToolMode]:
        return frozenset({ToolMode.chat_safe, ToolMode.coding})

    async def execute(self, arguments: dict, context) -> dict:
        return {"ok": True, "echo": arguments}


class _CodingOnlyTool(_EchoTool):
    @property
    def name(self) -> str:
        return "coding_only"

    @property
    def allowed_modes(self) -> frozenset[ToolMode]:
        return frozenset({ToolMode.coding})


class _NoModesTool(_EchoTool):
    @property
    def name(self) -> str:
        return "hidden"

    @property
    def allowed_modes(self) -> frozenset[ToolMode]:
        return frozenset()


class _ExplodingTool(_EchoTool):
    @property
    def name(self) -> str:
        return "boom"

    @property
    def allowed_modes(self) -> frozenset[ToolMode]:
        return frozenset({ToolMode.coding})

    async def execute(self, arguments: dict, context) -> dict:
        raise RuntimeError("kaboom")


@pytest.fixture()
def registry() -> ToolRegistry:
    reg = ToolRegistry()
    for tool in (_EchoTool(), _CodingOnlyTool(), _NoModesTool(), _ExplodingTool()):
        reg.register(tool)
    return reg


class TestBaseToolDefaults:
    def test_fail_closed(self) -> None:
        tool = _NoModesTool()
        assert tool.group is ToolGroup.filesystem
        assert tool.risk_level is RiskLevel.high
        assert tool.allowed_modes == frozenset()


class TestToolRegistry:
    def test_duplicate_rejected(self, registry) -> None:
        with pytest.raises(ValueError, match="already registered"):
            registry.register(_EchoTool())

    def test_contains_and_len(self, registry) -> None:
        assert "echo" in registry
        assert "nope" not in registry
        assert len(registry) == 4

    def test_mode_filtering(self, registry) -> None:
        chat = [t.name for t in registry.list_tools(ToolMode.chat_safe)]
        coding = [t.name for t in registry.list_tools(ToolMode.coding)]
        assert chat == ["echo"]
        assert coding == ["echo", "coding_only", "boom"]

    def test_restrict_modes(self, registry) -> None:
        registry.restrict_modes("echo", frozenset({ToolMode.coding}))
        assert not registry.is_available("echo", ToolMode.chat_safe)
        assert registry.is_available("echo", ToolMode.coding)

    def test_restrict_cannot_expand(self, registry) -> None:
        with pytest.raises(ValueError, match="Cannot expand modes"):
            registry.restrict_modes("coding_only", frozenset({ToolMode.chat_safe}))
        with pytest.raises(KeyError):
            registry.restrict_modes("ghost", frozenset())

    def test_chat_schema(self, registry) -> None:
        schema = registry.get_tools_schema(ToolMode.chat_safe)
        assert schema == [
            {
                "type": "function",
                "function": {
                    "name": "echo",
                    "description": "Echo arguments back.",
                    "parameters": {"type": "object", "properties": {"text": {"type": "string"}}},
                },
            }
        ]

    def test_responses_schema(self, registry) -> None:
        schema = registry.get_tools_schema(ToolMode.chat_safe, style=SchemaStyle.responses)
        assert schema[0]["type"] == "function"
        assert schema[0]["name"] == "echo"
        assert "function" not in schema[0]


class TestToolExecutor:
    @pytest.mark.asyncio()
    async def test_json_string_arguments(self, registry, context) -> None:
        result = await ToolExecutor(registry).execute("echo", json.dumps({"text": "hi"}), context)
        assert result == {"ok": True, "echo": {"text": "hi"}}

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("arguments", [None, ""])
    async def test_empty_arguments(self, registry, context, arguments) -> None:
        result = await ToolExecutor(registry).execute("echo", arguments, context)
        assert result["echo"] == {}

    @pytest.mark.asyncio()
    async def test_invalid_json(self, registry, context) -> None:
        result = await ToolExecutor(registry).execute("echo", "{not json", context)
        assert result["error_code"] == "INVALID_ARGS"
        assert result["error"].startswith("Invalid JSON arguments")

    @pytest.mark.asyncio()
    async def test_non_object_arguments(self, registry, context) -> None:
        result = await ToolExecutor(registry).execute("echo", "[1, 2]", context)
        assert result["error"] == "Expected dict arguments, got list"

    @pytest.mark.asyncio()
    async def test_unknown_tool(self, registry, context) -> None:
        result = await ToolExecutor(registry).execute("ghost", {}, context)
        assert result == {"ok": False, "error": "Unknown tool: ghost", "error_code": "UNKNOWN_TOOL"}

    @pytest.mark.asyncio()
    async def test_mode_denied(self, registry, context) -> None:
        executor = ToolExecutor(registry, mode=ToolMode.chat_safe)
        result = await executor.execute("coding_only", {}, context)
        assert result["error_code"] == "MODE_DENIED"
        assert result["error"] == "Tool coding_only is not available in chat_safe mode."

    @pytest.mark.asyncio()
    async def test_exception_becomes_envelope(self, registry, context) -> None:
        result = await ToolExecutor(registry).execute("boom", {}, context)
        assert result == {"ok": False, "error": "Tool boom failed", "error_code": "EXECUTION_ERROR"}


class TestRegisterBuiltins:
    EXPECTED = {
        "create_file",
        "create_diff",
        "read_file",
        "get_file_size",
        "grep_search",
        "wait_tool",
        "add_todo_tool",
        "update_todo_item_tool",
        "update_todo_status_tool",
        "clear_todos_tool",
        "list_todos_tool",
        "generate_image_tool",
        "google_search",
    }

    @pytest.fixture()
    def builtins(self, tool_settings) -> ToolRegistry:
        registry = ToolRegistry()
        register_builtins(registry, settings=Settings(tools=tool_settings))
        return registry

    def test_all_registered(self, builtins) -> None:
        assert set(builtins.names()) == self.EXPECTED

    def test_chat_safe_excludes_writers(self, builtins) -> None:
        chat = {t.name for t in builtins.list_tools(ToolMode.chat_safe)}
        assert "create_file" not in chat
        assert "create_diff" not in chat
        assert "generate_image_tool" not in chat
        assert {"read_file", "grep_search", "google_search", "list_todos_tool"} <= chat

    def test_group_filter(self, builtins) -> None:
        planning = {t.name for t in builtins.list_tools(ToolMode.coding, group=ToolGroup.planning)}
        assert planning == {
            "wait_tool",
            "add_todo_tool",
            "update_todo_item_tool",
            "update_todo_status_tool",
            "clear_todos_tool",
            "list_todos_tool",
        }

    @pytest.mark.asyncio()
    async def test_todo_tools_share_store(self, builtins, context) -> None:
        executor = ToolExecutor(builtins)
        await executor.execute("add_todo_tool", {"content": "one"}, context)
        listed = await executor.execute("list_todos_tool", None, context)
        assert listed["count"] == 1

    @pytest.mark.asyncio()
    async def test_create_file_through_executor(self, builtins, context, workspace) -> None:
        executor = ToolExecutor(builtins)
        result = await executor.execute(
            "create_file", '{"file_path": "out.txt", "content": "hi"}', context
        )
        assert result["ok"]
        assert (workspace / "out.txt").read_text(encoding="utf-8") == "hi"

    def test_settings_limit_applies(self) -> None:
        registry = ToolRegistry()
        register_builtins(registry, settings=Settings(tools=ToolSettings(wait_tool_max_ms=1234)))
        description = registry.get("wait_tool").parameters["properties"]["duration_ms"]["description"]
        assert "1234" in description

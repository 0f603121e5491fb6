from __future__ import annotations

from toolgate.config.settings import Settings, get_settings
from toolgate.providers.image import ImageGenerator
from toolgate.providers.web_search import GoogleSearchClient
from toolgate.search.engine import SearchEngine
from toolgate.todo.store import TodoStore
from toolgate.tools.builtins.create_diff import CreateDiffTool
from toolgate.tools.builtins.create_file import CreateFileTool
from toolgate.tools.builtins.generate_image import GenerateImageTool
from toolgate.tools.builtins.get_file_size import GetFileSizeTool
from toolgate.tools.builtins.google_search import GoogleSearchTool
from toolgate.tools.builtins.grep_search import GrepSearchTool
from toolgate.tools.builtins.read_file import ReadFileTool
from toolgate.tools.builtins.todo import (
    AddTodoTool,
    ClearTodosTool,
    ListTodosTool,
    UpdateTodoItemTool,
    UpdateTodoStatusTool,
)
from toolgate.tools.builtins.wait_tool import WaitTool
from toolgate.tools.registry import ToolRegistry


def register_builtins(
    registry: ToolRegistry,
    *,
    settings: Settings | None = None,
    todo_store: TodoStore | None = None,
    search_engine: SearchEngine | None = None,
    image_generator: ImageGenerator | None = None,
    web_search: GoogleSearchClient | None = None,
) -> None:
    """Register all built-in tools with the registry.

    Collaborators default to instances built from ``settings``. Provider
    tools are always registered; without credentials they return a
    NOT_CONFIGURED envelope instead of disappearing from the schema.
    """
    settings = settings or get_settings()
    tools = settings.tools
    store = todo_store or TodoStore(
        max_sessions=tools.todo_max_sessions,
        item_limit=tools.todo_item_limit,
        list_limit=tools.todo_list_limit,
    )

    registry.register(CreateFileTool(tools))
    registry.register(CreateDiffTool(tools))
    registry.register(ReadFileTool(tools))
    registry.register(GetFileSizeTool())
    registry.register(GrepSearchTool(search_engine or SearchEngine(settings=tools), tools))
    registry.register(WaitTool(tools))

    registry.register(AddTodoTool(store))
    registry.register(UpdateTodoItemTool(store))
    registry.register(UpdateTodoStatusTool(store))
    registry.register(ClearTodosTool(store))
    registry.register(ListTodosTool(store))

    registry.register(GenerateImageTool(image_generator or ImageGenerator(settings.image)))
    registry.register(
        GoogleSearchTool(web_search or GoogleSearchClient(settings.google), tools)
    )

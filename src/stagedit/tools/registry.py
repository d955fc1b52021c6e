"""Tool registry and per-mode tool visibility."""

from typing import Iterable, Optional, TYPE_CHECKING

from stagedit.mode import Mode
from stagedit.tools.base import Tool
from stagedit.tools.edit import EditFileTool
from stagedit.tools.grep import GrepTool
from stagedit.tools.listing import ListDirectoryTool, ListFilesTool
from stagedit.tools.read import ReadFileTool
from stagedit.tools.search import CodebaseSearchTool, FileSearchTool
from stagedit.tools.web_search import WebSearchTool
from stagedit.tools.write import (
    CreateFileTool,
    CreateFolderTool,
    DeleteFileTool,
    UpdateFileTool,
)

if TYPE_CHECKING:
    import httpx
    from stagedit.cache import TTLCache


READ_ONLY_TOOLS = frozenset({
    "read_file",
    "list_files",
    "list_directory",
    "grep",
    "file_search",
    "codebase_search",
    "web_search",
})

MUTATING_TOOLS = frozenset({
    "create_file",
    "update_file",
    "delete_file",
    "edit_file",
    "create_folder",
})


def allowed_names(mode: Mode) -> frozenset[str]:
    """Tool names visible and executable in a mode."""
    if Mode.parse(mode).allows_mutation:
        return READ_ONLY_TOOLS | MUTATING_TOOLS
    return READ_ONLY_TOOLS


class ToolRegistry:
    """Registry of available tools, keyed by name."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> Tool:
        """Register a tool instance, replacing any tool with the same name."""
        self._tools[tool.name] = tool
        return tool

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            KeyError: If tool not found.
        """
        if name not in self._tools:
            raise KeyError(f"Unknown tool: {name}")
        return self._tools[name]

    def has(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def all_tools(self) -> list[Tool]:
        """Get all registered tools."""
        return list(self._tools.values())

    def tools_for_mode(self, mode: Mode) -> list[Tool]:
        """Registered tools a mode may see, in registration order."""
        names = allowed_names(mode)
        return [tool for tool in self._tools.values() if tool.name in names]

    def _select(self, names: Optional[Iterable[str]]) -> list[Tool]:
        if names is None:
            return self.all_tools()
        wanted = set(names)
        return [tool for tool in self._tools.values() if tool.name in wanted]

    def get_anthropic_tools(self, names: Optional[Iterable[str]] = None) -> list[dict]:
        """Tools in Anthropic format, the internal schema format."""
        return [tool.to_anthropic_tool() for tool in self._select(names)]

    def get_openai_tools(self, names: Optional[Iterable[str]] = None) -> list[dict]:
        """Tools in OpenAI format."""
        return [tool.to_openai_tool() for tool in self._select(names)]

    def get_tool_descriptions(self, mode: Mode = Mode.AGENT) -> str:
        """Formatted tool descriptions for the system prompt."""
        return "\n".join(
            f"- {tool.name}: {tool.description}" for tool in self.tools_for_mode(mode)
        )

    @classmethod
    def create_default(
        cls,
        cache: Optional["TTLCache"] = None,
        http_client: Optional["httpx.Client"] = None,
    ) -> "ToolRegistry":
        """Registry holding every built-in tool."""
        registry = cls()
        for tool in default_tools(cache=cache, http_client=http_client):
            registry.register(tool)
        return registry


def default_tools(
    cache: Optional["TTLCache"] = None,
    http_client: Optional["httpx.Client"] = None,
) -> list[Tool]:
    """Instantiate the built-in tools."""
    return [
        ReadFileTool(),
        ListFilesTool(),
        ListDirectoryTool(),
        GrepTool(),
        FileSearchTool(),
        CodebaseSearchTool(),
        WebSearchTool(cache=cache, http_client=http_client),
        CreateFileTool(),
        UpdateFileTool(),
        DeleteFileTool(),
        EditFileTool(),
        CreateFolderTool(),
    ]

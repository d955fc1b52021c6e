"""Tools the model can call, and the executor that runs them.

Adding a new tool:
1. Subclass Tool in a module of this package
2. Implement execute() and get_schema()
3. Add it to registry.default_tools() and to READ_ONLY_TOOLS or MUTATING_TOOLS
"""

from stagedit.tools.base import Tool, ToolContext, ToolResult
from stagedit.tools.executor import ToolExecutor
from stagedit.tools.registry import (
    MUTATING_TOOLS,
    READ_ONLY_TOOLS,
    ToolRegistry,
    allowed_names,
    default_tools,
)

__all__ = [
    "Tool",
    "ToolContext",
    "ToolResult",
    "ToolExecutor",
    "ToolRegistry",
    "READ_ONLY_TOOLS",
    "MUTATING_TOOLS",
    "allowed_names",
    "default_tools",
]

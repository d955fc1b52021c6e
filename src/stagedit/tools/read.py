"""Read file tool (overlay aware)."""

from stagedit.store import normalize_path
from stagedit.tools.base import Tool, ToolContext, ToolResult


class ReadFileTool(Tool):
    """Read the current content of a file."""

    name = "read_file"
    description = (
        "Read the contents of a file. In review mode this returns the staged "
        "content, including edits made earlier in this conversation."
    )
    category = "search"

    def execute(self, context: ToolContext, path: str) -> ToolResult:
        """Read a file.

        Args:
            context: Run context.
            path: Project-relative path of the file.

        Returns:
            ToolResult with {"path", "content"}.
        """
        path = normalize_path(path)
        content = self._read_text(context, path)
        return ToolResult.ok(path=path, content=content)

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path of the file to read (e.g. 'src/components/Button.tsx')"
                }
            },
            "required": ["path"]
        }

"""Edit file tool (search and replace)."""

from stagedit.overlay import SearchStringAbsentError
from stagedit.store import normalize_path
from stagedit.tools.base import Tool, ToolContext, ToolResult
from stagedit.tools.write import _existing_file


class EditFileTool(Tool):
    """Edit part of a file by replacing an exact string."""

    name = "edit_file"
    description = (
        "Edit part of a file. The search string must appear exactly in the "
        "file's current content; its first occurrence is replaced."
    )
    category = "edit"
    requires_agent_mode = True

    def execute(self, context: ToolContext, path: str, search: str, replace: str) -> ToolResult:
        """Replace the first occurrence of search with replace.

        Args:
            context: Run context.
            path: Path to the file.
            search: Exact text to find (not a regex).
            replace: Text to put in its place.

        Returns:
            ToolResult indicating success or failure.
        """
        self.check_mode(context)
        path = normalize_path(path)

        if context.review_mode:
            context.review_state.edit(path, search, replace)
        else:
            node = _existing_file(context, path)
            current = context.store.read_file(context.project_id, path) or ""
            if not search or search not in current:
                raise SearchStringAbsentError(
                    f"Search string not found in {path}. "
                    "Read the file and use an exact substring of its current content."
                )
            context.store.update_content(
                context.project_id, node.id, current.replace(search, replace or "", 1)
            )

        return ToolResult.ok(success=True, path=path, action="edited")

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path to the file to edit"
                },
                "search": {
                    "type": "string",
                    "description": "The exact text to find (before the change)"
                },
                "replace": {
                    "type": "string",
                    "description": "The text to replace it with"
                }
            },
            "required": ["path", "search", "replace"]
        }

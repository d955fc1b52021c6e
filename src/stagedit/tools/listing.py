"""Tools that list the project tree."""

import posixpath

from stagedit.store import FILE, FOLDER, normalize_dir
from stagedit.tools.base import Tool, ToolContext, ToolResult


class ListFilesTool(Tool):
    """List every file and folder in the project."""

    name = "list_files"
    description = "List all files and folders in the project."
    category = "search"

    def execute(self, context: ToolContext) -> ToolResult:
        files, folders = self._visible_tree(context)
        entries = [{"path": p, "type": FOLDER} for p in folders]
        entries += [{"path": p, "type": FILE} for p in files]
        entries.sort(key=lambda e: e["path"])
        return ToolResult.ok(files=entries)

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {"properties": {}, "required": []}


class ListDirectoryTool(Tool):
    """List the immediate children of one directory."""

    name = "list_directory"
    description = (
        "List the files and folders directly inside a directory. "
        "Does not read file contents."
    )
    category = "search"

    def execute(self, context: ToolContext, path: str = "") -> ToolResult:
        """List a directory.

        Args:
            context: Run context.
            path: Directory path; empty or "." for the project root.

        Returns:
            ToolResult with {"path", "entries": [{name, path, type}]}.
        """
        directory = normalize_dir(path)
        files, folders = self._visible_tree(context)

        if directory and directory not in folders:
            if directory in files:
                return ToolResult.fail(f"Not a directory: {directory}")
            return ToolResult.fail(f"Directory not found: {directory}")

        entries = []
        for kind, paths in ((FOLDER, folders), (FILE, files)):
            for p in paths:
                if posixpath.dirname(p) == directory:
                    entries.append({"name": posixpath.basename(p), "path": p, "type": kind})
        entries.sort(key=lambda e: e["path"])
        return ToolResult.ok(path=directory or ".", entries=entries)

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Directory to list (e.g. 'src/components'); use '.' for the root"
                }
            },
            "required": ["path"]
        }

"""Grep tool for searching file contents."""

import re

from stagedit.store import StoreError, StoreTransportError, normalize_dir
from stagedit.tools.base import Tool, ToolContext, ToolResult

MAX_RESULTS = 50

# Longest line echoed back per match
MAX_LINE_LENGTH = 300


class GrepTool(Tool):
    """Search for a regex pattern in file contents."""

    name = "grep"
    description = (
        "Search files for a keyword or regular expression. "
        "Returns matching lines with their file path and line number."
    )
    category = "search"

    def execute(
        self,
        context: ToolContext,
        pattern: str,
        path: str = None,
        caseSensitive: bool = False,
    ) -> ToolResult:
        """Search for a pattern in files.

        Args:
            context: Run context.
            pattern: Regex pattern to search for.
            path: Optional file or directory to restrict the search to.
            caseSensitive: Match case exactly (default: False).

        Returns:
            ToolResult with {"matches": [{path, line, text}], "truncated"}.
        """
        flags = 0 if caseSensitive else re.IGNORECASE
        try:
            regex = re.compile(pattern, flags)
        except re.error as e:
            return ToolResult.fail(f"Invalid regex pattern: {e}")

        scope = normalize_dir(path)
        files, _ = self._visible_tree(context)
        if scope:
            files = [f for f in files if f == scope or f.startswith(scope + "/")]

        matches = []
        truncated = False
        for file_path in files:
            try:
                text = self._read_text(context, file_path)
            except StoreTransportError:
                raise
            except StoreError:
                # Binary or unreadable files are not searchable
                continue

            for line_no, line in enumerate(text.splitlines(), start=1):
                if regex.search(line):
                    if len(matches) >= MAX_RESULTS:
                        truncated = True
                        break
                    matches.append({
                        "path": file_path,
                        "line": line_no,
                        "text": line[:MAX_LINE_LENGTH],
                    })
            if truncated:
                break

        return ToolResult.ok(matches=matches, truncated=truncated)

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "pattern": {
                    "type": "string",
                    "description": "Pattern to search for (regular expressions allowed)"
                },
                "path": {
                    "type": "string",
                    "description": "Directory or file to search in (defaults to the whole project)"
                },
                "caseSensitive": {
                    "type": "boolean",
                    "description": "Match case exactly (default: false)"
                }
            },
            "required": ["pattern"]
        }

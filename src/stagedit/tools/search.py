"""Fuzzy file-name search and keyword codebase search."""

import fnmatch
import posixpath
import re
from typing import Optional

from stagedit.store import StoreError, StoreTransportError
from stagedit.tools.base import Tool, ToolContext, ToolResult

MAX_FILE_RESULTS = 20
MAX_CODEBASE_RESULTS = 10
MAX_SNIPPETS = 3

_WORD_RE = re.compile(r"[A-Za-z0-9_]+")


def fuzzy_score(query: str, path: str) -> Optional[float]:
    """Score how well query matches path, or None if it does not match.

    Characters of the query must appear in order in the path. Matches in
    the file name, contiguous runs and an exact substring all score higher.
    """
    q = query.lower().strip()
    if not q:
        return None
    target = path.lower()
    name = posixpath.basename(target)

    if q in name:
        return 100.0 + len(q) / max(len(name), 1)
    if q in target:
        return 50.0 + len(q) / max(len(target), 1)

    score = 0.0
    pos = 0
    previous = -2
    for ch in q:
        found = target.find(ch, pos)
        if found < 0:
            return None
        score += 2.0 if found == previous + 1 else 1.0
        previous = found
        pos = found + 1
    return score / max(len(target), 1) * 10


class FileSearchTool(Tool):
    """Fuzzy search over file paths."""

    name = "file_search"
    description = "Fuzzy search for files by name."
    category = "search"

    def execute(self, context: ToolContext, query: str) -> ToolResult:
        files, _ = self._visible_tree(context)
        scored = []
        for path in files:
            score = fuzzy_score(query, path)
            if score is not None:
                scored.append((score, path))
        scored.sort(key=lambda item: (-item[0], item[1]))
        return ToolResult.ok(files=[path for _, path in scored[:MAX_FILE_RESULTS]])

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Part of a file name to look for (e.g. 'Button')"
                }
            },
            "required": ["query"]
        }


class CodebaseSearchTool(Tool):
    """Rank files by how often they mention the query's terms."""

    name = "codebase_search"
    description = (
        "Search the codebase for code related to a natural-language query "
        "(function names, concepts, patterns). Returns the best matching files "
        "with short snippets."
    )
    category = "search"

    def execute(
        self,
        context: ToolContext,
        query: str,
        filePattern: str = None,
    ) -> ToolResult:
        """Search the codebase.

        Args:
            context: Run context.
            query: Free-text query.
            filePattern: Optional glob on the file name or path (e.g. '*.tsx').

        Returns:
            ToolResult with {"results": [{path, score, snippets}]}.
        """
        terms = {t.lower() for t in _WORD_RE.findall(query or "") if len(t) > 1}
        if not terms:
            return ToolResult.fail("Query must contain at least one word")

        files, _ = self._visible_tree(context)
        if filePattern:
            files = [
                f for f in files
                if fnmatch.fnmatch(f, filePattern) or fnmatch.fnmatch(posixpath.basename(f), filePattern)
            ]

        results = []
        for path in files:
            try:
                text = self._read_text(context, path)
            except StoreTransportError:
                raise
            except StoreError:
                continue

            score = 0
            snippets = []
            for line_no, line in enumerate(text.splitlines(), start=1):
                words = {w.lower() for w in _WORD_RE.findall(line)}
                hits = len(terms & words)
                if hits:
                    score += hits
                    if len(snippets) < MAX_SNIPPETS:
                        snippets.append({"line": line_no, "text": line.strip()[:200]})

            path_words = {w.lower() for w in _WORD_RE.findall(path)}
            score += 2 * len(terms & path_words)

            if score:
                results.append({"path": path, "score": score, "snippets": snippets})

        results.sort(key=lambda r: (-r["score"], r["path"]))
        return ToolResult.ok(results=results[:MAX_CODEBASE_RESULTS])

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "query": {
                    "type": "string",
                    "description": "What to look for (e.g. 'user authentication handling')"
                },
                "filePattern": {
                    "type": "string",
                    "description": "Optional file pattern to restrict the search (e.g. '*.tsx')"
                }
            },
            "required": ["query"]
        }

"""Tests for the tool executor boundary."""

import pytest

from stagedit.store import StoreTransportError
from stagedit.tools.base import ToolContext


class TestExecutorErrors:
    """Expected failures come back as {"error": ...}."""

    def test_unknown_tool(self, executor, review_context):
        assert executor.execute("format_disk", {}, review_context) == {"error": "Unknown tool: format_disk"}

    def test_mode_gate(self, executor, ask_context):
        """Mutating tools are refused outside AGENT mode and nothing is staged."""
        payload = executor.execute("create_file", {"path": "a.md", "content": "x"}, ask_context)

        assert payload == {
            "error": "Tool 'create_file' is not allowed in current mode (ASK). It requires AGENT mode."
        }
        assert ask_context.review_state.files_by_path == {}

    def test_missing_argument(self, executor, review_context):
        payload = executor.execute("read_file", {}, review_context)
        assert payload["error"].startswith("Missing required argument(s) for read_file")

    def test_overlay_error(self, executor, review_context):
        payload = executor.execute("read_file", {"path": "missing.md"}, review_context)
        assert payload == {"error": "File not found: missing.md"}

    def test_search_absent(self, executor, review_context):
        payload = executor.execute(
            "edit_file", {"path": "README.md", "search": "zzz", "replace": "y"}, review_context
        )
        assert payload["error"].startswith("Search string not found in README.md")

    def test_invalid_path(self, executor, review_context):
        payload = executor.execute("read_file", {"path": "../secret"}, review_context)
        assert "escapes the project root" in payload["error"]

    @pytest.mark.parametrize("name,args,message", [
        ("read_file", {"path": 123}, "Argument 'path' must be a string"),
        ("edit_file", {"path": "README.md", "search": 5, "replace": "y"}, "Argument 'search' must be a string"),
        ("grep", {"pattern": "demo", "caseSensitive": "yes"}, "Argument 'caseSensitive' must be a boolean"),
        ("create_file", {"path": ["a.md"], "content": "x"}, "Argument 'path' must be a string"),
    ])
    def test_wrong_argument_type(self, executor, review_context, name, args, message):
        """A badly typed argument is reported instead of crashing the run."""
        assert executor.execute(name, args, review_context) == {"error": message}
        assert review_context.review_state.files_by_path.get("a.md") is None

    def test_store_error_direct(self, executor, direct_context, memory_store):
        """Store failures in direct mode are reported, not raised."""
        payload = executor.execute(
            "create_file", {"path": "README.md/x.md", "content": "x"}, direct_context
        )
        assert "error" in payload


class TestExecutorSuccess:
    """Successful calls return the tool's payload."""

    def test_staged_sequence(self, executor, review_context):
        """Later calls see the effects of earlier ones."""
        executor.execute("create_file", {"path": "a.md", "content": "one"}, review_context)
        executor.execute("edit_file", {"path": "a.md", "search": "one", "replace": "two"}, review_context)
        payload = executor.execute("read_file", {"path": "a.md"}, review_context)

        assert payload == {"path": "a.md", "content": "two"}

    def test_extra_arguments_ignored(self, executor, review_context):
        payload = executor.execute("read_file", {"path": "README.md", "lines": 5}, review_context)
        assert "content" in payload


class TestTransportFailure:
    """Store transport failures abort instead of being reported."""

    def test_transport_error_propagates(self, executor, memory_store):
        class FlakyStore(type(memory_store)):
            def read_file(self, project_id, path):
                raise StoreTransportError("store offline")

        store = FlakyStore.from_files({"a.md": "a"}, "p1")
        context = ToolContext(project_id="p1", store=store)

        with pytest.raises(StoreTransportError):
            executor.execute("read_file", {"path": "a.md"}, context)

"""Tests for changeset building, diff rendering and applying."""

import pytest

from stagedit.changeset import (
    CREATE,
    DELETE,
    UPDATE,
    PendingChange,
    apply_change,
    build_changeset,
    render_diff,
)
from stagedit.overlay import FileStatus, ReviewState, StagedFile
from stagedit.store import MemoryProjectStore, StoreError


@pytest.fixture
def state(memory_store):
    return ReviewState.from_store(memory_store, "p1")


class TestBuildChangeset:
    """Tests for reducing a ReviewState into PendingChanges."""

    def test_empty(self, state):
        """No staged entries means no changes."""
        assert build_changeset(state) == []

    def test_reads_are_not_changes(self, state):
        """Unchanged entries are skipped."""
        state.read("README.md")
        assert build_changeset(state) == []

    def test_create(self, state):
        """A created file becomes a create with empty old content."""
        state.create("docs/a.md", "hello")
        (change,) = build_changeset(state)

        assert change.action == CREATE
        assert change.id == "create:docs/a.md"
        assert change.file_name == "a.md"
        assert change.old_content == ""
        assert change.new_content == "hello"
        assert change.status == "pending"
        assert change.line_statuses is None

    def test_update_uses_node_id(self, state, memory_store):
        """Updates carry the persisted node id and original content."""
        node_id = memory_store.file_ids_by_path("p1")["README.md"]
        state.update("README.md", "# New\n")
        (change,) = build_changeset(state)

        assert change.action == UPDATE
        assert change.id == node_id
        assert change.old_content == "# Demo\n\nA small demo project.\n"
        assert change.new_content == "# New\n"

    def test_delete(self, state):
        """Deletes carry the original content and empty new content."""
        state.delete("src/util.py")
        (change,) = build_changeset(state)

        assert change.action == DELETE
        assert change.old_content.startswith("def greet")
        assert change.new_content == ""

    def test_deleted_then_recreated_is_one_update(self, state, memory_store):
        """Delete then create of a persisted file collapses into an update."""
        node_id = memory_store.file_ids_by_path("p1")["src/util.py"]
        original = memory_store.read_file("p1", "src/util.py")
        state.delete("src/util.py")
        state.create("src/util.py", "print('again')\n")

        (change,) = build_changeset(state)
        assert change.action == UPDATE
        assert change.id == node_id
        assert change.old_content == original
        assert change.new_content == "print('again')\n"

    def test_created_then_deleted_leaves_nothing(self, state):
        """Create followed by delete in one run produces no change."""
        state.create("tmp.md", "x")
        state.delete("tmp.md")
        assert build_changeset(state) == []

    def test_phantom_delete_is_dropped(self, state):
        """A delete with no node id and no original content is elided."""
        state.files_by_path["ghost.md"] = StagedFile(
            path="ghost.md", original_content="", content="", status=FileStatus.DELETED
        )
        assert build_changeset(state) == []

    def test_sorted_by_path(self, state):
        """Changes come out in path order."""
        state.create("z.md", "z")
        state.update("src/app.py", "pass\n")
        state.create("a.md", "a")

        assert [c.file_path for c in build_changeset(state)] == ["a.md", "src/app.py", "z.md"]

    def test_builder_does_not_write(self, state, memory_store):
        """Building a changeset never touches the store."""
        state.create("new.md", "x")
        state.delete("README.md")
        build_changeset(state)

        assert memory_store.read_file("p1", "new.md") is None
        assert memory_store.read_file("p1", "README.md") is not None

    def test_to_dict(self, state):
        """The wire shape uses camelCase keys."""
        state.create("a.md", "hi")
        data = build_changeset(state)[0].to_dict()

        assert data == {
            "id": "create:a.md",
            "filePath": "a.md",
            "fileName": "a.md",
            "oldContent": "",
            "newContent": "hi",
            "action": "create",
            "status": "pending",
        }


class TestRenderDiff:
    """Tests for unified diff rendering."""

    def test_update_diff(self):
        change = PendingChange("1", "a.md", "a.md", "one\ntwo\n", "one\nthree\n", UPDATE)
        diff = render_diff(change)

        assert "--- a/a.md" in diff
        assert "+++ b/a.md" in diff
        assert "-two" in diff
        assert "+three" in diff

    def test_create_diff(self):
        """Creates diff against /dev/null."""
        change = PendingChange("c", "a.md", "a.md", "", "new", CREATE)
        diff = render_diff(change)

        assert "--- /dev/null" in diff
        assert "+new" in diff

    def test_no_change(self):
        change = PendingChange("1", "a.md", "a.md", "same\n", "same\n", UPDATE)
        assert render_diff(change) == ""


class TestApplyChange:
    """Tests for writing accepted changes to the store."""

    def test_apply_create_update_delete(self):
        store = MemoryProjectStore.from_files({"a.md": "a", "b.md": "b"}, "p")
        apply_change(store, "p", PendingChange("c", "c/new.md", "new.md", "", "n", CREATE))
        apply_change(store, "p", PendingChange("1", "a.md", "a.md", "a", "A", UPDATE))
        apply_change(store, "p", PendingChange("2", "b.md", "b.md", "b", "", DELETE))

        assert store.read_file("p", "c/new.md") == "n"
        assert store.read_file("p", "a.md") == "A"
        assert store.read_file("p", "b.md") is None

    def test_apply_create_clash(self):
        store = MemoryProjectStore.from_files({"a.md": "a"}, "p")
        with pytest.raises(StoreError):
            apply_change(store, "p", PendingChange("c", "a.md", "a.md", "", "x", CREATE))

    def test_apply_delete_missing(self):
        store = MemoryProjectStore.from_files({}, "p")
        with pytest.raises(StoreError):
            apply_change(store, "p", PendingChange("d", "a.md", "a.md", "a", "", DELETE))

"""Reduce a ReviewState into an ordered, reviewable changeset."""

import difflib
import posixpath
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from stagedit.overlay import FileStatus, ReviewState
from stagedit.store import FILE, StoreError

if TYPE_CHECKING:
    from stagedit.store import ProjectStore


CREATE = "create"
UPDATE = "update"
DELETE = "delete"

_ACTIONS = {
    FileStatus.CREATED: CREATE,
    FileStatus.UPDATED: UPDATE,
    FileStatus.DELETED: DELETE,
}


@dataclass
class PendingChange:
    """One proposed file change awaiting review.

    ``status`` and ``line_statuses`` belong to the review UI; the builder
    always emits ``pending`` with no line statuses.
    """
    id: str
    file_path: str
    file_name: str
    old_content: str
    new_content: str
    action: str  # "create", "update" or "delete"
    status: str = "pending"
    line_statuses: Optional[dict[int, str]] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "filePath": self.file_path,
            "fileName": self.file_name,
            "oldContent": self.old_content,
            "newContent": self.new_content,
            "action": self.action,
            "status": self.status,
        }
        if self.line_statuses is not None:
            data["lineStatuses"] = {str(k): v for k, v in self.line_statuses.items()}
        return data


def build_changeset(state: ReviewState) -> list[PendingChange]:
    """Turn staged files into PendingChanges sorted by path.

    Unchanged entries are skipped, as are deletions of files that never
    existed outside this run.
    """
    changes = []
    for path, staged in state.files_by_path.items():
        action = _ACTIONS.get(staged.status)
        if action is None:
            continue

        old_content = staged.original_content or ""
        if action == DELETE and staged.node_id is None and old_content == "":
            continue

        changes.append(PendingChange(
            id=staged.node_id if staged.node_id is not None else f"create:{path}",
            file_path=path,
            file_name=posixpath.basename(path),
            old_content=old_content,
            new_content=staged.content or "",
            action=action,
        ))

    changes.sort(key=lambda c: c.file_path)
    return changes


def render_diff(change: PendingChange, context: int = 3) -> str:
    """Unified diff for one change (plain text, no colors)."""
    old_lines = change.old_content.splitlines(keepends=True)
    new_lines = change.new_content.splitlines(keepends=True)

    # Ensure lines end with newline for proper diff formatting
    if old_lines and not old_lines[-1].endswith("\n"):
        old_lines[-1] += "\n"
    if new_lines and not new_lines[-1].endswith("\n"):
        new_lines[-1] += "\n"

    fromfile = "/dev/null" if change.action == CREATE else f"a/{change.file_path}"
    tofile = "/dev/null" if change.action == DELETE else f"b/{change.file_path}"
    diff = difflib.unified_diff(
        old_lines, new_lines, fromfile=fromfile, tofile=tofile, n=context
    )
    return "".join(diff)


def apply_change(store: "ProjectStore", project_id: str, change: PendingChange) -> None:
    """Write one accepted change through to the store.

    This is the reviewer's accept step; the orchestrator never calls it.

    Raises:
        StoreError: If the target node is missing or clashes.
    """
    node = store.find_node(project_id, change.file_path)

    if change.action == CREATE:
        if node is not None:
            raise StoreError(f"A node already exists at: {change.file_path}")
        store.create_node(project_id, change.file_path, FILE, change.new_content)
    elif change.action == UPDATE:
        if node is None:
            # Re-created after a delete that was already accepted
            store.create_node(project_id, change.file_path, FILE, change.new_content)
        else:
            store.update_content(project_id, node.id, change.new_content)
    elif change.action == DELETE:
        if node is None:
            raise StoreError(f"File not found: {change.file_path}")
        store.delete_node(project_id, node.id)
    else:
        raise ValueError(f"Unknown action: {change.action}")

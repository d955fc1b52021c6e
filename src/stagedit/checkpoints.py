"""Checkpoint persistence - undoable history of applied changesets.

Each session keeps one JSON envelope under
``<project>/.stagedit/checkpoints/<session>.json``. The envelope is pruned
on every load and save: checkpoints older than the age ceiling go first,
then the oldest ones beyond the count ceiling.
"""

import json
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from stagedit.changeset import CREATE, DELETE, UPDATE, PendingChange, render_diff

STATE_VERSION = 1
MAX_CHECKPOINTS_PER_SESSION = 20
MAX_CHECKPOINT_AGE = timedelta(days=2)

_SAFE_SESSION = re.compile(r"[^A-Za-z0-9_.-]")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class CheckpointOp:
    """One file change inside a checkpoint."""
    path: str
    kind: str  # "create", "update" or "delete"
    before_text: str
    after_text: str
    patch: str = ""

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "kind": self.kind,
            "beforeText": self.before_text,
            "afterText": self.after_text,
            "patch": self.patch,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CheckpointOp":
        return cls(
            path=data["path"],
            kind=data["kind"],
            before_text=data.get("beforeText", ""),
            after_text=data.get("afterText", ""),
            patch=data.get("patch", ""),
        )


@dataclass
class AgentCheckpoint:
    """A changeset that was applied, kept so it can be undone."""
    id: str
    created_at: str
    anchor_message_id: str
    description: str = ""
    ops: list[CheckpointOp] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "anchorMessageId": self.anchor_message_id,
            "description": self.description,
            "ops": [op.to_dict() for op in self.ops],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentCheckpoint":
        return cls(
            id=data["id"],
            created_at=data.get("createdAt", ""),
            anchor_message_id=data.get("anchorMessageId", ""),
            description=data.get("description", ""),
            ops=[CheckpointOp.from_dict(op) for op in data.get("ops", [])],
        )


@dataclass
class StoredCheckpointState:
    """Versioned per-session envelope."""
    project_id: str
    session_id: str
    checkpoints: list[AgentCheckpoint] = field(default_factory=list)
    head_checkpoint_id: Optional[str] = None
    head_message_id: Optional[str] = None
    updated_at: str = ""
    v: int = STATE_VERSION

    @classmethod
    def empty(cls, project_id: str, session_id: str) -> "StoredCheckpointState":
        return cls(project_id=project_id, session_id=session_id, updated_at=_timestamp(_now()))

    def index_of(self, checkpoint_id: Optional[str]) -> int:
        """Position of a checkpoint, or -1."""
        for i, checkpoint in enumerate(self.checkpoints):
            if checkpoint.id == checkpoint_id:
                return i
        return -1

    @property
    def head(self) -> Optional[AgentCheckpoint]:
        index = self.index_of(self.head_checkpoint_id)
        return self.checkpoints[index] if index >= 0 else None

    def to_dict(self) -> dict:
        return {
            "v": self.v,
            "projectId": self.project_id,
            "sessionId": self.session_id,
            "checkpoints": [cp.to_dict() for cp in self.checkpoints],
            "headCheckpointId": self.head_checkpoint_id,
            "headMessageId": self.head_message_id,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoredCheckpointState":
        return cls(
            v=data.get("v"),
            project_id=data.get("projectId", ""),
            session_id=data.get("sessionId", ""),
            checkpoints=[AgentCheckpoint.from_dict(cp) for cp in data.get("checkpoints") or []],
            head_checkpoint_id=data.get("headCheckpointId"),
            head_message_id=data.get("headMessageId"),
            updated_at=data.get("updatedAt", ""),
        )


def prune_state(
    state: StoredCheckpointState,
    now: Optional[datetime] = None,
    max_count: int = MAX_CHECKPOINTS_PER_SESSION,
    max_age: timedelta = MAX_CHECKPOINT_AGE,
) -> StoredCheckpointState:
    """Drop expired checkpoints, then keep only the newest max_count.

    If the head was dropped it moves to the newest survivor (or None).
    """
    now = now or _now()
    valid = []
    for checkpoint in state.checkpoints:
        created = parse_timestamp(checkpoint.created_at)
        if created is None or now - created > max_age:
            continue
        valid.append(checkpoint)

    trimmed = valid[-max_count:] if max_count > 0 else []

    head_id = state.head_checkpoint_id
    if head_id is not None and head_id not in {cp.id for cp in trimmed}:
        head_id = trimmed[-1].id if trimmed else None

    return StoredCheckpointState(
        project_id=state.project_id,
        session_id=state.session_id,
        checkpoints=trimmed,
        head_checkpoint_id=head_id,
        head_message_id=state.head_message_id,
        updated_at=_timestamp(now),
        v=state.v,
    )


def forward_changes(checkpoint: AgentCheckpoint) -> list[PendingChange]:
    """Changes that re-apply a checkpoint."""
    return [
        PendingChange(
            id=f"checkpoint:{checkpoint.id}:{op.path}",
            file_path=op.path,
            file_name=op.path.rsplit("/", 1)[-1],
            old_content=op.before_text,
            new_content=op.after_text,
            action=op.kind,
        )
        for op in checkpoint.ops
    ]


_INVERSE = {CREATE: DELETE, DELETE: CREATE, UPDATE: UPDATE}


def inverse_changes(checkpoint: AgentCheckpoint) -> list[PendingChange]:
    """Changes that revert a checkpoint, last op first."""
    return [
        PendingChange(
            id=f"checkpoint:{checkpoint.id}:{op.path}",
            file_path=op.path,
            file_name=op.path.rsplit("/", 1)[-1],
            old_content=op.after_text,
            new_content=op.before_text,
            action=_INVERSE[op.kind],
        )
        for op in reversed(checkpoint.ops)
    ]


def reverse_changes(changes: list[PendingChange]) -> list[PendingChange]:
    """Changes that revert already applied changes, last first."""
    return [
        PendingChange(
            id=change.id,
            file_path=change.file_path,
            file_name=change.file_name,
            old_content=change.new_content,
            new_content=change.old_content,
            action=_INVERSE[change.action],
        )
        for change in reversed(changes)
    ]


class CheckpointStore:
    """Load, save and edit checkpoint envelopes for one project."""

    def __init__(
        self,
        project_root: Path,
        project_id: str = "default",
        max_count: int = MAX_CHECKPOINTS_PER_SESSION,
        max_age: timedelta = MAX_CHECKPOINT_AGE,
        clock: Callable[[], datetime] = _now,
    ):
        """Initialize the store.

        Args:
            project_root: Project directory. Files live in .stagedit/checkpoints/.
            project_id: Id written into new envelopes.
            max_count: Checkpoints kept per session.
            max_age: Checkpoints older than this are dropped.
            clock: Returns the current UTC time.
        """
        self.project_root = Path(project_root)
        self.checkpoints_dir = self.project_root / ".stagedit" / "checkpoints"
        self.project_id = project_id
        self.max_count = max_count
        self.max_age = max_age
        self.clock = clock

    def path_for(self, session_id: str) -> Path:
        return self.checkpoints_dir / f"{_SAFE_SESSION.sub('_', session_id)}.json"

    def prune(self, state: StoredCheckpointState) -> StoredCheckpointState:
        return prune_state(state, self.clock(), self.max_count, self.max_age)

    def load(self, session_id: str) -> Optional[StoredCheckpointState]:
        """Load a session's envelope.

        Returns:
            The pruned state, or None if the file is missing, unreadable,
            of another version or for another session.
        """
        path = self.path_for(session_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict) or data.get("v") != STATE_VERSION:
                return None
            if data.get("sessionId") != session_id:
                return None
            state = StoredCheckpointState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError):
            return None
        return self.prune(state)

    def load_or_create(self, session_id: str) -> StoredCheckpointState:
        return self.load(session_id) or StoredCheckpointState.empty(self.project_id, session_id)

    def save(self, state: StoredCheckpointState) -> StoredCheckpointState:
        """Prune and write a state. Returns what was written."""
        pruned = self.prune(state)
        self.checkpoints_dir.mkdir(parents=True, exist_ok=True)
        self.path_for(state.session_id).write_text(
            json.dumps(pruned.to_dict(), indent=2), encoding="utf-8"
        )
        return pruned

    def record(
        self,
        state: StoredCheckpointState,
        anchor_message_id: str,
        changes: list[PendingChange],
        description: str = "",
    ) -> AgentCheckpoint:
        """Append a checkpoint for applied changes and move the head to it.

        Checkpoints after the current head (the redo branch) are discarded.
        """
        checkpoint = AgentCheckpoint(
            id=uuid.uuid4().hex[:12],
            created_at=_timestamp(self.clock()),
            anchor_message_id=anchor_message_id,
            description=description,
            ops=[
                CheckpointOp(
                    path=change.file_path,
                    kind=change.action,
                    before_text=change.old_content,
                    after_text=change.new_content,
                    patch=render_diff(change),
                )
                for change in changes
            ],
        )
        head_index = state.index_of(state.head_checkpoint_id)
        state.checkpoints = state.checkpoints[:head_index + 1] + [checkpoint]
        state.head_checkpoint_id = checkpoint.id
        state.head_message_id = anchor_message_id
        state.updated_at = checkpoint.created_at
        return checkpoint

    def undo(self, state: StoredCheckpointState) -> Optional[AgentCheckpoint]:
        """Return the head checkpoint to revert and move the head back one."""
        index = state.index_of(state.head_checkpoint_id)
        if index < 0:
            return None
        checkpoint = state.checkpoints[index]
        previous = state.checkpoints[index - 1] if index > 0 else None
        state.head_checkpoint_id = previous.id if previous else None
        state.head_message_id = previous.anchor_message_id if previous else None
        return checkpoint

    def redo(self, state: StoredCheckpointState) -> Optional[AgentCheckpoint]:
        """Return the checkpoint after the head and advance the head to it."""
        index = state.index_of(state.head_checkpoint_id)
        if index + 1 >= len(state.checkpoints):
            return None
        checkpoint = state.checkpoints[index + 1]
        state.head_checkpoint_id = checkpoint.id
        state.head_message_id = checkpoint.anchor_message_id
        return checkpoint

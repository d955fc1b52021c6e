"""Tests for checkpoint persistence, pruning and undo/redo."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from stagedit.changeset import CREATE, DELETE, UPDATE, PendingChange, apply_change
from stagedit.checkpoints import (
    STATE_VERSION,
    AgentCheckpoint,
    CheckpointStore,
    StoredCheckpointState,
    forward_changes,
    inverse_changes,
    parse_timestamp,
    prune_state,
)
from stagedit.store import MemoryProjectStore


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def stamp(moment):
    return moment.isoformat().replace("+00:00", "Z")


def checkpoint(cid, age=timedelta(minutes=1)):
    return AgentCheckpoint(id=cid, created_at=stamp(NOW - age), anchor_message_id=f"msg-{cid}")


def state_with(*checkpoints, head=None):
    return StoredCheckpointState(
        project_id="p1",
        session_id="s1",
        checkpoints=list(checkpoints),
        head_checkpoint_id=head,
    )


@pytest.fixture
def checkpoint_store(temp_dir):
    return CheckpointStore(temp_dir, project_id="p1", clock=lambda: NOW)


def change(path, action, old="", new=""):
    return PendingChange(id=path, file_path=path, file_name=path, old_content=old, new_content=new, action=action)


class TestParseTimestamp:
    """Tests for timestamp parsing."""

    def test_zulu(self):
        assert parse_timestamp("2026-03-01T12:00:00Z") == NOW

    def test_naive_is_utc(self):
        assert parse_timestamp("2026-03-01T12:00:00") == NOW

    @pytest.mark.parametrize("value", ["", "yesterday", None, 42])
    def test_invalid(self, value):
        assert parse_timestamp(value) is None


class TestPrune:
    """Tests for age and count pruning."""

    def test_drops_expired_and_unparsable(self):
        state = state_with(
            checkpoint("old", age=timedelta(days=3)),
            AgentCheckpoint(id="bad", created_at="not a date", anchor_message_id="m"),
            checkpoint("fresh"),
            head="fresh",
        )
        pruned = prune_state(state, NOW)

        assert [cp.id for cp in pruned.checkpoints] == ["fresh"]
        assert pruned.head_checkpoint_id == "fresh"

    def test_keeps_newest(self):
        state = state_with(*[checkpoint(str(i)) for i in range(25)], head="24")
        pruned = prune_state(state, NOW)

        assert len(pruned.checkpoints) == 20
        assert pruned.checkpoints[0].id == "5"

    def test_head_moves_to_newest_survivor(self):
        state = state_with(checkpoint("a", age=timedelta(days=5)), checkpoint("b"), head="a")
        assert prune_state(state, NOW).head_checkpoint_id == "b"

    def test_head_cleared_when_nothing_survives(self):
        state = state_with(checkpoint("a", age=timedelta(days=5)), head="a")
        pruned = prune_state(state, NOW)

        assert pruned.checkpoints == []
        assert pruned.head_checkpoint_id is None

    def test_does_not_mutate_input(self):
        state = state_with(checkpoint("a", age=timedelta(days=5)), head="a")
        prune_state(state, NOW)
        assert state.head_checkpoint_id == "a"


class TestRecordUndoRedo:
    """Tests for moving the head through history."""

    def test_record(self, checkpoint_store):
        state = StoredCheckpointState.empty("p1", "s1")
        cp = checkpoint_store.record(state, "msg-1", [change("a.md", UPDATE, "one\n", "two\n")], "edit a")

        assert state.head_checkpoint_id == cp.id
        assert state.head_message_id == "msg-1"
        assert cp.created_at == "2026-03-01T12:00:00Z"
        assert cp.ops[0].kind == UPDATE
        assert "+two" in cp.ops[0].patch

    def test_undo_redo(self, checkpoint_store):
        state = StoredCheckpointState.empty("p1", "s1")
        first = checkpoint_store.record(state, "m1", [change("a.md", CREATE, new="a")])
        second = checkpoint_store.record(state, "m2", [change("b.md", CREATE, new="b")])

        assert checkpoint_store.undo(state) is second
        assert state.head_checkpoint_id == first.id
        assert state.head_message_id == "m1"
        assert checkpoint_store.undo(state) is first
        assert state.head_checkpoint_id is None
        assert checkpoint_store.undo(state) is None

        assert checkpoint_store.redo(state) is first
        assert checkpoint_store.redo(state) is second
        assert checkpoint_store.redo(state) is None

    def test_record_discards_redo_branch(self, checkpoint_store):
        state = StoredCheckpointState.empty("p1", "s1")
        checkpoint_store.record(state, "m1", [change("a.md", CREATE, new="a")])
        checkpoint_store.record(state, "m2", [change("b.md", CREATE, new="b")])
        checkpoint_store.undo(state)
        third = checkpoint_store.record(state, "m3", [change("c.md", CREATE, new="c")])

        assert [cp.anchor_message_id for cp in state.checkpoints] == ["m1", "m3"]
        assert state.head_checkpoint_id == third.id


class TestInverse:
    """Undo applies the inverse changes, last op first."""

    def test_inverse_round_trip(self, checkpoint_store):
        store = MemoryProjectStore.from_files({"a.md": "old", "b.md": "bye"}, "p1")
        changes = [
            change("a.md", UPDATE, "old", "new"),
            change("b.md", DELETE, "bye", ""),
            change("c.md", CREATE, "", "hello"),
        ]
        for c in changes:
            apply_change(store, "p1", c)

        recorded = checkpoint_store.record(StoredCheckpointState.empty("p1", "s1"), "m", changes)

        inverse = inverse_changes(recorded)
        assert [(c.file_path, c.action) for c in inverse] == [
            ("c.md", DELETE), ("b.md", CREATE), ("a.md", UPDATE)
        ]
        for c in inverse:
            apply_change(store, "p1", c)

        assert store.read_file("p1", "a.md") == "old"
        assert store.read_file("p1", "b.md") == "bye"
        assert store.read_file("p1", "c.md") is None

        for c in forward_changes(recorded):
            apply_change(store, "p1", c)
        assert store.read_file("p1", "c.md") == "hello"


class TestLoadSave:
    """Tests for the on-disk envelope."""

    def test_save_and_load(self, checkpoint_store):
        state = checkpoint_store.load_or_create("s1")
        checkpoint_store.record(state, "m1", [change("a.md", CREATE, new="a")], "add a")
        checkpoint_store.save(state)

        data = json.loads(checkpoint_store.path_for("s1").read_text())
        assert data["v"] == STATE_VERSION
        assert data["sessionId"] == "s1"
        assert data["checkpoints"][0]["ops"][0]["afterText"] == "a"

        loaded = checkpoint_store.load("s1")
        assert loaded.head_checkpoint_id == state.head_checkpoint_id
        assert loaded.checkpoints[0].description == "add a"

    def test_missing_file(self, checkpoint_store):
        assert checkpoint_store.load("nobody") is None
        assert checkpoint_store.load_or_create("nobody").checkpoints == []

    @pytest.mark.parametrize("content", [
        "not json",
        json.dumps({"v": 2, "sessionId": "s1", "checkpoints": []}),
        json.dumps({"v": 1, "sessionId": "other", "checkpoints": []}),
        json.dumps(["a list"]),
    ])
    def test_rejected_envelopes(self, checkpoint_store, content):
        path = checkpoint_store.path_for("s1")
        path.parent.mkdir(parents=True)
        path.write_text(content)

        assert checkpoint_store.load("s1") is None

    def test_load_prunes(self, checkpoint_store):
        state = state_with(checkpoint("old", age=timedelta(days=3)), head="old")
        path = checkpoint_store.path_for("s1")
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({**state.to_dict(), "v": 1}))

        loaded = checkpoint_store.load("s1")
        assert loaded.checkpoints == []
        assert loaded.head_checkpoint_id is None

    def test_session_id_is_sanitised(self, checkpoint_store):
        assert checkpoint_store.path_for("../evil/name").name == ".._evil_name.json"

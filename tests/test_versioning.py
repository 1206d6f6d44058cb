"""
Tests for the flow editor's undo/redo manager.
"""

import pytest

from surveynav.config import EngineConfig
from surveynav.versioning import FlowActionType, FlowVersionManager, FlowVersionState


def state(*node_ids, x=0.0):
    return FlowVersionState(
        nodes=[{"id": node_id} for node_id in node_ids],
        node_positions={node_id: {"x": x, "y": 0.0} for node_id in node_ids},
    )


@pytest.fixture
def manager(scheduler):
    return FlowVersionManager(state("a"), scheduler=scheduler)


class TestUndoRedo:
    """Cursor movement."""

    def test_initial(self, manager):
        assert not manager.can_undo
        assert not manager.can_redo
        assert manager.current_state == state("a")
        assert manager.history_info()["total_entries"] == 1

    def test_undo_then_redo(self, manager):
        manager.push_version(state("a", "b"), FlowActionType.NODE_CREATE, "Add b", ["b"])
        assert manager.undo() == state("a")
        assert manager.can_redo
        assert manager.redo() == state("a", "b")
        assert not manager.can_redo

    def test_undo_at_start_is_none(self, manager):
        assert manager.undo() is None
        assert manager.redo() is None

    def test_push_after_undo_truncates_redo(self, manager):
        manager.push_version(state("a", "b"), FlowActionType.NODE_CREATE, "Add b")
        manager.push_version(state("a", "b", "c"), FlowActionType.NODE_CREATE, "Add c")
        manager.undo()
        manager.push_version(state("a", "b", "d"), FlowActionType.NODE_CREATE, "Add d")
        assert not manager.can_redo
        assert [e.description for e in manager.version_history()] == ["Initial state", "Add b", "Add d"]

    def test_duplicate_state_ignored(self, manager):
        manager.push_version(state("a"), FlowActionType.NODE_UPDATE, "No-op")
        assert manager.history_info()["total_entries"] == 1

    def test_ring_buffer(self, scheduler):
        manager = FlowVersionManager(state(), config=EngineConfig(builder_max_history=3), scheduler=scheduler)
        for name in "bcde":
            manager.push_version(state(name), FlowActionType.NODE_CREATE, f"Add {name}")
        history = manager.version_history()
        assert [e.description for e in history] == ["Add c", "Add d", "Add e"]
        assert manager.history_info()["current_index"] == 2

    def test_returned_states_are_copies(self, manager):
        current = manager.current_state
        current.nodes.append({"id": "mutated"})
        assert manager.current_state == state("a")

    def test_pushed_state_copied(self, manager):
        pushed = state("a", "b")
        manager.push_version(pushed, FlowActionType.NODE_CREATE, "Add b")
        pushed.nodes.clear()
        assert manager.current_state == state("a", "b")

    def test_entry_metadata(self, manager):
        manager.push_version(state("a", "b"), FlowActionType.EDGE_CREATE, "Connect", ["b", "a"], ["e1"])
        entry = manager.history_info()["current_entry"]
        assert entry.action == FlowActionType.EDGE_CREATE
        assert entry.affected_node_ids == ["a", "b"]
        assert entry.affected_edge_ids == ["e1"]
        assert entry.id.startswith("edge_create-")

    def test_clear_history(self, manager):
        manager.push_version(state("a", "b"), FlowActionType.NODE_CREATE, "Add b")
        manager.clear_history()
        info = manager.history_info()
        assert info == {"current_index": -1, "total_entries": 0, "current_entry": None}
        assert manager.current_state is None
        assert not manager.can_undo


class TestBatch:
    """Grouped edits."""

    def test_batch_is_one_entry(self, manager):
        assert manager.start_batch("Paste", state("a"))
        manager.push_version(state("a", "b"), FlowActionType.NODE_CREATE, "b", ["b"])
        manager.push_version(state("a", "b", "c"), FlowActionType.NODE_CREATE, "c", ["c"])
        assert manager.history_info()["total_entries"] == 1
        assert manager.end_batch() is True
        entry = manager.history_info()["current_entry"]
        assert entry.action == FlowActionType.BATCH_UPDATE
        assert entry.description == "Paste"
        assert entry.affected_node_ids == ["b", "c"]
        assert manager.undo() == state("a")

    def test_unchanged_batch_records_nothing(self, manager):
        manager.start_batch("Nothing", state("a"))
        assert manager.end_batch(state("a")) is False
        assert manager.history_info()["total_entries"] == 1

    def test_explicit_final_state(self, manager):
        manager.start_batch("Edit", state("a"))
        assert manager.end_batch(state("z")) is True
        assert manager.current_state == state("z")

    def test_nested_start_rejected(self, manager):
        assert manager.start_batch("One", state("a"))
        assert manager.start_batch("Two", state("a")) is False

    def test_end_without_start(self, manager):
        assert manager.end_batch() is False


class TestPositionDebounce:
    """Dragging nodes."""

    def test_only_last_position_committed(self, manager, scheduler):
        for x in (1.0, 2.0, 3.0):
            manager.push_version(state("a", x=x), FlowActionType.NODE_POSITION_UPDATE, "Move a", ["a"])
        assert manager.history_info()["total_entries"] == 1
        scheduler.advance(0.5)
        assert manager.history_info()["total_entries"] == 2
        assert manager.current_state == state("a", x=3.0)

    def test_each_update_restarts_the_window(self, manager, scheduler):
        manager.push_version(state("a", x=1.0), FlowActionType.NODE_POSITION_UPDATE, "Move a")
        scheduler.advance(0.4)
        manager.push_version(state("a", x=2.0), FlowActionType.NODE_POSITION_UPDATE, "Move a")
        scheduler.advance(0.4)
        assert manager.history_info()["total_entries"] == 1
        scheduler.advance(0.2)
        assert manager.history_info()["total_entries"] == 2

    def test_streams_debounced_separately(self, manager, scheduler):
        manager.push_version(state("a", x=1.0), FlowActionType.NODE_POSITION_UPDATE, "Move a")
        manager.push_version(state("a", x=2.0), FlowActionType.NODE_POSITION_BATCH_UPDATE, "Move all")
        assert len(scheduler.pending) == 2

    def test_other_actions_commit_immediately(self, manager, scheduler):
        manager.push_version(state("a", "b"), FlowActionType.NODE_CREATE, "Add b")
        assert manager.history_info()["total_entries"] == 2
        assert scheduler.pending == []

    def test_flush_pending(self, manager, scheduler):
        manager.push_version(state("a", x=5.0), FlowActionType.NODE_POSITION_UPDATE, "Move a")
        manager.flush_pending()
        assert manager.current_state == state("a", x=5.0)
        assert scheduler.pending == []
        scheduler.run_all()
        assert manager.history_info()["total_entries"] == 2

    def test_clear_cancels_pending(self, manager, scheduler):
        manager.push_version(state("a", x=5.0), FlowActionType.NODE_POSITION_UPDATE, "Move a")
        manager.clear_history()
        scheduler.run_all()
        assert manager.history_info()["total_entries"] == 0

"""
Builder Version/Undo Manager.

Undo/redo log for the visual flow editor. Unlike the runtime navigation
history this stores full snapshots of the editor state and keeps a real
redo stack:

    - push after undo() truncates everything beyond the cursor
    - pushing a state equal to the current one is ignored
    - the log is a ring buffer of builder_max_history entries
    - start_batch()/end_batch() fold many edits into one entry, recorded
      only if the state actually changed
    - position updates (dragging nodes) are debounced per action stream:
      each update cancels the pending one and only the last update in the
      window is committed
"""

import copy
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from surveynav.config import EngineConfig
from surveynav.scheduling import ScheduledCall, Scheduler, ThreadingScheduler

logger = logging.getLogger(__name__)


class FlowActionType(Enum):
    NODE_CREATE = "NODE_CREATE"
    NODE_DELETE = "NODE_DELETE"
    NODE_UPDATE = "NODE_UPDATE"
    NODE_POSITION_UPDATE = "NODE_POSITION_UPDATE"
    NODE_POSITION_BATCH_UPDATE = "NODE_POSITION_BATCH_UPDATE"
    EDGE_CREATE = "EDGE_CREATE"
    EDGE_DELETE = "EDGE_DELETE"
    EDGE_UPDATE = "EDGE_UPDATE"
    CONNECTION_CREATE = "CONNECTION_CREATE"
    INITIAL_STATE = "INITIAL_STATE"
    BATCH_UPDATE = "BATCH_UPDATE"


POSITION_ACTIONS = frozenset({
    FlowActionType.NODE_POSITION_UPDATE,
    FlowActionType.NODE_POSITION_BATCH_UPDATE,
})


@dataclass
class FlowVersionState:
    """Complete editor state: nodes, edges, node positions and viewport."""
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    edges: List[Dict[str, Any]] = field(default_factory=list)
    node_positions: Dict[str, Dict[str, float]] = field(default_factory=dict)
    viewport: Optional[Dict[str, float]] = None


@dataclass
class FlowVersionEntry:
    id: str
    state: FlowVersionState
    action: FlowActionType
    description: str
    timestamp: float
    affected_node_ids: List[str] = field(default_factory=list)
    affected_edge_ids: List[str] = field(default_factory=list)


@dataclass
class _Batch:
    description: str
    start_state: FlowVersionState
    latest_state: Optional[FlowVersionState] = None
    affected_nodes: Set[str] = field(default_factory=set)
    affected_edges: Set[str] = field(default_factory=set)


@dataclass
class _PendingUpdate:
    state: FlowVersionState
    description: str
    call: Optional[ScheduledCall] = None
    affected_nodes: Set[str] = field(default_factory=set)
    affected_edges: Set[str] = field(default_factory=set)


class FlowVersionManager:
    """
    Snapshot-based undo/redo for the flow editor.

    Args:
        initial_state: State recorded as the first entry
        config: EngineConfig (builder_max_history, position_debounce_delay)
        scheduler: Scheduler for the position debounce
    """

    def __init__(
        self,
        initial_state: FlowVersionState,
        config: Optional[EngineConfig] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self._config = config or EngineConfig()
        self._scheduler = scheduler or ThreadingScheduler()
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._batch: Optional[_Batch] = None
        self._pending: Dict[FlowActionType, _PendingUpdate] = {}
        self._entries: List[FlowVersionEntry] = [
            self._make_entry(initial_state, FlowActionType.INITIAL_STATE, "Initial state")
        ]
        self._index = 0

    def _make_entry(self, state, action, description, nodes=(), edges=()) -> FlowVersionEntry:
        return FlowVersionEntry(
            id=f"{action.value.lower()}-{next(self._ids)}",
            state=copy.deepcopy(state),
            action=action,
            description=description,
            timestamp=time.time() * 1000,
            affected_node_ids=list(nodes),
            affected_edge_ids=list(edges),
        )

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    @property
    def current_state(self) -> Optional[FlowVersionState]:
        if self._index < 0:
            return None
        return copy.deepcopy(self._entries[self._index].state)

    def push_version(
        self,
        state: FlowVersionState,
        action: FlowActionType,
        description: str,
        affected_nodes: Optional[Iterable[str]] = None,
        affected_edges: Optional[Iterable[str]] = None,
    ) -> None:
        """
        Record a new editor state.

        Inside a batch only the affected ids (and latest state) are
        collected. Position actions are debounced; everything else is
        committed immediately.
        """
        nodes = set(affected_nodes or ())
        edges = set(affected_edges or ())

        with self._lock:
            if self._batch is not None:
                self._batch.latest_state = copy.deepcopy(state)
                self._batch.affected_nodes |= nodes
                self._batch.affected_edges |= edges
                return

            if action in POSITION_ACTIONS:
                self._debounce(state, action, description, nodes, edges)
                return

            self._commit(state, action, description, sorted(nodes), sorted(edges))

    def _debounce(self, state, action, description, nodes, edges) -> None:
        pending = self._pending.get(action)
        if pending is None:
            pending = _PendingUpdate(state=copy.deepcopy(state), description=description)
            self._pending[action] = pending
        else:
            if pending.call is not None:
                pending.call.cancel()
            pending.state = copy.deepcopy(state)
            pending.description = description
        pending.affected_nodes |= nodes
        pending.affected_edges |= edges
        pending.call = self._scheduler.call_later(
            self._config.position_debounce_delay,
            lambda: self._fire_pending(action, pending),
        )

    def _fire_pending(self, action: FlowActionType, pending: _PendingUpdate) -> None:
        with self._lock:
            if self._pending.get(action) is not pending:
                return
            del self._pending[action]
            self._commit(pending.state, action, pending.description,
                         sorted(pending.affected_nodes), sorted(pending.affected_edges))

    def flush_pending(self) -> None:
        """Commit every debounced update now."""
        with self._lock:
            for action, pending in list(self._pending.items()):
                if pending.call is not None:
                    pending.call.cancel()
                self._fire_pending(action, pending)

    def _commit(self, state, action, description, nodes, edges) -> bool:
        if self._index >= 0 and self._entries[self._index].state == state:
            logger.debug("Skipping duplicate state push: %s", description)
            return False

        del self._entries[self._index + 1:]
        self._entries.append(self._make_entry(state, action, description, nodes, edges))
        overflow = len(self._entries) - self._config.builder_max_history
        if overflow > 0:
            del self._entries[:overflow]
        self._index = len(self._entries) - 1

        logger.debug("Pushed version %r (%s): %d nodes, %d edges, %d entries",
                     description, action.value, len(state.nodes), len(state.edges), len(self._entries))
        return True

    def start_batch(self, description: str, state: FlowVersionState) -> bool:
        """Begin grouping edits. Returns False if a batch is already open."""
        with self._lock:
            if self._batch is not None:
                logger.warning("Starting batch %r while %r is active", description, self._batch.description)
                return False
            self._batch = _Batch(description=description, start_state=copy.deepcopy(state))
            logger.debug("Started batch %r", description)
            return True

    def end_batch(self, state: Optional[FlowVersionState] = None) -> bool:
        """
        Close the open batch.

        Args:
            state: Final editor state; defaults to the last state pushed
                   inside the batch

        Returns:
            True if an entry was recorded
        """
        with self._lock:
            batch = self._batch
            if batch is None:
                logger.warning("Ending batch when no batch is active")
                return False
            self._batch = None

            final = state if state is not None else batch.latest_state
            if final is None or final == batch.start_state:
                logger.debug("Batch %r made no changes", batch.description)
                return False
            return self._commit(final, FlowActionType.BATCH_UPDATE, batch.description,
                                sorted(batch.affected_nodes), sorted(batch.affected_edges))

    def undo(self) -> Optional[FlowVersionState]:
        """Move the cursor back; returns the state to restore, or None."""
        with self._lock:
            if not self.can_undo:
                logger.debug("Cannot undo: no previous state")
                return None
            self._index -= 1
            entry = self._entries[self._index]
            logger.debug("Undo to %r", entry.description)
            return copy.deepcopy(entry.state)

    def redo(self) -> Optional[FlowVersionState]:
        """Move the cursor forward; returns the state to restore, or None."""
        with self._lock:
            if not self.can_redo:
                logger.debug("Cannot redo: no next state")
                return None
            self._index += 1
            entry = self._entries[self._index]
            logger.debug("Redo to %r", entry.description)
            return copy.deepcopy(entry.state)

    def clear_history(self) -> None:
        with self._lock:
            for pending in self._pending.values():
                if pending.call is not None:
                    pending.call.cancel()
            self._pending.clear()
            self._entries = []
            self._index = -1

    def history_info(self) -> Dict[str, Any]:
        with self._lock:
            current = self._entries[self._index] if self._index >= 0 else None
            return {
                "current_index": self._index,
                "total_entries": len(self._entries),
                "current_entry": current,
            }

    def version_history(self) -> List[FlowVersionEntry]:
        with self._lock:
            return [copy.deepcopy(entry) for entry in self._entries]


__all__ = [
    "FlowActionType",
    "FlowVersionState",
    "FlowVersionEntry",
    "FlowVersionManager",
]

"""
Navigation History Manager.

Keeps the ordered log of visited (page, block) pairs for one survey run.
Entries reference pages and blocks by uuid, never by index, and are
re-resolved against the current PageGraph whenever they are read, so the
log survives graph rebuilds that renumber pages or blocks.

Transitions:
    forward / jump  append an entry (consecutive duplicates are ignored);
                    the log is capped at max_history_length, oldest first
    back            drops exactly the tail entry, then walks backwards to
                    the first entry whose block is not skip-on-back

Host integration goes through a HistorySink (push_entry, replace_entry,
request_back, on_external_back). A native "went back" signal becomes an
internal back(); when the internal log is exhausted the sink is asked to
perform its own back navigation instead.

ARCHITECTURAL RULE:
    There is one writer. Transitions are synchronous; the only deferred
    work is clearing the external-back re-entrancy guard.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from surveynav.config import EngineConfig
from surveynav.evaluator import Today, is_block_visible
from surveynav.graph import PageGraph, Position
from surveynav.model import Block
from surveynav.scheduling import Scheduler, ThreadingScheduler

logger = logging.getLogger(__name__)


class Trigger(Enum):
    """Why an entry was recorded."""
    INITIAL = "initial"
    FORWARD = "forward"
    BACK = "back"
    JUMP = "jump"


@dataclass(frozen=True)
class NavigationHistoryEntry:
    """
    One visited step.

    Properties:
        page_uuid: Page identifier
        block_uuid: Block identifier (None means the page as a whole)
        timestamp: Milliseconds since the epoch
        trigger: Transition that recorded the entry
    """

    page_uuid: str
    block_uuid: Optional[str] = None
    timestamp: float = 0.0
    trigger: Trigger = Trigger.FORWARD

    def same_step(self, other: "NavigationHistoryEntry") -> bool:
        return self.page_uuid == other.page_uuid and self.block_uuid == other.block_uuid


EXHAUSTED = "exhausted"

BackResult = Union[Position, str]


class HistorySink(ABC):
    """Host-side history (e.g. a browser's back/forward stack)."""

    @abstractmethod
    def push_entry(self, entry: NavigationHistoryEntry) -> None:
        pass

    @abstractmethod
    def replace_entry(self, entry: NavigationHistoryEntry) -> None:
        pass

    @abstractmethod
    def request_back(self) -> None:
        """Perform the host's own back navigation."""
        pass

    @abstractmethod
    def on_external_back(self, handler: Callable[[], Any]) -> None:
        """Register the handler called when the host navigates back."""
        pass


class InMemoryHistorySink(HistorySink):
    """Records every sink call; simulate_back() plays the host's back button."""

    def __init__(self):
        self.pushed: List[NavigationHistoryEntry] = []
        self.replaced: List[NavigationHistoryEntry] = []
        self.back_requests = 0
        self._handler: Optional[Callable[[], Any]] = None

    def push_entry(self, entry: NavigationHistoryEntry) -> None:
        self.pushed.append(entry)

    def replace_entry(self, entry: NavigationHistoryEntry) -> None:
        self.replaced.append(entry)

    def request_back(self) -> None:
        self.back_requests += 1

    def on_external_back(self, handler: Callable[[], Any]) -> None:
        self._handler = handler

    def simulate_back(self) -> Any:
        if self._handler is None:
            return None
        return self._handler()


SkipPredicate = Callable[[Block], bool]


def _never_skip(block: Block) -> bool:
    return False


def _now_ms() -> float:
    return time.time() * 1000


class NavigationHistory:
    """
    Append-only, uuid-keyed navigation log positioned at its tail.

    Args:
        graph: Current PageGraph
        start_page: Page to resume at (0 for a fresh run)
        restored: Previously serialized entries, if resuming
        sink: Optional host history sink
        skip_on_back: Predicate marking blocks that back() passes over
        config: EngineConfig (history cap, guard delay)
        scheduler: Scheduler for the guard reset (threading timer by default)
        clock: Millisecond clock used for timestamps
        on_change: Called with this history after every state change
    """

    def __init__(
        self,
        graph: PageGraph,
        start_page: int = 0,
        restored: Optional[Sequence[NavigationHistoryEntry]] = None,
        sink: Optional[HistorySink] = None,
        skip_on_back: Optional[SkipPredicate] = None,
        config: Optional[EngineConfig] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = _now_ms,
        on_change: Optional[Callable[["NavigationHistory"], None]] = None,
    ):
        self._graph = graph
        self._sink = sink
        self._skip_on_back = skip_on_back or _never_skip
        self._config = config or EngineConfig()
        self._scheduler = scheduler or ThreadingScheduler()
        self._clock = clock
        self._on_change = on_change
        self._handling_external_back = False

        start_page = self._clamp_page(start_page)
        self._entries = self._seed(start_page, list(restored or []))
        self._current = self._resume_position(start_page)
        logger.info("History seeded with %d entries at page %d", len(self._entries), start_page)

        if self._sink is not None:
            self._sink.replace_entry(self._entries[-1])
            self._sink.on_external_back(self.handle_external_back)

    # -- seeding ----------------------------------------------------------

    def _clamp_page(self, page_index: int) -> int:
        if not 0 <= page_index < len(self._graph.pages):
            if page_index != 0:
                logger.warning("Start page %d out of range, using 0", page_index)
            return 0
        return page_index

    def _is_valid(self, entry: NavigationHistoryEntry) -> bool:
        page_index = self._graph.page_index(entry.page_uuid)
        if page_index < 0:
            return False
        if entry.block_uuid is None:
            return True
        return self._graph.block_index(page_index, entry.block_uuid) >= 0

    def _seed(self, start_page: int, restored: List[NavigationHistoryEntry]) -> List[NavigationHistoryEntry]:
        if restored and (len(restored) > 1 or start_page == 0):
            valid = [entry for entry in restored if self._is_valid(entry)]
            if len(valid) < len(restored):
                logger.info("Dropped %d stale history entries", len(restored) - len(valid))
            if valid:
                return valid[-self._config.max_history_length:]
        elif restored:
            logger.info("Restored history too short for page %d, synthesising", start_page)

        return self._synthesise(start_page)

    def _synthesise(self, start_page: int) -> List[NavigationHistoryEntry]:
        """Straight-line history page 0..start_page with staggered timestamps."""
        base = self._clock() - start_page * 1000
        entries = []
        for index in range(start_page + 1):
            page_uuid = self._graph.page_uuid_at(index)
            if page_uuid is None:
                continue
            entries.append(NavigationHistoryEntry(
                page_uuid=page_uuid,
                block_uuid=None,
                timestamp=base + index * 1000,
                trigger=Trigger.INITIAL if index == 0 else Trigger.FORWARD,
            ))
        if not entries:
            entries.append(NavigationHistoryEntry(
                page_uuid=self._graph.page_uuid_at(0) or "",
                timestamp=self._clock(),
                trigger=Trigger.INITIAL,
            ))
        return entries[-self._config.max_history_length:]

    def _resume_position(self, start_page: int) -> Position:
        """Latest entry on the start page, passing over skip-on-back blocks as back() does."""
        page_uuid = self._graph.page_uuid_at(start_page)
        on_page = [entry for entry in reversed(self._entries) if entry.page_uuid == page_uuid]
        for entry in on_page:
            if not self._should_skip(entry):
                return self._resolve(entry)
        if on_page:
            return self._resolve(on_page[0])
        return Position(start_page, 0)

    # -- state ------------------------------------------------------------

    @property
    def entries(self) -> List[NavigationHistoryEntry]:
        return list(self._entries)

    @property
    def current(self) -> Position:
        return self._current

    @property
    def graph(self) -> PageGraph:
        return self._graph

    def __len__(self) -> int:
        return len(self._entries)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    def _resolve(self, entry: NavigationHistoryEntry) -> Position:
        page_index = self._graph.page_index(entry.page_uuid)
        if page_index < 0:
            return Position(0, 0)
        if entry.block_uuid is None:
            return Position(page_index, 0)
        block_index = self._graph.block_index(page_index, entry.block_uuid)
        return Position(page_index, max(block_index, 0))

    def _entry_for(self, position: Position, trigger: Trigger) -> Optional[NavigationHistoryEntry]:
        page_uuid = self._graph.page_uuid_at(position.page_index)
        if page_uuid is None:
            return None
        return NavigationHistoryEntry(
            page_uuid=page_uuid,
            block_uuid=self._graph.block_uuid_at(position.page_index, position.block_index),
            timestamp=self._clock(),
            trigger=trigger,
        )

    def _should_skip(self, entry: NavigationHistoryEntry) -> bool:
        if entry.block_uuid is None:
            return False
        page_index = self._graph.page_index(entry.page_uuid)
        block = self._graph.block_at(page_index, self._graph.block_index(page_index, entry.block_uuid))
        return block is not None and bool(self._skip_on_back(block))

    # -- transitions ------------------------------------------------------

    def _append(self, page_index: int, block_index: int, trigger: Trigger) -> bool:
        position = Position(page_index, block_index)
        entry = self._entry_for(position, trigger)
        if entry is None:
            logger.warning("Cannot add to history: invalid page index %d", page_index)
            return False

        self._current = position
        if self._entries and self._entries[-1].same_step(entry):
            logger.debug("Ignoring duplicate history entry for %s/%s", entry.page_uuid, entry.block_uuid)
            self._changed()
            return False

        self._entries.append(entry)
        overflow = len(self._entries) - self._config.max_history_length
        if overflow > 0:
            del self._entries[:overflow]

        if self._sink is not None:
            self._sink.push_entry(entry)
        self._changed()
        return True

    def forward(self, page_index: int, block_index: int = 0) -> bool:
        """Record a forward step. Returns True if an entry was appended."""
        return self._append(page_index, block_index, Trigger.FORWARD)

    def jump(self, page_index: int, block_index: int = 0) -> bool:
        """Record a direct jump. Returns True if an entry was appended."""
        return self._append(page_index, block_index, Trigger.JUMP)

    def back(self) -> BackResult:
        """
        Step back.

        Returns:
            Position of the previous non-skippable step, or EXHAUSTED when
            there is none (the log is left untouched and the sink, if any,
            is asked to go back natively)
        """
        target = None
        for entry in reversed(self._entries[:-1]):
            if not self._should_skip(entry):
                target = entry
                break

        if target is None:
            logger.debug("History exhausted (%d entries)", len(self._entries))
            if self._sink is not None:
                self._sink.request_back()
            return EXHAUSTED

        self._entries.pop()
        self._current = self._resolve(target)

        if self._sink is not None:
            replacement = self._entry_for(self._current, Trigger.BACK)
            if replacement is not None:
                self._sink.replace_entry(replacement)
        self._changed()
        return self._current

    def handle_external_back(self) -> Optional[BackResult]:
        """
        Handle the host's back signal.

        Ignored while a previous signal is still being handled; the guard
        is cleared back_guard_reset_delay seconds later.
        """
        if self._handling_external_back:
            logger.debug("Ignoring re-entrant external back")
            return None

        if not self.can_go_back:
            return EXHAUSTED

        self._handling_external_back = True
        result = self.back()
        if result == EXHAUSTED:
            self._handling_external_back = False
            return result

        self._scheduler.call_later(self._config.back_guard_reset_delay, self._reset_guard)
        return result

    def _reset_guard(self) -> None:
        self._handling_external_back = False

    def rebuild(self, graph: PageGraph) -> None:
        """
        Re-key the log against a rebuilt graph.

        Entries whose page or block no longer exists are dropped; an empty
        log is re-seeded at page 0.
        """
        current_entry = self._entry_for(self._current, Trigger.JUMP)
        self._graph = graph

        valid = [entry for entry in self._entries if self._is_valid(entry)]
        dropped = len(self._entries) - len(valid)
        self._entries = valid or self._synthesise(0)

        if current_entry is not None and self._is_valid(current_entry):
            self._current = self._resolve(current_entry)
        else:
            self._current = self._resolve(self._entries[-1])

        logger.info("History rebuilt against %d page(s), %d stale entries dropped", len(graph.pages), dropped)
        self._changed()

    # -- derived queries --------------------------------------------------

    @property
    def can_go_back(self) -> bool:
        return len(self._entries) > 1

    def total_visible_steps(self, context: Mapping[str, Any], today: Today = None) -> int:
        return sum(
            1
            for page in self._graph.pages
            for block in page
            if is_block_visible(block, context, today)
        )

    def current_step_position(self, context: Mapping[str, Any], today: Today = None) -> int:
        """0-based index of the current block among all visible steps."""
        position = 0
        for page_index, page in enumerate(self._graph.pages):
            if page_index > self._current.page_index:
                break
            for block_index, block in enumerate(page):
                if page_index == self._current.page_index and block_index >= self._current.block_index:
                    break
                if is_block_visible(block, context, today):
                    position += 1
        return position

    def progress_percent(self, context: Mapping[str, Any], today: Today = None) -> float:
        total = self.total_visible_steps(context, today)
        if total == 0:
            return 0.0
        return min(100.0, 100.0 * (self.current_step_position(context, today) + 1) / total)

    def serialize_history(self) -> List[NavigationHistoryEntry]:
        return list(self._entries)


__all__ = [
    "Trigger",
    "NavigationHistoryEntry",
    "EXHAUSTED",
    "HistorySink",
    "InMemoryHistorySink",
    "NavigationHistory",
]

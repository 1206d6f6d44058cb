"""
Survey Session.

Ties the engine together for one respondent: answers, computed values,
the page graph and the navigation history. A UI layer calls the
go_to_* methods from its event handlers and renders current_block.

Next-block order when continuing from a block:
    1. end block                     -> submit
    2. the block's navigation rules  (resolver precedence)
    3. next block on the same page
    4. next page: branching logic of the page's first block, then the
       page's navigation rules, then the following page, else submit
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from surveynav.config import EngineConfig
from surveynav.evaluator import Today, is_block_visible
from surveynav.graph import PageGraph, Position, build_page_graph
from surveynav.history import (
    EXHAUSTED,
    BackResult,
    HistorySink,
    NavigationHistory,
    NavigationHistoryEntry,
)
from surveynav.model import Block, Survey
from surveynav.resolver import (
    SUBMIT,
    SUBMIT_PAGE,
    resolve_next_page,
    resolve_next_step,
    resolve_page_rules,
)
from surveynav.scheduling import Scheduler
from surveynav.serialization import ResumeState, resume_from_dict

logger = logging.getLogger(__name__)


ComputedFields = Callable[[Mapping[str, Any]], Mapping[str, Any]]


def default_skip_on_back(is_authenticated: Callable[[], bool]) -> Callable[[Block], bool]:
    """
    Blocks flagged skipOnBack, and auth blocks with skipIfLoggedIn once the
    respondent is signed in, are passed over by back navigation.
    """
    def skip(block: Block) -> bool:
        if block.properties.get("skipOnBack"):
            return True
        if block.type == "auth" and block.properties.get("skipIfLoggedIn"):
            return bool(is_authenticated())
        return False
    return skip


class SurveySession:
    """
    One run through a survey.

    Args:
        survey: Survey definition
        answers: Initial answers
        computed: Derives computed values from answers; merged over them
        config: EngineConfig
        sink: Host history sink (browser back button)
        scheduler: Scheduler for the history guard reset
        is_authenticated: Used by the default skip-on-back rule
        skip_on_back: Replaces the default skip-on-back rule
        start_page: Page to resume at
        restored_history: History saved with the answers
        on_page_change: Called with (page_index, total_pages)
        on_history_change: Called with the serialized history
        on_submit: Called with the merged values on submission
        today: Clock for date conditions
    """

    def __init__(
        self,
        survey: Survey,
        answers: Optional[Mapping[str, Any]] = None,
        computed: Optional[ComputedFields] = None,
        config: Optional[EngineConfig] = None,
        sink: Optional[HistorySink] = None,
        scheduler: Optional[Scheduler] = None,
        is_authenticated: Callable[[], bool] = lambda: False,
        skip_on_back: Optional[Callable[[Block], bool]] = None,
        start_page: int = 0,
        restored_history: Optional[List[NavigationHistoryEntry]] = None,
        on_page_change: Optional[Callable[[int, int], None]] = None,
        on_history_change: Optional[Callable[[List[NavigationHistoryEntry]], None]] = None,
        on_submit: Optional[Callable[[Dict[str, Any]], None]] = None,
        today: Today = None,
    ):
        self.survey = survey
        self.answers: Dict[str, Any] = dict(answers or {})
        self.config = config or EngineConfig()
        self.submitted = False
        self._computed = computed
        self._on_page_change = on_page_change
        self._on_history_change = on_history_change
        self._on_submit = on_submit
        self._today = today

        self.graph = self._build_graph(survey)
        self.history = NavigationHistory(
            self.graph,
            start_page=start_page,
            restored=restored_history,
            sink=sink,
            skip_on_back=skip_on_back or default_skip_on_back(is_authenticated),
            config=self.config,
            scheduler=scheduler,
            on_change=self._history_changed,
        )
        self._last_page = self.history.current.page_index

    @classmethod
    def resume(cls, survey: Survey, state: Union[ResumeState, Mapping[str, Any]], **kwargs) -> "SurveySession":
        """Rehydrate a session from snapshot() output (object or dict)."""
        if not isinstance(state, ResumeState):
            state = resume_from_dict(dict(state))
        return cls(
            survey,
            answers=state.answers,
            start_page=state.current_page_index,
            restored_history=state.navigation_history,
            **kwargs,
        )

    def _build_graph(self, survey: Survey) -> PageGraph:
        return build_page_graph(survey.root, survey.mode or self.config.default_mode)

    def _history_changed(self, history: NavigationHistory) -> None:
        if self._on_history_change is not None:
            self._on_history_change(history.serialize_history())
        page = history.current.page_index
        if page != self._last_page:
            self._last_page = page
            if self._on_page_change is not None:
                self._on_page_change(page, self.total_pages)

    # -- values -----------------------------------------------------------

    def set_value(self, field_name: str, value: Any) -> None:
        self.answers[field_name] = value

    def context(self) -> Dict[str, Any]:
        """Answers merged with computed values."""
        merged = dict(self.answers)
        if self._computed is not None:
            merged.update(self._computed(merged))
        return merged

    # -- position ---------------------------------------------------------

    @property
    def total_pages(self) -> int:
        return len(self.graph.pages)

    @property
    def current(self) -> Position:
        return self.history.current

    @property
    def current_page(self) -> List[Block]:
        return self.graph.pages[self.current.page_index]

    @property
    def current_block(self) -> Optional[Block]:
        return self.graph.block_at(self.current.page_index, self.current.block_index)

    def visible_blocks(self, page_index: Optional[int] = None) -> List[Block]:
        index = self.current.page_index if page_index is None else page_index
        if not 0 <= index < self.total_pages:
            return []
        context = self.context()
        return [b for b in self.graph.pages[index] if is_block_visible(b, context, self._today)]

    # -- navigation -------------------------------------------------------

    def next_page_index(self) -> Optional[int]:
        """
        Page that follows the current one.

        Returns:
            Page index, or None when the survey should be submitted
        """
        page_index = self.current.page_index
        blocks = self.current_page
        context = self.context()

        branching = blocks[0].branching_logic if blocks else None
        if branching is not None and branching.condition:
            target = resolve_next_page(page_index, branching, context, self.total_pages, self._today)
            if target == SUBMIT_PAGE:
                return None
            if target == page_index and page_index == self.total_pages - 1:
                return None
            return target

        target = resolve_page_rules(blocks, self.graph.pages, self.graph.page_uuids, context, self._today)
        if target is not None:
            return None if target == SUBMIT_PAGE else target

        return page_index + 1 if page_index + 1 < self.total_pages else None

    def go_to_next_block(self, values: Optional[Mapping[str, Any]] = None) -> Union[Position, str]:
        """
        Continue from the current block.

        Args:
            values: Answers to merge before resolving

        Returns:
            New Position, or SUBMIT when the survey was submitted
        """
        if values:
            self.answers.update(values)

        block = self.current_block
        if block is not None and block.is_end_block:
            return self.submit()

        if block is not None:
            target = resolve_next_step(block, self.graph.pages, self.graph.page_uuids, self.context(), self._today)
            if target == SUBMIT:
                return self.submit()
            if target is not None:
                self.history.forward(target.page_index, target.block_index)
                return target

        position = self.current
        if position.block_index + 1 < len(self.current_page):
            self.history.forward(position.page_index, position.block_index + 1)
            return self.current

        next_page = self.next_page_index()
        if next_page is None:
            return self.submit()
        self.history.forward(next_page, 0)
        return self.current

    def go_to_previous_block(self) -> BackResult:
        """Step back; EXHAUSTED hands control to the host's back navigation."""
        result = self.history.back()
        if result == EXHAUSTED:
            logger.debug("No internal history left to go back to")
        return result

    def go_to_page(self, page_index: int) -> bool:
        """Jump to the first block of a page. Out-of-range indices are ignored."""
        if not 0 <= page_index < self.total_pages:
            logger.warning("Ignoring jump to invalid page index %d", page_index)
            return False
        self.history.jump(page_index, 0)
        return True

    def submit(self) -> str:
        self.submitted = True
        values = self.context()
        logger.info("Survey submitted with %d value(s)", len(values))
        if self._on_submit is not None:
            self._on_submit(values)
        return SUBMIT

    # -- structure and persistence ---------------------------------------

    def update_survey(self, survey: Survey) -> None:
        """Swap in an edited survey; history is re-keyed by uuid."""
        self.survey = survey
        self.graph = self._build_graph(survey)
        self.history.rebuild(self.graph)

    @property
    def can_go_back(self) -> bool:
        return self.history.can_go_back

    def total_visible_steps(self) -> int:
        return self.history.total_visible_steps(self.context(), self._today)

    def current_step_position(self) -> int:
        return self.history.current_step_position(self.context(), self._today)

    def progress_percent(self) -> float:
        return self.history.progress_percent(self.context(), self._today)

    def snapshot(self) -> ResumeState:
        return ResumeState(
            answers=dict(self.answers),
            current_page_index=self.current.page_index,
            navigation_history=self.history.serialize_history(),
        )


__all__ = ["SurveySession", "default_skip_on_back"]

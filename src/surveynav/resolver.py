"""
Navigation Rule Resolver.

Decides where to go after a block (or a page) given the current answers.

Precedence, applied the same way at block level and page level:

    1. first non-default rule whose condition holds (declaration order)
    2. first default rule
    3. the block's explicit next_block_id
    4. nothing (None): the caller falls back to structural order

A rule whose target cannot be found in the current pages is treated as
not matching; resolution simply moves on.
"""

import logging
from typing import Any, List, Mapping, Optional, Sequence, Union

from surveynav.evaluator import Today, evaluate
from surveynav.graph import Position
from surveynav.model import SUBMIT_TARGET, Block, BranchingLogic, NavigationRule

logger = logging.getLogger(__name__)


SUBMIT = SUBMIT_TARGET
SUBMIT_PAGE = -1

Step = Union[Position, str, None]


def find_block_position(pages: Sequence[Sequence[Block]], target: str) -> Optional[Position]:
    """Locate a block by uuid across all pages."""
    for page_index, page in enumerate(pages):
        for block_index, block in enumerate(page):
            if block.uuid == target:
                return Position(page_index, block_index)
    return None


def _resolve_target(
    target: Optional[str],
    is_page: bool,
    pages: Sequence[Sequence[Block]],
    page_uuids: Sequence[str],
) -> Step:
    if not target:
        return None
    if target == SUBMIT_TARGET:
        return SUBMIT
    if is_page:
        try:
            return Position(list(page_uuids).index(target), 0)
        except ValueError:
            logger.debug("Rule target page %s not found", target)
            return None
    position = find_block_position(pages, target)
    if position is None:
        logger.debug("Rule target block %s not found", target)
    return position


def _resolve_rule(rule: NavigationRule, pages, page_uuids) -> Step:
    return _resolve_target(rule.target, rule.is_page, pages, page_uuids)


def resolve_next_step(
    block: Block,
    pages: Sequence[Sequence[Block]],
    page_uuids: Sequence[str],
    context: Mapping[str, Any],
    today: Today = None,
) -> Step:
    """
    Resolve the next step after a block.

    Args:
        block: Block being left
        pages: Current pages (from build_page_graph)
        page_uuids: Page uuids parallel to pages
        context: Value context
        today: Clock for date conditions

    Returns:
        Position, SUBMIT, or None when the caller should continue in
        structural order
    """
    rules: List[NavigationRule] = block.navigation_rules or []

    for rule in rules:
        if rule.is_default:
            continue
        if not evaluate(rule.condition, context, today):
            continue
        step = _resolve_rule(rule, pages, page_uuids)
        if step is not None:
            return step

    for rule in rules:
        if not rule.is_default:
            continue
        step = _resolve_rule(rule, pages, page_uuids)
        if step is not None:
            return step

    if block.next_block_id:
        return _resolve_target(block.next_block_id, False, pages, page_uuids)

    return None


def _step_to_page(step: Step) -> Optional[int]:
    if step is None:
        return None
    if step == SUBMIT:
        return SUBMIT_PAGE
    return step.page_index


def resolve_page_rules(
    blocks: Sequence[Block],
    pages: Sequence[Sequence[Block]],
    page_uuids: Sequence[str],
    context: Mapping[str, Any],
    today: Today = None,
) -> Optional[int]:
    """
    Resolve the next page from the rules of every block on a page.

    Each precedence level is applied across all blocks (in page order)
    before moving to the next level.

    Returns:
        Page index, SUBMIT_PAGE (-1) for submit, or None
    """
    for block in blocks:
        for rule in block.navigation_rules or []:
            if rule.is_default or not evaluate(rule.condition, context, today):
                continue
            page = _step_to_page(_resolve_rule(rule, pages, page_uuids))
            if page is not None:
                return page

    for block in blocks:
        for rule in block.navigation_rules or []:
            if not rule.is_default:
                continue
            page = _step_to_page(_resolve_rule(rule, pages, page_uuids))
            if page is not None:
                return page

    for block in blocks:
        if block.next_block_id:
            page = _step_to_page(_resolve_target(block.next_block_id, False, pages, page_uuids))
            if page is not None:
                return page

    return None


def _sequential(current_page: int, total_pages: int) -> int:
    return current_page + 1 if current_page + 1 < total_pages else current_page


def resolve_next_page(
    current_page: int,
    branching_logic: Optional[BranchingLogic],
    context: Mapping[str, Any],
    total_pages: int,
    today: Today = None,
) -> int:
    """
    Resolve page-level branching logic.

    Returns:
        Target page index, or SUBMIT_PAGE (-1) for submit. A false
        condition or an out-of-range target means the next page (or the
        current one when already on the last page).
    """
    if branching_logic is None or not branching_logic.condition:
        return _sequential(current_page, total_pages)

    if not evaluate(branching_logic.condition, context, today):
        return _sequential(current_page, total_pages)

    target = branching_logic.target_page
    if isinstance(target, int) and not isinstance(target, bool):
        if 0 <= target < total_pages:
            return target
        logger.warning("Branching target page %d out of range (0..%d)", target, total_pages - 1)
    elif target == "next":
        return _sequential(current_page, total_pages)
    elif target == "prev":
        return current_page - 1 if current_page - 1 >= 0 else current_page
    elif target == SUBMIT_TARGET:
        return SUBMIT_PAGE

    return _sequential(current_page, total_pages)


def resolve_structural_next(position: Position, pages: Sequence[Sequence[Block]]) -> Union[Position, str]:
    """Next block on the page, else first block of the next page, else SUBMIT."""
    page_index, block_index = position.page_index, position.block_index
    if 0 <= page_index < len(pages) and block_index + 1 < len(pages[page_index]):
        return Position(page_index, block_index + 1)
    if page_index + 1 < len(pages):
        return Position(page_index + 1, 0)
    return SUBMIT


__all__ = [
    "SUBMIT",
    "SUBMIT_PAGE",
    "Position",
    "find_block_position",
    "resolve_next_step",
    "resolve_page_rules",
    "resolve_next_page",
    "resolve_structural_next",
]

"""
Page/Block Graph Builder.

Turns the hierarchical survey tree into a flat list of pages (each page an
ordered list of blocks) plus a parallel list of page uuids.

Paged mode:
    Each "set" under the root (or under a section in root.nodes) is one
    page holding the set's items. A container without sets becomes a
    single page of its items, identified by the container's uuid.

Pageless mode:
    Every block is its own single-block page; sets are flattened.

The PageGraph also carries uuid -> index maps rebuilt on every build, so
history entries (keyed by uuid) can be re-resolved after the tree
changes and indices shift.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Union

from surveynav.model import Block, Survey, SurveyMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    """Concrete location of a block: page index and block index within it."""
    page_index: int
    block_index: int


class PageGraph:
    """
    Pages and page uuids with uuid -> index lookups.

    Unpacks as (pages, page_uuids):

        pages, page_uuids = build_page_graph(root)
    """

    def __init__(self, pages: List[List[Block]], page_uuids: List[str], mode: SurveyMode):
        self.pages = pages
        self.page_uuids = page_uuids
        self.mode = mode
        self._page_index: Dict[str, int] = {}
        self._block_position: Dict[str, Position] = {}

        for page_index, page_uuid in enumerate(page_uuids):
            self._page_index.setdefault(page_uuid, page_index)
        for page_index, page in enumerate(pages):
            for block_index, block in enumerate(page):
                self._block_position.setdefault(block.uuid, Position(page_index, block_index))

    def __iter__(self) -> Iterator:
        return iter((self.pages, self.page_uuids))

    def __len__(self) -> int:
        return len(self.pages)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def page_index(self, page_uuid: Optional[str]) -> int:
        """Index of a page by uuid, or -1."""
        if page_uuid is None:
            return -1
        return self._page_index.get(page_uuid, -1)

    def block_position(self, block_uuid: Optional[str]) -> Optional[Position]:
        """Position of a block anywhere in the graph, or None."""
        if block_uuid is None:
            return None
        return self._block_position.get(block_uuid)

    def block_index(self, page_index: int, block_uuid: str) -> int:
        """Index of a block within one page, or -1."""
        if not 0 <= page_index < len(self.pages):
            return -1
        for index, block in enumerate(self.pages[page_index]):
            if block.uuid == block_uuid:
                return index
        return -1

    def block_at(self, page_index: int, block_index: int) -> Optional[Block]:
        if not 0 <= page_index < len(self.pages):
            return None
        page = self.pages[page_index]
        if not 0 <= block_index < len(page):
            return None
        return page[block_index]

    def page_uuid_at(self, page_index: int) -> Optional[str]:
        if not 0 <= page_index < len(self.page_uuids):
            return None
        return self.page_uuids[page_index]

    def block_uuid_at(self, page_index: int, block_index: int) -> Optional[str]:
        block = self.block_at(page_index, block_index)
        return block.uuid if block is not None else None

    def iter_blocks(self) -> Iterator[Tuple[Position, Block]]:
        for page_index, page in enumerate(self.pages):
            for block_index, block in enumerate(page):
                yield Position(page_index, block_index), block


def detect_survey_mode(root: Optional[Block]) -> SurveyMode:
    """Paged if any top-level item is a set, pageless otherwise."""
    if root is None or not root.items:
        return SurveyMode.PAGED
    if any(item.is_set for item in root.items):
        return SurveyMode.PAGED
    return SurveyMode.PAGELESS


def _collect_paged(container: Block, pages: List[List[Block]], uuids: List[str]) -> None:
    sets = [item for item in container.items if item.is_set]
    if sets:
        for set_block in sets:
            if set_block.items:
                pages.append(list(set_block.items))
                uuids.append(set_block.uuid)
    elif container.items:
        pages.append(list(container.items))
        uuids.append(container.uuid)

    for child in container.nodes:
        if not child.is_section:
            continue
        _collect_paged(child, pages, uuids)


def _collect_pageless(container: Block, pages: List[List[Block]], uuids: List[str]) -> None:
    for item in container.items:
        if item.is_set and item.items:
            for block in item.items:
                pages.append([block])
                uuids.append(block.uuid)
        else:
            pages.append([item])
            uuids.append(item.uuid)


def build_page_graph(
    root: Union[Block, Survey, None],
    mode: Union[SurveyMode, str, None] = None,
) -> PageGraph:
    """
    Build pages and page uuids from a survey tree.

    Never raises: an absent or malformed root yields a single empty page
    with uuid "".

    Args:
        root: Root block (or a Survey, whose root and mode are used)
        mode: Explicit SurveyMode; auto-detected when None

    Returns:
        PageGraph (unpacks to (pages, page_uuids))
    """
    if isinstance(root, Survey):
        mode = mode or root.mode
        root = root.root

    if isinstance(mode, str):
        try:
            mode = SurveyMode(mode)
        except ValueError:
            logger.warning("Unknown survey mode %r, auto-detecting", mode)
            mode = None

    if not isinstance(root, Block):
        if root is not None:
            logger.warning("Malformed survey root of type %s", type(root).__name__)
        return PageGraph([[]], [""], mode or SurveyMode.PAGED)

    mode = mode or detect_survey_mode(root)
    pages: List[List[Block]] = []
    uuids: List[str] = []

    if mode == SurveyMode.PAGELESS:
        _collect_pageless(root, pages, uuids)
    else:
        _collect_paged(root, pages, uuids)

    if not pages:
        pages, uuids = [[]], [""]

    logger.debug("Built %d page(s) in %s mode", len(pages), mode.value)
    return PageGraph(pages, uuids, mode)


__all__ = ["Position", "PageGraph", "build_page_graph", "detect_survey_mode"]

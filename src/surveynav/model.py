"""
Core Survey Model Objects

Defines the data structures the navigation engine reads:
    - ConditionRule (structured field comparison)
    - NavigationRule (block-level conditional edge)
    - BranchingLogic (page-level conditional edge)
    - Block (any node of the survey tree: section, set, question)
    - Survey (root container)

ARCHITECTURAL RULE:
    These objects:
        - Know nothing about rendering
        - Are plain dataclasses, mutated only by the editor
        - Are fully serializable (see serialization.py)
        - Represent structure, not behavior
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


SUBMIT_TARGET = "submit"


class SurveyMode(Enum):
    """How the survey tree is split into pages."""
    PAGED = "paged"        # rootNode -> sets -> blocks
    PAGELESS = "pageless"  # every block is its own page


class ValueType(Enum):
    """Type both operands of a ConditionRule are coerced to."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"


@dataclass
class ConditionRule:
    """
    A single structured comparison.

    Example:
        ConditionRule(field="age", operator=">=", value=18, value_type="number")

    Properties:
        field:
            Dotted path into the value context
        operator:
            One of the operators understood by evaluator.evaluate_simple_condition
        value:
            Comparison value (a two-element list for between-style operators,
            a list for in / containsAny style operators)
        value_type:
            "string" (default), "number", "boolean" or "date"
    """

    field: str
    operator: str
    value: Any = None
    value_type: str = ValueType.STRING.value

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ConditionRule":
        """Accepts valueType, value_type or type for the coercion type."""
        value_type = d.get("valueType", d.get("value_type", d.get("type"))) or ValueType.STRING.value
        return cls(field=d["field"], operator=d["operator"], value=d.get("value"), value_type=value_type)


Condition = Union[str, ConditionRule, List[ConditionRule], Dict[str, Any], None]


@dataclass
class NavigationRule:
    """
    Conditional edge from a block to a block, a page, or submission.

    Declaration order is significant: the first rule whose condition holds
    wins. A rule flagged is_default is only consulted when no ordinary
    rule matched.

    Properties:
        condition: Condition (string, rule, or list of rules)
        target: Block uuid, page uuid (when is_page) or "submit"
        is_page: Target is a page uuid rather than a block uuid
        is_default: Fallback rule
    """

    condition: Condition
    target: str
    is_page: bool = False
    is_default: bool = False

    @property
    def is_submit(self) -> bool:
        return self.target == SUBMIT_TARGET


@dataclass
class BranchingLogic:
    """
    Page-level conditional edge.

    target_page is a page index, "next", "prev" or "submit".
    """

    condition: Condition
    target_page: Union[int, str, None] = None
    target_field: Optional[str] = None
    message: Optional[str] = None


@dataclass
class Block:
    """
    Any node of the survey tree.

    The same type is used for the root section, "set" page containers and
    individual question/content blocks, mirroring the authored JSON.

    Properties:
        uuid:
            Unique, stable identifier. History entries reference it.
        type:
            Block type ("section", "set", "textfield", "auth", ...)
        field_name:
            Key under which the block's answer is stored in the value context
        navigation_rules:
            Ordered NavigationRule list
        next_block_id:
            Explicit "go here next" pointer, used after rules and defaults
        visible_if:
            Visibility condition; None means always visible
        branching_logic:
            Page-level edge (read from the first block of a page)
        is_end_block:
            Continuing from this block submits the survey
        items:
            Child blocks (sets and sections)
        nodes:
            Child sections (paged mode only)
        properties:
            Every other authored key, untouched (e.g. "skipIfLoggedIn",
            "label"); the renderer owns their meaning
    """

    uuid: str
    type: str
    field_name: Optional[str] = None
    navigation_rules: List[NavigationRule] = field(default_factory=list)
    next_block_id: Optional[str] = None
    visible_if: Condition = None
    branching_logic: Optional[BranchingLogic] = None
    is_end_block: bool = False
    items: List["Block"] = field(default_factory=list)
    nodes: List["Block"] = field(default_factory=list)
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_set(self) -> bool:
        return self.type == "set"

    @property
    def is_section(self) -> bool:
        return self.type == "section"

    def iter_blocks(self):
        """Yield every descendant block (depth-first, declared order)."""
        for child in self.items:
            yield child
            yield from child.iter_blocks()
        for child in self.nodes:
            yield child
            yield from child.iter_blocks()

    def find(self, uuid: str) -> Optional["Block"]:
        """
        Retrieve a descendant block by uuid.

        Args:
            uuid: Block identifier

        Returns:
            Block or None if not found
        """
        if self.uuid == uuid:
            return self
        for block in self.iter_blocks():
            if block.uuid == uuid:
                return block
        return None


@dataclass
class Survey:
    """
    Root container for a survey definition.

    Properties:
        root:
            Root node of the tree; None for an empty/missing definition
        mode:
            Explicit SurveyMode, or None to auto-detect
        name:
            Optional human-readable name
        metadata:
            Arbitrary key-value pairs carried through serialization
    """

    root: Optional[Block] = None
    mode: Optional[SurveyMode] = None
    name: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_block(self, uuid: str) -> Optional[Block]:
        if self.root is None:
            return None
        return self.root.find(uuid)

    def field_names(self) -> List[str]:
        """All declared answer field names, in tree order."""
        if self.root is None:
            return []
        return [b.field_name for b in self.root.iter_blocks() if b.field_name]

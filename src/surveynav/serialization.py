"""
Serialization helpers for surveynav objects (Survey, Block, rules,
conditions, expressions, history entries, resume state).

The on-disk shape is the authored camelCase JSON:

    {"rootNode": {"type": "section", "uuid": "...", "items": [...]},
     "mode": "paged"}

Keys the engine does not interpret are kept in Block.properties and
written back unchanged, so a load/save round trip is lossless.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

import yaml

from surveynav.expressions import (
    ArrayLiteral,
    BinaryExpression,
    BinaryOperator,
    Expression,
    Literal,
    MemberAccess,
    MethodCall,
    UnaryExpression,
    UnaryOperator,
    VariableReference,
)
from surveynav.history import NavigationHistoryEntry, Trigger
from surveynav.model import (
    Block,
    BranchingLogic,
    Condition,
    ConditionRule,
    NavigationRule,
    Survey,
    SurveyMode,
)


class SurveyLoadError(Exception):
    """Raised when a survey document cannot be turned into a model."""
    pass


_BLOCK_KEYS = {
    "uuid", "type", "fieldName", "navigationRules", "nextBlockId", "visibleIf",
    "branchingLogic", "isEndBlock", "items", "nodes",
}


def expr_to_dict(expr: Expression | None) -> Any:
    if expr is None:
        return None
    if isinstance(expr, BinaryExpression):
        return {
            "type": "binary",
            "operator": expr.operator.value,
            "left": expr_to_dict(expr.left),
            "right": expr_to_dict(expr.right),
        }
    if isinstance(expr, VariableReference):
        return {"type": "var", "name": expr.name}
    if isinstance(expr, Literal):
        return {"type": "lit", "value": expr.value}
    if isinstance(expr, UnaryExpression):
        return {
            "type": "unary",
            "operator": expr.operator.value,
            "operand": expr_to_dict(expr.operand),
        }
    if isinstance(expr, ArrayLiteral):
        return {"type": "array", "elements": [expr_to_dict(e) for e in expr.elements]}
    if isinstance(expr, MemberAccess):
        return {"type": "member", "target": expr_to_dict(expr.target), "key": expr_to_dict(expr.key)}
    if isinstance(expr, MethodCall):
        return {
            "type": "call",
            "target": expr_to_dict(expr.target),
            "method": expr.method,
            "arguments": [expr_to_dict(a) for a in expr.arguments],
        }
    raise TypeError(f"Unsupported Expression type: {type(expr)}")


def expr_from_dict(d: Any) -> Expression | None:
    if d is None:
        return None
    t = d.get("type")
    if t == "binary":
        op = BinaryOperator(d["operator"])
        return BinaryExpression(operator=op, left=expr_from_dict(d["left"]), right=expr_from_dict(d["right"]))
    if t == "var":
        return VariableReference(d["name"])
    if t == "lit":
        return Literal(d["value"])
    if t == "unary":
        op = UnaryOperator(d["operator"])
        return UnaryExpression(operator=op, operand=expr_from_dict(d["operand"]))
    if t == "array":
        return ArrayLiteral(tuple(expr_from_dict(e) for e in d.get("elements", [])))
    if t == "member":
        return MemberAccess(target=expr_from_dict(d["target"]), key=expr_from_dict(d["key"]))
    if t == "call":
        return MethodCall(
            target=expr_from_dict(d["target"]),
            method=d["method"],
            arguments=tuple(expr_from_dict(a) for a in d.get("arguments", [])),
        )
    raise TypeError(f"Unsupported expression dict type: {t}")


def rule_to_dict(r: ConditionRule) -> Dict[str, Any]:
    return {"field": r.field, "operator": r.operator, "value": r.value, "valueType": r.value_type}


def rule_from_dict(d: Dict[str, Any]) -> ConditionRule:
    return ConditionRule.from_dict(d)


def condition_to_data(c: Condition) -> Any:
    if c is None or isinstance(c, (str, bool)):
        return c
    if isinstance(c, ConditionRule):
        return rule_to_dict(c)
    if isinstance(c, list):
        return [condition_to_data(item) for item in c]
    if isinstance(c, dict):
        return dict(c)
    raise TypeError(f"Unsupported condition type: {type(c)}")


def condition_from_data(d: Any) -> Condition:
    if d is None or isinstance(d, (str, bool)):
        return d
    if isinstance(d, dict):
        return rule_from_dict(d)
    if isinstance(d, list):
        return [condition_from_data(item) for item in d]
    raise SurveyLoadError(f"Unsupported condition value: {d!r}")


def navigation_rule_to_dict(r: NavigationRule) -> Dict[str, Any]:
    d = {"condition": condition_to_data(r.condition), "target": r.target, "isPage": r.is_page}
    if r.is_default:
        d["isDefault"] = True
    return d


def navigation_rule_from_dict(d: Dict[str, Any]) -> NavigationRule:
    return NavigationRule(
        condition=condition_from_data(d.get("condition")),
        target=str(d.get("target", "")),
        is_page=bool(d.get("isPage", False)),
        is_default=bool(d.get("isDefault", False)),
    )


def branching_to_dict(b: BranchingLogic | None) -> Dict[str, Any] | None:
    if b is None:
        return None
    d = {"condition": condition_to_data(b.condition), "targetPage": b.target_page}
    if b.target_field is not None:
        d["targetField"] = b.target_field
    if b.message is not None:
        d["message"] = b.message
    return d


def branching_from_dict(d: Dict[str, Any] | None) -> BranchingLogic | None:
    if d is None:
        return None
    return BranchingLogic(
        condition=condition_from_data(d.get("condition")),
        target_page=d.get("targetPage"),
        target_field=d.get("targetField"),
        message=d.get("message"),
    )


def block_to_dict(b: Block) -> Dict[str, Any]:
    d: Dict[str, Any] = {"uuid": b.uuid, "type": b.type}
    if b.field_name is not None:
        d["fieldName"] = b.field_name
    if b.navigation_rules:
        d["navigationRules"] = [navigation_rule_to_dict(r) for r in b.navigation_rules]
    if b.next_block_id is not None:
        d["nextBlockId"] = b.next_block_id
    if b.visible_if is not None:
        d["visibleIf"] = condition_to_data(b.visible_if)
    if b.branching_logic is not None:
        d["branchingLogic"] = branching_to_dict(b.branching_logic)
    if b.is_end_block:
        d["isEndBlock"] = True
    if b.items:
        d["items"] = [block_to_dict(child) for child in b.items]
    if b.nodes:
        d["nodes"] = [block_to_dict(child) for child in b.nodes]
    d.update(b.properties)
    return d


def block_from_dict(d: Dict[str, Any], path: str = "rootNode") -> Block:
    if not isinstance(d, dict):
        raise SurveyLoadError(f"{path}: expected an object, got {type(d).__name__}")
    if not d.get("uuid"):
        raise SurveyLoadError(f"{path}: block has no uuid")

    items = [block_from_dict(child, f"{path}.items[{i}]") for i, child in enumerate(d.get("items") or [])]
    # Section references given as bare uuid strings carry no content
    nodes = [
        block_from_dict(child, f"{path}.nodes[{i}]")
        for i, child in enumerate(d.get("nodes") or [])
        if not isinstance(child, str)
    ]

    return Block(
        uuid=str(d["uuid"]),
        type=str(d.get("type", "")),
        field_name=d.get("fieldName"),
        navigation_rules=[navigation_rule_from_dict(r) for r in d.get("navigationRules") or []],
        next_block_id=d.get("nextBlockId"),
        visible_if=condition_from_data(d.get("visibleIf")),
        branching_logic=branching_from_dict(d.get("branchingLogic")),
        is_end_block=bool(d.get("isEndBlock", False)),
        items=items,
        nodes=nodes,
        properties={k: v for k, v in d.items() if k not in _BLOCK_KEYS},
    )


def survey_to_dict(s: Survey) -> Dict[str, Any]:
    d: Dict[str, Any] = {"rootNode": block_to_dict(s.root) if s.root is not None else None}
    if s.mode is not None:
        d["mode"] = s.mode.value
    if s.name:
        d["name"] = s.name
    if s.metadata:
        d["metadata"] = s.metadata
    return d


def survey_from_dict(d: Dict[str, Any]) -> Survey:
    if not isinstance(d, dict):
        raise SurveyLoadError(f"Survey document must be an object, got {type(d).__name__}")

    mode = d.get("mode")
    if mode is not None:
        try:
            mode = SurveyMode(mode)
        except ValueError:
            raise SurveyLoadError(f"Unknown survey mode: {mode!r}")

    root = d.get("rootNode")
    return Survey(
        root=block_from_dict(root) if root is not None else None,
        mode=mode,
        name=d.get("name", ""),
        metadata=d.get("metadata", {}),
    )


def survey_to_json(s: Survey) -> str:
    return json.dumps(survey_to_dict(s), sort_keys=True)


def survey_from_json(s: str) -> Survey:
    try:
        d = json.loads(s)
    except ValueError as e:
        raise SurveyLoadError(f"Invalid JSON: {e}")
    return survey_from_dict(d)


def survey_to_yaml(s: Survey) -> str:
    return yaml.safe_dump(survey_to_dict(s))


def survey_from_yaml(s: str) -> Survey:
    try:
        d = yaml.safe_load(s)
    except yaml.YAMLError as e:
        raise SurveyLoadError(f"Invalid YAML: {e}")
    return survey_from_dict(d)


def load_survey(path: str) -> Survey:
    """Load a survey from a .json, .yaml or .yml file."""
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    if path.endswith((".yaml", ".yml")):
        return survey_from_yaml(text)
    return survey_from_json(text)


def entry_to_dict(e: NavigationHistoryEntry) -> Dict[str, Any]:
    d = {"pageUuid": e.page_uuid, "timestamp": e.timestamp, "trigger": e.trigger.value}
    if e.block_uuid is not None:
        d["blockUuid"] = e.block_uuid
    return d


def entry_from_dict(d: Dict[str, Any]) -> NavigationHistoryEntry:
    return NavigationHistoryEntry(
        page_uuid=d["pageUuid"],
        block_uuid=d.get("blockUuid"),
        timestamp=d.get("timestamp", 0.0),
        trigger=Trigger(d.get("trigger", Trigger.FORWARD.value)),
    )


@dataclass
class ResumeState:
    """Everything needed to continue a survey run later."""
    answers: Dict[str, Any] = field(default_factory=dict)
    current_page_index: int = 0
    navigation_history: List[NavigationHistoryEntry] = field(default_factory=list)


def resume_to_dict(r: ResumeState) -> Dict[str, Any]:
    return {
        "answers": r.answers,
        "currentPageIndex": r.current_page_index,
        "navigationHistory": [entry_to_dict(e) for e in r.navigation_history],
    }


def resume_from_dict(d: Dict[str, Any]) -> ResumeState:
    if not isinstance(d, dict):
        raise SurveyLoadError(f"Resume state must be an object, got {type(d).__name__}")
    return ResumeState(
        answers=dict(d.get("answers") or {}),
        current_page_index=int(d.get("currentPageIndex", 0)),
        navigation_history=[entry_from_dict(e) for e in d.get("navigationHistory") or []],
    )


def resume_to_json(r: ResumeState) -> str:
    return json.dumps(resume_to_dict(r), sort_keys=True)


def resume_from_json(s: str) -> ResumeState:
    try:
        d = json.loads(s)
    except ValueError as e:
        raise SurveyLoadError(f"Invalid JSON: {e}")
    return resume_from_dict(d)

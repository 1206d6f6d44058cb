"""
Survey Analyzer: static diagnostics for survey definitions.

This module provides lightweight analysis of Survey objects:
    - Field usage inventory (declared vs referenced by conditions)
    - Condition health (unparseable text, expression complexity)
    - Rule targets that do not exist
    - Page-graph reachability and cycles

IMPORTANT: This is the analysis layer. It does NOT modify the survey.
It only produces read-only reports.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from surveynav.condition_parser import ConditionParseError, parse_condition
from surveynav.expressions import (
    ArrayLiteral,
    BinaryExpression,
    Expression,
    MemberAccess,
    MethodCall,
    UnaryExpression,
    VariableReference,
)
from surveynav.graph import PageGraph, build_page_graph
from surveynav.model import SUBMIT_TARGET, Block, Condition, ConditionRule, Survey
from surveynav.patterns import match_condition
from surveynav.resolver import find_block_position


@dataclass
class ExpressionMetrics:
    """Metrics about a single expression tree."""
    depth: int = 0
    node_count: int = 0
    variable_references: Set[str] = field(default_factory=set)


def _analyze_expression(expr: Expression | None) -> ExpressionMetrics:
    """Recursively analyze an expression tree."""
    if expr is None:
        return ExpressionMetrics()

    metrics = ExpressionMetrics(node_count=1)

    if isinstance(expr, BinaryExpression):
        children = [expr.left, expr.right]
    elif isinstance(expr, UnaryExpression):
        children = [expr.operand]
    elif isinstance(expr, ArrayLiteral):
        children = list(expr.elements)
    elif isinstance(expr, MemberAccess):
        children = [expr.target, expr.key]
    elif isinstance(expr, MethodCall):
        children = [expr.target, *expr.arguments]
    else:
        children = []

    if isinstance(expr, VariableReference):
        metrics.variable_references.add(expr.path[0])

    for child in children:
        sub = _analyze_expression(child)
        metrics.depth = max(metrics.depth, 1 + sub.depth)
        metrics.node_count += sub.node_count
        metrics.variable_references.update(sub.variable_references)

    return metrics


def _find_cycles_dfs(graph: Dict[int, List[int]], start: int, visited: Set[int],
                     rec_stack: Set[int], path: List[int]) -> Optional[List[int]]:
    """DFS to find a cycle starting from a node."""
    visited.add(start)
    rec_stack.add(start)
    path.append(start)

    for neighbor in graph.get(start, []):
        if neighbor not in visited:
            cycle = _find_cycles_dfs(graph, neighbor, visited, rec_stack, path[:])
            if cycle:
                return cycle
        elif neighbor in rec_stack:
            cycle_start_idx = path.index(neighbor)
            return path[cycle_start_idx:] + [neighbor]

    rec_stack.remove(start)
    return None


@dataclass
class SurveyReport:
    """Analysis report for a survey."""

    survey_name: str
    mode: str = ""
    total_pages: int = 0
    total_blocks: int = 0
    total_rules: int = 0
    total_conditions: int = 0
    default_rules: int = 0
    blocks_with_visibility: int = 0

    # Fields
    declared_fields: Set[str] = field(default_factory=set)
    referenced_fields: Set[str] = field(default_factory=set)
    undefined_fields: Set[str] = field(default_factory=set)
    field_usage: Dict[str, int] = field(default_factory=dict)

    # Conditions
    pattern_conditions: int = 0
    expression_conditions: int = 0
    unparseable_conditions: List[Tuple[str, str]] = field(default_factory=list)
    max_expression_depth: int = 0

    # Rules and page graph
    dangling_targets: List[Tuple[str, str]] = field(default_factory=list)
    unreachable_pages: List[str] = field(default_factory=list)
    has_cycles: bool = False
    cycle_example: Optional[List[str]] = None

    warnings: List[str] = field(default_factory=list)

    def add_warning(self, msg: str) -> None:
        """Add a warning to the report."""
        if msg not in self.warnings:
            self.warnings.append(msg)


def _iter_conditions(block: Block) -> Iterator[Condition]:
    if block.visible_if is not None:
        yield block.visible_if
    for rule in block.navigation_rules:
        if not rule.is_default and rule.condition is not None:
            yield rule.condition
    if block.branching_logic is not None and block.branching_logic.condition:
        yield block.branching_logic.condition


def _record_condition(report: SurveyReport, block: Block, condition: Condition) -> None:
    if isinstance(condition, (list, tuple)):
        for item in condition:
            _record_condition(report, block, item)
        return

    if isinstance(condition, ConditionRule):
        fields = {condition.field.split(".")[0]}
    elif isinstance(condition, dict):
        fields = {str(condition.get("field", "")).split(".")[0]} - {""}
    elif isinstance(condition, str):
        rule = match_condition(condition)
        if rule is not None:
            report.pattern_conditions += 1
            fields = {rule.field.split(".")[0]}
        else:
            try:
                metrics = _analyze_expression(parse_condition(condition))
            except ConditionParseError as e:
                report.unparseable_conditions.append((block.uuid, condition))
                report.add_warning(f"Unparseable condition on block {block.uuid}: {e}")
                return
            report.expression_conditions += 1
            report.max_expression_depth = max(report.max_expression_depth, metrics.depth)
            fields = metrics.variable_references
    else:
        return

    report.total_conditions += 1
    for name in fields:
        report.referenced_fields.add(name)
        report.field_usage[name] = report.field_usage.get(name, 0) + 1


def _page_edges(graph: PageGraph, report: SurveyReport) -> Dict[int, List[int]]:
    """
    Page-to-page edges: rule targets, branching and sequential order.

    A page with an end block or a default rule never falls through to
    the following page.
    """
    edges: Dict[int, List[int]] = defaultdict(list)
    total = len(graph.pages)

    def add(source: int, target: int) -> None:
        if 0 <= target < total and target not in edges[source]:
            edges[source].append(target)

    for page_index, page in enumerate(graph.pages):
        terminal = any(
            block.is_end_block or any(rule.is_default for rule in block.navigation_rules)
            for block in page
        )
        if not terminal:
            add(page_index, page_index + 1)
        for block in page:
            for rule in block.navigation_rules:
                if rule.target == SUBMIT_TARGET:
                    continue
                if rule.is_page:
                    target = graph.page_index(rule.target)
                else:
                    position = find_block_position(graph.pages, rule.target)
                    target = position.page_index if position else -1
                if target < 0:
                    report.dangling_targets.append((block.uuid, rule.target))
                else:
                    add(page_index, target)
            if block.next_block_id:
                position = find_block_position(graph.pages, block.next_block_id)
                if position is None:
                    report.dangling_targets.append((block.uuid, block.next_block_id))
                else:
                    add(page_index, position.page_index)

        branching = page[0].branching_logic if page else None
        if branching is not None:
            target = branching.target_page
            if isinstance(target, int) and not isinstance(target, bool):
                add(page_index, target)
            elif target == "prev":
                add(page_index, page_index - 1)

    return edges


def analyze_survey(survey: Survey, computed_fields: Iterable[str] = ()) -> SurveyReport:
    """
    Perform static analysis of a Survey.

    Args:
        survey: Survey to analyze
        computed_fields: Names supplied by the computed-fields provider;
                         conditions may reference them without a block

    Returns:
        SurveyReport with metrics and warnings
    """
    report = SurveyReport(survey_name=survey.name)
    graph = build_page_graph(survey.root, survey.mode)
    report.mode = graph.mode.value
    report.total_pages = len(graph.pages)

    blocks = list(survey.root.iter_blocks()) if survey.root is not None else []
    content_blocks = [b for b in blocks if not b.is_set and not b.is_section]
    report.total_blocks = len(content_blocks)
    report.declared_fields = set(survey.field_names())

    # =========================================================================
    # 1. CONDITIONS AND FIELD USAGE
    # =========================================================================

    for block in blocks:
        report.total_rules += len(block.navigation_rules)
        defaults = sum(1 for rule in block.navigation_rules if rule.is_default)
        report.default_rules += defaults
        if defaults > 1:
            report.add_warning(f"Block {block.uuid} has {defaults} default rules; only the first is used")
        if block.visible_if is not None:
            report.blocks_with_visibility += 1
        for condition in _iter_conditions(block):
            _record_condition(report, block, condition)

    report.undefined_fields = report.referenced_fields - report.declared_fields - set(computed_fields)

    # =========================================================================
    # 2. PAGE GRAPH
    # =========================================================================

    edges = _page_edges(graph, report)

    reachable: Set[int] = set()
    stack = [0]
    while stack:
        node = stack.pop()
        if node in reachable:
            continue
        reachable.add(node)
        stack.extend(n for n in edges.get(node, []) if n not in reachable)

    report.unreachable_pages = [
        graph.page_uuids[i] for i in range(len(graph.pages)) if i not in reachable
    ]

    visited: Set[int] = set()
    for page_index in sorted(edges):
        if page_index not in visited:
            cycle = _find_cycles_dfs(edges, page_index, visited, set(), [])
            if cycle:
                report.has_cycles = True
                report.cycle_example = [graph.page_uuids[i] for i in cycle]
                break

    # =========================================================================
    # 3. WARNING FLAGS
    # =========================================================================

    if survey.root is None:
        report.add_warning("Survey has no root node")

    if report.dangling_targets:
        report.add_warning(
            "Rule targets not found: " + ", ".join(f"{src} -> {dst}" for src, dst in report.dangling_targets)
        )

    if report.undefined_fields:
        report.add_warning(f"Conditions reference undeclared fields: {', '.join(sorted(report.undefined_fields))}")

    if report.unreachable_pages:
        report.add_warning(f"Unreachable pages: {', '.join(report.unreachable_pages)}")

    if report.has_cycles:
        report.add_warning(f"Cycle detected: {' -> '.join(report.cycle_example)}")

    if report.max_expression_depth > 5:
        report.add_warning(f"High expression complexity: max depth {report.max_expression_depth}")

    return report


__all__ = ["ExpressionMetrics", "SurveyReport", "analyze_survey"]

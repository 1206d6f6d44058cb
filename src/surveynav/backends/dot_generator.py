"""
Graphviz DOT diagram generator for surveys.

Converts a Survey's page graph into Graphviz DOT format for visualization.

Supports multiple modes:
    - SIMPLE: One node per page, sequential and rule edges between pages
    - DETAILED: One node per block, rule edges labelled with conditions
    - MANAGEMENT: DETAILED, with blocks clustered by page
"""

from enum import Enum
from typing import List

from surveynav.graph import PageGraph, build_page_graph
from surveynav.model import SUBMIT_TARGET, Block, Condition, ConditionRule, NavigationRule, Survey
from surveynav.resolver import find_block_position


class DotMode(Enum):
    """Visualization modes for DOT output."""
    SIMPLE = "simple"          # Pages only
    DETAILED = "detailed"      # Blocks and conditions
    MANAGEMENT = "management"  # Blocks grouped by page


def _escape_dot_string(s: str) -> str:
    """Escape special characters for DOT labels."""
    if not s:
        return '""'
    # Escape backslashes first
    s = s.replace('\\', '\\\\')
    s = s.replace('"', '\\"')
    s = s.replace('\n', '\\n')
    return f'"{s}"'


def _escape_dot_id(identifier: str) -> str:
    """Quote an identifier unless it is a plain DOT ID."""
    if identifier and not identifier[0].isdigit() and identifier.replace('_', '').isalnum():
        return identifier
    return _escape_dot_string(identifier)


def _condition_label(condition: Condition) -> str:
    """Readable one-line label for a condition."""
    if condition is None:
        return ""
    if isinstance(condition, str):
        return condition.strip()
    if isinstance(condition, ConditionRule):
        if condition.value is None:
            return f"{condition.field} {condition.operator}"
        return f"{condition.field} {condition.operator} {condition.value!r}"
    if isinstance(condition, dict):
        return f"{condition.get('field')} {condition.get('operator')} {condition.get('value')!r}"
    if isinstance(condition, (list, tuple)):
        return " AND ".join(_condition_label(item) for item in condition)
    return "?"


def _shorten(label: str, limit: int = 40) -> str:
    if len(label) > limit:
        return label[:limit - 3] + "..."
    return label


def _block_label(block: Block) -> str:
    title = block.properties.get("label") or block.properties.get("title") or block.field_name or block.uuid
    return f"{title}\n[{block.type}]"


def _rule_label(rule: NavigationRule, mode: DotMode) -> str:
    if rule.is_default:
        return "default"
    if mode == DotMode.SIMPLE:
        return ""
    return _shorten(_condition_label(rule.condition))


def _edge(source: str, target: str, attrs: List[str]) -> str:
    attr = f" [{', '.join(attrs)}]" if attrs else ""
    return f"  {_escape_dot_id(source)} -> {_escape_dot_id(target)}{attr};"


def _rule_target_node(rule: NavigationRule, graph: PageGraph, mode: DotMode) -> str:
    """Node id a rule points to, or "" if the target does not exist."""
    if rule.target == SUBMIT_TARGET:
        return "SUBMIT"
    if mode == DotMode.SIMPLE:
        if rule.is_page:
            return rule.target if graph.page_index(rule.target) >= 0 else ""
        position = find_block_position(graph.pages, rule.target)
        return graph.page_uuids[position.page_index] if position else ""
    if rule.is_page:
        index = graph.page_index(rule.target)
        if index < 0:
            return ""
        return graph.block_uuid_at(index, 0) or ""
    return rule.target if find_block_position(graph.pages, rule.target) else ""


def generate_dot(survey: Survey, mode: DotMode = DotMode.SIMPLE) -> str:
    """
    Generate Graphviz DOT format for a survey.

    Args:
        survey: Survey object to visualize
        mode: Visualization mode (SIMPLE, DETAILED, MANAGEMENT)

    Returns:
        String containing DOT graph definition
    """
    graph = build_page_graph(survey.root, survey.mode)
    lines = []

    lines.append("digraph survey {")
    lines.append("  rankdir=LR;")
    lines.append("  node [shape=box, style=filled, fillcolor=lightblue];")
    if mode == DotMode.MANAGEMENT:
        lines.append("  compound=true;")

    # =========================================================================
    # NODES
    # =========================================================================

    lines.append('  START [shape=ellipse, fillcolor=lightgreen, label="START"];')
    lines.append('  SUBMIT [shape=ellipse, fillcolor=lightpink, label="SUBMIT"];')

    if mode == DotMode.SIMPLE:
        for page_index, page_uuid in enumerate(graph.page_uuids):
            if not graph.pages[page_index]:
                continue
            label = f"Page {page_index + 1}\n{len(graph.pages[page_index])} block(s)"
            lines.append(f"  {_escape_dot_id(page_uuid)} [label={_escape_dot_string(label)}];")
    elif mode == DotMode.MANAGEMENT:
        for page_index, page in enumerate(graph.pages):
            if not page:
                continue
            lines.append(f"  subgraph {_escape_dot_string('cluster_' + graph.page_uuids[page_index])} {{")
            lines.append(f"    label={_escape_dot_string(f'Page {page_index + 1}')};")
            lines.append("    style=filled;")
            lines.append("    color=lightgrey;")
            for block in page:
                lines.append(f"    {_escape_dot_id(block.uuid)} [label={_escape_dot_string(_block_label(block))}];")
            lines.append("  }")
    else:
        for _, block in graph.iter_blocks():
            lines.append(f"  {_escape_dot_id(block.uuid)} [label={_escape_dot_string(_block_label(block))}];")

    # =========================================================================
    # STRUCTURAL EDGES
    # =========================================================================

    if mode == DotMode.SIMPLE:
        order = [uuid for uuid, page in zip(graph.page_uuids, graph.pages) if page]
    else:
        order = [block.uuid for _, block in graph.iter_blocks()]

    if order:
        lines.append(_edge("START", order[0], []))
        for source, target in zip(order, order[1:]):
            lines.append(_edge(source, target, []))
        lines.append(_edge(order[-1], "SUBMIT", []))

    # =========================================================================
    # RULE EDGES
    # =========================================================================

    for position, block in graph.iter_blocks():
        source = graph.page_uuids[position.page_index] if mode == DotMode.SIMPLE else block.uuid

        for rule in block.navigation_rules:
            target = _rule_target_node(rule, graph, mode)
            if not target:
                continue
            attrs = ["style=dashed", "color=blue"]
            label = _rule_label(rule, mode)
            if label:
                attrs.append(f"label={_escape_dot_string(label)}")
            lines.append(_edge(source, target, attrs))

        if block.next_block_id:
            next_position = find_block_position(graph.pages, block.next_block_id)
            if next_position is not None:
                target = (graph.page_uuids[next_position.page_index]
                          if mode == DotMode.SIMPLE else block.next_block_id)
                lines.append(_edge(source, target, ["style=dotted"]))

        if block.is_end_block:
            lines.append(_edge(source, "SUBMIT", ["style=bold"]))

    lines.append("}")

    return "\n".join(lines)


def save_dot_file(survey: Survey, filename: str, mode: DotMode = DotMode.SIMPLE) -> None:
    """
    Generate DOT and save to file.

    Args:
        survey: Survey to visualize
        filename: Output file path (.dot extension recommended)
        mode: Visualization mode
    """
    dot = generate_dot(survey, mode=mode)
    with open(filename, 'w', encoding='utf-8') as f:
        f.write(dot)


__all__ = ["DotMode", "generate_dot", "save_dot_file"]

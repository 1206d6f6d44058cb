"""
Condition Evaluator.

Answers one question: does this condition hold for these values?

Accepted condition forms:
    - ConditionRule (structured comparison)
    - list of ConditionRule (implicit AND)
    - dict in rule shape ({"field", "operator", "value", "type"})
    - condition text

Condition text is first matched against the authored-shape catalogue
(patterns.py); anything else goes through the expression parser and
interpreter. Condition text is never compiled or executed as code.

ARCHITECTURAL RULE:
    evaluate() never raises. Any failure (bad syntax, property of a
    missing value, unparseable date) is logged and counts as False.
"""

import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional, Sequence, Union

from surveynav.condition_parser import ConditionParseError, parse_condition
from surveynav.interpreter import interpret
from surveynav.model import Block, Condition, ConditionRule
from surveynav.patterns import match_condition, rule_to_expression
from surveynav.values import (
    compare,
    get_path,
    is_truthy,
    parse_date,
    to_boolean,
    to_number,
    to_string,
)

logger = logging.getLogger(__name__)

Today = Union[datetime, date, None]

_EVALUATION_ERRORS = (
    ConditionParseError,
    AttributeError,
    TypeError,
    ValueError,
    LookupError,
    ArithmeticError,
    RecursionError,
    re.error,
)

DATE_OPERATORS = frozenset({
    "dateEquals", "dateNotEquals",
    "dateGreaterThan", "dateGreaterThanOrEqual", "dateLessThan", "dateLessThanOrEqual",
    "dateBetween", "dateNotBetween",
    "isToday", "isPastDate", "isFutureDate", "isWeekday", "isWeekend",
    "dayOfWeekEquals", "monthEquals", "yearEquals",
    "ageGreaterThan", "ageLessThan", "ageBetween",
})

_MS_PER_YEAR = 365.25 * 24 * 60 * 60 * 1000


def _now(today: Today) -> datetime:
    if today is None:
        return datetime.now(timezone.utc).replace(tzinfo=None)
    return parse_date(today)


def _js_weekday(moment: datetime) -> int:
    """Day of week numbered like getDay(): Sunday is 0."""
    return (moment.weekday() + 1) % 7


def _is_empty(value: Any) -> bool:
    if value is None or value == "":
        return True
    return isinstance(value, (list, tuple)) and len(value) == 0


def _coerce(value: Any, value_type: str) -> Any:
    if value_type == "number":
        return to_number(value)
    if value_type == "boolean":
        return to_boolean(value)
    if value_type == "date":
        return parse_date(value)
    return to_string(value)


def _as_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _pair(value: Any) -> Optional[Sequence[Any]]:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return value
    return None


def _equal(a: Any, b: Any) -> bool:
    if isinstance(a, float) and isinstance(b, float) and (math.isnan(a) or math.isnan(b)):
        return False
    return a == b


def _in_list(item: Any, candidates: Sequence[Any], value_type: str) -> bool:
    coerced = _coerce(item, value_type)
    return any(_equal(coerced, _coerce(candidate, value_type)) for candidate in candidates)


def _age_in_years(birth: datetime, now: datetime) -> int:
    elapsed_ms = (now - birth).total_seconds() * 1000
    return math.floor(elapsed_ms / _MS_PER_YEAR)


def _evaluate_date_operator(field_value: Any, operator: str, value: Any, today: Today) -> bool:
    moment = parse_date(field_value)
    if moment is None:
        logger.debug("Not a date for %s: %r", operator, field_value)
        return False
    now = _now(today)

    if operator == "isToday":
        return moment.date() == now.date()
    if operator == "isPastDate":
        return moment < now
    if operator == "isFutureDate":
        return moment > now
    if operator == "isWeekday":
        return 1 <= _js_weekday(moment) <= 5
    if operator == "isWeekend":
        return _js_weekday(moment) in (0, 6)
    if operator == "dayOfWeekEquals":
        return _js_weekday(moment) == int(to_number(value))
    if operator == "monthEquals":
        return moment.month == int(to_number(value))
    if operator == "yearEquals":
        return moment.year == int(to_number(value))

    if operator in ("ageGreaterThan", "ageLessThan", "ageBetween"):
        age = _age_in_years(moment, now)
        if operator == "ageGreaterThan":
            return age > to_number(value)
        if operator == "ageLessThan":
            return age < to_number(value)
        bounds = _pair(value)
        if bounds is None:
            return False
        return to_number(bounds[0]) <= age <= to_number(bounds[1])

    if operator in ("dateBetween", "dateNotBetween"):
        bounds = _pair(value)
        if bounds is None:
            return False
        low, high = parse_date(bounds[0]), parse_date(bounds[1])
        if low is None or high is None:
            return False
        inside = low <= moment <= high
        return inside if operator == "dateBetween" else not inside

    other = parse_date(value)
    if other is None:
        logger.debug("Not a date for %s: %r", operator, value)
        return False
    if operator == "dateEquals":
        return moment.date() == other.date()
    if operator == "dateNotEquals":
        return moment.date() != other.date()
    if operator == "dateGreaterThan":
        return moment > other
    if operator == "dateGreaterThanOrEqual":
        return moment >= other
    if operator == "dateLessThan":
        return moment < other
    if operator == "dateLessThanOrEqual":
        return moment <= other

    raise ValueError(f"Unknown date operator: {operator}")


def evaluate_simple_condition(
    field_value: Any,
    operator: str,
    comparison_value: Any,
    value_type: str = "string",
    today: Today = None,
) -> bool:
    """
    Compare a field value against a comparison value.

    Both operands are coerced to value_type first ("string", "number",
    "boolean", "date"); list comparison values are coerced element-wise.

    Args:
        field_value: Current answer (None when unanswered)
        operator: Operator name ("==", "between", "containsAny", ...)
        comparison_value: Value from the rule
        value_type: Coercion type
        today: Clock used by the relative date operators (defaults to now)

    Returns:
        True if the comparison holds. Unknown operators are False.
    """
    if field_value is None:
        if operator in ("empty", "isEmpty"):
            return True
        if operator in ("notEmpty", "isNotEmpty"):
            return False
        if operator == "==":
            return comparison_value is None
        if operator == "!=":
            return comparison_value is not None
        return False

    if operator in ("empty", "isEmpty"):
        return _is_empty(field_value)
    if operator in ("notEmpty", "isNotEmpty"):
        return not _is_empty(field_value)

    if operator in DATE_OPERATORS:
        return _evaluate_date_operator(field_value, operator, comparison_value, today)

    if operator in ("containsAny", "containsAll", "containsNone"):
        if not isinstance(field_value, (list, tuple)):
            return False
        wanted = _as_list(comparison_value)
        if operator == "containsAll":
            return all(_in_list(item, field_value, value_type) for item in wanted)
        hit = any(_in_list(item, wanted, value_type) for item in field_value)
        return hit if operator == "containsAny" else not hit

    if operator in ("in", "notIn"):
        if not isinstance(comparison_value, (list, tuple)):
            return False
        found = _in_list(field_value, comparison_value, value_type)
        return found if operator == "in" else not found

    if operator in ("contains", "notContains"):
        if isinstance(field_value, (list, tuple)):
            found = _in_list(comparison_value, field_value, "string")
        else:
            found = to_string(comparison_value) in to_string(field_value)
        return found if operator == "contains" else not found
    if operator == "startsWith":
        return to_string(field_value).startswith(to_string(comparison_value))
    if operator == "endsWith":
        return to_string(field_value).endswith(to_string(comparison_value))
    if operator == "matches":
        return re.search(to_string(comparison_value), to_string(field_value)) is not None

    actual = _coerce(field_value, value_type)

    if operator in ("between", "notBetween"):
        bounds = _pair(comparison_value)
        if bounds is None:
            return False
        low, high = _coerce(bounds[0], value_type), _coerce(bounds[1], value_type)
        if actual is None or low is None or high is None:
            return False
        inside = compare(actual, low, ">=") and compare(actual, high, "<=")
        if operator == "between":
            return inside
        return compare(actual, low, "<") or compare(actual, high, ">")

    expected = _coerce(comparison_value, value_type)
    if value_type == "date" and (actual is None or expected is None):
        return False

    if operator == "==":
        return _equal(actual, expected)
    if operator == "!=":
        return not _equal(actual, expected)
    if operator in (">", ">=", "<", "<="):
        return compare(actual, expected, operator)

    logger.warning("Unknown condition operator: %s", operator)
    return False


def evaluate_rule(rule: ConditionRule, context: Mapping[str, Any], today: Today = None) -> bool:
    """
    Evaluate one structured rule against a value context.

    The rule's field may be a dotted path into nested values.
    """
    if not isinstance(rule.field, str) or not isinstance(rule.operator, str):
        logger.debug("Rule %r has no usable field or operator", rule)
        return False
    try:
        field_value = get_path(context, rule.field)
        return evaluate_simple_condition(field_value, rule.operator, rule.value, rule.value_type, today)
    except _EVALUATION_ERRORS as e:
        logger.debug("Rule %r failed to evaluate: %s", rule, e)
        return False


def _evaluate_text(text: str, context: Mapping[str, Any], today: Today) -> bool:
    if not text.strip():
        return False

    rule = match_condition(text)
    if rule is not None:
        return evaluate_rule(rule, context, today)

    expr = parse_condition(text)
    return is_truthy(interpret(expr, context))


def evaluate(condition: Condition, context: Mapping[str, Any], today: Today = None) -> bool:
    """
    Evaluate a condition against a value context.

    Args:
        condition: Text, ConditionRule, list of rules (AND), or rule dict
        context: Answers merged with computed values (read-only)
        today: Clock used by the relative date operators

    Returns:
        True if the condition holds; False on any failure
    """
    if condition is None:
        return False
    if isinstance(condition, bool):
        return condition

    try:
        if isinstance(condition, ConditionRule):
            return evaluate_rule(condition, context, today)
        if isinstance(condition, Mapping):
            return evaluate_rule(ConditionRule.from_dict(condition), context, today)
        if isinstance(condition, (list, tuple)):
            return all(evaluate(item, context, today) for item in condition)
        if isinstance(condition, str):
            return _evaluate_text(condition, context, today)
    except _EVALUATION_ERRORS as e:
        logger.debug("Condition %r evaluated to False: %s", condition, e)
        return False

    logger.debug("Unsupported condition type: %s", type(condition).__name__)
    return False


def is_block_visible(block: Block, context: Mapping[str, Any], today: Today = None) -> bool:
    """A block without a visibility condition is always visible."""
    if block.visible_if is None or block.visible_if == "":
        return True
    return evaluate(block.visible_if, context, today)


__all__ = [
    "DATE_OPERATORS",
    "evaluate",
    "evaluate_rule",
    "evaluate_simple_condition",
    "is_block_visible",
    "rule_to_expression",
]

"""
Condition pattern catalogue.

The visual rule builder stores conditions as text in a small set of fixed
shapes (see rule_to_expression). Most of those shapes use constructs the
expression grammar deliberately does not support (new Date(...), arrow
functions, RegExp), so they are recognised here and turned back into
structured ConditionRule objects, which evaluator.evaluate_rule handles
directly.

The catalogue is ordered: more specific shapes come first, the generic
"field OP literal" comparison comes last.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from surveynav.condition_parser import normalize_condition_text
from surveynav.model import ConditionRule


FIELD = r"([A-Za-z_$][\w$]*(?:\.[\w$]+)*)"
QUOTED = r"""["']([^"']*)["']"""
NUMBER = r"(-?\d+(?:\.\d+)?)"
EQ = r"===?"
NEQ = r"!==?"
AGE = (
    r"Math\.floor\(\(new Date\(\)\.getTime\(\)\s*-\s*new Date\(" + FIELD + r"\)\.getTime\(\)\)\s*/\s*"
    r"\(365\.25\s*\*\s*24\s*\*\s*60\s*\*\s*60\s*\*\s*1000\)\)"
)
LITERAL = r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|-?\d+(?:\.\d+)?|true|false|null)"""
BOUND = r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|-?\d+(?:\.\d+)?)"""


@dataclass(frozen=True)
class ConditionPattern:
    """One recognised authored shape."""
    name: str
    regex: "re.Pattern"
    build: Callable[["re.Match"], Optional[ConditionRule]]


def _json_array(text: str) -> Optional[list]:
    try:
        value = json.loads(text)
    except ValueError:
        return None
    return value if isinstance(value, list) else None


def _is_numeric(text: str) -> bool:
    return re.fullmatch(r"-?\d+(?:\.\d+)?", text.strip()) is not None


def _literal_value(token: str) -> tuple:
    """Return (value, value_type) for a literal token."""
    if token[0] in "\"'":
        return re.sub(r"\\(.)", r"\1", token[1:-1]), "string"
    if token == "true":
        return True, "boolean"
    if token == "false":
        return False, "boolean"
    if token == "null":
        return None, "string"
    number = float(token)
    return (int(number) if number.is_integer() else number), "number"


def _array_rule(field: str, operator: str, array_text: str) -> Optional[ConditionRule]:
    values = _json_array(array_text)
    if values is None:
        return None
    return ConditionRule(field=field, operator=operator, value=values, value_type="string")


def _range_rule(field: str, operator: str, low_token: str, high_token: str) -> ConditionRule:
    """Bounds are literal tokens; quoted numbers still make a numeric range."""
    low, high = (str(_literal_value(token)[0]) for token in (low_token, high_token))
    if _is_numeric(low) and _is_numeric(high):
        return ConditionRule(field=field, operator=operator, value=[float(low), float(high)], value_type="number")
    return ConditionRule(field=field, operator=operator, value=[low, high], value_type="string")


def _p(name: str, pattern: str, build: Callable) -> ConditionPattern:
    return ConditionPattern(name=name, regex=re.compile(r"^" + pattern + r"$"), build=build)


_DATE_COMPARE_OPS = {
    ">": "dateGreaterThan",
    ">=": "dateGreaterThanOrEqual",
    "<": "dateLessThan",
    "<=": "dateLessThanOrEqual",
}

_INVERSE_COMPARE = {">": "<", ">=": "<=", "<": ">", "<=": ">="}


PATTERNS: List[ConditionPattern] = [
    _p("date_equals",
       r"new Date\(" + FIELD + r"\)\.toDateString\(\)\s*" + EQ + r"\s*new Date\(" + QUOTED + r"\)\.toDateString\(\)",
       lambda m: ConditionRule(m.group(1), "dateEquals", m.group(2), "date")),
    _p("date_not_equals",
       r"new Date\(" + FIELD + r"\)\.toDateString\(\)\s*" + NEQ + r"\s*new Date\(" + QUOTED + r"\)\.toDateString\(\)",
       lambda m: ConditionRule(m.group(1), "dateNotEquals", m.group(2), "date")),
    _p("is_today",
       r"new Date\(" + FIELD + r"\)\.toDateString\(\)\s*" + EQ + r"\s*new Date\(\)\.toDateString\(\)",
       lambda m: ConditionRule(m.group(1), "isToday", None, "date")),
    _p("is_weekend",
       r"\(\(\)\s*=>\s*\{\s*const d = new Date\(" + FIELD + r"\);\s*const day = d\.getDay\(\);\s*"
       r"return day ===? 0 \|\| day ===? 6;?\s*\}\)\(\)",
       lambda m: ConditionRule(m.group(1), "isWeekend", None, "date")),
    _p("is_weekday",
       r"\(\(\)\s*=>\s*\{\s*const d = new Date\(" + FIELD + r"\);\s*const day = d\.getDay\(\);\s*"
       r"return day >= 1 && day <= 5;?\s*\}\)\(\)",
       lambda m: ConditionRule(m.group(1), "isWeekday", None, "date")),
    _p("age_between",
       r"\(\(\)\s*=>\s*\{\s*const age = " + AGE + r";\s*return age >= " + NUMBER + r" && age <= " + NUMBER
       + r";?\s*\}\)\(\)",
       lambda m: ConditionRule(m.group(1), "ageBetween", [float(m.group(2)), float(m.group(3))], "date")),
    _p("age_greater_than",
       AGE + r"\s*>\s*" + NUMBER,
       lambda m: ConditionRule(m.group(1), "ageGreaterThan", float(m.group(2)), "date")),
    _p("age_less_than",
       AGE + r"\s*<\s*" + NUMBER,
       lambda m: ConditionRule(m.group(1), "ageLessThan", float(m.group(2)), "date")),
    _p("date_between",
       r"new Date\(" + FIELD + r"\)\s*>=\s*new Date\(" + QUOTED + r"\)\s*&&\s*new Date\(\1\)\s*<=\s*new Date\("
       + QUOTED + r"\)",
       lambda m: ConditionRule(m.group(1), "dateBetween", [m.group(2), m.group(3)], "date")),
    _p("date_not_between",
       r"new Date\(" + FIELD + r"\)\s*<\s*new Date\(" + QUOTED + r"\)\s*\|\|\s*new Date\(\1\)\s*>\s*new Date\("
       + QUOTED + r"\)",
       lambda m: ConditionRule(m.group(1), "dateNotBetween", [m.group(2), m.group(3)], "date")),
    _p("date_compare",
       r"new Date\(" + FIELD + r"\)\s*(>=|<=|>|<)\s*new Date\(" + QUOTED + r"\)",
       lambda m: ConditionRule(m.group(1), _DATE_COMPARE_OPS[m.group(2)], m.group(3), "date")),
    _p("past_or_future",
       r"new Date\(" + FIELD + r"\)\s*(<|>)\s*new Date\(\)",
       lambda m: ConditionRule(m.group(1), "isPastDate" if m.group(2) == "<" else "isFutureDate", None, "date")),
    _p("day_of_week",
       r"new Date\(" + FIELD + r"\)\.getDay\(\)\s*" + EQ + r"\s*" + NUMBER,
       lambda m: ConditionRule(m.group(1), "dayOfWeekEquals", int(float(m.group(2))), "date")),
    _p("month",
       r"\(new Date\(" + FIELD + r"\)\.getMonth\(\)\s*\+\s*1\)\s*" + EQ + r"\s*" + NUMBER,
       lambda m: ConditionRule(m.group(1), "monthEquals", int(float(m.group(2))), "date")),
    _p("year",
       r"new Date\(" + FIELD + r"\)\.getFullYear\(\)\s*" + EQ + r"\s*" + NUMBER,
       lambda m: ConditionRule(m.group(1), "yearEquals", int(float(m.group(2))), "date")),
    _p("regex_test",
       r"new RegExp\(" + r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')""" + r"\)\.test\(" + FIELD + r"\)",
       lambda m: ConditionRule(m.group(2), "matches", _literal_value(m.group(1))[0], "string")),
    _p("contains_any",
       FIELD + r"\.some\(\(?v\)?\s*=>\s*(\[.*\])\.includes\(v\)\)",
       lambda m: _array_rule(m.group(1), "containsAny", m.group(2))),
    _p("contains_all",
       r"(\[.*\])\.every\(\(?v\)?\s*=>\s*" + FIELD + r"\.includes\(v\)\)",
       lambda m: _array_rule(m.group(2), "containsAll", m.group(1))),
    _p("contains_none",
       r"!" + FIELD + r"\.some\(\(?v\)?\s*=>\s*(\[.*\])\.includes\(v\)\)",
       lambda m: _array_rule(m.group(1), "containsNone", m.group(2))),
    _p("not_contains",
       r"!" + FIELD + r"\.includes\(" + QUOTED + r"\)",
       lambda m: ConditionRule(m.group(1), "notContains", m.group(2), "string")),
    _p("in_array",
       r"(\[.*\])\.includes\(" + FIELD + r"\)",
       lambda m: _array_rule(m.group(2), "in", m.group(1))),
    _p("not_in_array",
       r"!(\[.*\])\.includes\(" + FIELD + r"\)",
       lambda m: _array_rule(m.group(2), "notIn", m.group(1))),
    _p("is_empty",
       r"!" + FIELD + r"\s*\|\|\s*\1\s*===?\s*(?:\"\"|'')",
       lambda m: ConditionRule(m.group(1), "isEmpty", None, "string")),
    _p("is_not_empty",
       FIELD + r"\s*&&\s*\1\s*!==?\s*(?:\"\"|'')",
       lambda m: ConditionRule(m.group(1), "isNotEmpty", None, "string")),
    _p("between",
       FIELD + r"\s*>=\s*" + BOUND + r"\s*&&\s*\1\s*<=\s*" + BOUND,
       lambda m: _range_rule(m.group(1), "between", m.group(2), m.group(3))),
    _p("not_between",
       FIELD + r"\s*<\s*" + BOUND + r"\s*\|\|\s*\1\s*>\s*" + BOUND,
       lambda m: _range_rule(m.group(1), "notBetween", m.group(2), m.group(3))),
    _p("string_method",
       FIELD + r"\.(contains|startsWith|endsWith)\(" + QUOTED + r"\)",
       lambda m: ConditionRule(m.group(1), m.group(2), m.group(3), "string")),
    _p("comparison",
       FIELD + r"\s*(===|!==|==|!=|>=|<=|>|<)\s*" + LITERAL,
       lambda m: _comparison_rule(m.group(1), m.group(2), m.group(3))),
]


def _comparison_rule(field: str, operator: str, token: str) -> Optional[ConditionRule]:
    value, value_type = _literal_value(token)
    if value_type == "string" and operator in _INVERSE_COMPARE:
        # ordering against a quoted literal depends on the runtime type of the field
        return None
    operator = {"===": "==", "!==": "!="}.get(operator, operator)
    return ConditionRule(field=field, operator=operator, value=value, value_type=value_type)


def match_condition(text: str) -> Optional[ConditionRule]:
    """
    Recognise an authored condition shape.

    Args:
        text: Condition text

    Returns:
        Equivalent ConditionRule, or None if no catalogue entry matches
    """
    normalized = normalize_condition_text(text)
    for pattern in PATTERNS:
        match = pattern.regex.match(normalized)
        if match:
            rule = pattern.build(match)
            if rule is not None:
                return rule
    return None


def _number_literal(value: Any) -> str:
    number = float(value)
    return str(int(number)) if number.is_integer() else repr(number)


def rule_to_expression(rule: ConditionRule) -> str:
    """
    Render a ConditionRule as the condition text the rule builder stores.

    match_condition recognises every shape produced here.
    """
    field, operator, value = rule.field, rule.operator, rule.value
    pair = value if isinstance(value, (list, tuple)) and len(value) == 2 else [value, value]

    if operator in ("isEmpty", "empty"):
        return f'!{field} || {field} === ""'
    if operator in ("isNotEmpty", "notEmpty"):
        return f'{field} && {field} !== ""'
    if operator in ("in", "notIn"):
        array = json.dumps(value if isinstance(value, list) else [value])
        return f"{array}.includes({field})" if operator == "in" else f"!{array}.includes({field})"
    if operator in ("containsAny", "containsAll", "containsNone"):
        array = json.dumps(value if isinstance(value, list) else [value])
        if operator == "containsAny":
            return f"{field}.some(v => {array}.includes(v))"
        if operator == "containsAll":
            return f"{array}.every(v => {field}.includes(v))"
        return f"!{field}.some(v => {array}.includes(v))"
    if operator == "between":
        return f"{field} >= {json.dumps(pair[0])} && {field} <= {json.dumps(pair[1])}"
    if operator == "notBetween":
        return f"{field} < {json.dumps(pair[0])} || {field} > {json.dumps(pair[1])}"
    if operator == "matches":
        return f"new RegExp({json.dumps(value)}).test({field})"
    if operator == "notContains":
        return f"!{field}.includes({json.dumps(value)})"
    if operator == "dateEquals":
        return f"new Date({field}).toDateString() === new Date({json.dumps(value)}).toDateString()"
    if operator == "dateNotEquals":
        return f"new Date({field}).toDateString() !== new Date({json.dumps(value)}).toDateString()"
    if operator in _DATE_COMPARE_OPS.values():
        symbol = {v: k for k, v in _DATE_COMPARE_OPS.items()}[operator]
        return f"new Date({field}) {symbol} new Date({json.dumps(value)})"
    if operator == "dateBetween":
        return (f"new Date({field}) >= new Date({json.dumps(pair[0])}) && "
                f"new Date({field}) <= new Date({json.dumps(pair[1])})")
    if operator == "dateNotBetween":
        return (f"new Date({field}) < new Date({json.dumps(pair[0])}) || "
                f"new Date({field}) > new Date({json.dumps(pair[1])})")
    if operator == "isToday":
        return f"new Date({field}).toDateString() === new Date().toDateString()"
    if operator == "isPastDate":
        return f"new Date({field}) < new Date()"
    if operator == "isFutureDate":
        return f"new Date({field}) > new Date()"
    if operator == "isWeekday":
        return (f"(() => {{ const d = new Date({field}); const day = d.getDay(); "
                f"return day >= 1 && day <= 5; }})()")
    if operator == "isWeekend":
        return (f"(() => {{ const d = new Date({field}); const day = d.getDay(); "
                f"return day === 0 || day === 6; }})()")
    if operator == "dayOfWeekEquals":
        return f"new Date({field}).getDay() === {_number_literal(value)}"
    if operator == "monthEquals":
        return f"(new Date({field}).getMonth() + 1) === {_number_literal(value)}"
    if operator == "yearEquals":
        return f"new Date({field}).getFullYear() === {_number_literal(value)}"
    age = (f"Math.floor((new Date().getTime() - new Date({field}).getTime()) / "
           f"(365.25 * 24 * 60 * 60 * 1000))")
    if operator == "ageGreaterThan":
        return f"{age} > {_number_literal(value)}"
    if operator == "ageLessThan":
        return f"{age} < {_number_literal(value)}"
    if operator == "ageBetween":
        return (f"(() => {{ const age = {age}; return age >= {_number_literal(pair[0])} "
                f"&& age <= {_number_literal(pair[1])}; }})()")
    if operator in ("contains", "startsWith", "endsWith"):
        return f"{field}.{operator}({json.dumps(value)})"

    if rule.value_type == "number" and value is not None:
        return f"{field} {operator} {_number_literal(value)}"
    return f"{field} {operator} {json.dumps(value)}"


__all__ = ["ConditionPattern", "PATTERNS", "match_condition", "rule_to_expression"]

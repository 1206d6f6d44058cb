"""
Value helpers shared by the interpreter and the structured-rule evaluator.

Answers arrive as JSON-ish values (str, int, float, bool, None, list, dict)
and conditions are authored with JavaScript semantics in mind, so the
coercions here follow those semantics closely enough for authored
conditions: loose equality between "18" and 18, truthiness of "" and 0,
"length" on strings and arrays.
"""

import math
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional, Sequence


NAN = float("nan")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def get_member(value: Any, key: Any) -> Any:
    """
    Read one property from a value.

    Raises:
        TypeError: When reading a property of None (JS "undefined")
    """
    if value is None:
        raise TypeError(f"Cannot read property {key!r} of undefined")

    if isinstance(value, Mapping):
        return value.get(key if not _is_number(key) else str(int(key)))

    if isinstance(value, (str, list, tuple)):
        if key == "length":
            return len(value)
        index = key
        if isinstance(index, str) and index.isdigit():
            index = int(index)
        if _is_number(index) and float(index).is_integer():
            index = int(index)
            if 0 <= index < len(value):
                return value[index]
        return None

    return None


def get_path(context: Mapping[str, Any], path: str) -> Any:
    """
    Resolve a dotted path ("address.country", "tags.length") in a context.

    A missing top-level or leaf key resolves to None; reading through a
    missing intermediate value raises TypeError, as property access on
    undefined does for authored conditions.
    """
    segments = path.split(".")
    current: Any = context.get(segments[0]) if isinstance(context, Mapping) else None
    for segment in segments[1:]:
        current = get_member(current, segment)
    return current


def is_truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def to_number(value: Any) -> float:
    """Number() coercion; failures become NaN."""
    if value is None:
        return NAN
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0.0
        try:
            return float(text)
        except ValueError:
            return NAN
    if isinstance(value, (datetime, date)):
        return parse_date(value).replace(tzinfo=timezone.utc).timestamp() * 1000
    return NAN


def to_string(value: Any) -> str:
    """String() coercion."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else to_string(v) for v in value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def to_boolean(value: Any) -> bool:
    """Boolean() coercion, except the strings "false"/"0" count as false.

    Form widgets deliver checkbox state as text, so a stored "false" must
    compare equal to false.
    """
    if isinstance(value, str) and value.strip().lower() in ("false", "0"):
        return False
    return is_truthy(value)


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a date-like value into a naive UTC datetime.

    Accepts datetime/date objects, ISO-8601 strings (with or without time,
    trailing "Z" allowed) and epoch milliseconds. Returns None when the
    value cannot be interpreted as a date.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    elif _is_number(value):
        try:
            result = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            result = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if result.tzinfo is not None:
        result = result.astimezone(timezone.utc).replace(tzinfo=None)
    return result


def loose_equals(left: Any, right: Any) -> bool:
    """The == comparison."""
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) and not isinstance(right, bool):
        return loose_equals(1 if left else 0, right)
    if isinstance(right, bool) and not isinstance(left, bool):
        return loose_equals(left, 1 if right else 0)
    if _is_number(left) and isinstance(right, str):
        return left == to_number(right)
    if isinstance(left, str) and _is_number(right):
        return to_number(left) == right
    return left == right


def strict_equals(left: Any, right: Any) -> bool:
    """The === comparison."""
    if left is None or right is None:
        return left is None and right is None
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def compare(left: Any, right: Any, operator: str) -> bool:
    """Relational comparison (<, <=, >, >=); incomparable values are False."""
    if isinstance(left, datetime) and isinstance(right, datetime):
        a, b = left, right
    elif isinstance(left, str) and isinstance(right, str):
        a, b = left, right
    else:
        a, b = to_number(left), to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False

    if operator == ">":
        return a > b
    if operator == ">=":
        return a >= b
    if operator == "<":
        return a < b
    if operator == "<=":
        return a <= b
    raise ValueError(f"Unknown comparison operator: {operator}")


def contains_value(container: Sequence[Any], item: Any) -> bool:
    """Array membership using strict equality."""
    return any(strict_equals(element, item) for element in container)


__all__ = [
    "NAN",
    "get_member",
    "get_path",
    "is_truthy",
    "to_number",
    "to_string",
    "to_boolean",
    "parse_date",
    "loose_equals",
    "strict_equals",
    "compare",
    "contains_value",
]

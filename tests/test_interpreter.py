"""
Tests for the expression interpreter and the value helpers it uses.

Values follow JavaScript semantics closely enough for authored
conditions: loose equality, truthiness, string concatenation, length.
"""

import math
from datetime import datetime

import pytest

from surveynav.condition_parser import parse_condition
from surveynav.interpreter import interpret
from surveynav.values import (
    compare,
    get_path,
    is_truthy,
    loose_equals,
    parse_date,
    strict_equals,
    to_boolean,
    to_number,
    to_string,
)


def run(text, **context):
    return interpret(parse_condition(text), context)


class TestValues:
    """Coercions."""

    def test_truthiness(self):
        assert not is_truthy(None)
        assert not is_truthy("")
        assert not is_truthy(0)
        assert not is_truthy(float("nan"))
        assert is_truthy("0")
        assert is_truthy([])
        assert is_truthy({})

    def test_to_number(self):
        assert to_number("18") == 18.0
        assert to_number("") == 0.0
        assert to_number(True) == 1.0
        assert math.isnan(to_number("abc"))
        assert math.isnan(to_number(None))

    def test_to_string(self):
        assert to_string(18.0) == "18"
        assert to_string(True) == "true"
        assert to_string(None) == "null"
        assert to_string(["a", 1]) == "a,1"

    def test_to_boolean_accepts_text_false(self):
        assert to_boolean("false") is False
        assert to_boolean("0") is False
        assert to_boolean("yes") is True

    def test_loose_and_strict_equality(self):
        assert loose_equals("18", 18)
        assert loose_equals(True, 1)
        assert not strict_equals("18", 18)
        assert strict_equals(18, 18.0)
        assert loose_equals(None, None)
        assert not loose_equals(None, 0)

    def test_compare_incomparable_is_false(self):
        assert not compare("abc", 3, ">")
        assert not compare(None, 3, "<")
        assert compare("b", "a", ">")

    def test_parse_date_variants(self):
        assert parse_date("2024-03-01") == datetime(2024, 3, 1)
        assert parse_date("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10)
        assert parse_date(0) == datetime(1970, 1, 1)
        assert parse_date("not a date") is None
        assert parse_date(True) is None

    def test_get_path(self):
        context = {"address": {"country": "US"}, "tags": ["a", "b"]}
        assert get_path(context, "address.country") == "US"
        assert get_path(context, "tags.length") == 2
        assert get_path(context, "missing") is None
        with pytest.raises(TypeError):
            get_path(context, "missing.deeper")


class TestInterpret:
    """Evaluating parsed trees."""

    def test_comparison(self):
        assert run("age >= 18", age=20) is True
        assert run("age >= 18", age=16) is False
        assert run("age >= 18", age="20") is True

    def test_missing_field_is_not_greater(self):
        assert run("age > 18") is False

    def test_logical_returns_operand(self):
        assert run("a || b", a="", b="fallback") == "fallback"
        assert run("a && b", a=0, b=1) == 0

    def test_short_circuit_skips_error(self):
        assert run("missing && missing.deeper == 1") is None

    def test_string_concatenation(self):
        assert run("first + ' ' + last", first="Ada", last="Lovelace") == "Ada Lovelace"

    def test_arithmetic(self):
        assert run("(a + b) * 2", a=1, b=2) == 6.0
        assert run("a + b", a=1, b="2") == "12"
        assert run("a % 3", a=10) == 1.0
        assert math.isinf(run("a / 0", a=1))
        assert math.isnan(run("a / 0", a=0))

    def test_negation(self):
        assert run("-a", a=3) == -3.0
        assert run("!a", a="") is True

    def test_methods(self):
        assert run("email.endsWith('@example.com')", email="a@example.com") is True
        assert run("name.toLowerCase() == 'ada'", name="ADA") is True
        assert run("name.trim().length", name="  x ") == 1
        assert run("tags.includes('b')", tags=["a", "b"]) is True
        assert run("tags.indexOf('z')", tags=["a"]) == -1

    def test_array_literal_membership(self):
        assert run("['US', 'CA'].includes(country)", country="CA") is True

    def test_method_on_undefined_raises(self):
        with pytest.raises(TypeError):
            run("email.endsWith('x')")

    def test_string_method_on_number_raises(self):
        with pytest.raises(TypeError):
            run("age.startsWith('1')", age=10)

    def test_loose_equality_across_types(self):
        assert run("age == '18'", age=18) is True
        assert run("age === '18'", age=18) is False

    def test_context_not_mutated(self):
        context = {"a": [1, 2]}
        interpret(parse_condition("a.includes(1) && a.length == 2"), context)
        assert context == {"a": [1, 2]}

"""
Tests for condition evaluation.

evaluate() is pure and never raises: bad syntax, missing values and
unparseable dates all come out as False.
"""

from datetime import datetime

import pytest

from surveynav.evaluator import (
    evaluate,
    evaluate_rule,
    evaluate_simple_condition,
    is_block_visible,
)
from surveynav.model import Block, ConditionRule


TODAY = datetime(2024, 6, 12, 12, 0)  # a Wednesday


class TestEvaluateText:
    """String conditions."""

    def test_age_condition(self):
        assert evaluate("age >= 18", {"age": 20}) is True
        assert evaluate("age >= 18", {"age": 16}) is False

    def test_numeric_text_answer(self):
        assert evaluate("age >= 18", {"age": "21"}) is True

    def test_unanswered_field(self):
        assert evaluate("country == 'US'", {}) is False
        assert evaluate("country != 'US'", {}) is True

    def test_compound_expression(self):
        context = {"age": 30, "country": "US"}
        assert evaluate("age >= 18 && country == 'US'", context) is True
        assert evaluate("age >= 18 && country == 'CA'", context) is False
        assert evaluate("age < 18 || country == 'US'", context) is True

    def test_method_expression(self):
        assert evaluate("email.endsWith('@example.com')", {"email": "a@example.com"}) is True

    def test_builder_shapes(self):
        context = {"tags": ["a", "c"], "country": "CA", "name": ""}
        assert evaluate('tags.some(v => ["a", "b"].includes(v))', context) is True
        assert evaluate('["US", "CA"].includes(country)', context) is True
        assert evaluate('!name || name === ""', context) is True

    def test_blank_text_is_false(self):
        assert evaluate("", {}) is False
        assert evaluate("   ", {}) is False

    @pytest.mark.parametrize("text", [
        "age >",
        "window.alert(1)",
        "missing.deeper == 1",
        "name.startsWith('a')",
        "new Date(x).valueOf()",
    ])
    def test_failures_are_false(self, text):
        assert evaluate(text, {"name": 5}) is False

    def test_identifier_bounds_read_context(self):
        context = {"score": 5, "low": 1, "high": 10}
        assert evaluate("score >= low && score <= high", context) is True
        assert evaluate("score < low || score > high", context) is False
        assert evaluate("score >= low && score <= high", {"score": 50, "low": 1, "high": 10}) is False

    def test_ordering_against_quoted_number(self):
        """A number compares numerically with a quoted numeric literal."""
        assert evaluate("score > '5'", {"score": 10}) is True
        assert evaluate("score <= '5'", {"score": 10}) is False
        assert evaluate("(score > '5')", {"score": 10}) is True

    def test_context_untouched(self):
        context = {"age": 20, "tags": ["a"]}
        evaluate("age >= 18 && tags.includes('a')", context)
        assert context == {"age": 20, "tags": ["a"]}


class TestEvaluateOtherForms:
    """Rules, rule lists, dicts and odd inputs."""

    def test_none_is_false(self):
        assert evaluate(None, {}) is False

    def test_bool_passthrough(self):
        assert evaluate(True, {}) is True
        assert evaluate(False, {}) is False

    def test_rule(self):
        assert evaluate(ConditionRule("age", ">=", 18, "number"), {"age": 18}) is True

    def test_rule_list_is_and(self):
        rules = [ConditionRule("age", ">=", 18, "number"), ConditionRule("country", "==", "US")]
        assert evaluate(rules, {"age": 20, "country": "US"}) is True
        assert evaluate(rules, {"age": 20, "country": "CA"}) is False

    def test_rule_dict(self):
        condition = {"field": "age", "operator": ">", "value": "17", "type": "number"}
        assert evaluate(condition, {"age": 18}) is True

    def test_malformed_dict_is_false(self):
        assert evaluate({"operator": "=="}, {}) is False

    @pytest.mark.parametrize("condition", [
        {"field": 5, "operator": "=="},
        {"field": None, "operator": "==", "value": 1},
        {"field": "x", "operator": None},
        {"field": ["x"], "operator": "isEmpty"},
        ConditionRule(field=None, operator="=="),
        [ConditionRule("x", "==", 1, "number"), {"field": 3, "operator": "=="}],
    ])
    def test_malformed_rule_fields_are_false(self, condition):
        assert evaluate(condition, {"x": 1}) is False

    def test_unsupported_type_is_false(self):
        assert evaluate(42, {}) is False

    def test_dotted_rule_field(self):
        rule = ConditionRule("address.country", "==", "US")
        assert evaluate(rule, {"address": {"country": "US"}}) is True
        assert evaluate_rule(ConditionRule("missing.country", "==", "US"), {}) is False


class TestSimpleCondition:
    """Operator semantics."""

    def test_equality_coercion(self):
        assert evaluate_simple_condition("18", "==", 18, "number")
        assert evaluate_simple_condition(18, "==", "18", "string")
        assert evaluate_simple_condition("false", "==", False, "boolean")
        assert not evaluate_simple_condition("abc", "==", "abc", "number")

    def test_ordering(self):
        assert evaluate_simple_condition(5, "<", 10, "number")
        assert not evaluate_simple_condition("b", "<", "a", "string")

    def test_empty(self):
        assert evaluate_simple_condition(None, "isEmpty", None)
        assert evaluate_simple_condition([], "empty", None)
        assert evaluate_simple_condition("x", "notEmpty", None)
        assert not evaluate_simple_condition(None, "isNotEmpty", None)

    def test_contains_on_text_and_lists(self):
        assert evaluate_simple_condition("hello world", "contains", "world")
        assert evaluate_simple_condition(["a", "b"], "contains", "b")
        assert evaluate_simple_condition("hello", "notContains", "x")

    def test_list_operators(self):
        assert evaluate_simple_condition(["a", "b"], "containsAll", ["a", "b"])
        assert not evaluate_simple_condition(["a"], "containsAll", ["a", "b"])
        assert evaluate_simple_condition(["a"], "containsNone", ["x", "y"])
        assert not evaluate_simple_condition("a", "containsAny", ["a"])
        assert evaluate_simple_condition(2, "in", [1, 2, 3], "number")
        assert evaluate_simple_condition("z", "notIn", ["a"])

    def test_between(self):
        assert evaluate_simple_condition(15, "between", [10, 20], "number")
        assert evaluate_simple_condition(10, "between", [10, 20], "number")
        assert evaluate_simple_condition(25, "notBetween", [10, 20], "number")
        assert not evaluate_simple_condition(15, "between", [10], "number")

    def test_string_operators(self):
        assert evaluate_simple_condition("Alice", "startsWith", "Al")
        assert evaluate_simple_condition("a@x.org", "endsWith", ".org")
        assert evaluate_simple_condition("12345", "matches", "^[0-9]{5}$")

    def test_unknown_operator_logs_and_is_false(self, caplog):
        assert evaluate_simple_condition("x", "resembles", "y") is False
        assert "resembles" in caplog.text

    def test_bad_regex_is_false_through_evaluate(self):
        assert evaluate(ConditionRule("zip", "matches", "([", "string"), {"zip": "1"}) is False


class TestDateOperators:
    """Date operators against a fixed clock."""

    def test_relative_to_today(self):
        assert evaluate_simple_condition("2024-06-12T08:00:00", "isToday", None, "date", TODAY)
        assert evaluate_simple_condition("2020-01-01", "isPastDate", None, "date", TODAY)
        assert evaluate_simple_condition("2030-01-01", "isFutureDate", None, "date", TODAY)

    def test_weekday_weekend(self):
        assert evaluate_simple_condition("2024-06-15", "isWeekend", None, "date")  # Saturday
        assert evaluate_simple_condition("2024-06-12", "isWeekday", None, "date")
        assert evaluate_simple_condition("2024-06-16", "dayOfWeekEquals", 0, "date")  # Sunday

    def test_calendar_parts(self):
        assert evaluate_simple_condition("2024-06-12", "monthEquals", 6, "date")
        assert evaluate_simple_condition("2024-06-12", "yearEquals", 2024, "date")

    def test_age(self):
        assert evaluate_simple_condition("2000-01-01", "ageGreaterThan", 18, "date", TODAY)
        assert evaluate_simple_condition("2010-01-01", "ageLessThan", 18, "date", TODAY)
        assert evaluate_simple_condition("2000-01-01", "ageBetween", [20, 30], "date", TODAY)

    def test_date_comparisons(self):
        assert evaluate_simple_condition("2024-01-02", "dateGreaterThan", "2024-01-01", "date")
        assert evaluate_simple_condition("2024-01-01T15:00", "dateEquals", "2024-01-01", "date")
        assert evaluate_simple_condition("2024-03-01", "dateBetween", ["2024-01-01", "2024-12-31"], "date")
        assert evaluate_simple_condition("2025-03-01", "dateNotBetween", ["2024-01-01", "2024-12-31"], "date")

    def test_unparseable_date_is_false(self):
        assert not evaluate_simple_condition("soon", "isPastDate", None, "date", TODAY)
        assert not evaluate_simple_condition("2024-01-01", "dateGreaterThan", "later", "date")

    def test_builder_text_with_clock(self):
        text = ("Math.floor((new Date().getTime() - new Date(dob).getTime()) / "
                "(365.25 * 24 * 60 * 60 * 1000)) > 17")
        assert evaluate(text, {"dob": "2000-05-05"}, today=TODAY) is True
        assert evaluate(text, {"dob": "2010-05-05"}, today=TODAY) is False


class TestVisibility:
    """Block visibility."""

    def test_no_condition_is_visible(self):
        assert is_block_visible(Block(uuid="b", type="textfield"), {})
        assert is_block_visible(Block(uuid="b", type="textfield", visible_if=""), {})

    def test_condition_decides(self):
        block = Block(uuid="b", type="textfield", visible_if="age >= 18")
        assert is_block_visible(block, {"age": 20})
        assert not is_block_visible(block, {"age": 10})

    def test_broken_condition_hides(self):
        block = Block(uuid="b", type="textfield", visible_if="age >=")
        assert not is_block_visible(block, {"age": 20})

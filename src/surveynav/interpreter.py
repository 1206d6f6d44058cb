"""
Expression interpreter.

Walks an Expression AST against a read-only value context. This is the
fallback path for string conditions that no catalogue pattern recognised.

Errors (property of undefined, method on the wrong type) propagate as
TypeError/ValueError; evaluator.evaluate turns them into False.
"""

import math
from typing import Any, Mapping

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
from surveynav.values import (
    NAN,
    compare,
    contains_value,
    get_member,
    get_path,
    is_truthy,
    loose_equals,
    strict_equals,
    to_number,
    to_string,
)


_COMPARISONS = {
    BinaryOperator.GREATER_THAN: ">",
    BinaryOperator.GREATER_EQUAL: ">=",
    BinaryOperator.LESS_THAN: "<",
    BinaryOperator.LESS_EQUAL: "<=",
}


def _divide(left: float, right: float) -> float:
    if right == 0:
        if left == 0 or math.isnan(left):
            return NAN
        return math.copysign(math.inf, left) * math.copysign(1, right)
    return left / right


def _arithmetic(operator: BinaryOperator, left: Any, right: Any) -> Any:
    if operator == BinaryOperator.ADD and (isinstance(left, str) or isinstance(right, str)):
        return to_string(left) + to_string(right)

    a, b = to_number(left), to_number(right)
    if operator == BinaryOperator.ADD:
        return a + b
    if operator == BinaryOperator.SUBTRACT:
        return a - b
    if operator == BinaryOperator.MULTIPLY:
        return a * b
    if operator == BinaryOperator.DIVIDE:
        return _divide(a, b)
    if operator == BinaryOperator.MODULO:
        if b == 0 or math.isnan(a) or math.isnan(b):
            return NAN
        return math.fmod(a, b)
    raise ValueError(f"Unsupported arithmetic operator: {operator}")


def _call_method(target: Any, method: str, args: list) -> Any:
    if target is None:
        raise TypeError(f"Cannot call {method} on undefined")

    if method == "includes":
        needle = args[0] if args else None
        if isinstance(target, str):
            return to_string(needle) in target
        if isinstance(target, (list, tuple)):
            return contains_value(target, needle)
        raise TypeError(f"includes is not defined on {type(target).__name__}")

    if method == "indexOf":
        needle = args[0] if args else None
        if isinstance(target, str):
            return target.find(to_string(needle))
        if isinstance(target, (list, tuple)):
            for index, element in enumerate(target):
                if strict_equals(element, needle):
                    return index
            return -1
        raise TypeError(f"indexOf is not defined on {type(target).__name__}")

    if not isinstance(target, str):
        raise TypeError(f"{method} is only defined on strings")

    if method == "startsWith":
        return target.startswith(to_string(args[0] if args else None))
    if method == "endsWith":
        return target.endswith(to_string(args[0] if args else None))
    if method == "toLowerCase":
        return target.lower()
    if method == "toUpperCase":
        return target.upper()
    if method == "trim":
        return target.strip()

    raise ValueError(f"Unknown method: {method}")


def interpret(expr: Expression, context: Mapping[str, Any]) -> Any:
    """
    Evaluate an expression tree and return its (JavaScript-like) value.

    Logical operators short-circuit and return an operand, like && and ||
    do; callers that need a boolean wrap the result in is_truthy.
    """
    if isinstance(expr, Literal):
        return expr.value

    if isinstance(expr, VariableReference):
        return get_path(context, expr.name)

    if isinstance(expr, ArrayLiteral):
        return [interpret(element, context) for element in expr.elements]

    if isinstance(expr, UnaryExpression):
        operand = interpret(expr.operand, context)
        if expr.operator == UnaryOperator.NOT:
            return not is_truthy(operand)
        if expr.operator == UnaryOperator.NEGATE:
            return -to_number(operand)
        raise ValueError(f"Unsupported unary operator: {expr.operator}")

    if isinstance(expr, BinaryExpression):
        op = expr.operator

        if op == BinaryOperator.AND:
            left = interpret(expr.left, context)
            return interpret(expr.right, context) if is_truthy(left) else left
        if op == BinaryOperator.OR:
            left = interpret(expr.left, context)
            return left if is_truthy(left) else interpret(expr.right, context)

        left = interpret(expr.left, context)
        right = interpret(expr.right, context)

        if op == BinaryOperator.EQUALS:
            return loose_equals(left, right)
        if op == BinaryOperator.NOT_EQUALS:
            return not loose_equals(left, right)
        if op == BinaryOperator.STRICT_EQUALS:
            return strict_equals(left, right)
        if op == BinaryOperator.STRICT_NOT_EQUALS:
            return not strict_equals(left, right)
        if op in _COMPARISONS:
            return compare(left, right, _COMPARISONS[op])
        return _arithmetic(op, left, right)

    if isinstance(expr, MemberAccess):
        target = interpret(expr.target, context)
        key = interpret(expr.key, context)
        return get_member(target, key)

    if isinstance(expr, MethodCall):
        target = interpret(expr.target, context)
        args = [interpret(arg, context) for arg in expr.arguments]
        return _call_method(target, expr.method, args)

    raise TypeError(f"Unsupported Expression type: {type(expr)}")


__all__ = ["interpret"]

"""
Expression System for condition text

Free-text conditions ("age >= 18 && country == 'US'") are parsed once into
Abstract Syntax Trees and interpreted against a value context. Nothing in
this package ever turns condition text back into executable code.

This ensures:
    - No code-injection surface
    - Serialization capability
    - Composability for analysis (field references, complexity)

ARCHITECTURAL RULE:
    Parsing lives in condition_parser.
    Evaluation lives in interpreter.
    This module is structure only.
"""

from abc import ABC
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union


class Expression(ABC):
    """
    Base class for all AST expressions.

    This is intentionally minimal.
    It exists to provide type-safety for the expression hierarchy.

    DO NOT:
        - Add evaluation logic here (belongs in interpreter)
        - Add string representations (belongs in backends)
    """
    pass


class BinaryOperator(Enum):
    """
    Binary operators supported in condition expressions.

    Every operator here must have a defined meaning in
    interpreter.interpret. The values are the canonical spellings;
    the parser also accepts aliases (``and``, ``===``).
    """

    # Logical operators
    AND = "&&"
    OR = "||"

    # Comparison operators
    EQUALS = "=="
    NOT_EQUALS = "!="
    STRICT_EQUALS = "==="
    STRICT_NOT_EQUALS = "!=="
    GREATER_THAN = ">"
    GREATER_EQUAL = ">="
    LESS_THAN = "<"
    LESS_EQUAL = "<="

    # Arithmetic operators
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    MODULO = "%"


@dataclass(frozen=True)
class BinaryExpression(Expression):
    """
    Represents a binary logical, comparison or arithmetic expression.

    Example:
        age >= 18 || consent == true

    Becomes:
        BinaryExpression(
            operator=BinaryOperator.OR,
            left=BinaryExpression(
                operator=BinaryOperator.GREATER_EQUAL,
                left=VariableReference("age"),
                right=Literal(18)
            ),
            right=BinaryExpression(
                operator=BinaryOperator.EQUALS,
                left=VariableReference("consent"),
                right=Literal(True)
            )
        )

    IMPORTANT:
        This object is immutable (frozen=True).
        It does NOT evaluate itself.
    """

    operator: BinaryOperator
    left: "Expression"
    right: "Expression"


@dataclass(frozen=True)
class VariableReference(Expression):
    """
    References a value in the evaluation context.

    Examples:
        - age
        - address.country   (dotted path into nested answers)

    Properties:
        name: Dotted path as written by the author

    IMPORTANT:
        This object does NOT validate that the field exists.
        A missing field resolves to None at evaluation time.
    """

    name: str

    @property
    def path(self) -> Tuple[str, ...]:
        return tuple(self.name.split("."))


@dataclass(frozen=True)
class Literal(Expression):
    """
    Represents a literal constant value.

    Examples:
        - 18
        - 2.5
        - "US"
        - true / false
        - null / undefined (both stored as None)
    """

    value: Union[int, float, str, bool, None]


@dataclass(frozen=True)
class ArrayLiteral(Expression):
    """
    Represents an array literal such as ["a", "b"].

    Elements are expressions, so [minAge, 65] is allowed.
    """

    elements: Tuple[Expression, ...]


class UnaryOperator(Enum):
    """Unary operators."""
    NOT = "!"
    NEGATE = "-"


@dataclass(frozen=True)
class UnaryExpression(Expression):
    """
    Represents a unary operation.

    Example:
        !(agree == true)

    Becomes:
        UnaryExpression(
            operator=UnaryOperator.NOT,
            operand=BinaryExpression(...)
        )
    """

    operator: UnaryOperator
    operand: Expression


@dataclass(frozen=True)
class MemberAccess(Expression):
    """
    Property access on a computed value.

    Only used where a dotted VariableReference cannot express the access,
    e.g. ``tags.length`` after a call or ``answers["first name"]``.

    Properties:
        target: Expression being accessed
        key: Property name or index expression
    """

    target: Expression
    key: Expression


@dataclass(frozen=True)
class MethodCall(Expression):
    """
    Whitelisted method call on a value.

    Example:
        email.endsWith("@example.com")

    Becomes:
        MethodCall(
            target=VariableReference("email"),
            method="endsWith",
            arguments=(Literal("@example.com"),)
        )

    The interpreter rejects any method name it does not know.
    """

    target: Expression
    method: str
    arguments: Tuple[Expression, ...] = ()

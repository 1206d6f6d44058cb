"""
Condition Parser (condition text -> Expression AST).

Parses the JavaScript-flavoured condition syntax authors type into
navigation rules and visibility conditions.

Syntax Notes:
    - Logical: && || !  (also and / or / not, any case)
    - Comparison: == === != !== < <= > >=
    - Arithmetic: + - * / %
    - Literals: numbers, 'single' or "double" quoted strings,
      true / false / null / undefined, [array, literals]
    - Identifiers may be dotted paths (address.country)
    - Whitelisted methods: includes, startsWith, endsWith, indexOf,
      toLowerCase, toUpperCase, trim
    - A leading "return" and a trailing ";" are ignored

Identifiers that name host globals (window, document, process, ...) are
rejected outright rather than silently stripped.
"""

import re
from functools import lru_cache
from typing import List, Tuple

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


class ConditionParseError(Exception):
    """Raised when condition text cannot be parsed."""
    pass


DENYLIST = frozenset({
    "import", "require", "process", "global", "globalThis",
    "window", "document", "eval",
})

ALLOWED_METHODS = frozenset({
    "includes", "startsWith", "endsWith", "indexOf",
    "toLowerCase", "toUpperCase", "trim",
})

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<number>\d+(?:\.\d*)?|\.\d+)
      | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!+\-*/%()\[\],.])
      | (?P<ident>[A-Za-z_$][A-Za-z0-9_$]*)
    )""",
    re.VERBOSE,
)

_KEYWORD_LITERALS = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}

_EQUALITY_OPS = {
    "==": BinaryOperator.EQUALS,
    "!=": BinaryOperator.NOT_EQUALS,
    "===": BinaryOperator.STRICT_EQUALS,
    "!==": BinaryOperator.STRICT_NOT_EQUALS,
}

_RELATIONAL_OPS = {
    "<": BinaryOperator.LESS_THAN,
    ">": BinaryOperator.GREATER_THAN,
    "<=": BinaryOperator.LESS_EQUAL,
    ">=": BinaryOperator.GREATER_EQUAL,
}

_ADDITIVE_OPS = {
    "+": BinaryOperator.ADD,
    "-": BinaryOperator.SUBTRACT,
}

_MULTIPLICATIVE_OPS = {
    "*": BinaryOperator.MULTIPLY,
    "/": BinaryOperator.DIVIDE,
    "%": BinaryOperator.MODULO,
}


def normalize_condition_text(text: str) -> str:
    """Strip whitespace, a leading ``return`` and a trailing ``;``."""
    text = text.strip()
    text = re.sub(r"^return\s+", "", text, flags=re.IGNORECASE)
    text = re.sub(r";?\s*$", "", text)
    return text


def _tokenize(text: str) -> List[str]:
    """Tokenize condition text, failing on any character we do not know."""
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise ConditionParseError(f"Unexpected character at {pos}: {text[pos:pos + 10]!r}")
        token = match.group(match.lastgroup)
        if match.lastgroup == "ident" and token in DENYLIST:
            raise ConditionParseError(f"Forbidden identifier: {token}")
        tokens.append(token)
        pos = match.end()
    if not tokens:
        raise ConditionParseError("Empty condition")
    return tokens


def _is_keyword(token: str, word: str) -> bool:
    return token.lower() == word


def _peek(tokens: List[str], pos: int) -> str:
    return tokens[pos] if pos < len(tokens) else ""


def _parse_or_expression(tokens: List[str], pos: int) -> tuple:
    """Parse OR expression (lowest precedence)."""
    left, pos = _parse_and_expression(tokens, pos)

    while pos < len(tokens) and (tokens[pos] == "||" or _is_keyword(tokens[pos], "or")):
        pos += 1
        right, pos = _parse_and_expression(tokens, pos)
        left = BinaryExpression(BinaryOperator.OR, left, right)

    return left, pos


def _parse_and_expression(tokens: List[str], pos: int) -> tuple:
    """Parse AND expression."""
    left, pos = _parse_equality_expression(tokens, pos)

    while pos < len(tokens) and (tokens[pos] == "&&" or _is_keyword(tokens[pos], "and")):
        pos += 1
        right, pos = _parse_equality_expression(tokens, pos)
        left = BinaryExpression(BinaryOperator.AND, left, right)

    return left, pos


def _parse_equality_expression(tokens: List[str], pos: int) -> tuple:
    """Parse equality expression (==, !=, ===, !==)."""
    left, pos = _parse_relational_expression(tokens, pos)

    while pos < len(tokens) and tokens[pos] in _EQUALITY_OPS:
        op = _EQUALITY_OPS[tokens[pos]]
        right, pos = _parse_relational_expression(tokens, pos + 1)
        left = BinaryExpression(op, left, right)

    return left, pos


def _parse_relational_expression(tokens: List[str], pos: int) -> tuple:
    """Parse relational expression (<, >, <=, >=)."""
    left, pos = _parse_additive_expression(tokens, pos)

    while pos < len(tokens) and tokens[pos] in _RELATIONAL_OPS:
        op = _RELATIONAL_OPS[tokens[pos]]
        right, pos = _parse_additive_expression(tokens, pos + 1)
        left = BinaryExpression(op, left, right)

    return left, pos


def _parse_additive_expression(tokens: List[str], pos: int) -> tuple:
    left, pos = _parse_multiplicative_expression(tokens, pos)

    while pos < len(tokens) and tokens[pos] in _ADDITIVE_OPS:
        op = _ADDITIVE_OPS[tokens[pos]]
        right, pos = _parse_multiplicative_expression(tokens, pos + 1)
        left = BinaryExpression(op, left, right)

    return left, pos


def _parse_multiplicative_expression(tokens: List[str], pos: int) -> tuple:
    left, pos = _parse_unary_expression(tokens, pos)

    while pos < len(tokens) and tokens[pos] in _MULTIPLICATIVE_OPS:
        op = _MULTIPLICATIVE_OPS[tokens[pos]]
        right, pos = _parse_unary_expression(tokens, pos + 1)
        left = BinaryExpression(op, left, right)

    return left, pos


def _parse_unary_expression(tokens: List[str], pos: int) -> tuple:
    """Parse unary expression (!, not, unary minus)."""
    if pos < len(tokens) and (tokens[pos] == "!" or _is_keyword(tokens[pos], "not")):
        operand, pos = _parse_unary_expression(tokens, pos + 1)
        return UnaryExpression(UnaryOperator.NOT, operand), pos

    if pos < len(tokens) and tokens[pos] == "-":
        operand, pos = _parse_unary_expression(tokens, pos + 1)
        if isinstance(operand, Literal) and isinstance(operand.value, (int, float)) \
                and not isinstance(operand.value, bool):
            return Literal(-operand.value), pos
        return UnaryExpression(UnaryOperator.NEGATE, operand), pos

    return _parse_postfix_expression(tokens, pos)


def _parse_arguments(tokens: List[str], pos: int) -> tuple:
    """Parse a parenthesised, comma-separated argument list starting at '('."""
    pos += 1  # skip '('
    arguments = []
    if _peek(tokens, pos) != ")":
        while True:
            arg, pos = _parse_or_expression(tokens, pos)
            arguments.append(arg)
            if _peek(tokens, pos) == ",":
                pos += 1
                continue
            break
    if _peek(tokens, pos) != ")":
        raise ConditionParseError("Missing closing parenthesis in method call")
    return tuple(arguments), pos + 1


def _parse_postfix_expression(tokens: List[str], pos: int) -> tuple:
    """Parse member access, indexing and whitelisted method calls."""
    expr, pos = _parse_primary_expression(tokens, pos)

    while pos < len(tokens):
        token = tokens[pos]
        if token == ".":
            name = _peek(tokens, pos + 1)
            if not re.match(r"^[A-Za-z_$][A-Za-z0-9_$]*$", name):
                raise ConditionParseError(f"Expected property name after '.', got {name!r}")
            pos += 2
            if _peek(tokens, pos) == "(":
                if name not in ALLOWED_METHODS:
                    raise ConditionParseError(f"Method not allowed: {name}")
                arguments, pos = _parse_arguments(tokens, pos)
                expr = MethodCall(expr, name, arguments)
            elif isinstance(expr, VariableReference):
                expr = VariableReference(f"{expr.name}.{name}")
            else:
                expr = MemberAccess(expr, Literal(name))
        elif token == "[":
            key, pos = _parse_or_expression(tokens, pos + 1)
            if _peek(tokens, pos) != "]":
                raise ConditionParseError("Missing closing bracket")
            pos += 1
            expr = MemberAccess(expr, key)
        elif token == "(":
            raise ConditionParseError("Function calls are not allowed")
        else:
            break

    return expr, pos


def _unquote(token: str) -> str:
    body = token[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


def _parse_primary_expression(tokens: List[str], pos: int) -> tuple:
    """Parse primary expression (literal, variable, array or parenthesized)."""
    if pos >= len(tokens):
        raise ConditionParseError("Unexpected end of expression")

    token = tokens[pos]

    # Parenthesized expression
    if token == "(":
        expr, pos = _parse_or_expression(tokens, pos + 1)
        if _peek(tokens, pos) != ")":
            raise ConditionParseError("Missing closing parenthesis")
        return expr, pos + 1

    # Array literal
    if token == "[":
        pos += 1
        elements = []
        if _peek(tokens, pos) != "]":
            while True:
                element, pos = _parse_or_expression(tokens, pos)
                elements.append(element)
                if _peek(tokens, pos) == ",":
                    pos += 1
                    continue
                break
        if _peek(tokens, pos) != "]":
            raise ConditionParseError("Missing closing bracket in array literal")
        return ArrayLiteral(tuple(elements)), pos + 1

    # String literal
    if token[0] in "\"'":
        return Literal(_unquote(token)), pos + 1

    # Numeric literal
    if re.match(r"^(\d+(\.\d*)?|\.\d+)$", token):
        number = float(token)
        return Literal(int(number) if number.is_integer() and "." not in token else number), pos + 1

    # Keyword literal or variable reference
    if re.match(r"^[A-Za-z_$][A-Za-z0-9_$]*$", token):
        if token in _KEYWORD_LITERALS:
            return Literal(_KEYWORD_LITERALS[token]), pos + 1
        if token.lower() in ("and", "or", "not"):
            raise ConditionParseError(f"Unexpected keyword: {token}")
        return VariableReference(token), pos + 1

    raise ConditionParseError(f"Unexpected token: {token}")


@lru_cache(maxsize=1024)
def parse_condition(text: str) -> Expression:
    """
    Parse condition text into an Expression AST.

    Results are cached: the same text always yields the same (immutable)
    tree, so repeated evaluation only pays for interpretation.

    Args:
        text: Condition as authored

    Returns:
        Expression AST

    Raises:
        ConditionParseError: If syntax is invalid or uses forbidden names
    """
    if not isinstance(text, str):
        raise ConditionParseError(f"Condition must be a string, got {type(text).__name__}")

    normalized = normalize_condition_text(text)
    tokens = _tokenize(normalized)
    ast, remaining = _parse_or_expression(tokens, 0)

    if remaining < len(tokens):
        raise ConditionParseError(f"Unexpected tokens after parsing: {tokens[remaining:]}")

    return ast


def referenced_fields(expr: Expression) -> set:
    """Extract all variable paths referenced by an expression."""
    if isinstance(expr, VariableReference):
        return {expr.name}
    if isinstance(expr, BinaryExpression):
        return referenced_fields(expr.left) | referenced_fields(expr.right)
    if isinstance(expr, UnaryExpression):
        return referenced_fields(expr.operand)
    if isinstance(expr, ArrayLiteral):
        found = set()
        for element in expr.elements:
            found |= referenced_fields(element)
        return found
    if isinstance(expr, MemberAccess):
        return referenced_fields(expr.target) | referenced_fields(expr.key)
    if isinstance(expr, MethodCall):
        found = referenced_fields(expr.target)
        for arg in expr.arguments:
            found |= referenced_fields(arg)
        return found
    return set()


__all__ = [
    "ConditionParseError",
    "parse_condition",
    "normalize_condition_text",
    "referenced_fields",
    "DENYLIST",
    "ALLOWED_METHODS",
]

"""Expression mini-language used by `compute` steps and string filters.

Parsing and evaluation are separate: `parse_expression` turns text into an
immutable AST (`Literal`, `FieldRef`, `Unary`, `Binary`, `Ternary`) and
`evaluate` interprets it against one row.

Grammar, lowest precedence first::

    ternary     := or ( "?" ternary ":" ternary )?
    or          := and ( ("or" | "||") and )*
    and         := not ( ("and" | "&&") not )*
    not         := ("not" | "!") not | comparison
    comparison  := additive ( ("==" | "=" | "!=" | "<>" | ">" | ">=" | "<" | "<=") additive )?
    additive    := term ( ("+" | "-") term )*
    term        := unary ( ("*" | "/" | "%") unary )*
    unary       := ("-" | "+") unary | primary
    primary     := NUMBER | STRING | true | false | null | IDENT | `field` | "(" ternary ")"

Evaluation never raises on data: missing fields, non-numeric operands and
division by zero produce null, and comparisons that cannot be decided
produce an unknown (None) that propagates through and/or/not.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .errors import ExpressionSyntaxError
from .json_values import (
    MISSING,
    JsonKind,
    display_string,
    is_number,
    json_equal,
    kind_of,
    to_number,
)
from .models import Condition
from .resolver import lookup

# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class FieldRef:
    name: str


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Node


@dataclass(frozen=True)
class Binary:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Ternary:
    condition: Node
    when_true: Node
    when_false: Node


Node = Union[Literal, FieldRef, Unary, Binary, Ternary]

# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

NUMBER = "number"
STRING = "string"
IDENT = "ident"
FIELD = "field"
OP = "op"
LITERAL = "literal"
END = "end"

_SYMBOLS = {
    "==": "eq", "=": "eq", "!=": "neq", "<>": "neq",
    ">=": "gte", "<=": "lte", ">": "gt", "<": "lt",
    "&&": "and", "||": "or", "!": "not",
    "+": "+", "-": "-", "*": "*", "/": "/", "%": "%",
    "(": "(", ")": ")", "?": "?", ":": ":",
}
_SYMBOLS_BY_LENGTH = sorted(_SYMBOLS, key=len, reverse=True)

_WORD_OPS = {"and": "and", "or": "or", "not": "not"}
_WORD_LITERALS = {"true": True, "false": False, "null": None}

COMPARISONS = ("eq", "neq", "gt", "gte", "lt", "lte")


@dataclass(frozen=True)
class Token:
    kind: str
    value: Any
    position: int


def _read_number(text: str, start: int) -> int:
    i = start
    while i < len(text) and text[i].isdigit():
        i += 1
    if i < len(text) and text[i] == "." and i + 1 < len(text) and text[i + 1].isdigit():
        i += 1
        while i < len(text) and text[i].isdigit():
            i += 1
    if i < len(text) and text[i] in "eE":
        j = i + 1
        if j < len(text) and text[j] in "+-":
            j += 1
        if j < len(text) and text[j].isdigit():
            i = j
            while i < len(text) and text[i].isdigit():
                i += 1
    return i


def _read_quoted(text: str, start: int, quote: str) -> Tuple[str, int]:
    out: List[str] = []
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            out.append(text[i + 1])
            i += 2
            continue
        if ch == quote:
            return "".join(out), i + 1
        out.append(ch)
        i += 1
    raise ExpressionSyntaxError("Unterminated quoted text", text, start)


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch.isspace():
            i += 1
            continue

        if ch.isdigit() or (ch == "." and i + 1 < len(text) and text[i + 1].isdigit()):
            end = _read_number(text, i)
            raw = text[i:end]
            value = float(raw) if any(c in raw for c in ".eE") else int(raw)
            tokens.append(Token(NUMBER, value, i))
            i = end
            continue

        if ch in ("'", '"'):
            value, end = _read_quoted(text, i, ch)
            tokens.append(Token(STRING, value, i))
            i = end
            continue

        if ch == "`":
            value, end = _read_quoted(text, i, "`")
            tokens.append(Token(FIELD, value, i))
            i = end
            continue

        if ch.isalpha() or ch == "_":
            end = i + 1
            while end < len(text) and (text[end].isalnum() or text[end] == "_"):
                end += 1
            word = text[i:end]
            lowered = word.lower()
            if lowered in _WORD_OPS:
                tokens.append(Token(OP, _WORD_OPS[lowered], i))
            elif lowered in _WORD_LITERALS:
                tokens.append(Token(LITERAL, _WORD_LITERALS[lowered], i))
            else:
                tokens.append(Token(IDENT, word, i))
            i = end
            continue

        for symbol in _SYMBOLS_BY_LENGTH:
            if text.startswith(symbol, i):
                tokens.append(Token(OP, _SYMBOLS[symbol], i))
                i += len(symbol)
                break
        else:
            raise ExpressionSyntaxError(f"Unexpected character '{ch}'", text, i)

    tokens.append(Token(END, None, len(text)))
    return tokens


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _match(self, *ops: str) -> Optional[str]:
        token = self.current
        if token.kind == OP and token.value in ops:
            self.index += 1
            return token.value
        return None

    def _expect(self, op: str) -> None:
        if self._match(op) is None:
            raise ExpressionSyntaxError(f"Expected '{op}'", self.text, self.current.position)

    def parse(self) -> Node:
        if self.current.kind == END:
            raise ExpressionSyntaxError("Empty expression", self.text, 0)
        node = self._ternary()
        if self.current.kind != END:
            raise ExpressionSyntaxError("Unexpected trailing input", self.text, self.current.position)
        return node

    def _ternary(self) -> Node:
        condition = self._or()
        if self._match("?"):
            when_true = self._ternary()
            self._expect(":")
            when_false = self._ternary()
            return Ternary(condition, when_true, when_false)
        return condition

    def _or(self) -> Node:
        node = self._and()
        while self._match("or"):
            node = Binary("or", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._match("and"):
            node = Binary("and", node, self._not())
        return node

    def _not(self) -> Node:
        if self._match("not"):
            return Unary("not", self._not())
        return self._comparison()

    def _comparison(self) -> Node:
        node = self._additive()
        op = self._match(*COMPARISONS)
        if op:
            node = Binary(op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._term()
        while True:
            op = self._match("+", "-")
            if not op:
                return node
            node = Binary(op, node, self._term())

    def _term(self) -> Node:
        node = self._unary()
        while True:
            op = self._match("*", "/", "%")
            if not op:
                return node
            node = Binary(op, node, self._unary())

    def _unary(self) -> Node:
        if self._match("-"):
            return Unary("neg", self._unary())
        if self._match("+"):
            return self._unary()
        return self._primary()

    def _primary(self) -> Node:
        token = self.current
        if token.kind in (NUMBER, STRING, LITERAL):
            self._advance()
            return Literal(token.value)
        if token.kind in (IDENT, FIELD):
            self._advance()
            return FieldRef(token.value)
        if self._match("("):
            node = self._ternary()
            self._expect(")")
            return node
        if token.kind == END:
            raise ExpressionSyntaxError("Unexpected end of expression", self.text, token.position)
        raise ExpressionSyntaxError(f"Unexpected token '{token.value}'", self.text, token.position)


@lru_cache(maxsize=512)
def parse_expression(text: str) -> Node:
    """Parse expression text into an AST. Raises ExpressionSyntaxError."""
    if not isinstance(text, str):
        raise ExpressionSyntaxError("Expression must be text", str(text), 0)
    return _Parser(text).parse()


def field_references(node: Node) -> List[str]:
    """Field names referenced by an expression, first occurrence order."""
    found: List[str] = []

    def walk(n: Node) -> None:
        if isinstance(n, FieldRef):
            if n.name not in found:
                found.append(n.name)
        elif isinstance(n, Unary):
            walk(n.operand)
        elif isinstance(n, Binary):
            walk(n.left)
            walk(n.right)
        elif isinstance(n, Ternary):
            walk(n.condition)
            walk(n.when_true)
            walk(n.when_false)

    walk(node)
    return found


# ---------------------------------------------------------------------------
# Value semantics shared by expressions and condition trees
# ---------------------------------------------------------------------------


def truth(value: Any) -> Optional[bool]:
    """Truth value of a JSON value; None/MISSING are unknown."""
    if value is MISSING or value is None:
        return None
    kind = kind_of(value)
    if kind is JsonKind.BOOLEAN:
        return value
    if kind is JsonKind.NUMBER:
        return value != 0
    return len(value) > 0


def all_of(values: Iterable[Optional[bool]]) -> Optional[bool]:
    unknown = False
    for v in values:
        if v is False:
            return False
        if v is None:
            unknown = True
    return None if unknown else True


def any_of(values: Iterable[Optional[bool]]) -> Optional[bool]:
    unknown = False
    for v in values:
        if v is True:
            return True
        if v is None:
            unknown = True
    return None if unknown else False


def negate(value: Optional[bool]) -> Optional[bool]:
    return None if value is None else not value


def _order(op: str, left: Any, right: Any) -> bool:
    if op == "gt":
        return left > right
    if op == "gte":
        return left >= right
    if op == "lt":
        return left < right
    return left <= right


def compare(op: str, left: Any, right: Any) -> Optional[bool]:
    """Compare two JSON values.

    Returns None (unknown) when an operand is missing or the comparison
    is not meaningful, e.g. ordering a number against non-numeric text.
    """
    if left is MISSING or right is MISSING:
        return None

    if op == "contains":
        if left is None or right is None:
            return None
        if isinstance(left, list):
            return any(json_equal(item, right) for item in left)
        return display_string(right).casefold() in display_string(left).casefold()

    if op == "in":
        if not isinstance(right, list):
            return None
        return any(compare("eq", left, item) is True for item in right)

    if left is None or right is None:
        if op == "eq":
            return left is None and right is None
        if op == "neq":
            return not (left is None and right is None)
        return None

    if is_number(left) or is_number(right):
        lnum, rnum = to_number(left), to_number(right)
        if lnum is None or rnum is None or isinstance(left, bool) or isinstance(right, bool):
            return None
        if op == "eq":
            return lnum == rnum
        if op == "neq":
            return lnum != rnum
        return _order(op, lnum, rnum)

    if op == "eq":
        return json_equal(left, right)
    if op == "neq":
        return not json_equal(left, right)

    if isinstance(left, str) and isinstance(right, str):
        return _order(op, left, right)
    return None


def arithmetic(op: str, left: Any, right: Any) -> Optional[Union[int, float]]:
    lnum, rnum = to_number(left), to_number(right)
    if lnum is None or rnum is None:
        return None
    if op in ("/", "%") and rnum == 0:
        return None
    try:
        if op == "+":
            result = lnum + rnum
        elif op == "-":
            result = lnum - rnum
        elif op == "*":
            result = lnum * rnum
        elif op == "/":
            result = lnum / rnum
        elif op == "%":
            result = lnum % rnum
        else:
            return None
    except OverflowError:
        # Integers beyond float range cannot be mixed with floats or divided.
        return None
    if isinstance(result, float) and not math.isfinite(result):
        return None
    return result


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------


def evaluate(node: Node, row: Dict[str, Any]) -> Any:
    """Evaluate an AST against one row.

    Returns a JSON value, or MISSING when the result is a field that
    does not exist in the row.
    """
    if isinstance(node, Literal):
        return node.value

    if isinstance(node, FieldRef):
        value, _ = lookup(row, node.name)
        return value

    if isinstance(node, Unary):
        operand = evaluate(node.operand, row)
        if node.op == "not":
            return negate(truth(operand))
        number = to_number(operand)
        return None if number is None else -number

    if isinstance(node, Binary):
        if node.op == "and":
            return all_of([truth(evaluate(node.left, row)), truth(evaluate(node.right, row))])
        if node.op == "or":
            return any_of([truth(evaluate(node.left, row)), truth(evaluate(node.right, row))])
        left = evaluate(node.left, row)
        right = evaluate(node.right, row)
        if node.op in COMPARISONS:
            return compare(node.op, left, right)
        return arithmetic(node.op, left, right)

    if isinstance(node, Ternary):
        condition = truth(evaluate(node.condition, row))
        if condition is None:
            return None
        return evaluate(node.when_true if condition else node.when_false, row)

    raise TypeError(f"Unknown expression node: {type(node).__name__}")


def evaluate_value(expr: str, row: Dict[str, Any]) -> Any:
    """Evaluate expression text for a computed field; absent results become null."""
    value = evaluate(parse_expression(expr), row)
    return None if value is MISSING else value


def _operand(operand: Any, row: Dict[str, Any]) -> Any:
    if isinstance(operand, dict) and isinstance(operand.get("field"), str):
        value, _ = lookup(row, operand["field"])
        return value
    return operand


def evaluate_condition(condition: Union[str, Condition], row: Dict[str, Any]) -> Optional[bool]:
    """Evaluate a filter condition; True keeps the row, False or None drops it."""
    if isinstance(condition, str):
        return truth(evaluate(parse_expression(condition), row))

    op = condition.op
    if op == "and":
        return all_of(evaluate_condition(item, row) for item in condition.items or [])
    if op == "or":
        return any_of(evaluate_condition(item, row) for item in condition.items or [])
    if op == "not":
        return negate(evaluate_condition(condition.items[0], row)) if condition.items else None
    return compare(op, _operand(condition.left, row), _operand(condition.right, row))

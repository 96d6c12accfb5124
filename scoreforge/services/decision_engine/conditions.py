"""Rule condition language.

Conditions such as ``credit_score < 500 AND debt_to_income > 0.6`` are parsed
once into a small AST and re-evaluated for every record.

Grammar (keywords are case-insensitive, AND binds tighter than OR)::

    expr       := and_expr ("OR" and_expr)*
    and_expr   := atom ("AND" atom)*
    atom       := "(" expr ")" | comparison
    comparison := operand ("<" | ">" | "<=" | ">=" | "==" | "=" | "!=") operand
    operand    := NUMBER | STRING | true | false | null | FIELD
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Union

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<number>-?\d+(?:\.\d+)?)(?![\w.])
      | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<op><=|>=|==|!=|<|>|=)
      | (?P<lparen>\()
      | (?P<rparen>\))
      | (?P<word>[A-Za-z_][\w.]*)
    )
    """,
    re.VERBOSE,
)

_LITERAL_WORDS = {"true": True, "false": False, "null": None, "none": None}
_ORDERING_OPS = ("<", ">", "<=", ">=")


class ConditionSyntaxError(ValueError):
    """The condition text does not follow the rule grammar."""


class ConditionEvaluationError(ValueError):
    """A well-formed condition could not be applied to a record's values."""


# ── AST ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Field:
    name: str


@dataclass(frozen=True)
class Literal:
    value: Any


Operand = Union[Field, Literal]


@dataclass(frozen=True)
class Comparison:
    left: Operand
    operator: str
    right: Operand

    @property
    def fields(self) -> set[str]:
        return {o.name for o in (self.left, self.right) if isinstance(o, Field)}

    def evaluate(self, lookup: Callable[[str], Any], errors: list | None = None) -> bool:
        left, left_missing = _operand_value(self.left, lookup)
        right, right_missing = _operand_value(self.right, lookup)

        # ``field == null`` / ``field != null`` test presence
        if _is_null(self.left) or _is_null(self.right):
            other = right if _is_null(self.left) else left
            if self.operator == "==":
                return other is None
            if self.operator == "!=":
                return other is not None
            return False
        if left_missing or right_missing:
            return False

        left_num, right_num = _as_number(left), _as_number(right)
        if left_num is not None and right_num is not None:
            return _compare_numbers(left_num, self.operator, right_num)

        if self.operator in _ORDERING_OPS:
            raise ConditionEvaluationError(
                f"Cannot apply '{self.operator}' to non-numeric values {left!r} and {right!r}"
            )
        equal = _normalize_text(left) == _normalize_text(right)
        return equal if self.operator == "==" else not equal


@dataclass(frozen=True)
class BoolOp:
    operator: str  # "AND" | "OR"
    operands: tuple

    @property
    def fields(self) -> set[str]:
        names: set[str] = set()
        for operand in self.operands:
            names |= operand.fields
        return names

    def evaluate(self, lookup: Callable[[str], Any], errors: list | None = None) -> bool:
        """Evaluate every operand, counting one that fails as False.

        Failures are appended to ``errors`` when a list is given. Without one,
        the first failure is raised if the expression did not match.
        """
        collected = [] if errors is None else errors
        results = []
        for operand in self.operands:
            try:
                results.append(operand.evaluate(lookup, collected))
            except ConditionEvaluationError as exc:
                collected.append(exc)
                results.append(False)
        matched = all(results) if self.operator == "AND" else any(results)
        if errors is None and collected and not matched:
            raise collected[0]
        return matched


Condition = Union[Comparison, BoolOp]


# ── Parsing ────────────────────────────────────────────────────────

def tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    stripped = text.rstrip()
    while pos < len(stripped):
        m = _TOKEN_RE.match(stripped, pos)
        if not m or m.end() == pos:
            raise ConditionSyntaxError(
                f"Unexpected character {stripped[pos:].lstrip()[:1]!r} at position {pos} in '{text}'"
            )
        kind = m.lastgroup
        tokens.append((kind, m.group(kind)))
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    def parse(self) -> Condition:
        if not self.tokens:
            raise ConditionSyntaxError("Condition is empty")
        node = self._expr()
        if self.pos != len(self.tokens):
            raise ConditionSyntaxError(
                f"Unexpected token '{self.tokens[self.pos][1]}' in '{self.text}'"
            )
        return node

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise ConditionSyntaxError(f"Unexpected end of condition '{self.text}'")
        self.pos += 1
        return token

    def _keyword(self, word: str) -> bool:
        token = self._peek()
        if token and token[0] == "word" and token[1].upper() == word:
            self.pos += 1
            return True
        return False

    def _expr(self) -> Condition:
        operands = [self._and_expr()]
        while self._keyword("OR"):
            operands.append(self._and_expr())
        return operands[0] if len(operands) == 1 else BoolOp("OR", tuple(operands))

    def _and_expr(self) -> Condition:
        operands = [self._atom()]
        while self._keyword("AND"):
            operands.append(self._atom())
        return operands[0] if len(operands) == 1 else BoolOp("AND", tuple(operands))

    def _atom(self) -> Condition:
        token = self._peek()
        if token and token[0] == "lparen":
            self.pos += 1
            node = self._expr()
            closing = self._next()
            if closing[0] != "rparen":
                raise ConditionSyntaxError(f"Expected ')' but found '{closing[1]}' in '{self.text}'")
            return node
        left = self._operand()
        kind, op = self._next()
        if kind != "op":
            raise ConditionSyntaxError(f"Expected a comparison operator but found '{op}' in '{self.text}'")
        right = self._operand()
        if not isinstance(left, Field) and not isinstance(right, Field):
            raise ConditionSyntaxError(f"Comparison needs a field reference in '{self.text}'")
        return Comparison(left, "==" if op == "=" else op, right)

    def _operand(self) -> Operand:
        kind, value = self._next()
        if kind == "number":
            return Literal(float(value) if "." in value else int(value))
        if kind == "string":
            return Literal(re.sub(r"\\(.)", r"\1", value[1:-1]))
        if kind == "word":
            if value.upper() in ("AND", "OR"):
                raise ConditionSyntaxError(f"Unexpected keyword '{value}' in '{self.text}'")
            if value.lower() in _LITERAL_WORDS:
                return Literal(_LITERAL_WORDS[value.lower()])
            return Field(value)
        raise ConditionSyntaxError(f"Expected a field or value but found '{value}' in '{self.text}'")


def compile_condition(text: str) -> Condition:
    """Parse a condition string. Raises ConditionSyntaxError on malformed text."""
    if not isinstance(text, str):
        raise ConditionSyntaxError(f"Condition must be text, got {type(text).__name__}")
    return _Parser(text).parse()


# ── Helpers ────────────────────────────────────────────────────────

def _is_null(operand: Operand) -> bool:
    return isinstance(operand, Literal) and operand.value is None


def _operand_value(operand: Operand, lookup: Callable[[str], Any]) -> tuple[Any, bool]:
    """Return (value, missing) for an operand."""
    if isinstance(operand, Literal):
        return operand.value, False
    value = lookup(operand.name)
    return value, value is None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError:
            return None
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", ""))
        except ValueError:
            return None
    return None


def _normalize_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


def _compare_numbers(left: float, operator: str, right: float) -> bool:
    if operator == "<":
        return left < right
    if operator == ">":
        return left > right
    if operator == "<=":
        return left <= right
    if operator == ">=":
        return left >= right
    if operator == "==":
        return left == right
    return left != right

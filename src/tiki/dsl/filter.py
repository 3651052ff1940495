"""Filter expressions: AST, recursive-descent parser and evaluator.

A filter is parsed once, when a view is loaded, and then evaluated against
many tasks. Evaluation takes the task plus a ``(now, current_user)`` context
and never raises: comparisons that make no sense for a field are false.
"""

from __future__ import annotations

from dataclasses import dataclass
import datetime as dt
from typing import Any

from ..enums import VALID_STATUSES, VALID_TYPES, normalize_priority, parse_status, parse_type
from ..models import FilterParseError, Task
from ..storage import parse_datetime
from . import lexer
from .duration import parse_duration
from .lexer import Token, is_time_field, tokenize

COMPARISON_OPERATORS = ("=", "==", "!=", ">", "<", ">=", "<=")
CURRENT_USER = "CURRENT_USER"
TIME_EXPR_FIELD = "time_expr"
MAX_NESTING = 100

STRING_FIELDS = {
    "title": "title",
    "assignee": "assignee",
    "description": "description",
    "createdby": "created_by",
    "created_by": "created_by",
    "id": "id",
}


class Identifier(str):
    """A bare word literal, as opposed to a quoted string."""


@dataclass(frozen=True, slots=True)
class DurationValue:
    span: dt.timedelta


@dataclass(frozen=True, slots=True)
class TimeExpr:
    base: str
    op: str | None = None
    operand: DurationValue | TimeExpr | None = None

    def resolve(self, task: Task, now: dt.datetime) -> dt.datetime | dt.timedelta | None:
        base = _time_field_value(self.base, task, now)
        if base is None or self.op is None or self.operand is None:
            return base
        if isinstance(self.operand, DurationValue):
            return base + self.operand.span if self.op == "+" else base - self.operand.span
        other = self.operand.resolve(task, now)
        if self.op == "-" and isinstance(other, dt.datetime):
            return base - other
        return None


@dataclass(frozen=True, slots=True)
class TimeComparison:
    left: TimeExpr
    right: Any


class FilterExpr:
    __slots__ = ()

    def evaluate(self, task: Task, now: dt.datetime, current_user: str) -> bool:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class BinaryExpr(FilterExpr):
    op: str
    left: FilterExpr
    right: FilterExpr

    def evaluate(self, task: Task, now: dt.datetime, current_user: str) -> bool:
        if self.op == "AND":
            return self.left.evaluate(task, now, current_user) and self.right.evaluate(
                task, now, current_user
            )
        if self.op == "OR":
            return self.left.evaluate(task, now, current_user) or self.right.evaluate(
                task, now, current_user
            )
        return False


@dataclass(frozen=True, slots=True)
class UnaryExpr(FilterExpr):
    op: str
    expr: FilterExpr

    def evaluate(self, task: Task, now: dt.datetime, current_user: str) -> bool:
        if self.op == "NOT":
            return not self.expr.evaluate(task, now, current_user)
        return False


@dataclass(frozen=True, slots=True)
class CompareExpr(FilterExpr):
    field: str
    op: str
    value: Any

    def evaluate(self, task: Task, now: dt.datetime, current_user: str) -> bool:
        try:
            return _evaluate_compare(self, task, now, current_user)
        except (TypeError, ValueError, OverflowError):
            return False


@dataclass(frozen=True, slots=True)
class InExpr(FilterExpr):
    field: str
    negated: bool
    values: tuple[Any, ...]

    def evaluate(self, task: Task, now: dt.datetime, current_user: str) -> bool:
        try:
            found = _evaluate_membership(self, task, current_user)
        except (TypeError, ValueError):
            return False
        if found is None:
            return False
        return not found if self.negated else found


def _time_field_value(name: str, task: Task, now: dt.datetime) -> dt.datetime | None:
    key = name.upper()
    if key == "NOW":
        return now
    if key == "CREATEDAT":
        return task.created_at
    if key == "UPDATEDAT":
        return task.updated_at
    return None


def _apply_op(left: Any, op: str, right: Any) -> bool:
    if op in ("=", "=="):
        return left == right
    if op == "!=":
        return left != right
    if op == ">":
        return left > right
    if op == "<":
        return left < right
    if op == ">=":
        return left >= right
    if op == "<=":
        return left <= right
    return False


def _literal_text(value: Any, current_user: str) -> str | None:
    if isinstance(value, Identifier) and value.upper() == CURRENT_USER:
        return current_user or None
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return str(value)
    return None


def _time_operand(value: Any, task: Task, now: dt.datetime) -> dt.datetime | dt.timedelta | None:
    if isinstance(value, DurationValue):
        return value.span
    if isinstance(value, TimeExpr):
        return value.resolve(task, now)
    if isinstance(value, str) and not isinstance(value, Identifier):
        return parse_datetime(value)
    return None


def _compare_times(left: Any, op: str, right: Any, now: dt.datetime) -> bool:
    if isinstance(left, dt.datetime) and isinstance(right, dt.timedelta):
        return _apply_op(now - left, op, right)
    if isinstance(left, dt.timedelta) and isinstance(right, dt.datetime):
        return _apply_op(left, op, now - right)
    if isinstance(left, dt.datetime) and isinstance(right, dt.datetime):
        return _apply_op(left, op, right)
    if isinstance(left, dt.timedelta) and isinstance(right, dt.timedelta):
        return _apply_op(left, op, right)
    return False


def _enum_compare(actual: str, op: str, literal: str | None, parser, order: tuple[str, ...]) -> bool:
    if literal is None:
        return False
    expected = parser(literal)
    if expected is None:
        return False
    if op in ("=", "==", "!="):
        return _apply_op(actual, op, expected)
    if actual not in order:
        return False
    return _apply_op(order.index(actual), op, order.index(expected))


def _int_literal(value: Any, current_user: str, words: bool = False) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = _literal_text(value, current_user)
    if text is None:
        return None
    if words:
        number = normalize_priority(text)
        return None if number == -1 else number
    return int(text.strip())


def _evaluate_compare(expr: CompareExpr, task: Task, now: dt.datetime, current_user: str) -> bool:
    field = expr.field.lower()
    op = expr.op

    if field == TIME_EXPR_FIELD and isinstance(expr.value, TimeComparison):
        left = expr.value.left.resolve(task, now)
        right = _time_operand(expr.value.right, task, now)
        return _compare_times(left, op, right, now)
    if is_time_field(field) or isinstance(expr.value, (TimeExpr, DurationValue)):
        left = _time_field_value(field, task, now)
        right = _time_operand(expr.value, task, now)
        return _compare_times(left, op, right, now)

    if field == "tags":
        tag = _literal_text(expr.value, current_user)
        if tag is None:
            return False
        has_tag = tag.lower() in {existing.lower() for existing in task.tags}
        if op in ("=", "=="):
            return has_tag
        if op == "!=":
            return not has_tag
        return False
    if field == "status":
        literal = _literal_text(expr.value, current_user)
        return _enum_compare(task.status, op, literal, parse_status, VALID_STATUSES)
    if field == "type":
        literal = _literal_text(expr.value, current_user)
        return _enum_compare(task.type, op, literal, parse_type, VALID_TYPES)
    if field == "priority":
        number = _int_literal(expr.value, current_user, words=True)
        return number is not None and _apply_op(task.priority, op, number)
    if field == "points":
        number = _int_literal(expr.value, current_user)
        return number is not None and _apply_op(task.points, op, number)
    if field in STRING_FIELDS:
        literal = _literal_text(expr.value, current_user)
        if literal is None:
            return False
        actual = str(getattr(task, STRING_FIELDS[field]) or "")
        return _apply_op(actual.lower(), op, literal.lower())
    return False


def _evaluate_membership(expr: InExpr, task: Task, current_user: str) -> bool | None:
    field = expr.field.lower()
    literals = [_literal_text(value, current_user) for value in expr.values]
    texts = [literal for literal in literals if literal is not None]

    if field == "tags":
        wanted = {text.lower() for text in texts}
        return any(tag.lower() in wanted for tag in task.tags)
    if field == "status":
        return task.status in {parse_status(text) for text in texts}
    if field == "type":
        return task.type in {parse_type(text) for text in texts}
    if field == "priority":
        return task.priority in {normalize_priority(text) for text in texts}
    if field == "points":
        numbers = set()
        for text in texts:
            if text.strip().lstrip("-").isdigit():
                numbers.add(int(text))
        return task.points in numbers
    if field in STRING_FIELDS:
        actual = str(getattr(task, STRING_FIELDS[field]) or "").lower()
        return actual in {text.lower() for text in texts}
    return None


class FilterParser:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def current(self) -> Token:
        if self.pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[self.pos]

    def peek(self, offset: int = 1) -> Token:
        index = self.pos + offset
        if index >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[index]

    def advance(self) -> Token:
        tok = self.current()
        self.pos += 1
        return tok

    def expect(self, token_type: str, context: str) -> Token:
        tok = self.current()
        if tok.type != token_type:
            found = tok.value or "end of input"
            raise FilterParseError(f"invalid filter: {context}, got {found!r}")
        return self.advance()

    def parse(self) -> FilterExpr:
        expr = self.parse_or()
        tok = self.current()
        if tok.type != lexer.EOF:
            raise FilterParseError(f"invalid filter: unexpected token {tok.value!r} at position {tok.pos}")
        return expr

    def _binary(self, token_type: str, op: str, operand) -> FilterExpr:
        left = operand()
        while self.current().type == token_type:
            self.advance()
            right = operand()
            left = BinaryExpr(op, left, right)
        return left

    def _enter(self) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise FilterParseError(f"invalid filter: nesting deeper than {MAX_NESTING} levels")

    def parse_or(self) -> FilterExpr:
        self._enter()
        try:
            return self._binary(lexer.OR, "OR", self.parse_and)
        finally:
            self.depth -= 1

    def parse_and(self) -> FilterExpr:
        return self._binary(lexer.AND, "AND", self.parse_not)

    def parse_not(self) -> FilterExpr:
        if self.current().type == lexer.NOT:
            self.advance()
            self._enter()
            try:
                return UnaryExpr("NOT", self.parse_not())
            finally:
                self.depth -= 1
        return self.parse_primary()

    def parse_primary(self) -> FilterExpr:
        tok = self.current()
        if tok.type == lexer.LPAREN:
            if self.peek().type == lexer.IDENT and is_time_field(self.peek().value):
                saved = self.pos
                try:
                    return self.parse_comparison()
                except FilterParseError:
                    self.pos = saved
            self.advance()
            expr = self.parse_or()
            self.expect(lexer.RPAREN, "expected closing parenthesis")
            return expr

        if tok.type == lexer.IDENT:
            following = self.peek()
            if following.type == lexer.IN:
                self.pos += 2
                return self.parse_in(tok.value, negated=False)
            if following.type == lexer.NOT_IN:
                self.pos += 2
                return self.parse_in(tok.value, negated=True)
        return self.parse_comparison()

    def parse_comparison(self) -> FilterExpr:
        left = self.parse_value(allow_time=True)
        tok = self.current()
        if tok.type != lexer.OPERATOR or tok.value not in COMPARISON_OPERATORS:
            found = tok.value or "end of input"
            raise FilterParseError(f"invalid filter: expected comparison operator, got {found!r}")
        op = self.advance().value
        right = self.parse_value(allow_time=True)

        if isinstance(left, TimeExpr):
            return CompareExpr(TIME_EXPR_FIELD, op, TimeComparison(left, right))
        if not isinstance(left, Identifier):
            raise FilterParseError("invalid filter: expected field name on left side of comparison")
        return CompareExpr(str(left), op, right)

    def parse_value(self, allow_time: bool) -> Any:
        tok = self.current()
        if tok.type == lexer.STRING:
            self.advance()
            return tok.value
        if tok.type == lexer.NUMBER:
            self.advance()
            return int(tok.value)
        if tok.type == lexer.DURATION:
            if not allow_time:
                raise FilterParseError("invalid filter: duration not allowed in this context")
            self.advance()
            return DurationValue(parse_duration(tok.value))
        if tok.type == lexer.LPAREN and allow_time:
            self.advance()
            self._enter()
            try:
                inner = self.parse_value(allow_time=True)
            finally:
                self.depth -= 1
            if not isinstance(inner, TimeExpr):
                raise FilterParseError("invalid filter: expected time expression in parentheses")
            self.expect(lexer.RPAREN, "expected closing parenthesis")
            return inner
        if tok.type == lexer.IDENT:
            self.advance()
            if allow_time and is_time_field(tok.value):
                following = self.current()
                if following.type == lexer.OPERATOR and following.value in ("+", "-"):
                    self.advance()
                    operand = self.parse_time_operand()
                    return TimeExpr(tok.value, following.value, operand)
                return TimeExpr(tok.value)
            return Identifier(tok.value)
        found = tok.value or "end of input"
        raise FilterParseError(f"invalid filter: unexpected token in value: {found!r}")

    def parse_time_operand(self) -> DurationValue | TimeExpr:
        tok = self.advance()
        if tok.type == lexer.DURATION:
            return DurationValue(parse_duration(tok.value))
        if tok.type == lexer.IDENT and is_time_field(tok.value):
            return TimeExpr(tok.value)
        found = tok.value or "end of input"
        raise FilterParseError(f"invalid filter: expected duration or time field, got {found!r}")

    def parse_in(self, field: str, negated: bool) -> FilterExpr:
        self.expect(lexer.LBRACKET, "expected '[' after IN")
        values: list[Any] = []
        if self.current().type == lexer.RBRACKET:
            self.advance()
            return InExpr(field, negated, tuple(values))
        while True:
            values.append(self.parse_value(allow_time=False))
            tok = self.advance()
            if tok.type == lexer.RBRACKET:
                break
            if tok.type != lexer.COMMA:
                found = tok.value or "end of input"
                raise FilterParseError(f"invalid filter: expected ',' or ']' in list, got {found!r}")
        return InExpr(field, negated, tuple(values))


def parse_filter(text: str | None) -> FilterExpr | None:
    """Parse a filter expression; blank input means no filtering."""
    if text is None or not text.strip():
        return None
    return FilterParser(tokenize(text)).parse()


def matches(expr: FilterExpr | None, task: Task, now: dt.datetime, current_user: str) -> bool:
    return expr is None or expr.evaluate(task, now, current_user)

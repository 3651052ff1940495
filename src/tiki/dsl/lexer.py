"""Tokenizer for filter expressions."""

from __future__ import annotations

from dataclasses import dataclass

from ..models import FilterParseError
from .duration import is_duration_literal

EOF = "EOF"
IDENT = "IDENT"
STRING = "STRING"
NUMBER = "NUMBER"
DURATION = "DURATION"
OPERATOR = "OPERATOR"
AND = "AND"
OR = "OR"
NOT = "NOT"
IN = "IN"
NOT_IN = "NOT_IN"
LPAREN = "LPAREN"
RPAREN = "RPAREN"
LBRACKET = "LBRACKET"
RBRACKET = "RBRACKET"
COMMA = "COMMA"

TWO_CHAR_OPERATORS = ("==", "!=", ">=", "<=")
ONE_CHAR_OPERATORS = "=><+-"
PUNCTUATION = {
    "(": LPAREN,
    ")": RPAREN,
    "[": LBRACKET,
    "]": RBRACKET,
    ",": COMMA,
}
KEYWORDS = {
    "AND": AND,
    "OR": OR,
    "NOT": NOT,
    "IN": IN,
}
TIME_FIELDS = ("NOW", "CREATEDAT", "UPDATEDAT")


@dataclass(frozen=True, slots=True)
class Token:
    type: str
    value: str
    pos: int = 0


def is_time_field(name: str) -> bool:
    return name.upper() in TIME_FIELDS


def _is_word_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_word_char(ch: str) -> bool:
    return ch.isalpha() or ch.isdigit() or ch == "_"


def _read_while(text: str, pos: int, pred) -> tuple[str, int]:
    start = pos
    while pos < len(text) and pred(text[pos]):
        pos += 1
    return text[start:pos], pos


def _skip_whitespace(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _peek_keyword(text: str, pos: int, keyword: str) -> int | None:
    """Return the end position if keyword follows pos as a whole word."""
    start = _skip_whitespace(text, pos)
    if start == pos:
        return None
    end = start + len(keyword)
    if text[start:end].upper() != keyword:
        return None
    if end < len(text) and _is_word_char(text[end]):
        return None
    return end


def tokenize(expr: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while True:
        pos = _skip_whitespace(expr, pos)
        if pos >= len(expr):
            break
        ch = expr[pos]

        pair = expr[pos : pos + 2]
        if pair in TWO_CHAR_OPERATORS:
            tokens.append(Token(OPERATOR, pair, pos))
            pos += 2
            continue
        if ch in PUNCTUATION:
            tokens.append(Token(PUNCTUATION[ch], ch, pos))
            pos += 1
            continue
        if ch in ONE_CHAR_OPERATORS:
            tokens.append(Token(OPERATOR, ch, pos))
            pos += 1
            continue
        if ch in ("'", '"'):
            end = expr.find(ch, pos + 1)
            if end < 0:
                raise FilterParseError(f"invalid filter: unterminated string literal at position {pos}")
            tokens.append(Token(STRING, expr[pos + 1 : end], pos))
            pos = end + 1
            continue
        if _is_word_start(ch):
            start = pos
            word, pos = _read_while(expr, pos, _is_word_char)
            upper = word.upper()
            if upper == "NOT":
                end = _peek_keyword(expr, pos, "IN")
                if end is not None:
                    tokens.append(Token(NOT_IN, "NOT IN", start))
                    pos = end
                    continue
            tokens.append(Token(KEYWORDS.get(upper, IDENT), word, start))
            continue
        if ch.isdecimal():
            start = pos
            digits, pos = _read_while(expr, pos, str.isdecimal)
            if pos < len(expr) and expr[pos].isalpha():
                unit, unit_end = _read_while(expr, pos, str.isalpha)
                if is_duration_literal(digits + unit):
                    tokens.append(Token(DURATION, digits + unit, start))
                    pos = unit_end
                    continue
            tokens.append(Token(NUMBER, digits, start))
            continue
        raise FilterParseError(f"invalid filter: unexpected character {ch!r} at position {pos}")

    tokens.append(Token(EOF, "", len(expr)))
    return tokens

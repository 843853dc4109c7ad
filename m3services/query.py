"""Lexer and parser for the small record query language."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum

QUOTE_ESCAPE = str(0x10FFFF)
SINGLE_QUOTE_ESCAPE = str(0x10FFFE)
BACKTICK_ESCAPE = str(0x10FFFD)

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class QueryError(ValueError):
    """Raised when a query cannot be lexed or parsed."""


class TokenType(IntEnum):
    IGNORE = 0
    AND = 1
    INT = 2
    FIELD_NAME = 3
    STRING = 4
    BOOL_TRUE = 5
    BOOL_FALSE = 6
    EQUALS = 7
    NOT_EQUALS = 8
    LESS_THAN = 9
    GREATER_THAN = 10
    LESS_THAN_EQUALS = 11
    GREATER_THAN_EQUALS = 12

    @property
    def is_operator(self) -> bool:
        return self >= TokenType.EQUALS


OP_SYMBOLS = {
    TokenType.EQUALS: "==",
    TokenType.NOT_EQUALS: "!=",
    TokenType.LESS_THAN: "<",
    TokenType.GREATER_THAN: ">",
    TokenType.LESS_THAN_EQUALS: "<=",
    TokenType.GREATER_THAN_EQUALS: ">=",
}

_EXPRESSIONS = [
    (re.compile(pattern), kind)
    for pattern, kind in (
        (r"[ ]+", TokenType.IGNORE),
        (r"==", TokenType.EQUALS),
        (r"!=", TokenType.NOT_EQUALS),
        (r"false", TokenType.BOOL_FALSE),
        (r"true", TokenType.BOOL_TRUE),
        (r"and", TokenType.AND),
        (r"<=", TokenType.LESS_THAN_EQUALS),
        (r">=", TokenType.GREATER_THAN_EQUALS),
        (r"<", TokenType.LESS_THAN),
        (r">", TokenType.GREATER_THAN),
        (r"[0-9]+", TokenType.INT),
        (r'"(?:[^"\\]|\\.)*"', TokenType.STRING),
        (r'`(?:[^"\\]|\\.)*`', TokenType.STRING),
        (r"""'(?:[^"\\]|\\.)*'""", TokenType.STRING),
        (r"[<>!=+\-|&*/A-Za-z][A-Za-z0-9_.]*", TokenType.FIELD_NAME),
    )
]

_EQUALITY_OPS = (TokenType.EQUALS, TokenType.NOT_EQUALS)


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str


@dataclass
class Query:
    field: str = ""
    op: TokenType = TokenType.IGNORE
    value: object = None


def lex(text: str) -> list[Token]:
    """Split a query into tokens, dropping whitespace.

    At each position the longest match wins; ties go to the earlier expression.
    """
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        best = None
        for pattern, kind in _EXPRESSIONS:
            match = pattern.match(text, pos)
            if match is None or match.end() == pos:
                continue
            if best is None or match.end() > best[0].end():
                best = (match, kind)
        if best is None:
            raise QueryError(f"unexpected character {text[pos]!r} at position {pos}")
        match, kind = best
        if kind is not TokenType.IGNORE:
            tokens.append(Token(kind, match.group()))
        pos = match.end()
    return tokens


def _require_equality(op: TokenType, what: str) -> None:
    if op not in _EQUALITY_OPS:
        raise QueryError(f"operator '{OP_SYMBOLS.get(op, '')}' can't be used with {what}")


def _unquote(text: str) -> str:
    if len(text) < 2:
        raise QueryError(f"string literal too short: '{text}'")
    return (
        text[1:-1]
        .replace(QUOTE_ESCAPE, '"')
        .replace(SINGLE_QUOTE_ESCAPE, "'")
        .replace(BACKTICK_ESCAPE, "`")
    )


def parse(q: str) -> list[Query]:
    """Parse a query such as ``a == 12 and name != "x"`` into conditions."""
    if QUOTE_ESCAPE in q:
        raise QueryError("query contains illegal max rune")
    q = q.replace('""', QUOTE_ESCAPE).replace("``", SINGLE_QUOTE_ESCAPE).replace("''", BACKTICK_ESCAPE)

    tokens = lex(q)
    queries: list[Query] = []
    current = Query()
    last = len(tokens) - 1
    for position, token in enumerate(tokens):
        if token.type is TokenType.AND:
            queries.append(current)
            current = Query()
            continue
        if token.type.is_operator:
            current.op = token.type
            continue

        if token.type is TokenType.FIELD_NAME:
            current.field = token.text
        elif token.type is TokenType.STRING:
            _require_equality(current.op, "strings")
            current.value = _unquote(token.text)
        elif token.type is TokenType.BOOL_TRUE:
            _require_equality(current.op, "bools")
            current.value = True
        elif token.type is TokenType.BOOL_FALSE:
            _require_equality(current.op, "bools")
            current.value = False
        elif token.type is TokenType.INT:
            number = int(token.text)
            if not _INT64_MIN <= number <= _INT64_MAX:
                raise QueryError(f"value out of range: {token.text}")
            current.value = number

        if position == last:
            queries.append(current)
    return queries
"""Minimal recursive-descent reader/printer for the solver's S-expressions.

Atoms are kept as raw strings (string literals keep their quotes) and lists
become tuples, so a parsed datum is hashable and can be printed back exactly.
"""
from __future__ import annotations

from typing import Iterator, Union

from .types import ParseError

__all__ = ["SExpr", "tokenize", "read", "read_all", "dump", "lists_preorder"]

SExpr = Union[str, tuple["SExpr", ...]]


def tokenize(text: str) -> list[str]:
    tokens: list[str] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
        elif ch in "()":
            tokens.append(ch)
            i += 1
        elif ch == '"':
            j = i + 1
            while j < n and text[j] != '"':
                j += 2 if text[j] == "\\" else 1
            if j >= n:
                raise ParseError(f"unterminated string literal at offset {i}")
            tokens.append(text[i : j + 1])
            i = j + 1
        else:
            j = i
            while j < n and not text[j].isspace() and text[j] not in '()"':
                j += 1
            tokens.append(text[i:j])
            i = j
    return tokens


class _Reader:
    def __init__(self, tokens: list[str]) -> None:
        self.tokens = tokens
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.tokens)

    def datum(self) -> SExpr:
        if self.at_end():
            raise ParseError("unexpected end of input")
        tok = self.tokens[self.pos]
        self.pos += 1
        if tok == ")":
            raise ParseError(f"unbalanced ')' at token {self.pos - 1}")
        if tok != "(":
            return tok
        items: list[SExpr] = []
        while True:
            if self.at_end():
                raise ParseError("unbalanced '(': missing ')'")
            if self.tokens[self.pos] == ")":
                self.pos += 1
                return tuple(items)
            items.append(self.datum())


def read_all(text: str) -> list[SExpr]:
    """Read every datum in *text*."""
    reader = _Reader(tokenize(text))
    out: list[SExpr] = []
    while not reader.at_end():
        out.append(reader.datum())
    return out


def read(text: str) -> SExpr:
    """Read exactly one datum from *text*."""
    data = read_all(text)
    if not data:
        raise ParseError("empty input")
    if len(data) > 1:
        raise ParseError(f"expected one expression, found {len(data)}")
    return data[0]


def dump(expr: SExpr) -> str:
    if isinstance(expr, str):
        return expr
    return "(" + " ".join(dump(e) for e in expr) + ")"


def lists_preorder(expr: SExpr) -> Iterator[tuple[SExpr, ...]]:
    """Yield every list in the order its opening parenthesis appears."""
    if isinstance(expr, str):
        return
    yield expr
    for item in expr:
        yield from lists_preorder(item)

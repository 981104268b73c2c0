"""Parser for type-expression strings such as ``*mut Pair<i32, [u8; 4]>``."""

from __future__ import annotations

import re

from ffiheader.errors import SourceError
from ffiheader.frontend.nodes import (
    ArrayExpr,
    FnExpr,
    NeverExpr,
    PathExpr,
    PointerExpr,
    TypeExpr,
    UnitExpr,
)

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<lifetime>'[A-Za-z_]\w*)
      | (?P<op>::|->|[*&\[\];<>(),:!])
      | (?P<string>"[^"]*")
      | (?P<word>[A-Za-z_0-9][A-Za-z_0-9]*)
    )""",
    re.VERBOSE,
)


def parse_type(text: str) -> TypeExpr:
    """Parse one type expression.

    Raises:
        SourceError: If the text is not a supported type expression.
    """
    parser = _TypeParser(_tokenize(text), text)
    expr = parser.parse_type()
    if parser.peek() is not None:
        raise SourceError(f"Unexpected {parser.peek()!r} after type in {text!r}")
    return expr


def _tokenize(text: str) -> list[str]:
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match:
            raise SourceError(f"Invalid character in type {text!r} at offset {pos}")
        if match.lastgroup != "lifetime":
            tokens.append(match.group(match.lastgroup))
        pos = match.end()
    return tokens


class _TypeParser:
    def __init__(self, tokens: list[str], text: str):
        self.tokens = tokens
        self.pos = 0
        self.text = text

    def peek(self, offset: int = 0) -> str | None:
        index = self.pos + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def next(self) -> str:
        token = self.peek()
        if token is None:
            raise SourceError(f"Unexpected end of type {self.text!r}")
        self.pos += 1
        return token

    def expect(self, token: str):
        found = self.next()
        if found != token:
            raise SourceError(f"Expected {token!r} but found {found!r} in type {self.text!r}")

    def parse_type(self) -> TypeExpr:
        token = self.peek()

        if token == "*":
            self.next()
            qualifier = self.next()
            if qualifier not in ("const", "mut"):
                raise SourceError(f"Raw pointer needs 'const' or 'mut' in type {self.text!r}")
            return PointerExpr(self.parse_type(), mutable=qualifier == "mut")

        if token == "&":
            self.next()
            mutable = self.peek() == "mut"
            if mutable:
                self.next()
            return PointerExpr(self.parse_type(), mutable=mutable, reference=True)

        if token == "[":
            self.next()
            element = self.parse_type()
            self.expect(";")
            length = []
            while self.peek() not in ("]", None):
                length.append(self.next())
            self.expect("]")
            if not length:
                raise SourceError(f"Array without a length in type {self.text!r}")
            return ArrayExpr(element, "".join(length))

        if token == "(":
            self.next()
            if self.peek() == ")":
                self.next()
                return UnitExpr()
            inner = self.parse_type()
            if self.peek() == ",":
                raise SourceError(f"Tuples are not supported across FFI: {self.text!r}")
            self.expect(")")
            return inner

        if token == "!":
            self.next()
            return NeverExpr()

        if token in ("unsafe", "extern", "fn"):
            return self.parse_fn()

        return self.parse_path()

    def parse_fn(self) -> FnExpr:
        if self.peek() == "unsafe":
            self.next()
        if self.peek() == "extern":
            self.next()
            if self.peek() is not None and self.peek().startswith('"'):
                self.next()
        self.expect("fn")
        self.expect("(")
        params = []
        while self.peek() != ")":
            name = None
            if self.peek(1) == ":" and self.peek() not in (None, "*", "&", "[", "("):
                name = self.next()
                self.next()
                if name == "_":
                    name = None
            params.append((name, self.parse_type()))
            if self.peek() == ",":
                self.next()
            elif self.peek() != ")":
                raise SourceError(f"Expected ',' or ')' in function type {self.text!r}")
        self.expect(")")

        ret = None
        if self.peek() == "->":
            self.next()
            ret = self.parse_type()
        return FnExpr(tuple(params), ret)

    def parse_path(self) -> PathExpr:
        segment = self.next()
        if not (segment[0].isalpha() or segment[0] == "_"):
            raise SourceError(f"Expected a type name but found {segment!r} in {self.text!r}")
        while self.peek() == "::":
            self.next()
            segment = self.next()

        args = []
        if self.peek() == "<":
            self.next()
            while self.peek() != ">":
                args.append(self.parse_type())
                if self.peek() == ",":
                    self.next()
                elif self.peek() != ">":
                    raise SourceError(f"Expected ',' or '>' in type {self.text!r}")
            self.expect(">")
        return PathExpr(segment, tuple(args))

"""Conditional-compilation predicates.

A predicate is a small boolean tree over leaves of two shapes: a bare flag
(``unix``) and a key/value pair (``feature = "std"``). Predicates are parsed
from attribute text, combined when an item inherits its module's predicate,
and evaluated against an ``Environment`` by the conditional resolver.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field


class CfgSyntaxError(ValueError):
    """Raised when predicate text cannot be parsed."""


class Cfg:
    """Base class for predicate nodes."""

    def leaves(self) -> list[Cfg]:
        raise NotImplementedError


@dataclass(frozen=True)
class CfgFlag(Cfg):
    name: str

    def leaves(self) -> list[Cfg]:
        return [self]

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class CfgValue(Cfg):
    key: str
    value: str

    def leaves(self) -> list[Cfg]:
        return [self]

    def __str__(self) -> str:
        return f'{self.key} = "{self.value}"'


@dataclass(frozen=True)
class CfgAll(Cfg):
    items: tuple[Cfg, ...]

    def leaves(self) -> list[Cfg]:
        return [leaf for item in self.items for leaf in item.leaves()]

    def __str__(self) -> str:
        return f"all({', '.join(str(i) for i in self.items)})"


@dataclass(frozen=True)
class CfgAny(Cfg):
    items: tuple[Cfg, ...]

    def leaves(self) -> list[Cfg]:
        return [leaf for item in self.items for leaf in item.leaves()]

    def __str__(self) -> str:
        return f"any({', '.join(str(i) for i in self.items)})"


@dataclass(frozen=True)
class CfgNot(Cfg):
    item: Cfg

    def leaves(self) -> list[Cfg]:
        return self.item.leaves()

    def __str__(self) -> str:
        return f"not({self.item})"


@dataclass
class Environment:
    """Enabled flags and key/value settings a predicate is evaluated against.

    A flag absent from ``flags`` (or a key absent from ``values``) is unknown.
    Unknown leaves evaluate to false.
    """

    flags: dict[str, bool] = field(default_factory=dict)
    values: dict[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_settings(
        cls,
        flags: dict[str, bool] | None = None,
        features: list[str] | None = None,
        values: dict[str, list[str]] | None = None,
    ) -> Environment:
        merged = {k: frozenset(v) for k, v in (values or {}).items()}
        if features is not None:
            merged["feature"] = frozenset(features)
        return cls(flags=dict(flags or {}), values=merged)

    def lookup(self, leaf: Cfg) -> bool | None:
        """Value of a leaf, or None when the environment says nothing about it."""
        if isinstance(leaf, CfgFlag):
            return self.flags.get(leaf.name)
        if isinstance(leaf, CfgValue):
            if leaf.key not in self.values:
                return None
            return leaf.value in self.values[leaf.key]
        raise TypeError(f"Not a predicate leaf: {leaf!r}")


def evaluate(
    cfg: Cfg | None,
    env: Environment,
    on_unknown: Callable[[Cfg], None] | None = None,
) -> bool:
    """Evaluate ``cfg`` against ``env``. A missing predicate is always true."""
    if cfg is None:
        return True
    if isinstance(cfg, CfgAll):
        return all(evaluate(item, env, on_unknown) for item in cfg.items)
    if isinstance(cfg, CfgAny):
        return any(evaluate(item, env, on_unknown) for item in cfg.items)
    if isinstance(cfg, CfgNot):
        return not evaluate(cfg.item, env, on_unknown)

    value = env.lookup(cfg)
    if value is None:
        if on_unknown is not None:
            on_unknown(cfg)
        return False
    return value


def join(*cfgs: Cfg | None) -> Cfg | None:
    """Conjunction of the given predicates, skipping missing ones."""
    items: list[Cfg] = []
    for cfg in cfgs:
        if cfg is None:
            continue
        if isinstance(cfg, CfgAll):
            items.extend(i for i in cfg.items if i not in items)
        elif cfg not in items:
            items.append(cfg)
    if not items:
        return None
    if len(items) == 1:
        return items[0]
    return CfgAll(tuple(items))


# --- Parsing ---

_TOKEN_RE = re.compile(r'\s*(?:(?P<ident>[A-Za-z_][A-Za-z0-9_]*)|(?P<string>"[^"]*")|(?P<punct>[(),=]))')


def parse_cfg(text: str) -> Cfg:
    """Parse predicate text such as ``all(unix, not(feature = "std"))``.

    A surrounding ``cfg(...)`` is accepted and stripped.
    """
    tokens = _tokenize(text)
    parser = _CfgParser(tokens, text)
    cfg = parser.parse_predicate()
    if isinstance(cfg, CfgFlag) and cfg.name == "cfg" and parser.peek() == "(":
        parser.expect("(")
        cfg = parser.parse_predicate()
        parser.expect(")")
    if parser.peek() is not None:
        raise CfgSyntaxError(f"Unexpected trailing input in cfg: {text!r}")
    return cfg


def _tokenize(text: str) -> list[str]:
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match:
            raise CfgSyntaxError(f"Invalid character in cfg {text!r} at offset {pos}")
        tokens.append(match.group(match.lastgroup))
        pos = match.end()
    return tokens


class _CfgParser:
    def __init__(self, tokens: list[str], text: str):
        self.tokens = tokens
        self.pos = 0
        self.text = text

    def peek(self) -> str | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def next(self) -> str:
        token = self.peek()
        if token is None:
            raise CfgSyntaxError(f"Unexpected end of cfg: {self.text!r}")
        self.pos += 1
        return token

    def expect(self, token: str):
        found = self.next()
        if found != token:
            raise CfgSyntaxError(f"Expected {token!r} but found {found!r} in cfg {self.text!r}")

    def parse_predicate(self) -> Cfg:
        name = self.next()
        if not (name[0].isalpha() or name[0] == "_"):
            raise CfgSyntaxError(f"Expected a name but found {name!r} in cfg {self.text!r}")

        if name in ("all", "any", "not") and self.peek() == "(":
            self.expect("(")
            items = []
            while self.peek() != ")":
                items.append(self.parse_predicate())
                if self.peek() == ",":
                    self.next()
                elif self.peek() != ")":
                    raise CfgSyntaxError(f"Expected ',' or ')' in cfg {self.text!r}")
            self.expect(")")
            if name == "not":
                if len(items) != 1:
                    raise CfgSyntaxError(f"not() takes exactly one predicate: {self.text!r}")
                return CfgNot(items[0])
            return CfgAll(tuple(items)) if name == "all" else CfgAny(tuple(items))

        if self.peek() == "=":
            self.next()
            value = self.next()
            if not value.startswith('"'):
                raise CfgSyntaxError(f"Expected a string value for {name!r} in cfg {self.text!r}")
            return CfgValue(name, value[1:-1])

        return CfgFlag(name)

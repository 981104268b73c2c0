"""Identifier rename rules for fields, enum variants and function arguments."""

from __future__ import annotations

import re
from enum import Enum


class IdentifierType(Enum):
    STRUCT_MEMBER = "struct_member"
    ENUM_VARIANT = "enum_variant"
    FUNCTION_ARG = "function_arg"
    TYPE = "type"


class RenameRule(Enum):
    NONE = "none"
    GECKO_CASE = "GeckoCase"  # mFieldName / aArgName
    LOWER_CASE = "lowercase"
    UPPER_CASE = "UPPERCASE"
    PASCAL_CASE = "PascalCase"
    CAMEL_CASE = "camelCase"
    SNAKE_CASE = "snake_case"
    SCREAMING_SNAKE_CASE = "SCREAMING_SNAKE_CASE"
    QUALIFIED_SCREAMING_SNAKE_CASE = "QualifiedScreamingSnakeCase"  # ENUM_NAME_VARIANT


_ALIASES = {
    "None": RenameRule.NONE,
    "LowerCase": RenameRule.LOWER_CASE,
    "UpperCase": RenameRule.UPPER_CASE,
    "CamelCase": RenameRule.CAMEL_CASE,
    "SnakeCase": RenameRule.SNAKE_CASE,
    "ScreamingSnakeCase": RenameRule.SCREAMING_SNAKE_CASE,
    "mGeckoCase": RenameRule.GECKO_CASE,
}

_WORD_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")


def parse_rule(text: str) -> RenameRule:
    """Look up a rule by its configuration spelling.

    Raises:
        ValueError: If the spelling names no rule.
    """
    if text in _ALIASES:
        return _ALIASES[text]
    return RenameRule(text)


def split_words(name: str) -> list[str]:
    """Split an identifier on underscores and case boundaries."""
    return _WORD_RE.findall(name)


def apply_rule(rule: RenameRule, name: str, context: IdentifierType, qualifier: str = "") -> str:
    """Rename ``name`` according to ``rule``.

    ``qualifier`` is the owning type name, used by the qualified rule.
    """
    if rule == RenameRule.NONE or not name:
        return name

    words = split_words(name)
    if not words:
        return name

    if rule == RenameRule.LOWER_CASE:
        return name.lower()
    if rule == RenameRule.UPPER_CASE:
        return name.upper()
    if rule == RenameRule.PASCAL_CASE:
        return "".join(w.capitalize() for w in words)
    if rule == RenameRule.CAMEL_CASE:
        return words[0].lower() + "".join(w.capitalize() for w in words[1:])
    if rule == RenameRule.SNAKE_CASE:
        return "_".join(w.lower() for w in words)
    if rule == RenameRule.SCREAMING_SNAKE_CASE:
        return "_".join(w.upper() for w in words)
    if rule == RenameRule.QUALIFIED_SCREAMING_SNAKE_CASE:
        prefix = "_".join(w.upper() for w in split_words(qualifier))
        body = "_".join(w.upper() for w in words)
        return f"{prefix}_{body}" if prefix else body
    if rule == RenameRule.GECKO_CASE:
        pascal = "".join(w.capitalize() for w in words)
        if context == IdentifierType.STRUCT_MEMBER:
            return f"m{pascal}"
        if context == IdentifierType.FUNCTION_ARG:
            return f"a{pascal}"
        return pascal

    raise ValueError(f"Unhandled rename rule: {rule}")

"""Syntax adapter — hands the core a sequence of declaration nodes.

The core never reads source text. This package provides the node types the
IR builder consumes, a parser for type-expression strings, and a loader that
reads crates described as YAML module files.
"""

from ffiheader.frontend.nodes import (
    DeclarationNode,
    DeclKind,
    FieldNode,
    ParamNode,
    RawAttribute,
    VariantNode,
)
from ffiheader.frontend.type_parser import parse_type

__all__ = [
    "DeclarationNode",
    "DeclKind",
    "FieldNode",
    "ParamNode",
    "RawAttribute",
    "VariantNode",
    "parse_type",
]

"""Declaration nodes — the untyped syntax tree handed to the IR builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class DeclKind(Enum):
    STRUCT = "struct"
    UNION = "union"
    ENUM = "enum"
    OPAQUE = "opaque"
    TYPE_ALIAS = "type"
    FUNCTION = "fn"
    CONSTANT = "const"
    STATIC = "static"


@dataclass(frozen=True)
class RawAttribute:
    """One attribute as written: ``repr(C)`` is ``RawAttribute("repr", "C")``."""

    name: str
    value: str | None = None


# --- Type expressions ---


@dataclass(frozen=True)
class PathExpr:
    name: str
    args: tuple[TypeExpr, ...] = ()


@dataclass(frozen=True)
class PointerExpr:
    target: TypeExpr
    mutable: bool = False
    reference: bool = False  # `&T` rather than `*const T`


@dataclass(frozen=True)
class ArrayExpr:
    element: TypeExpr
    length: str


@dataclass(frozen=True)
class FnExpr:
    params: tuple[tuple[str | None, TypeExpr], ...] = ()
    ret: TypeExpr | None = None


@dataclass(frozen=True)
class UnitExpr:
    pass


@dataclass(frozen=True)
class NeverExpr:
    pass


TypeExpr = PathExpr | PointerExpr | ArrayExpr | FnExpr | UnitExpr | NeverExpr


# --- Declarations ---


@dataclass
class FieldNode:
    name: str
    type: TypeExpr
    attributes: list[RawAttribute] = field(default_factory=list)


@dataclass
class VariantNode:
    name: str
    discriminant: str | None = None
    fields: list[FieldNode] = field(default_factory=list)
    attributes: list[RawAttribute] = field(default_factory=list)


@dataclass
class ParamNode:
    name: str | None
    type: TypeExpr
    attributes: list[RawAttribute] = field(default_factory=list)


@dataclass
class DeclarationNode:
    """One top-level declaration, in source declaration order."""

    kind: DeclKind
    ident: str
    attributes: list[RawAttribute] = field(default_factory=list)
    generics: list[str] = field(default_factory=list)
    crate: str = ""
    exported: bool = True

    # Attributes inherited from the enclosing crate and module (cfg only)
    inherited: list[RawAttribute] = field(default_factory=list)

    # struct / union
    fields: list[FieldNode] = field(default_factory=list)
    # enum
    variants: list[VariantNode] = field(default_factory=list)
    # fn
    params: list[ParamNode] = field(default_factory=list)
    returns: TypeExpr | None = None
    variadic: bool = False
    # type alias target, const and static type
    type: TypeExpr | None = None
    # const
    value: str | None = None
    # static
    mutable: bool = False

"""IR builder — converts declaration nodes into Library entities.

Each declaration node becomes exactly one entity keyed by its canonical name.
Generic parameters are recorded but never substituted here, and unknown type
names are kept as plain paths: whether they resolve is only decided when the
emission stream is built.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ffiheader.errors import DuplicateDeclaration, SourceError
from ffiheader.frontend.nodes import (
    ArrayExpr,
    DeclarationNode,
    DeclKind,
    FieldNode,
    FnExpr,
    NeverExpr,
    PathExpr,
    PointerExpr,
    RawAttribute,
    TypeExpr,
    UnitExpr,
)
from ffiheader.ir.annotations import AnnotationError, AnnotationSet, Passthrough, classify
from ffiheader.ir.cfg import Cfg, CfgSyntaxError, join, parse_cfg
from ffiheader.ir.library import Library
from ffiheader.ir.models import (
    Constant,
    Enum,
    EnumVariant,
    Field,
    Function,
    FunctionArgument,
    Item,
    OpaqueType,
    Static,
    Struct,
    TypeAlias,
    Union,
)
from ffiheader.ir.types import (
    PRIMITIVE_NAMES,
    VOID,
    Array,
    FunctionPointer,
    Path,
    Pointer,
    Primitive,
    PrimitiveKind,
    TypeRef,
)

logger = logging.getLogger(__name__)

# Standard wrappers that lower to a non-null pointer to their argument
POINTER_WRAPPERS = {"Box": True, "NonNull": True}  # name -> mutable
# Standard wrappers with the same layout as their argument
TRANSPARENT_WRAPPERS = {"ManuallyDrop", "MaybeUninit", "Cell", "UnsafeCell"}


class LibraryBuilder:
    """Accumulates declaration nodes, in source order, into a Library."""

    def __init__(self, external_types: Iterable[str] = ()):
        self.library = Library(external_types=set(external_types))
        self._crate_of: dict[str, str] = {}
        self._next_index = 0

    def add_nodes(self, nodes: Iterable[DeclarationNode]) -> LibraryBuilder:
        for node in nodes:
            self.add(node)
        return self

    def add(self, node: DeclarationNode):
        name = node.ident
        if name in self._crate_of:
            first_crate = self._crate_of[name]
            if first_crate == node.crate:
                raise DuplicateDeclaration(
                    f"declared more than once in crate '{node.crate}'", entity=name
                )
            logger.warning(
                "Skipping %s from crate '%s': already declared by crate '%s'",
                name,
                node.crate,
                first_crate,
            )
            return

        item = self._convert(node)
        item.decl_index = self._next_index
        self._next_index += 1
        self._crate_of[name] = node.crate
        self.library.add(item)

    def build(self) -> Library:
        logger.info("Built IR: %s", self.library.summary())
        return self.library

    # --- Declarations ---

    def _convert(self, node: DeclarationNode) -> Item:
        generics = set(node.generics)
        cfg, docs, annotations = _split_attributes(node.attributes, node.ident)
        inherited_cfg, _, _ = _split_attributes(node.inherited, node.ident)

        common = dict(
            name=node.ident,
            generic_params=list(node.generics),
            documentation=docs,
            cfg=join(inherited_cfg, cfg),
            annotations=annotations,
            crate=node.crate,
            exported=node.exported,
        )

        if node.kind == DeclKind.STRUCT:
            return Struct(fields=self._fields(node.fields, generics, node.ident), **common)
        if node.kind == DeclKind.UNION:
            return Union(fields=self._fields(node.fields, generics, node.ident), **common)
        if node.kind == DeclKind.ENUM:
            return Enum(variants=self._variants(node, generics), **common)
        if node.kind == DeclKind.OPAQUE:
            return OpaqueType(**common)
        if node.kind == DeclKind.TYPE_ALIAS:
            return TypeAlias(aliased=self._required_type(node, generics), **common)
        if node.kind == DeclKind.CONSTANT:
            return Constant(ty=self._required_type(node, generics), value=node.value or "", **common)
        if node.kind == DeclKind.STATIC:
            return Static(ty=self._required_type(node, generics), mutable=node.mutable, **common)
        if node.kind == DeclKind.FUNCTION:
            return self._function(node, generics, common)
        raise SourceError(f"Unsupported declaration kind: {node.kind}", entity=node.ident)

    def _function(self, node: DeclarationNode, generics: set[str], common: dict) -> Function:
        args = []
        for param in node.params:
            cfg, _, _ = _split_attributes(param.attributes, f"{node.ident}({param.name})")
            ty = convert_type(param.type, generics)
            if isinstance(ty, Array):
                raise SourceError(
                    f"argument '{param.name}' is an array passed by value, "
                    "which C cannot express; pass a pointer instead",
                    entity=node.ident,
                )
            args.append(FunctionArgument(name=param.name, ty=ty, cfg=cfg))

        lengths = common["annotations"].ptrs_as_arrays
        for arg in args:
            if arg.name in lengths:
                if isinstance(arg.ty, Pointer):
                    arg.array_length = lengths[arg.name]
                else:
                    logger.warning(
                        "Ignoring ptrs_as_arrays for non-pointer argument '%s' of %s",
                        arg.name,
                        node.ident,
                    )

        if node.variadic:
            args.append(FunctionArgument(name=None, ty=Primitive(PrimitiveKind.VA_LIST)))

        never_return = isinstance(node.returns, NeverExpr)
        ret = VOID if node.returns is None else convert_type(node.returns, generics)
        return Function(args=args, ret=ret, never_return=never_return, **common)

    def _fields(self, nodes: list[FieldNode], generics: set[str], owner: str) -> list[Field]:
        fields = []
        for node in nodes:
            cfg, docs, _ = _split_attributes(node.attributes, f"{owner}.{node.name}")
            fields.append(
                Field(
                    name=node.name,
                    ty=convert_type(node.type, generics),
                    documentation=docs,
                    cfg=cfg,
                )
            )
        return fields

    def _variants(self, node: DeclarationNode, generics: set[str]) -> list[EnumVariant]:
        variants = []
        for variant in node.variants:
            owner = f"{node.ident}::{variant.name}"
            cfg, docs, _ = _split_attributes(variant.attributes, owner)
            variants.append(
                EnumVariant(
                    name=variant.name,
                    discriminant=variant.discriminant,
                    fields=self._fields(variant.fields, generics, owner),
                    documentation=docs,
                    cfg=cfg,
                )
            )
        return variants

    def _required_type(self, node: DeclarationNode, generics: set[str]) -> TypeRef:
        if node.type is None:
            raise SourceError(f"{node.kind.value} declaration has no type", entity=node.ident)
        return convert_type(node.type, generics)


def build_library(nodes: Iterable[DeclarationNode], external_types: Iterable[str] = ()) -> Library:
    """Build a Library from declaration nodes given in source order."""
    return LibraryBuilder(external_types).add_nodes(nodes).build()


# --- Type expressions ---


def convert_type(expr: TypeExpr, generics: set[str] | frozenset[str] = frozenset()) -> TypeRef:
    """Lower a type expression into a TypeRef, simplifying standard wrappers."""
    if isinstance(expr, (UnitExpr, NeverExpr)):
        return VOID

    if isinstance(expr, PointerExpr):
        return Pointer(convert_type(expr.target, generics), expr.mutable, nullable=not expr.reference)

    if isinstance(expr, ArrayExpr):
        return Array(convert_type(expr.element, generics), expr.length)

    if isinstance(expr, FnExpr):
        params = tuple((name, convert_type(ty, generics)) for name, ty in expr.params)
        ret = VOID if expr.ret is None else convert_type(expr.ret, generics)
        return FunctionPointer(params, ret, never_return=isinstance(expr.ret, NeverExpr))

    if isinstance(expr, PathExpr):
        return _convert_path(expr, generics)

    raise SourceError(f"Unsupported type expression: {expr!r}")


def _convert_path(expr: PathExpr, generics: set[str] | frozenset[str]) -> TypeRef:
    name = expr.name
    if name in generics:
        return Path(name)

    if not expr.args and name in PRIMITIVE_NAMES:
        return Primitive(PRIMITIVE_NAMES[name])

    if len(expr.args) == 1:
        inner = convert_type(expr.args[0], generics)
        if name in POINTER_WRAPPERS:
            return Pointer(inner, mutable=POINTER_WRAPPERS[name], nullable=False)
        if name in TRANSPARENT_WRAPPERS:
            return inner
        if name == "Option":
            if isinstance(inner, Pointer):
                return Pointer(inner.target, inner.mutable, nullable=True)
            if isinstance(inner, FunctionPointer):
                return inner

    return Path(name, tuple(convert_type(arg, generics) for arg in expr.args))


# --- Attributes ---


def _split_attributes(
    attributes: list[RawAttribute], owner: str
) -> tuple[Cfg | None, list[str], AnnotationSet]:
    """Separate cfg predicates and doc lines from the other annotations."""
    cfgs = []
    docs = []
    annotations = AnnotationSet()

    for attr in attributes:
        if attr.name == "cfg":
            try:
                cfgs.append(parse_cfg(attr.value or ""))
            except CfgSyntaxError as e:
                raise SourceError(str(e), entity=owner) from e
        elif attr.name == "doc":
            docs.append(attr.value or "")
        else:
            try:
                annotation = classify(attr.name, attr.value)
            except AnnotationError as e:
                logger.warning("Ignoring malformed attribute on %s: %s", owner, e)
                continue
            if isinstance(annotation, Passthrough):
                logger.warning("Ignoring unrecognized attribute '%s' on %s", attr.name, owner)
            annotations.items.append(annotation)

    return join(*cfgs), docs, annotations

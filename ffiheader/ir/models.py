"""IR data models — the entities of an exported library surface.

Entities are created once by the IR builder (or synthesized once by the
specialization engine). Later stages only remove them, prune their contained
members, or assign export names; once ordering starts they are read-only.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
import enum
from typing import ClassVar

from ffiheader.ir.annotations import AnnotationSet
from ffiheader.ir.cfg import Cfg
from ffiheader.ir.types import VOID, TypeRef


class ItemKind(enum.Enum):
    STRUCT = "struct"
    UNION = "union"
    ENUM = "enum"
    OPAQUE = "opaque"
    TYPE_ALIAS = "type_alias"
    FUNCTION = "function"
    CONSTANT = "constant"
    STATIC = "static"


TYPE_KINDS = frozenset(
    {ItemKind.STRUCT, ItemKind.UNION, ItemKind.ENUM, ItemKind.OPAQUE, ItemKind.TYPE_ALIAS}
)


# --- Members ---


@dataclass
class Field:
    """A struct/union field or an enum variant payload field."""

    name: str
    ty: TypeRef
    documentation: list[str] = field(default_factory=list)
    cfg: Cfg | None = None
    export_name: str = ""

    def __post_init__(self):
        if not self.export_name:
            self.export_name = self.name


@dataclass
class EnumVariant:
    name: str
    discriminant: str | None = None
    fields: list[Field] = field(default_factory=list)
    documentation: list[str] = field(default_factory=list)
    cfg: Cfg | None = None
    export_name: str = ""

    def __post_init__(self):
        if not self.export_name:
            self.export_name = self.name

    @property
    def has_payload(self) -> bool:
        return bool(self.fields)


@dataclass
class FunctionArgument:
    name: str | None
    ty: TypeRef
    array_length: str | None = None  # Set for pointers emitted as C arrays
    cfg: Cfg | None = None
    export_name: str | None = None

    def __post_init__(self):
        if self.export_name is None:
            self.export_name = self.name


# --- Entities ---


@dataclass
class Item:
    """Common state of every entity."""

    kind: ClassVar[ItemKind]

    name: str  # Canonical name, the key in the Library
    export_name: str = ""
    generic_params: list[str] = field(default_factory=list)
    documentation: list[str] = field(default_factory=list)
    cfg: Cfg | None = None
    annotations: AnnotationSet = field(default_factory=AnnotationSet)
    crate: str = ""
    decl_index: int = 0  # Position in source declaration order
    exported: bool = True

    # Set on monomorphized copies
    instance_of: tuple[str, tuple[TypeRef, ...]] | None = None
    instance_seq: int = 0

    # Stand-in for a type removed by conditional compilation
    synthetic: bool = False

    def __post_init__(self):
        if not self.export_name:
            self.export_name = self.name

    @property
    def is_generic(self) -> bool:
        return bool(self.generic_params)

    @property
    def is_type(self) -> bool:
        return self.kind in TYPE_KINDS

    @property
    def sort_key(self) -> tuple[int, int]:
        """Stable position used to break ordering ties."""
        return (self.decl_index, self.instance_seq)

    def type_refs(self) -> Iterator[TypeRef]:
        """Every type reference occurring in this entity, in declaration order."""
        return iter(())

    def map_types(self, fn: Callable[[TypeRef], TypeRef]):
        """Replace every type reference in place with ``fn(ref)``."""

    def prune(self, keep: Callable[[Cfg | None], bool]) -> list[str]:
        """Drop contained members whose predicate fails. Returns their names."""
        return []

    def clone(self) -> Item:
        return copy.deepcopy(self)


@dataclass
class Struct(Item):
    kind: ClassVar[ItemKind] = ItemKind.STRUCT

    fields: list[Field] = field(default_factory=list)

    def type_refs(self) -> Iterator[TypeRef]:
        return (f.ty for f in self.fields)

    def map_types(self, fn: Callable[[TypeRef], TypeRef]):
        for f in self.fields:
            f.ty = fn(f.ty)

    def prune(self, keep: Callable[[Cfg | None], bool]) -> list[str]:
        removed = [f.name for f in self.fields if not keep(f.cfg)]
        self.fields = [f for f in self.fields if keep(f.cfg)]
        return removed


@dataclass
class Union(Struct):
    kind: ClassVar[ItemKind] = ItemKind.UNION


@dataclass
class Enum(Item):
    kind: ClassVar[ItemKind] = ItemKind.ENUM

    variants: list[EnumVariant] = field(default_factory=list)

    @property
    def is_tagged(self) -> bool:
        return any(v.has_payload for v in self.variants)

    @property
    def tag_name(self) -> str:
        return f"{self.export_name}_Tag"

    def body_name(self, variant: EnumVariant) -> str:
        return f"{self.export_name}_{variant.name}_Body"

    def generated_names(self) -> list[str]:
        """C type names the writer derives from a tagged enum."""
        if not self.is_tagged:
            return []
        return [self.tag_name] + [self.body_name(v) for v in self.variants if v.has_payload]

    def type_refs(self) -> Iterator[TypeRef]:
        return (f.ty for v in self.variants for f in v.fields)

    def map_types(self, fn: Callable[[TypeRef], TypeRef]):
        for v in self.variants:
            for f in v.fields:
                f.ty = fn(f.ty)

    def prune(self, keep: Callable[[Cfg | None], bool]) -> list[str]:
        removed = [v.name for v in self.variants if not keep(v.cfg)]
        self.variants = [v for v in self.variants if keep(v.cfg)]
        for v in self.variants:
            removed.extend(f"{v.name}.{f.name}" for f in v.fields if not keep(f.cfg))
            v.fields = [f for f in v.fields if keep(f.cfg)]
        return removed


@dataclass
class OpaqueType(Item):
    kind: ClassVar[ItemKind] = ItemKind.OPAQUE


@dataclass
class TypeAlias(Item):
    kind: ClassVar[ItemKind] = ItemKind.TYPE_ALIAS

    aliased: TypeRef = VOID

    def type_refs(self) -> Iterator[TypeRef]:
        yield self.aliased

    def map_types(self, fn: Callable[[TypeRef], TypeRef]):
        self.aliased = fn(self.aliased)


@dataclass
class Function(Item):
    kind: ClassVar[ItemKind] = ItemKind.FUNCTION

    args: list[FunctionArgument] = field(default_factory=list)
    ret: TypeRef = VOID
    never_return: bool = False

    def type_refs(self) -> Iterator[TypeRef]:
        yield self.ret
        for arg in self.args:
            yield arg.ty

    def map_types(self, fn: Callable[[TypeRef], TypeRef]):
        self.ret = fn(self.ret)
        for arg in self.args:
            arg.ty = fn(arg.ty)

    def prune(self, keep: Callable[[Cfg | None], bool]) -> list[str]:
        removed = [a.name or "_" for a in self.args if not keep(a.cfg)]
        self.args = [a for a in self.args if keep(a.cfg)]
        return removed


@dataclass
class Constant(Item):
    kind: ClassVar[ItemKind] = ItemKind.CONSTANT

    ty: TypeRef = VOID
    value: str = ""

    def type_refs(self) -> Iterator[TypeRef]:
        yield self.ty

    def map_types(self, fn: Callable[[TypeRef], TypeRef]):
        self.ty = fn(self.ty)


@dataclass
class Static(Item):
    kind: ClassVar[ItemKind] = ItemKind.STATIC

    ty: TypeRef = VOID
    mutable: bool = False

    def type_refs(self) -> Iterator[TypeRef]:
        yield self.ty

    def map_types(self, fn: Callable[[TypeRef], TypeRef]):
        self.ty = fn(self.ty)

"""C declarators for type references.

C spells a declaration inside out: ``int32_t (*handlers[4])(void)`` reads
from the identifier outward. A ``CDecl`` records the declarator chain from
the outermost type inward and prints it back around an identifier with the
parentheses C needs when a pointer wraps an array or a function.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from ffiheader.ir.models import Function
from ffiheader.ir.types import (
    Array,
    FunctionPointer,
    Path,
    Pointer,
    Primitive,
    PrimitiveKind,
    TypeRef,
)

C_PRIMITIVES = {
    PrimitiveKind.VOID: "void",
    PrimitiveKind.BOOL: "bool",
    PrimitiveKind.CHAR32: "uint32_t",
    PrimitiveKind.INT8: "int8_t",
    PrimitiveKind.INT16: "int16_t",
    PrimitiveKind.INT32: "int32_t",
    PrimitiveKind.INT64: "int64_t",
    PrimitiveKind.UINT8: "uint8_t",
    PrimitiveKind.UINT16: "uint16_t",
    PrimitiveKind.UINT32: "uint32_t",
    PrimitiveKind.UINT64: "uint64_t",
    PrimitiveKind.INTPTR: "intptr_t",
    PrimitiveKind.UINTPTR: "uintptr_t",
    PrimitiveKind.FLOAT32: "float",
    PrimitiveKind.FLOAT64: "double",
    PrimitiveKind.C_CHAR: "char",
    PrimitiveKind.C_SCHAR: "signed char",
    PrimitiveKind.C_UCHAR: "unsigned char",
    PrimitiveKind.C_SHORT: "short",
    PrimitiveKind.C_USHORT: "unsigned short",
    PrimitiveKind.C_INT: "int",
    PrimitiveKind.C_UINT: "unsigned int",
    PrimitiveKind.C_LONG: "long",
    PrimitiveKind.C_ULONG: "unsigned long",
    PrimitiveKind.C_LONGLONG: "long long",
    PrimitiveKind.C_ULONGLONG: "unsigned long long",
    PrimitiveKind.C_FLOAT: "float",
    PrimitiveKind.C_DOUBLE: "double",
    PrimitiveKind.SIZE: "size_t",
    PrimitiveKind.SSIZE: "ssize_t",
    PrimitiveKind.PTRDIFF: "ptrdiff_t",
    PrimitiveKind.VA_LIST: "va_list",
}

# Maps a referenced entity name onto the name printed for it
NameResolver = Callable[[str], str]


@dataclass
class _Pointer:
    is_const: bool  # The pointer itself is const


@dataclass
class _Array:
    length: str


@dataclass
class _Func:
    args: list[tuple[str | None, CDecl]]
    never_return: bool = False


@dataclass
class CDecl:
    qualifier: str = ""
    type_name: str = ""
    declarators: list = field(default_factory=list)

    @classmethod
    def from_type(cls, ty: TypeRef, names: NameResolver, is_const: bool = False) -> CDecl:
        decl = cls()
        decl._build(ty, is_const, names)
        return decl

    @classmethod
    def from_argument(cls, ty: TypeRef, array_length: str | None, names: NameResolver) -> CDecl:
        """An argument declaration; pointers with a length print as arrays."""
        if array_length is None or not isinstance(ty, Pointer):
            return cls.from_type(ty, names)
        decl = cls()
        decl._build(Array(ty.target, array_length), not ty.mutable, names)
        return decl

    @classmethod
    def from_function(cls, func: Function, names: NameResolver) -> CDecl:
        decl = cls()
        args = [
            (arg.export_name, cls.from_argument(arg.ty, arg.array_length, names))
            for arg in func.args
        ]
        decl.declarators.append(_Func(args, func.never_return))
        decl._build(func.ret, False, names)
        return decl

    def _build(self, ty: TypeRef, is_const: bool, names: NameResolver):
        if isinstance(ty, (Path, Primitive)):
            if is_const:
                self.qualifier = "const"
            if isinstance(ty, Path):
                self.type_name = names(ty.name)
            else:
                self.type_name = C_PRIMITIVES[ty.kind]
        elif isinstance(ty, Pointer):
            self.declarators.append(_Pointer(is_const))
            self._build(ty.target, not ty.mutable, names)
        elif isinstance(ty, Array):
            self.declarators.append(_Array(ty.length))
            self._build(ty.element, is_const, names)
        elif isinstance(ty, FunctionPointer):
            args = [(name, CDecl.from_type(arg, names)) for name, arg in ty.params]
            self.declarators.append(_Pointer(is_const))
            self.declarators.append(_Func(args, ty.never_return))
            self._build(ty.ret, False, names)
        else:
            raise TypeError(f"Cannot declare {ty!r} in C")

    def render(self, ident: str | None = None, no_return: str | None = None) -> str:
        """The declaration text, with ``ident`` in declarator position if given."""
        head = f"{self.qualifier} {self.type_name}" if self.qualifier else self.type_name
        out = []

        # Left of the identifier, innermost declarator first
        inner_first = list(reversed(self.declarators))
        for i, declarator in enumerate(inner_first):
            next_is_pointer = i + 1 < len(inner_first) and isinstance(
                inner_first[i + 1], (_Pointer, _Func)
            )
            if isinstance(declarator, _Pointer):
                out.append("*")
                if declarator.is_const:
                    out.append("const ")
            elif next_is_pointer:
                out.append("(")

        if ident is not None:
            out.append(ident)

        # Right of the identifier, outermost declarator first
        last_was_pointer = False
        for declarator in self.declarators:
            if isinstance(declarator, _Pointer):
                last_was_pointer = True
            elif isinstance(declarator, _Array):
                if last_was_pointer:
                    out.append(")")
                out.append(f"[{declarator.length}]")
                last_was_pointer = False
            else:
                if last_was_pointer:
                    out.append(")")
                out.append(f"({_render_args(declarator.args)})")
                if declarator.never_return and no_return:
                    out.append(f" {no_return}")
                last_was_pointer = True

        declarator = "".join(out).rstrip()
        return f"{head} {declarator}" if declarator else head


def _render_args(args: list[tuple[str | None, CDecl]]) -> str:
    if not args:
        return "void"
    rendered = []
    for i, (name, decl) in enumerate(args):
        is_last = i == len(args) - 1
        if is_last and name is None and decl.type_name == "va_list" and not decl.declarators:
            rendered.append("...")
        else:
            rendered.append(decl.render(name))
    return ", ".join(rendered)

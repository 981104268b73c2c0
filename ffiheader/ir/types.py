"""Type references used in field, parameter and return positions.

A ``TypeRef`` is a structural value: two references built from the same
pieces compare and hash equal, which is what makes them usable as
instantiation-cache keys. A ``Path`` only names an entity; resolving it is
always a lookup in the owning ``Library``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum


class PrimitiveKind(Enum):
    VOID = "c_void"
    BOOL = "bool"
    CHAR32 = "char"  # A unicode scalar value
    INT8 = "i8"
    INT16 = "i16"
    INT32 = "i32"
    INT64 = "i64"
    UINT8 = "u8"
    UINT16 = "u16"
    UINT32 = "u32"
    UINT64 = "u64"
    INTPTR = "isize"
    UINTPTR = "usize"
    FLOAT32 = "f32"
    FLOAT64 = "f64"
    C_CHAR = "c_char"
    C_SCHAR = "c_schar"
    C_UCHAR = "c_uchar"
    C_SHORT = "c_short"
    C_USHORT = "c_ushort"
    C_INT = "c_int"
    C_UINT = "c_uint"
    C_LONG = "c_long"
    C_ULONG = "c_ulong"
    C_LONGLONG = "c_longlong"
    C_ULONGLONG = "c_ulonglong"
    C_FLOAT = "c_float"
    C_DOUBLE = "c_double"
    SIZE = "size_t"
    SSIZE = "ssize_t"
    PTRDIFF = "ptrdiff_t"
    VA_LIST = "VaList"

    @property
    def is_integer(self) -> bool:
        return self in _INTEGER_KINDS


_INTEGER_KINDS = {
    PrimitiveKind.INT8,
    PrimitiveKind.INT16,
    PrimitiveKind.INT32,
    PrimitiveKind.INT64,
    PrimitiveKind.UINT8,
    PrimitiveKind.UINT16,
    PrimitiveKind.UINT32,
    PrimitiveKind.UINT64,
    PrimitiveKind.INTPTR,
    PrimitiveKind.UINTPTR,
    PrimitiveKind.C_CHAR,
    PrimitiveKind.C_SCHAR,
    PrimitiveKind.C_UCHAR,
    PrimitiveKind.C_SHORT,
    PrimitiveKind.C_USHORT,
    PrimitiveKind.C_INT,
    PrimitiveKind.C_UINT,
    PrimitiveKind.C_LONG,
    PrimitiveKind.C_ULONG,
    PrimitiveKind.C_LONGLONG,
    PrimitiveKind.C_ULONGLONG,
    PrimitiveKind.SIZE,
    PrimitiveKind.SSIZE,
    PrimitiveKind.PTRDIFF,
}

# Source spellings that name a primitive. Aliases map onto the same kind.
PRIMITIVE_NAMES: dict[str, PrimitiveKind] = {kind.value: kind for kind in PrimitiveKind}
PRIMITIVE_NAMES.update(
    {
        "uint8_t": PrimitiveKind.UINT8,
        "uint16_t": PrimitiveKind.UINT16,
        "uint32_t": PrimitiveKind.UINT32,
        "uint64_t": PrimitiveKind.UINT64,
        "int8_t": PrimitiveKind.INT8,
        "int16_t": PrimitiveKind.INT16,
        "int32_t": PrimitiveKind.INT32,
        "int64_t": PrimitiveKind.INT64,
        "uintptr_t": PrimitiveKind.UINTPTR,
        "intptr_t": PrimitiveKind.INTPTR,
    }
)


class TypeRef:
    """Base class for all type references."""

    def substitute(self, mapping: dict[str, TypeRef]) -> TypeRef:
        """Replace every generic parameter named in ``mapping``."""
        return self.rewrite_paths(
            lambda path: mapping[path.name]
            if not path.generics and path.name in mapping
            else path
        )

    def rewrite_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        """Rebuild this reference, passing every ``Path`` through ``fn``.

        Generic arguments are rewritten before the path that carries them.
        """
        raise NotImplementedError

    def replace_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        """Rebuild this reference, replacing outermost paths first.

        ``fn`` sees each path with its original generic arguments; the
        arguments are only visited when ``fn`` returns the path unchanged.
        """
        return self.rewrite_paths(fn)

    def paths(self, behind_pointer: bool = False) -> Iterator[tuple[Path, bool]]:
        """Yield each named reference with whether it sits behind a pointer.

        Generic arguments of a path are not visited: they only matter through
        the instantiation they select.
        """
        raise NotImplementedError

    def mangle(self, remove_underscores: bool = False) -> str:
        """Identifier fragment used when this type is a generic argument."""
        raise NotImplementedError

    def nesting_depth(self) -> int:
        return 1


@dataclass(frozen=True)
class Primitive(TypeRef):
    kind: PrimitiveKind

    def rewrite_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        return self

    def paths(self, behind_pointer: bool = False) -> Iterator[tuple[Path, bool]]:
        return iter(())

    def mangle(self, remove_underscores: bool = False) -> str:
        return _clean(self.kind.value, remove_underscores)

    def __str__(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class Path(TypeRef):
    name: str
    generics: tuple[TypeRef, ...] = ()

    def rewrite_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        if self.generics:
            rewritten = Path(self.name, tuple(g.rewrite_paths(fn) for g in self.generics))
            return fn(rewritten)
        return fn(self)

    def replace_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        replaced = fn(self)
        if replaced is not self or not self.generics:
            return replaced
        return Path(self.name, tuple(g.replace_paths(fn) for g in self.generics))

    def paths(self, behind_pointer: bool = False) -> Iterator[tuple[Path, bool]]:
        yield self, behind_pointer

    def mangle(self, remove_underscores: bool = False) -> str:
        name = _clean(self.name, remove_underscores)
        if not self.generics:
            return name
        # The closing marker keeps `A<B<C>, D>` apart from `A<B<C, D>>`.
        return f"{name}_{mangle_arguments(self.generics, remove_underscores)}__"

    def nesting_depth(self) -> int:
        return 1 + max((g.nesting_depth() for g in self.generics), default=0)

    def __str__(self) -> str:
        if not self.generics:
            return self.name
        return f"{self.name}<{', '.join(str(g) for g in self.generics)}>"


@dataclass(frozen=True)
class Pointer(TypeRef):
    target: TypeRef
    mutable: bool = False
    nullable: bool = True

    def rewrite_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        return Pointer(self.target.rewrite_paths(fn), self.mutable, self.nullable)

    def replace_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        return Pointer(self.target.replace_paths(fn), self.mutable, self.nullable)

    def paths(self, behind_pointer: bool = False) -> Iterator[tuple[Path, bool]]:
        return self.target.paths(True)

    def mangle(self, remove_underscores: bool = False) -> str:
        prefix = "MutPtr" if self.mutable else "ConstPtr"
        return f"{prefix}_{self.target.mangle(remove_underscores)}"

    def nesting_depth(self) -> int:
        return 1 + self.target.nesting_depth()

    def __str__(self) -> str:
        return f"*{'mut' if self.mutable else 'const'} {self.target}"


@dataclass(frozen=True)
class Array(TypeRef):
    element: TypeRef
    length: str

    def rewrite_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        return Array(self.element.rewrite_paths(fn), self.length)

    def replace_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        return Array(self.element.replace_paths(fn), self.length)

    def paths(self, behind_pointer: bool = False) -> Iterator[tuple[Path, bool]]:
        return self.element.paths(behind_pointer)

    def mangle(self, remove_underscores: bool = False) -> str:
        length = _clean(self.length, remove_underscores)
        return f"Array_{self.element.mangle(remove_underscores)}_{length}"

    def nesting_depth(self) -> int:
        return 1 + self.element.nesting_depth()

    def __str__(self) -> str:
        return f"[{self.element}; {self.length}]"


@dataclass(frozen=True)
class FunctionPointer(TypeRef):
    params: tuple[tuple[str | None, TypeRef], ...]
    ret: TypeRef
    never_return: bool = False

    def rewrite_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        return FunctionPointer(
            params=tuple((name, ty.rewrite_paths(fn)) for name, ty in self.params),
            ret=self.ret.rewrite_paths(fn),
            never_return=self.never_return,
        )

    def replace_paths(self, fn: Callable[[Path], TypeRef]) -> TypeRef:
        return FunctionPointer(
            params=tuple((name, ty.replace_paths(fn)) for name, ty in self.params),
            ret=self.ret.replace_paths(fn),
            never_return=self.never_return,
        )

    def paths(self, behind_pointer: bool = False) -> Iterator[tuple[Path, bool]]:
        for _, ty in self.params:
            yield from ty.paths(True)
        yield from self.ret.paths(True)

    def mangle(self, remove_underscores: bool = False) -> str:
        params = "_".join(ty.mangle(remove_underscores) for _, ty in self.params)
        return f"Fn_{params}_Ret_{self.ret.mangle(remove_underscores)}__"

    def nesting_depth(self) -> int:
        depths = [ty.nesting_depth() for _, ty in self.params] + [self.ret.nesting_depth()]
        return 1 + max(depths)

    def __str__(self) -> str:
        params = ", ".join(str(ty) for _, ty in self.params)
        return f"fn({params}) -> {self.ret}"


VOID = Primitive(PrimitiveKind.VOID)


def mangle_arguments(args: tuple[TypeRef, ...], remove_underscores: bool = False) -> str:
    """Join generic arguments in order into one identifier fragment."""
    return "_".join(arg.mangle(remove_underscores) for arg in args)


def mangled_name(name: str, args: tuple[TypeRef, ...], remove_underscores: bool = False) -> str:
    """Export name of ``name`` instantiated with ``args``."""
    return f"{name}_{mangle_arguments(args, remove_underscores)}"


def _clean(text: str, remove_underscores: bool) -> str:
    text = "".join(c if c.isalnum() or c == "_" else "_" for c in text)
    return text.replace("_", "") if remove_underscores else text

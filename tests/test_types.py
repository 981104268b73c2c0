"""Tests for type references, type-expression parsing and name mangling."""

import pytest

from ffiheader.builder import convert_type
from ffiheader.errors import SourceError
from ffiheader.frontend.nodes import ArrayExpr, FnExpr, NeverExpr, PathExpr, PointerExpr, UnitExpr
from ffiheader.frontend.type_parser import parse_type
from ffiheader.ir.types import (
    Array,
    FunctionPointer,
    Path,
    Pointer,
    Primitive,
    PrimitiveKind,
    mangled_name,
)

I32 = Primitive(PrimitiveKind.INT32)
F64 = Primitive(PrimitiveKind.FLOAT64)


def _ty(text: str, generics=()):
    return convert_type(parse_type(text), set(generics))


# --- Parsing ---


def test_parse_raw_pointer_to_generic():
    expr = parse_type("*const Pair<i32>")
    assert expr == PointerExpr(PathExpr("Pair", (PathExpr("i32"),)), mutable=False)


def test_parse_reference_skips_lifetime():
    expr = parse_type("&'a mut Node")
    assert expr == PointerExpr(PathExpr("Node"), mutable=True, reference=True)


def test_parse_array_and_unit_and_never():
    assert parse_type("[u8; 16]") == ArrayExpr(PathExpr("u8"), "16")
    assert parse_type("()") == UnitExpr()
    assert parse_type("!") == NeverExpr()


def test_parse_qualified_path_keeps_last_segment():
    assert parse_type("std::os::raw::c_int") == PathExpr("c_int")


def test_parse_function_type():
    expr = parse_type('unsafe extern "C" fn(len: usize, *const u8) -> bool')
    assert isinstance(expr, FnExpr)
    assert expr.params[0] == ("len", PathExpr("usize"))
    assert expr.params[1] == (None, PointerExpr(PathExpr("u8")))
    assert expr.ret == PathExpr("bool")


def test_parse_nested_generics():
    expr = parse_type("Pair<Pair<i32>, f64>")
    assert expr == PathExpr("Pair", (PathExpr("Pair", (PathExpr("i32"),)), PathExpr("f64")))


def test_parse_rejects_bad_input():
    with pytest.raises(SourceError):
        parse_type("*Node")
    with pytest.raises(SourceError):
        parse_type("Pair<i32")
    with pytest.raises(SourceError):
        parse_type("(i32, i32)")


# --- Lowering ---


def test_primitives_and_aliases():
    assert _ty("i32") == I32
    assert _ty("int32_t") == I32
    assert _ty("c_void") == Primitive(PrimitiveKind.VOID)


def test_generic_parameter_stays_a_path():
    assert _ty("T", generics=["T"]) == Path("T")


def test_std_wrappers_are_simplified():
    assert _ty("Box<Foo>") == Pointer(Path("Foo"), mutable=True, nullable=False)
    assert _ty("&Foo") == Pointer(Path("Foo"), mutable=False, nullable=False)
    assert _ty("Option<&mut Foo>") == Pointer(Path("Foo"), mutable=True, nullable=True)
    assert _ty("ManuallyDrop<u8>") == Primitive(PrimitiveKind.UINT8)


def test_optional_function_pointer():
    ty = _ty('Option<extern "C" fn(i32) -> i32>')
    assert ty == FunctionPointer(((None, I32),), I32)


# --- Structural identity ---


def test_type_refs_compare_structurally():
    a = Path("Pair", (I32,))
    b = Path("Pair", (Primitive(PrimitiveKind.INT32),))
    assert a == b
    assert hash(a) == hash(b)
    assert {a: "x"}[b] == "x"
    assert Path("Pair", (I32,)) != Path("Pair", (F64,))


def test_substitute_replaces_parameters():
    ref = Pointer(Path("Pair", (Path("T"),)))
    assert ref.substitute({"T": I32}) == Pointer(Path("Pair", (I32,)))


def test_paths_report_pointer_position():
    assert list(Path("A").paths()) == [(Path("A"), False)]
    assert list(Pointer(Path("A")).paths()) == [(Path("A"), True)]
    assert list(Array(Path("A"), "2").paths()) == [(Path("A"), False)]
    fn = FunctionPointer(((None, Path("B")),), Path("C"))
    assert list(fn.paths()) == [(Path("B"), True), (Path("C"), True)]


def test_paths_do_not_descend_into_generic_arguments():
    ref = Path("Pair", (Path("Inner"),))
    assert [p.name for p, _ in ref.paths()] == ["Pair"]


def test_replace_paths_sees_original_arguments():
    outer = Path("Pair", (Path("Pair", (I32,)),))
    seen = []

    def fn(path):
        seen.append(path)
        return Path("Mangled") if path == outer else path

    assert outer.replace_paths(fn) == Path("Mangled")
    assert seen == [outer]


# --- Mangling ---


def test_mangled_name_for_primitive():
    assert mangled_name("Pair", (I32,)) == "Pair_i32"


def test_mangling_preserves_argument_order():
    assert mangled_name("Map", (I32, F64)) == "Map_i32_f64"
    assert mangled_name("Map", (F64, I32)) == "Map_f64_i32"


def test_mangling_nested_generic_is_delimited():
    assert mangled_name("Pair", (Path("Pair", (I32,)),)) == "Pair_Pair_i32__"


def test_mangling_pointers_arrays_and_functions():
    assert mangled_name("Slot", (Pointer(Path("Foo")),)) == "Slot_ConstPtr_Foo"
    assert mangled_name("Slot", (Pointer(Path("Foo"), mutable=True),)) == "Slot_MutPtr_Foo"
    assert mangled_name("Slot", (Array(I32, "4"),)) == "Slot_Array_i32_4"
    fn = FunctionPointer(((None, I32),), F64)
    assert mangled_name("Slot", (fn,)) == "Slot_Fn_i32_Ret_f64__"


def test_mangling_can_remove_underscores():
    assert mangled_name("Pair", (Path("My_Type"),), remove_underscores=True) == "Pair_MyType"


def test_nesting_depth():
    assert I32.nesting_depth() == 1
    assert Path("A", (Path("B", (I32,)),)).nesting_depth() == 3
    assert Pointer(Pointer(I32)).nesting_depth() == 3

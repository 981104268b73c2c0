"""Tests for the specialization engine."""

import logging
from textwrap import dedent

import pytest

from ffiheader.builder import build_library
from ffiheader.errors import MangledNameCollision, UnboundedSpecialization, UnresolvedType
from ffiheader.frontend.yaml_source import parse_module_text
from ffiheader.ir.types import Path, Pointer, Primitive, PrimitiveKind
from ffiheader.monomorph import Specializer, specialize

I32 = Primitive(PrimitiveKind.INT32)
F64 = Primitive(PrimitiveKind.FLOAT64)

PAIR_MODULE = """
items:
  - struct: Pair
    generics: [T]
    fields: {a: T, b: T}
  - struct: Uses
    fields:
      x: Pair<i32>
      y: Pair<f64>
      z: Pair<i32>
"""


def _library(text: str = PAIR_MODULE):
    return build_library(parse_module_text(dedent(text)))


def test_instantiations_replace_the_template():
    library = specialize(_library())

    assert "Pair" not in library
    assert [item.name for item in library] == ["Uses", "Pair_i32", "Pair_f64"]

    pair_i32 = library.get("Pair_i32")
    assert pair_i32.instance_of == ("Pair", (I32,))
    assert pair_i32.instance_seq == 1
    assert library.get("Pair_f64").instance_seq == 2
    assert [f.ty for f in pair_i32.fields] == [I32, I32]
    assert pair_i32.generic_params == []


def test_references_are_rewritten_to_mangled_names():
    library = specialize(_library())
    assert [f.ty for f in library.get("Uses").fields] == [
        Path("Pair_i32"),
        Path("Pair_f64"),
        Path("Pair_i32"),
    ]


def test_instantiation_is_cached():
    library = _library()
    specializer = Specializer(library)
    template = library.get("Pair")

    first = specializer.instantiate(template, (I32,))
    second = specializer.instantiate(template, (Primitive(PrimitiveKind.INT32),))
    assert first is second
    assert len(library.instantiations) == 1


def test_instances_share_the_template_sort_position():
    library = specialize(_library())
    assert library.get("Pair_i32").sort_key == (0, 1)
    assert library.get("Pair_f64").sort_key == (0, 2)


def test_nested_instantiation():
    library = specialize(
        _library(
            """
            items:
              - struct: Pair
                generics: [T]
                fields: {a: T, b: T}
              - fn: nested
                params: {p: "*const Pair<Pair<i32>>"}
            """
        )
    )
    outer = library.get("Pair_Pair_i32__")
    assert outer is not None
    assert outer.fields[0].ty == Path("Pair_i32")
    assert library.get("nested").args[0].ty == Pointer(Path("Pair_Pair_i32__"))


def test_mangled_name_collision():
    with pytest.raises(MangledNameCollision) as exc:
        specialize(
            _library(
                """
                items:
                  - struct: Pair_i32
                    fields: {v: u8}
                  - struct: Pair
                    generics: [T]
                    fields: {a: T}
                  - struct: Uses
                    fields: {x: Pair<i32>}
                """
            )
        )
    assert exc.value.entity == "Pair"
    assert "mangles to 'Pair_i32'" in exc.value.message


def test_unbounded_specialization():
    with pytest.raises(UnboundedSpecialization) as exc:
        specialize(
            _library(
                """
                items:
                  - struct: Nest
                    generics: [T]
                    fields: {next: "*const Nest<Nest<T>>"}
                  - struct: Root
                    fields: {n: Nest<i32>}
                """
            ),
            max_depth=8,
        )
    assert exc.value.entity == "Nest"


def test_wrong_number_of_arguments():
    with pytest.raises(UnresolvedType) as exc:
        specialize(_library("items: [{struct: Pair, generics: [T], fields: {a: T}}, {struct: U, fields: {x: 'Pair<i32, f64>'}}]"))
    assert exc.value.entity == "Pair"


def test_generic_used_without_arguments():
    with pytest.raises(UnresolvedType) as exc:
        specialize(_library("items: [{struct: Pair, generics: [T], fields: {a: T}}, {struct: U, fields: {x: Pair}}]"))
    assert exc.value.entity == "U"


def test_concrete_type_given_arguments():
    with pytest.raises(UnresolvedType):
        specialize(_library("items: [{struct: Point, fields: {x: i32}}, {struct: U, fields: {p: 'Point<i32>'}}]"))


def test_unreachable_entities_are_dropped():
    library = specialize(
        _library(
            """
            items:
              - struct: Hidden
                pub: false
                fields: {a: i32}
              - struct: Helper
                pub: false
                fields: {a: i32}
              - fn: api
                params: {h: "*const Helper"}
            """
        )
    )
    assert [item.name for item in library] == ["Helper", "api"]


def test_include_adds_roots(caplog):
    caplog.set_level(logging.WARNING)
    library = specialize(
        _library(
            """
            items:
              - struct: Hidden
                pub: false
                fields: {a: i32}
              - struct: Pair
                generics: [T]
                fields: {a: T}
            """
        ),
        include=["Hidden", "Pair"],
    )
    assert [item.name for item in library] == ["Hidden"]
    assert "Included name 'Pair' is not a concrete entity" in caplog.text


def test_excluded_names_become_external():
    library = specialize(
        _library(
            """
            items:
              - struct: Ext
                fields: {a: i32}
              - fn: api
                params: {e: "*mut Ext"}
            """
        ),
        exclude=["Ext"],
    )
    assert "Ext" not in library
    assert "Ext" in library.external_types
    assert library.get("api").args[0].ty == Pointer(Path("Ext"), mutable=True)


def test_remove_underscores_in_mangled_names():
    library = specialize(
        _library(
            """
            items:
              - struct: My_Type
                fields: {a: i32}
              - struct: Pair
                generics: [T]
                fields: {a: T}
              - struct: Uses
                fields: {x: Pair<My_Type>}
            """
        ),
        remove_underscores=True,
    )
    assert "Pair_MyType" in library

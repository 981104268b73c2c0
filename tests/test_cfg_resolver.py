"""Tests for the conditional-compilation resolver."""

import logging
from textwrap import dedent

import pytest

from ffiheader.builder import build_library
from ffiheader.cfg_resolver import CfgResolver, resolve_cfg
from ffiheader.config import Config
from ffiheader.errors import UnresolvedType
from ffiheader.frontend.yaml_source import parse_module_text
from ffiheader.ir.cfg import Environment, evaluate
from ffiheader.ir.models import ItemKind
from ffiheader.pipeline import run_pipeline

PLATFORM_MODULE = """
items:
  - struct: UnixOnly
    attrs: ["cfg(unix)"]
    fields: {fd: i32}
  - struct: WinOnly
    attrs: ["cfg(windows)"]
    fields: {handle: usize}
  - struct: Holder
    fields:
      - {name: a, type: i32}
      - {name: b, type: i64, attrs: ["cfg(windows)"]}
      - {name: win, type: "*const WinOnly"}
  - enum: Mode
    variants:
      - Plain
      - {name: Fancy, attrs: ["cfg(windows)"]}
  - fn: open
    params:
      - {name: path, type: "*const c_char"}
      - {name: flags, type: i32, attrs: ["cfg(windows)"]}
"""


def _library(text: str = PLATFORM_MODULE):
    return build_library(parse_module_text(dedent(text)))


def _unix():
    return Environment.from_settings(flags={"unix": True, "windows": False})


def test_false_predicates_remove_entities():
    library = resolve_cfg(_library(), _unix())
    assert "UnixOnly" in library
    assert library.get("WinOnly").synthetic is True


def test_members_pruned_by_containment():
    library = resolve_cfg(_library(), _unix())
    assert [f.name for f in library.get("Holder").fields] == ["a", "win"]
    assert [v.name for v in library.get("Mode").variants] == ["Plain"]
    assert [a.name for a in library.get("open").args] == ["path"]


def test_pointer_reference_to_removed_type_gets_opaque_stub(caplog):
    caplog.set_level(logging.WARNING)
    library = resolve_cfg(_library(), _unix())

    stub = library.get("WinOnly")
    assert stub.kind == ItemKind.OPAQUE
    assert stub.exported is False
    assert "references cfg-removed type WinOnly by pointer" in caplog.text


def test_by_value_reference_to_removed_type_is_not_stubbed():
    library = resolve_cfg(
        _library(
            """
            items:
              - struct: WinOnly
                attrs: ["cfg(windows)"]
                fields: {handle: usize}
              - struct: Holder
                fields: {w: WinOnly}
            """
        ),
        _unix(),
    )
    assert "WinOnly" not in library
    assert "Holder" in library


def test_unknown_flag_is_false_and_warned_once(caplog):
    caplog.set_level(logging.WARNING)
    library = resolve_cfg(
        _library(
            """
            items:
              - struct: A
                attrs: ["cfg(mystery)"]
                fields: {x: i32}
              - struct: B
                attrs: ["cfg(mystery)"]
                fields: {x: i32}
              - struct: C
                attrs: ["cfg(not(mystery))"]
                fields: {x: i32}
            """
        ),
        _unix(),
    )
    assert [item.name for item in library] == ["C"]
    warnings = [r for r in caplog.records if "Unknown cfg flag 'mystery'" in r.getMessage()]
    assert len(warnings) == 1


def test_survivors_all_satisfy_their_predicates():
    env = _unix()
    library = resolve_cfg(_library(), env)
    for item in library:
        assert evaluate(item.cfg, env)
        for f in getattr(item, "fields", []):
            assert evaluate(f.cfg, env)


def test_everything_kept_when_all_flags_enabled():
    env = Environment.from_settings(flags={"unix": True, "windows": True})
    library = resolve_cfg(_library(), env)
    assert len(library.get("Holder").fields) == 3
    assert library.get("WinOnly").kind == ItemKind.STRUCT


def test_opaque_marker_from_config():
    library = resolve_cfg(_library(), _unix(), opaque=["Holder"])
    holder = library.get("Holder")
    assert holder.kind == ItemKind.OPAQUE
    assert holder.decl_index == 2


def test_opaque_attribute():
    library = resolve_cfg(
        _library('items: [{struct: Secret, attrs: ["opaque"], fields: {key: u64}}]'),
        _unix(),
    )
    assert library.get("Secret").kind == ItemKind.OPAQUE


def test_opaque_marker_on_function_is_ignored(caplog):
    caplog.set_level(logging.WARNING)
    library = resolve_cfg(_library(), _unix(), opaque=["open", "Nowhere"])
    assert library.get("open").kind == ItemKind.FUNCTION
    assert "Ignoring opaque marker on function open" in caplog.text
    assert "Opaque marker 'Nowhere' names no surviving entity" in caplog.text


def test_resolver_tracks_unknown_leaves():
    resolver = CfgResolver(_unix())
    resolver.run(_library('items: [{struct: A, attrs: ["cfg(a)"]}, {struct: B, attrs: ["cfg(b)"]}]'))
    assert resolver.unknown_leaves == {"a", "b"}


# --- Removed types behind generic arguments ---

GENERIC_HOLDER_MODULE = """
items:
  - struct: Gone
    attrs: ["cfg(never_set)"]
    fields: {x: i32}
  - struct: Holder
    generics: [T]
    fields: {p: "*const T"}
  - fn: take
    params: {h: Holder<Gone>}
"""


def test_removed_type_in_generic_argument_gets_opaque_stub(caplog):
    caplog.set_level(logging.WARNING)
    library = resolve_cfg(_library(GENERIC_HOLDER_MODULE), _unix())
    stub = library.get("Gone")
    assert stub.kind == ItemKind.OPAQUE
    assert stub.synthetic is True
    assert "references cfg-removed type Gone through a generic argument" in caplog.text


def test_removed_type_behind_instantiated_pointer_is_forward_declared():
    stream = run_pipeline(parse_module_text(dedent(GENERIC_HOLDER_MODULE)), Config())
    assert stream.fingerprint() == [
        ("forward_declare", "Gone"),
        ("define_type", "Holder_Gone"),
        ("declare_function", "take"),
    ]


def test_removed_type_used_by_value_through_generic_is_fatal():
    module = GENERIC_HOLDER_MODULE.replace('"*const T"', "T")
    with pytest.raises(UnresolvedType) as exc:
        run_pipeline(parse_module_text(dedent(module)), Config())
    assert "Gone" in exc.value.message

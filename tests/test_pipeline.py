"""Tests for pipeline orchestration and output writing."""

import os
import tempfile
from textwrap import dedent

import pytest

from ffiheader.config import CfgSettings, Config, ExportConfig
from ffiheader.errors import (
    BindgenError,
    DuplicateDeclaration,
    MangledNameCollision,
    SourceError,
    UnresolvedType,
    UnrepresentableCycle,
)
from ffiheader.frontend.yaml_source import parse_module_text
from ffiheader.ir.events import EventKind
from ffiheader.pipeline import Stage, generate, output_matches, run_pipeline, stage, write_output


def _run(text: str, config: Config | None = None):
    return run_pipeline(parse_module_text(dedent(text)), config or Config())


def _make_crate(root: str, module: str):
    os.makedirs(os.path.join(root, "src"))
    with open(os.path.join(root, "crate.yaml"), "w") as f:
        f.write("name: demo\n")
    with open(os.path.join(root, "src", "lib.yaml"), "w") as f:
        f.write(dedent(module))


# --- Stage stamping ---


def test_build_errors_are_stamped():
    with pytest.raises(DuplicateDeclaration) as exc:
        _run("items: [{struct: A}, {struct: A}]")
    assert exc.value.stage == "build"


def test_specialize_errors_are_stamped():
    with pytest.raises(MangledNameCollision) as exc:
        _run(
            """
            items:
              - struct: Slot_u8
                fields: {v: u8}
              - struct: Slot
                generics: [T]
                fields: {v: T}
              - fn: f
                params: {b: "*const Slot<u8>"}
            """
        )
    assert exc.value.stage == "specialize"


def test_order_errors_are_stamped():
    with pytest.raises(UnrepresentableCycle) as exc:
        _run("items: [{struct: A, fields: {b: B}}, {struct: B, fields: {a: A}}]")
    assert exc.value.stage == "order"


def test_emit_errors_are_stamped_and_described():
    with pytest.raises(UnresolvedType) as exc:
        _run("items: [{struct: S, fields: {m: Mystery}}]")
    assert exc.value.stage == "emit"
    assert exc.value.describe() == (
        "error[emit] UnresolvedType: S: references Mystery, "
        "which is neither defined nor declared external"
    )


def test_stage_keeps_an_existing_stamp():
    error = BindgenError("boom", entity="X")
    error.stage = "cfg"
    with pytest.raises(BindgenError) as exc:
        with stage(Stage.EMIT):
            raise error
    assert exc.value.stage == "cfg"


def test_parse_errors_are_stamped():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(SourceError) as exc:
            generate(tmp, Config())
    assert exc.value.stage == "parse"


# --- Full runs ---


def test_cfg_removed_type_behind_pointer_is_forward_declared():
    config = Config(cfg=CfgSettings(flags={"unix": True, "windows": False}))
    stream = _run(
        """
        items:
          - struct: WinHandle
            attrs: ["cfg(windows)"]
            fields: {raw: usize}
          - struct: Holder
            fields: {h: "*const WinHandle", fd: i32}
        """,
        config,
    )
    assert stream.fingerprint() == [
        ("forward_declare", "WinHandle"),
        ("define_type", "Holder"),
    ]


def test_config_external_and_exclude():
    config = Config(export=ExportConfig(external=["FILE"], exclude=["Sys"]))
    stream = _run(
        """
        items:
          - struct: Sys
            fields: {v: i32}
          - fn: dump
            params: {fp: "*mut FILE", sys: "*const Sys"}
        """,
        config,
    )
    assert stream.fingerprint() == [("declare_function", "dump")]
    assert {"FILE", "Sys"} <= stream.library.external_types


def test_config_opaque_marker():
    config = Config(export=ExportConfig(opaque=["Ctx"]))
    stream = _run(
        """
        items:
          - struct: Ctx
            fields: {secret: u64}
          - fn: ctx_new
            returns: "*mut Ctx"
        """,
        config,
    )
    assert [e.kind for e in stream] == [EventKind.FORWARD_DECLARE, EventKind.DECLARE_FUNCTION]


def test_stream_holds_prefixed_names():
    stream = _run(
        'items: [{struct: Point, fields: {x: f32}}, {fn: origin, returns: Point}]',
        Config(export=ExportConfig(prefix="Geo")),
    )
    assert [e.name for e in stream] == ["GeoPoint", "origin"]


def test_generate_reads_a_crate():
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(
            tmp,
            """
            items:
              - struct: Point
                attrs: ["repr(C)"]
                fields: {x: f32, y: f32}
              - fn: point_len
                params: {p: "*const Point"}
                returns: f32
            """,
        )
        first = generate(tmp, Config(include_guard="DEMO_H"))
        second = generate(tmp, Config(include_guard="DEMO_H"))

    assert first == second
    assert "typedef struct Point {" in first
    assert "float point_len(const Point *p);" in first


# --- Output ---


def test_write_output_skips_identical_content():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "include", "demo.h")
        assert write_output(path, "int x;\n") is True
        assert output_matches(path, "int x;\n")
        assert write_output(path, "int x;\n") is False
        assert write_output(path, "int y;\n") is True
        with open(path) as f:
            assert f.read() == "int y;\n"
        assert os.listdir(os.path.dirname(path)) == ["demo.h"]


def test_output_matches_missing_file():
    with tempfile.TemporaryDirectory() as tmp:
        assert output_matches(os.path.join(tmp, "missing.h"), "") is False

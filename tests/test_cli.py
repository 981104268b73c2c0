"""Tests for the command-line interface."""

import os
import tempfile

from click.testing import CliRunner

from ffiheader.cli import EXIT_ERROR, EXIT_STALE, main

MODULE = """\
items:
  - struct: Node
    fields: {value: i32, next: "*mut Node"}
  - struct: Pair
    generics: [T]
    fields: {a: T, b: T}
  - fn: node_len
    params: {n: "*const Node", p: Pair<i32>}
    returns: usize
"""


def _make_crate(root: str, module: str = MODULE):
    os.makedirs(os.path.join(root, "src"), exist_ok=True)
    with open(os.path.join(root, "crate.yaml"), "w") as f:
        f.write("name: demo\n")
    with open(os.path.join(root, "src", "lib.yaml"), "w") as f:
        f.write(module)


def _write(path: str, text: str):
    with open(path, "w") as f:
        f.write(text)


def test_generate_to_stdout():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(tmp)
        result = runner.invoke(main, ["generate", tmp])
    assert result.exit_code == 0, result.output
    assert "typedef struct Node Node;" in result.output
    assert "uintptr_t node_len(const Node *n, Pair_i32 p);" in result.output


def test_generate_writes_output_once():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(tmp)
        output = os.path.join(tmp, "demo.h")

        result = runner.invoke(main, ["generate", tmp, "-o", output])
        assert result.exit_code == 0, result.output
        assert "Wrote" in result.output
        with open(output) as f:
            assert "struct Node {" in f.read()

        result = runner.invoke(main, ["generate", tmp, "-o", output])
        assert result.exit_code == 0
        assert "Unchanged" in result.output


def test_verify_detects_stale_header():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(tmp)
        output = os.path.join(tmp, "demo.h")
        _write(output, "/* old */\n")

        result = runner.invoke(main, ["generate", tmp, "-o", output, "--verify"])
        assert result.exit_code == EXIT_STALE
        assert "is out of date" in result.output

        runner.invoke(main, ["generate", tmp, "-o", output])
        result = runner.invoke(main, ["generate", tmp, "-o", output, "--verify"])
        assert result.exit_code == 0
        assert "is up to date" in result.output


def test_verify_needs_output():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(tmp)
        result = runner.invoke(main, ["generate", tmp, "--verify"])
    assert result.exit_code == 2
    assert "--verify needs --output" in result.output


def test_generation_error_leaves_no_file():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(tmp, "items: [{struct: A, fields: {b: B}}, {struct: B, fields: {a: A}}]\n")
        output = os.path.join(tmp, "demo.h")
        result = runner.invoke(main, ["generate", tmp, "-o", output])
        exists = os.path.exists(output)

    assert result.exit_code == EXIT_ERROR
    assert "error[order] UnrepresentableCycle: A:" in result.output
    assert not exists


def test_config_file_is_applied():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(tmp)
        config = os.path.join(tmp, "ffiheader.yaml")
        _write(config, "include_guard: DEMO_H\nexport:\n  prefix: Demo\n")
        result = runner.invoke(main, ["generate", tmp, "-c", config])
    assert result.exit_code == 0, result.output
    assert "#ifndef DEMO_H" in result.output
    assert "typedef struct DemoNode DemoNode;" in result.output


def test_bad_config_reports_code():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(tmp)
        config = os.path.join(tmp, "ffiheader.yaml")
        _write(config, "language: rust\n")
        result = runner.invoke(main, ["generate", tmp, "-c", config])
    assert result.exit_code == EXIT_ERROR
    assert "error[config] UNKNOWN_LANGUAGE:" in result.output


def test_order_table():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(tmp)
        result = runner.invoke(main, ["order", tmp])
    assert result.exit_code == 0, result.output
    assert "Emission Order (4 events)" in result.output
    assert "forward_declare" in result.output
    assert "Pair<i32>" in result.output


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_bracketed_output_path_is_printed_verbatim():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(tmp)
        output = os.path.join(tmp, "out[v1]", "demo.h")

        result = runner.invoke(main, ["generate", tmp, "-o", output])
        assert result.exit_code == 0, result.output
        assert "out[v1]" in result.output

        result = runner.invoke(main, ["generate", tmp, "-o", output, "--verify"])
        assert result.exit_code == 0
        assert "out[v1]" in result.output


def test_order_table_shows_array_arguments():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        _make_crate(
            tmp,
            """\
items:
  - struct: Wrap
    generics: [T]
    fields: {v: T}
  - fn: take
    params: {w: "Wrap<[u8; 4]>"}
""",
        )
        result = runner.invoke(main, ["order", tmp])
    assert result.exit_code == 0, result.output
    assert "Wrap<[u8; 4]>" in result.output

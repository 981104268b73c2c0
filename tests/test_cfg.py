"""Tests for conditional-compilation predicates."""

import pytest

from ffiheader.ir.cfg import (
    CfgAll,
    CfgAny,
    CfgFlag,
    CfgNot,
    CfgSyntaxError,
    CfgValue,
    Environment,
    evaluate,
    join,
    parse_cfg,
)


def _env(**flags):
    return Environment.from_settings(flags=flags, features=["std"], values={"target_os": ["linux"]})


# --- Parsing ---


def test_parse_flag_and_value():
    assert parse_cfg("unix") == CfgFlag("unix")
    assert parse_cfg('feature = "std"') == CfgValue("feature", "std")


def test_parse_nested_predicate():
    cfg = parse_cfg('all(unix, not(feature = "std"), any(a, b))')
    assert cfg == CfgAll(
        (
            CfgFlag("unix"),
            CfgNot(CfgValue("feature", "std")),
            CfgAny((CfgFlag("a"), CfgFlag("b"))),
        )
    )


def test_parse_accepts_cfg_wrapper():
    assert parse_cfg("cfg(windows)") == CfgFlag("windows")


def test_round_trip_through_str():
    text = 'all(unix, not(feature = "std"))'
    assert str(parse_cfg(text)) == text


def test_parse_errors():
    with pytest.raises(CfgSyntaxError):
        parse_cfg("all(unix")
    with pytest.raises(CfgSyntaxError):
        parse_cfg("not(a, b)")
    with pytest.raises(CfgSyntaxError):
        parse_cfg("feature = std")
    with pytest.raises(CfgSyntaxError):
        parse_cfg("unix windows")


# --- Evaluation ---


def test_evaluate_known_leaves():
    env = _env(unix=True, windows=False)
    assert evaluate(parse_cfg("unix"), env) is True
    assert evaluate(parse_cfg("windows"), env) is False
    assert evaluate(parse_cfg('feature = "std"'), env) is True
    assert evaluate(parse_cfg('feature = "alloc"'), env) is False
    assert evaluate(parse_cfg('target_os = "linux"'), env) is True


def test_evaluate_combinators():
    env = _env(unix=True, windows=False)
    assert evaluate(parse_cfg("all(unix, not(windows))"), env) is True
    assert evaluate(parse_cfg("any(windows, unix)"), env) is True
    assert evaluate(parse_cfg("all(unix, windows)"), env) is False
    assert evaluate(parse_cfg("any()"), env) is False
    assert evaluate(parse_cfg("all()"), env) is True


def test_missing_predicate_is_true():
    assert evaluate(None, _env()) is True


def test_unknown_leaf_is_false_and_reported():
    seen = []
    env = _env(unix=True)
    assert evaluate(parse_cfg("mystery"), env, seen.append) is False
    assert seen == [CfgFlag("mystery")]


def test_unknown_leaf_under_not_is_true():
    assert evaluate(parse_cfg("not(mystery)"), _env()) is True


def test_features_unknown_when_not_configured():
    env = Environment.from_settings(flags={"unix": True})
    seen = []
    assert evaluate(parse_cfg('feature = "std"'), env, seen.append) is False
    assert seen == [CfgValue("feature", "std")]


# --- Joining ---


def test_join_skips_missing_and_flattens():
    a, b, c = CfgFlag("a"), CfgFlag("b"), CfgFlag("c")
    assert join() is None
    assert join(None, a) == a
    assert join(a, b) == CfgAll((a, b))
    assert join(CfgAll((a, b)), c, a) == CfgAll((a, b, c))


def test_leaves():
    cfg = parse_cfg('any(unix, not(feature = "std"))')
    assert cfg.leaves() == [CfgFlag("unix"), CfgValue("feature", "std")]

"""Generation configuration, loaded from a YAML file.

Every key is optional; a missing file section keeps the defaults below. The
configuration carries the conditional-compilation environment, the export
name override table, the opaque-only markers, and the writer settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ffiheader.ir.cfg import Environment
from ffiheader.rename import RenameRule, parse_rule

VALID_ERROR_CODES = {
    "PATH_NOT_FOUND",
    "INVALID_YAML",
    "INVALID_VALUE",
    "UNKNOWN_LANGUAGE",
    "UNKNOWN_RENAME_RULE",
}
SUPPORTED_LANGUAGES = {"c"}
DOCUMENTATION_STYLES = {"c99", "doxy"}
DEFAULT_SYS_INCLUDES = ["stdarg.h", "stdbool.h", "stddef.h", "stdint.h", "stdlib.h"]


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


@dataclass
class CfgSettings:
    """The flag environment for conditional compilation."""

    flags: dict[str, bool] = field(default_factory=dict)
    features: list[str] | None = None
    values: dict[str, list[str]] = field(default_factory=dict)

    def environment(self) -> Environment:
        return Environment.from_settings(self.flags, self.features, self.values)


@dataclass
class ExportConfig:
    prefix: str = ""
    include: list[str] = field(default_factory=list)  # Extra roots
    exclude: list[str] = field(default_factory=list)  # Never roots, never emitted
    rename: dict[str, str] = field(default_factory=dict)  # Export-name overrides
    opaque: list[str] = field(default_factory=list)  # Always forward-declared
    external: list[str] = field(default_factory=list)  # Provided by included headers


@dataclass
class FunctionConfig:
    rename_args: RenameRule = RenameRule.NONE
    no_return: str | None = None
    deprecated: str | None = None
    deprecated_with_note: str | None = None  # `{}` is replaced by the quoted note


@dataclass
class StructConfig:
    rename_fields: RenameRule = RenameRule.NONE


@dataclass
class EnumConfig:
    rename_variants: RenameRule = RenameRule.NONE
    prefix_with_name: bool = False


@dataclass
class SpecializationConfig:
    max_depth: int = 64
    remove_underscores: bool = False


@dataclass
class Config:
    language: str = "c"
    header: str | None = None
    trailer: str | None = None
    autogen_warning: str | None = None
    include_guard: str | None = None
    pragma_once: bool = False
    sys_includes: list[str] = field(default_factory=lambda: list(DEFAULT_SYS_INCLUDES))
    includes: list[str] = field(default_factory=list)
    no_includes: bool = False
    cpp_compat: bool = True
    documentation: bool = True
    documentation_style: str = "c99"
    workers: int = 4

    cfg: CfgSettings = field(default_factory=CfgSettings)
    export: ExportConfig = field(default_factory=ExportConfig)
    function: FunctionConfig = field(default_factory=FunctionConfig)
    structure: StructConfig = field(default_factory=StructConfig)
    enumeration: EnumConfig = field(default_factory=EnumConfig)
    specialization: SpecializationConfig = field(default_factory=SpecializationConfig)


def load_config(path: str | Path | None) -> Config:
    """Load a configuration file. ``None`` yields the defaults."""
    if path is None:
        return Config()

    path = Path(path)
    if not path.exists():
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"Config file does not exist: {path}",
            "Pass an existing YAML file with --config, or omit the flag for defaults.",
        )
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError("INVALID_YAML", f"Invalid YAML in {path}: {e}") from e

    return config_from_dict(data or {})


def config_from_dict(data: dict) -> Config:
    """Build a Config from parsed YAML, validating every known key."""
    if not isinstance(data, dict):
        raise ConfigError("INVALID_VALUE", "The configuration must be a mapping")

    language = str(data.get("language", "c")).lower()
    if language not in SUPPORTED_LANGUAGES:
        raise ConfigError(
            "UNKNOWN_LANGUAGE",
            f"Unsupported language: {language}",
            f"Use one of: {', '.join(sorted(SUPPORTED_LANGUAGES))}.",
        )

    doc_style = str(data.get("documentation_style", "c99"))
    if doc_style not in DOCUMENTATION_STYLES:
        raise ConfigError(
            "INVALID_VALUE",
            f"Unknown documentation_style: {doc_style}",
            f"Use one of: {', '.join(sorted(DOCUMENTATION_STYLES))}.",
        )

    config = Config(
        language=language,
        header=data.get("header"),
        trailer=data.get("trailer"),
        autogen_warning=data.get("autogen_warning"),
        include_guard=data.get("include_guard"),
        pragma_once=bool(data.get("pragma_once", False)),
        sys_includes=_string_list(data, "sys_includes", DEFAULT_SYS_INCLUDES),
        includes=_string_list(data, "includes", []),
        no_includes=bool(data.get("no_includes", False)),
        cpp_compat=bool(data.get("cpp_compat", True)),
        documentation=bool(data.get("documentation", True)),
        documentation_style=doc_style,
        workers=_positive_int(data.get("workers", 4), "workers"),
    )

    cfg = _section(data, "cfg")
    features = cfg.get("features")
    config.cfg = CfgSettings(
        flags={str(k): bool(v) for k, v in (cfg.get("flags") or {}).items()},
        features=[str(f) for f in features] if features is not None else None,
        values={str(k): _as_list(v) for k, v in (cfg.get("values") or {}).items()},
    )

    export = _section(data, "export")
    config.export = ExportConfig(
        prefix=str(export.get("prefix") or ""),
        include=_string_list(export, "include", []),
        exclude=_string_list(export, "exclude", []),
        rename={str(k): str(v) for k, v in (export.get("rename") or {}).items()},
        opaque=_string_list(export, "opaque", []),
        external=_string_list(export, "external", []),
    )

    function = _section(data, "function")
    config.function = FunctionConfig(
        rename_args=_rule(function.get("rename_args", "none"), "function.rename_args"),
        no_return=function.get("no_return"),
        deprecated=function.get("deprecated"),
        deprecated_with_note=function.get("deprecated_with_note"),
    )

    structure = _section(data, "structure")
    config.structure = StructConfig(
        rename_fields=_rule(structure.get("rename_fields", "none"), "structure.rename_fields"),
    )

    enumeration = _section(data, "enumeration")
    config.enumeration = EnumConfig(
        rename_variants=_rule(
            enumeration.get("rename_variants", "none"), "enumeration.rename_variants"
        ),
        prefix_with_name=bool(enumeration.get("prefix_with_name", False)),
    )

    specialization = _section(data, "specialization")
    config.specialization = SpecializationConfig(
        max_depth=_positive_int(specialization.get("max_depth", 64), "specialization.max_depth"),
        remove_underscores=bool(specialization.get("remove_underscores", False)),
    )

    return config


def _section(data: dict, key: str) -> dict:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError("INVALID_VALUE", f"'{key}' must be a mapping")
    return section


def _string_list(data: dict, key: str, default: list[str]) -> list[str]:
    value = data.get(key)
    if value is None:
        return list(default)
    if not isinstance(value, list):
        raise ConfigError("INVALID_VALUE", f"'{key}' must be a list")
    return [str(v) for v in value]


def _as_list(value) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


def _positive_int(value, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError("INVALID_VALUE", f"'{key}' must be a positive integer, got {value!r}")
    return value


def _rule(value, key: str) -> RenameRule:
    try:
        return parse_rule(str(value))
    except ValueError as e:
        raise ConfigError(
            "UNKNOWN_RENAME_RULE",
            f"Unknown rename rule for '{key}': {value}",
            "Use one of: " + ", ".join(r.value for r in RenameRule) + ".",
        ) from e

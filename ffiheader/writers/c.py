"""C header writer.

Renders an emission stream into one C header. The stream decides what
appears and in which order; this module only decides spelling.

Features
--------
* Include guard or ``#pragma once``, system and local includes
* ``typedef struct X X;`` forward declarations
* Structs and unions, with packed / aligned layouts
* C-style enums, with a sized ``typedef`` for integer representations
* Tagged enums as a tag enum, per-variant body structs and a tagged union
* ``#define`` constants, ``extern`` statics and function prototypes
* ``extern "C"`` guard for C++ consumers, doc comments
"""

from __future__ import annotations

from ffiheader.config import Config
from ffiheader.emit import EmissionStream
from ffiheader.ir.events import EmissionEvent, EventKind
from ffiheader.ir.models import Constant, Enum, Field, Function, Item, ItemKind, Static, Struct, TypeAlias
from ffiheader.naming import escape_keyword
from ffiheader.rename import IdentifierType, RenameRule, apply_rule
from ffiheader.writers.cdecl import C_PRIMITIVES, CDecl

INDENT = "  "


class CWriter:
    """Writes one emission stream as C source."""

    def __init__(self, config: Config):
        self.config = config
        self._stream: EmissionStream | None = None
        self._forward_declared: set[str] = set()

    def write(self, stream: EmissionStream) -> str:
        self._stream = stream
        self._forward_declared = set()

        lines = self._preamble()

        types = []
        constants = []
        declarations = []
        for event in stream:
            if event.kind in (EventKind.FORWARD_DECLARE, EventKind.DEFINE_TYPE):
                types.append(self._render_type_event(event))
            elif event.kind == EventKind.DECLARE_CONSTANT:
                constants.append(self._constant(event.entity))
            elif event.kind == EventKind.DECLARE_STATIC:
                declarations.append(self._static(event.entity))
            else:
                declarations.append(self._function(event.entity))

        for block in types + constants:
            lines.extend(block)
            lines.append("")

        if declarations:
            if self.config.cpp_compat:
                lines.extend(["#ifdef __cplusplus", 'extern "C" {', "#endif  // __cplusplus", ""])
            for block in declarations:
                lines.extend(block)
                lines.append("")
            if self.config.cpp_compat:
                lines.extend(["#ifdef __cplusplus", '}  // extern "C"', "#endif  // __cplusplus", ""])

        lines.extend(self._epilogue())
        return "\n".join(lines).rstrip("\n") + "\n"

    # ── Framing ─────────────────────────────────────────────────────

    def _preamble(self) -> list[str]:
        config = self.config
        lines = []
        if config.header:
            lines.extend([config.header.rstrip("\n"), ""])
        if config.autogen_warning:
            lines.extend([config.autogen_warning.rstrip("\n"), ""])

        if config.include_guard:
            lines.extend([f"#ifndef {config.include_guard}", f"#define {config.include_guard}", ""])
        if config.pragma_once:
            lines.extend(["#pragma once", ""])

        includes = []
        if not config.no_includes:
            includes.extend(f"#include <{name}>" for name in config.sys_includes)
        includes.extend(f'#include "{name}"' for name in config.includes)
        if includes:
            lines.extend(includes + [""])
        return lines

    def _epilogue(self) -> list[str]:
        lines = []
        if self.config.include_guard:
            lines.extend([f"#endif  // {self.config.include_guard}", ""])
        if self.config.trailer:
            lines.append(self.config.trailer.rstrip("\n"))
        return lines

    # ── Names and comments ──────────────────────────────────────────

    def name_of(self, name: str) -> str:
        item = self._stream.library.get(name) if self._stream else None
        return item.export_name if item is not None else name

    def decl(self, ty, ident: str | None = None) -> str:
        return CDecl.from_type(ty, self.name_of).render(ident)

    def _doc(self, documentation: list[str], indent: str = "") -> list[str]:
        if not self.config.documentation or not documentation:
            return []
        text = [line[1:] if line.startswith(" ") else line for line in documentation]
        if self.config.documentation_style == "doxy":
            body = [f"{indent} * {line}".rstrip() for line in text]
            return [f"{indent}/**"] + body + [f"{indent} */"]
        return [f"{indent}// {line}".rstrip() for line in text]

    # ── Types ───────────────────────────────────────────────────────

    def _render_type_event(self, event: EmissionEvent) -> list[str]:
        item = event.entity
        if event.kind == EventKind.FORWARD_DECLARE:
            self._forward_declared.add(item.export_name)
            keyword = "union" if item.kind == ItemKind.UNION else "struct"
            lines = self._doc(item.documentation) if item.kind == ItemKind.OPAQUE else []
            return lines + [f"typedef {keyword} {item.export_name} {item.export_name};"]

        if isinstance(item, TypeAlias):
            return self._doc(item.documentation) + [f"typedef {self.decl(item.aliased, item.export_name)};"]
        if isinstance(item, Enum):
            if item.is_tagged:
                return self._tagged_enum(item)
            return self._doc(item.documentation) + self._plain_enum(item, item.export_name)
        return self._doc(item.documentation) + self._struct(item)

    def _struct(self, item: Struct) -> list[str]:
        keyword = "union" if item.kind == ItemKind.UNION else "struct"
        return self._record(keyword, item.export_name, item.fields, _layout(item))

    def _record(
        self,
        keyword: str,
        name: str,
        fields: list[Field],
        layout: str = "",
        extra: list[str] | None = None,
    ) -> list[str]:
        body = []
        for f in fields:
            body.extend(self._doc(f.documentation, INDENT))
            body.append(f"{INDENT}{self.decl(f.ty, f.export_name)};")
        body.extend(extra or [])

        attrs = f"{layout} " if layout else ""
        if name in self._forward_declared:
            return [f"{keyword} {attrs}{name} {{"] + body + ["};"]
        return [f"typedef {keyword} {attrs}{name} {{"] + body + [f"}} {name};"]

    def _plain_enum(self, item: Enum, name: str) -> list[str]:
        body = []
        for variant in item.variants:
            body.extend(self._doc(variant.documentation, INDENT))
            value = f" = {variant.discriminant}" if variant.discriminant is not None else ""
            body.append(f"{INDENT}{variant.export_name}{value},")

        discriminant = item.annotations.repr.discriminant
        if discriminant is not None:
            return [f"enum {name} {{"] + body + ["};", f"typedef {C_PRIMITIVES[discriminant]} {name};"]
        return [f"typedef enum {name} {{"] + body + [f"}} {name};"]

    def _tagged_enum(self, item: Enum) -> list[str]:
        name = item.export_name
        tag = item.tag_name
        lines = self._doc(item.documentation) + self._plain_enum(item, tag) + [""]

        members = []
        for variant in item.variants:
            if not variant.has_payload:
                continue
            body = item.body_name(variant)
            lines.extend(self._record("struct", body, variant.fields))
            lines.append("")
            member = escape_keyword(
                apply_rule(RenameRule.SNAKE_CASE, variant.name, IdentifierType.STRUCT_MEMBER)
            )
            members.append(f"{INDENT * 2}{body} {member};")

        extra = [f"{INDENT}{tag} tag;", f"{INDENT}union {{"] + members + [f"{INDENT}}};"]
        lines.extend(self._record("struct", name, [], _layout(item), extra))
        return lines

    # ── Values and functions ────────────────────────────────────────

    def _constant(self, item: Constant) -> list[str]:
        return self._doc(item.documentation) + [f"#define {item.export_name} {item.value}"]

    def _static(self, item: Static) -> list[str]:
        decl = CDecl.from_type(item.ty, self.name_of, is_const=not item.mutable)
        return self._doc(item.documentation) + [f"extern {decl.render(item.export_name)};"]

    def _function(self, item: Function) -> list[str]:
        config = self.config.function
        lines = self._doc(item.documentation)

        note = item.annotations.deprecated
        if note is not None:
            if note and config.deprecated_with_note:
                lines.append(config.deprecated_with_note.replace("{}", f'"{note}"'))
            elif config.deprecated:
                lines.append(config.deprecated)

        decl = CDecl.from_function(item, self.name_of)
        lines.append(f"{decl.render(item.export_name, config.no_return)};")
        return lines


def _layout(item: Item) -> str:
    repr_ = item.annotations.repr
    attrs = []
    if repr_.packed:
        attrs.append("__attribute__((packed))")
    if repr_.align is not None:
        attrs.append(f"__attribute__((aligned({repr_.align})))")
    return " ".join(attrs)


def write_header(stream: EmissionStream, config: Config) -> str:
    """Render ``stream`` as a complete C header."""
    return CWriter(config).write(stream)

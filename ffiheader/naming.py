"""Export-name assignment.

Canonical names never change after the IR is built; this stage only fills in
the names the writer prints. Entities take an override from the rename table
or their own attributes, type names get the configured prefix, and member
names go through the configured rename rules.
"""

from __future__ import annotations

import logging

from ffiheader.config import Config
from ffiheader.ir.library import Library
from ffiheader.ir.models import Enum, Function, Item, Struct
from ffiheader.rename import IdentifierType, RenameRule, apply_rule, parse_rule

logger = logging.getLogger(__name__)

C_KEYWORDS = frozenset(
    {
        "auto", "break", "case", "char", "const", "continue", "default", "do",
        "double", "else", "enum", "extern", "float", "for", "goto", "if",
        "inline", "int", "long", "register", "restrict", "return", "short",
        "signed", "sizeof", "static", "struct", "switch", "typedef", "union",
        "unsigned", "void", "volatile", "while", "_Bool", "_Complex",
        "_Imaginary", "bool",
    }
)


def escape_keyword(name: str) -> str:
    """Append ``_`` to names that are reserved in C."""
    return f"{name}_" if name in C_KEYWORDS else name


class Namer:
    def __init__(self, config: Config):
        self.config = config

    def run(self, library: Library) -> Library:
        renamed = 0
        for item in library:
            before = item.export_name
            self.name_entity(item)
            self.name_members(item)
            if item.export_name != before:
                renamed += 1
        logger.info("Assigned export names: %d entities renamed", renamed)
        return library

    def name_entity(self, item: Item):
        export = self.config.export
        override = export.rename.get(item.name)
        if override is None and item.instance_of is None:
            override = item.annotations.export_name

        if override is not None:
            item.export_name = override
        elif item.is_type and export.prefix:
            item.export_name = export.prefix + item.name
        else:
            item.export_name = item.name

    def name_members(self, item: Item):
        if isinstance(item, Struct):
            rule = self._rule_for(item, self.config.structure.rename_fields)
            for f in item.fields:
                f.export_name = escape_keyword(
                    apply_rule(rule, f.name, IdentifierType.STRUCT_MEMBER)
                )
        elif isinstance(item, Enum):
            self._name_variants(item)
        elif isinstance(item, Function):
            rule = self._rule_for(item, self.config.function.rename_args)
            for arg in item.args:
                if arg.name is not None:
                    arg.export_name = escape_keyword(
                        apply_rule(rule, arg.name, IdentifierType.FUNCTION_ARG)
                    )

    def _name_variants(self, item: Enum):
        rule = self._rule_for(item, self.config.enumeration.rename_variants)
        field_rule = self.config.structure.rename_fields
        for variant in item.variants:
            name = apply_rule(rule, variant.name, IdentifierType.ENUM_VARIANT, item.export_name)
            if self.config.enumeration.prefix_with_name and rule != RenameRule.QUALIFIED_SCREAMING_SNAKE_CASE:
                name = f"{item.export_name}_{name}"
            variant.export_name = name
            for f in variant.fields:
                f.export_name = escape_keyword(
                    apply_rule(field_rule, f.name, IdentifierType.STRUCT_MEMBER)
                )

    def _rule_for(self, item: Item, default: RenameRule) -> RenameRule:
        text = item.annotations.rename_all
        if text is None:
            return default
        try:
            return parse_rule(text)
        except ValueError:
            logger.warning("Unknown rename_all rule '%s' on %s; using the default", text, item.name)
            return default


def assign_export_names(library: Library, config: Config) -> Library:
    return Namer(config).run(library)

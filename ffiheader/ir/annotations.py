"""Recognized declaration attributes.

Raw ``name``/``value`` attribute pairs are classified into a closed set of
annotation kinds. Anything outside that set becomes a ``Passthrough`` that
later stages ignore; the builder logs it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from ffiheader.ir.types import PRIMITIVE_NAMES, PrimitiveKind

logger = logging.getLogger(__name__)


class ReprStyle(Enum):
    RUST = "rust"  # No layout guarantee
    C = "C"
    TRANSPARENT = "transparent"


@dataclass(frozen=True)
class Repr:
    """Memory layout requested for a type."""

    style: ReprStyle = ReprStyle.RUST
    discriminant: PrimitiveKind | None = None  # Enum tag width
    packed: bool = False
    align: int | None = None


# --- Annotation kinds ---


@dataclass(frozen=True)
class ReprAnnotation:
    repr: Repr


@dataclass(frozen=True)
class ExportNameAnnotation:
    name: str


@dataclass(frozen=True)
class RenameAllAnnotation:
    rule: str


@dataclass(frozen=True)
class OpaqueAnnotation:
    pass


@dataclass(frozen=True)
class DeprecatedAnnotation:
    note: str = ""


@dataclass(frozen=True)
class PtrsAsArraysAnnotation:
    lengths: tuple[tuple[str, str], ...]  # (argument name, array length)


@dataclass(frozen=True)
class NoMangleAnnotation:
    pass


@dataclass(frozen=True)
class MustUseAnnotation:
    pass


@dataclass(frozen=True)
class Passthrough:
    name: str
    value: str | None = None


Annotation = (
    ReprAnnotation
    | ExportNameAnnotation
    | RenameAllAnnotation
    | OpaqueAnnotation
    | DeprecatedAnnotation
    | PtrsAsArraysAnnotation
    | NoMangleAnnotation
    | MustUseAnnotation
    | Passthrough
)


class AnnotationError(ValueError):
    """A recognized attribute whose value cannot be understood."""


def classify(name: str, value: str | None) -> Annotation:
    """Map one raw attribute onto its annotation kind."""
    if name == "repr":
        return ReprAnnotation(parse_repr(value or ""))
    if name in ("export_name", "rename"):
        if not value:
            raise AnnotationError(f"'{name}' requires a value")
        return ExportNameAnnotation(_unquote(value))
    if name == "rename_all":
        if not value:
            raise AnnotationError("'rename_all' requires a rule name")
        return RenameAllAnnotation(_unquote(value))
    if name == "opaque":
        return OpaqueAnnotation()
    if name == "deprecated":
        return DeprecatedAnnotation(_deprecation_note(value))
    if name == "ptrs_as_arrays":
        return PtrsAsArraysAnnotation(_parse_ptrs_as_arrays(value or ""))
    if name == "no_mangle":
        return NoMangleAnnotation()
    if name == "must_use":
        return MustUseAnnotation()
    return Passthrough(name, value)


def parse_repr(text: str) -> Repr:
    """Parse the inside of ``repr(...)``: ``C``, ``u8``, ``C, packed``, ``align(8)``."""
    style = ReprStyle.RUST
    discriminant = None
    packed = False
    align = None

    for part in _split_top_level(text):
        if part == "C":
            style = ReprStyle.C
        elif part == "transparent":
            style = ReprStyle.TRANSPARENT
        elif part == "packed":
            packed = True
        elif part.startswith("align"):
            match = re.fullmatch(r"align\s*\(\s*(\d+)\s*\)", part)
            if not match:
                raise AnnotationError(f"Malformed repr alignment: {part!r}")
            align = int(match.group(1))
        elif part in PRIMITIVE_NAMES and PRIMITIVE_NAMES[part].is_integer:
            discriminant = PRIMITIVE_NAMES[part]
        else:
            raise AnnotationError(f"Unsupported repr: {part!r}")

    return Repr(style=style, discriminant=discriminant, packed=packed, align=align)


@dataclass
class AnnotationSet:
    """All annotations captured for one declaration."""

    items: list[Annotation] = field(default_factory=list)

    def first(self, kind: type) -> Annotation | None:
        return next((a for a in self.items if isinstance(a, kind)), None)

    @property
    def repr(self) -> Repr:
        found = self.first(ReprAnnotation)
        return found.repr if found else Repr()

    @property
    def export_name(self) -> str | None:
        found = self.first(ExportNameAnnotation)
        return found.name if found else None

    @property
    def rename_all(self) -> str | None:
        found = self.first(RenameAllAnnotation)
        return found.rule if found else None

    @property
    def opaque(self) -> bool:
        return self.first(OpaqueAnnotation) is not None

    @property
    def deprecated(self) -> str | None:
        """None when not deprecated, otherwise the (possibly empty) note."""
        found = self.first(DeprecatedAnnotation)
        return found.note if found else None

    @property
    def ptrs_as_arrays(self) -> dict[str, str]:
        found = self.first(PtrsAsArraysAnnotation)
        return dict(found.lengths) if found else {}

    @property
    def must_use(self) -> bool:
        return self.first(MustUseAnnotation) is not None

    @property
    def passthrough(self) -> list[Passthrough]:
        return [a for a in self.items if isinstance(a, Passthrough)]


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _deprecation_note(value: str | None) -> str:
    if not value:
        return ""
    match = re.search(r'note\s*=\s*"([^"]*)"', value)
    if match:
        return match.group(1)
    return _unquote(value)


_PTRS_AS_ARRAYS_ENTRY = re.compile(r"\[\s*([A-Za-z_]\w*)\s*;\s*([^\]]+?)\s*\]")


def _parse_ptrs_as_arrays(value: str) -> tuple[tuple[str, str], ...]:
    """Parse ``[data; 4], [out; LEN]`` into argument/length pairs."""
    pairs = []
    entries = _split_top_level(value)
    for entry in entries:
        match = _PTRS_AS_ARRAYS_ENTRY.fullmatch(entry)
        if match is None:
            logger.warning("Skipping malformed ptrs_as_arrays entry %r", entry)
            continue
        pairs.append((match.group(1), match.group(2)))
    if entries and not pairs:
        raise AnnotationError(f"Malformed ptrs_as_arrays value: {value!r}")
    return tuple(pairs)


def _split_top_level(text: str) -> list[str]:
    parts = []
    depth = 0
    current = ""
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        parts.append(current.strip())
    return parts

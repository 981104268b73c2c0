"""Emission events — the ordered instructions handed to a writer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ffiheader.ir.models import Item


class EventKind(Enum):
    FORWARD_DECLARE = "forward_declare"
    DEFINE_TYPE = "define_type"
    DECLARE_CONSTANT = "declare_constant"
    DECLARE_STATIC = "declare_static"
    DECLARE_FUNCTION = "declare_function"


@dataclass(frozen=True)
class EmissionEvent:
    kind: EventKind
    entity: Item

    @property
    def name(self) -> str:
        return self.entity.export_name

    def __str__(self) -> str:
        return f"{self.kind.value}({self.entity.export_name})"

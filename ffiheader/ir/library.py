"""The Library — the owned collection of every entity in one invocation."""

from __future__ import annotations

from collections.abc import Iterator

from ffiheader.ir.models import Item, ItemKind
from ffiheader.ir.types import TypeRef

InstantiationKey = tuple[str, tuple[TypeRef, ...]]


class Library:
    """Entity table, instantiation cache and ordered emission list.

    Entities are keyed by canonical name and kept in insertion order, which
    is source declaration order for everything the builder adds. Type
    references never hold entities; they are resolved here by name.
    """

    def __init__(self, external_types: set[str] | frozenset[str] = frozenset()):
        self.entities: dict[str, Item] = {}
        self.instantiations: dict[InstantiationKey, Item] = {}
        self.external_types: set[str] = set(external_types)
        self.events: list = []

    def __contains__(self, name: str) -> bool:
        return name in self.entities

    def __len__(self) -> int:
        return len(self.entities)

    def __iter__(self) -> Iterator[Item]:
        return iter(list(self.entities.values()))

    def add(self, item: Item):
        if item.name in self.entities:
            raise ValueError(f"Entity already present in library: {item.name}")
        self.entities[item.name] = item

    def get(self, name: str) -> Item | None:
        return self.entities.get(name)

    def remove(self, name: str) -> Item:
        return self.entities.pop(name)

    def items(self, kind: ItemKind | None = None) -> list[Item]:
        return [i for i in self.entities.values() if kind is None or i.kind == kind]

    def types(self) -> list[Item]:
        return [i for i in self.entities.values() if i.is_type]

    def functions(self) -> list[Item]:
        return self.items(ItemKind.FUNCTION)

    def constants(self) -> list[Item]:
        return self.items(ItemKind.CONSTANT)

    def statics(self) -> list[Item]:
        return self.items(ItemKind.STATIC)

    def summary(self) -> str:
        counts = {kind: len(self.items(kind)) for kind in ItemKind}
        parts = [f"{n} {kind.value}" for kind, n in counts.items() if n]
        return ", ".join(parts) if parts else "empty"

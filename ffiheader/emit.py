"""Emission stream — the ordered, validated event list a writer consumes.

Building the stream is the last place a reference can fail: every path must
name a surviving type entity or a declared external type, nothing may use an
opaque type by value, and no two entities may share an export name.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from ffiheader.dependencies import order_library
from ffiheader.errors import ExportNameCollision, UnresolvedType
from ffiheader.ir.events import EmissionEvent, EventKind
from ffiheader.ir.library import Library
from ffiheader.ir.models import Item, ItemKind

logger = logging.getLogger(__name__)


class EmissionStream:
    """Events in emission order, plus the Library they refer to."""

    def __init__(self, library: Library, events: list[EmissionEvent]):
        self.library = library
        self.events = events

    def __iter__(self) -> Iterator[EmissionEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def of_kind(self, kind: EventKind) -> list[EmissionEvent]:
        return [e for e in self.events if e.kind == kind]

    def entities(self) -> list[Item]:
        """Each emitted entity once, in first-event order."""
        seen = {}
        for event in self.events:
            seen.setdefault(event.entity.name, event.entity)
        return list(seen.values())

    def fingerprint(self) -> list[tuple[str, str]]:
        """Comparable summary: event kinds with export names, in order."""
        return [(e.kind.value, e.entity.export_name) for e in self.events]

    def outstanding(self) -> list[tuple[str, str]]:
        """Dependencies used before they are available, as (user, dependency).

        Empty for every stream this module builds.
        """
        declared: set[str] = set()
        defined: set[str] = set()
        problems = []
        for event in self.events:
            if event.kind == EventKind.FORWARD_DECLARE:
                declared.add(event.entity.name)
                continue
            for ref in event.entity.type_refs():
                for path, behind_pointer in ref.paths():
                    target = self.library.get(path.name)
                    if target is None or not target.is_type or target.name == event.entity.name:
                        continue
                    if target.name in defined:
                        continue
                    if behind_pointer and target.name in declared:
                        continue
                    problems.append((event.entity.name, target.name))
            if event.kind == EventKind.DEFINE_TYPE:
                defined.add(event.entity.name)
                declared.add(event.entity.name)
        return problems


def build_stream(library: Library) -> EmissionStream:
    """Order the Library, then validate the resulting stream."""
    return validate_stream(library, order_library(library))


def validate_stream(library: Library, events: list[EmissionEvent]) -> EmissionStream:
    """Check every reference and export name of an ordered event list.

    Raises:
        UnresolvedType: If a reference names nothing, or uses an opaque type by value.
        ExportNameCollision: If two entities would be emitted under one name.
    """
    stream = EmissionStream(library, events)

    reported_external: set[str] = set()
    for item in stream.entities():
        _check_references(library, item, reported_external)
    _check_export_names(stream.entities())

    library.events = events
    logger.info("Emission stream ready: %d events", len(events))
    return stream


def _check_references(library: Library, item: Item, reported_external: set[str]):
    for ref in item.type_refs():
        for path, behind_pointer in ref.paths():
            target = library.get(path.name)
            if target is None:
                if path.name in library.external_types:
                    if path.name not in reported_external:
                        reported_external.add(path.name)
                        logger.warning("%s is expected to come from an included header", path.name)
                    continue
                raise UnresolvedType(
                    f"references {path}, which is neither defined nor declared external",
                    entity=item.name,
                )
            if not target.is_type:
                raise UnresolvedType(
                    f"uses {target.kind.value} {target.name} as a type",
                    entity=item.name,
                )
            if target.kind == ItemKind.OPAQUE and not behind_pointer:
                raise UnresolvedType(
                    f"uses opaque type {target.name} by value; only pointers to it are allowed",
                    entity=item.name,
                )


def _check_export_names(items: list[Item]):
    owners: dict[str, Item] = {}
    for item in items:
        names = [item.export_name]
        if item.kind == ItemKind.ENUM:
            names += item.generated_names()
        for name in names:
            first = owners.setdefault(name, item)
            if first is not item:
                raise ExportNameCollision(
                    f"export name '{name}' is also used by {first.name}",
                    entity=item.name,
                )

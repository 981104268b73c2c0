"""Conditional-compilation resolver — prunes entities disabled by cfg predicates.

Removal follows containment only: a removed entity takes its own fields and
variants with it, but entities that merely reference it survive. A surviving
pointer reference to a removed type is kept alive through a synthetic opaque
stand-in so it can still be forward-declared. The same stand-in covers removed
types passed as generic arguments. A by-value reference is left dangling and
fails when the emission stream is built.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from ffiheader.ir.cfg import Cfg, Environment, evaluate
from ffiheader.ir.library import Library
from ffiheader.ir.models import Item, ItemKind, OpaqueType
from ffiheader.ir.types import Path, TypeRef

logger = logging.getLogger(__name__)


class CfgResolver:
    """Evaluates every entity predicate against one environment."""

    def __init__(self, env: Environment):
        self.env = env
        self.unknown_leaves: set[str] = set()

    def keep(self, cfg: Cfg | None) -> bool:
        return evaluate(cfg, self.env, self._on_unknown)

    def run(self, library: Library, opaque: Iterable[str] = ()) -> Library:
        removed: dict[str, Item] = {}
        for item in library:
            if not self.keep(item.cfg):
                removed[item.name] = library.remove(item.name)
                logger.debug("Removed %s: cfg(%s) is false", item.name, item.cfg)
                continue
            for member in item.prune(self.keep):
                logger.debug("Removed %s.%s: member cfg is false", item.name, member)

        _apply_opaque_markers(library, set(opaque))
        _stub_pointer_references(library, removed)

        logger.info("Resolved cfg: %d removed, %d remaining", len(removed), len(library))
        return library

    def _on_unknown(self, leaf: Cfg):
        text = str(leaf)
        if text not in self.unknown_leaves:
            self.unknown_leaves.add(text)
            logger.warning("Unknown cfg flag '%s' evaluates to false", text)


def resolve_cfg(library: Library, env: Environment, opaque: Iterable[str] = ()) -> Library:
    """Remove disabled entities and members, then apply opaque-only markers."""
    return CfgResolver(env).run(library, opaque)


def as_opaque(item: Item) -> OpaqueType:
    """An opaque entity with the identity of ``item`` but no body."""
    return OpaqueType(
        name=item.name,
        export_name=item.export_name,
        generic_params=list(item.generic_params),
        documentation=list(item.documentation),
        cfg=item.cfg,
        annotations=item.annotations,
        crate=item.crate,
        decl_index=item.decl_index,
        exported=item.exported,
    )


def _apply_opaque_markers(library: Library, opaque: set[str]):
    for name in sorted(opaque - set(library.entities)):
        logger.warning("Opaque marker '%s' names no surviving entity", name)

    for item in library:
        if item.kind == ItemKind.OPAQUE:
            continue
        if item.name in opaque or item.annotations.opaque:
            if not item.is_type:
                logger.warning("Ignoring opaque marker on %s %s", item.kind.value, item.name)
                continue
            library.entities[item.name] = as_opaque(item)


def _stub_pointer_references(library: Library, removed: dict[str, Item]):
    if not removed:
        return

    for item in library:
        for ref in item.type_refs():
            for path, behind_pointer, in_generic in _stub_candidates(ref):
                target = removed.get(path.name)
                if target is None or not (behind_pointer or in_generic):
                    continue
                logger.warning(
                    "%s references cfg-removed type %s %s; it will only be forward-declared",
                    item.name,
                    path.name,
                    "through a generic argument" if in_generic else "by pointer",
                )
                if path.name not in library:
                    stub = as_opaque(target)
                    stub.synthetic = True
                    stub.exported = False
                    stub.cfg = None
                    stub.documentation = []
                    library.add(stub)


def _stub_candidates(
    ref: TypeRef, in_generic: bool = False
) -> Iterator[tuple[Path, bool, bool]]:
    # Whether a generic argument ends up behind a pointer is only known after
    # substitution; a stub used by value is rejected when the stream is built.
    for path, behind_pointer in ref.paths():
        yield path, behind_pointer, in_generic
        for arg in path.generics:
            yield from _stub_candidates(arg, True)

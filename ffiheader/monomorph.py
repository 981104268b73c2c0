"""Specialization engine — monomorphizes generic entities reachable from roots.

Starting from the exported, non-generic surface, the engine walks every type
reference. A reference to a generic entity with concrete arguments selects an
instantiation: a copy of the entity with each generic parameter substituted,
registered under a mangled name. Instantiations are cached per Library, so the
same argument tuple always yields the same entity. Anything the walk never
reaches (every generic template included) is dropped, and references are
finally rewritten to the mangled names.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

from ffiheader.errors import MangledNameCollision, UnboundedSpecialization, UnresolvedType
from ffiheader.ir.library import Library
from ffiheader.ir.models import Item
from ffiheader.ir.types import Path, TypeRef, mangled_name

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


class Specializer:
    """Walks one Library from its roots and instantiates generics on demand."""

    def __init__(
        self,
        library: Library,
        max_depth: int = DEFAULT_MAX_DEPTH,
        remove_underscores: bool = False,
    ):
        self.library = library
        self.max_depth = max_depth
        self.remove_underscores = remove_underscores
        self._next_seq = 1
        self._exclude: set[str] = set()

    def roots(self, include: Iterable[str] = (), exclude: Iterable[str] = ()) -> list[Item]:
        """Exported concrete entities plus explicitly included ones, in table order."""
        include = set(include)
        exclude = set(exclude)
        roots = []
        for item in self.library:
            if item.name in exclude or item.is_generic:
                continue
            if item.exported or item.name in include:
                roots.append(item)
        for name in sorted(include - {r.name for r in roots}):
            logger.warning("Included name '%s' is not a concrete entity; ignoring it", name)
        return roots

    def instantiate(self, template: Item, args: tuple[TypeRef, ...], depth: int = 1) -> Item:
        """The instantiation of ``template`` with ``args``, created on first use.

        Raises:
            UnresolvedType: If the argument count does not match the parameters.
            UnboundedSpecialization: If ``depth`` exceeds the recursion ceiling.
            MangledNameCollision: If the mangled name is already taken.
        """
        key = (template.name, args)
        cached = self.library.instantiations.get(key)
        if cached is not None:
            return cached

        if len(args) != len(template.generic_params):
            raise UnresolvedType(
                f"expects {len(template.generic_params)} generic argument(s), "
                f"got {len(args)}",
                entity=template.name,
            )

        label = f"{template.name}<{', '.join(str(a) for a in args)}>"
        if depth > self.max_depth or any(a.nesting_depth() > self.max_depth for a in args):
            raise UnboundedSpecialization(
                f"instantiating {label} exceeds the recursion ceiling of {self.max_depth}",
                entity=template.name,
            )

        name = mangled_name(template.name, args, self.remove_underscores)
        existing = self.library.get(name)
        if existing is not None:
            owner = existing.instance_of
            other = (
                f"{owner[0]}<{', '.join(str(a) for a in owner[1])}>"
                if owner
                else f"the {existing.kind.value} declared as {existing.name}"
            )
            raise MangledNameCollision(
                f"{label} mangles to '{name}', which is already used by {other}",
                entity=template.name,
            )

        mapping = dict(zip(template.generic_params, args))
        item = template.clone()
        item.name = name
        item.export_name = name
        item.generic_params = []
        item.instance_of = key
        item.instance_seq = self._next_seq
        self._next_seq += 1
        item.map_types(lambda ref: ref.substitute(mapping))

        self.library.add(item)
        self.library.instantiations[key] = item
        logger.debug("Instantiated %s as %s", label, name)
        return item

    def run(self, include: Iterable[str] = (), exclude: Iterable[str] = ()) -> Library:
        exclude = self._exclude = set(exclude)
        roots = self.roots(include, exclude)
        reached = {root.name for root in roots}
        worklist = deque((root, 0) for root in roots)

        while worklist:
            item, depth = worklist.popleft()
            for ref in item.type_refs():
                for path, _ in ref.paths():
                    target = self._reach(item, path, depth)
                    if target is None or target.name in reached:
                        continue
                    reached.add(target.name)
                    next_depth = depth + 1 if target.instance_of else depth
                    worklist.append((target, next_depth))

        for item in self.library:
            if item.name in reached:
                continue
            self.library.remove(item.name)
            if item.is_generic:
                logger.debug("Dropped generic %s: never instantiated from the exported surface", item.name)
            else:
                logger.debug("Dropped %s: not reachable from the exported surface", item.name)

        for name in exclude:
            if name in self.library:
                self.library.remove(name)
            self.library.external_types.add(name)

        for item in self.library:
            item.map_types(self._mangle)

        logger.info(
            "Specialized: %d instantiation(s), %d entities reachable",
            len(self.library.instantiations),
            len(self.library),
        )
        return self.library

    def _reach(self, owner: Item, path: Path, depth: int) -> Item | None:
        target = self.library.get(path.name)
        if target is None or path.name in self._exclude:
            return None
        if target.is_generic:
            if not path.generics:
                raise UnresolvedType(
                    f"generic type {target.name} is used without arguments in {owner.name}",
                    entity=owner.name,
                )
            return self.instantiate(target, path.generics, depth + 1)
        if path.generics:
            raise UnresolvedType(
                f"{target.name} is not generic but is given arguments in {owner.name}",
                entity=owner.name,
            )
        return target

    def _mangle(self, ref: TypeRef) -> TypeRef:
        def replace(path: Path) -> TypeRef:
            if not path.generics:
                return path
            instance = self.library.instantiations.get((path.name, path.generics))
            return Path(instance.name) if instance is not None else path

        return ref.replace_paths(replace)


def specialize(
    library: Library,
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
    max_depth: int = DEFAULT_MAX_DEPTH,
    remove_underscores: bool = False,
) -> Library:
    """Monomorphize everything reachable from the exported surface."""
    specializer = Specializer(library, max_depth=max_depth, remove_underscores=remove_underscores)
    return specializer.run(include, exclude)

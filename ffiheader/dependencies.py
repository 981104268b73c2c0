"""Dependency graph and declaration ordering.

Every type reference inside a type entity becomes one edge. An edge is
by-value when the referencing type needs the complete definition of its
target, and by-pointer when the target is only reached behind a pointer or
inside a function pointer. Pointer edges into aliases and C-style enums are
promoted to by-value since neither can be forward-declared.

Cycles are broken with forward declarations. While the graph still has a
cycle, the pointer edge inside it whose source comes earliest in declaration
order (then earliest within that source) selects the type to forward-declare;
its incoming pointer edges stop constraining the order. A cycle made only of
by-value edges cannot be represented and is fatal.
"""

from __future__ import annotations

import heapq
import logging
from collections import defaultdict
from dataclasses import dataclass

from ffiheader.errors import UnrepresentableCycle
from ffiheader.ir.events import EmissionEvent, EventKind
from ffiheader.ir.library import Library
from ffiheader.ir.models import Enum, Item, ItemKind

logger = logging.getLogger(__name__)

FORWARD_DECLARABLE = frozenset({ItemKind.STRUCT, ItemKind.UNION, ItemKind.OPAQUE})


@dataclass(frozen=True)
class DependencyEdge:
    source: str
    target: str
    by_value: bool
    position: int  # Occurrence order within the source


def can_forward_declare(item: Item) -> bool:
    if item.kind in FORWARD_DECLARABLE:
        return True
    return isinstance(item, Enum) and item.is_tagged


class DependencyGraph:
    """Edges between the type entities of one Library."""

    def __init__(self, library: Library):
        self.library = library
        self.nodes: list[Item] = sorted(
            (item for item in library.types() if not item.is_generic),
            key=lambda item: (item.sort_key, item.name),
        )
        self.edges: list[DependencyEdge] = []
        for item in self.nodes:
            self.edges.extend(self._edges_of(item))

    def _edges_of(self, item: Item) -> list[DependencyEdge]:
        edges = []
        for ref in item.type_refs():
            for path, behind_pointer in ref.paths():
                target = self.library.get(path.name)
                if target is None or not target.is_type:
                    continue
                by_value = not behind_pointer or not can_forward_declare(target)
                edges.append(DependencyEdge(item.name, target.name, by_value, len(edges)))
        return edges

    def item(self, name: str) -> Item:
        return self.library.entities[name]

    def successors(self, forward: set[str]) -> dict[str, list[str]]:
        """Targets each node waits for, given the forward-declared set."""
        succ: dict[str, list[str]] = {item.name: [] for item in self.nodes}
        for edge in self.edges:
            if edge.by_value or edge.target not in forward:
                if edge.target not in succ[edge.source]:
                    succ[edge.source].append(edge.target)
        return succ

    def pointer_targets(self, name: str) -> list[str]:
        return [e.target for e in self.edges if e.source == name and not e.by_value]


def find_cycles(nodes: list[str], successors: dict[str, list[str]]) -> list[list[str]]:
    """Strongly connected components that contain a cycle (Tarjan).

    Components come out in ``nodes`` order of their first member; members
    keep ``nodes`` order too.
    """
    position = {name: i for i, name in enumerate(nodes)}
    counter = 0
    stack = []
    lowlinks = {}
    index = {}
    on_stack = set()
    components = []

    # Explicit work stack of (node, remaining successors) pairs
    for start in nodes:
        if start in index:
            continue
        index[start] = lowlinks[start] = counter
        counter += 1
        stack.append(start)
        on_stack.add(start)
        work = [(start, iter(successors.get(start, ())))]

        while work:
            node, deps = work[-1]
            for dep in deps:
                if dep not in position:
                    continue
                if dep not in index:
                    index[dep] = lowlinks[dep] = counter
                    counter += 1
                    stack.append(dep)
                    on_stack.add(dep)
                    work.append((dep, iter(successors.get(dep, ()))))
                    break
                if dep in on_stack:
                    lowlinks[node] = min(lowlinks[node], index[dep])
            else:
                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlinks[parent] = min(lowlinks[parent], lowlinks[node])
                if lowlinks[node] == index[node]:
                    component = []
                    while True:
                        w = stack.pop()
                        on_stack.discard(w)
                        component.append(w)
                        if w == node:
                            break
                    components.append(component)

    cycles = [
        sorted(c, key=position.__getitem__)
        for c in components
        if len(c) > 1 or c[0] in successors.get(c[0], ())
    ]
    return sorted(cycles, key=lambda c: position[c[0]])


def plan_forward_declarations(graph: DependencyGraph) -> set[str]:
    """The set of types that need a forward declaration.

    Raises:
        UnrepresentableCycle: If types contain each other by value.
    """
    names = [item.name for item in graph.nodes]

    value_only = defaultdict(list)
    for edge in graph.edges:
        if edge.by_value:
            value_only[edge.source].append(edge.target)
    for cycle in find_cycles(names, value_only):
        path = " -> ".join(cycle + [cycle[0]])
        raise UnrepresentableCycle(
            f"types contain each other by value: {path}", entity=cycle[0]
        )

    forward: set[str] = set()
    while True:
        cycles = find_cycles(names, graph.successors(forward))
        if not cycles:
            return forward
        candidates = [
            edge
            for edge in graph.edges
            if not edge.by_value
            and edge.target not in forward
            and _same_cycle(cycles, edge)
        ]
        chosen = min(
            candidates,
            key=lambda e: (graph.item(e.source).sort_key, e.source, e.position),
        )
        forward.add(chosen.target)
        logger.debug(
            "Forward-declaring %s to break the pointer cycle through %s",
            chosen.target,
            chosen.source,
        )


def _same_cycle(cycles: list[list[str]], edge: DependencyEdge) -> bool:
    return any(edge.source in c and edge.target in c for c in cycles)


def order_types(graph: DependencyGraph, forward: set[str]) -> list[EmissionEvent]:
    """Type events in dependency order, earliest declaration first among ready types."""
    succ = graph.successors(forward)
    waiting = {name: len(targets) for name, targets in succ.items()}
    dependents = defaultdict(list)
    for source, targets in succ.items():
        for target in targets:
            dependents[target].append(source)

    def entry(name):
        item = graph.item(name)
        return (item.sort_key, name)

    ready = [entry(name) for name, count in waiting.items() if count == 0]
    heapq.heapify(ready)

    events = []
    declared: set[str] = set()
    placed = 0
    while ready:
        _, name = heapq.heappop(ready)
        placed += 1
        item = graph.item(name)

        if item.kind == ItemKind.OPAQUE:
            if name not in declared:
                events.append(EmissionEvent(EventKind.FORWARD_DECLARE, item))
                declared.add(name)
        else:
            pending = [name] + graph.pointer_targets(name)
            for target in pending:
                if target in forward and target not in declared:
                    events.append(EmissionEvent(EventKind.FORWARD_DECLARE, graph.item(target)))
                    declared.add(target)
            events.append(EmissionEvent(EventKind.DEFINE_TYPE, item))

        for dependent in dependents[name]:
            waiting[dependent] -= 1
            if waiting[dependent] == 0:
                heapq.heappush(ready, entry(dependent))

    if placed != len(graph.nodes):
        stuck = sorted(name for name, count in waiting.items() if count > 0)
        raise UnrepresentableCycle(
            f"no declaration order exists for: {', '.join(stuck)}", entity=stuck[0]
        )
    return events


def order_library(library: Library) -> list[EmissionEvent]:
    """All emission events: types, then constants, then statics and functions."""
    graph = DependencyGraph(library)
    forward = plan_forward_declarations(graph)
    events = order_types(graph, forward)

    def by_position(item):
        return (item.sort_key, item.name)

    for item in sorted(library.constants(), key=by_position):
        events.append(EmissionEvent(EventKind.DECLARE_CONSTANT, item))
    for item in sorted(library.statics() + library.functions(), key=by_position):
        kind = EventKind.DECLARE_STATIC if item.kind == ItemKind.STATIC else EventKind.DECLARE_FUNCTION
        events.append(EmissionEvent(kind, item))

    logger.info(
        "Ordered %d events (%d forward declaration(s))",
        len(events),
        len(forward),
    )
    return events

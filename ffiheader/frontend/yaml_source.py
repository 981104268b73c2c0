"""YAML crate loader — reads crates described as YAML module files.

Layout of a crate root::

    crate.yaml          name, optional dependencies and crate-wide cfg
    src/**/*.yaml       module files, read in sorted path order

A module file holds an optional ``cfg`` inherited by its items and an
``items`` list. Each item is keyed by its kind::

    items:
      - struct: Point
        attrs: ["repr(C)"]
        doc: A point in 2D space.
        fields:
          x: f32
          y: f32
      - fn: point_len
        params:
          p: "*const Point"
        returns: f32

Dependency crates are parsed in parallel and merged dependencies-first, each
crate in declaration order.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ffiheader.errors import SourceError
from ffiheader.frontend.nodes import (
    DeclarationNode,
    DeclKind,
    FieldNode,
    ParamNode,
    RawAttribute,
    VariantNode,
)
from ffiheader.frontend.type_parser import parse_type

logger = logging.getLogger(__name__)

MANIFEST_FILE = "crate.yaml"
SOURCE_DIR = "src"

KIND_KEYS = {kind.value: kind for kind in DeclKind}

_ATTRIBUTE_RE = re.compile(r"^\s*([A-Za-z_]\w*)\s*(?:\((.*)\)|=\s*(.*?))?\s*$", re.DOTALL)


@dataclass
class CrateManifest:
    name: str
    root: Path
    dependencies: list[Path] = field(default_factory=list)
    cfg: str | None = None


def load_crate(root: str | Path, workers: int = 4) -> list[DeclarationNode]:
    """Load a crate and every crate it depends on.

    Args:
        root: Directory containing ``crate.yaml``.
        workers: Thread pool size used to parse crates concurrently.

    Returns:
        Declaration nodes of all crates, dependencies first.
    """
    manifests = _collect_manifests(Path(root))
    logger.debug("Loading %d crate(s): %s", len(manifests), ", ".join(m.name for m in manifests))

    if len(manifests) == 1 or workers <= 1:
        parsed = [parse_crate(m) for m in manifests]
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(manifests))) as executor:
            parsed = list(executor.map(parse_crate, manifests))

    return [node for nodes in parsed for node in nodes]


def load_manifest(root: Path) -> CrateManifest:
    path = root / MANIFEST_FILE
    if not path.exists():
        raise SourceError(f"No {MANIFEST_FILE} found in crate root: {root}")
    data = _load_yaml(path.read_text(), str(path)) or {}
    if not isinstance(data, dict):
        raise SourceError(f"{path} must contain a mapping")

    return CrateManifest(
        name=data.get("name") or root.name,
        root=root,
        dependencies=[(root / dep).resolve() for dep in data.get("dependencies", [])],
        cfg=data.get("cfg"),
    )


def parse_crate(manifest: CrateManifest) -> list[DeclarationNode]:
    """Parse every module file of one crate, in sorted path order."""
    inherited = [RawAttribute("cfg", manifest.cfg)] if manifest.cfg else []
    source_dir = manifest.root / SOURCE_DIR
    nodes = []
    for path in sorted(source_dir.rglob("*.yaml")):
        data = _load_yaml(path.read_text(), str(path))
        nodes.extend(parse_module(data, crate=manifest.name, inherited=inherited, origin=str(path)))
    return nodes


def parse_module_text(text: str, crate: str = "crate") -> list[DeclarationNode]:
    """Parse a single module document given as YAML text."""
    return parse_module(_load_yaml(text, "<string>"), crate=crate)


def parse_module(
    data: dict | None,
    crate: str,
    inherited: list[RawAttribute] | None = None,
    origin: str = "<module>",
) -> list[DeclarationNode]:
    if data is None:
        return []
    if not isinstance(data, dict):
        raise SourceError(f"{origin}: a module must be a mapping with an 'items' list")

    inherited = list(inherited or [])
    if data.get("cfg"):
        inherited.append(RawAttribute("cfg", str(data["cfg"])))

    nodes = []
    for index, item in enumerate(data.get("items") or []):
        if not isinstance(item, dict):
            raise SourceError(f"{origin}: item {index + 1} must be a mapping")
        nodes.append(_parse_item(item, crate, inherited, origin))
    return nodes


def parse_attribute(text: str) -> RawAttribute:
    """Split ``repr(C)``, ``export_name = "x"`` or ``no_mangle`` into name and value."""
    match = _ATTRIBUTE_RE.match(text)
    if not match:
        raise SourceError(f"Malformed attribute: {text!r}")
    name, args, assigned = match.groups()
    value = args if args is not None else assigned
    return RawAttribute(name, value.strip() if value is not None else None)


# --- Internals ---


def _collect_manifests(root: Path) -> list[CrateManifest]:
    ordered: list[CrateManifest] = []
    done: set[Path] = set()
    visiting: set[Path] = set()

    def visit(path: Path):
        path = path.resolve()
        if path in done:
            return
        if path in visiting:
            raise SourceError(f"Crate dependency cycle through {path}")
        visiting.add(path)
        manifest = load_manifest(path)
        for dep in manifest.dependencies:
            visit(dep)
        visiting.discard(path)
        done.add(path)
        ordered.append(manifest)

    visit(root)
    return ordered


def _load_yaml(text: str, origin: str):
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SourceError(f"Invalid YAML in {origin}: {e}") from e


def _parse_item(data: dict, crate: str, inherited: list[RawAttribute], origin: str) -> DeclarationNode:
    kinds = [key for key in data if key in KIND_KEYS]
    if len(kinds) != 1:
        raise SourceError(f"{origin}: each item needs exactly one kind key, got {sorted(data)}")
    kind = KIND_KEYS[kinds[0]]
    ident = str(data[kinds[0]])

    node = DeclarationNode(
        kind=kind,
        ident=ident,
        attributes=_attributes(data),
        generics=[str(g) for g in data.get("generics", [])],
        crate=crate,
        exported=bool(data.get("pub", True)),
        inherited=list(inherited),
    )

    if kind in (DeclKind.STRUCT, DeclKind.UNION):
        node.fields = _fields(data.get("fields"), origin, ident)
    elif kind == DeclKind.ENUM:
        node.variants = [_variant(v, origin, ident) for v in data.get("variants") or []]
    elif kind == DeclKind.FUNCTION:
        node.params = _params(data.get("params"), origin, ident)
        if data.get("returns") is not None:
            node.returns = parse_type(str(data["returns"]))
        node.variadic = bool(data.get("variadic", False))
    elif kind == DeclKind.TYPE_ALIAS:
        if "target" not in data:
            raise SourceError(f"{origin}: type alias {ident} has no 'target'")
        node.type = parse_type(str(data["target"]))
    elif kind in (DeclKind.CONSTANT, DeclKind.STATIC):
        if "ty" not in data:
            raise SourceError(f"{origin}: {kind.value} {ident} has no 'ty'")
        node.type = parse_type(str(data["ty"]))
        if kind == DeclKind.CONSTANT:
            if "value" not in data:
                raise SourceError(f"{origin}: const {ident} has no 'value'")
            node.value = _literal(data["value"])
        else:
            node.mutable = bool(data.get("mutable", False))

    return node


def _attributes(data: dict) -> list[RawAttribute]:
    attributes = [parse_attribute(str(a)) for a in data.get("attrs") or []]
    doc = data.get("doc")
    if doc:
        attributes.extend(RawAttribute("doc", line) for line in str(doc).rstrip("\n").split("\n"))
    return attributes


def _fields(raw, origin: str, owner: str) -> list[FieldNode]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        return [FieldNode(str(name), parse_type(str(ty))) for name, ty in raw.items()]
    if not isinstance(raw, list):
        raise SourceError(f"{origin}: fields of {owner} must be a mapping or a list")

    fields = []
    for index, entry in enumerate(raw):
        if isinstance(entry, dict) and "type" in entry:
            fields.append(
                FieldNode(
                    name=str(entry.get("name", f"_{index}")),
                    type=parse_type(str(entry["type"])),
                    attributes=_attributes(entry),
                )
            )
        elif isinstance(entry, str):
            # Tuple struct: positional fields
            fields.append(FieldNode(f"_{index}", parse_type(entry)))
        else:
            raise SourceError(f"{origin}: malformed field {index + 1} of {owner}")
    return fields


def _variant(raw, origin: str, owner: str) -> VariantNode:
    if isinstance(raw, str):
        return VariantNode(raw)
    if not isinstance(raw, dict) or "name" not in raw:
        raise SourceError(f"{origin}: malformed variant in enum {owner}")
    value = raw.get("value")
    return VariantNode(
        name=str(raw["name"]),
        discriminant=_literal(value) if value is not None else None,
        fields=_fields(raw.get("fields"), origin, f"{owner}::{raw['name']}"),
        attributes=_attributes(raw),
    )


def _params(raw, origin: str, owner: str) -> list[ParamNode]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        return [ParamNode(str(name), parse_type(str(ty))) for name, ty in raw.items()]
    if not isinstance(raw, list):
        raise SourceError(f"{origin}: params of {owner} must be a mapping or a list")

    params = []
    for index, entry in enumerate(raw):
        if isinstance(entry, dict) and "type" in entry:
            name = entry.get("name")
            params.append(
                ParamNode(
                    name=str(name) if name not in (None, "_") else None,
                    type=parse_type(str(entry["type"])),
                    attributes=_attributes(entry),
                )
            )
        elif isinstance(entry, str):
            params.append(ParamNode(None, parse_type(entry)))
        else:
            raise SourceError(f"{origin}: malformed parameter {index + 1} of {owner}")
    return params


def _literal(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)

"""Pipeline orchestration — runs the stages in order and writes the artifact.

The core stages never touch the filesystem; only ``generate`` (which reads a
crate through the YAML frontend) and ``write_output`` do.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from ffiheader.builder import build_library
from ffiheader.cfg_resolver import resolve_cfg
from ffiheader.config import Config
from ffiheader.dependencies import order_library
from ffiheader.emit import EmissionStream, validate_stream
from ffiheader.errors import BindgenError
from ffiheader.frontend.nodes import DeclarationNode
from ffiheader.frontend.yaml_source import load_crate
from ffiheader.monomorph import specialize
from ffiheader.naming import assign_export_names
from ffiheader.writers.c import write_header

logger = logging.getLogger(__name__)


class Stage(Enum):
    PARSE = "parse"
    BUILD = "build"
    CFG = "cfg"
    SPECIALIZE = "specialize"
    RENAME = "rename"
    ORDER = "order"
    EMIT = "emit"


@contextmanager
def stage(current: Stage) -> Iterator[None]:
    """Stamp the failing stage on any error raised inside the block."""
    logger.debug("Stage %s", current.value)
    try:
        yield
    except BindgenError as e:
        if not e.stage:
            e.stage = current.value
        raise


def run_pipeline(nodes: Iterable[DeclarationNode], config: Config) -> EmissionStream:
    """Run every core stage over declaration nodes given in source order.

    Raises:
        BindgenError: The first fatal error, with ``stage`` set.
    """
    with stage(Stage.BUILD):
        library = build_library(nodes, external_types=config.export.external)

    with stage(Stage.CFG):
        resolve_cfg(library, config.cfg.environment(), opaque=config.export.opaque)

    with stage(Stage.SPECIALIZE):
        specialize(
            library,
            include=config.export.include,
            exclude=config.export.exclude,
            max_depth=config.specialization.max_depth,
            remove_underscores=config.specialization.remove_underscores,
        )

    with stage(Stage.RENAME):
        assign_export_names(library, config)

    with stage(Stage.ORDER):
        events = order_library(library)

    with stage(Stage.EMIT):
        return validate_stream(library, events)


def generate(crate_root: str | Path, config: Config) -> str:
    """Read a crate, run the pipeline and render the C header text."""
    with stage(Stage.PARSE):
        nodes = load_crate(crate_root, workers=config.workers)
    stream = run_pipeline(nodes, config)
    with stage(Stage.EMIT):
        return write_header(stream, config)


def write_output(path: str | Path, text: str) -> bool:
    """Write ``text`` to ``path`` atomically. Returns False if nothing changed.

    The text goes to a temporary file beside the target and is moved into
    place in one step, so a failure never leaves a partial file behind.
    """
    path = Path(path)
    if output_matches(path, text):
        logger.info("%s is up to date", path)
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    ) as f:
        f.write(text)
        tmp_path = f.name
    try:
        os.replace(tmp_path, path)
    except OSError:
        os.unlink(tmp_path)
        raise
    logger.info("Wrote %s", path)
    return True


def output_matches(path: str | Path, text: str) -> bool:
    """True if ``path`` already holds exactly ``text``."""
    path = Path(path)
    return path.exists() and path.read_text() == text

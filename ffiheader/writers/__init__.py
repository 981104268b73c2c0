"""Header writers. Each writer turns an emission stream into source text."""

from ffiheader.writers.c import CWriter, write_header

__all__ = ["CWriter", "write_header"]

"""ffiheader — generate C headers from the exported surface of a crate."""

__version__ = "0.1.0"

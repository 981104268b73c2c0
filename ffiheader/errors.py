"""Fatal pipeline errors.

Every error the core raises is a ``BindgenError``. Each stage raises the first
error it hits and never tries to continue; the pipeline stamps the failing
stage on the error before re-raising it to the caller.
"""

from __future__ import annotations


class BindgenError(Exception):
    """Base class for all fatal generation errors."""

    kind = "BindgenError"

    def __init__(self, message: str, entity: str = ""):
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.stage = ""

    def describe(self) -> str:
        """One-line diagnostic: stage, kind, entity and message."""
        stage = f"[{self.stage}]" if self.stage else ""
        subject = f"{self.entity}: " if self.entity else ""
        return f"error{stage} {self.kind}: {subject}{self.message}"


class SourceError(BindgenError):
    """Malformed input handed over by the syntax adapter."""

    kind = "SourceError"


class DuplicateDeclaration(BindgenError):
    kind = "DuplicateDeclaration"


class UnresolvedType(BindgenError):
    kind = "UnresolvedType"


class MangledNameCollision(BindgenError):
    kind = "MangledNameCollision"


class UnboundedSpecialization(BindgenError):
    kind = "UnboundedSpecialization"


class UnrepresentableCycle(BindgenError):
    kind = "UnrepresentableCycle"


class ExportNameCollision(BindgenError):
    kind = "ExportNameCollision"

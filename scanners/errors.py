"""Errors raised while reading sources and extracting endpoint candidates."""
from __future__ import annotations

from typing import Optional


class SourceReadError(OSError):
    """The input root cannot be read. Fatal: the run aborts before any endpoint work."""


class UnsupportedInputKind(ValueError):
    """No reader or extractor is registered for the requested input kind."""

    def __init__(self, kind: object, supported: Optional[list] = None):
        self.kind = kind
        self.supported = supported or []
        message = f"Unsupported input kind: {kind!r}"
        if self.supported:
            message += f". Supported: {', '.join(self.supported)}"
        super().__init__(message)


class MalformedInput(ValueError):
    """A single fragment could not be parsed at all. Recorded and skipped."""

    def __init__(self, message: str, location: Optional[object] = None):
        self.location = location
        super().__init__(message)

"""
Scanner package for the REST API Summarizer.

Exports the readers, the language-specific scanners, the normalizer and the
shared data models.
"""

from .base import (
    Language,
    HttpMethod,
    ParamLocation,
    InputKind,
    SourceLocation,
    RawFragment,
    Parameter,
    EndpointCandidate,
    PatternDef,
    BaseScanner,
)
from .errors import SourceReadError, UnsupportedInputKind, MalformedInput
from .parameters import RouteParameterExtractor
from .reader import SourceReader, SourceTreeReader, ApiDocumentReader, open_reader
from .python import PythonScanner
from .dotnet import DotNetScanner
from .go import GoScanner
from .java import JavaScanner
from .javascript import JavaScriptScanner
from .spec import SpecScanner
from .ruby import RubyScanner
from .polyglot import PolyglotScanner, ScanResult, ExtractionIssue, SourceCodeExtractor, get_extractor
from .normalizer import Endpoint, Normalizer, canonicalize, endpoint_id

__all__ = [
    # Data models
    "Language",
    "HttpMethod",
    "ParamLocation",
    "InputKind",
    "SourceLocation",
    "RawFragment",
    "Parameter",
    "EndpointCandidate",
    "Endpoint",
    "PatternDef",
    "BaseScanner",
    # Errors
    "SourceReadError",
    "UnsupportedInputKind",
    "MalformedInput",
    # Readers
    "SourceReader",
    "SourceTreeReader",
    "ApiDocumentReader",
    "open_reader",
    # Extraction
    "RouteParameterExtractor",
    "PythonScanner",
    "DotNetScanner",
    "GoScanner",
    "JavaScanner",
    "JavaScriptScanner",
    "SpecScanner",
    "RubyScanner",
    "SourceCodeExtractor",
    "get_extractor",
    "PolyglotScanner",
    "ScanResult",
    "ExtractionIssue",
    # Normalization
    "Normalizer",
    "canonicalize",
    "endpoint_id",
]

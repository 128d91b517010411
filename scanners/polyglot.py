"""
Endpoint extraction over heterogeneous inputs.

``get_extractor(kind)`` is a tagged dispatch over input kind: source trees go
to ``SourceCodeExtractor`` (which picks a language scanner by file
extension), API documents go to ``SpecScanner``. ``PolyglotScanner`` drives a
reader and an extractor over one root and isolates per-fragment failures.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Union

from .base import BaseScanner, EndpointCandidate, InputKind, RawFragment, SourceLocation
from .dotnet import DotNetScanner
from .errors import MalformedInput, UnsupportedInputKind
from .go import GoScanner
from .java import JavaScanner
from .javascript import JavaScriptScanner
from .python import PythonScanner
from .reader import SourceReader, open_reader, parse_kind
from .ruby import RubyScanner
from .spec import SpecScanner

logger = logging.getLogger("restapisummarizer.scanners.polyglot")


class SourceCodeExtractor:
    """Pattern-based extraction for source files, dispatched on file extension."""

    def __init__(self, scanners: Optional[List[BaseScanner]] = None):
        self.scanners: Dict[str, BaseScanner] = {}
        for scanner in scanners or [
            PythonScanner(),
            JavaScriptScanner(),
            JavaScanner(),
            GoScanner(),
            RubyScanner(),
            DotNetScanner(),
        ]:
            for ext in scanner.extensions:
                self.scanners[ext] = scanner

    @property
    def extensions(self) -> Set[str]:
        return set(self.scanners)

    def extract(self, fragment: RawFragment) -> List[EndpointCandidate]:
        scanner = self.scanners.get(fragment.suffix)
        if scanner is None:
            return []
        return scanner.extract(fragment)


EXTRACTORS: Dict[InputKind, Callable[[], Any]] = {
    InputKind.SOURCE_TREE: SourceCodeExtractor,
    InputKind.API_DOCUMENT: SpecScanner,
}


def get_extractor(kind: Union[str, InputKind]):
    """Return a fresh extractor for ``kind``; unknown kinds raise UnsupportedInputKind."""
    input_kind = parse_kind(kind)
    factory = EXTRACTORS.get(input_kind)
    if factory is None:
        raise UnsupportedInputKind(kind, [k.value for k in EXTRACTORS])
    return factory()


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class ExtractionIssue:
    """A fragment that could not be parsed; recorded and skipped."""
    location: SourceLocation
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"file": self.location.file_path, "line": self.location.line, "message": self.message}


@dataclass
class ScanResult:
    candidates: List[EndpointCandidate] = field(default_factory=list)
    issues: List[ExtractionIssue] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class PolyglotScanner:
    """
    Drives one reader and one extractor over a root.

    Features:
    - Lazy, deterministic file walk
    - Error isolation per fragment
    - Progress reporting
    """

    def __init__(
        self,
        target_path: Union[str, Path],
        kind: Union[str, InputKind] = InputKind.SOURCE_TREE,
        ignore_dirs: Optional[Set[str]] = None,
        max_file_size_mb: float = 10,
    ):
        self.target = Path(target_path)
        self.kind = parse_kind(kind)
        self.extractor = get_extractor(self.kind)
        self.reader: SourceReader = open_reader(
            self.target,
            self.kind,
            extensions=self.extractor.extensions,
            ignore_dirs=ignore_dirs,
            max_file_size_mb=max_file_size_mb,
        )

    def scan(self, progress_cb: Optional[Callable[[int, str], None]] = None) -> ScanResult:
        """Extract candidates from every fragment the reader yields, in reader order."""
        result = ScanResult()
        by_language: Dict[str, int] = {}

        for i, fragment in enumerate(self.reader):
            if progress_cb:
                progress_cb(i + 1, fragment.location.file_path)

            try:
                found = self.extractor.extract(fragment)
            except MalformedInput as e:
                logger.warning(f"Malformed input {fragment.location.file_path}: {e}")
                result.issues.append(ExtractionIssue(e.location or fragment.location, str(e)))
                continue
            except Exception as e:
                logger.error(f"Unexpected error scanning {fragment.location.file_path}: {e}")
                result.issues.append(ExtractionIssue(fragment.location, f"extractor error: {e}"))
                continue

            result.candidates.extend(found)
            for candidate in found:
                lang = candidate.language.value
                by_language[lang] = by_language.get(lang, 0) + 1

        result.stats = {
            **self.reader.stats,
            "candidates": len(result.candidates),
            "issues": len(result.issues),
            "by_language": by_language,
        }
        logger.info(
            f"Scan complete: {len(result.candidates)} candidates from {self.reader.stats['files_read']} files"
        )
        return result

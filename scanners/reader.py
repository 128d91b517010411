"""
Source readers: turn a root location into a lazy stream of RawFragments.

A reader is finite and restartable: every ``iter()`` walks the root again,
in sorted order, so two passes over an unchanged tree yield the same
fragments in the same order. The root itself is validated eagerly, before
any endpoint work begins.
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Set, Type, Union

from .base import InputKind, RawFragment, SourceLocation
from .errors import SourceReadError, UnsupportedInputKind

logger = logging.getLogger("restapisummarizer.scanners.reader")

# =============================================================================
# CONFIGURATION - STRICT IGNORE PATTERNS
# =============================================================================
DEFAULT_IGNORE_DIRS: Set[str] = {
    # Version control
    ".git", ".svn", ".hg", ".bzr",
    # Dependencies
    "node_modules", "bower_components", "jspm_packages",
    # Python
    "__pycache__", ".pytest_cache", ".mypy_cache", ".tox", ".nox",
    "venv", ".venv", "env", ".env", "virtualenv", ".virtualenv",
    "site-packages", ".eggs", "dist", "build", "egg-info",
    # .NET
    "bin", "obj", ".vs", "packages", "TestResults", "artifacts",
    # Java
    "target", ".gradle", ".idea", ".settings",
    # Go
    "vendor",
    # JavaScript
    ".next", ".nuxt", "coverage", ".cache", ".parcel-cache",
    # IDE/OS
    ".vscode", ".DS_Store",
    # Docs
    "docs", "doc", "_site",
    # Test suites
    "test", "tests",
}

DOCUMENT_EXTENSIONS: Set[str] = {".json", ".yaml", ".yml"}


class SourceReader(ABC):
    """Base reader: validates the root and walks it deterministically."""

    kind: InputKind

    def __init__(
        self,
        root: Union[str, Path],
        extensions: Iterable[str],
        ignore_dirs: Optional[Set[str]] = None,
        max_file_size_mb: float = 10,
    ):
        self.root = Path(root)
        self.extensions = {e.lower() for e in extensions}
        self.ignore_dirs = set(ignore_dirs) if ignore_dirs else DEFAULT_IGNORE_DIRS.copy()
        self.max_file_size_mb = max_file_size_mb
        self.stats = self._empty_stats()
        self._validate_root()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {"files_read": 0, "files_skipped": 0, "files_errored": 0}

    def _validate_root(self):
        if not self.root.exists():
            raise SourceReadError(f"Input root does not exist: {self.root}")
        if not os.access(self.root, os.R_OK):
            raise SourceReadError(f"Input root is not readable: {self.root}")
        if self.root.is_dir():
            try:
                next(os.scandir(self.root), None)
            except OSError as e:
                raise SourceReadError(f"Cannot list input root {self.root}: {e}") from e

    def __iter__(self) -> Iterator[RawFragment]:
        self.stats = self._empty_stats()
        if self.root.is_file():
            fragment = self._read(self.root)
            if fragment is not None:
                yield fragment
            return

        for fp in self._walk():
            fragment = self._read(fp)
            if fragment is not None:
                yield fragment

    def _walk(self) -> Iterator[Path]:
        for root, dirs, files in os.walk(self.root):
            # Modify dirs in-place to skip ignored and hidden directories
            dirs[:] = sorted(d for d in dirs if d not in self.ignore_dirs and not d.startswith('.'))
            for name in sorted(files):
                fp = Path(root) / name
                if self.should_skip(fp):
                    self.stats["files_skipped"] += 1
                    continue
                yield fp

    def should_skip(self, fp: Path) -> bool:
        """Check if a file inside the walk should be ignored."""
        name = fp.name
        if name.startswith('.'):
            return True
        if '.min.' in name:
            return True
        return fp.suffix.lower() not in self.extensions

    def _read(self, fp: Path) -> Optional[RawFragment]:
        try:
            file_size_mb = fp.stat().st_size / (1024 * 1024)
            if file_size_mb > self.max_file_size_mb:
                logger.warning(f"Skipping large file {fp}: {file_size_mb:.1f}MB > {self.max_file_size_mb}MB")
                self.stats["files_skipped"] += 1
                return None
            content = fp.read_text(encoding='utf-8', errors='ignore')
        except OSError as e:
            logger.warning(f"File read error {fp}: {e}")
            self.stats["files_errored"] += 1
            return None

        self.stats["files_read"] += 1
        return RawFragment(text=content, location=SourceLocation(str(fp), 1), kind=self.kind)

    @abstractmethod
    def describe(self) -> str:
        pass


class SourceTreeReader(SourceReader):
    """One fragment per source file a language scanner handles."""

    kind = InputKind.SOURCE_TREE

    def describe(self) -> str:
        return f"source tree {self.root}"


class ApiDocumentReader(SourceReader):
    """A single OpenAPI/Swagger document, or every document in a directory."""

    kind = InputKind.API_DOCUMENT

    def __init__(self, root: Union[str, Path], extensions: Optional[Iterable[str]] = None, **kwargs):
        super().__init__(root, extensions or DOCUMENT_EXTENSIONS, **kwargs)

    def describe(self) -> str:
        return f"API document(s) at {self.root}"


READERS: Dict[InputKind, Type[SourceReader]] = {
    InputKind.SOURCE_TREE: SourceTreeReader,
    InputKind.API_DOCUMENT: ApiDocumentReader,
}


def parse_kind(kind: Union[str, InputKind]) -> InputKind:
    """Accept an InputKind or its string value."""
    if isinstance(kind, InputKind):
        return kind
    try:
        return InputKind(str(kind).strip().lower())
    except ValueError:
        raise UnsupportedInputKind(kind, [k.value for k in InputKind]) from None


def open_reader(
    root: Union[str, Path],
    kind: Union[str, InputKind],
    extensions: Iterable[str],
    ignore_dirs: Optional[Set[str]] = None,
    max_file_size_mb: float = 10,
) -> SourceReader:
    """
    Build the reader for ``kind`` over ``root``.

    Raises:
        UnsupportedInputKind: no reader is registered for ``kind``.
        SourceReadError: ``root`` is missing or unreadable.
    """
    input_kind = parse_kind(kind)
    reader_cls = READERS.get(input_kind)
    if reader_cls is None:
        raise UnsupportedInputKind(kind, [k.value for k in READERS])
    reader = reader_cls(
        root,
        extensions=extensions,
        ignore_dirs=ignore_dirs,
        max_file_size_mb=max_file_size_mb,
    )
    logger.info(f"Reading {reader.describe()}")
    return reader

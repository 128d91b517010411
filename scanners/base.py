"""
Shared data models and BaseScanner for the endpoint extractors.

All language-specific scanners import from this module.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Set

from .parameters import RouteParameterExtractor


# =============================================================================
# ENUMS
# =============================================================================

class HttpMethod(Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "HttpMethod":
        """Map a framework spelling (``get``, ``Get``, ``del``, ``RequestMethod.GET``) to a method."""
        if not value:
            return cls.UNKNOWN
        token = value.strip().strip("'\"`").split(".")[-1].upper()
        token = {"DEL": "DELETE", "OPTS": "OPTIONS"}.get(token, token)
        try:
            return cls(token)
        except ValueError:
            return cls.UNKNOWN


class ParamLocation(Enum):
    PATH = "path"
    QUERY = "query"
    BODY = "body"
    HEADER = "header"
    COOKIE = "cookie"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ParamLocation":
        token = (value or "").strip().lower()
        if token in ("formdata", "form"):
            return cls.BODY
        try:
            return cls(token)
        except ValueError:
            return cls.QUERY


class InputKind(Enum):
    SOURCE_TREE = "source-tree"
    API_DOCUMENT = "api-document"


class Language(Enum):
    PYTHON = "Python"
    JAVASCRIPT = "JavaScript"
    JAVA = "Java"
    GO = "Go"
    RUBY = "Ruby"
    DOTNET = "C#/.NET"
    UNKNOWN = "Unknown"


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True, order=True)
class SourceLocation:
    """Where a fragment or candidate came from."""
    file_path: str
    line: int = 1

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}"


@dataclass
class RawFragment:
    """An opaque chunk of input handed from a reader to one extractor pass."""
    text: str
    location: SourceLocation
    kind: InputKind

    @property
    def suffix(self) -> str:
        return Path(self.location.file_path).suffix.lower()


@dataclass(frozen=True)
class Parameter:
    name: str
    location: ParamLocation
    type_hint: Optional[str] = None
    required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "in": self.location.value,
            "type": self.type_hint,
            "required": self.required,
        }


@dataclass
class EndpointCandidate:
    """A raw endpoint record, produced by an extractor and consumed by the Normalizer."""
    method: HttpMethod
    path_template: str
    location: SourceLocation
    handler_name: Optional[str] = None
    parameters: List[Parameter] = field(default_factory=list)
    framework: str = "unknown"
    language: Language = Language.UNKNOWN
    context: List[str] = field(default_factory=list)


class PatternDef(NamedTuple):
    """Definition of a route-declaration pattern."""
    regex: str
    framework: str
    method_group: Optional[int] = None   # Regex group for HTTP method(s)
    route_group: Optional[int] = None    # Regex group for the path literal
    handler_group: Optional[int] = None  # Regex group for a handler identifier
    method: Optional[str] = None         # Fixed method implied by the idiom (@GetMapping)
    default_method: Optional[str] = None  # Used when method_group matched nothing


# =============================================================================
# BASE SCANNER (Abstract)
# =============================================================================

class BaseScanner(ABC):
    """
    Abstract base class for all language-specific scanners.

    Each scanner declares route-declaration patterns; ``extract`` turns one
    source fragment into endpoint candidates. Extraction is pattern based and
    tolerant: when a declaration's method cannot be determined, the candidate
    is still emitted with ``HttpMethod.UNKNOWN``.
    """

    # Lines searched after a decorator/annotation for the handler definition
    handler_lookahead = 8

    def __init__(self):
        self.stats = {"fragments_scanned": 0, "candidates_found": 0}

    @property
    @abstractmethod
    def language(self) -> Language:
        """The primary language this scanner handles."""
        pass

    @property
    @abstractmethod
    def extensions(self) -> Set[str]:
        """File extensions this scanner processes."""
        pass

    @property
    @abstractmethod
    def patterns(self) -> List[PatternDef]:
        """List of regex patterns for detection."""
        pass

    @property
    def handler_regex(self) -> Optional[str]:
        """Regex whose first group names the handler defined after a declaration."""
        return None

    def route_prefix(self, content: str, match: "re.Match", pattern_def: PatternDef) -> str:
        """Prefix contributed by an enclosing router, controller or class declaration."""
        return ""

    @staticmethod
    def join_route(prefix: str, route: str) -> str:
        if not prefix:
            return route
        if not route:
            return prefix
        return prefix.rstrip("/") + "/" + route.lstrip("/")

    @staticmethod
    def brace_block(content: str, open_pos: int) -> int:
        """Return the index just past the brace block starting at ``open_pos``."""
        depth = 1
        pos = open_pos + 1
        while depth > 0 and pos < len(content):
            if content[pos] == "{":
                depth += 1
            elif content[pos] == "}":
                depth -= 1
            pos += 1
        return pos

    @staticmethod
    def split_parameters(params_str: str) -> List[str]:
        """Split a parameter list on top-level commas (generics and annotations nest)."""
        params = []
        current = ""
        depth = 0

        for char in params_str:
            if char in "<([":
                depth += 1
            elif char in ">)]":
                depth -= 1
            if char == "," and depth == 0:
                params.append(current.strip())
                current = ""
            else:
                current += char

        if current.strip():
            params.append(current.strip())

        return params

    def get_context(self, lines: List[str], line_num: int, size: int = 3) -> List[str]:
        """Extract context lines around a match."""
        start = max(0, line_num - size)
        end = min(len(lines), line_num + size + 1)
        return lines[start:end]

    def find_handler(self, lines: List[str], line_num: int) -> Optional[str]:
        """Look below a declaration (0-based line) for the function it decorates."""
        if not self.handler_regex:
            return None
        for line in lines[line_num:line_num + self.handler_lookahead]:
            match = re.search(self.handler_regex, line)
            if match:
                return match.group(1)
        return None

    @staticmethod
    def parse_methods(raw: Optional[str]) -> List[HttpMethod]:
        """Parse one method token or a list literal such as ``['GET', "POST"]``."""
        if not raw:
            return []
        methods = []
        for token in re.findall(r"[A-Za-z_.]+", raw):
            method = HttpMethod.parse(token)
            if method != HttpMethod.UNKNOWN and method not in methods:
                methods.append(method)
        return methods

    def build_candidate(
        self,
        fragment: RawFragment,
        lines: List[str],
        line_num: int,
        method: HttpMethod,
        route: str,
        framework: str,
        handler_name: Optional[str] = None,
        extra_params: Optional[List[Parameter]] = None,
    ) -> EndpointCandidate:
        template, path_params = RouteParameterExtractor.to_template(route)
        params = [
            Parameter(name, ParamLocation.PATH, type_hint, required=True)
            for name, type_hint in path_params
        ]
        for extra in extra_params or []:
            existing = next(
                (i for i, p in enumerate(params) if (p.name, p.location) == (extra.name, extra.location)),
                None,
            )
            if existing is None:
                params.append(extra)
            elif params[existing].type_hint is None:
                params[existing] = Parameter(extra.name, extra.location, extra.type_hint, params[existing].required)
        return EndpointCandidate(
            method=method,
            path_template=template,
            location=SourceLocation(fragment.location.file_path, line_num),
            handler_name=handler_name,
            parameters=params,
            framework=framework,
            language=self.language,
            context=self.get_context(lines, line_num - 1),
        )

    def scan_with_patterns(self, fragment: RawFragment, content: str, lines: List[str]) -> List[EndpointCandidate]:
        """Scan content using defined patterns."""
        results = []

        for pattern_def in self.patterns:
            try:
                matches = list(re.finditer(pattern_def.regex, content, re.MULTILINE))
            except re.error:
                continue

            for match in matches:
                line_num = content[:match.start()].count('\n') + 1
                groups = match.groups()

                route = None
                if pattern_def.route_group is not None and len(groups) >= pattern_def.route_group:
                    route = groups[pattern_def.route_group - 1]
                if route is None:
                    continue
                route = self.join_route(self.route_prefix(content, match, pattern_def), route)

                if pattern_def.method:
                    methods = [HttpMethod.parse(pattern_def.method)]
                else:
                    raw_method = None
                    if pattern_def.method_group is not None and len(groups) >= pattern_def.method_group:
                        raw_method = groups[pattern_def.method_group - 1]
                    methods = self.parse_methods(raw_method)
                    if not methods and pattern_def.default_method:
                        methods = [HttpMethod.parse(pattern_def.default_method)]
                    if not methods:
                        methods = [HttpMethod.UNKNOWN]

                handler = None
                if pattern_def.handler_group is not None and len(groups) >= pattern_def.handler_group:
                    handler = groups[pattern_def.handler_group - 1]
                if handler is None:
                    handler = self.find_handler(lines, line_num)

                for method in methods:
                    results.append(self.build_candidate(
                        fragment, lines, line_num, method, route, pattern_def.framework, handler,
                    ))

        return results

    def scan_with_heuristics(self, fragment: RawFragment, content: str, lines: List[str]) -> List[EndpointCandidate]:
        """Override in subclasses for language-specific heuristic rules."""
        return []

    def extract(self, fragment: RawFragment) -> List[EndpointCandidate]:
        """Scan a fragment using both patterns and heuristics."""
        content = fragment.text
        lines = content.split('\n')

        results = []
        results.extend(self.scan_with_patterns(fragment, content, lines))
        results.extend(self.scan_with_heuristics(fragment, content, lines))

        # Two patterns may describe the same declaration
        seen = set()
        unique = []
        for candidate in results:
            key = (candidate.location.line, candidate.method, candidate.path_template)
            if key in seen:
                continue
            seen.add(key)
            unique.append(candidate)

        self.stats["fragments_scanned"] += 1
        self.stats["candidates_found"] += len(unique)
        return unique

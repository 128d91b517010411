"""
Normalizer/Deduplicator: endpoint candidates -> canonical Endpoints.

Candidates are grouped by (method, normalized path), where the normalized
path replaces every ``{name}`` placeholder with its position (``{0}``,
``{1}``...), so ``/users/{id}`` and ``/users/{userId}`` are the same endpoint.
Every merge decision is order independent: the same candidate multiset
always yields the same set of Endpoints, whatever order it arrived in.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .base import EndpointCandidate, HttpMethod, Language, Parameter, ParamLocation, SourceLocation
from .parameters import RouteParameterExtractor

logger = logging.getLogger("restapisummarizer.scanners.normalizer")

UNKNOWN_POLICIES = ("warn", "drop")

_PLACEHOLDER = re.compile(r'\{([^{}]*)\}')


@dataclass
class Endpoint:
    """One logical REST operation: a canonical (method, path template) pair."""
    id: str
    method: HttpMethod
    path_template: str
    normalized_path: str
    parameters: List[Parameter] = field(default_factory=list)
    occurrences: int = 1
    sources: List[SourceLocation] = field(default_factory=list)
    handler_names: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)
    language: Language = Language.UNKNOWN
    context: List[str] = field(default_factory=list)

    @property
    def location(self) -> SourceLocation:
        """First source location, used for display and grouping by file."""
        return self.sources[0]

    @property
    def handler_name(self) -> Optional[str]:
        return self.handler_names[0] if self.handler_names else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "method": self.method.value,
            "path": self.path_template,
            "normalized_path": self.normalized_path,
            "parameters": [p.to_dict() for p in self.parameters],
            "occurrences": self.occurrences,
            "sources": [str(s) for s in self.sources],
            "handlers": self.handler_names,
            "frameworks": self.frameworks,
            "language": self.language.value,
        }


def endpoint_id(method: HttpMethod, normalized_path: str) -> str:
    """Stable identity: sha256 of ``"METHOD /normalized/{0}"``, 16 hex chars."""
    return hashlib.sha256(f"{method.value} {normalized_path}".encode()).hexdigest()[:16]


def clean_path(path_template: str) -> str:
    """Collapse repeated slashes, ensure one leading slash, trim the trailing one."""
    path = re.sub(r'/{2,}', '/', path_template.strip())
    if not path.startswith('/'):
        path = '/' + path
    if len(path) > 1:
        path = path.rstrip('/') or '/'
    return path


def canonicalize(path_template: str) -> Tuple[str, List[str]]:
    """
    Normalize a template and return it with its placeholder names by position.

    Example:
        >>> canonicalize("users//{userId}/posts/{id}/")
        ('/users/{0}/posts/{1}', ['userId', 'id'])
    """
    path = clean_path(path_template)
    names: List[str] = []

    def replace(match):
        names.append(match.group(1))
        return '{' + str(len(names) - 1) + '}'

    return _PLACEHOLDER.sub(replace, path), names


def pick_type_hint(hints: List[Optional[str]]) -> Optional[str]:
    """Most specific hint wins (None < generic < concrete); ties break lexicographically."""
    present = [h for h in hints if h]
    if not present:
        return None
    best = max(RouteParameterExtractor.type_specificity(h) for h in present)
    return min(h for h in present if RouteParameterExtractor.type_specificity(h) == best)


class Normalizer:
    """
    Merge candidates into canonical Endpoints.

    ``unknown_methods`` decides what happens to endpoints whose method could
    not be determined: ``warn`` keeps them (the summary carries a warning),
    ``drop`` removes them.
    """

    def __init__(self, unknown_methods: str = "warn"):
        if unknown_methods not in UNKNOWN_POLICIES:
            raise ValueError(
                f"unknown_methods must be one of {', '.join(UNKNOWN_POLICIES)}, got {unknown_methods!r}"
            )
        self.unknown_methods = unknown_methods
        self.stats = {"candidates": 0, "endpoints": 0, "unknown_method": 0, "dropped": 0}

    def normalize(self, candidates: List[EndpointCandidate]) -> List[Endpoint]:
        """Group and merge; result order is first-seen (discovery) order."""
        groups: Dict[Tuple[HttpMethod, str], List[Tuple[EndpointCandidate, List[str]]]] = {}
        for candidate in candidates:
            normalized, names = canonicalize(candidate.path_template)
            groups.setdefault((candidate.method, normalized), []).append((candidate, names))

        endpoints = []
        for (method, normalized), members in groups.items():
            endpoints.append(self._merge(method, normalized, members))

        unknown = [ep for ep in endpoints if ep.method == HttpMethod.UNKNOWN]
        self.stats = {
            "candidates": len(candidates),
            "endpoints": len(endpoints),
            "unknown_method": len(unknown),
            "dropped": 0,
        }
        if unknown:
            if self.unknown_methods == "drop":
                endpoints = [ep for ep in endpoints if ep.method != HttpMethod.UNKNOWN]
                self.stats["dropped"] = len(unknown)
                self.stats["endpoints"] = len(endpoints)
                logger.info(f"Dropped {len(unknown)} endpoints with undetermined HTTP method")
            else:
                logger.warning(f"{len(unknown)} endpoints have an undetermined HTTP method")

        logger.debug(f"Normalized {len(candidates)} candidates into {len(endpoints)} endpoints")
        return endpoints

    def _merge(
        self,
        method: HttpMethod,
        normalized: str,
        members: List[Tuple[EndpointCandidate, List[str]]],
    ) -> Endpoint:
        display = min(clean_path(c.path_template) for c, _ in members)
        display_names = canonicalize(display)[1]

        path_hints: Dict[int, List[Optional[str]]] = {i: [] for i in range(len(display_names))}
        other: Dict[Tuple[str, ParamLocation], List[Parameter]] = {}

        for candidate, names in members:
            for param in candidate.parameters:
                if param.location == ParamLocation.PATH and param.name in names:
                    path_hints[names.index(param.name)].append(param.type_hint)
                else:
                    other.setdefault((param.name, param.location), []).append(param)

        parameters = []
        seen = set()
        for i, name in enumerate(display_names):
            if name in seen:
                continue
            seen.add(name)
            parameters.append(Parameter(name, ParamLocation.PATH, pick_type_hint(path_hints[i]), required=True))
        for (name, location) in sorted(other, key=lambda key: (key[1].value, key[0])):
            params = other[(name, location)]
            parameters.append(Parameter(
                name,
                location,
                pick_type_hint([p.type_hint for p in params]),
                required=any(p.required for p in params),
            ))

        # The earliest source supplies context, independent of arrival order
        primary = min((c for c, _ in members), key=lambda c: c.location)

        return Endpoint(
            id=endpoint_id(method, normalized),
            method=method,
            path_template=display,
            normalized_path=normalized,
            parameters=parameters,
            occurrences=len(members),
            sources=sorted({c.location for c, _ in members}),
            handler_names=sorted({c.handler_name for c, _ in members if c.handler_name}),
            frameworks=sorted({c.framework for c, _ in members}),
            language=primary.language,
            context=list(primary.context),
        )

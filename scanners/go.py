"""Go scanner: net/http, Gin, Echo, Fiber, Chi, Gorilla Mux, httprouter."""
from __future__ import annotations

import re
from typing import Dict, List, Set

from .base import BaseScanner, Language, PatternDef

# Optional trailing handler identifier: r.GET("/x", middleware, h.ListUsers)
_HANDLER_ARG = r'(?:\s*,\s*(?:[\w.]+\s*,\s*)*([\w.]+)\s*\))?'


class GoScanner(BaseScanner):
    """Go scanner supporting multiple frameworks."""

    @property
    def language(self) -> Language:
        return Language.GO

    @property
    def extensions(self) -> Set[str]:
        return {".go"}

    @property
    def patterns(self) -> List[PatternDef]:
        return [
            # ===================== GIN / ECHO / HTTPROUTER =====================
            PatternDef(
                regex=r'\b\w+\.(GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS|Any)\s*\(\s*["`]([^"`]+)["`]' + _HANDLER_ARG,
                framework="Gin",
                method_group=1,
                route_group=2,
                handler_group=3,
            ),

            # ===================== FIBER / CHI =====================
            PatternDef(
                regex=r'\b\w+\.(Get|Post|Put|Delete|Patch|Head|Options|Trace|All)\s*\(\s*["`](/[^"`]*)["`]' + _HANDLER_ARG,
                framework="Chi",
                method_group=1,
                route_group=2,
                handler_group=3,
            ),

            # ===================== NET/HTTP (Go 1.22 "METHOD /path" patterns) =====================
            PatternDef(
                regex=r'\.Handle(?:Func)?\s*\(\s*["`](?:(GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)\s+)?([^"`]+)["`]'
                      r'\s*,\s*(?:([\w.]+)\s*\))?(?![^\n]*\.Methods)',
                framework="net/http",
                method_group=1,
                route_group=2,
                handler_group=3,
            ),

            # ===================== GORILLA MUX =====================
            PatternDef(
                regex=r'\.Handle(?:Func)?\s*\(\s*["`]([^"`]+)["`]\s*,\s*([\w.]+)?[^\n]*?\.Methods\s*\(([^)]*)\)',
                framework="Gorilla Mux",
                route_group=1,
                handler_group=2,
                method_group=3,
            ),
            PatternDef(
                regex=r'\.Path\s*\(\s*["`]([^"`]+)["`]\s*\)\s*\.Methods\s*\(([^)]*)\)'
                      r'(?:\s*\.Handler(?:Func)?\s*\(\s*([\w.]+)\s*\))?',
                framework="Gorilla Mux",
                route_group=1,
                method_group=2,
                handler_group=3,
            ),
        ]

    def route_prefix(self, content: str, match: "re.Match", pattern_def: PatternDef) -> str:
        """Resolve r.Group / PathPrefix().Subrouter() prefixes of the receiver."""
        receiver = re.match(r'(\w+)\.', match.group(0))
        if not receiver:
            return ""
        return self._group_prefixes(content).get(receiver.group(1), "")

    @staticmethod
    def _group_prefixes(content: str) -> Dict[str, str]:
        # v1 := r.Group("/v1") / api := r.PathPrefix("/api").Subrouter()
        group_re = re.compile(
            r'(\w+)\s*:?=\s*(\w+)\s*\.\s*(?:Group|PathPrefix)\s*\(\s*["`]([^"`]*)["`]',
        )
        parents: Dict[str, tuple] = {}
        for m in group_re.finditer(content):
            parents[m.group(1)] = (m.group(2), m.group(3))

        def resolve(var: str, depth: int = 0) -> str:
            if var not in parents or depth > 10:
                return ""
            parent, prefix = parents[var]
            return BaseScanner.join_route(resolve(parent, depth + 1), prefix)

        return {var: resolve(var) for var in parents}

"""JavaScript/TypeScript scanner: Express, Koa, Fastify, Hapi, Hono, NestJS."""
from __future__ import annotations

import re
from typing import Dict, List, Optional, Set

from .base import BaseScanner, Language, PatternDef, EndpointCandidate, RawFragment, HttpMethod

_Q = r'["\'\`]'
_NOT_Q = r'[^"\'\`]'

# Receivers that conventionally hold a server or router instance
_RECEIVER = r'\b(?:app|api|router|server|fastify|hono|routes|\w+Router|\w+Routes)'

# Optional trailing handler identifier: app.get('/x', auth, listUsers)
_HANDLER_ARG = r'(?:\s*,\s*(?:[\w.]+\s*,\s*)*([\w.]+)\s*\))?'


class JavaScriptScanner(BaseScanner):
    """JavaScript/TypeScript scanner."""

    @property
    def language(self) -> Language:
        return Language.JAVASCRIPT

    @property
    def extensions(self) -> Set[str]:
        return {".js", ".ts", ".mjs", ".cjs", ".jsx", ".tsx"}

    @property
    def handler_regex(self) -> Optional[str]:
        # Class method definition below a NestJS decorator
        return (
            r'^\s*(?:public\s+|private\s+|protected\s+)?(?:async\s+)?'
            r'(?!if\b|for\b|while\b|switch\b|catch\b|function\b|return\b)(\w+)\s*\('
        )

    @property
    def patterns(self) -> List[PatternDef]:
        return [
            # ===================== EXPRESS / KOA / FASTIFY / HONO / RESTIFY =====================
            PatternDef(
                regex=_RECEIVER + r'\.(get|post|put|delete|patch|head|options|all|del|opts)\s*\(\s*'
                      + _Q + r'(/' + _NOT_Q + r'*|\*)' + _Q + _HANDLER_ARG,
                framework="Express",
                method_group=1,
                route_group=2,
                handler_group=3,
            ),

            # ===================== FASTIFY / HAPI route objects =====================
            PatternDef(
                regex=r'\.route\s*\(\s*\{[^}]*?method:\s*(\[[^\]]*\]|' + _Q + r'\w+' + _Q + r')[^}]*?'
                      r'(?:url|path):\s*' + _Q + r'(' + _NOT_Q + r'+)' + _Q
                      + r'(?:[^}]*?handler:\s*([\w.]+))?',
                framework="Fastify",
                method_group=1,
                route_group=2,
                handler_group=3,
            ),
            PatternDef(
                regex=r'\.route\s*\(\s*\{[^}]*?(?:url|path):\s*' + _Q + r'(' + _NOT_Q + r'+)' + _Q + r'[^}]*?'
                      r'method:\s*(\[[^\]]*\]|' + _Q + r'\w+' + _Q + r')'
                      + r'(?:[^}]*?handler:\s*([\w.]+))?',
                framework="Fastify",
                route_group=1,
                method_group=2,
                handler_group=3,
            ),

            # ===================== NESTJS =====================
            PatternDef(
                regex=r'@(Get|Post|Put|Delete|Patch|Options|Head|All)\s*\(\s*' + _Q + r'?(' + _NOT_Q + r'*?)' + _Q + r'?\s*\)',
                framework="NestJS",
                method_group=1,
                route_group=2,
            ),
        ]

    def route_prefix(self, content: str, match: "re.Match", pattern_def: PatternDef) -> str:
        if pattern_def.framework == "NestJS":
            controllers = [
                m for m in re.finditer(r'@Controller\s*\(\s*(?:' + _Q + r'(' + _NOT_Q + r'*)' + _Q + r')?', content)
                if m.start() < match.start()
            ]
            return controllers[-1].group(1) or "" if controllers else ""

        receiver = re.match(r'(\w+)\s*\.', match.group(0))
        if not receiver:
            return ""
        return self._mount_prefixes(content).get(receiver.group(1), "")

    @staticmethod
    def _mount_prefixes(content: str) -> Dict[str, str]:
        prefixes: Dict[str, str] = {}

        # const router = new Router({ prefix: '/users' })
        for m in re.finditer(
            r'(\w+)\s*=\s*new\s+(?:Koa)?Router\s*\(\s*\{[^}]*prefix:\s*' + _Q + r'(' + _NOT_Q + r'+)' + _Q,
            content,
        ):
            prefixes[m.group(1)] = m.group(2)

        # app.use('/api', usersRouter)
        for m in re.finditer(
            r'\b\w+\s*\.\s*use\s*\(\s*' + _Q + r'(' + _NOT_Q + r'+)' + _Q + r'\s*,\s*(?:[\w.]+\s*,\s*)*(\w+)\s*\)',
            content,
        ):
            prefixes[m.group(2)] = BaseScanner.join_route(m.group(1), prefixes.get(m.group(2), ""))

        return prefixes

    def scan_with_heuristics(self, fragment: RawFragment, content: str, lines: List[str]) -> List[EndpointCandidate]:
        """Expand ``app.route('/books').get(list).post(create)`` chains."""
        results = []
        chain_re = re.compile(
            _RECEIVER + r'\.route\s*\(\s*' + _Q + r'(' + _NOT_Q + r'+)' + _Q + r'\s*\)([^;]*)',
        )
        verb_re = re.compile(r'\.\s*(get|post|put|delete|patch|all)\s*\(\s*([\w.]+\s*\))?')

        for m in chain_re.finditer(content):
            line_num = content[:m.start()].count('\n') + 1
            route = m.group(1)
            for verb in verb_re.finditer(m.group(2)):
                handler = verb.group(2)[:-1].strip() if verb.group(2) else None
                results.append(self.build_candidate(
                    fragment, lines, line_num, HttpMethod.parse(verb.group(1)), route, "Express", handler,
                ))

        return results
